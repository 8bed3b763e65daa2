from __future__ import annotations

from typing import Any

import pytest
from odrl_ir import ViolationCode
from odrl_kernel import EngineConfig, StructuralError, normalize

OWNER = "http://example.com/party/owner"
ALICE = "http://example.com/party/alice"
BOB = "http://example.com/party/bob"
MALLORY = "http://example.com/party/mallory"
ASSET = "http://example.com/asset/1"
OTHER_ASSET = "http://example.com/asset/2"
RECEIPT = "http://example.com/asset/receipt"


def _compact_policy() -> dict[str, Any]:
    return {
        "uid": "http://example.com/policy/1",
        "@type": "Offer",
        "assigner": OWNER,
        "target": ASSET,
        "action": "use",
        "permission": [
            {
                "assignee": ALICE,
                "duty": [
                    {
                        "action": "compensate",
                        "target": RECEIPT,
                        "consequence": [{"action": "inform"}],
                    }
                ],
            },
            {
                "uid": "http://example.com/rule/bob",
                "assignee": BOB,
                "target": OTHER_ASSET,
                "action": "play",
            },
        ],
        "prohibition": {"assignee": MALLORY, "remedy": [{"action": "delete"}]},
        "obligation": [{"assignee": ALICE, "action": "attribute"}],
    }


def _duty_chain(levels: int) -> dict[str, Any]:
    duty: dict[str, Any] = {"action": "inform"}
    for _ in range(levels):
        duty = {"action": "inform", "consequence": [duty]}
    return duty


def test_rules_are_flattened_in_pre_order() -> None:
    normalized = normalize(_compact_policy())

    assert normalized.policy_type == "Offer"
    assert normalized.permissions == (0, 3)
    assert normalized.prohibitions == (4,)
    assert normalized.obligations == (6,)
    assert [rule.slot for rule in normalized.rules] == [
        "permission",
        "duty",
        "consequence",
        "permission",
        "prohibition",
        "remedy",
        "obligation",
    ]
    assert normalized.rules[0].fallback == (1,)
    assert normalized.rules[1].fallback == (2,)
    assert normalized.rules[4].fallback == (5,)


def test_shared_fields_propagate_to_every_rule() -> None:
    rules = normalize(_compact_policy()).rules

    assert rules[0].assigner == (OWNER,)
    assert rules[0].target == (ASSET,)
    assert rules[0].action_names == ("use",)
    assert rules[3].target == (OTHER_ASSET,)
    assert rules[3].action_names == ("play",)
    assert rules[3].assigner == (OWNER,)
    assert rules[6].role == "duty"
    assert rules[6].assigner == (OWNER,)
    assert rules[6].action_names == ("attribute",)


def test_duties_inherit_from_their_parent_rule() -> None:
    rules = normalize(_compact_policy()).rules
    duty, consequence, remedy = rules[1], rules[2], rules[5]

    assert (duty.role, duty.parent, duty.depth) == ("duty", 0, 1)
    assert duty.assignee == (ALICE,)
    assert duty.target == (RECEIPT,)
    assert duty.action_names == ("compensate",)
    assert (consequence.parent, consequence.depth) == (1, 2)
    assert consequence.assignee == (ALICE,)
    assert consequence.target == (RECEIPT,)
    assert remedy.assignee == (MALLORY,)
    assert remedy.action_names == ("delete",)


def test_rule_ids_keep_uids_and_stay_stable_otherwise() -> None:
    first = normalize(_compact_policy())
    second = normalize(_compact_policy())

    assert first.rules[3].rule_id == "http://example.com/rule/bob"
    assert first.rules[0].rule_id.startswith("rule_")
    assert [rule.rule_id for rule in first.rules] == [rule.rule_id for rule in second.rules]
    assert first.find("http://example.com/rule/bob") is first.rules[3]


def test_normalize_is_idempotent() -> None:
    once = normalize(_compact_policy())

    assert normalize(once) == once
    assert normalize(once.to_policy()) == once


def test_deep_duty_chain_is_refused_before_parsing() -> None:
    with pytest.raises(StructuralError) as excinfo:
        normalize({"permission": [{"action": "use", "duty": [_duty_chain(3000)]}]})

    assert excinfo.value.code == ViolationCode.FALLBACK_DEPTH_EXCEEDED.value
    assert excinfo.value.violations[0].json_path == (
        "/permission/0/duty/0" + "/consequence/0" * 16
    )


def test_deep_constraint_nesting_is_refused_before_parsing() -> None:
    nested: dict[str, Any] = {"leftOperand": "count", "operator": "lteq", "rightOperand": 5}
    for _ in range(3000):
        nested = {"and": [nested]}

    with pytest.raises(StructuralError) as excinfo:
        normalize({"permission": [{"action": "use", "constraint": [nested]}]})

    assert excinfo.value.code == ViolationCode.CONSTRAINT_DEPTH_EXCEEDED.value
    assert excinfo.value.violations[0].json_path == (
        "/permission/0/constraint/0" + "/and/0" * 32
    )


def test_refinement_nesting_follows_configured_cap() -> None:
    nested: dict[str, Any] = {"leftOperand": "resolution", "operator": "lteq", "rightOperand": 1200}
    for _ in range(4):
        nested = {"or": [nested]}
    payload = {
        "permission": [
            {"action": [{"rdf:value": {"@id": "print"}, "refinement": [nested]}]},
        ]
    }

    with pytest.raises(StructuralError) as excinfo:
        normalize(payload, config=EngineConfig(max_constraint_depth=4))

    assert excinfo.value.violations[0].json_path == (
        "/permission/0/action/0/refinement/0" + "/or/0" * 4
    )
    assert normalize(payload, config=EngineConfig(max_constraint_depth=5)).permissions == (0,)


def test_singular_groups_are_normalized_like_lists() -> None:
    normalized = normalize(
        {"permission": {"target": ASSET, "action": "use"}, "obligation": {"action": "pay"}}
    )

    assert normalized.permissions == (0,)
    assert normalized.obligations == (1,)
    assert normalized.rules[1].action_names == ("pay",)


def test_input_policy_is_not_mutated() -> None:
    payload = _compact_policy()
    normalize(payload)

    assert payload == _compact_policy()


def test_fallback_depth_cap() -> None:
    config = EngineConfig(max_fallback_depth=2)

    with pytest.raises(StructuralError) as excinfo:
        normalize({"obligation": [_duty_chain(3)]}, config=config)

    assert excinfo.value.code == ViolationCode.FALLBACK_DEPTH_EXCEEDED.value
    assert excinfo.value.violations[0].json_path == (
        "/obligation/0/consequence/0/consequence/0/consequence/0"
    )
    deepest = normalize(
        {"obligation": [_duty_chain(3)]}, config=EngineConfig(max_fallback_depth=3)
    )
    assert deepest.rules[-1].depth == 3


def test_default_fallback_depth_cap_is_sixteen() -> None:
    assert normalize({"obligation": [_duty_chain(16)]}).rules[-1].depth == 16
    with pytest.raises(StructuralError, match="exceeds cap 16"):
        normalize({"obligation": [_duty_chain(17)]})


def _parent_policy() -> dict[str, Any]:
    return {
        "uid": "http://example.com/policy/parent",
        "assigner": OWNER,
        "target": ASSET,
        "action": "use",
        "prohibition": [{"assignee": MALLORY}],
    }


def _child_policy() -> dict[str, Any]:
    return {
        "uid": "http://example.com/policy/child",
        "inheritFrom": "http://example.com/policy/parent",
        "permission": [{"target": ASSET, "assignee": ALICE, "action": "play"}],
    }


def test_inherit_from_merges_parent_rules() -> None:
    normalized = normalize(
        _child_policy(),
        parents={"http://example.com/policy/parent": _parent_policy()},
    )

    assert normalized.inherited == ("http://example.com/policy/parent",)
    assert normalized.unresolved_inheritance == ()
    assert normalized.permissions == (0,)
    assert normalized.prohibitions == (1,)
    inherited = normalized.rules[1]
    assert inherited.assigner == (OWNER,)
    assert inherited.assignee == (MALLORY,)
    assert inherited.action_names == ("use",)
    assert normalized.rules[0].assigner is None


def test_inherit_from_without_parents_is_left_unresolved() -> None:
    normalized = normalize(_child_policy())

    assert normalized.prohibitions == ()
    assert normalized.unresolved_inheritance == ("http://example.com/policy/parent",)


def test_inherit_from_cycle_is_rejected() -> None:
    parent = {**_parent_policy(), "inheritFrom": "http://example.com/policy/child"}

    with pytest.raises(StructuralError) as excinfo:
        normalize(_child_policy(), parents={"http://example.com/policy/parent": parent})

    assert excinfo.value.code == ViolationCode.INHERITANCE_CYCLE.value


def test_missing_parent_policy_is_rejected() -> None:
    with pytest.raises(StructuralError) as excinfo:
        normalize(_child_policy(), parents={})

    assert excinfo.value.code == ViolationCode.PARENT_POLICY_UNAVAILABLE.value


def test_normalize_is_idempotent_after_merging_parents() -> None:
    parents = {"http://example.com/policy/parent": _parent_policy()}
    once = normalize(_child_policy(), parents=parents)

    assert once.inherited == ("http://example.com/policy/parent",)
    assert normalize(once) == once
    assert normalize(once, parents=parents) == once
    assert normalize(once).unresolved_inheritance == ()
