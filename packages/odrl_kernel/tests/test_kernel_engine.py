from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Any

from odrl_ir import DecisionOutcome, NormalizedPolicy, Request
from odrl_kernel import (
    canonicalize_decision_payload,
    decide,
    decision_hash,
    normalize,
)

TARGET = "http://example.com/asset/T"
ALICE = "http://example.com/party/A"
BOB = "http://example.com/party/B"


def _request(action: str = "use", **fields: Any) -> Request:
    return Request(action=action, target=TARGET, assignee=ALICE, **fields)


def _conflicting_policy(conflict: str) -> NormalizedPolicy:
    return normalize(
        {
            "uid": "http://example.com/policy/conflict",
            "conflict": conflict,
            "permission": [{"target": TARGET, "assignee": ALICE, "action": "use"}],
            "prohibition": [{"target": TARGET, "assignee": ALICE, "action": "use"}],
        }
    )


def _pay_first_policy(**duty: Any) -> NormalizedPolicy:
    return normalize(
        {
            "uid": "http://example.com/policy/pay",
            "permission": [
                {
                    "target": TARGET,
                    "assignee": ALICE,
                    "action": "use",
                    "duty": [{"action": "pay", **duty}],
                }
            ],
        }
    )


def test_conflict_under_invalid_strategy_is_undetermined() -> None:
    decision = decide(_conflicting_policy("invalid"), _request())

    assert decision.outcome is DecisionOutcome.UNDETERMINED
    assert decision.conflict
    assert decision.reason == "CONFLICT_UNRESOLVED"


def test_conflict_under_prohibit_strategy_is_denied() -> None:
    decision = decide(_conflicting_policy("prohibit"), _request())

    assert decision.outcome is DecisionOutcome.DENIED
    assert not decision.conflict
    assert decision.reason == "CONFLICT_PROHIBIT_OVERRIDE"


def test_conflict_under_perm_strategy_is_permitted() -> None:
    decision = decide(_conflicting_policy("perm"), _request())

    assert decision.outcome is DecisionOutcome.PERMITTED
    assert decision.reason == "CONFLICT_PERM_OVERRIDE"


def test_conflict_under_unknown_strategy_stays_undetermined() -> None:
    decision = decide(_conflicting_policy("ex:firstWins"), _request())

    assert decision.outcome is DecisionOutcome.UNDETERMINED
    assert decision.conflict


def test_pending_precondition_duty_is_reported() -> None:
    policy = _pay_first_policy()
    decision = decide(policy, _request())

    assert decision.outcome is DecisionOutcome.UNDETERMINED
    assert decision.reason == "PRECONDITION_PENDING"
    assert decision.obligation_actions == ["pay"]
    [duty] = decision.obligations
    assert duty.trigger == "precondition"
    assert duty.source_rule_id == policy.rules[0].rule_id

    fulfilled = decide(policy, _request(fulfilled_duties={duty.duty_id}))
    assert fulfilled.outcome is DecisionOutcome.PERMITTED
    assert fulfilled.obligations == []


def test_duty_with_violated_constraint_does_not_apply() -> None:
    policy = _pay_first_policy(
        constraint=[{"leftOperand": "purpose", "operator": "eq", "rightOperand": "commercial"}]
    )

    research = decide(policy, _request(operands={"purpose": "research"}))
    commercial = decide(policy, _request(operands={"purpose": "commercial"}))

    assert research.outcome is DecisionOutcome.PERMITTED
    assert commercial.outcome is DecisionOutcome.UNDETERMINED
    assert commercial.obligation_actions == ["pay"]


def test_closed_world_denies_without_a_permission() -> None:
    policy = _conflicting_policy("perm")

    other_target = decide(policy, Request(action="use", target="urn:other", assignee=ALICE))
    empty = decide(normalize({}), _request())

    assert other_target.outcome is DecisionOutcome.DENIED
    assert other_target.reason == "NO_APPLICABLE_PERMISSION"
    assert empty.outcome is DecisionOutcome.DENIED


def test_prohibition_surfaces_remedies() -> None:
    policy = normalize(
        {
            "prohibition": [
                {
                    "target": TARGET,
                    "action": "distribute",
                    "remedy": [{"action": "delete"}],
                }
            ],
        }
    )

    decision = decide(policy, _request("distribute"))

    assert decision.outcome is DecisionOutcome.DENIED
    assert decision.reason == "PROHIBITED"
    assert decision.obligation_actions == ["delete"]
    assert decision.obligations[0].trigger == "remedy"


def test_rules_without_parties_match_any_party() -> None:
    policy = normalize({"permission": [{"target": TARGET, "action": "use"}]})

    assert decide(policy, _request()).outcome is DecisionOutcome.PERMITTED
    assert decide(policy, Request(action="use", target=TARGET)).outcome is (
        DecisionOutcome.PERMITTED
    )


def test_assignee_scope_is_enforced() -> None:
    policy = normalize({"permission": [{"target": TARGET, "assignee": ALICE, "action": "use"}]})

    bob = decide(policy, Request(action="use", target=TARGET, assignee=BOB))

    assert bob.outcome is DecisionOutcome.DENIED


def test_action_hierarchy_includes_narrower_actions() -> None:
    policy = normalize({"permission": [{"target": TARGET, "action": "use"}]})

    assert decide(policy, _request("print")).outcome is DecisionOutcome.PERMITTED
    assert decide(policy, _request("odrl:play")).outcome is DecisionOutcome.PERMITTED
    assert decide(policy, _request("sell")).outcome is DecisionOutcome.DENIED


def test_action_refinements_narrow_the_permission() -> None:
    policy = normalize(
        {
            "permission": [
                {
                    "target": TARGET,
                    "action": [
                        {
                            "rdf:value": {"@id": "odrl:print"},
                            "refinement": [
                                {
                                    "leftOperand": "resolution",
                                    "operator": "lteq",
                                    "rightOperand": 1200,
                                    "unit": "http://dbpedia.org/resource/Dots_per_inch",
                                }
                            ],
                        }
                    ],
                }
            ]
        }
    )

    low = decide(policy, _request("print", operands={"resolution": 600}))
    high = decide(policy, _request("print", operands={"resolution": 2400}))
    unknown = decide(policy, _request("print"))

    assert low.outcome is DecisionOutcome.PERMITTED
    assert high.outcome is DecisionOutcome.DENIED
    assert unknown.outcome is DecisionOutcome.DENIED
    assert unknown.reason == "PERMISSION_INDETERMINATE"
    assert unknown.indeterminate == [policy.rules[0].rule_id]


def test_permission_constraints_gate_the_decision() -> None:
    policy = normalize(
        {
            "permission": [
                {
                    "target": TARGET,
                    "action": "use",
                    "constraint": [{"leftOperand": "count", "operator": "lteq", "rightOperand": 5}],
                }
            ]
        }
    )

    assert decide(policy, _request(operands={"count": 3})).outcome is DecisionOutcome.PERMITTED
    assert decide(policy, _request(operands={"count": 9})).outcome is DecisionOutcome.DENIED

    missing = decide(policy, _request())
    assert missing.outcome is DecisionOutcome.DENIED
    assert missing.reason == "PERMISSION_INDETERMINATE"
    assert missing.indeterminate == [policy.rules[0].rule_id]
    assert decide(policy, _request(operands={"count": 9})).reason == "NO_APPLICABLE_PERMISSION"


def test_indeterminate_prohibition_blocks_permit_unless_perm() -> None:
    payload = {
        "permission": [{"target": TARGET, "action": "use"}],
        "prohibition": [
            {
                "target": TARGET,
                "action": "use",
                "constraint": [{"leftOperand": "spatial", "operator": "eq", "rightOperand": "US"}],
            }
        ],
    }

    blocked = decide(normalize(payload), _request())
    overridden = decide(normalize({**payload, "conflict": "perm"}), _request())

    assert blocked.outcome is DecisionOutcome.UNDETERMINED
    assert blocked.reason == "PROHIBITION_INDETERMINATE"
    assert overridden.outcome is DecisionOutcome.PERMITTED


def test_pending_permit_against_prohibition() -> None:
    payload = {
        "permission": [{"target": TARGET, "action": "use", "duty": [{"action": "pay"}]}],
        "prohibition": [{"target": TARGET, "action": "use"}],
    }

    perm = decide(normalize({**payload, "conflict": "perm"}), _request())
    prohibit = decide(normalize({**payload, "conflict": "prohibit"}), _request())

    assert perm.outcome is DecisionOutcome.UNDETERMINED
    assert perm.reason == "PRECONDITION_PENDING"
    assert prohibit.outcome is DecisionOutcome.DENIED


def test_standing_obligations_follow_the_assignee() -> None:
    policy = normalize(
        {
            "permission": [{"target": TARGET, "action": "use"}],
            "obligation": [{"assignee": ALICE, "action": "attribute"}],
        }
    )

    alice = decide(policy, _request())
    bob = decide(policy, Request(action="use", target=TARGET, assignee=BOB))

    assert alice.outcome is DecisionOutcome.PERMITTED
    assert alice.obligation_actions == ["attribute"]
    assert alice.obligations[0].trigger == "obligation"
    assert bob.obligations == []


def test_decide_accepts_request_mappings() -> None:
    policy = normalize({"permission": [{"target": TARGET, "action": "use"}]})

    decision = decide(policy, {"action": "odrl:use", "target": TARGET})

    assert decision.outcome is DecisionOutcome.PERMITTED


def test_decision_hash_is_stable() -> None:
    policy = _pay_first_policy()
    first = decide(policy, _request())
    second = decide(policy, _request())

    assert decision_hash(first) == decision_hash(second)
    assert canonicalize_decision_payload(first)["outcome"] == "Undetermined"
    assert decision_hash(first) != decision_hash(decide(_conflicting_policy("perm"), _request()))


def test_decision_hash_ignores_key_order() -> None:
    decision = decide(_pay_first_policy(), _request())
    payload = canonicalize_decision_payload(decision)
    reordered = dict(reversed(list(payload.items())))

    assert decision_hash(reordered) == decision_hash(decision)
    assert len(decision_hash(decision)) == 64


def test_concurrent_decisions_match_serial_ones() -> None:
    policy = normalize(
        {
            "permission": [
                {
                    "target": TARGET,
                    "action": "use",
                    "constraint": [{"leftOperand": "count", "operator": "lteq", "rightOperand": 5}],
                }
            ]
        }
    )
    requests = [_request(operands={"count": count % 10}) for count in range(50)]
    serial = [decide(policy, request) for request in requests]

    with ThreadPoolExecutor(max_workers=8) as pool:
        parallel = list(pool.map(lambda request: decide(policy, request), requests))

    assert parallel == serial
