from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Union

from odrl_ir import (
    FALLBACK_SLOTS,
    SLOT_ROLES,
    Duty,
    NormalizedPolicy,
    NormalizedRule,
    Permission,
    Policy,
    Prohibition,
    Violation,
    ViolationCode,
    ViolationSeverity,
    stable_rule_id,
)
from odrl_ir.models import as_list
from pydantic import ValidationError

from .config import EngineConfig
from .errors import StructuralError

logger = logging.getLogger(__name__)

PolicyInput = Union[Policy, NormalizedPolicy, Mapping[str, Any]]

_SHARED_FIELDS = ("assigner", "assignee", "target", "action")
_RULE_GROUPS = ("permission", "prohibition", "obligation")
_RAW_FALLBACK_SLOTS = ("duty", "remedy", "consequence")
_LOGICAL_METADATA_KEYS = frozenset({"uid", "@id", "@type"})

# (rule, slot, parent index, depth, inherited shared values, json path)
_WorkItem = tuple[
    Union[Permission, Prohibition, Duty], str, Union[int, None], int, Mapping[str, Any], str
]


def _logical_members(raw: Mapping[str, Any]) -> list[Any] | None:
    """Members of a raw logical constraint, or None for an atomic one."""
    if "leftOperand" in raw or "left_operand" in raw:
        return None
    if "constraints" in raw:
        return as_list(raw["constraints"]) or []
    keys = [key for key in raw if key not in _LOGICAL_METADATA_KEYS]
    if len(keys) != 1:
        return None
    members = raw[keys[0]]
    if isinstance(members, Mapping) and "@list" in members:
        members = members["@list"]
    return as_list(members) or []


def _raw_constraint_roots(raw: Mapping[str, Any], path: str) -> list[tuple[Any, str]]:
    roots = [
        (constraint, f"{path}/constraint/{position}")
        for position, constraint in enumerate(as_list(raw.get("constraint")) or [])
    ]
    for action_position, action in enumerate(as_list(raw.get("action")) or []):
        if not isinstance(action, Mapping):
            continue
        for position, refinement in enumerate(as_list(action.get("refinement")) or []):
            roots.append(
                (refinement, f"{path}/action/{action_position}/refinement/{position}")
            )
    return roots


def _check_constraint_depth(
    roots: list[tuple[Any, str]],
    *,
    max_depth: int,
) -> None:
    stack = [(constraint, path, 1) for constraint, path in roots]
    while stack:
        constraint, path, depth = stack.pop()
        if not isinstance(constraint, Mapping):
            continue
        if depth > max_depth:
            raise _constraint_depth_error(depth=depth, max_depth=max_depth, path=path)
        members = _logical_members(constraint)
        if not members:
            continue
        if "constraints" in constraint:
            operator = constraint.get("operator", "constraints")
        else:
            operator = next(key for key in constraint if key not in _LOGICAL_METADATA_KEYS)
        for position, member in enumerate(members):
            stack.append((member, f"{path}/{operator}/{position}", depth + 1))


def _check_document_depth(raw: Mapping[str, Any], config: EngineConfig) -> None:
    """Bound fallback and constraint nesting before the document is parsed.

    Parsing builds the nested models recursively, so an unbounded document must
    be refused here with the same errors the arena walk would report.
    """
    _check_constraint_depth(
        _raw_constraint_roots(raw, ""), max_depth=config.max_constraint_depth
    )
    stack: list[tuple[Any, str, int, str]] = []
    for slot in _RULE_GROUPS:
        for position, rule in enumerate(as_list(raw.get(slot)) or []):
            stack.append((rule, slot, 0, f"/{slot}/{position}"))
    while stack:
        rule, slot, depth, path = stack.pop()
        if not isinstance(rule, Mapping):
            continue
        if depth > config.max_fallback_depth:
            raise _depth_error(
                slot=slot, depth=depth, max_depth=config.max_fallback_depth, path=path
            )
        _check_constraint_depth(
            _raw_constraint_roots(rule, path), max_depth=config.max_constraint_depth
        )
        for child_slot in _RAW_FALLBACK_SLOTS:
            for position, child in enumerate(as_list(rule.get(child_slot)) or []):
                stack.append((child, child_slot, depth + 1, f"{path}/{child_slot}/{position}"))


def _coerce_policy(value: PolicyInput, config: EngineConfig) -> Policy:
    if isinstance(value, Policy):
        return value
    if isinstance(value, NormalizedPolicy):
        return value.to_policy()
    raw = dict(value)
    _check_document_depth(raw, config)
    try:
        return Policy.model_validate(raw)
    except ValidationError as exc:
        if any(error["type"] == "recursion_loop" for error in exc.errors()):
            raise StructuralError(
                code=ViolationCode.CONSTRAINT_DEPTH_EXCEEDED.value,
                message="policy document is nested too deeply to parse",
                violations=[
                    Violation(
                        code=ViolationCode.CONSTRAINT_DEPTH_EXCEEDED,
                        severity=ViolationSeverity.ERROR,
                        message="policy document is nested too deeply to parse",
                    )
                ],
                context={"uid": raw.get("uid") or raw.get("@id")},
            ) from exc
        raise


def _shared_values(source: Policy | Permission | Prohibition | Duty) -> dict[str, Any]:
    return {name: getattr(source, name) for name in _SHARED_FIELDS}


def _resolve_shared(
    rule: Permission | Prohibition | Duty,
    inherited: Mapping[str, Any],
) -> dict[str, Any]:
    resolved: dict[str, Any] = {}
    for name in _SHARED_FIELDS:
        own = getattr(rule, name)
        resolved[name] = own if own is not None else inherited.get(name)
    return resolved


def _fallback_duties(rule: Permission | Prohibition | Duty) -> list[Duty]:
    if isinstance(rule, Permission):
        return rule.duty
    if isinstance(rule, Prohibition):
        return rule.remedy
    return rule.consequence


def _rule_extras(rule: Permission | Prohibition | Duty) -> dict[str, Any]:
    extras = dict(rule.model_extra or {})
    if isinstance(rule, Duty) and rule.type is not None:
        extras["@type"] = rule.type
    return extras


def _depth_error(*, slot: str, depth: int, max_depth: int, path: str) -> StructuralError:
    violation = Violation(
        code=ViolationCode.FALLBACK_DEPTH_EXCEEDED,
        severity=ViolationSeverity.ERROR,
        message=f"fallback chain depth {depth} exceeds cap {max_depth}",
        json_path=path,
    )
    return StructuralError(
        code=ViolationCode.FALLBACK_DEPTH_EXCEEDED.value,
        message=violation.message,
        violations=[violation],
        context={"slot": slot, "depth": depth, "max_depth": max_depth},
    )


def _constraint_depth_error(*, depth: int, max_depth: int, path: str) -> StructuralError:
    violation = Violation(
        code=ViolationCode.CONSTRAINT_DEPTH_EXCEEDED,
        severity=ViolationSeverity.ERROR,
        message=f"constraint nesting {depth} exceeds cap {max_depth}",
        json_path=path,
    )
    return StructuralError(
        code=ViolationCode.CONSTRAINT_DEPTH_EXCEEDED.value,
        message=violation.message,
        violations=[violation],
        context={"depth": depth, "max_depth": max_depth},
    )


def _expand_rule_tree(
    root: Permission | Prohibition | Duty,
    *,
    slot: str,
    defaults: Mapping[str, Any],
    records: list[dict[str, Any]],
    policy_uid: str | None,
    root_path: str,
    max_depth: int,
) -> int:
    """Append `root` and its fallback duties to `records` in pre-order.

    Each duty inherits from its parent rule's resolved values. A work stack and
    explicit depth counter bound the walk regardless of input nesting.
    """
    root_index = len(records)
    stack: list[_WorkItem] = [(root, slot, None, 0, defaults, root_path)]
    while stack:
        rule, rule_slot, parent, depth, inherited, path = stack.pop()
        if depth > max_depth:
            raise _depth_error(slot=rule_slot, depth=depth, max_depth=max_depth, path=path)

        index = len(records)
        role = SLOT_ROLES[rule_slot]
        resolved = _resolve_shared(rule, inherited)
        records.append(
            {
                "index": index,
                "rule_id": rule.uid
                or stable_rule_id(policy_uid=policy_uid, slot=rule_slot, index=index),
                "uid": rule.uid,
                "role": role,
                "slot": rule_slot,
                "parent": parent,
                "depth": depth,
                "assigner": resolved["assigner"],
                "assignee": resolved["assignee"],
                "target": resolved["target"],
                "action": [action.model_copy(deep=True) for action in resolved["action"] or []],
                "constraint": [constraint.model_copy(deep=True) for constraint in rule.constraint],
                "fallback": [],
                "extras": _rule_extras(rule),
            }
        )
        if parent is not None:
            records[parent]["fallback"].append(index)

        child_slot = FALLBACK_SLOTS[role]
        children = _fallback_duties(rule)
        for position in range(len(children) - 1, -1, -1):
            stack.append(
                (
                    children[position],
                    child_slot,
                    index,
                    depth + 1,
                    resolved,
                    f"{path}/{child_slot}/{position}",
                )
            )
    return root_index


def _inheritance_chain(
    policy: Policy,
    parents: Mapping[str, PolicyInput],
    config: EngineConfig,
) -> tuple[list[Policy], list[str]]:
    """Ancestors first, in declaration order, then `policy` itself."""
    ordered: list[Policy] = []
    merged: list[str] = []
    loaded: dict[str, Policy] = {}
    state: dict[str, str] = {}
    if policy.uid:
        state[policy.uid] = "visiting"

    stack: list[tuple[str, bool]] = [(iri, False) for iri in reversed(policy.inherit_from or [])]
    while stack:
        iri, expanded = stack.pop()
        if expanded:
            state[iri] = "done"
            ordered.append(loaded[iri])
            merged.append(iri)
            continue
        if state.get(iri) == "done":
            continue
        if state.get(iri) == "visiting":
            violation = Violation(
                code=ViolationCode.INHERITANCE_CYCLE,
                severity=ViolationSeverity.ERROR,
                message=f"inheritFrom cycle through {iri}",
                json_path="/inheritFrom",
            )
            raise StructuralError(
                code=ViolationCode.INHERITANCE_CYCLE.value,
                message=violation.message,
                violations=[violation],
                context={"iri": iri},
            )
        raw_parent = parents.get(iri)
        if raw_parent is None:
            violation = Violation(
                code=ViolationCode.PARENT_POLICY_UNAVAILABLE,
                severity=ViolationSeverity.ERROR,
                message=f"parent policy {iri} is not available",
                json_path="/inheritFrom",
            )
            raise StructuralError(
                code=ViolationCode.PARENT_POLICY_UNAVAILABLE.value,
                message=violation.message,
                violations=[violation],
                context={"iri": iri},
            )
        parent = _coerce_policy(raw_parent, config)
        loaded[iri] = parent
        state[iri] = "visiting"
        stack.append((iri, True))
        for grandparent in reversed(parent.inherit_from or []):
            stack.append((grandparent, False))

    ordered.append(policy)
    return ordered, merged


def normalize(
    policy: PolicyInput,
    *,
    config: EngineConfig | None = None,
    parents: Mapping[str, PolicyInput] | None = None,
) -> NormalizedPolicy:
    """Expand compact notation into a flat arena of self-contained rules.

    Rule groups may be declared singular or as lists; all three come out as
    index sequences. With `parents`, `inheritFrom` policies are merged ahead of
    the policy's own rules, each resolved against its own shared fields. A
    normalized policy keeps the parents already merged into its arena, so
    normalizing it again is a no-op.
    """
    config = config or EngineConfig()
    declared: tuple[str, ...] = ()
    already_merged: tuple[str, ...] = ()
    if isinstance(policy, NormalizedPolicy):
        declared, already_merged = policy.inherit_from, policy.inherited
    source = _coerce_policy(policy, config)
    if parents is not None and source.inherit_from:
        chain, merged = _inheritance_chain(source, parents, config)
    else:
        chain, merged = [source], []

    records: list[dict[str, Any]] = []
    groups: dict[str, list[int]] = {slot: [] for slot in _RULE_GROUPS}
    for slot in _RULE_GROUPS:
        for member_position, member in enumerate(chain):
            defaults = _shared_values(member)
            prefix = "" if member is source else f"/inheritFrom/{member_position}"
            for position, rule in enumerate(getattr(member, slot)):
                groups[slot].append(
                    _expand_rule_tree(
                        rule,
                        slot=slot,
                        defaults=defaults,
                        records=records,
                        policy_uid=source.uid,
                        root_path=f"{prefix}/{slot}/{position}",
                        max_depth=config.max_fallback_depth,
                    )
                )

    rules = tuple(
        NormalizedRule.model_validate(
            {
                **record,
                "assigner": None if record["assigner"] is None else tuple(record["assigner"]),
                "assignee": None if record["assignee"] is None else tuple(record["assignee"]),
                "target": None if record["target"] is None else tuple(record["target"]),
                "action": tuple(record["action"]),
                "constraint": tuple(record["constraint"]),
                "fallback": tuple(record["fallback"]),
            }
        )
        for record in records
    )
    normalized = NormalizedPolicy(
        uid=source.uid,
        policy_type=source.type,
        conflict=source.conflict,
        context=source.context,
        profile=tuple(source.profile or ()),
        inherit_from=declared or tuple(source.inherit_from or ()),
        inherited=already_merged + tuple(iri for iri in merged if iri not in already_merged),
        extras=dict(source.model_extra or {}),
        rules=rules,
        permissions=tuple(groups["permission"]),
        prohibitions=tuple(groups["prohibition"]),
        obligations=tuple(groups["obligation"]),
    )
    logger.debug(
        "normalized policy %s into %d rules (%d inherited policies)",
        source.uid,
        len(rules),
        len(merged),
    )
    return normalized
