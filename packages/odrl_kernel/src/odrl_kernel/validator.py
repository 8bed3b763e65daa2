from __future__ import annotations

from collections import Counter
from collections.abc import Iterator

from odrl_ir import (
    CORE_LOGICAL_OPERATORS,
    CORE_OPERATORS,
    TAXONOMY_OPERATORS,
    AtomicConstraint,
    Constraint,
    NormalizedPolicy,
    NormalizedRule,
    ValidationReport,
    Violation,
    ViolationCode,
    ViolationSeverity,
)

from .config import EngineConfig
from .errors import StructuralError
from .extensions import ProfileExtensions


def _path(*parts: str | int) -> str:
    return "/" + "/".join(str(part).strip("/") for part in parts)


def _error(
    code: ViolationCode,
    message: str,
    *,
    rule: NormalizedRule | None = None,
    json_path: str | None = None,
) -> Violation:
    return Violation(
        code=code,
        severity=ViolationSeverity.ERROR,
        message=message,
        rule_index=rule.index if rule is not None else None,
        rule_id=rule.rule_id if rule is not None else None,
        json_path=json_path,
    )


def _notice(
    code: ViolationCode,
    message: str,
    *,
    rule: NormalizedRule | None = None,
    json_path: str | None = None,
) -> Violation:
    return Violation(
        code=code,
        severity=ViolationSeverity.WARN,
        message=message,
        rule_index=rule.index if rule is not None else None,
        rule_id=rule.rule_id if rule is not None else None,
        json_path=json_path,
    )


def _walk_constraints(rule: NormalizedRule) -> Iterator[tuple[Constraint, str, int]]:
    """Yield every constraint of a rule (refinements included) with path and nesting depth."""
    stack: list[tuple[Constraint, str, int]] = []
    for position in range(len(rule.constraint) - 1, -1, -1):
        stack.append(
            (
                rule.constraint[position],
                _path("rules", rule.index, "constraint", position),
                1,
            )
        )
    for action_position in range(len(rule.action) - 1, -1, -1):
        refinement = rule.action[action_position].refinement
        for position in range(len(refinement) - 1, -1, -1):
            stack.append(
                (
                    refinement[position],
                    _path("rules", rule.index, "action", action_position, "refinement", position),
                    1,
                )
            )
    while stack:
        constraint, path, depth = stack.pop()
        yield constraint, path, depth
        if isinstance(constraint, AtomicConstraint):
            continue
        for position in range(len(constraint.constraints) - 1, -1, -1):
            stack.append(
                (
                    constraint.constraints[position],
                    _path(path, constraint.operator, position),
                    depth + 1,
                )
            )


def _rule_violations(rule: NormalizedRule, config: EngineConfig) -> list[Violation]:
    violations: list[Violation] = []
    if not rule.action:
        violations.append(
            _error(
                ViolationCode.ACTION_MISSING,
                f"{rule.role} declares no action and none is inherited",
                rule=rule,
                json_path=_path("rules", rule.index, "action"),
            )
        )
    if rule.depth > config.max_fallback_depth:
        violations.append(
            _error(
                ViolationCode.FALLBACK_DEPTH_EXCEEDED,
                f"fallback chain depth {rule.depth} exceeds cap {config.max_fallback_depth}",
                rule=rule,
                json_path=_path("rules", rule.index),
            )
        )
    for constraint, path, depth in _walk_constraints(rule):
        if depth > config.max_constraint_depth:
            violations.append(
                _error(
                    ViolationCode.CONSTRAINT_DEPTH_EXCEEDED,
                    f"constraint nesting {depth} exceeds cap {config.max_constraint_depth}",
                    rule=rule,
                    json_path=path,
                )
            )
            continue
        if isinstance(constraint, AtomicConstraint):
            if constraint.has_right_operand and constraint.has_right_operand_reference:
                violations.append(
                    _error(
                        ViolationCode.RIGHT_OPERAND_CONFLICT,
                        "rightOperand and rightOperandReference are mutually exclusive",
                        rule=rule,
                        json_path=path,
                    )
                )
            elif not constraint.has_right_operand and not constraint.has_right_operand_reference:
                violations.append(
                    _error(
                        ViolationCode.RIGHT_OPERAND_MISSING,
                        "constraint needs rightOperand or rightOperandReference",
                        rule=rule,
                        json_path=path,
                    )
                )
        elif not constraint.constraints:
            violations.append(
                _error(
                    ViolationCode.LOGICAL_CONSTRAINT_EMPTY,
                    f"logical constraint {constraint.operator!r} has no members",
                    rule=rule,
                    json_path=path,
                )
            )
    return violations


def validate(
    policy: NormalizedPolicy,
    *,
    config: EngineConfig | None = None,
) -> list[Violation]:
    """Blocking structural violations; an empty list means the policy is valid."""
    config = config or EngineConfig()
    violations: list[Violation] = []
    for rule in policy.rules:
        violations.extend(_rule_violations(rule, config))
    return violations


def _rule_notices(
    rule: NormalizedRule,
    *,
    extensions: ProfileExtensions,
    has_profile: bool,
    config: EngineConfig,
) -> list[Violation]:
    notices: list[Violation] = []
    for constraint, path, depth in _walk_constraints(rule):
        if depth > config.max_constraint_depth:
            continue
        if isinstance(constraint, AtomicConstraint):
            operator = constraint.operator
            registered = extensions.operator(operator) is not None
            if operator in TAXONOMY_OPERATORS and not registered:
                notices.append(
                    _notice(
                        ViolationCode.OPERATOR_UNSUPPORTED,
                        f"operator {operator!r} needs a profile evaluator; evaluates Indeterminate",
                        rule=rule,
                        json_path=path,
                    )
                )
            elif operator not in CORE_OPERATORS:
                if not registered:
                    notices.append(
                        _notice(
                            ViolationCode.OPERATOR_UNSUPPORTED,
                            f"operator {operator!r} is not registered and will be Indeterminate",
                            rule=rule,
                            json_path=path,
                        )
                    )
                if not has_profile:
                    notices.append(
                        _notice(
                            ViolationCode.PROFILE_UNDECLARED,
                            f"operator {operator!r} is not core ODRL and no profile is declared",
                            rule=rule,
                            json_path=path,
                        )
                    )
            continue
        operator = constraint.operator
        if operator in CORE_LOGICAL_OPERATORS:
            continue
        if extensions.combinator(operator) is None:
            notices.append(
                _notice(
                    ViolationCode.LOGICAL_OPERATOR_UNSUPPORTED,
                    f"logical operator {operator!r} is not registered and will be Indeterminate",
                    rule=rule,
                    json_path=path,
                )
            )
        if not has_profile:
            notices.append(
                _notice(
                    ViolationCode.PROFILE_UNDECLARED,
                    f"logical operator {operator!r} is not core ODRL and no profile is declared",
                    rule=rule,
                    json_path=path,
                )
            )
    return notices


def _policy_notices(policy: NormalizedPolicy) -> list[Violation]:
    notices: list[Violation] = []
    if not policy.conflict_resolved:
        notices.append(
            _notice(
                ViolationCode.CONFLICT_STRATEGY_UNRESOLVED,
                f"conflict strategy {policy.conflict!r} is not perm, prohibit or invalid; "
                "conflicts will stay Undetermined",
                json_path=_path("conflict"),
            )
        )
    if not policy.policy_type_recognized:
        notices.append(
            _notice(
                ViolationCode.POLICY_TYPE_UNRECOGNIZED,
                f"policy type {policy.policy_type!r} is not Set, Offer or Agreement",
                json_path=_path("@type"),
            )
        )
    for iri in policy.unresolved_inheritance:
        notices.append(
            _notice(
                ViolationCode.INHERITANCE_UNRESOLVED,
                f"inheritFrom {iri} was not merged",
                json_path=_path("inheritFrom"),
            )
        )
    uid_counts = Counter(rule.uid for rule in policy.rules if rule.uid is not None)
    for uid in sorted(uid for uid, count in uid_counts.items() if count > 1):
        notices.append(
            _notice(
                ViolationCode.DUPLICATE_RULE_UID,
                f"rule uid {uid} is declared {uid_counts[uid]} times",
            )
        )
    return notices


def check_policy(
    policy: NormalizedPolicy,
    *,
    config: EngineConfig | None = None,
    extensions: ProfileExtensions | None = None,
) -> ValidationReport:
    config = config or EngineConfig()
    extensions = extensions or ProfileExtensions()
    has_profile = bool(policy.profile) or bool(extensions.profiles)
    violations = validate(policy, config=config)
    notices = _policy_notices(policy)
    for rule in policy.rules:
        notices.extend(
            _rule_notices(rule, extensions=extensions, has_profile=has_profile, config=config)
        )
    if violations:
        status = "REFUSE"
    elif notices:
        status = "WARN"
    else:
        status = "PASS"
    return ValidationReport(status=status, violations=violations, notices=notices)


def require_valid(
    policy: NormalizedPolicy,
    *,
    config: EngineConfig | None = None,
) -> NormalizedPolicy:
    violations = validate(policy, config=config)
    if violations:
        first = violations[0]
        raise StructuralError(
            code=first.code.value,
            message=f"policy has {len(violations)} structural violation(s): {first.message}",
            violations=violations,
            context={"policy_uid": policy.uid},
        )
    return policy
