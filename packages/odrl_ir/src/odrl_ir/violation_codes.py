from __future__ import annotations

from enum import Enum


class ViolationSeverity(str, Enum):
    ERROR = "ERROR"
    WARN = "WARN"


class ViolationCode(str, Enum):
    # structural, blocking
    RIGHT_OPERAND_MISSING = "RIGHT_OPERAND_MISSING"
    RIGHT_OPERAND_CONFLICT = "RIGHT_OPERAND_CONFLICT"
    LOGICAL_CONSTRAINT_EMPTY = "LOGICAL_CONSTRAINT_EMPTY"
    ACTION_MISSING = "ACTION_MISSING"
    FALLBACK_DEPTH_EXCEEDED = "FALLBACK_DEPTH_EXCEEDED"
    CONSTRAINT_DEPTH_EXCEEDED = "CONSTRAINT_DEPTH_EXCEEDED"
    INHERITANCE_CYCLE = "INHERITANCE_CYCLE"
    PARENT_POLICY_UNAVAILABLE = "PARENT_POLICY_UNAVAILABLE"

    # extension pass-through markers, non-blocking
    CONFLICT_STRATEGY_UNRESOLVED = "CONFLICT_STRATEGY_UNRESOLVED"
    POLICY_TYPE_UNRECOGNIZED = "POLICY_TYPE_UNRECOGNIZED"
    OPERATOR_UNSUPPORTED = "OPERATOR_UNSUPPORTED"
    LOGICAL_OPERATOR_UNSUPPORTED = "LOGICAL_OPERATOR_UNSUPPORTED"
    PROFILE_UNDECLARED = "PROFILE_UNDECLARED"
    INHERITANCE_UNRESOLVED = "INHERITANCE_UNRESOLVED"
    DUPLICATE_RULE_UID = "DUPLICATE_RULE_UID"


BLOCKING_CODES = frozenset(
    {
        ViolationCode.RIGHT_OPERAND_MISSING,
        ViolationCode.RIGHT_OPERAND_CONFLICT,
        ViolationCode.LOGICAL_CONSTRAINT_EMPTY,
        ViolationCode.ACTION_MISSING,
        ViolationCode.FALLBACK_DEPTH_EXCEEDED,
        ViolationCode.CONSTRAINT_DEPTH_EXCEEDED,
        ViolationCode.INHERITANCE_CYCLE,
        ViolationCode.PARENT_POLICY_UNAVAILABLE,
    }
)
