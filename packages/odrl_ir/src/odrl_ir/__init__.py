from .decisions import (
    Decision,
    DecisionOutcome,
    DecisionReason,
    DutyState,
    DutyTrigger,
    FulfillmentRecord,
    Outcome,
    Request,
    TriggeredDuty,
)
from .ids import stable_id, stable_rule_id
from .models import (
    CORE_CONFLICT_STRATEGIES,
    CORE_LOGICAL_OPERATORS,
    CORE_OPERATORS,
    CORE_POLICY_TYPES,
    ORDERING_OPERATORS,
    RELATIONAL_OPERATORS,
    SET_OPERATORS,
    TAXONOMY_OPERATORS,
    Action,
    AtomicConstraint,
    Constraint,
    Duty,
    LogicalConstraint,
    Permission,
    Policy,
    Prohibition,
    Rule,
    compact_odrl_term,
)
from .normalized import (
    FALLBACK_SLOTS,
    SLOT_ROLES,
    NormalizedPolicy,
    NormalizedRule,
    RuleRole,
    RuleSlot,
)
from .reports import ValidationReport, Violation
from .violation_codes import BLOCKING_CODES, ViolationCode, ViolationSeverity

__all__ = [
    "Action",
    "AtomicConstraint",
    "BLOCKING_CODES",
    "CORE_CONFLICT_STRATEGIES",
    "CORE_LOGICAL_OPERATORS",
    "CORE_OPERATORS",
    "CORE_POLICY_TYPES",
    "Constraint",
    "Decision",
    "DecisionOutcome",
    "DecisionReason",
    "Duty",
    "DutyState",
    "DutyTrigger",
    "FALLBACK_SLOTS",
    "FulfillmentRecord",
    "LogicalConstraint",
    "NormalizedPolicy",
    "NormalizedRule",
    "ORDERING_OPERATORS",
    "Outcome",
    "Permission",
    "Policy",
    "Prohibition",
    "RELATIONAL_OPERATORS",
    "Request",
    "Rule",
    "RuleRole",
    "RuleSlot",
    "SET_OPERATORS",
    "SLOT_ROLES",
    "TAXONOMY_OPERATORS",
    "TriggeredDuty",
    "ValidationReport",
    "Violation",
    "ViolationCode",
    "ViolationSeverity",
    "compact_odrl_term",
    "stable_id",
    "stable_rule_id",
]

__version__ = "0.1.0"
