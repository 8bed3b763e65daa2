from .collaborators import (
    UNAVAILABLE,
    UNKNOWN,
    BoundedOperandResolver,
    ContextSupplier,
    MappingOperandResolver,
    NullOperandResolver,
    OperandResolver,
    RequestContextSupplier,
)
from .config import (
    DEFAULT_DEREFERENCE_TIMEOUT_MS,
    DEFAULT_MAX_CONSTRAINT_DEPTH,
    DEFAULT_MAX_FALLBACK_DEPTH,
    EngineConfig,
)
from .duties import DutyLedger, consequences_of, record_fulfillment, transition
from .engine import (
    DecisionEngine,
    canonicalize_decision_payload,
    decide,
    decision_hash,
    triggered_duty,
)
from .errors import (
    DutyTransitionError,
    ExtensionRegistryError,
    ODRLError,
    ODRLErrorDetail,
    StructuralError,
)
from .evaluator import ConstraintEvaluator, combine_and, combine_or, combine_xone, evaluate
from .extensions import Combinator, OperatorEvaluator, ProfileExtensions
from .normalizer import normalize
from .validator import check_policy, require_valid, validate
from .vocabulary import ODRL_ACTION_PARENTS, action_includes

__all__ = [
    "BoundedOperandResolver",
    "Combinator",
    "ConstraintEvaluator",
    "ContextSupplier",
    "DEFAULT_DEREFERENCE_TIMEOUT_MS",
    "DEFAULT_MAX_CONSTRAINT_DEPTH",
    "DEFAULT_MAX_FALLBACK_DEPTH",
    "DecisionEngine",
    "DutyLedger",
    "DutyTransitionError",
    "EngineConfig",
    "ExtensionRegistryError",
    "MappingOperandResolver",
    "NullOperandResolver",
    "ODRLError",
    "ODRLErrorDetail",
    "ODRL_ACTION_PARENTS",
    "OperandResolver",
    "OperatorEvaluator",
    "ProfileExtensions",
    "RequestContextSupplier",
    "StructuralError",
    "UNAVAILABLE",
    "UNKNOWN",
    "action_includes",
    "canonicalize_decision_payload",
    "check_policy",
    "combine_and",
    "combine_or",
    "combine_xone",
    "consequences_of",
    "decide",
    "decision_hash",
    "evaluate",
    "normalize",
    "record_fulfillment",
    "require_valid",
    "transition",
    "triggered_duty",
    "validate",
]

__version__ = "0.1.0"
