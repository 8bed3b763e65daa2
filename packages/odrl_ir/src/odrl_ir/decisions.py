from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import compact_odrl_term


class Outcome(str, Enum):
    SATISFIED = "Satisfied"
    VIOLATED = "Violated"
    INDETERMINATE = "Indeterminate"


class DecisionOutcome(str, Enum):
    PERMITTED = "Permitted"
    DENIED = "Denied"
    UNDETERMINED = "Undetermined"


class DutyState(str, Enum):
    PENDING = "Pending"
    FULFILLED = "Fulfilled"
    LAPSED = "Lapsed"
    CONSEQUENCE_TRIGGERED = "ConsequenceTriggered"


DecisionReason = Literal[
    "PERMITTED",
    "PROHIBITED",
    "NO_APPLICABLE_PERMISSION",
    "PRECONDITION_PENDING",
    "PROHIBITION_INDETERMINATE",
    "PERMISSION_INDETERMINATE",
    "CONFLICT_PERM_OVERRIDE",
    "CONFLICT_PROHIBIT_OVERRIDE",
    "CONFLICT_UNRESOLVED",
]

DutyTrigger = Literal["precondition", "remedy", "obligation", "consequence"]


class Request(BaseModel):
    """A concrete attempt to exercise an action; `operands` feeds leftOperand lookups."""

    model_config = ConfigDict(extra="forbid")

    action: str
    assignee: Optional[str] = None
    assigner: Optional[str] = None
    target: Optional[str] = None
    operands: dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[datetime] = None
    fulfilled_duties: frozenset[str] = Field(default_factory=frozenset)

    @field_validator("action", mode="before")
    @classmethod
    def _compact_action(cls, value: Any) -> Any:
        return compact_odrl_term(value)

    @field_validator("operands", mode="before")
    @classmethod
    def _compact_operand_names(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        return {compact_odrl_term(key): item for key, item in value.items()}


class TriggeredDuty(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    duty_id: str
    rule_index: int
    trigger: DutyTrigger
    source_rule_id: Optional[str] = None
    actions: tuple[str, ...] = ()
    target: Optional[tuple[str, ...]] = None
    assignee: Optional[tuple[str, ...]] = None
    state: DutyState = DutyState.PENDING


class Decision(BaseModel):
    model_config = ConfigDict(extra="forbid")

    outcome: DecisionOutcome
    reason: DecisionReason
    conflict: bool = False
    policy_uid: Optional[str] = None
    obligations: list[TriggeredDuty] = Field(default_factory=list)
    permissions: list[str] = Field(default_factory=list)
    prohibitions: list[str] = Field(default_factory=list)
    indeterminate: list[str] = Field(default_factory=list)

    @property
    def obligation_actions(self) -> list[str]:
        return [action for duty in self.obligations for action in duty.actions]


class FulfillmentRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    duty_id: str
    state: DutyState
    fulfilled_at: Optional[datetime] = None
    deadline: Optional[datetime] = None
    activated: list[TriggeredDuty] = Field(default_factory=list)
    contingent: list[TriggeredDuty] = Field(default_factory=list)
