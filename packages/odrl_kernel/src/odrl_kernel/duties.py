from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from datetime import datetime, timezone

from odrl_ir import (
    DutyState,
    FulfillmentRecord,
    NormalizedPolicy,
    NormalizedRule,
    TriggeredDuty,
)

from .engine import triggered_duty
from .errors import DutyTransitionError

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS: dict[DutyState, frozenset[DutyState]] = {
    DutyState.PENDING: frozenset({DutyState.FULFILLED, DutyState.LAPSED}),
    DutyState.LAPSED: frozenset({DutyState.CONSEQUENCE_TRIGGERED}),
    DutyState.FULFILLED: frozenset(),
    DutyState.CONSEQUENCE_TRIGGERED: frozenset(),
}


def transition(current: DutyState, target: DutyState) -> DutyState:
    if target not in _ALLOWED_TRANSITIONS[current]:
        raise DutyTransitionError(
            code="ODRL_DUTY_TRANSITION_INVALID",
            message=f"duty cannot move from {current.value} to {target.value}",
            context={"from": current.value, "to": target.value},
        )
    return target


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _duty(policy: NormalizedPolicy, duty_id: str) -> NormalizedRule:
    duty = policy.find(duty_id)
    if duty is None or duty.role != "duty":
        raise DutyTransitionError(
            code="ODRL_DUTY_UNKNOWN",
            message=f"policy has no duty {duty_id}",
            context={"duty_id": duty_id, "policy_uid": policy.uid},
        )
    return duty


def consequences_of(policy: NormalizedPolicy, duty_id: str) -> list[TriggeredDuty]:
    duty = _duty(policy, duty_id)
    return [
        triggered_duty(consequence, trigger="consequence", source=duty)
        for consequence in policy.fallbacks(duty)
    ]


def record_fulfillment(
    policy: NormalizedPolicy,
    duty_id: str,
    *,
    fulfilled_at: datetime | None,
    deadline: datetime | None = None,
    now: datetime | None = None,
) -> FulfillmentRecord:
    """Settle a pending duty against a caller-supplied deadline.

    Fulfilled on or before the deadline (or with no deadline) ends Fulfilled.
    Fulfilled late, or unfulfilled once the deadline has passed, lapses and
    activates the duty's consequences. Otherwise the duty stays Pending and the
    consequences are returned as contingent.
    """
    duty = _duty(policy, duty_id)
    consequences = consequences_of(policy, duty.rule_id)
    current_time = _as_utc(now) if now is not None else datetime.now(tz=timezone.utc)
    resolved_deadline = _as_utc(deadline) if deadline is not None else None
    resolved_fulfilled_at = _as_utc(fulfilled_at) if fulfilled_at is not None else None

    if resolved_fulfilled_at is not None and (
        resolved_deadline is None or resolved_fulfilled_at <= resolved_deadline
    ):
        state = transition(DutyState.PENDING, DutyState.FULFILLED)
        activated: list[TriggeredDuty] = []
        contingent: list[TriggeredDuty] = []
    elif resolved_deadline is not None and (
        resolved_fulfilled_at is not None or current_time > resolved_deadline
    ):
        state = transition(
            transition(DutyState.PENDING, DutyState.LAPSED),
            DutyState.CONSEQUENCE_TRIGGERED,
        )
        activated = consequences
        contingent = []
        logger.debug("duty %s lapsed; %d consequence(s) activated", duty_id, len(activated))
    else:
        state = DutyState.PENDING
        activated = []
        contingent = consequences

    return FulfillmentRecord(
        duty_id=duty.rule_id,
        state=state,
        fulfilled_at=resolved_fulfilled_at,
        deadline=resolved_deadline,
        activated=activated,
        contingent=contingent,
    )


class DutyLedger:
    """Caller-owned duty state across decide calls; one mutator per duty id at a time."""

    def __init__(self, policy: NormalizedPolicy) -> None:
        self._policy = policy
        self._states: dict[str, DutyState] = {}
        self._duty_locks: dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

    def _lock_for(self, duty_id: str) -> threading.Lock:
        with self._lock:
            lock = self._duty_locks.get(duty_id)
            if lock is None:
                lock = threading.Lock()
                self._duty_locks[duty_id] = lock
            return lock

    def track(self, duties: Iterable[TriggeredDuty]) -> None:
        for duty in duties:
            with self._lock_for(duty.duty_id):
                self._states.setdefault(duty.duty_id, DutyState.PENDING)

    def state(self, duty_id: str) -> DutyState | None:
        with self._lock_for(duty_id):
            return self._states.get(duty_id)

    def fulfilled(self) -> frozenset[str]:
        with self._lock:
            snapshot = dict(self._states)
        return frozenset(
            duty_id for duty_id, state in snapshot.items() if state is DutyState.FULFILLED
        )

    def record(
        self,
        duty_id: str,
        *,
        fulfilled_at: datetime | None,
        deadline: datetime | None = None,
        now: datetime | None = None,
    ) -> FulfillmentRecord:
        with self._lock_for(duty_id):
            current = self._states.get(duty_id, DutyState.PENDING)
            if current is not DutyState.PENDING:
                raise DutyTransitionError(
                    code="ODRL_DUTY_TRANSITION_INVALID",
                    message=f"duty {duty_id} is already {current.value}",
                    context={"duty_id": duty_id, "state": current.value},
                )
            record = record_fulfillment(
                self._policy,
                duty_id,
                fulfilled_at=fulfilled_at,
                deadline=deadline,
                now=now,
            )
            self._states[duty_id] = record.state
        self.track(record.activated)
        return record
