from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from odrl_ir import (
    Decision,
    DecisionOutcome,
    DutyTrigger,
    NormalizedPolicy,
    NormalizedRule,
    Outcome,
    Request,
    TriggeredDuty,
)

from .evaluator import ConstraintEvaluator, combine_and
from .vocabulary import ODRL_ACTION_PARENTS, action_includes

logger = logging.getLogger(__name__)


def triggered_duty(
    duty: NormalizedRule,
    *,
    trigger: DutyTrigger,
    source: NormalizedRule | None,
) -> TriggeredDuty:
    return TriggeredDuty(
        duty_id=duty.rule_id,
        rule_index=duty.index,
        trigger=trigger,
        source_rule_id=source.rule_id if source is not None else None,
        actions=duty.action_names,
        target=duty.target,
        assignee=duty.assignee,
    )


def _party_matches(values: tuple[str, ...] | None, requested: str | None) -> bool:
    if values is None:
        return True
    return requested is not None and requested in values


@dataclass(frozen=True)
class _RuleMatch:
    rule: NormalizedRule
    outcome: Outcome


@dataclass(frozen=True)
class _PermitCandidate:
    rule: NormalizedRule
    pending: tuple[TriggeredDuty, ...]


@dataclass(frozen=True)
class DecisionEngine:
    """Stateless decision point over a normalized, validated policy.

    Safe to share across threads: it only reads the policy and request.
    """

    evaluator: ConstraintEvaluator = field(default_factory=ConstraintEvaluator)
    action_parents: Mapping[str, str] = field(default_factory=lambda: ODRL_ACTION_PARENTS)

    def _action_outcome(self, rule: NormalizedRule, request: Request) -> Outcome | None:
        """None when no action of the rule covers the request; else its refinement outcome."""
        outcomes: list[Outcome] = []
        for action in rule.action:
            if not action_includes(action.name, request.action, self.action_parents):
                continue
            outcomes.append(self.evaluator.evaluate_all(action.refinement, request))
        if not outcomes:
            return None
        if Outcome.SATISFIED in outcomes:
            return Outcome.SATISFIED
        if Outcome.INDETERMINATE in outcomes:
            return Outcome.INDETERMINATE
        return Outcome.VIOLATED

    def _in_scope(self, rule: NormalizedRule, request: Request) -> bool:
        if not _party_matches(rule.target, request.target):
            return False
        if not _party_matches(rule.assignee, request.assignee):
            return False
        if request.assigner is not None and not _party_matches(rule.assigner, request.assigner):
            return False
        return True

    def match(self, rule: NormalizedRule, request: Request) -> Outcome | None:
        """Outcome of a rule for the request, or None when the rule does not apply to it."""
        if not self._in_scope(rule, request):
            return None
        action_outcome = self._action_outcome(rule, request)
        if action_outcome is None or action_outcome is Outcome.VIOLATED:
            return None
        return combine_and(
            [action_outcome, self.evaluator.evaluate_all(rule.constraint, request)]
        )

    def _pending_duties(
        self,
        policy: NormalizedPolicy,
        rule: NormalizedRule,
        request: Request,
        *,
        trigger: DutyTrigger,
    ) -> tuple[TriggeredDuty, ...]:
        pending: list[TriggeredDuty] = []
        for duty in policy.fallbacks(rule):
            if duty.rule_id in request.fulfilled_duties:
                continue
            if self.evaluator.evaluate_all(duty.constraint, request) is Outcome.VIOLATED:
                continue
            pending.append(triggered_duty(duty, trigger=trigger, source=rule))
        return tuple(pending)

    def _standing_obligations(
        self,
        policy: NormalizedPolicy,
        request: Request,
    ) -> list[TriggeredDuty]:
        standing: list[TriggeredDuty] = []
        for index in policy.obligations:
            duty = policy.rules[index]
            if duty.rule_id in request.fulfilled_duties or not self._in_scope(duty, request):
                continue
            if self.evaluator.evaluate_all(duty.constraint, request) is Outcome.VIOLATED:
                continue
            standing.append(triggered_duty(duty, trigger="obligation", source=None))
        return standing

    def _matches(
        self,
        policy: NormalizedPolicy,
        indexes: Sequence[int],
        request: Request,
    ) -> list[_RuleMatch]:
        matches: list[_RuleMatch] = []
        for index in indexes:
            rule = policy.rules[index]
            outcome = self.match(rule, request)
            if outcome is None or outcome is Outcome.VIOLATED:
                continue
            matches.append(_RuleMatch(rule=rule, outcome=outcome))
        return matches

    def decide(self, policy: NormalizedPolicy, request: Request) -> Decision:
        prohibition_matches = self._matches(policy, policy.prohibitions, request)
        permission_matches = self._matches(policy, policy.permissions, request)

        denials = [m.rule for m in prohibition_matches if m.outcome is Outcome.SATISFIED]
        uncertain = [
            m.rule
            for m in (*prohibition_matches, *permission_matches)
            if m.outcome is Outcome.INDETERMINATE
        ]
        uncertain_prohibition = any(rule.role == "prohibition" for rule in uncertain)

        candidates = [
            _PermitCandidate(
                rule=m.rule,
                pending=self._pending_duties(policy, m.rule, request, trigger="precondition"),
            )
            for m in permission_matches
            if m.outcome is Outcome.SATISFIED
        ]
        granted = [candidate for candidate in candidates if not candidate.pending]
        pending = [duty for candidate in candidates for duty in candidate.pending]
        remedies = [
            duty
            for rule in denials
            for duty in self._pending_duties(policy, rule, request, trigger="remedy")
        ]
        standing = self._standing_obligations(policy, request)

        conflict = False
        obligations: list[TriggeredDuty]
        if denials and candidates:
            if policy.conflict == "perm":
                if granted:
                    outcome, reason = DecisionOutcome.PERMITTED, "CONFLICT_PERM_OVERRIDE"
                    obligations = standing
                else:
                    outcome, reason = DecisionOutcome.UNDETERMINED, "PRECONDITION_PENDING"
                    obligations = pending + standing
            elif policy.conflict == "prohibit":
                outcome, reason = DecisionOutcome.DENIED, "CONFLICT_PROHIBIT_OVERRIDE"
                obligations = remedies + standing
            else:
                outcome, reason = DecisionOutcome.UNDETERMINED, "CONFLICT_UNRESOLVED"
                conflict = True
                obligations = standing
        elif denials:
            outcome, reason = DecisionOutcome.DENIED, "PROHIBITED"
            obligations = remedies + standing
        elif granted:
            if uncertain_prohibition and policy.conflict != "perm":
                outcome, reason = DecisionOutcome.UNDETERMINED, "PROHIBITION_INDETERMINATE"
            else:
                outcome, reason = DecisionOutcome.PERMITTED, "PERMITTED"
            obligations = standing
        elif candidates:
            outcome, reason = DecisionOutcome.UNDETERMINED, "PRECONDITION_PENDING"
            obligations = pending + standing
        elif any(rule.role == "permission" for rule in uncertain):
            # Closed world: a permission that cannot be decided does not grant.
            outcome, reason = DecisionOutcome.DENIED, "PERMISSION_INDETERMINATE"
            obligations = standing
        else:
            outcome, reason = DecisionOutcome.DENIED, "NO_APPLICABLE_PERMISSION"
            obligations = standing

        decision = Decision(
            outcome=outcome,
            reason=reason,
            conflict=conflict,
            policy_uid=policy.uid,
            obligations=obligations,
            permissions=[candidate.rule.rule_id for candidate in candidates],
            prohibitions=[rule.rule_id for rule in denials],
            indeterminate=[rule.rule_id for rule in uncertain],
        )
        logger.debug(
            "policy %s: %s for action %s (%s)",
            policy.uid,
            decision.outcome.value,
            request.action,
            decision.reason,
        )
        return decision


def decide(
    policy: NormalizedPolicy,
    request: Request | Mapping[str, Any],
    *,
    engine: DecisionEngine | None = None,
) -> Decision:
    resolved_request = request if isinstance(request, Request) else Request.model_validate(request)
    return (engine or DecisionEngine()).decide(policy, resolved_request)


def canonicalize_decision_payload(decision: Decision | Mapping[str, Any]) -> dict[str, Any]:
    resolved = decision if isinstance(decision, Decision) else Decision.model_validate(decision)
    return resolved.model_dump(mode="json", exclude_none=True)


def decision_hash(decision: Decision | Mapping[str, Any]) -> str:
    """sha256 over the sorted-key JSON of the decision, stable across runs and key order."""
    payload = canonicalize_decision_payload(decision)
    text = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
