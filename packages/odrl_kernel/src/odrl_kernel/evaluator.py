from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from odrl_ir import (
    ORDERING_OPERATORS,
    SET_OPERATORS,
    AtomicConstraint,
    Constraint,
    LogicalConstraint,
    Outcome,
    Request,
)

from .collaborators import (
    UNAVAILABLE,
    UNKNOWN,
    ContextSupplier,
    NullOperandResolver,
    OperandResolver,
    RequestContextSupplier,
)
from .extensions import ProfileExtensions
from .operands import (
    IncomparableOperands,
    compare_ordering,
    compare_set,
    resolve_pair,
    values_equal,
)

logger = logging.getLogger(__name__)


def combine_and(outcomes: Iterable[Outcome]) -> Outcome:
    saw_indeterminate = False
    for outcome in outcomes:
        if outcome is Outcome.VIOLATED:
            return Outcome.VIOLATED
        if outcome is Outcome.INDETERMINATE:
            saw_indeterminate = True
    return Outcome.INDETERMINATE if saw_indeterminate else Outcome.SATISFIED


def combine_or(outcomes: Sequence[Outcome]) -> Outcome:
    if any(outcome is Outcome.SATISFIED for outcome in outcomes):
        return Outcome.SATISFIED
    if outcomes and all(outcome is Outcome.VIOLATED for outcome in outcomes):
        return Outcome.VIOLATED
    return Outcome.INDETERMINATE


def combine_xone(outcomes: Sequence[Outcome]) -> Outcome:
    satisfied = sum(1 for outcome in outcomes if outcome is Outcome.SATISFIED)
    indeterminate = sum(1 for outcome in outcomes if outcome is Outcome.INDETERMINATE)
    if satisfied >= 2:
        return Outcome.VIOLATED
    if indeterminate:
        return Outcome.INDETERMINATE
    return Outcome.SATISFIED if satisfied == 1 else Outcome.VIOLATED


def _as_outcome(value: Outcome | bool) -> Outcome:
    if isinstance(value, Outcome):
        return value
    return Outcome.SATISFIED if value else Outcome.VIOLATED


@dataclass(frozen=True)
class ConstraintEvaluator:
    """Evaluates constraints against a request; assumes validated input."""

    context_supplier: ContextSupplier = field(default_factory=RequestContextSupplier)
    operand_resolver: OperandResolver = field(default_factory=NullOperandResolver)
    extensions: ProfileExtensions = field(default_factory=ProfileExtensions)

    def evaluate(self, constraint: Constraint, request: Request) -> Outcome:
        if isinstance(constraint, AtomicConstraint):
            return self._evaluate_atomic(constraint, request)
        return self._evaluate_logical(constraint, request)

    def evaluate_all(self, constraints: Iterable[Constraint], request: Request) -> Outcome:
        """Rule-level conjunction; an empty sequence is Satisfied."""
        return combine_and(self.evaluate(constraint, request) for constraint in constraints)

    def _left_value(self, constraint: AtomicConstraint, request: Request) -> Any:
        value = self.context_supplier.lookup(constraint.left_operand, request)
        if value is UNKNOWN and constraint.status is not None:
            return constraint.status
        return value

    def _right_value(self, constraint: AtomicConstraint) -> Any:
        if constraint.has_right_operand == constraint.has_right_operand_reference:
            return UNAVAILABLE
        if constraint.has_right_operand_reference:
            return self.operand_resolver.resolve(constraint.right_operand_reference)
        return constraint.right_operand

    def _evaluate_atomic(self, constraint: AtomicConstraint, request: Request) -> Outcome:
        left = self._left_value(constraint, request)
        if left is UNKNOWN:
            logger.debug("leftOperand %s unknown for request", constraint.left_operand)
            return Outcome.INDETERMINATE
        right = self._right_value(constraint)
        if right is UNAVAILABLE:
            logger.debug(
                "right operand unavailable for %s %s",
                constraint.left_operand,
                constraint.operator,
            )
            return Outcome.INDETERMINATE

        operator = constraint.operator
        custom = self.extensions.operator(operator)
        if custom is not None:
            return _as_outcome(custom(left, right, constraint))

        try:
            left_value, right_value = resolve_pair(
                left, right, data_type=constraint.data_type, unit=constraint.unit
            )
            if operator == "eq":
                return _as_outcome(values_equal(left_value, right_value))
            if operator == "neq":
                return _as_outcome(not values_equal(left_value, right_value))
            if operator in ORDERING_OPERATORS:
                return _as_outcome(compare_ordering(operator, left_value, right_value))
            if operator in SET_OPERATORS:
                return _as_outcome(compare_set(operator, left_value, right_value))
        except IncomparableOperands as exc:
            logger.debug("constraint on %s indeterminate: %s", constraint.left_operand, exc)
            return Outcome.INDETERMINATE

        return Outcome.INDETERMINATE

    def _evaluate_logical(self, constraint: LogicalConstraint, request: Request) -> Outcome:
        members = constraint.constraints
        if not members:
            return Outcome.INDETERMINATE
        operator = constraint.operator
        if operator == "andSequence":
            return combine_and(self._evaluate_in_order(members, request))
        if operator == "and":
            return combine_and([self.evaluate(member, request) for member in members])
        if operator == "or":
            return combine_or([self.evaluate(member, request) for member in members])
        if operator == "xone":
            return combine_xone([self.evaluate(member, request) for member in members])
        combinator = self.extensions.combinator(operator)
        if combinator is None:
            return Outcome.INDETERMINATE
        return combinator([self.evaluate(member, request) for member in members])

    def _evaluate_in_order(
        self,
        members: Sequence[Constraint],
        request: Request,
    ) -> Iterable[Outcome]:
        # Lazily consumed by combine_and, which stops at the first Violated.
        for member in members:
            yield self.evaluate(member, request)


def evaluate(
    constraint: Constraint,
    request: Request,
    *,
    evaluator: ConstraintEvaluator | None = None,
) -> Outcome:
    return (evaluator or ConstraintEvaluator()).evaluate(constraint, request)
