from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from odrl_ir import (
    CORE_LOGICAL_OPERATORS,
    RELATIONAL_OPERATORS,
    SET_OPERATORS,
    AtomicConstraint,
    Outcome,
)

from .errors import ExtensionRegistryError

OperatorEvaluator = Callable[[Any, Any, AtomicConstraint], "Outcome | bool"]
Combinator = Callable[[Sequence[Outcome]], Outcome]

# isA, hasPart and isPartOf need a taxonomy, so profiles may supply them.
_RESERVED_OPERATORS = RELATIONAL_OPERATORS | SET_OPERATORS


@dataclass(frozen=True)
class ProfileExtensions:
    """Profile-supplied operators and logical combinators, keyed by term."""

    operators: Mapping[str, OperatorEvaluator] = field(
        default_factory=lambda: MappingProxyType({})
    )
    combinators: Mapping[str, Combinator] = field(default_factory=lambda: MappingProxyType({}))
    profiles: tuple[str, ...] = ()

    @classmethod
    def build(
        cls,
        *,
        operators: Mapping[str, OperatorEvaluator] | None = None,
        combinators: Mapping[str, Combinator] | None = None,
        profiles: Sequence[str] = (),
    ) -> "ProfileExtensions":
        operators = dict(operators or {})
        combinators = dict(combinators or {})
        reserved_operators = sorted(set(operators) & _RESERVED_OPERATORS)
        if reserved_operators:
            raise ExtensionRegistryError(
                code="ODRL_EXTENSION_RESERVED",
                message="profile operators may not replace core operators",
                context={"operators": reserved_operators},
            )
        reserved_combinators = sorted(set(combinators) & CORE_LOGICAL_OPERATORS)
        if reserved_combinators:
            raise ExtensionRegistryError(
                code="ODRL_EXTENSION_RESERVED",
                message="profile combinators may not replace core logical operators",
                context={"combinators": reserved_combinators},
            )
        for name, candidate in (*operators.items(), *combinators.items()):
            if not callable(candidate):
                raise ExtensionRegistryError(
                    code="ODRL_EXTENSION_INVALID",
                    message="profile extensions must be callables",
                    context={"name": name},
                )
        return cls(
            operators=MappingProxyType(operators),
            combinators=MappingProxyType(combinators),
            profiles=tuple(sorted(set(profiles))),
        )

    def merged(self, other: "ProfileExtensions") -> "ProfileExtensions":
        duplicate_operators = sorted(set(self.operators) & set(other.operators))
        duplicate_combinators = sorted(set(self.combinators) & set(other.combinators))
        if duplicate_operators or duplicate_combinators:
            raise ExtensionRegistryError(
                code="ODRL_EXTENSION_DUPLICATE",
                message="profile extensions registered twice",
                context={
                    "operators": duplicate_operators,
                    "combinators": duplicate_combinators,
                },
            )
        return ProfileExtensions.build(
            operators={**self.operators, **other.operators},
            combinators={**self.combinators, **other.combinators},
            profiles=(*self.profiles, *other.profiles),
        )

    def operator(self, name: str) -> OperatorEvaluator | None:
        return self.operators.get(name)

    def combinator(self, name: str) -> Combinator | None:
        return self.combinators.get(name)
