from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .models import (
    CORE_CONFLICT_STRATEGIES,
    CORE_POLICY_TYPES,
    DEFAULT_CONFLICT_STRATEGY,
    DEFAULT_POLICY_TYPE,
    Action,
    Constraint,
    Policy,
)

RuleRole = Literal["permission", "prohibition", "duty"]
RuleSlot = Literal["permission", "prohibition", "obligation", "duty", "remedy", "consequence"]

SLOT_ROLES: dict[str, RuleRole] = {
    "permission": "permission",
    "prohibition": "prohibition",
    "obligation": "duty",
    "duty": "duty",
    "remedy": "duty",
    "consequence": "duty",
}

# Slot under which a rule of the given role declares its fallback duties.
FALLBACK_SLOTS: dict[RuleRole, RuleSlot] = {
    "permission": "duty",
    "prohibition": "remedy",
    "duty": "consequence",
}


class NormalizedRule(BaseModel):
    """A rule with every compact-notation field resolved; addressed by arena index."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    index: int = Field(ge=0)
    rule_id: str
    uid: Optional[str] = None
    role: RuleRole
    slot: RuleSlot
    parent: Optional[int] = None
    depth: int = Field(default=0, ge=0)
    assigner: Optional[tuple[str, ...]] = None
    assignee: Optional[tuple[str, ...]] = None
    target: Optional[tuple[str, ...]] = None
    action: tuple[Action, ...] = ()
    constraint: tuple[Constraint, ...] = ()
    fallback: tuple[int, ...] = ()
    extras: dict[str, Any] = Field(default_factory=dict)

    @property
    def action_names(self) -> tuple[str, ...]:
        return tuple(action.name for action in self.action)

    @property
    def is_top_level(self) -> bool:
        return self.parent is None

    def to_document(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.extras)
        if self.uid is not None:
            payload["uid"] = self.uid
        for name in ("assigner", "assignee", "target"):
            value = getattr(self, name)
            if value is not None:
                payload[name] = list(value)
        if self.action:
            payload["action"] = [
                action.model_dump(mode="json", by_alias=True, exclude_none=True)
                for action in self.action
            ]
        if self.constraint:
            payload["constraint"] = [
                constraint.model_dump(mode="json", by_alias=True, exclude_none=True)
                for constraint in self.constraint
            ]
        return payload


class NormalizedPolicy(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    uid: Optional[str] = None
    policy_type: str = DEFAULT_POLICY_TYPE
    conflict: str = DEFAULT_CONFLICT_STRATEGY
    context: Any = None
    profile: tuple[str, ...] = ()
    inherit_from: tuple[str, ...] = ()
    inherited: tuple[str, ...] = ()
    extras: dict[str, Any] = Field(default_factory=dict)
    rules: tuple[NormalizedRule, ...] = ()
    permissions: tuple[int, ...] = ()
    prohibitions: tuple[int, ...] = ()
    obligations: tuple[int, ...] = ()

    @model_validator(mode="after")
    def _validate_arena(self) -> "NormalizedPolicy":
        size = len(self.rules)
        for position, rule in enumerate(self.rules):
            if rule.index != position:
                raise ValueError(f"rule index {rule.index} stored at arena position {position}")
            if rule.parent is not None and not (0 <= rule.parent < position):
                raise ValueError(f"rule {position} has out-of-order parent {rule.parent}")
            for child in rule.fallback:
                if not (position < child < size):
                    raise ValueError(f"rule {position} has out-of-range fallback {child}")
        for group, role in (
            (self.permissions, "permission"),
            (self.prohibitions, "prohibition"),
            (self.obligations, "duty"),
        ):
            for index in group:
                if not (0 <= index < size) or self.rules[index].role != role:
                    raise ValueError(f"top-level {role} index {index} does not address a {role}")
                if self.rules[index].parent is not None:
                    raise ValueError(f"top-level {role} index {index} has a parent")
        return self

    @property
    def conflict_resolved(self) -> bool:
        return self.conflict in CORE_CONFLICT_STRATEGIES

    @property
    def policy_type_recognized(self) -> bool:
        return self.policy_type in CORE_POLICY_TYPES

    @property
    def unresolved_inheritance(self) -> tuple[str, ...]:
        return tuple(iri for iri in self.inherit_from if iri not in self.inherited)

    def rule(self, index: int) -> NormalizedRule:
        return self.rules[index]

    def find(self, rule_id: str) -> NormalizedRule | None:
        for rule in self.rules:
            if rule.rule_id == rule_id:
                return rule
        return None

    def fallbacks(self, rule: NormalizedRule) -> tuple[NormalizedRule, ...]:
        return tuple(self.rules[index] for index in rule.fallback)

    def to_policy(self) -> Policy:
        """Rebuild the expanded (non-compact) document this arena describes.

        Children always sit after their parent in the arena, so walking it
        backwards attaches every subtree before its parent is emitted.
        """
        documents: dict[int, dict[str, Any]] = {}
        for rule in reversed(self.rules):
            payload = rule.to_document()
            for child_index in rule.fallback:
                child = self.rules[child_index]
                payload.setdefault(child.slot, []).append(documents.pop(child_index))
            documents[rule.index] = payload

        policy_payload: dict[str, Any] = dict(self.extras)
        policy_payload.update(
            {
                "@type": self.policy_type,
                "conflict": self.conflict,
                "permission": [documents[index] for index in self.permissions],
                "prohibition": [documents[index] for index in self.prohibitions],
                "obligation": [documents[index] for index in self.obligations],
            }
        )
        if self.context is not None:
            policy_payload["@context"] = self.context
        if self.uid is not None:
            policy_payload["uid"] = self.uid
        if self.profile:
            policy_payload["profile"] = list(self.profile)
        if self.unresolved_inheritance:
            policy_payload["inheritFrom"] = list(self.unresolved_inheritance)
        return Policy.model_validate(policy_payload)
