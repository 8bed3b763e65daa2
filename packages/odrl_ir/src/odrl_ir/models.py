from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    SerializerFunctionWrapHandler,
    Tag,
    field_validator,
    model_serializer,
    model_validator,
)

ODRL_NAMESPACE = "http://www.w3.org/ns/odrl/2/"
ODRL_PREFIX = "odrl:"

PolicyType = Literal["Set", "Offer", "Agreement"]
ConflictStrategy = Literal["perm", "prohibit", "invalid"]

CORE_POLICY_TYPES: frozenset[str] = frozenset({"Set", "Offer", "Agreement"})
CORE_CONFLICT_STRATEGIES: frozenset[str] = frozenset({"perm", "prohibit", "invalid"})
DEFAULT_POLICY_TYPE = "Set"
DEFAULT_CONFLICT_STRATEGY = "invalid"

RELATIONAL_OPERATORS: frozenset[str] = frozenset({"eq", "neq", "gt", "gteq", "lt", "lteq"})
ORDERING_OPERATORS: frozenset[str] = frozenset({"gt", "gteq", "lt", "lteq"})
SET_OPERATORS: frozenset[str] = frozenset({"isAnyOf", "isAllOf", "isNoneOf"})
TAXONOMY_OPERATORS: frozenset[str] = frozenset({"isA", "hasPart", "isPartOf"})
CORE_OPERATORS: frozenset[str] = RELATIONAL_OPERATORS | SET_OPERATORS | TAXONOMY_OPERATORS
CORE_LOGICAL_OPERATORS: frozenset[str] = frozenset({"and", "or", "xone", "andSequence"})

_LOGICAL_METADATA_KEYS = frozenset({"uid", "@id", "@type"})


def compact_odrl_term(value: Any) -> Any:
    """Reduce `odrl:eq`, `{"@id": "odrl:eq"}` and full ODRL IRIs to the bare term."""
    if isinstance(value, dict) and set(value) == {"@id"}:
        value = value["@id"]
    if not isinstance(value, str):
        return value
    term = value.strip()
    if term.startswith(ODRL_NAMESPACE):
        return term[len(ODRL_NAMESPACE) :]
    if term.startswith(ODRL_PREFIX):
        return term[len(ODRL_PREFIX) :]
    return term


def as_list(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _as_iri(value: Any) -> Any:
    # Party and Asset objects are reduced to their identifier.
    if isinstance(value, dict):
        for key in ("uid", "@id", "id"):
            if isinstance(value.get(key), str):
                return value[key]
    return value


def as_iri_list(value: Any) -> Any:
    items = as_list(value)
    if items is None:
        return None
    return [_as_iri(item) for item in items]


class AtomicConstraint(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    left_operand: str = Field(alias="leftOperand")
    operator: str
    right_operand: Any = Field(default=None, alias="rightOperand")
    right_operand_reference: Optional[str] = Field(default=None, alias="rightOperandReference")
    data_type: Optional[str] = Field(default=None, alias="dataType")
    unit: Optional[str] = None
    status: Any = None
    uid: Optional[str] = Field(default=None, validation_alias=AliasChoices("uid", "@id"))

    @field_validator("left_operand", "operator", mode="before")
    @classmethod
    def _compact_terms(cls, value: Any) -> Any:
        return compact_odrl_term(value)

    @field_validator("right_operand_reference", mode="before")
    @classmethod
    def _reference_iri(cls, value: Any) -> Any:
        return _as_iri(value)

    @property
    def has_right_operand(self) -> bool:
        return self.right_operand is not None

    @property
    def has_right_operand_reference(self) -> bool:
        return self.right_operand_reference is not None


class LogicalConstraint(BaseModel):
    """Composite constraint; documents spell it `{"and": [...]}` or
    `{"andSequence": {"@list": [...]}}`, the model keeps the key in `operator`."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    operator: str
    constraints: list[Constraint] = Field(default_factory=list)
    uid: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _from_document(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "operator" in data:
            return data
        operator_keys = [key for key in data if key not in _LOGICAL_METADATA_KEYS]
        if len(operator_keys) != 1:
            raise ValueError(
                "logical constraint must declare exactly one operator key, "
                f"found {sorted(operator_keys)}"
            )
        key = operator_keys[0]
        members = data[key]
        if isinstance(members, dict) and "@list" in members:
            members = members["@list"]
        return {
            "operator": compact_odrl_term(key),
            "constraints": as_list(members) or [],
            "uid": data.get("uid", data.get("@id")),
        }

    @model_serializer(mode="wrap")
    def _to_document(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        payload = handler(self)
        operator = payload.pop("operator")
        members = payload.pop("constraints", [])
        payload[operator] = {"@list": members} if operator == "andSequence" else members
        return payload


def _constraint_kind(value: Any) -> str:
    if isinstance(value, dict):
        if "leftOperand" in value or "left_operand" in value:
            return "atomic"
        return "logical"
    if isinstance(value, AtomicConstraint):
        return "atomic"
    return "logical"


Constraint = Annotated[
    Union[
        Annotated[AtomicConstraint, Tag("atomic")],
        Annotated[LogicalConstraint, Tag("logical")],
    ],
    Discriminator(_constraint_kind),
]

LogicalConstraint.model_rebuild()


class Action(BaseModel):
    """A bare action name, or a refined action wrapped in `rdf:value`."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str
    refinement: list[Constraint] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _from_document(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"name": data}
        if isinstance(data, dict) and "name" not in data:
            payload = dict(data)
            value = payload.pop("rdf:value", None)
            if value is None:
                value = payload.pop("@id", None)
            payload["name"] = value
            return payload
        return data

    @field_validator("name", mode="before")
    @classmethod
    def _compact_name(cls, value: Any) -> Any:
        return compact_odrl_term(value)

    @field_validator("refinement", mode="before")
    @classmethod
    def _coerce_refinement(cls, value: Any) -> Any:
        return as_list(value) or []

    @model_serializer(mode="wrap")
    def _to_document(self, handler: SerializerFunctionWrapHandler) -> Any:
        payload = handler(self)
        name = payload.pop("name")
        refinement = payload.pop("refinement", [])
        if not refinement and not payload:
            return name
        return {"rdf:value": {"@id": name}, "refinement": refinement, **payload}


class _RuleBase(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    uid: Optional[str] = Field(default=None, validation_alias=AliasChoices("uid", "@id"))
    assigner: Optional[list[str]] = None
    assignee: Optional[list[str]] = None
    target: Optional[list[str]] = None
    action: Optional[list[Action]] = None
    constraint: list[Constraint] = Field(default_factory=list)

    @field_validator("assigner", "assignee", "target", mode="before")
    @classmethod
    def _coerce_iris(cls, value: Any) -> Any:
        return as_iri_list(value)

    @field_validator("action", mode="before")
    @classmethod
    def _coerce_actions(cls, value: Any) -> Any:
        return as_list(value)

    @field_validator("constraint", mode="before")
    @classmethod
    def _coerce_constraints(cls, value: Any) -> Any:
        return as_list(value) or []


class Duty(_RuleBase):
    type: Optional[str] = Field(default=None, alias="@type")
    consequence: list[Duty] = Field(default_factory=list)

    @field_validator("consequence", mode="before")
    @classmethod
    def _coerce_consequence(cls, value: Any) -> Any:
        return as_list(value) or []


class Permission(_RuleBase):
    duty: list[Duty] = Field(default_factory=list)

    @field_validator("duty", mode="before")
    @classmethod
    def _coerce_duty(cls, value: Any) -> Any:
        return as_list(value) or []


class Prohibition(_RuleBase):
    remedy: list[Duty] = Field(default_factory=list)

    @field_validator("remedy", mode="before")
    @classmethod
    def _coerce_remedy(cls, value: Any) -> Any:
        return as_list(value) or []


Rule = Union[Permission, Prohibition, Duty]


class Policy(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    context: Any = Field(default=None, alias="@context")
    type: str = Field(default=DEFAULT_POLICY_TYPE, alias="@type")
    uid: Optional[str] = Field(default=None, validation_alias=AliasChoices("uid", "@id", "id"))
    profile: Optional[list[str]] = None
    inherit_from: Optional[list[str]] = Field(default=None, alias="inheritFrom")
    conflict: str = DEFAULT_CONFLICT_STRATEGY

    assigner: Optional[list[str]] = None
    assignee: Optional[list[str]] = None
    target: Optional[list[str]] = None
    action: Optional[list[Action]] = None

    permission: list[Permission] = Field(default_factory=list)
    prohibition: list[Prohibition] = Field(default_factory=list)
    obligation: list[Duty] = Field(default_factory=list)

    @field_validator("type", mode="before")
    @classmethod
    def _compact_type(cls, value: Any) -> Any:
        if value is None:
            return DEFAULT_POLICY_TYPE
        return compact_odrl_term(value)

    @field_validator("conflict", mode="before")
    @classmethod
    def _compact_conflict(cls, value: Any) -> Any:
        if value is None:
            return DEFAULT_CONFLICT_STRATEGY
        return compact_odrl_term(value)

    @field_validator("profile", "inherit_from", "assigner", "assignee", "target", mode="before")
    @classmethod
    def _coerce_iris(cls, value: Any) -> Any:
        return as_iri_list(value)

    @field_validator("action", mode="before")
    @classmethod
    def _coerce_actions(cls, value: Any) -> Any:
        return as_list(value)

    @field_validator("permission", "prohibition", "obligation", mode="before")
    @classmethod
    def _coerce_rule_groups(cls, value: Any) -> Any:
        return as_list(value) or []
