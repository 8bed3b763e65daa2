from __future__ import annotations

from typing import Any

from odrl_ir import Violation
from pydantic import BaseModel, ConfigDict, Field


class ODRLErrorDetail(BaseModel):
    model_config = ConfigDict(extra="forbid")

    code: str
    message: str
    context: dict[str, Any] = Field(default_factory=dict)


class ODRLError(Exception):
    def __init__(
        self,
        *,
        code: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.detail = ODRLErrorDetail(
            code=code,
            message=message,
            context=context or {},
        )

    @property
    def code(self) -> str:
        return self.detail.code


class StructuralError(ODRLError):
    """Malformed policy; raised while normalizing or validating, never while deciding."""

    def __init__(
        self,
        *,
        code: str,
        message: str,
        violations: list[Violation] | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(code=code, message=message, context=context)
        self.violations: list[Violation] = list(violations or [])


class ExtensionRegistryError(ODRLError):
    """Profile extension collides with a core term or another extension."""


class DutyTransitionError(ODRLError):
    """Duty is unknown or the requested state transition is not allowed."""

