from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .violation_codes import BLOCKING_CODES, ViolationCode, ViolationSeverity

ReportStatus = Literal["PASS", "WARN", "REFUSE"]


class Violation(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    code: ViolationCode
    severity: ViolationSeverity
    message: str
    rule_index: Optional[int] = None
    rule_id: Optional[str] = None
    json_path: Optional[str] = None

    @model_validator(mode="after")
    def _validate_severity(self) -> "Violation":
        expected = (
            ViolationSeverity.ERROR if self.code in BLOCKING_CODES else ViolationSeverity.WARN
        )
        if self.severity != expected:
            raise ValueError(f"{self.code.value} must carry severity {expected.value}")
        return self


class ValidationReport(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: ReportStatus
    violations: list[Violation] = Field(default_factory=list)
    notices: list[Violation] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_status(self) -> "ValidationReport":
        if any(v.severity != ViolationSeverity.ERROR for v in self.violations):
            raise ValueError("violations may only carry ERROR severity")
        if any(n.severity != ViolationSeverity.WARN for n in self.notices):
            raise ValueError("notices may only carry WARN severity")
        if self.violations:
            expected = "REFUSE"
        elif self.notices:
            expected = "WARN"
        else:
            expected = "PASS"
        if self.status != expected:
            raise ValueError(f"status must be {expected} for the reported findings")
        return self

    @property
    def is_valid(self) -> bool:
        return not self.violations
