"""
Audit finding models.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from ..core.types import utc_now


class Severity(str, Enum):
    """Finding severity, most severe first."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        return {"error": 0, "warning": 1, "info": 2}[self.value]

    def at_least(self, threshold: Severity) -> bool:
        """Whether this severity is as severe as ``threshold`` or more."""
        return self.rank <= threshold.rank


class Finding(BaseModel):
    """One audit rule violation."""

    rule_id: str = Field(description="Stable rule identifier, e.g. sdk-order")
    severity: Severity
    message: str
    variant: str | None = Field(default=None, description="Build variant concerned")
    line: int | None = Field(default=None, description="Descriptor line, when known")
    hint: str = Field(default="", description="How to fix it")


class DependencyStatus(BaseModel):
    """Repository lookup outcome for one coordinate."""

    coordinate: str
    resolvable: bool | None = Field(default=None, description="None when the lookup failed")
    repository: str | None = Field(default=None, description="Repository that served the artifact")
    error: str | None = Field(default=None)


class AuditReport(BaseModel):
    """Result of auditing one descriptor."""

    descriptor_path: Path
    generated_at: datetime = Field(default_factory=utc_now)
    strict: bool = Field(default=False)
    fail_on: Severity = Field(default=Severity.ERROR)
    findings: list[Finding] = Field(default_factory=list)
    dependency_status: list[DependencyStatus] = Field(default_factory=list)

    @property
    def counts(self) -> dict[str, int]:
        counts = {severity.value: 0 for severity in Severity}
        for finding in self.findings:
            counts[finding.severity.value] += 1
        return counts

    @property
    def passed(self) -> bool:
        """No finding reaches the failure threshold."""
        return not any(f.severity.at_least(self.fail_on) for f in self.findings)

    def by_rule(self, rule_id: str) -> list[Finding]:
        return [f for f in self.findings if f.rule_id == rule_id]

    def sorted_findings(self) -> list[Finding]:
        return sorted(self.findings, key=lambda f: (f.severity.rank, f.line or 0, f.rule_id))
