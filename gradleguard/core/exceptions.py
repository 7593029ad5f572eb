"""
Custom exception hierarchy for gradleguard.

All exceptions inherit from GradleGuardError to enable consistent error handling
across the pipeline. Each exception type includes context for debugging and logging.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class GradleGuardError(Exception):
    """Base exception for all gradleguard errors."""

    message: str
    context: dict[str, Any] = field(default_factory=dict)
    cause: Exception | None = None

    def __str__(self) -> str:
        ctx = f" | context: {self.context}" if self.context else ""
        cause = f" | caused by: {self.cause}" if self.cause else ""
        return f"{self.message}{ctx}{cause}"


@dataclass
class ValidationError(GradleGuardError):
    """Raised when input or output validation fails."""

    field_name: str | None = None
    expected_type: str | None = None
    actual_value: Any = None

    def __str__(self) -> str:
        base = super().__str__()
        if self.field_name:
            return f"Validation failed for '{self.field_name}': {base}"
        return f"Validation failed: {base}"


@dataclass
class DescriptorSyntaxError(ValidationError):
    """Raised when a build descriptor cannot be tokenized or parsed.

    Carries the 1-based line and column of the offending token so that
    callers can point the user at the exact spot in the script.
    """

    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        return f"Syntax error at {self.line}:{self.column}: {self.message}"


@dataclass
class ServiceError(GradleGuardError):
    """Raised when a service operation fails."""

    service_name: str = ""
    operation: str = ""
    retryable: bool = False

    def __str__(self) -> str:
        base = super().__str__()
        retry_hint = " (retryable)" if self.retryable else " (non-retryable)"
        return f"[{self.service_name}.{self.operation}]{retry_hint}: {base}"


@dataclass
class RegistryError(ServiceError):
    """Raised when a Maven repository lookup fails at the transport level."""

    repository: str = ""
    coordinate: str = ""

    def __post_init__(self) -> None:
        self.service_name = "registry"


@dataclass
class PipelineError(GradleGuardError):
    """Raised when pipeline orchestration fails."""

    stage: str = ""
    run_id: str = ""

    def __str__(self) -> str:
        base = super().__str__()
        return f"Pipeline error at stage '{self.stage}' (run: {self.run_id}): {base}"
