"""
Core type definitions for gradleguard.

Provides result types used throughout the pipeline for type-safe data flow
between stages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

# Type aliases
StorageKey = str
Hash = str  # SHA-256 hash


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class StageStatus(str, Enum):
    """Status of a pipeline stage."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """Result wrapper for service operations.

    Provides a consistent return type that includes success/failure status,
    the result data, and any errors or warnings.
    """

    success: bool
    data: T | None = None
    error: str | None = None
    warnings: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    duration_ms: float = 0.0

    @classmethod
    def ok(cls, data: T, **metadata: Any) -> ServiceResult[T]:
        """Create a successful result."""
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def fail(cls, error: str, **metadata: Any) -> ServiceResult[T]:
        """Create a failed result."""
        return cls(success=False, error=error, metadata=metadata)

    @classmethod
    def with_warnings(cls, data: T, warnings: list[str], **metadata: Any) -> ServiceResult[T]:
        """Create a successful result with warnings."""
        return cls(success=True, data=data, warnings=warnings, metadata=metadata)


class StageResult(BaseModel):
    """Result of a pipeline stage execution."""

    stage_name: str = Field(description="Name of the pipeline stage")
    status: StageStatus = Field(default=StageStatus.PENDING, description="Execution status")
    started_at: datetime | None = Field(default=None)
    completed_at: datetime | None = Field(default=None)
    duration_seconds: float = Field(default=0.0)
    artifacts: list[StorageKey] = Field(default_factory=list, description="Stored artifacts")
    error_message: str | None = Field(default=None)
    warnings: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def mark_running(self) -> None:
        """Mark stage as started."""
        self.status = StageStatus.RUNNING
        self.started_at = utc_now()

    def mark_completed(self, artifacts: list[StorageKey] | None = None) -> None:
        """Mark stage as successfully completed."""
        self.status = StageStatus.COMPLETED
        self.completed_at = utc_now()
        self.artifacts = artifacts or []
        if self.started_at:
            self.duration_seconds = (self.completed_at - self.started_at).total_seconds()

    def mark_failed(self, error: str) -> None:
        """Mark stage as failed."""
        self.status = StageStatus.FAILED
        self.completed_at = utc_now()
        self.error_message = error
        if self.started_at:
            self.duration_seconds = (self.completed_at - self.started_at).total_seconds()

    def mark_skipped(self, reason: str = "") -> None:
        """Mark stage as skipped."""
        self.status = StageStatus.SKIPPED
        if reason:
            self.metadata["skip_reason"] = reason
