"""Pipeline orchestration for gradleguard."""

from .pipeline import AuditOptions, AuditPipeline, AuditRun, run_audit

__all__ = ["AuditOptions", "AuditPipeline", "AuditRun", "run_audit"]
