"""
Descriptor Audit Service.

Runs every audit rule over a descriptor and its resolved plan and
collects the findings into an AuditReport.
"""

from __future__ import annotations

import time

from pydantic import BaseModel, Field

from ...core.config import AuditConfig, get_config
from ...core.logging import get_logger
from ...core.types import ServiceResult
from ...models.descriptor import BuildDescriptor
from ...models.findings import AuditReport, DependencyStatus, Finding, Severity
from ...models.plan import BuildPlan
from .rules import RULES, AuditContext, Rule

logger = get_logger(__name__)


class AuditInput(BaseModel):
    """Input for the audit service."""

    descriptor: BuildDescriptor
    plan: BuildPlan
    dependency_status: list[DependencyStatus] = Field(
        default_factory=list, description="Registry lookups, empty when not performed"
    )


class DescriptorAuditor:
    """Service that audits a resolved build plan.

    Rules are plain functions; a custom rule set can be passed for tests
    or embedding.
    """

    def __init__(self, config: AuditConfig | None = None, rules: tuple[Rule, ...] = RULES) -> None:
        self.config = config or get_config().audit
        self.rules = rules

    async def audit(self, input_data: AuditInput) -> ServiceResult[AuditReport]:
        """Audit a descriptor and its plan.

        Args:
            input_data: Descriptor, plan and optional registry results

        Returns:
            ServiceResult containing the AuditReport or error
        """
        start_time = time.perf_counter()
        try:
            report = self.run_rules(input_data)
        except Exception as e:
            logger.exception("Unexpected error during audit")
            return ServiceResult.fail(f"Unexpected error: {e}")

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Audit finished",
            passed=report.passed,
            duration_ms=round(duration_ms, 2),
            **report.counts,
        )
        result = ServiceResult.ok(report, passed=report.passed, counts=report.counts)
        result.duration_ms = duration_ms
        return result

    def run_rules(self, input_data: AuditInput) -> AuditReport:
        """Synchronous core of :meth:`audit`."""
        context = AuditContext(
            descriptor=input_data.descriptor,
            plan=input_data.plan,
            config=self.config,
            dependency_status=input_data.dependency_status,
        )
        findings: list[Finding] = []
        for rule in self.rules:
            produced = list(rule(context))
            if produced:
                logger.debug("Rule produced findings", rule=rule.__name__, count=len(produced))
            findings.extend(produced)

        report = AuditReport(
            descriptor_path=input_data.descriptor.path,
            strict=self.config.strict,
            fail_on=Severity(self.config.fail_on),
            findings=findings,
            dependency_status=input_data.dependency_status,
        )
        report.findings = report.sorted_findings()
        return report
