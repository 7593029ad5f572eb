"""
Audit pipeline orchestration for gradleguard.

Runs load -> resolve -> registry -> audit -> report in process, recording a
StageResult per stage. A failing stage stops the run and marks the stages
after it as skipped.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, Field

from ..core.config import Config, get_config
from ..core.exceptions import GradleGuardError, PipelineError
from ..core.logging import bind_context, clear_context, get_logger
from ..core.types import ServiceResult, StageResult, StageStatus, utc_now
from ..models.descriptor import BuildDescriptor
from ..models.findings import AuditReport, DependencyStatus
from ..models.plan import BuildPlan
from ..services.audit import AuditInput, DescriptorAuditor
from ..services.loading import DescriptorLoader, LoadInput
from ..services.registry import MavenRegistryClient
from ..services.reporting import ReportWriter
from ..services.resolution import (
    PlanResolver,
    ResolutionInput,
    build_environment,
    collect_properties,
)
from ..storage import LocalStorageBackend, StorageBackend

logger = get_logger(__name__)

T = TypeVar("T")

STAGES = ("load", "resolve", "registry", "audit", "report")


class AuditOptions(BaseModel):
    """Options for one audit run. ``None`` means "use the configuration"."""

    path: Path = Field(description="Descriptor file or module directory")
    env_file: Path | None = Field(default=None, description="dotenv file overlaid on the environment")
    environment: dict[str, str] | None = Field(
        default=None, description="Explicit environment instead of the process environment"
    )
    properties: dict[str, str] = Field(default_factory=dict, description="Property overrides")
    strict: bool | None = Field(default=None)
    fail_on: Literal["error", "warning"] | None = Field(default=None)
    check_registry: bool | None = Field(default=None)
    check_keystore: bool | None = Field(default=None)
    output_dir: Path | None = Field(default=None, description="Report directory")
    write_report: bool = Field(default=True)


class AuditRun(BaseModel):
    """Result of one pipeline run."""

    run_id: str
    descriptor_path: Path
    started_at: datetime
    completed_at: datetime | None = None
    success: bool = False
    stages: dict[str, StageResult] = Field(default_factory=dict)

    descriptor: BuildDescriptor | None = None
    plan: BuildPlan | None = None
    report: AuditReport | None = None
    artifacts: list[str] = Field(default_factory=list)
    output_directory: str = ""

    error: str | None = None
    failed_stage: str | None = None

    @property
    def passed(self) -> bool:
        """The run completed and the audit found nothing at the failure threshold."""
        return self.success and self.report is not None and self.report.passed


class AuditPipeline:
    """High-level pipeline interface for programmatic use."""

    def __init__(
        self,
        config: Config | None = None,
        storage: StorageBackend | None = None,
        registry: MavenRegistryClient | None = None,
    ) -> None:
        self.config = config or get_config()
        self._storage = storage
        self._registry = registry

    def _effective_config(self, options: AuditOptions) -> Config:
        audit_updates: dict[str, Any] = {}
        if options.strict is not None:
            audit_updates["strict"] = options.strict
        if options.fail_on is not None:
            audit_updates["fail_on"] = options.fail_on
        resolution_updates: dict[str, Any] = {}
        if options.check_keystore is not None:
            resolution_updates["check_keystore"] = options.check_keystore
        registry_updates: dict[str, Any] = {}
        if options.check_registry is not None:
            registry_updates["enabled"] = options.check_registry
        storage_updates: dict[str, Any] = {}
        if options.output_dir is not None:
            storage_updates["base_path"] = options.output_dir
        return self.config.model_copy(
            update={
                "audit": self.config.audit.model_copy(update=audit_updates),
                "resolution": self.config.resolution.model_copy(update=resolution_updates),
                "registry": self.config.registry.model_copy(update=registry_updates),
                "storage": self.config.storage.model_copy(update=storage_updates),
            }
        )

    @staticmethod
    def _finish(stage: StageResult, result: ServiceResult[T], artifacts: list[str] | None = None) -> T:
        """Record a service result on its stage and return the data.

        Raises:
            PipelineError: If the service failed.
        """
        stage.warnings.extend(result.warnings)
        stage.metadata.update(result.metadata)
        if not result.success or result.data is None:
            stage.mark_failed(result.error or "unknown error")
            raise PipelineError(message=result.error or "unknown error", stage=stage.stage_name)
        stage.mark_completed(artifacts)
        return result.data

    async def run(self, options: AuditOptions) -> AuditRun:
        """Run the audit pipeline.

        Args:
            options: What to audit and how

        Returns:
            AuditRun with the plan, the report and per-stage records
        """
        run_id = str(uuid.uuid4())[:8]
        config = self._effective_config(options)
        run = AuditRun(
            run_id=run_id,
            descriptor_path=options.path,
            started_at=utc_now(),
            stages={name: StageResult(stage_name=name) for name in STAGES},
        )
        bind_context(run_id=run_id)
        logger.info("Starting audit", path=str(options.path), strict=config.audit.strict)

        try:
            # Stage 1: load
            stage = run.stages["load"]
            stage.mark_running()
            loaded = await DescriptorLoader().load(LoadInput(path=options.path))
            descriptor = self._finish(stage, loaded).descriptor
            run.descriptor = descriptor
            run.descriptor_path = descriptor.path

            # Stage 2: resolve
            stage = run.stages["resolve"]
            stage.mark_running()
            try:
                environment = (
                    dict(options.environment)
                    if options.environment is not None
                    else build_environment(options.env_file)
                )
            except GradleGuardError as e:
                stage.mark_failed(str(e))
                raise PipelineError(message=str(e), stage="resolve", cause=e) from e
            properties = collect_properties(
                descriptor.path,
                config.resolution.property_files,
                config.resolution.toolchain_properties,
                options.properties,
            )
            resolved = await PlanResolver(config.resolution).resolve(
                ResolutionInput(descriptor=descriptor, environment=environment, properties=properties)
            )
            run.plan = self._finish(stage, resolved)

            # Stage 3: registry
            stage = run.stages["registry"]
            statuses: list[DependencyStatus] = []
            if config.registry.enabled:
                stage.mark_running()
                client = self._registry or MavenRegistryClient(config.registry)
                statuses = await client.check(descriptor.dependencies, descriptor.repositories)
                stage.metadata["checked"] = len(statuses)
                stage.mark_completed()
            else:
                stage.mark_skipped("registry check disabled")

            # Stage 4: audit
            stage = run.stages["audit"]
            stage.mark_running()
            audited = await DescriptorAuditor(config.audit).audit(
                AuditInput(descriptor=descriptor, plan=run.plan, dependency_status=statuses)
            )
            run.report = self._finish(stage, audited)

            # Stage 5: report
            stage = run.stages["report"]
            if options.write_report:
                stage.mark_running()
                storage = self._storage or LocalStorageBackend(config.storage.base_path)
                written = await ReportWriter(storage).write(run.report, run.plan, run_id)
                artifacts = written.data.artifacts if written.data else []
                self._finish(stage, written, artifacts)
                run.artifacts = artifacts
                local = storage.get_local_path(f"runs/{run_id}")
                run.output_directory = str(local) if local else ""
            else:
                stage.mark_skipped("report writing disabled")

            run.success = True

        except PipelineError as e:
            e.run_id = run_id
            run.error = e.message
            run.failed_stage = e.stage
            for stage in run.stages.values():
                if stage.status == StageStatus.PENDING:
                    stage.mark_skipped(f"stage '{e.stage}' failed")
            logger.error("Audit run failed", stage=e.stage, error=e.message)
        finally:
            run.completed_at = utc_now()
            clear_context()

        if run.report is not None:
            logger.info("Audit run finished", passed=run.passed, **run.report.counts)
        return run


async def run_audit(options: AuditOptions, config: Config | None = None) -> AuditRun:
    """Convenience function to run the pipeline.

    Args:
        options: What to audit and how
        config: Configuration, defaults to the environment configuration

    Returns:
        AuditRun with all outputs
    """
    pipeline = AuditPipeline(config=config)
    return await pipeline.run(options)
