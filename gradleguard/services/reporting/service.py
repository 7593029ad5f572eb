"""
Report Writing Service.

Renders an audit run as a JSON snapshot and a Markdown report and stores
both through the storage backend. Signing secrets are masked in both.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from ... import __version__
from ...core.logging import get_logger
from ...core.types import ServiceResult, StorageKey, utc_now
from ...models.findings import AuditReport
from ...models.plan import BuildPlan
from ...storage import StorageBackend, run_key

logger = get_logger(__name__)

SCHEMA_VERSION = "1.0.0"
JSON_REPORT = "gradleguard.json"
MARKDOWN_REPORT = "gradleguard_report.md"


class ReportOutput(BaseModel):
    """Keys of the stored report artifacts."""

    json_key: StorageKey
    markdown_key: StorageKey
    artifacts: list[StorageKey] = Field(default_factory=list)


def build_snapshot(report: AuditReport, plan: BuildPlan | None, run_id: str) -> dict[str, Any]:
    """JSON-ready view of one run, with secrets masked."""
    report_data = report.model_dump(mode="json")
    report_data["counts"] = report.counts
    report_data["passed"] = report.passed
    return {
        "run_metadata": {
            "run_id": run_id,
            "timestamp_utc": utc_now().isoformat(),
            "tool_version": __version__,
            "schema_version": SCHEMA_VERSION,
            "descriptor": str(report.descriptor_path),
        },
        "audit": report_data,
        "plan": plan.masked() if plan is not None else None,
    }


def _fmt(value: Any) -> str:
    return "n/a" if value is None or value == "" else str(value)


def render_markdown(snapshot: dict[str, Any]) -> str:
    lines: list[str] = []
    lines.append("# gradleguard Report")
    lines.append("")

    meta = snapshot["run_metadata"]
    audit = snapshot["audit"]
    lines.append("## Run Metadata")
    lines.append(f"- Timestamp (UTC): {meta['timestamp_utc']}")
    lines.append(f"- Run ID: {meta['run_id']}")
    lines.append(f"- Tool version: {meta['tool_version']}")
    lines.append(f"- Descriptor: {meta['descriptor']}")
    lines.append(f"- Strict mode: {audit['strict']}")
    lines.append(f"- Fails on: {audit['fail_on']}")
    lines.append(f"- Result: {'PASSED' if audit['passed'] else 'FAILED'}")
    counts = audit["counts"]
    lines.append(
        f"- Findings: {counts['error']} error(s), {counts['warning']} warning(s), {counts['info']} info"
    )
    lines.append("")

    plan = snapshot.get("plan")
    if plan:
        lines.append("## Build Plan")
        lines.append(f"- Namespace: {_fmt(plan['namespace'])}")
        lines.append(f"- Application ID: {_fmt(plan['application_id'])}")
        lines.append(f"- Version: {_fmt(plan['version_name']['value'])} ({_fmt(plan['version_code']['value'])})")
        lines.append(f"- Plugins: {', '.join(p['id'] for p in plan['plugins']) or 'none'}")
        lines.append(
            f"- Java: source {_fmt(plan['source_compatibility'])}, "
            f"target {_fmt(plan['target_compatibility'])}, jvmTarget {_fmt(plan['jvm_target'])}"
        )
        lines.append("")

        lines.append("## SDK Bounds")
        lines.append("| Bound | Value | Source |")
        lines.append("|---|---|---|")
        for label, key in (("minSdk", "min_sdk"), ("targetSdk", "target_sdk"), ("compileSdk", "compile_sdk")):
            bound = plan["sdk"][key]
            lines.append(f"| {label} | {_fmt(bound['value'])} | {bound['source']} |")
        lines.append("")

        lines.append("## Variants")
        for name, variant in plan["variants"].items():
            lines.append(f"### {name}")
            lines.append(f"- Application ID: {_fmt(variant['application_id'])}")
            lines.append(f"- Version name: {_fmt(variant['version_name'])}")
            lines.append(f"- Debuggable: {variant['debuggable']}")
            lines.append(f"- Minify: {variant['minify_enabled']}, shrink resources: {variant['shrink_resources']}")
            if variant["build_config_fields"]:
                lines.append("- BuildConfig:")
                for field_name, value in variant["build_config_fields"].items():
                    lines.append(f"  - {field_name} = {value}")
            signing = variant["signing"]
            if signing is None:
                lines.append("- Signing: unsigned")
            else:
                label = "platform debug keystore" if signing["implicit"] else signing["name"]
                lines.append(f"- Signing: {label}")
                for field_name in ("key_alias", "key_password", "store_file", "store_password"):
                    entry = signing[field_name]
                    env = f" (${entry['env_var']})" if entry["env_var"] else ""
                    lines.append(f"  - {field_name}: {_fmt(entry['value'])} from {entry['source']}{env}")
            lines.append("")

    lines.append("## Findings")
    findings = audit["findings"]
    if findings:
        lines.append("| Severity | Rule | Variant | Line | Message |")
        lines.append("|---|---|---|---|---|")
        for finding in findings:
            message = finding["message"].replace("|", "\\|")
            lines.append(
                f"| {finding['severity']} | {finding['rule_id']} | {_fmt(finding['variant'])} "
                f"| {_fmt(finding['line'])} | {message} |"
            )
    else:
        lines.append("- No findings")
    lines.append("")

    statuses = audit["dependency_status"]
    if statuses:
        lines.append("## Dependency Lookups")
        for status in statuses:
            state = {True: "found", False: "missing", None: "unknown"}[status["resolvable"]]
            where = f" in {status['repository']}" if status["repository"] else ""
            error = f" ({status['error']})" if status["error"] else ""
            lines.append(f"- {status['coordinate']}: {state}{where}{error}")
        lines.append("")

    recommendations = _build_recommendations(findings)
    if recommendations:
        lines.append("## Recommendations")
        for rec in recommendations:
            lines.append(f"- {rec}")
        lines.append("")

    return "\n".join(lines)


def _build_recommendations(findings: list[dict[str, Any]]) -> list[str]:
    recommendations: list[str] = []
    for finding in findings:
        hint = finding.get("hint")
        if hint and finding["severity"] != "info" and hint not in recommendations:
            recommendations.append(hint)
    return recommendations


class ReportWriter:
    """Service that stores the report artifacts of a run."""

    def __init__(self, storage: StorageBackend) -> None:
        self.storage = storage

    async def write(
        self, report: AuditReport, plan: BuildPlan | None, run_id: str
    ) -> ServiceResult[ReportOutput]:
        """Store the JSON snapshot and Markdown report of a run.

        Args:
            report: Audit result
            plan: Resolved build plan, if resolution succeeded
            run_id: Run identifier used in the storage keys

        Returns:
            ServiceResult containing the stored keys or error
        """
        try:
            snapshot = build_snapshot(report, plan, run_id)
            metadata = {"run_id": run_id, "passed": report.passed}
            json_key = await self.storage.store_json(run_key(run_id, JSON_REPORT), snapshot, metadata)
            markdown_key = await self.storage.store_text(
                run_key(run_id, MARKDOWN_REPORT), render_markdown(snapshot), metadata
            )
        except OSError as e:
            logger.error("Failed to store report", run_id=run_id, error=str(e))
            return ServiceResult.fail(f"Could not store report: {e}")

        logger.info("Report stored", run_id=run_id, json=json_key, markdown=markdown_key)
        return ServiceResult.ok(
            ReportOutput(json_key=json_key, markdown_key=markdown_key, artifacts=[json_key, markdown_key])
        )
