"""
gradleguard CLI.

Command-line interface for auditing Android build descriptors.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .core.config import Config, get_config
from .core.exceptions import GradleGuardError
from .core.logging import setup_logging

app = typer.Typer(
    name="gradleguard",
    help="Static resolution and auditing of Android build descriptors",
    add_completion=False,
)

console = Console()

EXIT_FAILED_AUDIT = 1
EXIT_STAGE_ERROR = 2

SEVERITY_STYLES = {"error": "bold red", "warning": "yellow", "info": "dim"}
SOURCE_STYLES = {
    "environment": "green",
    "literal": "white",
    "property": "cyan",
    "default": "dim",
    "fallback": "yellow",
    "unresolved": "red",
}


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        from . import __version__
        console.print(f"gradleguard v{__version__}")
        raise typer.Exit()


@app.callback()
def root(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """gradleguard: check a build.gradle(.kts) before the toolchain runs."""


def _configure(verbose: bool) -> Config:
    config = get_config()
    if verbose:
        config = config.model_copy(update={"log_level": "DEBUG"})
    setup_logging(config)
    return config


def _properties(pairs: Optional[list[str]]) -> dict[str, str]:
    from .services.resolution import parse_assignments

    try:
        return parse_assignments(pairs or [])
    except GradleGuardError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(EXIT_STAGE_ERROR) from e


def _styled(value: Any, source: str) -> str:
    style = SOURCE_STYLES.get(source, "white")
    shown = "-" if value is None else str(value)
    return f"[{style}]{shown}[/{style}] [dim]({source})[/dim]"


def _render_findings(findings: list[Any]) -> None:
    if not findings:
        console.print("[green]No findings[/green]")
        return
    table = Table(title="Findings")
    table.add_column("Severity")
    table.add_column("Rule", style="cyan")
    table.add_column("Variant")
    table.add_column("Line", justify="right")
    table.add_column("Message")
    for finding in findings:
        style = SEVERITY_STYLES[finding.severity.value]
        table.add_row(
            f"[{style}]{finding.severity.value}[/{style}]",
            finding.rule_id,
            finding.variant or "",
            str(finding.line) if finding.line else "",
            finding.message,
        )
    console.print(table)


def _render_plan(plan: Any, variant: Optional[str] = None) -> None:
    table = Table(title="Build Plan")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Namespace", plan.namespace or "-")
    table.add_row("Application ID", plan.application_id or "-")
    table.add_row("minSdk", _styled(plan.sdk.min_sdk.value, plan.sdk.min_sdk.source.value))
    table.add_row("targetSdk", _styled(plan.sdk.target_sdk.value, plan.sdk.target_sdk.source.value))
    table.add_row("compileSdk", _styled(plan.sdk.compile_sdk.value, plan.sdk.compile_sdk.source.value))
    table.add_row("versionCode", _styled(plan.version_code.value, plan.version_code.source.value))
    table.add_row("versionName", _styled(plan.version_name.value, plan.version_name.source.value))
    console.print(table)

    for name, entry in plan.variants.items():
        if variant and name != variant:
            continue
        vt = Table(title=f"Variant: {name}")
        vt.add_column("Setting", style="cyan")
        vt.add_column("Value")
        vt.add_row("Application ID", entry.application_id or "-")
        vt.add_row("Version name", entry.version_name or "-")
        vt.add_row("Debuggable", str(entry.debuggable))
        vt.add_row("Minify / shrink", f"{entry.minify_enabled} / {entry.shrink_resources}")
        for field_name, value in entry.build_config_fields.items():
            vt.add_row(f"BuildConfig.{field_name}", str(value))
        masked = entry.signing.masked() if entry.signing else None
        if masked is None:
            vt.add_row("Signing", "[yellow]unsigned[/yellow]")
        else:
            vt.add_row("Signing", "platform debug keystore" if masked["implicit"] else masked["name"])
            for field_name in ("key_alias", "key_password", "store_file", "store_password"):
                item = masked[field_name]
                env = f" ${item['env_var']}" if item["env_var"] else ""
                vt.add_row(f"  {field_name}{env}", _styled(item["value"], item["source"]))
        console.print(vt)

    if plan.unresolved:
        console.print("\n[bold yellow]Unresolved settings:[/bold yellow]")
        for item in plan.unresolved:
            console.print(f"  • {item.name} (line {item.line}): {item.reason}")


@app.command()
def audit(
    path: Path = typer.Argument(
        ...,
        help="build.gradle(.kts) file or module directory",
        exists=True,
        resolve_path=True,
    ),
    env_file: Optional[Path] = typer.Option(
        None, "--env-file", "-e", help="dotenv file overlaid on the process environment"
    ),
    properties: Optional[list[str]] = typer.Option(
        None, "--property", "-P", help="Property override, key=value (repeatable)"
    ),
    strict: Optional[bool] = typer.Option(
        None, "--strict/--no-strict", help="Fail on release signing fallbacks (default: on in CI)"
    ),
    check_registry: Optional[bool] = typer.Option(
        None, "--check-registry/--no-check-registry", help="Look dependencies up in Maven repositories"
    ),
    check_keystore: Optional[bool] = typer.Option(
        None, "--check-keystore/--no-check-keystore", help="Verify keystore files exist"
    ),
    output_dir: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Report directory"
    ),
    fail_on: Optional[str] = typer.Option(
        None, "--fail-on", help="Lowest severity that fails the audit: error or warning"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the JSON snapshot to stdout"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable verbose logging"),
) -> None:
    """Resolve and audit a build descriptor.

    Exits 1 when the audit fails and 2 when a stage cannot complete.
    """
    config = _configure(verbose)
    if fail_on is not None and fail_on not in ("error", "warning"):
        console.print(f"[red]--fail-on must be 'error' or 'warning', got {fail_on!r}[/red]")
        raise typer.Exit(EXIT_STAGE_ERROR)

    from .orchestration import AuditOptions, AuditPipeline
    from .services.reporting import build_snapshot

    options = AuditOptions(
        path=path,
        env_file=env_file,
        properties=_properties(properties),
        strict=strict,
        fail_on=fail_on,  # type: ignore[arg-type]
        check_registry=check_registry,
        check_keystore=check_keystore,
        output_dir=output_dir,
    )

    result = asyncio.run(AuditPipeline(config=config).run(options))

    if not result.success:
        console.print("\n[bold red]✗ Audit could not complete[/bold red]")
        console.print(f"Error: {result.error}")
        if result.failed_stage:
            console.print(f"Failed at: {result.failed_stage}")
        raise typer.Exit(EXIT_STAGE_ERROR)

    report = result.report
    if report is None:
        raise typer.Exit(EXIT_STAGE_ERROR)

    if as_json:
        typer.echo(json.dumps(build_snapshot(report, result.plan, result.run_id), indent=2))
    else:
        console.print(Panel.fit(
            f"[bold blue]gradleguard[/bold blue]\n{result.descriptor_path}",
            border_style="blue",
        ))
        _render_findings(report.findings)

        counts = report.counts
        summary = Table(title="Audit Summary")
        summary.add_column("Metric", style="cyan")
        summary.add_column("Value")
        summary.add_row("Run ID", result.run_id)
        summary.add_row("Strict", str(report.strict))
        summary.add_row("Errors", str(counts["error"]))
        summary.add_row("Warnings", str(counts["warning"]))
        summary.add_row("Info", str(counts["info"]))
        summary.add_row("Result", "[green]PASSED[/green]" if report.passed else "[red]FAILED[/red]")
        console.print(summary)
        if result.output_directory:
            console.print(f"\n[bold]Reports:[/bold] {result.output_directory}")

    if not report.passed:
        raise typer.Exit(EXIT_FAILED_AUDIT)


@app.command()
def plan(
    path: Path = typer.Argument(
        ...,
        help="build.gradle(.kts) file or module directory",
        exists=True,
        resolve_path=True,
    ),
    variant: Optional[str] = typer.Option(None, "--variant", help="Only show this build variant"),
    env_file: Optional[Path] = typer.Option(None, "--env-file", "-e", help="dotenv file"),
    properties: Optional[list[str]] = typer.Option(
        None, "--property", "-P", help="Property override, key=value (repeatable)"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the plan as JSON"),
) -> None:
    """Show the resolved build plan (secrets masked)."""
    config = _configure(False)
    overrides = _properties(properties)

    async def run_async() -> Any:
        from .services.loading import DescriptorLoader, LoadInput
        from .services.resolution import (
            PlanResolver,
            ResolutionInput,
            build_environment,
            collect_properties,
        )

        loaded = await DescriptorLoader().load(LoadInput(path=path))
        if not loaded.success or loaded.data is None:
            console.print(f"[red]Loading failed: {loaded.error}[/red]")
            raise typer.Exit(EXIT_STAGE_ERROR)
        descriptor = loaded.data.descriptor
        try:
            environment = build_environment(env_file)
        except GradleGuardError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(EXIT_STAGE_ERROR) from e
        table = collect_properties(
            descriptor.path,
            config.resolution.property_files,
            config.resolution.toolchain_properties,
            overrides,
        )
        resolved = await PlanResolver(config.resolution).resolve(
            ResolutionInput(descriptor=descriptor, environment=environment, properties=table)
        )
        if not resolved.success or resolved.data is None:
            console.print(f"[red]Resolution failed: {resolved.error}[/red]")
            raise typer.Exit(EXIT_STAGE_ERROR)
        return resolved.data

    build_plan = asyncio.run(run_async())
    if variant and build_plan.variant(variant) is None:
        console.print(f"[red]Unknown variant {variant!r}; known: {', '.join(build_plan.variants)}[/red]")
        raise typer.Exit(EXIT_STAGE_ERROR)

    if as_json:
        data = build_plan.masked()
        if variant:
            data["variants"] = {variant: data["variants"][variant]}
        typer.echo(json.dumps(data, indent=2))
    else:
        _render_plan(build_plan, variant)


@app.command()
def deps(
    path: Path = typer.Argument(
        ...,
        help="build.gradle(.kts) file or module directory",
        exists=True,
        resolve_path=True,
    ),
) -> None:
    """List declared dependencies."""
    _configure(False)

    async def run_async() -> Any:
        from .services.loading import DescriptorLoader, LoadInput

        loaded = await DescriptorLoader().load(LoadInput(path=path))
        if not loaded.success or loaded.data is None:
            console.print(f"[red]Loading failed: {loaded.error}[/red]")
            raise typer.Exit(EXIT_STAGE_ERROR)
        return loaded.data.descriptor

    descriptor = asyncio.run(run_async())

    table = Table(title=f"Dependencies ({len(descriptor.dependencies)})")
    table.add_column("Line", justify="right")
    table.add_column("Configuration", style="cyan")
    table.add_column("Kind")
    table.add_column("Group")
    table.add_column("Artifact")
    table.add_column("Version", style="green")
    for dep in descriptor.dependencies:
        table.add_row(
            str(dep.line),
            dep.configuration,
            dep.kind.value,
            dep.group or "",
            dep.artifact or dep.notation,
            dep.version or "",
        )
    console.print(table)

    if descriptor.repositories:
        console.print("\n[bold]Repositories:[/bold]")
        for repo in descriptor.repositories:
            console.print(f"  • {repo.name}: {repo.url or '-'}")


@app.command()
def config() -> None:
    """Show the effective configuration."""
    cfg = get_config()

    table = Table(title="Current Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    table.add_row("Log Level", cfg.log_level)
    table.add_row("Strict", str(cfg.audit.strict))
    table.add_row("Fail On", cfg.audit.fail_on)
    table.add_row("Minimum targetSdk", str(cfg.audit.minimum_target_sdk))
    table.add_row("Variant Flags", ", ".join(cfg.audit.variant_flags))
    table.add_row("Registry Check", str(cfg.registry.enabled))
    table.add_row("Repositories", ", ".join(cfg.registry.repositories))
    table.add_row("Local Repository", str(cfg.registry.local_repository or "-"))
    table.add_row("Check Keystore", str(cfg.resolution.check_keystore))
    table.add_row("Property Files", ", ".join(cfg.resolution.property_files))
    table.add_row("Storage Path", str(cfg.storage.base_path))

    console.print(table)

    console.print("\n[dim]Configure via environment variables:[/dim]")
    console.print("  GRADLEGUARD_LOG_LEVEL, GRADLEGUARD_STRICT, GRADLEGUARD_FAIL_ON, CI")
    console.print("  GRADLEGUARD_CHECK_REGISTRY, GRADLEGUARD_CHECK_KEYSTORE, GRADLEGUARD_LOCAL_REPOSITORY")
    console.print("  GRADLEGUARD_OUTPUT_PATH, GRADLEGUARD_OFFLINE")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
