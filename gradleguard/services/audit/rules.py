"""
Audit rules.

Each rule takes an :class:`AuditContext` and yields findings. Rules never
raise for descriptor content; anything they cannot judge is skipped or
reported at low severity.
"""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Iterator

from ...core.config import AuditConfig
from ...models.descriptor import BuildDescriptor, DependencyDeclaration, DependencyKind
from ...models.findings import DependencyStatus, Finding, Severity
from ...models.plan import SECRET_FIELDS, BuildPlan
from ..resolution.service import as_int

_IDENTIFIER = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.\-]*$")
_VERSION = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.\-+]*$")
_PRERELEASE = re.compile(r"(?i)(?:^|[.\-_])(alpha|beta|rc|cr|m|dev|eap|preview|snapshot)[.\-_]?\d*(?:$|[.\-_])")
_DYNAMIC = re.compile(r"(\+$|^latest\.|^[\[\(].*[\]\)]$)")

SIGNING_FIELD_NAMES = {
    "key_alias": "keyAlias",
    "key_password": "keyPassword",
    "store_file": "storeFile",
    "store_password": "storePassword",
}
MULTIDEX_ARTIFACTS = {"androidx.multidex:multidex", "com.android.support:multidex"}


@dataclass
class AuditContext:
    """Everything a rule may inspect."""

    descriptor: BuildDescriptor
    plan: BuildPlan
    config: AuditConfig
    dependency_status: list[DependencyStatus] = field(default_factory=list)

    @property
    def strict(self) -> bool:
        return self.config.strict


Rule = Callable[[AuditContext], Iterator[Finding]]


def is_dynamic_version(version: str) -> bool:
    """``1.+``, ``latest.release`` and ``[1.0,2.0)`` style versions."""
    return bool(_DYNAMIC.search(version))


def is_prerelease_version(version: str) -> bool:
    """``1.1.0-alpha06``, ``2.0.0-rc1``, ``1.0-SNAPSHOT`` and the like."""
    return bool(_PRERELEASE.search(version))


def _module_dependencies(context: AuditContext) -> Iterator[DependencyDeclaration]:
    for dependency in context.descriptor.dependencies:
        if dependency.kind in (DependencyKind.MODULE, DependencyKind.PLATFORM):
            yield dependency


# -- dependencies ----------------------------------------------------------


def dependency_format(context: AuditContext) -> Iterator[Finding]:
    for dep in _module_dependencies(context):
        if dep.group is None or dep.artifact is None:
            yield Finding(
                rule_id="dependency-malformed",
                severity=Severity.ERROR,
                message=f"'{dep.notation}' is not a group:artifact:version coordinate",
                line=dep.line,
                hint="Declare dependencies as \"group:artifact:version\"",
            )
            continue
        if not _IDENTIFIER.match(dep.group) or not _IDENTIFIER.match(dep.artifact):
            yield Finding(
                rule_id="dependency-malformed",
                severity=Severity.ERROR,
                message=f"'{dep.notation}' has an invalid group or artifact",
                line=dep.line,
                hint="Group and artifact may only contain letters, digits, '.', '-' and '_'",
            )
            continue

        version = dep.version
        if version is None:
            # A platform supplies versions to the modules it constrains.
            if dep.kind == DependencyKind.MODULE and not _managed_by_platform(context):
                yield Finding(
                    rule_id="dependency-unpinned",
                    severity=Severity.ERROR,
                    message=f"{dep.module} has no version",
                    line=dep.line,
                    hint="Pin an exact version",
                )
            continue
        if "$" in version:
            yield Finding(
                rule_id="dependency-unpinned",
                severity=Severity.WARNING,
                message=f"{dep.module} version '{version}' is computed and cannot be checked",
                line=dep.line,
                hint="Use a literal version or a version catalog entry",
            )
            continue
        if is_dynamic_version(version):
            yield Finding(
                rule_id="dependency-unpinned",
                severity=Severity.ERROR,
                message=f"{dep.module} uses dynamic version '{version}'",
                line=dep.line,
                hint="Dynamic versions make builds irreproducible; pin an exact version",
            )
            continue
        if not _VERSION.match(version):
            yield Finding(
                rule_id="dependency-malformed",
                severity=Severity.ERROR,
                message=f"{dep.module} has an invalid version '{version}'",
                line=dep.line,
            )
            continue
        if is_prerelease_version(version):
            yield Finding(
                rule_id="dependency-prerelease",
                severity=Severity.WARNING,
                message=f"{dep.module} is pinned to pre-release {version}",
                line=dep.line,
                hint="Prefer a stable release for production builds",
            )


def _managed_by_platform(context: AuditContext) -> bool:
    return any(d.kind == DependencyKind.PLATFORM for d in context.descriptor.dependencies)


def dependency_duplicates(context: AuditContext) -> Iterator[Finding]:
    seen: dict[tuple[str, str], list[DependencyDeclaration]] = defaultdict(list)
    for dep in _module_dependencies(context):
        if dep.module is not None:
            seen[(dep.configuration, dep.module)].append(dep)
    for (configuration, module), declarations in seen.items():
        if len(declarations) < 2:
            continue
        versions = sorted({d.version or "" for d in declarations})
        conflicting = len(versions) > 1
        yield Finding(
            rule_id="dependency-duplicate",
            severity=Severity.ERROR if conflicting else Severity.WARNING,
            message=(
                f"{module} is declared {len(declarations)} times in {configuration}"
                + (f" with versions {', '.join(v or '<none>' for v in versions)}" if conflicting else "")
            ),
            line=declarations[1].line,
            hint="Keep a single declaration",
        )


def dependency_alignment(context: AuditContext) -> Iterator[Finding]:
    families: dict[str, dict[str, list[DependencyDeclaration]]] = defaultdict(lambda: defaultdict(list))
    for dep in _module_dependencies(context):
        if dep.group is None or dep.version is None:
            continue
        for prefix in context.config.aligned_group_prefixes:
            if dep.group == prefix or dep.group.startswith(prefix + "."):
                families[prefix][dep.version].append(dep)
                break
    for prefix, by_version in families.items():
        if len(by_version) < 2:
            continue
        detail = "; ".join(
            f"{version}: {', '.join(sorted({d.artifact or '' for d in deps}))}"
            for version, deps in sorted(by_version.items())
        )
        first_line = min(d.line for deps in by_version.values() for d in deps)
        yield Finding(
            rule_id="dependency-misaligned",
            severity=Severity.WARNING,
            message=f"{prefix} artifacts use different versions ({detail})",
            line=first_line,
            hint="Artifacts of one family are released together; align their versions",
        )


def dependency_registry(context: AuditContext) -> Iterator[Finding]:
    lines = {d.coordinate: d.line for d in context.descriptor.dependencies}
    for status in context.dependency_status:
        if status.resolvable is False:
            yield Finding(
                rule_id="dependency-unresolvable",
                severity=Severity.ERROR,
                message=f"{status.coordinate} was not found in any repository",
                line=lines.get(status.coordinate),
                hint="Check the coordinate for typos and that its repository is declared",
            )
        elif status.resolvable is None:
            yield Finding(
                rule_id="dependency-unresolvable",
                severity=Severity.WARNING,
                message=f"{status.coordinate} could not be checked: {status.error}",
                line=lines.get(status.coordinate),
            )


# -- SDK bounds ------------------------------------------------------------


def sdk_bounds(context: AuditContext) -> Iterator[Finding]:
    sdk = context.plan.sdk
    min_sdk, target_sdk, compile_sdk = sdk.as_ints()
    named = {"minSdk": sdk.min_sdk, "targetSdk": sdk.target_sdk, "compileSdk": sdk.compile_sdk}
    missing = [name for name, value in named.items() if as_int(value.value) is None]
    for name in missing:
        value = named[name]
        yield Finding(
            rule_id="sdk-unresolved",
            severity=Severity.WARNING,
            message=f"{name} could not be resolved ({value.text or 'not declared'})",
            line=value.line or None,
            hint="Define the property it refers to, or pass it with --property",
        )

    if min_sdk is not None and target_sdk is not None and min_sdk > target_sdk:
        yield Finding(
            rule_id="sdk-order",
            severity=Severity.ERROR,
            message=f"minSdk {min_sdk} is greater than targetSdk {target_sdk}",
            line=sdk.min_sdk.line or None,
        )
    if target_sdk is not None and compile_sdk is not None and target_sdk > compile_sdk:
        yield Finding(
            rule_id="sdk-order",
            severity=Severity.ERROR,
            message=f"targetSdk {target_sdk} is greater than compileSdk {compile_sdk}",
            line=sdk.target_sdk.line or None,
        )
    elif target_sdk is None and min_sdk is not None and compile_sdk is not None and min_sdk > compile_sdk:
        yield Finding(
            rule_id="sdk-order",
            severity=Severity.ERROR,
            message=f"minSdk {min_sdk} is greater than compileSdk {compile_sdk}",
            line=sdk.min_sdk.line or None,
        )

    minimum = context.config.minimum_target_sdk
    if target_sdk is not None and target_sdk < minimum:
        yield Finding(
            rule_id="sdk-target-policy",
            severity=Severity.WARNING,
            message=f"targetSdk {target_sdk} is below the required minimum {minimum}",
            line=sdk.target_sdk.line or None,
            hint=f"Raise targetSdk to at least {minimum}",
        )


# -- signing ---------------------------------------------------------------


def signing_fallbacks(context: AuditContext) -> Iterator[Finding]:
    release = context.plan.variant("release")
    if release is None or release.signing is None or release.signing.implicit:
        return
    severity = Severity.ERROR if context.strict else Severity.WARNING
    for name in release.signing.fallback_fields:
        value = release.signing.credential_fields()[name]
        source = f"environment variable {value.env_var} is not set" if value.env_var else "no value is set"
        yield Finding(
            rule_id="signing-fallback",
            severity=severity,
            message=(
                f"release {SIGNING_FIELD_NAMES[name]} falls back to a committed default "
                f"because {source}"
            ),
            variant="release",
            line=value.line or None,
            hint=(
                f"Export {value.env_var} in the release environment"
                if value.env_var
                else "Provide the value from the environment"
            ),
        )


def signing_committed_secrets(context: AuditContext) -> Iterator[Finding]:
    for decl in context.descriptor.signing_configs.values():
        for attr in sorted(SECRET_FIELDS):
            setting = getattr(decl, attr)
            if setting is None or setting.committed_value is None:
                continue
            kind = "fallback" if setting.env_var or setting.reference else "literal"
            yield Finding(
                rule_id="signing-committed-secret",
                severity=Severity.WARNING,
                message=(
                    f"signing config '{decl.name}' commits a {kind} "
                    f"{SIGNING_FIELD_NAMES[attr]} to the build script"
                ),
                line=setting.line or decl.line or None,
                hint="Read credentials from the environment or an uncommitted properties file",
            )


def signing_keystores(context: AuditContext) -> Iterator[Finding]:
    for variant in context.plan.variants.values():
        signing = variant.signing
        if signing is None or signing.implicit or signing.store_exists is not False:
            continue
        yield Finding(
            rule_id="signing-keystore-missing",
            severity=Severity.ERROR,
            message=f"{variant.name} keystore {signing.store_path} does not exist",
            variant=variant.name,
            line=signing.store_file.line or None,
        )


def signing_presence(context: AuditContext) -> Iterator[Finding]:
    release = context.plan.variant("release")
    if release is None:
        return
    if release.signing is None:
        yield Finding(
            rule_id="signing-missing",
            severity=Severity.WARNING,
            message="release has no signing config and will produce an unsigned package",
            variant="release",
            hint="Set signingConfig in buildTypes.release",
        )
    elif release.signing.implicit:
        yield Finding(
            rule_id="signing-missing",
            severity=Severity.WARNING,
            message="release is signed with the debug keystore",
            variant="release",
            hint="Create a release signing config",
        )


# -- variants --------------------------------------------------------------


def variant_flag_separation(context: AuditContext) -> Iterator[Finding]:
    for flag, expectations in context.config.variant_flags.items():
        for variant_name, expected in expectations.items():
            variant = context.plan.variant(variant_name)
            if variant is None:
                continue
            decl = context.descriptor.build_type(variant_name)
            line = next(
                (f.line for f in (decl.build_config_fields if decl else []) if f.name == flag),
                decl.line if decl else None,
            )
            if flag not in variant.build_config_fields:
                yield Finding(
                    rule_id="variant-flag-separation",
                    severity=Severity.ERROR,
                    message=f"{variant_name} does not define BuildConfig.{flag}",
                    variant=variant_name,
                    line=line or None,
                    hint=f'buildConfigField("boolean", "{flag}", "{str(expected).lower()}")',
                )
                continue
            actual = variant.build_config_fields[flag]
            if actual is not expected:
                yield Finding(
                    rule_id="variant-flag-separation",
                    severity=Severity.ERROR,
                    message=f"{variant_name} sets BuildConfig.{flag} to {actual!r}, expected {expected}",
                    variant=variant_name,
                    line=line or None,
                )


def variant_release_debuggable(context: AuditContext) -> Iterator[Finding]:
    release = context.plan.variant("release")
    if release is not None and release.debuggable:
        decl = context.descriptor.build_type("release")
        yield Finding(
            rule_id="variant-release-debuggable",
            severity=Severity.ERROR,
            message="release is debuggable",
            variant="release",
            line=decl.debuggable.line if decl and decl.debuggable else None,
            hint="Remove isDebuggable = true from the release build type",
        )


def variant_application_ids(context: AuditContext) -> Iterator[Finding]:
    debug = context.plan.variant("debug")
    release = context.plan.variant("release")
    if debug and release and debug.application_id and debug.application_id == release.application_id:
        yield Finding(
            rule_id="variant-shared-application-id",
            severity=Severity.INFO,
            message=f"debug and release share application id {debug.application_id}",
            hint='Set applicationIdSuffix = ".debug" so both can be installed side by side',
        )


def shrink_requires_minify(context: AuditContext) -> Iterator[Finding]:
    for variant in context.plan.variants.values():
        if variant.shrink_resources and not variant.minify_enabled:
            decl = context.descriptor.build_type(variant.name)
            yield Finding(
                rule_id="shrink-requires-minify",
                severity=Severity.ERROR,
                message=f"{variant.name} shrinks resources without minification",
                variant=variant.name,
                line=decl.shrink_resources.line if decl and decl.shrink_resources else None,
                hint="Resource shrinking requires isMinifyEnabled = true",
            )


def build_config_feature(context: AuditContext) -> Iterator[Finding]:
    if context.plan.build_features.get("buildConfig") is not False:
        return
    declared = list(context.descriptor.default_config.build_config_fields)
    for decl in context.descriptor.build_types.values():
        declared.extend(decl.build_config_fields)
    if declared:
        yield Finding(
            rule_id="buildconfig-feature-disabled",
            severity=Severity.ERROR,
            message=f"{len(declared)} buildConfigField declaration(s) while buildFeatures.buildConfig is false",
            line=declared[0].line,
            hint="Set buildFeatures { buildConfig = true }",
        )


def _normalize_java(version: str | None) -> str | None:
    if version is None:
        return None
    text = version.strip().strip('"')
    return text[2:] if text.startswith("1.") and text != "1.8" else text


def jvm_target(context: AuditContext) -> Iterator[Finding]:
    plan = context.plan
    target = _normalize_java(plan.target_compatibility)
    jvm = _normalize_java(plan.jvm_target)
    if target and jvm and target != jvm:
        yield Finding(
            rule_id="jvm-target-mismatch",
            severity=Severity.WARNING,
            message=f"targetCompatibility {plan.target_compatibility} differs from jvmTarget {plan.jvm_target}",
            line=context.descriptor.jvm_target.line if context.descriptor.jvm_target else None,
            hint="Use the same Java version for Java and Kotlin compilation",
        )


def multidex_redundant(context: AuditContext) -> Iterator[Finding]:
    min_sdk = as_int(context.plan.sdk.min_sdk.value)
    if min_sdk is None or min_sdk < 21:
        return
    if any(variant.multidex_enabled for variant in context.plan.variants.values()):
        yield Finding(
            rule_id="multidex-redundant",
            severity=Severity.INFO,
            message=f"multiDexEnabled is redundant with minSdk {min_sdk}",
            line=context.descriptor.default_config.multidex_enabled.line
            if context.descriptor.default_config.multidex_enabled
            else None,
            hint="Native multidex is always on from API 21",
        )
    for dep in context.descriptor.dependencies:
        if dep.module in MULTIDEX_ARTIFACTS:
            yield Finding(
                rule_id="multidex-redundant",
                severity=Severity.INFO,
                message=f"{dep.module} is not needed with minSdk {min_sdk}",
                line=dep.line,
                hint="Remove the multidex support library",
            )


def application_id_placeholder(context: AuditContext) -> Iterator[Finding]:
    app_id = context.plan.application_id
    if app_id and (app_id == "com.example" or app_id.startswith("com.example.")):
        setting = context.descriptor.default_config.application_id or context.descriptor.namespace
        yield Finding(
            rule_id="application-id-placeholder",
            severity=Severity.WARNING,
            message=f"application id {app_id} is a template placeholder",
            line=setting.line if setting else None,
            hint="Stores reject com.example application ids",
        )


def descriptor_unsupported(context: AuditContext) -> Iterator[Finding]:
    for construct in context.descriptor.unsupported:
        where = f" in {construct.scope}" if construct.scope else ""
        yield Finding(
            rule_id="descriptor-unsupported",
            severity=Severity.INFO,
            message=f"not interpreted{where}: {construct.text}",
            line=construct.line,
        )


def unresolved_settings(context: AuditContext) -> Iterator[Finding]:
    sdk_keys = {"android.defaultConfig.minSdk", "android.defaultConfig.targetSdk", "android.compileSdk"}
    for item in context.plan.unresolved:
        if item.name in sdk_keys:
            continue  # reported by sdk-unresolved
        yield Finding(
            rule_id="descriptor-unsupported",
            severity=Severity.INFO,
            message=f"{item.name} is unresolved: {item.reason}",
            line=item.line or None,
        )


RULES: tuple[Rule, ...] = (
    dependency_format,
    dependency_duplicates,
    dependency_alignment,
    dependency_registry,
    sdk_bounds,
    signing_fallbacks,
    signing_committed_secrets,
    signing_keystores,
    signing_presence,
    variant_flag_separation,
    variant_release_debuggable,
    variant_application_ids,
    shrink_requires_minify,
    build_config_feature,
    jvm_target,
    multidex_redundant,
    application_id_placeholder,
    descriptor_unsupported,
    unresolved_settings,
)
