"""Unit tests for audit rules and the audit service."""

import pytest

from gradleguard.core.config import AuditConfig, ResolutionConfig
from gradleguard.models.findings import DependencyStatus, Severity
from gradleguard.services.audit import (
    AuditInput,
    DescriptorAuditor,
    is_dynamic_version,
    is_prerelease_version,
)
from gradleguard.services.resolution import PlanResolver, ResolutionInput

FLAGS = (
    "{name} {{\n"
    '            buildConfigField("boolean", "ENABLE_CRASH_REPORTING", "{value}")\n'
    '            buildConfigField("boolean", "ENABLE_ANALYTICS", "{value}")\n'
    "        }}\n"
)


def clean_descriptor(android="", dependencies="", release_extra=""):
    """A descriptor that passes every rule, with optional additions."""
    release = FLAGS.format(name="release", value="true").replace(
        "        }\n", f"{release_extra}        }}\n"
    )
    debug = FLAGS.format(name="debug", value="false").replace(
        "        }\n", '            applicationIdSuffix = ".debug"\n        }\n'
    )
    return (
        "android {\n"
        '    namespace = "org.acme.app"\n'
        "    compileSdk = 35\n"
        "    defaultConfig {\n"
        "        minSdk = 24\n"
        "        targetSdk = 35\n"
        "    }\n"
        "    signingConfigs {\n"
        '        create("release") {\n'
        '            keyAlias = System.getenv("KEY_ALIAS")\n'
        '            keyPassword = System.getenv("KEY_PASSWORD")\n'
        '            storeFile = file(System.getenv("KEYSTORE_PATH"))\n'
        '            storePassword = System.getenv("STORE_PASSWORD")\n'
        "        }\n"
        "    }\n"
        "    buildTypes {\n"
        f"        {release}"
        f"        {debug}"
        "    }\n"
        f"{android}"
        "}\n"
        "dependencies {\n"
        f"{dependencies}"
        "}\n"
    )


@pytest.fixture
def audit(load_descriptor, temp_dir):
    """Load, resolve and audit descriptor text."""

    def _audit(text, environment=None, properties=None, status=None, **config):
        resolution = ResolutionConfig(debug_keystore=temp_dir / "debug.keystore")
        descriptor = load_descriptor(text)
        table = dict(resolution.toolchain_properties)
        table.update(properties or {})
        plan = PlanResolver(resolution).resolve_plan(
            ResolutionInput(descriptor=descriptor, environment=environment or {}, properties=table)
        )
        auditor = DescriptorAuditor(AuditConfig(**config))
        return auditor.run_rules(
            AuditInput(descriptor=descriptor, plan=plan, dependency_status=status or [])
        )

    return _audit


@pytest.fixture
def signing_env():
    return {
        "KEY_ALIAS": "upload",
        "KEY_PASSWORD": "k",
        "KEYSTORE_PATH": "/keys/upload.jks",
        "STORE_PASSWORD": "s",
    }


def rule_ids(report):
    return [finding.rule_id for finding in report.findings]


class TestVersionHelpers:
    """Tests for version classification."""

    @pytest.mark.parametrize("version", ["1.+", "+", "latest.release", "[1.0,2.0)", "(,1.0]"])
    def test_dynamic(self, version):
        """Dynamic selectors are recognised."""
        assert is_dynamic_version(version)

    @pytest.mark.parametrize("version", ["1.0.0", "2.6.1", "1.1.0-alpha06"])
    def test_not_dynamic(self, version):
        """Exact versions are not dynamic."""
        assert not is_dynamic_version(version)

    @pytest.mark.parametrize(
        "version", ["1.1.0-alpha06", "2.0.0-beta01", "1.0.0-rc1", "1.0-SNAPSHOT", "1.9.20-dev-1234", "3.0.0-M1"]
    )
    def test_prerelease(self, version):
        """Pre-release qualifiers are recognised."""
        assert is_prerelease_version(version)

    @pytest.mark.parametrize("version", ["1.0.0", "2.7.0", "1.12.0", "33.0.0-android", "5.1.0-jre"])
    def test_stable(self, version):
        """Stable versions, including platform qualifiers, are not pre-releases."""
        assert not is_prerelease_version(version)


class TestSampleAudit:
    """Tests for auditing the Flutter sample."""

    def test_default_mode_passes_with_warnings(self, audit, sample_text):
        """Without the environment the sample passes with signing warnings."""
        report = audit(sample_text)
        assert report.passed
        assert report.counts == {"error": 0, "warning": 7, "info": 2}
        assert len(report.by_rule("signing-fallback")) == 4
        assert len(report.by_rule("signing-committed-secret")) == 2
        assert len(report.by_rule("dependency-prerelease")) == 1
        assert len(report.by_rule("multidex-redundant")) == 2

    def test_strict_mode_fails(self, audit, sample_text):
        """Strict mode turns release signing fallbacks into errors."""
        report = audit(sample_text, strict=True)
        assert not report.passed
        fallbacks = report.by_rule("signing-fallback")
        assert {f.severity for f in fallbacks} == {Severity.ERROR}
        assert report.counts["error"] == 4
        assert report.strict is True

    def test_strict_mode_with_environment_passes(self, audit, sample_text, release_env):
        """With every signing variable set, strict mode passes."""
        report = audit(sample_text, environment=release_env, strict=True)
        assert report.passed
        assert report.by_rule("signing-fallback") == []
        # the fallbacks are still committed to the script
        assert len(report.by_rule("signing-committed-secret")) == 2

    def test_fallback_finding_details(self, audit, sample_text):
        """Fallback findings name the variable and point at its line."""
        finding = next(f for f in audit(sample_text).findings if f.rule_id == "signing-fallback")
        assert finding.variant == "release"
        assert "keyAlias" in finding.message
        assert "KEY_ALIAS" in finding.message
        assert finding.line == 36

    def test_findings_are_sorted(self, audit, sample_text):
        """Findings are ordered by severity then line."""
        report = audit(sample_text, strict=True)
        ranks = [f.severity.rank for f in report.findings]
        assert ranks == sorted(ranks)

    def test_fail_on_warning(self, audit, sample_text, release_env):
        """fail_on=warning fails on the committed secrets."""
        report = audit(sample_text, environment=release_env, fail_on="warning")
        assert not report.passed


class TestCleanDescriptor:
    """Tests for the baseline used by the rule tests."""

    def test_clean_descriptor_has_no_findings(self, audit, signing_env):
        """The baseline descriptor produces no findings."""
        assert audit(clean_descriptor(), environment=signing_env).findings == []


class TestDependencyRules:
    """Tests for dependency rules."""

    def test_dynamic_version(self, audit, signing_env):
        """Dynamic versions are errors."""
        report = audit(
            clean_descriptor(dependencies='    implementation("com.squareup.okio:okio:3.+")\n'),
            environment=signing_env,
        )
        (finding,) = report.by_rule("dependency-unpinned")
        assert finding.severity == Severity.ERROR
        assert finding.line == 29

    def test_missing_version(self, audit, signing_env):
        """A module without a version is an error."""
        report = audit(
            clean_descriptor(dependencies='    implementation("com.squareup.okio:okio")\n'),
            environment=signing_env,
        )
        assert report.by_rule("dependency-unpinned")[0].severity == Severity.ERROR

    def test_platform_supplies_versions(self, audit, signing_env):
        """Modules constrained by a platform need no version."""
        report = audit(
            clean_descriptor(
                dependencies=(
                    '    implementation(platform("androidx.compose:compose-bom:2024.02.00"))\n'
                    '    implementation("androidx.compose.ui:ui")\n'
                )
            ),
            environment=signing_env,
        )
        assert report.by_rule("dependency-unpinned") == []

    def test_computed_version(self, audit, signing_env):
        """Unresolvable template versions are warnings."""
        report = audit(
            clean_descriptor(dependencies='    implementation("com.squareup.okio:okio:$okio")\n'),
            environment=signing_env,
        )
        assert report.by_rule("dependency-unpinned")[0].severity == Severity.WARNING

    def test_malformed_coordinate(self, audit, signing_env):
        """A notation that is not a coordinate is malformed."""
        report = audit(
            clean_descriptor(dependencies='    implementation("okio")\n'),
            environment=signing_env,
        )
        assert report.by_rule("dependency-malformed")[0].severity == Severity.ERROR

    def test_duplicates(self, audit, signing_env):
        """Duplicates warn; conflicting duplicates are errors."""
        same = audit(
            clean_descriptor(
                dependencies=(
                    '    implementation("com.squareup.okio:okio:3.6.0")\n'
                    '    implementation("com.squareup.okio:okio:3.6.0")\n'
                )
            ),
            environment=signing_env,
        )
        assert same.by_rule("dependency-duplicate")[0].severity == Severity.WARNING
        assert same.by_rule("dependency-duplicate")[0].line == 30

        conflicting = audit(
            clean_descriptor(
                dependencies=(
                    '    implementation("com.squareup.okio:okio:3.6.0")\n'
                    '    implementation("com.squareup.okio:okio:3.7.0")\n'
                )
            ),
            environment=signing_env,
        )
        finding = conflicting.by_rule("dependency-duplicate")[0]
        assert finding.severity == Severity.ERROR
        assert "3.6.0, 3.7.0" in finding.message

    def test_different_configurations_are_not_duplicates(self, audit, signing_env):
        """The same module in two configurations is fine."""
        report = audit(
            clean_descriptor(
                dependencies=(
                    '    implementation("com.squareup.okio:okio:3.6.0")\n'
                    '    testImplementation("com.squareup.okio:okio:3.6.0")\n'
                )
            ),
            environment=signing_env,
        )
        assert report.by_rule("dependency-duplicate") == []

    def test_misaligned_family(self, audit, signing_env):
        """Artifacts of one family with different versions are flagged."""
        report = audit(
            clean_descriptor(
                dependencies=(
                    '    implementation("androidx.room:room-runtime:2.6.1")\n'
                    '    implementation("androidx.room:room-ktx:2.5.0")\n'
                )
            ),
            environment=signing_env,
        )
        (finding,) = report.by_rule("dependency-misaligned")
        assert "androidx.room" in finding.message
        assert finding.severity == Severity.WARNING

    def test_registry_status(self, audit, signing_env):
        """Missing artifacts are errors; failed lookups are warnings."""
        report = audit(
            clean_descriptor(
                dependencies=(
                    '    implementation("com.squareup.okio:okio:3.6.0")\n'
                    '    implementation("com.example.nope:nope:1.0.0")\n'
                )
            ),
            environment=signing_env,
            status=[
                DependencyStatus(coordinate="com.squareup.okio:okio:3.6.0", resolvable=None, error="timeout"),
                DependencyStatus(coordinate="com.example.nope:nope:1.0.0", resolvable=False),
            ],
        )
        findings = report.by_rule("dependency-unresolvable")
        assert [f.severity for f in findings] == [Severity.ERROR, Severity.WARNING]
        assert findings[0].line == 30


class TestSdkRules:
    """Tests for SDK bound rules."""

    def test_min_above_target(self, audit, signing_env):
        """minSdk above targetSdk is an error."""
        text = clean_descriptor().replace("minSdk = 24", "minSdk = 36")
        report = audit(text, environment=signing_env)
        messages = [f.message for f in report.by_rule("sdk-order")]
        assert "minSdk 36 is greater than targetSdk 35" in messages

    def test_target_above_compile(self, audit, signing_env):
        """targetSdk above compileSdk is an error."""
        text = clean_descriptor().replace("compileSdk = 35", "compileSdk = 34")
        (finding,) = audit(text, environment=signing_env).by_rule("sdk-order")
        assert finding.message == "targetSdk 35 is greater than compileSdk 34"
        assert finding.line == 6

    def test_target_policy(self, audit, signing_env):
        """A targetSdk below the configured minimum warns."""
        text = clean_descriptor().replace("targetSdk = 35", "targetSdk = 33")
        (finding,) = audit(text, environment=signing_env).by_rule("sdk-target-policy")
        assert finding.severity == Severity.WARNING
        assert audit(text, environment=signing_env, minimum_target_sdk=33).by_rule("sdk-target-policy") == []

    def test_unresolved_bound(self, audit, signing_env):
        """A bound that cannot be resolved warns instead of failing."""
        text = clean_descriptor().replace("compileSdk = 35", "compileSdk = custom.compileSdk")
        report = audit(text, environment=signing_env)
        (finding,) = report.by_rule("sdk-unresolved")
        assert "compileSdk" in finding.message
        assert report.by_rule("sdk-order") == []
        # reported once, not again as an unresolved setting
        assert report.by_rule("descriptor-unsupported") == []

    def test_property_resolves_bound(self, audit, signing_env):
        """A property passed in resolves the bound."""
        text = clean_descriptor().replace("compileSdk = 35", "compileSdk = custom.compileSdk")
        report = audit(text, environment=signing_env, properties={"custom.compileSdk": "35"})
        assert report.findings == []


class TestSigningRules:
    """Tests for signing rules."""

    def test_literal_secret(self, audit, signing_env):
        """A literal password in the script is flagged."""
        text = clean_descriptor().replace(
            'keyPassword = System.getenv("KEY_PASSWORD")', 'keyPassword = "hunter2"'
        )
        (finding,) = audit(text, environment=signing_env).by_rule("signing-committed-secret")
        assert "literal keyPassword" in finding.message
        assert finding.line == 11

    def test_property_fallback_secret(self, audit, signing_env):
        """A password committed as a property lookup's fallback is flagged."""
        text = clean_descriptor().replace(
            'keyPassword = System.getenv("KEY_PASSWORD")',
            'keyPassword = (findProperty("keyPassword") ?: "hunter2") as String',
        )
        (finding,) = audit(text, environment=signing_env).by_rule("signing-committed-secret")
        assert "fallback keyPassword" in finding.message
        assert finding.line == 11

    def test_unsigned_release(self, audit, signing_env):
        """A release without a signing config warns."""
        text = 'android {\n    namespace = "org.acme.app"\n    compileSdk = 35\n}\n'
        report = audit(text, variant_flags={})
        assert [f.rule_id for f in report.by_rule("signing-missing")] == ["signing-missing"]
        assert "unsigned" in report.by_rule("signing-missing")[0].message

    def test_release_signed_with_debug_key(self, audit):
        """A release signed with the debug keystore warns."""
        text = (
            'android {\n    namespace = "org.acme.app"\n    compileSdk = 35\n'
            "    buildTypes {\n        release {\n"
            '            signingConfig = signingConfigs.getByName("debug")\n'
            "        }\n    }\n}\n"
        )
        report = audit(text, variant_flags={})
        assert "debug keystore" in report.by_rule("signing-missing")[0].message
        assert report.by_rule("signing-fallback") == []

    def test_missing_keystore(self, load_descriptor, temp_dir, signing_env):
        """A keystore that does not exist is an error when checked."""
        descriptor = load_descriptor(clean_descriptor())
        plan = PlanResolver(ResolutionConfig(debug_keystore=temp_dir / "debug.keystore")).resolve_plan(
            ResolutionInput(descriptor=descriptor, environment=signing_env, check_keystore=True)
        )
        report = DescriptorAuditor(AuditConfig()).run_rules(AuditInput(descriptor=descriptor, plan=plan))
        (finding,) = report.by_rule("signing-keystore-missing")
        assert finding.variant == "release"
        assert "/keys/upload.jks" in finding.message


class TestVariantRules:
    """Tests for build variant rules."""

    def test_flag_value_mismatch(self, audit, signing_env):
        """A release flag set to false is an error."""
        text = clean_descriptor().replace('"ENABLE_ANALYTICS", "true"', '"ENABLE_ANALYTICS", "false"')
        (finding,) = audit(text, environment=signing_env).by_rule("variant-flag-separation")
        assert finding.variant == "release"
        assert "ENABLE_ANALYTICS" in finding.message

    def test_flag_missing(self, audit, signing_env):
        """A missing flag is an error."""
        text = clean_descriptor().replace(
            '            buildConfigField("boolean", "ENABLE_CRASH_REPORTING", "false")\n', ""
        )
        (finding,) = audit(text, environment=signing_env).by_rule("variant-flag-separation")
        assert finding.variant == "debug"
        assert "does not define" in finding.message

    def test_custom_flag_expectations(self, audit, signing_env):
        """Expected flags come from configuration."""
        report = audit(
            clean_descriptor(),
            environment=signing_env,
            variant_flags={"USE_MOCK_API": {"debug": True}},
        )
        (finding,) = report.by_rule("variant-flag-separation")
        assert "USE_MOCK_API" in finding.message

    def test_release_debuggable(self, audit, signing_env):
        """A debuggable release is an error."""
        report = audit(clean_descriptor(release_extra="            isDebuggable = true\n"), environment=signing_env)
        (finding,) = report.by_rule("variant-release-debuggable")
        assert finding.severity == Severity.ERROR

    def test_shrink_requires_minify(self, audit, signing_env):
        """Resource shrinking without minification is an error."""
        report = audit(
            clean_descriptor(release_extra="            isShrinkResources = true\n"), environment=signing_env
        )
        assert len(report.by_rule("shrink-requires-minify")) == 1

        minified = audit(
            clean_descriptor(
                release_extra="            isShrinkResources = true\n            isMinifyEnabled = true\n"
            ),
            environment=signing_env,
        )
        assert minified.by_rule("shrink-requires-minify") == []

    def test_shared_application_id(self, audit, signing_env):
        """debug and release sharing an id is informational."""
        report = audit(clean_descriptor(), environment=signing_env)
        assert report.by_rule("variant-shared-application-id") == []

        text = clean_descriptor().replace('            applicationIdSuffix = ".debug"\n', "")
        shared = audit(text, environment=signing_env)
        (finding,) = shared.by_rule("variant-shared-application-id")
        assert finding.severity == Severity.INFO
        assert "org.acme.app" in finding.message
        assert shared.passed


class TestMiscRules:
    """Tests for the remaining rules."""

    def test_build_config_disabled(self, audit, signing_env):
        """buildConfigField with buildConfig disabled is an error."""
        report = audit(
            clean_descriptor(android="    buildFeatures {\n        buildConfig = false\n    }\n"),
            environment=signing_env,
        )
        (finding,) = report.by_rule("buildconfig-feature-disabled")
        assert "4 buildConfigField" in finding.message

    def test_jvm_target_mismatch(self, audit, signing_env):
        """Java and Kotlin targets must agree."""
        report = audit(
            clean_descriptor(
                android=(
                    "    compileOptions {\n        targetCompatibility = JavaVersion.VERSION_17\n    }\n"
                    '    kotlinOptions {\n        jvmTarget = "11"\n    }\n'
                )
            ),
            environment=signing_env,
        )
        assert len(report.by_rule("jvm-target-mismatch")) == 1

    def test_jvm_target_legacy_spelling(self, audit, signing_env):
        """1.x spellings compare equal to their short form."""
        report = audit(
            clean_descriptor(
                android=(
                    "    compileOptions {\n        targetCompatibility = JavaVersion.VERSION_1_8\n    }\n"
                    '    kotlinOptions {\n        jvmTarget = "1.8"\n    }\n'
                )
            ),
            environment=signing_env,
        )
        assert report.by_rule("jvm-target-mismatch") == []

    def test_placeholder_application_id(self, audit, signing_env):
        """com.example ids are flagged."""
        text = clean_descriptor().replace('"org.acme.app"', '"com.example.app"')
        (finding,) = audit(text, environment=signing_env).by_rule("application-id-placeholder")
        assert finding.line == 2

    def test_multidex_below_21(self, audit, signing_env):
        """multidex is not redundant below API 21."""
        text = clean_descriptor(
            dependencies='    implementation("androidx.multidex:multidex:2.0.1")\n'
        ).replace("minSdk = 24", "minSdk = 19")
        assert audit(text, environment=signing_env).by_rule("multidex-redundant") == []

    def test_unsupported_constructs(self, audit, signing_env):
        """Uninterpreted statements are informational."""
        report = audit(
            clean_descriptor(android='    if (project.hasProperty("ci")) {\n        lint { abortOnError = true }\n    }\n'),
            environment=signing_env,
        )
        (finding,) = report.by_rule("descriptor-unsupported")
        assert finding.severity == Severity.INFO
        assert report.passed


@pytest.mark.asyncio
class TestDescriptorAuditor:
    """Tests for the audit service wrapper."""

    async def test_audit_result(self, load_descriptor, sample_text, temp_dir):
        """The service returns the report with counts in its metadata."""
        descriptor = load_descriptor(sample_text)
        plan = PlanResolver(ResolutionConfig(debug_keystore=temp_dir / "debug.keystore")).resolve_plan(
            ResolutionInput(descriptor=descriptor, properties=ResolutionConfig().toolchain_properties)
        )
        result = await DescriptorAuditor(AuditConfig()).audit(AuditInput(descriptor=descriptor, plan=plan))
        assert result.success
        assert result.metadata["passed"] is True
        assert result.metadata["counts"]["warning"] == 7

    async def test_custom_rules(self, load_descriptor, sample_text, temp_dir):
        """Only the given rules run."""
        from gradleguard.services.audit.rules import signing_fallbacks

        descriptor = load_descriptor(sample_text)
        plan = PlanResolver(ResolutionConfig(debug_keystore=temp_dir / "debug.keystore")).resolve_plan(
            ResolutionInput(descriptor=descriptor, properties=ResolutionConfig().toolchain_properties)
        )
        auditor = DescriptorAuditor(AuditConfig(), rules=(signing_fallbacks,))
        result = await auditor.audit(AuditInput(descriptor=descriptor, plan=plan))
        assert rule_ids(result.data) == ["signing-fallback"] * 4

    async def test_rule_crash_fails_result(self, load_descriptor, sample_text, temp_dir):
        """A rule raising fails the service instead of propagating."""

        def broken(context):
            raise RuntimeError("boom")

        descriptor = load_descriptor(sample_text)
        plan = PlanResolver(ResolutionConfig(debug_keystore=temp_dir / "debug.keystore")).resolve_plan(
            ResolutionInput(descriptor=descriptor)
        )
        result = await DescriptorAuditor(AuditConfig(), rules=(broken,)).audit(
            AuditInput(descriptor=descriptor, plan=plan)
        )
        assert not result.success
        assert "boom" in result.error
