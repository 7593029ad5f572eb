"""Unit tests for the command-line interface."""

import json

import pytest
from typer.testing import CliRunner

from gradleguard import __version__, cli
from gradleguard.cli import EXIT_FAILED_AUDIT, EXIT_STAGE_ERROR, app
from gradleguard.core.config import get_config

runner = CliRunner()

SIGNING_VARIABLES = ("KEY_ALIAS", "KEY_PASSWORD", "KEYSTORE_PATH", "STORE_PASSWORD")


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, temp_dir):
    """Run every command with a predictable environment and report path."""
    for name in SIGNING_VARIABLES + (
        "CI",
        "GRADLEGUARD_STRICT",
        "GRADLEGUARD_FAIL_ON",
        "GRADLEGUARD_CHECK_REGISTRY",
        "GRADLEGUARD_CHECK_KEYSTORE",
        "GRADLEGUARD_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GRADLEGUARD_OUTPUT_PATH", str(temp_dir / "reports"))
    # Keep table cells on one line
    monkeypatch.setattr(cli.console, "width", 200)
    get_config.cache_clear()
    yield
    get_config.cache_clear()


class TestRoot:
    """Tests for global options."""

    def test_version(self):
        """--version prints the version and exits."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"gradleguard v{__version__}" in result.stdout

    def test_help(self):
        """Every command is listed."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("audit", "plan", "deps", "config"):
            assert command in result.stdout


class TestAuditCommand:
    """Tests for the audit command."""

    def test_passes_with_warnings(self, sample_descriptor, temp_dir):
        """The sample passes outside strict mode and reports are written."""
        result = runner.invoke(app, ["audit", str(sample_descriptor), "--no-strict"])
        assert result.exit_code == 0, result.output
        assert "PASSED" in result.stdout
        assert "signing-fallback" in result.stdout
        assert list((temp_dir / "reports" / "runs").iterdir())

    def test_strict_fails(self, sample_descriptor):
        """Strict mode exits with the failed-audit code."""
        result = runner.invoke(app, ["audit", str(sample_descriptor), "--strict"])
        assert result.exit_code == EXIT_FAILED_AUDIT
        assert "FAILED" in result.stdout

    def test_ci_enables_strict(self, sample_descriptor, monkeypatch):
        """CI=true turns strict mode on by default."""
        monkeypatch.setenv("CI", "true")
        get_config.cache_clear()
        result = runner.invoke(app, ["audit", str(sample_descriptor)])
        assert result.exit_code == EXIT_FAILED_AUDIT

    def test_env_file_satisfies_strict(self, sample_descriptor, temp_dir):
        """Signing variables from a dotenv file make strict mode pass."""
        env_file = temp_dir / "release.env"
        env_file.write_text(
            "KEY_ALIAS=upload\nKEY_PASSWORD=k\nKEYSTORE_PATH=/keys/upload.jks\nSTORE_PASSWORD=s\n"
        )
        result = runner.invoke(
            app, ["audit", str(sample_descriptor), "--strict", "--env-file", str(env_file)]
        )
        assert result.exit_code == 0, result.output

    def test_fail_on_warning(self, sample_descriptor):
        """--fail-on warning fails on the sample's warnings."""
        result = runner.invoke(app, ["audit", str(sample_descriptor), "--no-strict", "--fail-on", "warning"])
        assert result.exit_code == EXIT_FAILED_AUDIT

    def test_invalid_fail_on(self, sample_descriptor):
        """An unknown severity is rejected."""
        result = runner.invoke(app, ["audit", str(sample_descriptor), "--fail-on", "fatal"])
        assert result.exit_code == EXIT_STAGE_ERROR

    def test_json_output(self, sample_descriptor, temp_dir):
        """--json prints a parseable snapshot with secrets masked."""
        result = runner.invoke(
            app,
            ["audit", str(sample_descriptor), "--no-strict", "--json", "--output", str(temp_dir / "out")],
        )
        assert result.exit_code == 0, result.output
        snapshot = json.loads(result.stdout)
        assert snapshot["audit"]["passed"] is True
        assert snapshot["plan"]["sdk"]["min_sdk"]["value"] == 26
        assert "via-release-password" not in result.stdout
        assert (temp_dir / "out" / "runs" / snapshot["run_metadata"]["run_id"]).is_dir()

    def test_syntax_error(self, temp_dir):
        """A descriptor that cannot be parsed exits with the stage-error code."""
        path = temp_dir / "build.gradle"
        path.write_text("android {\n")
        result = runner.invoke(app, ["audit", str(path)])
        assert result.exit_code == EXIT_STAGE_ERROR
        assert "Failed at: load" in result.stdout

    def test_bad_property(self, sample_descriptor):
        """Malformed --property pairs are rejected."""
        result = runner.invoke(app, ["audit", str(sample_descriptor), "-P", "no-equals-sign"])
        assert result.exit_code == EXIT_STAGE_ERROR

    def test_missing_path(self, temp_dir):
        """A path that does not exist is a usage error."""
        result = runner.invoke(app, ["audit", str(temp_dir / "missing.gradle")])
        assert result.exit_code != 0


class TestPlanCommand:
    """Tests for the plan command."""

    def test_table(self, sample_descriptor):
        """The plan lists SDK bounds and variants."""
        result = runner.invoke(app, ["plan", str(sample_descriptor)])
        assert result.exit_code == 0, result.output
        assert "Variant: release" in result.stdout
        assert "Variant: debug" in result.stdout
        assert "via-release-password" not in result.stdout

    def test_json_variant(self, sample_descriptor):
        """--variant narrows the JSON plan to one variant."""
        result = runner.invoke(app, ["plan", str(sample_descriptor), "--variant", "debug", "--json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert list(data["variants"]) == ["debug"]
        assert data["variants"]["debug"]["application_id"] == "com.curtis.via.debug"

    def test_property_override(self, sample_descriptor):
        """-P overrides a toolchain property."""
        result = runner.invoke(
            app, ["plan", str(sample_descriptor), "--json", "-P", "flutter.compileSdkVersion=36"]
        )
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["sdk"]["compile_sdk"]["value"] == 36

    def test_unknown_variant(self, sample_descriptor):
        """An unknown variant exits with the stage-error code."""
        result = runner.invoke(app, ["plan", str(sample_descriptor), "--variant", "staging"])
        assert result.exit_code == EXIT_STAGE_ERROR
        assert "Unknown variant" in result.stdout


class TestDepsCommand:
    """Tests for the deps command."""

    def test_lists_dependencies(self, sample_descriptor):
        """Every declared dependency is listed."""
        result = runner.invoke(app, ["deps", str(sample_descriptor)])
        assert result.exit_code == 0, result.output
        assert "Dependencies (10)" in result.stdout
        assert "security-crypto" in result.stdout

    def test_load_failure(self, temp_dir):
        """A malformed descriptor exits with the stage-error code."""
        path = temp_dir / "build.gradle.kts"
        path.write_text('dependencies {\n    implementation("a:b:1"\n}\n')
        result = runner.invoke(app, ["deps", str(path)])
        assert result.exit_code == EXIT_STAGE_ERROR


class TestConfigCommand:
    """Tests for the config command."""

    def test_shows_configuration(self, monkeypatch):
        """Environment settings are reflected."""
        monkeypatch.setenv("GRADLEGUARD_FAIL_ON", "warning")
        get_config.cache_clear()
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "Current Configuration" in result.stdout
        assert "warning" in result.stdout
