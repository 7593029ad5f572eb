"""
Configuration management for gradleguard.

Provides centralized, type-safe configuration with environment variable overrides
and sensible defaults for every pipeline stage.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load .env file if it exists (looks in cwd and parent directories)
load_dotenv()

GOOGLE_MAVEN_URL = "https://dl.google.com/dl/android/maven2"
MAVEN_CENTRAL_URL = "https://repo.maven.apache.org/maven2"

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


class ResolutionConfig(BaseModel):
    """How symbolic descriptor values are resolved."""

    toolchain_properties: dict[str, str] = Field(
        default_factory=lambda: {
            "flutter.compileSdkVersion": "35",
            "flutter.targetSdkVersion": "35",
            "flutter.minSdkVersion": "21",
            "flutter.ndkVersion": "27.0.12077973",
            "flutter.versionCode": "1",
            "flutter.versionName": "1.0.0",
        },
        description="Fallback values for properties injected by toolchain plugins",
    )
    property_files: list[str] = Field(
        default_factory=lambda: ["gradle.properties", "local.properties"],
        description="Java properties files read beside the descriptor and one level up",
    )
    debug_keystore: Path = Field(
        default_factory=lambda: Path("~/.android/debug.keystore").expanduser(),
        description="Keystore the platform signs debug builds with",
    )
    check_keystore: bool = Field(
        default=False, description="Verify that signing keystores exist on disk"
    )


class AuditConfig(BaseModel):
    """Audit rule configuration."""

    strict: bool = Field(
        default=False, description="Treat release signing fallbacks as errors (CI mode)"
    )
    fail_on: Literal["error", "warning"] = Field(
        default="error", description="Lowest severity that fails the audit"
    )
    variant_flags: dict[str, dict[str, bool]] = Field(
        default_factory=lambda: {
            "ENABLE_CRASH_REPORTING": {"debug": False, "release": True},
            "ENABLE_ANALYTICS": {"debug": False, "release": True},
        },
        description="Expected BuildConfig boolean per variant",
    )
    minimum_target_sdk: int = Field(
        default=34, ge=1, description="Lowest targetSdk accepted by the store"
    )
    aligned_group_prefixes: list[str] = Field(
        default_factory=lambda: [
            "androidx.room",
            "androidx.lifecycle",
            "androidx.work",
            "androidx.navigation",
            "androidx.compose",
            "org.jetbrains.kotlinx",
            "com.squareup.okhttp3",
            "com.squareup.retrofit2",
        ],
        description="Groups whose artifacts are released in lockstep",
    )


class RegistryConfig(BaseModel):
    """Maven repository lookup configuration."""

    enabled: bool = Field(default=False, description="Check coordinates against repositories")
    repositories: list[str] = Field(
        default_factory=lambda: [GOOGLE_MAVEN_URL, MAVEN_CENTRAL_URL],
        description="Remote repositories tried after those declared in the descriptor",
    )
    local_repository: Path | None = Field(
        default=None, description="Local Maven repository tree (e.g. ~/.m2/repository)"
    )
    offline: bool = Field(default=False, description="Only consult the local repository")
    timeout_seconds: float = Field(default=10.0, gt=0, description="Per-request timeout")
    max_retries: int = Field(default=3, ge=1, description="Attempts per request on transport errors")
    backoff_seconds: float = Field(
        default=1.0, ge=0, description="Initial exponential backoff between attempts"
    )
    max_concurrency: int = Field(default=8, ge=1, description="Parallel repository requests")


class StorageConfig(BaseModel):
    """Storage configuration for reports."""

    base_path: Path = Field(
        default=Path("./gradleguard-reports"), description="Base path for local storage"
    )


class Config(BaseModel):
    """Root configuration for gradleguard."""

    project_name: str = Field(default="gradleguard", description="Project identifier")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING", description="Logging level"
    )
    resolution: ResolutionConfig = Field(default_factory=ResolutionConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    model_config = {"extra": "ignore"}

    @classmethod
    def from_env(cls) -> Config:
        """Create configuration from environment variables."""
        local_repo = os.environ.get("GRADLEGUARD_LOCAL_REPOSITORY")
        return cls(
            log_level=os.environ.get("GRADLEGUARD_LOG_LEVEL", "WARNING").upper(),  # type: ignore
            resolution=ResolutionConfig(
                check_keystore=_env_flag("GRADLEGUARD_CHECK_KEYSTORE"),
            ),
            audit=AuditConfig(
                strict=_env_flag("GRADLEGUARD_STRICT", default=_env_flag("CI")),
                fail_on=os.environ.get("GRADLEGUARD_FAIL_ON", "error"),  # type: ignore
            ),
            registry=RegistryConfig(
                enabled=_env_flag("GRADLEGUARD_CHECK_REGISTRY"),
                offline=_env_flag("GRADLEGUARD_OFFLINE"),
                local_repository=Path(local_repo).expanduser() if local_repo else None,
            ),
            storage=StorageConfig(
                base_path=Path(os.environ.get("GRADLEGUARD_OUTPUT_PATH", "./gradleguard-reports")),
            ),
        )


@lru_cache(maxsize=1)
def get_config() -> Config:
    """Get cached configuration instance."""
    return Config.from_env()
