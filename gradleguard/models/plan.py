"""
Resolved build plan models.

A build plan is a descriptor after every setting has been evaluated against
one environment and one property table: the configuration the external
toolchain would actually see for each variant.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from .descriptor import BundleConfig, DependencyDeclaration, PluginDeclaration

SECRET_FIELDS = frozenset({"key_password", "store_password"})


class ValueSource(str, Enum):
    """Where a resolved value came from."""

    LITERAL = "literal"
    ENVIRONMENT = "environment"
    FALLBACK = "fallback"
    PROPERTY = "property"
    DEFAULT = "default"
    UNRESOLVED = "unresolved"


class ResolvedValue(BaseModel):
    """A setting after evaluation."""

    value: Any = Field(default=None)
    source: ValueSource = Field(default=ValueSource.UNRESOLVED)
    env_var: str | None = Field(default=None, description="Variable consulted, if any")
    text: str = Field(default="", description="Source text of the declaration")
    line: int = Field(default=0)

    @property
    def is_fallback(self) -> bool:
        return self.source == ValueSource.FALLBACK

    @property
    def is_resolved(self) -> bool:
        return self.source != ValueSource.UNRESOLVED

    @classmethod
    def default(cls, value: Any) -> ResolvedValue:
        """A platform default the descriptor does not mention."""
        return cls(value=value, source=ValueSource.DEFAULT)


def mask_secret(value: Any) -> str:
    """Mask a credential for display, keeping only its length hint.

    Args:
        value: The secret value.

    Returns:
        A masked representation such as ``'v*******d'``.
    """
    if value is None:
        return "<unset>"
    text = str(value)
    if len(text) <= 2:
        return "*" * len(text)
    return f"{text[0]}{'*' * (len(text) - 2)}{text[-1]}"


class SigningProfile(BaseModel):
    """Signing credentials of one variant after resolution."""

    name: str
    key_alias: ResolvedValue = Field(default_factory=ResolvedValue)
    key_password: ResolvedValue = Field(default_factory=ResolvedValue)
    store_file: ResolvedValue = Field(default_factory=ResolvedValue)
    store_password: ResolvedValue = Field(default_factory=ResolvedValue)
    store_path: Path | None = Field(default=None, description="Keystore path resolved against the module")
    store_exists: bool | None = Field(default=None, description="None when existence was not checked")
    implicit: bool = Field(default=False, description="Platform debug keystore")

    def credential_fields(self) -> dict[str, ResolvedValue]:
        return {
            "key_alias": self.key_alias,
            "key_password": self.key_password,
            "store_file": self.store_file,
            "store_password": self.store_password,
        }

    @property
    def fallback_fields(self) -> list[str]:
        """Fields whose value came from a committed fallback."""
        return [name for name, value in self.credential_fields().items() if value.is_fallback]

    @property
    def unresolved_fields(self) -> list[str]:
        return [name for name, value in self.credential_fields().items() if not value.is_resolved]

    def masked(self) -> dict[str, Any]:
        """Display form with passwords masked."""
        rendered: dict[str, Any] = {"name": self.name, "implicit": self.implicit}
        for name, value in self.credential_fields().items():
            shown = mask_secret(value.value) if name in SECRET_FIELDS else value.value
            rendered[name] = {"value": shown, "source": value.source.value, "env_var": value.env_var}
        rendered["store_path"] = str(self.store_path) if self.store_path else None
        rendered["store_exists"] = self.store_exists
        return rendered


class VariantPlan(BaseModel):
    """Effective configuration of one build variant."""

    name: str
    debuggable: bool = Field(default=False)
    minify_enabled: bool = Field(default=False)
    shrink_resources: bool = Field(default=False)
    multidex_enabled: bool = Field(default=False)
    application_id: str | None = Field(default=None, description="Suffix applied")
    version_name: str | None = Field(default=None, description="Suffix applied")
    version_code: int | None = Field(default=None)
    signing: SigningProfile | None = Field(default=None)
    proguard_files: list[str] = Field(default_factory=list)
    build_config_fields: dict[str, Any] = Field(default_factory=dict)
    declared: bool = Field(default=True, description="False for implicit build types")

    def masked(self) -> dict[str, Any]:
        """Serializable form with signing secrets masked."""
        data = self.model_dump(mode="json", exclude={"signing"})
        data["signing"] = self.signing.masked() if self.signing else None
        return data


class SdkBounds(BaseModel):
    """Platform version bounds."""

    min_sdk: ResolvedValue = Field(default_factory=ResolvedValue)
    target_sdk: ResolvedValue = Field(default_factory=ResolvedValue)
    compile_sdk: ResolvedValue = Field(default_factory=ResolvedValue)

    def as_ints(self) -> tuple[int | None, int | None, int | None]:
        """Bounds as integers, ``None`` where a bound is unknown."""
        return tuple(  # type: ignore[return-value]
            value.value if isinstance(value.value, int) else None
            for value in (self.min_sdk, self.target_sdk, self.compile_sdk)
        )


class UnresolvedSetting(BaseModel):
    """A setting that could not be evaluated."""

    name: str
    text: str
    line: int = Field(default=0)
    reason: str = Field(default="")


class BuildPlan(BaseModel):
    """A descriptor resolved against one environment."""

    descriptor_path: Path
    namespace: str | None = Field(default=None)
    application_id: str | None = Field(default=None)
    sdk: SdkBounds = Field(default_factory=SdkBounds)
    version_code: ResolvedValue = Field(default_factory=ResolvedValue)
    version_name: ResolvedValue = Field(default_factory=ResolvedValue)
    source_compatibility: str | None = Field(default=None)
    target_compatibility: str | None = Field(default=None)
    jvm_target: str | None = Field(default=None)
    build_features: dict[str, bool] = Field(default_factory=dict)
    plugins: list[PluginDeclaration] = Field(default_factory=list)
    bundle: BundleConfig = Field(default_factory=BundleConfig)
    variants: dict[str, VariantPlan] = Field(default_factory=dict)
    dependencies: list[DependencyDeclaration] = Field(default_factory=list)
    unresolved: list[UnresolvedSetting] = Field(default_factory=list)
    properties_used: dict[str, str] = Field(
        default_factory=dict, description="Symbolic properties consulted and their values"
    )

    def variant(self, name: str) -> VariantPlan | None:
        return self.variants.get(name)

    def masked(self) -> dict[str, Any]:
        """Serializable form with every signing secret masked."""
        data = self.model_dump(mode="json", exclude={"variants"})
        data["variants"] = {name: variant.masked() for name, variant in self.variants.items()}
        return data
