"""
Build descriptor data models.

These models represent what a module build script declares, before any
environment or toolchain property has been applied. Values stay symbolic
(``Setting``) so that resolution can tell a committed literal apart from a
value sourced from the environment.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field


class Dialect(str, Enum):
    """Build script language."""

    KOTLIN = "kotlin"
    GROOVY = "groovy"


class Setting(BaseModel):
    """A single declared value in symbolic form."""

    text: str = Field(description="Source text of the expression")
    line: int = Field(default=0, description="1-based line in the descriptor")
    literal: str | int | float | bool | None = Field(
        default=None, description="Statically known value"
    )
    env_var: str | None = Field(default=None, description="Environment variable the value comes from")
    fallback: str | int | float | bool | None = Field(
        default=None, description="Literal used when the environment variable is absent"
    )
    reference: str | None = Field(
        default=None, description="Symbolic property, e.g. flutter.compileSdkVersion"
    )
    wrapper: str | None = Field(default=None, description="Enclosing call, e.g. 'file'")

    @property
    def is_static(self) -> bool:
        """Whether the value is a plain committed literal."""
        return self.literal is not None and self.env_var is None and self.reference is None

    @property
    def is_opaque(self) -> bool:
        """Whether nothing about the value could be determined statically."""
        return (
            self.literal is None
            and self.env_var is None
            and self.fallback is None
            and self.reference is None
        )

    @property
    def committed_value(self) -> str | int | float | bool | None:
        """Literal text that sits in the descriptor itself, if any.

        Returns:
            The fallback for values read from the environment or a project
            property, otherwise the literal.
        """
        if self.env_var is not None or self.reference is not None:
            return self.fallback
        return self.literal


class PluginDeclaration(BaseModel):
    """A plugin applied by the descriptor."""

    id: str
    version: str | None = Field(default=None)
    apply: bool = Field(default=True)
    line: int = Field(default=0)


class BuildConfigField(BaseModel):
    """``buildConfigField(type, name, value)``."""

    type: str
    name: str
    value: Setting
    line: int = Field(default=0)


class SigningConfigDecl(BaseModel):
    """A signing profile as declared in ``signingConfigs``."""

    name: str
    key_alias: Setting | None = Field(default=None)
    key_password: Setting | None = Field(default=None)
    store_file: Setting | None = Field(default=None)
    store_password: Setting | None = Field(default=None)
    store_type: Setting | None = Field(default=None)
    line: int = Field(default=0)

    def fields(self) -> dict[str, Setting | None]:
        """Credential fields keyed by descriptor property name."""
        return {
            "keyAlias": self.key_alias,
            "keyPassword": self.key_password,
            "storeFile": self.store_file,
            "storePassword": self.store_password,
        }


class BuildTypeDecl(BaseModel):
    """A build variant as declared in ``buildTypes``.

    ``None`` means the descriptor leaves the value to the platform default.
    """

    name: str
    debuggable: Setting | None = Field(default=None)
    minify_enabled: Setting | None = Field(default=None)
    shrink_resources: Setting | None = Field(default=None)
    multidex_enabled: Setting | None = Field(default=None)
    application_id_suffix: Setting | None = Field(default=None)
    version_name_suffix: Setting | None = Field(default=None)
    signing_config: str | None = Field(default=None, description="Name of the signing config used")
    proguard_files: list[Setting] = Field(default_factory=list)
    build_config_fields: list[BuildConfigField] = Field(default_factory=list)
    line: int = Field(default=0)


class DefaultConfigDecl(BaseModel):
    """The ``defaultConfig`` block."""

    application_id: Setting | None = Field(default=None)
    min_sdk: Setting | None = Field(default=None)
    target_sdk: Setting | None = Field(default=None)
    version_code: Setting | None = Field(default=None)
    version_name: Setting | None = Field(default=None)
    multidex_enabled: Setting | None = Field(default=None)
    test_instrumentation_runner: Setting | None = Field(default=None)
    build_config_fields: list[BuildConfigField] = Field(default_factory=list)


class BundleConfig(BaseModel):
    """App-bundle split options."""

    language_split: bool | None = Field(default=None)
    density_split: bool | None = Field(default=None)
    abi_split: bool | None = Field(default=None)


class DependencyKind(str, Enum):
    """How a dependency is referenced."""

    MODULE = "module"
    PROJECT = "project"
    PLATFORM = "platform"
    FILES = "files"
    OTHER = "other"


class DependencyDeclaration(BaseModel):
    """A dependency coordinate declared in ``dependencies``."""

    configuration: str = Field(description="e.g. implementation, api, kapt")
    notation: str = Field(description="Raw notation as written")
    kind: DependencyKind = Field(default=DependencyKind.MODULE)
    group: str | None = Field(default=None)
    artifact: str | None = Field(default=None)
    version: str | None = Field(default=None)
    classifier: str | None = Field(default=None)
    extension: str | None = Field(default=None)
    line: int = Field(default=0)

    @property
    def module(self) -> str | None:
        """``group:artifact`` without the version."""
        if self.group is None or self.artifact is None:
            return None
        return f"{self.group}:{self.artifact}"

    @property
    def coordinate(self) -> str:
        """``group:artifact:version`` (or the raw notation when not a module)."""
        if self.module is None:
            return self.notation
        return f"{self.module}:{self.version}" if self.version else self.module


class RepositoryDeclaration(BaseModel):
    """A Maven repository declared in ``repositories``."""

    name: str
    url: str | None = Field(default=None)
    line: int = Field(default=0)


class UnsupportedConstruct(BaseModel):
    """A statement the loader did not interpret."""

    text: str
    line: int
    scope: str = Field(default="", description="Enclosing block path")


class BuildDescriptor(BaseModel):
    """Complete declared configuration of one Android module."""

    model_version: str = Field(default="1.0.0", description="Schema version for migrations")
    path: Path
    dialect: Dialect = Field(default=Dialect.KOTLIN)
    plugins: list[PluginDeclaration] = Field(default_factory=list)

    namespace: Setting | None = Field(default=None)
    compile_sdk: Setting | None = Field(default=None)
    ndk_version: Setting | None = Field(default=None)
    source_compatibility: Setting | None = Field(default=None)
    target_compatibility: Setting | None = Field(default=None)
    jvm_target: Setting | None = Field(default=None)

    default_config: DefaultConfigDecl = Field(default_factory=DefaultConfigDecl)
    signing_configs: dict[str, SigningConfigDecl] = Field(default_factory=dict)
    build_types: dict[str, BuildTypeDecl] = Field(default_factory=dict)
    build_features: dict[str, Setting] = Field(default_factory=dict)
    bundle: BundleConfig = Field(default_factory=BundleConfig)

    flutter_source: Setting | None = Field(default=None)
    repositories: list[RepositoryDeclaration] = Field(default_factory=list)
    dependencies: list[DependencyDeclaration] = Field(default_factory=list)
    settings: dict[str, Setting] = Field(
        default_factory=dict, description="Every assignment, keyed by canonical dotted path"
    )

    imports: list[str] = Field(default_factory=list)
    unsupported: list[UnsupportedConstruct] = Field(default_factory=list)

    model_config = {
        "protected_namespaces": (),
        "json_schema_extra": {
            "title": "Build Descriptor",
            "description": "Declared configuration of an Android module build script",
        }
    }

    @property
    def plugin_ids(self) -> list[str]:
        """Ids of every declared plugin."""
        return [plugin.id for plugin in self.plugins]

    @property
    def module_dir(self) -> Path:
        """Directory the descriptor lives in; relative paths resolve against it."""
        return self.path.parent

    def build_type(self, name: str) -> BuildTypeDecl | None:
        return self.build_types.get(name)

    def summary(self) -> dict[str, Any]:
        """Small dictionary used in log events."""
        return {
            "plugins": len(self.plugins),
            "build_types": sorted(self.build_types),
            "signing_configs": sorted(self.signing_configs),
            "dependencies": len(self.dependencies),
            "unsupported": len(self.unsupported),
        }
