"""
Build Plan Resolution Service.

Evaluates a BuildDescriptor against one environment and one property table
and applies the Android Gradle plugin defaults, producing the effective
configuration of every build variant.
"""

from __future__ import annotations

import re
import time
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, Field

from ...core.config import ResolutionConfig, get_config
from ...core.logging import get_logger
from ...core.types import ServiceResult
from ...models.descriptor import BuildConfigField, BuildDescriptor, Setting, SigningConfigDecl
from ...models.plan import (
    BuildPlan,
    ResolvedValue,
    SdkBounds,
    SigningProfile,
    UnresolvedSetting,
    ValueSource,
    VariantPlan,
)

logger = get_logger(__name__)

IMPLICIT_BUILD_TYPES = ("debug", "release")
DEBUG_KEY_ALIAS = "androiddebugkey"
DEBUG_PASSWORD = "android"

_INT = re.compile(r"^[+-]?\d+[lL]?$")
_PLATFORM = re.compile(r"^android-(\d+)$")


class ResolutionInput(BaseModel):
    """Input for plan resolution."""

    descriptor: BuildDescriptor
    environment: dict[str, str] = Field(default_factory=dict, description="Variables visible to the build")
    properties: dict[str, str] = Field(default_factory=dict, description="Gradle and toolchain properties")
    check_keystore: bool | None = Field(default=None, description="Override the configured keystore check")


def as_int(value: Any) -> int | None:
    """Coerce a resolved value to an int where that is unambiguous."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if _INT.match(text):
            return int(text.rstrip("lL"))
        platform = _PLATFORM.match(text)
        if platform:
            return int(platform.group(1))
    return None


def as_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


def typed_build_config_value(field_type: str, value: Any) -> Any:
    """Convert a ``buildConfigField`` value to its Python equivalent.

    The third argument of ``buildConfigField`` is Java source text, so
    ``"true"`` is a boolean and ``"\\"x\\""`` is the string ``x``.
    """
    if not isinstance(value, str):
        return value
    text = value.strip()
    kind = field_type.strip()
    if kind in ("boolean", "Boolean"):
        parsed = as_bool(text)
        return parsed if parsed is not None else value
    if kind in ("int", "long", "Integer", "Long", "short", "byte"):
        parsed_int = as_int(text)
        return parsed_int if parsed_int is not None else value
    if kind in ("String", "java.lang.String"):
        if len(text) >= 2 and text[0] == text[-1] == '"':
            return text[1:-1].replace('\\"', '"')
        return value
    return value


class _Evaluator:
    """Evaluates settings and remembers what could not be resolved."""

    def __init__(self, environment: Mapping[str, str], properties: Mapping[str, str]) -> None:
        self.environment = environment
        self.properties = properties
        self.unresolved: list[UnresolvedSetting] = []
        self.properties_used: dict[str, str] = {}

    def evaluate(self, name: str, setting: Setting | None, default: Any = None) -> ResolvedValue:
        if setting is None:
            if default is None:
                return ResolvedValue()
            return ResolvedValue.default(default)

        common = {"env_var": setting.env_var, "text": setting.text, "line": setting.line}

        if setting.env_var is not None:
            value = self.environment.get(setting.env_var)
            if value:
                return ResolvedValue(value=value, source=ValueSource.ENVIRONMENT, **common)
            if setting.fallback is not None:
                return ResolvedValue(value=setting.fallback, source=ValueSource.FALLBACK, **common)
            return self._unresolved(
                name, setting, f"environment variable {setting.env_var} is not set and has no fallback"
            )

        if setting.literal is not None:
            return ResolvedValue(value=setting.literal, source=ValueSource.LITERAL, **common)

        if setting.reference is not None:
            if setting.reference in self.properties:
                value = self.properties[setting.reference]
                self.properties_used[setting.reference] = value
                return ResolvedValue(value=value, source=ValueSource.PROPERTY, **common)
            if setting.fallback is not None:
                return ResolvedValue(value=setting.fallback, source=ValueSource.FALLBACK, **common)
            return self._unresolved(name, setting, f"property {setting.reference} is not defined")

        if setting.fallback is not None:
            return ResolvedValue(value=setting.fallback, source=ValueSource.FALLBACK, **common)

        return self._unresolved(name, setting, "expression cannot be evaluated statically")

    def _unresolved(self, name: str, setting: Setting, reason: str) -> ResolvedValue:
        self.unresolved.append(
            UnresolvedSetting(name=name, text=setting.text, line=setting.line, reason=reason)
        )
        return ResolvedValue(
            source=ValueSource.UNRESOLVED, env_var=setting.env_var, text=setting.text, line=setting.line
        )


class PlanResolver:
    """Service for resolving descriptors into build plans.

    This service:
    1. Evaluates every declared setting (environment, fallback, literal, property)
    2. Applies platform defaults for implicit build types and unset flags
    3. Resolves signing profiles and keystore paths per variant
    """

    def __init__(self, config: ResolutionConfig | None = None) -> None:
        self.config = config or get_config().resolution

    async def resolve(self, input_data: ResolutionInput) -> ServiceResult[BuildPlan]:
        """Resolve a descriptor into a build plan.

        Args:
            input_data: Descriptor plus the environment and properties to apply

        Returns:
            ServiceResult containing the BuildPlan or error
        """
        start_time = time.perf_counter()
        try:
            plan = self.resolve_plan(input_data)
        except Exception as e:
            logger.exception("Unexpected error during resolution")
            return ServiceResult.fail(f"Unexpected error: {e}")

        duration_ms = (time.perf_counter() - start_time) * 1000
        warnings = [
            f"{item.name} (line {item.line}): {item.reason}" for item in plan.unresolved
        ]
        logger.info(
            "Plan resolved",
            variants=sorted(plan.variants),
            unresolved=len(plan.unresolved),
            duration_ms=round(duration_ms, 2),
        )
        result = ServiceResult.with_warnings(plan, warnings)
        result.duration_ms = duration_ms
        return result

    def resolve_plan(self, input_data: ResolutionInput) -> BuildPlan:
        """Synchronous core of :meth:`resolve`."""
        descriptor = input_data.descriptor
        check_keystore = (
            self.config.check_keystore if input_data.check_keystore is None else input_data.check_keystore
        )
        evaluator = _Evaluator(input_data.environment, input_data.properties)
        default_config = descriptor.default_config

        namespace = evaluator.evaluate("android.namespace", descriptor.namespace).value
        application_id_value = evaluator.evaluate(
            "android.defaultConfig.applicationId", default_config.application_id
        ).value
        application_id = application_id_value if application_id_value is not None else namespace

        min_sdk = self._as_int_value(
            evaluator.evaluate("android.defaultConfig.minSdk", default_config.min_sdk, default=1)
        )
        target_sdk = self._as_int_value(
            evaluator.evaluate("android.defaultConfig.targetSdk", default_config.target_sdk)
        )
        if default_config.target_sdk is None and isinstance(min_sdk.value, int):
            # targetSdk defaults to minSdk when unset
            target_sdk = ResolvedValue.default(min_sdk.value)
        compile_sdk = self._as_int_value(evaluator.evaluate("android.compileSdk", descriptor.compile_sdk))

        version_code = self._as_int_value(
            evaluator.evaluate("android.defaultConfig.versionCode", default_config.version_code, default=1)
        )
        version_name = evaluator.evaluate("android.defaultConfig.versionName", default_config.version_name)

        base_multidex = as_bool(
            evaluator.evaluate("android.defaultConfig.multiDexEnabled", default_config.multidex_enabled).value
        )

        build_features: dict[str, bool] = {}
        for name, setting in descriptor.build_features.items():
            flag = as_bool(evaluator.evaluate(f"android.buildFeatures.{name}", setting).value)
            if flag is not None:
                build_features[name] = flag

        variants: dict[str, VariantPlan] = {}
        for name in self._variant_names(descriptor):
            variants[name] = self._resolve_variant(
                name,
                descriptor,
                evaluator,
                application_id=application_id,
                version_name=version_name.value,
                version_code=version_code.value if isinstance(version_code.value, int) else None,
                base_multidex=bool(base_multidex),
                check_keystore=check_keystore,
            )

        def text(setting: Setting | None, key: str) -> str | None:
            value = evaluator.evaluate(key, setting).value
            return str(value) if value is not None else None

        return BuildPlan(
            descriptor_path=descriptor.path,
            namespace=str(namespace) if namespace is not None else None,
            application_id=str(application_id) if application_id is not None else None,
            sdk=SdkBounds(min_sdk=min_sdk, target_sdk=target_sdk, compile_sdk=compile_sdk),
            version_code=version_code,
            version_name=version_name,
            source_compatibility=text(descriptor.source_compatibility, "android.compileOptions.sourceCompatibility"),
            target_compatibility=text(descriptor.target_compatibility, "android.compileOptions.targetCompatibility"),
            jvm_target=text(descriptor.jvm_target, "android.kotlinOptions.jvmTarget"),
            build_features=build_features,
            plugins=list(descriptor.plugins),
            bundle=descriptor.bundle.model_copy(),
            variants=variants,
            dependencies=list(descriptor.dependencies),
            unresolved=evaluator.unresolved,
            properties_used=evaluator.properties_used,
        )

    @staticmethod
    def _variant_names(descriptor: BuildDescriptor) -> list[str]:
        extra = sorted(name for name in descriptor.build_types if name not in IMPLICIT_BUILD_TYPES)
        return [*IMPLICIT_BUILD_TYPES, *extra]

    @staticmethod
    def _as_int_value(resolved: ResolvedValue) -> ResolvedValue:
        number = as_int(resolved.value)
        if number is None or number == resolved.value:
            return resolved
        return resolved.model_copy(update={"value": number})

    def _resolve_variant(
        self,
        name: str,
        descriptor: BuildDescriptor,
        evaluator: _Evaluator,
        *,
        application_id: Any,
        version_name: Any,
        version_code: int | None,
        base_multidex: bool,
        check_keystore: bool,
    ) -> VariantPlan:
        decl = descriptor.build_type(name)
        prefix = f"android.buildTypes.{name}"

        def flag(attr: str, key: str, default: bool) -> bool:
            setting = getattr(decl, attr) if decl else None
            value = as_bool(evaluator.evaluate(f"{prefix}.{key}", setting).value)
            return default if value is None else value

        debuggable = flag("debuggable", "debuggable", name == "debug")
        minify = flag("minify_enabled", "minifyEnabled", False)
        shrink = flag("shrink_resources", "shrinkResources", False)
        multidex = flag("multidex_enabled", "multiDexEnabled", base_multidex)

        variant_app_id = str(application_id) if application_id is not None else None
        suffix = evaluator.evaluate(
            f"{prefix}.applicationIdSuffix", decl.application_id_suffix if decl else None
        ).value
        if variant_app_id is not None and suffix:
            suffix = str(suffix)
            variant_app_id += suffix if suffix.startswith(".") else f".{suffix}"

        variant_version_name = str(version_name) if version_name is not None else None
        name_suffix = evaluator.evaluate(
            f"{prefix}.versionNameSuffix", decl.version_name_suffix if decl else None
        ).value
        if variant_version_name is not None and name_suffix:
            variant_version_name += str(name_suffix)

        proguard_files: list[str] = []
        if decl:
            for index, setting in enumerate(decl.proguard_files):
                value = evaluator.evaluate(f"{prefix}.proguardFiles[{index}]", setting).value
                if value is not None:
                    proguard_files.append(str(value))

        fields = self._build_config_fields(
            descriptor.default_config.build_config_fields + (decl.build_config_fields if decl else []),
            evaluator,
            prefix,
        )

        signing = self._resolve_signing(name, decl.signing_config if decl else None, descriptor, evaluator, check_keystore)

        return VariantPlan(
            name=name,
            debuggable=debuggable,
            minify_enabled=minify,
            shrink_resources=shrink,
            multidex_enabled=multidex,
            application_id=variant_app_id,
            version_name=variant_version_name,
            version_code=version_code,
            signing=signing,
            proguard_files=proguard_files,
            build_config_fields=fields,
            declared=decl is not None,
        )

    @staticmethod
    def _build_config_fields(
        fields: list[BuildConfigField], evaluator: _Evaluator, prefix: str
    ) -> dict[str, Any]:
        # Later declarations (build type) override earlier ones (defaultConfig).
        resolved: dict[str, Any] = {}
        for entry in fields:
            value = evaluator.evaluate(f"{prefix}.buildConfigField.{entry.name}", entry.value)
            if value.is_resolved:
                resolved[entry.name] = typed_build_config_value(entry.type, value.value)
        return resolved

    def _resolve_signing(
        self,
        variant: str,
        config_name: str | None,
        descriptor: BuildDescriptor,
        evaluator: _Evaluator,
        check_keystore: bool,
    ) -> SigningProfile | None:
        if config_name is None:
            return self._debug_profile(check_keystore) if variant == "debug" else None

        decl = descriptor.signing_configs.get(config_name)
        if decl is None:
            if config_name == "debug":
                return self._debug_profile(check_keystore)
            evaluator.unresolved.append(
                UnresolvedSetting(
                    name=f"android.buildTypes.{variant}.signingConfig",
                    text=config_name,
                    reason=f"signing config {config_name} is not declared",
                )
            )
            return None
        return self._declared_profile(decl, descriptor.module_dir, evaluator, check_keystore)

    def _declared_profile(
        self,
        decl: SigningConfigDecl,
        module_dir: Path,
        evaluator: _Evaluator,
        check_keystore: bool,
    ) -> SigningProfile:
        prefix = f"android.signingConfigs.{decl.name}"
        profile = SigningProfile(
            name=decl.name,
            key_alias=evaluator.evaluate(f"{prefix}.keyAlias", decl.key_alias),
            key_password=evaluator.evaluate(f"{prefix}.keyPassword", decl.key_password),
            store_file=evaluator.evaluate(f"{prefix}.storeFile", decl.store_file),
            store_password=evaluator.evaluate(f"{prefix}.storePassword", decl.store_password),
        )
        if profile.store_file.value is not None:
            store_path = Path(str(profile.store_file.value)).expanduser()
            if not store_path.is_absolute():
                store_path = module_dir / store_path
            profile.store_path = store_path
            if check_keystore:
                profile.store_exists = store_path.is_file()
        return profile

    def _debug_profile(self, check_keystore: bool) -> SigningProfile:
        store = self.config.debug_keystore.expanduser()
        profile = SigningProfile(
            name="debug",
            key_alias=ResolvedValue.default(DEBUG_KEY_ALIAS),
            key_password=ResolvedValue.default(DEBUG_PASSWORD),
            store_file=ResolvedValue.default(str(store)),
            store_password=ResolvedValue.default(DEBUG_PASSWORD),
            store_path=store,
            implicit=True,
        )
        if check_keystore:
            profile.store_exists = store.is_file()
        return profile
