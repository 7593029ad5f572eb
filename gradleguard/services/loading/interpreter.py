"""
Interpretation of a parsed build script into a BuildDescriptor.

The interpreter walks the syntax tree with a scope path (``android`` ->
``buildTypes`` -> ``release`` ...) and records every setting it recognises
in symbolic form. Nothing is evaluated against the environment here.
"""

from __future__ import annotations

import re
from pathlib import Path

from ...core.config import GOOGLE_MAVEN_URL, MAVEN_CENTRAL_URL
from ...core.logging import get_logger
from ...dsl.ast import (
    Argument,
    Assignment,
    Attribute,
    BinaryOp,
    Block,
    Call,
    CallExpr,
    Declaration,
    Elvis,
    Expression,
    Import,
    Index,
    Literal,
    Opaque,
    Reference,
    Script,
    Statement,
    UnaryOp,
)
from ...models.descriptor import (
    BuildConfigField,
    BuildDescriptor,
    BuildTypeDecl,
    DependencyDeclaration,
    DependencyKind,
    Dialect,
    PluginDeclaration,
    RepositoryDeclaration,
    Setting,
    SigningConfigDecl,
    UnsupportedConstruct,
)

logger = get_logger(__name__)

# Kotlin DSL boolean getters and legacy Groovy names mapped to one spelling.
PROPERTY_ALIASES = {
    "isMinifyEnabled": "minifyEnabled",
    "isShrinkResources": "shrinkResources",
    "isDebuggable": "debuggable",
    "isJniDebuggable": "jniDebuggable",
    "isMultiDexEnabled": "multiDexEnabled",
    "isEnableSplit": "enableSplit",
    "minSdkVersion": "minSdk",
    "targetSdkVersion": "targetSdk",
    "compileSdkVersion": "compileSdk",
}

CONTAINER_ACCESSORS = frozenset({"create", "getByName", "register", "maybeCreate", "named", "getAt"})
CONTAINER_ITERATORS = frozenset({"all", "configureEach", "forEach", "whenObjectAdded", "matching"})

ENV_CALLS = frozenset({"System.getenv", "getenv", "providers.environmentVariable", "environmentVariable"})
PROPERTY_CALLS = frozenset({
    "findProperty", "project.findProperty", "rootProject.findProperty",
    "property", "project.property", "providers.gradleProperty",
})
PROPERTY_CONTAINERS = frozenset({"properties", "project.properties", "ext", "project.ext", "rootProject.ext"})
FILE_CALLS = frozenset({"file", "project.file", "rootProject.file", "File"})
PROVIDER_UNWRAP = frozenset({"orNull", "get", "getOrNull", "toString", "toInt", "toInteger", "trim"})

_JAVA_VERSION = re.compile(r"^JavaVersion\.VERSION_(\d+)(?:_(\d+))?$")
_TEMPLATE_REF = re.compile(r"\$\{([A-Za-z_][\w.]*)\}|\$([A-Za-z_]\w*)")

BUILD_TYPE_KEYS = {
    "debuggable": "debuggable",
    "minifyEnabled": "minify_enabled",
    "shrinkResources": "shrink_resources",
    "multiDexEnabled": "multidex_enabled",
    "applicationIdSuffix": "application_id_suffix",
    "versionNameSuffix": "version_name_suffix",
}
DEFAULT_CONFIG_KEYS = {
    "applicationId": "application_id",
    "minSdk": "min_sdk",
    "targetSdk": "target_sdk",
    "versionCode": "version_code",
    "versionName": "version_name",
    "multiDexEnabled": "multidex_enabled",
    "testInstrumentationRunner": "test_instrumentation_runner",
}
SIGNING_KEYS = {
    "keyAlias": "key_alias",
    "keyPassword": "key_password",
    "storeFile": "store_file",
    "storePassword": "store_password",
    "storeType": "store_type",
}
BUNDLE_KEYS = {"language": "language_split", "density": "density_split", "abi": "abi_split"}


def _java_version(path: str) -> str | None:
    match = _JAVA_VERSION.match(path)
    if not match:
        return None
    major, minor = match.groups()
    return f"{major}.{minor}" if minor else major


def parse_coordinate(notation: str) -> tuple[str | None, str | None, str | None, str | None, str | None]:
    """Split ``group:artifact:version[:classifier][@extension]``.

    Returns:
        (group, artifact, version, classifier, extension); parts that are
        absent are None. A notation without a ``:`` yields no group/artifact.
    """
    extension = None
    if "@" in notation:
        notation, extension = notation.rsplit("@", 1)
    parts = notation.split(":")
    if len(parts) < 2:
        return None, None, None, None, extension
    group = parts[0]
    artifact = parts[1]
    version = parts[2] if len(parts) > 2 and parts[2] != "" else None
    classifier = ":".join(parts[3:]) if len(parts) > 3 else None
    return group, artifact, version, classifier, extension


class DescriptorInterpreter:
    """Walks a :class:`Script` and fills a :class:`BuildDescriptor`."""

    def __init__(self, path: Path, dialect: Dialect) -> None:
        self.descriptor = BuildDescriptor(path=path, dialect=dialect)
        self.locals: dict[str, Setting] = {}

    def interpret(self, script: Script) -> BuildDescriptor:
        self._walk(script.statements, ())
        return self.descriptor

    # -- traversal ---------------------------------------------------------

    def _walk(self, statements: tuple[Statement, ...], scope: tuple[str, ...]) -> None:
        for statement in statements:
            if isinstance(statement, Import):
                self.descriptor.imports.append(statement.path)
            elif isinstance(statement, Declaration):
                self.locals[statement.name] = self.to_setting(statement.value)
            elif isinstance(statement, Assignment):
                path = scope + tuple(statement.target.split("."))
                self._assign(path, statement.value, statement.line)
            elif isinstance(statement, Call):
                self._call(scope, statement)
            elif isinstance(statement, Block):
                self._block(scope, statement)
            elif isinstance(statement, Opaque):
                self._unsupported(statement.text, statement.line, scope)

    def _unsupported(self, text: str, line: int, scope: tuple[str, ...]) -> None:
        first_line = text.strip().splitlines()[0] if text.strip() else text
        self.descriptor.unsupported.append(
            UnsupportedConstruct(text=first_line, line=line, scope=".".join(scope))
        )
        logger.debug("Skipping unsupported construct", line=line, scope=".".join(scope))

    def _block(self, scope: tuple[str, ...], block: Block) -> None:
        parts = list(block.name.split("."))

        if scope and scope[-1] == "dependencies" and block.args:
            # implementation("g:a:v") { exclude(...) }
            self._dependency(parts[-1], block.args, block.line, block.name)
            return
        if scope and scope[-1] == "repositories" and parts[-1] == "maven":
            self._maven_repository(block)
            return
        if parts[-1] in CONTAINER_ITERATORS:
            self._unsupported(f"{block.name} {{ ... }}", block.line, scope)
            return
        if parts[-1] in CONTAINER_ACCESSORS:
            name = self._string_arg(block.positional)
            if name is None:
                self._unsupported(f"{block.name}(...) {{ ... }}", block.line, scope)
                return
            parts[-1] = name

        path = scope + tuple(parts)
        self._register_container_element(path, block.line)
        self._walk(block.body, path)

    def _register_container_element(self, path: tuple[str, ...], line: int) -> None:
        if len(path) == 3 and path[:2] == ("android", "buildTypes"):
            self.descriptor.build_types.setdefault(path[2], BuildTypeDecl(name=path[2], line=line))
        elif len(path) == 3 and path[:2] == ("android", "signingConfigs"):
            self.descriptor.signing_configs.setdefault(path[2], SigningConfigDecl(name=path[2], line=line))

    def _call(self, scope: tuple[str, ...], call: Call) -> None:
        name = call.name.split(".")[-1]
        positional = call.positional

        if scope == ("plugins",):
            self._plugin(call)
            return
        if not scope and name == "apply" and "plugin" in call.named:
            plugin_id = self.to_setting(call.named["plugin"]).literal
            if isinstance(plugin_id, str):
                self.descriptor.plugins.append(PluginDeclaration(id=plugin_id, line=call.line))
            return
        if scope and scope[-1] == "dependencies" and scope[0] != "buildscript":
            if call.args:
                self._dependency(call.name, call.args, call.line, call.text)
            return
        if scope and scope[-1] == "repositories":
            self._repository(call)
            return
        if name == "buildConfigField" and len(positional) == 3:
            self._build_config_field(scope, positional, call.line)
            return
        if name in ("proguardFiles", "proguardFile", "setProguardFiles"):
            build_type = self._build_type_in_scope(scope)
            if build_type is not None:
                build_type.proguard_files.extend(self.to_setting(arg) for arg in positional)
            return
        if len(positional) == 1 and not call.named:
            # Groovy setter style: minSdkVersion 21, minifyEnabled true
            self._assign(scope + tuple(call.name.split(".")), positional[0], call.line)
            return
        logger.debug("Ignoring call", name=call.name, scope=".".join(scope), line=call.line)

    # -- assignments -------------------------------------------------------

    def _assign(self, path: tuple[str, ...], value: Expression, line: int) -> None:
        key = PROPERTY_ALIASES.get(path[-1], path[-1])
        path = path[:-1] + (key,)
        d = self.descriptor

        if path[-1] == "signingConfig" and len(path) == 4 and path[:2] == ("android", "buildTypes"):
            build_type = d.build_types.setdefault(path[2], BuildTypeDecl(name=path[2], line=line))
            build_type.signing_config = self._signing_config_name(value)
            d.settings[".".join(path)] = self.to_setting(value)
            return

        setting = self.to_setting(value)
        d.settings[".".join(path)] = setting

        if path == ("android", "namespace"):
            d.namespace = setting
        elif path == ("android", "compileSdk"):
            d.compile_sdk = setting
        elif path == ("android", "ndkVersion"):
            d.ndk_version = setting
        elif path == ("android", "compileOptions", "sourceCompatibility"):
            d.source_compatibility = setting
        elif path == ("android", "compileOptions", "targetCompatibility"):
            d.target_compatibility = setting
        elif path in (("android", "kotlinOptions", "jvmTarget"), ("kotlinOptions", "jvmTarget")):
            d.jvm_target = setting
        elif len(path) == 3 and path[:2] == ("android", "defaultConfig") and key in DEFAULT_CONFIG_KEYS:
            setattr(d.default_config, DEFAULT_CONFIG_KEYS[key], setting)
        elif len(path) == 4 and path[:2] == ("android", "signingConfigs") and key in SIGNING_KEYS:
            signing = d.signing_configs.setdefault(path[2], SigningConfigDecl(name=path[2], line=line))
            setattr(signing, SIGNING_KEYS[key], setting)
        elif len(path) == 4 and path[:2] == ("android", "buildTypes") and key in BUILD_TYPE_KEYS:
            build_type = d.build_types.setdefault(path[2], BuildTypeDecl(name=path[2], line=line))
            setattr(build_type, BUILD_TYPE_KEYS[key], setting)
        elif len(path) == 3 and path[:2] == ("android", "buildFeatures"):
            d.build_features[key] = setting
        elif len(path) == 4 and path[:2] == ("android", "bundle") and key == "enableSplit":
            if path[2] in BUNDLE_KEYS and isinstance(setting.literal, bool):
                setattr(d.bundle, BUNDLE_KEYS[path[2]], setting.literal)
        elif path == ("flutter", "source"):
            d.flutter_source = setting

    def _signing_config_name(self, value: Expression) -> str | None:
        # signingConfigs.getByName("release") / signingConfigs.release / signingConfigs["release"]
        if isinstance(value, CallExpr) and value.name.split(".")[-1] in CONTAINER_ACCESSORS:
            return self._string_arg(value.positional)
        if isinstance(value, Reference):
            parts = value.path.split(".")
            if len(parts) == 2 and parts[0] == "signingConfigs":
                return parts[1]
        if isinstance(value, Index) and isinstance(value.index, Literal):
            return str(value.index.value)
        if isinstance(value, Literal) and value.value is None:
            return None
        return None

    def _build_type_in_scope(self, scope: tuple[str, ...]) -> BuildTypeDecl | None:
        if len(scope) == 3 and scope[:2] == ("android", "buildTypes"):
            return self.descriptor.build_types.setdefault(scope[2], BuildTypeDecl(name=scope[2]))
        return None

    def _build_config_field(self, scope: tuple[str, ...], args: list[Expression], line: int) -> None:
        field_type = self.to_setting(args[0]).literal
        field_name = self.to_setting(args[1]).literal
        if not isinstance(field_type, str) or not isinstance(field_name, str):
            self._unsupported(f"buildConfigField({args[1].text}, ...)", line, scope)
            return
        entry = BuildConfigField(type=field_type, name=field_name, value=self.to_setting(args[2]), line=line)
        build_type = self._build_type_in_scope(scope)
        if build_type is not None:
            build_type.build_config_fields.append(entry)
        elif scope == ("android", "defaultConfig"):
            self.descriptor.default_config.build_config_fields.append(entry)

    # -- plugins, repositories, dependencies -------------------------------

    def _plugin(self, call: Call) -> None:
        name = call.name
        argument = self.to_setting(call.positional[0]) if call.positional else None
        plugin_id: str | None = None
        if name == "id" and argument is not None and isinstance(argument.literal, str):
            plugin_id = argument.literal
        elif name == "kotlin" and argument is not None and isinstance(argument.literal, str):
            plugin_id = f"org.jetbrains.kotlin.{argument.literal}"
        elif name == "alias" and call.positional:
            plugin_id = call.positional[0].text
        elif not call.args:
            # Groovy/Kotlin shorthand such as `application` or `java`
            plugin_id = name
        if plugin_id is None:
            self._unsupported(call.text, call.line, ("plugins",))
            return

        version = None
        if "version" in call.infix:
            version_value = self.to_setting(call.infix["version"]).literal
            version = str(version_value) if version_value is not None else call.infix["version"].text
        apply = True
        if "apply" in call.infix:
            apply = self.to_setting(call.infix["apply"]).literal is not False
        self.descriptor.plugins.append(
            PluginDeclaration(id=plugin_id, version=version, apply=apply, line=call.line)
        )

    def _repository(self, call: Call) -> None:
        name = call.name
        url: str | None = None
        if name == "google":
            url = GOOGLE_MAVEN_URL
        elif name == "mavenCentral":
            url = MAVEN_CENTRAL_URL
        elif name == "maven":
            target = call.named.get("url") or (call.positional[0] if call.positional else None)
            if target is not None:
                url = self._url_literal(target)
        self.descriptor.repositories.append(RepositoryDeclaration(name=name, url=url, line=call.line))

    def _maven_repository(self, block: Block) -> None:
        url: str | None = None
        for statement in block.body:
            if isinstance(statement, Assignment) and statement.target == "url":
                url = self._url_literal(statement.value)
            elif isinstance(statement, Call) and statement.name in ("url", "setUrl") and statement.positional:
                url = self._url_literal(statement.positional[0])
        self.descriptor.repositories.append(RepositoryDeclaration(name="maven", url=url, line=block.line))

    def _url_literal(self, value: Expression) -> str | None:
        if isinstance(value, CallExpr) and value.name in ("uri", "java.net.URI") and value.positional:
            value = value.positional[0]
        literal = self.to_setting(value).literal
        return literal if isinstance(literal, str) else None

    def _dependency(self, configuration: str, args: tuple[Argument, ...], line: int, text: str) -> None:
        positional = [arg.value for arg in args if arg.name is None]
        named = {arg.name: arg.value for arg in args if arg.name is not None}
        dependency = DependencyDeclaration(configuration=configuration, notation=text, line=line)

        if "group" in named or "name" in named:
            parts = [self.to_setting(named[key]).literal if key in named else None for key in ("group", "name", "version")]
            dependency.group, dependency.artifact, dependency.version = (
                str(part) if part is not None else None for part in parts
            )
            dependency.notation = ":".join(str(part) for part in parts if part is not None)
        elif positional:
            self._fill_notation(dependency, positional[0])
        self.descriptor.dependencies.append(dependency)

    def _fill_notation(self, dependency: DependencyDeclaration, value: Expression) -> None:
        if isinstance(value, Literal) and isinstance(value.value, str):
            notation = self._interpolate(value.value) if value.template else value.value
            dependency.notation = notation
            (
                dependency.group,
                dependency.artifact,
                dependency.version,
                dependency.classifier,
                dependency.extension,
            ) = parse_coordinate(notation)
            return
        if isinstance(value, CallExpr):
            callee = value.name.split(".")[-1]
            inner = value.positional[0] if value.positional else None
            if callee in ("platform", "enforcedPlatform") and inner is not None:
                self._fill_notation(dependency, inner)
                dependency.kind = DependencyKind.PLATFORM
                return
            if callee == "project":
                dependency.kind = DependencyKind.PROJECT
                target = inner if inner is not None else value.named.get("path")
                literal = self.to_setting(target).literal if target is not None else None
                dependency.notation = str(literal) if literal is not None else value.text
                return
            if callee in ("files", "fileTree"):
                dependency.kind = DependencyKind.FILES
                dependency.notation = value.text
                return
        dependency.kind = DependencyKind.OTHER
        dependency.notation = value.text

    def _interpolate(self, template: str) -> str:
        def replace(match: re.Match[str]) -> str:
            name = match.group(1) or match.group(2)
            local = self.locals.get(name)
            if local is not None and local.literal is not None:
                return str(local.literal)
            return match.group(0)

        return _TEMPLATE_REF.sub(replace, template)

    # -- expressions -------------------------------------------------------

    def _string_arg(self, args: list[Expression]) -> str | None:
        if not args:
            return None
        literal = self.to_setting(args[0]).literal
        return literal if isinstance(literal, str) else None

    def to_setting(self, expr: Expression) -> Setting:
        """Reduce an expression to its symbolic Setting form."""
        setting = self._reduce(expr)
        return setting.model_copy(update={"text": expr.text, "line": expr.line})

    def _reduce(self, expr: Expression) -> Setting:
        base = Setting(text=expr.text, line=expr.line)

        if isinstance(expr, Literal):
            value = self._interpolate(expr.value) if expr.template and isinstance(expr.value, str) else expr.value
            return base.model_copy(update={"literal": value})

        if isinstance(expr, Reference):
            if expr.path in self.locals:
                return self.locals[expr.path]
            java_version = _java_version(expr.path)
            if java_version is not None:
                return base.model_copy(update={"literal": java_version})
            return base.model_copy(update={"reference": expr.path})

        if isinstance(expr, CallExpr):
            return self._reduce_call(expr, base)

        if isinstance(expr, Attribute):
            if expr.name in PROVIDER_UNWRAP:
                return self._reduce(expr.target)
            return base

        if isinstance(expr, Index):
            key = self._reduce(expr.index).literal
            if isinstance(key, str):
                target = expr.target.path if isinstance(expr.target, Reference) else None
                if target in PROPERTY_CONTAINERS or target in self.locals or target is None:
                    return base.model_copy(update={"reference": key})
            return base

        if isinstance(expr, Elvis):
            left = self._reduce(expr.left)
            right = self._reduce(expr.right)
            fallback = right.literal if right.literal is not None else right.fallback
            if left.env_var is not None or left.reference is not None:
                return left.model_copy(update={"fallback": fallback})
            if left.literal is not None:
                return left
            return base.model_copy(update={"fallback": fallback}) if fallback is not None else base

        if isinstance(expr, BinaryOp) and expr.op == "+":
            left = self._reduce(expr.left)
            right = self._reduce(expr.right)
            if left.is_static and right.is_static:
                if isinstance(left.literal, str) or isinstance(right.literal, str):
                    return base.model_copy(update={"literal": f"{left.literal}{right.literal}"})
                if isinstance(left.literal, (int, float)) and isinstance(right.literal, (int, float)):
                    return base.model_copy(update={"literal": left.literal + right.literal})
            return base

        if isinstance(expr, UnaryOp) and expr.op == "!":
            operand = self._reduce(expr.operand)
            if isinstance(operand.literal, bool) and operand.is_static:
                return base.model_copy(update={"literal": not operand.literal})
            return base

        return base

    def _reduce_call(self, expr: CallExpr, base: Setting) -> Setting:
        name = expr.name
        last = name.split(".")[-1]
        first = self._string_arg(expr.positional)

        if expr.receiver is not None:
            if last in PROVIDER_UNWRAP:
                return self._reduce(expr.receiver)
            if last == "getOrElse" and expr.positional:
                inner = self._reduce(expr.receiver)
                fallback = self._reduce(expr.positional[0]).literal
                return inner.model_copy(update={"fallback": fallback})
            return base

        if name in ENV_CALLS and first is not None:
            return base.model_copy(update={"env_var": first})
        if name in PROPERTY_CALLS and first is not None:
            return base.model_copy(update={"reference": first})
        if name in FILE_CALLS and expr.positional:
            inner = self._reduce(expr.positional[0])
            return inner.model_copy(update={"wrapper": "file"})
        if last == "getDefaultProguardFile" and first is not None:
            return base.model_copy(update={"literal": first, "wrapper": "getDefaultProguardFile"})
        if "." in name and last in PROVIDER_UNWRAP:
            # JavaVersion.VERSION_11.toString(), flutter.versionCode.toInt()
            prefix = name.rsplit(".", 1)[0]
            return self._reduce(Reference(path=prefix, line=expr.line, text=prefix))
        return base
