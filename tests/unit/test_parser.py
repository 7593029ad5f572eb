"""Unit tests for the build-script parser."""

import pytest

from gradleguard.core.exceptions import DescriptorSyntaxError
from gradleguard.dsl import parse
from gradleguard.dsl.ast import (
    Assignment,
    Attribute,
    Block,
    Call,
    CallExpr,
    Declaration,
    Elvis,
    Import,
    Literal,
    Opaque,
    Reference,
)


def only(text):
    statements = parse(text).statements
    assert len(statements) == 1
    return statements[0]


class TestStatements:
    """Tests for statement forms."""

    def test_assignment(self):
        """name = value parses to an Assignment with its line."""
        statement = only('namespace = "com.example.app"')
        assert isinstance(statement, Assignment)
        assert statement.target == "namespace"
        assert isinstance(statement.value, Literal)
        assert statement.value.value == "com.example.app"
        assert statement.line == 1

    def test_dotted_assignment(self):
        """Dotted targets keep the full path."""
        statement = only("android.defaultConfig.minSdk = 24")
        assert isinstance(statement, Assignment)
        assert statement.target == "android.defaultConfig.minSdk"

    def test_compound_assignment(self):
        """+= is kept as the assignment operator."""
        statement = only('abiFilters += "arm64-v8a"')
        assert isinstance(statement, Assignment)
        assert statement.op == "+="

    def test_nested_blocks(self):
        """Blocks nest and carry their bodies."""
        script = parse("android {\n    defaultConfig {\n        minSdk = 21\n    }\n}\n")
        (android,) = script.statements
        assert isinstance(android, Block)
        assert android.name == "android"
        (default_config,) = android.body
        assert isinstance(default_config, Block)
        assert default_config.line == 2
        (assignment,) = default_config.body
        assert assignment.line == 3

    def test_container_element_block(self):
        """create("release") { ... } is a block with an argument."""
        statement = only('create("release") {\n    keyAlias = "upload"\n}')
        assert isinstance(statement, Block)
        assert statement.name == "create"
        assert statement.positional[0].value == "release"

    def test_kotlin_call(self):
        """A call statement keeps its arguments and source text."""
        statement = only('implementation("androidx.core:core-ktx:1.12.0")')
        assert isinstance(statement, Call)
        assert statement.name == "implementation"
        assert statement.positional[0].value == "androidx.core:core-ktx:1.12.0"
        assert statement.text == 'implementation("androidx.core:core-ktx:1.12.0")'

    def test_groovy_command_call(self):
        """Groovy commands without parentheses become calls."""
        statement = only("minSdkVersion 21")
        assert isinstance(statement, Call)
        assert statement.name == "minSdkVersion"
        assert statement.positional[0].value == 21

    def test_groovy_named_arguments(self):
        """apply plugin: 'x' keeps the argument name."""
        statement = only("apply plugin: 'com.android.application'")
        assert isinstance(statement, Call)
        assert statement.named["plugin"].value == "com.android.application"

    def test_named_call_arguments(self):
        """Kotlin named arguments are recorded by name."""
        statement = only('implementation(group = "g", name = "a", version = "1.0")')
        assert statement.named["version"].value == "1.0"
        assert statement.positional == []

    def test_plugin_infix(self):
        """version and apply after a plugin id are captured as infix arguments."""
        statement = only('id("com.android.application") version "8.2.0" apply false')
        assert isinstance(statement, Call)
        assert statement.infix["version"].value == "8.2.0"
        assert statement.infix["apply"].value is False

    def test_groovy_plugin_infix(self):
        """The Groovy plugin form also captures infix arguments."""
        statement = only("id 'org.jetbrains.kotlin.android' version '1.9.22' apply false")
        assert statement.positional[0].value == "org.jetbrains.kotlin.android"
        assert statement.infix["version"].value == "1.9.22"

    def test_bare_call(self):
        """google() and a bare mavenCentral are both calls without arguments."""
        script = parse("repositories {\n    google()\n    mavenCentral\n}")
        google, central = script.statements[0].body
        assert isinstance(google, Call) and google.name == "google" and google.args == ()
        assert isinstance(central, Call) and central.name == "mavenCentral"

    def test_import(self):
        """Imports keep their dotted path."""
        statement = only("import java.util.Properties")
        assert isinstance(statement, Import)
        assert statement.path == "java.util.Properties"

    def test_declaration(self):
        """val declarations are recorded, with the type skipped."""
        statement = only('val roomVersion: String = "2.6.1"')
        assert isinstance(statement, Declaration)
        assert statement.name == "roomVersion"
        assert statement.value.value == "2.6.1"
        assert statement.mutable is False

    def test_conditional_is_opaque(self):
        """if/else chains are kept as one opaque statement."""
        script = parse('if (x) {\n    a = 1\n} else {\n    a = 2\n}\nb = 3')
        opaque, assignment = script.statements
        assert isinstance(opaque, Opaque)
        assert opaque.line == 1
        assert "else" in opaque.text
        assert isinstance(assignment, Assignment)

    def test_semicolons_separate_statements(self):
        """Semicolons end statements like newlines."""
        assert len(parse("a = 1; b = 2").statements) == 2

    def test_blocks_helper(self):
        """Script.blocks finds top-level blocks by name."""
        script = parse("android {\n}\ndependencies {\n}\n")
        assert [block.name for block in script.blocks("dependencies")] == ["dependencies"]


class TestExpressions:
    """Tests for expression forms."""

    def test_elvis(self):
        """env ?: fallback parses to Elvis with a folded call on the left."""
        statement = only('keyAlias = System.getenv("KEY_ALIAS") ?: "upload"')
        assert isinstance(statement.value, Elvis)
        left = statement.value.left
        assert isinstance(left, CallExpr)
        assert left.name == "System.getenv"
        assert statement.value.right.value == "upload"

    def test_elvis_on_next_line(self):
        """A leading ?: on the next line continues the expression."""
        statement = only('keyAlias = System.getenv("KEY_ALIAS")\n    ?: "via-release"')
        assert isinstance(statement, Assignment)
        assert isinstance(statement.value, Elvis)
        assert statement.value.left.name == "System.getenv"
        assert statement.value.right.value == "via-release"

    def test_member_access_on_next_line(self):
        """A leading . on the next line continues the call chain."""
        statement = only('alias = providers.environmentVariable("ALIAS")\n    .orNull')
        assert isinstance(statement.value, Attribute)
        assert statement.value.name == "orNull"
        assert statement.value.target.name == "providers.environmentVariable"

    def test_newline_still_ends_statement(self):
        """Without a continuation operator a newline ends the statement."""
        statements = parse('a = System.getenv("A")\nb = "c"').statements
        assert [s.target for s in statements] == ["a", "b"]

    def test_constructor(self):
        """Groovy new T(args) is a call named after the type."""
        statement = only("def localProperties = new Properties()")
        assert isinstance(statement, Declaration)
        assert isinstance(statement.value, CallExpr)
        assert statement.value.name == "Properties"
        assert statement.value.args == ()
        assert statement.value.text == "new Properties()"

    def test_qualified_constructor_with_arguments(self):
        """Qualified type names and arguments are kept."""
        statement = only('def f = new java.io.File("key.properties")')
        assert statement.value.name == "java.io.File"
        assert statement.value.positional[0].value == "key.properties"

    def test_reference_path(self):
        """Dotted identifiers fold into one reference."""
        statement = only("compileSdk = flutter.compileSdkVersion")
        assert isinstance(statement.value, Reference)
        assert statement.value.path == "flutter.compileSdkVersion"

    def test_call_on_reference_folds_name(self):
        """x.y.z(...) on a reference is a call named x.y.z."""
        statement = only("jvmTarget = JavaVersion.VERSION_11.toString()")
        assert isinstance(statement.value, CallExpr)
        assert statement.value.name == "JavaVersion.VERSION_11.toString"
        assert statement.value.receiver is None

    def test_attribute_on_call(self):
        """A property read on a call result is an Attribute."""
        statement = only('alias = providers.environmentVariable("ALIAS").orNull')
        assert isinstance(statement.value, Attribute)
        assert statement.value.name == "orNull"

    def test_nested_call_arguments(self):
        """Arguments may themselves be calls."""
        statement = only('storeFile = file(System.getenv("KEYSTORE") ?: "release.jks")')
        call = statement.value
        assert call.name == "file"
        assert isinstance(call.positional[0], Elvis)

    def test_negative_number(self):
        """Unary minus on a number folds into the literal."""
        assert only("x = -1").value.value == -1

    def test_expression_text(self):
        """Expressions keep their exact source text."""
        statement = only('storeFile = file("keys/release.jks")')
        assert statement.value.text == 'file("keys/release.jks")'


class TestParserErrors:
    """Tests for syntax errors."""

    def test_missing_closing_brace(self):
        """A block left open at EOF is rejected."""
        with pytest.raises(DescriptorSyntaxError, match="Missing '}' before end of file"):
            parse("android {\n    minSdk = 21\n")

    def test_trailing_tokens(self):
        """Garbage after a complete statement is rejected with its line."""
        with pytest.raises(DescriptorSyntaxError, match="Expected end of statement") as exc_info:
            parse('a = 1\nnamespace = "x" "y"')
        assert exc_info.value.line == 2

    def test_statement_cannot_start_with_string(self):
        """A statement must start with an identifier."""
        with pytest.raises(DescriptorSyntaxError, match="at start of statement"):
            parse('"dangling"')

    def test_bad_argument_list(self):
        """Arguments must be comma separated."""
        with pytest.raises(DescriptorSyntaxError, match="Expected ',' or '\\)'"):
            parse('implementation("a" "b")')
