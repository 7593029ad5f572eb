"""
Tokenizer for the Gradle build-script dialects.

Covers the declarative subset of the Kotlin DSL (and the parts of the Groovy
DSL that share its shape): identifiers, string and number literals, brackets,
operators and significant newlines. Comments are dropped.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ..core.exceptions import DescriptorSyntaxError


class TokenKind(str, Enum):
    """Kinds of lexical tokens."""

    IDENT = "ident"
    STRING = "string"
    NUMBER = "number"
    OP = "op"
    NEWLINE = "newline"
    EOF = "eof"


@dataclass(frozen=True)
class Token:
    """A single lexical token with its 1-based position and source offsets."""

    kind: TokenKind
    value: str | int | float
    line: int
    column: int
    template: bool = False
    start: int = 0
    end: int = 0

    def is_op(self, *values: str) -> bool:
        return self.kind == TokenKind.OP and self.value in values

    def is_ident(self, *values: str) -> bool:
        if self.kind != TokenKind.IDENT:
            return False
        return not values or self.value in values


# Longest operators first so that "?:" wins over "?".
_OPERATORS = (
    "?:", "?.", "::", "->", "==", "!=", "&&", "||", "<=", ">=", "+=", "-=", "..", "!!",
    "{", "}", "(", ")", "[", "]", ",", ".", "=", ":", ";",
    "+", "-", "*", "/", "%", "!", "<", ">", "?", "@",
)

_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = {")", "]", "}"}

_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "\\": "\\",
    '"': '"',
    "'": "'",
    "$": "$",
}


class Lexer:
    """Converts build-script text into a list of tokens."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0
        self.line = 1
        self.column = 1
        self.tokens: list[Token] = []
        self._brackets: list[str] = []
        self._token_start = 0

    def _error(self, message: str, line: int | None = None, column: int | None = None) -> DescriptorSyntaxError:
        return DescriptorSyntaxError(
            message=message,
            field_name="descriptor",
            line=line if line is not None else self.line,
            column=column if column is not None else self.column,
        )

    def _peek(self, offset: int = 0) -> str:
        index = self.pos + offset
        return self.text[index] if index < len(self.text) else ""

    def _advance(self, count: int = 1) -> str:
        chunk = self.text[self.pos:self.pos + count]
        for char in chunk:
            if char == "\n":
                self.line += 1
                self.column = 1
            else:
                self.column += 1
        self.pos += count
        return chunk

    def _emit(self, kind: TokenKind, value: str | int | float, line: int, column: int, template: bool = False) -> None:
        self.tokens.append(Token(kind, value, line, column, template, self._token_start, self.pos))

    def _newlines_significant(self) -> bool:
        return not self._brackets or self._brackets[-1] == "{"

    def tokenize(self) -> list[Token]:
        """Tokenize the whole input.

        Returns:
            Token list terminated by a single EOF token.

        Raises:
            DescriptorSyntaxError: On unterminated strings or comments and
                on characters outside the supported grammar.
        """
        if self.text.startswith("#!"):
            while self._peek() and self._peek() != "\n":
                self._advance()

        while self.pos < len(self.text):
            self._token_start = self.pos
            char = self._peek()

            if char == "\n":
                line, column = self.line, self.column
                self._advance()
                if self._newlines_significant() and self.tokens and self.tokens[-1].kind != TokenKind.NEWLINE:
                    self._emit(TokenKind.NEWLINE, "\n", line, column)
            elif char in " \t\r\f\ufeff":
                self._advance()
            elif char == "/" and self._peek(1) == "/":
                while self._peek() and self._peek() != "\n":
                    self._advance()
            elif char == "/" and self._peek(1) == "*":
                self._skip_block_comment()
            elif char == '"' or char == "'":
                self._read_string()
            elif char.isdigit():
                self._read_number()
            elif char.isalpha() or char == "_":
                self._read_identifier()
            elif char == "`":
                self._read_backtick_identifier()
            else:
                self._read_operator()

        self._token_start = self.pos
        if self.tokens and self.tokens[-1].kind != TokenKind.NEWLINE:
            self._emit(TokenKind.NEWLINE, "\n", self.line, self.column)
        self._emit(TokenKind.EOF, "", self.line, self.column)
        return self.tokens

    def _skip_block_comment(self) -> None:
        line, column = self.line, self.column
        self._advance(2)
        depth = 1
        while depth:
            if not self._peek():
                raise self._error("Unterminated block comment", line, column)
            if self._peek() == "/" and self._peek(1) == "*":
                depth += 1
                self._advance(2)
            elif self._peek() == "*" and self._peek(1) == "/":
                depth -= 1
                self._advance(2)
            else:
                self._advance()

    def _read_string(self) -> None:
        line, column = self.line, self.column
        quote = self._peek()

        if quote == '"' and self.text.startswith('"""', self.pos):
            self._advance(3)
            end = self.text.find('"""', self.pos)
            if end == -1:
                raise self._error("Unterminated raw string", line, column)
            raw = self.text[self.pos:end]
            self._advance(end - self.pos + 3)
            self._emit(TokenKind.STRING, raw, line, column, template="$" in raw)
            return

        self._advance()
        chars: list[str] = []
        template = False
        while True:
            char = self._peek()
            if not char or char == "\n":
                raise self._error("Unterminated string literal", line, column)
            if char == quote:
                self._advance()
                break
            if char == "\\":
                escape = self._peek(1)
                if escape == "u" and quote == '"':
                    digits = self.text[self.pos + 2:self.pos + 6]
                    try:
                        chars.append(chr(int(digits, 16)))
                    except ValueError:
                        raise self._error(f"Invalid unicode escape '\\u{digits}'") from None
                    self._advance(6)
                    continue
                if escape not in _ESCAPES:
                    raise self._error(f"Invalid escape sequence '\\{escape}'")
                chars.append(_ESCAPES[escape])
                self._advance(2)
                continue
            if char == "$" and quote == '"' and (self._peek(1) == "{" or self._peek(1).isalpha() or self._peek(1) == "_"):
                template = True
                if self._peek(1) == "{":
                    chars.append(self._read_template_expression(line, column))
                    continue
            chars.append(char)
            self._advance()

        self._emit(TokenKind.STRING, "".join(chars), line, column, template=template)

    def _read_template_expression(self, line: int, column: int) -> str:
        """Consume ``${...}`` keeping the raw text; braces and quotes may nest."""
        start = self.pos
        self._advance(2)
        depth = 1
        while depth:
            char = self._peek()
            if not char or char == "\n":
                raise self._error("Unterminated string template", line, column)
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
            elif char == '"':
                self._advance()
                while self._peek() and self._peek() not in ('"', "\n"):
                    self._advance(2 if self._peek() == "\\" else 1)
            self._advance()
        return self.text[start:self.pos]

    def _read_number(self) -> None:
        line, column = self.line, self.column
        start = self.pos
        if self._peek() == "0" and self._peek(1) in ("x", "X"):
            self._advance(2)
            while self._peek().isalnum() or self._peek() == "_":
                self._advance()
            digits = self.text[start + 2:self.pos].replace("_", "").rstrip("Ll")
            try:
                self._emit(TokenKind.NUMBER, int(digits, 16), line, column)
            except ValueError:
                raise self._error(f"Invalid hex literal '{self.text[start:self.pos]}'", line, column) from None
            return

        is_float = False
        while self._peek().isdigit() or self._peek() == "_":
            self._advance()
        if self._peek() == "." and self._peek(1).isdigit():
            is_float = True
            self._advance()
            while self._peek().isdigit() or self._peek() == "_":
                self._advance()
        if self._peek() in ("e", "E") and (self._peek(1).isdigit() or self._peek(1) in "+-"):
            is_float = True
            self._advance(2)
            while self._peek().isdigit():
                self._advance()
        literal = self.text[start:self.pos].replace("_", "")
        if self._peek() in ("L", "l"):
            self._advance()
        elif self._peek() in ("f", "F", "d", "D"):
            is_float = True
            self._advance()
        value: int | float = float(literal) if is_float else int(literal)
        self._emit(TokenKind.NUMBER, value, line, column)

    def _read_identifier(self) -> None:
        line, column = self.line, self.column
        start = self.pos
        while self._peek().isalnum() or self._peek() == "_":
            self._advance()
        self._emit(TokenKind.IDENT, self.text[start:self.pos], line, column)

    def _read_backtick_identifier(self) -> None:
        line, column = self.line, self.column
        self._advance()
        start = self.pos
        while self._peek() and self._peek() not in ("`", "\n"):
            self._advance()
        if self._peek() != "`":
            raise self._error("Unterminated backtick identifier", line, column)
        name = self.text[start:self.pos]
        self._advance()
        self._emit(TokenKind.IDENT, name, line, column)

    def _read_operator(self) -> None:
        line, column = self.line, self.column
        for op in _OPERATORS:
            if self.text.startswith(op, self.pos):
                self._advance(len(op))
                if op in _OPENERS:
                    self._brackets.append(op)
                elif op in _CLOSERS:
                    if self._brackets and _OPENERS[self._brackets[-1]] == op:
                        self._brackets.pop()
                    else:
                        raise self._error(f"Unbalanced '{op}'", line, column)
                self._emit(TokenKind.OP, op, line, column)
                return
        raise self._error(f"Unexpected character '{self._peek()}'")


def tokenize(text: str) -> list[Token]:
    """Tokenize build-script text.

    Args:
        text: Script source.

    Returns:
        Tokens ending with EOF.
    """
    return Lexer(text).tokenize()
