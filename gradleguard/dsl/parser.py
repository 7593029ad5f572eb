"""
Recursive-descent parser for Gradle build scripts.

Parses the declarative subset of the Kotlin DSL into a syntax tree: blocks,
assignments, call statements, ``val`` declarations and imports, plus the
Groovy command syntax (``minSdkVersion 21``) that shares the same shape.
Control-flow statements are not evaluated; they are kept as ``Opaque`` nodes
so that a descriptor using them still loads.
"""

from __future__ import annotations

from ..core.exceptions import DescriptorSyntaxError
from .ast import (
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
    ListLiteral,
    Literal,
    Opaque,
    Reference,
    Script,
    Statement,
    UnaryOp,
    Unparsed,
)
from .lexer import Token, TokenKind, tokenize

OPAQUE_KEYWORDS = frozenset({
    "if", "else", "when", "for", "while", "do", "try", "catch", "finally",
    "fun", "class", "object", "interface", "return", "throw", "typealias",
})
DECLARATION_KEYWORDS = frozenset({"val", "var", "def"})
INFIX_KEYWORDS = frozenset({"version", "apply"})
LITERAL_KEYWORDS = {"true": True, "false": False, "null": None}
_NOT_INFIX = INFIX_KEYWORDS | OPAQUE_KEYWORDS | {"as", "is"}

_EQUALITY = ("==", "!=")
_COMPARISON = ("<", ">", "<=", ">=")
_ADDITIVE = ("+", "-")
_MULTIPLICATIVE = ("*", "/", "%")


class Parser:
    """Builds a :class:`Script` from a token list."""

    def __init__(self, tokens: list[Token], source: str) -> None:
        self.tokens = tokens
        self.source = source
        self.index = 0

    # -- token helpers -----------------------------------------------------

    def _peek(self, offset: int = 0) -> Token:
        index = min(self.index + offset, len(self.tokens) - 1)
        return self.tokens[index]

    def _next(self) -> Token:
        token = self.tokens[self.index]
        if token.kind != TokenKind.EOF:
            self.index += 1
        return token

    @property
    def _previous(self) -> Token:
        return self.tokens[max(self.index - 1, 0)]

    def _error(self, message: str, token: Token | None = None) -> DescriptorSyntaxError:
        token = token or self._peek()
        return DescriptorSyntaxError(
            message=message,
            field_name="descriptor",
            line=token.line,
            column=token.column,
        )

    def _expect_op(self, value: str) -> Token:
        token = self._peek()
        if not token.is_op(value):
            raise self._error(f"Expected '{value}' but found {_describe(token)}")
        return self._next()

    def _expect_ident(self) -> Token:
        token = self._peek()
        if token.kind != TokenKind.IDENT:
            raise self._error(f"Expected identifier but found {_describe(token)}")
        return self._next()

    def _text_from(self, start: Token) -> str:
        return self.source[start.start:self._previous.end]

    def _skip_newlines(self) -> None:
        while self._peek().kind == TokenKind.NEWLINE:
            self._next()

    def _continues_with(self, *ops: str) -> bool:
        """Whether the expression goes on with one of ``ops``, possibly on a later line."""
        offset = 0
        while self._peek(offset).kind == TokenKind.NEWLINE:
            offset += 1
        if offset and self._peek(offset).is_op(*ops):
            self.index += offset
        return self._peek().is_op(*ops)

    def _at_statement_end(self) -> bool:
        token = self._peek()
        return token.kind in (TokenKind.NEWLINE, TokenKind.EOF) or token.is_op(";", "}")

    # -- statements --------------------------------------------------------

    def parse(self) -> Script:
        statements = self._statements(in_block=False)
        if self._peek().kind != TokenKind.EOF:
            raise self._error(f"Unexpected {_describe(self._peek())}")
        return Script(statements=tuple(statements), source=self.source)

    def _statements(self, in_block: bool) -> list[Statement]:
        statements: list[Statement] = []
        while True:
            while self._peek().kind == TokenKind.NEWLINE or self._peek().is_op(";"):
                self._next()
            token = self._peek()
            if token.kind == TokenKind.EOF:
                if in_block:
                    raise self._error("Missing '}' before end of file")
                return statements
            if token.is_op("}"):
                if not in_block:
                    raise self._error("Unexpected '}'")
                return statements

            statements.append(self._statement())

            if not self._at_statement_end():
                raise self._error(f"Expected end of statement but found {_describe(self._peek())}")

    def _statement(self) -> Statement:
        token = self._peek()

        if token.is_ident("import", "package"):
            return self._import()
        if token.is_ident(*DECLARATION_KEYWORDS) and self._peek(1).kind == TokenKind.IDENT:
            return self._declaration()
        if token.is_ident(*OPAQUE_KEYWORDS) or token.is_op("@"):
            return self._opaque()
        if token.kind != TokenKind.IDENT:
            raise self._error(f"Unexpected {_describe(token)} at start of statement")

        start = token
        target = self._postfix()

        if self._peek().is_op("=", "+=", "-="):
            op = str(self._next().value)
            value = self._expression_with_lambda()
            if isinstance(target, Reference):
                return Assignment(target=target.path, value=value, line=start.line, op=op)
            return Opaque(text=self._text_from(start), line=start.line)

        if self._peek().is_op("{"):
            if isinstance(target, Reference):
                return self._block(target.path, (), start)
            if isinstance(target, CallExpr) and target.receiver is None:
                return self._block(target.name, target.args, start)
            self._skip_balanced("{", "}")
            return Opaque(text=self._text_from(start), line=start.line)

        if isinstance(target, Reference) and self._starts_command_argument():
            args = self._command_args()
            if self._peek().is_op("{"):
                return self._block(target.path, tuple(args), start)
            infix = self._infix()
            return Call(name=target.path, args=tuple(args), line=start.line, text=self._text_from(start), infix=infix)

        if isinstance(target, CallExpr) and target.receiver is None:
            infix = self._infix()
            return Call(name=target.name, args=target.args, line=start.line, text=self._text_from(start), infix=infix)

        if isinstance(target, Reference) and self._at_statement_end():
            return Call(name=target.path, args=(), line=start.line, text=target.text)

        while not self._at_statement_end():
            if self._peek().is_op("{"):
                self._skip_balanced("{", "}")
            else:
                self._next()
        return Opaque(text=self._text_from(start), line=start.line)

    def _import(self) -> Import:
        start = self._next()
        parts: list[str] = []
        while not self._at_statement_end():
            parts.append(str(self._next().value))
        return Import(path="".join(parts), line=start.line)

    def _declaration(self) -> Statement:
        start = self._next()
        name = str(self._expect_ident().value)
        if self._peek().is_op(":"):
            self._next()
            self._skip_type()
        if not self._peek().is_op("="):
            return self._finish_opaque(start)
        self._next()
        value = self._expression_with_lambda()
        return Declaration(name=name, value=value, line=start.line, mutable=start.value != "val")

    def _opaque(self) -> Opaque:
        return self._finish_opaque(self._peek())

    def _finish_opaque(self, start: Token) -> Opaque:
        while True:
            token = self._peek()
            if token.kind == TokenKind.EOF or token.is_op(";", "}"):
                break
            if token.kind == TokenKind.NEWLINE:
                # `if (x) {\n...\n} else {` continues on the next line
                if self._peek(1).is_ident("else", "catch", "finally"):
                    self._next()
                    continue
                break
            if token.is_op("{"):
                self._skip_balanced("{", "}")
            else:
                self._next()
        return Opaque(text=self._text_from(start), line=start.line)

    def _block(self, name: str, args: tuple[Argument, ...], start: Token) -> Block:
        self._expect_op("{")
        self._skip_lambda_parameters()
        body = self._statements(in_block=True)
        self._expect_op("}")
        return Block(name=name, args=args, body=tuple(body), line=start.line)

    def _skip_lambda_parameters(self) -> None:
        """Drop ``{ a, b ->`` parameter lists; they carry no configuration."""
        offset = 0
        while self._peek(offset).kind == TokenKind.NEWLINE:
            offset += 1
        cursor = offset
        while self._peek(cursor).kind == TokenKind.IDENT:
            cursor += 1
            if self._peek(cursor).is_op(","):
                cursor += 1
                continue
            break
        if cursor > offset and self._peek(cursor).is_op("->"):
            self.index += cursor + 1

    def _starts_command_argument(self) -> bool:
        token = self._peek()
        if token.kind in (TokenKind.STRING, TokenKind.NUMBER):
            return True
        if token.kind == TokenKind.IDENT:
            return token.value not in INFIX_KEYWORDS or self._peek(1).is_op(":")
        return token.is_op("[", "-", "!")

    def _command_args(self) -> list[Argument]:
        args: list[Argument] = []
        while True:
            if self._peek().kind == TokenKind.IDENT and self._peek(1).is_op(":"):
                name = str(self._next().value)
                self._next()
                args.append(Argument(value=self._expression(), name=name))
            else:
                args.append(Argument(value=self._expression()))
            if not self._peek().is_op(","):
                return args
            self._next()
            self._skip_newlines()

    def _infix(self) -> dict[str, Expression]:
        infix: dict[str, Expression] = {}
        while self._peek().is_ident(*INFIX_KEYWORDS) and not self._peek(1).kind == TokenKind.NEWLINE:
            name = str(self._next().value)
            infix[name] = self._expression()
        return infix

    def _skip_type(self) -> None:
        self._expect_ident()
        while self._peek().is_op(".") and self._peek(1).kind == TokenKind.IDENT:
            self._next()
            self._next()
        if self._peek().is_op("<"):
            self._skip_balanced("<", ">")
        if self._peek().is_op("?"):
            self._next()

    def _skip_balanced(self, opener: str, closer: str) -> None:
        start = self._expect_op(opener)
        depth = 1
        while depth:
            token = self._next()
            if token.kind == TokenKind.EOF:
                raise self._error(f"Missing '{closer}'", start)
            if token.is_op(opener):
                depth += 1
            elif token.is_op(closer):
                depth -= 1

    # -- expressions -------------------------------------------------------

    def _expression_with_lambda(self) -> Expression:
        start = self._peek()
        value = self._expression()
        if self._peek().is_op("{"):
            self._skip_balanced("{", "}")
            return Unparsed(line=start.line, text=self._text_from(start))
        return value

    def _expression(self) -> Expression:
        return self._logical()

    def _binary(self, operators: tuple[str, ...], operand) -> Expression:
        start = self._peek()
        left = operand()
        while self._peek().is_op(*operators):
            op = str(self._next().value)
            self._skip_newlines()
            right = operand()
            left = BinaryOp(op=op, left=left, right=right, line=start.line, text=self._text_from(start))
        return left

    def _logical(self) -> Expression:
        return self._binary(("&&", "||"), self._equality)

    def _equality(self) -> Expression:
        return self._binary(_EQUALITY, self._comparison)

    def _comparison(self) -> Expression:
        return self._binary(_COMPARISON, self._elvis)

    def _elvis(self) -> Expression:
        start = self._peek()
        left = self._infix_function()
        if self._continues_with("?:"):
            self._next()
            self._skip_newlines()
            right = self._elvis()
            return Elvis(left=left, right=right, line=start.line, text=self._text_from(start))
        return left

    def _infix_function(self) -> Expression:
        """Kotlin infix calls such as ``"key" to "value"``."""
        start = self._peek()
        left = self._additive()
        while self._peek().is_ident() and self._peek().value not in _NOT_INFIX and self._starts_operand(1):
            op = str(self._next().value)
            right = self._additive()
            left = BinaryOp(op=op, left=left, right=right, line=start.line, text=self._text_from(start))
        return left

    def _starts_operand(self, offset: int) -> bool:
        token = self._peek(offset)
        return token.kind in (TokenKind.STRING, TokenKind.NUMBER, TokenKind.IDENT) or token.is_op("(", "[", "-", "!")

    def _additive(self) -> Expression:
        return self._binary(_ADDITIVE, self._multiplicative)

    def _multiplicative(self) -> Expression:
        return self._binary(_MULTIPLICATIVE, self._prefix)

    def _prefix(self) -> Expression:
        start = self._peek()
        if start.is_op("-", "!", "+"):
            op = str(self._next().value)
            operand = self._prefix()
            if op == "-" and isinstance(operand, Literal) and isinstance(operand.value, (int, float)) \
                    and not isinstance(operand.value, bool):
                return Literal(value=-operand.value, line=start.line, text=self._text_from(start))
            return UnaryOp(op=op, operand=operand, line=start.line, text=self._text_from(start))
        value = self._postfix()
        while self._peek().is_ident("as", "is"):
            self._next()
            if self._peek().is_op("?"):
                self._next()
            self._skip_type()
        return value

    def _postfix(self) -> Expression:
        start = self._peek()
        value = self._primary()
        while True:
            # call chains may break the line before `.` or `?.`
            self._continues_with(".", "?.")
            token = self._peek()
            if token.is_op(".", "?.", "::"):
                self._next()
                self._skip_newlines()
                name = str(self._expect_ident().value)
                if self._peek().is_op("("):
                    args = self._call_args()
                    text = self._text_from(start)
                    if isinstance(value, Reference):
                        value = CallExpr(name=f"{value.path}.{name}", args=args, line=start.line, text=text)
                    else:
                        value = CallExpr(name=name, args=args, line=start.line, text=text, receiver=value)
                elif isinstance(value, Reference):
                    value = Reference(path=f"{value.path}.{name}", line=start.line, text=self._text_from(start))
                else:
                    value = Attribute(target=value, name=name, line=start.line, text=self._text_from(start))
            elif token.is_op("("):
                args = self._call_args()
                text = self._text_from(start)
                if isinstance(value, Reference):
                    value = CallExpr(name=value.path, args=args, line=start.line, text=text)
                else:
                    value = CallExpr(name="invoke", args=args, line=start.line, text=text, receiver=value)
            elif token.is_op("["):
                self._next()
                index = self._expression()
                self._expect_op("]")
                value = Index(target=value, index=index, line=start.line, text=self._text_from(start))
            elif token.is_op("!!"):
                self._next()
            else:
                return value

    def _call_args(self) -> tuple[Argument, ...]:
        self._expect_op("(")
        args: list[Argument] = []
        while not self._peek().is_op(")"):
            name: str | None = None
            if self._peek().kind == TokenKind.IDENT and self._peek(1).is_op("=", ":"):
                name = str(self._next().value)
                self._next()
            args.append(Argument(value=self._expression_with_lambda(), name=name))
            if self._peek().is_op(","):
                self._next()
                continue
            if not self._peek().is_op(")"):
                raise self._error(f"Expected ',' or ')' but found {_describe(self._peek())}")
        self._expect_op(")")
        return tuple(args)

    def _primary(self) -> Expression:
        token = self._peek()

        if token.kind == TokenKind.STRING:
            self._next()
            return Literal(value=token.value, line=token.line, text=self._text_from(token), template=token.template)
        if token.kind == TokenKind.NUMBER:
            self._next()
            return Literal(value=token.value, line=token.line, text=self._text_from(token))
        if token.is_ident("new") and self._peek(1).kind == TokenKind.IDENT:
            return self._constructor()
        if token.kind == TokenKind.IDENT:
            self._next()
            if token.value in LITERAL_KEYWORDS:
                return Literal(value=LITERAL_KEYWORDS[token.value], line=token.line, text=str(token.value))
            return Reference(path=str(token.value), line=token.line, text=str(token.value))
        if token.is_op("("):
            self._next()
            value = self._expression()
            self._expect_op(")")
            return value
        if token.is_op("["):
            return self._list_literal()
        if token.is_op("{"):
            self._skip_balanced("{", "}")
            return Unparsed(line=token.line, text=self._text_from(token))

        raise self._error(f"Unexpected {_describe(token)} in expression")

    def _constructor(self) -> CallExpr:
        """Groovy ``new Type(args)``; the type name becomes the call name."""
        start = self._next()
        parts = [str(self._expect_ident().value)]
        while self._peek().is_op(".") and self._peek(1).kind == TokenKind.IDENT:
            self._next()
            parts.append(str(self._next().value))
        if self._peek().is_op("<"):
            self._skip_balanced("<", ">")
        args = self._call_args() if self._peek().is_op("(") else ()
        return CallExpr(name=".".join(parts), args=args, line=start.line, text=self._text_from(start))

    def _list_literal(self) -> Expression:
        start = self._next()
        # Groovy map literal: [key: value, ...]
        if (self._peek().kind in (TokenKind.IDENT, TokenKind.STRING) and self._peek(1).is_op(":")) \
                or (self._peek().is_op(":") and self._peek(1).is_op("]")):
            self.index -= 1
            self._skip_balanced("[", "]")
            return Unparsed(line=start.line, text=self._text_from(start))
        items: list[Expression] = []
        while not self._peek().is_op("]"):
            items.append(self._expression())
            if self._peek().is_op(","):
                self._next()
            elif not self._peek().is_op("]"):
                raise self._error(f"Expected ',' or ']' but found {_describe(self._peek())}")
        self._expect_op("]")
        return ListLiteral(items=tuple(items), line=start.line, text=self._text_from(start))


def _describe(token: Token) -> str:
    if token.kind == TokenKind.EOF:
        return "end of file"
    if token.kind == TokenKind.NEWLINE:
        return "end of line"
    return f"'{token.value}'"


def parse(text: str) -> Script:
    """Parse build-script text into a syntax tree.

    Args:
        text: Script source.

    Returns:
        The parsed script.

    Raises:
        DescriptorSyntaxError: If the text is outside the supported grammar.
    """
    return Parser(tokenize(text), text).parse()
