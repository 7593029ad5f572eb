"""
Syntax tree for parsed build scripts.

Expression nodes keep the exact source text they were parsed from so that
later stages can quote the descriptor back to the user.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class Literal:
    value: str | int | float | bool | None
    line: int
    text: str
    template: bool = False


@dataclass(frozen=True)
class Reference:
    """A dotted name such as ``flutter.compileSdkVersion``."""

    path: str
    line: int
    text: str


@dataclass(frozen=True)
class Argument:
    value: Expression
    name: str | None = None


@dataclass(frozen=True)
class CallExpr:
    """A call. Calls on a plain dotted receiver are folded into ``name``."""

    name: str
    args: tuple[Argument, ...]
    line: int
    text: str
    receiver: Expression | None = None

    @property
    def positional(self) -> list[Expression]:
        return [arg.value for arg in self.args if arg.name is None]

    @property
    def named(self) -> dict[str, Expression]:
        return {arg.name: arg.value for arg in self.args if arg.name is not None}


@dataclass(frozen=True)
class Attribute:
    """Member access on something that is not a plain dotted name."""

    target: Expression
    name: str
    line: int
    text: str


@dataclass(frozen=True)
class Index:
    target: Expression
    index: Expression
    line: int
    text: str


@dataclass(frozen=True)
class Elvis:
    """Kotlin ``left ?: right``."""

    left: Expression
    right: Expression
    line: int
    text: str


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: Expression
    right: Expression
    line: int
    text: str


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: Expression
    line: int
    text: str


@dataclass(frozen=True)
class ListLiteral:
    items: tuple[Expression, ...]
    line: int
    text: str


@dataclass(frozen=True)
class Unparsed:
    """An expression kept only as text (lambdas, maps)."""

    line: int
    text: str


Expression = Union[
    Literal, Reference, CallExpr, Attribute, Index, Elvis, BinaryOp, UnaryOp, ListLiteral, Unparsed
]


@dataclass(frozen=True)
class Import:
    path: str
    line: int


@dataclass(frozen=True)
class Declaration:
    """``val name = value`` (or ``var``/``def``)."""

    name: str
    value: Expression
    line: int
    mutable: bool = False


@dataclass(frozen=True)
class Assignment:
    target: str
    value: Expression
    line: int
    op: str = "="


@dataclass(frozen=True)
class Call:
    """A call statement, e.g. ``implementation("g:a:v")`` or ``minSdkVersion 21``."""

    name: str
    args: tuple[Argument, ...]
    line: int
    text: str
    infix: dict[str, Expression] = field(default_factory=dict)

    @property
    def positional(self) -> list[Expression]:
        return [arg.value for arg in self.args if arg.name is None]

    @property
    def named(self) -> dict[str, Expression]:
        return {arg.name: arg.value for arg in self.args if arg.name is not None}


@dataclass(frozen=True)
class Block:
    """``name { ... }`` or ``name(args) { ... }``."""

    name: str
    args: tuple[Argument, ...]
    body: tuple[Statement, ...]
    line: int

    @property
    def positional(self) -> list[Expression]:
        return [arg.value for arg in self.args if arg.name is None]


@dataclass(frozen=True)
class Opaque:
    """A statement outside the declarative subset; kept as text."""

    text: str
    line: int


Statement = Union[Import, Declaration, Assignment, Call, Block, Opaque]


@dataclass(frozen=True)
class Script:
    statements: tuple[Statement, ...]
    source: str = ""

    def blocks(self, name: str) -> list[Block]:
        """Top-level blocks with the given name."""
        return [s for s in self.statements if isinstance(s, Block) and s.name == name]
