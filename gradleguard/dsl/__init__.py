"""Tokenizer and parser for Gradle build scripts."""

from .lexer import Token, TokenKind, tokenize
from .parser import parse

__all__ = ["Token", "TokenKind", "tokenize", "parse"]
