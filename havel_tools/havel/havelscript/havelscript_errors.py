#!/usr/bin/env python3
"""
HavelScript Errors

Exception types raised while lexing, parsing, compiling and running
HavelScript programs. Every error carries the source position it refers to.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class LexErrorKind(Enum):
    """Lexer failure kinds"""

    UNTERMINATED_STRING = "UnterminatedString"


class ParseErrorKind(Enum):
    """Parser failure kinds"""

    UNEXPECTED_TOKEN = "UnexpectedToken"
    NESTING_TOO_DEEP = "NestingTooDeep"


class CompileErrorKind(Enum):
    """Compiler failure kinds"""

    UNKNOWN_SYMBOL = "UnknownSymbol"
    ARITY_MISMATCH = "ArityMismatch"
    TYPE_MISMATCH = "TypeMismatch"
    NOT_CALLABLE = "NotCallable"
    DUPLICATE_HOTKEY = "DuplicateHotkey"
    TOO_LARGE = "TooLarge"
    NESTING_TOO_DEEP = "NestingTooDeep"


class ScriptError(Exception):
    """Base class for all HavelScript errors"""

    def __str__(self) -> str:
        return f"{self.message} at line {self.line}, column {self.column}"


@dataclass
class LexError(ScriptError):
    """Lexical error with location information"""

    kind: LexErrorKind
    message: str
    line: int
    column: int


@dataclass
class ParseError(ScriptError):
    """Syntax error: the first unexpected token of a script"""

    expected: str
    found: str
    line: int
    column: int
    kind: ParseErrorKind = ParseErrorKind.UNEXPECTED_TOKEN

    @property
    def message(self) -> str:
        return f"Expected {self.expected}, found {self.found}"


@dataclass
class CompileError(ScriptError):
    """Symbol resolution or type error found while lowering the AST"""

    kind: CompileErrorKind
    message: str
    line: int
    column: int
    name: Optional[str] = None
    expected: Optional[str] = None
    found: Optional[str] = None


@dataclass
class ScriptRuntimeError(ScriptError):
    """Error raised while executing a compiled unit"""

    message: str
    line: int
    column: int
