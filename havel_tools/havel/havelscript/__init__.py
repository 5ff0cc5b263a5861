"""
HavelScript Compiler and Disassembler

This module provides lexing, parsing, compilation, execution and disassembly
for the HavelScript language.
"""

from .havelscript_compiler import CompilationResult, Compiler
from .havelscript_disassembler import disassemble
from .havelscript_errors import (
    CompileError,
    CompileErrorKind,
    LexError,
    ParseError,
    ScriptError,
    ScriptRuntimeError,
)
from .havelscript_hotkey import HotkeyPattern, Modifier, parse_hotkey
from .havelscript_lexer import Token, TokenKind, tokenize
from .havelscript_parser import parse, parse_source
from .havelscript_vm import CompiledUnit, ExecutionResult, ExecutionStatus

__all__ = [
    "CompilationResult",
    "CompileError",
    "CompileErrorKind",
    "CompiledUnit",
    "Compiler",
    "ExecutionResult",
    "ExecutionStatus",
    "HotkeyPattern",
    "LexError",
    "Modifier",
    "ParseError",
    "ScriptError",
    "ScriptRuntimeError",
    "Token",
    "TokenKind",
    "disassemble",
    "parse",
    "parse_hotkey",
    "parse_source",
    "tokenize",
]
