"""
HavelScript Builtins

Symbol table for native functions callable from scripts, and the standard
library registered into it.
"""

from .builtin_stdlib import ClipboardStore, HttpClient, build_standard_library
from .builtin_table import BuiltinError, BuiltinSymbol, BuiltinTable, ParamType

__all__ = [
    "BuiltinError",
    "BuiltinSymbol",
    "BuiltinTable",
    "ClipboardStore",
    "HttpClient",
    "ParamType",
    "build_standard_library",
]
