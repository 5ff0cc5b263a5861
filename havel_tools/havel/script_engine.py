#!/usr/bin/env python3
"""
HavelScript Engine

Runs the whole pipeline for a script (lex, parse, compile, load-time
execution) and keeps one script's hotkeys registered, replacing them on
reload only when the new version compiles and loads cleanly.
"""

import logging
import os
import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .builtins.builtin_table import BuiltinTable
from .havelscript.havelscript_ast import Program, count_nodes
from .havelscript.havelscript_compiler import Compiler
from .havelscript.havelscript_hotkey import HotkeyPattern
from .havelscript.havelscript_lexer import tokenize
from .havelscript.havelscript_parser import parse
from .havelscript.havelscript_vm import CompiledUnit, ExecutionResult, ScriptScope
from .hotkeys.hotkey_registry import HotkeyRegistry, RegistryError

logger = logging.getLogger(__name__)


@dataclass
class ScriptStats:
    """Timings (milliseconds) and sizes from compiling a script"""

    lexing_ms: float = 0.0
    parsing_ms: float = 0.0
    compilation_ms: float = 0.0
    execution_ms: float = 0.0
    token_count: int = 0
    node_count: int = 0
    hotkey_count: int = 0

    @property
    def total_ms(self) -> float:
        return self.lexing_ms + self.parsing_ms + self.compilation_ms + self.execution_ms


@dataclass
class CompiledScript:
    """A compiled script ready to have its hotkeys registered"""

    program: Program
    top_level_units: List[CompiledUnit]
    hotkey_bindings: List[Tuple[HotkeyPattern, CompiledUnit]]
    scope: ScriptScope
    load_results: List[ExecutionResult] = field(default_factory=list)
    stats: ScriptStats = field(default_factory=ScriptStats)
    path: Optional[str] = None


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


def compile_script(
    source: str,
    builtins: BuiltinTable,
    run_load_time: bool = True,
    path: Optional[str] = None,
) -> CompiledScript:
    """
    Compile HavelScript source

    Args:
        source: Script text
        builtins: Builtin table; frozen by this call
        run_load_time: Execute top-level statements in source order and
            freeze the script scope afterwards
        path: File the source came from, for messages

    Returns:
        The compiled script

    Raises:
        LexError, ParseError, CompileError: The script is invalid
        ScriptRuntimeError: A top-level statement failed
    """
    builtins.freeze()
    stats = ScriptStats()

    start = time.perf_counter()
    tokens = tokenize(source)
    stats.lexing_ms = _elapsed_ms(start)
    stats.token_count = len(tokens)

    start = time.perf_counter()
    program = parse(tokens)
    stats.parsing_ms = _elapsed_ms(start)
    stats.node_count = count_nodes(program)

    start = time.perf_counter()
    result = Compiler(builtins).compile(program)
    stats.compilation_ms = _elapsed_ms(start)
    stats.hotkey_count = len(result.hotkey_bindings)

    script = CompiledScript(
        program,
        result.top_level_units,
        result.hotkey_bindings,
        result.scope,
        stats=stats,
        path=path,
    )

    if run_load_time:
        start = time.perf_counter()
        for unit in result.top_level_units:
            outcome = unit()
            if outcome.error is not None:
                raise outcome.error
            script.load_results.append(outcome)
        result.scope.freeze()
        stats.execution_ms = _elapsed_ms(start)

    logger.debug(
        "Compiled %s: %d tokens, %d nodes, %d hotkeys in %.2f ms",
        path or "<source>",
        stats.token_count,
        stats.node_count,
        stats.hotkey_count,
        stats.total_ms,
    )
    return script


class ScriptEngine:
    """Keeps one script loaded into a hotkey registry"""

    def __init__(self, builtins: BuiltinTable, registry: HotkeyRegistry):
        self.builtins = builtins
        self.registry = registry
        self.script: Optional[CompiledScript] = None
        self._mtime: Optional[float] = None

    @property
    def path(self) -> Optional[str]:
        return self.script.path if self.script else None

    def load_source(self, source: str, path: Optional[str] = None) -> List[RegistryError]:
        """
        Compile source and make it the active script

        The previous script stays active if compilation or load-time
        execution fails; the error propagates to the caller.

        Returns:
            Hotkeys that could not be grabbed
        """
        script = compile_script(source, self.builtins, path=path)
        errors = self.registry.swap(script.hotkey_bindings)
        self.script = script
        logger.info(
            "Loaded %s (%d hotkey(s), %d failed)",
            path or "<source>",
            len(script.hotkey_bindings) - len(errors),
            len(errors),
        )
        return errors

    def load_file(self, path: str) -> List[RegistryError]:
        """Load a script file; see load_source"""
        mtime = os.path.getmtime(path)
        with open(path, "r", encoding="utf-8") as f:
            source = f.read()
        errors = self.load_source(source, path)
        self._mtime = mtime
        return errors

    def reload(self) -> List[RegistryError]:
        """Load the active script's file again"""
        if self.path is None:
            raise ValueError("No script file loaded")
        return self.load_file(self.path)

    def reload_if_changed(self) -> bool:
        """Reload when the active script's file changed on disk; True if reloaded"""
        if self.path is None:
            return False
        mtime = os.path.getmtime(self.path)
        if mtime == self._mtime:
            return False
        # A failed reload is not retried until the file changes again
        self._mtime = mtime
        self.reload()
        return True

    def unload(self) -> None:
        """Unregister the active script's hotkeys"""
        self.registry.clear()
        self.script = None
        self._mtime = None
