#!/usr/bin/env python3
"""
Tests for the HavelScript virtual machine
"""

import time
from typing import List

import pytest

from ..builtins.builtin_stdlib import build_standard_library
from ..builtins.builtin_table import BuiltinTable, ParamType
from .havelscript_ast import SourcePosition
from .havelscript_bytecode import CodeObject
from .havelscript_compiler import Compiler
from .havelscript_parser import parse_source
from .havelscript_vm import (
    CompiledUnit,
    ExecutionStatus,
    ScopeFrozenError,
    ScriptScope,
    is_truthy,
)


def evaluate(source: str, table: BuiltinTable = None):
    """Run every top-level statement and return the last result"""
    result = Compiler(table or build_standard_library()).compile(parse_source(source))
    outcome = None
    for unit in result.top_level_units:
        outcome = unit()
    return outcome


@pytest.mark.parametrize(
    "source, expected",
    [
        ("1 + 2 * 3", 7.0),
        ("(1 + 2) * 3", 9.0),
        ("7 % 4", 3.0),
        ("1 / 4", 0.25),
        ("-(2 + 3)", -5.0),
        ("'n=' + 5", "n=5"),
        ("'x' + 2.5", "x2.5"),
        ("1 + 'a'", "1a"),
        ("'a' + 'b'", "ab"),
        ("text.length('abc')", 3.0),
        ("let a = 2\na * a", 4.0),
    ],
)
def test_expression_values(source: str, expected: object) -> None:
    outcome = evaluate(source)
    assert outcome.status == ExecutionStatus.COMPLETED
    assert outcome.value == expected


@pytest.mark.parametrize(
    "source, message",
    [
        ("log(1 / 0)", "Division by zero"),
        ("log(1 % 0)", "Division by zero"),
        ("'a' - 1", "Unsupported operands for -: 'a' and 1"),
        ("let s = 'a'\n-s", "Cannot negate 'a'"),
        ("'x' | system.sleep", "system.sleep expects Integer for argument 1, got 'x'"),
        ("2.5 | system.sleep", "system.sleep expects Integer for argument 1, got 2.5"),
        ("5 | text.upper", "text.upper expects String for argument 1, got 5"),
    ],
)
def test_runtime_errors(source: str, message: str) -> None:
    outcome = evaluate(source)
    assert outcome.status == ExecutionStatus.FAILED
    assert not outcome.ok
    assert outcome.error.message == message


def test_runtime_error_position() -> None:
    outcome = evaluate("log(1 / 0)")
    assert (outcome.error.line, outcome.error.column) == (1, 7)


def test_native_exception_becomes_runtime_error() -> None:
    def boom() -> None:
        raise OSError("nope")

    table = BuiltinTable()
    table.register_builtin("boom", 0, boom)
    outcome = evaluate("\n  boom()", table)
    assert outcome.status == ExecutionStatus.FAILED
    assert outcome.error.message == "boom failed: nope"
    assert (outcome.error.line, outcome.error.column) == (2, 3)


def test_integer_parameters_are_converted() -> None:
    received: List[object] = []
    table = BuiltinTable()
    table.register_builtin("take", 1, received.append, (ParamType.INTEGER,))
    assert evaluate("take(3)", table).status == ExecutionStatus.COMPLETED
    assert received == [3]
    assert isinstance(received[0], int)


@pytest.mark.parametrize(
    "value, expected",
    [(None, False), (False, False), (True, True), (0.0, False), (2.0, True), ("", False), ("0", True)],
)
def test_truthiness(value: object, expected: bool) -> None:
    assert is_truthy(value) is expected


def test_scope_freeze() -> None:
    scope = ScriptScope()
    scope.set("a", 1.0)
    scope.freeze()
    assert scope.frozen
    with pytest.raises(ScopeFrozenError):
        scope.set("a", 2.0)

    snapshot = scope.snapshot()
    assert snapshot["a"] == 1.0
    with pytest.raises(TypeError):
        snapshot["a"] = 3.0


def test_store_into_frozen_scope_fails() -> None:
    result = Compiler(build_standard_library()).compile(parse_source("let a = 1"))
    result.scope.freeze()
    outcome = result.top_level_units[0]()
    assert outcome.status == ExecutionStatus.FAILED
    assert "read-only" in outcome.error.message


class Recorder:
    def __init__(self) -> None:
        self.calls: List[str] = []

    def table(self) -> BuiltinTable:
        table = BuiltinTable()
        table.register_builtin("quick", 0, lambda: self.calls.append("quick"))
        table.register_builtin("slow", 0, lambda: self.calls.append("slow"), blocking=True)
        return table


def hotkey_unit(source: str, table: BuiltinTable) -> CompiledUnit:
    result = Compiler(table).compile(parse_source(source))
    return result.hotkey_bindings[0][1]


def test_suspends_before_blocking_builtin() -> None:
    recorder = Recorder()
    unit = hotkey_unit("F1 => {\n  quick()\n  slow()\n  quick()\n}", recorder.table())

    outcome = unit.start(deadline=time.monotonic() + 60)
    assert outcome.status == ExecutionStatus.SUSPENDED
    assert recorder.calls == ["quick"]

    resumed = unit.resume(outcome.frame)
    assert resumed.status == ExecutionStatus.COMPLETED
    assert recorder.calls == ["quick", "slow", "quick"]


def test_suspends_when_deadline_passed() -> None:
    recorder = Recorder()
    unit = hotkey_unit("F1 => quick()", recorder.table())

    outcome = unit.start(deadline=time.monotonic() - 1)
    assert outcome.status == ExecutionStatus.SUSPENDED
    assert recorder.calls == []
    assert unit.resume(outcome.frame).status == ExecutionStatus.COMPLETED
    assert recorder.calls == ["quick"]


def test_runs_to_completion_without_deadline() -> None:
    recorder = Recorder()
    unit = hotkey_unit("F1 => { slow(); quick() }", recorder.table())
    assert unit().status == ExecutionStatus.COMPLETED
    assert recorder.calls == ["slow", "quick"]


@pytest.mark.parametrize(
    "code",
    [
        bytes([0xFF]),
        bytes([0x10, 0x05, 0x00, 0x1B]),
        bytes([0x10]),
        bytes([0x18, 0x1B]),
    ],
)
def test_corrupt_bytecode_fails_cleanly(code: bytes) -> None:
    unit = CompiledUnit(CodeObject("bad", SourcePosition(4, 2), code), ScriptScope(), "bad")
    outcome = unit()
    assert outcome.status == ExecutionStatus.FAILED
    assert outcome.error.message.startswith("Corrupt bytecode in bad")
    assert (outcome.error.line, outcome.error.column) == (4, 2)
