#!/usr/bin/env python3
"""
Tests for the hotkey registry and trigger dispatch
"""

import logging
import threading
from typing import Any, List, Optional, Set

import pytest

from ..builtins.builtin_stdlib import build_standard_library
from ..havelscript.havelscript_compiler import CompilationResult, Compiler
from ..havelscript.havelscript_hotkey import HotkeyPattern, Modifier, parse_hotkey
from ..havelscript.havelscript_parser import parse_source
from ..havelscript.havelscript_vm import ExecutionStatus
from .hotkey_hid import HidKeyGrabber
from .hotkey_registry import (
    HotkeyRegistry,
    KeyEvent,
    KeyGrabber,
    KeyGrabError,
    RegistryError,
    RegistryErrorKind,
)


class FakeGrabber(KeyGrabber):
    def __init__(self, deny: Set[str] = frozenset(), fail_ungrab: bool = False) -> None:
        self.deny = deny
        self.fail_ungrab = fail_ungrab
        self.deny_next = 0
        self.grabbed: List[HotkeyPattern] = []
        self.released: List[HotkeyPattern] = []

    def grab(self, pattern: HotkeyPattern) -> Any:
        if str(pattern) in self.deny:
            raise KeyGrabError("denied by test")
        if self.deny_next > 0:
            self.deny_next -= 1
            raise KeyGrabError("busy")
        self.grabbed.append(pattern)
        return pattern

    def ungrab(self, handle: Any) -> None:
        if self.fail_ungrab:
            raise KeyGrabError("release refused")
        self.released.append(handle)


def compile_script(source: str, sent: Optional[List[str]] = None) -> CompilationResult:
    table = build_standard_library(send=(sent if sent is not None else []).append)
    result = Compiler(table).compile(parse_source(source))
    for unit in result.top_level_units:
        assert unit().status == ExecutionStatus.COMPLETED
    result.scope.freeze()
    return result


def press(hotkey: str) -> KeyEvent:
    pattern = parse_hotkey(hotkey)
    return KeyEvent(pattern.modifiers, pattern.key_name)


@pytest.fixture
def registry():
    registry = HotkeyRegistry(FakeGrabber())
    yield registry
    registry.close()


def test_register_and_trigger(registry: HotkeyRegistry) -> None:
    sent: List[str] = []
    ((pattern, unit),) = compile_script('Ctrl+Alt+t => send("hello")', sent).hotkey_bindings
    entry = registry.register(pattern, unit)

    assert pattern in registry
    assert len(registry) == 1
    assert registry.entries[pattern] is entry

    result = registry.on_event(KeyEvent(frozenset({Modifier.ALT, Modifier.CTRL}), "t"))
    assert result.status == ExecutionStatus.COMPLETED
    assert sent == ["hello"]


def test_unmatched_event_returns_none(registry: HotkeyRegistry) -> None:
    registry.load(compile_script("Ctrl+t => log(1)").hotkey_bindings)
    assert registry.on_event(press("Ctrl+Shift+t")) is None
    assert registry.on_event(KeyEvent(frozenset(), "t")) is None


def test_function_key_event_matches(registry: HotkeyRegistry) -> None:
    sent: List[str] = []
    registry.load(compile_script("F5 => send('five')", sent).hotkey_bindings)
    registry.on_event(KeyEvent(frozenset(), "f5"))
    assert sent == ["five"]


def test_key_event_pattern() -> None:
    event = KeyEvent(frozenset({Modifier.SHIFT}), "F12")
    assert event.pattern == parse_hotkey("Shift+F12")


def test_denied_grab_raises() -> None:
    registry = HotkeyRegistry(FakeGrabber(deny={"Win+e"}))
    ((pattern, unit),) = compile_script("Win+e => log(1)").hotkey_bindings
    with pytest.raises(RegistryError) as excinfo:
        registry.register(pattern, unit)
    error = excinfo.value
    assert error.kind == RegistryErrorKind.OS_GRAB_FAILED
    assert error.pattern == pattern
    assert error.message == "Could not grab Win+e: denied by test"
    assert (error.line, error.column) == (1, 1)
    assert len(registry) == 0
    registry.close()


def test_unregister_logs_release_failure(caplog: pytest.LogCaptureFixture) -> None:
    registry = HotkeyRegistry(FakeGrabber(fail_ungrab=True))
    ((pattern, unit),) = compile_script("F1 => log(1)").hotkey_bindings
    entry = registry.register(pattern, unit)

    with caplog.at_level(logging.WARNING):
        registry.unregister(entry)
    assert pattern not in registry
    assert "Failed to ungrab F1: release refused" in caplog.text
    registry.close()


def test_swap_reports_denied_patterns() -> None:
    grabber = FakeGrabber(deny={"F2"})
    registry = HotkeyRegistry(grabber)
    errors = registry.swap(compile_script("F1 => log(1)\nF2 => log(2)\nF3 => log(3)").hotkey_bindings)

    assert [str(e.pattern) for e in errors] == ["F2"]
    assert errors[0].line == 2
    assert sorted(str(p) for p in registry.entries) == ["F1", "F3"]
    registry.close()


def test_swap_releases_old_grabs_and_keeps_old_snapshot() -> None:
    grabber = FakeGrabber()
    registry = HotkeyRegistry(grabber)
    registry.load(compile_script("F1 => log(1)\nF2 => log(2)").hotkey_bindings)
    old = registry.entries

    registry.swap(compile_script("F3 => log(3)").hotkey_bindings)
    assert sorted(str(p) for p in grabber.released) == ["F1", "F2"]
    assert [str(p) for p in registry.entries] == ["F3"]
    assert sorted(str(p) for p in old) == ["F1", "F2"]
    with pytest.raises(TypeError):
        old[parse_hotkey("F9")] = None
    registry.close()


def test_dispatch_sees_one_binding_set_during_swaps() -> None:
    registry = HotkeyRegistry(FakeGrabber(), budget_ms=None)
    scripts = [
        compile_script("let v = 'a'\nF1 => v\nF2 => v"),
        compile_script("let v = 'b'\nF1 => v\nF2 => v"),
    ]
    registry.load(scripts[0].hotkey_bindings)
    stop = threading.Event()
    problems: List[str] = []

    def dispatch() -> None:
        while not stop.is_set():
            entries = registry.entries
            if len({id(entry.unit.scope) for entry in entries.values()}) != 1:
                problems.append("mixed binding set")
            result = registry.on_event(press("F1"))
            if result is None or result.value not in ("a", "b"):
                problems.append(f"unexpected result {result}")

    thread = threading.Thread(target=dispatch)
    thread.start()
    for i in range(200):
        registry.swap(scripts[i % 2].hotkey_bindings)
    stop.set()
    thread.join()
    registry.close()

    assert problems == []


def test_runtime_error_is_logged_and_hotkey_stays(
    registry: HotkeyRegistry, caplog: pytest.LogCaptureFixture
) -> None:
    registry.load(compile_script("F1 => log(1 / 0)").hotkey_bindings)

    with caplog.at_level(logging.ERROR):
        result = registry.on_event(press("F1"))
    assert result.status == ExecutionStatus.FAILED
    assert "Hotkey F1 failed: Division by zero at line 1, column 13" in caplog.text
    assert parse_hotkey("F1") in registry

    assert registry.on_event(press("F1")).status == ExecutionStatus.FAILED


def test_blocking_builtin_is_deferred(registry: HotkeyRegistry) -> None:
    sent: List[str] = []
    registry.load(compile_script("F1 => {\n  send('before')\n  system.sleep(1)\n  send('after')\n}", sent).hotkey_bindings)

    result = registry.on_event(press("F1"))
    assert result.status == ExecutionStatus.DEFERRED
    final = result.future.result(timeout=5)
    assert final.status == ExecutionStatus.COMPLETED
    assert sent == ["before", "after"]


def test_deferred_failure_is_logged(
    registry: HotkeyRegistry, caplog: pytest.LogCaptureFixture
) -> None:
    registry.load(compile_script("F1 => system.sleep(-1)").hotkey_bindings)

    with caplog.at_level(logging.ERROR):
        result = registry.on_event(press("F1"))
        final = result.future.result(timeout=5)
    assert final.status == ExecutionStatus.FAILED
    assert "Hotkey F1 failed: system.sleep failed: cannot sleep for -1 ms" in caplog.text


def test_no_budget_runs_synchronously() -> None:
    sent: List[str] = []
    registry = HotkeyRegistry(FakeGrabber(), budget_ms=None)
    registry.load(compile_script("F1 => { system.sleep(1); send('done') }", sent).hotkey_bindings)

    result = registry.on_event(press("F1"))
    assert result.status == ExecutionStatus.COMPLETED
    assert sent == ["done"]
    registry.close()


def test_clear_and_close() -> None:
    grabber = FakeGrabber()
    with HotkeyRegistry(grabber) as registry:
        registry.load(compile_script("F1 => log(1)\nF2 => log(2)").hotkey_bindings)
        registry.clear()
        assert len(registry) == 0
        assert len(grabber.released) == 2

        registry.load(compile_script("F3 => log(3)").hotkey_bindings)
    assert len(registry) == 0
    assert [str(p) for p in grabber.released][-1] == "F3"


def test_register_replaces_binding_with_claim_table() -> None:
    sent: List[str] = []
    grabber = HidKeyGrabber()
    registry = HotkeyRegistry(grabber, budget_ms=None)
    ((pattern, first),) = compile_script("F1 => send('one')", sent).hotkey_bindings
    ((_, second),) = compile_script("F1 => send('two')", sent).hotkey_bindings

    registry.register(pattern, first)
    entry = registry.register(pattern, second)

    assert registry.entries[pattern] is entry
    assert len(grabber) == 1
    registry.on_event(press("F1"))
    assert sent == ["two"]

    registry.unregister(entry)
    assert len(grabber) == 0
    registry.close()


def test_denied_replacement_keeps_previous_binding() -> None:
    sent: List[str] = []
    grabber = FakeGrabber()
    registry = HotkeyRegistry(grabber, budget_ms=None)
    ((pattern, first),) = compile_script("F1 => send('one')", sent).hotkey_bindings
    ((_, second),) = compile_script("F1 => send('two')", sent).hotkey_bindings
    registry.register(pattern, first)

    grabber.deny_next = 1
    with pytest.raises(RegistryError) as excinfo:
        registry.register(pattern, second)
    assert excinfo.value.message == "Could not grab F1: busy"

    assert registry.entries[pattern].unit is first
    assert grabber.released == [pattern]
    registry.on_event(press("F1"))
    assert sent == ["one"]
    registry.close()


def test_denied_replacement_and_restore_drops_binding(caplog: pytest.LogCaptureFixture) -> None:
    grabber = FakeGrabber()
    registry = HotkeyRegistry(grabber)
    ((pattern, first),) = compile_script("F1 => log(1)").hotkey_bindings
    ((_, second),) = compile_script("F1 => log(2)").hotkey_bindings
    registry.register(pattern, first)

    grabber.deny_next = 2
    with caplog.at_level(logging.WARNING):
        with pytest.raises(RegistryError):
            registry.register(pattern, second)
    assert pattern not in registry
    assert "Lost binding for F1: Could not grab F1: busy" in caplog.text
    registry.close()


class FailingGrabber(FakeGrabber):
    """Grabs until a pattern named in fail_on, then raises a non-grab error"""

    def __init__(self, fail_on: str) -> None:
        super().__init__()
        self.fail_on = fail_on

    def grab(self, pattern: HotkeyPattern) -> Any:
        if str(pattern) == self.fail_on:
            raise RuntimeError("grabber crashed")
        return super().grab(pattern)


def test_swap_publishes_actual_grabs_when_grabber_raises() -> None:
    grabber = FailingGrabber(fail_on="F4")
    registry = HotkeyRegistry(grabber)
    registry.load(compile_script("F1 => log(1)\nF2 => log(2)").hotkey_bindings)

    with pytest.raises(RuntimeError):
        registry.swap(compile_script("F3 => log(3)\nF4 => log(4)\nF5 => log(5)").hotkey_bindings)

    assert sorted(str(p) for p in grabber.released) == ["F1", "F2"]
    assert [str(p) for p in registry.entries] == ["F3"]
    assert registry.on_event(press("F1")) is None
    registry.close()
