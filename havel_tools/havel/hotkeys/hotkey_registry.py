#!/usr/bin/env python3
"""
Hotkey Registry and Trigger Dispatch

Binds compiled hotkey units to key grabs and runs the matching unit when a key
event arrives. The active binding set is an immutable mapping replaced by a
single reference assignment, so a dispatch always sees either the old set or
the new one.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from ..havelscript.havelscript_errors import ScriptError, ScriptRuntimeError
from ..havelscript.havelscript_hotkey import HotkeyPattern, Modifier, make_pattern
from ..havelscript.havelscript_vm import CompiledUnit, ExecutionResult, ExecutionStatus, Frame
from .constants import DISPATCH_BUDGET_MS, DISPATCH_WORKERS

logger = logging.getLogger(__name__)


class KeyGrabError(Exception):
    """Raised by a grabber that cannot claim or release a hotkey"""

    pass


class KeyGrabber(ABC):
    """Source of exclusive hotkey claims"""

    @abstractmethod
    def grab(self, pattern: HotkeyPattern) -> Any:
        """Claim pattern, returning a handle for ungrab; raises KeyGrabError"""

    @abstractmethod
    def ungrab(self, handle: Any) -> None:
        """Release a handle returned by grab; raises KeyGrabError"""


@dataclass(frozen=True)
class KeyEvent:
    """A key press with the modifiers held at the time"""

    modifiers: FrozenSet[Modifier]
    key: str

    @property
    def pattern(self) -> HotkeyPattern:
        return make_pattern(self.modifiers, self.key)


class RegistryErrorKind(Enum):
    OS_GRAB_FAILED = "OsGrabFailed"


@dataclass
class RegistryError(ScriptError):
    """A hotkey that could not be registered"""

    kind: RegistryErrorKind
    message: str
    line: int
    column: int
    pattern: HotkeyPattern


@dataclass(frozen=True)
class RegistryEntry:
    """A registered hotkey and the grab that backs it"""

    pattern: HotkeyPattern
    unit: CompiledUnit
    handle: Any


Binding = Tuple[HotkeyPattern, CompiledUnit]


class HotkeyRegistry:
    """Registered hotkeys and the dispatcher that runs them"""

    def __init__(
        self,
        grabber: KeyGrabber,
        budget_ms: Optional[float] = DISPATCH_BUDGET_MS,
        workers: int = DISPATCH_WORKERS,
    ):
        """
        Initialize the registry

        Args:
            grabber: Grabber that claims hotkeys
            budget_ms: Time a callback may run on the event thread before its
                next builtin call moves to a worker; None never escalates
            workers: Size of the worker pool for escalated callbacks
        """
        self.grabber = grabber
        self.budget_ms = budget_ms
        self._entries: Mapping[HotkeyPattern, RegistryEntry] = MappingProxyType({})
        self._lock = threading.Lock()
        self._dispatch_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="havel-dispatch")

    @property
    def entries(self) -> Mapping[HotkeyPattern, RegistryEntry]:
        """The binding set currently used for dispatch"""
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, pattern: object) -> bool:
        return pattern in self._entries

    def _grab(self, pattern: HotkeyPattern, unit: CompiledUnit) -> RegistryEntry:
        try:
            handle = self.grabber.grab(pattern)
        except KeyGrabError as e:
            position = unit.position
            raise RegistryError(
                RegistryErrorKind.OS_GRAB_FAILED,
                f"Could not grab {pattern}: {e}",
                position.line,
                position.column,
                pattern,
            )
        return RegistryEntry(pattern, unit, handle)

    def _release(self, entry: RegistryEntry) -> None:
        try:
            self.grabber.ungrab(entry.handle)
        except KeyGrabError as e:
            logger.warning("Failed to ungrab %s: %s", entry.pattern, e)

    def _publish(self, entries: dict) -> None:
        self._entries = MappingProxyType(entries)

    def register(self, pattern: HotkeyPattern, unit: CompiledUnit) -> RegistryEntry:
        """
        Grab pattern and bind it to unit

        A binding already registered for pattern is released first and is
        grabbed again if the new grab is denied.

        Raises:
            RegistryError: The grab is denied
        """
        with self._lock:
            entries = dict(self._entries)
            existing = entries.pop(pattern, None)
            if existing is not None:
                self._publish(entries)
                self._release(existing)

            try:
                entry = self._grab(pattern, unit)
            except RegistryError:
                if existing is not None:
                    self._restore(existing, entries)
                raise

            entries[pattern] = entry
            self._publish(entries)
        logger.debug("Registered %s", pattern)
        return entry

    def _restore(self, existing: RegistryEntry, entries: dict) -> None:
        try:
            entries[existing.pattern] = self._grab(existing.pattern, existing.unit)
        except RegistryError as e:
            logger.warning("Lost binding for %s: %s", existing.pattern, e)
            return
        self._publish(entries)

    def unregister(self, entry: RegistryEntry) -> None:
        """Remove entry and release its grab; release failures are only logged"""
        with self._lock:
            if self._entries.get(entry.pattern) is entry:
                entries = dict(self._entries)
                del entries[entry.pattern]
                self._publish(entries)
        self._release(entry)
        logger.debug("Unregistered %s", entry.pattern)

    def swap(self, bindings: Iterable[Binding]) -> List[RegistryError]:
        """
        Replace every registered hotkey with bindings

        Old grabs are released, new ones taken, and the new set is published
        in one assignment. A pattern whose grab is denied is left out and
        reported; the others still register.

        Returns:
            One RegistryError per pattern that could not be grabbed
        """
        errors: List[RegistryError] = []
        entries: dict = {}
        with self._lock:
            try:
                for entry in self._entries.values():
                    self._release(entry)

                for pattern, unit in bindings:
                    try:
                        entries[pattern] = self._grab(pattern, unit)
                    except RegistryError as e:
                        logger.warning("%s", e)
                        errors.append(e)
            finally:
                self._publish(entries)

        logger.info("Registered %d hotkey(s)", len(entries))
        return errors

    def load(self, bindings: Iterable[Binding]) -> List[RegistryError]:
        """Register the hotkeys of a freshly loaded script"""
        return self.swap(bindings)

    def clear(self) -> None:
        """Unregister every hotkey"""
        with self._lock:
            entries = list(self._entries.values())
            self._publish({})
        for entry in entries:
            self._release(entry)

    def on_event(self, event: KeyEvent) -> Optional[ExecutionResult]:
        """
        Run the unit bound to event, if any

        Returns:
            None when no hotkey matches; otherwise the unit's result, DEFERRED
            with a future when the callback continues on a worker
        """
        entry = self._entries.get(event.pattern)
        if entry is None:
            return None

        with self._dispatch_lock:
            logger.debug("Triggered %s", entry.pattern)
            deadline = None
            if self.budget_ms is not None:
                deadline = time.monotonic() + self.budget_ms / 1000.0
            result = entry.unit.start(deadline)

            if result.status == ExecutionStatus.SUSPENDED and result.frame is not None:
                future = self._executor.submit(self._resume, entry, result.frame)
                return ExecutionResult(ExecutionStatus.DEFERRED, frame=result.frame, future=future)

            if result.error is not None:
                self._log_failure(entry, result.error)
            return result

    def _resume(self, entry: RegistryEntry, frame: Frame) -> ExecutionResult:
        result = entry.unit.resume(frame)
        if result.error is not None:
            self._log_failure(entry, result.error)
        return result

    @staticmethod
    def _log_failure(entry: RegistryEntry, error: ScriptRuntimeError) -> None:
        logger.error("Hotkey %s failed: %s", entry.pattern, error)

    def close(self) -> None:
        """Unregister everything and wait for running callbacks"""
        self.clear()
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "HotkeyRegistry":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
