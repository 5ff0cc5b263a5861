#!/usr/bin/env python3
"""
HID Keyboard Hotkey Source

Reads boot-protocol reports from a USB HID keyboard and turns newly pressed
keys into KeyEvents for the hotkey registry. Grabs are tracked in a claim
table; the keyboard itself stays readable by the rest of the system.
"""

import logging
import sys
import threading
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple

try:
    import hid
except ImportError:
    print("Error: hidapi library not found. Install with: pip install hidapi")
    sys.exit(1)

from ..havelscript.havelscript_hotkey import HotkeyPattern, Modifier
from .constants import (
    BOOT_REPORT_SIZE,
    DEFAULT_PID,
    DEFAULT_VID,
    KEY_USAGES,
    MODIFIER_LEFTALT,
    MODIFIER_LEFTCTRL,
    MODIFIER_LEFTGUI,
    MODIFIER_LEFTSHIFT,
    MODIFIER_RIGHTALT,
    MODIFIER_RIGHTCTRL,
    MODIFIER_RIGHTGUI,
    MODIFIER_RIGHTSHIFT,
    READ_TIMEOUT_MS,
    ROLLOVER_ERROR_CODES,
    USAGE_KEYS,
)
from .hotkey_registry import KeyEvent, KeyGrabber, KeyGrabError

logger = logging.getLogger(__name__)

# Modifier byte bit -> script modifier; left and right keys are not distinguished
MODIFIER_BITS = {
    MODIFIER_LEFTCTRL: Modifier.CTRL,
    MODIFIER_RIGHTCTRL: Modifier.CTRL,
    MODIFIER_LEFTSHIFT: Modifier.SHIFT,
    MODIFIER_RIGHTSHIFT: Modifier.SHIFT,
    MODIFIER_LEFTALT: Modifier.ALT,
    MODIFIER_RIGHTALT: Modifier.ALT,
    MODIFIER_LEFTGUI: Modifier.WIN,
    MODIFIER_RIGHTGUI: Modifier.WIN,
}

# Generic Desktop page, Keyboard usage
KEYBOARD_USAGE_PAGE = 0x01
KEYBOARD_USAGE = 0x06


class HidListenerError(Exception):
    """Exception raised when the keyboard cannot be opened or read"""

    pass


def decode_modifiers(modifier_byte: int) -> FrozenSet[Modifier]:
    """Modifiers held according to a boot report's modifier byte"""
    return frozenset(
        modifier for bit, modifier in MODIFIER_BITS.items() if modifier_byte & bit
    )


def decode_report(
    report: Sequence[int], previous: FrozenSet[int]
) -> Tuple[List[KeyEvent], FrozenSet[int]]:
    """
    Decode one boot-protocol keyboard report

    Args:
        report: Report bytes (modifier byte, reserved byte, six key slots)
        previous: Usage codes held in the previous report

    Returns:
        Tuple of (events for keys pressed since previous, usage codes now held)
    """
    if len(report) < BOOT_REPORT_SIZE:
        return [], previous

    codes = [code for code in report[2:BOOT_REPORT_SIZE] if code]
    if any(code in ROLLOVER_ERROR_CODES for code in codes):
        # Too many keys held: the report carries no key state
        return [], previous

    modifiers = decode_modifiers(report[0])
    events = []
    for code in codes:
        if code in previous:
            continue
        key = USAGE_KEYS.get(code)
        if key is None:
            logger.debug("Ignoring unmapped usage code 0x%02X", code)
            continue
        events.append(KeyEvent(modifiers, key))

    return events, frozenset(codes)


class HidKeyGrabber(KeyGrabber):
    """Claim table for hotkeys read from a HID keyboard"""

    def __init__(self) -> None:
        self._claims: Dict[HotkeyPattern, int] = {}
        self._lock = threading.Lock()

    def grab(self, pattern: HotkeyPattern) -> HotkeyPattern:
        usage = KEY_USAGES.get(pattern.key_name)
        if usage is None:
            raise KeyGrabError(f"no HID usage code for key '{pattern.key_name}'")
        with self._lock:
            if pattern in self._claims:
                raise KeyGrabError(f"{pattern} is already grabbed")
            self._claims[pattern] = usage
        return pattern

    def ungrab(self, handle: Any) -> None:
        with self._lock:
            if handle not in self._claims:
                raise KeyGrabError(f"{handle} is not grabbed")
            del self._claims[handle]

    def is_grabbed(self, pattern: HotkeyPattern) -> bool:
        with self._lock:
            return pattern in self._claims

    def __len__(self) -> int:
        with self._lock:
            return len(self._claims)


def list_keyboards() -> List[Dict[str, Any]]:
    """HID devices reporting the keyboard usage"""
    return [
        device
        for device in hid.enumerate()
        if device.get("usage_page") == KEYBOARD_USAGE_PAGE
        and device.get("usage") == KEYBOARD_USAGE
    ]


class HidKeyboardListener:
    """Reads a HID keyboard on a background thread and delivers KeyEvents"""

    def __init__(
        self,
        callback: Callable[[KeyEvent], Any],
        device_path: Optional[str] = None,
        vid: int = DEFAULT_VID,
        pid: int = DEFAULT_PID,
        device_factory: Callable[[], Any] = hid.device,
    ):
        """
        Initialize the listener

        Args:
            callback: Called with each KeyEvent, serially, on the listener thread
            device_path: Optional path to a specific HID device
            vid: USB Vendor ID used when no path is given
            pid: USB Product ID used when no path is given
            device_factory: Creates the hidapi device object
        """
        self.callback = callback
        self.device_path = device_path
        self.vid = vid
        self.pid = pid
        self.device_factory = device_factory
        self.device: Optional[Any] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def open(self) -> None:
        """Open the keyboard; raises HidListenerError"""
        device = self.device_factory()
        try:
            if self.device_path:
                device.open_path(self.device_path.encode())
            else:
                device.open(self.vid, self.pid)
        except (IOError, OSError) as e:
            if self.device_path:
                target = self.device_path
            else:
                target = f"{self.vid:04X}:{self.pid:04X}"
            raise HidListenerError(f"Could not open keyboard {target}: {e}")
        self.device = device
        logger.info("Opened keyboard %s", self.device_path or f"{self.vid:04X}:{self.pid:04X}")

    def start(self) -> None:
        """Open the keyboard if needed and start the reader thread"""
        if self._thread is not None:
            return
        if self.device is None:
            self.open()
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="havel-hid", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the reader thread and close the keyboard"""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        if self.device is not None:
            self.device.close()
            self.device = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        pressed: FrozenSet[int] = frozenset()
        while not self._stop.is_set():
            try:
                report = self.device.read(BOOT_REPORT_SIZE, READ_TIMEOUT_MS)
            except (IOError, OSError) as e:
                logger.error("Keyboard read failed: %s", e)
                break

            if not report:
                continue

            events, pressed = decode_report(report, pressed)
            for event in events:
                self._deliver(event)

    def _deliver(self, event: KeyEvent) -> None:
        try:
            self.callback(event)
        except Exception:
            logger.exception("Key event handler failed for %s", event.pattern)

    def __enter__(self) -> "HidKeyboardListener":
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()
