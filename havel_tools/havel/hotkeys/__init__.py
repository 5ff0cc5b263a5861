"""
Hotkey Registry and Key Sources

Binds compiled hotkey units to key grabs, dispatches key events to them, and
reads key events from USB HID keyboards.
"""

# Import constants first (no dependencies)
from .constants import DISPATCH_BUDGET_MS, DISPATCH_WORKERS

# Then import other modules
from .hotkey_hid import HidKeyboardListener, HidKeyGrabber, HidListenerError, decode_report
from .hotkey_registry import (
    HotkeyRegistry,
    KeyEvent,
    KeyGrabber,
    KeyGrabError,
    RegistryEntry,
    RegistryError,
    RegistryErrorKind,
)

__all__ = [
    "DISPATCH_BUDGET_MS",
    "DISPATCH_WORKERS",
    "HidKeyboardListener",
    "HidKeyGrabber",
    "HidListenerError",
    "HotkeyRegistry",
    "KeyEvent",
    "KeyGrabber",
    "KeyGrabError",
    "RegistryEntry",
    "RegistryError",
    "RegistryErrorKind",
    "decode_report",
]
