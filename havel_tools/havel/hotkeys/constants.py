"""
Shared constants for hotkey dispatch and HID keyboard input

Usage codes follow the USB HID Usage Tables, Keyboard/Keypad page (0x07).
"""

# Dispatch defaults
DISPATCH_BUDGET_MS = 50  # Synchronous time before builtin calls move to a worker
DISPATCH_WORKERS = 4  # Background workers for escalated callbacks

# HID keyboard defaults
DEFAULT_VID = 0x05AC
DEFAULT_PID = 0x0250
BOOT_REPORT_SIZE = 8  # Modifier byte, reserved byte, six key slots
READ_TIMEOUT_MS = 100  # Listener poll interval, bounds shutdown latency

# Boot protocol modifier bits
MODIFIER_LEFTCTRL = 0x01
MODIFIER_LEFTSHIFT = 0x02
MODIFIER_LEFTALT = 0x04
MODIFIER_LEFTGUI = 0x08
MODIFIER_RIGHTCTRL = 0x10
MODIFIER_RIGHTSHIFT = 0x20
MODIFIER_RIGHTALT = 0x40
MODIFIER_RIGHTGUI = 0x80

# Usage codes reported in key slots when too many keys are held
ROLLOVER_ERROR_CODES = frozenset({0x01, 0x02, 0x03})

# Key name (as written in hotkeys, lower-case) -> HID usage code
KEY_USAGES = {
    # Alphanumeric keys
    **{chr(ord("a") + i): 0x04 + i for i in range(26)},
    "1": 0x1E,
    "2": 0x1F,
    "3": 0x20,
    "4": 0x21,
    "5": 0x22,
    "6": 0x23,
    "7": 0x24,
    "8": 0x25,
    "9": 0x26,
    "0": 0x27,
    # Special keys
    "enter": 0x28,
    "escape": 0x29,
    "backspace": 0x2A,
    "tab": 0x2B,
    "space": 0x2C,
    "minus": 0x2D,
    "equal": 0x2E,
    "leftbrace": 0x2F,
    "rightbrace": 0x30,
    "backslash": 0x31,
    "semicolon": 0x33,
    "apostrophe": 0x34,
    "grave": 0x35,
    "comma": 0x36,
    "dot": 0x37,
    "slash": 0x38,
    "capslock": 0x39,
    # Function keys
    **{f"f{n}": 0x3A + n - 1 for n in range(1, 13)},
    # Navigation keys
    "printscreen": 0x46,
    "scrolllock": 0x47,
    "pause": 0x48,
    "insert": 0x49,
    "home": 0x4A,
    "pageup": 0x4B,
    "delete": 0x4C,
    "end": 0x4D,
    "pagedown": 0x4E,
    "right": 0x4F,
    "left": 0x50,
    "down": 0x51,
    "up": 0x52,
    # Numpad keys
    "numlock": 0x53,
    "kp_slash": 0x54,
    "kp_asterisk": 0x55,
    "kp_minus": 0x56,
    "kp_plus": 0x57,
    "kp_enter": 0x58,
    "kp_1": 0x59,
    "kp_2": 0x5A,
    "kp_3": 0x5B,
    "kp_4": 0x5C,
    "kp_5": 0x5D,
    "kp_6": 0x5E,
    "kp_7": 0x5F,
    "kp_8": 0x60,
    "kp_9": 0x61,
    "kp_0": 0x62,
    "kp_dot": 0x63,
    "application": 0x65,
    "menu": 0x76,
}

# HID usage code -> canonical key name
USAGE_KEYS = {code: name for name, code in KEY_USAGES.items()}
