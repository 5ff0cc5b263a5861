#!/usr/bin/env python3
"""
HavelScript Hotkey Patterns

Validates hotkey text such as ``Ctrl+Alt+t`` or ``F5`` and builds the
``HotkeyPattern`` values that the parser, compiler and registry share.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable, Optional


class Modifier(Enum):
    """Hotkey modifier names as written in scripts"""

    CTRL = "Ctrl"
    ALT = "Alt"
    SHIFT = "Shift"
    WIN = "Win"


# Canonical display order
MODIFIER_ORDER = (Modifier.CTRL, Modifier.ALT, Modifier.SHIFT, Modifier.WIN)

MODIFIER_NAMES = {modifier.value: modifier for modifier in Modifier}

# First letters that may start a modifier-prefixed hotkey
HOTKEY_START_CHARS = frozenset(name[0] for name in MODIFIER_NAMES)

FUNCTION_KEY_RE = re.compile(r"F([0-9]+)")
MODIFIER_PREFIX_RE = re.compile(r"(Ctrl|Alt|Shift|Win)\+")
TERMINAL_KEY_RE = re.compile(r"\w+")

FUNCTION_KEY_MIN = 1
FUNCTION_KEY_MAX = 12


@dataclass(frozen=True)
class HotkeyPattern:
    """A validated hotkey: modifiers plus a key, or a function key"""

    modifiers: FrozenSet[Modifier] = frozenset()
    key: Optional[str] = None
    function_key: Optional[int] = None

    def __str__(self) -> str:
        parts = [m.value for m in MODIFIER_ORDER if m in self.modifiers]
        if self.function_key is not None:
            parts.append(f"F{self.function_key}")
        else:
            parts.append(self.key or "")
        return "+".join(parts)

    @property
    def key_name(self) -> str:
        """Lower-case name of the non-modifier key"""
        if self.function_key is not None:
            return f"f{self.function_key}"
        return self.key or ""


def _function_key_number(text: str) -> Optional[int]:
    """Return N for ``FN`` when N is a valid function key index"""
    match = FUNCTION_KEY_RE.fullmatch(text)
    if not match:
        return None
    number = int(match.group(1))
    if FUNCTION_KEY_MIN <= number <= FUNCTION_KEY_MAX:
        return number
    return None


def make_pattern(modifiers: Iterable[Modifier], key: str) -> HotkeyPattern:
    """Build a pattern from a modifier set and a key name (e.g. from a key event)"""
    number = _function_key_number(key.upper())
    if number is not None:
        return HotkeyPattern(frozenset(modifiers), None, number)
    return HotkeyPattern(frozenset(modifiers), key.lower(), None)


def parse_hotkey(text: str) -> Optional[HotkeyPattern]:
    """
    Validate hotkey text against the hotkey grammar

    Accepts ``F1`` .. ``F12`` or one or more ``Ctrl+``/``Alt+``/``Shift+``/``Win+``
    prefixes followed by a terminal key made of word characters.

    Returns:
        The pattern, or None if the text is not a hotkey
    """
    number = _function_key_number(text)
    if number is not None:
        return HotkeyPattern(frozenset(), None, number)

    modifiers = set()
    position = 0
    while True:
        match = MODIFIER_PREFIX_RE.match(text, position)
        if not match:
            break
        modifiers.add(MODIFIER_NAMES[match.group(1)])
        position = match.end()

    if not modifiers:
        return None
    if not TERMINAL_KEY_RE.fullmatch(text, position):
        return None

    return make_pattern(modifiers, text[position:])
