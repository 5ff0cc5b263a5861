"""
Havel - HavelScript hotkey scripting tools

Subpackages: havelscript (language), builtins (native functions), hotkeys
(registry, dispatch and HID keyboard input).
"""

__version__ = "0.1.0"
