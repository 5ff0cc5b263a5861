#!/usr/bin/env python3
"""
HavelScript Standard Library

Builtins available to every script: text transforms, an in-process clipboard,
key sending, logging, sleeping and HTTP requests.
"""

import logging
import sys
import threading
import time
from typing import Any, Callable, Optional

from .builtin_table import BuiltinTable, ParamType

try:
    import requests
except ImportError:
    print("Error: requests library not found. Install with: pip install requests")
    sys.exit(1)

logger = logging.getLogger(__name__)

# Seconds before an http.get/http.post gives up
HTTP_TIMEOUT = 10


class ClipboardStore:
    """Thread-safe in-process clipboard"""

    def __init__(self, text: str = ""):
        self._lock = threading.Lock()
        self._text = text

    def get(self) -> str:
        with self._lock:
            return self._text

    def set(self, text: str) -> str:
        with self._lock:
            self._text = text
        return text

    def clear(self) -> None:
        with self._lock:
            self._text = ""


def _log_send(text: str) -> None:
    logger.info("send: %r", text)


def _log_value(value: object) -> object:
    logger.info("script: %s", value)
    return value


def _sleep(ms: int) -> None:
    if ms < 0:
        raise ValueError(f"cannot sleep for {ms} ms")
    time.sleep(ms / 1000.0)


class HttpClient:
    """Blocking HTTP builtins backed by a requests session"""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = HTTP_TIMEOUT):
        self.session = session or requests.Session()
        self.timeout = timeout

    def get(self, url: str) -> str:
        return self._request("GET", url)

    def post(self, url: str, body: str) -> str:
        return self._request("POST", url, data=body.encode("utf-8"))

    def _request(self, method: str, url: str, **kwargs: Any) -> str:
        logger.debug("%s %s", method, url)
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise RuntimeError(f"{method} {url} failed: {e}")

        if response.status_code >= 400:
            raise RuntimeError(f"{method} {url} returned HTTP {response.status_code}")
        return response.text


def build_standard_library(
    table: Optional[BuiltinTable] = None,
    send: Optional[Callable[[str], None]] = None,
    clipboard: Optional[ClipboardStore] = None,
    session: Optional[requests.Session] = None,
) -> BuiltinTable:
    """
    Register the standard builtins

    Args:
        table: Table to populate (a new one when None)
        send: Callable receiving text passed to send(); logs when None
        clipboard: Clipboard backing clipboard.*; a fresh store when None
        session: requests session used by http.*

    Returns:
        The populated (not yet frozen) table
    """
    if table is None:
        table = BuiltinTable()
    if clipboard is None:
        clipboard = ClipboardStore()
    send_text = send or _log_send
    http = HttpClient(session)

    S = ParamType.STRING

    table.register_builtin("text.upper", 1, lambda s: s.upper(), (S,), doc="Upper-case text")
    table.register_builtin("text.lower", 1, lambda s: s.lower(), (S,), doc="Lower-case text")
    table.register_builtin("text.trim", 1, lambda s: s.strip(), (S,), doc="Strip surrounding whitespace")
    table.register_builtin("text.length", 1, lambda s: len(s), (S,), doc="Number of characters")
    table.register_builtin(
        "text.replace", 3, lambda s, old, new: s.replace(old, new), (S, S, S),
        doc="Replace every occurrence of a substring",
    )

    table.register_builtin("clipboard.get", 0, clipboard.get, doc="Current clipboard text")
    table.register_builtin("clipboard.set", 1, clipboard.set, (S,), doc="Replace clipboard text")
    table.register_builtin("clipboard.clear", 0, clipboard.clear, doc="Empty the clipboard")

    table.register_builtin("send", 1, send_text, (S,), doc="Type text on the active window")
    table.register_builtin("log", 1, _log_value, doc="Log a value and return it")

    table.register_builtin(
        "system.sleep", 1, _sleep, (ParamType.INTEGER,), blocking=True,
        doc="Sleep for a number of milliseconds",
    )

    table.register_builtin("http.get", 1, http.get, (S,), blocking=True, doc="GET a URL, returning the body")
    table.register_builtin(
        "http.post", 2, http.post, (S, S), blocking=True, doc="POST text to a URL, returning the body"
    )

    return table
