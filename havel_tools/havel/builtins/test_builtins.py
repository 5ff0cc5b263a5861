#!/usr/bin/env python3
"""
Tests for the builtin table and the standard library
"""

import logging
from typing import Any, List

import pytest
import requests

from .builtin_stdlib import ClipboardStore, HttpClient, build_standard_library
from .builtin_table import BuiltinError, BuiltinTable, ParamType


def test_register_and_lookup() -> None:
    table = BuiltinTable()
    symbol = table.register_builtin("text.upper", 1, str.upper, (ParamType.STRING,))
    assert table.lookup("text.upper") is symbol
    assert table.lookup("text.lower") is None
    assert "text.upper" in table
    assert len(table) == 1
    assert symbol.param_type(0) == ParamType.STRING
    assert symbol.param_type(1) == ParamType.ANY


misuse_cases = [
    {
        "name": "Duplicate name",
        "setup": [("a", 0)],
        "register": ("a", 0, ()),
        "message": "Builtin already registered: a",
    },
    {
        "name": "Negative arity",
        "setup": [],
        "register": ("a", -1, ()),
        "message": "Invalid arity -1 for a",
    },
    {
        "name": "More types than parameters",
        "setup": [],
        "register": ("a", 1, (ParamType.STRING, ParamType.STRING)),
        "message": "a declares 2 parameter types for arity 1",
    },
]


@pytest.mark.parametrize("case", misuse_cases, ids=[case["name"] for case in misuse_cases])
def test_table_misuse(case: dict) -> None:
    table = BuiltinTable()
    for name, arity in case["setup"]:
        table.register_builtin(name, arity, lambda: None)
    name, arity, types = case["register"]
    with pytest.raises(BuiltinError) as excinfo:
        table.register_builtin(name, arity, lambda *args: None, types)
    assert str(excinfo.value) == case["message"]


def test_frozen_table_rejects_registration() -> None:
    table = BuiltinTable()
    table.freeze()
    assert table.frozen
    with pytest.raises(BuiltinError):
        table.register_builtin("late", 0, lambda: None)


def test_iteration_is_sorted() -> None:
    table = BuiltinTable()
    for name in ["send", "clipboard.get", "log"]:
        table.register_builtin(name, 0, lambda: None)
    assert [symbol.qualified_name for symbol in table] == ["clipboard.get", "log", "send"]


def test_standard_library_contents() -> None:
    table = build_standard_library()
    names = {symbol.qualified_name for symbol in table}
    assert names == {
        "text.upper",
        "text.lower",
        "text.trim",
        "text.length",
        "text.replace",
        "clipboard.get",
        "clipboard.set",
        "clipboard.clear",
        "send",
        "log",
        "system.sleep",
        "http.get",
        "http.post",
    }
    blocking = {symbol.qualified_name for symbol in table if symbol.blocking}
    assert blocking == {"system.sleep", "http.get", "http.post"}
    assert all(symbol.doc for symbol in table)


@pytest.mark.parametrize(
    "name, args, expected",
    [
        ("text.upper", ("abc",), "ABC"),
        ("text.lower", ("ABC",), "abc"),
        ("text.trim", ("  a b  ",), "a b"),
        ("text.length", ("abcd",), 4),
        ("text.replace", ("a-b-c", "-", "+"), "a+b+c"),
    ],
)
def test_text_builtins(name: str, args: tuple, expected: Any) -> None:
    assert build_standard_library().lookup(name).native(*args) == expected


def test_clipboard_builtins() -> None:
    clipboard = ClipboardStore("start")
    table = build_standard_library(clipboard=clipboard)
    assert table.lookup("clipboard.get").native() == "start"
    table.lookup("clipboard.set").native("next")
    assert clipboard.get() == "next"
    table.lookup("clipboard.clear").native()
    assert clipboard.get() == ""


def test_send_uses_callback() -> None:
    sent: List[str] = []
    table = build_standard_library(send=sent.append)
    table.lookup("send").native("hello")
    assert sent == ["hello"]


def test_default_send_logs(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO):
        build_standard_library().lookup("send").native("hello")
    assert "send: 'hello'" in caplog.text


def test_log_returns_value(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO):
        assert build_standard_library().lookup("log").native(3.0) == 3.0
    assert "script: 3.0" in caplog.text


def test_sleep_rejects_negative() -> None:
    sleep = build_standard_library().lookup("system.sleep").native
    sleep(0)
    with pytest.raises(ValueError):
        sleep(-1)


class FakeResponse:
    def __init__(self, status_code: int, text: str = "") -> None:
        self.status_code = status_code
        self.text = text


class FakeSession:
    """Stands in for requests.Session, recording each request"""

    def __init__(self, response: Any = None, error: Exception = None) -> None:
        self.response = response
        self.error = error
        self.requests: List[tuple] = []

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.requests.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


def test_http_get() -> None:
    session = FakeSession(FakeResponse(200, "body"))
    table = build_standard_library(session=session)
    assert table.lookup("http.get").native("http://example.test/") == "body"
    method, url, kwargs = session.requests[0]
    assert (method, url) == ("GET", "http://example.test/")
    assert kwargs["timeout"] == 10


def test_http_post_sends_body() -> None:
    session = FakeSession(FakeResponse(201, "created"))
    client = HttpClient(session, timeout=2)
    assert client.post("http://example.test/items", "hé") == "created"
    _, _, kwargs = session.requests[0]
    assert kwargs["data"] == "hé".encode("utf-8")
    assert kwargs["timeout"] == 2


def test_http_error_status() -> None:
    client = HttpClient(FakeSession(FakeResponse(500)))
    with pytest.raises(RuntimeError) as excinfo:
        client.get("http://example.test/")
    assert str(excinfo.value) == "GET http://example.test/ returned HTTP 500"


def test_http_connection_failure() -> None:
    client = HttpClient(FakeSession(error=requests.exceptions.ConnectionError("refused")))
    with pytest.raises(RuntimeError) as excinfo:
        client.get("http://example.test/")
    assert str(excinfo.value) == "GET http://example.test/ failed: refused"
