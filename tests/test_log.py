"""Tests for genlang.log: logger namespace, formatters, LogContext."""

from __future__ import annotations

import json
import logging
import sys

import pytest

from genlang.log import (
    _NAMESPACE,
    JsonFormatter,
    LogContext,
    TextFormatter,
    configure_from_env,
    configure_logging,
    current_context,
    get_logger,
    reset_logging,
)


def _make_record(level: int = logging.INFO, msg: str = "hello") -> logging.LogRecord:
    return logging.LogRecord(
        name="genlang.client",
        level=level,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


class TestGetLogger:
    def test_prefixes(self) -> None:
        assert get_logger("client").name == "genlang.client"

    def test_already_prefixed(self) -> None:
        assert get_logger("genlang.functions").name == "genlang.functions"

    def test_bare_namespace(self) -> None:
        assert get_logger("genlang").name == "genlang"


class TestConfigure:
    def setup_method(self) -> None:
        reset_logging()

    def teardown_method(self) -> None:
        reset_logging()

    def test_adds_handler(self) -> None:
        root = logging.getLogger(_NAMESPACE)
        assert root.handlers == []
        configure_logging("DEBUG")
        assert len(root.handlers) == 1
        assert root.level == logging.DEBUG

    def test_idempotent(self) -> None:
        configure_logging("DEBUG")
        configure_logging("ERROR")
        root = logging.getLogger(_NAMESPACE)
        assert len(root.handlers) == 1
        assert root.level == logging.DEBUG

    def test_force(self) -> None:
        configure_logging("DEBUG")
        configure_logging("INFO", "json", force=True)
        root = logging.getLogger(_NAMESPACE)
        assert len(root.handlers) == 1
        assert root.level == logging.INFO
        assert isinstance(root.handlers[0].formatter, JsonFormatter)

    def test_unknown_level_falls_back(self) -> None:
        configure_logging("LOUD")
        assert logging.getLogger(_NAMESPACE).level == logging.WARNING

    def test_unknown_format(self) -> None:
        with pytest.raises(ValueError, match="Unknown log format"):
            configure_logging(fmt="xml")


class TestConfigureFromEnv:
    def setup_method(self) -> None:
        reset_logging()

    def teardown_method(self) -> None:
        reset_logging()

    def test_nothing_set(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("GENLANG_DEBUG", raising=False)
        monkeypatch.delenv("GENLANG_LOG_LEVEL", raising=False)
        assert configure_from_env() is False
        assert logging.getLogger(_NAMESPACE).handlers == []

    def test_debug_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GENLANG_DEBUG", "1")
        monkeypatch.setenv("GENLANG_LOG_LEVEL", "ERROR")
        assert configure_from_env() is True
        assert logging.getLogger(_NAMESPACE).level == logging.DEBUG

    def test_level_and_format(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("GENLANG_DEBUG", raising=False)
        monkeypatch.setenv("GENLANG_LOG_LEVEL", "info")
        monkeypatch.setenv("GENLANG_LOG_FORMAT", "json")
        configure_from_env()
        root = logging.getLogger(_NAMESPACE)
        assert root.level == logging.INFO
        assert isinstance(root.handlers[0].formatter, JsonFormatter)

    def test_bad_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("GENLANG_DEBUG", raising=False)
        monkeypatch.setenv("GENLANG_LOG_LEVEL", "chatty")
        configure_from_env()
        assert logging.getLogger(_NAMESPACE).level == logging.WARNING


class TestFormatters:
    @pytest.mark.parametrize(
        ("level", "char"),
        [
            (logging.DEBUG, "D"),
            (logging.INFO, "I"),
            (logging.WARNING, "W"),
            (logging.ERROR, "E"),
            (logging.CRITICAL, "C"),
        ],
    )
    def test_text_level_char(self, level: int, char: str) -> None:
        line = TextFormatter().format(_make_record(level))
        assert f"{char} client" in line
        assert line.endswith("| hello")

    def test_text_includes_context(self) -> None:
        with LogContext(model="models/gemini-pro"):
            line = TextFormatter().format(_make_record())
        assert "model=models/gemini-pro" in line

    def test_json(self) -> None:
        with LogContext(method="generateContent"):
            entry = json.loads(JsonFormatter().format(_make_record(logging.WARNING, "careful")))
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "genlang.client"
        assert entry["message"] == "careful"
        assert entry["context"] == {"method": "generateContent"}

    def test_json_exception(self) -> None:
        try:
            raise RuntimeError("bad")
        except RuntimeError:
            record = _make_record(logging.ERROR)
            record.exc_info = sys.exc_info()
        entry = json.loads(JsonFormatter().format(record))
        assert "RuntimeError: bad" in entry["exception"]


class TestLogContext:
    def test_nesting(self) -> None:
        with LogContext(model="a"):
            with LogContext(method="m"):
                assert current_context() == {"model": "a", "method": "m"}
            assert current_context() == {"model": "a"}
        assert current_context() == {}

    def test_inner_overrides(self) -> None:
        with LogContext(model="a"), LogContext(model="b"):
            assert current_context() == {"model": "b"}
