"""Tests for termrelay.config.RelayConfig."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from termrelay.config import RelayConfig

ENV_VARS = (
    "TERMRELAY_MAX_SESSIONS",
    "TERMRELAY_MAX_PROCESSES",
    "TERMRELAY_SESSION_TIMEOUT",
    "TERMRELAY_DEFAULT_FORMAT",
    "TERMRELAY_USE_SHELL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)


class TestDefaults:
    def test_defaults(self) -> None:
        config = RelayConfig()
        assert config.supervisor.max_processes == 50
        assert config.supervisor.kill_grace == 5.0
        assert config.supervisor.use_shell is False
        assert config.stream.max_buffer_bytes == 1024 * 1024
        assert config.stream.max_line_length == 100_000
        assert config.stream.line_timeout == 5.0
        assert config.session.max_sessions == 50
        assert config.session.history_limit == 10_000
        assert config.session.history_keep == 5_000
        assert config.session.cleanup_delay == 5.0
        assert config.session.terminated_grace == 300.0
        assert config.session.session_timeout == 3600.0
        assert config.session.default_format == "text"

    def test_load_without_file(self) -> None:
        assert RelayConfig.load() == RelayConfig()

    def test_missing_file_ignored(self, tmp_path: Path) -> None:
        assert RelayConfig.load(str(tmp_path / "nope.json")) == RelayConfig()


class TestLoad:
    def test_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "relay.json"
        path.write_text(
            json.dumps(
                {
                    "supervisor": {"max_processes": 3},
                    "session": {"history_limit": 100, "history_keep": 10},
                }
            )
        )
        config = RelayConfig.load(str(path))
        assert config.supervisor.max_processes == 3
        assert config.session.history_limit == 100
        assert config.session.history_keep == 10
        assert config.stream.line_timeout == 5.0

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "relay.json"
        path.write_text(json.dumps({"session": {"max_sessions": 3}}))
        monkeypatch.setenv("TERMRELAY_MAX_SESSIONS", "7")
        monkeypatch.setenv("TERMRELAY_MAX_PROCESSES", "9")
        monkeypatch.setenv("TERMRELAY_SESSION_TIMEOUT", "60")
        monkeypatch.setenv("TERMRELAY_DEFAULT_FORMAT", "HTML")
        monkeypatch.setenv("TERMRELAY_USE_SHELL", "true")
        config = RelayConfig.load(str(path))
        assert config.session.max_sessions == 7
        assert config.supervisor.max_processes == 9
        assert config.session.session_timeout == 60.0
        assert config.session.default_format == "html"
        assert config.supervisor.use_shell is True

    def test_invalid_format_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TERMRELAY_DEFAULT_FORMAT", "xml")
        with pytest.raises(ValidationError):
            RelayConfig.load()
