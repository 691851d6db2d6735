"""Tests for termrelay.cli."""

from __future__ import annotations

import base64
import sys

from typer.testing import CliRunner

from termrelay.cli import app

runner = CliRunner()


class TestTools:
    def test_lists_profiles(self) -> None:
        result = runner.invoke(app, ["tools"])
        assert result.exit_code == 0
        assert "docker" in result.output
        assert "DOCKER_CLI_HINTS=false" in result.output


class TestRun:
    def test_prints_output_and_exit_code(self) -> None:
        result = runner.invoke(app, ["run", "--", sys.executable, "-c", "print('hi')"])
        assert result.exit_code == 0
        assert "hi" in result.output

    def test_propagates_exit_code(self) -> None:
        result = runner.invoke(
            app, ["run", "--", sys.executable, "-c", "import sys; sys.exit(3)"]
        )
        assert result.exit_code == 3

    def test_raw_format(self) -> None:
        result = runner.invoke(
            app, ["run", "-f", "raw", "--", sys.executable, "-c", "print('hi')"]
        )
        assert result.exit_code == 0
        # one base64 record per output chunk
        decoded = b"".join(base64.b64decode(line) for line in result.stdout.split())
        assert decoded == b"hi\n"

    def test_input_then_eof(self) -> None:
        code = "import sys; print(sys.stdin.read().upper())"
        result = runner.invoke(
            app, ["run", "-i", "abc", "--", sys.executable, "-c", code]
        )
        assert result.exit_code == 0
        assert "ABC" in result.output

    def test_env_option(self) -> None:
        code = "import os; print(os.environ['RELAY_CLI'])"
        result = runner.invoke(
            app, ["run", "-e", "RELAY_CLI=set", "--", sys.executable, "-c", code]
        )
        assert "set" in result.output

    def test_bad_env_option(self) -> None:
        result = runner.invoke(app, ["run", "-e", "NOEQUALS", "--", "true"])
        assert result.exit_code == 2

    def test_unknown_format(self) -> None:
        result = runner.invoke(app, ["run", "-f", "xml", "--", "true"])
        assert result.exit_code == 2

    def test_spawn_failure(self) -> None:
        result = runner.invoke(app, ["run", "--", "/nonexistent/termrelay-xyz"])
        assert result.exit_code == 1
