"""Tests for termrelay.session.tools."""

from __future__ import annotations

import pytest

from termrelay.session.tools import (
    GENERIC_TOOL,
    BuiltinToolRegistry,
    ToolProfile,
)


@pytest.fixture
def registry() -> BuiltinToolRegistry:
    return BuiltinToolRegistry()


class TestDefaults:
    def test_builtin_profiles(self, registry: BuiltinToolRegistry) -> None:
        assert set(registry.names()) == {
            "git",
            "docker",
            "npm",
            "kubectl",
            "python",
            "node",
            GENERIC_TOOL,
        }
        assert len(registry) == 7

    def test_docker_env(self, registry: BuiltinToolRegistry) -> None:
        profile = registry.get("docker")
        assert profile is not None
        assert profile.env == {"DOCKER_CLI_HINTS": "false"}

    def test_unknown(self, registry: BuiltinToolRegistry) -> None:
        assert registry.get("emacs") is None
        assert "emacs" not in registry


class TestDetect:
    @pytest.mark.parametrize(
        "command,expected",
        [
            ("git", "git"),
            ("/usr/bin/git", "git"),
            ("docker", "docker"),
            ("python3", "python"),
            ("python3.12", "python"),
            ("/usr/local/bin/node18", "node"),
            ("kubectl.exe", "kubectl"),
            ("git status", "git"),
        ],
    )
    def test_known(self, registry: BuiltinToolRegistry, command: str, expected: str) -> None:
        assert registry.detect(command) == expected

    def test_unknown_command(self, registry: BuiltinToolRegistry) -> None:
        assert registry.detect("ls") is None

    def test_empty_command(self, registry: BuiltinToolRegistry) -> None:
        assert registry.detect("") is None

    def test_generic_never_detected(self, registry: BuiltinToolRegistry) -> None:
        assert registry.detect("generic") is None


class TestRegister:
    def test_register_custom(self) -> None:
        registry = BuiltinToolRegistry(profiles=[])
        registry.register(ToolProfile("terraform", "terraform", env={"TF_IN_AUTOMATION": "1"}))
        assert registry.detect("/opt/bin/terraform") == "terraform"
        assert "terraform" in registry

    def test_register_overwrites(self, registry: BuiltinToolRegistry) -> None:
        registry.register(ToolProfile("git", "git", "patched"))
        profile = registry.get("git")
        assert profile is not None
        assert profile.description == "patched"
