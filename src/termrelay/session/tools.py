"""Tool registry — labels and default environments for wrapped programs."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Protocol

logger = logging.getLogger(__name__)

GENERIC_TOOL = "generic"


@dataclass(frozen=True)
class ToolProfile:
    """What we know about a wrapped program."""

    name: str
    command: str
    description: str = ""
    env: dict[str, str] = field(default_factory=dict)


class ToolRegistry(Protocol):
    def detect(self, command: str) -> str | None: ...

    def get(self, name: str) -> ToolProfile | None: ...


DEFAULT_PROFILES = [
    ToolProfile("git", "git", "Git version control system"),
    ToolProfile(
        "docker", "docker", "Docker container management", {"DOCKER_CLI_HINTS": "false"}
    ),
    ToolProfile("npm", "npm", "Node.js package manager"),
    ToolProfile("kubectl", "kubectl", "Kubernetes command-line tool"),
    ToolProfile("python", "python", "Python interpreter"),
    ToolProfile("node", "node", "Node.js runtime"),
    ToolProfile(GENERIC_TOOL, "", "Generic CLI tool"),
]


class BuiltinToolRegistry:
    """In-memory registry seeded with common tools.

    Detection is a lookup on the executable's basename (``/usr/bin/git`` and
    ``python3.12`` resolve to ``git`` and ``python``); nothing is executed.
    """

    def __init__(self, profiles: list[ToolProfile] | None = None) -> None:
        self._profiles: dict[str, ToolProfile] = {}
        for profile in DEFAULT_PROFILES if profiles is None else profiles:
            self.register(profile)

    def register(self, profile: ToolProfile) -> None:
        if profile.name in self._profiles:
            logger.warning("Tool %s already registered, overwriting", profile.name)
        self._profiles[profile.name] = profile

    def get(self, name: str) -> ToolProfile | None:
        return self._profiles.get(name)

    def detect(self, command: str) -> str | None:
        if not command:
            return None
        base = os.path.basename(command.split()[0])
        if base.endswith(".exe"):
            base = base[:-4]
        for profile in self._profiles.values():
            if profile.command and base in (profile.command, profile.name):
                return profile.name
        # python3, python3.12, node18 ...
        stem = base.rstrip("0123456789.")
        for profile in self._profiles.values():
            if profile.command and stem == profile.command:
                return profile.name
        return None

    def names(self) -> list[str]:
        return list(self._profiles)

    def __len__(self) -> int:
        return len(self._profiles)

    def __contains__(self, name: str) -> bool:
        return name in self._profiles
