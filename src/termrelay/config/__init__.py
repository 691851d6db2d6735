"""Configuration — Pydantic models for termrelay settings."""

from __future__ import annotations

import os
from typing import Any, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field

OutputFormatName = Literal["raw", "text", "html", "json"]


class SupervisorConfig(BaseModel):
    """Process supervision limits and grace periods (seconds)."""

    max_processes: int = Field(default=50, description="Live process cap")
    spawn_timeout: float = Field(
        default=5.0, description="How long to wait for the OS to accept a spawn"
    )
    kill_grace: float = Field(
        default=5.0, description="Wait after SIGTERM before escalating to SIGKILL"
    )
    reap_delay: float = Field(
        default=1.0,
        description="Delay before an exited process is dropped from the table",
    )
    use_shell: bool = Field(
        default=False,
        description=(
            "Run commands through the system shell by default. Enables alias and "
            "script resolution but exposes shell injection if arguments are "
            "attacker-controlled; prefer opting in per process."
        ),
    )
    read_size: int = Field(default=4096, description="Bytes per pipe read")


class StreamConfig(BaseModel):
    """Line reconstruction limits."""

    max_buffer_bytes: int = Field(
        default=1024 * 1024, description="Raw byte buffer cap per channel"
    )
    max_line_length: int = Field(
        default=100_000, description="Pending line length that forces completion"
    )
    line_timeout: float = Field(
        default=5.0, description="Idle seconds before a partial line is flushed"
    )


class SessionConfig(BaseModel):
    """Session table limits and garbage collection timings (seconds)."""

    max_sessions: int = Field(default=50)
    history_limit: int = Field(
        default=10_000, description="Output records kept before compaction"
    )
    history_keep: int = Field(
        default=5_000, description="Records kept after compaction"
    )
    line_log_size: int = Field(
        default=10_000, description="Completed lines kept per session"
    )
    cleanup_delay: float = Field(
        default=5.0, description="Delay before a terminated session is removed"
    )
    gc_interval: float = Field(default=60.0)
    terminated_grace: float = Field(
        default=300.0, description="How long terminated sessions stay visible"
    )
    session_timeout: float = Field(
        default=3600.0, description="Idle sessions older than this are terminated"
    )
    default_format: OutputFormatName = Field(default="text")


class RelayConfig(BaseModel):
    """Top-level termrelay configuration."""

    supervisor: SupervisorConfig = Field(default_factory=SupervisorConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)

    @classmethod
    def load(cls, config_path: str | None = None) -> RelayConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            TERMRELAY_MAX_SESSIONS     - Session cap
            TERMRELAY_MAX_PROCESSES    - Live process cap
            TERMRELAY_SESSION_TIMEOUT  - Idle session timeout in seconds
            TERMRELAY_DEFAULT_FORMAT   - raw / text / html / json
            TERMRELAY_USE_SHELL        - "1"/"true" to run commands via the shell
        """
        load_dotenv()

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            import json

            with open(config_path) as f:
                config_data = json.load(f)

        supervisor = config_data.get("supervisor", {})
        session = config_data.get("session", {})

        env_max_sessions = os.environ.get("TERMRELAY_MAX_SESSIONS")
        if env_max_sessions:
            session["max_sessions"] = int(env_max_sessions)

        env_session_timeout = os.environ.get("TERMRELAY_SESSION_TIMEOUT")
        if env_session_timeout:
            session["session_timeout"] = float(env_session_timeout)

        env_default_format = os.environ.get("TERMRELAY_DEFAULT_FORMAT")
        if env_default_format:
            session["default_format"] = env_default_format.lower()

        env_max_processes = os.environ.get("TERMRELAY_MAX_PROCESSES")
        if env_max_processes:
            supervisor["max_processes"] = int(env_max_processes)

        env_use_shell = os.environ.get("TERMRELAY_USE_SHELL")
        if env_use_shell:
            supervisor["use_shell"] = env_use_shell.lower() in ("1", "true", "yes")

        if supervisor:
            config_data["supervisor"] = supervisor
        if session:
            config_data["session"] = session

        return cls.model_validate(config_data)
