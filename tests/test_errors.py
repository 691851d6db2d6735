"""Tests for termrelay.errors."""

from __future__ import annotations

import pytest

from termrelay.errors import (
    DuplicateId,
    InternalError,
    InvalidState,
    NotFound,
    NotRunning,
    ProcessNotFound,
    RelayError,
    ResourceExhausted,
    SessionNotFound,
    SpawnFailed,
    WriteFailed,
)


class TestTaxonomy:
    @pytest.mark.parametrize(
        "exc",
        [
            SessionNotFound("s1"),
            ProcessNotFound("p1"),
            NotRunning("p1", "terminated"),
            ResourceExhausted("cap"),
            SpawnFailed("enoent"),
            WriteFailed("epipe"),
            DuplicateId("dup"),
            InternalError("boom"),
        ],
    )
    def test_all_are_relay_errors(self, exc: RelayError) -> None:
        assert isinstance(exc, RelayError)
        assert exc.code

    def test_not_found_family(self) -> None:
        assert isinstance(SessionNotFound("s1"), NotFound)
        assert isinstance(ProcessNotFound("p1"), NotFound)
        assert SessionNotFound("s1").code == "not_found"

    def test_not_running_is_invalid_state(self) -> None:
        assert isinstance(NotRunning("p1", "paused"), InvalidState)


class TestRetryable:
    def test_cap_and_state_errors_retryable(self) -> None:
        assert ResourceExhausted("cap").retryable
        assert InvalidState("wrong state").retryable
        assert NotRunning("p1", "paused").retryable

    def test_hard_failures_not_retryable(self) -> None:
        assert not SpawnFailed("x").retryable
        assert not WriteFailed("x").retryable
        assert not InternalError("x").retryable
        assert not SessionNotFound("s1").retryable


class TestMessages:
    def test_message_and_details(self) -> None:
        exc = SessionNotFound("abc")
        assert str(exc) == "Session abc not found"
        assert exc.details == {"session_id": "abc"}

    def test_empty_message_falls_back_to_code(self) -> None:
        assert str(ResourceExhausted()) == "resource_exhausted"
