"""Error taxonomy for session and process control.

Every failure raised from a caller-invoked operation is a ``RelayError``
subclass. ``retryable`` separates capacity and lifecycle errors (the caller
can back off, wait for a state change, or retry) from hard failures.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for all termrelay errors."""

    code: str = "internal"
    retryable: bool = False

    def __init__(self, message: str = "", **details: object) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return self.message or self.code


class NotFound(RelayError):
    """Unknown session or process id."""

    code = "not_found"


class SessionNotFound(NotFound):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} not found", session_id=session_id)


class ProcessNotFound(NotFound):
    def __init__(self, process_id: str) -> None:
        super().__init__(f"Process {process_id} not found", process_id=process_id)


class InvalidState(RelayError):
    """Operation not valid for the current lifecycle state."""

    code = "invalid_state"
    retryable = True


class NotRunning(InvalidState):
    def __init__(self, process_id: str, status: str) -> None:
        super().__init__(
            f"Process {process_id} is not running (status: {status})",
            process_id=process_id,
            status=status,
        )


class ResourceExhausted(RelayError):
    """Session or process cap reached."""

    code = "resource_exhausted"
    retryable = True


class SpawnFailed(RelayError):
    """The OS could not launch the process."""

    code = "spawn_failed"


class WriteFailed(RelayError):
    """Input could not be delivered to the process."""

    code = "write_failed"


class DuplicateId(RelayError):
    """An id is already tracked."""

    code = "duplicate_id"


class InternalError(RelayError):
    """Unexpected failure from a collaborator."""

    code = "internal"
