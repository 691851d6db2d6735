"""Session orchestration — wrapped commands, their history and observers.

The orchestrator owns the session table. Local consumers subscribe to the
wire; remote observers receive tagged messages through a transport.
"""

from termrelay.session.models import SessionSnapshot, SessionSpec, SessionStatus
from termrelay.session.orchestrator import SessionOrchestrator
from termrelay.session.remote import (
    ErrorMessage,
    FanOut,
    InputEcho,
    LoggingTransport,
    OutputMessage,
    RemoteMessage,
    RemoteTransport,
    StatusMessage,
)
from termrelay.session.tools import BuiltinToolRegistry, ToolProfile, ToolRegistry
from termrelay.session.wire import EventType, Wire, WireEvent

__all__ = [
    "BuiltinToolRegistry",
    "ErrorMessage",
    "EventType",
    "FanOut",
    "InputEcho",
    "LoggingTransport",
    "OutputMessage",
    "RemoteMessage",
    "RemoteTransport",
    "SessionOrchestrator",
    "SessionSnapshot",
    "SessionSpec",
    "SessionStatus",
    "StatusMessage",
    "ToolProfile",
    "ToolRegistry",
    "Wire",
    "WireEvent",
]
