"""Tests for termrelay.session.wire (Wire, WireEvent, EventType)."""

from __future__ import annotations

import asyncio

from termrelay.session.wire import EventType, Wire, WireEvent


# ---------------------------------------------------------------------------
# EventType
# ---------------------------------------------------------------------------


class TestEventType:
    def test_all_variants_exist(self) -> None:
        expected = {
            "SESSION_CREATED",
            "SESSION_STARTED",
            "SESSION_REMOVED",
            "STATUS",
            "OUTPUT",
            "LINE",
            "INPUT",
            "ERROR",
            "OBSERVER_ATTACHED",
            "OBSERVER_DETACHED",
        }
        assert {e.name for e in EventType} == expected

    def test_values_are_lowercase(self) -> None:
        for e in EventType:
            assert e.value == e.name.lower()


# ---------------------------------------------------------------------------
# WireEvent
# ---------------------------------------------------------------------------


class TestWireEvent:
    def test_defaults(self) -> None:
        event = WireEvent(type=EventType.OUTPUT, session_id="s1")
        assert event.data == {}

    def test_with_data(self) -> None:
        event = WireEvent(type=EventType.LINE, session_id="s1", data={"content": "hi"})
        assert event.data["content"] == "hi"


# ---------------------------------------------------------------------------
# Wire — basic send/subscribe
# ---------------------------------------------------------------------------


class TestWire:
    def test_send_to_subscriber(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        wire.send(WireEvent(EventType.LINE, "s1", {"content": "hi"}))
        event = q.get_nowait()
        assert event is not None
        assert event.type == EventType.LINE
        assert event.session_id == "s1"

    def test_send_to_multiple_subscribers(self) -> None:
        wire = Wire()
        q1 = wire.subscribe()
        q2 = wire.subscribe()
        wire.send(WireEvent(EventType.STATUS, "s1", {"status": "running"}))
        e1 = q1.get_nowait()
        e2 = q2.get_nowait()
        assert e1 is not None and e2 is not None
        assert e1.type == e2.type == EventType.STATUS

    def test_order_preserved(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        for i in range(5):
            wire.send(WireEvent(EventType.LINE, "s1", {"n": i}))
        assert [q.get_nowait().data["n"] for _ in range(5)] == list(range(5))

    def test_unsubscribe(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        wire.unsubscribe(q)
        wire.send(WireEvent(EventType.OUTPUT, "s1"))
        assert q.empty()

    def test_unsubscribe_nonexistent_is_safe(self) -> None:
        wire = Wire()
        q: asyncio.Queue[WireEvent | None] = asyncio.Queue()
        wire.unsubscribe(q)


# ---------------------------------------------------------------------------
# Wire — closed-state guard
# ---------------------------------------------------------------------------


class TestWireClosedGuard:
    def test_close_sends_sentinel_to_all_subscribers(self) -> None:
        wire = Wire()
        q1 = wire.subscribe()
        q2 = wire.subscribe()
        wire.close()
        assert q1.get_nowait() is None
        assert q2.get_nowait() is None
        assert wire.closed

    def test_send_after_close_is_dropped(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        wire.close()
        q.get_nowait()  # drain sentinel
        wire.send(WireEvent(EventType.OUTPUT, "s1"))
        wire.send_status("s1", "terminated")
        wire.send_error("s1", "too late")
        assert q.empty()

    def test_close_idempotent(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        wire.close()
        wire.close()
        assert q.get_nowait() is None
        assert q.empty()


# ---------------------------------------------------------------------------
# Wire — convenience methods
# ---------------------------------------------------------------------------


class TestWireConvenience:
    def test_send_status(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        wire.send_status("s1", "terminated", exit_code=0, signal=None)
        event = q.get_nowait()
        assert event is not None
        assert event.type == EventType.STATUS
        assert event.data == {"status": "terminated", "exit_code": 0, "signal": None}

    def test_send_error(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        wire.send_error("s1", "something failed")
        event = q.get_nowait()
        assert event is not None
        assert event.type == EventType.ERROR
        assert event.data["error"] == "something failed"
