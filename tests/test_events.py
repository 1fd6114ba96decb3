"""Tests for the EventEmitter publish/subscribe channel."""

from __future__ import annotations

import pytest

from offline_tracks.core.events import EventEmitter


class TestEventEmitter:
    def test_emit_reaches_subscribers_in_order(self) -> None:
        emitter = EventEmitter()
        calls = []
        emitter.subscribe("tick", lambda value: calls.append(("a", value)))
        emitter.subscribe("tick", lambda value: calls.append(("b", value)))

        emitter.emit("tick", 3)

        assert calls == [("a", 3), ("b", 3)]

    def test_emit_without_subscribers(self) -> None:
        EventEmitter().emit("nobody-listens", 1, 2)

    def test_unsubscribe(self) -> None:
        emitter = EventEmitter()
        calls = []
        unsubscribe = emitter.subscribe("tick", calls.append)

        unsubscribe()
        emitter.emit("tick", 1)

        assert calls == []
        assert emitter.subscriber_count("tick") == 0
        assert emitter.unsubscribe("tick", calls.append) is False

    def test_callback_may_unsubscribe_during_dispatch(self) -> None:
        emitter = EventEmitter()
        calls = []

        def once(value):
            calls.append(value)
            emitter.unsubscribe("tick", once)

        emitter.subscribe("tick", once)
        emitter.subscribe("tick", calls.append)

        emitter.emit("tick", 1)
        emitter.emit("tick", 2)

        assert calls == [1, 1, 2]

    def test_subscriber_errors_propagate(self) -> None:
        emitter = EventEmitter()

        def broken(_value):
            raise RuntimeError("boom")

        emitter.subscribe("tick", broken)

        with pytest.raises(RuntimeError):
            emitter.emit("tick", 1)
