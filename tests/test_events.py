"""Tests for pagestash.events: the event dispatch table."""

from __future__ import annotations

from pagestash.events import EventDispatcher, EventType


class TestEventDispatcher:
    def test_handlers_run_in_registration_order(self) -> None:
        dispatcher = EventDispatcher()
        calls: list[str] = []
        dispatcher.register(EventType.TIMER_TICK, lambda payload: calls.append("first"))
        dispatcher.register(EventType.TIMER_TICK, lambda payload: calls.append("second"))

        dispatcher.dispatch(EventType.TIMER_TICK)

        assert calls == ["first", "second"]

    def test_payload_and_results(self) -> None:
        dispatcher = EventDispatcher()
        dispatcher.register(EventType.CACHE_CLEARED, lambda count: count * 2)

        result = dispatcher.dispatch(EventType.CACHE_CLEARED, 21)

        assert result.event == EventType.CACHE_CLEARED
        assert result.results == [42]
        assert result.ok is True

    def test_other_events_not_invoked(self) -> None:
        dispatcher = EventDispatcher()
        calls: list[object] = []
        dispatcher.register(EventType.CONTENT_CHANGED, calls.append)
        dispatcher.dispatch(EventType.SETTINGS_CHANGED, "x")
        assert calls == []

    def test_failing_handler_does_not_stop_others(self) -> None:
        dispatcher = EventDispatcher()
        calls: list[str] = []

        def broken(payload: object) -> None:
            raise RuntimeError("boom")

        dispatcher.register(EventType.TIMER_TICK, broken)
        dispatcher.register(EventType.TIMER_TICK, lambda payload: calls.append("after"))

        result = dispatcher.dispatch(EventType.TIMER_TICK)

        assert calls == ["after"]
        assert result.ok is False
        assert isinstance(result.errors[0], RuntimeError)

    def test_decorator_registration(self) -> None:
        dispatcher = EventDispatcher()

        @dispatcher.on(EventType.CONTENT_CHANGED)
        def handler(payload: object) -> str:
            return "handled"

        assert dispatcher.handlers(EventType.CONTENT_CHANGED) == [handler]
        assert dispatcher.dispatch(EventType.CONTENT_CHANGED).results == ["handled"]

    def test_unregister(self) -> None:
        dispatcher = EventDispatcher()
        handler = dispatcher.register(EventType.TIMER_TICK, lambda payload: None)
        dispatcher.unregister(EventType.TIMER_TICK, handler)
        dispatcher.unregister(EventType.TIMER_TICK, handler)
        assert dispatcher.handlers(EventType.TIMER_TICK) == []

    def test_dispatch_without_handlers(self) -> None:
        result = EventDispatcher().dispatch(EventType.SETTINGS_CHANGED)
        assert result.results == []
        assert result.ok is True
