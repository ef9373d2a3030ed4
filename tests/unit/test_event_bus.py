# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the in-memory event bus."""

import pytest

from src.infrastructure.events import EventBus, EventData, EventPatterns, EventTypes


class TestEventBus:
    """Tests for EventBus."""

    @pytest.mark.asyncio
    async def test_exact_subscription(self) -> None:
        bus = EventBus()
        received: list[EventData] = []

        async def handler(event: EventData) -> None:
            received.append(event)

        bus.subscribe(EventTypes.PairMatching.SESSION_COMPLETED, handler)
        await bus.publish(EventTypes.PairMatching.SESSION_COMPLETED, {"session_id": "s-1"})
        await bus.publish(EventTypes.PairMatching.SESSION_STARTED, {"session_id": "s-2"})

        assert [e.payload["session_id"] for e in received] == ["s-1"]

    @pytest.mark.asyncio
    async def test_pattern_subscription(self) -> None:
        bus = EventBus()
        received: list[str] = []

        async def handler(event: EventData) -> None:
            received.append(event.event_type)

        bus.subscribe(EventPatterns.ALL_UNLOCKS, handler)
        await bus.publish(EventTypes.PairMatching.STAGE_UNLOCKED, {})
        await bus.publish(EventTypes.PairMatching.LEVEL_UNLOCKED, {})
        await bus.publish(EventTypes.PairMatching.PROGRESS_CHANGED, {})

        assert received == [
            EventTypes.PairMatching.STAGE_UNLOCKED,
            EventTypes.PairMatching.LEVEL_UNLOCKED,
        ]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self) -> None:
        bus = EventBus()
        received: list[str] = []

        async def broken(event: EventData) -> None:
            raise RuntimeError("observer crashed")

        async def working(event: EventData) -> None:
            received.append(event.event_id)

        bus.subscribe(EventPatterns.ALL_PAIR_MATCHING, broken)
        bus.subscribe(EventPatterns.ALL_PAIR_MATCHING, working)

        event = await bus.publish(EventTypes.PairMatching.PROGRESS_CHANGED, {"player_id": "p"})

        assert received == [event.event_id]

    @pytest.mark.asyncio
    async def test_unsubscribe(self) -> None:
        bus = EventBus()
        received: list[EventData] = []

        async def handler(event: EventData) -> None:
            received.append(event)

        bus.subscribe(EventTypes.PairMatching.SESSION_STARTED, handler)

        assert bus.unsubscribe(EventTypes.PairMatching.SESSION_STARTED, handler) is True
        assert bus.unsubscribe(EventTypes.PairMatching.SESSION_STARTED, handler) is False
        await bus.publish(EventTypes.PairMatching.SESSION_STARTED, {})
        assert received == []

    @pytest.mark.asyncio
    async def test_stats(self) -> None:
        bus = EventBus()

        async def handler(event: EventData) -> None:
            pass

        bus.subscribe(EventTypes.PairMatching.SESSION_STARTED, handler)
        bus.subscribe(EventPatterns.ALL, handler)
        await bus.publish(EventTypes.PairMatching.SESSION_STARTED, {})

        stats = bus.get_stats()

        assert stats["exact_subscriptions"] == 1
        assert stats["pattern_subscriptions"] == 1
        assert stats["events_published"] == 1

    def test_event_to_dict(self) -> None:
        event = EventData(event_type="pair_matching.session.started", payload={"a": 1})

        data = event.to_dict()

        assert data["event_type"] == "pair_matching.session.started"
        assert data["payload"] == {"a": 1}
        assert data["timestamp"].endswith("+00:00")

    @pytest.mark.asyncio
    async def test_session_pattern_skips_progress_events(self) -> None:
        bus = EventBus()
        received: list[str] = []

        async def handler(event: EventData) -> None:
            received.append(event.event_type)

        bus.subscribe(EventPatterns.ALL_SESSION_EVENTS, handler)
        await bus.publish(EventTypes.PairMatching.SESSION_ABANDONED, {})
        await bus.publish(EventTypes.PairMatching.PROGRESS_CHANGED, {})

        assert received == [EventTypes.PairMatching.SESSION_ABANDONED]
