# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- Unit tests (in-memory stores, engine with hand-driven countdowns)
- Integration tests (SQLite-backed stores, API client)
"""

import random
from collections.abc import Callable

import pytest

from src.domains.pair_matching.catalog import GameCatalog
from src.domains.pair_matching.engine import SessionEngine
from src.domains.pair_matching.models import Game, Pair
from src.domains.pair_matching.progression import ProgressionUnlocker
from src.domains.pair_matching.selection import ContentSelector, PairShuffler
from src.domains.pair_matching.service import PairMatchingService
from src.domains.pair_matching.stores import (
    InMemoryCatalogStore,
    InMemoryPairStore,
    InMemoryProgressStore,
    InMemorySessionStore,
)
from src.infrastructure.events import EventBus, EventData


# =============================================================================
# Environment Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def test_environment() -> dict[str, str]:
    """Provide test environment variables.

    Returns:
        Dictionary of environment variables for testing.
    """
    return {
        "ENVIRONMENT": "development",
        "DEBUG": "true",
        "LOG_LEVEL": "DEBUG",
        "DB_URL": "sqlite+aiosqlite:///:memory:",
        "PAIR_MATCHING_SHUFFLE_SEED": "42",
        "PAIR_MATCHING_TICK_INTERVAL_SECONDS": "0.01",
    }


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (SQLite or API)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


# =============================================================================
# Catalog Fixtures
# =============================================================================


def make_game(level: int, stage: int, **overrides) -> Game:
    """Build a catalog game with a readable id like ``g-1-2``."""
    data = {
        "id": f"g-{level}-{stage}",
        "title": f"Level {level} Stage {stage}",
        "level_number": level,
        "stage_number": stage,
        "time_limit_seconds": 180,
    }
    data.update(overrides)
    return Game(**data)


def make_pairs(game_id: str, count: int) -> list[Pair]:
    """Build ``count`` pairs for a game with ids like ``g-1-1-p0``."""
    return [
        Pair(
            id=f"{game_id}-p{index}",
            game_id=game_id,
            left_content=f"term {index}",
            right_content=f"definition {index}",
            explanation=f"term {index} means definition {index}",
            order_index=index,
        )
        for index in range(count)
    ]


@pytest.fixture
def game_factory() -> Callable[..., Game]:
    return make_game


@pytest.fixture
def pair_factory() -> Callable[[str, int], list[Pair]]:
    return make_pairs


@pytest.fixture
def sample_games() -> list[Game]:
    """Two stages in level 1, one in level 2, one in level 3."""
    return [
        make_game(1, 1),
        make_game(1, 2),
        make_game(2, 1),
        make_game(3, 1),
    ]


@pytest.fixture
def catalog_store(sample_games: list[Game]) -> InMemoryCatalogStore:
    return InMemoryCatalogStore(sample_games)


@pytest.fixture
def pair_store(sample_games: list[Game]) -> InMemoryPairStore:
    """Six pairs for every sample game."""
    store = InMemoryPairStore()
    for game in sample_games:
        store.add_pairs(make_pairs(game.id, 6))
    return store


@pytest.fixture
def progress_store() -> InMemoryProgressStore:
    return InMemoryProgressStore()


@pytest.fixture
def session_store() -> InMemorySessionStore:
    return InMemorySessionStore()


# =============================================================================
# Event Fixtures
# =============================================================================


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def published_events(event_bus: EventBus) -> list[EventData]:
    """Every event published on the bus, in order."""
    events: list[EventData] = []

    async def record(event: EventData) -> None:
        events.append(event)

    event_bus.subscribe("*", record)
    return events


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture
def catalog(catalog_store: InMemoryCatalogStore) -> GameCatalog:
    return GameCatalog(catalog_store)


@pytest.fixture
def unlocker(
    catalog: GameCatalog,
    progress_store: InMemoryProgressStore,
    event_bus: EventBus,
) -> ProgressionUnlocker:
    return ProgressionUnlocker(catalog, progress_store, event_bus)


@pytest.fixture
def engine(
    pair_store: InMemoryPairStore,
    session_store: InMemorySessionStore,
    unlocker: ProgressionUnlocker,
    event_bus: EventBus,
) -> SessionEngine:
    """Engine with seeded randomness and countdowns driven by ``tick()``."""
    rng = random.Random(42)
    return SessionEngine(
        pair_store,
        session_store,
        unlocker,
        selector=ContentSelector(rng),
        shuffler=PairShuffler(rng),
        event_bus=event_bus,
        start_timers=False,
    )


@pytest.fixture
def service(
    catalog: GameCatalog,
    engine: SessionEngine,
    unlocker: ProgressionUnlocker,
    progress_store: InMemoryProgressStore,
    session_store: InMemorySessionStore,
    pair_store: InMemoryPairStore,
) -> PairMatchingService:
    return PairMatchingService(
        catalog=catalog,
        engine=engine,
        unlocker=unlocker,
        progress_store=progress_store,
        session_store=session_store,
        pair_store=pair_store,
    )


# =============================================================================
# Helper Fixtures
# =============================================================================


@pytest.fixture
def sample_player_id() -> str:
    """Provide a sample player ID for testing."""
    return "550e8400-e29b-41d4-a716-446655440001"
