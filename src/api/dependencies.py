# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

This module is the only place that builds the pair-matching object graph
(stores, catalog, unlocker, engine, event bus). Dependencies are used to:
- Get the pair-matching service
- Resolve the calling player from the X-Player-ID header

Example:
    @router.get("/games")
    async def list_games(
        player_id: PlayerId,
        service: PairMatchingService = Depends(get_pair_matching_service),
    ):
        ...
"""

import logging
import random
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.config import Settings, get_settings
from src.domains.pair_matching.catalog import GameCatalog
from src.domains.pair_matching.engine import SessionEngine
from src.domains.pair_matching.progression import ProgressionUnlocker
from src.domains.pair_matching.selection import ContentSelector, PairShuffler
from src.domains.pair_matching.service import PairMatchingService
from src.domains.pair_matching.sql_stores import (
    SqlCatalogStore,
    SqlPairStore,
    SqlProgressStore,
    SqlSessionStore,
)
from src.domains.pair_matching.stores import (
    CatalogStore,
    PairStore,
    ProgressStore,
    SessionStore,
)
from src.infrastructure.database.connection import (
    close_database,
    create_tables,
    get_sessionmaker,
    init_database,
)
from src.infrastructure.database.seeds import seed_catalog_from_yaml
from src.infrastructure.events import EventBus
from src.utils.logging import bind_context

logger = logging.getLogger(__name__)

# Application-wide singletons, set by init_services()
_event_bus: EventBus | None = None
_service: PairMatchingService | None = None


def build_pair_matching_service(
    settings: Settings,
    catalog_store: CatalogStore,
    pair_store: PairStore,
    progress_store: ProgressStore,
    session_store: SessionStore,
    event_bus: EventBus | None = None,
    start_timers: bool = True,
) -> PairMatchingService:
    """Wire the pair-matching components together.

    Args:
        settings: Application settings.
        catalog_store: Game catalog store.
        pair_store: Pair pool store.
        progress_store: Player progress store.
        session_store: Session and attempt log store.
        event_bus: Change-notification channel.
        start_timers: Run session countdowns in background tasks.

    Returns:
        Ready-to-use PairMatchingService.
    """
    game_settings = settings.pair_matching
    rng = random.Random(game_settings.shuffle_seed)

    catalog = GameCatalog(catalog_store)
    unlocker = ProgressionUnlocker(catalog, progress_store, event_bus)
    engine = SessionEngine(
        pair_store,
        session_store,
        unlocker,
        selector=ContentSelector(rng),
        shuffler=PairShuffler(rng),
        event_bus=event_bus,
        tick_interval=game_settings.tick_interval_seconds,
        start_timers=start_timers,
        attempt_write_retries=game_settings.attempt_write_retries,
    )
    return PairMatchingService(
        catalog=catalog,
        engine=engine,
        unlocker=unlocker,
        progress_store=progress_store,
        session_store=session_store,
        pair_store=pair_store,
        enforce_unlock=game_settings.enforce_unlock,
    )


def build_sql_service(
    settings: Settings,
    sessionmaker: async_sessionmaker[AsyncSession],
    event_bus: EventBus | None = None,
) -> PairMatchingService:
    """Build the service on top of the SQL stores."""
    return build_pair_matching_service(
        settings,
        catalog_store=SqlCatalogStore(sessionmaker),
        pair_store=SqlPairStore(sessionmaker),
        progress_store=SqlProgressStore(sessionmaker),
        session_store=SqlSessionStore(sessionmaker),
        event_bus=event_bus,
    )


async def init_services(service: PairMatchingService | None = None) -> None:
    """Initialize the database and the pair-matching service.

    Args:
        service: Prebuilt service (tests). When given, no database is opened.
    """
    global _event_bus, _service
    settings = get_settings()

    _event_bus = EventBus()
    if service is not None:
        _service = service
        return

    engine = await init_database(settings)

    # SQLite has no migration step in development and tests
    if settings.database.is_sqlite:
        await create_tables(engine)

    if settings.pair_matching.catalog_seed_path:
        await seed_catalog_from_yaml(get_sessionmaker(), settings.pair_matching.catalog_seed_path)

    _service = build_sql_service(settings, get_sessionmaker(), _event_bus)
    logger.info("Pair-matching service initialized")


async def close_services() -> None:
    """Stop running sessions' timers and close the database."""
    global _event_bus, _service

    if _service is not None:
        await _service.shutdown()
        _service = None
    if _event_bus is not None:
        _event_bus.clear()
        _event_bus = None
    await close_database()


def get_pair_matching_service() -> PairMatchingService:
    """Get the pair-matching service.

    Raises:
        HTTPException: If services are not initialized.
    """
    if _service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Pair-matching service not initialized",
        )
    return _service


async def get_player_id(
    x_player_id: Annotated[str | None, Header(alias="X-Player-ID")] = None,
) -> str:
    """Resolve the calling player.

    Authentication happens upstream; the gateway forwards the player id.

    Raises:
        HTTPException: If the header is missing or blank.
    """
    if not x_player_id or not x_player_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Player-ID header",
        )
    player_id = x_player_id.strip()
    bind_context(player_id=player_id)
    return player_id


# Type aliases for cleaner endpoint signatures
PlayerId = Annotated[str, Depends(get_player_id)]
Service = Annotated[PairMatchingService, Depends(get_pair_matching_service)]
