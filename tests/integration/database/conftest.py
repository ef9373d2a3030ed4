# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest fixtures for database integration tests.

Tests run against a throwaway SQLite file by default. Set TEST_DATABASE_URL
to an async PostgreSQL URL to run the same tests against a server.
"""

import os
from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from src.core.config.settings import DatabaseSettings
from src.infrastructure.database.connection import (
    create_engine,
    create_sessionmaker,
    create_tables,
)
from src.infrastructure.database.models.base import Base
from src.infrastructure.database.seeds import parse_catalog, seed_catalog


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    """Get database URL for tests."""
    return os.environ.get("TEST_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path}/test.db")


@pytest_asyncio.fixture(scope="function")
async def db_engine(db_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Create async engine with a fresh schema."""
    engine = create_engine(DatabaseSettings(url=db_url))

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await create_tables(engine)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def db_sessionmaker(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_sessionmaker(db_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(
    db_sessionmaker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create async session for database tests."""
    async with db_sessionmaker() as session:
        yield session


@pytest.fixture
def catalog_data() -> dict:
    """Three games over two levels, five pairs each, listed out of order."""

    def game(level: int, stage: int) -> dict:
        return {
            "title": f"Level {level} Stage {stage}",
            "level_number": level,
            "stage_number": stage,
            "time_limit_seconds": 120,
            "pairs": [
                {
                    "left_content": f"L{level}S{stage} term {index}",
                    "right_content": f"L{level}S{stage} definition {index}",
                    "explanation": f"Explanation {index}",
                }
                for index in range(5)
            ],
        }

    return {"games": [game(2, 1), game(1, 2), game(1, 1)]}


@pytest_asyncio.fixture(scope="function")
async def seeded_sessionmaker(
    db_sessionmaker: async_sessionmaker[AsyncSession],
    catalog_data: dict,
) -> async_sessionmaker[AsyncSession]:
    """Sessionmaker over a database holding the sample catalog."""
    async with db_sessionmaker() as session:
        await seed_catalog(session, parse_catalog(catalog_data))
        await session.commit()
    return db_sessionmaker
