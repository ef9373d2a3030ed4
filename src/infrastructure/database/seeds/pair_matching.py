# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pair-matching catalog seed data.

Catalogs are authored as YAML:

    games:
      - title: "Chemistry basics"
        level_number: 1
        stage_number: 1
        time_limit_seconds: 180
        pairs:
          - left_content: "H2O"
            right_content: "Water"
            explanation: "Two hydrogen atoms and one oxygen atom."

Seeding only runs against an empty catalog, so it is safe on every start.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, model_validator
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.config.yaml_loader import YAMLLoadError, load_yaml
from src.infrastructure.database.models import PairMatchingGame, PairMatchingPair

logger = logging.getLogger(__name__)


class PairSeed(BaseModel):
    """One authored pair."""

    left_content: str = Field(min_length=1)
    right_content: str = Field(min_length=1)
    left_type: str = "text"
    right_type: str = "text"
    explanation: str | None = None


class GameSeed(BaseModel):
    """One authored game with its pair pool."""

    title: str = Field(min_length=1)
    description: str | None = None
    grade_level: str | None = None
    subject: str | None = None
    difficulty_level: str | None = None
    level_number: int = Field(ge=1)
    stage_number: int = Field(ge=1)
    time_limit_seconds: int = Field(default=180, ge=1)
    is_active: bool = True
    pairs: list[PairSeed] = Field(default_factory=list)


class CatalogSeed(BaseModel):
    """A full catalog file."""

    games: list[GameSeed]

    @model_validator(mode="after")
    def check_unique_positions(self) -> "CatalogSeed":
        seen: set[tuple[int, int]] = set()
        for game in self.games:
            key = (game.level_number, game.stage_number)
            if key in seen:
                raise ValueError(f"Duplicate level/stage {key[0]}/{key[1]} in catalog")
            seen.add(key)
        return self


def parse_catalog(data: dict[str, Any], source: Path | str = "<memory>") -> CatalogSeed:
    """Validate raw catalog data.

    Raises:
        YAMLLoadError: If the data does not describe a valid catalog.
    """
    try:
        return CatalogSeed.model_validate(data)
    except ValidationError as e:
        raise YAMLLoadError(Path(source), f"Invalid catalog: {e}") from e


async def seed_catalog(session: AsyncSession, catalog: CatalogSeed) -> list[PairMatchingGame]:
    """Insert a catalog into an empty pair_matching_games table.

    Args:
        session: Database session.
        catalog: Validated catalog.

    Returns:
        Created games, or an empty list if the catalog already had games.
    """
    existing = (await session.execute(select(func.count()).select_from(PairMatchingGame))).scalar_one()
    if existing:
        logger.info("Catalog already has %d games, skipping seed", existing)
        return []

    games = []
    for game_seed in catalog.games:
        game = PairMatchingGame(
            **game_seed.model_dump(exclude={"pairs"}),
            max_pairs=max(len(game_seed.pairs), 1),
        )
        game.pairs = [
            PairMatchingPair(**pair_seed.model_dump(), order_index=index)
            for index, pair_seed in enumerate(game_seed.pairs)
        ]
        session.add(game)
        games.append(game)

    await session.flush()
    logger.info(
        "Seeded %d games with %d pairs",
        len(games),
        sum(len(g.pairs) for g in catalog.games),
    )
    return games


async def seed_catalog_from_yaml(
    sessionmaker: async_sessionmaker[AsyncSession],
    path: Path | str,
) -> int:
    """Load a YAML catalog file and seed it.

    Returns:
        Number of games created.

    Raises:
        YAMLLoadError: If the file cannot be loaded or is not a valid catalog.
    """
    catalog = parse_catalog(load_yaml(path, required_keys=("games",)), path)

    async with sessionmaker() as session:
        games = await seed_catalog(session, catalog)
        await session.commit()
    return len(games)


if __name__ == "__main__":
    import sys

    from src.core.config import get_settings
    from src.infrastructure.database.connection import create_engine, create_sessionmaker

    async def main(path: str) -> None:
        settings = get_settings()
        engine = create_engine(settings.database)
        try:
            count = await seed_catalog_from_yaml(create_sessionmaker(engine), path)
            print(f"Seeded {count} games from {path}")
        finally:
            await engine.dispose()

    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "config/pair_matching_catalog.yaml"))
