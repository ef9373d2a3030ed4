# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Game catalog ordering.

Games are totally ordered by (level_number, stage_number). Only active
games take part in play and progression. The catalog never caches: every
call reads the store, because stage counts depend on live catalog content.
"""

import logging

from src.domains.pair_matching.exceptions import GameNotFoundError
from src.domains.pair_matching.models import Game
from src.domains.pair_matching.stores import CatalogStore

logger = logging.getLogger(__name__)


class GameCatalog:
    """Read-side view over a CatalogStore."""

    def __init__(self, store: CatalogStore) -> None:
        self._store = store

    async def list_games(self, active_only: bool = True) -> list[Game]:
        games = await self._store.list_games(active_only=active_only)
        return sorted(games, key=lambda g: g.sort_key)

    async def get_game(self, game_id: str) -> Game:
        """Get a game by id.

        Raises:
            GameNotFoundError: If the game does not exist.
        """
        game = await self._store.get_game(game_id)
        if game is None:
            raise GameNotFoundError(f"Game not found: {game_id}", details={"game_id": game_id})
        return game

    async def first_game(self) -> Game | None:
        """Get the first active game, the seed of every player's progression."""
        games = await self.list_games()
        return games[0] if games else None

    async def next_game(self, game: Game) -> Game | None:
        """Get the active game that follows ``game`` in catalog order.

        Works for inactive games too: the successor is the first active game
        whose (level, stage) is strictly greater.
        """
        for candidate in await self.list_games():
            if candidate.sort_key > game.sort_key:
                return candidate
        return None

    async def games_in_level(self, level_number: int) -> list[Game]:
        return [g for g in await self.list_games() if g.level_number == level_number]

    async def total_stages_in_level(self, level_number: int) -> int:
        return len(await self.games_in_level(level_number))
