# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Store contracts consumed by the pair-matching core.

The engine never talks to a database directly. It is given four stores:

- CatalogStore: read-only listing of games ordered by (level, stage)
- PairStore: read-only listing of a game's pairs
- ProgressStore: per (player, game) progress with atomic keep-max upsert
- SessionStore: match sessions and the append-only attempt log

In-memory implementations live here; SQLAlchemy implementations live in
``sql_stores``. Stores return copies so callers cannot mutate stored state
by accident.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime
from typing import Protocol, runtime_checkable

from src.domains.pair_matching.models import (
    Game,
    MatchAttempt,
    MatchSession,
    Pair,
    PlayerGameProgress,
    SessionStatus,
)
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)


@runtime_checkable
class CatalogStore(Protocol):
    """Read-only game catalog."""

    async def list_games(self, *, active_only: bool = True) -> list[Game]:
        """List games ordered by (level_number, stage_number)."""
        ...

    async def get_game(self, game_id: str) -> Game | None:
        ...


@runtime_checkable
class PairStore(Protocol):
    """Read-only pair pool."""

    async def list_pairs(self, game_id: str) -> list[Pair]:
        """List a game's pairs ordered by order_index."""
        ...


@runtime_checkable
class ProgressStore(Protocol):
    """Player progress keyed by (player_id, game_id)."""

    async def get_progress(self, player_id: str, game_id: str) -> PlayerGameProgress | None:
        ...

    async def list_progress(self, player_id: str) -> list[PlayerGameProgress]:
        ...

    async def ensure_progress(
        self, player_id: str, game_id: str, *, unlocked: bool
    ) -> PlayerGameProgress:
        """Create the row if missing. Existing rows are returned untouched."""
        ...

    async def record_completion(
        self, player_id: str, game_id: str, score: int, completed_at: datetime
    ) -> PlayerGameProgress:
        """Atomic keep-max completion upsert.

        Sets unlocked and completed, keeps the maximum best_score, increments
        completion_count, stamps last_played_at and first_completed_at if unset.
        """
        ...

    async def unlock(self, player_id: str, game_id: str) -> bool:
        """Unlock a game. Returns True only if the flag flipped."""
        ...

    async def delete_progress(self, player_id: str) -> int:
        """Administrative reset. Returns the number of rows removed."""
        ...


@runtime_checkable
class SessionStore(Protocol):
    """Match sessions and the append-only attempt log."""

    async def create_session(self, session: MatchSession) -> MatchSession:
        """Insert a new session.

        Fails when the player already has an active session of the game.
        """
        ...

    async def get_session(self, session_id: str) -> MatchSession | None:
        ...

    async def find_active_session(self, player_id: str, game_id: str) -> MatchSession | None:
        ...

    async def record_attempt(self, attempt: MatchAttempt, session: MatchSession) -> None:
        """Append ``attempt`` and write the session's counters in one unit.

        ``session`` is the post-attempt snapshot. Either both writes happen
        or neither does.
        """
        ...

    async def count_attempts(self, session_id: str) -> int:
        ...

    async def list_attempts(self, session_id: str) -> list[MatchAttempt]:
        ...

    async def update_session(self, session: MatchSession) -> None:
        """Write status, counters, completion fields and session data."""
        ...


# =============================================================================
# In-memory implementations
# =============================================================================


class InMemoryCatalogStore:
    """Catalog backed by a dict."""

    def __init__(self, games: Iterable[Game] = ()) -> None:
        self._games: dict[str, Game] = {}
        for game in games:
            self.add_game(game)

    def add_game(self, game: Game) -> None:
        self._games[game.id] = game.model_copy()

    def set_active(self, game_id: str, is_active: bool) -> None:
        """Toggle the activation flag, the only mutable catalog field."""
        self._games[game_id] = self._games[game_id].model_copy(update={"is_active": is_active})

    async def list_games(self, *, active_only: bool = True) -> list[Game]:
        games = [g for g in self._games.values() if g.is_active or not active_only]
        return [g.model_copy() for g in sorted(games, key=lambda g: g.sort_key)]

    async def get_game(self, game_id: str) -> Game | None:
        game = self._games.get(game_id)
        return game.model_copy() if game else None


class InMemoryPairStore:
    """Pair pools backed by a dict of lists."""

    def __init__(self, pairs: Iterable[Pair] = ()) -> None:
        self._pairs: dict[str, list[Pair]] = defaultdict(list)
        self.add_pairs(pairs)

    def add_pairs(self, pairs: Iterable[Pair]) -> None:
        for pair in pairs:
            self._pairs[pair.game_id].append(pair.model_copy())

    async def list_pairs(self, game_id: str) -> list[Pair]:
        pairs = sorted(self._pairs.get(game_id, []), key=lambda p: p.order_index)
        return [p.model_copy() for p in pairs]


class InMemoryProgressStore:
    """Progress rows guarded by a single asyncio lock.

    Every read-modify-write happens under the lock, which makes the
    keep-max upsert atomic with respect to other coroutines.
    """

    def __init__(self) -> None:
        self._rows: dict[tuple[str, str], PlayerGameProgress] = {}
        self._lock = asyncio.Lock()

    async def get_progress(self, player_id: str, game_id: str) -> PlayerGameProgress | None:
        row = self._rows.get((player_id, game_id))
        return row.model_copy() if row else None

    async def list_progress(self, player_id: str) -> list[PlayerGameProgress]:
        return [
            row.model_copy()
            for (pid, _), row in self._rows.items()
            if pid == player_id
        ]

    async def ensure_progress(
        self, player_id: str, game_id: str, *, unlocked: bool
    ) -> PlayerGameProgress:
        async with self._lock:
            key = (player_id, game_id)
            if key not in self._rows:
                self._rows[key] = PlayerGameProgress(
                    player_id=player_id,
                    game_id=game_id,
                    is_unlocked=unlocked,
                )
            return self._rows[key].model_copy()

    async def record_completion(
        self, player_id: str, game_id: str, score: int, completed_at: datetime
    ) -> PlayerGameProgress:
        async with self._lock:
            key = (player_id, game_id)
            row = self._rows.get(key) or PlayerGameProgress(player_id=player_id, game_id=game_id)
            row = row.model_copy(
                update={
                    "is_unlocked": True,
                    "is_completed": True,
                    "best_score": max(row.best_score, score),
                    "completion_count": row.completion_count + 1,
                    "first_completed_at": row.first_completed_at or completed_at,
                    "last_played_at": completed_at,
                    "updated_at": utc_now(),
                }
            )
            self._rows[key] = row
            return row.model_copy()

    async def unlock(self, player_id: str, game_id: str) -> bool:
        async with self._lock:
            key = (player_id, game_id)
            row = self._rows.get(key)
            if row is None:
                self._rows[key] = PlayerGameProgress(
                    player_id=player_id,
                    game_id=game_id,
                    is_unlocked=True,
                )
                return True
            if row.is_unlocked:
                return False
            self._rows[key] = row.model_copy(update={"is_unlocked": True, "updated_at": utc_now()})
            return True

    async def delete_progress(self, player_id: str) -> int:
        async with self._lock:
            keys = [key for key in self._rows if key[0] == player_id]
            for key in keys:
                del self._rows[key]
            return len(keys)


class InMemorySessionStore:
    """Sessions and attempt log kept in dicts."""

    def __init__(self) -> None:
        self._sessions: dict[str, MatchSession] = {}
        self._attempts: dict[str, list[MatchAttempt]] = defaultdict(list)

    async def create_session(self, session: MatchSession) -> MatchSession:
        if session.is_active and await self.find_active_session(session.player_id, session.game_id):
            raise ValueError(
                f"Player {session.player_id} already has an active session of game {session.game_id}"
            )
        self._sessions[session.id] = session.model_copy(deep=True)
        return session

    async def get_session(self, session_id: str) -> MatchSession | None:
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def find_active_session(self, player_id: str, game_id: str) -> MatchSession | None:
        for session in self._sessions.values():
            if (
                session.player_id == player_id
                and session.game_id == game_id
                and session.status == SessionStatus.ACTIVE
            ):
                return session.model_copy(deep=True)
        return None

    async def record_attempt(self, attempt: MatchAttempt, session: MatchSession) -> None:
        log = self._attempts[attempt.session_id]
        if any(a.sequence == attempt.sequence for a in log):
            raise ValueError(
                f"Duplicate attempt sequence {attempt.sequence} for session {attempt.session_id}"
            )
        log.append(attempt.model_copy())
        self._sessions[session.id] = session.model_copy(deep=True)

    async def count_attempts(self, session_id: str) -> int:
        return len(self._attempts.get(session_id, []))

    async def list_attempts(self, session_id: str) -> list[MatchAttempt]:
        return [a.model_copy() for a in self._attempts.get(session_id, [])]

    async def update_session(self, session: MatchSession) -> None:
        self._sessions[session.id] = session.model_copy(deep=True)
