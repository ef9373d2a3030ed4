# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pair-Matching Service.

This service is the entry point used by the API layer:
- List the catalog merged with a player's progress
- Start a game (refusing locked games when unlocking is enforced)
- Submit attempts, complete or abandon sessions
- Read a session's state, live or from the store
- Retry a pending unlock and reset a player's progress

The service checks that every session belongs to the calling player and
translates "not running in this process" into the right domain error by
looking the session up in the store.
"""

import logging

from src.domains.pair_matching.catalog import GameCatalog
from src.domains.pair_matching.engine import SessionEngine
from src.domains.pair_matching.exceptions import (
    GameLockedError,
    GameNotFoundError,
    SessionNotActiveError,
    SessionNotFoundError,
)
from src.domains.pair_matching.models import (
    AttemptOutcome,
    CompletionOutcome,
    CompletionReason,
    GameWithProgress,
    MatchAttempt,
    MatchSession,
    PlayerGameProgress,
    SessionSnapshot,
    UnlockDecision,
)
from src.domains.pair_matching.progression import ProgressionUnlocker
from src.domains.pair_matching.selection import PairShuffler
from src.domains.pair_matching.stores import PairStore, ProgressStore, SessionStore

logger = logging.getLogger(__name__)


class PairMatchingService:
    """Facade over the catalog, the session engine and the unlocker."""

    def __init__(
        self,
        catalog: GameCatalog,
        engine: SessionEngine,
        unlocker: ProgressionUnlocker,
        progress_store: ProgressStore,
        session_store: SessionStore,
        pair_store: PairStore,
        enforce_unlock: bool = True,
    ) -> None:
        self._catalog = catalog
        self._engine = engine
        self._unlocker = unlocker
        self._progress = progress_store
        self._sessions = session_store
        self._pairs = pair_store
        self._enforce_unlock = enforce_unlock

    # =========================================================================
    # Catalog & Progress
    # =========================================================================

    async def list_games_with_progress(self, player_id: str) -> list[GameWithProgress]:
        """List active games in catalog order with the player's progress.

        A player without any progress row is initialized first, so the
        first game always comes back unlocked.
        """
        games = await self._catalog.list_games()
        rows = await self._progress.list_progress(player_id)
        if games and not rows:
            rows = await self._unlocker.initialize_player(player_id)

        by_game = {row.game_id: row for row in rows}
        result = []
        for game in games:
            progress = by_game.get(game.id)
            result.append(
                GameWithProgress(
                    game=game,
                    progress=progress,
                    is_locked=not (progress is not None and progress.is_unlocked),
                    is_completed=progress is not None and progress.is_completed,
                )
            )
        return result

    async def reset_progress(self, player_id: str) -> list[PlayerGameProgress]:
        """Administrative reset of a player's progression."""
        return await self._unlocker.reset_player_progress(player_id)

    async def retry_progression(self, player_id: str, game_id: str) -> UnlockDecision:
        """Re-run unlocking after a completion whose propagation failed.

        Raises:
            GameNotFoundError: If the game does not exist.
            UnlockPropagationError: If the game was never completed or the
                unlock fails again.
        """
        game = await self._catalog.get_game(game_id)
        logger.info("Retrying progression: player=%s, game=%s", player_id, game_id)
        return await self._unlocker.retry_propagation(player_id, game)

    # =========================================================================
    # Sessions
    # =========================================================================

    async def start_game(self, player_id: str, game_id: str) -> SessionSnapshot:
        """Start a session of a game.

        Raises:
            GameNotFoundError: If the game does not exist or is inactive.
            GameLockedError: If unlocking is enforced and the game is locked.
            NoContentError: If the game has no pairs.
        """
        game = await self._catalog.get_game(game_id)
        if not game.is_active:
            raise GameNotFoundError(f"Game not found: {game_id}", details={"game_id": game_id})

        if self._enforce_unlock:
            progress = await self._progress.get_progress(player_id, game_id)
            if progress is None:
                await self._unlocker.initialize_player(player_id)
                progress = await self._progress.get_progress(player_id, game_id)
            if progress is None or not progress.is_unlocked:
                raise GameLockedError(
                    f"Game {game_id} is locked for player {player_id}",
                    details={"game_id": game_id, "player_id": player_id},
                )

        return await self._engine.start(game, player_id)

    async def submit_attempt(
        self,
        player_id: str,
        session_id: str,
        left_item_id: str,
        right_item_id: str,
    ) -> AttemptOutcome:
        """Submit one attempt to a running session."""
        await self._check_running(player_id, session_id)
        return await self._engine.attempt(session_id, left_item_id, right_item_id)

    async def complete_session(self, player_id: str, session_id: str) -> CompletionOutcome:
        """Finish a session early with its current score. Idempotent."""
        cached = self._engine.get_completion(session_id)
        if cached is not None:
            self._check_owner(cached.session, player_id)
            return cached

        await self._check_running(player_id, session_id)
        return await self._engine.complete(session_id, CompletionReason.MANUAL)

    async def abandon_session(self, player_id: str, session_id: str) -> MatchSession:
        """Abandon a session. No score, no unlock."""
        cached = self._engine.get_completion(session_id)
        if cached is not None:
            self._check_owner(cached.session, player_id)
            return cached.session

        try:
            await self._check_running(player_id, session_id)
        except SessionNotActiveError:
            # Already finished elsewhere; abandoning is a no-op.
            stored = await self._sessions.get_session(session_id)
            if stored is None:
                raise
            return stored
        return await self._engine.abandon(session_id)

    async def get_session_state(self, player_id: str, session_id: str) -> SessionSnapshot:
        """Get a session's state.

        Running sessions come from the engine; finished ones are rebuilt from
        the store.

        Raises:
            SessionNotFoundError: If the session does not exist for this player.
        """
        try:
            snapshot = self._engine.get_snapshot(session_id)
        except SessionNotFoundError:
            snapshot = None

        if snapshot is not None:
            self._check_owner(snapshot.session, player_id)
            return snapshot

        session = await self._load_owned(player_id, session_id)
        game = await self._catalog.get_game(session.game_id)
        pairs = {pair.id: pair for pair in await self._pairs.list_pairs(session.game_id)}
        board = PairShuffler.restore(
            # Selection order, so original_index matches the live board
            [pairs[pair_id] for pair_id in session.session_data.pair_ids if pair_id in pairs],
            session.session_data.left_order,
            session.session_data.right_order,
        )
        return SessionSnapshot(
            session=session,
            game=game,
            board=board,
            matched_pairs=session.session_data.matched_pairs,
            time_remaining_seconds=0,
        )

    async def list_attempts(self, player_id: str, session_id: str) -> list[MatchAttempt]:
        """Get a session's attempt log in order."""
        await self._load_owned(player_id, session_id)
        return await self._sessions.list_attempts(session_id)

    async def shutdown(self) -> None:
        await self._engine.shutdown()

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _check_running(self, player_id: str, session_id: str) -> None:
        """Ensure the session runs in this engine and belongs to the player.

        Raises:
            SessionNotFoundError: Unknown session, or owned by someone else.
            SessionNotActiveError: The session exists but is not running.
        """
        try:
            snapshot = self._engine.get_snapshot(session_id)
        except SessionNotFoundError:
            session = await self._load_owned(player_id, session_id)
            state = "no longer running" if session.is_active else session.status.value
            raise SessionNotActiveError(
                f"Session {session_id} is {state}",
                details={"session_id": session_id, "status": session.status.value},
            )
        self._check_owner(snapshot.session, player_id)

    async def _load_owned(self, player_id: str, session_id: str) -> MatchSession:
        session = await self._sessions.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(
                f"Session not found: {session_id}",
                details={"session_id": session_id},
            )
        self._check_owner(session, player_id)
        return session

    @staticmethod
    def _check_owner(session: MatchSession, player_id: str) -> None:
        # Someone else's session is reported as missing
        if session.player_id != player_id:
            raise SessionNotFoundError(
                f"Session not found: {session.id}",
                details={"session_id": session.id},
            )
