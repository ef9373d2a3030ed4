# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Progression unlocking after completed sessions.

After every completed session the unlocker:
1. Upserts the completed game's progress (keep-max best_score,
   completion_count + 1). This step is never rolled back.
2. Unlocks the next active game in (level, stage) order. Re-unlocking is
   a no-op.
3. Classifies the event for the UI, recomputed from the live catalog:
   - level_unlock: the completed game was the last stage of its level and
     the next game sits in a higher level
   - stage_unlock: any other case with a next game
   - catalog_exhausted: no next game

If steps 2-3 fail the decision is returned with ``propagation_pending`` set
and can be retried through ``retry_propagation``. The player's completion
stands either way.
"""

import logging
from datetime import datetime

from src.domains.pair_matching.catalog import GameCatalog
from src.domains.pair_matching.exceptions import (
    ConcurrentProgressConflict,
    UnlockPropagationError,
)
from src.domains.pair_matching.models import (
    Game,
    PlayerGameProgress,
    UnlockDecision,
    UnlockKind,
)
from src.domains.pair_matching.stores import ProgressStore
from src.infrastructure.events import EventBus, EventTypes
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)


def classify_unlock(
    game: Game,
    next_game: Game | None,
    total_stages_in_level: int,
) -> tuple[UnlockKind, bool, bool]:
    """Classify a progression event.

    Args:
        game: The completed game.
        next_game: The game that follows it in catalog order, if any.
        total_stages_in_level: Active games sharing the completed game's level.

    Returns:
        Tuple of (kind, is_last_stage_in_level, is_new_level).
    """
    is_last_stage = game.stage_number == total_stages_in_level
    is_new_level = next_game is not None and next_game.level_number > game.level_number

    if next_game is None:
        return UnlockKind.CATALOG_EXHAUSTED, is_last_stage, False
    if is_last_stage and is_new_level:
        return UnlockKind.LEVEL_UNLOCK, is_last_stage, is_new_level
    return UnlockKind.STAGE_UNLOCK, is_last_stage, is_new_level


class ProgressionUnlocker:
    """Maintains each player's unlock graph.

    Example:
        >>> unlocker = ProgressionUnlocker(catalog, progress_store, event_bus)
        >>> await unlocker.initialize_player("player-1")
        >>> decision = await unlocker.on_session_completed("player-1", game, 40)
        >>> decision.kind
        <UnlockKind.STAGE_UNLOCK: 'stage_unlock'>
    """

    def __init__(
        self,
        catalog: GameCatalog,
        progress_store: ProgressStore,
        event_bus: EventBus | None = None,
    ) -> None:
        self._catalog = catalog
        self._progress = progress_store
        self._event_bus = event_bus

    async def initialize_player(self, player_id: str) -> list[PlayerGameProgress]:
        """Create missing progress rows for every active game.

        The first game in catalog order is the only one seeded as unlocked.
        Existing rows are left untouched, so this is safe to call on every load.

        Args:
            player_id: Player to initialize.

        Returns:
            The player's progress rows in catalog order.
        """
        games = await self._catalog.list_games()
        if not games:
            return []

        first_id = games[0].id
        rows = [
            await self._progress.ensure_progress(player_id, game.id, unlocked=game.id == first_id)
            for game in games
        ]
        logger.debug("Initialized progress for player %s: %d games", player_id, len(rows))
        return rows

    async def reset_player_progress(self, player_id: str) -> list[PlayerGameProgress]:
        """Administrative reset: drop every row and re-seed."""
        removed = await self._progress.delete_progress(player_id)
        logger.info("Reset progress for player %s (%d rows removed)", player_id, removed)
        rows = await self.initialize_player(player_id)
        await self._notify_progress_changed(player_id, None)
        return rows

    async def on_session_completed(
        self,
        player_id: str,
        game: Game,
        final_score: int,
        completed_at: datetime | None = None,
    ) -> UnlockDecision:
        """Apply a completed session to the player's progression.

        Shorthand for ``record_completion`` followed by ``unlock_next``.

        Args:
            player_id: Owner of the session.
            game: The completed game.
            final_score: Session score (partial on timeout).
            completed_at: Completion timestamp (defaults to now).

        Returns:
            UnlockDecision. When unlocking failed the decision carries
            ``propagation_pending=True`` instead of raising.

        Raises:
            Exception: Whatever the progress store raises if the completion
                upsert itself fails.
        """
        progress = await self.record_completion(player_id, game, final_score, completed_at)
        return await self.unlock_next(player_id, game, progress)

    async def record_completion(
        self,
        player_id: str,
        game: Game,
        final_score: int,
        completed_at: datetime | None = None,
    ) -> PlayerGameProgress:
        """Upsert the completed game's progress row (step 1).

        Raises:
            Exception: Whatever the progress store raises. Nothing was
                recorded and the call can be repeated.
        """
        completed_at = completed_at or utc_now()
        try:
            progress = await self._progress.record_completion(
                player_id, game.id, final_score, completed_at
            )
        except ConcurrentProgressConflict:
            # The racing writer created the row; the merge is a plain update now.
            logger.info("Progress row race for player %s game %s, merging", player_id, game.id)
            progress = await self._progress.record_completion(
                player_id, game.id, final_score, completed_at
            )

        logger.info(
            "Recorded completion: player=%s, game=%s, score=%d, best=%d, count=%d",
            player_id,
            game.id,
            final_score,
            progress.best_score,
            progress.completion_count,
        )
        await self._notify_progress_changed(player_id, game.id)
        return progress

    async def unlock_next(
        self,
        player_id: str,
        game: Game,
        progress: PlayerGameProgress,
    ) -> UnlockDecision:
        """Unlock and classify after a recorded completion (steps 2-3).

        A failure is reported as a pending decision, never raised.
        """
        try:
            return await self._propagate(player_id, game, progress)
        except UnlockPropagationError as e:
            logger.warning(
                "Unlock propagation pending for player %s after game %s: %s",
                player_id,
                game.id,
                e,
            )
            return UnlockDecision(
                completed_game_id=game.id,
                progress=progress,
                propagation_pending=True,
                error=str(e),
            )

    async def retry_propagation(self, player_id: str, game: Game) -> UnlockDecision:
        """Re-run the unlock steps for a game the player already completed.

        Raises:
            UnlockPropagationError: If unlocking fails again.
        """
        progress = await self._progress.get_progress(player_id, game.id)
        if progress is None or not progress.is_completed:
            raise UnlockPropagationError(
                f"Game {game.id} has no completion for player {player_id}",
                details={"player_id": player_id, "game_id": game.id},
            )
        return await self._propagate(player_id, game, progress)

    async def _propagate(
        self,
        player_id: str,
        game: Game,
        progress: PlayerGameProgress,
    ) -> UnlockDecision:
        try:
            next_game = await self._catalog.next_game(game)
            newly_unlocked = False
            if next_game is not None:
                newly_unlocked = await self._progress.unlock(player_id, next_game.id)
            total_stages = await self._catalog.total_stages_in_level(game.level_number)
        except Exception as e:
            raise UnlockPropagationError(
                f"Failed to unlock next game after {game.id}: {e}",
                details={"player_id": player_id, "game_id": game.id},
            ) from e

        kind, is_last_stage, is_new_level = classify_unlock(game, next_game, total_stages)

        decision = UnlockDecision(
            completed_game_id=game.id,
            kind=kind,
            progress=progress,
            next_game=next_game,
            new_level_game=next_game if kind == UnlockKind.LEVEL_UNLOCK else None,
            total_stages_in_level=total_stages,
            is_last_stage_in_level=is_last_stage,
            is_new_level=is_new_level,
            newly_unlocked=newly_unlocked,
        )

        logger.info(
            "Progression for player %s after game %s: %s (next=%s, newly_unlocked=%s)",
            player_id,
            game.id,
            kind.value,
            next_game.id if next_game else None,
            newly_unlocked,
        )

        if next_game is not None:
            await self._publish_unlock(player_id, decision)
        return decision

    async def _notify_progress_changed(self, player_id: str, game_id: str | None) -> None:
        """Publish a cache-invalidation hint; observers re-read the store."""
        if self._event_bus is None:
            return
        try:
            await self._event_bus.publish(
                EventTypes.PairMatching.PROGRESS_CHANGED,
                {"player_id": player_id, "game_id": game_id},
            )
        except Exception as e:
            logger.warning("Failed to publish %s: %s", EventTypes.PairMatching.PROGRESS_CHANGED, e)

    async def _publish_unlock(self, player_id: str, decision: UnlockDecision) -> None:
        if self._event_bus is None or decision.next_game is None:
            return

        event_type = (
            EventTypes.PairMatching.LEVEL_UNLOCKED
            if decision.kind == UnlockKind.LEVEL_UNLOCK
            else EventTypes.PairMatching.STAGE_UNLOCKED
        )
        try:
            await self._event_bus.publish(
                event_type,
                {
                    "player_id": player_id,
                    "completed_game_id": decision.completed_game_id,
                    "next_game_id": decision.next_game.id,
                    "level_number": decision.next_game.level_number,
                    "stage_number": decision.next_game.stage_number,
                },
            )
            await self._notify_progress_changed(player_id, decision.next_game.id)
        except Exception as e:
            logger.warning("Failed to publish %s: %s", event_type, e)
