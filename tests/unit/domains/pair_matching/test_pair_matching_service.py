# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the pair-matching service."""

import asyncio

import pytest

from src.domains.pair_matching.exceptions import (
    GameLockedError,
    GameNotFoundError,
    SessionNotActiveError,
    SessionNotFoundError,
    UnlockPropagationError,
)
from src.domains.pair_matching.models import CompletionReason, SessionStatus, UnlockKind
from src.domains.pair_matching.progression import ProgressionUnlocker
from src.domains.pair_matching.service import PairMatchingService

PLAYER = "player-1"
OTHER_PLAYER = "player-2"


async def finish_game(service: PairMatchingService, game_id: str, player_id: str = PLAYER):
    snapshot = await service.start_game(player_id, game_id)
    outcome = None
    for item in snapshot.board.left_items:
        outcome = await service.submit_attempt(
            player_id, snapshot.session.id, item.id, f"right-{item.pair_id}"
        )
    return snapshot, outcome


class SlowUnlocker(ProgressionUnlocker):
    """Unlocker that takes a while to unlock the next game."""

    async def unlock_next(self, player_id, game, progress):
        await asyncio.sleep(0.05)
        return await super().unlock_next(player_id, game, progress)


class TestCatalog:
    """Tests for listing games with progress."""

    @pytest.mark.asyncio
    async def test_new_player_sees_first_game_unlocked(self, service: PairMatchingService) -> None:
        entries = await service.list_games_with_progress(PLAYER)

        assert [e.game.id for e in entries] == ["g-1-1", "g-1-2", "g-2-1", "g-3-1"]
        assert [e.is_locked for e in entries] == [False, True, True, True]
        assert all(e.progress is not None for e in entries)

    @pytest.mark.asyncio
    async def test_listing_reflects_completion(self, service: PairMatchingService) -> None:
        await finish_game(service, "g-1-1")

        entries = {e.game.id: e for e in await service.list_games_with_progress(PLAYER)}

        assert entries["g-1-1"].is_completed
        assert entries["g-1-1"].progress.best_score == 40
        assert not entries["g-1-2"].is_locked
        assert entries["g-2-1"].is_locked

    @pytest.mark.asyncio
    async def test_inactive_games_are_hidden(self, service: PairMatchingService, catalog_store) -> None:
        catalog_store.set_active("g-2-1", False)

        entries = await service.list_games_with_progress(PLAYER)

        assert "g-2-1" not in [e.game.id for e in entries]

    @pytest.mark.asyncio
    async def test_reset_progress(self, service: PairMatchingService) -> None:
        await finish_game(service, "g-1-1")

        rows = await service.reset_progress(PLAYER)

        assert [r.game_id for r in rows if r.is_unlocked] == ["g-1-1"]


class TestStartGame:
    """Tests for PairMatchingService.start_game."""

    @pytest.mark.asyncio
    async def test_first_game_starts_for_new_player(self, service: PairMatchingService) -> None:
        snapshot = await service.start_game(PLAYER, "g-1-1")

        assert snapshot.session.status == SessionStatus.ACTIVE
        assert snapshot.session.player_id == PLAYER

    @pytest.mark.asyncio
    async def test_locked_game_is_refused(self, service: PairMatchingService) -> None:
        with pytest.raises(GameLockedError):
            await service.start_game(PLAYER, "g-1-2")

    @pytest.mark.asyncio
    async def test_unlocked_after_completion(self, service: PairMatchingService) -> None:
        await finish_game(service, "g-1-1")

        snapshot = await service.start_game(PLAYER, "g-1-2")

        assert snapshot.session.game_id == "g-1-2"

    @pytest.mark.asyncio
    async def test_missing_game(self, service: PairMatchingService) -> None:
        with pytest.raises(GameNotFoundError):
            await service.start_game(PLAYER, "missing")

    @pytest.mark.asyncio
    async def test_inactive_game_is_not_found(
        self, service: PairMatchingService, catalog_store
    ) -> None:
        catalog_store.set_active("g-1-1", False)

        with pytest.raises(GameNotFoundError):
            await service.start_game(PLAYER, "g-1-1")

    @pytest.mark.asyncio
    async def test_unlock_not_enforced(
        self, catalog, engine, unlocker, progress_store, session_store, pair_store
    ) -> None:
        service = PairMatchingService(
            catalog=catalog,
            engine=engine,
            unlocker=unlocker,
            progress_store=progress_store,
            session_store=session_store,
            pair_store=pair_store,
            enforce_unlock=False,
        )

        snapshot = await service.start_game(PLAYER, "g-3-1")

        assert snapshot.session.pair_quota == 6


class TestSessions:
    """Tests for attempts, completion and abandon through the service."""

    @pytest.mark.asyncio
    async def test_full_game_completes(self, service: PairMatchingService) -> None:
        _, outcome = await finish_game(service, "g-1-1")

        assert outcome.completion.reason == CompletionReason.ALL_MATCHED
        assert outcome.completion.unlock.kind == UnlockKind.STAGE_UNLOCK

    @pytest.mark.asyncio
    async def test_other_players_session_is_not_found(self, service: PairMatchingService) -> None:
        snapshot = await service.start_game(PLAYER, "g-1-1")
        left = snapshot.board.left_items[0]

        with pytest.raises(SessionNotFoundError):
            await service.submit_attempt(OTHER_PLAYER, snapshot.session.id, left.id, left.id)
        with pytest.raises(SessionNotFoundError):
            await service.get_session_state(OTHER_PLAYER, snapshot.session.id)
        with pytest.raises(SessionNotFoundError):
            await service.complete_session(OTHER_PLAYER, snapshot.session.id)

    @pytest.mark.asyncio
    async def test_attempt_on_finished_session(self, service: PairMatchingService) -> None:
        snapshot, _ = await finish_game(service, "g-1-1")
        left = snapshot.board.left_items[0]

        with pytest.raises(SessionNotActiveError):
            await service.submit_attempt(
                PLAYER, snapshot.session.id, left.id, f"right-{left.pair_id}"
            )

    @pytest.mark.asyncio
    async def test_attempt_on_unknown_session(self, service: PairMatchingService) -> None:
        with pytest.raises(SessionNotFoundError):
            await service.submit_attempt(PLAYER, "missing", "left-a", "right-a")

    @pytest.mark.asyncio
    async def test_complete_session_is_idempotent(
        self, service: PairMatchingService, progress_store
    ) -> None:
        snapshot = await service.start_game(PLAYER, "g-1-1")

        first = await service.complete_session(PLAYER, snapshot.session.id)
        second = await service.complete_session(PLAYER, snapshot.session.id)

        assert first == second
        assert first.reason == CompletionReason.MANUAL
        assert first.session.score == 0
        assert (await progress_store.get_progress(PLAYER, "g-1-1")).completion_count == 1

    @pytest.mark.asyncio
    async def test_complete_after_abandon(self, service: PairMatchingService) -> None:
        snapshot = await service.start_game(PLAYER, "g-1-1")
        await service.abandon_session(PLAYER, snapshot.session.id)

        with pytest.raises(SessionNotActiveError):
            await service.complete_session(PLAYER, snapshot.session.id)

    @pytest.mark.asyncio
    async def test_abandon_twice_returns_stored_session(self, service: PairMatchingService) -> None:
        snapshot = await service.start_game(PLAYER, "g-1-1")

        first = await service.abandon_session(PLAYER, snapshot.session.id)
        second = await service.abandon_session(PLAYER, snapshot.session.id)

        assert first.status == SessionStatus.ABANDONED
        assert second.status == SessionStatus.ABANDONED

    @pytest.mark.asyncio
    async def test_abandon_completed_session_is_noop(self, service: PairMatchingService) -> None:
        snapshot, _ = await finish_game(service, "g-1-1")

        session = await service.abandon_session(PLAYER, snapshot.session.id)

        assert session.status == SessionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_state_of_finished_session_is_rebuilt(self, service: PairMatchingService) -> None:
        snapshot, _ = await finish_game(service, "g-1-1")

        state = await service.get_session_state(PLAYER, snapshot.session.id)

        assert state.session.status == SessionStatus.COMPLETED
        assert state.board == snapshot.board
        assert len(state.matched_pairs) == 4
        assert state.time_remaining_seconds == 0
        assert state.game.id == "g-1-1"

    @pytest.mark.asyncio
    async def test_state_of_running_session(self, service: PairMatchingService, engine) -> None:
        snapshot = await service.start_game(PLAYER, "g-1-1")
        await engine.tick(snapshot.session.id)

        state = await service.get_session_state(PLAYER, snapshot.session.id)

        assert state.session.is_active
        assert state.time_remaining_seconds == 179

    @pytest.mark.asyncio
    async def test_list_attempts(self, service: PairMatchingService) -> None:
        snapshot, _ = await finish_game(service, "g-1-1")

        attempts = await service.list_attempts(PLAYER, snapshot.session.id)

        assert [a.sequence for a in attempts] == [1, 2, 3, 4]
        assert all(a.is_correct for a in attempts)


class TestConcurrentCompletion:
    """Tests for completion requests that overlap while unlocking runs."""

    @pytest.fixture
    def unlocker(self, catalog, progress_store, event_bus) -> ProgressionUnlocker:
        return SlowUnlocker(catalog, progress_store, event_bus)

    @pytest.mark.asyncio
    async def test_concurrent_complete_returns_one_outcome(
        self, service: PairMatchingService, progress_store
    ) -> None:
        snapshot = await service.start_game(PLAYER, "g-1-1")

        first, second = await asyncio.gather(
            service.complete_session(PLAYER, snapshot.session.id),
            service.complete_session(PLAYER, snapshot.session.id),
        )

        assert first == second
        assert first.session.status == SessionStatus.COMPLETED
        assert first.unlock.kind == UnlockKind.STAGE_UNLOCK
        assert (await progress_store.get_progress(PLAYER, "g-1-1")).completion_count == 1

    @pytest.mark.asyncio
    async def test_abandon_while_unlocking_returns_completed_session(
        self, service: PairMatchingService
    ) -> None:
        snapshot = await service.start_game(PLAYER, "g-1-1")

        outcome, abandoned = await asyncio.gather(
            service.complete_session(PLAYER, snapshot.session.id),
            service.abandon_session(PLAYER, snapshot.session.id),
        )

        assert abandoned.status == SessionStatus.COMPLETED
        assert abandoned == outcome.session


class TestRetryProgression:
    """Tests for PairMatchingService.retry_progression."""

    @pytest.mark.asyncio
    async def test_retry_after_completion(self, service: PairMatchingService) -> None:
        await finish_game(service, "g-1-1")

        decision = await service.retry_progression(PLAYER, "g-1-1")

        assert decision.kind == UnlockKind.STAGE_UNLOCK
        assert not decision.newly_unlocked

    @pytest.mark.asyncio
    async def test_retry_without_completion(self, service: PairMatchingService) -> None:
        with pytest.raises(UnlockPropagationError):
            await service.retry_progression(PLAYER, "g-1-1")

    @pytest.mark.asyncio
    async def test_retry_unknown_game(self, service: PairMatchingService) -> None:
        with pytest.raises(GameNotFoundError):
            await service.retry_progression(PLAYER, "missing")
