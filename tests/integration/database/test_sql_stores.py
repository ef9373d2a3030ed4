# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for the SQL-backed pair-matching stores.

Runs the stores and a fully wired service against a real database.
"""

from datetime import timedelta

import pytest

from src.api.dependencies import build_pair_matching_service
from src.core.config.settings import PairMatchingSettings, Settings
from src.domains.pair_matching.models import (
    MatchAttempt,
    MatchSession,
    SessionData,
    SessionStatus,
    UnlockKind,
)
from src.domains.pair_matching.sql_stores import (
    SqlCatalogStore,
    SqlPairStore,
    SqlProgressStore,
    SqlSessionStore,
)
from src.infrastructure.database.connection import DatabaseError, check_database_connection
from src.utils.datetime import utc_now

PLAYER = "player-sql-1"


@pytest.fixture
def catalog_store(seeded_sessionmaker) -> SqlCatalogStore:
    return SqlCatalogStore(seeded_sessionmaker)


@pytest.fixture
def progress_store(seeded_sessionmaker) -> SqlProgressStore:
    return SqlProgressStore(seeded_sessionmaker)


@pytest.fixture
def session_store(seeded_sessionmaker) -> SqlSessionStore:
    return SqlSessionStore(seeded_sessionmaker)


class TestConnection:
    """Tests for connection helpers."""

    @pytest.mark.asyncio
    async def test_check_database_connection(self, db_engine) -> None:
        assert await check_database_connection(db_engine) is True

    @pytest.mark.asyncio
    async def test_check_without_engine(self) -> None:
        assert await check_database_connection() is False


class TestSqlCatalogStore:
    """Tests for catalog reads."""

    @pytest.mark.asyncio
    async def test_games_ordered_by_level_then_stage(self, catalog_store) -> None:
        games = await catalog_store.list_games()

        assert [(g.level_number, g.stage_number) for g in games] == [(1, 1), (1, 2), (2, 1)]

    @pytest.mark.asyncio
    async def test_get_game(self, catalog_store) -> None:
        first = (await catalog_store.list_games())[0]

        game = await catalog_store.get_game(first.id)

        assert game == first
        assert await catalog_store.get_game("missing") is None

    @pytest.mark.asyncio
    async def test_pairs_in_authored_order(self, catalog_store, seeded_sessionmaker) -> None:
        first = (await catalog_store.list_games())[0]

        pairs = await SqlPairStore(seeded_sessionmaker).list_pairs(first.id)

        assert [p.order_index for p in pairs] == [0, 1, 2, 3, 4]
        assert pairs[0].left_content == "L1S1 term 0"
        assert pairs[0].explanation == "Explanation 0"


class TestSqlProgressStore:
    """Tests for progress upserts."""

    @pytest.mark.asyncio
    async def test_ensure_progress_is_idempotent(self, catalog_store, progress_store) -> None:
        game = (await catalog_store.list_games())[0]

        first = await progress_store.ensure_progress(PLAYER, game.id, unlocked=True)
        second = await progress_store.ensure_progress(PLAYER, game.id, unlocked=False)

        assert first.id == second.id
        assert second.is_unlocked is True
        assert len(await progress_store.list_progress(PLAYER)) == 1

    @pytest.mark.asyncio
    async def test_record_completion_keeps_best_score(self, catalog_store, progress_store) -> None:
        """Verify a lower score never replaces a higher one."""
        game = (await catalog_store.list_games())[0]
        first_at = utc_now()

        await progress_store.record_completion(PLAYER, game.id, 40, first_at)
        progress = await progress_store.record_completion(
            PLAYER, game.id, 30, first_at + timedelta(minutes=5)
        )

        assert progress.best_score == 40
        assert progress.completion_count == 2
        assert progress.is_completed is True
        assert progress.is_unlocked is True
        assert abs((progress.first_completed_at - first_at).total_seconds()) < 1

    @pytest.mark.asyncio
    async def test_record_completion_raises_best_score(self, catalog_store, progress_store) -> None:
        game = (await catalog_store.list_games())[0]

        await progress_store.record_completion(PLAYER, game.id, 30, utc_now())
        progress = await progress_store.record_completion(PLAYER, game.id, 40, utc_now())

        assert progress.best_score == 40

    @pytest.mark.asyncio
    async def test_unlock_flips_once(self, catalog_store, progress_store) -> None:
        game = (await catalog_store.list_games())[1]

        assert await progress_store.unlock(PLAYER, game.id) is True
        assert await progress_store.unlock(PLAYER, game.id) is False

        progress = await progress_store.get_progress(PLAYER, game.id)
        assert progress.is_unlocked is True
        assert progress.is_completed is False

    @pytest.mark.asyncio
    async def test_unlock_existing_locked_row(self, catalog_store, progress_store) -> None:
        game = (await catalog_store.list_games())[1]
        await progress_store.ensure_progress(PLAYER, game.id, unlocked=False)

        assert await progress_store.unlock(PLAYER, game.id) is True

    @pytest.mark.asyncio
    async def test_delete_progress(self, catalog_store, progress_store) -> None:
        for game in await catalog_store.list_games():
            await progress_store.ensure_progress(PLAYER, game.id, unlocked=False)

        deleted = await progress_store.delete_progress(PLAYER)

        assert deleted == 3
        assert await progress_store.list_progress(PLAYER) == []


class TestSqlSessionStore:
    """Tests for sessions and the attempt log."""

    async def _create(self, catalog_store, session_store) -> MatchSession:
        game = (await catalog_store.list_games())[0]
        session = MatchSession(
            game_id=game.id,
            player_id=PLAYER,
            max_score=40,
            pair_quota=4,
            session_data=SessionData(pair_ids=["a", "b", "c", "d"]),
        )
        return await session_store.create_session(session)

    @pytest.mark.asyncio
    async def test_create_and_get(self, catalog_store, session_store) -> None:
        session = await self._create(catalog_store, session_store)

        stored = await session_store.get_session(session.id)

        assert stored.status == SessionStatus.ACTIVE
        assert stored.session_data.pair_ids == ["a", "b", "c", "d"]
        assert stored.max_score == 40
        assert await session_store.find_active_session(PLAYER, session.game_id) == stored

    @pytest.mark.asyncio
    async def test_second_active_session_of_game_is_refused(
        self, catalog_store, session_store
    ) -> None:
        first = await self._create(catalog_store, session_store)

        with pytest.raises(DatabaseError):
            await self._create(catalog_store, session_store)

        await session_store.update_session(
            first.model_copy(update={"status": SessionStatus.ABANDONED})
        )
        second = await self._create(catalog_store, session_store)
        active = await session_store.find_active_session(PLAYER, second.game_id)
        assert active.id == second.id

    @pytest.mark.asyncio
    async def test_record_attempt_updates_counters(self, catalog_store, session_store) -> None:
        session = await self._create(catalog_store, session_store)
        session = session.model_copy(update={"score": 10, "pairs_matched": 1})
        attempt = MatchAttempt(
            session_id=session.id,
            sequence=1,
            pair_id="a",
            left_item_id="left-a",
            right_item_id="right-a",
            is_correct=True,
        )

        await session_store.record_attempt(attempt, session)

        stored = await session_store.get_session(session.id)
        assert stored.score == 10
        assert stored.pairs_matched == 1
        assert await session_store.count_attempts(session.id) == 1
        assert [a.id for a in await session_store.list_attempts(session.id)] == [attempt.id]

    @pytest.mark.asyncio
    async def test_duplicate_sequence_rejected(self, catalog_store, session_store) -> None:
        session = await self._create(catalog_store, session_store)

        def attempt() -> MatchAttempt:
            return MatchAttempt(
                session_id=session.id,
                sequence=1,
                pair_id="a",
                left_item_id="left-a",
                right_item_id="right-b",
                is_correct=False,
            )

        await session_store.record_attempt(attempt(), session)

        with pytest.raises(DatabaseError):
            await session_store.record_attempt(attempt(), session)
        assert await session_store.count_attempts(session.id) == 1

    @pytest.mark.asyncio
    async def test_update_session_to_completed(self, catalog_store, session_store) -> None:
        session = await self._create(catalog_store, session_store)
        finished = session.model_copy(
            update={
                "status": SessionStatus.COMPLETED,
                "completed_at": utc_now(),
                "completion_time_seconds": 42,
            }
        )

        await session_store.update_session(finished)

        stored = await session_store.get_session(session.id)
        assert stored.status == SessionStatus.COMPLETED
        assert stored.completion_time_seconds == 42
        assert await session_store.find_active_session(PLAYER, session.game_id) is None


class TestSqlServiceFlow:
    """End-to-end game flow on the SQL stores."""

    @pytest.fixture
    def sql_service(self, seeded_sessionmaker):
        settings = Settings(pair_matching=PairMatchingSettings(shuffle_seed=7))
        return build_pair_matching_service(
            settings,
            catalog_store=SqlCatalogStore(seeded_sessionmaker),
            pair_store=SqlPairStore(seeded_sessionmaker),
            progress_store=SqlProgressStore(seeded_sessionmaker),
            session_store=SqlSessionStore(seeded_sessionmaker),
            start_timers=False,
        )

    @pytest.mark.asyncio
    async def test_play_first_game_unlocks_second(self, sql_service) -> None:
        """Verify a full game persists attempts, progress and the unlock."""
        games = await sql_service.list_games_with_progress(PLAYER)
        assert [entry.is_locked for entry in games] == [False, True, True]

        snapshot = await sql_service.start_game(PLAYER, games[0].game.id)
        assert snapshot.session.pair_quota == 4

        outcome = None
        for item in snapshot.board.left_items:
            outcome = await sql_service.submit_attempt(
                PLAYER, snapshot.session.id, item.id, f"right-{item.pair_id}"
            )

        completion = outcome.completion
        assert completion is not None
        assert completion.session.score == 40
        assert completion.unlock.kind == UnlockKind.STAGE_UNLOCK
        assert completion.unlock.next_game.id == games[1].game.id

        attempts = await sql_service.list_attempts(PLAYER, snapshot.session.id)
        assert [a.sequence for a in attempts] == [1, 2, 3, 4]
        assert all(a.is_correct for a in attempts)

        games = await sql_service.list_games_with_progress(PLAYER)
        assert [entry.is_locked for entry in games] == [False, False, True]
        assert games[0].progress.best_score == 40

    @pytest.mark.asyncio
    async def test_finished_session_state_from_store(self, sql_service) -> None:
        games = await sql_service.list_games_with_progress(PLAYER)
        snapshot = await sql_service.start_game(PLAYER, games[0].game.id)
        first = snapshot.board.left_items[0]
        await sql_service.submit_attempt(
            PLAYER, snapshot.session.id, first.id, f"right-{first.pair_id}"
        )
        await sql_service.complete_session(PLAYER, snapshot.session.id)
        await sql_service.shutdown()

        state = await sql_service.get_session_state(PLAYER, snapshot.session.id)

        assert state.session.status == SessionStatus.COMPLETED
        assert state.session.score == 10
        assert [i.id for i in state.board.left_items] == [i.id for i in snapshot.board.left_items]
        assert [m.pair_id for m in state.matched_pairs] == [first.pair_id]
