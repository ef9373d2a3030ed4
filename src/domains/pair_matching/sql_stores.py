# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy implementations of the pair-matching stores.

Each public call runs in its own transaction from the injected
sessionmaker. SQLAlchemy errors surface as DatabaseError, which the engine
turns into AttemptPersistenceError / SessionPersistenceError.

Progress writes are single statements so concurrent completions of the
same game cannot lose a best score or a completion:

    UPDATE player_game_progress
    SET best_score = CASE WHEN best_score < :score THEN :score ELSE best_score END,
        completion_count = completion_count + 1, ...
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.domains.pair_matching.exceptions import ConcurrentProgressConflict
from src.domains.pair_matching.models import (
    Game,
    MatchAttempt,
    MatchSession,
    Pair,
    PlayerGameProgress,
    SessionData,
    SessionStatus,
)
from src.infrastructure.database.connection import DatabaseError
from src.infrastructure.database.models import (
    PairMatchingGame,
    PairMatchingPair,
    PairMatchingResult,
    PairMatchingSession,
    PlayerProgress,
)
from src.utils.datetime import ensure_utc, utc_now

logger = logging.getLogger(__name__)


# =============================================================================
# Row Conversion
# =============================================================================


def game_from_row(row: PairMatchingGame) -> Game:
    return Game(
        id=row.id,
        title=row.title,
        description=row.description,
        grade_level=row.grade_level,
        subject=row.subject,
        difficulty_level=row.difficulty_level,
        level_number=row.level_number,
        stage_number=row.stage_number,
        max_pairs=row.max_pairs,
        time_limit_seconds=row.time_limit_seconds,
        is_active=row.is_active,
    )


def pair_from_row(row: PairMatchingPair) -> Pair:
    return Pair(
        id=row.id,
        game_id=row.game_id,
        left_content=row.left_content,
        right_content=row.right_content,
        left_type=row.left_type,
        right_type=row.right_type,
        explanation=row.explanation,
        order_index=row.order_index,
    )


def progress_from_row(row: PlayerProgress) -> PlayerGameProgress:
    return PlayerGameProgress(
        id=row.id,
        player_id=row.player_id,
        game_id=row.game_id,
        is_unlocked=row.is_unlocked,
        is_completed=row.is_completed,
        best_score=row.best_score,
        completion_count=row.completion_count,
        first_completed_at=ensure_utc(row.first_completed_at),
        last_played_at=ensure_utc(row.last_played_at),
        created_at=ensure_utc(row.created_at) or utc_now(),
        updated_at=ensure_utc(row.updated_at) or utc_now(),
    )


def session_from_row(row: PairMatchingSession) -> MatchSession:
    return MatchSession(
        id=row.id,
        game_id=row.game_id,
        player_id=row.player_id,
        status=SessionStatus(row.status),
        score=row.score,
        max_score=row.max_score,
        pair_quota=row.pair_quota,
        mistakes_count=row.mistakes_count,
        pairs_matched=row.pairs_matched,
        completion_time_seconds=row.completion_time_seconds,
        started_at=ensure_utc(row.started_at),
        completed_at=ensure_utc(row.completed_at),
        session_data=SessionData.from_storage_dict(row.session_data),
    )


def attempt_from_row(row: PairMatchingResult) -> MatchAttempt:
    return MatchAttempt(
        id=row.id,
        session_id=row.session_id,
        sequence=row.sequence,
        pair_id=row.pair_id,
        left_item_id=row.left_item_id,
        right_item_id=row.right_item_id,
        is_correct=row.is_correct,
        time_taken_seconds=row.time_taken,
        attempted_at=ensure_utc(row.attempted_at),
    )


def _apply_session(row: PairMatchingSession, session: MatchSession) -> None:
    row.status = session.status.value
    row.score = session.score
    row.max_score = session.max_score
    row.pair_quota = session.pair_quota
    row.mistakes_count = session.mistakes_count
    row.pairs_matched = session.pairs_matched
    row.completion_time_seconds = session.completion_time_seconds
    row.completed_at = session.completed_at
    row.session_data = session.session_data.to_storage_dict()


# =============================================================================
# Stores
# =============================================================================


class _SqlStore:
    """Shared transaction handling."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        async with self._sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError(f"{type(self).__name__} operation failed", e) from e
            except Exception:
                await session.rollback()
                raise


class SqlCatalogStore(_SqlStore):
    """Catalog backed by pair_matching_games."""

    async def list_games(self, *, active_only: bool = True) -> list[Game]:
        stmt = select(PairMatchingGame).order_by(
            PairMatchingGame.level_number,
            PairMatchingGame.stage_number,
        )
        if active_only:
            stmt = stmt.where(PairMatchingGame.is_active.is_(True))

        async with self._transaction() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [game_from_row(row) for row in rows]

    async def get_game(self, game_id: str) -> Game | None:
        async with self._transaction() as session:
            row = await session.get(PairMatchingGame, game_id)
            return game_from_row(row) if row is not None else None


class SqlPairStore(_SqlStore):
    """Pair pool backed by pair_matching_pairs."""

    async def list_pairs(self, game_id: str) -> list[Pair]:
        stmt = (
            select(PairMatchingPair)
            .where(PairMatchingPair.game_id == game_id)
            .order_by(PairMatchingPair.order_index, PairMatchingPair.id)
        )
        async with self._transaction() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [pair_from_row(row) for row in rows]


class SqlProgressStore(_SqlStore):
    """Progress backed by player_game_progress."""

    @staticmethod
    def _row_query(player_id: str, game_id: str):
        return select(PlayerProgress).where(
            PlayerProgress.player_id == player_id,
            PlayerProgress.game_id == game_id,
        )

    async def get_progress(self, player_id: str, game_id: str) -> PlayerGameProgress | None:
        async with self._transaction() as session:
            row = (await session.execute(self._row_query(player_id, game_id))).scalar_one_or_none()
            return progress_from_row(row) if row is not None else None

    async def list_progress(self, player_id: str) -> list[PlayerGameProgress]:
        stmt = select(PlayerProgress).where(PlayerProgress.player_id == player_id)
        async with self._transaction() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [progress_from_row(row) for row in rows]

    async def ensure_progress(
        self, player_id: str, game_id: str, *, unlocked: bool
    ) -> PlayerGameProgress:
        existing = await self.get_progress(player_id, game_id)
        if existing is not None:
            return existing

        try:
            async with self._transaction() as session:
                row = PlayerProgress(
                    player_id=player_id,
                    game_id=game_id,
                    is_unlocked=unlocked,
                    is_completed=False,
                    best_score=0,
                    completion_count=0,
                )
                session.add(row)
                await self._flush_new_row(session, player_id, game_id)
        except ConcurrentProgressConflict:
            logger.debug("Progress row for %s/%s created concurrently", player_id, game_id)

        progress = await self.get_progress(player_id, game_id)
        if progress is None:
            raise DatabaseError(f"Progress row for {player_id}/{game_id} vanished after insert")
        return progress

    async def record_completion(
        self, player_id: str, game_id: str, score: int, completed_at: datetime
    ) -> PlayerGameProgress:
        stmt = (
            update(PlayerProgress)
            .where(
                PlayerProgress.player_id == player_id,
                PlayerProgress.game_id == game_id,
            )
            .values(
                is_unlocked=True,
                is_completed=True,
                best_score=case(
                    (PlayerProgress.best_score < score, score),
                    else_=PlayerProgress.best_score,
                ),
                completion_count=PlayerProgress.completion_count + 1,
                last_played_at=completed_at,
                first_completed_at=func.coalesce(PlayerProgress.first_completed_at, completed_at),
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )

        async with self._transaction() as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                session.add(
                    PlayerProgress(
                        player_id=player_id,
                        game_id=game_id,
                        is_unlocked=True,
                        is_completed=True,
                        best_score=score,
                        completion_count=1,
                        first_completed_at=completed_at,
                        last_played_at=completed_at,
                    )
                )
                await self._flush_new_row(session, player_id, game_id)

        progress = await self.get_progress(player_id, game_id)
        if progress is None:
            raise DatabaseError(f"Progress row for {player_id}/{game_id} missing after completion")
        return progress

    async def unlock(self, player_id: str, game_id: str) -> bool:
        if await self._set_unlocked(player_id, game_id):
            return True

        if await self.get_progress(player_id, game_id) is not None:
            return False

        try:
            async with self._transaction() as session:
                session.add(
                    PlayerProgress(
                        player_id=player_id,
                        game_id=game_id,
                        is_unlocked=True,
                        is_completed=False,
                        best_score=0,
                        completion_count=0,
                    )
                )
                await self._flush_new_row(session, player_id, game_id)
            return True
        except ConcurrentProgressConflict:
            return await self._set_unlocked(player_id, game_id)

    async def delete_progress(self, player_id: str) -> int:
        stmt = delete(PlayerProgress).where(PlayerProgress.player_id == player_id)
        async with self._transaction() as session:
            result = await session.execute(stmt)
            return result.rowcount or 0

    async def _set_unlocked(self, player_id: str, game_id: str) -> bool:
        stmt = (
            update(PlayerProgress)
            .where(
                PlayerProgress.player_id == player_id,
                PlayerProgress.game_id == game_id,
                PlayerProgress.is_unlocked.is_(False),
            )
            .values(is_unlocked=True, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        async with self._transaction() as session:
            result = await session.execute(stmt)
            return result.rowcount == 1

    @staticmethod
    async def _flush_new_row(session: AsyncSession, player_id: str, game_id: str) -> None:
        try:
            await session.flush()
        except IntegrityError as e:
            raise ConcurrentProgressConflict(
                f"Progress row for player {player_id} game {game_id} already exists",
                details={"player_id": player_id, "game_id": game_id},
            ) from e


class SqlSessionStore(_SqlStore):
    """Sessions in pair_matching_sessions, attempts in pair_matching_results."""

    async def create_session(self, session: MatchSession) -> MatchSession:
        async with self._transaction() as db:
            row = PairMatchingSession(
                id=session.id,
                game_id=session.game_id,
                player_id=session.player_id,
                started_at=session.started_at,
            )
            _apply_session(row, session)
            db.add(row)
        return session

    async def get_session(self, session_id: str) -> MatchSession | None:
        async with self._transaction() as db:
            row = await db.get(PairMatchingSession, session_id)
            return session_from_row(row) if row is not None else None

    async def find_active_session(self, player_id: str, game_id: str) -> MatchSession | None:
        stmt = (
            select(PairMatchingSession)
            .where(
                PairMatchingSession.player_id == player_id,
                PairMatchingSession.game_id == game_id,
                PairMatchingSession.status == SessionStatus.ACTIVE.value,
            )
            .order_by(PairMatchingSession.started_at.desc())
            .limit(1)
        )
        async with self._transaction() as db:
            row = (await db.execute(stmt)).scalar_one_or_none()
            return session_from_row(row) if row is not None else None

    async def record_attempt(self, attempt: MatchAttempt, session: MatchSession) -> None:
        async with self._transaction() as db:
            row = await db.get(PairMatchingSession, session.id)
            if row is None:
                raise DatabaseError(f"Session {session.id} not found")

            db.add(
                PairMatchingResult(
                    id=attempt.id,
                    session_id=attempt.session_id,
                    sequence=attempt.sequence,
                    pair_id=attempt.pair_id,
                    left_item_id=attempt.left_item_id,
                    right_item_id=attempt.right_item_id,
                    is_correct=attempt.is_correct,
                    time_taken=attempt.time_taken_seconds,
                    attempts_count=1,
                    attempted_at=attempt.attempted_at,
                )
            )
            _apply_session(row, session)

    async def count_attempts(self, session_id: str) -> int:
        stmt = (
            select(func.count())
            .select_from(PairMatchingResult)
            .where(PairMatchingResult.session_id == session_id)
        )
        async with self._transaction() as db:
            return (await db.execute(stmt)).scalar_one()

    async def list_attempts(self, session_id: str) -> list[MatchAttempt]:
        stmt = (
            select(PairMatchingResult)
            .where(PairMatchingResult.session_id == session_id)
            .order_by(PairMatchingResult.sequence)
        )
        async with self._transaction() as db:
            rows = (await db.execute(stmt)).scalars().all()
            return [attempt_from_row(row) for row in rows]

    async def update_session(self, session: MatchSession) -> None:
        async with self._transaction() as db:
            row = await db.get(PairMatchingSession, session.id)
            if row is None:
                raise DatabaseError(f"Session {session.id} not found")
            _apply_session(row, session)
