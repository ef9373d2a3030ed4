# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pair-matching tables.

- pair_matching_games: level/stage catalog
- pair_matching_pairs: term/definition pool of each game
- player_game_progress: per (player, game) progression
- pair_matching_sessions: one row per playthrough
- pair_matching_results: append-only attempt log
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.infrastructure.database.models.base import (
    Base,
    JSONType,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)


class PairMatchingGame(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A game in the level/stage catalog."""

    __tablename__ = "pair_matching_games"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    grade_level: Mapped[Optional[str]] = mapped_column(String(50))
    subject: Mapped[Optional[str]] = mapped_column(String(100))
    difficulty_level: Mapped[Optional[str]] = mapped_column(String(50))
    level_number: Mapped[int] = mapped_column(Integer, nullable=False)
    stage_number: Mapped[int] = mapped_column(Integer, nullable=False)
    max_pairs: Mapped[int] = mapped_column(Integer, nullable=False, default=6)
    time_limit_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=180)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    pairs: Mapped[list["PairMatchingPair"]] = relationship(
        back_populates="game",
        cascade="all, delete-orphan",
        order_by="PairMatchingPair.order_index",
    )

    __table_args__ = (
        UniqueConstraint("level_number", "stage_number", name="uq_pair_matching_games_level_stage"),
        CheckConstraint("level_number >= 1", name="ck_pair_matching_games_level"),
        CheckConstraint("stage_number >= 1", name="ck_pair_matching_games_stage"),
    )


class PairMatchingPair(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A term/definition pair owned by one game."""

    __tablename__ = "pair_matching_pairs"

    game_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("pair_matching_games.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    left_content: Mapped[str] = mapped_column(Text, nullable=False)
    right_content: Mapped[str] = mapped_column(Text, nullable=False)
    left_type: Mapped[str] = mapped_column(String(20), nullable=False, default="text")
    right_type: Mapped[str] = mapped_column(String(20), nullable=False, default="text")
    explanation: Mapped[Optional[str]] = mapped_column(Text)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    game: Mapped[PairMatchingGame] = relationship(back_populates="pairs")


class PlayerProgress(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Progress of one player on one game."""

    __tablename__ = "player_game_progress"

    player_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    game_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("pair_matching_games.id", ondelete="CASCADE"),
        nullable=False,
    )
    is_unlocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    best_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completion_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    first_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_played_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("player_id", "game_id", name="uq_player_game_progress_player_game"),
    )


class PairMatchingSession(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """One timed playthrough."""

    __tablename__ = "pair_matching_sessions"

    game_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("pair_matching_games.id", ondelete="CASCADE"),
        nullable=False,
    )
    player_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pair_quota: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    mistakes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pairs_matched: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completion_time_seconds: Mapped[Optional[int]] = mapped_column(Integer)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    session_data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    results: Mapped[list["PairMatchingResult"]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="PairMatchingResult.sequence",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'completed', 'abandoned')",
            name="ck_pair_matching_sessions_status",
        ),
        Index("ix_pair_matching_sessions_player_game_status", "player_id", "game_id", "status"),
        # At most one active session per player and game
        Index(
            "uq_pair_matching_sessions_one_active",
            "player_id",
            "game_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )


class PairMatchingResult(UUIDPrimaryKeyMixin, Base):
    """Attempt log entry."""

    __tablename__ = "pair_matching_results"

    session_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("pair_matching_sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    pair_id: Mapped[str] = mapped_column(String(36), nullable=False)
    left_item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    right_item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    time_taken: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    attempts_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    attempted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    session: Mapped[PairMatchingSession] = relationship(back_populates="results")

    __table_args__ = (
        UniqueConstraint("session_id", "sequence", name="uq_pair_matching_results_session_sequence"),
    )
