# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Add pair-matching tables.

Revision ID: 001_add_pair_matching_tables
Revises: None
Create Date: 2025-01-20

Creates the catalog (games, pairs), player progress, sessions and the
attempt log.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001_add_pair_matching_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    """Create pair-matching tables."""
    # ==========================================================================
    # 1. pair_matching_games
    # ==========================================================================
    op.create_table(
        "pair_matching_games",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("grade_level", sa.String(50), nullable=True),
        sa.Column("subject", sa.String(100), nullable=True),
        sa.Column("difficulty_level", sa.String(50), nullable=True),
        sa.Column("level_number", sa.Integer, nullable=False),
        sa.Column("stage_number", sa.Integer, nullable=False),
        sa.Column("max_pairs", sa.Integer, nullable=False, server_default="6"),
        sa.Column("time_limit_seconds", sa.Integer, nullable=False, server_default="180"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint(
            "level_number", "stage_number", name="uq_pair_matching_games_level_stage"
        ),
        sa.CheckConstraint("level_number >= 1", name="ck_pair_matching_games_level"),
        sa.CheckConstraint("stage_number >= 1", name="ck_pair_matching_games_stage"),
    )

    # ==========================================================================
    # 2. pair_matching_pairs
    # ==========================================================================
    op.create_table(
        "pair_matching_pairs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "game_id",
            sa.String(36),
            sa.ForeignKey("pair_matching_games.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("left_content", sa.Text, nullable=False),
        sa.Column("right_content", sa.Text, nullable=False),
        sa.Column("left_type", sa.String(20), nullable=False, server_default="text"),
        sa.Column("right_type", sa.String(20), nullable=False, server_default="text"),
        sa.Column("explanation", sa.Text, nullable=True),
        sa.Column("order_index", sa.Integer, nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index("ix_pair_matching_pairs_game_id", "pair_matching_pairs", ["game_id"])

    # ==========================================================================
    # 3. player_game_progress
    # ==========================================================================
    op.create_table(
        "player_game_progress",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("player_id", sa.String(64), nullable=False),
        sa.Column(
            "game_id",
            sa.String(36),
            sa.ForeignKey("pair_matching_games.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("is_unlocked", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_completed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("best_score", sa.Integer, nullable=False, server_default="0"),
        sa.Column("completion_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("first_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_played_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("player_id", "game_id", name="uq_player_game_progress_player_game"),
    )
    op.create_index("ix_player_game_progress_player_id", "player_game_progress", ["player_id"])

    # ==========================================================================
    # 4. pair_matching_sessions
    # ==========================================================================
    op.create_table(
        "pair_matching_sessions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "game_id",
            sa.String(36),
            sa.ForeignKey("pair_matching_games.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("player_id", sa.String(64), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("score", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_score", sa.Integer, nullable=False, server_default="0"),
        sa.Column("pair_quota", sa.Integer, nullable=False, server_default="0"),
        sa.Column("mistakes_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("pairs_matched", sa.Integer, nullable=False, server_default="0"),
        sa.Column("completion_time_seconds", sa.Integer, nullable=True),
        sa.Column(
            "started_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("session_data", JSON_TYPE, nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('active', 'completed', 'abandoned')",
            name="ck_pair_matching_sessions_status",
        ),
    )
    op.create_index(
        "ix_pair_matching_sessions_player_game_status",
        "pair_matching_sessions",
        ["player_id", "game_id", "status"],
    )
    op.create_index(
        "uq_pair_matching_sessions_one_active",
        "pair_matching_sessions",
        ["player_id", "game_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
        sqlite_where=sa.text("status = 'active'"),
    )

    # ==========================================================================
    # 5. pair_matching_results
    # ==========================================================================
    op.create_table(
        "pair_matching_results",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "session_id",
            sa.String(36),
            sa.ForeignKey("pair_matching_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sequence", sa.Integer, nullable=False),
        sa.Column("pair_id", sa.String(36), nullable=False),
        sa.Column("left_item_id", sa.String(64), nullable=False),
        sa.Column("right_item_id", sa.String(64), nullable=False),
        sa.Column("is_correct", sa.Boolean, nullable=False),
        sa.Column("time_taken", sa.Integer, nullable=False, server_default="0"),
        sa.Column("attempts_count", sa.Integer, nullable=False, server_default="1"),
        sa.Column(
            "attempted_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "session_id", "sequence", name="uq_pair_matching_results_session_sequence"
        ),
    )


def downgrade() -> None:
    """Drop pair-matching tables."""
    op.drop_table("pair_matching_results")
    op.drop_index(
        "uq_pair_matching_sessions_one_active",
        table_name="pair_matching_sessions",
    )
    op.drop_index(
        "ix_pair_matching_sessions_player_game_status",
        table_name="pair_matching_sessions",
    )
    op.drop_table("pair_matching_sessions")
    op.drop_index("ix_player_game_progress_player_id", table_name="player_game_progress")
    op.drop_table("player_game_progress")
    op.drop_index("ix_pair_matching_pairs_game_id", table_name="pair_matching_pairs")
    op.drop_table("pair_matching_pairs")
    op.drop_table("pair_matching_games")
