# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for database models.

Tests table definitions, constraints and relationships.
"""

from sqlalchemy import CheckConstraint, UniqueConstraint

from src.infrastructure.database.models import (
    Base,
    PairMatchingGame,
    PairMatchingPair,
    PairMatchingResult,
    PairMatchingSession,
    PlayerProgress,
    TimestampMixin,
)
from src.infrastructure.database.models.base import generate_uuid


def unique_columns(model) -> list[set[str]]:
    return [
        {column.name for column in constraint.columns}
        for constraint in model.__table__.constraints
        if isinstance(constraint, UniqueConstraint)
    ]


class TestBase:
    """Test base model functionality."""

    def test_base_inherits_declarative_base(self):
        """Verify Base is a declarative base."""
        assert hasattr(Base, "metadata")
        assert hasattr(Base, "registry")

    def test_timestamp_mixin_has_created_at(self):
        """Verify TimestampMixin has created_at field."""
        assert hasattr(TimestampMixin, "created_at")
        assert hasattr(TimestampMixin, "updated_at")

    def test_generate_uuid_fits_primary_key(self):
        assert len(generate_uuid()) == 36
        assert generate_uuid() != generate_uuid()

    def test_all_tables_registered(self):
        assert set(Base.metadata.tables) == {
            "pair_matching_games",
            "pair_matching_pairs",
            "player_game_progress",
            "pair_matching_sessions",
            "pair_matching_results",
        }


class TestPairMatchingModels:
    """Test pair-matching table definitions."""

    def test_game_position_is_unique(self):
        """Verify a level/stage slot holds one game."""
        assert {"level_number", "stage_number"} in unique_columns(PairMatchingGame)

    def test_game_pairs_relationship(self):
        assert hasattr(PairMatchingGame, "pairs")
        assert hasattr(PairMatchingPair, "game")

    def test_progress_is_unique_per_player_and_game(self):
        assert {"player_id", "game_id"} in unique_columns(PlayerProgress)

    def test_attempt_sequence_is_unique_per_session(self):
        """Verify the attempt log cannot hold two entries at one position."""
        assert {"session_id", "sequence"} in unique_columns(PairMatchingResult)

    def test_session_status_is_constrained(self):
        checks = [
            str(constraint.sqltext)
            for constraint in PairMatchingSession.__table__.constraints
            if isinstance(constraint, CheckConstraint)
        ]

        assert any("abandoned" in check for check in checks)

    def test_session_data_defaults_to_dict(self):
        column = PairMatchingSession.__table__.c.session_data

        assert column.nullable is False
        assert column.default is not None

    def test_pair_deleted_with_game(self):
        foreign_key = next(iter(PairMatchingPair.__table__.c.game_id.foreign_keys))

        assert foreign_key.ondelete == "CASCADE"
        assert foreign_key.column.table.name == "pair_matching_games"
