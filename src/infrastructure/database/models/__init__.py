# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy ORM models.

Importing this package registers every table on ``Base.metadata``.
"""

from src.infrastructure.database.models.base import (
    Base,
    JSONType,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)
from src.infrastructure.database.models.pair_matching import (
    PairMatchingGame,
    PairMatchingPair,
    PairMatchingResult,
    PairMatchingSession,
    PlayerProgress,
)

__all__ = [
    "Base",
    "JSONType",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "PairMatchingGame",
    "PairMatchingPair",
    "PairMatchingResult",
    "PairMatchingSession",
    "PlayerProgress",
]
