# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pair-matching domain.

Timed matching games: each session shows a shuffled board of term and
definition cards from one game. Completing a game unlocks the next stage,
or the next level after the last stage of a level.

Components:
- ContentSelector / PairShuffler: level quota and board shuffling
- MatchValidator: checks attempts against the board
- Countdown: session timer
- SessionEngine: session lifecycle, single completion per session
- ProgressionUnlocker: best score, completion count and unlocks
- PairMatchingService: facade used by the API
"""

from src.domains.pair_matching.catalog import GameCatalog
from src.domains.pair_matching.countdown import Countdown
from src.domains.pair_matching.engine import SessionEngine
from src.domains.pair_matching.exceptions import (
    AttemptPersistenceError,
    ConcurrentProgressConflict,
    GameLockedError,
    GameNotFoundError,
    NoContentError,
    PairMatchingError,
    SessionDataVersionError,
    SessionNotActiveError,
    SessionNotFoundError,
    SessionPersistenceError,
    UnknownItemError,
    UnlockPropagationError,
)
from src.domains.pair_matching.progression import ProgressionUnlocker, classify_unlock
from src.domains.pair_matching.selection import (
    POINTS_PER_PAIR,
    ContentSelector,
    PairShuffler,
    max_score_for_level,
    quota_for_level,
)
from src.domains.pair_matching.service import PairMatchingService
from src.domains.pair_matching.validator import MatchValidator, match_color_for

__all__ = [
    # Components
    "ContentSelector",
    "Countdown",
    "GameCatalog",
    "MatchValidator",
    "PairMatchingService",
    "PairShuffler",
    "ProgressionUnlocker",
    "SessionEngine",
    # Helpers
    "POINTS_PER_PAIR",
    "classify_unlock",
    "match_color_for",
    "max_score_for_level",
    "quota_for_level",
    # Exceptions
    "AttemptPersistenceError",
    "ConcurrentProgressConflict",
    "GameLockedError",
    "GameNotFoundError",
    "NoContentError",
    "PairMatchingError",
    "SessionDataVersionError",
    "SessionNotActiveError",
    "SessionNotFoundError",
    "SessionPersistenceError",
    "UnknownItemError",
    "UnlockPropagationError",
]
