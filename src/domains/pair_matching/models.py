# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Data models for the pair-matching domain.

This module defines Pydantic models and enums for:
- Catalog content (games and their term/definition pairs)
- Board items produced by the shuffler
- Match sessions, matched pairs and the attempt log
- Player progress and unlock decisions

These models are what the stores exchange with the engine, so every
backing store (in-memory or SQL) speaks the same types.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from src.domains.pair_matching.exceptions import SessionDataVersionError
from src.utils.datetime import utc_now

SESSION_DATA_VERSION = 1


def new_id() -> str:
    """Generate a new string identifier."""
    return str(uuid4())


class SessionStatus(str, Enum):
    """Match session status."""

    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class CompletionReason(str, Enum):
    """Why a session left the active state with a score.

    - ALL_MATCHED: the last pair of the quota was matched
    - TIMEOUT: the countdown reached zero (forced completion)
    - MANUAL: the client asked to finish early
    """

    ALL_MATCHED = "all_matched"
    TIMEOUT = "timeout"
    MANUAL = "manual"


class ItemSide(str, Enum):
    """Board column of a shuffled item."""

    LEFT = "left"
    RIGHT = "right"


class UnlockKind(str, Enum):
    """Classification of a progression event for the UI."""

    LEVEL_UNLOCK = "level_unlock"
    STAGE_UNLOCK = "stage_unlock"
    CATALOG_EXHAUSTED = "catalog_exhausted"


# =============================================================================
# Catalog Content
# =============================================================================


class Game(BaseModel):
    """A pair-matching game in the level/stage catalog.

    Attributes:
        id: Game identifier.
        title: Display title.
        level_number: Level this game belongs to (1-based).
        stage_number: Position within the level (1-based, contiguous).
        max_pairs: Authoring hint for the pool size.
        time_limit_seconds: Countdown length for a session.
        is_active: Inactive games are hidden from play and progression.
    """

    id: str = Field(default_factory=new_id, description="Game identifier")
    title: str = Field(default="", description="Display title")
    description: str | None = Field(default=None, description="Game description")
    grade_level: str | None = Field(default=None, description="School grade")
    subject: str | None = Field(default=None, description="Subject")
    difficulty_level: str | None = Field(default=None, description="Authoring difficulty label")
    level_number: int = Field(ge=1, description="Level number")
    stage_number: int = Field(ge=1, description="Stage number within the level")
    max_pairs: int = Field(default=6, ge=1, description="Maximum pairs authored")
    time_limit_seconds: int = Field(default=180, ge=1, description="Session time limit")
    is_active: bool = Field(default=True, description="Whether the game is playable")

    @property
    def sort_key(self) -> tuple[int, int]:
        """Catalog ordering key."""
        return (self.level_number, self.stage_number)


class Pair(BaseModel):
    """A term/definition unit belonging to exactly one game."""

    id: str = Field(default_factory=new_id, description="Pair identifier")
    game_id: str = Field(description="Owning game")
    left_content: str = Field(description="Term shown in the left column")
    right_content: str = Field(description="Definition shown in the right column")
    left_type: str = Field(default="text", description="Left content type")
    right_type: str = Field(default="text", description="Right content type")
    explanation: str | None = Field(default=None, description="Shown after a correct match")
    order_index: int = Field(default=0, description="Authoring order")


class BoardItem(BaseModel):
    """One card on the board, tagged with its originating pair."""

    id: str = Field(description="Item identifier (left-<pair> / right-<pair>)")
    content: str = Field(description="Card content")
    type: str = Field(default="text", description="Content type")
    pair_id: str = Field(description="Originating pair")
    side: ItemSide = Field(description="Board column")
    original_index: int = Field(description="Index in the selected pairs list")


class ShuffledPairs(BaseModel):
    """Two independently ordered columns over the same pair set."""

    left_items: list[BoardItem] = Field(default_factory=list)
    right_items: list[BoardItem] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.left_items)


# =============================================================================
# Sessions
# =============================================================================


class MatchedPair(BaseModel):
    """A successful match, kept to block re-matching and to replay the board."""

    left_id: str
    right_id: str
    pair_id: str
    match_number: int = Field(ge=1, description="1-based ordinal of the match")
    match_color: str = Field(description="Palette colour token")


class SessionData(BaseModel):
    """Versioned per-session payload.

    Attributes:
        version: Schema version; only SESSION_DATA_VERSION is accepted.
        pair_ids: Pairs selected for this session.
        left_order: Left column item ids in display order.
        right_order: Right column item ids in display order.
        matched_pairs: Successful matches in the order they happened.
        completion_reason: Set once when the session completes.
    """

    version: int = SESSION_DATA_VERSION
    pair_ids: list[str] = Field(default_factory=list)
    left_order: list[str] = Field(default_factory=list)
    right_order: list[str] = Field(default_factory=list)
    matched_pairs: list[MatchedPair] = Field(default_factory=list)
    completion_reason: CompletionReason | None = None

    @field_validator("version")
    @classmethod
    def check_version(cls, value: int) -> int:
        if value != SESSION_DATA_VERSION:
            raise SessionDataVersionError(
                f"Unsupported session data version: {value}",
                details={"version": value},
            )
        return value

    def to_storage_dict(self) -> dict[str, Any]:
        """Serialize for a JSON column."""
        return self.model_dump(mode="json")

    @classmethod
    def from_storage_dict(cls, data: dict[str, Any] | None) -> "SessionData":
        """Load from a JSON column; an empty payload is a fresh struct."""
        if not data:
            return cls()
        return cls.model_validate(data)


class MatchSession(BaseModel):
    """One timed playthrough of one game by one player."""

    id: str = Field(default_factory=new_id)
    game_id: str
    player_id: str
    status: SessionStatus = SessionStatus.ACTIVE
    score: int = 0
    max_score: int = 0
    pair_quota: int = Field(default=0, description="Pairs on the board for this session")
    mistakes_count: int = 0
    pairs_matched: int = 0
    completion_time_seconds: int | None = None
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None
    session_data: SessionData = Field(default_factory=SessionData)

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE


class MatchAttempt(BaseModel):
    """Append-only attempt log entry."""

    id: str = Field(default_factory=new_id)
    session_id: str
    sequence: int = Field(ge=1, description="1-based position in the session's log")
    pair_id: str = Field(description="Pair of the left item")
    left_item_id: str
    right_item_id: str
    is_correct: bool
    time_taken_seconds: int = 0
    attempted_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# Progress
# =============================================================================


class PlayerGameProgress(BaseModel):
    """Per (player, game) progression row."""

    id: str = Field(default_factory=new_id)
    player_id: str
    game_id: str
    is_unlocked: bool = False
    is_completed: bool = False
    best_score: int = 0
    completion_count: int = 0
    first_completed_at: datetime | None = None
    last_played_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class GameWithProgress(BaseModel):
    """Catalog entry merged with the player's progress."""

    game: Game
    progress: PlayerGameProgress | None = None
    is_locked: bool = True
    is_completed: bool = False


class UnlockDecision(BaseModel):
    """Outcome of progression after a completed session.

    Attributes:
        kind: Level-unlock, stage-unlock or catalog-exhausted. None while
            propagation is pending after a failure.
        progress: The completed game's progress row after the upsert.
        next_game: Next playable game (stage and level unlocks).
        new_level_game: Newly opened level's game (level unlocks only).
        total_stages_in_level: Active games in the completed game's level.
        is_last_stage_in_level: Completed game was the level's last stage.
        is_new_level: Next game is in a higher level.
        newly_unlocked: Whether this call flipped the next game's flag.
        propagation_pending: Unlock failed and must be retried.
        error: Failure description when propagation is pending.
    """

    completed_game_id: str
    kind: UnlockKind | None = None
    progress: PlayerGameProgress
    next_game: Game | None = None
    new_level_game: Game | None = None
    total_stages_in_level: int = 0
    is_last_stage_in_level: bool = False
    is_new_level: bool = False
    newly_unlocked: bool = False
    propagation_pending: bool = False
    error: str | None = None


# =============================================================================
# Engine Outcomes
# =============================================================================


class SessionSnapshot(BaseModel):
    """Everything a client needs to render a session."""

    session: MatchSession
    game: Game
    board: ShuffledPairs = Field(default_factory=ShuffledPairs)
    matched_pairs: list[MatchedPair] = Field(default_factory=list)
    time_remaining_seconds: int = 0


class CompletionOutcome(BaseModel):
    """Result of the single transition out of the active state.

    Attributes:
        session: The finalized session.
        reason: What triggered completion.
        unlock: Progression decision, None if recording progress failed.
        progression_error: Why progression could not be recorded.
    """

    session: MatchSession
    reason: CompletionReason
    unlock: UnlockDecision | None = None
    progression_error: str | None = None


class AttemptOutcome(BaseModel):
    """Result of one attempt.

    Attributes:
        accepted: False when either item was already matched; nothing changed.
        correct: Whether the two items belong to the same pair.
        pair_id: Matched pair (correct) or the left item's pair.
        matched_pair: The new match when correct.
        explanation: Pair explanation shown after a correct match.
        session: Session state after the attempt.
        completion: Set when this attempt completed the session.
    """

    accepted: bool
    correct: bool = False
    pair_id: str | None = None
    matched_pair: MatchedPair | None = None
    explanation: str | None = None
    session: MatchSession
    completion: CompletionOutcome | None = None
