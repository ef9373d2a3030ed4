# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API schemas for the pair-matching domain.

This module defines Pydantic models for API request/response:
- ListGamesResponse: Catalog merged with the player's progress
- StartGameResponse: New session and its shuffled board
- SubmitAttemptRequest/AttemptResponse: One attempt
- CompletionResponse: Final session state and progression outcome
- SessionStateResponse: Current or final state of a session
- UnlockInfo: Progression classification for the UI
"""

from datetime import datetime

from pydantic import BaseModel, Field

from src.domains.pair_matching.models import (
    AttemptOutcome,
    BoardItem,
    CompletionOutcome,
    CompletionReason,
    GameWithProgress,
    MatchedPair,
    MatchSession,
    SessionSnapshot,
    SessionStatus,
    UnlockDecision,
    UnlockKind,
)


# =============================================================================
# Catalog
# =============================================================================


class GameSummary(BaseModel):
    """A catalog entry as seen by one player."""

    id: str
    title: str
    description: str | None = None
    subject: str | None = None
    grade_level: str | None = None
    level_number: int
    stage_number: int
    time_limit_seconds: int
    is_locked: bool = Field(description="Whether the player cannot start it yet")
    is_completed: bool = False
    best_score: int = 0
    completion_count: int = 0

    @classmethod
    def from_domain(cls, entry: GameWithProgress) -> "GameSummary":
        game = entry.game
        progress = entry.progress
        return cls(
            id=game.id,
            title=game.title,
            description=game.description,
            subject=game.subject,
            grade_level=game.grade_level,
            level_number=game.level_number,
            stage_number=game.stage_number,
            time_limit_seconds=game.time_limit_seconds,
            is_locked=entry.is_locked,
            is_completed=entry.is_completed,
            best_score=progress.best_score if progress else 0,
            completion_count=progress.completion_count if progress else 0,
        )


class ListGamesResponse(BaseModel):
    """Catalog listing in (level, stage) order."""

    games: list[GameSummary]
    total: int


# =============================================================================
# Sessions
# =============================================================================


class SessionStateResponse(BaseModel):
    """Everything needed to render a session board."""

    session_id: str
    game_id: str
    game_title: str
    status: SessionStatus
    score: int
    max_score: int
    pairs_matched: int
    pair_quota: int
    mistakes_count: int
    left_items: list[BoardItem]
    right_items: list[BoardItem]
    matched_pairs: list[MatchedPair]
    time_limit_seconds: int
    time_remaining_seconds: int
    started_at: datetime
    completed_at: datetime | None = None

    @classmethod
    def from_domain(cls, snapshot: SessionSnapshot) -> "SessionStateResponse":
        session = snapshot.session
        return cls(
            session_id=session.id,
            game_id=session.game_id,
            game_title=snapshot.game.title,
            status=session.status,
            score=session.score,
            max_score=session.max_score,
            pairs_matched=session.pairs_matched,
            pair_quota=session.pair_quota,
            mistakes_count=session.mistakes_count,
            left_items=snapshot.board.left_items,
            right_items=snapshot.board.right_items,
            matched_pairs=snapshot.matched_pairs,
            time_limit_seconds=snapshot.game.time_limit_seconds,
            time_remaining_seconds=snapshot.time_remaining_seconds,
            started_at=session.started_at,
            completed_at=session.completed_at,
        )


class StartGameResponse(SessionStateResponse):
    """A freshly started session."""

    pass


class SubmitAttemptRequest(BaseModel):
    """One (left, right) selection."""

    left_item_id: str = Field(min_length=1, description="Selected left column item")
    right_item_id: str = Field(min_length=1, description="Selected right column item")


class UnlockInfo(BaseModel):
    """Progression outcome for the UI."""

    completed_game_id: str
    kind: UnlockKind | None = None
    next_game_id: str | None = None
    next_game_title: str | None = None
    new_level_game_id: str | None = None
    total_stages_in_level: int = 0
    is_last_stage_in_level: bool = False
    is_new_level: bool = False
    newly_unlocked: bool = False
    propagation_pending: bool = False
    error: str | None = None

    @classmethod
    def from_domain(cls, decision: UnlockDecision) -> "UnlockInfo":
        return cls(
            completed_game_id=decision.completed_game_id,
            kind=decision.kind,
            next_game_id=decision.next_game.id if decision.next_game else None,
            next_game_title=decision.next_game.title if decision.next_game else None,
            new_level_game_id=decision.new_level_game.id if decision.new_level_game else None,
            total_stages_in_level=decision.total_stages_in_level,
            is_last_stage_in_level=decision.is_last_stage_in_level,
            is_new_level=decision.is_new_level,
            newly_unlocked=decision.newly_unlocked,
            propagation_pending=decision.propagation_pending,
            error=decision.error,
        )


class CompletionResponse(BaseModel):
    """Final state of a completed session."""

    session_id: str
    status: SessionStatus
    reason: CompletionReason
    score: int
    max_score: int
    pairs_matched: int
    mistakes_count: int
    completion_time_seconds: int | None = None
    best_score: int | None = None
    completion_count: int | None = None
    unlock: UnlockInfo | None = None
    progression_error: str | None = None

    @classmethod
    def from_domain(cls, outcome: CompletionOutcome) -> "CompletionResponse":
        session = outcome.session
        progress = outcome.unlock.progress if outcome.unlock else None
        return cls(
            session_id=session.id,
            status=session.status,
            reason=outcome.reason,
            score=session.score,
            max_score=session.max_score,
            pairs_matched=session.pairs_matched,
            mistakes_count=session.mistakes_count,
            completion_time_seconds=session.completion_time_seconds,
            best_score=progress.best_score if progress else None,
            completion_count=progress.completion_count if progress else None,
            unlock=UnlockInfo.from_domain(outcome.unlock) if outcome.unlock else None,
            progression_error=outcome.progression_error,
        )


class AttemptResponse(BaseModel):
    """Result of one attempt."""

    accepted: bool = Field(description="False when an item was already matched")
    correct: bool
    pair_id: str | None = None
    match_number: int | None = None
    match_color: str | None = None
    explanation: str | None = None
    score: int
    pairs_matched: int
    pair_quota: int
    mistakes_count: int
    completion: CompletionResponse | None = None

    @classmethod
    def from_domain(cls, outcome: AttemptOutcome) -> "AttemptResponse":
        session = outcome.session
        match = outcome.matched_pair
        return cls(
            accepted=outcome.accepted,
            correct=outcome.correct,
            pair_id=outcome.pair_id,
            match_number=match.match_number if match else None,
            match_color=match.match_color if match else None,
            explanation=outcome.explanation,
            score=session.score,
            pairs_matched=session.pairs_matched,
            pair_quota=session.pair_quota,
            mistakes_count=session.mistakes_count,
            completion=(
                CompletionResponse.from_domain(outcome.completion) if outcome.completion else None
            ),
        )


class AbandonResponse(BaseModel):
    """Session status after abandoning."""

    session_id: str
    status: SessionStatus

    @classmethod
    def from_domain(cls, session: MatchSession) -> "AbandonResponse":
        return cls(session_id=session.id, status=session.status)
