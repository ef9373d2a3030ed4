# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pair-Matching API endpoints.

This module provides endpoints for timed pair-matching games:
- GET /games - Catalog with the player's progress
- POST /games/{game_id}/start - Start a session
- POST /games/{game_id}/progression/retry - Retry a pending unlock
- POST /sessions/{session_id}/attempts - Submit an attempt
- POST /sessions/{session_id}/complete - Finish early
- POST /sessions/{session_id}/abandon - Abandon
- GET /sessions/{session_id} - Session state

The calling player is taken from the X-Player-ID header.

Example:
    POST /api/v1/pair-matching/sessions/{session_id}/attempts
    {
        "left_item_id": "left-7b1c...",
        "right_item_id": "right-7b1c..."
    }
"""

import logging

from fastapi import APIRouter, HTTPException, status

from src.api.dependencies import PlayerId, Service
from src.domains.pair_matching.exceptions import (
    AttemptPersistenceError,
    GameLockedError,
    GameNotFoundError,
    NoContentError,
    PairMatchingError,
    SessionNotActiveError,
    SessionNotFoundError,
    SessionPersistenceError,
    UnknownItemError,
    UnlockPropagationError,
)
from src.domains.pair_matching.schemas import (
    AbandonResponse,
    AttemptResponse,
    CompletionResponse,
    GameSummary,
    ListGamesResponse,
    SessionStateResponse,
    StartGameResponse,
    SubmitAttemptRequest,
    UnlockInfo,
)
from src.infrastructure.database.connection import DatabaseError
from src.utils.logging import bind_context

logger = logging.getLogger(__name__)

router = APIRouter()

_ERROR_STATUS: dict[type[PairMatchingError], int] = {
    GameNotFoundError: status.HTTP_404_NOT_FOUND,
    SessionNotFoundError: status.HTTP_404_NOT_FOUND,
    GameLockedError: status.HTTP_403_FORBIDDEN,
    SessionNotActiveError: status.HTTP_409_CONFLICT,
    NoContentError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    UnknownItemError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    AttemptPersistenceError: status.HTTP_503_SERVICE_UNAVAILABLE,
    SessionPersistenceError: status.HTTP_503_SERVICE_UNAVAILABLE,
    UnlockPropagationError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _http_error(error: PairMatchingError) -> HTTPException:
    """Map a domain error to an HTTP error."""
    status_code = _ERROR_STATUS.get(type(error), status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= 500:
        logger.error("Pair-matching request failed: %s", error.message)
    return HTTPException(
        status_code=status_code,
        detail={"error": type(error).__name__, "message": error.message, **error.details},
    )


def _unavailable(error: DatabaseError) -> HTTPException:
    logger.error("Database unavailable: %s", error)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Storage temporarily unavailable",
    )


# =============================================================================
# Catalog
# =============================================================================


@router.get(
    "/games",
    response_model=ListGamesResponse,
    summary="List games",
    description="List active games in level/stage order with the player's lock state and best score.",
)
async def list_games(player_id: PlayerId, service: Service) -> ListGamesResponse:
    """List the catalog for the calling player."""
    try:
        entries = await service.list_games_with_progress(player_id)
    except DatabaseError as e:
        raise _unavailable(e) from e

    games = [GameSummary.from_domain(entry) for entry in entries]
    return ListGamesResponse(games=games, total=len(games))


@router.post(
    "/games/{game_id}/start",
    response_model=StartGameResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a game",
    description="Start a timed session. Any running session of the same game is abandoned.",
)
async def start_game(game_id: str, player_id: PlayerId, service: Service) -> StartGameResponse:
    """Start a new session of a game."""
    logger.info("Starting game: player=%s, game=%s", player_id, game_id)
    try:
        snapshot = await service.start_game(player_id, game_id)
    except PairMatchingError as e:
        raise _http_error(e) from e
    except DatabaseError as e:
        raise _unavailable(e) from e

    bind_context(session_id=snapshot.session.id)
    return StartGameResponse(**SessionStateResponse.from_domain(snapshot).model_dump())


@router.post(
    "/games/{game_id}/progression/retry",
    response_model=UnlockInfo,
    summary="Retry unlock",
    description="Re-run unlocking of the next game after a completion whose unlock failed.",
)
async def retry_progression(game_id: str, player_id: PlayerId, service: Service) -> UnlockInfo:
    """Retry a pending unlock."""
    try:
        decision = await service.retry_progression(player_id, game_id)
    except PairMatchingError as e:
        raise _http_error(e) from e
    except DatabaseError as e:
        raise _unavailable(e) from e
    return UnlockInfo.from_domain(decision)


# =============================================================================
# Sessions
# =============================================================================


@router.post(
    "/sessions/{session_id}/attempts",
    response_model=AttemptResponse,
    summary="Submit an attempt",
    description="Match a left item with a right item. Completes the session on the last pair.",
)
async def submit_attempt(
    session_id: str,
    data: SubmitAttemptRequest,
    player_id: PlayerId,
    service: Service,
) -> AttemptResponse:
    """Submit one attempt."""
    bind_context(session_id=session_id)
    try:
        outcome = await service.submit_attempt(
            player_id,
            session_id,
            data.left_item_id,
            data.right_item_id,
        )
    except PairMatchingError as e:
        raise _http_error(e) from e
    return AttemptResponse.from_domain(outcome)


@router.post(
    "/sessions/{session_id}/complete",
    response_model=CompletionResponse,
    summary="Finish a session",
    description="Finish early with the current score. Repeated calls return the same result.",
)
async def complete_session(
    session_id: str,
    player_id: PlayerId,
    service: Service,
) -> CompletionResponse:
    """Complete a session manually."""
    bind_context(session_id=session_id)
    try:
        outcome = await service.complete_session(player_id, session_id)
    except PairMatchingError as e:
        raise _http_error(e) from e
    except DatabaseError as e:
        raise _unavailable(e) from e
    return CompletionResponse.from_domain(outcome)


@router.post(
    "/sessions/{session_id}/abandon",
    response_model=AbandonResponse,
    summary="Abandon a session",
    description="Leave a session without a score. Nothing is unlocked.",
)
async def abandon_session(
    session_id: str,
    player_id: PlayerId,
    service: Service,
) -> AbandonResponse:
    """Abandon a session."""
    bind_context(session_id=session_id)
    try:
        session = await service.abandon_session(player_id, session_id)
    except PairMatchingError as e:
        raise _http_error(e) from e
    except DatabaseError as e:
        raise _unavailable(e) from e
    return AbandonResponse.from_domain(session)


@router.get(
    "/sessions/{session_id}",
    response_model=SessionStateResponse,
    summary="Get session state",
    description="Board, matches, counters and remaining time of a session.",
)
async def get_session_state(
    session_id: str,
    player_id: PlayerId,
    service: Service,
) -> SessionStateResponse:
    """Get a session's state."""
    try:
        snapshot = await service.get_session_state(player_id, session_id)
    except PairMatchingError as e:
        raise _http_error(e) from e
    except DatabaseError as e:
        raise _unavailable(e) from e
    return SessionStateResponse.from_domain(snapshot)
