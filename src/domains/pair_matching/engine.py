# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pair-matching session engine.

The engine owns every active session of the process:
- Start a session (select the quota, shuffle, persist, start the countdown)
- Process attempts (validate, log, update counters)
- Complete a session exactly once (all matched, timeout or manual)
- Abandon a session (no score, no progression)

Each session has its own asyncio.Lock. Attempts, completion and the
countdown's expiry all go through it, so a timeout racing the final
correct match produces a single completion. Starts are serialised per
(player, game), so a player never has two active sessions of one game.

Counters only move after the attempt log entry and the session snapshot
were written together. When the store reports a failure the engine
re-reads the log to find out whether the write actually landed.

A completion is put on the player's record before the session is written
as completed. If either write fails the session stays active, stops taking
attempts once its completion is on record or its time is up, and only a
retried complete() can finish it.
"""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field

from src.domains.pair_matching.countdown import Countdown
from src.domains.pair_matching.exceptions import (
    AttemptPersistenceError,
    SessionNotActiveError,
    SessionNotFoundError,
    SessionPersistenceError,
)
from src.domains.pair_matching.models import (
    AttemptOutcome,
    CompletionOutcome,
    CompletionReason,
    Game,
    MatchAttempt,
    MatchedPair,
    MatchSession,
    Pair,
    PlayerGameProgress,
    SessionData,
    SessionSnapshot,
    SessionStatus,
    ShuffledPairs,
)
from src.domains.pair_matching.progression import ProgressionUnlocker
from src.domains.pair_matching.selection import (
    POINTS_PER_PAIR,
    ContentSelector,
    PairShuffler,
    max_score_for_level,
)
from src.domains.pair_matching.stores import PairStore, SessionStore
from src.domains.pair_matching.validator import MatchValidator
from src.infrastructure.events import EventBus, EventTypes
from src.utils.datetime import elapsed_seconds, utc_now

logger = logging.getLogger(__name__)

# Finished sessions remembered so a late complete() stays idempotent.
FINISHED_CACHE_SIZE = 1024


@dataclass
class _SessionRuntime:
    """In-process state of one active session."""

    session: MatchSession
    game: Game
    pairs: dict[str, Pair]
    board: ShuffledPairs
    validator: MatchValidator
    countdown: Countdown | None = None
    attempts_recorded: int = 0
    # Final state whose completion is already on the player's record
    closing: MatchSession | None = None
    progress: PlayerGameProgress | None = None
    completion: CompletionOutcome | None = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class SessionEngine:
    """Runs pair-matching sessions.

    Example:
        >>> engine = SessionEngine(pair_store, session_store, unlocker, event_bus=bus)
        >>> snapshot = await engine.start(game, "player-1")
        >>> left = snapshot.board.left_items[0]
        >>> outcome = await engine.attempt(snapshot.session.id, left.id, f"right-{left.pair_id}")
        >>> outcome.correct
        True
    """

    def __init__(
        self,
        pair_store: PairStore,
        session_store: SessionStore,
        unlocker: ProgressionUnlocker,
        selector: ContentSelector | None = None,
        shuffler: PairShuffler | None = None,
        event_bus: EventBus | None = None,
        tick_interval: float = 1.0,
        start_timers: bool = True,
        attempt_write_retries: int = 0,
    ) -> None:
        """Initialize the engine.

        Args:
            pair_store: Source of each game's pair pool.
            session_store: Sessions and the attempt log.
            unlocker: Progression applied on completion.
            selector: Quota selection (random by default).
            shuffler: Board shuffling (random by default).
            event_bus: Change-notification channel.
            tick_interval: Seconds between countdown ticks.
            start_timers: Run countdowns in background tasks. Tests switch
                this off and drive ``tick()`` by hand.
            attempt_write_retries: Extra tries for a failed attempt write.
        """
        self._pairs = pair_store
        self._sessions = session_store
        self._unlocker = unlocker
        self._selector = selector or ContentSelector()
        self._shuffler = shuffler or PairShuffler()
        self._event_bus = event_bus
        self._tick_interval = tick_interval
        self._start_timers = start_timers
        self._attempt_write_retries = max(0, attempt_write_retries)

        self._runtimes: dict[str, _SessionRuntime] = {}
        self._active_index: dict[tuple[str, str], str] = {}
        self._start_locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._finished: OrderedDict[str, CompletionOutcome] = OrderedDict()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self, game: Game, player_id: str) -> SessionSnapshot:
        """Start a new session of a game.

        Any active session of the same game for the same player is
        abandoned first. Concurrent starts of one game by one player run
        one after the other, and the last one wins.

        Args:
            game: Game to play.
            player_id: Player starting the session.

        Returns:
            SessionSnapshot with the shuffled board and the full time limit.

        Raises:
            NoContentError: If the game has no pairs. Nothing is persisted.
            SessionPersistenceError: If the session could not be created.
        """
        logger.info(
            "Starting pair-matching session: player=%s, game=%s, level=%d, stage=%d",
            player_id,
            game.id,
            game.level_number,
            game.stage_number,
        )

        pool = await self._pairs.list_pairs(game.id)
        chosen = self._selector.select(game, pool)
        board = self._shuffler.shuffle(chosen)

        key = (player_id, game.id)
        async with self._start_locks.setdefault(key, asyncio.Lock()):
            await self._abandon_existing(player_id, game.id)

            session = MatchSession(
                game_id=game.id,
                player_id=player_id,
                max_score=max_score_for_level(game.level_number),
                pair_quota=len(chosen),
                session_data=SessionData(
                    pair_ids=[pair.id for pair in chosen],
                    left_order=[item.id for item in board.left_items],
                    right_order=[item.id for item in board.right_items],
                ),
            )

            try:
                session = await self._sessions.create_session(session)
            except Exception as e:
                raise SessionPersistenceError(
                    f"Failed to create session for game {game.id}: {e}",
                    details={"game_id": game.id, "player_id": player_id},
                ) from e

            runtime = _SessionRuntime(
                session=session,
                game=game,
                pairs={pair.id: pair for pair in chosen},
                board=board,
                validator=MatchValidator(board),
            )
            runtime.countdown = Countdown(
                game.time_limit_seconds,
                on_expire=lambda: self._on_timeout(session.id),
                tick_interval=self._tick_interval,
            )
            self._runtimes[session.id] = runtime
            self._active_index[key] = session.id

        if self._start_timers:
            runtime.countdown.start()

        await self._publish(
            EventTypes.PairMatching.SESSION_STARTED,
            {
                "session_id": session.id,
                "player_id": player_id,
                "game_id": game.id,
                "pair_quota": session.pair_quota,
                "max_score": session.max_score,
            },
        )
        return self._snapshot(runtime)

    async def attempt(self, session_id: str, left_id: str, right_id: str) -> AttemptOutcome:
        """Process one (left, right) attempt.

        An attempt that involves an already matched item is rejected without
        touching any counter or the attempt log.

        Args:
            session_id: Active session.
            left_id: Selected left item.
            right_id: Selected right item.

        Returns:
            AttemptOutcome. Its ``completion`` is set when the attempt
            matched the last pair.

        Raises:
            SessionNotFoundError: If the session is not running here.
            SessionNotActiveError: If the session ended or no longer takes
                attempts.
            UnknownItemError: If an item is not on the board.
            AttemptPersistenceError: If the attempt could not be recorded.
                Counters are unchanged and the attempt can be retried.
        """
        runtime = self._get_runtime(session_id)

        async with runtime.lock:
            self._check_accepting(runtime)
            session = runtime.session

            validator = runtime.validator
            if not validator.can_match(left_id, right_id):
                logger.debug(
                    "Ignoring attempt on matched item: session=%s, left=%s, right=%s",
                    session_id,
                    left_id,
                    right_id,
                )
                return AttemptOutcome(accepted=False, session=session)

            check = validator.attempt(left_id, right_id)
            match = validator.next_match(left_id, right_id, check.pair_id) if check.correct else None

            sequence = runtime.attempts_recorded + 1
            attempt = MatchAttempt(
                session_id=session_id,
                sequence=sequence,
                pair_id=check.pair_id,
                left_item_id=left_id,
                right_item_id=right_id,
                is_correct=check.correct,
                time_taken_seconds=self._elapsed(runtime),
            )
            updated = self._apply_attempt(session, match)

            await self._record_attempt(attempt, updated)

            runtime.attempts_recorded = sequence
            runtime.session = updated
            if match is not None:
                validator.mark_matched(match)

            logger.info(
                "Attempt recorded: session=%s, seq=%d, correct=%s, matched=%d/%d, score=%d",
                session_id,
                sequence,
                check.correct,
                updated.pairs_matched,
                updated.pair_quota,
                updated.score,
            )

            await self._publish(
                EventTypes.PairMatching.ATTEMPT_RECORDED,
                {
                    "session_id": session_id,
                    "player_id": updated.player_id,
                    "game_id": updated.game_id,
                    "sequence": sequence,
                    "pair_id": check.pair_id,
                    "is_correct": check.correct,
                },
            )

            completion = None
            if updated.pairs_matched == updated.pair_quota:
                completion = await self._complete_locked(runtime, CompletionReason.ALL_MATCHED)

            pair = runtime.pairs.get(check.pair_id)
            return AttemptOutcome(
                accepted=True,
                correct=check.correct,
                pair_id=check.pair_id,
                matched_pair=match,
                explanation=pair.explanation if pair is not None and check.correct else None,
                session=runtime.session,
                completion=completion,
            )

    async def complete(
        self,
        session_id: str,
        reason: CompletionReason = CompletionReason.MANUAL,
    ) -> CompletionOutcome:
        """Complete a session. Idempotent.

        A second call, whatever its reason, returns the first outcome. A call
        that arrives while the first one is still unlocking waits for it.
        A manual completion of a session whose time is up counts as a
        timeout.

        Raises:
            SessionNotFoundError: If the session is unknown to this engine.
            SessionNotActiveError: If the session was abandoned.
            SessionPersistenceError: If the completion or the final state
                could not be written. The session stays active and the call
                can be retried.
        """
        finished = self._finished.get(session_id)
        if finished is not None:
            return finished

        runtime = self._get_runtime(session_id)
        async with runtime.lock:
            return await self._complete_locked(runtime, reason)

    async def abandon(self, session_id: str) -> MatchSession:
        """Abandon a session. No score is recorded and nothing is unlocked.

        Abandoning a session that already ended is a no-op. A session whose
        completion is already on the player's record is completed instead.

        Raises:
            SessionNotFoundError: If the session is unknown to this engine.
            SessionPersistenceError: If the status could not be written.
        """
        finished = self._finished.get(session_id)
        if finished is not None:
            return finished.session

        runtime = self._get_runtime(session_id)
        async with runtime.lock:
            session = runtime.session
            if not session.is_active:
                return session
            if runtime.closing is not None:
                outcome = await self._complete_locked(runtime, CompletionReason.MANUAL)
                return outcome.session

            final = session.model_copy(
                update={
                    "status": SessionStatus.ABANDONED,
                    "completion_time_seconds": self._elapsed(runtime),
                }
            )
            try:
                await self._sessions.update_session(final)
            except Exception as e:
                raise SessionPersistenceError(
                    f"Failed to abandon session {session_id}: {e}",
                    details={"session_id": session_id},
                ) from e

            runtime.session = final
            self._release(runtime)

            logger.info(
                "Session abandoned: session=%s, player=%s, game=%s",
                session_id,
                final.player_id,
                final.game_id,
            )
            await self._publish(
                EventTypes.PairMatching.SESSION_ABANDONED,
                {
                    "session_id": session_id,
                    "player_id": final.player_id,
                    "game_id": final.game_id,
                },
            )
            return final

    # =========================================================================
    # Queries
    # =========================================================================

    def get_snapshot(self, session_id: str) -> SessionSnapshot:
        """Get the live state of a session running in this engine.

        Raises:
            SessionNotFoundError: If the session is not running here.
        """
        return self._snapshot(self._get_runtime(session_id))

    def get_completion(self, session_id: str) -> CompletionOutcome | None:
        """Get the cached outcome of a session completed by this engine."""
        return self._finished.get(session_id)

    def active_session_id(self, player_id: str, game_id: str) -> str | None:
        return self._active_index.get((player_id, game_id))

    @property
    def active_count(self) -> int:
        return len(self._active_index)

    async def tick(self, session_id: str) -> int:
        """Advance a session's countdown by one unit.

        Returns:
            Seconds remaining after the tick.
        """
        runtime = self._get_runtime(session_id)
        if runtime.countdown is None:
            return 0
        await runtime.countdown.tick()
        return runtime.countdown.remaining

    async def shutdown(self) -> None:
        """Stop every countdown. Sessions keep their persisted status."""
        for runtime in list(self._runtimes.values()):
            if runtime.countdown is not None:
                runtime.countdown.cancel()
        self._runtimes.clear()
        self._active_index.clear()
        logger.info("Session engine shut down")

    # =========================================================================
    # Internals
    # =========================================================================

    async def _complete_locked(
        self,
        runtime: _SessionRuntime,
        reason: CompletionReason,
    ) -> CompletionOutcome:
        """Complete a session while holding its lock.

        The runtime stays registered until the outcome is remembered, so a
        concurrent complete() queues on the lock and gets the same outcome.
        """
        if runtime.completion is not None:
            return runtime.completion

        session = runtime.session
        if not session.is_active:
            raise SessionNotActiveError(
                f"Session {session.id} is {session.status.value}",
                details={"session_id": session.id, "status": session.status.value},
            )

        final = runtime.closing
        if final is None:
            final = self._final_state(runtime, reason)
            try:
                progress = await self._unlocker.record_completion(
                    final.player_id,
                    runtime.game,
                    final.score,
                    final.completed_at,
                )
            except Exception as e:
                logger.error("Failed to record completion of session %s: %s", session.id, e)
                raise SessionPersistenceError(
                    f"Failed to record completion of session {session.id}: {e}",
                    details={"session_id": session.id, "reason": reason.value},
                ) from e
            runtime.closing = final
            runtime.progress = progress
        reason = final.session_data.completion_reason

        try:
            await self._sessions.update_session(final)
        except Exception as e:
            logger.error("Failed to persist completion of session %s: %s", session.id, e)
            raise SessionPersistenceError(
                f"Failed to complete session {session.id}: {e}",
                details={"session_id": session.id, "reason": reason.value},
            ) from e

        runtime.session = final
        if runtime.countdown is not None:
            runtime.countdown.cancel()

        logger.info(
            "Session completed: session=%s, reason=%s, score=%d/%d, mistakes=%d, time=%ss",
            final.id,
            reason.value,
            final.score,
            final.max_score,
            final.mistakes_count,
            final.completion_time_seconds,
        )

        unlock = None
        progression_error = None
        try:
            unlock = await self._unlocker.unlock_next(
                final.player_id, runtime.game, runtime.progress
            )
        except Exception as e:
            logger.error(
                "Failed to unlock after session %s: %s",
                final.id,
                e,
                exc_info=True,
            )
            progression_error = str(e)

        outcome = CompletionOutcome(
            session=final,
            reason=reason,
            unlock=unlock,
            progression_error=progression_error,
        )
        runtime.completion = outcome
        self._remember(outcome)
        self._release(runtime)

        await self._publish(
            EventTypes.PairMatching.SESSION_COMPLETED,
            {
                "session_id": final.id,
                "player_id": final.player_id,
                "game_id": final.game_id,
                "reason": reason.value,
                "score": final.score,
                "max_score": final.max_score,
                "mistakes_count": final.mistakes_count,
                "completion_time_seconds": final.completion_time_seconds,
            },
        )
        return outcome

    def _final_state(self, runtime: _SessionRuntime, reason: CompletionReason) -> MatchSession:
        countdown = runtime.countdown
        if reason == CompletionReason.MANUAL and countdown is not None and countdown.expired:
            reason = CompletionReason.TIMEOUT

        session = runtime.session
        return session.model_copy(
            update={
                "status": SessionStatus.COMPLETED,
                "completed_at": utc_now(),
                "completion_time_seconds": self._elapsed(runtime),
                "session_data": session.session_data.model_copy(
                    update={"completion_reason": reason}
                ),
            }
        )

    def _check_accepting(self, runtime: _SessionRuntime) -> None:
        """Refuse attempts on a session that can only be completed now."""
        session = runtime.session
        if not session.is_active:
            state = session.status.value
        elif runtime.closing is not None:
            state = "completing"
        elif runtime.countdown is not None and runtime.countdown.expired:
            state = "out of time"
        else:
            return
        raise SessionNotActiveError(
            f"Session {session.id} is {state}",
            details={"session_id": session.id, "status": session.status.value},
        )

    async def _on_timeout(self, session_id: str) -> None:
        logger.info("Session %s ran out of time", session_id)
        try:
            await self.complete(session_id, CompletionReason.TIMEOUT)
        except (SessionNotFoundError, SessionNotActiveError):
            logger.debug("Timeout for session %s ignored, session already ended", session_id)
        except SessionPersistenceError as e:
            logger.error("Timeout completion failed for session %s: %s", session_id, e)

    async def _abandon_existing(self, player_id: str, game_id: str) -> None:
        """Abandon the player's running session of this game, if any."""
        existing_id = self._active_index.get((player_id, game_id))
        if existing_id is not None:
            logger.info(
                "Auto-abandoning existing session %s for player %s game %s",
                existing_id,
                player_id,
                game_id,
            )
            await self.abandon(existing_id)
            return

        # Left active by a previous process; there is no runtime to resume.
        stale = await self._sessions.find_active_session(player_id, game_id)
        if stale is not None:
            logger.info(
                "Auto-abandoning stale session %s for player %s game %s",
                stale.id,
                player_id,
                game_id,
            )
            try:
                await self._sessions.update_session(
                    stale.model_copy(update={"status": SessionStatus.ABANDONED})
                )
            except Exception as e:
                raise SessionPersistenceError(
                    f"Failed to abandon stale session {stale.id}: {e}",
                    details={"session_id": stale.id},
                ) from e

    async def _record_attempt(self, attempt: MatchAttempt, session: MatchSession) -> None:
        """Write an attempt and the post-attempt session together.

        Raises:
            AttemptPersistenceError: If no try was recorded.
        """
        last_error: Exception | None = None
        for try_number in range(1, self._attempt_write_retries + 2):
            try:
                await self._sessions.record_attempt(attempt, session)
                return
            except Exception as e:
                if await self._attempt_landed(attempt.session_id, attempt.sequence):
                    logger.warning(
                        "Attempt %d for session %s reported failure but was recorded",
                        attempt.sequence,
                        attempt.session_id,
                    )
                    return
                last_error = e
                logger.warning(
                    "Failed to record attempt %d for session %s (try %d): %s",
                    attempt.sequence,
                    attempt.session_id,
                    try_number,
                    e,
                )

        raise AttemptPersistenceError(
            f"Failed to record attempt for session {attempt.session_id}: {last_error}",
            details={"session_id": attempt.session_id, "sequence": attempt.sequence},
        ) from last_error

    async def _attempt_landed(self, session_id: str, sequence: int) -> bool:
        """Check whether a write that reported failure was recorded anyway."""
        try:
            return await self._sessions.count_attempts(session_id) >= sequence
        except Exception as e:
            logger.warning("Could not verify attempt log for session %s: %s", session_id, e)
            return False

    @staticmethod
    def _apply_attempt(session: MatchSession, match: MatchedPair | None) -> MatchSession:
        if match is None:
            return session.model_copy(update={"mistakes_count": session.mistakes_count + 1})

        data = session.session_data.model_copy(
            update={"matched_pairs": [*session.session_data.matched_pairs, match]}
        )
        return session.model_copy(
            update={
                "score": session.score + POINTS_PER_PAIR,
                "pairs_matched": session.pairs_matched + 1,
                "session_data": data,
            }
        )

    def _elapsed(self, runtime: _SessionRuntime) -> int:
        """Seconds spent so far, from the countdown when it runs."""
        if runtime.countdown is not None:
            return runtime.game.time_limit_seconds - runtime.countdown.remaining
        return min(
            elapsed_seconds(runtime.session.started_at),
            runtime.game.time_limit_seconds,
        )

    def _remaining(self, runtime: _SessionRuntime) -> int:
        if not runtime.session.is_active:
            return 0
        if runtime.countdown is None:
            return runtime.game.time_limit_seconds
        return runtime.countdown.remaining

    def _release(self, runtime: _SessionRuntime) -> None:
        """Stop the countdown and drop the session from the active index."""
        if runtime.countdown is not None:
            runtime.countdown.cancel()
        key = (runtime.session.player_id, runtime.session.game_id)
        if self._active_index.get(key) == runtime.session.id:
            del self._active_index[key]
        self._runtimes.pop(runtime.session.id, None)

    def _remember(self, outcome: CompletionOutcome) -> None:
        self._finished[outcome.session.id] = outcome
        while len(self._finished) > FINISHED_CACHE_SIZE:
            self._finished.popitem(last=False)

    def _get_runtime(self, session_id: str) -> _SessionRuntime:
        runtime = self._runtimes.get(session_id)
        if runtime is None:
            raise SessionNotFoundError(
                f"Session {session_id} is not running",
                details={"session_id": session_id},
            )
        return runtime

    def _snapshot(self, runtime: _SessionRuntime) -> SessionSnapshot:
        return SessionSnapshot(
            session=runtime.session,
            game=runtime.game,
            board=runtime.board,
            matched_pairs=runtime.validator.matches,
            time_remaining_seconds=self._remaining(runtime),
        )

    async def _publish(self, event_type: str, payload: dict) -> None:
        if self._event_bus is None:
            return
        try:
            await self._event_bus.publish(event_type, payload)
            logger.debug("Published %s: %s", event_type, payload.get("session_id"))
        except Exception as e:
            logger.warning("Failed to publish %s: %s", event_type, e)
