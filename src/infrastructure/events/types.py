# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Centralized event type definitions.

Using constants instead of string literals provides a single source of
truth for event names and lets pattern subscribers ('pair_matching.*')
pick up new events automatically.

Progress events are cache-invalidation hints: payloads carry ids only and
observers re-read the progress store instead of trusting the payload.
"""


class EventTypes:
    """All event types organized by domain."""

    class PairMatching:
        """Pair-matching game events."""

        SESSION_STARTED = "pair_matching.session.started"
        SESSION_COMPLETED = "pair_matching.session.completed"
        SESSION_ABANDONED = "pair_matching.session.abandoned"
        ATTEMPT_RECORDED = "pair_matching.attempt.recorded"
        PROGRESS_CHANGED = "pair_matching.progress.changed"
        STAGE_UNLOCKED = "pair_matching.stage.unlocked"
        LEVEL_UNLOCKED = "pair_matching.level.unlocked"


class EventPatterns:
    """Wildcard patterns for subscribing to multiple events."""

    ALL_PAIR_MATCHING = "pair_matching.*"
    ALL_SESSION_EVENTS = "pair_matching.session.*"
    ALL_UNLOCKS = "pair_matching.*.unlocked"

    ALL = "*"
