# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Match validation against the authoritative board mapping."""

from dataclasses import dataclass

from src.domains.pair_matching.exceptions import UnknownItemError
from src.domains.pair_matching.models import MatchedPair, ShuffledPairs

MATCH_COLORS = [f"match-color-{n}" for n in range(1, 9)]


def match_color_for(match_number: int) -> str:
    """Get the palette colour for the n-th successful match (1-based)."""
    return MATCH_COLORS[(match_number - 1) % len(MATCH_COLORS)]


@dataclass(frozen=True)
class MatchCheck:
    """Result of checking one (left, right) attempt.

    Attributes:
        correct: Both items originate from the same pair.
        pair_id: Matched pair when correct, otherwise the left item's pair.
        left_pair_id: Originating pair of the left item.
        right_pair_id: Originating pair of the right item.
    """

    correct: bool
    pair_id: str
    left_pair_id: str
    right_pair_id: str


class MatchValidator:
    """Checks attempts for one session's board.

    The validator knows which items are already matched; it never changes
    that set on its own. The session engine calls ``mark_matched`` only after
    the attempt was durably recorded.
    """

    def __init__(self, board: ShuffledPairs) -> None:
        self._left = {item.id: item.pair_id for item in board.left_items}
        self._right = {item.id: item.pair_id for item in board.right_items}
        self._matched_items: set[str] = set()
        self._matches: list[MatchedPair] = []

    @property
    def matches(self) -> list[MatchedPair]:
        return list(self._matches)

    @property
    def matched_count(self) -> int:
        return len(self._matches)

    def is_matched(self, item_id: str) -> bool:
        return item_id in self._matched_items

    def can_match(self, left_id: str, right_id: str) -> bool:
        """Check that neither side is already part of a successful match."""
        return not (self.is_matched(left_id) or self.is_matched(right_id))

    def attempt(self, left_id: str, right_id: str) -> MatchCheck:
        """Check a proposed match.

        Args:
            left_id: Item id from the left column.
            right_id: Item id from the right column.

        Returns:
            MatchCheck describing the attempt.

        Raises:
            UnknownItemError: If either id is not on its column.
        """
        left_pair = self._left.get(left_id)
        right_pair = self._right.get(right_id)
        if left_pair is None or right_pair is None:
            raise UnknownItemError(
                f"Unknown board items: left={left_id}, right={right_id}",
                details={"left_id": left_id, "right_id": right_id},
            )

        correct = left_pair == right_pair
        return MatchCheck(
            correct=correct,
            pair_id=left_pair,
            left_pair_id=left_pair,
            right_pair_id=right_pair,
        )

    def next_match(self, left_id: str, right_id: str, pair_id: str) -> MatchedPair:
        """Build the MatchedPair a correct attempt would add, without applying it."""
        match_number = len(self._matches) + 1
        return MatchedPair(
            left_id=left_id,
            right_id=right_id,
            pair_id=pair_id,
            match_number=match_number,
            match_color=match_color_for(match_number),
        )

    def mark_matched(self, match: MatchedPair) -> None:
        """Record a successful match."""
        self._matched_items.add(match.left_id)
        self._matched_items.add(match.right_id)
        self._matches.append(match)

    def restore(self, matches: list[MatchedPair]) -> None:
        """Replay stored matches, e.g. when a session is reloaded."""
        for match in matches:
            self.mark_matched(match)
