# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Content selection and board shuffling.

The level quota is a deliberate difficulty ramp and feeds scoring
(max_score = quota * POINTS_PER_PAIR):

    level 1  -> 4 pairs
    level 2  -> 5 pairs
    level 3+ -> 6 pairs

Both classes take a ``random.Random`` so a seeded source reproduces the
same board, which is how the tests pin selections down.

Example:
    >>> selector = ContentSelector(random.Random(7))
    >>> chosen = selector.select(game, pool)
    >>> board = PairShuffler(random.Random(7)).shuffle(chosen)
"""

import logging
import random
from collections.abc import Sequence

from src.domains.pair_matching.exceptions import NoContentError
from src.domains.pair_matching.models import (
    BoardItem,
    Game,
    ItemSide,
    Pair,
    ShuffledPairs,
)

logger = logging.getLogger(__name__)

POINTS_PER_PAIR = 10

_LEVEL_QUOTAS = {
    1: 4,
    2: 5,
}
_DEFAULT_QUOTA = 6


def quota_for_level(level_number: int) -> int:
    """Get the number of pairs a session of the given level plays.

    Args:
        level_number: Game level (1-based).

    Returns:
        Pair quota for the level.
    """
    return _LEVEL_QUOTAS.get(level_number, _DEFAULT_QUOTA)


def max_score_for_level(level_number: int) -> int:
    """Get the maximum achievable score for a level."""
    return quota_for_level(level_number) * POINTS_PER_PAIR


class ContentSelector:
    """Samples a bounded set of pairs for a session.

    Selection is a pure function of the pool and the RNG state.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def select(self, game: Game, pool: Sequence[Pair]) -> list[Pair]:
        """Choose the pairs for a session of ``game``.

        Args:
            game: Game being started.
            pool: Every pair authored for the game.

        Returns:
            ``quota`` distinct pairs when the pool is larger than the quota,
            otherwise the whole pool (never padded).

        Raises:
            NoContentError: If the pool is empty.
        """
        if not pool:
            raise NoContentError(game.id)

        quota = quota_for_level(game.level_number)
        ordered = sorted(pool, key=lambda p: (p.order_index, p.id))

        if len(ordered) > quota:
            chosen = self._rng.sample(ordered, quota)
        else:
            if len(ordered) < quota:
                logger.warning(
                    "Pool smaller than quota for game %s: %d of %d pairs",
                    game.id,
                    len(ordered),
                    quota,
                )
            chosen = list(ordered)

        logger.debug(
            "Selected %d of %d pairs for game %s (level %d)",
            len(chosen),
            len(ordered),
            game.id,
            game.level_number,
        )
        return chosen


class PairShuffler:
    """Splits pairs into two independently permuted columns."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def shuffle(self, pairs: Sequence[Pair]) -> ShuffledPairs:
        """Build the board for the chosen pairs.

        Args:
            pairs: Pairs selected for the session.

        Returns:
            ShuffledPairs whose columns are independent permutations of the
            same pair set.
        """
        left_items, right_items = _board_items(pairs)
        self._rng.shuffle(left_items)
        self._rng.shuffle(right_items)

        return ShuffledPairs(left_items=left_items, right_items=right_items)

    @staticmethod
    def restore(
        pairs: Sequence[Pair],
        left_order: Sequence[str],
        right_order: Sequence[str],
    ) -> ShuffledPairs:
        """Rebuild a stored board from its pairs and recorded column orders.

        Items whose pair no longer exists are dropped.
        """
        left_items, right_items = _board_items(pairs)
        left_by_id = {item.id: item for item in left_items}
        right_by_id = {item.id: item for item in right_items}
        return ShuffledPairs(
            left_items=[left_by_id[i] for i in left_order if i in left_by_id],
            right_items=[right_by_id[i] for i in right_order if i in right_by_id],
        )


def _board_items(pairs: Sequence[Pair]) -> tuple[list[BoardItem], list[BoardItem]]:
    left_items = []
    right_items = []
    for index, pair in enumerate(pairs):
        left_items.append(
            BoardItem(
                id=f"left-{pair.id}",
                content=pair.left_content,
                type=pair.left_type,
                pair_id=pair.id,
                side=ItemSide.LEFT,
                original_index=index,
            )
        )
        right_items.append(
            BoardItem(
                id=f"right-{pair.id}",
                content=pair.right_content,
                type=pair.right_type,
                pair_id=pair.id,
                side=ItemSide.RIGHT,
                original_index=index,
            )
        )
    return left_items, right_items
