"""
Weighted Review Ordering.

Implements:
- Per-card weights derived from the latest rating
- Weighted sampling without replacement to order a practice session
- Uniform shuffling for free study

Weight Scale:
unreviewed - 8
0.5 stars  - 10 (weakest cards surface first most often)
...
5 stars    - 1
"""

from __future__ import annotations

import random
from collections.abc import Callable, Sequence
from typing import Protocol, TypeVar

from loguru import logger

T = TypeVar("T")

UNREVIEWED_WEIGHT = 8
MIN_WEIGHT = 1


class RandomSource(Protocol):
    """Anything that yields uniform floats in [0, 1)."""

    def random(self) -> float: ...


class Rated(Protocol):
    """A review candidate exposing its current rating (None = never reviewed)."""

    @property
    def rating(self) -> float | None: ...


# =============================================================================
# Weights
# =============================================================================


def card_weight(rating: float | None) -> int:
    """
    Sampling weight for a card.

    Args:
        rating: Latest rating in [0.5, 5], or None if never reviewed

    Returns:
        Integer weight from 10 (rating 0.5) down to 1 (rating 5);
        8 for unreviewed cards
    """
    if rating is None:
        return UNREVIEWED_WEIGHT
    return max(MIN_WEIGHT, round(11 - 2 * rating))


def candidate_weight(candidate: Rated) -> int:
    return card_weight(candidate.rating)


# =============================================================================
# Weighted Sampler
# =============================================================================


class WeightedSampler:
    """
    Orders review candidates by repeated weighted draws.

    Each draw picks one remaining candidate with probability proportional
    to its weight among the survivors, so the result is a random
    permutation biased towards heavy (weak) cards. This is the
    Plackett-Luce model, not a single shuffle with fixed odds.
    """

    def __init__(self, rng: RandomSource | None = None):
        """
        Initialize the sampler.

        Args:
            rng: Random source; pass a seeded random.Random or a scripted
                 source for reproducible orderings
        """
        self.rng = rng or random.Random()

    def order(
        self,
        candidates: Sequence[T],
        weight: Callable[[T], float] = candidate_weight,
    ) -> list[T]:
        """
        Produce a full weighted permutation of the candidates.

        Args:
            candidates: Items to order (left untouched)
            weight: Positive weight per item

        Returns:
            New list containing every candidate exactly once
        """
        pool = [(item, weight(item)) for item in candidates]
        result: list[T] = []

        while pool:
            picked = self._draw([w for _, w in pool])
            result.append(pool.pop(picked)[0])

        logger.debug(f"Weighted order built for {len(result)} candidates")
        return result

    def _draw(self, weights: list[float]) -> int:
        """Index of one weighted draw from the current pool."""
        if len(weights) == 1:
            return 0

        target = self.rng.random() * sum(weights)
        cumulative = 0.0
        for i, w in enumerate(weights):
            cumulative += w
            if target < cumulative:
                return i

        # Float drift can leave target == total
        return len(weights) - 1


def uniform_shuffle(items: Sequence[T], rng: random.Random | None = None) -> list[T]:
    """Return a uniformly shuffled copy of items."""
    shuffled = list(items)
    (rng or random).shuffle(shuffled)
    return shuffled
