"""
Mastery Calculator for FlashPrep sets.

Derives reporting statistics from stored records:
- Set overview (cards / reviewed)
- Mastery percentage and strong/okay/weak/unreviewed buckets
- End-of-session summaries and session history
- Per-card ranking, weakest first

Everything here is pure and synchronous; callers load the records first.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from flashprep.delivery.card_set import Card, CardSet
from flashprep.delivery.state_store import CardStat, RatingBands, SessionSummary

MAX_RATING = 5.0


@dataclass
class SetOverview:
    """Listing entry for a set."""

    set_id: str
    name: str
    total: int
    reviewed: int


@dataclass
class MasteryBreakdown:
    """Mastery percentage and bucket counts for a set."""

    percent: int  # 0-100
    strong: int
    okay: int
    weak: int
    unreviewed: int

    @property
    def total(self) -> int:
        return self.strong + self.okay + self.weak + self.unreviewed


@dataclass
class FilterCounts:
    """How many cards each review filter would select."""

    all: int
    weak: int
    unreviewed: int


@dataclass
class SessionHistoryRow:
    """One past session, shaped for display."""

    date: int  # Epoch milliseconds
    avg_rating: float
    total_cards: int
    high_share: float  # 0-1
    mid_share: float
    low_share: float


@dataclass
class CardDetail:
    """A card with its performance record, if any."""

    card: Card
    index: int
    stat: CardStat | None

    @property
    def rating(self) -> float:
        return self.stat.rating if self.stat else 0.0

    @property
    def band(self) -> str:
        return MasteryCalculator.band_for(self.stat.rating if self.stat else None)

    @property
    def label(self) -> str:
        return self.card.label


class MasteryCalculator:
    """
    Calculates mastery statistics for a card set.

    Thresholds:
    - Strong: rating >= 4
    - Okay: 2.5 <= rating < 4
    - Weak: rating < 2.5
    - Session bands: low <= 2.5 < mid < 4 <= high
    """

    STRONG_MIN = 4.0
    OKAY_MIN = 2.5

    def __init__(self, weak_threshold: float = 2.5):
        """
        Initialize calculator.

        Args:
            weak_threshold: Ratings at or below this count for the 'weak' filter
        """
        self.weak_threshold = weak_threshold

    # =========================================================================
    # Bands
    # =========================================================================

    @classmethod
    def band_for(cls, rating: float | None) -> str:
        """Bucket name for a card rating."""
        if rating is None:
            return "unreviewed"
        if rating >= cls.STRONG_MIN:
            return "strong"
        if rating >= cls.OKAY_MIN:
            return "okay"
        return "weak"

    @staticmethod
    def rating_bands(ratings: Iterable[float]) -> RatingBands:
        """Count session ratings into low / mid / high."""
        low = mid = high = 0
        for r in ratings:
            if r <= 2.5:
                low += 1
            elif r < 4:
                mid += 1
            else:
                high += 1
        return RatingBands(low=low, mid=mid, high=high)

    @staticmethod
    def verdict_for(avg_rating: float) -> str:
        """Closing message for a finished session."""
        if avg_rating >= 4.5:
            return "Perfect! You're ready for the test."
        if avg_rating >= 3.5:
            return "Great job! Just a few to brush up on."
        if avg_rating >= 2.5:
            return "Getting there. Focus on the weak cards."
        return "Keep practicing. You'll get there!"

    # =========================================================================
    # Set Statistics
    # =========================================================================

    @staticmethod
    def _stats_by_index(card_set: CardSet, stats: Iterable[CardStat]) -> dict[int, CardStat]:
        """Map card index to record, ignoring records for cards that no longer exist."""
        return {s.card_index: s for s in stats if 0 <= s.card_index < card_set.total}

    def overview(self, card_set: CardSet, stats: Iterable[CardStat]) -> SetOverview:
        by_index = self._stats_by_index(card_set, stats)
        return SetOverview(
            set_id=card_set.id,
            name=card_set.name,
            total=card_set.total,
            reviewed=len(by_index),
        )

    def mastery(self, card_set: CardSet, stats: Iterable[CardStat]) -> MasteryBreakdown:
        """
        Calculate mastery percentage and buckets.

        The percentage averages the latest rating of reviewed cards only;
        unreviewed cards are left out of the denominator.

        Returns:
            MasteryBreakdown whose buckets sum to the card count
        """
        by_index = self._stats_by_index(card_set, stats)
        counts = {"strong": 0, "okay": 0, "weak": 0, "unreviewed": 0}
        rating_sum = 0.0

        for i in range(card_set.total):
            stat = by_index.get(i)
            if stat is not None:
                rating_sum += stat.rating
            counts[self.band_for(stat.rating if stat else None)] += 1

        reviewed = card_set.total - counts["unreviewed"]
        avg = rating_sum / reviewed if reviewed else 0.0
        percent = round(avg / MAX_RATING * 100) if reviewed else 0

        return MasteryBreakdown(percent=percent, **counts)

    def filter_counts(self, card_set: CardSet, stats: Iterable[CardStat]) -> FilterCounts:
        by_index = self._stats_by_index(card_set, stats)
        weak = sum(1 for s in by_index.values() if s.rating <= self.weak_threshold)
        return FilterCounts(
            all=card_set.total,
            weak=weak,
            unreviewed=card_set.total - len(by_index),
        )

    def card_details(self, card_set: CardSet, stats: Iterable[CardStat]) -> list[CardDetail]:
        """Every card with its record, weakest first (unreviewed rank as 0)."""
        by_index = self._stats_by_index(card_set, stats)
        details = [CardDetail(card=c, index=i, stat=by_index.get(i)) for i, c in enumerate(card_set.cards)]
        return sorted(details, key=lambda d: d.rating)

    # =========================================================================
    # Sessions
    # =========================================================================

    def summarize_session(
        self,
        set_id: str,
        ratings: Sequence[float],
        date: int,
        session_id: str,
    ) -> SessionSummary:
        """
        Aggregate the ratings of a finished session.

        Args:
            set_id: Set the session ran against
            ratings: Every rating given, in order (non-empty)
            date: Completion time in epoch milliseconds
            session_id: Identifier for the new summary

        Returns:
            Immutable SessionSummary
        """
        total = len(ratings)
        avg = sum(ratings) / total if total else 0.0
        return SessionSummary(
            id=session_id,
            set_id=set_id,
            date=date,
            total_cards=total,
            avg_rating=round(avg, 1),
            ratings=self.rating_bands(ratings),
            score=round(avg / MAX_RATING * 100),
        )

    @staticmethod
    def session_history(sessions: Iterable[SessionSummary]) -> list[SessionHistoryRow]:
        """Past sessions, newest first, with band counts as shares of the session size."""
        rows = []
        for s in sorted(sessions, key=lambda s: s.date, reverse=True):
            t = s.total_cards
            avg = s.avg_rating or s.score / 20
            rows.append(
                SessionHistoryRow(
                    date=s.date,
                    avg_rating=round(avg, 1),
                    total_cards=t,
                    high_share=s.ratings.high / t if t else 0.0,
                    mid_share=s.ratings.mid / t if t else 0.0,
                    low_share=s.ratings.low / t if t else 0.0,
                )
            )
        return rows
