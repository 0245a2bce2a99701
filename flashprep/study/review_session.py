"""
Review Session: one adaptive test-prep run over a card set.

Phases:
    IDLE -> PRESENTING -> REVEALED -> RATED -> PRESENTING (next) | FINISHED

Each rating updates the card's performance record, persists it through
the record store before the next card is shown, and the last rating
produces a SessionSummary. FINISHED is terminal; start a new session to
practice again.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum

from loguru import logger

from flashprep.core.exceptions import (
    EmptyPoolError,
    InvalidRatingError,
    InvalidTransitionError,
    SetNotFoundError,
)
from flashprep.delivery.card_set import Card, generate_id
from flashprep.delivery.state_store import CardStat, RecordStore, SessionSummary
from flashprep.study.mastery_calculator import MasteryCalculator
from flashprep.study.scheduler import WeightedSampler

RATING_VALUES = tuple(i / 2 for i in range(1, 11))  # 0.5, 1.0, ... 5.0

RATING_LABELS = {
    0.5: "No clue", 1.0: "No clue",
    1.5: "Barely knew it", 2.0: "Barely knew it",
    2.5: "Shaky", 3.0: "Shaky",
    3.5: "Pretty good", 4.0: "Pretty good",
    4.5: "Nailed it", 5.0: "Nailed it",
}


def now_ms() -> int:
    return int(time.time() * 1000)


def validate_rating(value: object) -> float:
    """
    Check a rating against the half-star scale.

    Raises:
        InvalidRatingError: If value is not one of 0.5, 1, ... 5
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidRatingError(value)
    if float(value) not in RATING_VALUES:
        raise InvalidRatingError(value)
    return float(value)


class ReviewFilter(str, Enum):
    """Which cards of a set enter the candidate pool."""

    ALL = "all"
    WEAK = "weak"  # Reviewed and rated at or below the weak threshold
    UNREVIEWED = "unreviewed"  # No record yet

    def matches(self, stat: CardStat | None, weak_threshold: float = 2.5) -> bool:
        if self is ReviewFilter.WEAK:
            return stat is not None and stat.rating <= weak_threshold
        if self is ReviewFilter.UNREVIEWED:
            return stat is None
        return True


class SessionPhase(str, Enum):
    IDLE = "idle"
    PRESENTING = "presenting"
    REVEALED = "revealed"
    RATED = "rated"
    FINISHED = "finished"


@dataclass
class Candidate:
    """A card considered for review, with its record if it has one."""

    card: Card
    card_index: int
    stat: CardStat | None = None

    @property
    def rating(self) -> float | None:
        return self.stat.rating if self.stat else None


@dataclass(frozen=True)
class SessionProgress:
    """Position in the session: card `index` of `total` (1-based)."""

    index: int
    total: int

    @property
    def fraction(self) -> float:
        return self.index / self.total if self.total else 0.0


@dataclass
class RateOutcome:
    """Result of one rating step."""

    stat: CardStat
    persisted: bool
    finished: bool
    summary: SessionSummary | None = None


class ReviewSession:
    """
    Drives one practice run.

    The session owns its candidate list and rating log; nothing else
    mutates them. Writes that fail are kept in ``pending_writes`` so the
    caller can warn the user and retry with ``flush_pending``.
    """

    def __init__(
        self,
        set_id: str,
        candidates: list[Candidate],
        store: RecordStore,
        set_name: str = "",
        calculator: MasteryCalculator | None = None,
        clock: Callable[[], int] | None = None,
        streak_threshold: float = 4.5,
    ):
        self.set_id = set_id
        self.set_name = set_name
        self.candidates = candidates
        self.store = store
        self.calculator = calculator or MasteryCalculator()
        self.clock = clock or now_ms
        self.streak_threshold = streak_threshold

        self.phase = SessionPhase.IDLE
        self.index = 0
        self.rating_log: list[float] = []
        self.summary: SessionSummary | None = None
        self._pending: dict[str, CardStat | SessionSummary] = {}

    # =========================================================================
    # State
    # =========================================================================

    @property
    def total(self) -> int:
        return len(self.candidates)

    @property
    def current(self) -> Candidate | None:
        """Card on screen, or None before start and after the end."""
        if self.phase in (SessionPhase.IDLE, SessionPhase.FINISHED):
            return None
        return self.candidates[self.index]

    @property
    def progress(self) -> SessionProgress:
        return SessionProgress(index=self.index + 1, total=self.total)

    @property
    def is_finished(self) -> bool:
        return self.phase is SessionPhase.FINISHED

    @property
    def pending_writes(self) -> list[CardStat | SessionSummary]:
        return list(self._pending.values())

    def _require(self, action: str, phase: SessionPhase) -> None:
        if self.phase is not phase:
            raise InvalidTransitionError(action, self.phase.value)

    # =========================================================================
    # Transitions
    # =========================================================================

    def begin(self) -> Candidate:
        """Present the first card."""
        self._require("begin", SessionPhase.IDLE)
        if not self.candidates:
            raise EmptyPoolError(self.set_id, "all")
        self.phase = SessionPhase.PRESENTING
        logger.info(f"Review session started on set {self.set_id}: {self.total} cards")
        return self.candidates[0]

    def reveal(self) -> Candidate:
        """Show the back of the current card."""
        self._require("reveal", SessionPhase.PRESENTING)
        self.phase = SessionPhase.REVEALED
        return self.candidates[self.index]

    async def rate(self, value: float) -> RateOutcome:
        """
        Rate the revealed card and advance.

        Args:
            value: Half-star rating, 0.5 to 5

        Returns:
            RateOutcome with the updated record and, after the last card,
            the session summary

        Raises:
            InvalidTransitionError: If the card has not been revealed
            InvalidRatingError: If value is off the half-star scale
        """
        self._require("rate", SessionPhase.REVEALED)
        value = validate_rating(value)

        self.rating_log.append(value)
        candidate = self.candidates[self.index]
        stat = candidate.stat or CardStat(set_id=self.set_id, card_index=candidate.card_index)
        stat = replace(
            stat,
            total_reviews=stat.total_reviews + 1,
            rating=value,
            rating_sum=stat.rating_sum + value,
            last_reviewed=self.clock(),
            streak=stat.streak + 1 if value >= self.streak_threshold else 0,
        )
        candidate.stat = stat
        self.phase = SessionPhase.RATED

        persisted = await self.store.save_card_stat(stat)
        if persisted:
            self._pending.pop(stat.id, None)
        else:
            logger.warning(f"Record {stat.id} not saved; queued for retry")
            self._pending[stat.id] = stat

        logger.debug(
            f"Rated card {candidate.card_index} of {self.set_id}: rating={value}, "
            f"reviews={stat.total_reviews}, streak={stat.streak}"
        )

        if self.index < self.total - 1:
            self.index += 1
            self.phase = SessionPhase.PRESENTING
            return RateOutcome(stat=stat, persisted=persisted, finished=False)

        self.phase = SessionPhase.FINISHED
        summary = await self._finish()
        return RateOutcome(stat=stat, persisted=persisted, finished=True, summary=summary)

    async def _finish(self) -> SessionSummary:
        """Build and store the summary of the finished run."""
        summary = self.calculator.summarize_session(
            self.set_id, self.rating_log, date=self.clock(), session_id=generate_id()
        )
        self.summary = summary

        if not await self.store.save_session(summary):
            logger.warning(f"Session summary {summary.id} not saved; queued for retry")
            self._pending[summary.id] = summary

        logger.info(
            f"Review session finished on set {self.set_id}: {summary.total_cards} cards, "
            f"avg {summary.avg_rating}, score {summary.score}"
        )
        return summary

    async def flush_pending(self) -> int:
        """
        Retry writes that failed earlier in this session.

        Returns:
            Number of writes still unsaved
        """
        for key, item in list(self._pending.items()):
            if isinstance(item, SessionSummary):
                saved = await self.store.save_session(item)
            else:
                saved = await self.store.save_card_stat(item)
            if saved:
                del self._pending[key]

        if self._pending:
            logger.warning(f"{len(self._pending)} writes still pending for set {self.set_id}")
        return len(self._pending)


# =============================================================================
# Session Start
# =============================================================================


async def start_review_session(
    store: RecordStore,
    set_id: str,
    review_filter: ReviewFilter | str = ReviewFilter.ALL,
    sampler: WeightedSampler | None = None,
    calculator: MasteryCalculator | None = None,
    clock: Callable[[], int] | None = None,
    weak_threshold: float = 2.5,
    streak_threshold: float = 4.5,
) -> ReviewSession:
    """
    Build the candidate pool for a set and start a session on it.

    Args:
        store: Record store holding the set and its records
        set_id: Set to practice
        review_filter: all, weak or unreviewed
        sampler: Orders the pool (seed it for reproducible runs)

    Returns:
        ReviewSession presenting its first card

    Raises:
        SetNotFoundError: If the set does not exist
        EmptyPoolError: If no card matches the filter
    """
    review_filter = ReviewFilter(review_filter)

    card_set = await store.get_set(set_id)
    if card_set is None:
        raise SetNotFoundError(set_id)

    stats = {s.card_index: s for s in await store.load_card_stats(set_id)}
    pool = [
        Candidate(card=card, card_index=i, stat=stats.get(i))
        for i, card in enumerate(card_set.cards)
    ]
    pool = [c for c in pool if review_filter.matches(c.stat, weak_threshold)]

    if not pool:
        raise EmptyPoolError(set_id, review_filter.value)

    ordered = (sampler or WeightedSampler()).order(pool)
    session = ReviewSession(
        set_id,
        ordered,
        store,
        set_name=card_set.name,
        calculator=calculator,
        clock=clock,
        streak_threshold=streak_threshold,
    )
    session.begin()
    return session
