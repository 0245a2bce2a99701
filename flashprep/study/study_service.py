"""
Study Service for FlashPrep.

Provides high-level operations for the CLI:
- Set management (create, edit, delete, import/export, legacy migration)
- Test-prep sessions (start, reveal, rate, progress)
- Free study sessions
- Statistics (overview, mastery, history, per-card ranking, reset)
"""

from __future__ import annotations

import random
from collections.abc import Callable, Iterable

from loguru import logger

from config import Settings, get_settings
from flashprep.core.exceptions import SetNotFoundError, StorageUnavailableError
from flashprep.delivery.card_set import (
    Card,
    CardSet,
    build_card_set,
    export_payload,
    parse_import_payload,
    parse_legacy_sets,
)
from flashprep.delivery.state_store import RecordStore
from flashprep.study.free_study import FreeStudySession
from flashprep.study.mastery_calculator import (
    CardDetail,
    FilterCounts,
    MasteryBreakdown,
    MasteryCalculator,
    SessionHistoryRow,
    SetOverview,
)
from flashprep.study.review_session import (
    Candidate,
    RateOutcome,
    ReviewFilter,
    ReviewSession,
    SessionProgress,
    start_review_session,
)
from flashprep.study.scheduler import WeightedSampler


class StudyService:
    """
    High-level service for study operations.

    Coordinates between the record store, weighted sampler, review
    sessions and mastery calculator. Holds no session state itself:
    each ReviewSession is passed back in explicitly.
    """

    def __init__(
        self,
        store: RecordStore,
        sampler: WeightedSampler | None = None,
        clock: Callable[[], int] | None = None,
        settings: Settings | None = None,
    ):
        """
        Initialize study service.

        Args:
            store: Record store backend
            sampler: Weighted sampler (seeded one for reproducible sessions)
            clock: Epoch-millisecond clock used for review timestamps
            settings: Thresholds (defaults to get_settings())
        """
        self.store = store
        self.sampler = sampler or WeightedSampler()
        self.clock = clock
        self.settings = settings or get_settings()
        self.calculator = MasteryCalculator(weak_threshold=self.settings.weak_threshold)

    async def _require_set(self, set_id: str) -> CardSet:
        card_set = await self.store.get_set(set_id)
        if card_set is None:
            raise SetNotFoundError(set_id)
        return card_set

    # =========================================================================
    # Sets
    # =========================================================================

    async def list_sets(self) -> list[CardSet]:
        return await self.store.load_sets()

    async def get_set(self, set_id: str) -> CardSet:
        return await self._require_set(set_id)

    async def create_set(self, name: str, cards: Iterable[Card | dict]) -> CardSet:
        """
        Validate and store a new set.

        Raises:
            InvalidSetError: If the name is blank or no card has content
            StorageUnavailableError: If the set could not be saved
        """
        card_set = build_card_set(name, cards)
        if not await self.store.save_set(card_set):
            raise StorageUnavailableError(f"Failed to save set '{card_set.name}'")
        logger.info(f"Created set {card_set.id} '{card_set.name}' with {card_set.total} cards")
        return card_set

    async def update_set(self, set_id: str, name: str, cards: Iterable[Card | dict]) -> CardSet:
        """Replace the name and cards of an existing set, keeping its records."""
        await self._require_set(set_id)
        card_set = build_card_set(name, cards, set_id=set_id)
        if not await self.store.save_set(card_set):
            raise StorageUnavailableError(f"Failed to save set '{card_set.name}'")
        logger.info(f"Updated set {set_id}: {card_set.total} cards")
        return card_set

    async def delete_set(self, set_id: str) -> bool:
        """Delete a set with its records and session history."""
        await self._require_set(set_id)
        return await self.store.delete_set(set_id)

    async def export_set(self, set_id: str) -> dict:
        return export_payload(await self._require_set(set_id))

    async def import_set(self, payload: object) -> CardSet:
        """
        Store an exported set under a new id.

        Raises:
            InvalidSetError: If the payload is not a flash set export
        """
        card_set = parse_import_payload(payload)
        if not await self.store.save_set(card_set):
            raise StorageUnavailableError(f"Failed to save imported set '{card_set.name}'")
        logger.info(f"Imported set {card_set.id} '{card_set.name}'")
        return card_set

    async def migrate_legacy_sets(self, payload: object) -> int:
        """
        Load a legacy array of sets into an empty store.

        Returns:
            Number of sets migrated (0 when the store already has sets)
        """
        legacy = parse_legacy_sets(payload)
        if not legacy:
            return 0

        existing = await self.store.load_sets()
        if existing:
            logger.info(f"Skipping legacy migration: store already holds {len(existing)} sets")
            return 0

        if not await self.store.save_sets(legacy):
            raise StorageUnavailableError("Failed to save migrated sets")
        logger.info(f"Migrated {len(legacy)} legacy sets")
        return len(legacy)

    # =========================================================================
    # Test-Prep Sessions
    # =========================================================================

    async def start_session(
        self,
        set_id: str,
        review_filter: ReviewFilter | str = ReviewFilter.ALL,
    ) -> ReviewSession:
        """
        Start an adaptive test-prep session.

        Raises:
            SetNotFoundError: If the set does not exist
            EmptyPoolError: If no card matches the filter
        """
        return await start_review_session(
            self.store,
            set_id,
            review_filter,
            sampler=self.sampler,
            calculator=self.calculator,
            clock=self.clock,
            weak_threshold=self.settings.weak_threshold,
            streak_threshold=self.settings.streak_threshold,
        )

    def reveal(self, session: ReviewSession) -> Candidate:
        return session.reveal()

    async def rate(self, session: ReviewSession, value: float) -> RateOutcome:
        return await session.rate(value)

    def session_progress(self, session: ReviewSession) -> SessionProgress:
        return session.progress

    async def start_free_study(self, set_id: str, rng: random.Random | None = None) -> FreeStudySession:
        card_set = await self._require_set(set_id)
        return FreeStudySession(card_set.cards, rng=rng)

    # =========================================================================
    # Statistics
    # =========================================================================

    async def get_set_overview(self, set_id: str) -> SetOverview:
        card_set = await self._require_set(set_id)
        return self.calculator.overview(card_set, await self.store.load_card_stats(set_id))

    async def list_overviews(self) -> list[SetOverview]:
        overviews = []
        for card_set in await self.store.load_sets():
            stats = await self.store.load_card_stats(card_set.id)
            overviews.append(self.calculator.overview(card_set, stats))
        return overviews

    async def get_mastery(self, set_id: str) -> MasteryBreakdown:
        card_set = await self._require_set(set_id)
        return self.calculator.mastery(card_set, await self.store.load_card_stats(set_id))

    async def get_filter_counts(self, set_id: str) -> FilterCounts:
        card_set = await self._require_set(set_id)
        return self.calculator.filter_counts(card_set, await self.store.load_card_stats(set_id))

    async def get_session_history(self, set_id: str) -> list[SessionHistoryRow]:
        return self.calculator.session_history(await self.store.load_sessions(set_id))

    async def get_card_details(self, set_id: str) -> list[CardDetail]:
        card_set = await self._require_set(set_id)
        return self.calculator.card_details(card_set, await self.store.load_card_stats(set_id))

    async def reset_stats(self, set_id: str) -> bool:
        """Delete every record and session of a set. Irreversible."""
        return await self.store.delete_stats_for_set(set_id)
