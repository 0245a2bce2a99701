"""
FlashPrep delivery layer.

Components:
- CardSet: set and card model, import/export payloads
- RecordStore: persistence of sets, card stats and session summaries
- SQLiteRecordStore: SQLite backend
- FlashPrep CLI: terminal interface (flashprep_cli)
"""

from .card_set import Card, CardSet, build_card_set
from .state_store import (
    CardStat,
    InMemoryRecordStore,
    RatingBands,
    RecordStore,
    SessionSummary,
    SQLiteRecordStore,
)

__all__ = [
    # Sets
    "Card",
    "CardSet",
    "build_card_set",
    # Persistence
    "RecordStore",
    "InMemoryRecordStore",
    "SQLiteRecordStore",
    "CardStat",
    "RatingBands",
    "SessionSummary",
]
