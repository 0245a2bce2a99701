"""
Record Store for FlashPrep.

Provides persistence for three collections:
- Card sets (cards embedded, keyed by set id)
- Card performance records (keyed "{set_id}_{card_index}", indexed by set)
- Session summaries (keyed by generated id, indexed by set)

All operations are async. Backend failures never reach the caller:
reads degrade to empty results and writes return False.

Database location: ~/.flashprep/flashprep.db
"""

from __future__ import annotations

import asyncio
import json
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from config import get_settings
from flashprep.core.exceptions import StorageUnavailableError
from flashprep.delivery.card_set import CardSet

T = TypeVar("T")

# =============================================================================
# Data Classes
# =============================================================================


def stat_key(set_id: str, card_index: int) -> str:
    """Storage key of a card performance record."""
    return f"{set_id}_{card_index}"


@dataclass
class CardStat:
    """Performance record for one card of one set."""

    set_id: str
    card_index: int
    rating: float = 0.0  # Most recent rating, not an average
    total_reviews: int = 0
    rating_sum: float = 0.0
    last_reviewed: int = 0  # Epoch milliseconds
    streak: int = 0  # Consecutive ratings >= streak threshold

    @property
    def id(self) -> str:
        return stat_key(self.set_id, self.card_index)

    @property
    def average_rating(self) -> float:
        """Mean of every rating this card has received."""
        if self.total_reviews == 0:
            return 0.0
        return self.rating_sum / self.total_reviews

    @property
    def last_reviewed_at(self) -> datetime | None:
        if not self.last_reviewed:
            return None
        return datetime.fromtimestamp(self.last_reviewed / 1000)

    @classmethod
    def from_dict(cls, data: dict) -> CardStat:
        return cls(
            set_id=str(data["setId"]),
            card_index=int(data["cardIndex"]),
            rating=float(data.get("rating", 0)),
            total_reviews=int(data.get("totalReviews", 0)),
            rating_sum=float(data.get("ratingSum") or 0),
            last_reviewed=int(data.get("lastReviewed") or 0),
            streak=int(data.get("streak") or 0),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "setId": self.set_id,
            "cardIndex": self.card_index,
            "rating": self.rating,
            "totalReviews": self.total_reviews,
            "ratingSum": self.rating_sum,
            "lastReviewed": self.last_reviewed,
            "streak": self.streak,
        }


@dataclass(frozen=True)
class RatingBands:
    """Count of session ratings per band: low <= 2.5 < mid < 4 <= high."""

    low: int = 0
    mid: int = 0
    high: int = 0

    @property
    def total(self) -> int:
        return self.low + self.mid + self.high

    def to_dict(self) -> dict:
        return {"low": self.low, "mid": self.mid, "high": self.high}


@dataclass(frozen=True)
class SessionSummary:
    """Outcome of one completed test-prep session."""

    id: str
    set_id: str
    date: int  # Completion time, epoch milliseconds
    total_cards: int
    avg_rating: float | None
    ratings: RatingBands = field(default_factory=RatingBands)
    score: int = 0  # 0-100

    @property
    def completed_at(self) -> datetime:
        return datetime.fromtimestamp(self.date / 1000)

    @classmethod
    def from_dict(cls, data: dict) -> SessionSummary:
        """
        Create a summary from its stored dictionary.

        Older rows used nailed/shaky/missed band names and may lack
        avgRating; both are accepted.
        """
        bands = data.get("ratings") or {}
        avg = data.get("avgRating")
        return cls(
            id=str(data["id"]),
            set_id=str(data["setId"]),
            date=int(data.get("date", 0)),
            total_cards=int(data.get("totalCards", 0)),
            avg_rating=float(avg) if avg is not None else None,
            ratings=RatingBands(
                low=int(bands.get("low", bands.get("missed", 0))),
                mid=int(bands.get("mid", bands.get("shaky", 0))),
                high=int(bands.get("high", bands.get("nailed", 0))),
            ),
            score=int(data.get("score") or 0),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "setId": self.set_id,
            "date": self.date,
            "totalCards": self.total_cards,
            "avgRating": self.avg_rating,
            "ratings": self.ratings.to_dict(),
            "score": self.score,
        }


# =============================================================================
# Store Interface
# =============================================================================


class RecordStore(ABC):
    """
    Async persistence for sets, card records and session summaries.

    Public methods apply the failure policy; backends implement the
    underscore hooks and raise StorageUnavailableError when they fail.
    """

    # ---- Sets ---------------------------------------------------------------

    async def get_set(self, set_id: str) -> CardSet | None:
        return await self._read("get_set", self._fetch_set(set_id), lambda: None)

    async def load_sets(self) -> list[CardSet]:
        return await self._read("load_sets", self._fetch_sets(), list)

    async def save_set(self, card_set: CardSet) -> bool:
        return await self._write("save_set", self._put_set(card_set))

    async def save_sets(self, sets: list[CardSet]) -> bool:
        """Replace the whole set collection."""
        return await self._write("save_sets", self._replace_sets(list(sets)))

    async def delete_set(self, set_id: str) -> bool:
        """Delete a set together with its records and sessions."""
        return await self._write("delete_set", self._remove_set(set_id))

    # ---- Card records -------------------------------------------------------

    async def load_card_stats(self, set_id: str) -> list[CardStat]:
        return await self._read("load_card_stats", self._fetch_stats(set_id), list)

    async def save_card_stat(self, stat: CardStat) -> bool:
        return await self._write("save_card_stat", self._put_stat(stat))

    # ---- Sessions -----------------------------------------------------------

    async def load_sessions(self, set_id: str) -> list[SessionSummary]:
        return await self._read("load_sessions", self._fetch_sessions(set_id), list)

    async def save_session(self, summary: SessionSummary) -> bool:
        return await self._write("save_session", self._put_session(summary))

    async def delete_stats_for_set(self, set_id: str) -> bool:
        """Delete every record and session of a set in one step."""
        return await self._write("delete_stats_for_set", self._remove_stats(set_id))

    # ---- Failure policy -----------------------------------------------------

    @staticmethod
    async def _read(name: str, operation: Any, default: Callable[[], T]) -> T:
        try:
            return await operation
        except StorageUnavailableError as e:
            logger.warning(f"Record store read '{name}' failed, using empty result: {e}")
            return default()

    @staticmethod
    async def _write(name: str, operation: Any) -> bool:
        try:
            await operation
        except StorageUnavailableError as e:
            logger.warning(f"Record store write '{name}' failed: {e}")
            return False
        return True

    # ---- Backend hooks ------------------------------------------------------

    @abstractmethod
    async def _fetch_set(self, set_id: str) -> CardSet | None: ...

    @abstractmethod
    async def _fetch_sets(self) -> list[CardSet]: ...

    @abstractmethod
    async def _put_set(self, card_set: CardSet) -> None: ...

    @abstractmethod
    async def _replace_sets(self, sets: list[CardSet]) -> None: ...

    @abstractmethod
    async def _remove_set(self, set_id: str) -> None: ...

    @abstractmethod
    async def _fetch_stats(self, set_id: str) -> list[CardStat]: ...

    @abstractmethod
    async def _put_stat(self, stat: CardStat) -> None: ...

    @abstractmethod
    async def _fetch_sessions(self, set_id: str) -> list[SessionSummary]: ...

    @abstractmethod
    async def _put_session(self, summary: SessionSummary) -> None: ...

    @abstractmethod
    async def _remove_stats(self, set_id: str) -> None: ...

    def close(self) -> None:
        """Release backend resources."""


# =============================================================================
# In-Memory Store
# =============================================================================


class InMemoryRecordStore(RecordStore):
    """
    Dictionary-backed store for tests and throwaway sessions.

    Values are kept in their serialized form so callers never share
    mutable objects with the store. Setting ``available = False``
    makes every operation fail as if the backend were down.
    """

    def __init__(self) -> None:
        self.available = True
        self._sets: dict[str, dict] = {}
        self._stats: dict[str, dict] = {}
        self._sessions: dict[str, dict] = {}

    def _check(self) -> None:
        if not self.available:
            raise StorageUnavailableError("in-memory store is offline")

    async def _fetch_set(self, set_id: str) -> CardSet | None:
        self._check()
        data = self._sets.get(set_id)
        return CardSet.from_dict(data) if data else None

    async def _fetch_sets(self) -> list[CardSet]:
        self._check()
        return [CardSet.from_dict(d) for d in self._sets.values()]

    async def _put_set(self, card_set: CardSet) -> None:
        self._check()
        self._sets = {**self._sets, card_set.id: card_set.to_dict()}

    async def _replace_sets(self, sets: list[CardSet]) -> None:
        self._check()
        self._sets = {s.id: s.to_dict() for s in sets}

    async def _remove_set(self, set_id: str) -> None:
        self._check()
        self._sets = {k: v for k, v in self._sets.items() if k != set_id}
        self._drop_set_records(set_id)

    async def _fetch_stats(self, set_id: str) -> list[CardStat]:
        self._check()
        return [CardStat.from_dict(d) for d in self._stats.values() if d["setId"] == set_id]

    async def _put_stat(self, stat: CardStat) -> None:
        self._check()
        self._stats = {**self._stats, stat.id: stat.to_dict()}

    async def _fetch_sessions(self, set_id: str) -> list[SessionSummary]:
        self._check()
        return [SessionSummary.from_dict(d) for d in self._sessions.values() if d["setId"] == set_id]

    async def _put_session(self, summary: SessionSummary) -> None:
        self._check()
        self._sessions = {**self._sessions, summary.id: summary.to_dict()}

    async def _remove_stats(self, set_id: str) -> None:
        self._check()
        self._drop_set_records(set_id)

    def _drop_set_records(self, set_id: str) -> None:
        stats = {k: v for k, v in self._stats.items() if v["setId"] != set_id}
        sessions = {k: v for k, v in self._sessions.items() if v["setId"] != set_id}
        self._stats, self._sessions = stats, sessions


# =============================================================================
# SQLite Store
# =============================================================================


class SQLiteRecordStore(RecordStore):
    """
    SQLite-backed record store.

    Handles:
    - sets: one row per set, cards embedded as JSON
    - card_stats: one row per reviewed card, indexed by set
    - sessions: append-only session summaries, indexed by set

    Each operation is a single transaction executed on a worker thread.
    """

    def __init__(self, db_path: Path | None = None):
        """
        Initialize the record store.

        Args:
            db_path: Custom database path (defaults to settings.database_path)
        """
        self.db_path = db_path or get_settings().database_path
        self._engine: Engine | None = None
        self._engine_lock = threading.Lock()

    @property
    def engine(self) -> Engine:
        """Get or create the engine, creating the schema on first use."""
        if self._engine is not None:
            return self._engine
        # Operations reach this from worker threads; build the engine once
        with self._engine_lock:
            if self._engine is not None:
                return self._engine
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            engine = create_engine(
                f"sqlite:///{self.db_path}",
                connect_args={"check_same_thread": False},
            )
            try:
                with engine.begin() as conn:
                    self._init_schema(conn)
            except SQLAlchemyError:
                engine.dispose()
                raise
            self._engine = engine
            logger.info(f"Record store initialized at {self.db_path}")
            return engine

    @staticmethod
    def _init_schema(conn: Connection) -> None:
        """Initialize database schema."""
        conn.execute(text("""
            CREATE TABLE IF NOT EXISTS sets (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                cards TEXT NOT NULL
            )
        """))

        conn.execute(text("""
            CREATE TABLE IF NOT EXISTS card_stats (
                id TEXT PRIMARY KEY,
                set_id TEXT NOT NULL,
                card_index INTEGER NOT NULL,
                rating REAL NOT NULL,
                total_reviews INTEGER NOT NULL DEFAULT 0,
                rating_sum REAL NOT NULL DEFAULT 0,
                last_reviewed INTEGER NOT NULL DEFAULT 0,
                streak INTEGER NOT NULL DEFAULT 0
            )
        """))

        conn.execute(text("""
            CREATE TABLE IF NOT EXISTS sessions (
                id TEXT PRIMARY KEY,
                set_id TEXT NOT NULL,
                date INTEGER NOT NULL,
                total_cards INTEGER NOT NULL,
                avg_rating REAL,
                low INTEGER NOT NULL DEFAULT 0,
                mid INTEGER NOT NULL DEFAULT 0,
                high INTEGER NOT NULL DEFAULT 0,
                score INTEGER NOT NULL DEFAULT 0
            )
        """))

        conn.execute(text("CREATE INDEX IF NOT EXISTS idx_card_stats_set ON card_stats(set_id)"))
        conn.execute(text("CREATE INDEX IF NOT EXISTS idx_sessions_set ON sessions(set_id)"))

    async def _run(self, func: Callable[[Connection], T]) -> T:
        """Run func inside one transaction on a worker thread."""

        def transaction() -> T:
            with self.engine.begin() as conn:
                return func(conn)

        try:
            return await asyncio.to_thread(transaction)
        except (SQLAlchemyError, OSError) as e:
            raise StorageUnavailableError(str(e)) from e

    # =========================================================================
    # Sets
    # =========================================================================

    async def _fetch_set(self, set_id: str) -> CardSet | None:
        def query(conn: Connection) -> CardSet | None:
            row = conn.execute(
                text("SELECT id, name, cards FROM sets WHERE id = :id"), {"id": set_id}
            ).mappings().first()
            if row is None:
                return None
            sets = _decode_rows([row], _set_from_row)
            return sets[0] if sets else None

        return await self._run(query)

    async def _fetch_sets(self) -> list[CardSet]:
        def query(conn: Connection) -> list[CardSet]:
            rows = conn.execute(text("SELECT id, name, cards FROM sets ORDER BY rowid")).mappings()
            return _decode_rows(rows, _set_from_row)

        return await self._run(query)

    async def _put_set(self, card_set: CardSet) -> None:
        await self._run(lambda conn: conn.execute(_UPSERT_SET, _set_params(card_set)))

    async def _replace_sets(self, sets: list[CardSet]) -> None:
        def replace(conn: Connection) -> None:
            conn.execute(text("DELETE FROM sets"))
            if sets:
                conn.execute(_UPSERT_SET, [_set_params(s) for s in sets])

        await self._run(replace)

    async def _remove_set(self, set_id: str) -> None:
        def remove(conn: Connection) -> None:
            _delete_set_records(conn, set_id)
            conn.execute(text("DELETE FROM sets WHERE id = :set_id"), {"set_id": set_id})

        await self._run(remove)
        logger.info(f"Deleted set {set_id} with its records and sessions")

    # =========================================================================
    # Card Records
    # =========================================================================

    async def _fetch_stats(self, set_id: str) -> list[CardStat]:
        def query(conn: Connection) -> list[CardStat]:
            rows = conn.execute(
                text("SELECT * FROM card_stats WHERE set_id = :set_id ORDER BY card_index"),
                {"set_id": set_id},
            ).mappings()
            return _decode_rows(rows, _stat_from_row)

        return await self._run(query)

    async def _put_stat(self, stat: CardStat) -> None:
        params = {
            "id": stat.id,
            "set_id": stat.set_id,
            "card_index": stat.card_index,
            "rating": stat.rating,
            "total_reviews": stat.total_reviews,
            "rating_sum": stat.rating_sum,
            "last_reviewed": stat.last_reviewed,
            "streak": stat.streak,
        }
        await self._run(lambda conn: conn.execute(_UPSERT_STAT, params))

    # =========================================================================
    # Sessions
    # =========================================================================

    async def _fetch_sessions(self, set_id: str) -> list[SessionSummary]:
        def query(conn: Connection) -> list[SessionSummary]:
            rows = conn.execute(
                text("SELECT * FROM sessions WHERE set_id = :set_id"), {"set_id": set_id}
            ).mappings()
            return _decode_rows(rows, _session_from_row)

        return await self._run(query)

    async def _put_session(self, summary: SessionSummary) -> None:
        params = {
            "id": summary.id,
            "set_id": summary.set_id,
            "date": summary.date,
            "total_cards": summary.total_cards,
            "avg_rating": summary.avg_rating,
            "low": summary.ratings.low,
            "mid": summary.ratings.mid,
            "high": summary.ratings.high,
            "score": summary.score,
        }
        await self._run(lambda conn: conn.execute(_INSERT_SESSION, params))

    async def _remove_stats(self, set_id: str) -> None:
        await self._run(lambda conn: _delete_set_records(conn, set_id))
        logger.info(f"Reset stats and session history for set {set_id}")

    def close(self) -> None:
        """Dispose of the engine and its pooled connections."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None


# =============================================================================
# SQL & Row Mapping
# =============================================================================

_UPSERT_SET = text("""
    INSERT INTO sets (id, name, cards) VALUES (:id, :name, :cards)
    ON CONFLICT(id) DO UPDATE SET
        name = excluded.name,
        cards = excluded.cards
""")

_UPSERT_STAT = text("""
    INSERT INTO card_stats (
        id, set_id, card_index, rating, total_reviews,
        rating_sum, last_reviewed, streak
    ) VALUES (
        :id, :set_id, :card_index, :rating, :total_reviews,
        :rating_sum, :last_reviewed, :streak
    )
    ON CONFLICT(id) DO UPDATE SET
        rating = excluded.rating,
        total_reviews = excluded.total_reviews,
        rating_sum = excluded.rating_sum,
        last_reviewed = excluded.last_reviewed,
        streak = excluded.streak
""")

_INSERT_SESSION = text("""
    INSERT INTO sessions (
        id, set_id, date, total_cards, avg_rating, low, mid, high, score
    ) VALUES (
        :id, :set_id, :date, :total_cards, :avg_rating, :low, :mid, :high, :score
    )
""")


def _delete_set_records(conn: Connection, set_id: str) -> None:
    conn.execute(text("DELETE FROM card_stats WHERE set_id = :set_id"), {"set_id": set_id})
    conn.execute(text("DELETE FROM sessions WHERE set_id = :set_id"), {"set_id": set_id})


def _set_params(card_set: CardSet) -> dict:
    return {
        "id": card_set.id,
        "name": card_set.name,
        "cards": json.dumps([c.to_dict() for c in card_set.cards]),
    }


def _set_from_row(row: Any) -> CardSet:
    return CardSet.from_dict({"id": row["id"], "name": row["name"], "cards": json.loads(row["cards"])})


def _stat_from_row(row: Any) -> CardStat:
    return CardStat(
        set_id=row["set_id"],
        card_index=row["card_index"],
        rating=row["rating"],
        total_reviews=row["total_reviews"],
        rating_sum=row["rating_sum"],
        last_reviewed=row["last_reviewed"],
        streak=row["streak"],
    )


def _session_from_row(row: Any) -> SessionSummary:
    return SessionSummary(
        id=row["id"],
        set_id=row["set_id"],
        date=row["date"],
        total_cards=row["total_cards"],
        avg_rating=row["avg_rating"],
        ratings=RatingBands(low=row["low"], mid=row["mid"], high=row["high"]),
        score=row["score"],
    )


def _decode_rows(rows: Iterable[Any], decode: Callable[[Any], T]) -> list[T]:
    """Decode rows, skipping (and logging) any that are corrupt."""
    result = []
    for row in rows:
        try:
            result.append(decode(row))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Skipping unreadable row {row.get('id', '?')}: {e}")
    return result
