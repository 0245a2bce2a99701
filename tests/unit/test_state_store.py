"""
Unit tests for the record store backends.

Both backends run the same contract tests; SQLite-specific tests cover
persistence across instances, an unusable database path, corrupt rows
and concurrent first use.
"""

import asyncio

import pytest
import sqlalchemy
from sqlalchemy import text

import flashprep.delivery.state_store as state_store_module
from flashprep.delivery.card_set import Card, CardSet
from flashprep.delivery.state_store import (
    CardStat,
    InMemoryRecordStore,
    RatingBands,
    SessionSummary,
    SQLiteRecordStore,
    stat_key,
)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryRecordStore()
    else:
        s = SQLiteRecordStore(tmp_path / "store.db")
        yield s
        s.close()


def summary(session_id, set_id, date=1000, avg=4.0):
    return SessionSummary(
        id=session_id,
        set_id=set_id,
        date=date,
        total_cards=2,
        avg_rating=avg,
        ratings=RatingBands(low=0, mid=1, high=1),
        score=80,
    )


class TestRecordStore:
    """Contract tests shared by every backend."""

    @pytest.mark.asyncio
    async def test_set_roundtrip(self, store, sample_set):
        assert await store.save_set(sample_set) is True

        loaded = await store.get_set(sample_set.id)

        assert loaded == sample_set
        assert loaded.cards[3].front_image.startswith("data:image/png")

    @pytest.mark.asyncio
    async def test_missing_set(self, store):
        assert await store.get_set("nope") is None

    @pytest.mark.asyncio
    async def test_load_sets_keeps_insertion_order(self, store):
        for name in ["b", "a", "c"]:
            await store.save_set(CardSet(id=name, name=name.upper(), cards=[Card(front=name)]))

        assert [s.id for s in await store.load_sets()] == ["b", "a", "c"]

    @pytest.mark.asyncio
    async def test_save_set_updates_in_place(self, store, sample_set):
        await store.save_set(sample_set)
        sample_set.name = "Renamed"

        await store.save_set(sample_set)

        sets = await store.load_sets()
        assert len(sets) == 1
        assert sets[0].name == "Renamed"

    @pytest.mark.asyncio
    async def test_save_sets_replaces_collection(self, store, sample_set):
        await store.save_set(sample_set)
        replacement = [CardSet(id="x", name="X", cards=[Card(front="1")])]

        assert await store.save_sets(replacement) is True

        assert [s.id for s in await store.load_sets()] == ["x"]

    @pytest.mark.asyncio
    async def test_card_stat_upsert(self, store):
        await store.save_card_stat(CardStat("s1", 2, rating=2, total_reviews=1, rating_sum=2))
        await store.save_card_stat(CardStat("s1", 2, rating=4, total_reviews=2, rating_sum=6, streak=0))

        stats = await store.load_card_stats("s1")

        assert len(stats) == 1
        assert stats[0].id == stat_key("s1", 2) == "s1_2"
        assert stats[0].rating == 4
        assert stats[0].total_reviews == 2
        assert stats[0].average_rating == 3

    @pytest.mark.asyncio
    async def test_card_stats_scoped_to_set(self, store):
        await store.save_card_stat(CardStat("s1", 0, rating=3, total_reviews=1))
        await store.save_card_stat(CardStat("s2", 0, rating=5, total_reviews=1))

        stats = await store.load_card_stats("s1")

        assert [s.set_id for s in stats] == ["s1"]

    @pytest.mark.asyncio
    async def test_session_roundtrip(self, store):
        await store.save_session(summary("a", "s1"))
        await store.save_session(summary("b", "s1", avg=None))
        await store.save_session(summary("c", "s2"))

        sessions = {s.id: s for s in await store.load_sessions("s1")}

        assert set(sessions) == {"a", "b"}
        assert sessions["a"] == summary("a", "s1")
        assert sessions["b"].avg_rating is None

    @pytest.mark.asyncio
    async def test_delete_set_cascades(self, store, sample_set):
        other = CardSet(id="other", name="Other", cards=[Card(front="q")])
        await store.save_set(sample_set)
        await store.save_set(other)
        await store.save_card_stat(CardStat(sample_set.id, 0, rating=3, total_reviews=1))
        await store.save_card_stat(CardStat(other.id, 0, rating=3, total_reviews=1))
        await store.save_session(summary("a", sample_set.id))

        assert await store.delete_set(sample_set.id) is True

        assert await store.get_set(sample_set.id) is None
        assert await store.load_card_stats(sample_set.id) == []
        assert await store.load_sessions(sample_set.id) == []
        assert len(await store.load_card_stats(other.id)) == 1

    @pytest.mark.asyncio
    async def test_delete_stats_keeps_set(self, store, sample_set):
        await store.save_set(sample_set)
        await store.save_card_stat(CardStat(sample_set.id, 1, rating=2, total_reviews=1))
        await store.save_session(summary("a", sample_set.id))

        assert await store.delete_stats_for_set(sample_set.id) is True

        assert await store.get_set(sample_set.id) == sample_set
        assert await store.load_card_stats(sample_set.id) == []
        assert await store.load_sessions(sample_set.id) == []


class TestUnavailableStore:
    """Reads degrade to empty results and writes report False."""

    @pytest.mark.asyncio
    async def test_offline_memory_store(self, sample_set):
        store = InMemoryRecordStore()
        store.available = False

        assert await store.get_set(sample_set.id) is None
        assert await store.load_sets() == []
        assert await store.load_card_stats(sample_set.id) == []
        assert await store.save_set(sample_set) is False
        assert await store.save_card_stat(CardStat(sample_set.id, 0, rating=1)) is False
        assert await store.delete_stats_for_set(sample_set.id) is False

    @pytest.mark.asyncio
    async def test_unusable_database_path(self, tmp_path, sample_set):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        store = SQLiteRecordStore(blocker / "records.db")

        assert await store.load_sets() == []
        assert await store.load_sessions(sample_set.id) == []
        assert await store.save_set(sample_set) is False
        assert await store.save_session(summary("a", sample_set.id)) is False


class TestSQLitePersistence:
    """Tests specific to the SQLite backend."""

    @pytest.mark.asyncio
    async def test_data_survives_reopen(self, tmp_path, sample_set):
        path = tmp_path / "nested" / "records.db"
        first = SQLiteRecordStore(path)
        await first.save_set(sample_set)
        await first.save_card_stat(CardStat(sample_set.id, 0, rating=4.5, total_reviews=1, streak=1))
        first.close()

        second = SQLiteRecordStore(path)
        try:
            assert await second.get_set(sample_set.id) == sample_set
            stats = await second.load_card_stats(sample_set.id)
            assert stats[0].streak == 1
        finally:
            second.close()


class TestSerialization:
    """Tests for the persisted dictionary layout."""

    def test_card_stat_layout(self):
        data = CardStat("s1", 3, rating=2.5, total_reviews=2, rating_sum=5, last_reviewed=99).to_dict()

        assert data["id"] == "s1_3"
        assert data["setId"] == "s1"
        assert data["cardIndex"] == 3
        assert CardStat.from_dict(data) == CardStat("s1", 3, 2.5, 2, 5.0, 99, 0)

    def test_card_stat_missing_optional_fields(self):
        stat = CardStat.from_dict({"setId": "s1", "cardIndex": 0, "rating": 3, "totalReviews": 1})

        assert stat.rating_sum == 0
        assert stat.streak == 0
        assert stat.last_reviewed_at is None

    def test_legacy_session_bands(self):
        legacy = SessionSummary.from_dict(
            {"id": "x", "setId": "s1", "date": 5, "totalCards": 3,
             "ratings": {"nailed": 1, "shaky": 1, "missed": 1}, "score": 67}
        )

        assert legacy.ratings == RatingBands(low=1, mid=1, high=1)
        assert legacy.avg_rating is None


class TestSQLiteRobustness:
    """Corrupt rows and concurrent first use."""

    @pytest.mark.asyncio
    async def test_corrupt_cards_row_is_skipped(self, sqlite_store, sample_set):
        await sqlite_store.save_set(sample_set)
        with sqlite_store.engine.begin() as conn:
            conn.execute(text("INSERT INTO sets (id, name, cards) VALUES ('bad', 'Bad', '[5, \"x\"]')"))

        assert [s.id for s in await sqlite_store.load_sets()] == [sample_set.id]
        assert await sqlite_store.get_set("bad") is None

    @pytest.mark.asyncio
    async def test_concurrent_first_use_builds_one_engine(self, tmp_path, monkeypatch):
        created = []

        def counting_create_engine(*args, **kwargs):
            engine = sqlalchemy.create_engine(*args, **kwargs)
            created.append(engine)
            return engine

        monkeypatch.setattr(state_store_module, "create_engine", counting_create_engine)
        store = SQLiteRecordStore(tmp_path / "race.db")
        try:
            results = await asyncio.gather(*(store.load_card_stats(f"s{i}") for i in range(8)))

            assert results == [[]] * 8
            assert len(created) == 1
            assert store.engine is created[0]
        finally:
            store.close()
