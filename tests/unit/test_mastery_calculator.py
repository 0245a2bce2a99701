"""
Unit tests for mastery statistics.

Tests cover:
- Mastery percentage over reviewed cards only
- Strong/okay/weak/unreviewed buckets
- Filter counts
- Per-card ranking, weakest first
- Session summaries and history rows
"""

import pytest

from flashprep.delivery.state_store import CardStat, RatingBands, SessionSummary
from flashprep.study.mastery_calculator import MasteryCalculator


def stat(set_id, index, rating):
    return CardStat(set_id=set_id, card_index=index, rating=rating, total_reviews=1, rating_sum=rating)


@pytest.fixture
def calculator():
    return MasteryCalculator()


class TestBands:
    """Tests for card and session band thresholds."""

    @pytest.mark.parametrize(
        "rating,band",
        [(None, "unreviewed"), (5, "strong"), (4, "strong"), (3.5, "okay"), (2.5, "okay"), (2, "weak"), (0.5, "weak")],
    )
    def test_band_for(self, rating, band):
        assert MasteryCalculator.band_for(rating) == band

    def test_rating_bands_boundaries(self):
        bands = MasteryCalculator.rating_bands([2.5, 3, 3.5, 4, 0.5])

        assert bands == RatingBands(low=2, mid=2, high=1)
        assert bands.total == 5

    @pytest.mark.parametrize(
        "avg,prefix",
        [(4.5, "Perfect!"), (3.5, "Great job!"), (2.5, "Getting there."), (2.4, "Keep practicing.")],
    )
    def test_verdict(self, avg, prefix):
        assert MasteryCalculator.verdict_for(avg).startswith(prefix)


class TestMastery:
    """Tests for mastery percentage and buckets."""

    def test_unreviewed_cards_excluded_from_percent(self, calculator, sample_set):
        stats = [stat(sample_set.id, 0, 5), stat(sample_set.id, 1, 5)]

        result = calculator.mastery(sample_set, stats)

        assert result.percent == 100
        assert result.strong == 2
        assert result.unreviewed == 2

    def test_no_reviews_is_zero(self, calculator, sample_set):
        result = calculator.mastery(sample_set, [])

        assert result.percent == 0
        assert result.unreviewed == 4

    def test_buckets_sum_to_card_count(self, calculator, sample_set):
        stats = [stat(sample_set.id, 0, 4), stat(sample_set.id, 1, 2.5), stat(sample_set.id, 2, 2)]

        result = calculator.mastery(sample_set, stats)

        assert (result.strong, result.okay, result.weak, result.unreviewed) == (1, 1, 1, 1)
        assert result.total == sample_set.total
        # (4 + 2.5 + 2) / 3 = 2.833 -> 56.7%
        assert result.percent == 57

    def test_records_for_removed_cards_ignored(self, calculator, sample_set):
        stats = [stat(sample_set.id, 0, 1), stat(sample_set.id, 9, 5)]

        result = calculator.mastery(sample_set, stats)

        assert result.percent == 20
        assert result.total == 4

    def test_idempotent(self, calculator, sample_set):
        stats = [stat(sample_set.id, 0, 3)]

        assert calculator.mastery(sample_set, stats) == calculator.mastery(sample_set, stats)


class TestSetStatistics:
    """Tests for overview, filter counts and card details."""

    def test_overview(self, calculator, sample_set):
        overview = calculator.overview(sample_set, [stat(sample_set.id, 2, 4)])

        assert overview.name == "OSI Layers"
        assert overview.total == 4
        assert overview.reviewed == 1

    def test_filter_counts(self, calculator, sample_set):
        stats = [stat(sample_set.id, 0, 2.5), stat(sample_set.id, 1, 3)]

        counts = calculator.filter_counts(sample_set, stats)

        assert (counts.all, counts.weak, counts.unreviewed) == (4, 1, 2)

    def test_filter_counts_custom_threshold(self, sample_set):
        stats = [stat(sample_set.id, 0, 2.5), stat(sample_set.id, 1, 3)]

        counts = MasteryCalculator(weak_threshold=3).filter_counts(sample_set, stats)

        assert counts.weak == 2

    def test_card_details_weakest_first(self, calculator, sample_set):
        stats = [stat(sample_set.id, 0, 5), stat(sample_set.id, 1, 1.5), stat(sample_set.id, 2, 3)]

        details = calculator.card_details(sample_set, stats)

        assert [d.index for d in details] == [3, 1, 2, 0]
        assert details[0].stat is None
        assert details[0].band == "unreviewed"
        assert details[0].label == "[Image]"
        assert details[-1].band == "strong"


class TestSessions:
    """Tests for session summaries and history."""

    def test_summarize_session(self, calculator):
        summary = calculator.summarize_session("s", [0.5, 5, 3, 4], date=1000, session_id="abc")

        assert summary.id == "abc"
        assert summary.total_cards == 4
        assert summary.avg_rating == 3.1
        assert summary.ratings == RatingBands(low=1, mid=1, high=2)
        assert summary.score == 62

    def test_history_newest_first_with_shares(self):
        sessions = [
            SessionSummary("a", "s", date=1000, total_cards=4, avg_rating=3.0, ratings=RatingBands(1, 1, 2), score=60),
            SessionSummary("b", "s", date=5000, total_cards=2, avg_rating=5.0, ratings=RatingBands(0, 0, 2), score=100),
        ]

        rows = MasteryCalculator.session_history(sessions)

        assert [r.date for r in rows] == [5000, 1000]
        assert rows[0].high_share == 1.0
        assert rows[1].low_share == 0.25
        assert rows[1].high_share == 0.5

    def test_history_falls_back_to_score(self):
        legacy = SessionSummary("a", "s", date=1, total_cards=3, avg_rating=None, ratings=RatingBands(1, 1, 1), score=60)

        rows = MasteryCalculator.session_history([legacy])

        assert rows[0].avg_rating == 3.0

    def test_history_empty_session_has_zero_shares(self):
        empty = SessionSummary("a", "s", date=1, total_cards=0, avg_rating=0.0, score=0)

        row = MasteryCalculator.session_history([empty])[0]

        assert (row.high_share, row.mid_share, row.low_share) == (0.0, 0.0, 0.0)
