"""
Unit tests for the SM-2 retention scheduler.

SM-2 Quality Scale:
0-2 - Failed recall (reset)
3-5 - Successful recall (interval grows)
"""

from datetime import timedelta

import pytest

from teachback.core.errors import InputValidationError
from teachback.study.retention_scheduler import (
    RetentionScheduler,
    ReviewItem,
    get_due_reviews,
    new_review_item,
    quality_from_score,
)


@pytest.fixture
def scheduler():
    return RetentionScheduler()


@pytest.fixture
def item(now):
    return new_review_item("recursion", now)


class TestScheduleReview:
    def test_new_item_defaults(self, item, now):
        assert item.interval == 0
        assert item.repetitions == 0
        assert item.ease_factor == 2.5
        assert item.next_review == now

    def test_interval_progression(self, scheduler, item, now):
        first = scheduler.schedule_review(item, 4, now)
        assert first.interval == 1
        assert first.repetitions == 1
        assert first.next_review == now + timedelta(days=1)

        second = scheduler.schedule_review(first, 4, now)
        assert second.interval == 6
        assert second.repetitions == 2

        third = scheduler.schedule_review(second, 4, now)
        # grows with the ease factor held before this review
        assert third.interval == round(6 * second.ease_factor)
        assert third.repetitions == 3

    def test_perfect_recall_raises_ease(self, scheduler, item, now):
        assert scheduler.schedule_review(item, 5, now).ease_factor == pytest.approx(2.6)

    def test_quality_four_keeps_ease(self, scheduler, item, now):
        assert scheduler.schedule_review(item, 4, now).ease_factor == pytest.approx(2.5)

    def test_failure_resets_after_long_streak(self, scheduler, item, now):
        for _ in range(8):
            item = scheduler.schedule_review(item, 5, now)
        assert item.interval > 6

        failed = scheduler.schedule_review(item, 2, now)
        assert failed.repetitions == 0
        assert failed.interval == 1

    def test_ease_never_below_minimum(self, scheduler, item, now):
        for _ in range(20):
            item = scheduler.schedule_review(item, 0, now)
            assert item.ease_factor >= 1.3
        assert item.ease_factor == pytest.approx(1.3)

    def test_input_item_is_untouched(self, scheduler, item, now):
        scheduler.schedule_review(item, 5, now)
        assert item.repetitions == 0

    @pytest.mark.parametrize("quality", [-1, 6, 3.5, True])
    def test_rejects_bad_quality(self, scheduler, item, now, quality):
        with pytest.raises(InputValidationError) as exc:
            scheduler.schedule_review(item, quality, now)
        assert exc.value.field == "quality"


class TestRecordReview:
    def test_creates_item_on_first_review(self, scheduler, now):
        item = scheduler.record_review({"concept": "heaps", "quality": 5}, None, now)
        assert item.concept == "heaps"
        assert item.repetitions == 1
        assert item.last_review == now

    def test_rejects_mismatched_concept(self, scheduler, item, now):
        with pytest.raises(InputValidationError):
            scheduler.record_review({"concept": "heaps", "quality": 5}, item, now)

    def test_rejects_malformed_event(self, scheduler, now):
        with pytest.raises(InputValidationError) as exc:
            scheduler.record_review({"concept": "heaps", "quality": 9}, None, now)
        assert exc.value.field == "quality"


class TestDueReviews:
    def test_most_overdue_first(self, now):
        items = [
            ReviewItem("a", next_review=now - timedelta(days=1)),
            ReviewItem("b", next_review=now + timedelta(days=1)),
            ReviewItem("c", next_review=now - timedelta(days=5)),
            ReviewItem("d", next_review=now),
        ]
        due = get_due_reviews(items, now)
        assert [i.concept for i in due] == ["c", "a", "d"]

    def test_nothing_due(self, now):
        assert get_due_reviews([ReviewItem("a", next_review=now + timedelta(hours=1))], now) == []


class TestQualityFromScore:
    @pytest.mark.parametrize(
        "score,quality",
        [(100, 5), (90, 5), (80, 4), (75, 4), (60, 3), (45, 2), (30, 1), (25, 1), (24, 0), (0, 0)],
    )
    def test_mapping(self, score, quality):
        assert quality_from_score(score) == quality

    def test_rejects_out_of_range(self):
        with pytest.raises(InputValidationError):
            quality_from_score(120)
