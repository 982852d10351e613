"""
SM-2 Retention Scheduler.

Schedules reviews of taught-back concepts with the SuperMemo 2 algorithm.
This is independent of the concept graph's forgetting curve: the graph
estimates what the learner knows now, the scheduler decides when to ask
again.

SM-2 Quality Scale:
0 - Complete blackout
1 - Incorrect, but recognised once shown
2 - Incorrect, but felt familiar
3 - Correct, with significant difficulty
4 - Correct, with some hesitation
5 - Correct, with perfect recall
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from loguru import logger
from pydantic import BaseModel, Field, StrictInt

from teachback.core.decay import ensure_utc, utc_now
from teachback.core.errors import InputValidationError, parse_input

# =============================================================================
# SM-2 Algorithm
# =============================================================================


@dataclass
class SM2Config:
    """Configuration for SM-2 algorithm."""

    initial_easiness: float = 2.5
    minimum_easiness: float = 1.3
    first_interval: int = 1  # Days for first review
    second_interval: int = 6  # Days for second review
    pass_threshold: int = 3


@dataclass
class ReviewItem:
    """Spaced repetition state for one concept."""

    concept: str
    next_review: datetime
    last_review: datetime | None = None
    interval: int = 0  # days
    ease_factor: float = 2.5
    repetitions: int = 0
    user_id: str = "default"

    def is_due(self, now: datetime | None = None) -> bool:
        return ensure_utc(self.next_review) <= ensure_utc(now or utc_now())


class ReviewQualityEvent(BaseModel):
    """One recall attempt for a concept."""

    concept: str = Field(min_length=1)
    quality: StrictInt = Field(ge=0, le=5)


def new_review_item(
    concept: str,
    now: datetime | None = None,
    config: SM2Config | None = None,
    user_id: str = "default",
) -> ReviewItem:
    """Initial review state: due immediately, no repetitions yet."""
    cfg = config or SM2Config()
    return ReviewItem(
        concept=concept,
        next_review=now or utc_now(),
        interval=0,
        ease_factor=cfg.initial_easiness,
        repetitions=0,
        user_id=user_id,
    )


class RetentionScheduler:
    """
    Implements the SM-2 spaced repetition algorithm.

    Each review item has:
    - Ease Factor (EF): How easy the item is (2.5 default, min 1.3)
    - Interval: Days until next review
    - Repetitions: Consecutive successful recalls
    """

    def __init__(self, config: SM2Config | None = None):
        self.config = config or SM2Config()

    def schedule_review(
        self,
        item: ReviewItem,
        quality: int,
        now: datetime | None = None,
    ) -> ReviewItem:
        """
        Calculate the next review for an item.

        Args:
            item: Current review state (not mutated)
            quality: Recall quality (0-5)
            now: Review time

        Returns:
            Updated ReviewItem

        Raises:
            InputValidationError: If quality is not an integer in 0-5
        """
        if isinstance(quality, bool) or not isinstance(quality, int) or not 0 <= quality <= 5:
            raise InputValidationError("quality", "must be an integer between 0 and 5", quality)
        cfg = self.config
        now = now or utc_now()

        if quality >= cfg.pass_threshold:
            if item.repetitions == 0:
                interval = cfg.first_interval
            elif item.repetitions == 1:
                interval = cfg.second_interval
            else:
                # Interval grows with the ease factor the item had before this review
                interval = max(1, round(item.interval * item.ease_factor))
            repetitions = item.repetitions + 1
        else:
            # Failed - reset to beginning
            repetitions = 0
            interval = cfg.first_interval

        # EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
        ef_delta = 0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02)
        ease = max(cfg.minimum_easiness, item.ease_factor + ef_delta)

        return replace(
            item,
            last_review=now,
            next_review=now + timedelta(days=interval),
            interval=interval,
            ease_factor=ease,
            repetitions=repetitions,
        )

    def record_review(
        self,
        event: ReviewQualityEvent | dict,
        item: ReviewItem | None = None,
        now: datetime | None = None,
        user_id: str = "default",
    ) -> ReviewItem:
        """
        Apply a review event, creating the item on first review.

        Raises:
            InputValidationError: If the event is malformed or names a
                different concept than ``item``
        """
        event = parse_input(ReviewQualityEvent, event)
        now = now or utc_now()
        if item is None:
            item = new_review_item(event.concept, now, self.config, user_id=user_id)
        elif item.concept != event.concept:
            raise InputValidationError("concept", f"event is for {event.concept!r}, item is {item.concept!r}")
        updated = self.schedule_review(item, event.quality, now)
        logger.debug(
            f"Review {event.concept}: q={event.quality} -> interval={updated.interval}d, "
            f"EF={updated.ease_factor:.2f}, reps={updated.repetitions}"
        )
        return updated


def get_due_reviews(items: Iterable[ReviewItem], now: datetime | None = None) -> list[ReviewItem]:
    """Items due at ``now``, most overdue first."""
    now = ensure_utc(now or utc_now())
    due = [item for item in items if item.is_due(now)]
    return sorted(due, key=lambda item: ensure_utc(item.next_review))


def quality_from_score(score: float) -> int:
    """
    Convert a 0-100 session score to an SM-2 quality.

    90+ -> 5, 75+ -> 4, 60+ -> 3, 45+ -> 2, 25+ -> 1, else 0
    """
    if not 0 <= score <= 100:
        raise InputValidationError("score", "must be between 0 and 100", score)
    for threshold, quality in ((90, 5), (75, 4), (60, 3), (45, 2), (25, 1)):
        if score >= threshold:
            return quality
    return 0
