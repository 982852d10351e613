"""
Multi-dimensional Elo-style rating.

Each (user, topic, dimension) pair carries its own rating. A session's
observed 1-5 criterion score is compared with the score the current rating
predicts:

    expected = clamp(1 + (rating - 800) / 200, 1, 5)      # 1200 <=> 3.0
    new      = round(rating + K * (observed - expected))

K is 40 while a key is provisional (first five sessions) and 16 after.
Every update appends an immutable history entry; history is never edited.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from loguru import logger

from teachback.core.decay import clamp, round_half_up, utc_now
from teachback.core.errors import InputValidationError


class RatingDimension(str, Enum):
    """Dimensions tracked per topic."""

    COMPLETENESS = "completeness"
    DEPTH = "depth"
    CLARITY = "clarity"
    STRUCTURAL_COHERENCE = "structural_coherence"
    PEDAGOGICAL_INSIGHT = "pedagogical_insight"
    OVERALL = "overall"

    @classmethod
    def parse(cls, value: str | RatingDimension) -> RatingDimension:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as e:
            raise InputValidationError("dimension", "unknown rating dimension", value) from e


CRITERIA_DIMENSIONS = [d for d in RatingDimension if d is not RatingDimension.OVERALL]


@dataclass
class RatingConfig:
    """Rating constants."""

    initial_rating: int = 1200
    rating_floor: int = 400
    provisional_k: int = 40
    established_k: int = 16
    provisional_sessions: int = 5
    clamp_expected: bool = True


@dataclass
class RatingRecord:
    """Current rating for one (user, topic, dimension) key."""

    user_id: str
    topic: str
    dimension: RatingDimension
    rating: int = 1200
    k_factor: int = 40
    session_count: int = 0
    peak_rating: int = 1200
    updated_at: datetime | None = None

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.user_id, self.topic, self.dimension.value)


@dataclass(frozen=True)
class EloHistoryEntry:
    """Write-once record of one rating change."""

    user_id: str
    topic: str
    dimension: RatingDimension
    rating_before: int
    rating_after: int
    delta: int
    created_at: datetime


@dataclass(frozen=True)
class RatingUpdateResult:
    dimension: RatingDimension
    before: int
    after: int
    delta: int


@dataclass
class RatingUpdate:
    """Result of one update: the new record plus its history row."""

    record: RatingRecord
    history: EloHistoryEntry

    @property
    def previous_session_count(self) -> int:
        """Session count the update was computed from; storage must still hold it."""
        return self.record.session_count - 1

    @property
    def result(self) -> RatingUpdateResult:
        return RatingUpdateResult(
            dimension=self.history.dimension,
            before=self.history.rating_before,
            after=self.history.rating_after,
            delta=self.history.delta,
        )


def expected_score(rating: float, clamp_to_scale: bool = True) -> float:
    """Project a rating onto the 1-5 criterion scale."""
    value = 1 + (rating - 800) / 200
    return clamp(value, 1.0, 5.0) if clamp_to_scale else value


def k_factor_for(session_count: int, config: RatingConfig | None = None) -> int:
    """K-factor for a key that has seen ``session_count`` sessions (including this one)."""
    cfg = config or RatingConfig()
    return cfg.provisional_k if session_count <= cfg.provisional_sessions else cfg.established_k


def _validate_observed(observed: float, field_name: str = "observed") -> float:
    if isinstance(observed, bool) or not isinstance(observed, (int, float)):
        raise InputValidationError(field_name, "must be a number between 1 and 5", observed)
    if not 1 <= observed <= 5:
        raise InputValidationError(field_name, "must be between 1 and 5", observed)
    return float(observed)


class RatingEngine:
    """Stateless rating math; records are supplied by the caller."""

    def __init__(self, config: RatingConfig | None = None):
        self.config = config or RatingConfig()

    def new_record(self, user_id: str, topic: str, dimension: str | RatingDimension) -> RatingRecord:
        """Default record for a key that has never been rated."""
        cfg = self.config
        return RatingRecord(
            user_id=user_id,
            topic=topic,
            dimension=RatingDimension.parse(dimension),
            rating=cfg.initial_rating,
            k_factor=cfg.provisional_k,
            session_count=0,
            peak_rating=cfg.initial_rating,
        )

    def update(
        self,
        record: RatingRecord,
        observed: float,
        now: datetime | None = None,
    ) -> RatingUpdate:
        """
        Apply one observed score to a record.

        Args:
            record: Current record (not mutated)
            observed: Criterion score in [1, 5]
            now: Timestamp for the history row

        Returns:
            RatingUpdate with the new record and its history entry
        """
        observed = _validate_observed(observed, record.dimension.value)
        now = now or utc_now()
        cfg = self.config

        session_count = record.session_count + 1
        k = k_factor_for(session_count, cfg)
        expected = expected_score(record.rating, cfg.clamp_expected)
        new_rating = int(round_half_up(record.rating + k * (observed - expected)))
        new_rating = max(cfg.rating_floor, new_rating)

        updated = RatingRecord(
            user_id=record.user_id,
            topic=record.topic,
            dimension=record.dimension,
            rating=new_rating,
            k_factor=k,
            session_count=session_count,
            peak_rating=max(record.peak_rating, new_rating),
            updated_at=now,
        )
        entry = EloHistoryEntry(
            user_id=record.user_id,
            topic=record.topic,
            dimension=record.dimension,
            rating_before=record.rating,
            rating_after=new_rating,
            delta=new_rating - record.rating,
            created_at=now,
        )
        logger.debug(
            f"Elo {record.topic}/{record.dimension.value}: {record.rating} -> {new_rating} "
            f"(expected={expected:.2f}, observed={observed}, K={k})"
        )
        return RatingUpdate(record=updated, history=entry)

    def update_from_score(
        self,
        records: Mapping[RatingDimension, RatingRecord],
        criteria: Mapping[str, int],
        weighted: float,
        now: datetime | None = None,
    ) -> dict[RatingDimension, RatingUpdate]:
        """
        Update every dimension from one scored session.

        The five criterion dimensions use their raw scores; ``overall`` uses the
        already computed weighted composite. Missing records must be created
        by the caller with :meth:`new_record`.
        """
        now = now or utc_now()
        updates: dict[RatingDimension, RatingUpdate] = {}
        for dimension in CRITERIA_DIMENSIONS:
            if dimension.value not in criteria:
                raise InputValidationError(dimension.value, "missing criterion score")
            updates[dimension] = self.update(records[dimension], criteria[dimension.value], now)
        updates[RatingDimension.OVERALL] = self.update(records[RatingDimension.OVERALL], weighted, now)
        return updates


# =============================================================================
# Summaries
# =============================================================================


@dataclass
class RatingSummary:
    overall_rating: int = 1200
    topics: int = 0
    peak_rating: int = 1200


@dataclass
class RatingTrend:
    points: list[int] = field(default_factory=list)  # rating_after, oldest first
    net_delta: int = 0
    direction: str = "flat"  # rising | falling | flat


def summarize_ratings(records: Iterable[RatingRecord], initial_rating: int = 1200) -> RatingSummary:
    """Average overall rating across topics, topic count and peak."""
    records = list(records)
    overall = [r.rating for r in records if r.dimension is RatingDimension.OVERALL]
    average = int(round_half_up(sum(overall) / len(overall))) if overall else initial_rating
    peak = max([initial_rating] + [r.peak_rating for r in records])
    return RatingSummary(
        overall_rating=average,
        topics=len({r.topic for r in records}),
        peak_rating=peak,
    )


def rating_trend(history: Iterable[EloHistoryEntry]) -> RatingTrend:
    """Trend of ``rating_after`` values for one key, in chronological order."""
    entries = sorted(history, key=lambda e: e.created_at)
    if not entries:
        return RatingTrend()
    points = [e.rating_after for e in entries]
    net = points[-1] - entries[0].rating_before
    direction = "rising" if net > 0 else "falling" if net < 0 else "flat"
    return RatingTrend(points=points, net_delta=net, direction=direction)
