"""
SOLO-referenced criterion scorer.

Five criteria are each scored 1-5 by an external grader. The session grade
is a weighted mean of the five, but a single catastrophic criterion vetoes
it: ``conjunctive_pass`` is false whenever any raw score is under the floor,
no matter how high the mean is.

Grade boundaries on the 1.0-5.0 aggregate:
    A >= 4.2, B >= 3.4, C >= 2.6, D >= 1.8, else F

Legacy consumers still read a 0-100 score; it is a fixed monotonic rescale
of the aggregate (1.0 -> 20, 5.0 -> 100).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from loguru import logger
from pydantic import BaseModel, Field, StrictInt

from teachback.core.decay import round_half_up
from teachback.core.errors import InputValidationError, StrictNumber, parse_input

CRITERIA = (
    "completeness",
    "depth",
    "clarity",
    "structural_coherence",
    "pedagogical_insight",
)


class SessionMode(str, Enum):
    WHYNOT = "whynot"
    VOCABULARY = "vocabulary"
    CONCEPT = "concept"
    PROCEDURE = "procedure"


class KnowledgeBuildingMode(str, Enum):
    """Whether the learner built new understanding or recited it."""

    BUILDING = "building"
    TELLING = "telling"
    MIXED = "mixed"


# Production weighting per session mode, in CRITERIA order
PRODUCTION_MODE_WEIGHTS: dict[SessionMode, tuple[float, ...]] = {
    SessionMode.WHYNOT: (0.15, 0.30, 0.15, 0.20, 0.20),
    SessionMode.VOCABULARY: (0.20, 0.15, 0.30, 0.10, 0.25),
    SessionMode.CONCEPT: (0.20, 0.25, 0.20, 0.25, 0.10),
    SessionMode.PROCEDURE: (0.25, 0.15, 0.25, 0.20, 0.15),
}

EQUAL_WEIGHTS = (1.0, 1.0, 1.0, 1.0, 1.0)

GRADE_BOUNDARIES = (("A", 4.2), ("B", 3.4), ("C", 2.6), ("D", 1.8))


@dataclass
class ScoringConfig:
    """Scorer configuration."""

    conjunctive_floor: int = 2
    high_grade_floor: int | None = None  # e.g. 3: A/B only pass when every criterion reaches it
    use_mode_weights: bool = False
    mode_weights: dict[SessionMode, tuple[float, ...]] = field(default_factory=dict)

    def weights_for(self, mode: SessionMode) -> tuple[float, ...]:
        if mode in self.mode_weights:
            weights = self.mode_weights[mode]
        elif self.use_mode_weights:
            weights = PRODUCTION_MODE_WEIGHTS[mode]
        else:
            weights = EQUAL_WEIGHTS
        if len(weights) != len(CRITERIA) or any(w <= 0 for w in weights):
            raise InputValidationError("weights", "need five positive weights", weights)
        return weights


class CriterionScoreInput(BaseModel):
    """Raw criterion scores plus session context."""

    completeness: StrictInt = Field(ge=1, le=5)
    depth: StrictInt = Field(ge=1, le=5)
    clarity: StrictInt = Field(ge=1, le=5)
    structural_coherence: StrictInt = Field(ge=1, le=5)
    pedagogical_insight: StrictInt = Field(ge=1, le=5)
    mode: SessionMode = SessionMode.CONCEPT
    kb_mode: KnowledgeBuildingMode = KnowledgeBuildingMode.MIXED
    rqs_avg: StrictNumber = Field(default=0.0, ge=0, le=1)

    def raw(self) -> dict[str, int]:
        return {name: getattr(self, name) for name in CRITERIA}


@dataclass(frozen=True)
class LegacyScore:
    """0-100 view of a result for consumers of the older additive scheme."""

    total: int
    grade: str  # S, A, B, C or D
    breakdown: dict[str, int]


@dataclass(frozen=True)
class CriterionScoreResult:
    raw: dict[str, int]
    weighted: float
    grade: str
    conjunctive_pass: bool
    legacy_score: int
    mode: SessionMode
    kb_mode: KnowledgeBuildingMode
    rqs_avg: float

    @property
    def legacy(self) -> LegacyScore:
        return to_legacy(self)


def grade_for(weighted: float) -> str:
    """Letter grade for an aggregate on the 1-5 scale."""
    for grade, boundary in GRADE_BOUNDARIES:
        if weighted >= boundary:
            return grade
    return "F"


def legacy_total(weighted: float) -> int:
    return int(round_half_up(weighted * 20))


def to_legacy(result: CriterionScoreResult) -> LegacyScore:
    """Rescale a result for the older 0-100 scheme."""
    breakdown = {name: int(round_half_up((value - 1) / 4 * 100)) for name, value in result.raw.items()}
    total = result.legacy_score
    if result.grade == "A":
        grade = "S" if total >= 90 else "A"
    elif result.grade in ("B", "C"):
        grade = result.grade
    else:
        grade = "D"
    return LegacyScore(total=total, grade=grade, breakdown=breakdown)


def legacy_to_solo(score: float) -> int:
    """Map a legacy 0-100 criterion score onto the 1-5 scale."""
    if score >= 90:
        return 5
    if score >= 75:
        return 4
    if score >= 60:
        return 3
    if score >= 45:
        return 2
    return 1


class CriterionScorer:
    """Computes the weighted, conjunctive session grade."""

    def __init__(self, config: ScoringConfig | None = None):
        self.config = config or ScoringConfig()

    def score(self, data: CriterionScoreInput | dict) -> CriterionScoreResult:
        """
        Grade one session.

        Raises:
            InputValidationError: If a criterion is missing, not an integer,
                or outside 1-5, or the mode is unknown
        """
        payload = parse_input(CriterionScoreInput, data)
        cfg = self.config
        raw = payload.raw()
        weights = cfg.weights_for(payload.mode)

        total_weight = sum(weights)
        mean = sum(raw[name] * w for name, w in zip(CRITERIA, weights)) / total_weight
        weighted = round_half_up(mean, 2)

        grade = grade_for(weighted)

        floor = cfg.conjunctive_floor
        if cfg.high_grade_floor is not None and grade in ("A", "B"):
            floor = max(floor, cfg.high_grade_floor)
        lowest = min(raw.values())
        conjunctive_pass = lowest >= floor
        if not conjunctive_pass:
            logger.debug(f"Conjunctive veto: lowest criterion {lowest} < floor {floor} for grade {grade}")

        return CriterionScoreResult(
            raw=raw,
            weighted=weighted,
            grade=grade,
            conjunctive_pass=conjunctive_pass,
            legacy_score=legacy_total(weighted),
            mode=payload.mode,
            kb_mode=payload.kb_mode,
            rqs_avg=payload.rqs_avg,
        )
