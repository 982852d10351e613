"""
Session Coordinator.

Turn-bounded state machine for one teach-back session. It owns no scoring
math: it tracks the session status, picks a teaching strategy per turn from
the real-time quality signal and the failure counter, flags neutral
re-asks once leading questions have been penalised, and decides when the
injected CriterionScorer should run.

Session status:
    idle -> loading -> ready -> active -> scoring -> completed
    any non-terminal status -> error (absorbing)
    reset() -> idle from anywhere, discarding turn data

Teaching strategies form a closed set with an explicit transition table;
ORIENT is only ever the starting strategy.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field

from teachback.core.errors import IllegalTransitionError, InputValidationError, StrictNumber, parse_input
from teachback.scoring.criterion import (
    CriterionScoreInput,
    CriterionScorer,
    CriterionScoreResult,
    KnowledgeBuildingMode,
    SessionMode,
)


class SessionStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ACTIVE = "active"
    SCORING = "scoring"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.ERROR)


STATUS_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.IDLE: frozenset({SessionStatus.LOADING, SessionStatus.ERROR}),
    SessionStatus.LOADING: frozenset({SessionStatus.READY, SessionStatus.ERROR}),
    SessionStatus.READY: frozenset({SessionStatus.ACTIVE, SessionStatus.ERROR}),
    SessionStatus.ACTIVE: frozenset({SessionStatus.SCORING, SessionStatus.ERROR}),
    SessionStatus.SCORING: frozenset({SessionStatus.COMPLETED, SessionStatus.ERROR}),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.ERROR: frozenset(),
}


class TeachingStrategy(str, Enum):
    ORIENT = "ORIENT"
    CLARIFY = "CLARIFY"
    PROBE_DEPTH = "PROBE_DEPTH"
    PROBE_BREADTH = "PROBE_BREADTH"
    INTEGRATE = "INTEGRATE"
    CHALLENGE = "CHALLENGE"


_FOLLOW_UPS = frozenset(s for s in TeachingStrategy if s is not TeachingStrategy.ORIENT)

STRATEGY_TRANSITIONS: dict[TeachingStrategy, frozenset[TeachingStrategy]] = {
    TeachingStrategy.ORIENT: frozenset(TeachingStrategy),
    **{strategy: _FOLLOW_UPS for strategy in _FOLLOW_UPS},
}


def validate_strategy_table(table: dict[TeachingStrategy, frozenset[TeachingStrategy]]) -> None:
    """Reject a table that is incomplete or lets a session return to ORIENT."""
    missing = set(TeachingStrategy) - set(table)
    if missing:
        raise ValueError(f"strategy table has no entry for {sorted(s.value for s in missing)}")
    for source, targets in table.items():
        if source is not TeachingStrategy.ORIENT and TeachingStrategy.ORIENT in targets:
            raise ValueError(f"{source.value} may not transition back to ORIENT")
        if not targets:
            raise ValueError(f"{source.value} has no outgoing transitions")


@dataclass
class SessionConfig:
    max_turns: int = 6
    quit_after_failures: int = 3
    clarify_after_failures: int = 2
    # Quality thresholds for CLARIFY / PROBE_DEPTH / PROBE_BREADTH
    clarify_below: float = 0.3
    depth_below: float = 0.6
    breadth_below: float = 0.8
    # Accumulated leading penalty above this asks for neutral re-asks
    leading_penalty_limit: float = 0.0


class TurnSignal(BaseModel):
    """Real-time signal for one learner turn."""

    quality: StrictNumber = Field(ge=0, le=1)
    leading_penalty: StrictNumber = Field(default=0.0, ge=0)  # tutor questions that led the answer
    failed: bool = False
    misconception: bool = False
    kb_mode: KnowledgeBuildingMode | None = None


@dataclass(frozen=True)
class StrategyTransition:
    """Audit record for one strategy selection."""

    turn: int
    from_strategy: TeachingStrategy
    to_strategy: TeachingStrategy
    signal: float
    reason: str
    leading_penalty: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "turn": self.turn,
            "from": self.from_strategy.value,
            "to": self.to_strategy.value,
            "signal": self.signal,
            "reason": self.reason,
            "leading_penalty": self.leading_penalty,
        }


@dataclass(frozen=True)
class TurnOutcome:
    turn: int
    strategy: TeachingStrategy
    should_score: bool
    quit_suggested: bool
    leading_penalty: float = 0.0  # accumulated over the session
    neutral_prompt: bool = False  # next question must not lead the learner


class SessionCoordinator:
    """Sequences one teaching session."""

    def __init__(
        self,
        scorer: CriterionScorer | None = None,
        config: SessionConfig | None = None,
        mode: SessionMode = SessionMode.CONCEPT,
        strategy_table: dict[TeachingStrategy, frozenset[TeachingStrategy]] | None = None,
    ):
        self.scorer = scorer or CriterionScorer()
        self.config = config or SessionConfig()
        if self.config.max_turns < 2:
            raise InputValidationError("max_turns", "must be at least 2", self.config.max_turns)
        self.mode = SessionMode(mode)
        self.strategy_table = strategy_table or STRATEGY_TRANSITIONS
        validate_strategy_table(self.strategy_table)
        self.status = SessionStatus.IDLE
        self.error: str | None = None
        self._clear_turns()

    def _clear_turns(self) -> None:
        self.turn = 0
        self.strategy = TeachingStrategy.ORIENT
        self.consecutive_failures = 0
        self.leading_penalty = 0.0
        self.qualities: list[float] = []
        self.kb_modes: list[KnowledgeBuildingMode] = []
        self._audit: list[StrategyTransition] = []
        self.result: CriterionScoreResult | None = None

    @property
    def audit_log(self) -> tuple[StrategyTransition, ...]:
        return tuple(self._audit)

    # =========================================================================
    # Status transitions
    # =========================================================================

    def _move(self, target: SessionStatus) -> None:
        if target not in STATUS_TRANSITIONS[self.status]:
            raise IllegalTransitionError("session", self.status.value, target.value)
        logger.debug(f"Session status {self.status.value} -> {target.value}")
        self.status = target

    def start_loading(self) -> None:
        self._move(SessionStatus.LOADING)

    def load_succeeded(self) -> None:
        self._move(SessionStatus.READY)

    def load_failed(self, reason: str) -> None:
        self.fail(reason)

    def begin(self) -> None:
        self._move(SessionStatus.ACTIVE)

    def fail(self, reason: str) -> None:
        """Move to the absorbing error state."""
        self._move(SessionStatus.ERROR)
        self.error = reason
        logger.warning(f"Session failed: {reason}")

    def reset(self) -> None:
        """Discard all turn data and return to idle."""
        self.status = SessionStatus.IDLE
        self.error = None
        self._clear_turns()

    # =========================================================================
    # Turns
    # =========================================================================

    def _select_strategy(self, signal: TurnSignal) -> tuple[TeachingStrategy, str]:
        cfg = self.config
        if self.turn == 1:
            return TeachingStrategy.ORIENT, "first turn"
        if self.consecutive_failures >= cfg.clarify_after_failures:
            return TeachingStrategy.CLARIFY, f"{self.consecutive_failures} consecutive failures"
        if signal.misconception and self.turn <= cfg.max_turns - 2:
            return TeachingStrategy.CHALLENGE, "misconception detected"
        if self.turn >= cfg.max_turns - 1:
            return TeachingStrategy.INTEGRATE, "final turns"
        if signal.quality < cfg.clarify_below:
            return TeachingStrategy.CLARIFY, "low quality"
        if signal.quality < cfg.depth_below:
            return TeachingStrategy.PROBE_DEPTH, "moderate quality"
        if signal.quality < cfg.breadth_below:
            return TeachingStrategy.PROBE_BREADTH, "good quality"
        return TeachingStrategy.INTEGRATE, "high quality"

    def _transition_strategy(self, target: TeachingStrategy, signal: float, reason: str) -> None:
        if target not in self.strategy_table[self.strategy]:
            raise IllegalTransitionError("strategy", self.strategy.value, target.value)
        self._audit.append(StrategyTransition(self.turn, self.strategy, target, signal, reason, self.leading_penalty))
        self.strategy = target

    def record_turn(self, signal: TurnSignal | dict, force_finish: bool = False) -> TurnOutcome:
        """
        Record one learner turn.

        Returns:
            TurnOutcome; when ``should_score`` is set the session has moved
            to ``scoring`` and :meth:`finish` must be called next.

        Raises:
            IllegalTransitionError: If the session is not active
            InputValidationError: If the signal is malformed
        """
        if self.status is not SessionStatus.ACTIVE:
            raise IllegalTransitionError("session", self.status.value, "record_turn")
        signal = parse_input(TurnSignal, signal)
        cfg = self.config

        self.turn += 1
        self.consecutive_failures = self.consecutive_failures + 1 if signal.failed else 0
        self.leading_penalty += signal.leading_penalty
        self.qualities.append(signal.quality)
        if signal.kb_mode is not None:
            self.kb_modes.append(signal.kb_mode)

        target, reason = self._select_strategy(signal)
        neutral_prompt = self.leading_penalty > cfg.leading_penalty_limit
        if neutral_prompt:
            reason = f"{reason}; re-ask neutrally (leading penalty {self.leading_penalty:g})"
        self._transition_strategy(target, signal.quality, reason)

        should_score = force_finish or self.turn >= cfg.max_turns - 1
        if should_score:
            self._move(SessionStatus.SCORING)
        quit_suggested = self.consecutive_failures >= cfg.quit_after_failures
        if quit_suggested:
            logger.info(f"Turn {self.turn}: {self.consecutive_failures} failures in a row, suggesting quit")
        return TurnOutcome(
            self.turn,
            self.strategy,
            should_score,
            quit_suggested,
            leading_penalty=self.leading_penalty,
            neutral_prompt=neutral_prompt,
        )

    def request_finish(self) -> None:
        """Force scoring between turns."""
        self._move(SessionStatus.SCORING)

    def session_kb_mode(self) -> KnowledgeBuildingMode:
        """Most frequent per-turn mode; ties and no data give ``mixed``."""
        counts = Counter(self.kb_modes).most_common()
        if not counts or (len(counts) > 1 and counts[0][1] == counts[1][1]):
            return KnowledgeBuildingMode.MIXED
        return counts[0][0]

    @property
    def rqs_avg(self) -> float:
        return min(1.0, sum(self.qualities) / len(self.qualities)) if self.qualities else 0.0

    def finish(self, criteria: dict[str, int]) -> CriterionScoreResult:
        """
        Score the session and complete it.

        Args:
            criteria: The five raw 1-5 criterion scores
        """
        if self.status is not SessionStatus.SCORING:
            raise IllegalTransitionError("session", self.status.value, SessionStatus.COMPLETED.value)
        payload = {
            **criteria,
            "mode": self.mode,
            "kb_mode": self.session_kb_mode(),
            "rqs_avg": self.rqs_avg,
        }
        result = self.scorer.score(parse_input(CriterionScoreInput, payload))
        self._move(SessionStatus.COMPLETED)
        self.result = result
        logger.info(f"Session completed after {self.turn} turns: grade {result.grade} ({result.weighted})")
        return result
