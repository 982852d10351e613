"""
Recommendation Engine.

Proposes what a learner should teach back next. Three tiers are
concatenated in order of urgency and then truncated:

1. Decay: well-learned concepts whose effective mastery is fading
2. Gap: concepts the learner has never actually covered
3. Next step: targets of prerequisite edges whose source is now mastered

Tiers are never re-sorted against each other.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from loguru import logger

from teachback.core.decay import utc_now
from teachback.core.errors import InputValidationError
from teachback.graph.concept_graph import KnowledgeGraph, Relation


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RecommendationKind(str, Enum):
    DECAY = "decay"
    GAP = "gap"
    NEXT_STEP = "next_step"


@dataclass(frozen=True)
class Recommendation:
    """A single suggested concept."""

    concept: str  # node id
    label: str
    reason: str
    priority: Priority
    kind: RecommendationKind


@dataclass
class RecommenderConfig:
    default_limit: int = 3
    decay_mastery_min: float = 0.5  # only concepts that were once understood
    decay_ratio: float = 0.7  # effective below this share of mastery counts as fading
    gap_mastery_max: float = 0.3
    unlock_source_min: float = 0.7
    unlock_target_max: float = 0.3
    per_tier: int = 2


class RecommendationEngine:
    """Ranks next concepts from a graph snapshot."""

    def __init__(self, config: RecommenderConfig | None = None):
        self.config = config or RecommenderConfig()

    def recommend(
        self,
        graph: KnowledgeGraph,
        limit: int | None = None,
        now: datetime | None = None,
    ) -> list[Recommendation]:
        """
        Recommend up to ``limit`` concepts, most urgent first.

        Raises:
            InputValidationError: If ``limit`` is negative
        """
        cfg = self.config
        limit = cfg.default_limit if limit is None else limit
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
            raise InputValidationError("limit", "must be a non-negative integer", limit)
        now = now or utc_now()

        effective = {node_id: node.effective(now) for node_id, node in graph.nodes.items()}
        results: list[Recommendation] = []
        chosen: set[str] = set()

        def take(node_id: str, reason: str, priority: Priority, kind: RecommendationKind) -> None:
            if node_id in chosen:
                return
            chosen.add(node_id)
            results.append(Recommendation(node_id, graph.nodes[node_id].label, reason, priority, kind))

        # Decay tier
        fading = [
            node
            for node in graph.nodes.values()
            if node.mastery > cfg.decay_mastery_min and effective[node.id] < cfg.decay_ratio * node.mastery
        ]
        fading.sort(key=lambda n: n.mastery - effective[n.id], reverse=True)
        for node in fading[: cfg.per_tier]:
            take(node.id, "Previously understood but fading", Priority.HIGH, RecommendationKind.DECAY)

        # Gap tier
        gaps = [n for n in graph.nodes.values() if n.mastery < cfg.gap_mastery_max and n.sessions == 0]
        gaps.sort(key=lambda n: n.confidence, reverse=True)
        for node in gaps[: cfg.per_tier]:
            take(node.id, "Not yet understood", Priority.MEDIUM, RecommendationKind.GAP)

        # Prerequisite-unlock tier
        for edge in graph.edges:
            if edge.relation is not Relation.PREREQUISITE:
                continue
            if edge.source not in effective or edge.target not in effective:
                continue
            if effective[edge.source] > cfg.unlock_source_min and effective[edge.target] < cfg.unlock_target_max:
                source_label = graph.nodes[edge.source].label
                take(
                    edge.target,
                    f"You have mastered {source_label}; this builds on it",
                    Priority.MEDIUM,
                    RecommendationKind.NEXT_STEP,
                )

        logger.debug(f"{len(results)} candidate recommendations for {graph.user_id}")
        return results[:limit]
