"""
Mastery Updater.

Applies a completed teaching session to a learner's concept graph:

- Mastered labels gain mastery (capped per session by the score), get more
  stable and more confident, and record the session in their provenance.
- Gap labels that the graph has never seen are recorded as "known unknowns"
  with a low starting mastery and no exposure timestamp.

The input graph is never mutated; a new snapshot with recomputed stats is
returned.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from loguru import logger
from pydantic import BaseModel, Field, field_validator

from teachback.core.decay import clamp, utc_now
from teachback.core.errors import StrictNumber, parse_input
from teachback.graph.concept_graph import (
    ConceptNode,
    KnowledgeGraph,
    compute_stats,
    infer_domain,
    to_node_id,
)


@dataclass
class MasteryConfig:
    """Constants for the mastery update."""

    gain_cap: float = 0.4  # mastery gained from a perfect session
    provenance_limit: int = 10
    min_decay_rate: float = 0.1
    decay_step: float = 0.02
    confidence_step: float = 0.15
    # New mastered concept
    new_decay_rate: float = 0.3
    new_confidence: float = 0.4
    # New gap concept
    gap_mastery: float = 0.1
    gap_decay_rate: float = 0.4
    gap_confidence: float = 0.2


class LearningSessionOutcome(BaseModel):
    """Result of one completed teaching session."""

    id: str = Field(min_length=1)
    date: datetime
    title: str
    domain: str | None = None
    score: StrictNumber = Field(ge=0, le=100)
    mastered: list[str] = Field(default_factory=list)
    gaps: list[str] = Field(default_factory=list)

    @field_validator("mastered", "gaps")
    @classmethod
    def _dedupe(cls, labels: list[str]) -> list[str]:
        seen: set[str] = set()
        result = []
        for label in labels:
            label = label.strip()
            key = to_node_id(label)
            if not key:
                raise ValueError(f"label {label!r} has no usable characters")
            if key not in seen:
                seen.add(key)
                result.append(label)
        return result


class MasteryUpdater:
    """Folds session outcomes into a knowledge graph."""

    def __init__(self, config: MasteryConfig | None = None):
        self.config = config or MasteryConfig()

    def gain_for(self, score: float) -> float:
        """Mastery gain for a session score (0-100)."""
        return (score / 100.0) * self.config.gain_cap

    def apply(
        self,
        graph: KnowledgeGraph,
        outcome: LearningSessionOutcome | dict,
        now: datetime | None = None,
    ) -> KnowledgeGraph:
        """
        Apply a session outcome to a graph.

        Args:
            graph: Current snapshot (left untouched)
            outcome: Session outcome, a model or a plain dict
            now: Timestamp recorded as last_seen on mastered concepts

        Returns:
            New KnowledgeGraph with updated nodes and recomputed stats

        Raises:
            InputValidationError: If the outcome is malformed
        """
        outcome = parse_input(LearningSessionOutcome, outcome)
        now = now or utc_now()
        cfg = self.config
        gain = self.gain_for(outcome.score)
        domain = outcome.domain or infer_domain(outcome.title)

        nodes = {node_id: replace(node, source_sessions=list(node.source_sessions)) for node_id, node in graph.nodes.items()}

        for label in outcome.mastered:
            node_id = to_node_id(label)
            node = nodes.get(node_id)
            if node is None:
                nodes[node_id] = ConceptNode(
                    id=node_id,
                    label=label,
                    domain=domain,
                    mastery=clamp(gain),
                    sessions=1,
                    last_seen=now,
                    decay_rate=cfg.new_decay_rate,
                    confidence=cfg.new_confidence,
                    source_sessions=[outcome.id],
                )
                logger.debug(f"New concept {node_id}: mastery={gain:.3f}")
                continue

            node.mastery = clamp(node.mastery + gain)
            node.sessions += 1
            node.last_seen = now
            node.decay_rate = max(cfg.min_decay_rate, node.decay_rate - cfg.decay_step)
            node.confidence = clamp(node.confidence + cfg.confidence_step)
            node.source_sessions = (node.source_sessions + [outcome.id])[-cfg.provenance_limit :]
            logger.debug(f"Reinforced {node_id}: mastery={node.mastery:.3f}, sessions={node.sessions}")

        for label in outcome.gaps:
            node_id = to_node_id(label)
            if node_id in nodes:
                continue
            nodes[node_id] = ConceptNode(
                id=node_id,
                label=label,
                domain=domain,
                mastery=cfg.gap_mastery,
                sessions=0,
                last_seen=None,
                decay_rate=cfg.gap_decay_rate,
                confidence=cfg.gap_confidence,
                source_sessions=[],
            )

        stats = compute_stats(nodes.values(), previous=graph.stats, now=now)
        logger.info(
            f"Applied session {outcome.id} to {graph.user_id}: "
            f"{len(outcome.mastered)} mastered, {len(outcome.gaps)} gaps, "
            f"avg={stats.avg_mastery:.3f}"
        )
        return KnowledgeGraph(
            user_id=graph.user_id,
            updated_at=now,
            nodes=nodes,
            edges=list(graph.edges),
            stats=stats,
            version=graph.version,
        )
