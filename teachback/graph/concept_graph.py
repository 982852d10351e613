"""
Concept Graph Store.

Data model for a learner's knowledge state:
- ConceptNode: one concept with mastery, confidence and forgetting parameters
- ConceptEdge: a typed dependency between two concepts
- KnowledgeGraph: nodes + edges + stats derived from them

Stats are always recomputed from the nodes and the previous snapshot's
stats; they are never an independent source of truth.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Iterable

from loguru import logger

from teachback.core.decay import effective_mastery, ensure_utc, utc_now
from teachback.core.errors import GraphIntegrityError, InputValidationError

OTHER_DOMAIN = "other"

# Keyword -> domain lookup used when a session does not name its domain
DOMAIN_KEYWORDS: dict[str, list[str]] = {
    "frontend": ["react", "vue", "css", "javascript", "html", "next.js", "frontend"],
    "backend": ["python", "node", "api", "database", "sql", "django", "backend"],
    "ai_ml": ["ai", "ml", "machine learning", "deep learning", "llm", "neural"],
    "business": ["strategy", "marketing", "sales", "management", "finance", "ux"],
    "science": ["physics", "chemistry", "biology", "mathematics", "math", "statistics", "algorithm"],
    "social_studies": ["history", "geography", "politics", "economics", "society"],
}


class Relation(str, Enum):
    """Edge relation types."""

    PREREQUISITE = "prerequisite"
    RELATED = "related"
    EXTENDS = "extends"
    CONTRASTS = "contrasts"


@dataclass
class ConceptNode:
    """A single concept in the learner's graph."""

    id: str  # stable slug, e.g. "loop_invariants"
    label: str
    domain: str = OTHER_DOMAIN
    mastery: float = 0.0  # 0-1
    sessions: int = 0
    last_seen: datetime | None = None
    decay_rate: float = 0.3  # lower = slower forgetting
    confidence: float = 0.0  # 0-1
    source_sessions: list[str] = field(default_factory=list)  # most recent last

    @property
    def stability(self) -> float:
        """Inverse of the decay rate."""
        return 1.0 / self.decay_rate

    def effective(self, now: datetime | None = None) -> float:
        """Mastery after forgetting."""
        return effective_mastery(self.mastery, self.last_seen, self.decay_rate, now)

    def validate(self) -> ConceptNode:
        """Check the stored bounds; raises InputValidationError naming the field."""
        for name in ("mastery", "confidence"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise InputValidationError(name, f"must be within [0, 1] (node {self.id!r})", value)
        if not self.decay_rate > 0:
            raise InputValidationError("decay_rate", f"must be positive (node {self.id!r})", self.decay_rate)
        if self.sessions < 0:
            raise InputValidationError("sessions", f"must not be negative (node {self.id!r})", self.sessions)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "domain": self.domain,
            "mastery": self.mastery,
            "sessions": self.sessions,
            "last_seen": self.last_seen.isoformat() if self.last_seen else None,
            "decay_rate": self.decay_rate,
            "confidence": self.confidence,
            "source_sessions": list(self.source_sessions),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConceptNode:
        """Load a stored node, rejecting values outside the node's bounds."""
        last_seen = data.get("last_seen")
        try:
            node = cls(
                id=data["id"],
                label=data.get("label", data["id"]),
                domain=data.get("domain", OTHER_DOMAIN),
                mastery=float(data.get("mastery", 0.0)),
                sessions=int(data.get("sessions", 0)),
                last_seen=ensure_utc(datetime.fromisoformat(last_seen)) if last_seen else None,
                decay_rate=float(data.get("decay_rate", 0.3)),
                confidence=float(data.get("confidence", 0.0)),
                source_sessions=list(data.get("source_sessions") or []),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InputValidationError("nodes", f"malformed node: {e}", data) from e
        return node.validate()


@dataclass(frozen=True)
class ConceptEdge:
    """A typed relation from ``source`` to ``target``."""

    source: str
    target: str
    relation: Relation
    strength: float = 1.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "target": self.target,
            "relation": self.relation.value,
            "strength": self.strength,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConceptEdge:
        try:
            relation = Relation(data.get("relation"))
        except ValueError as e:
            raise GraphIntegrityError("relation", "unknown relation", data.get("relation")) from e
        return cls(
            source=data["source"],
            target=data["target"],
            relation=relation,
            strength=float(data.get("strength", 1.0)),
        )


@dataclass
class DomainStats:
    """Rollup for one domain."""

    count: int = 0
    avg_mastery: float = 0.0


@dataclass
class GraphStats:
    """Derived statistics for a graph snapshot."""

    total_concepts: int = 0
    avg_mastery: float = 0.0  # mean effective mastery
    domains: dict[str, DomainStats] = field(default_factory=dict)
    learning_velocity: float = 0.0  # change in avg_mastery since previous snapshot
    retention_score: float = 1.0  # mean(effective / actual), capped at 1.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_concepts": self.total_concepts,
            "avg_mastery": self.avg_mastery,
            "domains": {
                name: {"count": d.count, "avg_mastery": d.avg_mastery}
                for name, d in self.domains.items()
            },
            "learning_velocity": self.learning_velocity,
            "retention_score": self.retention_score,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> GraphStats:
        if not data:
            return cls()
        return cls(
            total_concepts=int(data.get("total_concepts", 0)),
            avg_mastery=float(data.get("avg_mastery", 0.0)),
            domains={
                name: DomainStats(count=int(d.get("count", 0)), avg_mastery=float(d.get("avg_mastery", 0.0)))
                for name, d in (data.get("domains") or {}).items()
            },
            learning_velocity=float(data.get("learning_velocity", 0.0)),
            retention_score=float(data.get("retention_score", 1.0)),
        )


@dataclass
class KnowledgeGraph:
    """A learner's concept graph snapshot."""

    user_id: str
    updated_at: datetime
    nodes: dict[str, ConceptNode] = field(default_factory=dict)
    edges: list[ConceptEdge] = field(default_factory=list)
    stats: GraphStats = field(default_factory=GraphStats)
    version: int = 0  # stored revision this snapshot was built from

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "updated_at": self.updated_at.isoformat(),
            "nodes": [n.to_dict() for n in self.nodes.values()],
            "edges": [e.to_dict() for e in self.edges],
            "stats": self.stats.to_dict(),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KnowledgeGraph:
        """Load a snapshot; edges are re-validated against the loaded nodes."""
        nodes = [ConceptNode.from_dict(n) for n in data.get("nodes") or []]
        updated_at = data.get("updated_at")
        graph = cls(
            user_id=data.get("user_id", "default"),
            updated_at=ensure_utc(datetime.fromisoformat(updated_at)) if updated_at else utc_now(),
            nodes={n.id: n for n in nodes},
            stats=GraphStats.from_dict(data.get("stats")),
            version=int(data.get("version", 0)),
        )
        edges = [ConceptEdge.from_dict(e) for e in data.get("edges") or []]
        graph.edges = _merge_edges(graph, [], edges)
        return graph


# =============================================================================
# Utilities
# =============================================================================


def to_node_id(label: str) -> str:
    """
    Slug for a concept label.

    "Loop Invariants" -> "loop_invariants". Unicode word characters are kept.
    """
    slug = re.sub(r"\s+", "_", label.strip().lower())
    return re.sub(r"[^\w]", "", slug)


def infer_domain(title: str) -> str:
    """Classify a session title by keyword; falls back to ``other``."""
    lowered = title.lower()
    for domain, keywords in DOMAIN_KEYWORDS.items():
        for keyword in keywords:
            if re.search(rf"(?<!\w){re.escape(keyword)}(?!\w)", lowered):
                return domain
    return OTHER_DOMAIN


def create_empty_graph(user_id: str = "default", now: datetime | None = None) -> KnowledgeGraph:
    """Fresh graph with no concepts."""
    return KnowledgeGraph(user_id=user_id, updated_at=now or utc_now())


def compute_stats(
    nodes: Iterable[ConceptNode],
    previous: GraphStats | None = None,
    now: datetime | None = None,
) -> GraphStats:
    """
    Recompute graph stats.

    Args:
        nodes: Current nodes
        previous: Stats of the previous snapshot (for velocity)
        now: Evaluation time for the decay model

    Returns:
        GraphStats with per-domain rollups of effective mastery
    """
    nodes = list(nodes)
    now = now or utc_now()
    domains: dict[str, DomainStats] = {}
    total_effective = 0.0
    retention_sum = 0.0

    for node in nodes:
        eff = node.effective(now)
        rollup = domains.setdefault(node.domain, DomainStats())
        rollup.count += 1
        rollup.avg_mastery += eff
        total_effective += eff
        retention_sum += eff / max(node.mastery, 0.01)

    for rollup in domains.values():
        rollup.avg_mastery = rollup.avg_mastery / rollup.count if rollup.count else 0.0

    avg = total_effective / len(nodes) if nodes else 0.0
    prev_avg = previous.avg_mastery if previous else 0.0
    retention = retention_sum / len(nodes) if nodes else 1.0

    return GraphStats(
        total_concepts=len(nodes),
        avg_mastery=avg,
        domains=domains,
        learning_velocity=avg - prev_avg,
        retention_score=min(1.0, retention),
    )


def validate_edge(graph: KnowledgeGraph, edge: ConceptEdge) -> None:
    """Raise GraphIntegrityError unless ``edge`` fits ``graph``."""
    if not isinstance(edge.relation, Relation):
        raise GraphIntegrityError("relation", "unknown relation", edge.relation)
    if edge.source not in graph.nodes:
        raise GraphIntegrityError("source", f"no node with id {edge.source!r}", edge.source)
    if edge.target not in graph.nodes:
        raise GraphIntegrityError("target", f"no node with id {edge.target!r}", edge.target)
    if edge.source == edge.target:
        raise GraphIntegrityError("target", "an edge cannot point at its own source", edge.target)
    if not 0.0 <= edge.strength <= 1.0:
        raise InputValidationError("strength", "must be within [0, 1]", edge.strength)


def _merge_edges(
    graph: KnowledgeGraph,
    existing: list[ConceptEdge],
    incoming: Iterable[ConceptEdge],
) -> list[ConceptEdge]:
    merged = {(e.source, e.target, e.relation): e for e in existing}
    for edge in incoming:
        validate_edge(graph, edge)
        merged[(edge.source, edge.target, edge.relation)] = edge
    return list(merged.values())


def add_edges(graph: KnowledgeGraph, edges: Iterable[ConceptEdge]) -> KnowledgeGraph:
    """
    Return a new graph with ``edges`` added.

    All edges are validated before any is applied; a dangling endpoint
    rejects the whole batch. Re-adding an existing (source, target,
    relation) replaces its strength.
    """
    merged = _merge_edges(graph, graph.edges, list(edges))
    logger.debug(f"Graph {graph.user_id}: {len(merged)} edges after merge")
    return replace(graph, edges=merged, nodes=dict(graph.nodes))
