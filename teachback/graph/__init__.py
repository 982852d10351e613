"""
Knowledge graph: concept store, mastery updates and recommendations.
"""

from teachback.graph.concept_graph import (
    ConceptEdge,
    ConceptNode,
    GraphStats,
    KnowledgeGraph,
    Relation,
    add_edges,
    compute_stats,
    create_empty_graph,
    infer_domain,
    to_node_id,
)
from teachback.graph.mastery_updater import LearningSessionOutcome, MasteryConfig, MasteryUpdater
from teachback.graph.recommender import Recommendation, RecommendationEngine

__all__ = [
    "ConceptEdge",
    "ConceptNode",
    "GraphStats",
    "KnowledgeGraph",
    "Relation",
    "add_edges",
    "compute_stats",
    "create_empty_graph",
    "infer_domain",
    "to_node_id",
    "LearningSessionOutcome",
    "MasteryConfig",
    "MasteryUpdater",
    "Recommendation",
    "RecommendationEngine",
]
