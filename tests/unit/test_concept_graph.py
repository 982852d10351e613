"""
Unit tests for the concept graph store.

Tests:
- Slugs and domain inference
- Stats recomputation (average, per-domain, velocity, retention)
- Edge validation
- Serialisation
"""

from datetime import timedelta

import pytest

from teachback.core.errors import GraphIntegrityError, InputValidationError
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


@pytest.fixture
def graph(now):
    g = create_empty_graph("u1", now)
    g.nodes = {
        "recursion": ConceptNode("recursion", "Recursion", "science", mastery=0.8, sessions=3, last_seen=now),
        "memoization": ConceptNode("memoization", "Memoization", "science", mastery=0.1),
    }
    return g


class TestNodeIds:
    def test_slug(self):
        assert to_node_id("Loop Invariants") == "loop_invariants"

    def test_collapses_whitespace_and_drops_punctuation(self):
        assert to_node_id("  Big-O   notation! ") == "bigo_notation"

    def test_keeps_unicode_word_characters(self):
        assert to_node_id("再帰 関数") == "再帰_関数"


class TestDomainInference:
    def test_keyword_match(self):
        assert infer_domain("Intro to React hooks") == "frontend"

    def test_word_boundary(self):
        # "ai" inside "explain" must not count
        assert infer_domain("Explain photosynthesis") == "other"

    def test_default_bucket(self):
        assert infer_domain("Knitting basics") == "other"


class TestComputeStats:
    def test_empty_graph(self):
        stats = compute_stats([])
        assert stats.total_concepts == 0
        assert stats.avg_mastery == 0.0
        assert stats.domains == {}
        assert stats.retention_score == 1.0

    def test_create_empty_graph_stats(self, now):
        assert create_empty_graph("u1", now).stats == GraphStats()

    def test_average_and_domains(self, graph, now):
        stats = compute_stats(graph.nodes.values(), now=now)
        assert stats.total_concepts == 2
        assert stats.avg_mastery == pytest.approx(0.45)
        assert stats.domains["science"].count == 2

    def test_velocity_is_signed_difference(self, graph, now):
        previous = GraphStats(avg_mastery=0.6)
        stats = compute_stats(graph.nodes.values(), previous, now)
        assert stats.learning_velocity == pytest.approx(0.45 - 0.6)

    def test_retention_reflects_decay(self, graph, now):
        later = now + timedelta(days=30)
        assert compute_stats(graph.nodes.values(), now=later).retention_score < 1.0
        assert compute_stats(graph.nodes.values(), now=now).retention_score == pytest.approx(1.0)


class TestEdges:
    def test_add_edge(self, graph):
        updated = add_edges(graph, [ConceptEdge("recursion", "memoization", Relation.PREREQUISITE, 0.9)])
        assert len(updated.edges) == 1
        assert graph.edges == []

    def test_dangling_endpoint_is_rejected(self, graph):
        with pytest.raises(GraphIntegrityError) as exc:
            add_edges(graph, [ConceptEdge("recursion", "dynamic_programming", Relation.EXTENDS)])
        assert exc.value.field == "target"

    def test_batch_is_all_or_nothing(self, graph):
        edges = [
            ConceptEdge("recursion", "memoization", Relation.RELATED),
            ConceptEdge("ghost", "memoization", Relation.RELATED),
        ]
        with pytest.raises(GraphIntegrityError):
            add_edges(graph, edges)
        assert graph.edges == []

    def test_self_loop_is_rejected(self, graph):
        with pytest.raises(GraphIntegrityError):
            add_edges(graph, [ConceptEdge("recursion", "recursion", Relation.RELATED)])

    def test_strength_out_of_range(self, graph):
        with pytest.raises(InputValidationError) as exc:
            add_edges(graph, [ConceptEdge("recursion", "memoization", Relation.RELATED, 1.5)])
        assert exc.value.field == "strength"

    def test_readding_replaces_strength(self, graph):
        once = add_edges(graph, [ConceptEdge("recursion", "memoization", Relation.RELATED, 0.2)])
        twice = add_edges(once, [ConceptEdge("recursion", "memoization", Relation.RELATED, 0.7)])
        assert len(twice.edges) == 1
        assert twice.edges[0].strength == 0.7


class TestSerialisation:
    def test_round_trip_preserves_nodes_and_edges(self, graph, now):
        graph = add_edges(graph, [ConceptEdge("recursion", "memoization", Relation.PREREQUISITE)])
        restored = KnowledgeGraph.from_dict(graph.to_dict())
        assert list(restored.nodes) == ["recursion", "memoization"]
        assert restored.nodes["recursion"].last_seen == now
        assert restored.nodes["memoization"].last_seen is None
        assert restored.edges == graph.edges

    def test_unknown_relation_is_rejected(self, graph):
        data = graph.to_dict()
        data["edges"] = [{"source": "recursion", "target": "memoization", "relation": "causes"}]
        with pytest.raises(GraphIntegrityError):
            KnowledgeGraph.from_dict(data)

    def test_membership_and_size(self, graph):
        assert "recursion" in graph
        assert "heaps" not in graph
        assert len(graph) == 2

    def test_version_round_trips(self, graph):
        graph.version = 4
        assert KnowledgeGraph.from_dict(graph.to_dict()).version == 4

    @pytest.mark.parametrize(
        "field,value",
        [("mastery", 3.0), ("mastery", -0.5), ("confidence", -0.1), ("decay_rate", 0.0), ("sessions", -1)],
    )
    def test_stored_node_out_of_bounds(self, graph, field, value):
        data = graph.to_dict()
        data["nodes"][0][field] = value
        with pytest.raises(InputValidationError) as exc:
            KnowledgeGraph.from_dict(data)
        assert exc.value.field == field

    def test_stored_node_without_id(self, graph):
        data = graph.to_dict()
        del data["nodes"][0]["id"]
        with pytest.raises(InputValidationError) as exc:
            KnowledgeGraph.from_dict(data)
        assert exc.value.field == "nodes"
