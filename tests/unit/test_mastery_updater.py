"""
Unit tests for MasteryUpdater.
"""

from datetime import timedelta

import pytest

from teachback.core.errors import InputValidationError
from teachback.graph.concept_graph import create_empty_graph
from teachback.graph.mastery_updater import MasteryConfig, MasteryUpdater


@pytest.fixture
def updater():
    return MasteryUpdater()


def _outcome(session_id, now, score=80, mastered=(), gaps=(), **extra):
    return {
        "id": session_id,
        "date": now.isoformat(),
        "title": extra.pop("title", "Algorithms"),
        "score": score,
        "mastered": list(mastered),
        "gaps": list(gaps),
        **extra,
    }


class TestNewConcepts:
    def test_empty_graph_example(self, updater, sample_outcome, now):
        """score 80: one mastered node at 0.32, one gap node at 0.1."""
        graph = updater.apply(create_empty_graph("u1", now), sample_outcome, now)

        assert set(graph.nodes) == {"loop_invariants", "amortized_analysis"}
        mastered = graph.nodes["loop_invariants"]
        assert mastered.label == "loop invariants"
        assert mastered.mastery == pytest.approx(0.32)
        assert mastered.sessions == 1
        assert mastered.decay_rate == 0.3
        assert mastered.confidence == 0.4
        assert mastered.last_seen == now

        gap = graph.nodes["amortized_analysis"]
        assert gap.mastery == pytest.approx(0.1)
        assert gap.sessions == 0
        assert gap.last_seen is None
        assert gap.decay_rate == 0.4
        assert gap.confidence == 0.2
        assert gap.source_sessions == []

    def test_input_graph_is_untouched(self, updater, sample_outcome, now):
        empty = create_empty_graph("u1", now)
        updater.apply(empty, sample_outcome, now)
        assert empty.nodes == {}

    def test_keeps_stored_version(self, updater, sample_outcome, now):
        graph = create_empty_graph("u1", now)
        graph.version = 3
        assert updater.apply(graph, sample_outcome, now).version == 3

    def test_domain_from_title(self, updater, now):
        graph = updater.apply(create_empty_graph(), _outcome("s1", now, mastered=["hooks"], title="React basics"), now)
        assert graph.nodes["hooks"].domain == "frontend"

    def test_explicit_domain_wins(self, updater, now):
        outcome = _outcome("s1", now, mastered=["hooks"], title="React basics", domain="history")
        graph = updater.apply(create_empty_graph(), outcome, now)
        assert graph.nodes["hooks"].domain == "history"

    def test_stats_are_recomputed(self, updater, sample_outcome, now):
        graph = updater.apply(create_empty_graph("u1", now), sample_outcome, now)
        assert graph.stats.total_concepts == 2
        assert graph.stats.avg_mastery == pytest.approx((0.32 + 0.1) / 2)
        assert graph.stats.learning_velocity == pytest.approx((0.32 + 0.1) / 2)


class TestReinforcement:
    def test_repeated_mastery(self, updater, now):
        graph = create_empty_graph("u1", now)
        graph = updater.apply(graph, _outcome("s1", now, score=100, mastered=["recursion"]), now)
        later = now + timedelta(days=2)
        graph = updater.apply(graph, _outcome("s2", later, score=50, mastered=["recursion"]), later)

        node = graph.nodes["recursion"]
        assert node.mastery == pytest.approx(0.4 + 0.2)
        assert node.sessions == 2
        assert node.decay_rate == pytest.approx(0.28)
        assert node.confidence == pytest.approx(0.55)
        assert node.last_seen == later
        assert node.source_sessions == ["s1", "s2"]

    def test_bounds_hold_after_many_sessions(self, updater, now):
        graph = create_empty_graph("u1", now)
        for i in range(30):
            graph = updater.apply(graph, _outcome(f"s{i}", now, score=100, mastered=["recursion"]), now)
        node = graph.nodes["recursion"]
        assert node.mastery == 1.0
        assert node.confidence == 1.0
        assert node.decay_rate == pytest.approx(0.1)
        assert node.sessions == 30

    def test_provenance_keeps_ten_most_recent(self, updater, now):
        graph = create_empty_graph("u1", now)
        for i in range(12):
            graph = updater.apply(graph, _outcome(f"s{i}", now, mastered=["recursion"]), now)
        assert graph.nodes["recursion"].source_sessions == [f"s{i}" for i in range(2, 12)]

    def test_known_gap_is_not_reset(self, updater, now):
        graph = updater.apply(create_empty_graph(), _outcome("s1", now, score=100, mastered=["heaps"]), now)
        graph = updater.apply(graph, _outcome("s2", now, gaps=["heaps"]), now)
        assert graph.nodes["heaps"].mastery == pytest.approx(0.4)
        assert graph.nodes["heaps"].sessions == 1

    def test_duplicate_labels_apply_once(self, updater, now):
        outcome = _outcome("s1", now, score=100, mastered=["Heaps", "heaps"])
        graph = updater.apply(create_empty_graph(), outcome, now)
        assert graph.nodes["heaps"].mastery == pytest.approx(0.4)
        assert graph.nodes["heaps"].sessions == 1

    def test_custom_gain_cap(self, now):
        updater = MasteryUpdater(MasteryConfig(gain_cap=0.2))
        graph = updater.apply(create_empty_graph(), _outcome("s1", now, score=100, mastered=["heaps"]), now)
        assert graph.nodes["heaps"].mastery == pytest.approx(0.2)


class TestValidation:
    @pytest.mark.parametrize("score", [-1, 101])
    def test_score_out_of_range(self, updater, now, score):
        with pytest.raises(InputValidationError) as exc:
            updater.apply(create_empty_graph(), _outcome("s1", now, score=score), now)
        assert exc.value.field == "score"

    @pytest.mark.parametrize("score", ["80", True, None])
    def test_score_must_be_a_number(self, updater, now, score):
        with pytest.raises(InputValidationError) as exc:
            updater.apply(create_empty_graph(), _outcome("s1", now, score=score, mastered=["heaps"]), now)
        assert exc.value.field == "score"

    def test_missing_field(self, updater, now):
        outcome = _outcome("s1", now)
        del outcome["title"]
        with pytest.raises(InputValidationError) as exc:
            updater.apply(create_empty_graph(), outcome, now)
        assert exc.value.field == "title"

    def test_unusable_label(self, updater, now):
        with pytest.raises(InputValidationError) as exc:
            updater.apply(create_empty_graph(), _outcome("s1", now, mastered=["!!!"]), now)
        assert exc.value.field == "mastered"
