"""
DependencyGraph Unit Tests

Edge bookkeeping, cycle detection and graph walks.
"""

import pytest

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from task_graph.dag import DependencyGraph


@pytest.fixture
def graph():
    """parse <- analyze <- report, parse <- lint"""
    g = DependencyGraph()
    g.add_task("parse", [])
    g.add_task("analyze", ["parse"])
    g.add_task("report", ["analyze"])
    g.add_task("lint", ["parse"])
    return g


class TestEdges:

    def test_add_edge_records_both_directions(self):
        g = DependencyGraph()
        g.add_edge("a", "b")

        assert g.walk_dependencies("b", max_depth=1) == [("b", 0), ("a", 1)]
        assert g.dependents_of("a") == {"b"}

    def test_forward_reference_tracked_before_registration(self):
        g = DependencyGraph()
        g.add_task("b", ["a"])

        assert g.dependents_of("a") == {"b"}
        assert g.walk_dependencies("a", max_depth=5) == [("a", 0)]

    def test_returned_sets_are_copies(self, graph):
        graph.dependents_of("parse").add("intruder")
        assert graph.dependents_of("parse") == {"analyze", "lint"}

    def test_remove_task_drops_own_edges(self, graph):
        graph.remove_task("lint")

        assert graph.dependents_of("parse") == {"analyze"}
        assert graph.walk_dependencies("lint", max_depth=5) == [("lint", 0)]

    def test_remove_task_keeps_edges_declared_by_others(self, graph):
        graph.remove_task("parse")

        assert graph.walk_dependencies("analyze", max_depth=1) == [("analyze", 0), ("parse", 1)]
        assert graph.dependents_of("parse") == {"analyze", "lint"}

    def test_rebuild_replaces_edges(self, graph):
        graph.rebuild({"x": [], "y": ["x"]})

        assert graph.dependents_of("parse") == set()
        assert graph.dependents_of("x") == {"y"}
        assert len(graph) == 1

    def test_size_counts_depended_on_ids(self, graph):
        assert len(graph) == 2  # parse, analyze


class TestCycleDetection:

    def test_self_reference_is_cycle(self):
        g = DependencyGraph()
        assert g.would_create_cycle("x", ["x"]) is True

    def test_new_task_on_existing_chain_is_not_cycle(self, graph):
        assert graph.would_create_cycle("publish", ["report", "lint"]) is False

    def test_back_edge_is_cycle(self, graph):
        # parse would depend on report, which transitively depends on parse
        assert graph.would_create_cycle("parse", ["report"]) is True

    def test_unknown_dependency_is_not_cycle(self, graph):
        assert graph.would_create_cycle("parse", ["not-registered"]) is False

    def test_forward_reference_closing_loop_is_cycle(self):
        g = DependencyGraph()
        g.add_task("b", ["a"])  # a not registered yet

        assert g.would_create_cycle("a", ["b"]) is True

    def test_diamond_is_not_cycle(self):
        g = DependencyGraph()
        g.add_task("root", [])
        g.add_task("left", ["root"])
        g.add_task("right", ["root"])

        assert g.would_create_cycle("join", ["left", "right"]) is False

    def test_long_chain_does_not_recurse(self):
        g = DependencyGraph()
        g.add_task("t0", [])
        for i in range(1, 5000):
            g.add_task(f"t{i}", [f"t{i - 1}"])

        assert g.would_create_cycle("t0", ["t4999"]) is True
        assert g.would_create_cycle("tail", ["t4999"]) is False


class TestWalks:

    def test_walk_dependencies_orders_by_depth(self, graph):
        assert graph.walk_dependencies("report", max_depth=50) == [
            ("report", 0),
            ("analyze", 1),
            ("parse", 2),
        ]

    def test_walk_dependencies_respects_max_depth(self, graph):
        assert graph.walk_dependencies("report", max_depth=1) == [
            ("report", 0),
            ("analyze", 1),
        ]

    def test_walk_visits_shared_dependency_once(self):
        g = DependencyGraph()
        g.add_task("root", [])
        g.add_task("left", ["root"])
        g.add_task("right", ["root"])
        g.add_task("join", ["left", "right"])

        walk = g.walk_dependencies("join", max_depth=50)
        assert [task_id for task_id, _ in walk] == ["join", "left", "right", "root"]
        assert dict(walk)["root"] == 2
