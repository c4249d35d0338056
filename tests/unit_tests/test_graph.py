"""Tests for fragmentation graph construction, scoring and reduction."""

import math

import numpy as np
import pytest

from alphafragtree.graph import (
    NO_COLOR,
    PSEUDO_ROOT,
    FGraph,
    GraphBuilder,
    NoReduction,
    SimpleReduction,
    score_graph,
    upper_bounds,
)
from alphafragtree.scoring import ScorerContractError, ScorerSet, TreeSizeScorer
from alphafragtree.tree import IlpTreeBuilder

from graph_factories import random_graph, tree_score


class NanLossScorer:
    name = "NanLoss"

    def prepare(self, input):
        return None

    def score(self, loss, input, context):
        return math.nan


@pytest.fixture
def scenario_input(mass_error_analysis, three_peak_experiment):
    return mass_error_analysis.preprocess(three_peak_experiment)


class TestFGraph:
    """Test the vertex/edge arena."""

    def test_pseudo_root(self):
        graph = FGraph(None)
        assert graph.n_vertices == 1
        assert graph.n_edges == 0
        assert graph.colors[PSEUDO_ROOT] == NO_COLOR

    def test_edges_follow_topological_order(self, water):
        graph = FGraph(None)
        v = graph.add_vertex(water, None, 0)
        with pytest.raises(ValueError):
            graph.add_edge(v, PSEUDO_ROOT)

    def test_remove_and_compact(self, water):
        graph = FGraph(None)
        a = graph.add_vertex(water, None, NO_COLOR)
        graph.add_edge(PSEUDO_ROOT, a, 1.0)
        b = graph.add_vertex(water, None, 0)
        c = graph.add_vertex(water, None, 1)
        graph.add_edge(a, b, 2.0)
        graph.add_edge(a, c, 3.0)
        graph.remove_vertex(b)
        assert graph.n_vertices == 3
        assert graph.n_edges == 2
        graph.compact()
        assert len(graph.formulas) == 3
        assert graph.weights == [1.0, 3.0]
        assert graph.colors == [NO_COLOR, NO_COLOR, 1]

    def test_pseudo_root_cannot_be_removed(self):
        with pytest.raises(ValueError):
            FGraph(None).remove_vertex(PSEUDO_ROOT)

    def test_copy_is_independent(self, water):
        graph = FGraph(None)
        a = graph.add_vertex(water, None, NO_COLOR)
        graph.add_edge(PSEUDO_ROOT, a, 1.0)
        copy = graph.copy()
        copy.remove_vertex(a)
        assert graph.n_vertices == 2
        assert copy.n_vertices == 1


class TestGraphBuilder:
    """Test graph construction from a processed input."""

    def test_single_root(self, mass_error_analysis, scenario_input):
        candidate = scenario_input.parent_candidates[0]
        graph = GraphBuilder().build_graph(scenario_input, [candidate])
        assert graph.roots() == [1]
        assert graph.formulas[1] == candidate.formula
        assert graph.is_root(1)

    def test_edges_are_strict_subformulas_on_lighter_peaks(self, scenario_input):
        graph = GraphBuilder().build_graph(scenario_input, scenario_input.parent_candidates.decompositions)
        assert graph.n_edges > len(scenario_input.parent_candidates)
        for e in graph.edges():
            u, v = graph.sources[e], graph.targets[e]
            assert u < v
            if u == PSEUDO_ROOT:
                continue
            assert graph.formulas[u].is_subtractable(graph.formulas[v])
            assert graph.formulas[u] != graph.formulas[v]
            assert graph.peaks[v].mz < graph.peaks[u].mz

    def test_fragment_colors_are_peak_indices(self, scenario_input):
        graph = GraphBuilder().build_graph(scenario_input, scenario_input.parent_candidates.decompositions)
        for v in graph.vertices():
            if v == PSEUDO_ROOT or graph.is_root(v):
                continue
            assert graph.colors[v] == graph.peaks[v].index
        assert graph.color_set() <= {p.index for p in scenario_input.fragment_peaks}

    def test_fragments_are_subformulas_of_some_root(self, scenario_input):
        candidates = scenario_input.parent_candidates.decompositions
        graph = GraphBuilder().build_graph(scenario_input, candidates)
        for v in graph.vertices():
            if v == PSEUDO_ROOT or graph.is_root(v):
                continue
            assert any(c.formula.is_subtractable(graph.formulas[v]) for c in candidates)

    def test_no_candidates(self, scenario_input):
        graph = GraphBuilder().build_graph(scenario_input, [])
        assert graph.n_vertices == 1


class TestScoreGraph:
    """Test edge weights."""

    def test_edge_weight_components(self, mass_error_analysis, scenario_input):
        candidate = scenario_input.parent_candidates[0]
        graph = GraphBuilder().build_graph(scenario_input, [candidate])
        score_graph(graph, mass_error_analysis.scorers)
        for e in graph.edges():
            u, v = graph.sources[e], graph.targets[e]
            if u == PSEUDO_ROOT:
                assert graph.weights[e] == candidate.score
                continue
            loss = graph.loss_formula(e)
            error = abs((graph.peaks[u].mz - graph.peaks[v].mz) - loss.mass)
            # tree size bonus minus the loss mass error
            assert graph.weights[e] == pytest.approx(1.0 - error)

    def test_non_finite_scorer_raises(self, scenario_input):
        graph = GraphBuilder().build_graph(scenario_input, scenario_input.parent_candidates.decompositions)
        with pytest.raises(ScorerContractError, match="NanLoss"):
            score_graph(graph, ScorerSet(loss_scorers=(NanLossScorer(),)))


class TestReduction:
    """Test upper bounds and sound pruning."""

    def test_upper_bound_chain(self, water):
        graph = FGraph(None)
        r = graph.add_vertex(water, None, NO_COLOR)
        graph.add_edge(PSEUDO_ROOT, r, 0.0)
        a = graph.add_vertex(water, None, 0)
        b = graph.add_vertex(water, None, 1)
        c = graph.add_vertex(water, None, 1)
        graph.add_edge(r, a, 2.0)
        graph.add_edge(a, b, -1.0)
        graph.add_edge(r, c, 0.5)
        bound = upper_bounds(graph)
        # b's subtree is never worth it, so U(a) = 0
        assert bound[a] == 0.0
        assert bound[r] == pytest.approx(2.5)

    def test_negative_edges_removed(self, water):
        graph = FGraph(None)
        r = graph.add_vertex(water, None, NO_COLOR)
        graph.add_edge(PSEUDO_ROOT, r, 0.0)
        a = graph.add_vertex(water, None, 0)
        b = graph.add_vertex(water, None, 1)
        graph.add_edge(r, a, 2.0)
        graph.add_edge(r, b, -1.0)
        reduced = SimpleReduction().reduce(graph)
        assert reduced.n_vertices == 3
        assert reduced.n_edges == 2

    def test_roots_below_lower_bound_removed(self, water):
        graph = FGraph(None)
        r1 = graph.add_vertex(water, None, NO_COLOR)
        r2 = graph.add_vertex(water * 2, None, NO_COLOR)
        graph.add_edge(PSEUDO_ROOT, r1, 5.0)
        graph.add_edge(PSEUDO_ROOT, r2, 1.0)
        reduced = SimpleReduction().reduce(graph, lower_bound=3.0)
        assert len(reduced.roots()) == 1
        assert reduced.formulas[reduced.roots()[0]] == water

    def test_no_reduction_is_identity(self):
        graph = random_graph(np.random.default_rng(1))
        n_edges = graph.n_edges
        assert NoReduction().reduce(graph) is graph
        assert graph.n_edges == n_edges

    @pytest.mark.parametrize("seed", range(8))
    def test_reduction_keeps_optimum(self, seed):
        graph = random_graph(np.random.default_rng(seed))
        builder = IlpTreeBuilder()
        full = builder.build_tree(graph.copy())
        reduced_graph = SimpleReduction().reduce(graph.copy())
        reduced = builder.build_tree(reduced_graph)
        assert reduced_graph.n_edges <= graph.n_edges
        assert tree_score(reduced_graph, reduced) == pytest.approx(tree_score(graph, full), abs=1e-6)

    @pytest.mark.parametrize("seed", range(4))
    def test_reduction_with_lower_bound(self, seed):
        graph = random_graph(np.random.default_rng(100 + seed))
        builder = IlpTreeBuilder()
        optimum = tree_score(graph, builder.build_tree(graph.copy()))

        below = SimpleReduction().reduce(graph.copy(), lower_bound=optimum - 0.5)
        assert tree_score(below, builder.build_tree(below, optimum - 0.5)) == pytest.approx(optimum, abs=1e-6)

        above = SimpleReduction().reduce(graph.copy(), lower_bound=optimum + 0.5)
        assert builder.build_tree(above, optimum + 0.5) is None
