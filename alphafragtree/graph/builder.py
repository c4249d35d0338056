"""Fragmentation graph construction and scoring.

``build_graph`` creates one vertex per (fragment peak, candidate formula)
and a loss edge u -> v whenever v's formula is a strict sub-formula of u's
and v's peak is lighter than u's. Candidate formulas that are not a
sub-formula of any root are never added: no edge could reach them.

``score_graph`` fills the edge weights in place:

    w(u, v) = decomposition score(v) + peak score(v)
              + peak pair score(u, v) + sum of loss scores(u - v)

Edges leaving the pseudo-root keep the root score of their candidate.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from ..formula.molecular_formula import ScoredFormula
from ..preprocessing.peaks import ProcessedInput
from ..scoring.base import Loss, ScorerSet, check_finite
from .fgraph import PSEUDO_ROOT, FGraph

logger = logging.getLogger(__name__)


class GraphBuilder:
    """Builds single- or multi-root fragmentation graphs."""

    def build_graph(self, input: ProcessedInput, candidates: Sequence[ScoredFormula]) -> FGraph:
        """Graph with one root vertex per parent candidate.

        Parameters
        ----------
        input : ProcessedInput
            Decomposed and scored input
        candidates : sequence of ScoredFormula
            Parent formulas (with adduct) and their root scores

        Returns
        -------
        graph : FGraph
            Unscored graph (all loss weights 0)
        """
        if input.parent_peak is None:
            raise ValueError("Input has no parent peak; run parent peak detection first")
        graph = FGraph(input)
        roots = [graph.add_root(c, input.parent_peak) for c in candidates]
        if not roots:
            return graph

        root_counts = np.array([graph.formulas[r].array for r in roots], dtype=np.int64)

        # fragments by decreasing m/z keep vertex ids topologically ordered
        fragments = sorted(input.fragment_peaks, key=lambda p: -p.mz)
        vertex_ids = []
        for peak in fragments:
            for decomposition in input.decompositions_of(peak):
                counts = decomposition.formula.array
                if not np.any(np.all(root_counts >= counts, axis=1)):
                    continue
                vertex_ids.append(graph.add_vertex(decomposition.formula, peak, peak.index, decomposition.score))

        # root edges
        for r in roots:
            for v in vertex_ids:
                if graph.formulas[r].is_subtractable(graph.formulas[v]):
                    graph.add_edge(r, v)

        # fragment edges: u -> v for every strict sub-formula v on a lighter peak
        if vertex_ids:
            counts = np.array([graph.formulas[v].array for v in vertex_ids], dtype=np.int64)
            mz = np.array([graph.peaks[v].mz for v in vertex_ids], dtype=np.float64)
            for i, u in enumerate(vertex_ids):
                lighter = mz < mz[i]
                subset = np.all(counts <= counts[i], axis=1) & np.any(counts != counts[i], axis=1)
                for j in np.flatnonzero(lighter & subset):
                    graph.add_edge(u, vertex_ids[j])

        logger.debug(f"Built graph with {len(roots)} roots: {graph}")
        return graph


def score_graph(graph: FGraph, scorers: ScorerSet) -> FGraph:
    """Assign loss weights in place; raises on non-finite contributions."""
    input = graph.input
    scoring = input.scoring
    if scoring is None:
        raise ValueError("Input has no peak scores; run peak scoring first")
    peak_scores = scoring.peak_scores
    pair_scores = scoring.peak_pair_scores
    contexts = [scorer.prepare(input) for scorer in scorers.loss_scorers]

    for e in graph.edges():
        u = graph.sources[e]
        v = graph.targets[e]
        if u == PSEUDO_ROOT:
            graph.weights[e] = check_finite(graph.vertex_scores[v], "root score")
            continue
        peak_u = graph.peaks[u]
        peak_v = graph.peaks[v]
        score = check_finite(graph.vertex_scores[v], "decomposition score")
        score += check_finite(peak_scores[peak_v.index], "peak score")
        score += check_finite(pair_scores[peak_u.index, peak_v.index], "peak pair score")
        loss = Loss.between(graph.formulas[u], graph.formulas[v], peak_u, peak_v)
        for scorer, context in zip(scorers.loss_scorers, contexts):
            score += check_finite(scorer.score(loss, input, context), scorer)
        graph.weights[e] = score
    return graph
