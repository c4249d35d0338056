"""Tree annotation: peaks, scores and explained-intensity statistics."""

from __future__ import annotations

import logging
from typing import Dict, List

from ..constants import SCORE_TOLERANCE
from ..formula.molecular_formula import MolecularFormula
from ..graph.fgraph import PSEUDO_ROOT, FGraph
from ..scoring.base import Loss, ScorerSet, check_finite, unique_names
from .ftree import FTree

logger = logging.getLogger(__name__)


def annotate_tree(graph: FGraph, tree: FTree) -> FTree:
    """Attach peaks and compute ``TreeScoring`` for a freshly built tree.

    Tree vertices are mapped back to graph vertices by formula (and color,
    where a formula explains more than one peak).
    """
    by_formula: Dict[MolecularFormula, List[int]] = {}
    for v in graph.vertices():
        if v != PSEUDO_ROOT:
            by_formula.setdefault(graph.formulas[v], []).append(v)

    root_vertex = None
    for fragment in tree:
        candidates = [v for v in by_formula.get(fragment.formula, ()) if graph.colors[v] == fragment.color]
        if not candidates:
            raise KeyError(f"Tree fragment {fragment.formula} has no graph vertex")
        v = candidates[0]
        fragment.peak = graph.peaks[v]
        if fragment.is_root:
            root_vertex = v

    scoring = tree.scoring
    scoring.root_score = graph.root_score(root_vertex)
    scoring.overall_score = scoring.root_score + sum(loss.weight for loss in tree.losses)
    scoring.explained_intensity = intensity_ratio_of_explained_peaks(tree)
    scoring.explained_intensity_of_explainable_peaks = intensity_ratio_of_explainable_peaks(tree)
    n_peaks = len(tree.input.peaks) if tree.input is not None else 0
    scoring.ratio_of_explained_peaks = len(tree) / n_peaks if n_peaks else 0.0
    return tree


def _tree_intensity(tree: FTree) -> float:
    return sum(f.peak.relative_intensity for f in tree.fragments_without_root())


def intensity_ratio_of_explained_peaks(tree: FTree) -> float:
    """Explained share of the relative intensity of all fragment peaks."""
    input = tree.input
    total = sum(p.relative_intensity for p in input.fragment_peaks)
    if total == 0:
        return 0.0
    return _tree_intensity(tree) / total


def intensity_ratio_of_explainable_peaks(tree: FTree) -> float:
    """Explained share of the intensity of peaks the root could explain.

    A peak is explainable if one of its candidate formulas is a sub-formula
    of the root formula.
    """
    input = tree.input
    root = tree.root.formula
    total = 0.0
    for peak in input.fragment_peaks:
        if any(root.is_subtractable(d.formula) for d in input.decompositions_of(peak)):
            total += peak.relative_intensity
    if total == 0:
        return 0.0
    return _tree_intensity(tree) / total


def recalculate_scores(tree: FTree, scorers: ScorerSet) -> bool:
    """Recompute every scorer contribution of the tree post hoc.

    Stores per-scorer breakdowns on the fragments (peak and decomposition
    scorers; root scorers on the root) and losses (peak-pair and loss
    scorers) and checks that they add up to the overall score.

    Returns
    -------
    consistent : bool
        True if the breakdowns sum to ``overall_score`` within 1e-8
    """
    input = tree.input
    peak_names = unique_names(scorers.peak_scorers + scorers.decomposition_scorers)
    loss_names = unique_names(scorers.peak_pair_scorers + scorers.loss_scorers)
    root_names = unique_names(scorers.root_scorers)

    peak_contexts = [s.prepare(input) for s in scorers.peak_scorers]
    decomposition_contexts = [s.prepare(input) for s in scorers.decomposition_scorers]
    pair_contexts = [s.prepare(input) for s in scorers.peak_pair_scorers]
    loss_contexts = [s.prepare(input) for s in scorers.loss_scorers]
    root_contexts = [s.prepare(input) for s in scorers.root_scorers]

    total = 0.0
    for tree_loss in tree.losses:
        source = tree.fragments[tree_loss.source]
        target = tree.fragments[tree_loss.target]

        values = []
        for scorer, context in zip(scorers.peak_pair_scorers, pair_contexts):
            values.append(check_finite(scorer.score(source.peak, target.peak, input, context), scorer))
        loss = Loss.between(source.formula, target.formula, source.peak, target.peak)
        for scorer, context in zip(scorers.loss_scorers, loss_contexts):
            values.append(check_finite(scorer.score(loss, input, context), scorer))
        tree_loss.scores = dict(zip(loss_names, values))

        values = []
        for scorer, context in zip(scorers.peak_scorers, peak_contexts):
            values.append(check_finite(scorer.score(target.peak, input, context), scorer))
        for scorer, context in zip(scorers.decomposition_scorers, decomposition_contexts):
            values.append(check_finite(scorer.score(target.formula, target.peak, input, context), scorer))
        target.scores = dict(zip(peak_names, values))

        total += sum(tree_loss.scores.values()) + sum(target.scores.values())

    root = tree.root
    values = []
    for scorer, context in zip(scorers.root_scorers, root_contexts):
        values.append(check_finite(scorer.score(root.formula, root.peak, input, context), scorer))
    root.scores = dict(zip(root_names, values))
    total += sum(root.scores.values())

    consistent = abs(total - tree.scoring.overall_score) < SCORE_TOLERANCE
    if not consistent:
        logger.warning(
            f"Recalculated score {total:.10f} differs from tree score {tree.scoring.overall_score:.10f}"
        )
    return consistent
