"""Fragmentation trees and exact tree builders."""

from .annotation import (
    annotate_tree,
    intensity_ratio_of_explainable_peaks,
    intensity_ratio_of_explained_peaks,
    recalculate_scores,
)
from .builders import (
    DynamicProgrammingTreeBuilder,
    IlpTreeBuilder,
    TreeBuilder,
    TreeBuilderError,
    colorful_subtree_dp,
)
from .ftree import FTree, TreeFragment, TreeLoss, TreeScoring

__all__ = [
    "FTree",
    "TreeFragment",
    "TreeLoss",
    "TreeScoring",
    "TreeBuilder",
    "IlpTreeBuilder",
    "DynamicProgrammingTreeBuilder",
    "TreeBuilderError",
    "colorful_subtree_dp",
    "annotate_tree",
    "recalculate_scores",
    "intensity_ratio_of_explained_peaks",
    "intensity_ratio_of_explainable_peaks",
]
