"""Fragmentation graphs: construction, scoring and reduction."""

from .builder import GraphBuilder, score_graph
from .fgraph import NO_COLOR, PSEUDO_ROOT, FGraph
from .reduction import GraphReduction, NoReduction, SimpleReduction, upper_bounds

__all__ = [
    "FGraph",
    "PSEUDO_ROOT",
    "NO_COLOR",
    "GraphBuilder",
    "score_graph",
    "GraphReduction",
    "SimpleReduction",
    "NoReduction",
    "upper_bounds",
]
