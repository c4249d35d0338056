"""Sound graph reduction.

A reducer removes vertices and edges that cannot be part of an optimal tree
scoring at least ``lower_bound``; the optimum over the reduced graph equals
the optimum over the original graph.

``SimpleReduction`` uses the color-relaxed upper bound

    U(v) = sum over colors c of max(0, max_{v->y, color(y)=c} w(v, y) + U(y))

which overestimates the best subtree below v because it only enforces color
exclusivity between siblings. Then:

- an edge u -> v with ``w(u, v) + U(v) < 0`` is removed: cutting the subtree
  at v would strictly improve any tree containing it;
- a root candidate r with ``root score + U(r) < lower_bound`` is removed: no
  tree rooted at r reaches the bound;
- vertices unreachable from the pseudo-root are removed.

The rules are applied until nothing changes.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, List

from .fgraph import PSEUDO_ROOT, FGraph

logger = logging.getLogger(__name__)


class GraphReduction:
    def reduce(self, graph: FGraph, lower_bound: float = -math.inf) -> FGraph:
        raise NotImplementedError


class NoReduction(GraphReduction):
    """Identity reducer."""

    def reduce(self, graph: FGraph, lower_bound: float = -math.inf) -> FGraph:
        return graph


def upper_bounds(graph: FGraph) -> List[float]:
    """Color-relaxed upper bound U(v) for every vertex id (0 for dead ids)."""
    bound = [0.0] * len(graph.formulas)
    # vertex ids are topologically ordered: children have larger ids
    for v in reversed(range(len(graph.formulas))):
        if not graph.vertex_alive[v] or v == PSEUDO_ROOT:
            continue
        best_per_color: Dict[int, float] = {}
        for e in graph.out_edges(v):
            y = graph.targets[e]
            gain = graph.weights[e] + bound[y]
            color = graph.colors[y]
            if gain > best_per_color.get(color, 0.0):
                best_per_color[color] = gain
        bound[v] = sum(best_per_color.values())
    return bound


class SimpleReduction(GraphReduction):
    """Upper-bound pruning of edges and root candidates (see module docstring)."""

    def reduce(self, graph: FGraph, lower_bound: float = -math.inf) -> FGraph:
        n_vertices, n_edges = graph.n_vertices, graph.n_edges
        changed = True
        while changed:
            changed = False
            bound = upper_bounds(graph)

            for e in list(graph.edges()):
                u, v = graph.sources[e], graph.targets[e]
                if u == PSEUDO_ROOT:
                    if graph.weights[e] + bound[v] < lower_bound:
                        graph.remove_vertex(v)
                        changed = True
                elif graph.weights[e] + bound[v] < 0:
                    graph.remove_edge(e)
                    changed = True

            changed |= self._remove_unreachable(graph)

        graph.compact()
        logger.debug(
            f"Reduced graph from {n_vertices} to {graph.n_vertices} vertices "
            f"and {n_edges} to {graph.n_edges} edges"
        )
        return graph

    @staticmethod
    def _remove_unreachable(graph: FGraph) -> bool:
        reachable = [False] * len(graph.formulas)
        reachable[PSEUDO_ROOT] = True
        for v in range(len(graph.formulas)):
            if not reachable[v] or not graph.vertex_alive[v]:
                continue
            for e in graph.out_edges(v):
                reachable[graph.targets[e]] = True
        removed = False
        for v in list(graph.vertices()):
            if not reachable[v]:
                graph.remove_vertex(v)
                removed = True
        return removed
