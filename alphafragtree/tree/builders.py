"""Exact tree builders for the maximum colorful subtree problem.

Given a scored fragmentation graph, find the tree below the pseudo-root that
uses exactly one root candidate, contains at most one vertex per color and
maximizes the sum of its edge weights (root score included). The problem is
NP-hard; both builders are exact.

- ``IlpTreeBuilder`` (default): integer linear program solved with HiGHS
  branch-and-cut through ``scipy.optimize.milp``. One binary variable per
  edge. Worst case exponential, fast in practice on reduced graphs.
- ``DynamicProgrammingTreeBuilder``: dynamic program over color subsets,
  O(3^k * |E|) time and O(2^k * |V|) memory for k colors. Refuses graphs with
  more than ``max_colors`` colors.

Both return ``None`` when no tree reaches the lower bound.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from typing import Dict, List, Optional

import numpy as np
from numba import njit
from scipy.optimize import Bounds, LinearConstraint, milp
from scipy.sparse import csr_array

from ..graph.fgraph import NO_COLOR, PSEUDO_ROOT, FGraph
from .ftree import FTree

logger = logging.getLogger(__name__)


class TreeBuilderError(RuntimeError):
    """A builder could not prove optimality for a graph."""


class TreeBuilder:
    def build_tree(self, graph: FGraph, lower_bound: float = -math.inf) -> Optional[FTree]:
        raise NotImplementedError

    @staticmethod
    def tree_from_edges(graph: FGraph, edges: List[int]) -> FTree:
        """Copy the selected graph edges into a self-contained tree."""
        children: Dict[int, List[int]] = {}
        root = None
        for e in edges:
            if graph.sources[e] == PSEUDO_ROOT:
                if root is not None:
                    raise TreeBuilderError("Selected edges contain more than one root")
                root = graph.targets[e]
            else:
                children.setdefault(graph.sources[e], []).append(e)
        if root is None:
            raise TreeBuilderError("Selected edges contain no root")

        tree = FTree(graph.formulas[root], graph.input)
        queue = deque([(root, 0)])
        n_added = 0
        while queue:
            v, tree_id = queue.popleft()
            for e in sorted(children.get(v, ()), key=lambda e: graph.targets[e]):
                y = graph.targets[e]
                fragment = tree.add_fragment(tree_id, graph.formulas[y], graph.colors[y], graph.weights[e])
                queue.append((y, fragment.id))
                n_added += 1
        if n_added != len(edges) - 1:
            raise TreeBuilderError("Selected edges are not connected to the root")
        return tree


class IlpTreeBuilder(TreeBuilder):
    """Integer linear program, solved exactly with HiGHS.

    Constraints over binary edge variables x:
    - exactly one edge leaves the pseudo-root
    - at most one selected edge enters each color
    - an edge u -> v is selected only if an edge into u is selected
    - total weight >= lower bound (if finite)

    Parameters
    ----------
    time_limit : float, optional
        Solver time limit in seconds. When it is hit the best feasible tree
        found so far is returned, or None if there is none yet
    """

    def __init__(self, time_limit: Optional[float] = None):
        self.time_limit = time_limit

    def build_tree(self, graph: FGraph, lower_bound: float = -math.inf) -> Optional[FTree]:
        ids, sources, targets, weights = graph.edge_arrays()
        n = len(ids)
        if n == 0 or not np.any(sources == PSEUDO_ROOT):
            return None

        rows, cols, vals = [], [], []
        lower, upper = [], []

        def add_row(columns, coefficients, lo, hi):
            row = len(lower)
            rows.extend([row] * len(columns))
            cols.extend(columns)
            vals.extend(coefficients)
            lower.append(lo)
            upper.append(hi)

        root_edges = np.flatnonzero(sources == PSEUDO_ROOT)
        add_row(root_edges.tolist(), [1.0] * len(root_edges), 1.0, 1.0)

        colors = np.array([graph.colors[t] for t in targets], dtype=np.int64)
        for color in np.unique(colors[colors != NO_COLOR]):
            members = np.flatnonzero(colors == color)
            add_row(members.tolist(), [1.0] * len(members), -np.inf, 1.0)

        incoming: Dict[int, List[int]] = {}
        for p, t in enumerate(targets):
            incoming.setdefault(int(t), []).append(p)
        for p in range(n):
            u = int(sources[p])
            if u == PSEUDO_ROOT:
                continue
            parents = incoming.get(u, [])
            add_row([p] + parents, [1.0] + [-1.0] * len(parents), -np.inf, 0.0)

        if math.isfinite(lower_bound):
            add_row(list(range(n)), weights.tolist(), lower_bound, np.inf)

        matrix = csr_array((vals, (rows, cols)), shape=(len(lower), n))
        options = {"mip_rel_gap": 0.0}
        if self.time_limit is not None:
            options["time_limit"] = self.time_limit
        result = milp(
            c=-weights,
            constraints=LinearConstraint(matrix, np.array(lower), np.array(upper)),
            integrality=np.ones(n),
            bounds=Bounds(0.0, 1.0),
            options=options,
        )

        if result.status == 2:
            logger.debug("No tree reaches the lower bound (infeasible ILP)")
            return None
        if result.status == 1:
            if result.x is None:
                logger.warning(f"ILP solver stopped without a feasible tree: {result.message}")
                return None
            logger.warning(f"ILP solver stopped early, tree may not be optimal: {result.message}")
        elif result.status != 0:
            raise TreeBuilderError(f"ILP solver failed: {result.message}")

        selected = np.flatnonzero(result.x > 0.5)
        tree = self.tree_from_edges(graph, ids[selected].tolist())
        logger.debug(f"ILP tree with {len(tree)} fragments, objective {-result.fun:.4f}")
        return tree


@njit(cache=True)
def colorful_subtree_dp(
    order: np.ndarray,
    offsets: np.ndarray,
    out_targets: np.ndarray,
    out_weights: np.ndarray,
    masks: np.ndarray,
    n_colors: int,
):
    """Best colorful subtree below every vertex for every color set.

    Parameters
    ----------
    order : np.ndarray
        Vertices with children before parents
    offsets : np.ndarray
        CSR offsets into the out-edge arrays (length n_vertices + 1)
    out_targets : np.ndarray
        Target vertex of each out-edge
    out_weights : np.ndarray
        Weight of each out-edge
    masks : np.ndarray
        Color bit of each vertex (0 for colorless vertices)
    n_colors : int
        Number of colors k

    Returns
    -------
    best : np.ndarray
        best[v, S] = best subtree at v using exactly the colors S
    split : np.ndarray
        Colors of the last child subtree in the optimum of best[v, S]
    child : np.ndarray
        Out-edge position of the best child subtree of v with colors T
    """
    n = len(masks)
    full = 1 << n_colors
    best = np.full((n, full), -np.inf)
    split = np.zeros((n, full), dtype=np.int64)
    child = np.full((n, full), -1, dtype=np.int64)
    child_best = np.empty(full, dtype=np.float64)

    for idx in range(len(order)):
        v = order[idx]
        own = masks[v]
        best[v, own] = 0.0

        for t in range(full):
            child_best[t] = -np.inf
        for p in range(offsets[v], offsets[v + 1]):
            y = out_targets[p]
            w = out_weights[p]
            for t in range(1, full):
                s = best[y, t]
                if s > -np.inf and w + s > child_best[t]:
                    child_best[t] = w + s
                    child[v, t] = p

        for s in range(full):
            if (s & own) != own or s == own:
                continue
            rest = s & ~own
            low = rest & -rest
            sub = rest
            # the child subtree holding the lowest free color is split off
            while sub > 0:
                if (sub & low) != 0 and child_best[sub] > -np.inf:
                    left = best[v, s ^ sub]
                    if left > -np.inf:
                        value = left + child_best[sub]
                        if value > best[v, s]:
                            best[v, s] = value
                            split[v, s] = sub
                sub = (sub - 1) & rest

    return best, split, child


class DynamicProgrammingTreeBuilder(TreeBuilder):
    """Exact color-subset dynamic program.

    Parameters
    ----------
    max_colors : int, default=14
        Largest number of colors accepted
    """

    def __init__(self, max_colors: int = 14):
        if max_colors < 1 or max_colors > 30:
            raise ValueError(f"max_colors must be between 1 and 30, got {max_colors}")
        self.max_colors = max_colors

    def build_tree(self, graph: FGraph, lower_bound: float = -math.inf) -> Optional[FTree]:
        colors = sorted(graph.color_set())
        if len(colors) > self.max_colors:
            raise TreeBuilderError(
                f"Graph has {len(colors)} colors, dynamic programming is limited to {self.max_colors}"
            )
        roots = graph.roots()
        if not roots:
            return None

        # dense, topologically ordered vertex numbering without the pseudo-root
        vertices = [v for v in graph.vertices() if v != PSEUDO_ROOT]
        dense = {v: i for i, v in enumerate(vertices)}
        color_bit = {c: 1 << i for i, c in enumerate(colors)}
        masks = np.array(
            [color_bit[graph.colors[v]] if graph.colors[v] != NO_COLOR else 0 for v in vertices],
            dtype=np.int64,
        )

        offsets = np.zeros(len(vertices) + 1, dtype=np.int64)
        out_targets, out_weights, out_ids = [], [], []
        for i, v in enumerate(vertices):
            for e in graph.out_edges(v):
                out_targets.append(dense[graph.targets[e]])
                out_weights.append(graph.weights[e])
                out_ids.append(e)
            offsets[i + 1] = len(out_targets)
        out_targets = np.array(out_targets, dtype=np.int64)
        out_weights = np.array(out_weights, dtype=np.float64)

        order = np.arange(len(vertices) - 1, -1, -1, dtype=np.int64)
        best, split, child = colorful_subtree_dp(
            order, offsets, out_targets, out_weights, masks, len(colors)
        )

        best_score, best_root, best_set, best_edge = -math.inf, -1, 0, -1
        for e in graph.out_edges(PSEUDO_ROOT):
            r = dense[graph.targets[e]]
            s = int(np.argmax(best[r]))
            score = graph.weights[e] + best[r, s]
            if score > best_score:
                best_score, best_root, best_set, best_edge = score, r, s, e
        if best_score < lower_bound:
            return None

        selected = [best_edge]
        stack = [(best_root, best_set)]
        while stack:
            v, s = stack.pop()
            while s != masks[v]:
                t = int(split[v, s])
                p = int(child[v, t])
                selected.append(out_ids[p])
                stack.append((int(out_targets[p]), t))
                s ^= t

        tree = self.tree_from_edges(graph, selected)
        logger.debug(f"DP tree with {len(tree)} fragments, score {best_score:.4f}")
        return tree
