"""Arena-indexed fragmentation graph.

Vertices and edges are stored in parallel lists and referenced by integer
ids. Vertex 0 is the pseudo-root; every root candidate hangs below it with
its root score as edge weight. Fragment vertices carry the color of the peak
they explain (the peak index); the pseudo-root and the root candidates are
colorless (``-1``).

Deletion is two-phase: ``remove_vertex`` / ``remove_edge`` only clear the
alive masks, ``compact`` renumbers the survivors. Ids are stable between
two compactions.

Vertex order is topological: the pseudo-root first, then root candidates,
then fragments in order of decreasing peak m/z. Every edge goes from a
lower to a higher id.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterator, List, Optional, Set

import numpy as np

from ..formula.molecular_formula import MolecularFormula, ScoredFormula
from ..preprocessing.peaks import ProcessedInput, ProcessedPeak

logger = logging.getLogger(__name__)

PSEUDO_ROOT = 0
NO_COLOR = -1


class FGraph:
    """Directed acyclic graph of candidate fragments and losses.

    Parameters
    ----------
    input : ProcessedInput
        Input whose peaks and scores the graph was built from
    """

    def __init__(self, input: ProcessedInput):
        self.input = input

        # vertex arena
        self.formulas: List[Optional[MolecularFormula]] = [None]
        self.peaks: List[Optional[ProcessedPeak]] = [None]
        self.colors: List[int] = [NO_COLOR]
        self.vertex_scores: List[float] = [0.0]
        self.vertex_alive: List[bool] = [True]

        # edge arena
        self.sources: List[int] = []
        self.targets: List[int] = []
        self.weights: List[float] = []
        self.edge_alive: List[bool] = []

        self._out: List[List[int]] = [[]]
        self._in: List[List[int]] = [[]]

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def add_vertex(
        self,
        formula: MolecularFormula,
        peak: ProcessedPeak,
        color: int,
        score: float = 0.0,
    ) -> int:
        self.formulas.append(formula)
        self.peaks.append(peak)
        self.colors.append(color)
        self.vertex_scores.append(score)
        self.vertex_alive.append(True)
        self._out.append([])
        self._in.append([])
        return len(self.formulas) - 1

    def add_root(self, candidate: ScoredFormula, parent_peak: ProcessedPeak) -> int:
        """Add a root candidate below the pseudo-root, weighted by its score."""
        v = self.add_vertex(candidate.formula, parent_peak, NO_COLOR, candidate.score)
        self.add_edge(PSEUDO_ROOT, v, candidate.score)
        return v

    def add_edge(self, source: int, target: int, weight: float = 0.0) -> int:
        if source >= target:
            raise ValueError(f"Edge {source}->{target} violates the topological order")
        self.sources.append(source)
        self.targets.append(target)
        self.weights.append(weight)
        self.edge_alive.append(True)
        e = len(self.sources) - 1
        self._out[source].append(e)
        self._in[target].append(e)
        return e

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def n_vertices(self) -> int:
        return sum(self.vertex_alive)

    @property
    def n_edges(self) -> int:
        return sum(self.edge_alive)

    def vertices(self) -> Iterator[int]:
        return (v for v, alive in enumerate(self.vertex_alive) if alive)

    def edges(self) -> Iterator[int]:
        return (e for e, alive in enumerate(self.edge_alive) if alive)

    def out_edges(self, v: int) -> List[int]:
        return [e for e in self._out[v] if self.edge_alive[e]]

    def in_edges(self, v: int) -> List[int]:
        return [e for e in self._in[v] if self.edge_alive[e]]

    def roots(self) -> List[int]:
        """Root candidate vertices (children of the pseudo-root)."""
        return [self.targets[e] for e in self.out_edges(PSEUDO_ROOT)]

    def is_root(self, v: int) -> bool:
        return v != PSEUDO_ROOT and self.colors[v] == NO_COLOR

    def root_score(self, root: int) -> float:
        for e in self.in_edges(root):
            if self.sources[e] == PSEUDO_ROOT:
                return self.weights[e]
        raise KeyError(f"Vertex {root} is not a root candidate")

    def loss_formula(self, e: int) -> MolecularFormula:
        return self.formulas[self.sources[e]] - self.formulas[self.targets[e]]

    def color_set(self) -> Set[int]:
        return {self.colors[v] for v in self.vertices() if self.colors[v] != NO_COLOR}

    @property
    def n_colors(self) -> int:
        return len(self.color_set())

    def edge_arrays(self):
        """Alive edges as (edge ids, sources, targets, weights) arrays."""
        ids = np.fromiter(self.edges(), dtype=np.int64)
        sources = np.asarray(self.sources, dtype=np.int64)[ids] if len(ids) else np.zeros(0, np.int64)
        targets = np.asarray(self.targets, dtype=np.int64)[ids] if len(ids) else np.zeros(0, np.int64)
        weights = np.asarray(self.weights, dtype=np.float64)[ids] if len(ids) else np.zeros(0)
        return ids, sources, targets, weights

    # ------------------------------------------------------------------
    # Two-phase deletion
    # ------------------------------------------------------------------

    def remove_edge(self, e: int):
        self.edge_alive[e] = False

    def remove_vertex(self, v: int):
        if v == PSEUDO_ROOT:
            raise ValueError("The pseudo-root cannot be removed")
        self.vertex_alive[v] = False
        for e in self._out[v]:
            self.edge_alive[e] = False
        for e in self._in[v]:
            self.edge_alive[e] = False

    def compact(self) -> "FGraph":
        """Renumber surviving vertices and edges in place."""
        mapping: Dict[int, int] = {}
        graph = FGraph(self.input)
        for v in self.vertices():
            if v == PSEUDO_ROOT:
                mapping[v] = PSEUDO_ROOT
                continue
            mapping[v] = graph.add_vertex(self.formulas[v], self.peaks[v], self.colors[v], self.vertex_scores[v])
        for e in self.edges():
            graph.add_edge(mapping[self.sources[e]], mapping[self.targets[e]], self.weights[e])

        removed_v = len(self.formulas) - len(graph.formulas)
        removed_e = len(self.sources) - len(graph.sources)
        self.__dict__.update(graph.__dict__)
        logger.debug(f"Compacted graph: removed {removed_v} vertices and {removed_e} edges")
        return self

    def copy(self) -> "FGraph":
        graph = FGraph(self.input)
        graph.formulas = list(self.formulas)
        graph.peaks = list(self.peaks)
        graph.colors = list(self.colors)
        graph.vertex_scores = list(self.vertex_scores)
        graph.vertex_alive = list(self.vertex_alive)
        graph.sources = list(self.sources)
        graph.targets = list(self.targets)
        graph.weights = list(self.weights)
        graph.edge_alive = list(self.edge_alive)
        graph._out = [list(x) for x in self._out]
        graph._in = [list(x) for x in self._in]
        return graph

    def __repr__(self) -> str:
        return f"FGraph({self.n_vertices} vertices, {self.n_edges} edges, {self.n_colors} colors)"
