"""Fragmentation trees.

An ``FTree`` is self-contained: formulas, peaks and loss weights are copied
out of the graph it was extracted from. Fragment 0 is the root; every other
fragment has exactly one incoming loss.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional

from ..formula.ionization import PrecursorIonType
from ..formula.molecular_formula import MolecularFormula
from ..preprocessing.peaks import ProcessedInput, ProcessedPeak

if TYPE_CHECKING:
    from ..recalibration.functions import RecalibrationFunction


@dataclass
class TreeFragment:
    """Vertex of a fragmentation tree.

    ``color`` is the index of the explained peak (-1 for the root).
    ``scores`` holds the per-scorer breakdown set by ``recalculate_scores``.
    """

    id: int
    formula: MolecularFormula
    color: int
    peak: Optional[ProcessedPeak] = None
    parent: Optional[int] = None
    children: List[int] = field(default_factory=list)
    scores: Dict[str, float] = field(default_factory=dict)

    @property
    def is_root(self) -> bool:
        return self.parent is None


@dataclass
class TreeLoss:
    """Edge of a fragmentation tree: ``source`` loses ``formula`` to become ``target``."""

    source: int
    target: int
    formula: MolecularFormula
    weight: float
    scores: Dict[str, float] = field(default_factory=dict)


@dataclass
class TreeScoring:
    """Scores and statistics of a fragmentation tree.

    Attributes
    ----------
    root_score : float
        Score of the root candidate
    overall_score : float
        Root score plus the sum of all loss weights
    recalibration_bonus : float
        Realized score gain of an adopted recalibration
    estimated_recalibration_bonus : float
        Gain predicted before recomputing
    median_ppm_before, median_ppm_after : float, optional
        Median absolute mass error of fitted fragments before and after the
        recalibration function
    explained_intensity : float
        Explained share of the intensity of all fragment peaks
    explained_intensity_of_explainable_peaks : float
        Same, restricted to peaks with a candidate below the root formula
    ratio_of_explained_peaks : float
        Tree size divided by the number of input peaks
    """

    root_score: float = 0.0
    overall_score: float = 0.0
    recalibration_bonus: float = 0.0
    estimated_recalibration_bonus: float = 0.0
    median_ppm_before: Optional[float] = None
    median_ppm_after: Optional[float] = None
    explained_intensity: float = 0.0
    explained_intensity_of_explainable_peaks: float = 0.0
    ratio_of_explained_peaks: float = 0.0


class FTree:
    """Rooted fragmentation tree."""

    def __init__(self, root_formula: MolecularFormula, input: Optional[ProcessedInput] = None):
        self.fragments: List[TreeFragment] = [TreeFragment(0, root_formula, -1)]
        self.losses: List[TreeLoss] = []
        self.scoring = TreeScoring()
        self.input = input
        self.recalibration: Optional["RecalibrationFunction"] = None

    @property
    def root(self) -> TreeFragment:
        return self.fragments[0]

    @property
    def ion_type(self) -> Optional[PrecursorIonType]:
        return self.input.ion_type if self.input is not None else None

    def add_fragment(self, parent: int, formula: MolecularFormula, color: int, weight: float) -> TreeFragment:
        fragment = TreeFragment(len(self.fragments), formula, color, parent=parent)
        self.fragments.append(fragment)
        self.fragments[parent].children.append(fragment.id)
        self.losses.append(TreeLoss(parent, fragment.id, self.fragments[parent].formula - formula, weight))
        return fragment

    def incoming_loss(self, fragment: TreeFragment) -> Optional[TreeLoss]:
        if fragment.is_root:
            return None
        for loss in self.losses:
            if loss.target == fragment.id:
                return loss
        return None

    def fragments_without_root(self) -> List[TreeFragment]:
        return self.fragments[1:]

    def colors(self) -> List[int]:
        return [f.color for f in self.fragments_without_root()]

    @property
    def n_vertices(self) -> int:
        return len(self.fragments)

    def __len__(self):
        return len(self.fragments)

    def __iter__(self) -> Iterator[TreeFragment]:
        return iter(self.fragments)

    def pretty(self) -> str:
        """Indented text rendering, one fragment per line."""
        lines = []

        def visit(fid: int, depth: int):
            f = self.fragments[fid]
            mz = f"{f.peak.mz:.4f}" if f.peak is not None else "?"
            loss = self.incoming_loss(f)
            edge = f" (-{loss.formula}, {loss.weight:.3f})" if loss is not None else ""
            lines.append(f"{'  ' * depth}{f.formula} @ {mz}{edge}")
            for child in f.children:
                visit(child, depth + 1)

        visit(0, 0)
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"FTree(root={self.root.formula}, fragments={len(self.fragments)}, score={self.scoring.overall_score:.4f})"
