"""Scorer interfaces.

Four kinds of scorers assign additive log-scores:

- ``PeakScorer``: one score per peak (how likely is the peak real signal)
- ``PeakPairScorer``: one score per (parent-side peak, fragment peak) pair
- ``LossScorer``: one score per chemical loss (edge of the graph)
- ``DecompositionScorer``: one score per (candidate formula, peak)

Each scorer has an optional ``prepare(input)`` hook, called once per scoring
pass; its return value is passed back to ``score`` as ``context``. Scorers are
shared between concurrent analyses and must not mutate their own state in
``prepare`` or ``score``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple

from ..formula.molecular_formula import MolecularFormula
from ..preprocessing.peaks import ProcessedInput, ProcessedPeak


class ScorerContractError(ArithmeticError):
    """A scorer returned a non-finite score."""


def check_finite(value: float, scorer: Any) -> float:
    """Return ``value`` or raise if it is NaN or infinite."""
    if not math.isfinite(value):
        raise ScorerContractError(f"{scorer_name(scorer)} returned non-finite score {value}")
    return value


def scorer_name(scorer: Any) -> str:
    if isinstance(scorer, str):
        return scorer
    return getattr(scorer, "name", None) or type(scorer).__name__


class Loss(NamedTuple):
    """A chemical loss between two fragments, as seen by loss scorers."""
    source_formula: MolecularFormula
    target_formula: MolecularFormula
    formula: MolecularFormula
    source_peak: Optional[ProcessedPeak]
    target_peak: Optional[ProcessedPeak]

    @classmethod
    def between(
        cls,
        source_formula: MolecularFormula,
        target_formula: MolecularFormula,
        source_peak: Optional[ProcessedPeak] = None,
        target_peak: Optional[ProcessedPeak] = None,
    ) -> "Loss":
        return cls(source_formula, target_formula, source_formula - target_formula, source_peak, target_peak)


class PeakScorer:
    def prepare(self, input: ProcessedInput) -> Any:
        return None

    def score(self, peak: ProcessedPeak, input: ProcessedInput, context: Any) -> float:
        raise NotImplementedError


class PeakPairScorer:
    def prepare(self, input: ProcessedInput) -> Any:
        return None

    def score(
        self,
        parent: ProcessedPeak,
        fragment: ProcessedPeak,
        input: ProcessedInput,
        context: Any,
    ) -> float:
        raise NotImplementedError


class LossScorer:
    def prepare(self, input: ProcessedInput) -> Any:
        return None

    def score(self, loss: Loss, input: ProcessedInput, context: Any) -> float:
        raise NotImplementedError


class DecompositionScorer:
    def prepare(self, input: ProcessedInput) -> Any:
        return None

    def score(
        self,
        formula: MolecularFormula,
        peak: ProcessedPeak,
        input: ProcessedInput,
        context: Any,
    ) -> float:
        raise NotImplementedError


@dataclass(frozen=True)
class ScorerSet:
    """Ordered scorer lists of one analysis.

    ``decomposition_scorers`` score fragment candidates, ``root_scorers``
    score parent candidates; both implement ``DecompositionScorer``.
    """

    peak_scorers: Tuple[PeakScorer, ...] = ()
    peak_pair_scorers: Tuple[PeakPairScorer, ...] = ()
    loss_scorers: Tuple[LossScorer, ...] = ()
    decomposition_scorers: Tuple[DecompositionScorer, ...] = ()
    root_scorers: Tuple[DecompositionScorer, ...] = ()

    def __post_init__(self):
        for name in ("peak_scorers", "peak_pair_scorers", "loss_scorers", "decomposition_scorers", "root_scorers"):
            object.__setattr__(self, name, tuple(getattr(self, name)))


def unique_names(scorers: Sequence[Any]) -> List[str]:
    """Scorer names, suffixed with a counter where a name repeats."""
    names = []
    seen: Dict[str, int] = {}
    for scorer in scorers:
        name = scorer_name(scorer)
        if name in seen:
            seen[name] += 1
            name = f"{name}#{seen[name]}"
        else:
            seen[name] = 0
        names.append(name)
    return names
