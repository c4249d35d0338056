"""Peak-pair scorers: score a fragment peak as a child of a heavier peak."""

from __future__ import annotations

import math
from typing import Optional

from ..preprocessing.peaks import ProcessedInput, ProcessedPeak
from .base import PeakPairScorer
from .distributions import LogNormalDistribution


class LossSizeScorer(PeakPairScorer):
    """Log-normal prior on the mass of a loss.

    The loss mass is the m/z difference of the two peaks. The score is
    ``log density(loss mass) - normalization``.

    Parameters
    ----------
    distribution : LogNormalDistribution, default=LogNormal(4, 1)
        Prior over loss masses in Da
    normalization : float, default=-5.0
        Subtracted from every log density
    """

    name = "LossSize"

    def __init__(self, distribution: Optional[LogNormalDistribution] = None, normalization: float = -5.0):
        self.distribution = distribution or LogNormalDistribution(4.0, 1.0)
        self.normalization = normalization

    def score_mass(self, loss_mass: float) -> float:
        return self.distribution.log_density(loss_mass) - self.normalization

    def score(self, parent: ProcessedPeak, fragment: ProcessedPeak, input: ProcessedInput, context) -> float:
        return self.score_mass(parent.mz - fragment.mz)


class CollisionEnergyEdgeScorer(PeakPairScorer):
    """Penalize fragments observed at lower collision energies than their parent.

    A fragment cannot appear at an energy too low to produce its parent.
    If every energy of the fragment is below every energy of the parent, the
    pair scores ``log(strong_penalty)``; if only the lowest fragment energy
    is below the lowest parent energy, ``log(weak_penalty)``. Peaks without
    collision energies (and the synthetic parent) are never penalized.
    """

    name = "CollisionEnergy"

    def __init__(self, strong_penalty: float = 0.1, weak_penalty: float = 0.8):
        if not (0 < strong_penalty <= 1 and 0 < weak_penalty <= 1):
            raise ValueError("Penalties must be probabilities in (0, 1]")
        self.strong_penalty = strong_penalty
        self.weak_penalty = weak_penalty

    def score(self, parent: ProcessedPeak, fragment: ProcessedPeak, input: ProcessedInput, context) -> float:
        parent_energies = parent.collision_energies
        fragment_energies = fragment.collision_energies
        if not parent_energies or not fragment_energies:
            return 0.0
        parent_min = min(e.min_energy for e in parent_energies)
        fragment_min = min(e.min_energy for e in fragment_energies)
        fragment_max = max(e.max_energy for e in fragment_energies)
        if fragment_max < parent_min:
            return math.log(self.strong_penalty)
        if fragment_min < parent_min:
            return math.log(self.weak_penalty)
        return 0.0
