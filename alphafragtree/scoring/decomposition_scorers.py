"""Decomposition scorers: score a candidate formula of a peak.

The same interface scores fragment candidates (``decomposition_scorers``)
and parent candidates (``root_scorers``).
"""

from __future__ import annotations

import math
from typing import Mapping, Optional

from scipy.special import log_ndtr

from ..formula.molecular_formula import MolecularFormula
from ..preprocessing.peaks import ProcessedInput, ProcessedPeak
from ..profile import Deviation
from .base import DecompositionScorer
from .distributions import PartialParetoDistribution

_LOG2 = math.log(2.0)


class MassDeviationVertexScorer(DecompositionScorer):
    """Two-sided normal tail probability of the mass error.

    score = log P(|X| >= |observed - theoretical|), X ~ N(0, sigma), where
    sigma is the standard MS1 deviation for the parent peak and the standard
    MS2 deviation otherwise. The score is 0 for a perfect match and finite
    for any error (``log_ndtr`` never underflows to -inf).
    """

    name = "MassDeviation"

    def score_mass(self, observed_mz: float, theoretical_mz: float, deviation: Deviation) -> float:
        sigma = deviation.absolute_for(theoretical_mz)
        if sigma <= 0:
            raise ValueError(f"Standard deviation must be positive, got {deviation}")
        z = abs(observed_mz - theoretical_mz) / sigma
        return _LOG2 + float(log_ndtr(-z))

    def score(
        self,
        formula: MolecularFormula,
        peak: ProcessedPeak,
        input: ProcessedInput,
        context,
    ) -> float:
        theoretical = input.ion_type.add_to_mass(formula.mass)
        if peak is input.parent_peak:
            deviation = input.profile.standard_ms1_deviation
        else:
            deviation = input.profile.standard_ms2_deviation
        return self.score_mass(peak.mz, theoretical, deviation)


class CommonFragmentsScorer(DecompositionScorer):
    """Fixed bonus for fragment formulas from a table of common fragments."""

    name = "CommonFragments"

    def __init__(self, common_fragments: Optional[Mapping[MolecularFormula, float]] = None):
        self.common_fragments = dict(common_fragments or {})

    def score(self, formula, peak, input, context) -> float:
        return self.common_fragments.get(formula, 0.0)


class Hetero2CarbonPrior:
    """Prior on the hetero-atom to carbon ratio of a formula.

    Uses a partial Pareto distribution: ratios up to ``b`` are equally
    likely, larger ratios decay with shape ``k``. Scores are shifted so the
    plateau scores 0.
    """

    def __init__(self, distribution: Optional[PartialParetoDistribution] = None):
        self.distribution = distribution or PartialParetoDistribution(0.0, 0.5, 3.0)
        self._log_opt = math.log(self.distribution.opt)

    def score(self, formula: MolecularFormula) -> float:
        return self.distribution.log_density(formula.hetero_to_carbon_ratio()) - self._log_opt


class ChemicalPriorScorer(DecompositionScorer):
    """Chemical prior for (parent) formulas.

    Parameters
    ----------
    prior : Hetero2CarbonPrior, optional
        Formula prior; defaults to the hetero-to-carbon prior
    normalization : float, default=0.0
        Subtracted from every prior score
    min_mass : float, default=0.0
        Formulas lighter than this are not scored
    """

    name = "ChemicalPrior"

    def __init__(
        self,
        prior: Optional[Hetero2CarbonPrior] = None,
        normalization: float = 0.0,
        min_mass: float = 0.0,
    ):
        self.prior = prior or Hetero2CarbonPrior()
        self.normalization = normalization
        self.min_mass = min_mass

    def score(self, formula, peak, input, context) -> float:
        if formula.mass < self.min_mass:
            return 0.0
        return self.prior.score(formula) - self.normalization
