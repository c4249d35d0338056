"""Peak scorers: one additive score per fragment peak."""

from __future__ import annotations

from typing import Optional

from ..preprocessing.peaks import ProcessedInput, ProcessedPeak
from .base import PeakScorer
from .distributions import ExponentialDistribution


class PeakIsNoiseScorer(PeakScorer):
    """Evidence that a peak is signal rather than noise.

    Noise intensities follow an exponential distribution; the score is
    ``-log P(noise >= intensity)``, so stronger peaks earn larger scores.
    Without an explicit distribution, the median is taken from the
    measurement profile (``median_noise_intensity``).

    Parameters
    ----------
    distribution : ExponentialDistribution, optional
        Fixed noise model; overrides the profile median
    """

    name = "PeakIsNoise"

    def __init__(self, distribution: Optional[ExponentialDistribution] = None):
        self.distribution = distribution

    def prepare(self, input: ProcessedInput) -> ExponentialDistribution:
        if self.distribution is not None:
            return self.distribution
        return ExponentialDistribution.from_median(input.profile.median_noise_intensity)

    def score(self, peak: ProcessedPeak, input: ProcessedInput, context: ExponentialDistribution) -> float:
        return -context.log_survival(peak.relative_intensity)


class TreeSizeScorer(PeakScorer):
    """Constant bonus per explained peak; tunes the size of the trees."""

    name = "TreeSize"

    def __init__(self, tree_size_score: float = 0.0):
        self.tree_size_score = tree_size_score

    def score(self, peak: ProcessedPeak, input: ProcessedInput, context) -> float:
        return self.tree_size_score
