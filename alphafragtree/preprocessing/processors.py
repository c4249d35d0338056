"""Spectrum preprocessors and peak-list post-processors.

Preprocessors transform the experiment before peaks are extracted.
Post-processors filter the peak list of a ``ProcessedInput`` at a fixed
pipeline stage.
"""

from __future__ import annotations

import logging
from enum import Enum

import numpy as np

from ..profile import MeasurementProfile
from .experiment import Ms2Experiment
from .peaks import ProcessedInput

logger = logging.getLogger(__name__)


class Preprocessor:
    """Spectrum-level transform applied before normalization."""

    def process(self, experiment: Ms2Experiment, profile: MeasurementProfile) -> Ms2Experiment:
        raise NotImplementedError


class NormalizeToSumPreprocessor(Preprocessor):
    """Scale every MS2 spectrum to an intensity sum of ``total``."""

    def __init__(self, total: float = 1.0):
        self.total = total

    def process(self, experiment: Ms2Experiment, profile: MeasurementProfile) -> Ms2Experiment:
        spectra = []
        for s in experiment.ms2_spectra:
            intensity_sum = float(np.sum(s.intensity))
            if intensity_sum > 0:
                spectra.append(s.with_intensities(s.intensity * (self.total / intensity_sum)))
            else:
                spectra.append(s)
        experiment.ms2_spectra = spectra
        return experiment


class Stage(Enum):
    """Pipeline stage after which a post-processor runs."""
    AFTER_NORMALIZING = "after_normalizing"
    AFTER_MERGING = "after_merging"
    AFTER_DECOMPOSING = "after_decomposing"


class PostProcessor:
    """Peak-list filter bound to one pipeline stage."""

    stage: Stage = Stage.AFTER_NORMALIZING

    def process(self, input: ProcessedInput) -> ProcessedInput:
        raise NotImplementedError


class NoiseThresholdFilter(PostProcessor):
    """Drop peaks whose relative intensity is below ``threshold``."""

    stage = Stage.AFTER_NORMALIZING

    def __init__(self, threshold: float = 0.005):
        self.threshold = threshold

    def process(self, input: ProcessedInput) -> ProcessedInput:
        before = len(input.peaks)
        input.peaks = [p for p in input.peaks if p.relative_intensity >= self.threshold]
        logger.debug(f"Noise filter removed {before - len(input.peaks)} of {before} peaks")
        return input


class LimitNumberOfPeaksFilter(PostProcessor):
    """Keep the ``limit`` most intense peaks.

    A peak within the allowed deviation of the ion mass is always kept, so
    the filter never forces a synthetic parent.
    """

    stage = Stage.AFTER_MERGING

    def __init__(self, limit: int = 40):
        if limit < 1:
            raise ValueError(f"limit must be positive, got {limit}")
        self.limit = limit

    def process(self, input: ProcessedInput) -> ProcessedInput:
        if len(input.peaks) <= self.limit:
            return input
        ion_mass = input.experiment.ion_mass
        deviation = input.profile.allowed_mass_deviation
        by_intensity = sorted(input.peaks, key=lambda p: -p.relative_intensity)
        kept = by_intensity[: self.limit]
        kept_ids = {id(p) for p in kept}
        for p in by_intensity[self.limit:]:
            if deviation.in_error_window(ion_mass, p.mz):
                kept.append(p)
                kept_ids.add(id(p))
        input.peaks = [p for p in input.peaks if id(p) in kept_ids]
        logger.debug(f"Peak limit kept {len(input.peaks)} peaks")
        return input
