"""Peak processing: experiments, validation, merging and processed peaks.

The pipeline stages themselves are methods of
``FragmentationPatternAnalysis``; this package holds the data model and the
pluggable stage components.
"""

from .experiment import CollisionEnergy, Ms2Experiment, RawPeak, RawSpectrum
from .merging import HighIntensityMerger, PeakMerger
from .peaks import ProcessedInput, ProcessedPeak, Scoring
from .processors import (
    LimitNumberOfPeaksFilter,
    NoiseThresholdFilter,
    NormalizeToSumPreprocessor,
    PostProcessor,
    Preprocessor,
    Stage,
)
from .validation import InputValidator, InvalidInputError, MissingValueValidator

__all__ = [
    # Data model
    "CollisionEnergy",
    "RawPeak",
    "RawSpectrum",
    "Ms2Experiment",
    "ProcessedPeak",
    "ProcessedInput",
    "Scoring",
    # Validation
    "InputValidator",
    "MissingValueValidator",
    "InvalidInputError",
    # Processors
    "Preprocessor",
    "NormalizeToSumPreprocessor",
    "PostProcessor",
    "Stage",
    "NoiseThresholdFilter",
    "LimitNumberOfPeaksFilter",
    # Merging
    "PeakMerger",
    "HighIntensityMerger",
]
