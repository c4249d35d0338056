"""Processed peaks and the per-spectrum working state of the pipeline.

``ProcessedInput`` is created once per spectrum by validation, mutated in
place by every pipeline stage and read-only once handed to the graph builder.
Per-peak annotations are explicit fields keyed by peak identity
(``ProcessedPeak`` hashes by identity).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from ..formula.ionization import PrecursorIonType
from ..formula.molecular_formula import DecompositionList, FormulaConstraints
from ..profile import MeasurementProfile
from .experiment import CollisionEnergy, Ms2Experiment, RawPeak


@dataclass(eq=False)
class ProcessedPeak:
    """A peak surviving deduplication and merging across spectra.

    Attributes
    ----------
    mz : float
        Current m/z (recalibration rewrites it)
    original_mz : float
        m/z as measured (after merging)
    intensity : float
        Raw intensity of the representative peak
    local_relative_intensity : float
        Intensity relative to the scale of its own spectrum
    global_relative_intensity : float
        Intensity relative to the largest spectrum scale
    relative_intensity : float
        Local or global view, depending on the normalization type
    original_peaks : list of RawPeak
        Contributing measured peaks; empty for a synthetic peak
    index : int
        Position after the final ordering (parent peak is last)
    """

    mz: float
    original_mz: float
    intensity: float = 0.0
    local_relative_intensity: float = 0.0
    global_relative_intensity: float = 0.0
    relative_intensity: float = 0.0
    original_peaks: List[RawPeak] = field(default_factory=list)
    index: int = 0

    @classmethod
    def from_raw(cls, raw: RawPeak) -> "ProcessedPeak":
        return cls(mz=raw.mz, original_mz=raw.mz, intensity=raw.intensity, original_peaks=[raw])

    @classmethod
    def synthetic(cls, mz: float) -> "ProcessedPeak":
        return cls(mz=mz, original_mz=mz)

    @property
    def is_synthetic(self) -> bool:
        return not self.original_peaks

    @property
    def recalibration_shift(self) -> float:
        return self.mz - self.original_mz

    @property
    def spectrum_indices(self) -> List[int]:
        return [p.spectrum_index for p in self.original_peaks]

    @property
    def collision_energies(self) -> List[CollisionEnergy]:
        return [p.collision_energy for p in self.original_peaks if p.collision_energy is not None]

    def copy(self) -> "ProcessedPeak":
        return ProcessedPeak(
            mz=self.mz,
            original_mz=self.original_mz,
            intensity=self.intensity,
            local_relative_intensity=self.local_relative_intensity,
            global_relative_intensity=self.global_relative_intensity,
            relative_intensity=self.relative_intensity,
            original_peaks=list(self.original_peaks),
            index=self.index,
        )

    def __repr__(self) -> str:
        return f"ProcessedPeak({self.relative_intensity:.4f}@{self.mz:.5f} Da, index={self.index})"


@dataclass
class Scoring:
    """Peak and peak-pair scores of one ``ProcessedInput``.

    ``peak_pair_scores[u, v]`` scores peak v as a fragment of peak u.
    """

    peak_scores: np.ndarray
    peak_pair_scores: np.ndarray

    @classmethod
    def initialize(cls, n_peaks: int) -> "Scoring":
        return cls(
            peak_scores=np.zeros(n_peaks, dtype=np.float64),
            peak_pair_scores=np.zeros((n_peaks, n_peaks), dtype=np.float64),
        )


@dataclass
class ProcessedInput:
    """Working state of the pipeline for one spectrum.

    Attributes
    ----------
    experiment : Ms2Experiment
        Validated (and possibly repaired or preprocessed) copy
    original_experiment : Ms2Experiment
        Experiment as passed by the caller
    profile : MeasurementProfile
        Profile in effect (formula constraints may be tightened)
    peaks : list of ProcessedPeak
        Merged peaks; after parent detection sorted by m/z, parent last
    parent_peak : ProcessedPeak, optional
        Set by parent peak detection
    decompositions : dict
        ``ProcessedPeak -> DecompositionList``
    scoring : Scoring, optional
        Peak and peak-pair scores
    parent_candidates : DecompositionList
        Scored parent formulas (including the adduct), best first
    warnings : list of str
        Repairs applied by validation
    """

    experiment: Ms2Experiment
    original_experiment: Ms2Experiment
    profile: MeasurementProfile
    peaks: List[ProcessedPeak] = field(default_factory=list)
    parent_peak: Optional[ProcessedPeak] = None
    decompositions: Dict[ProcessedPeak, DecompositionList] = field(default_factory=dict)
    scoring: Optional[Scoring] = None
    parent_candidates: DecompositionList = field(default_factory=DecompositionList)
    warnings: List[str] = field(default_factory=list)

    @property
    def ion_type(self) -> PrecursorIonType:
        return self.experiment.precursor_ion_type

    @property
    def formula_constraints(self) -> FormulaConstraints:
        return self.profile.formula_constraints

    @property
    def fragment_peaks(self) -> List[ProcessedPeak]:
        """All peaks except the parent peak."""
        return [p for p in self.peaks if p is not self.parent_peak]

    def decompositions_of(self, peak: ProcessedPeak) -> DecompositionList:
        return self.decompositions.get(peak, DecompositionList())

    def copy_with_peaks(self, peaks: List[ProcessedPeak], parent_peak: ProcessedPeak) -> "ProcessedInput":
        """Fresh input sharing experiment and profile but owning new peaks."""
        return ProcessedInput(
            experiment=self.experiment,
            original_experiment=self.original_experiment,
            profile=self.profile,
            peaks=peaks,
            parent_peak=parent_peak,
            warnings=list(self.warnings),
        )
