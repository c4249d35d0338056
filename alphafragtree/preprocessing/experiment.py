"""Raw spectra and the MS/MS experiment container.

Spectra are immutable once ingested: arrays are sorted by m/z on
construction and flagged read-only. Transforms (e.g. sum normalization)
always build new spectra.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import List, NamedTuple, Optional

import numpy as np

from ..formula.ionization import PrecursorIonType
from ..formula.molecular_formula import MolecularFormula


@dataclass(frozen=True)
class CollisionEnergy:
    """Collision energy range in eV (min == max for a fixed energy)."""

    min_energy: float
    max_energy: float

    def __post_init__(self):
        if self.min_energy > self.max_energy:
            raise ValueError(f"Invalid collision energy range: {self}")

    @classmethod
    def fixed(cls, energy: float) -> "CollisionEnergy":
        return cls(energy, energy)

    def __str__(self) -> str:
        if self.min_energy == self.max_energy:
            return f"{self.min_energy:g} eV"
        return f"{self.min_energy:g}-{self.max_energy:g} eV"


class RawPeak(NamedTuple):
    """One measured peak, remembered by every processed peak it ends up in."""
    mz: float
    intensity: float
    spectrum_index: int
    collision_energy: Optional[CollisionEnergy]


@dataclass(frozen=True, eq=False)
class RawSpectrum:
    """Immutable peak list of one acquisition.

    Parameters
    ----------
    mz : np.ndarray
        m/z values (any order; stored ascending)
    intensity : np.ndarray
        Intensities, same length as mz
    collision_energy : CollisionEnergy, optional
        Collision energy of an MS2 acquisition
    ms_level : int, default=2
        1 for MS1 survey spectra, 2 for fragment spectra
    """

    mz: np.ndarray
    intensity: np.ndarray
    collision_energy: Optional[CollisionEnergy] = None
    ms_level: int = 2

    def __post_init__(self):
        mz = np.asarray(self.mz, dtype=np.float64)
        intensity = np.asarray(self.intensity, dtype=np.float64)
        if mz.shape != intensity.shape or mz.ndim != 1:
            raise ValueError("mz and intensity must be 1D arrays of the same length")
        if self.ms_level not in (1, 2):
            raise ValueError(f"Unsupported MS level: {self.ms_level}")
        order = np.argsort(mz, kind="stable")
        mz = mz[order]
        intensity = intensity[order]
        mz.setflags(write=False)
        intensity.setflags(write=False)
        object.__setattr__(self, "mz", mz)
        object.__setattr__(self, "intensity", intensity)

    def __len__(self):
        return len(self.mz)

    def with_intensities(self, intensity: np.ndarray) -> "RawSpectrum":
        return replace(self, mz=self.mz.copy(), intensity=np.asarray(intensity, dtype=np.float64))

    def most_intense_peak_within(self, mz: float, tolerance: float) -> int:
        """Index of the most intense peak within ``mz +- tolerance``, or -1."""
        lo = np.searchsorted(self.mz, mz - tolerance, side="left")
        hi = np.searchsorted(self.mz, mz + tolerance, side="right")
        if hi <= lo:
            return -1
        return int(lo + np.argmax(self.intensity[lo:hi]))


@dataclass
class Ms2Experiment:
    """One MS/MS measurement of a single compound.

    Attributes
    ----------
    ms2_spectra : list of RawSpectrum
        Fragment spectra (one per collision energy)
    ion_mass : float, optional
        Precursor m/z; repaired by validation if missing
    precursor_ion_type : PrecursorIonType, optional
        Ionization and adduct; repaired by validation if missing
    ms1_spectra : list of RawSpectrum
        Survey spectra containing the precursor
    merged_ms1_spectrum : RawSpectrum, optional
        Pre-merged survey spectrum, preferred over ``ms1_spectra``
    molecular_formula : MolecularFormula, optional
        Known neutral formula; tightens the formula constraints
    name : str
        Free-text identifier used in log messages
    """

    ms2_spectra: List[RawSpectrum] = field(default_factory=list)
    ion_mass: Optional[float] = None
    precursor_ion_type: Optional[PrecursorIonType] = None
    ms1_spectra: List[RawSpectrum] = field(default_factory=list)
    merged_ms1_spectrum: Optional[RawSpectrum] = None
    molecular_formula: Optional[MolecularFormula] = None
    name: str = ""

    def copy(self) -> "Ms2Experiment":
        # spectra are immutable, so sharing them is safe
        return replace(
            self,
            ms2_spectra=list(self.ms2_spectra),
            ms1_spectra=list(self.ms1_spectra),
        )
