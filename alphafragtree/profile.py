"""Measurement profile: mass tolerances, formula constraints and noise model.

The profile bundles every instrument-dependent setting used by the pipeline.
It is a frozen dataclass so one profile can be shared by concurrent analyses;
derive modified profiles with ``dataclasses.replace``.

Examples
--------
>>> profile = MeasurementProfile.for_instrument(InstrumentType.ORBITRAP)
>>> profile.allowed_mass_deviation.absolute_for(500.0)
0.0025
>>> wide = profile.allowed_mass_deviation.multiply(2)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .constants import (
    DEFAULT_ALLOWED_DEVIATION_ABS,
    DEFAULT_ALLOWED_DEVIATION_PPM,
    DEFAULT_MEDIAN_NOISE_INTENSITY,
    DEFAULT_STANDARD_MS1_DEVIATION_PPM,
    DEFAULT_STANDARD_MS2_DEVIATION_PPM,
)
from .formula.molecular_formula import FormulaConstraints


class InstrumentType(Enum):
    """Instrument types with different mass accuracy characteristics."""
    ORBITRAP = "orbitrap"  # ~5 ppm
    QTOF = "qtof"          # ~10 ppm, 2 mDa floor
    FTICR = "fticr"        # ~2 ppm


class NormalizationType(Enum):
    """Which normalized intensity becomes a peak's relative intensity."""
    LOCAL = "local"    # per spectrum
    GLOBAL = "global"  # across all spectra


@dataclass(frozen=True)
class Deviation:
    """Mass tolerance: relative (ppm) with an absolute floor (Da).

    The absolute tolerance for a mass m is ``max(m * ppm * 1e-6, absolute)``.
    """

    ppm: float
    absolute: float = 0.0

    def __post_init__(self):
        if self.ppm < 0 or self.absolute < 0:
            raise ValueError(f"Deviation must be non-negative: {self}")

    def absolute_for(self, mass: float) -> float:
        return max(abs(mass) * self.ppm * 1e-6, self.absolute)

    def in_error_window(self, center: float, mass: float) -> bool:
        return abs(center - mass) <= self.absolute_for(center)

    def multiply(self, factor: float) -> "Deviation":
        return Deviation(self.ppm * factor, self.absolute * factor)

    def divide(self, divisor: float) -> "Deviation":
        return Deviation(self.ppm / divisor, self.absolute / divisor)

    def __str__(self) -> str:
        return f"{self.ppm:g} ppm ({self.absolute * 1000:g} mDa)"


@dataclass(frozen=True)
class MeasurementProfile:
    """Instrument and chemistry settings for one measurement.

    Attributes
    ----------
    allowed_mass_deviation : Deviation
        Tolerance for decomposition, peak merging and parent detection
    standard_ms1_deviation : Deviation
        Standard deviation of the precursor mass error model
    standard_ms2_deviation : Deviation
        Standard deviation of the fragment mass error model
    intensity_deviation : float
        Expected relative intensity error per peak
    formula_constraints : FormulaConstraints
        Alphabet and element bounds
    median_noise_intensity : float
        Median relative intensity of noise peaks
    """

    allowed_mass_deviation: Deviation = Deviation(
        DEFAULT_ALLOWED_DEVIATION_PPM, DEFAULT_ALLOWED_DEVIATION_ABS
    )
    standard_ms1_deviation: Deviation = Deviation(DEFAULT_STANDARD_MS1_DEVIATION_PPM)
    standard_ms2_deviation: Deviation = Deviation(
        DEFAULT_STANDARD_MS2_DEVIATION_PPM, DEFAULT_ALLOWED_DEVIATION_ABS / 2
    )
    intensity_deviation: float = 0.02
    formula_constraints: FormulaConstraints = field(default_factory=FormulaConstraints)
    median_noise_intensity: float = DEFAULT_MEDIAN_NOISE_INTENSITY

    @classmethod
    def for_instrument(cls, instrument: InstrumentType) -> "MeasurementProfile":
        """Create a profile with instrument-specific mass tolerances.

        Args:
            instrument: Instrument type enum

        Returns:
            MeasurementProfile with instrument-specific defaults
        """
        if instrument == InstrumentType.ORBITRAP:
            return cls(
                allowed_mass_deviation=Deviation(5.0, 0.001),
                standard_ms1_deviation=Deviation(2.5),
                standard_ms2_deviation=Deviation(5.0, 0.0005),
            )
        elif instrument == InstrumentType.QTOF:
            return cls(
                allowed_mass_deviation=Deviation(10.0, 0.002),
                standard_ms1_deviation=Deviation(5.0),
                standard_ms2_deviation=Deviation(10.0, 0.001),
            )
        elif instrument == InstrumentType.FTICR:
            return cls(
                allowed_mass_deviation=Deviation(2.0, 0.0005),
                standard_ms1_deviation=Deviation(1.0),
                standard_ms2_deviation=Deviation(2.0, 0.0002),
            )
        else:
            raise ValueError(f"Unknown instrument type: {instrument}")
