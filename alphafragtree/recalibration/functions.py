"""Recalibration functions and the ppm/MAD helpers used to fit them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np
from numba import njit


@njit
def calculate_ppm_errors(
    observed_mz: np.ndarray, theoretical_mz: np.ndarray
) -> np.ndarray:
    """Mass errors of tree fragments in ppm.

    Parameters
    ----------
    observed_mz : np.ndarray
        m/z of the peak each fragment explains
    theoretical_mz : np.ndarray
        Ion m/z of each fragment formula under the precursor ionization,
        aligned with ``observed_mz``

    Returns
    -------
    ppm_errors : np.ndarray
        (observed - theoretical) / theoretical * 1e6 per fragment
    """
    return (observed_mz - theoretical_mz) / theoretical_mz * 1e6


@njit
def remove_outliers_mad(
    values: np.ndarray, threshold: float = 3.0
) -> np.ndarray:
    """Inlier mask over fragment ppm errors by MAD (Median Absolute Deviation).

    Fragments whose error is far from the tree median are left out of the
    recalibration fit.

    Parameters
    ----------
    values : np.ndarray
        ppm errors of the tree fragments, see ``calculate_ppm_errors``
    threshold : float, default=3.0
        Robust z-score above which a value is an outlier

    Returns
    -------
    mask : np.ndarray (bool)
        True for fragments kept in the fit
    """
    if len(values) == 0:
        return np.ones(0, dtype=np.bool_)

    median = np.median(values)
    mad = np.median(np.abs(values - median))

    if mad < 1e-6:  # All values identical
        return np.ones(len(values), dtype=np.bool_)

    z_scores = np.abs(values - median) / (1.4826 * mad)
    return z_scores < threshold


@dataclass(frozen=True)
class RecalibrationFunction:
    """Polynomial mapping observed m/z to corrected m/z.

    Coefficients are in ascending order: ``c0 + c1 * mz + c2 * mz**2 ...``.

    Examples
    --------
    >>> f = RecalibrationFunction((0.001, 1.0))
    >>> f(np.array([100.0, 200.0]))
    array([100.001, 200.001])
    """

    coefficients: Tuple[float, ...]

    def __post_init__(self):
        coefficients = tuple(float(c) for c in self.coefficients)
        if not coefficients:
            raise ValueError("A recalibration polynomial needs at least one coefficient")
        object.__setattr__(self, "coefficients", coefficients)

    @classmethod
    def identity(cls) -> "RecalibrationFunction":
        return cls((0.0, 1.0))

    @classmethod
    def shift(cls, offset: float) -> "RecalibrationFunction":
        return cls((offset, 1.0))

    @property
    def degree(self) -> int:
        return len(self.coefficients) - 1

    @property
    def is_identity(self) -> bool:
        padded = self.coefficients + (0.0,) * max(0, 2 - len(self.coefficients))
        return padded[0] == 0.0 and padded[1] == 1.0 and all(c == 0.0 for c in padded[2:])

    def __call__(self, mz):
        result = np.polynomial.polynomial.polyval(mz, self.coefficients)
        return float(result) if np.ndim(result) == 0 else result

    def __str__(self) -> str:
        return " + ".join(f"{c:g}*x^{i}" for i, c in enumerate(self.coefficients))
