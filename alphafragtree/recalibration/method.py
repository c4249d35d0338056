"""Recalibration methods: fit a mass correction from a computed tree.

The fragments of a tree give pairs of observed and theoretical m/z. A
method fits a ``RecalibrationFunction`` to these pairs and estimates the
score bonus as the change of the mass deviation scores of the tree
fragments under the corrected masses.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..scoring.decomposition_scorers import MassDeviationVertexScorer
from ..tree.ftree import FTree
from .functions import RecalibrationFunction, calculate_ppm_errors, remove_outliers_mad

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Recalibration:
    """Result of fitting a recalibration function to one tree.

    Attributes
    ----------
    function : RecalibrationFunction
        Correction to apply to peak m/z values
    estimated_bonus : float
        Predicted change of the tree score
    median_ppm_before : float
        Median absolute ppm error of the inlier fragments
    median_ppm_after : float
        Same, after applying ``function``
    n_fragments : int
        Fragments with a measured peak
    n_inliers : int
        Fragments kept by outlier removal
    """

    function: RecalibrationFunction
    estimated_bonus: float
    median_ppm_before: float
    median_ppm_after: float
    n_fragments: int
    n_inliers: int


class RecalibrationMethod:
    def recalibrate(
        self,
        tree: FTree,
        scorer: MassDeviationVertexScorer,
    ) -> Optional[Recalibration]:
        raise NotImplementedError


class PolynomialRecalibration(RecalibrationMethod):
    """Least-squares polynomial from observed to theoretical m/z.

    Fragments with a robust ppm z-score above ``outlier_threshold_mad`` are
    ignored. With fewer than ``min_fragments`` inliers (or fewer than needed
    for the degree), the correction falls back to a constant shift by the
    median error.

    Parameters
    ----------
    degree : int, default=1
        Polynomial degree
    outlier_threshold_mad : float, default=3.0
        MAD z-score threshold for outlier removal
    min_fragments : int, default=4
        Minimum inliers for a polynomial fit
    """

    def __init__(self, degree: int = 1, outlier_threshold_mad: float = 3.0, min_fragments: int = 4):
        if degree < 0:
            raise ValueError(f"degree must be non-negative, got {degree}")
        self.degree = degree
        self.outlier_threshold_mad = outlier_threshold_mad
        self.min_fragments = min_fragments

    def recalibrate(
        self,
        tree: FTree,
        scorer: MassDeviationVertexScorer,
    ) -> Optional[Recalibration]:
        input = tree.input
        ion_type = input.ion_type
        fragments = [f for f in tree if f.peak is not None and not f.peak.is_synthetic]
        if not fragments:
            logger.debug("No measured fragments in tree; nothing to recalibrate")
            return None

        observed = np.array([f.peak.mz for f in fragments], dtype=np.float64)
        theoretical = np.array([ion_type.add_to_mass(f.formula.mass) for f in fragments], dtype=np.float64)

        ppm_errors = calculate_ppm_errors(observed, theoretical)
        inliers = remove_outliers_mad(ppm_errors, self.outlier_threshold_mad)
        n_inliers = int(np.sum(inliers))
        if n_inliers == 0:
            return None

        if n_inliers >= max(self.min_fragments, self.degree + 1):
            coefficients = np.polynomial.polynomial.polyfit(observed[inliers], theoretical[inliers], self.degree)
            function = RecalibrationFunction(tuple(coefficients))
        else:
            warnings.warn(
                f"Only {n_inliers} inlier fragments for recalibration. "
                "Using median shift correction."
            )
            function = RecalibrationFunction.shift(float(np.median(theoretical[inliers] - observed[inliers])))

        corrected = np.asarray(function(observed), dtype=np.float64)
        median_before = float(np.median(np.abs(ppm_errors[inliers])))
        median_after = float(np.median(np.abs(calculate_ppm_errors(corrected[inliers], theoretical[inliers]))))

        bonus = 0.0
        for f, old_mz, new_mz, theo in zip(fragments, observed, corrected, theoretical):
            if f.peak is input.parent_peak:
                deviation = input.profile.standard_ms1_deviation
            else:
                deviation = input.profile.standard_ms2_deviation
            bonus += scorer.score_mass(float(new_mz), theo, deviation) - scorer.score_mass(float(old_mz), theo, deviation)

        logger.debug(
            f"Recalibration fit on {n_inliers}/{len(fragments)} fragments: "
            f"median error {median_before:.2f} -> {median_after:.2f} ppm, estimated bonus {bonus:.4f}"
        )
        return Recalibration(
            function=function,
            estimated_bonus=bonus,
            median_ppm_before=median_before,
            median_ppm_after=median_after,
            n_fragments=len(fragments),
            n_inliers=n_inliers,
        )
