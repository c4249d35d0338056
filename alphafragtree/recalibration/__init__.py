"""Mass recalibration from computed fragmentation trees.

Examples
--------
>>> from alphafragtree.recalibration import PolynomialRecalibration
>>> analysis = FragmentationPatternAnalysis.default()
>>> analysis.recalibration_method = PolynomialRecalibration(degree=1)
>>> tree = analysis.compute_tree(graph)  # recalibrated if it improves the score
"""

from .engine import RecalibrationEngine, RecalibrationState
from .functions import RecalibrationFunction, calculate_ppm_errors, remove_outliers_mad
from .method import PolynomialRecalibration, Recalibration, RecalibrationMethod

__all__ = [
    "RecalibrationFunction",
    "RecalibrationMethod",
    "PolynomialRecalibration",
    "Recalibration",
    "RecalibrationEngine",
    "RecalibrationState",
    "calculate_ppm_errors",
    "remove_outliers_mad",
]
