"""Pytest configuration for AlphaFragTree tests.

This module provides common fixtures and configuration for all tests.
Experiments are built in memory; no test touches the file system.
"""

import numpy as np
import pytest


class MassErrorLossScorer:
    """Loss scorer with weight -|mass error| of the loss."""

    name = "MassErrorLoss"

    def prepare(self, input):
        return None

    def score(self, loss, input, context):
        observed = loss.source_peak.mz - loss.target_peak.mz
        return -abs(observed - loss.formula.mass)


@pytest.fixture
def permissive_profile():
    """CHNOPS profile with a flat 0.01 Da tolerance."""
    from alphafragtree.profile import Deviation, MeasurementProfile
    return MeasurementProfile(allowed_mass_deviation=Deviation(0.0, 0.01))


@pytest.fixture
def three_peak_experiment():
    """Single spectrum: fragments at 50 and 80, parent at 120."""
    from alphafragtree.convenience import experiment_from_peaks
    return experiment_from_peaks(
        [(50.0, 30.0), (80.0, 60.0), (120.0, 100.0)],
        ion_mass=120.0,
        ion_type="[M+H]+",
        name="three-peak",
    )


@pytest.fixture
def mass_error_scorers():
    """Positive per-peak bonus plus a -|mass error| loss scorer."""
    from alphafragtree.scoring import ScorerSet, TreeSizeScorer
    return ScorerSet(
        peak_scorers=(TreeSizeScorer(1.0),),
        loss_scorers=(MassErrorLossScorer(),),
    )


@pytest.fixture
def mass_error_analysis(permissive_profile, mass_error_scorers):
    """Minimal analysis for small hand-made spectra."""
    from alphafragtree.analysis import FragmentationPatternAnalysis
    return FragmentationPatternAnalysis.empty(permissive_profile, scorers=mass_error_scorers)


@pytest.fixture
def water():
    from alphafragtree.formula import MolecularFormula
    return MolecularFormula.parse("H2O")


# Random seed for reproducibility
@pytest.fixture(scope="session", autouse=True)
def set_random_seed():
    """Set random seed for reproducible tests."""
    np.random.seed(42)
