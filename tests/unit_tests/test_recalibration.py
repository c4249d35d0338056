"""Tests for mass recalibration.

This module tests tree-based recalibration including:
- PPM error calculation and MAD-based outlier removal
- Recalibration functions
- Polynomial fits on fragmentation trees
- The non-regression rule of the recalibration engine
"""

import math
import unittest

import numpy as np
import pytest

from alphafragtree.convenience import experiment_from_peaks
from alphafragtree.formula import MolecularFormula, PROTONATION
from alphafragtree.preprocessing import ProcessedInput, ProcessedPeak, RawPeak
from alphafragtree.profile import MeasurementProfile
from alphafragtree.recalibration import (
    PolynomialRecalibration,
    Recalibration,
    RecalibrationEngine,
    RecalibrationFunction,
    RecalibrationMethod,
    RecalibrationState,
    calculate_ppm_errors,
    remove_outliers_mad,
)
from alphafragtree.scoring import MassDeviationVertexScorer
from alphafragtree.tree import FTree


class TestPPMCalculation(unittest.TestCase):
    """Test PPM error calculation."""

    def test_ppm_calculation_basic(self):
        observed = np.array([50.0, 100.0, 500.0])
        ppm = calculate_ppm_errors(observed, observed.copy())
        np.testing.assert_allclose(ppm, [0.0, 0.0, 0.0], atol=1e-6)

    def test_ppm_calculation_positive_error(self):
        theoretical = 180.0634
        observed = theoretical + theoretical * 5e-6  # +5 ppm error

        ppm = calculate_ppm_errors(np.array([observed]), np.array([theoretical]))

        np.testing.assert_allclose(ppm, [5.0], atol=1e-3)

    def test_ppm_calculation_negative_error(self):
        theoretical = 180.0634
        observed = theoretical - theoretical * 3e-6  # -3 ppm error

        ppm = calculate_ppm_errors(np.array([observed]), np.array([theoretical]))

        np.testing.assert_allclose(ppm, [-3.0], atol=1e-3)

    def test_ppm_of_tree_fragments(self):
        tree = shifted_tree(GLUCOSE_CHAIN, 4.0)
        observed = np.array([f.peak.mz for f in tree])
        theoretical = np.array([PROTONATION.add_to_mass(f.formula.mass) for f in tree])

        ppm = calculate_ppm_errors(observed, theoretical)

        np.testing.assert_allclose(ppm, np.full(len(GLUCOSE_CHAIN), 4.0), atol=1e-6)
        self.assertTrue(np.all(remove_outliers_mad(ppm, threshold=3.0)))


class TestOutlierRemoval(unittest.TestCase):
    """Test MAD-based outlier removal."""

    def test_outlier_removal_basic(self):
        values = np.array([0.0, 1.0, -1.0, 0.5, -0.5, 100.0])

        inliers = remove_outliers_mad(values, threshold=3.0)

        self.assertEqual(np.sum(inliers), 5)
        self.assertFalse(inliers[-1])

    def test_outlier_removal_identical_values(self):
        inliers = remove_outliers_mad(np.array([2.0, 2.0, 2.0]), threshold=3.0)
        self.assertTrue(np.all(inliers))

    def test_outlier_removal_empty(self):
        inliers = remove_outliers_mad(np.array([], dtype=np.float64), threshold=3.0)
        self.assertEqual(len(inliers), 0)


class TestRecalibrationFunction:
    """Test the polynomial correction."""

    def test_identity(self):
        f = RecalibrationFunction.identity()
        assert f.is_identity
        assert f(123.456) == pytest.approx(123.456)

    def test_shift_on_arrays(self):
        f = RecalibrationFunction.shift(0.001)
        np.testing.assert_allclose(f(np.array([100.0, 200.0])), [100.001, 200.001])
        assert not f.is_identity

    def test_scalar_result_is_float(self):
        assert isinstance(RecalibrationFunction((0.0, 1.0, 1e-7))(100.0), float)

    def test_degree(self):
        assert RecalibrationFunction((1.0, 2.0, 3.0)).degree == 2

    def test_no_coefficients(self):
        with pytest.raises(ValueError):
            RecalibrationFunction(())


def _measured_peak(mz):
    return ProcessedPeak(mz=mz, original_mz=mz, intensity=1.0, relative_intensity=1.0,
                         original_peaks=[RawPeak(mz, 1.0, 0, None)])


def shifted_tree(formulas, ppm_shift):
    """Chain tree over ``formulas`` with every peak shifted by ``ppm_shift``."""
    mzs = [PROTONATION.add_to_mass(MolecularFormula.parse(f).mass) * (1 + ppm_shift * 1e-6) for f in formulas]
    experiment = experiment_from_peaks([(mz, 1.0) for mz in mzs], ion_mass=mzs[0])
    input = ProcessedInput(experiment=experiment, original_experiment=experiment, profile=MeasurementProfile())
    peaks = [_measured_peak(mz) for mz in mzs]
    input.peaks = peaks[::-1]
    input.parent_peak = peaks[0]

    tree = FTree(MolecularFormula.parse(formulas[0]), input)
    tree.root.peak = peaks[0]
    for i, f in enumerate(formulas[1:], start=1):
        fragment = tree.add_fragment(i - 1, MolecularFormula.parse(f), len(formulas) - 1 - i, 0.0)
        fragment.peak = peaks[i]
    return tree


GLUCOSE_CHAIN = ["C6H12O6", "C6H10O5", "C6H8O4", "C5H6O3", "C4H4O2", "C3H2O"]


class TestPolynomialRecalibration:
    """Test fitting a correction to a tree."""

    def test_linear_fit_removes_systematic_error(self):
        tree = shifted_tree(GLUCOSE_CHAIN, 5.0)
        rec = PolynomialRecalibration(degree=1).recalibrate(tree, MassDeviationVertexScorer())

        assert rec.n_fragments == 6
        assert rec.n_inliers == 6
        assert rec.median_ppm_before == pytest.approx(5.0, abs=1e-3)
        assert rec.median_ppm_after < 0.01
        assert rec.estimated_bonus > 0

        for fragment in tree:
            theoretical = PROTONATION.add_to_mass(fragment.formula.mass)
            assert rec.function(fragment.peak.mz) == pytest.approx(theoretical, abs=1e-6)

    def test_few_fragments_fall_back_to_shift(self):
        tree = shifted_tree(GLUCOSE_CHAIN[:3], 5.0)
        with pytest.warns(UserWarning, match="median shift"):
            rec = PolynomialRecalibration(degree=1, min_fragments=4).recalibrate(tree, MassDeviationVertexScorer())
        assert rec.function.degree == 1
        assert rec.function.coefficients[1] == 1.0
        assert rec.function.coefficients[0] < 0

    def test_calibrated_tree_has_no_bonus(self):
        tree = shifted_tree(GLUCOSE_CHAIN, 0.0)
        rec = PolynomialRecalibration(degree=1).recalibrate(tree, MassDeviationVertexScorer())
        assert rec.estimated_bonus == pytest.approx(0.0, abs=1e-6)

    def test_synthetic_peaks_are_ignored(self):
        tree = shifted_tree(GLUCOSE_CHAIN[:1], 5.0)
        tree.root.peak = ProcessedPeak.synthetic(tree.root.peak.mz)
        assert PolynomialRecalibration().recalibrate(tree, MassDeviationVertexScorer()) is None

    def test_negative_degree(self):
        with pytest.raises(ValueError):
            PolynomialRecalibration(degree=-1)


class FixedMethod(RecalibrationMethod):
    """Always proposes the same shift with a given estimated bonus."""

    def __init__(self, estimated_bonus):
        self.estimated_bonus = estimated_bonus

    def recalibrate(self, tree, scorer):
        return Recalibration(
            function=RecalibrationFunction.shift(0.001),
            estimated_bonus=self.estimated_bonus,
            median_ppm_before=5.0,
            median_ppm_after=0.5,
            n_fragments=len(tree),
            n_inliers=len(tree),
        )


def _tree_with_score(score):
    tree = FTree(MolecularFormula.parse("C6H12O6"))
    tree.scoring.overall_score = score
    return tree


class TestRecalibrationEngine:
    """Test the non-regression rule and recorded diagnostics."""

    def test_without_method(self):
        tree = _tree_with_score(1.0)
        assert RecalibrationEngine(None).run(tree, lambda f: pytest.fail("recomputed")) is tree

    def test_no_estimated_bonus_skips_recompute(self):
        tree = _tree_with_score(1.0)
        result = RecalibrationEngine(FixedMethod(0.0)).run(tree, lambda f: pytest.fail("recomputed"))
        assert result is tree
        assert result.scoring.median_ppm_before == 5.0
        assert result.recalibration is None

    def test_better_tree_adopted(self):
        tree = _tree_with_score(1.0)
        better = _tree_with_score(1.5)
        result = RecalibrationEngine(FixedMethod(0.3)).run(tree, lambda f: better)
        assert result is better
        assert result.recalibration == RecalibrationFunction.shift(0.001)
        assert result.scoring.recalibration_bonus == pytest.approx(0.5)
        assert result.scoring.estimated_recalibration_bonus == pytest.approx(0.3)

    def test_worse_tree_rejected(self):
        tree = _tree_with_score(1.0)
        result = RecalibrationEngine(FixedMethod(0.3)).run(tree, lambda f: _tree_with_score(0.8))
        assert result is tree
        assert result.recalibration is None
        assert result.scoring.recalibration_bonus == 0.0

    def test_forced_recalibration_adopts_worse_tree(self):
        tree = _tree_with_score(1.0)
        worse = _tree_with_score(0.8)
        result = RecalibrationEngine(FixedMethod(-1.0)).run(tree, lambda f: worse, force=True)
        assert result is worse
        assert result.scoring.recalibration_bonus == pytest.approx(-0.2)

    def test_no_recomputed_tree(self):
        tree = _tree_with_score(1.0)
        assert RecalibrationEngine(FixedMethod(0.3)).run(tree, lambda f: None) is tree

    def test_recompute_receives_function(self):
        received = []

        def recompute(function):
            received.append(function)
            return None

        RecalibrationEngine(FixedMethod(0.3)).run(_tree_with_score(1.0), recompute)
        assert received == [RecalibrationFunction.shift(0.001)]


class NoFitMethod(RecalibrationMethod):
    """Never finds a correction."""

    def recalibrate(self, tree, scorer):
        return None


class TestRecalibrationStates:
    """Test the states visited by one engine run."""

    def test_stable_without_bonus(self):
        engine = RecalibrationEngine(FixedMethod(0.0))
        engine.run(_tree_with_score(1.0), lambda f: pytest.fail("recomputed"))
        assert engine.state is RecalibrationState.STABLE
        assert engine.transitions == [RecalibrationState.STABLE]

    def test_recompute_cycle(self):
        engine = RecalibrationEngine(FixedMethod(0.3))
        seen = []

        def recompute(function):
            seen.append(engine.state)
            return _tree_with_score(1.5)

        engine.run(_tree_with_score(1.0), recompute)
        assert seen == [RecalibrationState.RECALIBRATING]
        assert engine.state is RecalibrationState.STABLE
        assert engine.transitions == [
            RecalibrationState.STABLE,
            RecalibrationState.RECALIBRATING,
            RecalibrationState.STABLE,
        ]

    def test_rejected_tree_still_returns_to_stable(self):
        engine = RecalibrationEngine(FixedMethod(0.3))
        engine.run(_tree_with_score(1.0), lambda f: _tree_with_score(0.5))
        assert engine.transitions[-1] is RecalibrationState.STABLE
        assert len(engine.transitions) == 3

    def test_each_run_starts_stable(self):
        engine = RecalibrationEngine(FixedMethod(0.3))
        engine.run(_tree_with_score(1.0), lambda f: None)
        engine.run(_tree_with_score(1.0), lambda f: None)
        assert len(engine.transitions) == 3

    def test_failed_recompute_returns_to_stable(self):
        engine = RecalibrationEngine(FixedMethod(0.3))

        def recompute(function):
            raise RuntimeError("solver")

        with pytest.raises(RuntimeError):
            engine.run(_tree_with_score(1.0), recompute)
        assert engine.state is RecalibrationState.STABLE


class TestMissingRecalibration:
    """Diagnostics when no correction can be fitted."""

    def test_no_fit_records_nan_and_zero(self):
        tree = _tree_with_score(1.0)
        engine = RecalibrationEngine(NoFitMethod())
        result = engine.run(tree, lambda f: pytest.fail("recomputed"))
        assert result is tree
        assert result.recalibration is None
        assert result.scoring.recalibration_bonus == 0.0
        assert result.scoring.estimated_recalibration_bonus == 0.0
        assert math.isnan(result.scoring.median_ppm_before)
        assert math.isnan(result.scoring.median_ppm_after)
        assert engine.transitions == [RecalibrationState.STABLE]

    def test_synthetic_root_records_nan(self):
        tree = shifted_tree(GLUCOSE_CHAIN[:1], 5.0)
        tree.root.peak = ProcessedPeak.synthetic(tree.root.peak.mz)
        result = RecalibrationEngine(PolynomialRecalibration()).run(tree, lambda f: pytest.fail("recomputed"))
        assert math.isnan(result.scoring.median_ppm_before)
        assert result.scoring.recalibration_bonus == 0.0
