"""Tests for scoring priors and scorers."""

import math

import numpy as np
import pytest

from alphafragtree.formula import MolecularFormula
from alphafragtree.preprocessing import CollisionEnergy, ProcessedInput, ProcessedPeak, RawPeak
from alphafragtree.profile import Deviation, MeasurementProfile
from alphafragtree.scoring import (
    ChemicalPriorScorer,
    CollisionEnergyEdgeScorer,
    CommonLossEdgeScorer,
    DBELossScorer,
    ExponentialDistribution,
    FreeRadicalEdgeScorer,
    Hetero2CarbonPrior,
    LogNormalDistribution,
    Loss,
    LossSizeScorer,
    MassDeviationVertexScorer,
    PartialParetoDistribution,
    PeakIsNoiseScorer,
    PureCarbonNitrogenLossScorer,
    ScorerContractError,
    ScorerSet,
    check_finite,
)
from alphafragtree.scoring.base import unique_names


def _loss(text):
    formula = MolecularFormula.parse(text)
    return Loss(formula + formula, formula, formula, None, None)


def _peak(mz, energies=()):
    raws = [RawPeak(mz, 1.0, i, CollisionEnergy.fixed(e)) for i, e in enumerate(energies)]
    return ProcessedPeak(mz=mz, original_mz=mz, intensity=1.0, original_peaks=raws)


class TestDistributions:
    """Test log densities of the scoring priors."""

    def test_log_normal_density(self):
        dist = LogNormalDistribution(0.0, 1.0)
        # standard log-normal at x=1: 1 / sqrt(2 pi)
        assert dist.log_density(1.0) == pytest.approx(-0.5 * math.log(2 * math.pi))
        assert dist.log_density(0.0) == -math.inf

    def test_log_normal_fit(self):
        values = np.exp(np.random.normal(3.0, 0.5, 5000))
        dist = LogNormalDistribution.fit(values)
        assert dist.mean == pytest.approx(3.0, abs=0.05)
        assert dist.sd == pytest.approx(0.5, abs=0.05)

    def test_exponential_median(self):
        dist = ExponentialDistribution.from_median(0.02)
        assert dist.median == pytest.approx(0.02)
        assert math.exp(dist.log_survival(0.02)) == pytest.approx(0.5)

    def test_partial_pareto_integrates_to_one(self):
        dist = PartialParetoDistribution(0.0, 0.5, 3.0)
        xs = np.linspace(0.0, 200.0, 200001)
        ys = np.array([dist.density(x) for x in xs])
        integral = (xs[1] - xs[0]) * (ys.sum() - 0.5 * (ys[0] + ys[-1]))
        assert integral == pytest.approx(1.0, abs=1e-3)
        assert dist.density(0.25) == dist.opt

    def test_invalid_parameters(self):
        with pytest.raises(ValueError):
            LogNormalDistribution(0.0, 0.0)
        with pytest.raises(ValueError):
            ExponentialDistribution(-1.0)
        with pytest.raises(ValueError):
            PartialParetoDistribution(1.0, 0.5, 3.0)


class TestCheckFinite:
    """Test the finiteness contract of scorers."""

    def test_finite_passes(self):
        assert check_finite(-2.5, "peak score") == -2.5

    @pytest.mark.parametrize("value", [math.nan, math.inf, -math.inf])
    def test_non_finite_raises(self, value):
        with pytest.raises(ScorerContractError, match="LossSize"):
            check_finite(value, LossSizeScorer())

    def test_unique_names(self):
        names = unique_names([LossSizeScorer(), LossSizeScorer(), DBELossScorer()])
        assert names == ["LossSize", "LossSize#1", "DBELoss"]

    def test_scorer_set_coerces_tuples(self):
        scorers = ScorerSet(peak_scorers=[PeakIsNoiseScorer()])
        assert isinstance(scorers.peak_scorers, tuple)


class TestPeakIsNoiseScorer:
    """Test the exponential noise model score of single peaks."""

    @staticmethod
    def _input(experiment, median_noise_intensity=0.02):
        profile = MeasurementProfile(median_noise_intensity=median_noise_intensity)
        return ProcessedInput(experiment=experiment, original_experiment=experiment, profile=profile)

    @staticmethod
    def _relative(value):
        return ProcessedPeak(mz=80.0, original_mz=80.0, intensity=1.0, relative_intensity=value)

    def test_score_is_negative_log_survival(self, three_peak_experiment):
        scorer = PeakIsNoiseScorer(ExponentialDistribution.from_median(0.02))
        input = self._input(three_peak_experiment)
        context = scorer.prepare(input)
        lam = math.log(2) / 0.02
        assert scorer.score(self._relative(0.1), input, context) == pytest.approx(lam * 0.1)
        # a peak at the noise median is noise with probability 1/2
        assert scorer.score(self._relative(0.02), input, context) == pytest.approx(math.log(2))

    def test_stronger_peaks_score_higher(self, three_peak_experiment):
        scorer = PeakIsNoiseScorer()
        input = self._input(three_peak_experiment)
        context = scorer.prepare(input)
        scores = [scorer.score(self._relative(r), input, context) for r in (0.0, 0.01, 0.1, 1.0)]
        assert scores[0] == 0.0
        assert scores == sorted(scores)
        assert len(set(scores)) == 4

    def test_profile_median_is_used(self, three_peak_experiment):
        scorer = PeakIsNoiseScorer()
        low = scorer.prepare(self._input(three_peak_experiment, 0.01))
        high = scorer.prepare(self._input(three_peak_experiment, 0.1))
        assert low.median == pytest.approx(0.01)
        assert high.median == pytest.approx(0.1)
        peak = self._relative(0.2)
        assert scorer.score(peak, None, low) > scorer.score(peak, None, high)

    def test_explicit_distribution_overrides_profile(self, three_peak_experiment):
        fixed = ExponentialDistribution.from_median(0.5)
        assert PeakIsNoiseScorer(fixed).prepare(self._input(three_peak_experiment)) is fixed


class TestPeakPairScorers:
    """Test loss size and collision energy scores."""

    def test_loss_size_peaks_near_mode(self):
        scorer = LossSizeScorer()
        # log-normal(4, 1) has its mode at exp(3) ~ 20 Da
        assert scorer.score_mass(20.0) > scorer.score_mass(2.0)
        assert scorer.score_mass(20.0) > scorer.score_mass(500.0)

    def test_loss_size_uses_peak_difference(self):
        scorer = LossSizeScorer()
        assert scorer.score(_peak(120.0), _peak(102.0), None, None) == pytest.approx(scorer.score_mass(18.0))

    def test_collision_energy_strong_penalty(self):
        scorer = CollisionEnergyEdgeScorer(0.1, 0.8)
        parent = _peak(120.0, energies=[40.0])
        fragment = _peak(80.0, energies=[10.0])
        assert scorer.score(parent, fragment, None, None) == pytest.approx(math.log(0.1))

    def test_collision_energy_weak_penalty(self):
        scorer = CollisionEnergyEdgeScorer(0.1, 0.8)
        parent = _peak(120.0, energies=[20.0, 40.0])
        fragment = _peak(80.0, energies=[10.0, 40.0])
        assert scorer.score(parent, fragment, None, None) == pytest.approx(math.log(0.8))

    def test_collision_energy_missing(self):
        scorer = CollisionEnergyEdgeScorer()
        assert scorer.score(ProcessedPeak.synthetic(120.0), _peak(80.0, [10.0]), None, None) == 0.0


class TestLossScorers:
    """Test chemical loss priors."""

    def test_free_radical(self):
        scorer = FreeRadicalEdgeScorer.with_default_set()
        assert scorer.score(_loss("H2O"), None, None) == 0.0
        assert scorer.score(_loss("CH3"), None, None) == pytest.approx(math.log(0.9))
        assert scorer.score(_loss("C2H3"), None, None) == pytest.approx(math.log(0.1))

    def test_dbe_loss(self):
        scorer = DBELossScorer()
        assert scorer.score(_loss("H2O"), None, None) == 0.0
        assert scorer.score(_loss("H3O"), None, None) == pytest.approx(math.log(0.25))

    def test_pure_carbon_nitrogen(self):
        scorer = PureCarbonNitrogenLossScorer()
        assert scorer.score(_loss("C2N"), None, None) == pytest.approx(math.log(0.25))
        assert scorer.score(_loss("HCN"), None, None) == 0.0

    def test_expert_losses_compensate_size_penalty(self):
        loss_size = LossSizeScorer()
        scorer = CommonLossEdgeScorer.loss_size_compensation_for_expert_list(loss_size, 0.75)
        water = MolecularFormula.parse("H2O")
        expected = 0.75 * max(0.0, -loss_size.score_mass(water.mass))
        assert scorer.score(_loss("H2O"), None, None) == pytest.approx(expected)
        assert scorer.score(_loss("C5H5N"), None, None) == 0.0

    def test_implausible_losses(self):
        scorer = CommonLossEdgeScorer().add_implausible_losses(math.log(0.01))
        assert scorer.score(_loss("C2O"), None, None) == pytest.approx(math.log(0.01))
        assert scorer.score(_loss("CO"), None, None) == 0.0


class TestDecompositionScorers:
    """Test mass deviation and chemical priors."""

    def test_mass_deviation_perfect_match(self):
        scorer = MassDeviationVertexScorer()
        assert scorer.score_mass(100.0, 100.0, Deviation(10.0)) == pytest.approx(0.0)

    def test_mass_deviation_decreases_with_error(self):
        scorer = MassDeviationVertexScorer()
        deviation = Deviation(10.0)
        scores = [scorer.score_mass(100.0 + d, 100.0, deviation) for d in (0.0, 0.001, 0.002, 0.01)]
        assert scores == sorted(scores, reverse=True)
        # one sigma: log P(|X| >= sigma) = log(0.3173)
        assert scores[1] == pytest.approx(math.log(0.3173), abs=1e-3)

    def test_mass_deviation_finite_far_out(self):
        scorer = MassDeviationVertexScorer()
        assert math.isfinite(scorer.score_mass(101.0, 100.0, Deviation(1.0)))

    def test_hetero_to_carbon_prior(self):
        prior = Hetero2CarbonPrior()
        # ratios up to 0.5 lie on the plateau
        assert prior.score(MolecularFormula.parse("C6H12O3")) == pytest.approx(0.0)
        assert prior.score(MolecularFormula.parse("C2H4O3")) < 0.0

    def test_chemical_prior_min_mass(self):
        scorer = ChemicalPriorScorer(min_mass=100.0)
        assert scorer.score(MolecularFormula.parse("CH2O3"), None, None, None) == 0.0
