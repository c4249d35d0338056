"""Fragmentation pattern analysis: the pipeline orchestrator.

``FragmentationPatternAnalysis`` holds the configuration of an analysis
(profile, scorers, stage components) and runs the pipeline:

 1. Validation (copy and repair input)
 2. Preprocessing (spectrum-level transforms)
 3. Normalization (deduplicate peaks per spectrum, relative intensities)
 4. Peak merging (across spectra)
 5. Parent peak detection
 6. Decomposition (candidate formulas, disjoint for adjacent peaks)
 7. Peak scoring
 8. Graph building and scoring (per parent candidate)
 9. Graph reduction
10. Tree building and annotation
11. Recalibration (optional, may recompute steps 6-10 once)

The configuration is shared and never mutated by a run; every run owns its
``ProcessedInput``, graphs and trees. Runs over different parent candidates
can therefore go in parallel (``compute_trees``).

Examples
--------
>>> analysis = FragmentationPatternAnalysis.default()
>>> input = analysis.preprocess(experiment)
>>> trees = analysis.compute_trees(input, max_candidates=10, n_workers=4)
>>> best = trees[0]
>>> print(best.pretty())
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import List, Optional, Sequence

import numpy as np

from .constants import HYDROGEN_MASS, PARENT_SCALE_EXCLUSION
from .formula.decomposer import DecomposerCache
from .formula.molecular_formula import DecompositionList, FormulaConstraints, ScoredFormula
from .graph.builder import GraphBuilder, score_graph
from .graph.fgraph import FGraph
from .graph.reduction import GraphReduction, SimpleReduction
from .preprocessing.experiment import Ms2Experiment, RawPeak
from .preprocessing.merging import HighIntensityMerger, PeakMerger
from .preprocessing.peaks import ProcessedInput, ProcessedPeak, Scoring
from .preprocessing.processors import (
    LimitNumberOfPeaksFilter,
    NoiseThresholdFilter,
    PostProcessor,
    Preprocessor,
    Stage,
)
from .preprocessing.validation import InputValidator, MissingValueValidator
from .profile import MeasurementProfile, NormalizationType
from .recalibration.engine import RecalibrationEngine
from .recalibration.functions import RecalibrationFunction
from .recalibration.method import RecalibrationMethod
from .scoring.base import ScorerSet, check_finite
from .scoring.decomposition_scorers import (
    ChemicalPriorScorer,
    CommonFragmentsScorer,
    MassDeviationVertexScorer,
)
from .scoring.distributions import LogNormalDistribution
from .scoring.loss_scorers import (
    CommonLossEdgeScorer,
    DBELossScorer,
    FreeRadicalEdgeScorer,
    PureCarbonNitrogenLossScorer,
)
from .scoring.peak_pair_scorers import CollisionEnergyEdgeScorer, LossSizeScorer
from .scoring.peak_scorers import PeakIsNoiseScorer, TreeSizeScorer
from .tree.annotation import annotate_tree, recalculate_scores
from .tree.builders import IlpTreeBuilder, TreeBuilder
from .tree.ftree import FTree

logger = logging.getLogger(__name__)


class FragmentationPatternAnalysis:
    """Configuration and stages of a fragmentation tree computation.

    Parameters
    ----------
    profile : MeasurementProfile, optional
        Tolerances and formula constraints (default profile if omitted)
    scorers : ScorerSet, optional
        Scorers of all four kinds (no scorers if omitted)
    normalization_type : NormalizationType, default=GLOBAL
        Which normalized intensity becomes the relative intensity
    validators : sequence of InputValidator, optional
        Validator chain (``MissingValueValidator`` if omitted)
    preprocessors : sequence of Preprocessor
        Spectrum transforms applied before normalization
    postprocessors : sequence of PostProcessor
        Peak filters, each run after its stage
    peak_merger : PeakMerger, optional
        Cross-spectrum merger (``HighIntensityMerger`` if omitted)
    reduction : GraphReduction, optional
        Graph reducer (``SimpleReduction`` if omitted)
    tree_builder : TreeBuilder, optional
        Exact tree builder (``IlpTreeBuilder`` if omitted)
    recalibration_method : RecalibrationMethod, optional
        Enables recalibration of computed trees
    repair_input : bool, default=True
        Let validators fill missing values instead of raising
    decomposer_cache : DecomposerCache, optional
        Shared decomposer cache
    """

    def __init__(
        self,
        profile: Optional[MeasurementProfile] = None,
        scorers: Optional[ScorerSet] = None,
        normalization_type: NormalizationType = NormalizationType.GLOBAL,
        validators: Optional[Sequence[InputValidator]] = None,
        preprocessors: Sequence[Preprocessor] = (),
        postprocessors: Sequence[PostProcessor] = (),
        peak_merger: Optional[PeakMerger] = None,
        reduction: Optional[GraphReduction] = None,
        tree_builder: Optional[TreeBuilder] = None,
        recalibration_method: Optional[RecalibrationMethod] = None,
        repair_input: bool = True,
        decomposer_cache: Optional[DecomposerCache] = None,
    ):
        self.profile = profile or MeasurementProfile()
        self.scorers = scorers or ScorerSet()
        self.normalization_type = normalization_type
        self.validators = tuple(validators) if validators is not None else (MissingValueValidator(),)
        self.preprocessors = tuple(preprocessors)
        self.postprocessors = tuple(postprocessors)
        self.peak_merger = peak_merger or HighIntensityMerger()
        self.graph_builder = GraphBuilder()
        self.reduction = reduction or SimpleReduction()
        self.tree_builder = tree_builder or IlpTreeBuilder()
        self.recalibration_method = recalibration_method
        self.repair_input = repair_input
        self.decomposer_cache = decomposer_cache or DecomposerCache()

    @classmethod
    def default(cls, profile: Optional[MeasurementProfile] = None, **kwargs) -> "FragmentationPatternAnalysis":
        """Analysis with the standard scorer set.

        Peak pairs: collision energies, log-normal loss size.
        Losses: radicals, negative RDBE, pure C/N losses, expert and
        implausible losses. Peaks: noise model, tree size.
        Fragments: mass deviation, common fragments.
        Roots: hetero-to-carbon prior, mass deviation.
        """
        loss_size = LossSizeScorer(LogNormalDistribution(4.0, 1.0), -5.0)
        common_losses = CommonLossEdgeScorer.loss_size_compensation_for_expert_list(
            loss_size, 0.75
        ).add_implausible_losses(math.log(0.01))
        scorers = ScorerSet(
            peak_scorers=(PeakIsNoiseScorer(), TreeSizeScorer(0.0)),
            peak_pair_scorers=(CollisionEnergyEdgeScorer(0.1, 0.8), loss_size),
            loss_scorers=(
                FreeRadicalEdgeScorer.with_default_set(),
                DBELossScorer(),
                PureCarbonNitrogenLossScorer(),
                common_losses,
            ),
            decomposition_scorers=(MassDeviationVertexScorer(), CommonFragmentsScorer()),
            root_scorers=(ChemicalPriorScorer(), MassDeviationVertexScorer()),
        )
        kwargs.setdefault("postprocessors", (NoiseThresholdFilter(0.005), LimitNumberOfPeaksFilter(40)))
        return cls(profile=profile, scorers=scorers, **kwargs)

    @classmethod
    def empty(cls, profile: Optional[MeasurementProfile] = None, **kwargs) -> "FragmentationPatternAnalysis":
        """Analysis without scorers; every score is 0 unless scorers are given."""
        return cls(profile=profile, **kwargs)

    # ------------------------------------------------------------------
    # Peak processing pipeline
    # ------------------------------------------------------------------

    def preprocess(
        self,
        experiment: Ms2Experiment,
        recalibration_function: Optional[RecalibrationFunction] = None,
    ) -> ProcessedInput:
        """Run all pipeline stages up to peak scoring.

        Parameters
        ----------
        experiment : Ms2Experiment
            Measurement to process; never modified
        recalibration_function : RecalibrationFunction, optional
            Applied to merged peak masses before parent detection

        Returns
        -------
        input : ProcessedInput
            Decomposed and scored input, ready for graph building
        """
        input = self.perform_validation(experiment)
        input = self.perform_peak_merging(self.perform_normalization(self.perform_preprocessing(input)))
        if recalibration_function is not None:
            for peak in input.peaks:
                peak.mz = recalibration_function(peak.mz)
        input = self.perform_peak_scoring(self.perform_decomposition(self.perform_parent_peak_detection(input)))
        logger.info(
            f"Preprocessed {experiment.name or 'experiment'}: {len(input.peaks)} peaks, "
            f"{len(input.parent_candidates)} parent candidates"
        )
        return input

    def perform_validation(self, experiment: Ms2Experiment) -> ProcessedInput:
        """Step 1: copy the experiment and run the validator chain."""
        collected: List[str] = []

        def warn(message: str):
            collected.append(message)
            logger.warning(message)

        validated = experiment.copy()
        for validator in self.validators:
            validated = validator.validate(validated, warn, self.repair_input)

        profile = self.profile
        if experiment.molecular_formula is not None:
            profile = replace(
                profile,
                formula_constraints=FormulaConstraints.all_subsets_of(
                    experiment.molecular_formula, min_rdbe=profile.formula_constraints.min_rdbe
                ),
            )
        return ProcessedInput(
            experiment=validated,
            original_experiment=experiment,
            profile=profile,
            warnings=collected,
        )

    def perform_preprocessing(self, input: ProcessedInput) -> ProcessedInput:
        """Step 2: spectrum-level transforms."""
        experiment = input.experiment
        for preprocessor in self.preprocessors:
            experiment = preprocessor.process(experiment, input.profile)
        input.experiment = experiment
        return input

    def perform_normalization(self, input: ProcessedInput) -> ProcessedInput:
        """Step 3: deduplicate peaks per spectrum and normalize intensities.

        Within each spectrum, peaks are visited by descending intensity and
        every weaker peak within half the allowed deviation of a kept peak
        is deleted. The local scale of a spectrum is its strongest peak
        below the ion mass (minus 0.1 Da); the global scale is the largest
        local scale.
        """
        experiment = input.experiment
        ion_mass = experiment.ion_mass
        window = input.profile.allowed_mass_deviation.divide(2)
        peaks: List[ProcessedPeak] = []
        global_scale = 0.0

        for index, spectrum in enumerate(experiment.ms2_spectra):
            n = len(spectrum)
            if n == 0:
                continue
            mz, intensity = spectrum.mz, spectrum.intensity
            deleted = np.zeros(n, dtype=np.bool_)
            kept = np.zeros(n, dtype=np.bool_)
            for i in np.argsort(-intensity, kind="stable"):
                if deleted[i]:
                    continue
                kept[i] = True
                j = i - 1
                while j >= 0 and window.in_error_window(mz[i], mz[j]):
                    deleted[j] |= not kept[j]
                    j -= 1
                j = i + 1
                while j < n and window.in_error_window(mz[i], mz[j]):
                    deleted[j] |= not kept[j]
                    j += 1

            spectrum_peaks = [
                ProcessedPeak.from_raw(RawPeak(float(mz[i]), float(intensity[i]), index, spectrum.collision_energy))
                for i in np.flatnonzero(kept)
            ]
            below_parent = [p.intensity for p in spectrum_peaks if p.mz < ion_mass - PARENT_SCALE_EXCLUSION]
            scale = max(below_parent) if below_parent else 0.0
            if scale <= 0:
                scale = spectrum_peaks[0].intensity
            if scale <= 0:
                scale = max(p.intensity for p in spectrum_peaks) or 1.0
            for p in spectrum_peaks:
                p.local_relative_intensity = p.intensity / scale
            global_scale = max(global_scale, scale)
            peaks.extend(spectrum_peaks)

        for p in peaks:
            p.global_relative_intensity = p.intensity / global_scale
            if self.normalization_type == NormalizationType.GLOBAL:
                p.relative_intensity = p.global_relative_intensity
            else:
                p.relative_intensity = p.local_relative_intensity

        input.peaks = peaks
        logger.debug(f"Normalized {len(peaks)} peaks from {len(experiment.ms2_spectra)} spectra")
        return self._post_process(Stage.AFTER_NORMALIZING, input)

    def perform_peak_merging(self, input: ProcessedInput) -> ProcessedInput:
        """Step 4: merge peaks of different spectra within twice the deviation."""

        def merge(group: List[ProcessedPeak], position: int, new_mz: float) -> ProcessedPeak:
            merged = group[position]
            merged.mz = new_mz
            merged.original_mz = new_mz
            merged.local_relative_intensity = max(p.local_relative_intensity for p in group)
            merged.global_relative_intensity = sum(p.global_relative_intensity for p in group)
            merged.relative_intensity = sum(p.relative_intensity for p in group)
            merged.original_peaks = [p.original_peaks[0] for p in group]
            return merged

        merged_peaks = self.peak_merger.merge_peaks(
            input.peaks, input.profile.allowed_mass_deviation.multiply(2), merge
        )
        merged_peaks.sort(key=lambda p: (-p.relative_intensity, p.mz))
        input.peaks = merged_peaks
        return self._post_process(Stage.AFTER_MERGING, input)

    def perform_parent_peak_detection(self, input: ProcessedInput) -> ProcessedInput:
        """Step 5: find or synthesize the parent peak.

        Afterwards the peaks are sorted by m/z, the parent peak is the last
        (heaviest) peak and no other peak is heavier than
        ``parent mass - H + tolerance``.
        """
        experiment = input.experiment
        deviation = input.profile.allowed_mass_deviation
        peaks = sorted(input.peaks, key=lambda p: p.mz)
        parent_mass = experiment.ion_mass

        ms1_parent_mz = None
        ms1 = experiment.merged_ms1_spectrum
        if ms1 is None and experiment.ms1_spectra:
            ms1 = experiment.ms1_spectra[0]
        if ms1 is not None:
            i = ms1.most_intense_peak_within(parent_mass, deviation.absolute_for(parent_mass))
            if i >= 0:
                ms1_parent_mz = float(ms1.mz[i])
                parent_mass = ms1_parent_mz

        while peaks:
            heaviest = peaks[-1]
            if deviation.in_error_window(parent_mass, heaviest.mz):
                break
            if heaviest.mz < parent_mass:
                peaks.append(ProcessedPeak.synthetic(parent_mass))
                break
            peaks.pop()
        if not peaks:
            peaks.append(ProcessedPeak.synthetic(parent_mass))

        parent = peaks[-1]
        if parent.is_synthetic:
            logger.debug(f"No parent peak found; added synthetic parent at {parent_mass:.5f}")
        if ms1_parent_mz is not None:
            parent.mz = ms1_parent_mz
            parent.original_mz = ms1_parent_mz

        # the heaviest possible fragment is [M - H]
        threshold = parent_mass + deviation.absolute_for(parent_mass) - HYDROGEN_MASS
        peaks = [p for p in peaks[:-1] if p.mz <= threshold] + [parent]
        for i, p in enumerate(peaks):
            p.index = i

        input.peaks = peaks
        input.parent_peak = parent
        return input

    def perform_decomposition(self, input: ProcessedInput) -> ProcessedInput:
        """Step 6: candidate formulas for the parent and every fragment peak.

        The parent is decomposed without ionization and adduct; the adduct
        is added back to every parent candidate. Formulas shared by two
        adjacent peaks within twice the deviation are kept only by the peak
        whose de-ionized mass is closer.
        """
        parent = input.parent_peak
        if parent is None:
            raise ValueError("Input has no parent peak; run parent peak detection first")
        peaks = sorted(input.fragment_peaks, key=lambda p: p.mz) + [parent]
        constraints = input.formula_constraints
        deviation = input.profile.allowed_mass_deviation
        ion_type = input.ion_type
        decomposer = self.decomposer_cache.get_decomposer(constraints.alphabet)

        decompositions = {}
        parent_formulas = decomposer.decompose(ion_type.subtract_ion_and_adduct(parent.mz), deviation, constraints)
        decompositions[parent] = DecompositionList.from_formulas(f + ion_type.adduct for f in parent_formulas)

        fragment_formulas = []
        for peak in peaks[:-1]:
            mass = ion_type.subtract_from_mass(peak.mz)
            fragment_formulas.append(decomposer.decompose(mass, deviation, constraints) if mass > 0 else [])

        window = deviation.multiply(2)
        for i in range(1, len(peaks) - 1):
            if not window.in_error_window(peaks[i].mz, peaks[i - 1].mz):
                continue
            left_mass = ion_type.subtract_from_mass(peaks[i - 1].mz)
            right_mass = ion_type.subtract_from_mass(peaks[i].mz)
            right = set(fragment_formulas[i])
            left = []
            for formula in fragment_formulas[i - 1]:
                if formula in right:
                    if abs(formula.mass - left_mass) < abs(formula.mass - right_mass):
                        right.discard(formula)
                    else:
                        continue
                left.append(formula)
            fragment_formulas[i - 1] = left
            fragment_formulas[i] = [f for f in fragment_formulas[i] if f in right]

        for peak, formulas in zip(peaks[:-1], fragment_formulas):
            decompositions[peak] = DecompositionList.from_formulas(formulas)

        input.peaks = peaks
        input.decompositions = decompositions
        logger.debug(
            f"Decomposed {len(peaks)} peaks: {len(decompositions[parent])} parent candidates, "
            f"{sum(len(f) for f in fragment_formulas)} fragment candidates"
        )
        return self._post_process(Stage.AFTER_DECOMPOSING, input)

    def perform_peak_scoring(self, input: ProcessedInput) -> ProcessedInput:
        """Step 7: peak, peak-pair, decomposition and root scores."""
        peaks = input.peaks
        parent = input.parent_peak
        for i, p in enumerate(peaks):
            p.index = i
        scoring = Scoring.initialize(len(peaks))
        scorers = self.scorers

        for scorer in scorers.peak_pair_scorers:
            context = scorer.prepare(input)
            for u in peaks:
                for v in peaks:
                    if v.mz < u.mz:
                        scoring.peak_pair_scores[u.index, v.index] += check_finite(
                            scorer.score(u, v, input, context), scorer
                        )

        for scorer in scorers.peak_scorers:
            context = scorer.prepare(input)
            for p in peaks:
                scoring.peak_scores[p.index] += check_finite(scorer.score(p, input, context), scorer)
        # the parent peak never explains itself
        scoring.peak_scores[parent.index] = 0.0

        contexts = [s.prepare(input) for s in scorers.decomposition_scorers]
        for peak in input.fragment_peaks:
            scored = []
            for formula in input.decompositions_of(peak).formulas:
                score = 0.0
                for scorer, context in zip(scorers.decomposition_scorers, contexts):
                    score += check_finite(scorer.score(formula, peak, input, context), scorer)
                scored.append(ScoredFormula(formula, score))
            input.decompositions[peak] = DecompositionList(scored)

        contexts = [s.prepare(input) for s in scorers.root_scorers]
        scored = []
        for formula in input.decompositions_of(parent).formulas:
            score = 0.0
            for scorer, context in zip(scorers.root_scorers, contexts):
                score += check_finite(scorer.score(formula, parent, input, context), scorer)
            scored.append(ScoredFormula(formula, score))
        input.parent_candidates = DecompositionList(scored)
        input.decompositions[parent] = input.parent_candidates

        input.scoring = scoring
        return input

    def _post_process(self, stage: Stage, input: ProcessedInput) -> ProcessedInput:
        for processor in self.postprocessors:
            if processor.stage == stage:
                input = processor.process(input)
        return input

    # ------------------------------------------------------------------
    # Graphs and trees
    # ------------------------------------------------------------------

    def build_graph(
        self,
        input: ProcessedInput,
        candidate: ScoredFormula,
        lower_bound: float = -math.inf,
    ) -> FGraph:
        """Scored and reduced graph for one parent candidate."""
        return self.build_multi_root_graph(input, [candidate], lower_bound)

    def build_multi_root_graph(
        self,
        input: ProcessedInput,
        candidates: Sequence[ScoredFormula],
        lower_bound: float = -math.inf,
    ) -> FGraph:
        """Scored and reduced graph with one root per parent candidate."""
        graph = self.graph_builder.build_graph(input, candidates)
        return self.perform_graph_reduction(self.perform_graph_scoring(graph), lower_bound)

    def perform_graph_scoring(self, graph: FGraph) -> FGraph:
        return score_graph(graph, self.scorers)

    def perform_graph_reduction(self, graph: FGraph, lower_bound: float = -math.inf) -> FGraph:
        return self.reduction.reduce(graph, lower_bound)

    def compute_tree(
        self,
        graph: FGraph,
        lower_bound: float = -math.inf,
        recalibration: Optional[bool] = None,
    ) -> Optional[FTree]:
        """Optimal tree of a scored graph, or None if none reaches the bound.

        Recalibration runs when a recalibration method is configured, unless
        ``recalibration`` is False.
        """
        tree = self.tree_builder.build_tree(graph, lower_bound)
        if tree is None:
            return None
        annotate_tree(graph, tree)
        if recalibration is None:
            recalibration = self.recalibration_method is not None
        if recalibration:
            tree = self.recalibrate(tree)
        return tree

    def recalibrate(self, tree: FTree, force: bool = False) -> FTree:
        """Recalibrated tree if it scores higher (or ``force``), else ``tree``."""
        engine = RecalibrationEngine(self.recalibration_method)
        return engine.run(tree, lambda function: self._recompute_tree(tree, function), force)

    def recalibrated_input(self, input: ProcessedInput, function: RecalibrationFunction) -> ProcessedInput:
        """Copy of a processed input with corrected peak masses, decomposed and scored again."""
        parent = None
        fragments = []
        for peak in input.peaks:
            copy = peak.copy()
            if not copy.is_synthetic:
                copy.mz = function(copy.mz)
            if peak is input.parent_peak:
                parent = copy
            else:
                fragments.append(copy)
        fragments.sort(key=lambda p: p.mz)
        shifts = [abs(p.recalibration_shift) for p in fragments + [parent] if not p.is_synthetic]
        if shifts:
            logger.debug(f"Recalibration moves peaks by up to {max(shifts):.5f} Da")
        recalibrated = input.copy_with_peaks(fragments + [parent], parent)
        return self.perform_peak_scoring(self.perform_decomposition(recalibrated))

    def _recompute_tree(self, tree: FTree, function: RecalibrationFunction) -> Optional[FTree]:
        input = self.recalibrated_input(tree.input, function)
        candidate = next((c for c in input.parent_candidates if c.formula == tree.root.formula), None)
        if candidate is None:
            logger.debug(f"Root {tree.root.formula} is no candidate after recalibration")
            return None
        graph = self.build_graph(input, candidate)
        return self.compute_tree(graph, recalibration=False)

    def compute_trees(
        self,
        input: ProcessedInput,
        max_candidates: Optional[int] = None,
        lower_bound: float = -math.inf,
        n_workers: int = 1,
    ) -> List[FTree]:
        """Trees for the best parent candidates, ranked by overall score.

        Parameters
        ----------
        input : ProcessedInput
            Preprocessed input
        max_candidates : int, optional
            Only the best ``max_candidates`` parent candidates are computed
        lower_bound : float, default=-inf
            Candidates without a tree reaching this score are dropped
        n_workers : int, default=1
            Number of threads computing candidates concurrently

        Returns
        -------
        trees : list of FTree
            Sorted by descending overall score
        """
        candidates = input.parent_candidates.decompositions
        if max_candidates is not None:
            candidates = candidates[:max_candidates]

        def compute(candidate: ScoredFormula) -> Optional[FTree]:
            graph = self.build_graph(input, candidate, lower_bound)
            return self.compute_tree(graph, lower_bound)

        if n_workers > 1 and len(candidates) > 1:
            with ThreadPoolExecutor(max_workers=n_workers) as executor:
                trees = list(executor.map(compute, candidates))
        else:
            trees = [compute(c) for c in candidates]

        trees = [t for t in trees if t is not None]
        trees.sort(key=lambda t: -t.scoring.overall_score)
        logger.info(f"Computed {len(trees)} trees for {len(candidates)} parent candidates")
        return trees

    def recalculate_scores(self, tree: FTree) -> bool:
        """Per-scorer breakdown of a tree; True if it sums to the tree score."""
        return recalculate_scores(tree, self.scorers)
