"""Convenience wrapper functions for easy-to-use API.

This module builds experiments from plain peak lists and runs the default
analysis in one call.

Use these functions when you want a simple API without worrying about:
- RawSpectrum / Ms2Experiment construction
- Ion type parsing
- Pipeline stage ordering

For fine control (custom scorers, reduction, tree builder), use
``FragmentationPatternAnalysis`` directly.

Examples
--------
>>> experiment = experiment_from_peaks(
...     [(50.0, 30.0), (80.0, 60.0), (120.0, 100.0)], ion_mass=120.0
... )
>>> tree = compute_fragmentation_tree(experiment)
>>> print(tree.pretty())

>>> # Several parent candidates, four threads
>>> trees = compute_fragmentation_trees(experiment, max_candidates=5, n_workers=4)
"""

from typing import List, Optional, Sequence, Tuple, Union
import numpy as np

from .analysis import FragmentationPatternAnalysis
from .formula.ionization import PrecursorIonType
from .formula.molecular_formula import MolecularFormula
from .preprocessing.experiment import CollisionEnergy, Ms2Experiment, RawSpectrum
from .tree.ftree import FTree


# =============================================================================
# Experiment Construction
# =============================================================================

def spectrum_from_peaks(
    peaks: Sequence[Tuple[float, float]],
    collision_energy: Optional[float] = None,
    ms_level: int = 2,
) -> RawSpectrum:
    """Create a spectrum from (m/z, intensity) pairs.

    Parameters
    ----------
    peaks : sequence of (float, float)
        Peaks in any order
    collision_energy : float, optional
        Fixed collision energy in eV
    ms_level : int, default=2
        MS level of the spectrum

    Returns
    -------
    RawSpectrum
        Spectrum sorted by m/z
    """
    array = np.asarray(peaks, dtype=np.float64).reshape(-1, 2)
    energy = CollisionEnergy.fixed(collision_energy) if collision_energy is not None else None
    return RawSpectrum(array[:, 0], array[:, 1], collision_energy=energy, ms_level=ms_level)


def experiment_from_peaks(
    peaks: Union[Sequence[Tuple[float, float]], Sequence[Sequence[Tuple[float, float]]]],
    ion_mass: Optional[float] = None,
    ion_type: Union[str, PrecursorIonType, None] = "[M+H]+",
    molecular_formula: Union[str, MolecularFormula, None] = None,
    collision_energies: Optional[Sequence[float]] = None,
    name: str = "",
) -> Ms2Experiment:
    """Create an experiment from one or several peak lists.

    Parameters
    ----------
    peaks : sequence of (m/z, intensity), or a sequence of such lists
        One MS2 spectrum, or one list per collision energy
    ion_mass : float, optional
        Precursor m/z
    ion_type : str or PrecursorIonType, default="[M+H]+"
        Precursor ion type; None lets validation repair it
    molecular_formula : str or MolecularFormula, optional
        Known neutral formula
    collision_energies : sequence of float, optional
        One energy per spectrum
    name : str
        Identifier for log messages

    Returns
    -------
    Ms2Experiment

    Examples
    --------
    >>> experiment_from_peaks([(50.0, 30.0), (120.0, 100.0)], ion_mass=120.0)
    """
    if len(peaks) > 0 and np.ndim(peaks[0]) == 2:
        peak_lists = list(peaks)
    else:
        peak_lists = [peaks]
    if collision_energies is not None and len(collision_energies) != len(peak_lists):
        raise ValueError(
            f"Got {len(collision_energies)} collision energies for {len(peak_lists)} spectra"
        )

    spectra = [
        spectrum_from_peaks(p, collision_energies[i] if collision_energies is not None else None)
        for i, p in enumerate(peak_lists)
    ]
    if isinstance(ion_type, str):
        ion_type = PrecursorIonType.from_string(ion_type)
    if isinstance(molecular_formula, str):
        molecular_formula = MolecularFormula.parse(molecular_formula)

    return Ms2Experiment(
        ms2_spectra=spectra,
        ion_mass=ion_mass,
        precursor_ion_type=ion_type,
        molecular_formula=molecular_formula,
        name=name,
    )


# =============================================================================
# Tree Computation
# =============================================================================

def compute_fragmentation_trees(
    experiment: Ms2Experiment,
    analysis: Optional[FragmentationPatternAnalysis] = None,
    max_candidates: Optional[int] = None,
    n_workers: int = 1,
) -> List[FTree]:
    """Preprocess an experiment and compute one tree per parent candidate.

    Parameters
    ----------
    experiment : Ms2Experiment
        Measurement to explain
    analysis : FragmentationPatternAnalysis, optional
        Configured analysis (``FragmentationPatternAnalysis.default()`` if omitted)
    max_candidates : int, optional
        Only compute trees for the best candidates
    n_workers : int, default=1
        Threads computing candidates concurrently

    Returns
    -------
    list of FTree
        Sorted by descending score
    """
    analysis = analysis or FragmentationPatternAnalysis.default()
    input = analysis.preprocess(experiment)
    return analysis.compute_trees(input, max_candidates=max_candidates, n_workers=n_workers)


def compute_fragmentation_tree(
    experiment: Ms2Experiment,
    analysis: Optional[FragmentationPatternAnalysis] = None,
    max_candidates: Optional[int] = None,
    n_workers: int = 1,
) -> Optional[FTree]:
    """Best-scoring tree of an experiment, or None if no candidate has a tree."""
    trees = compute_fragmentation_trees(experiment, analysis, max_candidates, n_workers)
    return trees[0] if trees else None
