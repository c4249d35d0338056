"""AlphaFragTree - Fragmentation trees for small-molecule MS/MS spectra.

Explains a tandem mass spectrum by a tree of molecular formulas: every peak
gets candidate formulas, candidates are connected by plausible neutral losses
in a scored fragmentation graph, and the maximum colorful subtree of that
graph (one formula per peak) is the fragmentation tree.

Numba kernels cover mass decomposition, the colorful subtree dynamic program
and recalibration statistics; exact tree optimization uses the HiGHS MILP
solver shipped with scipy.
"""

__version__ = "0.1.0"

from alphafragtree import formula
from alphafragtree import preprocessing
from alphafragtree import scoring
from alphafragtree import graph
from alphafragtree import tree
from alphafragtree import recalibration
from alphafragtree.analysis import FragmentationPatternAnalysis
from alphafragtree.profile import Deviation, MeasurementProfile, NormalizationType

__all__ = [
    "formula",
    "preprocessing",
    "scoring",
    "graph",
    "tree",
    "recalibration",
    "FragmentationPatternAnalysis",
    "MeasurementProfile",
    "Deviation",
    "NormalizationType",
]
