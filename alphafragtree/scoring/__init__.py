"""Scoring subsystem for fragmentation graphs.

Four scorer interfaces assign additive log-scores:
- Peak scorers (signal vs. noise, tree size)
- Peak-pair scorers (loss mass prior, collision energies)
- Loss scorers (radicals, RDBE, common and implausible losses)
- Decomposition scorers (mass deviation, chemical priors)

Scorers are composed through a ``ScorerSet`` of ordered tuples.

Examples
--------
>>> from alphafragtree.scoring import ScorerSet, TreeSizeScorer, MassDeviationVertexScorer
>>> scorers = ScorerSet(
...     peak_scorers=(TreeSizeScorer(1.0),),
...     decomposition_scorers=(MassDeviationVertexScorer(),),
... )
"""

from .base import (
    DecompositionScorer,
    Loss,
    LossScorer,
    PeakPairScorer,
    PeakScorer,
    ScorerContractError,
    ScorerSet,
    check_finite,
)
from .decomposition_scorers import (
    ChemicalPriorScorer,
    CommonFragmentsScorer,
    Hetero2CarbonPrior,
    MassDeviationVertexScorer,
)
from .distributions import (
    ExponentialDistribution,
    LogNormalDistribution,
    PartialParetoDistribution,
)
from .loss_scorers import (
    CommonLossEdgeScorer,
    DBELossScorer,
    FreeRadicalEdgeScorer,
    PureCarbonNitrogenLossScorer,
)
from .peak_pair_scorers import CollisionEnergyEdgeScorer, LossSizeScorer
from .peak_scorers import PeakIsNoiseScorer, TreeSizeScorer

__all__ = [
    # Interfaces
    "PeakScorer",
    "PeakPairScorer",
    "LossScorer",
    "DecompositionScorer",
    "ScorerSet",
    "Loss",
    "ScorerContractError",
    "check_finite",
    # Peak scorers
    "PeakIsNoiseScorer",
    "TreeSizeScorer",
    # Peak-pair scorers
    "LossSizeScorer",
    "CollisionEnergyEdgeScorer",
    # Loss scorers
    "FreeRadicalEdgeScorer",
    "DBELossScorer",
    "PureCarbonNitrogenLossScorer",
    "CommonLossEdgeScorer",
    # Decomposition scorers
    "MassDeviationVertexScorer",
    "CommonFragmentsScorer",
    "ChemicalPriorScorer",
    "Hetero2CarbonPrior",
    # Distributions
    "LogNormalDistribution",
    "ExponentialDistribution",
    "PartialParetoDistribution",
]
