"""Loss scorers: chemical plausibility of a neutral loss.

All scorers here look at the loss formula only (``loss.formula``), not at
the peaks it connects.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, Mapping, Optional

from ..formula.molecular_formula import MolecularFormula
from ..preprocessing.peaks import ProcessedInput
from .base import Loss, LossScorer
from .peak_pair_scorers import LossSizeScorer

logger = logging.getLogger(__name__)

# Frequent neutral losses of small molecules
EXPERT_LOSSES = (
    "H2O", "CO", "CO2", "NH3", "HCN", "CH2O2", "C2H4", "CH4O", "CH2O",
    "H2S", "HCl", "CH4", "C2H2", "C2H2O", "C3H6", "C2H4O2", "HNO2",
    "SO2", "SO3", "H3PO4", "HPO3", "C6H10O5", "C6H8O6", "C6H10O4",
)

# Losses that essentially never occur; their formulas are reachable only
# through mass coincidences
IMPLAUSIBLE_LOSSES = ("C2O", "C4O", "C3H", "C3", "C5H", "C", "N", "C2", "C4")

# Radicals that are commonly lost despite their odd electron count
KNOWN_RADICALS = ("H", "CH3", "OH", "NH2", "C2H5", "OCH3", "Cl", "Br", "I", "SH", "NO", "NO2", "CO2H")


class FreeRadicalEdgeScorer(LossScorer):
    """Penalize radical losses, with a milder penalty for common radicals.

    Parameters
    ----------
    radical_scores : mapping of formula to probability
        Known radical losses and their prior probability
    general_radical_score : float, default=0.1
        Probability assigned to every other radical loss
    """

    name = "FreeRadical"

    def __init__(self, radical_scores: Mapping[MolecularFormula, float], general_radical_score: float = 0.1):
        self.radical_scores = {f: math.log(p) for f, p in radical_scores.items()}
        self.general_radical_score = math.log(general_radical_score)

    @classmethod
    def with_default_set(cls) -> "FreeRadicalEdgeScorer":
        known = {MolecularFormula.parse(r): 0.9 for r in KNOWN_RADICALS}
        return cls(known, 0.1)

    def score(self, loss: Loss, input: ProcessedInput, context) -> float:
        if not loss.formula.is_radical():
            return 0.0
        return self.radical_scores.get(loss.formula, self.general_radical_score)


class DBELossScorer(LossScorer):
    """Penalize losses with a negative ring and double bond equivalent."""

    name = "DBELoss"

    def __init__(self, penalty: float = math.log(0.25)):
        self.penalty = penalty

    def score(self, loss: Loss, input: ProcessedInput, context) -> float:
        return self.penalty if loss.formula.rdbe < 0 else 0.0


class PureCarbonNitrogenLossScorer(LossScorer):
    """Penalize losses made of carbon and nitrogen only (no hydrogen)."""

    name = "PureCarbonNitrogenLoss"

    def __init__(self, penalty: float = math.log(0.25)):
        self.penalty = penalty

    def score(self, loss: Loss, input: ProcessedInput, context) -> float:
        if loss.formula.only_contains(("C", "N")):
            return self.penalty
        return 0.0


class CommonLossEdgeScorer(LossScorer):
    """Fixed score per known loss formula; every other loss scores 0.

    Examples
    --------
    >>> scorer = CommonLossEdgeScorer({MolecularFormula.parse("H2O"): 1.5})
    >>> scorer = scorer.add_implausible_losses(math.log(0.01))
    """

    name = "CommonLosses"

    def __init__(self, common_losses: Optional[Mapping[MolecularFormula, float]] = None):
        self.common_losses: Dict[MolecularFormula, float] = dict(common_losses or {})

    @classmethod
    def loss_size_compensation_for_expert_list(
        cls,
        loss_size: LossSizeScorer,
        compensation: float = 0.75,
        losses: Iterable[str] = EXPERT_LOSSES,
    ) -> "CommonLossEdgeScorer":
        """Expert losses earn back a fraction of their loss size penalty.

        A frequent loss with a low loss size score (very light or very heavy)
        gets ``compensation * -loss_size_score`` on top; losses that the size
        prior already favors get nothing.
        """
        table = {}
        for text in losses:
            formula = MolecularFormula.parse(text)
            penalty = loss_size.score_mass(formula.mass)
            table[formula] = compensation * max(0.0, -penalty)
        logger.debug(f"Built common loss table with {len(table)} expert losses")
        return cls(table)

    def add_implausible_losses(
        self,
        score: float,
        losses: Iterable[str] = IMPLAUSIBLE_LOSSES,
    ) -> "CommonLossEdgeScorer":
        """Copy of this scorer that also assigns ``score`` to implausible losses."""
        table = dict(self.common_losses)
        for text in losses:
            table[MolecularFormula.parse(text)] = score
        return CommonLossEdgeScorer(table)

    def score(self, loss: Loss, input: ProcessedInput, context) -> float:
        return self.common_losses.get(loss.formula, 0.0)
