"""Recalibration engine: at most one recompute cycle per call.

States
------
STABLE
    The tree is final; no recalibration is pending.
RECALIBRATING
    A correction with positive estimated bonus (or a forced one) has been
    applied and the tree is being recomputed.

A recalibrated tree is adopted only if it scores higher than the input tree
(or recalibration is forced), so the engine never returns a worse tree
unless forced. Diagnostics are recorded on whichever tree is returned; when
no correction can be fitted the medians are NaN and both bonuses are zero.
"""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Callable, List, Optional

from ..scoring.decomposition_scorers import MassDeviationVertexScorer
from ..tree.ftree import FTree
from .functions import RecalibrationFunction
from .method import Recalibration, RecalibrationMethod

logger = logging.getLogger(__name__)

# recompute(function) -> tree computed on peaks corrected by function
Recompute = Callable[[RecalibrationFunction], Optional[FTree]]


class RecalibrationState(Enum):
    STABLE = "stable"
    RECALIBRATING = "recalibrating"


def _record(tree: FTree, rec: Recalibration, bonus: float):
    tree.scoring.estimated_recalibration_bonus = rec.estimated_bonus
    tree.scoring.median_ppm_before = rec.median_ppm_before
    tree.scoring.median_ppm_after = rec.median_ppm_after
    tree.scoring.recalibration_bonus = bonus


def _record_none(tree: FTree):
    tree.scoring.estimated_recalibration_bonus = 0.0
    tree.scoring.median_ppm_before = math.nan
    tree.scoring.median_ppm_after = math.nan
    tree.scoring.recalibration_bonus = 0.0


class RecalibrationEngine:
    """Runs one recalibration cycle for a tree.

    Parameters
    ----------
    method : RecalibrationMethod, optional
        Fitting method; without one the engine always stays stable
    scorer : MassDeviationVertexScorer, optional
        Scorer used to estimate the bonus

    Attributes
    ----------
    state : RecalibrationState
        Current state; STABLE whenever ``run`` has returned
    transitions : list of RecalibrationState
        States visited by the last ``run`` call, in order
    """

    def __init__(
        self,
        method: Optional[RecalibrationMethod],
        scorer: Optional[MassDeviationVertexScorer] = None,
    ):
        self.method = method
        self.scorer = scorer or MassDeviationVertexScorer()
        self.state = RecalibrationState.STABLE
        self.transitions: List[RecalibrationState] = [RecalibrationState.STABLE]

    def _enter(self, state: RecalibrationState):
        self.state = state
        self.transitions.append(state)

    def run(self, tree: FTree, recompute: Recompute, force: bool = False) -> FTree:
        self.state = RecalibrationState.STABLE
        self.transitions = [RecalibrationState.STABLE]
        if self.method is None or tree is None:
            return tree

        rec = self.method.recalibrate(tree, self.scorer)
        if rec is None:
            logger.debug("No recalibration could be fitted; tree is stable")
            _record_none(tree)
            return tree
        if not force and rec.estimated_bonus <= 0:
            logger.debug(f"Estimated recalibration bonus {rec.estimated_bonus:.4f} <= 0; tree is stable")
            _record(tree, rec, 0.0)
            return tree

        self._enter(RecalibrationState.RECALIBRATING)
        logger.debug(f"State {self.state.value}: recomputing tree with {rec.function}")
        try:
            new_tree = recompute(rec.function)
        finally:
            self._enter(RecalibrationState.STABLE)

        if new_tree is None:
            logger.debug("Recalibrated input produced no tree; keeping original tree")
            _record(tree, rec, 0.0)
            return tree

        bonus = new_tree.scoring.overall_score - tree.scoring.overall_score
        if force or bonus > 0:
            _record(new_tree, rec, bonus)
            new_tree.recalibration = rec.function
            logger.info(f"Adopted recalibrated tree (bonus {bonus:.4f}, estimated {rec.estimated_bonus:.4f})")
            return new_tree

        logger.debug(f"Recalibrated tree scores lower ({bonus:.4f}); keeping original tree")
        _record(tree, rec, 0.0)
        return tree
