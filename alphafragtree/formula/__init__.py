"""Molecular formulas, precursor ion types and mass decomposition."""

from .decomposer import DecomposerCache, MassDecomposer, enumerate_compositions
from .ionization import DEPROTONATION, KNOWN_ION_TYPES, PROTONATION, PrecursorIonType
from .molecular_formula import (
    DecompositionList,
    FormulaConstraints,
    MolecularFormula,
    ScoredFormula,
)

__all__ = [
    "MolecularFormula",
    "FormulaConstraints",
    "ScoredFormula",
    "DecompositionList",
    "PrecursorIonType",
    "KNOWN_ION_TYPES",
    "PROTONATION",
    "DEPROTONATION",
    "MassDecomposer",
    "DecomposerCache",
    "enumerate_compositions",
]
