"""Precursor ion types (ionization + adduct).

A precursor ion type such as ``[M+NH4]+`` is split into

- an *ionization*: the charged particle that stays attached to every fragment
  (H+ for ``[M+NH4]+``), and
- an *adduct*: a neutral formula (NH3) that is attached to the precursor but
  may be lost during fragmentation.

Fragments are decomposed at ``mz - ionization_mass``; the precursor is
decomposed at ``mz - ionization_mass - adduct.mass`` and the adduct is added
back to every parent candidate afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..constants import ELECTRON_MASS, MONOISOTOPIC_MASSES_DICT, PROTON_MASS
from .molecular_formula import MolecularFormula


@dataclass(frozen=True)
class PrecursorIonType:
    """Singly charged precursor ion type.

    Attributes
    ----------
    name : str
        Notation, e.g. ``"[M+H]+"``
    charge : int
        +1 or -1
    ionization_mass : float
        Mass added to a neutral fragment to obtain its m/z
    adduct : MolecularFormula
        Neutral adduct formula attached to the precursor only
    """

    name: str
    charge: int
    ionization_mass: float
    adduct: MolecularFormula = MolecularFormula.empty()

    def __post_init__(self):
        if abs(self.charge) != 1:
            raise ValueError(f"Only singly charged ions are supported, got {self.charge}")

    @classmethod
    def from_string(cls, name: str) -> "PrecursorIonType":
        key = name.replace(" ", "")
        if key not in KNOWN_ION_TYPES:
            raise ValueError(
                f"Unknown precursor ion type: {name}. "
                f"Known types: {', '.join(sorted(KNOWN_ION_TYPES))}"
            )
        return KNOWN_ION_TYPES[key]

    def subtract_from_mass(self, mz: float) -> float:
        """Neutral fragment mass for an observed fragment m/z."""
        return mz - self.ionization_mass

    def add_to_mass(self, neutral_mass: float) -> float:
        """Fragment m/z for a neutral fragment mass."""
        return neutral_mass + self.ionization_mass

    def subtract_ion_and_adduct(self, mz: float) -> float:
        """Neutral molecule mass for an observed precursor m/z."""
        return mz - self.ionization_mass - self.adduct.mass

    def neutral_mass_to_precursor_mz(self, neutral_mass: float) -> float:
        return neutral_mass + self.adduct.mass + self.ionization_mass

    def __str__(self) -> str:
        return self.name


_NA = MONOISOTOPIC_MASSES_DICT["Na"]
_K = MONOISOTOPIC_MASSES_DICT["K"]
_CL = MONOISOTOPIC_MASSES_DICT["Cl"]

KNOWN_ION_TYPES = {
    "[M+H]+": PrecursorIonType("[M+H]+", 1, PROTON_MASS),
    "[M]+": PrecursorIonType("[M]+", 1, -ELECTRON_MASS),
    "[M+Na]+": PrecursorIonType("[M+Na]+", 1, _NA - ELECTRON_MASS),
    "[M+K]+": PrecursorIonType("[M+K]+", 1, _K - ELECTRON_MASS),
    "[M+NH4]+": PrecursorIonType("[M+NH4]+", 1, PROTON_MASS, MolecularFormula.parse("NH3")),
    "[M-H]-": PrecursorIonType("[M-H]-", -1, -PROTON_MASS),
    "[M+Cl]-": PrecursorIonType("[M+Cl]-", -1, _CL + ELECTRON_MASS),
}

PROTONATION = KNOWN_ION_TYPES["[M+H]+"]
DEPROTONATION = KNOWN_ION_TYPES["[M-H]-"]
