"""Molecular formulas as integer count vectors.

A ``MolecularFormula`` stores element counts in the fixed order of
``constants.ELEMENTS``. Formulas are immutable and hashable, so they can be
used as dictionary keys (decomposition tables, common loss lists) and compared
element-wise with NumPy when the fragmentation graph is built.

Examples
--------
>>> f = MolecularFormula.parse("C6H12O6")
>>> f.mass
180.06338810...
>>> loss = f - MolecularFormula.parse("H2O")
>>> str(loss)
'C6H10O5'
>>> f.is_subtractable(MolecularFormula.parse("CO2"))
True
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Tuple

import numpy as np

from ..constants import (
    DEFAULT_ALPHABET,
    DEFAULT_UPPER_BOUNDS,
    ELEMENT_INDEX,
    ELEMENT_MASSES,
    ELEMENT_VALENCES,
    ELEMENTS,
    HETERO_ELEMENTS,
)

_FORMULA_TOKEN = re.compile(r"([A-Z][a-z]?)(\d*)")

_N_ELEMENTS = len(ELEMENTS)
_HETERO_MASK = np.array([e in HETERO_ELEMENTS for e in ELEMENTS], dtype=np.bool_)


class MolecularFormula:
    """Immutable molecular formula backed by an int64 count vector."""

    __slots__ = ("_counts", "_array", "_mass")

    def __init__(self, counts: Iterable[int]):
        counts = tuple(int(c) for c in counts)
        if len(counts) != _N_ELEMENTS:
            raise ValueError(
                f"Expected {_N_ELEMENTS} element counts, got {len(counts)}"
            )
        self._counts = counts
        self._array = np.array(counts, dtype=np.int64)
        self._array.setflags(write=False)
        self._mass = float(np.dot(self._array, ELEMENT_MASSES))

    @classmethod
    def parse(cls, text: str) -> "MolecularFormula":
        """Parse a formula string such as ``"C6H12O6"`` or ``"NH3"``."""
        text = text.strip()
        counts = [0] * _N_ELEMENTS
        position = 0
        for match in _FORMULA_TOKEN.finditer(text):
            if match.start() != position:
                raise ValueError(f"Cannot parse molecular formula: {text!r}")
            symbol, number = match.groups()
            if symbol not in ELEMENT_INDEX:
                raise ValueError(f"Unknown element {symbol!r} in formula {text!r}")
            counts[ELEMENT_INDEX[symbol]] += int(number) if number else 1
            position = match.end()
        if position != len(text):
            raise ValueError(f"Cannot parse molecular formula: {text!r}")
        return cls(counts)

    @classmethod
    def from_dict(cls, element_counts: Mapping[str, int]) -> "MolecularFormula":
        counts = [0] * _N_ELEMENTS
        for symbol, n in element_counts.items():
            if symbol not in ELEMENT_INDEX:
                raise ValueError(f"Unknown element {symbol!r}")
            counts[ELEMENT_INDEX[symbol]] = int(n)
        return cls(counts)

    @classmethod
    def empty(cls) -> "MolecularFormula":
        return cls([0] * _N_ELEMENTS)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def counts(self) -> Tuple[int, ...]:
        return self._counts

    @property
    def array(self) -> np.ndarray:
        """Read-only int64 count vector in ``ELEMENTS`` order."""
        return self._array

    @property
    def mass(self) -> float:
        """Neutral monoisotopic mass in Da."""
        return self._mass

    @property
    def rdbe(self) -> float:
        """Ring plus double bond equivalents.

        RDBE = 1 + sum(n_i * (valence_i - 2)) / 2. Half-integer values
        indicate radicals (odd electron count).
        """
        return 1.0 + float(np.dot(self._array, ELEMENT_VALENCES - 2)) / 2.0

    @property
    def number_of_carbons(self) -> int:
        return self._counts[ELEMENT_INDEX["C"]]

    @property
    def number_of_hydrogens(self) -> int:
        return self._counts[ELEMENT_INDEX["H"]]

    @property
    def number_of_hetero_atoms(self) -> int:
        return int(self._array[_HETERO_MASK].sum())

    def hetero_to_carbon_ratio(self) -> float:
        carbons = self.number_of_carbons
        hetero = self.number_of_hetero_atoms
        if carbons == 0:
            return float(hetero)
        return hetero / carbons

    def elements(self) -> Tuple[str, ...]:
        return tuple(e for e, n in zip(ELEMENTS, self._counts) if n != 0)

    def to_dict(self) -> Dict[str, int]:
        return {e: n for e, n in zip(ELEMENTS, self._counts) if n != 0}

    def is_empty(self) -> bool:
        return not any(self._counts)

    def is_all_positive_or_zero(self) -> bool:
        return all(n >= 0 for n in self._counts)

    def is_subtractable(self, other: "MolecularFormula") -> bool:
        """True if ``self - other`` has no negative element count."""
        return bool(np.all(self._array >= other._array))

    def is_radical(self) -> bool:
        return (self.rdbe * 2) % 2 != 0

    def only_contains(self, symbols: Iterable[str]) -> bool:
        allowed = set(symbols)
        return all(e in allowed for e in self.elements())

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def __add__(self, other: "MolecularFormula") -> "MolecularFormula":
        return MolecularFormula(self._array + other._array)

    def __sub__(self, other: "MolecularFormula") -> "MolecularFormula":
        return MolecularFormula(self._array - other._array)

    def __mul__(self, factor: int) -> "MolecularFormula":
        return MolecularFormula(self._array * int(factor))

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def __eq__(self, other):
        if not isinstance(other, MolecularFormula):
            return NotImplemented
        return self._counts == other._counts

    def __hash__(self):
        return hash(self._counts)

    def __lt__(self, other: "MolecularFormula") -> bool:
        return (self._mass, self._counts) < (other._mass, other._counts)

    def __bool__(self):
        return not self.is_empty()

    def __str__(self) -> str:
        """Hill notation: C first, H second, then alphabetical."""
        parts = self.to_dict()
        if not parts:
            return ""
        order = []
        if "C" in parts:
            order.append("C")
            if "H" in parts:
                order.append("H")
        order.extend(sorted(e for e in parts if e not in order))
        return "".join(
            f"{e}{parts[e] if parts[e] != 1 else ''}" for e in order
        )

    def __repr__(self) -> str:
        return f"MolecularFormula({str(self)!r})"


@dataclass(frozen=True)
class FormulaConstraints:
    """Element alphabet and count bounds for formula decomposition.

    Elements of the alphabet without an explicit upper bound are unbounded
    (limited only by the target mass). Formulas with RDBE below
    ``min_rdbe`` are rejected.
    """

    alphabet: Tuple[str, ...] = DEFAULT_ALPHABET
    upper_bounds: Tuple[Tuple[str, int], ...] = tuple(sorted(DEFAULT_UPPER_BOUNDS.items()))
    min_rdbe: float = -0.5

    def __post_init__(self):
        for symbol in self.alphabet:
            if symbol not in ELEMENT_INDEX:
                raise ValueError(f"Unknown element {symbol!r} in alphabet")
        for symbol, bound in self.upper_bounds:
            if symbol not in self.alphabet:
                raise ValueError(f"Upper bound given for {symbol!r} outside the alphabet")
            if bound < 0:
                raise ValueError(f"Negative upper bound for {symbol!r}: {bound}")

    @classmethod
    def from_bounds(
        cls,
        bounds: Mapping[str, Optional[int]],
        min_rdbe: float = -0.5,
    ) -> "FormulaConstraints":
        """Build constraints from ``{"C": None, "H": None, "N": 5, ...}``.

        ``None`` marks an unbounded element.
        """
        alphabet = tuple(e for e in ELEMENTS if e in bounds)
        upper = tuple(sorted((e, int(b)) for e, b in bounds.items() if b is not None))
        return cls(alphabet=alphabet, upper_bounds=upper, min_rdbe=min_rdbe)

    @classmethod
    def all_subsets_of(cls, formula: MolecularFormula, min_rdbe: float = -0.5) -> "FormulaConstraints":
        """Constraints admitting exactly the sub-formulas of ``formula``."""
        bounds = formula.to_dict()
        return cls.from_bounds(bounds, min_rdbe=min_rdbe)

    def upper_bound(self, symbol: str) -> Optional[int]:
        for e, bound in self.upper_bounds:
            if e == symbol:
                return bound
        return None

    def intersect(self, other: "FormulaConstraints") -> "FormulaConstraints":
        """Tightest constraints satisfying both ``self`` and ``other``."""
        bounds: Dict[str, Optional[int]] = {}
        for symbol in self.alphabet:
            if symbol not in other.alphabet:
                continue
            candidates = [b for b in (self.upper_bound(symbol), other.upper_bound(symbol)) if b is not None]
            bounds[symbol] = min(candidates) if candidates else None
        return FormulaConstraints.from_bounds(bounds, min_rdbe=max(self.min_rdbe, other.min_rdbe))

    def is_satisfied(self, formula: MolecularFormula) -> bool:
        if not formula.is_all_positive_or_zero():
            return False
        for symbol, n in formula.to_dict().items():
            if symbol not in self.alphabet:
                return False
            bound = self.upper_bound(symbol)
            if bound is not None and n > bound:
                return False
        return formula.rdbe >= self.min_rdbe


@dataclass(frozen=True)
class ScoredFormula:
    """A candidate molecular formula with its (log) score."""

    formula: MolecularFormula
    score: float = 0.0


class DecompositionList:
    """Candidate formulas of one peak, ordered by descending score."""

    __slots__ = ("_decompositions",)

    def __init__(self, decompositions: Iterable[ScoredFormula] = ()):
        self._decompositions = sorted(decompositions, key=lambda d: -d.score)

    @classmethod
    def from_formulas(cls, formulas: Iterable[MolecularFormula]) -> "DecompositionList":
        return cls(ScoredFormula(f, 0.0) for f in formulas)

    @property
    def decompositions(self) -> list:
        return list(self._decompositions)

    @property
    def formulas(self) -> list:
        return [d.formula for d in self._decompositions]

    def score_of(self, formula: MolecularFormula) -> Optional[float]:
        for d in self._decompositions:
            if d.formula == formula:
                return d.score
        return None

    def __len__(self):
        return len(self._decompositions)

    def __iter__(self):
        return iter(self._decompositions)

    def __getitem__(self, i):
        return self._decompositions[i]

    def __repr__(self) -> str:
        inner = ", ".join(f"{d.formula}:{d.score:.3f}" for d in self._decompositions[:5])
        more = ", ..." if len(self._decompositions) > 5 else ""
        return f"DecompositionList([{inner}{more}])"
