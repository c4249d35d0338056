"""Mass decomposition: all molecular formulas within a mass window.

Given a target mass, a tolerance and element constraints, the decomposer
enumerates every formula of the alphabet whose monoisotopic mass lies inside
the window. Enumeration is an exact bounded search over element counts,
heaviest element first, with the count of the lightest element computed
directly from the remaining mass window.

The decomposer is a pure function of its inputs, so each decomposer keeps a
bounded memo of its results per (mass, deviation, constraints). The memo lives
on the instance and is released with it. ``DecomposerCache`` hands out one
decomposer per chemical alphabet and creates each at most once, even under
concurrent lookups.

Performance
-----------
- Enumeration kernel: Numba-compiled, ~1M candidate compositions/second
- Typical CHNOPS fragment below 500 Da: <1 ms after JIT warm-up

Examples
--------
>>> cache = DecomposerCache()
>>> decomposer = cache.get_decomposer(("C", "H", "N", "O"))
>>> formulas = decomposer.decompose(
...     180.0634, Deviation(10), FormulaConstraints(alphabet=("C", "H", "N", "O"), upper_bounds=())
... )
>>> "C6H12O6" in [str(f) for f in formulas]
True
"""

from __future__ import annotations

import logging
import math
import threading
from typing import TYPE_CHECKING, Dict, List, Tuple

import numpy as np
from numba import njit

from ..constants import ELEMENT_INDEX, ELEMENTS, MONOISOTOPIC_MASSES_DICT
from .molecular_formula import FormulaConstraints, MolecularFormula

if TYPE_CHECKING:
    from ..profile import Deviation

logger = logging.getLogger(__name__)


@njit(cache=True)
def enumerate_compositions(
    masses: np.ndarray,
    max_counts: np.ndarray,
    lower: float,
    upper: float,
) -> np.ndarray:
    """Enumerate element count vectors with total mass in [lower, upper].

    Parameters
    ----------
    masses : np.ndarray
        Element masses sorted in descending order (float64)
    max_counts : np.ndarray
        Maximum count per element (int64, same order as masses)
    lower : float
        Lower mass bound (inclusive)
    upper : float
        Upper mass bound (inclusive)

    Returns
    -------
    compositions : np.ndarray
        2D array [n_solutions, n_elements] of counts (int64)

    Notes
    -----
    Iterative depth-first search over all elements but the last; the count of
    the last (lightest) element is solved from the remaining window.
    """
    k = len(masses)
    capacity = 64
    out = np.zeros((capacity, k), dtype=np.int64)
    n_out = 0

    if k == 0:
        return out[:0]

    # Maximum mass reachable by elements i..k-1
    reachable = np.zeros(k + 1, dtype=np.float64)
    for i in range(k - 1, -1, -1):
        reachable[i] = reachable[i + 1] + max_counts[i] * masses[i]

    counts = np.zeros(k, dtype=np.int64)
    partial = np.zeros(k, dtype=np.float64)
    last = k - 1
    eps = 1e-9

    if k == 1:
        lo_n = max(0, int(math.ceil(lower / masses[0] - eps)))
        hi_n = min(max_counts[0], int(math.floor(upper / masses[0] + eps)))
        for n in range(lo_n, hi_n + 1):
            m = n * masses[0]
            if lower <= m <= upper:
                if n_out == capacity:
                    grown = np.zeros((capacity * 2, k), dtype=np.int64)
                    grown[:capacity] = out
                    out = grown
                    capacity *= 2
                out[n_out, 0] = n
                n_out += 1
        return out[:n_out]

    level = 0
    counts[0] = -1
    partial[0] = 0.0
    while level >= 0:
        counts[level] += 1
        m = partial[level] + counts[level] * masses[level]
        if counts[level] > max_counts[level] or m > upper + eps:
            level -= 1
            continue
        # Not enough mass left even with every remaining element maxed out
        if m + reachable[level + 1] < lower - eps:
            continue
        if level == last - 1:
            rem_lo = lower - m
            rem_hi = upper - m
            lo_n = max(0, int(math.ceil(rem_lo / masses[last] - eps)))
            hi_n = min(max_counts[last], int(math.floor(rem_hi / masses[last] + eps)))
            for n in range(lo_n, hi_n + 1):
                total = m + n * masses[last]
                if total < lower or total > upper:
                    continue
                if n_out == capacity:
                    grown = np.zeros((capacity * 2, k), dtype=np.int64)
                    grown[:capacity] = out
                    out = grown
                    capacity *= 2
                for j in range(last):
                    out[n_out, j] = counts[j]
                out[n_out, last] = n
                n_out += 1
            continue
        level += 1
        partial[level] = m
        counts[level] = -1

    return out[:n_out]


class MassDecomposer:
    """Decomposer for one chemical alphabet.

    Parameters
    ----------
    alphabet : tuple of str
        Element symbols the decomposer may use
    max_cache_size : int, default=65536
        Number of memoized results kept; the memo is cleared when full
    """

    def __init__(self, alphabet: Tuple[str, ...], max_cache_size: int = 65536):
        if not alphabet:
            raise ValueError("Chemical alphabet must not be empty")
        for symbol in alphabet:
            if symbol not in ELEMENT_INDEX:
                raise ValueError(f"Unknown element {symbol!r}")
        self.alphabet = tuple(sorted(set(alphabet), key=ELEMENTS.index))

        # Heaviest element first; the kernel solves the lightest one directly
        order = sorted(self.alphabet, key=lambda e: -MONOISOTOPIC_MASSES_DICT[e])
        self._order = tuple(order)
        self._masses = np.array([MONOISOTOPIC_MASSES_DICT[e] for e in order], dtype=np.float64)
        self._element_columns = np.array([ELEMENT_INDEX[e] for e in order], dtype=np.int64)

        self.max_cache_size = max_cache_size
        self._cache: Dict[tuple, Tuple[MolecularFormula, ...]] = {}
        self._cache_lock = threading.Lock()

        # Warm up the JIT once per alphabet so concurrent callers never compile
        enumerate_compositions(self._masses, np.zeros(len(order), dtype=np.int64), 0.0, 0.0)
        logger.debug(f"Created decomposer for alphabet {','.join(self.alphabet)}")

    def decompose(
        self,
        mass: float,
        deviation: "Deviation",
        constraints: FormulaConstraints,
    ) -> List[MolecularFormula]:
        """All formulas with mass within ``deviation`` of ``mass``.

        Parameters
        ----------
        mass : float
            Neutral target mass in Da
        deviation : Deviation
            Allowed mass deviation around the target
        constraints : FormulaConstraints
            Element bounds; elements outside ``constraints.alphabet`` are
            never used

        Returns
        -------
        formulas : list of MolecularFormula
            Sorted by absolute mass error (ascending)
        """
        if mass <= 0:
            return []
        key = (float(mass), deviation, constraints)
        formulas = self._cache.get(key)
        if formulas is None:
            formulas = self._decompose(key[0], deviation, constraints)
            with self._cache_lock:
                if len(self._cache) >= self.max_cache_size:
                    self._cache.clear()
                self._cache[key] = formulas
        return list(formulas)

    def cache_size(self) -> int:
        return len(self._cache)

    def _decompose(
        self,
        mass: float,
        deviation: "Deviation",
        constraints: FormulaConstraints,
    ) -> Tuple[MolecularFormula, ...]:
        tolerance = deviation.absolute_for(mass)
        lower, upper = mass - tolerance, mass + tolerance

        max_counts = np.zeros(len(self._order), dtype=np.int64)
        for i, symbol in enumerate(self._order):
            if symbol not in constraints.alphabet:
                continue
            by_mass = int(math.floor(upper / self._masses[i]))
            bound = constraints.upper_bound(symbol)
            max_counts[i] = by_mass if bound is None else min(bound, by_mass)

        compositions = enumerate_compositions(self._masses, max_counts, lower, upper)
        if len(compositions) == 0:
            return ()

        full = np.zeros((len(compositions), len(ELEMENTS)), dtype=np.int64)
        full[:, self._element_columns] = compositions

        formulas = [MolecularFormula(row) for row in full]
        formulas = [
            f for f in formulas
            if not f.is_empty() and f.rdbe >= constraints.min_rdbe
        ]
        formulas.sort(key=lambda f: abs(f.mass - mass))
        return tuple(formulas)


class DecomposerCache:
    """Thread-safe, compute-once-per-alphabet store of decomposers."""

    def __init__(self):
        self._decomposers: Dict[Tuple[str, ...], MassDecomposer] = {}
        self._lock = threading.Lock()

    def get_decomposer(self, alphabet: Tuple[str, ...]) -> MassDecomposer:
        key = tuple(sorted(set(alphabet), key=ELEMENTS.index))
        decomposer = self._decomposers.get(key)
        if decomposer is not None:
            return decomposer
        with self._lock:
            decomposer = self._decomposers.get(key)
            if decomposer is None:
                decomposer = MassDecomposer(key)
                self._decomposers[key] = decomposer
        return decomposer

    def __len__(self):
        return len(self._decomposers)
