"""Physical constants and element tables for fragmentation tree computation.

This module provides all physical constants, monoisotopic element masses,
valences and tolerance defaults used throughout AlphaFragTree. All values are
sourced from NIST or IUPAC.

Element data is provided both as dictionaries and as arrays indexed by the
fixed element order ``ELEMENTS``, so that molecular formulas can be stored as
integer count vectors and processed by NumPy/Numba code.

Sources
-------
- NIST physical constants: https://physics.nist.gov/cgi-bin/cuu/Value
- IUPAC atomic masses: https://www.ciaaw.org/atomic-masses.htm
"""

import numpy as np

# =============================================================================
# Fundamental Physical Constants (NIST values)
# =============================================================================

# Proton mass (NOT hydrogen atom mass!)
# Source: NIST 2018 CODATA
PROTON_MASS = 1.007276466622  # Da

# Electron mass
# Source: NIST 2018 CODATA
ELECTRON_MASS = 0.000548579909  # Da

# Hydrogen atom mass = proton + electron
# The heaviest non-parent fragment is [M - H], see parent peak detection
HYDROGEN_MASS = 1.00782503207  # Da

# =============================================================================
# Element Table
# =============================================================================

# Fixed element order for formula count vectors. Never reorder: formulas
# hash on their count tuples.
ELEMENTS = (
    "C", "H", "N", "O", "P", "S", "F", "Cl", "Br", "I", "Na", "K", "Si", "B", "Se",
)

ELEMENT_INDEX = {symbol: i for i, symbol in enumerate(ELEMENTS)}

# Monoisotopic masses of the most abundant isotope (Da)
MONOISOTOPIC_MASSES_DICT = {
    "C": 12.000000000,
    "H": 1.00782503207,
    "N": 14.0030740048,
    "O": 15.99491461956,
    "P": 30.97376163,
    "S": 31.97207100,
    "F": 18.99840322,
    "Cl": 34.96885268,
    "Br": 78.9183371,
    "I": 126.904473,
    "Na": 22.9897692809,
    "K": 38.96370668,
    "Si": 27.9769265325,
    "B": 11.0093054,
    "Se": 79.9165213,
}

# Valences used for ring-plus-double-bond-equivalent (RDBE) calculation
VALENCES_DICT = {
    "C": 4, "H": 1, "N": 3, "O": 2, "P": 3, "S": 2, "F": 1, "Cl": 1,
    "Br": 1, "I": 1, "Na": 1, "K": 1, "Si": 4, "B": 3, "Se": 2,
}

ELEMENT_MASSES = np.array([MONOISOTOPIC_MASSES_DICT[e] for e in ELEMENTS], dtype=np.float64)
ELEMENT_VALENCES = np.array([VALENCES_DICT[e] for e in ELEMENTS], dtype=np.int64)

# Elements counted as hetero atoms by the hetero-to-carbon prior
HETERO_ELEMENTS = ("N", "O", "P", "S", "F", "Cl", "Br", "I", "Si", "B", "Se")

# Default chemical alphabet (CHNOPS) and its per-element upper bounds
DEFAULT_ALPHABET = ("C", "H", "N", "O", "P", "S")
DEFAULT_UPPER_BOUNDS = {"P": 10, "S": 10}

# =============================================================================
# Normalization and Parent Peak Detection
# =============================================================================

# Peaks closer than this to the ion mass are ignored when computing the local
# intensity scale of a spectrum
PARENT_SCALE_EXCLUSION = 0.1  # Da

# =============================================================================
# Default Tolerance Settings
# =============================================================================

# Allowed mass deviation for decomposition and peak matching
DEFAULT_ALLOWED_DEVIATION_PPM = 10.0
DEFAULT_ALLOWED_DEVIATION_ABS = 0.002  # Da, floor for small masses

# Standard deviation of the mass error model (used by mass deviation scorers)
DEFAULT_STANDARD_MS1_DEVIATION_PPM = 5.0
DEFAULT_STANDARD_MS2_DEVIATION_PPM = 10.0

# Median intensity of noise peaks (relative intensity units)
DEFAULT_MEDIAN_NOISE_INTENSITY = 0.02

# Tolerance for the score additivity self check
SCORE_TOLERANCE = 1e-8
