"""Input validation: reject unusable experiments, repair missing values.

Validators form a chain. Each receives the experiment produced by the
previous one, a ``warn`` callback and the ``repair`` flag. A validator raises
``InvalidInputError`` for problems that cannot be repaired, or when a
mandatory value is missing and repair is disabled. Repairs fill a default and
report it through ``warn``.
"""

from __future__ import annotations

import logging
from typing import Callable

import numpy as np

from ..formula.ionization import PROTONATION
from .experiment import Ms2Experiment

logger = logging.getLogger(__name__)

WarningCallback = Callable[[str], None]


class InvalidInputError(ValueError):
    """Raised when an experiment cannot be processed."""


class InputValidator:
    """Base class of the validator chain."""

    def validate(self, experiment: Ms2Experiment, warn: WarningCallback, repair: bool) -> Ms2Experiment:
        raise NotImplementedError


class MissingValueValidator(InputValidator):
    """Checks spectra and fills a missing ion type and ion mass.

    - No MS2 spectra, only empty MS2 spectra, non-finite or negative values:
      always an error
    - Missing precursor ion type: ``[M+H]+`` (repair) or error
    - Missing ion mass: computed from the known molecular formula, otherwise
      the heaviest MS2 peak (repair) or error
    """

    def validate(self, experiment: Ms2Experiment, warn: WarningCallback, repair: bool) -> Ms2Experiment:
        label = experiment.name or "<unnamed>"
        if not experiment.ms2_spectra:
            raise InvalidInputError(f"Experiment {label} has no MS2 spectra")
        if all(len(s) == 0 for s in experiment.ms2_spectra):
            raise InvalidInputError(f"Experiment {label} contains only empty MS2 spectra")

        for spectra in (experiment.ms2_spectra, experiment.ms1_spectra):
            for s in spectra:
                if not (np.all(np.isfinite(s.mz)) and np.all(np.isfinite(s.intensity))):
                    raise InvalidInputError(f"Experiment {label} contains non-finite peak values")
                if np.any(s.mz <= 0) or np.any(s.intensity < 0):
                    raise InvalidInputError(
                        f"Experiment {label} contains non-positive m/z or negative intensities"
                    )

        if experiment.precursor_ion_type is None:
            if not repair:
                raise InvalidInputError(f"Experiment {label} has no precursor ion type")
            warn(f"No precursor ion type given for {label}; assuming {PROTONATION}")
            experiment.precursor_ion_type = PROTONATION

        if experiment.ion_mass is None or not np.isfinite(experiment.ion_mass) or experiment.ion_mass <= 0:
            if experiment.molecular_formula is not None:
                experiment.ion_mass = experiment.precursor_ion_type.neutral_mass_to_precursor_mz(
                    experiment.molecular_formula.mass
                )
                logger.debug(f"Ion mass of {label} derived from molecular formula: {experiment.ion_mass:.5f}")
            elif repair:
                heaviest = max(float(s.mz[-1]) for s in experiment.ms2_spectra if len(s) > 0)
                warn(f"No ion mass given for {label}; using heaviest MS2 peak {heaviest:.5f}")
                experiment.ion_mass = heaviest
            else:
                raise InvalidInputError(f"Experiment {label} has no ion mass")

        return experiment
