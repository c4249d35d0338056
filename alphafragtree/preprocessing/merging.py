"""Merging peaks of the same fragment across spectra.

The merger decides *which* peaks belong together; the caller decides *how*
a group becomes one peak (intensity policy) through the ``merge`` callback.
"""

from __future__ import annotations

import logging
from typing import Callable, List

import numpy as np

from ..profile import Deviation
from .peaks import ProcessedPeak

logger = logging.getLogger(__name__)

# merge(group, representative_position, new_mz) -> merged peak
MergeCallback = Callable[[List[ProcessedPeak], int, float], ProcessedPeak]


class PeakMerger:
    def merge_peaks(
        self,
        peaks: List[ProcessedPeak],
        deviation: Deviation,
        merge: MergeCallback,
    ) -> List[ProcessedPeak]:
        raise NotImplementedError


class HighIntensityMerger(PeakMerger):
    """Greedy merging around the most intense unmerged peak.

    Peaks are visited by descending relative intensity. Each unmerged peak
    becomes the representative of a group that takes, from every *other*
    spectrum, the most intense unmerged peak within ``deviation`` of the
    representative. The merged m/z is the representative's m/z.

    Parameters
    ----------
    min_intensity : float, default=0.0
        Merged peaks with a lower relative intensity are dropped
    """

    def __init__(self, min_intensity: float = 0.0):
        self.min_intensity = min_intensity

    def merge_peaks(
        self,
        peaks: List[ProcessedPeak],
        deviation: Deviation,
        merge: MergeCallback,
    ) -> List[ProcessedPeak]:
        if not peaks:
            return []
        by_mass = sorted(peaks, key=lambda p: p.mz)
        mz = np.array([p.mz for p in by_mass], dtype=np.float64)
        spectrum = np.array(
            [p.original_peaks[0].spectrum_index if p.original_peaks else -1 for p in by_mass],
            dtype=np.int64,
        )
        intensity = np.array([p.relative_intensity for p in by_mass], dtype=np.float64)
        merged_flag = np.zeros(len(by_mass), dtype=np.bool_)

        result = []
        for i in np.argsort(-intensity, kind="stable"):
            if merged_flag[i]:
                continue
            tolerance = deviation.absolute_for(mz[i])
            lo = np.searchsorted(mz, mz[i] - tolerance, side="left")
            hi = np.searchsorted(mz, mz[i] + tolerance, side="right")

            best_per_spectrum = {}
            for j in range(lo, hi):
                if j == i or merged_flag[j] or spectrum[j] == spectrum[i]:
                    continue
                current = best_per_spectrum.get(spectrum[j])
                if current is None or intensity[j] > intensity[current]:
                    best_per_spectrum[spectrum[j]] = j

            members = [i] + sorted(best_per_spectrum.values())
            merged_flag[members] = True
            group = [by_mass[j] for j in members]
            merged = merge(group, 0, float(mz[i]))
            if merged.relative_intensity >= self.min_intensity:
                result.append(merged)

        logger.debug(f"Merged {len(peaks)} peaks into {len(result)}")
        return result
