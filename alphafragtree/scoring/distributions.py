"""Probability distributions used as scoring priors.

Only log-densities are needed; every method is finite for the domain it is
used on.
"""

from __future__ import annotations

import math

import numpy as np


class LogNormalDistribution:
    """Log-normal distribution with parameters of the underlying normal."""

    def __init__(self, mean: float, sd: float):
        if sd <= 0:
            raise ValueError(f"sd must be positive, got {sd}")
        self.mean = mean
        self.sd = sd

    def log_density(self, x: float) -> float:
        if x <= 0:
            return -math.inf
        z = (math.log(x) - self.mean) / self.sd
        return -math.log(x * self.sd * math.sqrt(2 * math.pi)) - 0.5 * z * z

    @classmethod
    def fit(cls, values: np.ndarray) -> "LogNormalDistribution":
        logs = np.log(np.asarray(values, dtype=np.float64))
        return cls(float(np.mean(logs)), float(np.std(logs)))


class ExponentialDistribution:
    """Exponential distribution with rate ``lam``."""

    def __init__(self, lam: float):
        if lam <= 0:
            raise ValueError(f"lambda must be positive, got {lam}")
        self.lam = lam

    @classmethod
    def from_median(cls, median: float) -> "ExponentialDistribution":
        return cls(math.log(2) / median)

    @property
    def median(self) -> float:
        return math.log(2) / self.lam

    def log_survival(self, x: float) -> float:
        """log P(X >= x)"""
        return -self.lam * max(x, 0.0)


class PartialParetoDistribution:
    """Uniform density on [a, b), Pareto tail with shape k beyond b.

    The uniform part has the height of the Pareto density at b, and the whole
    density is normalized to integrate to one.
    """

    def __init__(self, a: float, b: float, k: float):
        if not a < b or k <= 0:
            raise ValueError(f"Invalid partial Pareto parameters a={a}, b={b}, k={k}")
        self.a = a
        self.b = b
        self.k = k
        peak = k / b
        norm = 1.0 / ((b - a) * peak + 1.0)
        self.opt = peak * norm
        self._kdivbnorm = (k / b) * norm

    def density(self, x: float) -> float:
        if x < self.b:
            return self.opt if x >= self.a else 0.0
        return self._kdivbnorm * (self.b / x) ** (self.k + 1)

    def log_density(self, x: float) -> float:
        d = self.density(x)
        return math.log(d) if d > 0 else -math.inf
