# src/transmissibility/serial_interval/discretise.py
# Discrete serial interval distributions over integer lags 0, 1, 2, ...
# built from a continuous gamma distribution g(u)
from abc import ABC, abstractmethod
from typing import Sequence, Union
import logging

import numpy as np
from scipy.stats import gamma

logger = logging.getLogger(__name__)

# Mass left beyond the lag returned by support_max()
TAIL_MASS = 1e-8


class SerialInterval(ABC):
    """Probability mass function over non-negative integer lags (days).

    Every variant exposes the same ``density`` / ``mass_vector`` contract so
    the estimator and the projector do not care how it was built. A truncated
    mass vector sums to at most one; callers that truncate at ``max_lag``
    accept the residual mass as lost.
    """

    @abstractmethod
    def _pmf(self, lags: np.ndarray) -> np.ndarray:
        """Mass at each (non-negative integer) lag."""

    @abstractmethod
    def support_max(self) -> int:
        """Smallest lag beyond which the remaining mass is negligible."""

    def density(self, lag: Union[int, Sequence[int], np.ndarray]):
        """Mass at ``lag``; zero for negative lags."""
        lags = np.asarray(lag)
        scalar = lags.ndim == 0
        lags = np.atleast_1d(lags)
        if not np.issubdtype(lags.dtype, np.integer):
            if not np.all(np.mod(lags, 1) == 0):
                raise ValueError("Serial interval lags must be integers")
            lags = lags.astype(int)
        out = np.zeros(lags.shape, dtype=float)
        ok = lags >= 0
        if np.any(ok):
            out[ok] = self._pmf(lags[ok])
        if scalar:
            return float(out[0])
        return out

    def mass_vector(self, max_lag: int) -> np.ndarray:
        """Masses for lags 0..max_lag (inclusive)."""
        if max_lag < 0:
            raise ValueError("max_lag must be >= 0")
        return self.density(np.arange(int(max_lag) + 1))

    def infectivity_profile(self, max_lag: int) -> np.ndarray:
        """Masses for lags 1..max_lag, the weights of the renewal sum.

        Lag-0 mass is never part of the force of infection: a case cannot be
        infected by someone whose onset is on the same day in this model.
        """
        if max_lag < 1:
            return np.zeros(0, dtype=float)
        return self.mass_vector(max_lag)[1:]

    @property
    def mean(self) -> float:
        k = np.arange(self.support_max() + 1)
        p = self.mass_vector(k[-1])
        return float(np.sum(k * p) / np.sum(p))

    @property
    def sd(self) -> float:
        k = np.arange(self.support_max() + 1)
        p = self.mass_vector(k[-1])
        p = p / p.sum()
        mu = np.sum(k * p)
        return float(np.sqrt(np.sum(p * (k - mu) ** 2)))


def gamma_shape_scale(mean, sd):
    """Convert a gamma mean and standard deviation to (shape, scale)."""
    if mean <= 0 or sd <= 0:
        raise ValueError("Mean and sd of a gamma distribution must be > 0")
    shape = (mean / sd) ** 2
    scale = sd ** 2 / mean
    return shape, scale


def discrete_gamma_pmf(lags, shape: float, scale: float, w: float = 0.5) -> np.ndarray:
    """Gamma probability of [k - w, k + 1 - w) for each non-negative lag k."""
    k = np.asarray(lags, dtype=float)
    upper = gamma.cdf(k + 1.0 - w, a=shape, scale=scale)
    lower = gamma.cdf(np.maximum(k - w, 0.0), a=shape, scale=scale)
    return np.clip(upper - lower, 0.0, None)


class DiscreteGamma(SerialInterval):
    """Interval discretisation of a Gamma(shape, scale).

    The mass at lag k is the gamma probability of ``[k - w, k + 1 - w)``,
    so ``w`` sets where inside the day the continuous value is rounded:
    ``w = 0`` floors (lag 0 holds [0, 1)), ``w = 0.5`` rounds to the nearest
    day and ``w = 1`` takes the ceiling, which leaves no mass at lag 0.
    """

    def __init__(self, shape: float, scale: float, w: float = 0.5):
        if shape <= 0 or scale <= 0:
            raise ValueError("shape and scale must be > 0")
        if not 0.0 <= w <= 1.0:
            raise ValueError("w must be in [0, 1]")
        self.shape = float(shape)
        self.scale = float(scale)
        self.w = float(w)

    @classmethod
    def from_mean_sd(cls, mean: float, sd: float, w: float = 0.5) -> "DiscreteGamma":
        shape, scale = gamma_shape_scale(mean, sd)
        return cls(shape, scale, w=w)

    def _pmf(self, lags):
        return discrete_gamma_pmf(lags, self.shape, self.scale, self.w)

    def log_pmf(self, lags) -> np.ndarray:
        """Log mass at each lag, -inf where the mass is zero."""
        with np.errstate(divide="ignore"):
            return np.log(self.density(lags))

    def support_max(self) -> int:
        return int(np.ceil(gamma.ppf(1.0 - TAIL_MASS, a=self.shape, scale=self.scale) + self.w)) + 1

    def __repr__(self):
        return f"DiscreteGamma(shape={self.shape:.4g}, scale={self.scale:.4g}, w={self.w})"


class ShiftedGamma(SerialInterval):
    """Serial interval of 1 + Gamma, discretised with a triangular kernel.

    w_k = int_(k-1)^(k+1) [1 - |u - k|] g(u - 1) du, where g is a gamma pdf with
    mean ``mean - 1`` and standard deviation ``sd``. The kernel gives each day
    the mass of the neighbouring unit intervals weighted by distance, and the
    shift by one day leaves lag 0 empty.
    """

    def __init__(self, mean: float, sd: float):
        if mean <= 1:
            raise ValueError("Mean of a shifted gamma serial interval must be > 1")
        if sd <= 0:
            raise ValueError("sd must be > 0")
        self.si_mean = float(mean)
        self.si_sd = float(sd)
        # Parameters of the unshifted gamma
        self.shape = ((mean - 1.0) / sd) ** 2
        self.scale = sd ** 2 / (mean - 1.0)

    def _pmf(self, lags):
        # Closed form of the kernel integral; int_0^x u g_a(u) du = a*scale*F_(a+1)(x)
        k = lags.astype(float)
        a, b = self.shape, self.scale

        def cdf(x, shape):
            return gamma.cdf(x, a=shape, scale=b)

        res = k * cdf(k, a) + (k - 2.0) * cdf(k - 2.0, a) - 2.0 * (k - 1.0) * cdf(k - 1.0, a)
        res += a * b * (2.0 * cdf(k - 1.0, a + 1.0) - cdf(k - 2.0, a + 1.0) - cdf(k, a + 1.0))
        # Cancellation can leave tiny negative numbers
        return np.clip(res, 0.0, None)

    def support_max(self) -> int:
        return int(np.ceil(gamma.ppf(1.0 - TAIL_MASS, a=self.shape, scale=self.scale))) + 2

    @property
    def mean(self) -> float:
        return self.si_mean

    @property
    def sd(self) -> float:
        return self.si_sd

    def __repr__(self):
        return f"ShiftedGamma(mean={self.si_mean:.4g}, sd={self.si_sd:.4g})"


class EmpiricalSerialInterval(SerialInterval):
    """A serial interval given directly as masses for lags 0..len(pmf)-1."""

    def __init__(self, pmf: Sequence[float]):
        p = np.asarray(pmf, dtype=float)
        if p.ndim != 1 or p.size == 0:
            raise ValueError("pmf must be a non-empty 1D sequence")
        if np.any(p < 0) or not np.all(np.isfinite(p)):
            raise ValueError("pmf values must be finite and >= 0")
        total = float(p.sum())
        if total <= 0:
            raise ValueError("pmf must have positive mass")
        if total > 1.0 + 1e-9:
            raise ValueError(f"pmf sums to {total:.6g} > 1")
        p.setflags(write=False)
        self.pmf = p

    def _pmf(self, lags):
        out = np.zeros(lags.shape, dtype=float)
        inside = lags < self.pmf.size
        out[inside] = self.pmf[lags[inside]]
        return out

    def support_max(self) -> int:
        return self.pmf.size - 1

    def __repr__(self):
        return f"EmpiricalSerialInterval(n_lags={self.pmf.size})"
