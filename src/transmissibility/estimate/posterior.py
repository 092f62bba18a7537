# src/transmissibility/estimate/posterior.py
"""
Posterior of the reproduction number R over one time window.

Renewal model: I_t ~ Poisson(R * Lambda_t), with the total infectiousness
Lambda_t = sum_{s>=1} I_(t-s) w(s). With a Gamma(a, b) prior on R (shape a,
rate b) the posterior over a window W is

    Gamma(a + sum_{t in W} I_t,  b + sum_{t in W} Lambda_t)

When the serial interval itself is uncertain, the posterior is the equal-weight
mixture of the Gamma posteriors obtained with each serial interval draw.
"""

# Store type annotations as strings instead of evaluating them immediately.
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, NamedTuple, Optional, Sequence, Tuple
import logging

import numpy as np
from numpy.random import default_rng
from scipy.optimize import brentq
from scipy.special import gammaln
from scipy.stats import gamma as scipy_gamma

from ..incidence import IncidenceSeries
from ..serial_interval import SerialInterval

logger = logging.getLogger(__name__)

DEFAULT_QUANTILES = (0.025, 0.05, 0.25, 0.5, 0.75, 0.95, 0.975)
DEFAULT_MEAN_PRIOR = 5.0
DEFAULT_STD_PRIOR = 5.0
DEFAULT_CV_POSTERIOR = 0.3


@dataclass(frozen=True)
class EstimationConfig:
    """Prior on R and summaries to report.

    The default prior has mean 5 and sd 5, i.e. shape 1 and rate 0.2.
    """
    mean_prior: float = DEFAULT_MEAN_PRIOR
    std_prior: float = DEFAULT_STD_PRIOR
    quantiles: Tuple[float, ...] = DEFAULT_QUANTILES
    cv_posterior: float = DEFAULT_CV_POSTERIOR

    def __post_init__(self):
        if self.mean_prior <= 0 or self.std_prior <= 0:
            raise ValueError("mean_prior and std_prior must be > 0")
        qs = tuple(float(q) for q in self.quantiles)
        if not qs or any(not 0.0 < q < 1.0 for q in qs):
            raise ValueError("quantiles must be in (0, 1)")
        object.__setattr__(self, "quantiles", tuple(sorted(set(qs))))
        if self.cv_posterior <= 0:
            raise ValueError("cv_posterior must be > 0")

    @property
    def prior_shape(self) -> float:
        return (self.mean_prior / self.std_prior) ** 2

    @property
    def prior_rate(self) -> float:
        return self.mean_prior / self.std_prior ** 2


class TimeWindow(NamedTuple):
    """1-indexed inclusive window [start, end] on an incidence series."""
    start: int
    end: int

    def validate(self, n: int) -> "TimeWindow":
        if self.start < 2:
            raise ValueError(f"Window start must be >= 2 (got {self.start}): "
                             "estimation needs at least one earlier day of incidence")
        if self.start > self.end:
            raise ValueError(f"Window start {self.start} is after its end {self.end}")
        if self.end > n:
            raise ValueError(f"Window end {self.end} is beyond the series length {n}")
        return self


@dataclass(frozen=True, eq=False)
class RPosterior:
    """Posterior of R for one window.

    ``shape`` and ``rate`` hold one entry per serial interval draw; a single
    entry is a plain Gamma posterior, several entries an equal-weight mixture.
    """
    t_start: int
    t_end: int
    shape: np.ndarray
    rate: np.ndarray
    quantile_levels: Tuple[float, ...] = DEFAULT_QUANTILES
    warnings: Tuple[str, ...] = ()
    quantiles: Dict[float, float] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        shape = np.atleast_1d(np.asarray(self.shape, dtype=float))
        rate = np.atleast_1d(np.asarray(self.rate, dtype=float))
        if shape.shape != rate.shape or shape.ndim != 1 or shape.size == 0:
            raise ValueError("shape and rate must be matching non-empty 1D arrays")
        if np.any(shape <= 0) or np.any(rate <= 0):
            raise ValueError("Gamma shape and rate must be > 0")
        object.__setattr__(self, "shape", shape)
        object.__setattr__(self, "rate", rate)
        object.__setattr__(self, "quantiles", {q: self.quantile(q) for q in self.quantile_levels})

    @property
    def is_mixture(self) -> bool:
        return self.shape.size > 1

    @property
    def mean(self) -> float:
        return float(np.mean(self.shape / self.rate))

    @property
    def std(self) -> float:
        means = self.shape / self.rate
        second = self.shape / self.rate ** 2 + means ** 2
        var = float(np.mean(second) - np.mean(means) ** 2)
        return math.sqrt(max(var, 0.0))

    @property
    def cv(self) -> float:
        return self.std / self.mean

    @property
    def median(self) -> float:
        return self.quantile(0.5)

    def cdf(self, x) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        return np.mean(
            scipy_gamma.cdf(x[..., None], a=self.shape, scale=1.0 / self.rate), axis=-1
        )

    def quantile(self, q: float) -> float:
        if not 0.0 < q < 1.0:
            raise ValueError("q must be in (0, 1)")
        parts = scipy_gamma.ppf(q, a=self.shape, scale=1.0 / self.rate)
        if not self.is_mixture:
            return float(parts[0])
        lo, hi = float(parts.min()), float(parts.max())
        if hi - lo <= 1e-12 * max(1.0, hi):
            return lo
        # The mixture quantile lies between the component quantiles
        try:
            return float(brentq(lambda x: float(self.cdf(x)) - q, lo, hi, xtol=1e-10))
        except ValueError as exc:
            raise RuntimeError(f"Could not bracket mixture quantile {q}") from exc

    def credible_interval(self, level: float = 0.95) -> Tuple[float, float]:
        if not 0.0 < level < 1.0:
            raise ValueError("level must be in (0, 1)")
        alpha = 1.0 - level
        return self.quantile(alpha / 2.0), self.quantile(1.0 - alpha / 2.0)

    def sample(self, n: int, rng=None) -> np.ndarray:
        """Draw ``n`` values of R from the posterior."""
        if rng is None:
            rng = default_rng()
        idx = rng.integers(0, self.shape.size, size=int(n))
        return rng.gamma(self.shape[idx], 1.0 / self.rate[idx])

    def summary(self) -> Dict[str, float]:
        row = {
            "t_start": self.t_start,
            "t_end": self.t_end,
            "mean": self.mean,
            "std": self.std,
            "median": self.median,
        }
        for q, v in self.quantiles.items():
            row[f"q{q * 100:g}"] = v
        return row


def total_infectiousness(counts: Sequence[int], si: SerialInterval) -> np.ndarray:
    """Lambda_t = sum_{s=1}^{t-1} I_(t-s) w(s) for every day t of ``counts``.

    Lambda_1 is 0: nothing precedes the first day.
    """
    I = np.asarray(counts, dtype=float)
    n = I.size
    if n == 0:
        return np.zeros(0)
    w = np.concatenate([[0.0], si.infectivity_profile(n - 1)])
    return np.convolve(I, w)[:n]


def log_likelihood(counts: Sequence[int], R: float, si: SerialInterval, window: Optional[TimeWindow] = None) -> float:
    """Poisson renewal log-likelihood of the counts in ``window`` given R."""
    I = np.asarray(counts, dtype=float)
    lam_all = total_infectiousness(I, si)
    if window is None:
        window = TimeWindow(2, I.size)
    window.validate(I.size)
    ll = 0.0
    for t in range(window.start - 1, window.end):
        lam = R * lam_all[t]
        if lam <= 0.0:
            if I[t] == 0:
                continue
            return -np.inf
        ll += I[t] * math.log(lam) - lam - gammaln(int(I[t]) + 1)
    return ll


def _caveats(window: TimeWindow, n_cases: float, lam_sum: float,
             posterior: RPosterior, config: EstimationConfig,
             si_converged: bool = True) -> Tuple[str, ...]:
    notes = []
    if not si_converged:
        notes.append("serial interval draws come from MCMC chains that did not converge")
    if n_cases == 0 and lam_sum == 0:
        notes.append("no cases in or before the window: posterior equals the prior")
    elif n_cases > 0 and lam_sum == 0:
        notes.append("no earlier cases to infect those in the window: posterior is driven by the prior rate")
    if n_cases > 0 and posterior.cv > config.cv_posterior:
        notes.append(
            f"estimating R too early in the epidemic: posterior CV {posterior.cv:.2f} "
            f"exceeds {config.cv_posterior:.2f}"
        )
    for note in notes:
        logger.warning("Window [%d, %d]: %s", window.start, window.end, note)
    return tuple(notes)


def _window_sums(series: IncidenceSeries, si: SerialInterval, window: TimeWindow):
    lam = total_infectiousness(series.counts, si)
    sl = slice(window.start - 1, window.end)
    return float(series.counts[sl].sum()), float(lam[sl].sum())


def estimate_window(
    series: IncidenceSeries,
    si: SerialInterval,
    window,
    config: Optional[EstimationConfig] = None,
) -> RPosterior:
    """Gamma posterior of R over one window of ``series``.

    Raises:
        ValueError for an invalid window
    """
    config = config or EstimationConfig()
    window = TimeWindow(*window).validate(len(series.require_daily()))

    n_cases, lam_sum = _window_sums(series, si, window)
    shape = config.prior_shape + n_cases
    rate = config.prior_rate + lam_sum
    logger.debug("Window [%d, %d]: cases=%g, total infectiousness=%.4f", window.start, window.end, n_cases, lam_sum)

    posterior = RPosterior(window.start, window.end, np.array([shape]), np.array([rate]),
                           quantile_levels=config.quantiles)
    notes = _caveats(window, n_cases, lam_sum, posterior, config)
    if notes:
        posterior = RPosterior(window.start, window.end, posterior.shape, posterior.rate,
                               quantile_levels=config.quantiles, warnings=notes)
    return posterior


def estimate_window_variable_si(
    series: IncidenceSeries,
    si_draws: Sequence[SerialInterval],
    window,
    config: Optional[EstimationConfig] = None,
    si_converged: bool = True,
) -> RPosterior:
    """Posterior of R averaged over many serial interval draws.

    Each draw gives its own Gamma posterior; the result is their equal-weight
    mixture. ``si_converged=False`` (draws from a sampler that failed its
    convergence check) adds a caveat to the posterior.
    """
    config = config or EstimationConfig()
    si_draws = list(si_draws)
    if not si_draws:
        raise ValueError("si_draws must contain at least one serial interval")
    window = TimeWindow(*window).validate(len(series.require_daily()))

    sums = np.array([_window_sums(series, si, window) for si in si_draws])
    n_cases = float(sums[0, 0])
    shapes = config.prior_shape + sums[:, 0]
    rates = config.prior_rate + sums[:, 1]
    logger.debug("Window [%d, %d]: %d serial interval draws", window.start, window.end, len(si_draws))

    posterior = RPosterior(window.start, window.end, shapes, rates, quantile_levels=config.quantiles)
    notes = _caveats(window, n_cases, float(sums[:, 1].min()), posterior, config, si_converged)
    if notes:
        posterior = RPosterior(window.start, window.end, shapes, rates,
                               quantile_levels=config.quantiles, warnings=notes)
    return posterior
