# src/transmissibility/serial_interval/fit.py
"""
Maximum-likelihood fit of a discretised gamma to observed serial intervals.

The serial intervals come from contact tracing: for each infector/infectee
pair, the number of days between the two symptom onsets.
"""

from dataclasses import dataclass
from typing import Optional, Sequence
import logging

import numpy as np
import pandas as pd
from scipy.optimize import minimize

from .discretise import DiscreteGamma, discrete_gamma_pmf

logger = logging.getLogger(__name__)

# Returned instead of +inf so Nelder-Mead can step away from impossible parameters
PENALTY = 1e10


@dataclass(frozen=True)
class GammaFit:
    shape: float
    scale: float
    mu: float
    cv: float
    sd: float
    loglik: float
    converged: bool
    n_iter: int
    distribution: DiscreteGamma


def lags_from_pairs(infector_onsets, infectee_onsets) -> np.ndarray:
    """Serial intervals in days from paired onset dates.

    Pairs with a missing date on either side are dropped. A negative interval
    (infectee onset before infector onset) raises ValueError.
    """
    infector = pd.to_datetime(pd.Series(list(infector_onsets)), errors="coerce")
    infectee = pd.to_datetime(pd.Series(list(infectee_onsets)), errors="coerce")
    if len(infector) != len(infectee):
        raise ValueError("infector_onsets and infectee_onsets must have the same length")

    keep = infector.notna() & infectee.notna()
    n_dropped = int((~keep).sum())
    if n_dropped:
        logger.info("Dropped %d pair(s) with a missing onset date", n_dropped)

    lags = (infectee[keep] - infector[keep]).dt.days.to_numpy(dtype=int)
    if np.any(lags < 0):
        raise ValueError("Infectee onset before infector onset in %d pair(s)" % int((lags < 0).sum()))
    return lags


def _check_lags(lags) -> np.ndarray:
    x = np.asarray(lags)
    if x.ndim != 1 or x.size == 0:
        raise ValueError("lags must be a non-empty 1D sequence")
    if np.any(x < 0) or not np.all(np.mod(x, 1) == 0):
        raise ValueError("lags must be non-negative integers")
    return x.astype(int)


def _tabulated_loglik(values, counts, shape, scale, w) -> float:
    # Log-likelihood of lags tabulated as (distinct values, counts)
    with np.errstate(divide="ignore"):
        logp = np.log(discrete_gamma_pmf(values, shape, scale, w))
    return float(np.sum(counts * logp))


def discrete_gamma_loglik(lags: Sequence[int], shape: float, scale: float, w: float = 0.0) -> float:
    """Log-likelihood of integer lags under DiscreteGamma(shape, scale, w)."""
    values, counts = np.unique(np.asarray(lags, dtype=int), return_counts=True)
    return _tabulated_loglik(values, counts, shape, scale, w)


def fit_discrete_gamma(
    lags: Sequence[int],
    w: float = 0.0,
    mu_ini: Optional[float] = None,
    cv_ini: Optional[float] = None,
    max_iter: int = 1000,
) -> GammaFit:
    """Fit a discretised gamma to serial intervals by maximum likelihood.

    Args:
        lags: observed serial intervals, non-negative integers (days)
        w: discretisation offset, see DiscreteGamma; w = 1 puts no mass at lag 0
        mu_ini, cv_ini: starting mean and coefficient of variation
            (default: sample moments)
        max_iter: optimiser iteration budget
    Returns:
        GammaFit; ``converged`` must be checked before trusting the estimate
    Raises:
        ValueError
    """
    x = _check_lags(lags)
    if not 0.0 <= w <= 1.0:
        raise ValueError("w must be in [0, 1]")
    if w == 1.0 and np.any(x == 0):
        raise ValueError("Lags of 0 days have zero probability when w = 1")

    values, counts = np.unique(x, return_counts=True)

    if mu_ini is None:
        mu_ini = max(float(x.mean()), 0.5)
    if cv_ini is None:
        sd = float(x.std(ddof=1)) if x.size > 1 else 0.0
        cv_ini = sd / mu_ini if sd > 0 else 1.0
    if mu_ini <= 0 or cv_ini <= 0:
        raise ValueError("mu_ini and cv_ini must be > 0")

    # Optimise on log(mu), log(cv); shape = 1/cv^2, scale = mu*cv^2
    def negloglik(theta):
        mu, cv = np.exp(theta)
        shape = 1.0 / cv ** 2
        scale = mu * cv ** 2
        if not (np.isfinite(shape) and np.isfinite(scale)) or shape <= 0 or scale <= 0:
            return PENALTY
        ll = _tabulated_loglik(values, counts, shape, scale, w)
        if not np.isfinite(ll):
            return PENALTY
        return -ll

    res = minimize(
        negloglik,
        x0=np.log([mu_ini, cv_ini]),
        method="Nelder-Mead",
        options={"maxiter": max_iter, "xatol": 1e-8, "fatol": 1e-10},
    )

    mu, cv = (float(v) for v in np.exp(res.x))
    shape = 1.0 / cv ** 2
    scale = mu * cv ** 2
    converged = bool(res.success) and res.fun < PENALTY
    if not converged:
        logger.warning("Discrete gamma fit did not converge after %d iterations: %s", res.nit, res.message)
    logger.debug("Discrete gamma fit: mu=%.4f cv=%.4f loglik=%.4f", mu, cv, -res.fun)

    return GammaFit(
        shape=shape,
        scale=scale,
        mu=mu,
        cv=cv,
        sd=mu * cv,
        loglik=float(-res.fun),
        converged=converged,
        n_iter=int(res.nit),
        distribution=DiscreteGamma(shape, scale, w=w),
    )
