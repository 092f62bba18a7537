# src/transmissibility/serial_interval/mcmc.py
"""
Serial interval uncertainty by Markov chain Monte Carlo.

A random-walk Metropolis sampler explores (log shape, log scale) of a
discretised gamma given observed serial intervals. Several chains are run from
over-dispersed starting points around the maximum-likelihood fit, and the
Gelman-Rubin diagnostic decides whether they agree. Each kept draw is a full
serial interval distribution, so the estimator can average over them.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence
import logging

import numpy as np
from numpy.random import default_rng

from .discretise import DiscreteGamma, SerialInterval
from .fit import _check_lags, _tabulated_loglik, fit_discrete_gamma

logger = logging.getLogger(__name__)

RHAT_THRESHOLD = 1.1


def gelman_rubin(chains) -> float:
    """Potential scale reduction factor for one parameter.

    Args:
        chains: array (n_chains, n_samples)
    Returns:
        R-hat; values close to 1 mean the chains agree
    """
    x = np.asarray(chains, dtype=float)
    if x.ndim != 2 or x.shape[0] < 2 or x.shape[1] < 2:
        raise ValueError("gelman_rubin needs at least 2 chains of 2 samples")
    m, n = x.shape
    chain_means = x.mean(axis=1)
    between = n * chain_means.var(ddof=1)
    within = x.var(axis=1, ddof=1).mean()
    if within == 0:
        return 1.0 if between == 0 else np.inf
    var_plus = (n - 1) / n * within + between / n
    return float(np.sqrt(var_plus / within))


class SerialIntervalSampler(ABC):
    """Source of plausible serial interval distributions."""

    @abstractmethod
    def sample(self, n_draws: int, rng=None) -> List[SerialInterval]:
        """Draw ``n_draws`` serial interval distributions."""

    @abstractmethod
    def converged(self) -> bool:
        """Whether the underlying sampler passed its convergence check."""


class MetropolisGammaSampler(SerialIntervalSampler):
    """Random-walk Metropolis over discretised gamma serial intervals.

    The prior is a wide normal on log(shape) and log(scale). The chains run
    once, lazily, for a fixed number of iterations.
    """

    def __init__(
        self,
        lags: Sequence[int],
        w: float = 0.0,
        n_chains: int = 4,
        n_iter: int = 10000,
        burnin: int = 3000,
        thin: int = 10,
        step_size: float = 0.1,
        prior_sd: float = 10.0,
        seed: Optional[int] = None,
    ):
        self.lags = _check_lags(lags)
        if n_chains < 2:
            raise ValueError("n_chains must be >= 2 to check convergence")
        if burnin < 0 or n_iter <= burnin:
            raise ValueError("n_iter must be larger than burnin")
        if thin < 1:
            raise ValueError("thin must be >= 1")
        if (n_iter - burnin) // thin < 2:
            raise ValueError("Too few draws kept after burnin and thinning")
        self.w = w
        self.n_chains = int(n_chains)
        self.n_iter = int(n_iter)
        self.burnin = int(burnin)
        self.thin = int(thin)
        self.step_size = float(step_size)
        self.prior_sd = float(prior_sd)
        self.seed = seed
        self._values, self._counts = np.unique(self.lags, return_counts=True)
        self._chains = None
        self._acceptance = None

    def _log_posterior(self, theta) -> float:
        shape, scale = np.exp(theta)
        if not (np.isfinite(shape) and np.isfinite(scale)) or shape <= 0 or scale <= 0:
            return -np.inf
        ll = _tabulated_loglik(self._values, self._counts, shape, scale, self.w)
        log_prior = -0.5 * float(np.sum((theta / self.prior_sd) ** 2))
        return ll + log_prior

    def run(self):
        """Run all chains; returns kept draws, array (n_chains, n_kept, 2)."""
        if self._chains is not None:
            return self._chains

        rng = default_rng(self.seed)
        fit = fit_discrete_gamma(self.lags, w=self.w)
        centre = np.log([fit.shape, fit.scale])

        n_kept = (self.n_iter - self.burnin) // self.thin
        chains = np.zeros((self.n_chains, n_kept, 2))
        accepted = np.zeros(self.n_chains)

        for c in range(self.n_chains):
            # Over-dispersed starting point
            theta = centre + rng.normal(0.0, 0.5, size=2)
            current = self._log_posterior(theta)
            kept = 0
            for it in range(self.n_iter):
                proposal = theta + rng.normal(0.0, self.step_size, size=2)
                candidate = self._log_posterior(proposal)
                if np.log(rng.uniform()) < candidate - current:
                    theta, current = proposal, candidate
                    accepted[c] += 1
                if it >= self.burnin and (it - self.burnin) % self.thin == 0 and kept < n_kept:
                    chains[c, kept] = theta
                    kept += 1

        self._chains = chains
        self._acceptance = accepted / self.n_iter
        logger.debug("MCMC acceptance rates: %s", np.round(self._acceptance, 3))
        if not self.converged():
            logger.warning("Serial interval MCMC chains did not converge (R-hat %s)", np.round(self.rhat, 3))
        return chains

    @property
    def rhat(self) -> np.ndarray:
        """Gelman-Rubin R-hat for log(shape) and log(scale)."""
        chains = self.run()
        return np.array([gelman_rubin(chains[:, :, j]) for j in range(chains.shape[2])])

    @property
    def acceptance_rate(self) -> np.ndarray:
        self.run()
        return self._acceptance

    def converged(self) -> bool:
        return bool(np.all(self.rhat < RHAT_THRESHOLD))

    def draws(self) -> np.ndarray:
        """Pooled kept draws as (shape, scale) rows."""
        return np.exp(self.run().reshape(-1, 2))

    def sample(self, n_draws: int, rng=None) -> List[SerialInterval]:
        if n_draws < 1:
            raise ValueError("n_draws must be >= 1")
        if rng is None:
            rng = default_rng(self.seed)
        pool = self.draws()
        replace = n_draws > pool.shape[0]
        idx = rng.choice(pool.shape[0], size=n_draws, replace=replace)
        return [DiscreteGamma(shape, scale, w=self.w) for shape, scale in pool[idx]]
