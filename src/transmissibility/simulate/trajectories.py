# src/transmissibility/simulate/trajectories.py
# Purpose: project daily incidence forward from an observed series with the
# renewal equation in generative mode. On each simulated day t,
#   I_t ~ Poisson(R_t * sum_{s>=1} I_(t-s) w(s))
# where the sum runs over the observed days and the days already simulated.
#
# Ensemble orientation: rows are days of the horizon, columns are trajectories.

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union
import logging

import numpy as np
import pandas as pd
from numpy.random import default_rng

from ..estimate.posterior import RPosterior
from ..incidence import IncidenceSeries
from ..serial_interval import SerialInterval

logger = logging.getLogger(__name__)

MODELS = ("poisson", "negbin")
DEFAULT_SUMMARY_QUANTILES = (0.025, 0.25, 0.5, 0.75, 0.975)


def draw_R(R_source, size, rng):
    """Draw reproduction numbers from an R source.

    The source is a scalar (returned everywhere), a collection of sampled
    values (resampled with replacement) or an RPosterior (sampled directly).
    """
    if isinstance(R_source, RPosterior):
        n = int(np.prod(size))
        return R_source.sample(n, rng=rng).reshape(size)

    arr = np.atleast_1d(np.asarray(R_source, dtype=float))
    if arr.size == 0:
        raise ValueError("R source is empty: nothing to simulate")
    if arr.ndim != 1:
        raise ValueError("R source must be a scalar or a 1D collection")
    if not np.all(np.isfinite(arr)) or np.any(arr < 0):
        raise ValueError("R values must be finite and >= 0")
    if arr.size == 1:
        return np.full(size, arr[0])
    return rng.choice(arr, size=size, replace=True)


def _periods(n_days: int, time_change: Optional[Sequence[int]]) -> Tuple[Tuple[int, int], ...]:
    if not time_change:
        return ((0, n_days),)
    tc = [int(t) for t in time_change]
    if any(b <= a for a, b in zip(tc, tc[1:])):
        raise ValueError("time_change must be strictly increasing")
    if tc[0] <= 0 or tc[-1] >= n_days:
        raise ValueError("time_change days must fall strictly inside the horizon (1..n_days-1)")
    bounds = [0] + tc + [n_days]
    return tuple(zip(bounds[:-1], bounds[1:]))


@dataclass(frozen=True, eq=False)
class ProjectionEnsemble:
    """Simulated daily incidence, shape (n_days, n_sim).

    ``r_values`` holds the reproduction number used for every day of every
    trajectory, same shape as ``values``.
    """
    values: np.ndarray
    dates: np.ndarray
    r_values: Optional[np.ndarray] = None

    def __post_init__(self):
        values = np.asarray(self.values)
        if values.ndim != 2:
            raise ValueError("values must be 2D (n_days, n_sim)")
        dates = np.asarray(self.dates, dtype="datetime64[D]")
        if dates.shape != (values.shape[0],):
            raise ValueError("There must be one date per simulated day")
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "dates", dates)

    @property
    def n_days(self) -> int:
        return int(self.values.shape[0])

    @property
    def n_sim(self) -> int:
        return int(self.values.shape[1])

    def mean(self) -> np.ndarray:
        return self.values.mean(axis=1)

    def quantiles(self, qs: Sequence[float] = DEFAULT_SUMMARY_QUANTILES) -> np.ndarray:
        """Cross-trajectory quantiles, shape (len(qs), n_days)."""
        return np.quantile(self.values, qs, axis=1)

    def prob_any_case(self) -> np.ndarray:
        """Fraction of trajectories with at least one case, per day."""
        return (self.values >= 1).mean(axis=1)

    def cumulative(self) -> "ProjectionEnsemble":
        """Running totals of each trajectory over the horizon."""
        return ProjectionEnsemble(np.cumsum(self.values, axis=0), self.dates, self.r_values)

    def summary(self, qs: Sequence[float] = DEFAULT_SUMMARY_QUANTILES) -> pd.DataFrame:
        df = pd.DataFrame({"date": pd.to_datetime(self.dates), "mean": self.mean()})
        for q, row in zip(qs, self.quantiles(qs)):
            df[f"q{q * 100:g}"] = row
        df["prob_any_case"] = self.prob_any_case()
        return df

    def to_frame(self) -> pd.DataFrame:
        cols = {f"sim_{j + 1}": self.values[:, j] for j in range(self.n_sim)}
        df = pd.DataFrame(cols)
        df.insert(0, "date", pd.to_datetime(self.dates))
        return df

    def to_csv(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.to_frame().to_csv(path, index=False, date_format="%Y-%m-%d")
        logger.info("Projections written to: %s", path)
        return path

    @classmethod
    def from_csv(cls, path: Union[str, Path]) -> "ProjectionEnsemble":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Projection CSV not found: {path}")
        df = pd.read_csv(path, parse_dates=["date"])
        sim_cols = [c for c in df.columns if c.startswith("sim_")]
        sim_cols = sorted(sim_cols, key=lambda s: int(s.split("_")[1]))
        return cls(df[sim_cols].to_numpy(dtype=int), df["date"].to_numpy())


def project(
    series: IncidenceSeries,
    si: SerialInterval,
    R,
    n_sim: int = 100,
    n_days: int = 7,
    R_fix_within: bool = True,
    model: str = "poisson",
    size: Optional[float] = None,
    time_change: Optional[Sequence[int]] = None,
    rng=None,
    seed: Optional[int] = None,
) -> ProjectionEnsemble:
    """Simulate ``n_sim`` trajectories of incidence for ``n_days`` after ``series``.

    Args:
        series: observed incidence, the history the projections start from
        si: serial interval
        R: scalar, collection of sampled R values, or RPosterior; with
            ``time_change``, a list of such sources, one per period
        n_sim: number of trajectories
        n_days: horizon in time steps of the series
        R_fix_within: True draws one R per trajectory (per period) and keeps it
            every day; False draws a new R every day
        model: "poisson", or "negbin" with dispersion ``size``
        time_change: horizon days (1..n_days-1) on which R switches to the
            next source
        rng, seed: numpy Generator, or a seed to create one
    Returns:
        ProjectionEnsemble, values shape (n_days, n_sim)
    Raises:
        ValueError
    """
    # Checks
    if n_sim < 1:
        raise ValueError("n_sim must be >= 1: no trajectories requested")
    if n_days < 0:
        raise ValueError("n_days must be >= 0")
    if len(series) < 1:
        raise ValueError("Projections need at least one day of observed incidence")
    series.require_daily()
    if model not in MODELS:
        raise ValueError(f"model must be one of {MODELS}")
    if model == "negbin" and (size is None or size <= 0):
        raise ValueError("negbin model needs a dispersion size > 0")

    if time_change:
        if not isinstance(R, (list, tuple)) or len(R) != len(time_change) + 1:
            raise ValueError("With time_change, R must list one source per period")
        sources = list(R)
    else:
        sources = [R]
    # Reject empty sources up front, even for an empty horizon
    for src in sources:
        if not isinstance(src, RPosterior) and np.size(src) == 0:
            raise ValueError("R source is empty: nothing to simulate")

    if rng is None:
        rng = default_rng(seed)

    step = np.timedelta64(series.interval, "D")
    last = series.dates[-1]
    dates = last + step * np.arange(1, n_days + 1)

    if n_days == 0:
        logger.debug("Empty horizon: returning an empty ensemble")
        return ProjectionEnsemble(np.zeros((0, n_sim), dtype=int), dates, np.zeros((0, n_sim)))

    periods = _periods(n_days, time_change if time_change else None)

    # R for every day of every trajectory
    r_values = np.zeros((n_days, n_sim))
    for (lo, hi), src in zip(periods, sources):
        if R_fix_within:
            r_values[lo:hi] = draw_R(src, (n_sim,), rng)[None, :]
        else:
            r_values[lo:hi] = draw_R(src, (hi - lo, n_sim), rng)

    n_obs = len(series)
    total = n_obs + n_days
    w = si.infectivity_profile(total - 1)  # w_1..w_(total-1)

    # Observed history is shared; simulated days are filled below
    trajectory = np.zeros((total, n_sim), dtype=np.int64)
    trajectory[:n_obs] = series.counts[:, None]

    for d in range(n_days):
        t = n_obs + d
        past = trajectory[:t][::-1]                  # I_(t-1), I_(t-2), ..., I_0
        lam_base = w[:t] @ past                      # align w_s with I_(t-s)
        lam = r_values[d] * lam_base

        if model == "poisson":
            new_cases = rng.poisson(lam)
        else:
            new_cases = rng.negative_binomial(size, size / (size + lam))
        trajectory[t] = new_cases

    logger.debug("Projected %d trajectories over %d days (serial interval support %d)", n_sim, n_days, w.size)
    return ProjectionEnsemble(trajectory[n_obs:], dates, r_values)


def sample_posterior_r(posterior: RPosterior, n: int, rng=None, seed: Optional[int] = None) -> np.ndarray:
    """Draw ``n`` plausible R values from a window posterior."""
    if n < 1:
        raise ValueError("n must be >= 1")
    if rng is None:
        rng = default_rng(seed)
    return posterior.sample(n, rng=rng)
