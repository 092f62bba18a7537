# src/transmissibility/plotting.py
from pathlib import Path
from typing import Optional, Tuple, Union
import logging

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from .estimate import REstimates
from .growth import LogLinearFit
from .incidence import IncidenceSeries
from .serial_interval import SerialInterval
from .simulate import ProjectionEnsemble

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _save(fig, save_path: PathLike) -> Path:
    save_path = Path(save_path)
    save_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(save_path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    logger.info("Saved plot to %s", save_path)
    return save_path


# ---------- incidence ----------

def plot_incidence(
    series: IncidenceSeries,
    save_path: PathLike = "figs/incidence.png",
    fit: Optional[Union[LogLinearFit, Tuple[LogLinearFit, LogLinearFit]]] = None,
    figsize: Tuple[int, int] = (10, 5),
) -> Path:
    """Bar chart of incidence, with the log-linear fit(s) overlaid if given."""
    dates = pd.to_datetime(series.dates)
    fig, ax = plt.subplots(figsize=figsize)
    ax.bar(dates, series.counts, width=0.9 * series.interval, color="#7f8fa6", label="incidence")

    fits = () if fit is None else (fit if isinstance(fit, tuple) else (fit,))
    for i, f in enumerate(fits):
        # Each phase is drawn over its own dates
        pred = f.predict()
        ax.plot(pred["date"], pred["fit"], color="#1f77b4", linewidth=2.0, label="log-linear fit" if i == 0 else None)
        ax.fill_between(pred["date"], pred["lwr"], pred["upr"], color="#1f77b4", alpha=0.15)

    unit = "day" if series.interval == 1 else f"{series.interval} days"
    ax.set_xlabel("Date")
    ax.set_ylabel(f"Cases per {unit}")
    ax.grid(alpha=0.25)
    ax.legend(loc="upper left", fontsize="small")
    fig.autofmt_xdate()
    return _save(fig, save_path)


# ---------- serial interval ----------

def plot_serial_interval(
    si: SerialInterval,
    save_path: PathLike = "figs/serial_interval.png",
    max_lag: Optional[int] = None,
    observed_lags=None,
    figsize: Tuple[int, int] = (8, 5),
) -> Path:
    """Serial interval masses, with the observed lags as a density histogram."""
    max_lag = si.support_max() if max_lag is None else int(max_lag)
    lags = np.arange(max_lag + 1)
    fig, ax = plt.subplots(figsize=figsize)
    if observed_lags is not None and len(observed_lags):
        obs = np.asarray(observed_lags, dtype=int)
        ax.hist(obs, bins=np.arange(-0.5, max(max_lag, obs.max()) + 1.5), density=True,
                color="#7f8fa6", alpha=0.5, label="observed")
    ax.plot(lags, si.mass_vector(max_lag), marker="o", color="#1f77b4", linewidth=1.5, label="serial interval")
    ax.set_xlabel("Days between onsets")
    ax.set_ylabel("Probability")
    ax.grid(alpha=0.25)
    ax.legend(fontsize="small")
    return _save(fig, save_path)


# ---------- R over time ----------

def plot_r_estimates(
    estimates: REstimates,
    save_path: PathLike = "figs/r_estimates.png",
    level: float = 0.95,
    figsize: Tuple[int, int] = (10, 5),
) -> Path:
    """Posterior median of R at each window end with a credible ribbon."""
    if len(estimates) == 0:
        raise ValueError("No R estimates to plot")
    ends = np.array([p.t_end for p in estimates])
    x = pd.to_datetime(estimates.dates[ends - 1]) if estimates.dates is not None else ends
    median = np.array([p.median for p in estimates])
    bounds = np.array([p.credible_interval(level) for p in estimates])

    fig, ax = plt.subplots(figsize=figsize)
    ax.plot(x, median, color="#1f77b4", linewidth=2.0, label="median")
    ax.fill_between(x, bounds[:, 0], bounds[:, 1], color="#1f77b4", alpha=0.25,
                    label=f"{level * 100:g}% credible interval")
    ax.axhline(1.0, color="red", linestyle="--", linewidth=1.0)
    ax.set_xlabel("End of window")
    ax.set_ylabel("R")
    ax.set_ylim(bottom=0)
    ax.grid(alpha=0.25)
    ax.legend(loc="upper right", fontsize="small")
    return _save(fig, save_path)


# ---------- projections ----------

def plot_projections(
    ensemble: ProjectionEnsemble,
    save_path: PathLike = "figs/projections.png",
    observed: Optional[IncidenceSeries] = None,
    quantiles: Tuple[float, float] = (0.025, 0.975),
    overlay_trajectories: int = 0,
    figsize: Tuple[int, int] = (10, 5),
) -> Path:
    """Projected incidence: mean, quantile ribbon and (optionally) observed data."""
    dates = pd.to_datetime(ensemble.dates)
    fig, ax = plt.subplots(figsize=figsize)

    if observed is not None:
        ax.bar(pd.to_datetime(observed.dates), observed.counts, width=0.9 * observed.interval,
               color="#7f8fa6", label="observed")

    if ensemble.n_days:
        if overlay_trajectories:
            k = min(int(overlay_trajectories), ensemble.n_sim)
            ax.plot(dates, ensemble.values[:, :k], color=(0.3, 0.3, 0.3, 0.35), linewidth=0.9)
        q_lo, q_hi = ensemble.quantiles(quantiles)
        ax.fill_between(dates, q_lo, q_hi, color="#1f77b4", alpha=0.25,
                        label=f"{quantiles[0] * 100:g}-{quantiles[1] * 100:g}%")
        ax.plot(dates, ensemble.mean(), color="#1f77b4", linewidth=2.0, label="mean")

    ax.set_xlabel("Date")
    ax.set_ylabel("Incidence")
    ax.set_title(f"Projections ({ensemble.n_sim} trajectories)")
    ax.grid(alpha=0.25)
    ax.legend(loc="upper left", fontsize="small")
    fig.autofmt_xdate()
    return _save(fig, save_path)
