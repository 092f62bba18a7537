#!/usr/bin/env python3
# src/transmissibility/runner.py: command line runner

import argparse
import logging
import sys
import time

import numpy as np
import pandas as pd

from .estimate import EstimationConfig, estimate_r, sliding_windows, weekly_windows
from .growth import find_peak, fit_log_linear, r_to_R
from .incidence import IncidenceSeries
from .serial_interval import MetropolisGammaSampler, ShiftedGamma, fit_discrete_gamma, lags_from_pairs
from .simulate import ProjectionConfig, project_batch
from .simulate.project_paths import DEFAULT_SI_MEAN, DEFAULT_SI_SD
from . import plotting

logger = logging.getLogger(__name__)


def _add_si_args(p):
    p.add_argument("--si-mean", type=float, default=DEFAULT_SI_MEAN, metavar="DAYS",
                   help=f"Serial interval mean (default: {DEFAULT_SI_MEAN})")
    p.add_argument("--si-sd", type=float, default=DEFAULT_SI_SD, metavar="DAYS",
                   help=f"Serial interval standard deviation (default: {DEFAULT_SI_SD})")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Renewal-equation transmissibility runner")
    p.add_argument("--log-level", default="INFO",
                   choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                   help="Logging level (default: INFO)")
    sub = p.add_subparsers(dest="cmd", required=True)

    # ---------- estimate ----------
    est_p = sub.add_parser("estimate", help="Estimate R over time windows")
    est_p.add_argument("--incidence", required=True, metavar="PATH",
                       help="Incidence CSV with columns date,count")
    _add_si_args(est_p)
    est_p.add_argument("--window-width", type=int, default=7, metavar="DAYS",
                       help="Window width in days (default: 7)")
    est_p.add_argument("--sliding", action="store_true",
                       help="Overlapping sliding windows instead of consecutive blocks")
    est_p.add_argument("--mean-prior", type=float, default=5.0)
    est_p.add_argument("--std-prior", type=float, default=5.0)
    est_p.add_argument("--out", default="data/r_estimates.csv", metavar="PATH",
                       help="Output CSV path (default: data/r_estimates.csv)")
    est_p.add_argument("--plot", default=None, metavar="PNG")

    # ---------- fit-si ----------
    si_p = sub.add_parser("fit-si", help="Fit a discretised gamma serial interval to onset pairs")
    si_p.add_argument("--pairs", required=True, metavar="PATH",
                      help="CSV with columns infector_onset,infectee_onset")
    si_p.add_argument("--w", type=float, default=0.0,
                      help="Discretisation offset in [0, 1]; 1 puts no mass at lag 0 (default: 0)")
    si_p.add_argument("--mcmc", action="store_true", help="Also run the MCMC sampler and report R-hat")
    si_p.add_argument("--n-iter", type=int, default=10000)
    si_p.add_argument("--seed", type=int, default=42)
    si_p.add_argument("--plot", default=None, metavar="PNG")

    # ---------- project ----------
    proj_p = sub.add_parser("project", help="Project incidence forward")
    proj_p.add_argument("--incidence", required=True, metavar="PATH")
    _add_si_args(proj_p)
    r_group = proj_p.add_mutually_exclusive_group(required=True)
    r_group.add_argument("--R", type=float, help="Fixed reproduction number")
    r_group.add_argument("--estimate-last", type=int, default=None, metavar="DAYS",
                         help="Sample R from the posterior over the last DAYS days")
    proj_p.add_argument("-N", "--n-sim", type=int, default=1000)
    proj_p.add_argument("--n-days", type=int, default=14)
    proj_p.add_argument("--resample-daily", action="store_true",
                        help="Draw a new R every day instead of once per trajectory")
    proj_p.add_argument("--negbin-size", type=float, default=None,
                        help="Negative binomial dispersion (default: Poisson)")
    proj_p.add_argument("--seed", type=int, default=42)
    proj_p.add_argument("--out", default="data/projections.csv", metavar="PATH")
    proj_p.add_argument("--summary", default=None, metavar="PATH")
    proj_p.add_argument("--plot", default=None, metavar="PNG")

    # ---------- growth ----------
    gr_p = sub.add_parser("growth", help="Log-linear growth fit")
    gr_p.add_argument("--incidence", required=True, metavar="PATH")
    gr_p.add_argument("--split", default=None, metavar="DATE",
                      help="Split the fit at DATE, or 'peak' for the date of highest incidence")
    _add_si_args(gr_p)
    gr_p.add_argument("--plot", default=None, metavar="PNG")

    return p


def run_estimate(args):
    series = IncidenceSeries.from_csv(args.incidence)
    si = ShiftedGamma(args.si_mean, args.si_sd)
    windows = (sliding_windows if args.sliding else weekly_windows)(len(series), args.window_width)
    config = EstimationConfig(mean_prior=args.mean_prior, std_prior=args.std_prior)
    estimates = estimate_r(series, si, windows=windows, config=config)
    estimates.to_csv(args.out)
    last = estimates.last()
    lo, hi = last.credible_interval(0.95)
    print(f"Last window [{last.t_start}, {last.t_end}]: R median {last.median:.2f} (95% CrI {lo:.2f}-{hi:.2f})")
    for w in estimates.warnings:
        print("Warning:", w)
    if args.plot:
        plotting.plot_r_estimates(estimates, save_path=args.plot)


def run_fit_si(args):
    pairs = pd.read_csv(args.pairs)
    missing = [c for c in ("infector_onset", "infectee_onset") if c not in pairs.columns]
    if missing:
        raise ValueError(f"Pairs CSV missing columns: {missing}")
    lags = lags_from_pairs(pairs["infector_onset"], pairs["infectee_onset"])
    fit = fit_discrete_gamma(lags, w=args.w)
    print(f"{lags.size} pairs: mean {fit.mu:.2f}, sd {fit.sd:.2f}, cv {fit.cv:.3f}, "
          f"loglik {fit.loglik:.2f}, converged {fit.converged}")
    if args.mcmc:
        sampler = MetropolisGammaSampler(lags, w=args.w, n_iter=args.n_iter,
                                         burnin=args.n_iter // 3, seed=args.seed)
        draws = sampler.draws()
        means = draws[:, 0] * draws[:, 1]
        print(f"MCMC: R-hat {np.round(sampler.rhat, 3).tolist()}, converged {sampler.converged()}, "
              f"mean 95% CrI {np.quantile(means, 0.025):.2f}-{np.quantile(means, 0.975):.2f}")
    if args.plot:
        plotting.plot_serial_interval(fit.distribution, save_path=args.plot, observed_lags=lags)


def run_project(args):
    series = IncidenceSeries.from_csv(args.incidence)
    if args.R is not None:
        R = args.R
    else:
        n = len(series)
        window = (max(2, n - args.estimate_last + 1), n)
        estimates = estimate_r(series, ShiftedGamma(args.si_mean, args.si_sd), windows=[window])
        R = estimates.last()
        print(f"R sampled from the posterior over days {window[0]}-{window[1]} (median {R.median:.2f})")

    cfg = ProjectionConfig(
        n_sim=args.n_sim,
        n_days=args.n_days,
        mean_serial=args.si_mean,
        std_serial=args.si_sd,
        R_fix_within=not args.resample_daily,
        model="negbin" if args.negbin_size else "poisson",
        size=args.negbin_size,
        seed=args.seed,
        out_path=args.out,
        summary_path=args.summary,
    )
    ensemble, csv_path = project_batch(series, R, cfg)
    total = ensemble.values.sum(axis=0)
    print(f"Projection done -> {csv_path}: median total {np.median(total):.0f} "
          f"(95% {np.quantile(total, 0.025):.0f}-{np.quantile(total, 0.975):.0f})")
    if args.plot:
        plotting.plot_projections(ensemble, save_path=args.plot, observed=series)


def run_growth(args):
    series = IncidenceSeries.from_csv(args.incidence)
    split = args.split
    if split == "peak":
        split = find_peak(series)
    fits = fit_log_linear(series, split=split)
    si = ShiftedGamma(args.si_mean, args.si_sd)
    for label, f in zip(("before", "after"), fits if isinstance(fits, tuple) else (fits,)):
        R = r_to_R(f.r, si)
        name = label if isinstance(fits, tuple) else "fit"
        if f.r > 0:
            timing = f"doubling time {f.doubling_time:.1f}"
        elif f.r < 0:
            timing = f"halving time {f.halving_time:.1f}"
        else:
            timing = "no growth"
        print(f"{name}: r {f.r:.4f} ({f.r_ci[0]:.4f}, {f.r_ci[1]:.4f}), {timing}, R {R:.2f}")
    if args.plot:
        plotting.plot_incidence(series, save_path=args.plot, fit=fits)


COMMANDS = {
    "estimate": run_estimate,
    "fit-si": run_fit_si,
    "project": run_project,
    "growth": run_growth,
}


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    t0 = time.perf_counter()
    try:
        COMMANDS[args.cmd](args)
    except (ValueError, FileNotFoundError) as exc:
        logger.error("%s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    print(f"Done in {time.perf_counter() - t0:.2f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
