import numpy as np
import pytest
from scipy.integrate import trapezoid
from scipy.stats import gamma

from transmissibility.estimate import (
    EstimationConfig,
    RPosterior,
    estimate_window,
    estimate_window_variable_si,
    log_likelihood,
    total_infectiousness,
)
from transmissibility.incidence import IncidenceSeries
from transmissibility.serial_interval import EmpiricalSerialInterval, ShiftedGamma

COUNTS = [4, 3, 4, 6, 9, 5, 7, 7, 2, 8]


def test_total_infectiousness_by_hand():
    si = EmpiricalSerialInterval([0.0, 0.5, 0.5])
    lam = total_infectiousness([2, 4, 0, 1], si)
    # Lambda_2 = 2*.5, Lambda_3 = 4*.5 + 2*.5, Lambda_4 = 0*.5 + 4*.5
    assert lam.tolist() == pytest.approx([0.0, 1.0, 3.0, 2.0])


def test_lag_zero_mass_is_not_infectious():
    with_zero = EmpiricalSerialInterval([0.3, 0.35, 0.35])
    without = EmpiricalSerialInterval([0.0, 0.35, 0.35])
    counts = [5, 1, 2, 7]
    assert np.allclose(total_infectiousness(counts, with_zero), total_infectiousness(counts, without))


def test_conjugate_posterior_by_hand():
    series = IncidenceSeries([2, 4, 0, 1])
    si = EmpiricalSerialInterval([0.0, 0.5, 0.5])
    post = estimate_window(series, si, (2, 4))
    # Prior Gamma(1, rate 0.2); cases 5, total infectiousness 6
    assert post.shape.tolist() == [6.0]
    assert post.rate.tolist() == pytest.approx([6.2])
    assert post.mean == pytest.approx(6.0 / 6.2)
    assert post.std == pytest.approx(np.sqrt(6.0) / 6.2)
    assert post.median == pytest.approx(gamma.ppf(0.5, a=6.0, scale=1 / 6.2))
    assert not post.is_mixture


def test_scenario_window_posterior():
    series = IncidenceSeries(COUNTS, start="2014-04-01")
    si = ShiftedGamma(8.6, 6.3)
    post = estimate_window(series, si, (2, 10))

    lam_sum = total_infectiousness(COUNTS, si)[1:].sum()
    assert post.shape[0] == 1.0 + 51.0
    assert post.rate[0] == pytest.approx(0.2 + lam_sum)
    assert post.median == pytest.approx(gamma.ppf(0.5, a=52.0, scale=1.0 / (0.2 + lam_sum)))

    lo, hi = post.credible_interval(0.95)
    assert lo < post.median < hi
    levels = sorted(post.quantiles)
    values = [post.quantiles[q] for q in levels]
    assert np.all(np.diff(values) >= 0)
    assert post.warnings == ()


def test_posterior_matches_grid_likelihood_times_prior():
    series = IncidenceSeries(COUNTS)
    si = ShiftedGamma(8.6, 6.3)
    post = estimate_window(series, si, (2, 10))

    grid = np.linspace(1e-3, 10.0, 10001)
    log_post = np.array([log_likelihood(COUNTS, r, si) for r in grid])
    log_post += gamma.logpdf(grid, a=1.0, scale=5.0)
    dens = np.exp(log_post - log_post.max())
    dens /= trapezoid(dens, grid)

    assert trapezoid(grid * dens, grid) == pytest.approx(post.mean, rel=1e-4)


def test_window_bounds_are_checked():
    series = IncidenceSeries(COUNTS)
    si = ShiftedGamma(8.6, 6.3)
    with pytest.raises(ValueError):
        estimate_window(series, si, (1, 5))
    with pytest.raises(ValueError):
        estimate_window(series, si, (6, 5))
    with pytest.raises(ValueError):
        estimate_window(series, si, (2, 11))


def test_all_zero_series_returns_prior():
    series = IncidenceSeries(np.zeros(10, dtype=int))
    post = estimate_window(series, ShiftedGamma(8.6, 6.3), (2, 10))
    assert post.shape[0] == 1.0
    assert post.rate[0] == 0.2
    assert post.median == pytest.approx(gamma.ppf(0.5, a=1.0, scale=5.0))
    assert any("prior" in w for w in post.warnings)


def test_cases_without_earlier_cases_are_flagged():
    series = IncidenceSeries([0, 0, 3])
    post = estimate_window(series, ShiftedGamma(8.6, 6.3), (2, 3))
    assert post.rate[0] == 0.2
    assert any("no earlier cases" in w for w in post.warnings)


def test_early_epidemic_caveat():
    series = IncidenceSeries([1, 0, 0, 1, 0])
    post = estimate_window(series, ShiftedGamma(8.6, 6.3), (2, 5))
    assert post.cv > 0.3
    assert any("too early" in w for w in post.warnings)
    # The estimate is still reported
    assert np.isfinite(post.median)


def test_custom_prior_and_quantiles():
    config = EstimationConfig(mean_prior=2.0, std_prior=1.0, quantiles=(0.9, 0.1, 0.5))
    assert config.prior_shape == pytest.approx(4.0)
    assert config.prior_rate == pytest.approx(2.0)
    assert config.quantiles == (0.1, 0.5, 0.9)

    post = estimate_window(IncidenceSeries(COUNTS), ShiftedGamma(8.6, 6.3), (5, 10), config)
    assert set(post.quantiles) == {0.1, 0.5, 0.9}
    assert "q10" in post.summary()

    with pytest.raises(ValueError):
        EstimationConfig(mean_prior=0.0)
    with pytest.raises(ValueError):
        EstimationConfig(quantiles=(0.0, 0.5))


def test_identical_draws_give_single_si_posterior():
    series = IncidenceSeries(COUNTS)
    si = ShiftedGamma(8.6, 6.3)
    single = estimate_window(series, si, (2, 10))
    mixed = estimate_window_variable_si(series, [si, ShiftedGamma(8.6, 6.3), si], (2, 10))

    assert mixed.is_mixture
    assert mixed.mean == pytest.approx(single.mean)
    assert mixed.std == pytest.approx(single.std)
    for q in single.quantiles:
        assert mixed.quantiles[q] == pytest.approx(single.quantiles[q])


def test_mixture_over_different_draws():
    series = IncidenceSeries(COUNTS)
    draws = [ShiftedGamma(6.0, 3.0), ShiftedGamma(10.0, 5.0)]
    parts = [estimate_window(series, si, (2, 10)) for si in draws]
    mixed = estimate_window_variable_si(series, draws, (2, 10))

    assert mixed.mean == pytest.approx(np.mean([p.mean for p in parts]))
    medians = sorted(p.median for p in parts)
    assert medians[0] <= mixed.median <= medians[1]
    assert float(mixed.cdf(mixed.median)) == pytest.approx(0.5, abs=1e-8)
    # Spread between draws adds to the posterior variance
    assert mixed.std > min(p.std for p in parts)

    with pytest.raises(ValueError):
        estimate_window_variable_si(series, [], (2, 10))


def test_posterior_sampling_and_validation():
    post = RPosterior(2, 8, np.array([20.0]), np.array([10.0]))
    rng = np.random.default_rng(123)
    draws = post.sample(20000, rng=rng)
    assert draws.shape == (20000,)
    assert draws.mean() == pytest.approx(2.0, rel=0.02)

    with pytest.raises(ValueError):
        RPosterior(2, 8, np.array([0.0]), np.array([1.0]))
    with pytest.raises(ValueError):
        post.quantile(1.0)


def test_log_likelihood_is_minus_infinity_when_impossible():
    si = ShiftedGamma(8.6, 6.3)
    assert log_likelihood(COUNTS, 0.0, si) == -np.inf
    assert np.isfinite(log_likelihood(COUNTS, 1.0, si))


def test_weekly_series_is_rejected():
    weekly = IncidenceSeries(COUNTS * 3).aggregate_weekly()
    si = ShiftedGamma(8.6, 6.3)
    with pytest.raises(ValueError, match="daily"):
        estimate_window(weekly, si, (2, 4))
    with pytest.raises(ValueError, match="daily"):
        estimate_window_variable_si(weekly, [si, si], (2, 4))


def test_unconverged_serial_interval_draws_are_flagged():
    series = IncidenceSeries(COUNTS)
    draws = [ShiftedGamma(6.0, 3.0), ShiftedGamma(10.0, 5.0)]
    trusted = estimate_window_variable_si(series, draws, (2, 10))
    doubtful = estimate_window_variable_si(series, draws, (2, 10), si_converged=False)

    assert not any("did not converge" in w for w in trusted.warnings)
    assert any("did not converge" in w for w in doubtful.warnings)
    assert doubtful.mean == pytest.approx(trusted.mean)
