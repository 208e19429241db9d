"""Tests for the adaptive controller performance estimator."""
import random

import pytest

from custom_components.heating_optimizer.estimator import (
    AdaptiveControllerEstimator,
    EstimatorConfig,
    FlatWindowPolicy,
    Regime,
    stability_from_variance,
    window_variance,
)


@pytest.fixture
def estimator():
    return AdaptiveControllerEstimator()


class TestStability:
    def test_constant_window_is_perfectly_stable(self, estimator):
        res = estimator.estimate([9.0] * 6, 1.0)
        assert res.stability == 1.0
        assert res.variance == 0.0

    def test_stability_in_unit_interval(self, estimator):
        rng = random.Random(42)
        for _ in range(200):
            n = rng.randint(1, 12)
            window = [rng.uniform(0.0, 40.0) for _ in range(n)]
            res = estimator.estimate(window, rng.uniform(0.3, 1.7))
            assert 0.0 < res.stability <= 1.0

    def test_population_variance(self):
        assert window_variance([2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]) == pytest.approx(4.0)
        assert stability_from_variance(4.0) == pytest.approx(0.2)

    def test_single_sample_window(self, estimator):
        res = estimator.estimate([10.0], 1.0)
        assert res.stability == 1.0
        assert res.flat_window is False

    def test_empty_window_rejected(self, estimator):
        with pytest.raises(ValueError):
            estimator.estimate([], 1.0)


class TestRegimes:
    def test_flat_low_spread_falls_to_default(self, estimator):
        """Mean 5 is low, but stability 1.0 is not below 0.4."""
        res = estimator.estimate([5, 5, 5, 5, 5, 5], 1.0)
        assert res.regime is Regime.DEFAULT
        assert res.factor == pytest.approx(1.0)

    def test_overreacting_damps_factor(self, estimator):
        res = estimator.estimate([17.8, 18.2, 18.0, 17.9, 18.1, 18.0], 1.2)
        assert res.mean == pytest.approx(18.0)
        assert res.stability > 0.6
        assert res.regime is Regime.OVERREACTING
        assert res.factor == pytest.approx(1.14)

    def test_undersupplied_raises_factor(self, estimator):
        # mean 3.5, variance 6.25 -> stability ~0.138
        window = [1.0, 6.0, 1.0, 6.0]
        res = estimator.estimate(window, 1.0)
        assert res.regime is Regime.UNDERSUPPLIED
        expected = 1.0 + ((7.0 - 3.5) / 7.0) * 0.02 * 2.0
        assert res.factor == pytest.approx(expected)

    def test_optimal_band_converges_slowly(self, estimator):
        res = estimator.estimate([10.0, 10.2, 9.8, 10.0], 1.5)
        assert res.regime is Regime.OPTIMAL
        assert res.factor == pytest.approx(1.5 * 0.99 + 0.01)

    def test_default_convergence_scaled_by_stability(self, estimator):
        # mean 13.5 sits between the optimal band and the overreacting threshold
        window = [12.5, 14.5]
        res = estimator.estimate(window, 0.5)
        assert res.regime is Regime.DEFAULT
        assert res.factor == pytest.approx(0.5 + 0.5 * 0.02 * res.stability)

    def test_first_match_wins(self):
        """A window matching both the undersupplied and optimal regimes picks undersupplied."""
        cfg = EstimatorConfig(
            low_mean_threshold=20.0,
            low_stability_threshold=0.9,
            optimal_low=8.0,
            optimal_high=12.0,
            optimal_stability_threshold=0.1,
        )
        est = AdaptiveControllerEstimator(cfg)
        # mean 10, variance 1 -> stability 0.5
        res = est.estimate([9.0, 11.0], 1.0)
        assert res.stability == pytest.approx(0.5)
        assert res.regime is Regime.UNDERSUPPLIED


class TestBounds:
    @pytest.mark.parametrize("previous", [0.3, 1.7, -5.0, 10.0])
    def test_factor_clamped(self, estimator, previous):
        for window in ([0.0] * 6, [0.0, 50.0, 0.0, 50.0], [30.0] * 6, [10.0] * 6):
            res = estimator.estimate(window, previous)
            assert 0.3 <= res.factor <= 1.7

    def test_undersupplied_at_upper_bound_stays_at_bound(self, estimator):
        res = estimator.estimate([0.0, 6.0, 0.0, 6.0], 1.7)
        assert res.regime is Regime.UNDERSUPPLIED
        assert res.factor == 1.7

    def test_custom_bounds(self):
        est = AdaptiveControllerEstimator(EstimatorConfig(lower_bound=0.8, upper_bound=1.2))
        res = est.estimate([18.0] * 6, 0.8)
        assert res.regime is Regime.OVERREACTING
        assert res.factor == 0.8

    def test_invalid_config(self):
        with pytest.raises(ValueError):
            EstimatorConfig(base_learning_rate=0.0)
        with pytest.raises(ValueError):
            EstimatorConfig(lower_bound=1.5, upper_bound=1.0)


class TestFlatWindowPolicy:
    def test_stable_policy_marks_flat_window(self, estimator):
        res = estimator.estimate([18.0] * 6, 1.2)
        assert res.flat_window is True
        assert res.regime is Regime.OVERREACTING

    def test_hold_policy_keeps_factor(self):
        est = AdaptiveControllerEstimator(EstimatorConfig(flat_window_policy=FlatWindowPolicy.HOLD))
        res = est.estimate([18.0] * 6, 1.2)
        assert res.regime is Regime.FLAT_SIGNAL
        assert res.factor == 1.2
        assert res.stability == 1.0

    def test_hold_policy_still_clamps(self):
        est = AdaptiveControllerEstimator(EstimatorConfig(flat_window_policy=FlatWindowPolicy.HOLD))
        assert est.estimate([4.0] * 3, 2.5).factor == 1.7

    def test_hold_policy_ignores_varying_window(self):
        est = AdaptiveControllerEstimator(EstimatorConfig(flat_window_policy=FlatWindowPolicy.HOLD))
        res = est.estimate([17.9, 18.1, 18.0], 1.2)
        assert res.regime is Regime.OVERREACTING


def test_estimate_is_idempotent(estimator):
    window = [6.5, 7.2, 8.1, 5.9, 7.7]
    assert estimator.estimate(window, 1.1) == estimator.estimate(window, 1.1)


@pytest.mark.parametrize("value", [0.1, 5.3, 7.7, 12.1, 13.3, 16.1, 18.3])
@pytest.mark.parametrize("size", [2, 3, 6])
def test_constant_window_with_inexact_value_is_flat(value, size):
    est = AdaptiveControllerEstimator(EstimatorConfig(flat_window_policy=FlatWindowPolicy.HOLD))
    res = est.estimate([value] * size, 1.2)
    assert res.flat_window
    assert res.variance == 0.0
    assert res.regime is Regime.FLAT_SIGNAL
    assert res.factor == 1.2


def test_constant_inexact_window_under_stable_policy():
    res = AdaptiveControllerEstimator().estimate([13.3] * 6, 1.2)
    assert res.flat_window
    assert res.stability == 1.0
    assert res.regime is Regime.DEFAULT
