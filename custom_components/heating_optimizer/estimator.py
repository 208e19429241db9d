from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from .const import (
    AGGRESSIVE_MULTIPLIER,
    CONVERGENCE_WEIGHT,
    DAMPING_FACTOR,
    DEFAULT_BASE_LEARNING_RATE,
    DEFAULT_LOWER_BOUND,
    DEFAULT_PERFORMANCE_FACTOR,
    DEFAULT_UPPER_BOUND,
    HIGH_MEAN_THRESHOLD,
    HIGH_STABILITY_THRESHOLD,
    LOW_MEAN_THRESHOLD,
    LOW_STABILITY_THRESHOLD,
    OPTIMAL_HIGH,
    OPTIMAL_LOW,
    OPTIMAL_STABILITY_THRESHOLD,
)


class Regime(str, Enum):
    UNDERSUPPLIED = "undersupplied"
    OVERREACTING = "overreacting"
    OPTIMAL = "optimal"
    DEFAULT = "default"
    FLAT_SIGNAL = "flat_signal"


class FlatWindowPolicy(str, Enum):
    """How a window of identical values is interpreted.

    STABLE treats it as a perfectly steady system (variance 0, stability 1).
    HOLD treats it as a probable stuck sensor and leaves the factor alone.
    """

    STABLE = "stable"
    HOLD = "hold"


@dataclass(frozen=True)
class EstimatorConfig:
    base_learning_rate: float = DEFAULT_BASE_LEARNING_RATE
    lower_bound: float = DEFAULT_LOWER_BOUND
    upper_bound: float = DEFAULT_UPPER_BOUND

    # Regime A: spread low and unstable -> system is sluggish
    low_mean_threshold: float = LOW_MEAN_THRESHOLD
    low_stability_threshold: float = LOW_STABILITY_THRESHOLD
    aggressive_multiplier: float = AGGRESSIVE_MULTIPLIER

    # Regime B: spread high and stable -> system overreacts
    high_mean_threshold: float = HIGH_MEAN_THRESHOLD
    high_stability_threshold: float = HIGH_STABILITY_THRESHOLD
    damping_factor: float = DAMPING_FACTOR

    # Regime C: spread in the optimal band and stable
    optimal_low: float = OPTIMAL_LOW
    optimal_high: float = OPTIMAL_HIGH
    optimal_stability_threshold: float = OPTIMAL_STABILITY_THRESHOLD
    convergence_weight: float = CONVERGENCE_WEIGHT

    flat_window_policy: FlatWindowPolicy = FlatWindowPolicy.STABLE

    def __post_init__(self) -> None:
        if self.base_learning_rate <= 0:
            raise ValueError(f"base_learning_rate must be > 0, got {self.base_learning_rate}")
        if self.lower_bound > self.upper_bound:
            raise ValueError(
                f"lower_bound {self.lower_bound} is greater than upper_bound {self.upper_bound}"
            )
        if self.low_mean_threshold <= 0:
            raise ValueError(f"low_mean_threshold must be > 0, got {self.low_mean_threshold}")
        if not 0.0 <= self.convergence_weight <= 1.0:
            raise ValueError(f"convergence_weight must be within [0, 1], got {self.convergence_weight}")


@dataclass(frozen=True)
class EstimationResult:
    stability: float
    factor: float
    regime: Regime
    mean: float
    variance: float
    flat_window: bool = False


def window_mean(window: Sequence[float]) -> float:
    return sum(window) / len(window)


def window_variance(window: Sequence[float], mean: float | None = None) -> float:
    """Population variance (mean of squared deviations)."""
    if mean is None:
        mean = window_mean(window)
    return sum((x - mean) ** 2 for x in window) / len(window)


def stability_from_variance(variance: float) -> float:
    """Map variance 0 -> 1.0, approaching 0 as the variance grows."""
    return 1.0 / (1.0 + variance)


class AdaptiveControllerEstimator:
    """Learns the controller performance factor from the flow/return spread.

    The estimator is a pure function of (previous factor, window): it keeps no
    state between calls. Persisting the factor and serializing
    read-compute-write cycles is up to the caller.
    """

    def __init__(self, config: EstimatorConfig | None = None) -> None:
        self.config = config or EstimatorConfig()

    def _clamp(self, factor: float) -> float:
        return max(self.config.lower_bound, min(self.config.upper_bound, factor))

    def estimate(
        self, window: Sequence[float], previous_factor: float = DEFAULT_PERFORMANCE_FACTOR
    ) -> EstimationResult:
        if not window:
            raise ValueError("window must contain at least one sample")

        cfg = self.config
        # Compare the values, not the variance: the mean of a constant
        # window like [0.1, 0.1, 0.1] is off by one ulp.
        flat = len(window) > 1 and min(window) == max(window)
        mean = window_mean(window)
        variance = 0.0 if flat else window_variance(window, mean)
        stability = stability_from_variance(variance)

        if flat and cfg.flat_window_policy is FlatWindowPolicy.HOLD:
            return EstimationResult(
                stability=stability,
                factor=self._clamp(previous_factor),
                regime=Regime.FLAT_SIGNAL,
                mean=mean,
                variance=variance,
                flat_window=True,
            )

        # Order matters: the regimes overlap and the first match wins.
        factor = previous_factor
        if mean < cfg.low_mean_threshold and stability < cfg.low_stability_threshold:
            deficit = (cfg.low_mean_threshold - mean) / cfg.low_mean_threshold
            factor += deficit * cfg.base_learning_rate * cfg.aggressive_multiplier
            regime = Regime.UNDERSUPPLIED
        elif mean > cfg.high_mean_threshold and stability > cfg.high_stability_threshold:
            factor *= cfg.damping_factor
            regime = Regime.OVERREACTING
        elif cfg.optimal_low <= mean <= cfg.optimal_high and stability > cfg.optimal_stability_threshold:
            factor = factor * cfg.convergence_weight + (1.0 - cfg.convergence_weight) * 1.0
            regime = Regime.OPTIMAL
        else:
            factor += (1.0 - factor) * cfg.base_learning_rate * stability
            regime = Regime.DEFAULT

        return EstimationResult(
            stability=stability,
            factor=self._clamp(factor),
            regime=regime,
            mean=mean,
            variance=variance,
            flat_window=flat,
        )
