"""
Online Tuning of Sampler Step Sizes.

A tuner observes proposals in fixed-length windows and, when a window closes,
adjusts the scale (step size) the sampler reads from TunerState.scale.

- VanillaTuner: never changes the scale; optionally logs window acceptance rates
- AcceptanceRateTuner: multiplicative logistic nudging toward a target rate
- DualAveragingTuner: Nesterov dual averaging on log(scale) (Hoffman & Gelman 2014)

Samplers count proposals in TunerState while stepping; the job calls
maybe_adapt() after each step and freeze() once burn-in ends.
"""

import math
from dataclasses import dataclass

from ..error_handling import ConfigurationError, check_positive
from ..settings import (
    DEFAULT_SCORE_K,
    DEFAULT_TUNE_PERIOD,
    DUAL_AVERAGING_GAMMA,
    DUAL_AVERAGING_KAPPA,
    DUAL_AVERAGING_T0,
)

import logging
logger = logging.getLogger('mcjob')

# Floor on tuned scales; keeps scale > 0 through long runs of rejections
MIN_SCALE = 1e-10


@dataclass
class TunerState:
    """
    Per-job tuning counters and the current scale.

    Invariants: proposed <= totproposed, scale > 0.
    """
    proposed: int = 0
    totproposed: int = DEFAULT_TUNE_PERIOD
    accepted: int = 0
    scale: float = 1.0
    accept_stat: float = 0.0  # Sum of acceptance probabilities in the window

    @property
    def rate(self) -> float:
        """Empirical acceptance rate of the current window."""
        return self.accepted / self.proposed if self.proposed else math.nan

    def count(self, accepted: bool, accept_prob=None) -> None:
        self.proposed += 1
        if accepted:
            self.accepted += 1
        self.accept_stat += float(accepted) if accept_prob is None else float(accept_prob)

    def reset_window(self, period: int) -> None:
        self.proposed = 0
        self.accepted = 0
        self.accept_stat = 0.0
        self.totproposed = period


@dataclass
class DualAveragingTunerState(TunerState):
    """TunerState plus the dual averaging accumulators."""
    mu: float = 0.0
    h_bar: float = 0.0
    log_scale_bar: float = 0.0
    iteration: int = 0


@dataclass(frozen=True)
class VanillaTuner:
    """
    Tuner that never changes the scale.

    Fields:
        period: Number of proposals per window
        verbose: Log the acceptance rate of each window
        adapt_after_burnin: Keep adapting after burn-in (breaks the Markov
                            property of the kept samples; for exploration only)
    """
    period: int = DEFAULT_TUNE_PERIOD
    verbose: bool = False
    adapt_after_burnin: bool = False

    def __post_init__(self):
        if int(self.period) != self.period or self.period < 1:
            raise ConfigurationError(f"{type(self).__name__}: period must be an integer >= 1, got {self.period}")

    def initialize_state(self, initial_scale) -> TunerState:
        check_positive(type(self).__name__, 'initial scale', initial_scale)
        return TunerState(totproposed=self.period, scale=float(initial_scale))

    def observe(self, tune: TunerState, accepted: bool, accept_prob=None) -> None:
        tune.count(accepted, accept_prob)

    def maybe_adapt(self, tune: TunerState, adapt: bool = True) -> bool:
        """
        Close the window once it is full.

        Args:
            tune: Tuner state to update in place
            adapt: Apply the tuning policy (False after burn-in: counters only)

        Returns:
            True if a window closed
        """
        if tune.proposed < tune.totproposed:
            return False
        rate = tune.rate
        if adapt:
            self.adapt(tune)
        if self.verbose:
            logger.info(f"  Acceptance rate over last {tune.proposed} proposals: {rate:.1%}, scale={tune.scale:.4g}")
        else:
            logger.debug(f"Window closed: rate={rate:.3f}, scale={tune.scale:.4g}")
        tune.reset_window(self.period)
        return True

    def adapt(self, tune: TunerState) -> None:
        pass

    def freeze(self, tune: TunerState) -> None:
        """Called once when burn-in ends and tuning stops."""
        pass

    def reset_state(self, tune: TunerState) -> None:
        tune.reset_window(self.period)


@dataclass(frozen=True)
class AcceptanceRateTuner(VanillaTuner):
    """
    Multiplicatively nudges the scale toward a target acceptance rate.

    At the end of each window: scale *= 2 / (1 + exp(-k * (rate - target_rate))).
    The factor is 1 at the target, above 1 when accepting too often and below 1
    when accepting too rarely.
    """
    target_rate: float = 0.234
    k: float = DEFAULT_SCORE_K

    def __post_init__(self):
        super().__post_init__()
        if not 0 < self.target_rate < 1:
            raise ConfigurationError(f"AcceptanceRateTuner: target_rate must be in (0, 1), got {self.target_rate}")
        check_positive('AcceptanceRateTuner', 'k', self.k)

    def score(self, rate: float) -> float:
        return 2.0 / (1.0 + math.exp(-self.k * (rate - self.target_rate)))

    def adapt(self, tune: TunerState) -> None:
        tune.scale = max(tune.scale * self.score(tune.rate), MIN_SCALE)


@dataclass(frozen=True)
class DualAveragingTuner(VanillaTuner):
    """
    Dual averaging step-size adaptation.

    Uses the mean acceptance statistic of each window (the Metropolis
    probability, or the tree average for NUTS). When burn-in ends the scale is
    fixed at the averaged iterate exp(log_scale_bar).
    """
    period: int = 1
    target_rate: float = 0.8
    gamma: float = DUAL_AVERAGING_GAMMA
    t0: float = DUAL_AVERAGING_T0
    kappa: float = DUAL_AVERAGING_KAPPA

    def __post_init__(self):
        super().__post_init__()
        if not 0 < self.target_rate < 1:
            raise ConfigurationError(f"DualAveragingTuner: target_rate must be in (0, 1), got {self.target_rate}")
        check_positive('DualAveragingTuner', 'gamma', self.gamma)
        if not 0.5 < self.kappa <= 1:
            raise ConfigurationError(f"DualAveragingTuner: kappa must be in (0.5, 1], got {self.kappa}")

    def initialize_state(self, initial_scale) -> DualAveragingTunerState:
        check_positive(type(self).__name__, 'initial scale', initial_scale)
        log_scale = math.log(float(initial_scale))
        return DualAveragingTunerState(
            totproposed=self.period,
            scale=float(initial_scale),
            mu=math.log(10.0) + log_scale,
            log_scale_bar=log_scale,
        )

    def adapt(self, tune: DualAveragingTunerState) -> None:
        tune.iteration += 1
        m = tune.iteration
        stat = tune.accept_stat / tune.proposed

        eta = 1.0 / (m + self.t0)
        tune.h_bar = (1.0 - eta) * tune.h_bar + eta * (self.target_rate - stat)
        log_scale = tune.mu - (math.sqrt(m) / self.gamma) * tune.h_bar
        m_kappa = m ** (-self.kappa)
        tune.log_scale_bar = m_kappa * log_scale + (1.0 - m_kappa) * tune.log_scale_bar
        tune.scale = max(math.exp(log_scale), MIN_SCALE)

    def freeze(self, tune: DualAveragingTunerState) -> None:
        tune.scale = max(math.exp(tune.log_scale_bar), MIN_SCALE)
        logger.info(f"Dual averaging finished: scale fixed at {tune.scale:.4g}")
