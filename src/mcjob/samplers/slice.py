"""
Slice Sampler

Coordinate-wise univariate slice sampling (Neal 2003). For each coordinate k:

1. Draw the slice height: log y = L(x) - e,  e ~ Exp(1)
2. Place a bracket [l, r] of width w_k uniformly at random around x_k
3. Stepping out (optional): widen each end by w_k while L at that end is
   still >= log y. With max_stepouts = m the m expansions are split at random
   between the two ends (J = floor(m U), K = m - 1 - J).
4. Shrinkage: draw x'_k ~ U(l, r); accept when L(x') >= log y, otherwise
   move the end on the far side of x'_k to x'_k and try again.

The bracket always contains the current x_k, so shrinkage terminates. A
non-finite log-target at a candidate counts as outside the slice. Every
transition is accepted; n_evaluations counts log-target evaluations.

Widths are multiplied by the tuned scale (1 unless a tuner changes it).
"""

import math
from dataclasses import dataclass, field
from typing import Optional, Tuple

import jax.numpy as jnp
import jax.random as random
import numpy as np

from ..error_handling import ConfigurationError, check_positive
from ..mcmc.types import ParameterState
from ..settings import SamplerType
from .common import evaluate, initialize_state, record_step, reset_value


@dataclass(frozen=True)
class SliceSampler:
    """
    Slice sampler configuration.

    Fields:
        widths: Initial bracket width per coordinate (a single width is
                broadcast to every coordinate)
        stepout: Widen the initial bracket by stepping out
        max_stepouts: Cap on the number of step-out expansions per coordinate
                      (None: unlimited)
    """
    widths: Tuple[float, ...] = (1.0,)
    stepout: bool = True
    max_stepouts: Optional[int] = None
    sampler_type: SamplerType = field(default=SamplerType.SLICE, init=False)

    def __post_init__(self):
        check_positive('SliceSampler', 'widths', self.widths)
        object.__setattr__(self, 'widths', tuple(float(w) for w in np.atleast_1d(self.widths)))
        if self.max_stepouts is not None:
            if int(self.max_stepouts) != self.max_stepouts or self.max_stepouts < 1:
                raise ConfigurationError(
                    f"SliceSampler: max_stepouts must be an integer >= 1, got {self.max_stepouts}"
                )

    @property
    def initial_scale(self) -> float:
        return 1.0


@dataclass
class SliceState:
    lstate: ParameterState  # Left end of the bracket
    rstate: ParameterState  # Right end of the bracket
    primestate: ParameterState  # Current candidate
    widths: np.ndarray
    loguprime: float = math.nan  # Log slice height
    runiform: float = math.nan  # Position of x_k inside the initial bracket
    n_evaluations: int = 0


def _evaluate_at(state, x, k, t, model, sstate):
    """Set coordinate k of x to t in state and evaluate the log-target there."""
    state.value = x.at[k].set(t)
    evaluate(state, model)
    sstate.n_evaluations += 1
    return state.logtarget


def initialize(pstate, model, sampler):
    return initialize_state(pstate, model, 'SliceSampler')


def create_working_state(pstate, sampler, tuner):
    n_widths = len(sampler.widths)
    if n_widths == 1:
        widths = np.full(pstate.size, sampler.widths[0])
    elif n_widths == pstate.size:
        widths = np.asarray(sampler.widths)
    else:
        raise ConfigurationError(
            f"SliceSampler: got {n_widths} widths for a {pstate.size}-dimensional parameter"
        )
    return SliceState(
        lstate=ParameterState(value=pstate.value),
        rstate=ParameterState(value=pstate.value),
        primestate=ParameterState(value=pstate.value),
        widths=widths,
    )


def step(key, pstate, sstate, tune, sampler, model):
    sstate.n_evaluations = 0

    for k in range(pstate.size):
        key, height_key, position_key, split_key = random.split(key, 4)
        x = pstate.value
        x_k = float(x[k])
        w = float(sstate.widths[k]) * tune.scale

        sstate.loguprime = pstate.logtarget - float(random.exponential(height_key))
        sstate.runiform = float(random.uniform(position_key))
        left = x_k - sstate.runiform * w
        right = left + w

        if sampler.stepout:
            if sampler.max_stepouts is None:
                n_left = n_right = math.inf
            else:
                n_left = math.floor(sampler.max_stepouts * float(random.uniform(split_key)))
                n_right = sampler.max_stepouts - 1 - n_left
            while n_left > 0 and _evaluate_at(sstate.lstate, x, k, left, model, sstate) >= sstate.loguprime:
                left -= w
                n_left -= 1
            while n_right > 0 and _evaluate_at(sstate.rstate, x, k, right, model, sstate) >= sstate.loguprime:
                right += w
                n_right -= 1
        sstate.lstate.value = x.at[k].set(left)
        sstate.rstate.value = x.at[k].set(right)

        while True:
            key, draw_key = random.split(key)
            candidate = left + float(random.uniform(draw_key)) * (right - left)
            logtarget = _evaluate_at(sstate.primestate, x, k, candidate, model, sstate)
            if logtarget >= sstate.loguprime:
                break
            if candidate > x_k:
                right = candidate
                sstate.rstate.value = sstate.primestate.value
            else:
                left = candidate
                sstate.lstate.value = sstate.primestate.value

        pstate.assign(sstate.primestate)

    record_step(pstate, tune, True, 1.0, n_evaluations=sstate.n_evaluations)
    return True


def reset(pstate, sstate, tune, x, model, sampler, tuner):
    return reset_value(pstate, x, model, tune, tuner, 'SliceSampler')
