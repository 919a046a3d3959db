"""
Random-Walk Metropolis Sampler

Symmetric Gaussian random walk centered on the current state.

Proposal: x' = x + scale * s ⊙ z,  z ~ N(0, I)
where:
    - scale is the tuned step size (TunerState.scale)
    - s is the optional per-dimension proposal_scale (default all ones)

Hastings ratio: 0 (symmetric proposal, q(x'|x) = q(x|x'))
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

import jax.numpy as jnp
import jax.random as random
import numpy as np

from ..error_handling import ConfigurationError, check_positive
from ..mcmc.types import ParameterState
from ..settings import SamplerType
from .common import evaluate, initialize_state, metropolis_test, record_step, reset_value


@dataclass(frozen=True)
class RandomWalkMetropolis:
    """
    Random-walk Metropolis configuration.

    Fields:
        scale: Initial step size (tuned during burn-in by the job's tuner)
        proposal_scale: Optional per-dimension multipliers of the step
    """
    scale: float = 1.0
    proposal_scale: Optional[Tuple[float, ...]] = None
    sampler_type: SamplerType = field(default=SamplerType.RWM, init=False)

    def __post_init__(self):
        check_positive('RandomWalkMetropolis', 'scale', self.scale)
        if self.proposal_scale is not None:
            check_positive('RandomWalkMetropolis', 'proposal_scale', self.proposal_scale)
            object.__setattr__(
                self, 'proposal_scale',
                tuple(float(v) for v in np.atleast_1d(self.proposal_scale)),
            )

    @property
    def initial_scale(self) -> float:
        return float(self.scale)


@dataclass
class RWMState:
    pstate: ParameterState  # Proposal buffer
    step_scale: jnp.ndarray  # Per-dimension multipliers


def initialize(pstate, model, sampler):
    return initialize_state(pstate, model, 'RandomWalkMetropolis')


def create_working_state(pstate, sampler, tuner):
    if sampler.proposal_scale is None:
        step_scale = jnp.ones(pstate.size)
    elif len(sampler.proposal_scale) != pstate.size:
        raise ConfigurationError(
            f"RandomWalkMetropolis: proposal_scale has length {len(sampler.proposal_scale)}, "
            f"expected {pstate.size}"
        )
    else:
        step_scale = jnp.asarray(sampler.proposal_scale)
    return RWMState(pstate=ParameterState(value=pstate.value), step_scale=step_scale)


def step(key, pstate, sstate, tune, sampler, model):
    proposal_key, accept_key = random.split(key)

    noise = random.normal(proposal_key, shape=pstate.value.shape)
    sstate.pstate.value = pstate.value + tune.scale * sstate.step_scale * noise
    evaluate(sstate.pstate, model)

    log_ratio = sstate.pstate.logtarget - pstate.logtarget
    accepted, accept_prob = metropolis_test(accept_key, log_ratio)
    if accepted:
        pstate.assign(sstate.pstate)

    record_step(pstate, tune, accepted, accept_prob)
    return accepted


def reset(pstate, sstate, tune, x, model, sampler, tuner):
    return reset_value(pstate, x, model, tune, tuner, 'RandomWalkMetropolis')
