"""
Metropolis-Adjusted Langevin Algorithm (MALA)

Gradient-informed proposal following the discretized Langevin diffusion.

Proposal: x' = x + (eps^2 / 2) * grad L(x) + eps * z,  z ~ N(0, I)
where eps is the tuned step size (TunerState.scale).

Hastings ratio:
    log q(x|x') - log q(x'|x)
    = -||x - mu(x')||^2 / (2 eps^2) + ||x' - mu(x)||^2 / (2 eps^2)
with mu(y) = y + (eps^2 / 2) * grad L(y).

Reference: Roberts & Tweedie (1996), optimal acceptance ~0.574.
"""

from dataclasses import dataclass, field
from typing import Optional

import jax.numpy as jnp
import jax.random as random

from ..error_handling import check_positive
from ..mcmc.types import ParameterState
from ..settings import SamplerType
from .common import evaluate, initialize_state, metropolis_test, record_step, reset_value


@dataclass(frozen=True)
class MALA:
    scale: float = 1.0
    sampler_type: SamplerType = field(default=SamplerType.MALA, init=False)

    def __post_init__(self):
        check_positive('MALA', 'scale', self.scale)

    @property
    def initial_scale(self) -> float:
        return float(self.scale)


@dataclass
class MALAState:
    pstate: ParameterState  # Proposal buffer
    mean_forward: Optional[jnp.ndarray] = None  # mu(x)
    mean_reverse: Optional[jnp.ndarray] = None  # mu(x')


def langevin_mean(x, grad, eps):
    return x + 0.5 * eps ** 2 * grad


def initialize(pstate, model, sampler):
    return initialize_state(pstate, model, 'MALA', gradient=True)


def create_working_state(pstate, sampler, tuner):
    return MALAState(pstate=ParameterState(value=pstate.value))


def step(key, pstate, sstate, tune, sampler, model):
    proposal_key, accept_key = random.split(key)
    eps = tune.scale

    sstate.mean_forward = langevin_mean(pstate.value, pstate.gradlogtarget, eps)
    z = random.normal(proposal_key, shape=pstate.value.shape)
    sstate.pstate.value = sstate.mean_forward + eps * z
    evaluate(sstate.pstate, model, gradient=True)

    sstate.mean_reverse = langevin_mean(sstate.pstate.value, sstate.pstate.gradlogtarget, eps)
    log_q_forward = -float(jnp.sum((sstate.pstate.value - sstate.mean_forward) ** 2)) / (2 * eps ** 2)
    log_q_reverse = -float(jnp.sum((pstate.value - sstate.mean_reverse) ** 2)) / (2 * eps ** 2)

    log_ratio = sstate.pstate.logtarget - pstate.logtarget + log_q_reverse - log_q_forward
    accepted, accept_prob = metropolis_test(accept_key, log_ratio)
    if accepted:
        pstate.assign(sstate.pstate)

    record_step(pstate, tune, accepted, accept_prob)
    return accepted


def reset(pstate, sstate, tune, x, model, sampler, tuner):
    return reset_value(pstate, x, model, tune, tuner, 'MALA', gradient=True)
