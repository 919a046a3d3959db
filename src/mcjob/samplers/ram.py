"""
Robust Adaptive Metropolis (RAM)

Random-walk Metropolis whose proposal shape is learned while sampling
(Vihola 2012). The sampler keeps a lower-triangular factor S and proposes

    x' = x + scale * S u,  u ~ N(0, I)

After every step S is updated so that the acceptance probability alpha moves
toward target_rate:

    S S' <- S (I + eta_n (alpha - target_rate) u u' / ||u||^2) S'
    eta_n = min(1, d * n^(-eta_exponent))

The step sizes eta_n vanish, so the adaptation diminishes and the chain keeps
the right stationary distribution. The update matrix stays positive definite
because eta_n <= 1 and alpha - target_rate > -1.

Hastings ratio: 0 (symmetric proposal for a fixed S)
"""

from dataclasses import dataclass, field

import jax.numpy as jnp
import jax.random as random

from ..error_handling import ConfigurationError, check_positive
from ..mcmc.types import ParameterState
from ..settings import SamplerType
from .common import evaluate, initialize_state, metropolis_test, record_step, reset_value


@dataclass(frozen=True)
class RAM:
    """
    Robust adaptive Metropolis configuration.

    Fields:
        scale: Initial step size; S starts at the identity
        target_rate: Acceptance rate the shape adaptation aims for
        eta_exponent: Decay exponent of the adaptation step sizes, in (0.5, 1]
    """
    scale: float = 1.0
    target_rate: float = 0.234
    eta_exponent: float = 2.0 / 3.0
    sampler_type: SamplerType = field(default=SamplerType.RAM, init=False)

    def __post_init__(self):
        check_positive('RAM', 'scale', self.scale)
        if not 0 < self.target_rate < 1:
            raise ConfigurationError(f"RAM: target_rate must be in (0, 1), got {self.target_rate}")
        if not 0.5 < self.eta_exponent <= 1:
            raise ConfigurationError(f"RAM: eta_exponent must be in (0.5, 1], got {self.eta_exponent}")

    @property
    def initial_scale(self) -> float:
        return float(self.scale)


@dataclass
class RAMState:
    pstate: ParameterState  # Proposal buffer
    chol: jnp.ndarray  # Learned lower-triangular proposal factor S
    count: int = 0  # Number of adaptation steps taken
    direction: jnp.ndarray = None  # u of the last proposal

    # Adapted fields stored in checkpoints
    persistent_fields = ('chol', 'count')


def adapt_shape(chol, direction, accept_prob, target_rate, eta):
    """One RAM update of the lower-triangular factor S."""
    d = direction.shape[0]
    outer = jnp.outer(direction, direction) / jnp.sum(direction ** 2)
    middle = jnp.eye(d) + eta * (accept_prob - target_rate) * outer
    return jnp.linalg.cholesky(chol @ middle @ chol.T)


def initialize(pstate, model, sampler):
    return initialize_state(pstate, model, 'RAM')


def create_working_state(pstate, sampler, tuner):
    return RAMState(pstate=ParameterState(value=pstate.value), chol=jnp.eye(pstate.size))


def step(key, pstate, sstate, tune, sampler, model):
    proposal_key, accept_key = random.split(key)

    sstate.direction = random.normal(proposal_key, shape=pstate.value.shape)
    sstate.pstate.value = pstate.value + tune.scale * (sstate.chol @ sstate.direction)
    evaluate(sstate.pstate, model)

    log_ratio = sstate.pstate.logtarget - pstate.logtarget
    accepted, accept_prob = metropolis_test(accept_key, log_ratio)
    if accepted:
        pstate.assign(sstate.pstate)

    sstate.count += 1
    eta = min(1.0, pstate.size * sstate.count ** (-sampler.eta_exponent))
    sstate.chol = adapt_shape(sstate.chol, sstate.direction, accept_prob, sampler.target_rate, eta)

    record_step(pstate, tune, accepted, accept_prob)
    return accepted


def reset(pstate, sstate, tune, x, model, sampler, tuner):
    # The learned shape is kept, like the tuned scale
    return reset_value(pstate, x, model, tune, tuner, 'RAM')
