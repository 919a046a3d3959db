"""
Independent Metropolis-Hastings Sampler

Proposals are drawn from a fixed Gaussian that ignores the current state.

Proposal: x' = mean + scale * L z,  z ~ N(0, I),  L L' = cov

Hastings ratio:
    log q(x) - log q(x') = -0.5 * [||L^-1 (x - mean)||^2 - ||L^-1 (x' - mean)||^2] / scale^2

The chain mixes well only when the proposal covers the target's tails.
"""

from dataclasses import dataclass, field
from typing import Tuple

import jax.numpy as jnp
import jax.random as random
import jax.scipy.linalg
import numpy as np

from ..error_handling import ConfigurationError
from ..mcmc.types import ParameterState
from ..settings import SamplerType
from .common import evaluate, initialize_state, metropolis_test, record_step, reset_value


@dataclass(frozen=True)
class IndependentMetropolis:
    """
    Independent Metropolis-Hastings configuration.

    Fields:
        mean: Proposal mean, length d
        cov: Proposal covariance, (d, d) symmetric positive definite
    """
    mean: Tuple[float, ...]
    cov: Tuple[Tuple[float, ...], ...]
    sampler_type: SamplerType = field(default=SamplerType.IMH, init=False)

    def __post_init__(self):
        mean = np.atleast_1d(np.asarray(self.mean, dtype=float))
        cov = np.atleast_2d(np.asarray(self.cov, dtype=float))
        if mean.ndim != 1 or cov.shape != (mean.size, mean.size):
            raise ConfigurationError(
                f"IndependentMetropolis: cov shape {cov.shape} does not match mean length {mean.size}"
            )
        if not np.allclose(cov, cov.T) or np.any(np.linalg.eigvalsh(cov) <= 0):
            raise ConfigurationError("IndependentMetropolis: cov must be symmetric positive definite")
        object.__setattr__(self, 'mean', tuple(mean.tolist()))
        object.__setattr__(self, 'cov', tuple(tuple(row) for row in cov.tolist()))

    @property
    def initial_scale(self) -> float:
        return 1.0


@dataclass
class IMHState:
    pstate: ParameterState  # Proposal buffer
    mean: jnp.ndarray
    chol: jnp.ndarray  # Lower Cholesky factor of cov


def _log_proposal_density(x, sstate, scale):
    """Unnormalized log q(x); the normalizer cancels in the ratio."""
    y = jax.scipy.linalg.solve_triangular(sstate.chol, x - sstate.mean, lower=True)
    return -0.5 * float(jnp.sum(y ** 2)) / scale ** 2


def initialize(pstate, model, sampler):
    return initialize_state(pstate, model, 'IndependentMetropolis')


def create_working_state(pstate, sampler, tuner):
    if len(sampler.mean) != pstate.size:
        raise ConfigurationError(
            f"IndependentMetropolis: proposal mean has length {len(sampler.mean)}, expected {pstate.size}"
        )
    return IMHState(
        pstate=ParameterState(value=pstate.value),
        mean=jnp.asarray(sampler.mean),
        chol=jnp.linalg.cholesky(jnp.asarray(sampler.cov)),
    )


def step(key, pstate, sstate, tune, sampler, model):
    proposal_key, accept_key = random.split(key)

    z = random.normal(proposal_key, shape=pstate.value.shape)
    sstate.pstate.value = sstate.mean + tune.scale * (sstate.chol @ z)
    evaluate(sstate.pstate, model)

    log_hastings = (_log_proposal_density(pstate.value, sstate, tune.scale)
                    - _log_proposal_density(sstate.pstate.value, sstate, tune.scale))
    log_ratio = sstate.pstate.logtarget - pstate.logtarget + log_hastings
    accepted, accept_prob = metropolis_test(accept_key, log_ratio)
    if accepted:
        pstate.assign(sstate.pstate)

    record_step(pstate, tune, accepted, accept_prob)
    return accepted


def reset(pstate, sstate, tune, x, model, sampler, tuner):
    return reset_value(pstate, x, model, tune, tuner, 'IndependentMetropolis')
