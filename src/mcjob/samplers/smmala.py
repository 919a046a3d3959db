"""
Simplified Manifold MALA (SMMALA)

Langevin proposal preconditioned by a position-dependent metric G(x)
(the negative Hessian of the log-target unless the model supplies one).

Proposal: x' ~ N(mu(x), eps^2 G(x)^-1)
    mu(x) = x + (eps^2 / 2) * G(x)^-1 grad L(x)

Because the covariance depends on the position, the Hastings ratio keeps the
log-determinant terms:
    log q(x'|x) = 0.5 log|G(x)| - d log eps - ||C(x)' (x' - mu(x))||^2 / (2 eps^2)
with C(x) C(x)' = G(x).

Reference: Girolami & Calderhead (2011).
"""

import math
from dataclasses import dataclass, field
from typing import Optional

import jax.numpy as jnp
import jax.random as random
import jax.scipy.linalg

from ..error_handling import NonFiniteInitialStateError, check_positive
from ..mcmc.types import ParameterState
from ..settings import SamplerType
from .common import evaluate, initialize_state, metropolis_test, record_step, reset_value


@dataclass(frozen=True)
class SMMALA:
    scale: float = 1.0
    sampler_type: SamplerType = field(default=SamplerType.SMMALA, init=False)

    def __post_init__(self):
        check_positive('SMMALA', 'scale', self.scale)

    @property
    def initial_scale(self) -> float:
        return float(self.scale)


@dataclass
class SMMALAState:
    pstate: ParameterState  # Proposal buffer
    mean_forward: Optional[jnp.ndarray] = None
    mean_reverse: Optional[jnp.ndarray] = None


def manifold_terms(x, grad, model, eps):
    """
    Metric-dependent pieces of the proposal at x.

    Returns:
        mean: mu(x)
        chol: Lower Cholesky factor of G(x) (NaN entries if G is not positive definite)
        half_log_det: 0.5 * log|G(x)|
    """
    chol = jnp.linalg.cholesky(model.metric(x))
    half_log_det = float(jnp.sum(jnp.log(jnp.diag(chol))))
    # G^-1 grad via two triangular solves
    y = jax.scipy.linalg.solve_triangular(chol, grad, lower=True)
    natural_grad = jax.scipy.linalg.solve_triangular(chol.T, y, lower=False)
    return x + 0.5 * eps ** 2 * natural_grad, chol, half_log_det


def log_proposal_density(x_to, mean, chol, half_log_det, eps):
    diff = chol.T @ (x_to - mean)
    return half_log_det - x_to.shape[0] * math.log(eps) - float(jnp.sum(diff ** 2)) / (2 * eps ** 2)


def initialize(pstate, model, sampler):
    initialize_state(pstate, model, 'SMMALA', gradient=True)
    chol = jnp.linalg.cholesky(model.metric(pstate.value))
    if not bool(jnp.all(jnp.isfinite(chol))):
        raise NonFiniteInitialStateError(
            "SMMALA: metric is not positive definite at the initial value"
        )
    return pstate


def create_working_state(pstate, sampler, tuner):
    return SMMALAState(pstate=ParameterState(value=pstate.value))


def step(key, pstate, sstate, tune, sampler, model):
    proposal_key, accept_key = random.split(key)
    eps = tune.scale

    mean_fwd, chol_fwd, half_log_det_fwd = manifold_terms(pstate.value, pstate.gradlogtarget, model, eps)
    sstate.mean_forward = mean_fwd
    z = random.normal(proposal_key, shape=pstate.value.shape)
    # chol' \ z has covariance G^-1
    sstate.pstate.value = mean_fwd + eps * jax.scipy.linalg.solve_triangular(chol_fwd.T, z, lower=False)
    evaluate(sstate.pstate, model, gradient=True)

    log_ratio = -math.inf
    if math.isfinite(sstate.pstate.logtarget):
        mean_rev, chol_rev, half_log_det_rev = manifold_terms(
            sstate.pstate.value, sstate.pstate.gradlogtarget, model, eps)
        sstate.mean_reverse = mean_rev
        log_q_forward = log_proposal_density(sstate.pstate.value, mean_fwd, chol_fwd, half_log_det_fwd, eps)
        log_q_reverse = log_proposal_density(pstate.value, mean_rev, chol_rev, half_log_det_rev, eps)
        log_ratio = sstate.pstate.logtarget - pstate.logtarget + log_q_reverse - log_q_forward

    accepted, accept_prob = metropolis_test(accept_key, log_ratio)
    if accepted:
        pstate.assign(sstate.pstate)

    record_step(pstate, tune, accepted, accept_prob)
    return accepted


def reset(pstate, sstate, tune, x, model, sampler, tuner):
    reset_value(pstate, x, model, tune, tuner, 'SMMALA', gradient=True)
    return initialize(pstate, model, sampler)
