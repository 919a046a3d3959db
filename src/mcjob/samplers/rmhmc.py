"""
Riemannian Manifold Hamiltonian Monte Carlo (RMHMC)

Hamiltonian dynamics on the manifold defined by a position-dependent metric
G(x):
    H(x, p) = -L(x) + 0.5 log|G(x)| + 0.5 p' G(x)^-1 p
Momentum: p ~ N(0, G(x))

The Hamiltonian is not separable, so each step uses the generalized
(implicit) leapfrog integrator, solving the two implicit updates with a fixed
number of fixed-point iterations:
    p(1/2) = p - (eps/2) dH/dx(x, p(1/2))
    x'     = x + (eps/2) [G(x)^-1 + G(x')^-1] p(1/2)
    p'     = p(1/2) - (eps/2) dH/dx(x', p(1/2))

dH/dx comes from JAX autodiff of the model's Hamiltonian.
Acceptance: min(1, exp(H(x, p) - H(x', p'))).

Reference: Girolami & Calderhead (2011).
"""

import math
from dataclasses import dataclass, field
from typing import Optional

import jax.numpy as jnp
import jax.random as random
import jax.scipy.linalg

from ..error_handling import ConfigurationError, NonFiniteInitialStateError, check_positive
from ..mcmc.types import ParameterState
from ..settings import SamplerType
from .common import evaluate, initialize_state, metropolis_test, record_step, reset_value


@dataclass(frozen=True)
class RMHMC:
    """
    Riemannian manifold HMC configuration.

    Fields:
        scale: Initial leapfrog step size
        n_leapfrog: Number of generalized leapfrog steps per transition
        n_fixed_point: Fixed-point iterations for each implicit update
    """
    scale: float = 0.1
    n_leapfrog: int = 6
    n_fixed_point: int = 6
    sampler_type: SamplerType = field(default=SamplerType.RMHMC, init=False)

    def __post_init__(self):
        check_positive('RMHMC', 'scale', self.scale)
        for name in ('n_leapfrog', 'n_fixed_point'):
            value = getattr(self, name)
            if int(value) != value or value < 1:
                raise ConfigurationError(f"RMHMC: {name} must be an integer >= 1, got {value}")

    @property
    def initial_scale(self) -> float:
        return float(self.scale)


@dataclass
class RMHMCState:
    pstate: ParameterState  # Trajectory end point
    momentum: Optional[jnp.ndarray] = None
    n_leapfrog: int = 0
    hamiltonian: float = math.nan


def _solve_metric(model, x, p):
    return jax.scipy.linalg.solve(model.metric(x), p, assume_a='pos')


def generalized_leapfrog(x, p, eps, model, n_fixed_point):
    """One implicit leapfrog step; returns the new (x, p)."""
    p_half = p
    for _ in range(n_fixed_point):
        p_half = p - 0.5 * eps * model.riemannian_hamiltonian_grad(x, p_half)

    velocity = _solve_metric(model, x, p_half)
    x_new = x
    for _ in range(n_fixed_point):
        x_new = x + 0.5 * eps * (velocity + _solve_metric(model, x_new, p_half))

    p_new = p_half - 0.5 * eps * model.riemannian_hamiltonian_grad(x_new, p_half)
    return x_new, p_new


def initialize(pstate, model, sampler):
    initialize_state(pstate, model, 'RMHMC')
    chol = jnp.linalg.cholesky(model.metric(pstate.value))
    if not bool(jnp.all(jnp.isfinite(chol))):
        raise NonFiniteInitialStateError(
            "RMHMC: metric is not positive definite at the initial value"
        )
    return pstate


def create_working_state(pstate, sampler, tuner):
    return RMHMCState(pstate=ParameterState(value=pstate.value))


def step(key, pstate, sstate, tune, sampler, model):
    momentum_key, accept_key = random.split(key)
    eps = tune.scale

    chol = jnp.linalg.cholesky(model.metric(pstate.value))
    p = chol @ random.normal(momentum_key, shape=pstate.value.shape)
    sstate.hamiltonian = model.riemannian_hamiltonian(pstate.value, p)

    x = pstate.value
    n_steps = 0
    finite = True
    for _ in range(sampler.n_leapfrog):
        x, p = generalized_leapfrog(x, p, eps, model, sampler.n_fixed_point)
        n_steps += 1
        if not (bool(jnp.all(jnp.isfinite(x))) and bool(jnp.all(jnp.isfinite(p)))):
            finite = False
            break
    sstate.momentum = p
    sstate.n_leapfrog = n_steps

    log_ratio = -math.inf
    if finite:
        sstate.pstate.value = x
        evaluate(sstate.pstate, model)
        proposed_hamiltonian = model.riemannian_hamiltonian(x, p)
        if math.isfinite(sstate.pstate.logtarget) and math.isfinite(proposed_hamiltonian):
            log_ratio = sstate.hamiltonian - proposed_hamiltonian

    accepted, accept_prob = metropolis_test(accept_key, log_ratio)
    if accepted:
        pstate.assign(sstate.pstate)

    record_step(pstate, tune, accepted, accept_prob,
                n_leapfrog=n_steps, hamiltonian=sstate.hamiltonian)
    return accepted


def reset(pstate, sstate, tune, x, model, sampler, tuner):
    reset_value(pstate, x, model, tune, tuner, 'RMHMC')
    return initialize(pstate, model, sampler)
