"""
Hamiltonian Monte Carlo (HMC)

Simulates Hamiltonian dynamics with potential U(x) = -L(x) and kinetic energy
K(p) = 0.5 * p' M^-1 p for a fixed number of leapfrog steps, then applies a
Metropolis test on the change in total energy H = U + K.

Momentum: p ~ N(0, M), M = diag(mass_diag) (identity by default)
Acceptance: min(1, exp(H(x, p) - H(x', p')))

The leapfrog integrator is volume preserving and reversible, so no Hastings
correction is needed.
"""

import math
from dataclasses import dataclass, field
from typing import Optional, Tuple

import jax.numpy as jnp
import jax.random as random

from ..error_handling import ConfigurationError, check_positive
from ..mcmc.types import ParameterState
from ..settings import SamplerType
from .common import (
    initialize_state,
    inverse_mass,
    kinetic_energy,
    leapfrog,
    metropolis_test,
    record_step,
    reset_value,
    sample_momentum,
)


@dataclass(frozen=True)
class HMC:
    """
    Hamiltonian Monte Carlo configuration.

    Fields:
        scale: Initial leapfrog step size
        n_leapfrog: Number of leapfrog steps per transition
        mass_diag: Optional diagonal of the mass matrix
    """
    scale: float = 0.1
    n_leapfrog: int = 10
    mass_diag: Optional[Tuple[float, ...]] = None
    sampler_type: SamplerType = field(default=SamplerType.HMC, init=False)

    def __post_init__(self):
        check_positive('HMC', 'scale', self.scale)
        if int(self.n_leapfrog) != self.n_leapfrog or self.n_leapfrog < 1:
            raise ConfigurationError(f"HMC: n_leapfrog must be an integer >= 1, got {self.n_leapfrog}")
        if self.mass_diag is not None:
            check_positive('HMC', 'mass_diag', self.mass_diag)
            object.__setattr__(self, 'mass_diag', tuple(float(m) for m in self.mass_diag))

    @property
    def initial_scale(self) -> float:
        return float(self.scale)


@dataclass
class HMCState:
    pstate: ParameterState  # Trajectory end point
    sqrt_mass: jnp.ndarray
    inv_mass: jnp.ndarray
    momentum: Optional[jnp.ndarray] = None
    n_leapfrog: int = 0
    hamiltonian: float = math.nan


def initialize(pstate, model, sampler):
    return initialize_state(pstate, model, 'HMC', gradient=True)


def create_working_state(pstate, sampler, tuner):
    sqrt_mass, inv_mass = inverse_mass(sampler.mass_diag, pstate.size, 'HMC')
    return HMCState(pstate=ParameterState(value=pstate.value), sqrt_mass=sqrt_mass, inv_mass=inv_mass)


def step(key, pstate, sstate, tune, sampler, model):
    momentum_key, accept_key = random.split(key)
    eps = tune.scale

    p = sample_momentum(momentum_key, sstate.sqrt_mass)
    sstate.hamiltonian = -pstate.logtarget + kinetic_energy(p, sstate.inv_mass)

    x, grad, logtarget = pstate.value, pstate.gradlogtarget, pstate.logtarget
    n_steps = 0
    for _ in range(sampler.n_leapfrog):
        x, p, logtarget, grad = leapfrog(x, p, grad, eps, sstate.inv_mass, model)
        n_steps += 1
        if not math.isfinite(logtarget):
            break
    sstate.momentum = p
    sstate.n_leapfrog = n_steps

    if math.isfinite(logtarget):
        proposed_hamiltonian = -logtarget + kinetic_energy(p, sstate.inv_mass)
        log_ratio = sstate.hamiltonian - proposed_hamiltonian
    else:
        log_ratio = -math.inf
    accepted, accept_prob = metropolis_test(accept_key, log_ratio)
    if accepted:
        sstate.pstate.value = x
        sstate.pstate.logtarget = logtarget
        sstate.pstate.gradlogtarget = grad
        if model.has_loglikelihood:
            sstate.pstate.loglikelihood = model.loglikelihood(x)
        pstate.assign(sstate.pstate)

    record_step(pstate, tune, accepted, accept_prob,
                n_leapfrog=n_steps, hamiltonian=sstate.hamiltonian)
    return accepted


def reset(pstate, sstate, tune, x, model, sampler, tuner):
    return reset_value(pstate, x, model, tune, tuner, 'HMC', gradient=True)
