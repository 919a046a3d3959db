"""
Common utilities for the sampler families.

This module provides the numerics shared by several samplers so that each
sampler module only spells out its own proposal and acceptance rule.

Functions:
    safe_logtarget: Map non-finite log-targets to -inf (outside the support)
    evaluate: Fill a ParameterState's log-target (and gradient) at its value
    reset_value: Common body of every sampler's reset()
    metropolis_test: Metropolis-Hastings accept/reject from a log ratio
    record_step: Count a proposal in the tuner state and write diagnostics
    sample_momentum: Draw p ~ N(0, diag(mass))
    kinetic_energy: 0.5 * p' M^-1 p for a diagonal mass matrix
    leapfrog: One leapfrog step of Hamiltonian dynamics
    inverse_mass: Resolve an optional diagonal mass into its inverse
"""

import math

import jax.numpy as jnp
import jax.random as random
import numpy as np

from ..error_handling import ConfigurationError, check_positive
from ..model import as_value


def safe_logtarget(value) -> float:
    """Convert to float, treating NaN and +inf as -inf so they always fail acceptance."""
    value = float(value)
    return value if math.isfinite(value) else -math.inf


def evaluate(pstate, model, gradient=False):
    """
    Evaluate the model at pstate.value and store the results in pstate.

    A candidate whose gradient is not finite gets logtarget = -inf, which
    guarantees its rejection.

    Args:
        pstate: ParameterState to fill in place
        model: LogTargetModel
        gradient: Also evaluate the gradient of the log-target

    Returns:
        The same pstate
    """
    if gradient:
        logtarget, grad = model.logtarget_and_grad(pstate.value)
        pstate.gradlogtarget = grad
        logtarget = safe_logtarget(logtarget)
        if not bool(jnp.all(jnp.isfinite(grad))):
            logtarget = -math.inf
    else:
        logtarget = safe_logtarget(model.logtarget(pstate.value))
    pstate.logtarget = logtarget
    if model.has_loglikelihood:
        pstate.loglikelihood = model.loglikelihood(pstate.value)
    return pstate


def initialize_state(pstate, model, component, gradient=False):
    """Evaluate a fresh state and enforce the initialization invariants."""
    evaluate(pstate, model, gradient=gradient)
    pstate.check_initialized(component)
    pstate.diagnostics = {}
    return pstate


def reset_value(pstate, x, model, tune, tuner, component, gradient=False):
    """
    Move pstate to a new value and restart the tuning window.

    The tuned scale is kept; only the window counters are reset.

    Raises:
        ConfigurationError: If x has a different dimension than pstate
    """
    value = as_value(x)
    if value.shape != pstate.value.shape:
        raise ConfigurationError(
            f"{component}: reset value has shape {value.shape}, expected {pstate.value.shape}"
        )
    pstate.value = value
    pstate.gradlogtarget = None
    initialize_state(pstate, model, component, gradient=gradient)
    tuner.reset_state(tune)
    return pstate


def metropolis_test(key, log_ratio):
    """
    Metropolis-Hastings accept/reject.

    Args:
        key: JAX random key for the uniform draw
        log_ratio: log target ratio plus log Hastings correction

    Returns:
        accepted: bool
        accept_prob: min(1, exp(log_ratio)), 0 for non-finite ratios
    """
    log_ratio = float(log_ratio)
    if not math.isfinite(log_ratio):
        return False, 0.0
    accept_prob = 1.0 if log_ratio >= 0 else math.exp(log_ratio)
    log_u = math.log(float(random.uniform(key)))
    return log_u < log_ratio, accept_prob


def record_step(pstate, tune, accepted, accept_prob, **diagnostics):
    """Count one proposal in the tuner state and store per-step diagnostics."""
    tune.count(accepted, accept_prob)
    pstate.diagnostics['accept'] = bool(accepted)
    pstate.diagnostics['accept_prob'] = float(accept_prob)
    pstate.diagnostics.update(diagnostics)


def inverse_mass(mass_diag, size, component):
    """
    Resolve an optional diagonal mass matrix.

    Returns:
        (sqrt_mass, inv_mass) arrays of length size
    """
    if mass_diag is None:
        return jnp.ones(size), jnp.ones(size)
    mass = np.asarray(mass_diag, dtype=float)
    if mass.shape != (size,):
        raise ConfigurationError(
            f"{component}: mass_diag has length {mass.size}, expected {size}"
        )
    check_positive(component, 'mass_diag', mass)
    return jnp.sqrt(jnp.asarray(mass)), jnp.asarray(1.0 / mass)


def sample_momentum(key, sqrt_mass):
    return sqrt_mass * random.normal(key, shape=sqrt_mass.shape)


def kinetic_energy(p, inv_mass) -> float:
    return 0.5 * float(jnp.sum(inv_mass * p ** 2))


def leapfrog(x, p, grad, step_size, inv_mass, model):
    """
    One leapfrog step of Hamiltonian dynamics with U = -logtarget.

    Args:
        x: Position
        p: Momentum
        grad: Gradient of the log-target at x
        step_size: Signed step size (negative integrates backward in time)
        inv_mass: Diagonal of M^-1
        model: LogTargetModel

    Returns:
        (x, p, logtarget, grad) at the new position; logtarget is -inf when the
        trajectory left the region where the model is finite
    """
    p = p + 0.5 * step_size * grad
    x = x + step_size * inv_mass * p
    logtarget, grad = model.logtarget_and_grad(x)
    logtarget = safe_logtarget(logtarget)
    if not bool(jnp.all(jnp.isfinite(grad))):
        return x, p, -math.inf, grad
    p = p + 0.5 * step_size * grad
    return x, p, logtarget, grad
