"""
No-U-Turn Sampler (NUTS)

Efficient NUTS of Hoffman & Gelman (2014), Algorithm 3: the trajectory is
doubled forward or backward in time (direction drawn uniformly) until either
end starts turning back on the other, the tree reaches max_depth, or the
simulation diverges.

Slice variable: log u = -H(x, p0) + log(Uniform(0, 1)), with H = -L + K.
A leaf x' is valid when log u <= -H(x', p'); the trajectory diverges when
log u - (-H(x', p')) > delta_max.

U-turn criterion on the subtree ends (x-, p-), (x+, p+):
    (x+ - x-) . M^-1 p- >= 0  and  (x+ - x-) . M^-1 p+ >= 0

Candidate selection is progressive (biased toward the new subtree at the top
level, uniform within subtrees), which preserves detailed balance. The mean
Metropolis statistic over the tree is recorded as accept_prob and drives dual
averaging.
"""

import math
from collections import namedtuple
from dataclasses import dataclass, field
from typing import Optional, Tuple

import jax.numpy as jnp
import jax.random as random

from ..error_handling import ConfigurationError, check_positive
from ..settings import SamplerType
from .common import (
    initialize_state,
    inverse_mass,
    kinetic_energy,
    leapfrog,
    record_step,
    reset_value,
    sample_momentum,
)


@dataclass(frozen=True)
class NUTS:
    """
    No-U-Turn sampler configuration.

    Fields:
        scale: Initial leapfrog step size
        max_depth: Maximum number of trajectory doublings
        delta_max: Energy error beyond which the trajectory is divergent
        mass_diag: Optional diagonal of the mass matrix
    """
    scale: float = 0.1
    max_depth: int = 10
    delta_max: float = 1000.0
    mass_diag: Optional[Tuple[float, ...]] = None
    sampler_type: SamplerType = field(default=SamplerType.NUTS, init=False)

    def __post_init__(self):
        check_positive('NUTS', 'scale', self.scale)
        check_positive('NUTS', 'delta_max', self.delta_max)
        if int(self.max_depth) != self.max_depth or self.max_depth < 1:
            raise ConfigurationError(f"NUTS: max_depth must be an integer >= 1, got {self.max_depth}")
        if self.mass_diag is not None:
            check_positive('NUTS', 'mass_diag', self.mass_diag)
            object.__setattr__(self, 'mass_diag', tuple(float(m) for m in self.mass_diag))

    @property
    def initial_scale(self) -> float:
        return float(self.scale)


@dataclass
class NUTSState:
    sqrt_mass: jnp.ndarray
    inv_mass: jnp.ndarray
    momentum: Optional[jnp.ndarray] = None
    tree_depth: int = 0
    n_leapfrog: int = 0
    hamiltonian: float = math.nan
    diverged: bool = False


# One end of a trajectory: position, momentum, gradient of the log-target
Edge = namedtuple('Edge', ['x', 'p', 'grad'])

# A point that may become the next state
Candidate = namedtuple('Candidate', ['x', 'logtarget', 'grad'])

# Result of build_tree
Subtree = namedtuple('Subtree', [
    'minus', 'plus', 'candidate', 'n_valid', 'keep_going',
    'alpha_sum', 'n_alpha', 'diverged',
])


def no_uturn(minus, plus, inv_mass) -> bool:
    dx = plus.x - minus.x
    return (float(jnp.dot(dx, inv_mass * minus.p)) >= 0
            and float(jnp.dot(dx, inv_mass * plus.p)) >= 0)


def build_tree(key, edge, log_u, direction, depth, eps, h0, sstate, sampler, model):
    """
    Recursively build a subtree of 2**depth leapfrog steps from edge.

    Args:
        key: JAX random key for candidate selection
        edge: Edge to integrate from
        log_u: Log slice variable
        direction: +1 (forward) or -1 (backward) in time
        depth: Subtree depth
        eps: Step size
        h0: Hamiltonian at the start of the transition
        sstate: NUTSState (leapfrog counter is updated)
        sampler: NUTS config
        model: LogTargetModel

    Returns:
        Subtree
    """
    if depth == 0:
        x, p, logtarget, grad = leapfrog(edge.x, edge.p, edge.grad, direction * eps,
                                         sstate.inv_mass, model)
        sstate.n_leapfrog += 1
        new_edge = Edge(x, p, grad)
        if math.isfinite(logtarget):
            neg_h = logtarget - kinetic_energy(p, sstate.inv_mass)
        else:
            neg_h = -math.inf
        if math.isnan(neg_h):
            neg_h = -math.inf
        n_valid = 1 if log_u <= neg_h else 0
        diverged = log_u - neg_h > sampler.delta_max
        alpha = min(1.0, math.exp(min(0.0, neg_h + h0))) if math.isfinite(neg_h) else 0.0
        return Subtree(new_edge, new_edge, Candidate(x, logtarget, grad), n_valid,
                       not diverged, alpha, 1, diverged)

    first_key, second_key, select_key = random.split(key, 3)
    tree = build_tree(first_key, edge, log_u, direction, depth - 1, eps, h0, sstate, sampler, model)
    if not tree.keep_going:
        return tree

    outer = tree.minus if direction == -1 else tree.plus
    other = build_tree(second_key, outer, log_u, direction, depth - 1, eps, h0, sstate, sampler, model)
    if direction == -1:
        minus, plus = other.minus, tree.plus
    else:
        minus, plus = tree.minus, other.plus

    n_valid = tree.n_valid + other.n_valid
    candidate = tree.candidate
    if n_valid > 0 and float(random.uniform(select_key)) < other.n_valid / n_valid:
        candidate = other.candidate

    keep_going = other.keep_going and no_uturn(minus, plus, sstate.inv_mass)
    return Subtree(minus, plus, candidate, n_valid, keep_going,
                   tree.alpha_sum + other.alpha_sum, tree.n_alpha + other.n_alpha,
                   tree.diverged or other.diverged)


def initialize(pstate, model, sampler):
    return initialize_state(pstate, model, 'NUTS', gradient=True)


def create_working_state(pstate, sampler, tuner):
    sqrt_mass, inv_mass = inverse_mass(sampler.mass_diag, pstate.size, 'NUTS')
    return NUTSState(sqrt_mass=sqrt_mass, inv_mass=inv_mass)


def step(key, pstate, sstate, tune, sampler, model):
    momentum_key, slice_key, key = random.split(key, 3)
    eps = tune.scale

    p0 = sample_momentum(momentum_key, sstate.sqrt_mass)
    sstate.momentum = p0
    sstate.hamiltonian = -pstate.logtarget + kinetic_energy(p0, sstate.inv_mass)
    sstate.n_leapfrog = 0
    sstate.diverged = False
    log_u = -sstate.hamiltonian + math.log(float(random.uniform(slice_key)))

    start = Edge(pstate.value, p0, pstate.gradlogtarget)
    minus = plus = start
    candidate = None
    n_valid = 1
    keep_going = True
    alpha_sum, n_alpha = 0.0, 0
    depth = 0

    while keep_going and depth < sampler.max_depth:
        key, direction_key, tree_key, select_key = random.split(key, 4)
        direction = 1 if float(random.uniform(direction_key)) < 0.5 else -1
        if direction == -1:
            tree = build_tree(tree_key, minus, log_u, -1, depth, eps, sstate.hamiltonian,
                              sstate, sampler, model)
            minus = tree.minus
        else:
            tree = build_tree(tree_key, plus, log_u, 1, depth, eps, sstate.hamiltonian,
                              sstate, sampler, model)
            plus = tree.plus

        alpha_sum += tree.alpha_sum
        n_alpha += tree.n_alpha
        sstate.diverged = sstate.diverged or tree.diverged
        if tree.keep_going and float(random.uniform(select_key)) < tree.n_valid / n_valid:
            candidate = tree.candidate
        n_valid += tree.n_valid
        keep_going = tree.keep_going and no_uturn(minus, plus, sstate.inv_mass)
        depth += 1

    sstate.tree_depth = depth
    accept_prob = alpha_sum / n_alpha if n_alpha else 0.0
    accepted = candidate is not None
    if accepted:
        pstate.value = candidate.x
        pstate.logtarget = candidate.logtarget
        pstate.gradlogtarget = candidate.grad
        if model.has_loglikelihood:
            pstate.loglikelihood = model.loglikelihood(candidate.x)

    record_step(pstate, tune, accepted, accept_prob,
                tree_depth=depth, n_leapfrog=sstate.n_leapfrog,
                diverged=sstate.diverged, hamiltonian=sstate.hamiltonian)
    return accepted


def reset(pstate, sstate, tune, x, model, sampler, tuner):
    return reset_value(pstate, x, model, tune, tuner, 'NUTS', gradient=True)
