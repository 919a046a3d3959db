"""
Test Models - Targets with Analytical Answers

This module contains small log-densities used for testing the samplers. Each
has a known mean and covariance (or a known support), allowing us to verify
sampler correctness.

DO NOT import this module in production sampling code.
These models are for testing/validation only.
"""

import jax.numpy as jnp
import numpy as np

from .model import LogTargetModel
from .registry import list_models, register_model


# ============================================================================
# STANDARD NORMAL
# ============================================================================

def std_normal_logtarget(x):
    """N(0, I) in any dimension."""
    return -0.5 * jnp.sum(x ** 2)


def std_normal_model():
    return LogTargetModel(std_normal_logtarget, name='std_normal')


# ============================================================================
# CORRELATED GAUSSIAN - 2 Parameters
# ============================================================================

GAUSSIAN_MEAN = np.array([1.0, -1.0])
GAUSSIAN_COV = np.array([[1.0, 0.6], [0.6, 2.0]])


def correlated_gaussian_model():
    """
    Bivariate normal N(GAUSSIAN_MEAN, GAUSSIAN_COV).

    The metric (negative Hessian) is constant and equals the precision matrix,
    so manifold samplers reduce to their Euclidean counterparts here.
    """
    mean = jnp.asarray(GAUSSIAN_MEAN)
    precision = jnp.asarray(np.linalg.inv(GAUSSIAN_COV))

    def logtarget(x):
        diff = x - mean
        return -0.5 * diff @ precision @ diff

    return LogTargetModel(logtarget, name='correlated_gaussian')


# ============================================================================
# NORMAL-NORMAL (POOLED) - Known posterior of a mean
# ============================================================================

def normal_normal_model(y, prior_mean=0.0, prior_sd=10.0, sigma=1.0):
    """
    Posterior of mu with y_i ~ N(mu, sigma^2) and mu ~ N(prior_mean, prior_sd^2).

    Analytical posterior:
        precision = 1 / prior_sd^2 + n / sigma^2
        mean = (prior_mean / prior_sd^2 + sum(y) / sigma^2) / precision
    """
    y = jnp.asarray(y, dtype=float)

    def loglikelihood(x):
        return -0.5 * jnp.sum((y - x[0]) ** 2) / sigma ** 2

    def logtarget(x):
        return loglikelihood(x) - 0.5 * (x[0] - prior_mean) ** 2 / prior_sd ** 2

    return LogTargetModel(logtarget, name='normal_normal', loglikelihood_fn=loglikelihood)


def normal_normal_analytical_posterior(y, prior_mean=0.0, prior_sd=10.0, sigma=1.0):
    """Returns (mean, sd) of the posterior of mu."""
    y = np.asarray(y, dtype=float)
    precision = 1.0 / prior_sd ** 2 + y.size / sigma ** 2
    mean = (prior_mean / prior_sd ** 2 + y.sum() / sigma ** 2) / precision
    return mean, 1.0 / np.sqrt(precision)


# ============================================================================
# HALF-NORMAL - Bounded support
# ============================================================================

def half_normal_logtarget(x):
    """|N(0, 1)| on x > 0; -inf outside the support."""
    return jnp.where(jnp.all(x > 0), -0.5 * jnp.sum(x ** 2), -jnp.inf)


def half_normal_model():
    return LogTargetModel(half_normal_logtarget, name='half_normal')


# ============================================================================
# BANANA - Curved 2-D target
# ============================================================================

def banana_logtarget(x):
    return -0.5 * (x[0] ** 2 + 4.0 * (x[1] - x[0] ** 2) ** 2)


def banana_model():
    return LogTargetModel(banana_logtarget, name='banana')


def register_test_models():
    """Register the fixed-parameter test models (skips names already present)."""
    builders = {
        'std_normal': std_normal_model,
        'correlated_gaussian': correlated_gaussian_model,
        'half_normal': half_normal_model,
        'banana': banana_model,
    }
    registered = set(list_models())
    for name, build in builders.items():
        if name not in registered:
            register_model(name, build())
