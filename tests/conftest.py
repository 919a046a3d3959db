"""
Pytest configuration and shared fixtures for mcjob tests.
"""

# Import mcjob first so its JAX settings (double precision) apply
import mcjob  # noqa: F401

import pytest
import numpy as np
import jax.random as random

from mcjob.registry import _REGISTRY
from mcjob import test_models


@pytest.fixture
def rng_seed():
    """Default RNG seed for reproducible tests."""
    return 42


@pytest.fixture
def key(rng_seed):
    return random.PRNGKey(rng_seed)


@pytest.fixture
def std_normal():
    return test_models.std_normal_model()


@pytest.fixture
def gaussian_2d():
    return test_models.correlated_gaussian_model()


@pytest.fixture
def half_normal():
    return test_models.half_normal_model()


@pytest.fixture
def register_test_models():
    """
    Fixture to register test models and clean up after test.

    Usage:
        def test_something(register_test_models):
            # Test models are now registered
            ...
    """
    original = dict(_REGISTRY)
    _REGISTRY.clear()
    test_models.register_test_models()

    yield  # Run the test

    _REGISTRY.clear()
    _REGISTRY.update(original)


def chain_values(job, n):
    """Consume n steps and return the visited values as an (n, d) array."""
    values = []
    for _ in range(n):
        job.consume()
        values.append(np.asarray(job.pstate.value))
    return np.array(values)


@pytest.fixture
def consume_values():
    return chain_values
