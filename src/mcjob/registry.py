"""
Model Registration System

This module provides a registry of named models so that jobs can be built from
dict configs that refer to a model by name (the 'model_id' key).

Example usage:
    import jax.numpy as jnp
    from mcjob import register_model

    def banana(x):
        return -0.5 * (x[0] ** 2 + (x[1] - x[0] ** 2) ** 2)

    register_model('banana', banana)
"""

from .model import as_model

_REGISTRY = {}


def register_model(name, model):
    """
    Register a model under a unique name.

    Args:
        name: Unique model identifier string (e.g., 'std_normal')
        model: LogTargetModel or a jax.numpy log-density function

    Raises:
        ValueError: If the name is already registered
    """
    if name in _REGISTRY:
        raise ValueError(f"Model '{name}' is already registered")
    model = as_model(model)
    if model.name != name:
        model.name = name
    _REGISTRY[name] = model


def get_model(name):
    """
    Get a registered model by name.

    Raises:
        KeyError: If the model is not registered
    """
    if name not in _REGISTRY:
        available = list(_REGISTRY.keys())
        raise KeyError(f"Unknown model '{name}'. Available: {available}")
    return _REGISTRY[name]


def list_models():
    """List all registered model names."""
    return list(_REGISTRY.keys())


def clear_registry():
    """
    Clear all registered models. Primarily for testing.
    """
    _REGISTRY.clear()
