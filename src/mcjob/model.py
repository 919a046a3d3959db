"""
Model Collaborator - log-target evaluation for the samplers.

The engine never inspects a model's structure. It only needs:
- logtarget(x) -> float
- logtarget_and_grad(x) -> (float, gradient)
- metric(x) -> positive-definite matrix (manifold samplers only)
- riemannian_hamiltonian(x, p) and its gradient in x (RMHMC only)

LogTargetModel builds all of these from a single jax.numpy log-density using
JAX autodiff and compiles each once. Evaluations are deterministic given x,
which detailed balance requires.
"""

import jax
import jax.numpy as jnp
import jax.scipy.linalg
import numpy as np

from .error_handling import ConfigurationError


class LogTargetModel:
    """
    Wraps a log-density function of a flat parameter vector.

    Args:
        logtarget_fn: fn(x) -> scalar, written with jax.numpy
        name: Model name used in logs and chain provenance
        metric_fn: Optional fn(x) -> (d, d) metric tensor for manifold samplers.
                   Defaults to the negative Hessian of logtarget_fn.
        loglikelihood_fn: Optional fn(x) -> scalar, stored alongside each state
        jit: Compile the evaluation functions with jax.jit (default True)
    """

    def __init__(self, logtarget_fn, name=None, metric_fn=None, loglikelihood_fn=None, jit=True):
        self.name = name or getattr(logtarget_fn, '__name__', 'model')
        self.logtarget_fn = logtarget_fn
        self.loglikelihood_fn = loglikelihood_fn

        if metric_fn is None:
            hessian_fn = jax.hessian(logtarget_fn)

            def metric_fn(x):
                return -hessian_fn(x)

        self.metric_fn = metric_fn

        def riemannian_hamiltonian(x, p):
            # H(x, p) = -L(x) + 0.5 log|G(x)| + 0.5 p' G(x)^-1 p  (constant dropped)
            chol = jnp.linalg.cholesky(metric_fn(x))
            log_det = 2.0 * jnp.sum(jnp.log(jnp.diag(chol)))
            y = jax.scipy.linalg.solve_triangular(chol, p, lower=True)
            return -logtarget_fn(x) + 0.5 * log_det + 0.5 * jnp.sum(y ** 2)

        compile_fn = jax.jit if jit else (lambda fn: fn)
        self._logtarget = compile_fn(logtarget_fn)
        self._logtarget_and_grad = compile_fn(jax.value_and_grad(logtarget_fn))
        self._metric = compile_fn(metric_fn)
        self._hamiltonian = compile_fn(riemannian_hamiltonian)
        self._hamiltonian_grad = compile_fn(jax.grad(riemannian_hamiltonian, argnums=0))
        self._loglikelihood = compile_fn(loglikelihood_fn) if loglikelihood_fn is not None else None

    @property
    def has_loglikelihood(self):
        return self._loglikelihood is not None

    def logtarget(self, x):
        return float(self._logtarget(x))

    def logtarget_and_grad(self, x):
        value, grad = self._logtarget_and_grad(x)
        return float(value), grad

    def loglikelihood(self, x):
        if self._loglikelihood is None:
            return None
        return float(self._loglikelihood(x))

    def metric(self, x):
        return self._metric(x)

    def riemannian_hamiltonian(self, x, p):
        return float(self._hamiltonian(x, p))

    def riemannian_hamiltonian_grad(self, x, p):
        return self._hamiltonian_grad(x, p)

    def __repr__(self):
        return f"LogTargetModel(name={self.name!r})"


def as_model(model_or_fn):
    """Accept a LogTargetModel or a bare log-density function."""
    if isinstance(model_or_fn, LogTargetModel):
        return model_or_fn
    if callable(model_or_fn):
        return LogTargetModel(model_or_fn)
    raise TypeError(f"Expected LogTargetModel or callable, got {type(model_or_fn).__name__}")


def as_value(x):
    """Convert an initial value to a 1-D float JAX array."""
    arr = np.atleast_1d(np.asarray(x, dtype=float))
    if arr.ndim != 1:
        raise ConfigurationError(f"Parameter value must be a scalar or 1-D vector, got shape {arr.shape}")
    return jnp.asarray(arr)
