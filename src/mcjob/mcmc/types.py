"""
MCMC Data Structures and Type Definitions.

This module contains the core data structures used by jobs and samplers:
- ParameterState: Mutable per-iteration snapshot of the sampled parameter
- MCRange: Immutable iteration schedule (steps, burn-in, thinning)
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import jax.numpy as jnp
import numpy as np

from ..error_handling import ConfigurationError, NonFiniteInitialStateError
from ..model import as_value


@dataclass
class ParameterState:
    """
    Current value of a continuous parameter plus cached evaluations at it.

    Samplers mutate a ParameterState in place every iteration. Fields that a
    sampler does not need (gradient, log-likelihood) stay None.

    Fields:
        value: 1-D parameter vector
        logtarget: Log-target at value (nan until evaluated)
        gradlogtarget: Gradient of the log-target at value, same shape as value
        loglikelihood: Log-likelihood at value, when the model provides one
        diagnostics: Per-step statistics written by the sampler (e.g. 'accept')
    """
    value: jnp.ndarray
    logtarget: float = math.nan
    gradlogtarget: Optional[jnp.ndarray] = None
    loglikelihood: Optional[float] = None
    diagnostics: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_value(cls, x):
        return cls(value=as_value(x))

    @property
    def size(self) -> int:
        return int(self.value.shape[0])

    def copy(self) -> 'ParameterState':
        return ParameterState(
            value=self.value,
            logtarget=self.logtarget,
            gradlogtarget=self.gradlogtarget,
            loglikelihood=self.loglikelihood,
            diagnostics=dict(self.diagnostics),
        )

    def assign(self, other: 'ParameterState') -> None:
        """Overwrite this state's fields with another state's (in place)."""
        self.value = other.value
        self.logtarget = other.logtarget
        self.gradlogtarget = other.gradlogtarget
        self.loglikelihood = other.loglikelihood

    def check_initialized(self, component: str) -> None:
        """
        Enforce the post-initialization invariants.

        Raises:
            NonFiniteInitialStateError: If the log-target is not finite
            ConfigurationError: If the gradient shape does not match the value
        """
        if not math.isfinite(self.logtarget):
            raise NonFiniteInitialStateError(
                f"{component}: log-target not finite ({self.logtarget}) at initial value "
                f"{np.asarray(self.value).tolist()} - initial value out of support"
            )
        if self.gradlogtarget is not None and self.gradlogtarget.shape != self.value.shape:
            raise ConfigurationError(
                f"{component}: gradient shape {self.gradlogtarget.shape} does not match "
                f"value shape {self.value.shape}"
            )


@dataclass(frozen=True)
class MCRange:
    """
    Iteration schedule of a job.

    Iterations are numbered 1..nsteps. The first `burnin` iterations are
    discarded; after that every `thinning`-th iteration is persisted, starting
    with iteration burnin + 1.
    """
    nsteps: int
    burnin: int = 0
    thinning: int = 1

    def __post_init__(self):
        errors = []
        if int(self.nsteps) != self.nsteps or self.nsteps < 1:
            errors.append(f"nsteps must be an integer >= 1, got {self.nsteps}")
        if int(self.burnin) != self.burnin or self.burnin < 0:
            errors.append(f"burnin must be an integer >= 0, got {self.burnin}")
        elif self.burnin >= self.nsteps:
            errors.append(f"burnin ({self.burnin}) must be < nsteps ({self.nsteps})")
        if int(self.thinning) != self.thinning or self.thinning < 1:
            errors.append(f"thinning must be an integer >= 1, got {self.thinning}")
        if errors:
            raise ConfigurationError("MCRange: " + "; ".join(errors))

    @property
    def postrange(self) -> range:
        """1-based iteration numbers whose state is persisted."""
        return range(self.burnin + 1, self.nsteps + 1, self.thinning)

    @property
    def npoststeps(self) -> int:
        return len(self.postrange)

    def is_saved(self, i: int) -> bool:
        return i in self.postrange

    def is_burnin(self, i: int) -> bool:
        return i <= self.burnin

    def __str__(self):
        return f"MCRange(nsteps={self.nsteps}, burnin={self.burnin}, thinning={self.thinning})"
