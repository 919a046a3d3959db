"""
Error Handling and Validation Utilities for MCMC Jobs

This module defines the exception taxonomy raised by the engine, validation of
dict job configurations, and diagnostic checks run on finished chains.

Configuration and initialization errors are fatal and abort job construction.
A non-finite log-target met during a transition is never raised: samplers
treat it as a rejected proposal.
"""

from typing import Any, Dict

import numpy as np

from .settings import SAMPLER_NAMES, TUNER_NAMES, OutputDestination

import logging
logger = logging.getLogger('mcjob')


class MCJobError(Exception):
    """Base class for all errors raised by mcjob."""


class ConfigurationError(MCJobError, ValueError):
    """Invalid sampler, tuner, range, output or dimension settings."""


class NonFiniteInitialStateError(MCJobError, ValueError):
    """The log-target at the initial value is not finite (value outside the support)."""


class OutputOverflowError(MCJobError, IndexError):
    """A fixed-size in-memory output was asked to store more states than it holds."""


def check_positive(component: str, name: str, value) -> None:
    """
    Raise ConfigurationError unless every element of value is strictly positive.

    Args:
        component: Name of the object being configured (used in the message)
        name: Name of the offending field
        value: Scalar or array-like
    """
    arr = np.asarray(value, dtype=float)
    if arr.size == 0 or not np.all(np.isfinite(arr)) or not np.all(arr > 0):
        raise ConfigurationError(
            f"{component}: {name} must be strictly positive and finite, got {value!r}"
        )


def validate_job_config(job_config: Dict[str, Any]) -> None:
    """
    Validates that a dict job configuration is sensible.

    Args:
        job_config: Configuration dictionary (lowercase keys)

    Raises:
        ConfigurationError: If configuration is invalid, listing every problem found
    """
    errors = []

    # Check required keys (all lowercase)
    required_keys = ['sampler', 'nsteps']
    for key in required_keys:
        if key not in job_config:
            errors.append(f"Missing required config key: '{key}'")

    if 'sampler' in job_config and job_config['sampler'] not in SAMPLER_NAMES:
        errors.append(
            f"sampler must be one of {sorted(SAMPLER_NAMES)}, got {job_config['sampler']!r}"
        )

    if 'tuner' in job_config and job_config['tuner'] not in TUNER_NAMES:
        errors.append(f"tuner must be one of {list(TUNER_NAMES)}, got {job_config['tuner']!r}")

    # Check numeric values
    if 'nsteps' in job_config:
        if job_config['nsteps'] < 1:
            errors.append(f"nsteps must be >= 1, got {job_config['nsteps']}")

    if 'burnin' in job_config:
        if job_config['burnin'] < 0:
            errors.append(f"burnin must be >= 0, got {job_config['burnin']}")
        elif 'nsteps' in job_config and job_config['burnin'] >= job_config['nsteps']:
            errors.append(
                f"burnin ({job_config['burnin']}) must be < nsteps ({job_config['nsteps']})"
            )

    if 'thinning' in job_config:
        if job_config['thinning'] < 1:
            errors.append(f"thinning must be >= 1, got {job_config['thinning']}")

    # None means the tuner's own default
    if job_config.get('tune_period') is not None:
        if job_config['tune_period'] < 1:
            errors.append(f"tune_period must be >= 1, got {job_config['tune_period']}")

    # Vanilla tuning never reads the target rate
    tunes = job_config.get('tuner', 'vanilla') != 'vanilla'
    if tunes and job_config.get('target_rate') is not None:
        rate = job_config['target_rate']
        if rate <= 0 or rate >= 1:
            errors.append(f"target_rate must be in (0, 1), got {rate}")

    # Output destination
    if 'destination' in job_config:
        destination = job_config['destination']
        valid = [d.value for d in OutputDestination]
        if destination not in valid and not isinstance(destination, OutputDestination):
            errors.append(f"destination must be one of {valid}, got {destination!r}")
        elif OutputDestination(destination) == OutputDestination.IOSTREAM:
            if not job_config.get('filepath'):
                errors.append("destination 'iostream' requires a 'filepath'")

    if errors:
        raise ConfigurationError("Invalid job configuration:\n  " + "\n  ".join(errors))


def diagnose_chain_issues(chain, diagnostics: Dict[str, Any] = None) -> Dict[str, Any]:
    """
    Analyzes a finished chain to identify common issues.

    Args:
        chain: Chain returned by a job
        diagnostics: Existing diagnostics dict to extend

    Returns:
        diagnostics: Dictionary with issues, warnings, and info
    """
    diagnostics = diagnostics if diagnostics is not None else {}
    for category in ('issues', 'warnings', 'info'):
        diagnostics.setdefault(category, [])

    samples = np.asarray(chain.samples)

    # Check for NaN/Inf in samples or log-targets
    if not np.all(np.isfinite(samples)):
        diagnostics['issues'].append(
            "Samples contain NaN or Inf values - sampler became unstable"
        )
    if not np.all(np.isfinite(chain.logtargets)):
        diagnostics['issues'].append("Log-targets contain NaN or Inf values")

    # Check for a stuck chain (variance near zero)
    if samples.shape[0] > 1:
        stuck_params = int(np.sum(np.var(samples, axis=0) < 1e-12))
        if stuck_params > 0:
            diagnostics['warnings'].append(
                f"{stuck_params} parameter(s) appear stuck (near-zero variance)"
            )

    rate = chain.acceptance_rate
    if rate is not None:
        if rate < 0.05:
            diagnostics['warnings'].append(f"Acceptance rate {rate:.1%} is very low")
        elif rate > 0.99 and 'n_evaluations' not in chain.diagnostics:
            diagnostics['warnings'].append(
                f"Acceptance rate {rate:.1%} is very high - step size may be too small"
            )
        diagnostics['info'].append(f"Acceptance rate: {rate:.1%}")

    # Summary info
    diagnostics['info'].append(f"Total samples: {samples.shape[0]}")
    diagnostics['info'].append(f"Number of parameters: {samples.shape[1]}")

    return diagnostics


def log_diagnostics(diagnostics: Dict[str, Any]) -> None:
    """Log diagnostics from diagnose_chain_issues."""
    if diagnostics['issues']:
        logger.error("[ERROR] ISSUES:")
        for issue in diagnostics['issues']:
            logger.error(f"  - {issue}")

    if diagnostics['warnings']:
        logger.warning("[WARN] WARNINGS:")
        for warning in diagnostics['warnings']:
            logger.warning(f"  - {warning}")

    if diagnostics['info']:
        logger.info("[INFO] INFO:")
        for info in diagnostics['info']:
            logger.info(f"  - {info}")

    if not diagnostics['issues'] and not diagnostics['warnings']:
        logger.info("[OK] No issues detected")
