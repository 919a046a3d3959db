"""
Job Configuration from Dicts.

This module builds jobs from plain dict configs (e.g. loaded from JSON/YAML):
- clean_config: fill in defaults
- make_tuner: build a tuner from its config name
- configure_job: validate a config and return a BasicMCJob

All config keys use lowercase with underscores (e.g., 'tune_period', 'rng_seed').
"""

from typing import Any, Dict

from ..error_handling import ConfigurationError, validate_job_config
from ..registry import get_model
from ..samplers.dispatch import make_sampler
from ..settings import DEFAULT_TARGET_RATES, SAMPLER_NAMES
from .job import BasicMCJob
from .output import OutputOptions
from .tuning import AcceptanceRateTuner, DualAveragingTuner, VanillaTuner
from .types import MCRange

import logging
logger = logging.getLogger('mcjob')


def clean_config(job_config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Cleans the config and sets defaults.
    All config keys use lowercase with underscores.
    """
    job_config.setdefault('model_id', None)
    job_config.setdefault('sampler_settings', {})
    job_config.setdefault('tuner', 'vanilla')
    job_config.setdefault('target_rate', None)
    job_config.setdefault('tune_period', None)
    job_config.setdefault('burnin', 0)
    job_config.setdefault('thinning', 1)
    job_config.setdefault('destination', 'nstate')
    job_config.setdefault('filepath', None)
    job_config.setdefault('plain', True)
    job_config.setdefault('rng_seed', 0)
    job_config.setdefault('initial_value', 0.0)
    job_config.setdefault('save_gradient', False)
    job_config.setdefault('diagnostics', ('accept',))

    if job_config['target_rate'] is None and job_config.get('sampler') in SAMPLER_NAMES:
        job_config['target_rate'] = DEFAULT_TARGET_RATES[SAMPLER_NAMES[job_config['sampler']]]

    return job_config


def make_tuner(name: str, target_rate=None, period=None, verbose=False):
    """
    Build a tuner from its config name.

    Args:
        name: 'vanilla', 'acceptance_rate' or 'dual_averaging'
        target_rate: Target acceptance rate (tuner default if None)
        period: Window length (tuner default if None)
        verbose: Log window acceptance rates
    """
    kwargs = {'verbose': verbose}
    if period is not None:
        kwargs['period'] = period
    if name == 'vanilla':
        return VanillaTuner(**kwargs)
    if target_rate is not None:
        kwargs['target_rate'] = target_rate
    if name == 'acceptance_rate':
        return AcceptanceRateTuner(**kwargs)
    if name == 'dual_averaging':
        return DualAveragingTuner(**kwargs)
    raise ConfigurationError(f"Unknown tuner name {name!r}")


def configure_job(job_config: Dict[str, Any], model=None) -> BasicMCJob:
    """
    Build a job from a dict config.

    Args:
        job_config: Config dict; must contain 'sampler' and 'nsteps'
        model: Model to sample; looked up by 'model_id' in the registry if None

    Returns:
        BasicMCJob ready to run()

    Raises:
        ConfigurationError: If the config is invalid or names no model
    """
    config = clean_config(dict(job_config))
    validate_job_config(config)

    if model is None:
        if config['model_id'] is None:
            raise ConfigurationError("configure_job: no model given and no 'model_id' in config")
        try:
            model = get_model(config['model_id'])
        except KeyError as e:
            raise ConfigurationError(str(e)) from e

    sampler = make_sampler(config['sampler'], config['sampler_settings'])
    tuner = make_tuner(config['tuner'], config['target_rate'], config['tune_period'],
                       verbose=config.get('verbose', False))
    mcrange = MCRange(config['nsteps'], config['burnin'], config['thinning'])
    outopts = OutputOptions(
        destination=config['destination'],
        filepath=config['filepath'],
        save_gradient=config['save_gradient'],
        diagnostics=tuple(config['diagnostics']),
    )
    logger.debug(f"Configured job: sampler={config['sampler']}, tuner={config['tuner']}, {mcrange}")

    return BasicMCJob(model, sampler, tuner=tuner, range=mcrange, value=config['initial_value'],
                      outopts=outopts, plain=config['plain'], seed=config['rng_seed'])
