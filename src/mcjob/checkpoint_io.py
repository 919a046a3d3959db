"""
Checkpoint I/O utilities for saving and loading job state.

This module provides functions for:
- Saving a job's resumable state to disk (.npz)
- Loading checkpoints back into a dict
- Resuming a freshly built job from a checkpoint

A checkpoint holds the current value and log-target, the PRNG key, the
iteration and save counts, every tuner-state field and the sampler tag. The
working state is rebuilt from the value on reset, except for the fields a
sampler lists in its working state's persistent_fields (adapted quantities such
as the RAM proposal factor), which are stored and restored. A resumed job
continues exactly where the saved one would have.
"""

from dataclasses import asdict, fields
from pathlib import Path
from typing import Any, Dict

import jax.numpy as jnp
import numpy as np

from .error_handling import ConfigurationError
from .settings import SamplerType

import logging
logger = logging.getLogger('mcjob')

_TUNE_PREFIX = 'tune_'
_SSTATE_PREFIX = 'sstate_'


def save_checkpoint(filepath: str, job) -> Path:
    """
    Save a job's resumable state to disk.

    Args:
        filepath: Path to save checkpoint (.npz file)
        job: BasicMCJob

    Returns:
        Path of the written file
    """
    checkpoint = {
        'value': np.asarray(job.pstate.value),
        'logtarget': np.array(job.pstate.logtarget),
        'key': np.asarray(job.key),
        'iteration': np.array(job.iteration),
        'count': np.array(job.count),
        'sampler_type': np.array(int(job.sampler.sampler_type)),
        'model': np.array(job.model.name),
    }
    for name, value in asdict(job.tune).items():
        checkpoint[_TUNE_PREFIX + name] = np.array(value)
    for name in getattr(job.sstate, 'persistent_fields', ()):
        checkpoint[_SSTATE_PREFIX + name] = np.asarray(getattr(job.sstate, name))

    filepath = Path(filepath)
    if filepath.suffix != '.npz':
        filepath = filepath.with_suffix(filepath.suffix + '.npz')
    np.savez_compressed(filepath, **checkpoint)
    logger.info(f"Checkpoint saved to {filepath} at iteration {job.iteration}")
    return filepath


def load_checkpoint(filepath: str) -> Dict[str, Any]:
    """
    Load a checkpoint from disk.

    Returns:
        Dict with value, logtarget, key, iteration, count, sampler_type, model
        a 'tune' dict of tuner-state fields and an 'sstate' dict of persistent
        working-state fields

    Raises:
        FileNotFoundError: If the file does not exist
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"Checkpoint not found: {filepath}")

    with np.load(filepath, allow_pickle=False) as data:
        checkpoint = {
            'value': data['value'].copy(),
            'logtarget': float(data['logtarget']),
            'key': data['key'].copy(),
            'iteration': int(data['iteration']),
            'count': int(data['count']),
            'sampler_type': SamplerType(int(data['sampler_type'])),
            'model': str(data['model']),
            'tune': {k[len(_TUNE_PREFIX):]: data[k].item()
                     for k in data.files if k.startswith(_TUNE_PREFIX)},
            'sstate': {k[len(_SSTATE_PREFIX):]: data[k].copy()
                       for k in data.files if k.startswith(_SSTATE_PREFIX)},
        }
    return checkpoint


def resume_from_checkpoint(job, checkpoint: Dict[str, Any]):
    """
    Move a job to the state stored in a checkpoint.

    The job must use the same sampler family and parameter dimension as the
    checkpointed one. Its value, key, counters and tuner state are restored.

    Raises:
        ConfigurationError: On sampler or dimension mismatch
    """
    if checkpoint['sampler_type'] != job.sampler.sampler_type:
        raise ConfigurationError(
            f"Checkpoint was written by sampler {checkpoint['sampler_type']}, "
            f"job uses {job.sampler.sampler_type}"
        )
    value = np.asarray(checkpoint['value'])
    if value.shape != tuple(job.pstate.value.shape):
        raise ConfigurationError(
            f"Checkpoint value has shape {value.shape}, job parameter has shape "
            f"{tuple(job.pstate.value.shape)}"
        )

    job.reset(value)
    job.key = jnp.asarray(checkpoint['key'], dtype=jnp.uint32)
    job.iteration = checkpoint['iteration']
    job.count = checkpoint['count']
    if job.task is not None:
        job.task.iteration = checkpoint['iteration']

    tune_fields = {f.name for f in fields(job.tune)}
    missing = tune_fields - set(checkpoint['tune'])
    if missing:
        raise ConfigurationError(f"Checkpoint tuner state is missing fields {sorted(missing)}")
    for name in tune_fields:
        setattr(job.tune, name, type(getattr(job.tune, name))(checkpoint['tune'][name]))

    for name in getattr(job.sstate, 'persistent_fields', ()):
        if name not in checkpoint.get('sstate', {}):
            raise ConfigurationError(f"Checkpoint working state is missing field {name!r}")
        current = getattr(job.sstate, name)
        stored = checkpoint['sstate'][name]
        if isinstance(current, int):
            setattr(job.sstate, name, int(stored))
        else:
            setattr(job.sstate, name, jnp.asarray(stored))

    logger.info(f"Resumed {job!r} from checkpoint at iteration {job.iteration}")
    return job
