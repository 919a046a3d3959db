"""
MCMC Engine Package.

Modules:
    types: ParameterState, MCRange
    chain: Chain (output artifact)
    tuning: TunerState, VanillaTuner, AcceptanceRateTuner, DualAveragingTuner
    output: OutputOptions, NStateOutput, IOStreamOutput, load_stream
    job: BasicMCJob, ChainTask
    config: clean_config, make_tuner, configure_job
    runner: product_jobs, run_jobs, run_sequential
    tempering: SerialTempering, tempered_model
    diagnostics: summaries of per-step statistics
"""

from .types import MCRange, ParameterState
from .chain import Chain
from .tuning import (
    AcceptanceRateTuner,
    DualAveragingTuner,
    DualAveragingTunerState,
    TunerState,
    VanillaTuner,
)
from .output import IOStreamOutput, NStateOutput, OutputOptions, load_stream
from .job import BasicMCJob, ChainTask
from .config import clean_config, configure_job, make_tuner
from .runner import product_jobs, run_jobs, run_sequential
from .tempering import SerialTempering, tempered_model
from .diagnostics import log_acceptance_summary, summarize_diagnostics

__all__ = [
    'MCRange',
    'ParameterState',
    'Chain',
    'TunerState',
    'DualAveragingTunerState',
    'VanillaTuner',
    'AcceptanceRateTuner',
    'DualAveragingTuner',
    'OutputOptions',
    'NStateOutput',
    'IOStreamOutput',
    'load_stream',
    'BasicMCJob',
    'ChainTask',
    'clean_config',
    'configure_job',
    'make_tuner',
    'product_jobs',
    'run_jobs',
    'run_sequential',
    'SerialTempering',
    'tempered_model',
    'log_acceptance_summary',
    'summarize_diagnostics',
]
