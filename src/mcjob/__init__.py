"""
mcjob - Single-Chain MCMC Jobs on JAX Log-Densities

Public API:
    Models:
        LogTargetModel - Wrap a jax.numpy log-density (gradient, metric via autodiff)
        register_model - Register a model under a name
        get_model - Retrieve a registered model
        list_models - List all registered models

    Samplers:
        RandomWalkMetropolis, IndependentMetropolis, MALA, HMC, NUTS,
        SMMALA, RMHMC, SliceSampler, RAM - frozen sampler configs
        SamplerType - Enum tag of each sampler family

    Tuners:
        VanillaTuner - Fixed scale, optional logging of window rates
        AcceptanceRateTuner - Logistic nudging toward a target acceptance rate
        DualAveragingTuner - Dual averaging step-size adaptation

    Jobs and Output:
        MCRange - Iteration schedule (nsteps, burnin, thinning)
        BasicMCJob - One chain: run(), consume(), reset()
        ChainTask - Suspendable execution state of a job
        OutputOptions, OutputDestination - Where saved states go
        Chain - Saved samples, log-targets, diagnostics, runtime, provenance
        load_stream - Read a streamed chain back from disk
        configure_job - Build a job from a dict config
        product_jobs, run_jobs - Many independent chains
        run_sequential - Jobs run in turn, each continuing the previous chain
        SerialTempering - One chain moving through a temperature ladder

    Checkpointing:
        save_checkpoint, load_checkpoint, resume_from_checkpoint

Example:
    import jax.numpy as jnp
    from mcjob import BasicMCJob, MCRange, SliceSampler

    job = BasicMCJob(lambda x: -0.5 * jnp.sum(x ** 2), SliceSampler(widths=[1.0]),
                     range=MCRange(1000, burnin=100), value=[0.0])
    chain = job.run()
    print(chain)  # 1 parameters, 900 samples (per parameter), 0.4 sec.
"""
# CRITICAL: Import jax_config FIRST to set environment variables before JAX loads
from . import jax_config  # noqa: F401

from .error_handling import (
    ConfigurationError,
    MCJobError,
    NonFiniteInitialStateError,
    OutputOverflowError,
    diagnose_chain_issues,
    log_diagnostics,
    validate_job_config,
)
from .settings import OutputDestination, SamplerType
from .model import LogTargetModel
from .registry import register_model, get_model, list_models, clear_registry
from .mcmc import (
    AcceptanceRateTuner,
    BasicMCJob,
    Chain,
    ChainTask,
    DualAveragingTuner,
    MCRange,
    OutputOptions,
    ParameterState,
    TunerState,
    VanillaTuner,
    configure_job,
    load_stream,
    product_jobs,
    run_jobs,
    run_sequential,
    SerialTempering,
)
from .samplers import (
    HMC,
    MALA,
    NUTS,
    RAM,
    RMHMC,
    SMMALA,
    IndependentMetropolis,
    RandomWalkMetropolis,
    SliceSampler,
)
from .checkpoint_io import load_checkpoint, resume_from_checkpoint, save_checkpoint

__all__ = [
    # Models
    'LogTargetModel',
    'register_model',
    'get_model',
    'list_models',
    'clear_registry',
    # Samplers
    'SamplerType',
    'RandomWalkMetropolis',
    'IndependentMetropolis',
    'MALA',
    'HMC',
    'NUTS',
    'SMMALA',
    'RMHMC',
    'SliceSampler',
    'RAM',
    # Tuners
    'TunerState',
    'VanillaTuner',
    'AcceptanceRateTuner',
    'DualAveragingTuner',
    # Jobs and output
    'MCRange',
    'ParameterState',
    'BasicMCJob',
    'ChainTask',
    'OutputOptions',
    'OutputDestination',
    'Chain',
    'load_stream',
    'configure_job',
    'product_jobs',
    'run_jobs',
    'run_sequential',
    'SerialTempering',
    # Checkpointing
    'save_checkpoint',
    'load_checkpoint',
    'resume_from_checkpoint',
    # Errors and diagnostics
    'MCJobError',
    'ConfigurationError',
    'NonFiniteInitialStateError',
    'OutputOverflowError',
    'validate_job_config',
    'diagnose_chain_issues',
    'log_diagnostics',
]
