"""
Running Many Independent Chains.

- product_jobs: one job per (model, sampler, tuner) combination
- run_jobs: run jobs sequentially or on a thread pool, then log their acceptance rates
- run_sequential: run jobs in turn, each continuing from the previous chain

Jobs built by product_jobs share no mutable state, so they can run in any order
and in parallel. Each job gets its own key derived from a single seed, which
makes the set of chains reproducible regardless of n_workers.
"""

import itertools
from dataclasses import replace
from multiprocessing.pool import ThreadPool
from pathlib import Path
from typing import List, Sequence

import jax.random as random

from ..error_handling import ConfigurationError
from ..settings import OutputDestination
from .diagnostics import log_acceptance_summary
from .job import BasicMCJob
from .output import OutputOptions
from .tuning import VanillaTuner

import logging
logger = logging.getLogger('mcjob')


def _indexed_path(filepath, index):
    path = Path(filepath)
    return str(path.with_name(f"{path.stem}_{index}{path.suffix}"))


def product_jobs(models: Sequence, samplers: Sequence, tuners: Sequence = None, range=None,
                 value=None, outopts: OutputOptions = None, plain=True, seed=0) -> List[BasicMCJob]:
    """
    Build one job per element of models x samplers x tuners.

    Args:
        models: Models (or log-density functions)
        samplers: Sampler configs
        tuners: Tuners (default [VanillaTuner()])
        range: MCRange shared by every job
        value: Initial value shared by every job
        outopts: Output options; stream files get a _<index> suffix per job
        plain: Direct (True) or suspendable (False) execution
        seed: Seed from which every job's key is derived

    Returns:
        List of jobs in product order
    """
    tuners = list(tuners) if tuners is not None else [VanillaTuner()]
    combos = list(itertools.product(models, samplers, tuners))
    if not combos:
        raise ConfigurationError("product_jobs: need at least one model, sampler and tuner")
    outopts = outopts if outopts is not None else OutputOptions()

    keys = random.split(random.PRNGKey(seed), len(combos))
    jobs = []
    for index, ((model, sampler, tuner), key) in enumerate(zip(combos, keys)):
        job_outopts = outopts
        if outopts.destination == OutputDestination.IOSTREAM:
            job_outopts = replace(outopts, filepath=_indexed_path(outopts.filepath, index))
        jobs.append(BasicMCJob(model, sampler, tuner=tuner, range=range, value=value,
                               outopts=job_outopts, plain=plain, key=key))
    logger.info(f"Built {len(jobs)} jobs ({len(models)} models x {len(samplers)} samplers "
                f"x {len(tuners)} tuners)")
    return jobs


def _run(job):
    return job.run()


def run_jobs(jobs: Sequence[BasicMCJob], n_workers: int = 1) -> list:
    """
    Run jobs and return their chains in the order of jobs.

    Args:
        jobs: Jobs to run
        n_workers: Sequential if 1, otherwise a thread pool of this size

    The acceptance rates of all chains are logged once every job finished.
    """
    if n_workers < 1:
        raise ConfigurationError(f"run_jobs: n_workers must be >= 1, got {n_workers}")
    if n_workers == 1 or len(jobs) <= 1:
        chains = [job.run() for job in jobs]
    else:
        with ThreadPool(n_workers) as pool:
            chains = pool.map(_run, jobs)

    labels = [f"{job.model.name}/{type(job.sampler).__name__}" for job in jobs]
    log_acceptance_summary(chains, labels)
    return chains


def run_sequential(jobs: Sequence[BasicMCJob]) -> list:
    """
    Run jobs one after another, each starting where the previous chain ended.

    Every job after the first is reset to the last saved value of the previous
    chain before it runs, so a sequence of jobs (e.g. on a sequence of
    targets) forms one continued trajectory. Tuned scales are not carried over.

    Returns:
        Chains in the order of jobs
    """
    chains = []
    for index, job in enumerate(jobs):
        if chains:
            previous = chains[-1]
            if previous.nsamples == 0:
                raise ConfigurationError(f"run_sequential: job {index - 1} saved no states to continue from")
            job.reset(previous.samples[-1])
            logger.debug(f"run_sequential: job {index} starts from the last state of job {index - 1}")
        chains.append(job.run())
    return chains
