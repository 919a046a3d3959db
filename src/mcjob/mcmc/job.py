"""
MCMC Job Orchestration

A BasicMCJob binds one model, one sampler, one tuner, an iteration range, an
initial value and output options, and drives the Markov transitions:

    job = BasicMCJob(model, RandomWalkMetropolis(), range=MCRange(1000, burnin=100), value=0.0)
    chain = job.run()

Two execution modes give identical chains for the same PRNG key:
- Direct (plain=True): consume() performs the transition immediately.
- Suspendable (plain=False): transitions are performed through a ChainTask,
  an explicit state object that advances one step per resume() and can be
  inspected, reset or cancelled between steps.

Every transition saves its state when its iteration is in range.postrange, so
consume() and run() can be mixed: run() performs only the iterations left.
"""

import time
from dataclasses import asdict

import jax.random as random

from ..error_handling import ConfigurationError, diagnose_chain_issues, log_diagnostics
from ..model import as_model
from ..samplers.dispatch import get_sampler_ops
from ..settings import OutputDestination
from .diagnostics import log_run_summary
from .output import IOStreamOutput, NStateOutput, OutputOptions, load_stream
from .tuning import VanillaTuner
from .types import MCRange, ParameterState

import logging
logger = logging.getLogger('mcjob')


class ChainTask:
    """
    Suspendable execution state of a job.

    Holds the iteration counter and references to the job's mutable states.
    Each resume() applies exactly one complete transition; state is never
    observed mid-step.
    """

    def __init__(self, job):
        self._job = job
        self.iteration = 0
        self.cancelled = False

    @property
    def pstate(self):
        return self._job.pstate

    @property
    def sstate(self):
        return self._job.sstate

    @property
    def tune(self):
        return self._job.tune

    @property
    def done(self) -> bool:
        return self.iteration >= self._job.range.nsteps

    def _check_active(self, action):
        if self.cancelled:
            raise RuntimeError(f"ChainTask: cannot {action} a cancelled task")

    def resume(self):
        """Advance the chain by one transition; returns whether it was accepted."""
        self._check_active('resume')
        if self.done:
            raise RuntimeError(
                f"ChainTask: all {self._job.range.nsteps} iterations already performed"
            )
        accepted = self._job.iterate()
        self.iteration += 1
        return accepted

    def reset(self, x):
        self._check_active('reset')
        self._job.reset_state(x)

    def snapshot(self) -> ParameterState:
        """Independent copy of the current parameter state."""
        return self._job.pstate.copy()

    def cancel(self):
        self.cancelled = True
        logger.debug(f"ChainTask cancelled at iteration {self.iteration}")


class BasicMCJob:
    """
    One Markov chain: model, sampler, tuner, range, state and output.

    Args:
        model: LogTargetModel or a jax.numpy log-density function
        sampler: Sampler config (RandomWalkMetropolis, SliceSampler, ...)
        tuner: Tuner (default VanillaTuner())
        range: MCRange (required)
        value: Initial parameter value, scalar or 1-D (required)
        outopts: OutputOptions (default in-memory)
        plain: Direct mode if True, suspendable mode otherwise
        key: JAX PRNG key; built from seed if None
        seed: Seed used when key is None

    Raises:
        ConfigurationError: Invalid sampler, tuner, range or output settings
        NonFiniteInitialStateError: Log-target not finite at the initial value
    """

    def __init__(self, model, sampler, tuner=None, range=None, value=None, outopts=None,
                 plain=True, key=None, seed=0):
        if range is None:
            raise ConfigurationError("BasicMCJob: range (MCRange) is required")
        if not isinstance(range, MCRange):
            raise ConfigurationError(f"BasicMCJob: range must be an MCRange, got {type(range).__name__}")
        if value is None:
            raise ConfigurationError("BasicMCJob: initial value is required")

        self.model = as_model(model)
        self.sampler = sampler
        self.tuner = tuner if tuner is not None else VanillaTuner()
        self.range = range
        self.outopts = outopts if outopts is not None else OutputOptions()
        self.plain = plain

        self.ops = get_sampler_ops(sampler)
        if self.outopts.save_gradient and not self.ops.needs_gradient:
            raise ConfigurationError(
                f"BasicMCJob: save_gradient requested but {type(sampler).__name__} does not compute gradients"
            )

        self.pstate = ParameterState.from_value(value)
        self.ops.initialize(self.pstate, self.model, sampler)
        self.sstate = self.ops.create_working_state(self.pstate, sampler, self.tuner)
        self.tune = self.tuner.initialize_state(sampler.initial_scale)

        self.key = key if key is not None else random.PRNGKey(seed)
        self.iteration = 0
        self.count = 0
        self.runtime = 0.0
        self.task = None if plain else ChainTask(self)

        self.output = None
        self._chain = None
        self.save, self.close = self._resolve_output()

        logger.debug(f"Initialized {self!r} at logtarget={self.pstate.logtarget:.6g}")

    def _resolve_output(self):
        """Pick the save/close pair for the output destination once."""
        opts = self.outopts
        if opts.destination == OutputDestination.NSTATE:
            self.output = NStateOutput(
                self.pstate.size, self.range.npoststeps,
                save_gradient=opts.save_gradient, diagnostics=opts.diagnostics,
                resizable=opts.resizable,
            )

            def save(i):
                self.output.copy(self.pstate, i)

            def close():
                if self._chain is None:
                    self._chain = self.output.to_chain(self.range, self.runtime, self.provenance())
                return self._chain

        else:
            self.output = IOStreamOutput(
                opts.filepath, self.pstate.size, self.range,
                save_gradient=opts.save_gradient, diagnostics=opts.diagnostics,
            )

            def save(i):
                self.output.write(self.pstate)

            def close():
                if self._chain is None:
                    self.output.close()
                    self._chain = load_stream(opts.filepath, self.runtime, self.provenance())
                return self._chain

        return save, close

    @property
    def mode(self) -> str:
        return 'direct' if self.plain else 'suspendable'

    def provenance(self):
        sampler_settings = {k: v for k, v in asdict(self.sampler).items() if k != 'sampler_type'}
        return {
            'sampler': type(self.sampler).__name__,
            'sampler_settings': sampler_settings,
            'tuner': type(self.tuner).__name__,
            'range': str(self.range),
            'model': self.model.name,
            'mode': self.mode,
            'final_scale': self.tune.scale,
        }

    def iterate(self):
        """
        Perform one transition: split the key, step the sampler, adapt, save.

        The state is saved when the iteration it ends on is in range.postrange,
        however the transition was triggered (run(), consume() or a ChainTask).

        Returns:
            Whether the proposal was accepted

        Raises:
            RuntimeError: If all range.nsteps iterations were already performed
        """
        if self.iteration >= self.range.nsteps:
            raise RuntimeError(f"BasicMCJob: all {self.range.nsteps} iterations already performed")

        self.key, step_key = random.split(self.key)
        accepted = self.ops.step(step_key, self.pstate, self.sstate, self.tune, self.sampler, self.model)
        self.iteration += 1

        tuning = self.range.is_burnin(self.iteration) or self.tuner.adapt_after_burnin
        self.tuner.maybe_adapt(self.tune, adapt=tuning)
        if self.iteration == self.range.burnin and not self.tuner.adapt_after_burnin:
            self.tuner.freeze(self.tune)

        if self.range.is_saved(self.iteration):
            self.save(self.count)
            self.count += 1
        return accepted

    def consume(self):
        if self.plain:
            return self.iterate()
        return self.task.resume()

    def reset_state(self, x):
        self.ops.reset(self.pstate, self.sstate, self.tune, x, self.model, self.sampler, self.tuner)

    def reset(self, x):
        """Move the chain to x and re-evaluate it; the tuned scale is kept."""
        if self.plain:
            self.reset_state(x)
        else:
            self.task.reset(x)

    def run(self):
        """
        Perform the remaining transitions up to range.nsteps and close the output.

        Transitions already performed through consume() (or restored from a
        checkpoint) are not repeated. The output is closed even if a transition
        raises.

        Returns:
            Chain with the states this job saved, runtime and provenance
        """
        if self._chain is not None or self.output.closed:
            raise RuntimeError("BasicMCJob: output already closed; build a new job to run again")

        sampler_name = type(self.sampler).__name__
        logger.info(f"Running {sampler_name} on model '{self.model.name}': {self.range} "
                    f"({self.mode} mode, from iteration {self.iteration})")
        start = time.perf_counter()

        try:
            while self.iteration < self.range.nsteps:
                self.consume()
        finally:
            self.runtime = time.perf_counter() - start
            self.output.close()

        chain = self.close()
        logger.info(f"Finished {sampler_name}: {chain}")
        log_run_summary(chain)
        log_diagnostics(diagnose_chain_issues(chain))
        return chain

    def __repr__(self):
        return (f"BasicMCJob(model={self.model.name!r}, sampler={type(self.sampler).__name__}, "
                f"tuner={type(self.tuner).__name__}, range={self.range}, mode={self.mode})")
