"""
Serial Tempering.

One chain moves through a ladder of inverse temperatures beta_1..beta_K. At
level k the chain targets the tempered density

    log pi_k(x) = log pi(x) - (1 - beta_k) * loglik(x)

i.e. the prior times the likelihood raised to beta_k. Each level is a
BasicMCJob on the tempered model. A visit performs steps_per_visit transitions
at the current level and then proposes a move to a neighbouring level
(k - 1 or k + 1 with equal probability). The move keeps x and is accepted with

    log alpha = (beta_j - beta_k) * loglik(x) + w_j - w_k

where w are pseudo-prior log weights (zero by default). An accepted move
resets the job at the new level to x; the tuned scale of every level is kept.

Visits after burnin_visits are returned as a Chain whose diagnostics record
the temperature each state was sampled at and whether the level move that
followed was accepted. Samples with temperature == 1 are draws from pi.
"""

from typing import Sequence

import jax.random as random
import numpy as np

from ..error_handling import ConfigurationError
from ..model import LogTargetModel, as_model
from ..samplers.common import metropolis_test
from .chain import Chain
from .job import BasicMCJob
from .types import MCRange

import logging
logger = logging.getLogger('mcjob')


def tempered_model(model: LogTargetModel, beta: float) -> LogTargetModel:
    """
    Model of the prior times the likelihood raised to beta.

    Raises:
        ConfigurationError: If the model has no log-likelihood
    """
    if model.loglikelihood_fn is None:
        raise ConfigurationError(f"tempered_model: model '{model.name}' has no loglikelihood_fn")
    if beta == 1.0:
        return model

    logtarget_fn = model.logtarget_fn
    loglikelihood_fn = model.loglikelihood_fn

    def tempered_logtarget(x):
        return logtarget_fn(x) - (1.0 - beta) * loglikelihood_fn(x)

    return LogTargetModel(tempered_logtarget, name=f"{model.name}@beta={beta:g}",
                          loglikelihood_fn=loglikelihood_fn)


def level_log_ratio(loglik, beta_from, beta_to, weight_from=0.0, weight_to=0.0) -> float:
    """Log acceptance ratio of moving a state with log-likelihood loglik between levels."""
    log_ratio = (beta_to - beta_from) * loglik + weight_to - weight_from
    return float(np.nan_to_num(log_ratio, nan=-np.inf))


class SerialTempering:
    """
    Serial tempering over a ladder of inverse temperatures.

    Args:
        model: LogTargetModel with a loglikelihood_fn
        sampler: Sampler config used at every level
        betas: Inverse temperatures in [0, 1], coldest first
        weights: Pseudo-prior log weight per level (default all zero)
        tuner: Tuner used at every level (default VanillaTuner())
        nvisits: Number of visits (one level move attempt per visit)
        steps_per_visit: Transitions at the current level per visit
        burnin_visits: Leading visits not returned
        value: Initial value, shared by every level
        key: JAX PRNG key; built from seed if None
        seed: Seed used when key is None
    """

    def __init__(self, model, sampler, betas: Sequence[float], weights=None, tuner=None,
                 nvisits=100, steps_per_visit=10, burnin_visits=0, value=None, key=None, seed=0):
        self.model = as_model(model)
        self.betas = [float(b) for b in betas]
        if not self.betas:
            raise ConfigurationError("SerialTempering: betas must not be empty")
        if any(not 0.0 <= b <= 1.0 for b in self.betas):
            raise ConfigurationError(f"SerialTempering: betas must lie in [0, 1], got {self.betas}")
        self.weights = [0.0] * len(self.betas) if weights is None else [float(w) for w in weights]
        if len(self.weights) != len(self.betas):
            raise ConfigurationError(
                f"SerialTempering: {len(self.weights)} weights for {len(self.betas)} betas"
            )
        if steps_per_visit < 1:
            raise ConfigurationError(f"SerialTempering: steps_per_visit must be >= 1, got {steps_per_visit}")
        self.range = MCRange(nvisits, burnin=burnin_visits)
        self.steps_per_visit = steps_per_visit

        key = key if key is not None else random.PRNGKey(seed)
        self.key, *job_keys = random.split(key, len(self.betas) + 1)
        level_range = MCRange(nvisits * steps_per_visit, burnin=burnin_visits * steps_per_visit,
                              thinning=steps_per_visit)
        self.jobs = [
            BasicMCJob(tempered_model(self.model, beta), sampler, tuner=tuner, range=level_range,
                       value=value, key=job_key)
            for beta, job_key in zip(self.betas, job_keys)
        ]
        self.level = 0
        self.visits = np.zeros(len(self.betas), dtype=int)
        self.moves_accepted = 0
        self.moves_proposed = 0

    def propose_level(self, key, loglik):
        """Propose a neighbouring level; returns (new level, accepted)."""
        direction_key, accept_key = random.split(key)
        proposed = self.level + (1 if bool(random.bernoulli(direction_key)) else -1)
        if not 0 <= proposed < len(self.betas):
            return self.level, False

        self.moves_proposed += 1
        log_ratio = level_log_ratio(loglik, self.betas[self.level], self.betas[proposed],
                                    self.weights[self.level], self.weights[proposed])
        accepted, _ = metropolis_test(accept_key, log_ratio)
        if accepted:
            self.moves_accepted += 1
            return proposed, True
        return self.level, False

    def run(self) -> Chain:
        """
        Perform every visit and return the post-burnin visit-end states.

        Returns:
            Chain with the untempered log-target of each state and the
            'temperature' and 'swap_accept' diagnostics
        """
        n = self.range.npoststeps
        d = self.jobs[0].pstate.size
        samples = np.full((n, d), np.nan)
        logtargets = np.full(n, np.nan)
        temperatures = np.full(n, np.nan)
        swaps = np.full(n, np.nan)

        logger.info(f"Serial tempering on model '{self.model.name}': {len(self.betas)} levels, "
                    f"{self.range.nsteps} visits of {self.steps_per_visit} steps")
        count = 0
        for visit in range(1, self.range.nsteps + 1):
            job = self.jobs[self.level]
            for _ in range(self.steps_per_visit):
                job.consume()
            self.visits[self.level] += 1

            x = job.pstate.value
            beta = self.betas[self.level]
            self.key, move_key = random.split(self.key)
            new_level, accepted = self.propose_level(move_key, self.model.loglikelihood(x))
            if accepted:
                self.jobs[new_level].reset(x)

            if self.range.is_saved(visit):
                samples[count] = np.asarray(x)
                logtargets[count] = self.model.logtarget(x)
                temperatures[count] = beta
                swaps[count] = float(accepted)
                count += 1
            self.level = new_level

        rate = self.moves_accepted / self.moves_proposed if self.moves_proposed else float('nan')
        logger.info(f"Level moves accepted: {self.moves_accepted}/{self.moves_proposed} ({rate:.1%})")
        for beta, nvisits in zip(self.betas, self.visits):
            logger.debug(f"  beta={beta:g}: {nvisits} visits")

        return Chain(
            range=self.range,
            samples=samples,
            logtargets=logtargets,
            diagnostics={'temperature': temperatures, 'swap_accept': swaps},
            provenance={
                'sampler': type(self.jobs[0].sampler).__name__,
                'model': self.model.name,
                'betas': list(self.betas),
                'weights': list(self.weights),
                'steps_per_visit': self.steps_per_visit,
            },
        )
