"""
Configuration Tests - Dict Configs, Model Registry and Multi-Job Runner

Run with: pytest tests/test_config.py -v
"""

import logging

import numpy as np
import pytest

from mcjob import (
    HMC,
    BasicMCJob,
    MCRange,
    OutputOptions,
    RandomWalkMetropolis,
    SliceSampler,
    configure_job,
    get_model,
    list_models,
    register_model,
)
from mcjob.error_handling import ConfigurationError, validate_job_config
from mcjob.mcmc.config import clean_config, make_tuner
from mcjob.mcmc.runner import product_jobs, run_jobs, run_sequential
from mcjob.settings import DEFAULT_TUNE_PERIOD
from mcjob.mcmc.tuning import AcceptanceRateTuner, DualAveragingTuner, VanillaTuner
from mcjob.test_models import banana_model, std_normal_model


# ============================================================================
# VALIDATION
# ============================================================================

class TestValidateJobConfig:

    def test_valid_config_passes(self):
        validate_job_config(clean_config({'sampler': 'rwm', 'nsteps': 100}))

    def test_missing_keys_are_all_reported(self):
        with pytest.raises(ConfigurationError) as excinfo:
            validate_job_config({})
        message = str(excinfo.value)
        assert "'sampler'" in message
        assert "'nsteps'" in message

    @pytest.mark.parametrize("override, fragment", [
        ({'sampler': 'gibbs'}, "sampler must be one of"),
        ({'tuner': 'adam'}, "tuner must be one of"),
        ({'nsteps': 0}, "nsteps must be >= 1"),
        ({'burnin': 100}, "burnin (100) must be < nsteps"),
        ({'thinning': 0}, "thinning must be >= 1"),
        ({'tune_period': 0}, "tune_period must be >= 1"),
        ({'tuner': 'acceptance_rate', 'target_rate': 1.2}, "target_rate must be in (0, 1)"),
        ({'destination': 'database'}, "destination must be one of"),
        ({'destination': 'iostream'}, "requires a 'filepath'"),
    ])
    def test_invalid_values(self, override, fragment):
        config = {'sampler': 'rwm', 'nsteps': 100, **override}
        with pytest.raises(ConfigurationError) as excinfo:
            validate_job_config(config)
        assert fragment in str(excinfo.value)

    def test_vanilla_tuner_ignores_target_rate(self):
        validate_job_config(clean_config({'sampler': 'slice', 'nsteps': 10}))

    @pytest.mark.parametrize("tuner", ['vanilla', 'acceptance_rate', 'dual_averaging'])
    def test_cleaned_defaults_pass(self, tuner):
        config = clean_config({'sampler': 'rwm', 'nsteps': 10, 'tuner': tuner})
        assert config['tune_period'] is None
        validate_job_config(config)

    def test_explicit_none_means_tuner_default(self):
        validate_job_config({'sampler': 'rwm', 'nsteps': 10, 'tuner': 'acceptance_rate',
                             'tune_period': None, 'target_rate': None})
        job = configure_job({'sampler': 'rwm', 'nsteps': 10, 'tuner': 'acceptance_rate',
                             'tune_period': None, 'target_rate': None}, model=std_normal_model())
        assert job.tuner.period == DEFAULT_TUNE_PERIOD
        assert job.tuner.target_rate == 0.234


# ============================================================================
# CONFIGURE JOB
# ============================================================================

class TestConfigureJob:

    def test_clean_config_defaults(self):
        config = clean_config({'sampler': 'mala', 'nsteps': 10})
        assert config['tuner'] == 'vanilla'
        assert config['target_rate'] == 0.574
        assert config['destination'] == 'nstate'
        assert config['plain'] is True

    def test_configure_from_registry(self, register_test_models):
        job = configure_job({
            'model_id': 'correlated_gaussian',
            'sampler': 'slice',
            'sampler_settings': {'widths': [1.0, 1.0]},
            'nsteps': 30,
            'burnin': 10,
            'initial_value': [0.0, 0.0],
        })
        assert isinstance(job.sampler, SliceSampler)
        assert isinstance(job.tuner, VanillaTuner)
        chain = job.run()
        assert chain.nsamples == 20
        assert chain.provenance['model'] == 'correlated_gaussian'

    def test_configure_with_explicit_model(self):
        job = configure_job({
            'sampler': 'hmc',
            'sampler_settings': {'scale': 0.2, 'n_leapfrog': 5},
            'tuner': 'dual_averaging',
            'nsteps': 10,
            'initial_value': [0.5],
            'plain': False,
            'rng_seed': 5,
        }, model=std_normal_model())
        assert job.sampler == HMC(scale=0.2, n_leapfrog=5)
        assert isinstance(job.tuner, DualAveragingTuner)
        assert job.tuner.target_rate == 0.65
        assert job.tuner.period == 1
        assert job.task is not None

    def test_configure_stream(self, tmp_path):
        path = tmp_path / 'chain.csv'
        job = configure_job({'sampler': 'rwm', 'nsteps': 5, 'destination': 'iostream',
                             'filepath': str(path)}, model=std_normal_model())
        chain = job.run()
        assert path.exists()
        assert chain.nsamples == 5

    def test_unknown_model_raises(self, register_test_models):
        with pytest.raises(ConfigurationError, match="Unknown model"):
            configure_job({'model_id': 'nope', 'sampler': 'rwm', 'nsteps': 10})

    def test_no_model_raises(self):
        with pytest.raises(ConfigurationError, match="no model"):
            configure_job({'sampler': 'rwm', 'nsteps': 10})

    def test_make_tuner(self):
        assert isinstance(make_tuner('vanilla', target_rate=0.3), VanillaTuner)
        tuner = make_tuner('acceptance_rate', target_rate=0.3, period=50)
        assert isinstance(tuner, AcceptanceRateTuner)
        assert (tuner.target_rate, tuner.period) == (0.3, 50)
        with pytest.raises(ConfigurationError):
            make_tuner('adam')


# ============================================================================
# REGISTRY
# ============================================================================

class TestRegistry:

    def test_register_and_get(self, register_test_models):
        assert 'std_normal' in list_models()
        register_model('banana_2', banana_model())
        assert get_model('banana_2').name == 'banana_2'

    def test_duplicate_raises(self, register_test_models):
        with pytest.raises(ValueError, match="already registered"):
            register_model('std_normal', std_normal_model())

    def test_unknown_raises(self, register_test_models):
        with pytest.raises(KeyError, match="Unknown model"):
            get_model('does_not_exist')


# ============================================================================
# RUNNER
# ============================================================================

class TestRunner:

    def test_product_jobs(self):
        models = [std_normal_model(), banana_model()]
        samplers = [RandomWalkMetropolis(), SliceSampler(widths=[1.0])]
        jobs = product_jobs(models, samplers, range=MCRange(10), value=[0.1, 0.1])

        assert len(jobs) == 4
        assert all(isinstance(job, BasicMCJob) for job in jobs)
        keys = {tuple(np.asarray(job.key).tolist()) for job in jobs}
        assert len(keys) == 4

    def test_product_jobs_stream_paths_are_distinct(self, tmp_path):
        outopts = OutputOptions(destination='iostream', filepath=str(tmp_path / 'chain.csv'))
        jobs = product_jobs([std_normal_model()], [RandomWalkMetropolis()],
                            tuners=[VanillaTuner(), AcceptanceRateTuner()],
                            range=MCRange(5), value=[0.0], outopts=outopts)
        paths = [job.outopts.filepath for job in jobs]
        assert paths == [str(tmp_path / 'chain_0.csv'), str(tmp_path / 'chain_1.csv')]
        for job in jobs:
            job.output.close()

    def test_parallel_matches_sequential(self):
        def build():
            return product_jobs([std_normal_model()], [RandomWalkMetropolis(), SliceSampler()],
                                range=MCRange(30), value=[0.0], seed=9)

        sequential = run_jobs(build(), n_workers=1)
        parallel = run_jobs(build(), n_workers=2)
        for a, b in zip(sequential, parallel):
            np.testing.assert_array_equal(a.samples, b.samples)

    def test_invalid_workers_raises(self):
        with pytest.raises(ConfigurationError, match="n_workers"):
            run_jobs([], n_workers=0)

    def test_run_jobs_logs_acceptance_summary(self, caplog):
        jobs = product_jobs([std_normal_model()], [RandomWalkMetropolis(), RandomWalkMetropolis(scale=1e4)],
                            range=MCRange(40), value=[0.0], seed=2)
        with caplog.at_level(logging.INFO, logger='mcjob'):
            run_jobs(jobs)
        assert "Acceptance Rates (2 chains)" in caplog.text
        assert "std_normal/RandomWalkMetropolis" in caplog.text


class TestRunSequential:

    def test_every_job_runs(self):
        jobs = [BasicMCJob(std_normal_model(), RandomWalkMetropolis(), range=MCRange(15), value=[5.0], seed=s)
                for s in range(3)]
        chains = run_sequential(jobs)
        assert [chain.nsamples for chain in chains] == [15, 15, 15]
        assert all(job.iteration == 15 for job in jobs)

    def test_start_value_is_previous_last_sample(self):
        first = BasicMCJob(std_normal_model(), RandomWalkMetropolis(), range=MCRange(10), value=[3.0], seed=1)
        second = BasicMCJob(std_normal_model(), SliceSampler(), range=MCRange(5), value=[-3.0], seed=2)
        replay = BasicMCJob(std_normal_model(), SliceSampler(), range=MCRange(5), value=[-3.0], seed=2)

        chains = run_sequential([first, second])
        replay.reset(chains[0].samples[-1])
        np.testing.assert_array_equal(chains[1].samples, replay.run().samples)
