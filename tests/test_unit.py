"""
Unit Tests for Core Data Structures and Utilities

Tests ranges, parameter states, chains, tuners, output sinks and the model
wrapper in isolation.
Run with: pytest tests/test_unit.py -v
"""

import importlib
import logging
import math
import pathlib

import numpy as np
import jax.numpy as jnp
import pytest

from mcjob.error_handling import (
    ConfigurationError,
    NonFiniteInitialStateError,
    OutputOverflowError,
    check_positive,
    diagnose_chain_issues,
    log_diagnostics,
)
from mcjob.mcmc.chain import Chain
from mcjob.mcmc.diagnostics import log_acceptance_summary
from mcjob.mcmc.output import NStateOutput, OutputOptions
from mcjob.mcmc.tuning import (
    AcceptanceRateTuner,
    DualAveragingTuner,
    VanillaTuner,
)
from mcjob.mcmc.types import MCRange, ParameterState
from mcjob.model import LogTargetModel, as_model, as_value
from mcjob.settings import OutputDestination


# ============================================================================
# MCRANGE TESTS
# ============================================================================

class TestMCRange:
    """Test the iteration schedule."""

    def test_postrange_with_burnin_and_thinning(self):
        r = MCRange(nsteps=10, burnin=2, thinning=3)
        assert list(r.postrange) == [3, 6, 9]
        assert r.npoststeps == 3

    def test_npoststeps_formula(self):
        for nsteps, burnin, thinning in [(100, 10, 3), (1000, 0, 1), (7, 6, 5), (50, 1, 7)]:
            r = MCRange(nsteps, burnin, thinning)
            assert r.npoststeps == math.ceil((nsteps - burnin) / thinning)

    def test_burnin_classification(self):
        r = MCRange(nsteps=5, burnin=2)
        assert r.is_burnin(2)
        assert not r.is_burnin(3)
        assert not r.is_saved(2)
        assert r.is_saved(3)

    @pytest.mark.parametrize("kwargs", [
        dict(nsteps=0),
        dict(nsteps=10, burnin=-1),
        dict(nsteps=10, burnin=10),
        dict(nsteps=10, thinning=0),
    ])
    def test_invalid_range_raises(self, kwargs):
        with pytest.raises(ConfigurationError, match="MCRange"):
            MCRange(**kwargs)


# ============================================================================
# PARAMETER STATE TESTS
# ============================================================================

class TestParameterState:

    def test_from_value_scalar(self):
        state = ParameterState.from_value(1.5)
        assert state.size == 1
        assert math.isnan(state.logtarget)
        assert state.gradlogtarget is None

    def test_copy_is_independent(self):
        state = ParameterState.from_value([1.0, 2.0])
        state.logtarget = -1.0
        state.diagnostics['accept'] = True
        snapshot = state.copy()

        state.value = jnp.array([3.0, 4.0])
        state.diagnostics['accept'] = False

        np.testing.assert_array_equal(np.asarray(snapshot.value), [1.0, 2.0])
        assert snapshot.diagnostics['accept'] is True

    def test_non_finite_initial_logtarget_raises(self):
        state = ParameterState.from_value(-1.0)
        state.logtarget = -math.inf
        with pytest.raises(NonFiniteInitialStateError, match="initial value"):
            state.check_initialized('Test')

    def test_gradient_shape_mismatch_raises(self):
        state = ParameterState.from_value([0.0, 0.0])
        state.logtarget = 0.0
        state.gradlogtarget = jnp.zeros(3)
        with pytest.raises(ConfigurationError, match="gradient shape"):
            state.check_initialized('Test')

    def test_value_must_be_vector(self):
        with pytest.raises(ConfigurationError):
            as_value(np.zeros((2, 2)))


# ============================================================================
# CHAIN TESTS
# ============================================================================

class TestChain:

    def _make_chain(self, n=4, d=2, **kwargs):
        return Chain(range=MCRange(n), samples=np.zeros((n, d)), logtargets=np.zeros(n), **kwargs)

    def test_str(self):
        chain = self._make_chain(n=1000, d=2, runtime=0.3)
        assert str(chain) == "2 parameters, 1000 samples (per parameter), 0.3 sec."

    def test_mismatched_logtargets_raises(self):
        with pytest.raises(ConfigurationError, match="logtargets"):
            Chain(range=MCRange(4), samples=np.zeros((4, 2)), logtargets=np.zeros(3))

    def test_mismatched_diagnostics_raises(self):
        with pytest.raises(ConfigurationError, match="accept"):
            self._make_chain(diagnostics={'accept': np.ones(3)})

    def test_mismatched_gradients_raises(self):
        with pytest.raises(ConfigurationError, match="gradients"):
            self._make_chain(gradients=np.zeros((4, 3)))

    def test_acceptance_rate(self):
        chain = self._make_chain(diagnostics={'accept': np.array([1.0, 0.0, 1.0, 1.0])})
        assert chain.acceptance_rate == pytest.approx(0.75)
        assert self._make_chain().acceptance_rate is None

    def test_save_and_load(self, tmp_path):
        chain = Chain(
            range=MCRange(10, burnin=2, thinning=2),
            samples=np.arange(8.0).reshape(4, 2),
            logtargets=np.array([-1.0, -2.0, -3.0, -4.0]),
            diagnostics={'accept': np.array([1.0, 0.0, 1.0, 1.0])},
            runtime=1.25,
            provenance={'sampler': 'RandomWalkMetropolis'},
        )
        path = chain.save(tmp_path / 'chain')
        loaded = Chain.load(path)

        assert loaded.range == chain.range
        np.testing.assert_array_equal(loaded.samples, chain.samples)
        np.testing.assert_array_equal(loaded.diagnostics['accept'], chain.diagnostics['accept'])
        assert loaded.gradients is None
        assert loaded.runtime == 1.25
        assert loaded.provenance == {'sampler': 'RandomWalkMetropolis'}


# ============================================================================
# TUNER TESTS
# ============================================================================

class TestTuners:

    def test_initialize_state(self):
        tune = VanillaTuner(period=50).initialize_state(0.5)
        assert (tune.proposed, tune.accepted, tune.totproposed, tune.scale) == (0, 0, 50, 0.5)

    def test_non_positive_initial_scale_raises(self):
        with pytest.raises(ConfigurationError):
            VanillaTuner().initialize_state(0.0)

    def test_window_closes_only_when_full(self):
        tuner = VanillaTuner(period=3)
        tune = tuner.initialize_state(1.0)
        for _ in range(2):
            tuner.observe(tune, True)
            assert not tuner.maybe_adapt(tune)
        tuner.observe(tune, False)
        assert tuner.maybe_adapt(tune)
        assert tune.proposed == 0 and tune.accepted == 0
        assert tune.scale == 1.0

    def test_score_is_one_at_target(self):
        tuner = AcceptanceRateTuner(target_rate=0.3)
        assert tuner.score(0.3) == pytest.approx(1.0)
        assert tuner.score(0.9) > 1.0
        assert tuner.score(0.0) < 1.0

    def test_acceptance_rate_tuner_moves_scale(self):
        tuner = AcceptanceRateTuner(target_rate=0.234, period=10)

        high = tuner.initialize_state(1.0)
        for _ in range(10):
            tuner.observe(high, True)
        tuner.maybe_adapt(high)
        assert high.scale > 1.0

        low = tuner.initialize_state(1.0)
        for _ in range(10):
            tuner.observe(low, False)
        tuner.maybe_adapt(low)
        assert 0 < low.scale < 1.0

    def test_no_adaptation_when_disabled(self):
        tuner = AcceptanceRateTuner(period=2)
        tune = tuner.initialize_state(1.0)
        tuner.observe(tune, True)
        tuner.observe(tune, True)
        assert tuner.maybe_adapt(tune, adapt=False)
        assert tune.scale == 1.0

    def test_invalid_target_rate_raises(self):
        with pytest.raises(ConfigurationError, match="target_rate"):
            AcceptanceRateTuner(target_rate=1.5)
        with pytest.raises(ConfigurationError, match="period"):
            AcceptanceRateTuner(period=0)

    def test_dual_averaging_direction(self):
        tuner = DualAveragingTuner(target_rate=0.8)

        high = tuner.initialize_state(0.1)
        tuner.observe(high, True, accept_prob=1.0)
        tuner.maybe_adapt(high)

        low = tuner.initialize_state(0.1)
        tuner.observe(low, False, accept_prob=0.0)
        tuner.maybe_adapt(low)

        assert high.scale > low.scale > 0
        assert high.iteration == 1

    def test_dual_averaging_freeze_uses_averaged_iterate(self):
        tuner = DualAveragingTuner()
        tune = tuner.initialize_state(0.1)
        for prob in [0.2, 0.9, 0.5, 0.7]:
            tuner.observe(tune, True, accept_prob=prob)
            tuner.maybe_adapt(tune)
        tuner.freeze(tune)
        assert tune.scale == pytest.approx(math.exp(tune.log_scale_bar))


# ============================================================================
# OUTPUT TESTS
# ============================================================================

class TestOutput:

    def _state(self, value, accept=True):
        state = ParameterState.from_value(value)
        state.logtarget = -0.5 * float(np.sum(np.square(value)))
        state.diagnostics['accept'] = accept
        return state

    def test_nstate_overflow_raises(self):
        output = NStateOutput(size=1, n=2)
        output.copy(self._state(0.1), 0)
        output.copy(self._state(0.2), 1)
        with pytest.raises(OutputOverflowError, match="slot 2"):
            output.copy(self._state(0.3), 2)

    def test_nstate_resizable_grows(self):
        output = NStateOutput(size=1, n=1, resizable=True)
        for i in range(5):
            output.copy(self._state(float(i)), i)
        chain = output.to_chain(MCRange(5))
        assert chain.nsamples == 5
        np.testing.assert_array_equal(chain.samples[:, 0], np.arange(5.0))

    def test_to_chain_trims_to_saved_count(self):
        output = NStateOutput(size=2, n=4)
        output.copy(self._state([1.0, 2.0], accept=False), 0)
        chain = output.to_chain(MCRange(4), runtime=0.5)
        assert chain.samples.shape == (1, 2)
        assert chain.diagnostics['accept'][0] == 0.0

    def test_to_chain_starts_at_first_written_slot(self):
        output = NStateOutput(size=1, n=6)
        for i in range(3, 6):
            output.copy(self._state(float(i)), i)
        chain = output.to_chain(MCRange(6))
        assert output.start == 3
        np.testing.assert_array_equal(chain.samples[:, 0], [3.0, 4.0, 5.0])

    def test_close_marks_output_finished(self):
        output = NStateOutput(size=1, n=1)
        assert not output.closed
        output.close()
        assert output.closed

    def test_missing_diagnostic_is_nan(self):
        output = NStateOutput(size=1, n=1, diagnostics=('accept', 'n_leapfrog'))
        output.copy(self._state(0.0), 0)
        assert np.isnan(output.diagnostics['n_leapfrog'][0])

    def test_invalid_destination_raises(self):
        with pytest.raises(ConfigurationError, match="destination"):
            OutputOptions(destination='database')

    def test_stream_requires_filepath(self):
        with pytest.raises(ConfigurationError, match="filepath"):
            OutputOptions(destination=OutputDestination.IOSTREAM)

    def test_destination_string_is_resolved(self):
        assert OutputOptions(destination='nstate').destination is OutputDestination.NSTATE


# ============================================================================
# MODEL TESTS
# ============================================================================

class TestLogTargetModel:

    def test_logtarget_and_gradient(self, std_normal):
        x = jnp.array([1.0, 2.0])
        assert std_normal.logtarget(x) == pytest.approx(-2.5)
        value, grad = std_normal.logtarget_and_grad(x)
        assert value == pytest.approx(-2.5)
        np.testing.assert_allclose(np.asarray(grad), [-1.0, -2.0])

    def test_default_metric_is_negative_hessian(self, std_normal):
        np.testing.assert_allclose(np.asarray(std_normal.metric(jnp.zeros(2))), np.eye(2), atol=1e-12)

    def test_riemannian_hamiltonian(self, std_normal):
        h = std_normal.riemannian_hamiltonian(jnp.zeros(2), jnp.array([1.0, 0.0]))
        assert h == pytest.approx(0.5)

    def test_as_model(self):
        model = as_model(lambda x: -jnp.sum(x ** 2))
        assert isinstance(model, LogTargetModel)
        assert as_model(model) is model
        with pytest.raises(TypeError):
            as_model(3)


# ============================================================================
# ERROR HANDLING TESTS
# ============================================================================

class TestErrorHandling:

    def test_check_positive(self):
        check_positive('Test', 'scale', [0.5, 2.0])
        for bad in [0.0, -1.0, [1.0, 0.0], float('nan'), []]:
            with pytest.raises(ConfigurationError, match="scale"):
                check_positive('Test', 'scale', bad)

    def test_diagnose_stuck_chain(self):
        chain = Chain(range=MCRange(10), samples=np.ones((10, 2)), logtargets=np.zeros(10),
                      diagnostics={'accept': np.zeros(10)})
        diagnostics = diagnose_chain_issues(chain)
        assert any("stuck" in w for w in diagnostics['warnings'])
        assert any("very low" in w for w in diagnostics['warnings'])
        assert diagnostics['issues'] == []

    def test_diagnose_non_finite(self):
        samples = np.random.default_rng(0).normal(size=(10, 1))
        samples[3, 0] = np.nan
        chain = Chain(range=MCRange(10), samples=samples, logtargets=np.zeros(10))
        assert diagnose_chain_issues(chain)['issues']

    def test_diagnose_keeps_existing_entries(self):
        chain = Chain(range=MCRange(5), samples=np.zeros((5, 1)), logtargets=np.full(5, np.nan))
        diagnostics = diagnose_chain_issues(chain, {'issues': ['prior is improper']})
        assert diagnostics['issues'][0] == 'prior is improper'
        assert "Log-targets contain NaN or Inf values" in diagnostics['issues']
        assert diagnostics['warnings'] and diagnostics['info']

    def test_log_diagnostics_reports_each_category(self, caplog):
        chain = Chain(range=MCRange(10), samples=np.ones((10, 1)), logtargets=np.zeros(10),
                      diagnostics={'accept': np.zeros(10)})
        with caplog.at_level(logging.INFO, logger='mcjob'):
            log_diagnostics(diagnose_chain_issues(chain))
        assert "[WARN] WARNINGS:" in caplog.text
        assert "[INFO] INFO:" in caplog.text
        assert "No issues detected" not in caplog.text

    def test_log_diagnostics_clean_chain(self, caplog):
        samples = np.random.default_rng(1).normal(size=(20, 1))
        chain = Chain(range=MCRange(20), samples=samples, logtargets=-0.5 * samples[:, 0] ** 2,
                      diagnostics={'accept': np.tile([1.0, 0.0], 10)})
        with caplog.at_level(logging.INFO, logger='mcjob'):
            log_diagnostics(diagnose_chain_issues(chain))
        assert "[OK] No issues detected" in caplog.text

    def test_log_acceptance_summary(self, caplog):
        def chain_with(accept):
            n = len(accept)
            return Chain(range=MCRange(n), samples=np.zeros((n, 1)), logtargets=np.zeros(n),
                         diagnostics={'accept': np.asarray(accept, dtype=float)})

        chains = [chain_with([1, 0, 1, 1]), chain_with([0, 0, 0, 0]),
                  Chain(range=MCRange(2), samples=np.zeros((2, 1)), logtargets=np.zeros(2))]
        with caplog.at_level(logging.INFO, logger='mcjob'):
            rates = log_acceptance_summary(chains, ['good', 'stuck', 'slice'])
        np.testing.assert_array_equal(rates[:2], [0.75, 0.0])
        assert np.isnan(rates[2])
        assert "Acceptance Rates (2 chains)" in caplog.text
        assert "Low chains: stuck" in caplog.text


# ============================================================================
# JAX CONFIGURATION
# ============================================================================

class TestJaxConfig:

    def test_unwritable_cache_dir_is_logged(self, monkeypatch, caplog):
        import mcjob.jax_config

        def refuse(self, *args, **kwargs):
            raise PermissionError(f"read-only: {self}")

        monkeypatch.setattr(pathlib.Path, 'mkdir', refuse)
        with caplog.at_level(logging.DEBUG, logger='mcjob'):
            importlib.reload(mcjob.jax_config)
        assert "Persistent compilation cache disabled" in caplog.text
        assert "read-only" in caplog.text
