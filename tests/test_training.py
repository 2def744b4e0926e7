"""
Tests for hohmm.training: parameter sets, termination conditions and the
parallel EM coordinator.
"""
import pytest
import numpy as np

from hohmm.core.errors import TrainingError, UnsupportedTrainingModeError, WrongLengthError
from hohmm.core.hmm import HigherOrderHMM
from hohmm.training.parallel import TrainingCoordinator
from hohmm.training.parameters import (
    BaumWelchParameters,
    CombinedCondition,
    IterationCondition,
    NumericalParameters,
    SamplingParameters,
    SmallDifferenceCondition,
    TimeCondition,
    ViterbiParameters,
)


class TestTerminationConditions:
    """do_next_iteration of each condition."""

    def test_iteration(self):
        c = IterationCondition(3)
        assert c.do_next_iteration(0, -10, -5, 0.0)
        assert c.do_next_iteration(1, -10, -5, 0.0)
        assert not c.do_next_iteration(2, -10, -5, 0.0)

    def test_iteration_must_be_positive(self):
        with pytest.raises(ValueError):
            IterationCondition(0)

    def test_small_difference(self):
        c = SmallDifferenceCondition(0.1)
        assert c.do_next_iteration(0, -np.inf, -5.0, 0.0)
        assert c.do_next_iteration(1, -5.0, -4.0, 0.0)
        assert not c.do_next_iteration(2, -4.0, -3.95, 0.0)

    def test_time(self):
        c = TimeCondition(1.0)
        assert c.do_next_iteration(0, 0, 0, 0.5)
        assert not c.do_next_iteration(0, 0, 0, 1.5)

    def test_combined_any_stops(self):
        c = CombinedCondition(IterationCondition(10), SmallDifferenceCondition(0.1))
        assert not c.do_next_iteration(1, -4.0, -3.99, 0.0)
        assert c.do_next_iteration(1, -4.0, -3.0, 0.0)

    def test_combined_require_all(self):
        c = CombinedCondition(IterationCondition(10), SmallDifferenceCondition(0.1),
                              require_all=True)
        assert c.do_next_iteration(1, -4.0, -3.99, 0.0)
        assert not c.do_next_iteration(9, -4.0, -3.99, 0.0)

    def test_combined_needs_conditions(self):
        with pytest.raises(ValueError):
            CombinedCondition()


class TestParameterSets:
    """Dataclass validation."""

    def test_defaults(self):
        p = BaumWelchParameters()
        assert p.n_starts == 1
        assert p.n_threads == 1
        assert isinstance(p.termination, CombinedCondition)

    def test_invalid_starts(self):
        with pytest.raises(ValueError):
            ViterbiParameters(n_starts=0)

    def test_invalid_threads(self):
        with pytest.raises(ValueError):
            BaumWelchParameters(n_threads=0)

    def test_invalid_sampling(self):
        with pytest.raises(ValueError):
            SamplingParameters(stationary_steps=0)
        with pytest.raises(ValueError):
            SamplingParameters(max_burn_in=0)


class TestCoordinator:
    """Partitioning, barrier and error aggregation."""

    def test_partitions_cover_data(self, order1_model, training_sequences):
        coordinator = TrainingCoordinator(order1_model, training_sequences,
                                          np.ones(len(training_sequences)), n_threads=5)
        with coordinator:
            covered = [n for part in coordinator.partitions for n in part]
            assert covered == list(range(len(training_sequences)))
            assert coordinator.workers[0] is order1_model
            assert coordinator.n_workers == 5

    def test_threads_capped_by_data(self, order1_model, training_sequences):
        with TrainingCoordinator(order1_model, training_sequences[:2], np.ones(2),
                                 n_threads=8) as coordinator:
            assert coordinator.n_workers == 2

    def test_iteration_score_is_weighted_sum(self, order1_model, training_sequences):
        weights = np.linspace(0.5, 2.0, len(training_sequences))
        expected = sum(w * order1_model.log_prob(seq)
                       for seq, w in zip(training_sequences, weights))
        with TrainingCoordinator(order1_model, training_sequences, weights,
                                 n_threads=3) as coordinator:
            score = coordinator.one_iteration('baum_welch')
        np.testing.assert_allclose(score, expected)

    def test_joined_statistics_match_single_worker(self, training_sequences, make_model):
        single = make_model()
        with TrainingCoordinator(single, training_sequences, np.ones(len(training_sequences)),
                                 n_threads=1) as coordinator:
            coordinator.one_iteration('baum_welch')
            coordinator.join()
        multi = make_model()
        with TrainingCoordinator(multi, training_sequences, np.ones(len(training_sequences)),
                                 n_threads=4) as coordinator:
            coordinator.one_iteration('baum_welch')
            coordinator.join()
        for a, b in zip(single.transition.elements, multi.transition.elements):
            np.testing.assert_allclose(a.parameters.statistic, b.parameters.statistic)

    def test_unknown_iteration_kind(self, order1_model, training_sequences):
        with TrainingCoordinator(order1_model, training_sequences,
                                 np.ones(len(training_sequences))) as coordinator:
            with pytest.raises(ValueError):
                coordinator.one_iteration('newton')

    @pytest.mark.parametrize('n_threads', [1, 3])
    def test_worker_error_becomes_training_error(self, training_sequences, monkeypatch,
                                                 make_model, n_threads):
        model = make_model()

        def boom(self, seq, weight=1.0):
            raise RuntimeError("worker exploded")

        monkeypatch.setattr(HigherOrderHMM, 'baum_welch_step', boom)
        with TrainingCoordinator(model, training_sequences, np.ones(len(training_sequences)),
                                 n_threads=n_threads) as coordinator:
            with pytest.raises(TrainingError, match="worker exploded"):
                coordinator.one_iteration('baum_welch')
            assert coordinator.aborted

    def test_error_in_one_worker_stops_iteration(self, training_sequences, monkeypatch,
                                                make_model):
        model = make_model()
        original = HigherOrderHMM.baum_welch_step

        def fail_on_worker_0(self, seq, weight=1.0):
            if self is model:
                raise RuntimeError("first worker failed")
            return original(self, seq, weight)

        monkeypatch.setattr(HigherOrderHMM, 'baum_welch_step', fail_on_worker_0)
        with TrainingCoordinator(model, training_sequences, np.ones(len(training_sequences)),
                                 n_threads=3) as coordinator:
            with pytest.raises(TrainingError, match="1 of 3"):
                coordinator.one_iteration('baum_welch')


class TestEMTraining:
    """Baum-Welch and Viterbi training through HigherOrderHMM.train."""

    def test_baum_welch_monotone(self, training_sequences, make_model):
        model = make_model(ess=2.0)
        params = BaumWelchParameters(termination=IterationCondition(8), skip_init=True)
        model.train(training_sequences, params=params)
        history = np.array(model.monitor_.history)
        assert len(history) == 8
        assert np.all(np.diff(history) >= -1e-8)

    def test_viterbi_training_monotone(self, training_sequences, make_model):
        model = make_model(ess=2.0)
        params = ViterbiParameters(termination=IterationCondition(6), skip_init=True)
        model.train(training_sequences, params=params)
        history = np.array(model.monitor_.history)
        assert np.all(np.diff(history) >= -1e-8)

    def test_training_improves_likelihood(self, training_sequences, make_model):
        model = make_model(ess=1.0)
        before = sum(model.log_prob(s) for s in training_sequences)
        model.train(training_sequences, params=BaumWelchParameters(
            termination=IterationCondition(20), skip_init=True))
        after = sum(model.log_prob(s) for s in training_sequences)
        assert after > before

    def test_one_and_four_workers_agree(self, training_sequences, make_model):
        results = []
        for n_threads in (1, 4):
            model = make_model(ess=2.0)
            params = BaumWelchParameters(termination=IterationCondition(5), skip_init=True,
                                         n_threads=n_threads)
            model.train(training_sequences, params=params)
            results.append(model.get_parameters())
        np.testing.assert_allclose(results[0], results[1], rtol=1e-9, atol=1e-9)

    def test_best_start_is_kept(self, training_sequences, make_model):
        model = make_model(ess=2.0)
        params = BaumWelchParameters(n_starts=3, seed=4, termination=IterationCondition(5))
        model.train(training_sequences, params=params)
        monitor = model.monitor_
        assert len(monitor.starts) == 3
        finals = [h[-1] for h in monitor.starts]
        assert monitor.best_start == int(np.argmax(finals))
        np.testing.assert_allclose(monitor.best_score, max(finals))

    def test_seeded_training_is_reproducible(self, training_sequences, make_model):
        params = []
        for _ in range(2):
            model = make_model(ess=2.0)
            model.train(training_sequences, params=BaumWelchParameters(
                n_starts=2, seed=9, termination=IterationCondition(3)))
            params.append(model.get_parameters())
        np.testing.assert_allclose(params[0], params[1])

    def test_weights_length(self, order1_model, training_sequences):
        with pytest.raises(WrongLengthError):
            order1_model.train(training_sequences, weights=[1.0, 2.0])

    def test_zero_probability_sequence_warns(self, make_model):
        model = make_model()
        model.states[0].emission.parameters.set_probabilities([1.0, 0.0])
        model.states[1].emission.parameters.set_probabilities([1.0, 0.0])
        params = BaumWelchParameters(termination=IterationCondition(1), skip_init=True)
        with pytest.warns(UserWarning, match="probability 0"):
            model.train([np.array([0, 0]), np.array([1, 1])], params=params)

    @pytest.mark.parametrize('params', [NumericalParameters(), SamplingParameters()])
    def test_unsupported_mode(self, order1_model, training_sequences, params):
        with pytest.raises(UnsupportedTrainingModeError):
            order1_model.train(training_sequences, params=params)


class TestFailedStart:
    """A worker failure keeps the best parameters seen before it."""

    def test_failure_in_first_start_restores_initial(self, training_sequences, monkeypatch,
                                                     make_model):
        model = make_model(ess=2.0)
        initial = model.get_parameters()

        def boom(self, seq, weight=1.0):
            raise RuntimeError("worker exploded")

        monkeypatch.setattr(HigherOrderHMM, 'baum_welch_step', boom)
        with pytest.raises(TrainingError):
            model.train(training_sequences, params=BaumWelchParameters(
                n_starts=2, seed=1, termination=IterationCondition(2)))
        np.testing.assert_array_equal(model.get_parameters(), initial)

    def test_failure_in_later_start_keeps_best(self, training_sequences, monkeypatch,
                                               make_model):
        reference = make_model(ess=2.0)
        reference.train(training_sequences, params=BaumWelchParameters(
            n_starts=1, seed=4, termination=IterationCondition(2)))

        model = make_model(ess=2.0)
        original = HigherOrderHMM.baum_welch_step
        # two iterations over every sequence complete the first start
        calls = {'n': 0, 'limit': 2 * len(training_sequences)}

        def fail_after_first_start(self, seq, weight=1.0):
            calls['n'] += 1
            if calls['n'] > calls['limit']:
                raise RuntimeError("second start failed")
            return original(self, seq, weight)

        monkeypatch.setattr(HigherOrderHMM, 'baum_welch_step', fail_after_first_start)
        with pytest.raises(TrainingError, match="second start failed"):
            model.train(training_sequences, params=BaumWelchParameters(
                n_starts=3, seed=4, termination=IterationCondition(2)))
        np.testing.assert_allclose(model.get_parameters(), reference.get_parameters())
