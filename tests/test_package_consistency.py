"""
Package consistency regression tests.

Verify that the top-level hohmm namespace re-exports the same objects as
the submodules, and that a model built through either route behaves the same.
"""
import pytest
import numpy as np

import hohmm


class TestPackageImports:
    """Verify all expected symbols are importable from package."""

    def test_version(self):
        assert isinstance(hohmm.__version__, str)
        assert hohmm.__version__.count('.') == 2

    def test_core_imports(self):
        from hohmm.core.hmm import HigherOrderHMM, ScoreKind
        from hohmm.core.differentiable import DifferentiableHigherOrderHMM
        from hohmm.core.sampling import SamplingHigherOrderHMM
        assert hohmm.HigherOrderHMM is HigherOrderHMM
        assert hohmm.ScoreKind is ScoreKind
        assert hohmm.DifferentiableHigherOrderHMM is DifferentiableHigherOrderHMM
        assert hohmm.SamplingHigherOrderHMM is SamplingHigherOrderHMM

    def test_model_io_imports(self):
        from hohmm.core.model_io import load_model, save_model, load_model_with_metadata
        assert hohmm.load_model is load_model
        assert hohmm.save_model is save_model
        assert hohmm.load_model_with_metadata is load_model_with_metadata

    def test_training_imports(self):
        from hohmm.training.parallel import TrainingCoordinator
        from hohmm.training.objective import LogPosteriorObjective, optimize
        assert callable(optimize)
        assert TrainingCoordinator is not None
        assert LogPosteriorObjective is not None

    def test_cli_imports(self):
        from hohmm.cli.train import main as train_main
        from hohmm.cli.apply import main as apply_main
        assert callable(train_main)
        assert callable(apply_main)

    def test_errors_share_base(self):
        for error in (hohmm.ComputationError, hohmm.InvalidPathError,
                      hohmm.ModelConfigurationError, hohmm.NotTrainedError,
                      hohmm.TrainingError, hohmm.UnsupportedTrainingModeError,
                      hohmm.WrongAlphabetError, hohmm.WrongLengthError):
            assert issubclass(error, hohmm.HMMError)


class TestTopLevelUsage:
    """The short import path builds working models."""

    def test_factory_model(self):
        model = hohmm.create_discrete_ergodic_hmm(hohmm.DNA, 2, order=2)
        seq = hohmm.DNA.encode("ACGTTGCA")
        assert np.isfinite(model.log_prob(seq))

    def test_string_input(self):
        model = hohmm.create_discrete_ergodic_hmm(hohmm.DNA, 2)
        np.testing.assert_allclose(model.log_prob("ACGT"),
                                   model.log_prob(hohmm.DNA.encode("ACGT")))
