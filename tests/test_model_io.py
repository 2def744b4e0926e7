"""
Tests for hohmm.core.model_io module.
"""
import pytest
import numpy as np
import json
import os
import warnings

from hohmm.core.differentiable import DifferentiableHigherOrderHMM
from hohmm.core.hmm import HigherOrderHMM
from hohmm.core.model_io import (
    FORMAT_VERSION,
    load_model,
    load_model_with_metadata,
    model_from_dict,
    save_model,
)
from hohmm.core.sampling import SamplingHigherOrderHMM
from hohmm.training.parameters import SamplingParameters


class TestLoadSaveRoundTrip:
    def test_json_round_trip(self, order2_model, tmp_path):
        filepath = str(tmp_path / "model.json")
        order2_model.initialize_randomly(3)
        save_model(order2_model, filepath)

        loaded = load_model(filepath)
        assert type(loaded) is HigherOrderHMM
        np.testing.assert_allclose(loaded.get_parameters(), order2_model.get_parameters(),
                                   rtol=1e-12)
        seq = np.array([0, 1, 1, 0, 1])
        np.testing.assert_allclose(loaded.log_prob(seq), order2_model.log_prob(seq))

    def test_silent_model_round_trip(self, silent_model, tmp_path):
        filepath = str(tmp_path / "silent.json")
        save_model(silent_model, filepath)
        loaded = load_model(filepath)
        assert loaded.states[2].silent
        np.testing.assert_array_equal(loaded.transition.final_states,
                                      silent_model.transition.final_states)

    def test_metadata_preserved(self, order1_model, tmp_path):
        filepath = str(tmp_path / "model.json")
        save_model(order1_model, filepath, metadata={'algorithm': 'viterbi', 'seed': 4})

        model, metadata = load_model_with_metadata(filepath)
        assert metadata == {'algorithm': 'viterbi', 'seed': 4}
        assert model.states[0].name == 'low'

    def test_json_contains_expected_keys(self, order1_model, tmp_path):
        filepath = str(tmp_path / "model.json")
        save_model(order1_model, filepath)

        with open(filepath) as f:
            data = json.load(f)

        assert data['format_version'] == FORMAT_VERSION
        assert data['metadata'] == {}
        assert data['model']['model_type'] == 'HigherOrderHMM'
        assert 'emissions' in data['model']
        assert 'states' in data['model']
        assert 'transition' in data['model']

    def test_shared_emission_stays_shared(self, order0_model, tmp_path):
        filepath = str(tmp_path / "model.json")
        save_model(order0_model, filepath)
        loaded = load_model(filepath)
        assert len(loaded.emissions) == 1
        assert loaded.states[0].emission is loaded.states[1].emission


class TestModelTypes:
    def test_differentiable(self, differentiable_model, tmp_path):
        filepath = str(tmp_path / "model.json")
        save_model(differentiable_model, filepath)
        loaded = load_model(filepath)
        assert isinstance(loaded, DifferentiableHigherOrderHMM)
        np.testing.assert_array_equal(loaded.state_labels, differentiable_model.state_labels)

    def test_sampling_keeps_parameter_sets(self, sampling_model, training_sequences, tmp_path):
        params = SamplingParameters(seed=0, stationary_steps=3, max_burn_in=12)
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            sampling_model.train(training_sequences[:3], params=params)
        filepath = str(tmp_path / "model.json")
        save_model(sampling_model, filepath)

        loaded = load_model(filepath)
        assert isinstance(loaded, SamplingHigherOrderHMM)
        assert loaded.n_samples == sampling_model.n_samples
        np.testing.assert_allclose(loaded.log_prob([0, 1, 1]), sampling_model.log_prob([0, 1, 1]))

    def test_unknown_model_type(self, order1_model):
        d = order1_model.to_dict()
        d['model_type'] = 'MysteryHMM'
        with pytest.raises(ValueError, match="Unknown model type"):
            model_from_dict(d)

    def test_bare_dict_loadable(self, order1_model, tmp_path):
        filepath = str(tmp_path / "bare.json")
        with open(filepath, 'w') as f:
            json.dump(order1_model.to_dict(), f)
        loaded, metadata = load_model_with_metadata(filepath)
        assert metadata == {}
        np.testing.assert_allclose(loaded.log_prob([0, 1]), order1_model.log_prob([0, 1]))


class TestSaveRedirect:
    def test_npz_redirects_to_json(self, order1_model, tmp_path):
        npz_path = str(tmp_path / "model.npz")
        json_path = str(tmp_path / "model.json")

        with warnings.catch_warnings(record=True) as w:
            warnings.simplefilter("always")
            written = save_model(order1_model, npz_path)
            assert len(w) == 1
            assert "JSON format" in str(w[0].message)

        assert written == json_path
        assert os.path.exists(json_path)
        assert not os.path.exists(npz_path)

    def test_redirected_model_loadable(self, order1_model, tmp_path):
        pkl_path = str(tmp_path / "model.pickle")
        json_path = str(tmp_path / "model.json")

        with warnings.catch_warnings(record=True):
            warnings.simplefilter("always")
            save_model(order1_model, pkl_path)

        loaded = load_model(json_path)
        np.testing.assert_allclose(loaded.get_parameters(), order1_model.get_parameters())

    def test_load_requires_json(self, tmp_path):
        with pytest.raises(ValueError, match="JSON"):
            load_model(str(tmp_path / "model.npz"))
