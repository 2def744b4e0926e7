"""
Tests for hohmm.inference.engine and hohmm.inference.stats modules.
"""
import pytest
import numpy as np
import pandas as pd

from hohmm.core.sequence_reader import SequenceRecord
from hohmm.inference.engine import (
    SEGMENT_COLUMNS,
    annotate_records,
    annotate_sequence,
    emitting_states,
    extract_segments,
)
from hohmm.inference.stats import SegmentStats


@pytest.fixture
def records():
    rng = np.random.default_rng(11)
    return [SequenceRecord(f"read{i}", ''.join(rng.choice(['0', '1'], size=20 + i)))
            for i in range(7)]


class TestExtractSegments:
    def test_runs(self):
        segments = extract_segments(np.array([1, 1, 0, 0, 0, 1]))
        np.testing.assert_array_equal(segments['starts'], [0, 2, 5])
        np.testing.assert_array_equal(segments['sizes'], [2, 3, 1])
        np.testing.assert_array_equal(segments['states'], [1, 0, 1])

    def test_single_run(self):
        segments = extract_segments(np.zeros(4, dtype=int))
        np.testing.assert_array_equal(segments['sizes'], [4])

    def test_empty(self):
        segments = extract_segments(np.array([]))
        assert len(segments['starts']) == 0
        assert len(segments['states']) == 0

    def test_emitting_states_drop_silent(self, silent_model):
        np.testing.assert_array_equal(emitting_states(silent_model, [0, 2, 1, 1]), [0, 1, 1])


class TestAnnotateSequence:
    def test_empty_input(self, order1_model):
        result = annotate_sequence(order1_model, np.array([], dtype=int))
        assert result['viterbi_score'] == -np.inf
        assert len(result['segment_starts']) == 0
        assert result['posteriors'] is None

    def test_segments_cover_sequence(self, order1_model):
        codes = np.array([0, 0, 0, 1, 1, 1, 1, 0, 0])
        result = annotate_sequence(order1_model, codes)
        assert result['segment_sizes'].sum() == len(codes)
        assert result['segment_starts'][0] == 0
        assert result['viterbi_score'] <= result['log_likelihood']
        assert result['segment_scores'] is None

    def test_silent_states_removed(self, silent_model):
        codes = np.array([0, 0, 0, 1, 1, 1])
        result = annotate_sequence(silent_model, codes)
        assert len(result['path']) > len(codes)
        assert len(result['states']) == len(codes)

    def test_posterior_scores(self, order1_model):
        codes = np.array([0, 0, 1, 1, 1, 0])
        result = annotate_sequence(order1_model, codes, with_posteriors=True)
        assert result['posteriors'].shape == (len(codes), order1_model.n_states)
        scores = result['segment_scores']
        assert len(scores) == len(result['segment_starts'])
        assert np.all((scores >= 0) & (scores <= 1))


class TestAnnotateRecords:
    def test_columns(self, order1_model, records):
        df = annotate_records(order1_model, records)
        assert list(df.columns) == SEGMENT_COLUMNS
        assert set(df['name']) == {r.name for r in records}
        assert set(df['state_name']) <= {'low', 'high'}

    def test_segments_cover_each_record(self, order1_model, records):
        df = annotate_records(order1_model, records)
        for record in records:
            rows = df[df['name'] == record.name]
            assert (rows['end'] - rows['start']).sum() == record.length

    def test_threads_give_same_table(self, order1_model, records):
        single = annotate_records(order1_model, records, n_threads=1, with_posteriors=True)
        multi = annotate_records(order1_model, records, n_threads=3, with_posteriors=True)
        pd.testing.assert_frame_equal(single, multi)

    def test_posteriors_out(self, order1_model, records):
        rows = []
        annotate_records(order1_model, records[:2], n_threads=2, with_posteriors=True,
                         posteriors_out=rows)
        assert len(rows) == records[0].length + records[1].length
        assert set(rows[0]) == {'name', 'position', 'p_low', 'p_high'}
        np.testing.assert_allclose(rows[0]['p_low'] + rows[0]['p_high'], 1.0)

    def test_no_posteriors_without_flag(self, order1_model, records):
        rows = []
        df = annotate_records(order1_model, records[:2], posteriors_out=rows)
        assert rows == []
        assert df['score'].isna().all()


class TestSegmentStats:
    def test_summary(self):
        stats = SegmentStats({0: 'low', 1: 'high'})
        stats.add_sequence(10, np.array([0, 1]), np.array([4, 6]), -7.0)
        stats.add_sequence(6, np.array([1]), np.array([6]), -3.0)
        summary = stats.get_summary()
        assert summary['total_sequences'] == 2
        assert summary['unexplained_sequences'] == 0
        assert summary['log_likelihood_total'] == -10.0
        np.testing.assert_allclose(summary['log_likelihood_per_symbol'], -10.0 / 16)
        assert summary['state_high_segments'] == 2
        np.testing.assert_allclose(summary['state_low_coverage'], 4 / 16)
        assert summary['segments_per_sequence_mean'] == 1.5

    def test_unexplained_sequence(self):
        stats = SegmentStats()
        stats.add_sequence(5, np.array([]), np.array([]), -np.inf)
        summary = stats.get_summary()
        assert summary['unexplained_sequences'] == 1
        assert 'log_likelihood_total' not in summary

    def test_add_table(self, order1_model, records):
        df = annotate_records(order1_model, records)
        lengths = {r.name: r.length for r in records}
        lengths['missing'] = 4
        stats = SegmentStats({0: 'low', 1: 'high'})
        stats.add_table(df, lengths)
        summary = stats.get_summary()
        assert summary['total_sequences'] == len(records) + 1
        assert summary['unexplained_sequences'] == 1
        assert summary.get('state_low_segments', 0) + summary.get('state_high_segments', 0) == len(df)

    def test_write_summary(self, tmp_path):
        stats = SegmentStats({0: 'low'})
        stats.add_sequence(3, np.array([0]), np.array([3]), -2.0)
        path = tmp_path / "stats.txt"
        stats.write_summary(str(path))
        text = path.read_text()
        assert "Total sequences" in text
        assert "State low" in text
