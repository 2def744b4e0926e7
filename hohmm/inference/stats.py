"""hohmm segment statistics for decoded sequences."""

from typing import Dict, Optional

import numpy as np
import pandas as pd


class SegmentStats:
    """Collects segment statistics from decoded sequences."""

    def __init__(self, state_names: Optional[Dict[int, str]] = None):
        self.state_names = state_names or {}
        self.sequence_lengths = []
        self.log_likelihoods = []
        self.explained_lengths = []
        self.segments_per_sequence = []
        self.segment_sizes: Dict[int, list] = {}
        self.state_coverage: Dict[int, int] = {}
        self.total_sequences = 0
        self.unexplained_sequences = 0

    def add_sequence(self, length: int, segment_states: np.ndarray,
                     segment_sizes: np.ndarray, log_likelihood: float):
        """Add statistics from a single decoded sequence."""
        self.total_sequences += 1
        self.sequence_lengths.append(length)
        if not np.isfinite(log_likelihood):
            self.unexplained_sequences += 1
            return

        self.log_likelihoods.append(log_likelihood)
        self.explained_lengths.append(length)
        self.segments_per_sequence.append(len(segment_states))
        for state, size in zip(segment_states, segment_sizes):
            state = int(state)
            self.segment_sizes.setdefault(state, []).append(int(size))
            self.state_coverage[state] = self.state_coverage.get(state, 0) + int(size)

    def add_table(self, segments: pd.DataFrame, lengths: Dict[str, int]):
        """Add every sequence of an annotate_records table."""
        by_name = dict(tuple(segments.groupby('name', sort=False))) if len(segments) else {}
        for name, length in lengths.items():
            group = by_name.get(name)
            if group is None:
                self.add_sequence(length, np.array([]), np.array([]), -np.inf)
            else:
                self.add_sequence(length, group['state'].to_numpy(),
                                  (group['end'] - group['start']).to_numpy(),
                                  float(group['log_likelihood'].iloc[0]))

    def _name(self, state: int) -> str:
        return self.state_names.get(state, str(state))

    def get_summary(self) -> dict:
        """Generate summary statistics."""
        summary = {
            'total_sequences': self.total_sequences,
            'unexplained_sequences': self.unexplained_sequences,
        }

        if self.sequence_lengths:
            summary['length_median'] = np.median(self.sequence_lengths)
            summary['length_mean'] = np.mean(self.sequence_lengths)

        if self.log_likelihoods:
            summary['log_likelihood_total'] = float(np.sum(self.log_likelihoods))
            summary['log_likelihood_per_symbol'] = float(
                np.sum(self.log_likelihoods) / max(1, sum(self.explained_lengths)))

        if self.segments_per_sequence:
            summary['segments_per_sequence_mean'] = np.mean(self.segments_per_sequence)

        total_positions = sum(self.state_coverage.values())
        for state in sorted(self.segment_sizes):
            sizes = self.segment_sizes[state]
            name = self._name(state)
            summary[f'state_{name}_segments'] = len(sizes)
            summary[f'state_{name}_size_median'] = np.median(sizes)
            summary[f'state_{name}_size_mean'] = np.mean(sizes)
            summary[f'state_{name}_coverage'] = self.state_coverage[state] / total_positions

        return summary

    def write_summary(self, filepath: str):
        """Write summary statistics to a text file."""
        summary = self.get_summary()

        with open(filepath, 'w') as f:
            f.write("hohmm Segment Statistics\n")
            f.write("=" * 50 + "\n\n")

            f.write("Sequence Statistics\n")
            f.write("-" * 30 + "\n")
            f.write(f"Total sequences:            {summary['total_sequences']:,}\n")
            f.write(f"Probability 0 sequences:    {summary['unexplained_sequences']:,}\n")
            if 'length_median' in summary:
                f.write(f"Length (median):            {summary['length_median']:.0f}\n")
                f.write(f"Length (mean):              {summary['length_mean']:.1f}\n")
            if 'log_likelihood_total' in summary:
                f.write(f"Log-likelihood (total):     {summary['log_likelihood_total']:.3f}\n")
                f.write(f"Log-likelihood per symbol:  {summary['log_likelihood_per_symbol']:.4f}\n")
            if 'segments_per_sequence_mean' in summary:
                f.write(f"Segments per sequence:      {summary['segments_per_sequence_mean']:.1f}\n")
            f.write("\n")

            f.write("State Statistics\n")
            f.write("-" * 30 + "\n")
            for state in sorted(self.segment_sizes):
                name = self._name(state)
                f.write(f"State {name}: {summary[f'state_{name}_segments']:,} segments, "
                        f"size median {summary[f'state_{name}_size_median']:.0f}, "
                        f"mean {summary[f'state_{name}_size_mean']:.1f}, "
                        f"coverage {summary[f'state_{name}_coverage'] * 100:.1f}%\n")
