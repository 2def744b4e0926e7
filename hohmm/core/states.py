"""HMM states: an emission reference plus strand, or nothing for silent states."""

from typing import Any, Dict, Optional

import numpy as np

from hohmm.core.emissions import DiscreteEmission


class State:
    """
    One state of a HigherOrderHMM.

    A state without an emission is silent: taking it consumes no symbol
    and does not advance the layer.
    """

    def __init__(self, emission: Optional[DiscreteEmission] = None,
                 forward_strand: bool = True, name: Optional[str] = None):
        self.emission = emission
        self.forward_strand = forward_strand
        self.name = name

    @property
    def silent(self) -> bool:
        return self.emission is None

    def log_score(self, seq: np.ndarray, pos: int) -> float:
        if self.silent:
            return 0.0
        return self.emission.log_score(seq, pos, self.forward_strand)

    def log_scores(self, segment: np.ndarray) -> np.ndarray:
        if self.silent:
            return np.zeros(len(segment))
        return self.emission.log_scores(segment, self.forward_strand)

    def log_score_and_partials(self, seq: np.ndarray, pos: int, offset: int):
        return self.emission.log_score_and_partials(seq, pos, self.forward_strand, offset)

    def add_to_statistic(self, seq: np.ndarray, pos: int, weight: float):
        if not self.silent:
            self.emission.add_to_statistic(seq, pos, self.forward_strand, weight)

    def with_emission(self, emission: Optional[DiscreteEmission]) -> 'State':
        return State(emission, self.forward_strand, self.name)

    def to_dict(self, emission_index: int) -> Dict[str, Any]:
        return {
            'name': self.name,
            'forward_strand': self.forward_strand,
            'emission': None if self.silent else emission_index,
        }

    def __repr__(self) -> str:
        kind = 'silent' if self.silent else ('+' if self.forward_strand else '-')
        return f"State({self.name!r}, {kind})"
