"""
Emissions consumed by HMM states.

DiscreteEmission scores one symbol per position. It is trainable
(sufficient statistics + closed-form estimate), differentiable (sparse
partial derivatives w.r.t. its log-parameters) and samplable (draw from
the Dirichlet posterior).
"""

from typing import Any, Dict, Optional, Tuple

import numpy as np

from hohmm.core.alphabet import DiscreteAlphabet
from hohmm.core.categorical import CategoricalParameters
from hohmm.core.errors import ModelConfigurationError


class DiscreteEmission:
    """
    Categorical emission over a discrete alphabet.

    Args:
        alphabet: Symbols this emission scores
        ess: Equivalent sample size; spread uniformly over the symbols
            when hyper_parameters is not given
        hyper_parameters: Dirichlet hyper-parameters, one per symbol
        probabilities: Initial emission probabilities (defaults to the
            prior mean, or uniform if the prior is flat)
    """

    def __init__(self, alphabet: DiscreteAlphabet, ess: float = 0.0,
                 hyper_parameters: Optional[np.ndarray] = None,
                 probabilities: Optional[np.ndarray] = None):
        self.alphabet = alphabet
        if hyper_parameters is None:
            if ess < 0:
                raise ModelConfigurationError(f"ess must be non-negative, got {ess}")
            hyper_parameters = np.full(alphabet.size, ess / alphabet.size)
        elif len(hyper_parameters) != alphabet.size:
            raise ModelConfigurationError(
                f"Expected {alphabet.size} hyper-parameters, got {len(hyper_parameters)}"
            )
        self.parameters = CategoricalParameters(hyper_parameters, probabilities)

    @property
    def number_of_parameters(self) -> int:
        return self.parameters.size

    @property
    def probabilities(self) -> np.ndarray:
        return self.parameters.probs

    def _code(self, seq: np.ndarray, pos: int, forward: bool) -> int:
        code = seq[pos]
        return code if forward else self.alphabet.complement_codes[code]

    def log_score(self, seq: np.ndarray, pos: int, forward: bool = True) -> float:
        return self.parameters.log_probs[self._code(seq, pos, forward)]

    def log_scores(self, segment: np.ndarray, forward: bool = True) -> np.ndarray:
        """Vectorised log_score for every position of a segment."""
        codes = segment if forward else self.alphabet.complement_codes[segment]
        return self.parameters.log_probs[codes]

    def log_score_and_partials(self, seq: np.ndarray, pos: int, forward: bool,
                               offset: int) -> Tuple[float, np.ndarray, np.ndarray]:
        code = self._code(seq, pos, forward)
        indices, values = self.parameters.partials(code, offset)
        return self.parameters.log_probs[code], indices, values

    # Training ---------------------------------------------------------

    def reset_statistic(self):
        self.parameters.reset_statistic()

    def add_to_statistic(self, seq: np.ndarray, pos: int, forward: bool, weight: float):
        self.parameters.add_to_statistic(self._code(seq, pos, forward), weight)

    def join_statistics(self, others):
        self.parameters.join(o.parameters for o in others)

    def estimate_from_statistic(self):
        self.parameters.estimate()

    def draw_parameters_from_statistic(self, rng: np.random.Generator):
        self.parameters.draw(rng)

    def initialize_randomly(self, rng: np.random.Generator):
        self.parameters.initialize_randomly(rng)

    def log_prior(self) -> float:
        return self.parameters.log_prior()

    def log_gamma_score(self) -> float:
        return self.parameters.log_gamma_score()

    def add_prior_gradient(self, grad: np.ndarray, offset: int):
        self.parameters.add_prior_gradient(grad, offset)

    # Parameters -------------------------------------------------------

    def get_parameters(self) -> np.ndarray:
        return self.parameters.params.copy()

    def set_parameters(self, params: np.ndarray):
        self.parameters.set_log_parameters(params)

    def copy_parameters_from(self, other: 'DiscreteEmission'):
        self.parameters.copy_from(other.parameters)

    def duplicate(self) -> 'DiscreteEmission':
        clone = DiscreteEmission.__new__(DiscreteEmission)
        clone.alphabet = self.alphabet
        clone.parameters = self.parameters.duplicate()
        return clone

    def to_dict(self) -> Dict[str, Any]:
        d = self.parameters.to_dict()
        d['type'] = 'DiscreteEmission'
        d['alphabet'] = self.alphabet.to_dict()
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'DiscreteEmission':
        return cls(DiscreteAlphabet.from_dict(d['alphabet']),
                   hyper_parameters=np.array(d['hyper_parameters']),
                   probabilities=np.array(d['probabilities']))

    def __repr__(self) -> str:
        probs = np.array2string(self.probabilities, precision=3)
        return f"DiscreteEmission({self.alphabet!r}, probs={probs})"
