"""
Softmax-parameterised categorical distributions with Dirichlet priors.

Shared building block of emissions and transition elements. Parameters
are unnormalised log-probabilities; the probability of outcome i is
exp(params[i] - log_norm) with log_norm = logsumexp(params).
"""

from typing import Any, Dict, Iterable, Optional, Tuple

import numpy as np
from scipy.special import gammaln, logsumexp

from hohmm.core.errors import ModelConfigurationError


class CategoricalParameters:
    """Categorical distribution over `size` outcomes with a sufficient statistic."""

    def __init__(self, hyper_parameters: np.ndarray,
                 probabilities: Optional[np.ndarray] = None):
        self.hyper_parameters = np.asarray(hyper_parameters, dtype=float)
        if self.hyper_parameters.ndim != 1:
            raise ModelConfigurationError("Hyper-parameters must be a 1-d array")
        if np.any(self.hyper_parameters < 0) or not np.all(np.isfinite(self.hyper_parameters)):
            raise ModelConfigurationError(
                f"Hyper-parameters must be finite and non-negative: {self.hyper_parameters}"
            )
        self.size = len(self.hyper_parameters)
        self.statistic = np.zeros(self.size)

        if probabilities is None:
            probabilities = self._mean(self.hyper_parameters)
        self.set_probabilities(probabilities)

    # ------------------------------------------------------------------
    # Parameter access
    # ------------------------------------------------------------------

    def _mean(self, alpha: np.ndarray) -> np.ndarray:
        total = alpha.sum()
        if total == 0:
            return np.full(self.size, 1.0 / self.size) if self.size > 0 else alpha
        return alpha / total

    def set_probabilities(self, probabilities):
        probabilities = np.asarray(probabilities, dtype=float)
        if probabilities.shape != (self.size,):
            raise ModelConfigurationError(
                f"Expected {self.size} probabilities, got shape {probabilities.shape}"
            )
        if np.any(probabilities < 0):
            raise ModelConfigurationError(f"Negative probabilities: {probabilities}")
        with np.errstate(divide='ignore'):
            self.set_log_parameters(np.log(probabilities))

    def set_log_parameters(self, params):
        self.params = np.array(params, dtype=float)
        self._compute_log_probs()

    def _compute_log_probs(self):
        if self.size == 0:
            self.log_norm = 0.0
            self.log_probs = self.params
            self.probs = self.params
            return
        self.log_norm = float(logsumexp(self.params))
        self.log_probs = self.params - self.log_norm
        self.probs = np.exp(self.log_probs)

    def copy_from(self, other: 'CategoricalParameters'):
        self.set_log_parameters(other.params)

    def duplicate(self) -> 'CategoricalParameters':
        """Copy sharing the (read-only) hyper-parameters, with a fresh statistic."""
        clone = CategoricalParameters.__new__(CategoricalParameters)
        clone.hyper_parameters = self.hyper_parameters
        clone.size = self.size
        clone.statistic = np.zeros(self.size)
        clone.set_log_parameters(self.params)
        return clone

    # ------------------------------------------------------------------
    # Sufficient statistic
    # ------------------------------------------------------------------

    def reset_statistic(self):
        self.statistic[:] = 0.0

    def add_to_statistic(self, index: int, weight: float):
        self.statistic[index] += weight

    def join(self, others: Iterable['CategoricalParameters']):
        """Sum the statistics of all duplicates and copy the total back to each."""
        others = list(others)
        total = self.statistic.copy()
        for o in others:
            total += o.statistic
        self.statistic[:] = total
        for o in others:
            o.statistic[:] = total

    def estimate(self):
        """Closed-form update: (statistic + hyper) / sum, uniform if the sum is 0."""
        if self.size == 0:
            return
        self.set_probabilities(self._mean(self.statistic + self.hyper_parameters))

    def draw(self, rng: np.random.Generator):
        """Draw parameters from Dirichlet(statistic + hyper), Dirichlet(1) if empty."""
        if self.size == 0:
            return
        alpha = self.statistic + self.hyper_parameters
        if alpha.sum() == 0:
            alpha = np.ones(self.size)
        self.set_probabilities(_dirichlet(alpha, rng))

    def initialize_randomly(self, rng: np.random.Generator):
        if self.size == 0:
            return
        alpha = self.hyper_parameters
        if alpha.sum() == 0:
            alpha = np.ones(self.size)
        self.set_probabilities(_dirichlet(alpha, rng))

    # ------------------------------------------------------------------
    # Prior and derivatives
    # ------------------------------------------------------------------

    def log_prior(self) -> float:
        """Unnormalised log Dirichlet density: sum(h * params) - sum(h) * log_norm."""
        h = self.hyper_parameters
        mask = h > 0
        if not np.any(mask):
            return 0.0
        return float(np.dot(h[mask], self.params[mask]) - h.sum() * self.log_norm)

    def add_prior_gradient(self, grad: np.ndarray, offset: int):
        h = self.hyper_parameters
        grad[offset:offset + self.size] += h - h.sum() * self.probs

    def log_gamma_score(self) -> float:
        """Dirichlet-multinomial log marginal of the current statistic."""
        h = self.hyper_parameters
        mask = h > 0
        if not np.any(mask):
            return 0.0
        h = h[mask]
        n = self.statistic[mask]
        return float(gammaln(h.sum()) - gammaln(h.sum() + n.sum())
                     + np.sum(gammaln(h + n) - gammaln(h)))

    def partials(self, index: int, offset: int) -> Tuple[np.ndarray, np.ndarray]:
        """Sparse derivative of log p(index) w.r.t. the log-parameters."""
        values = -self.probs.copy()
        values[index] += 1.0
        return np.arange(offset, offset + self.size), values

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hyper_parameters': self.hyper_parameters.tolist(),
            'probabilities': self.probs.tolist(),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'CategoricalParameters':
        return cls(np.array(d['hyper_parameters']), np.array(d['probabilities']))


def _dirichlet(alpha: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """Dirichlet draw that tolerates zero entries in alpha (they get probability 0)."""
    g = np.zeros(len(alpha))
    positive = alpha > 0
    g[positive] = rng.gamma(alpha[positive])
    total = g.sum()
    if total == 0:
        return alpha / alpha.sum()
    return g / total
