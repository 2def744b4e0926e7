"""
Differentiable higher-order HMM.

Adds the gradient of the log score with respect to the flat log-parameter
vector (see HigherOrderHMM.get_parameters) and numerical training of the
log posterior with scipy.optimize. With state labels the score can be
made discriminative: log P(labels, seq) - log P(seq).
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from hohmm.core.errors import WrongLengthError, wrap_computation_errors
from hohmm.core.hmm import HigherOrderHMM, ScoreKind, Sequenceish, _log_sum
from hohmm.core.states import State
from hohmm.core.transitions import HigherOrderTransition


class DifferentiableHigherOrderHMM(HigherOrderHMM):
    """
    HigherOrderHMM with analytic gradients.

    Args:
        states: States, indexed 0..S-1 in the transition
        transition: Transition over these states
        name: Optional display name
        state_labels: Label of every state used by the discriminative
            objective; defaults to the state index
    """

    def __init__(self, states: Sequence[State], transition: HigherOrderTransition,
                 name: Optional[str] = None, state_labels: Optional[Sequence[int]] = None):
        super().__init__(states, transition, name)
        if state_labels is None:
            state_labels = range(self.n_states)
        self.state_labels = np.asarray(list(state_labels), dtype=np.int64)
        if len(self.state_labels) != self.n_states:
            raise WrongLengthError(
                f"{len(self.state_labels)} state labels for {self.n_states} states"
            )

    def allowed_states(self, labels: Sequence[int], length: int) -> np.ndarray:
        """Mask (length, n_states) of states whose label matches each position."""
        labels = np.asarray(labels, dtype=np.int64)
        if len(labels) != length:
            raise WrongLengthError(f"{len(labels)} labels for a window of length {length}")
        return self.state_labels[np.newaxis, :] == labels[:, np.newaxis]

    # ------------------------------------------------------------------
    # Gradient DP
    # ------------------------------------------------------------------

    def _add_child_gradient(self, g_cur: np.ndarray, g_next: Optional[np.ndarray],
                            ctx: int, child: Tuple[int, int, int, int, float], weight: float,
                            seq: np.ndarray, start: int, layer: int):
        i, s, t, adv, _ = child
        g_cur[ctx] += weight * (g_next[t] if adv else g_cur[t])
        _, idx, val = self.transition.log_score_and_partials(layer, ctx, i,
                                                             self._transition_offset)
        if len(idx):
            g_cur[ctx, idx] += weight * val
        if adv:
            _, idx, val = self.states[s].log_score_and_partials(seq, start + layer,
                                                                self.emission_offset(s))
            g_cur[ctx, idx] += weight * val

    def _backward_gradient(self, seq: np.ndarray, start: int, E: np.ndarray, viterbi: bool,
                           allowed: Optional[np.ndarray] = None) -> Tuple[float, np.ndarray]:
        """
        Backward (or Viterbi) score of (0, 0) and its gradient.

        Gradients are kept for two layers at a time. Silent targets lie
        later in the same layer and are therefore already complete when
        a context is visited.
        """
        trans = self.transition
        L = E.shape[1]
        P = self.number_of_parameters
        bwd = self._new_matrix(L)
        g_next = None
        g_cur = None

        for l in range(L, -1, -1):
            g_cur = np.zeros((trans.n_contexts(l), P))
            for c in range(trans.n_contexts(l) - 1, -1, -1):
                base = 0.0 if (l == L and trans.is_terminal(l, c)) else -np.inf
                children = self._child_scores(E, bwd, l, c, L)
                if allowed is not None:
                    children = [ch for ch in children if not ch[3] or allowed[l, ch[1]]]
                values = [base] + [ch[4] for ch in children]

                if viterbi:
                    if np.isnan(values).any():
                        bwd[l][c] = np.nan
                        continue
                    best = 0
                    for k in range(1, len(values)):
                        if values[k] > values[best]:
                            best = k
                    bwd[l][c] = values[best]
                    if best > 0 and values[best] > -np.inf:
                        self._add_child_gradient(g_cur, g_next, c, children[best - 1], 1.0,
                                                 seq, start, l)
                    continue

                total = _log_sum(values)
                bwd[l][c] = total
                if total == -np.inf:
                    continue
                for child in children:
                    if child[4] == -np.inf:
                        continue
                    w = np.exp(child[4] - total)
                    self._add_child_gradient(g_cur, g_next, c, child, w, seq, start, l)
            g_next = g_cur

        return float(bwd[0][0]), g_cur[0].copy()

    def log_score_and_gradient(self, seq: Sequenceish, start: int = 0, end: Optional[int] = None,
                               kind: ScoreKind = ScoreKind.LIKELIHOOD,
                               labels: Optional[Sequence[int]] = None
                               ) -> Tuple[float, np.ndarray]:
        """
        Log score of seq[start:end] and its gradient.

        Args:
            seq: Sequence (string or codes)
            start, end: Window
            kind: LIKELIHOOD (sum over paths) or VITERBI (best path)
            labels: Optional label per position; the score becomes
                log P(labels, seq) - log P(seq) restricted to matching states

        Returns:
            (score, gradient) with gradient of length number_of_parameters
        """
        if kind is ScoreKind.BAUM_WELCH:
            raise ValueError("Gradients are defined for LIKELIHOOD and VITERBI scores only")
        return self._score_and_gradient(seq, start, end, kind, labels)

    @wrap_computation_errors
    def _score_and_gradient(self, seq, start, end, kind, labels):
        seq, start, end = self._check_sequence(seq, start, end)
        E = self._emission_matrix(seq, start, end)
        viterbi = kind is ScoreKind.VITERBI

        score, grad = self._backward_gradient(seq, start, E, viterbi)
        if labels is None:
            return score, grad

        allowed = self.allowed_states(labels, end - start)
        if score == -np.inf:
            return -np.inf, np.zeros_like(grad)
        restricted, grad2 = self._backward_gradient(seq, start, E, viterbi, allowed)
        if restricted == -np.inf:
            return -np.inf, np.zeros_like(grad)
        return restricted - score, grad2 - grad

    def log_prior_gradient(self) -> np.ndarray:
        grad = np.zeros(self.number_of_parameters)
        for k, e in enumerate(self._emissions):
            e.add_prior_gradient(grad, self._emission_offsets[k])
        self.transition.add_prior_gradient(grad, self._transition_offset)
        return grad

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def train(self, data: Sequence[Sequenceish], weights: Optional[Sequence[float]] = None,
              params=None, labels: Optional[Sequence[Sequence[int]]] = None
              ) -> 'DifferentiableHigherOrderHMM':
        """
        Train with EM (BaumWelchParameters, ViterbiParameters) or by
        numerical optimisation of the log posterior (NumericalParameters).

        labels holds one label sequence per training sequence and is
        required by the discriminative objectives.
        """
        from hohmm.training.parameters import NumericalParameters

        if not isinstance(params, NumericalParameters):
            return super().train(data, weights, params)

        from hohmm.training.objective import LogPosteriorObjective, optimize
        from hohmm.training.parallel import TrainingCoordinator

        sequences, weights = self._check_training_data(data, weights)
        with TrainingCoordinator(self, sequences, weights, params.n_threads,
                                 params.seed) as coordinator:
            objective = LogPosteriorObjective(coordinator, params.objective, labels)
            optimize(objective, params)
        return self

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d['state_labels'] = self.state_labels.tolist()
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'DifferentiableHigherOrderHMM':
        states, transition = cls._components_from_dict(d)
        return cls(states, transition, name=d.get('name'), state_labels=d.get('state_labels'))


def label_paths(model: DifferentiableHigherOrderHMM, paths: List[Sequence[int]]) -> List[np.ndarray]:
    """Per-position labels of state paths (silent states dropped)."""
    out = []
    for path in paths:
        emitting = [s for s in path if not model.states[s].silent]
        out.append(model.state_labels[np.asarray(emitting, dtype=np.int64)])
    return out
