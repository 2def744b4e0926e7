"""
hohmm HMM module

Provides:
1. HigherOrderHMM: states + variable-order transition with silent states
2. Forward, backward and Viterbi dynamic programming in log space
3. Viterbi decoding, posterior path sampling and state posteriors
4. Baum-Welch and Viterbi training (see hohmm.training for the loop)

The DP matrices are indexed [layer][context], where layer is the number
of symbols consumed (0..L) and context the position of a context in the
transition's enumeration for that layer. Silent moves stay in the same
layer; the transition orders contexts so a single sweep handles them.
"""

import copy
import warnings
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.special import logsumexp as scipy_logsumexp

from hohmm.core.emissions import DiscreteEmission
from hohmm.core.errors import (
    ComputationError,
    InvalidPathError,
    ModelConfigurationError,
    UnsupportedTrainingModeError,
    WrongLengthError,
    wrap_computation_errors,
)
from hohmm.core.states import State
from hohmm.core.transitions import HigherOrderTransition


class ScoreKind(Enum):
    """How the backward pass merges children (and whether it collects statistics)."""
    LIKELIHOOD = 'likelihood'
    VITERBI = 'viterbi'
    BAUM_WELCH = 'baum_welch'


class TrainingMonitor:
    """Tracks training progress."""
    def __init__(self):
        self.history = []
        self.starts = []
        self.best_start = None
        self.best_score = -np.inf

    def new_start(self):
        self.history = []
        self.starts.append(self.history)


def _logsumexp(a: np.ndarray, axis: Optional[int] = None,
               keepdims: bool = False) -> np.ndarray:
    """Numerically stable log-sum-exp that returns -inf for all -inf input."""
    with np.errstate(divide='ignore'):
        return scipy_logsumexp(a, axis=axis, keepdims=keepdims)


def _log_sum(values: List[float]) -> float:
    """Log-sum-exp of a short list, offset by its running maximum; NaN propagates."""
    if not values:
        return -np.inf
    m = np.max(values)
    if np.isnan(m):
        return np.nan
    if m == -np.inf:
        return -np.inf
    return float(m + np.log(sum(np.exp(v - m) for v in values)))


Sequenceish = Union[str, np.ndarray, Sequence[int]]


class HigherOrderHMM:
    """
    Hidden Markov model of arbitrary (variable) order with silent states.

    Args:
        states: States, indexed 0..S-1 in the transition
        transition: Transition over these states
        name: Optional display name
    """

    def __init__(self, states: Sequence[State], transition: HigherOrderTransition,
                 name: Optional[str] = None):
        self.states = list(states)
        self.transition = transition
        self.name = name or type(self).__name__

        if len(self.states) != transition.n_states:
            raise ModelConfigurationError(
                f"{len(self.states)} states but the transition has {transition.n_states}"
            )
        for i, st in enumerate(self.states):
            if st.silent != transition.is_silent[i]:
                raise ModelConfigurationError(
                    f"State {i} silent={st.silent} disagrees with the transition"
                )

        self._register_emissions()
        self.monitor_: Optional[TrainingMonitor] = None

    def _register_emissions(self):
        """Collect distinct emissions and assign parameter offsets (emissions first)."""
        self._emissions: List[DiscreteEmission] = []
        self._state_emission: List[int] = []
        seen = {}
        for st in self.states:
            if st.silent:
                self._state_emission.append(-1)
                continue
            key = id(st.emission)
            if key not in seen:
                seen[key] = len(self._emissions)
                self._emissions.append(st.emission)
            self._state_emission.append(seen[key])

        if not self._emissions:
            raise ModelConfigurationError("A model needs at least one emitting state")
        alphabets = {e.alphabet for e in self._emissions}
        if len(alphabets) > 1:
            raise ModelConfigurationError(f"States use different alphabets: {alphabets}")
        self.alphabet = self._emissions[0].alphabet

        sizes = [e.number_of_parameters for e in self._emissions]
        self._emission_offsets = [int(x) for x in np.concatenate([[0], np.cumsum(sizes)[:-1]])]
        self._transition_offset = int(sum(sizes))

    # ------------------------------------------------------------------
    # Basic properties
    # ------------------------------------------------------------------

    @property
    def n_states(self) -> int:
        return len(self.states)

    @property
    def max_order(self) -> int:
        return self.transition.max_order

    @property
    def emissions(self) -> List[DiscreteEmission]:
        return list(self._emissions)

    @property
    def number_of_parameters(self) -> int:
        return self._transition_offset + self.transition.number_of_parameters

    def emission_offset(self, state: int) -> int:
        return self._emission_offsets[self._state_emission[state]]

    @property
    def transition_offset(self) -> int:
        return self._transition_offset

    def is_final(self, state: int) -> bool:
        """Whether a path may end in `state`."""
        return bool(self.transition.final_states[state])

    def __repr__(self) -> str:
        return (f"{type(self).__name__}(name={self.name!r}, states={self.n_states}, "
                f"order={self.max_order}, parameters={self.number_of_parameters})")

    # ------------------------------------------------------------------
    # Input handling
    # ------------------------------------------------------------------

    def _check_sequence(self, seq: Sequenceish, start: int = 0,
                        end: Optional[int] = None) -> Tuple[np.ndarray, int, int]:
        if isinstance(seq, str):
            seq = self.alphabet.encode(seq)
        else:
            seq = self.alphabet.check(seq)
        n = len(seq)
        if end is None:
            end = n
        if start < 0 or end > n or start > end:
            raise WrongLengthError(
                f"Invalid window [{start}, {end}) for a sequence of length {n}"
            )
        return seq, start, end

    def _emission_matrix(self, seq: np.ndarray, start: int, end: int) -> np.ndarray:
        """Log emission score of every state at every position, shape (S, L)."""
        E = np.zeros((self.n_states, end - start))
        segment = seq[start:end]
        for s, st in enumerate(self.states):
            if not st.silent:
                E[s] = st.log_scores(segment)
        return E

    # ------------------------------------------------------------------
    # Dynamic programming
    # ------------------------------------------------------------------

    def _new_matrix(self, L: int) -> List[np.ndarray]:
        return [np.full(self.transition.n_contexts(l), -np.inf) for l in range(L + 1)]

    def _child_scores(self, E: np.ndarray, mat: List[np.ndarray], layer: int,
                      ctx: int, L: int) -> List[Tuple[int, int, int, int, float]]:
        """
        Score every child of (layer, ctx) against a backward-style matrix.

        Returns (child, state, target_ctx, advance, value) with
        value = mat[layer+advance][target] + transition + emission.
        Emitting children are skipped at the last layer.
        """
        trans = self.transition
        out = []
        for i, (s, t, adv) in enumerate(trans.children(layer, ctx)):
            if adv:
                if layer == L:
                    continue
                v = mat[layer + 1][t] + trans.log_score(layer, ctx, i) + E[s, layer]
            else:
                v = mat[layer][t] + trans.log_score(layer, ctx, i)
            out.append((i, s, t, adv, v))
        return out

    def _backward(self, seq: np.ndarray, start: int, E: np.ndarray, kind: ScoreKind,
                  fwd: Optional[List[np.ndarray]] = None, total: float = 0.0,
                  weight: float = 1.0) -> List[np.ndarray]:
        """
        Backward (LIKELIHOOD, BAUM_WELCH) or Viterbi (VITERBI) matrix.

        bwd[l][c] is the log score of completing a path from context c
        after l symbols. Under BAUM_WELCH, fwd and total must come from
        _forward; expected counts are added to states and transition.
        """
        trans = self.transition
        L = E.shape[1]
        bwd = self._new_matrix(L)
        collect = kind is ScoreKind.BAUM_WELCH

        for l in range(L, -1, -1):
            for c in range(trans.n_contexts(l) - 1, -1, -1):
                base = 0.0 if (l == L and trans.is_terminal(l, c)) else -np.inf
                children = self._child_scores(E, bwd, l, c, L)
                values = [base] + [ch[4] for ch in children]
                if kind is ScoreKind.VITERBI:
                    bwd[l][c] = np.max(values)
                else:
                    bwd[l][c] = _log_sum(values)

                if collect and fwd[l][c] > -np.inf:
                    for i, s, t, adv, v in children:
                        if v == -np.inf:
                            continue
                        w = weight * np.exp(fwd[l][c] + v - total)
                        trans.add_to_statistic(l, c, i, w)
                        if adv:
                            self.states[s].add_to_statistic(seq, start + l, w)
        return bwd

    def _forward(self, E: np.ndarray) -> Tuple[List[np.ndarray], float]:
        """
        Forward matrix and total log-likelihood.

        Incoming partial sums are collected per (layer, context) and merged
        when the context is visited, i.e. after all its predecessors.
        """
        trans = self.transition
        L = E.shape[1]
        fwd = self._new_matrix(L)
        incoming = [[[] for _ in range(trans.n_contexts(l))] for l in range(L + 1)]
        incoming[0][0].append(0.0)

        for l in range(L + 1):
            for c in range(trans.n_contexts(l)):
                if not incoming[l][c]:
                    continue
                a = _log_sum(incoming[l][c])
                fwd[l][c] = a
                if a == -np.inf:
                    continue
                for i, (s, t, adv) in enumerate(trans.children(l, c)):
                    if adv:
                        if l == L:
                            continue
                        incoming[l + 1][t].append(a + trans.log_score(l, c, i) + E[s, l])
                    else:
                        incoming[l][t].append(a + trans.log_score(l, c, i))
            incoming[l] = None

        total = _log_sum([fwd[L][c] for c in range(trans.n_contexts(L))
                          if trans.is_terminal(L, c)])
        return fwd, total

    def _walk_viterbi(self, seq: np.ndarray, start: int, E: np.ndarray,
                      bwd: List[np.ndarray], weight: Optional[float] = None) -> List[int]:
        """
        Re-walk the Viterbi matrix from (0, 0).

        At each step the child whose reconstructed score has the smallest
        squared deviation from the stored optimum is taken; the first such
        child wins ties. After the last symbol, silent states are appended
        while one beats stopping. With a weight, statistics are added
        along the path.
        """
        trans = self.transition
        L = E.shape[1]
        path = []
        l, c = 0, 0
        current = bwd[0][0]

        while True:
            best, best_d = None, np.inf
            if l == L and trans.is_terminal(l, c):
                best_d = (0.0 - current) ** 2
            for child in self._child_scores(E, bwd, l, c, L):
                d = (current - child[4]) ** 2
                if d < best_d:
                    best, best_d = child, d
            if best is None:
                if l == L:
                    break
                raise InvalidPathError(
                    f"Viterbi reconstruction found no child at layer {l}, "
                    f"context {trans.context(l, c)}"
                )

            i, s, t, adv, _ = best
            path.append(s)
            if weight is not None:
                trans.add_to_statistic(l, c, i, weight)
                if adv:
                    self.states[s].add_to_statistic(seq, start + l, weight)
            l += adv
            c = t
            current = bwd[l][c]
        return path

    def _walk_sampling(self, seq: np.ndarray, start: int, E: np.ndarray,
                       bwd: List[np.ndarray], rng: np.random.Generator,
                       weight: Optional[float] = None) -> List[int]:
        """Draw a path from its posterior using the LIKELIHOOD backward matrix."""
        trans = self.transition
        L = E.shape[1]
        path = []
        l, c = 0, 0

        while True:
            children = self._child_scores(E, bwd, l, c, L)
            values = [ch[4] for ch in children]
            can_stop = l == L and trans.is_terminal(l, c)
            if can_stop:
                values.append(0.0)
            logits = np.array(values)
            p = np.exp(logits - _logsumexp(logits))
            p /= p.sum()
            k = rng.choice(len(p), p=p)
            if can_stop and k == len(children):
                break

            i, s, t, adv, _ = children[k]
            path.append(s)
            if weight is not None:
                trans.add_to_statistic(l, c, i, weight)
                if adv:
                    self.states[s].add_to_statistic(seq, start + l, weight)
            l += adv
            c = t
        return path

    def _walk_path(self, path: Sequence[int], seq: np.ndarray, start: int, end: int,
                   weight: Optional[float] = None) -> float:
        """Score a given path; with a weight also add it to the statistics."""
        trans = self.transition
        path = [int(s) for s in path]
        if not path:
            raise InvalidPathError("Empty path")
        bad = [s for s in path if not 0 <= s < self.n_states]
        if bad:
            raise InvalidPathError(f"Path contains unknown states {bad}")
        if not self.is_final(path[-1]):
            raise InvalidPathError(f"Path ends in state {path[-1]}, which is not final")

        L = end - start
        l, c = 0, 0
        score = 0.0
        for s in path:
            i = trans.get_child_idx(l, c, s)
            if i < 0:
                raise InvalidPathError(
                    f"No transition from context {trans.context(l, c)} to state {s}"
                )
            _, t, adv = trans.fill_transition_information(l, c, i)
            if adv and l >= L:
                raise InvalidPathError(f"Path emits more than {L} symbols")
            score += trans.log_score(l, c, i)
            if adv:
                score += self.states[s].log_score(seq, start + l)
            if weight is not None:
                trans.add_to_statistic(l, c, i, weight)
                if adv:
                    self.states[s].add_to_statistic(seq, start + l, weight)
            l += adv
            c = t
        if l != L:
            raise InvalidPathError(f"Path emits {l} symbols, sequence window has {L}")
        return float(score)

    # ------------------------------------------------------------------
    # Public scores
    # ------------------------------------------------------------------

    @wrap_computation_errors
    def log_prob(self, seq: Sequenceish, start: int = 0, end: Optional[int] = None) -> float:
        """
        Log-likelihood of seq[start:end], summed over all valid paths.

        Returns -inf (not an error) if no path can generate the sequence.
        """
        seq, start, end = self._check_sequence(seq, start, end)
        E = self._emission_matrix(seq, start, end)
        return float(self._backward(seq, start, E, ScoreKind.LIKELIHOOD)[0][0])

    @wrap_computation_errors
    def forward(self, seq: Sequenceish, start: int = 0,
                end: Optional[int] = None) -> Tuple[List[np.ndarray], float]:
        """Forward matrix [layer][context] and total log-likelihood."""
        seq, start, end = self._check_sequence(seq, start, end)
        return self._forward(self._emission_matrix(seq, start, end))

    @wrap_computation_errors
    def backward(self, seq: Sequenceish, start: int = 0, end: Optional[int] = None,
                 kind: ScoreKind = ScoreKind.LIKELIHOOD) -> List[np.ndarray]:
        """
        Backward (or Viterbi) matrix [layer][context].

        With kind=BAUM_WELCH the expected counts of this sequence are also
        added to the current statistics.
        """
        seq, start, end = self._check_sequence(seq, start, end)
        E = self._emission_matrix(seq, start, end)
        if kind is ScoreKind.BAUM_WELCH:
            fwd, total = self._forward(E)
            if total == -np.inf:
                return self._backward(seq, start, E, ScoreKind.LIKELIHOOD)
            return self._backward(seq, start, E, kind, fwd, total)
        return self._backward(seq, start, E, kind)

    @wrap_computation_errors
    def viterbi_path(self, seq: Sequenceish, start: int = 0,
                     end: Optional[int] = None) -> Tuple[np.ndarray, float]:
        """
        Most likely state path (silent states included) and its log score.

        Returns an empty path and -inf if the sequence has probability 0.
        """
        seq, start, end = self._check_sequence(seq, start, end)
        E = self._emission_matrix(seq, start, end)
        bwd = self._backward(seq, start, E, ScoreKind.VITERBI)
        score = float(bwd[0][0])
        if np.isnan(score):
            raise ComputationError("Viterbi score is NaN")
        if score == -np.inf:
            warnings.warn("Sequence has probability 0 under the model; no Viterbi path")
            return np.array([], dtype=np.int64), score
        return np.array(self._walk_viterbi(seq, start, E, bwd), dtype=np.int64), score

    @wrap_computation_errors
    def log_prob_for_path(self, path: Sequence[int], seq: Sequenceish, start: int = 0,
                          end: Optional[int] = None) -> float:
        """Joint log probability of a state path and seq[start:end]."""
        seq, start, end = self._check_sequence(seq, start, end)
        return self._walk_path(path, seq, start, end)

    @wrap_computation_errors
    def sample_path(self, seq: Sequenceish, start: int = 0, end: Optional[int] = None,
                    rng: Optional[Union[int, np.random.Generator]] = None
                    ) -> Tuple[np.ndarray, float]:
        """Draw a state path from P(path | seq); also returns log P(seq)."""
        rng = np.random.default_rng(rng)
        seq, start, end = self._check_sequence(seq, start, end)
        E = self._emission_matrix(seq, start, end)
        bwd = self._backward(seq, start, E, ScoreKind.LIKELIHOOD)
        score = float(bwd[0][0])
        if np.isnan(score):
            raise ComputationError("Backward score is NaN")
        if score == -np.inf:
            warnings.warn("Sequence has probability 0 under the model; no path to sample")
            return np.array([], dtype=np.int64), score
        return np.array(self._walk_sampling(seq, start, E, bwd, rng), dtype=np.int64), score

    @wrap_computation_errors
    def state_posteriors(self, seq: Sequenceish, start: int = 0,
                         end: Optional[int] = None) -> np.ndarray:
        """
        Posterior P(state emits position | seq), shape (L, n_states).

        Each row sums to 1.0; silent states have posterior 0.
        """
        seq, start, end = self._check_sequence(seq, start, end)
        E = self._emission_matrix(seq, start, end)
        L = end - start
        posteriors = np.zeros((L, self.n_states))
        fwd, total = self._forward(E)
        if total == -np.inf:
            warnings.warn("Sequence has probability 0 under the model; posteriors are 0")
            return posteriors

        bwd = self._backward(seq, start, E, ScoreKind.LIKELIHOOD)
        for l in range(L):
            for c in range(self.transition.n_contexts(l)):
                a = fwd[l][c]
                if a == -np.inf:
                    continue
                for _, s, _, adv, v in self._child_scores(E, bwd, l, c, L):
                    if adv:
                        posteriors[l, s] += np.exp(a + v - total)
        return posteriors

    # ------------------------------------------------------------------
    # Per-sequence training steps (driven by hohmm.training)
    # ------------------------------------------------------------------

    def baum_welch_step(self, seq: np.ndarray, weight: float = 1.0) -> float:
        """Add expected counts of one sequence; returns weight * log-likelihood."""
        E = self._emission_matrix(seq, 0, len(seq))
        fwd, total = self._forward(E)
        if total == -np.inf:
            warnings.warn("Training sequence has probability 0 and contributes no statistics")
            return -np.inf
        self._backward(seq, 0, E, ScoreKind.BAUM_WELCH, fwd, total, weight)
        return weight * total

    def viterbi_step(self, seq: np.ndarray, weight: float = 1.0) -> float:
        """Add the counts of the Viterbi path; returns weight * Viterbi score."""
        E = self._emission_matrix(seq, 0, len(seq))
        bwd = self._backward(seq, 0, E, ScoreKind.VITERBI)
        score = bwd[0][0]
        if score == -np.inf:
            warnings.warn("Training sequence has probability 0 and contributes no statistics")
            return -np.inf
        self._walk_viterbi(seq, 0, E, bwd, weight=weight)
        return weight * score

    def gibbs_step(self, seq: np.ndarray, rng: np.random.Generator,
                   weight: float = 1.0) -> float:
        """Add the counts of a sampled path; returns weight * log-likelihood."""
        E = self._emission_matrix(seq, 0, len(seq))
        bwd = self._backward(seq, 0, E, ScoreKind.LIKELIHOOD)
        score = bwd[0][0]
        if score == -np.inf:
            warnings.warn("Training sequence has probability 0 and contributes no statistics")
            return -np.inf
        self._walk_sampling(seq, 0, E, bwd, rng, weight=weight)
        return weight * score

    def add_path_to_statistics(self, path: Sequence[int], seq: Sequenceish,
                               weight: float = 1.0) -> float:
        seq, start, end = self._check_sequence(seq)
        return self._walk_path(path, seq, start, end, weight=weight)

    # ------------------------------------------------------------------
    # Parameters and statistics
    # ------------------------------------------------------------------

    def reset_statistics(self):
        for e in self._emissions:
            e.reset_statistic()
        self.transition.reset_statistics()

    def join_statistics(self, others: Sequence['HigherOrderHMM']):
        """Sum statistics of duplicates into every participant."""
        for k, e in enumerate(self._emissions):
            e.join_statistics([o._emissions[k] for o in others])
        self.transition.join_statistics([o.transition for o in others])

    def estimate_from_statistics(self):
        for e in self._emissions:
            e.estimate_from_statistic()
        self.transition.estimate_from_statistics()

    def draw_parameters_from_statistics(self, rng: np.random.Generator):
        for e in self._emissions:
            e.draw_parameters_from_statistic(rng)
        self.transition.draw_parameters_from_statistics(rng)

    def initialize_randomly(self, rng: Optional[Union[int, np.random.Generator]] = None):
        rng = np.random.default_rng(rng)
        for e in self._emissions:
            e.initialize_randomly(rng)
        self.transition.initialize_randomly(rng)

    def copy_parameters_from(self, other: 'HigherOrderHMM'):
        for e, o in zip(self._emissions, other._emissions):
            e.copy_parameters_from(o)
        self.transition.copy_parameters_from(other.transition)

    def log_prior(self) -> float:
        return float(sum(e.log_prior() for e in self._emissions) + self.transition.log_prior())

    def log_gamma_score(self) -> float:
        """Dirichlet-multinomial score of the current statistics (parameter free)."""
        return float(sum(e.log_gamma_score() for e in self._emissions)
                     + self.transition.log_gamma_score())

    def get_parameters(self) -> np.ndarray:
        """Flat log-parameter vector: emissions first, then the transition."""
        return np.concatenate([e.get_parameters() for e in self._emissions]
                              + [self.transition.get_parameters()])

    def set_parameters(self, params: np.ndarray):
        params = np.asarray(params, dtype=float)
        if len(params) != self.number_of_parameters:
            raise ValueError(f"Expected {self.number_of_parameters} parameters, got {len(params)}")
        for k, e in enumerate(self._emissions):
            offset = self._emission_offsets[k]
            e.set_parameters(params[offset:offset + e.number_of_parameters])
        self.transition.set_parameters(params[self._transition_offset:])

    def duplicate(self) -> 'HigherOrderHMM':
        """
        Copy for a parallel worker.

        Topology and configuration are shared; parameters, statistics and
        training state are private to the copy.
        """
        clone = copy.copy(self)
        mapping = {id(e): e.duplicate() for e in self._emissions}
        clone.states = [st.with_emission(None if st.silent else mapping[id(st.emission)])
                        for st in self.states]
        clone._emissions = [mapping[id(e)] for e in self._emissions]
        clone.transition = self.transition.duplicate()
        clone.monitor_ = None
        return clone

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def _check_training_data(self, data: Sequence[Sequenceish],
                             weights: Optional[Sequence[float]]) -> Tuple[List[np.ndarray], np.ndarray]:
        sequences = [self._check_sequence(seq)[0] for seq in data]
        if weights is None:
            weights = np.ones(len(sequences))
        else:
            weights = np.asarray(weights, dtype=float)
            if len(weights) != len(sequences):
                raise WrongLengthError(
                    f"{len(weights)} weights for {len(sequences)} sequences"
                )
        return sequences, weights

    def train(self, data: Sequence[Sequenceish], weights: Optional[Sequence[float]] = None,
              params=None) -> 'HigherOrderHMM':
        """
        Train by Baum-Welch (default) or Viterbi training.

        Args:
            data: Sequences (strings or code arrays)
            weights: Optional weight per sequence
            params: BaumWelchParameters or ViterbiParameters

        Returns:
            self
        """
        from hohmm.training.parameters import BaumWelchParameters, ViterbiParameters
        from hohmm.training.parallel import TrainingCoordinator

        if params is None:
            params = BaumWelchParameters()
        if not isinstance(params, (BaumWelchParameters, ViterbiParameters)):
            raise UnsupportedTrainingModeError(
                f"{type(self).__name__} cannot be trained with {type(params).__name__}"
            )

        sequences, weights = self._check_training_data(data, weights)
        with TrainingCoordinator(self, sequences, weights, params.n_threads,
                                 params.seed) as coordinator:
            coordinator.train(params)
        return self

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize model to dictionary."""
        return {
            'model_type': type(self).__name__,
            'name': self.name,
            'emissions': [e.to_dict() for e in self._emissions],
            'states': [st.to_dict(self._state_emission[i]) for i, st in enumerate(self.states)],
            'transition': self.transition.to_dict(),
        }

    @staticmethod
    def _components_from_dict(d: Dict[str, Any]) -> Tuple[List[State], HigherOrderTransition]:
        emissions = [DiscreteEmission.from_dict(e) for e in d['emissions']]
        states = [State(None if s['emission'] is None else emissions[s['emission']],
                        s.get('forward_strand', True), s.get('name'))
                  for s in d['states']]
        return states, HigherOrderTransition.from_dict(d['transition'])

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'HigherOrderHMM':
        """Deserialize model from dictionary."""
        states, transition = cls._components_from_dict(d)
        return cls(states, transition, name=d.get('name'))
