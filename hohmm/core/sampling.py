"""
Bayesian higher-order HMM trained by Gibbs sampling.

Each training round draws one path per sequence from its posterior,
collects the path counts and draws new parameters from the resulting
Dirichlet posterior. Several chains (starts) run side by side until a
burn-in test declares them stationary; the parameter sets drawn after
burn-in are kept and every inference method averages over them.
"""

import warnings
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

import numpy as np
from tqdm import tqdm

from hohmm.core.errors import (
    NotTrainedError,
    UnsupportedTrainingModeError,
    wrap_computation_errors,
)
from hohmm.core.hmm import HigherOrderHMM, ScoreKind, Sequenceish, TrainingMonitor, _logsumexp
from hohmm.core.states import State
from hohmm.core.transitions import HigherOrderTransition


class ViterbiComputation(Enum):
    """How SamplingHigherOrderHMM.viterbi_path picks a path over parameter sets."""
    MAX = 'max'                                        # Viterbi path, Viterbi score
    MAX_GAMMA = 'max_gamma'                            # Viterbi path, gamma score
    SAMPLING = 'sampling'                              # sampled path, path score
    SAMPLING_GAMMA = 'sampling_gamma'                  # sampled path, gamma score
    MAX_AND_SAMPLING = 'max_and_sampling'              # best of both, path score
    MAX_AND_SAMPLING_GAMMA = 'max_and_sampling_gamma'  # best of both, gamma score

    @property
    def uses_max(self) -> bool:
        return self in (ViterbiComputation.MAX, ViterbiComputation.MAX_GAMMA,
                        ViterbiComputation.MAX_AND_SAMPLING,
                        ViterbiComputation.MAX_AND_SAMPLING_GAMMA)

    @property
    def uses_sampling(self) -> bool:
        return self in (ViterbiComputation.SAMPLING, ViterbiComputation.SAMPLING_GAMMA,
                        ViterbiComputation.MAX_AND_SAMPLING,
                        ViterbiComputation.MAX_AND_SAMPLING_GAMMA)

    @property
    def gamma(self) -> bool:
        return self.value.endswith('_gamma')


class VarianceRatioBurnInTest:
    """
    Burn-in test based on the potential scale reduction factor.

    The second half of every chain's values is split in two and the
    between/within variance ratio of the resulting sub-chains is
    computed. If it is below threshold the first half is the burn-in;
    otherwise all values so far are.

    Args:
        threshold: Largest ratio accepted as converged
        min_iterations: Values per chain needed before testing
    """

    def __init__(self, threshold: float = 1.2, min_iterations: int = 10):
        if threshold <= 1.0:
            raise ValueError(f"threshold must exceed 1.0, got {threshold}")
        self.threshold = threshold
        self.min_iterations = max(8, min_iterations)
        self.reset(1)

    def reset(self, n_starts: int):
        self.values: List[List[float]] = [[] for _ in range(n_starts)]
        self.current = -1
        self._burn_in = None

    def set_current_sampling_index(self, index: int):
        self.current = index

    def set_value(self, value: float):
        self.values[self.current].append(value)
        self._burn_in = None

    def scale_reduction(self) -> float:
        n = min(len(v) for v in self.values)
        half = (n - n // 2) // 2
        chains = []
        for v in self.values:
            window = np.asarray(v[n // 2:n], dtype=float)
            chains.extend([window[:half], window[half:2 * half]])
        chains = np.array(chains)
        if not np.all(np.isfinite(chains)):
            return np.inf

        within = chains.var(axis=1, ddof=1).mean()
        between = chains.mean(axis=1).var(ddof=1)
        if within == 0:
            return 1.0 if between == 0 else np.inf
        pooled = (half - 1) / half * within + between
        return float(np.sqrt(pooled / within))

    def get_length_of_burn_in(self) -> int:
        if self._burn_in is None:
            n = min(len(v) for v in self.values)
            if n < self.min_iterations:
                self._burn_in = n
            else:
                self._burn_in = n // 2 if self.scale_reduction() < self.threshold else n
        return self._burn_in

    def to_dict(self) -> Dict[str, Any]:
        return {'threshold': self.threshold, 'min_iterations': self.min_iterations}


class SamplingHigherOrderHMM(HigherOrderHMM):
    """
    HigherOrderHMM whose parameters are a set of posterior samples.

    Args:
        states: States, indexed 0..S-1 in the transition
        transition: Transition over these states
        name: Optional display name
    """

    def __init__(self, states: Sequence[State], transition: HigherOrderTransition,
                 name: Optional[str] = None):
        super().__init__(states, transition, name)
        self._samples: List[List[np.ndarray]] = []
        self._burn_in = 0

    @property
    def has_sampled(self) -> bool:
        return any(len(chain) > self._burn_in for chain in self._samples)

    @property
    def burn_in(self) -> int:
        return self._burn_in

    @property
    def n_samples(self) -> int:
        return sum(max(0, len(chain) - self._burn_in) for chain in self._samples)

    def parameter_sets(self) -> Iterator[np.ndarray]:
        """Post-burn-in parameter sets of every chain."""
        if not self.has_sampled:
            raise NotTrainedError(f"{self.name} has no sampled parameter sets; call train first")
        for chain in self._samples:
            yield from chain[self._burn_in:]

    def _over_parameter_sets(self, fn) -> List:
        """Evaluate fn() under every parameter set; the current parameters are restored."""
        saved = self.get_parameters()
        results = []
        try:
            for params in self.parameter_sets():
                self.set_parameters(params)
                results.append(fn())
        finally:
            self.set_parameters(saved)
        return results

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def train(self, data: Sequence[Sequenceish], weights: Optional[Sequence[float]] = None,
              params=None) -> 'SamplingHigherOrderHMM':
        """
        Run n_starts Gibbs chains through burn-in and stationary phase.

        Args:
            data: Sequences (strings or code arrays)
            weights: Optional weight per sequence
            params: SamplingParameters

        Returns:
            self
        """
        from hohmm.training.parallel import TrainingCoordinator
        from hohmm.training.parameters import SamplingParameters

        if params is None:
            params = SamplingParameters()
        if not isinstance(params, SamplingParameters):
            raise UnsupportedTrainingModeError(
                f"{type(self).__name__} cannot be trained with {type(params).__name__}"
            )

        sequences, weights = self._check_training_data(data, weights)
        test = params.burn_in_test if params.burn_in_test is not None else VarianceRatioBurnInTest()
        test.reset(params.n_starts)
        rng = np.random.default_rng(params.seed)
        monitor = TrainingMonitor()
        self.monitor_ = monitor

        initial = self.get_parameters()
        chains = []
        for _ in range(params.n_starts):
            if params.skip_init:
                self.set_parameters(initial)
            else:
                self.initialize_randomly(rng)
            chains.append(self.get_parameters())
            monitor.new_start()
        samples: List[List[np.ndarray]] = [[] for _ in range(params.n_starts)]

        with TrainingCoordinator(self, sequences, weights, params.n_threads,
                                 params.seed) as coordinator:
            rounds = 0
            pbar = tqdm(desc="Burn-in", disable=not params.verbose)
            while True:
                self._sampling_round(coordinator, chains, samples, test, rng, monitor)
                rounds += 1
                burn_in = test.get_length_of_burn_in()
                pbar.update(1)
                pbar.set_postfix({'burn_in': burn_in})
                if burn_in < rounds:
                    break
                if rounds >= params.max_burn_in:
                    warnings.warn(
                        f"Burn-in not reached after {rounds} rounds; "
                        "keeping only the stationary phase samples"
                    )
                    burn_in = rounds
                    break
            pbar.close()

            for _ in tqdm(range(params.stationary_steps), desc="Sampling",
                          disable=not params.verbose):
                self._sampling_round(coordinator, chains, samples, test, rng, monitor)

        self._samples = samples
        self._burn_in = burn_in
        scores = [history[-1] for history in monitor.starts]
        monitor.best_start = int(np.argmax(scores))
        monitor.best_score = scores[monitor.best_start]
        self.set_parameters(chains[monitor.best_start])
        return self

    def _sampling_round(self, coordinator, chains, samples, test, rng, monitor):
        """One Gibbs step for every chain."""
        for start in range(len(chains)):
            test.set_current_sampling_index(start)
            self.set_parameters(chains[start])
            coordinator.broadcast()
            score = self.log_prior() + coordinator.one_iteration('gibbs')
            test.set_value(score)
            monitor.starts[start].append(score)
            coordinator.draw(rng)
            chains[start] = self.get_parameters()
            samples[start].append(chains[start].copy())

    # ------------------------------------------------------------------
    # Sample-averaged inference
    # ------------------------------------------------------------------

    @wrap_computation_errors
    def log_prob(self, seq: Sequenceish, start: int = 0, end: Optional[int] = None) -> float:
        """Log of the likelihood averaged over the sampled parameter sets."""
        seq, start, end = self._check_sequence(seq, start, end)
        scores = self._over_parameter_sets(
            lambda: HigherOrderHMM.log_prob(self, seq, start, end))
        return float(_logsumexp(np.array(scores)) - np.log(len(scores)))

    @wrap_computation_errors
    def log_prob_for_path(self, path: Sequence[int], seq: Sequenceish, start: int = 0,
                          end: Optional[int] = None) -> float:
        seq, start, end = self._check_sequence(seq, start, end)
        scores = self._over_parameter_sets(lambda: self._walk_path(path, seq, start, end))
        return float(_logsumexp(np.array(scores)) - np.log(len(scores)))

    @wrap_computation_errors
    def state_posteriors(self, seq: Sequenceish, start: int = 0,
                         end: Optional[int] = None) -> np.ndarray:
        seq, start, end = self._check_sequence(seq, start, end)
        posteriors = self._over_parameter_sets(
            lambda: HigherOrderHMM.state_posteriors(self, seq, start, end))
        return np.mean(posteriors, axis=0)

    def _gamma_score(self, path: List[int], seq: np.ndarray, start: int, end: int) -> float:
        self.reset_statistics()
        self._walk_path(path, seq, start, end, weight=1.0)
        return self.log_gamma_score()

    @wrap_computation_errors
    def viterbi_path(self, seq: Sequenceish, start: int = 0, end: Optional[int] = None,
                     computation: ViterbiComputation = ViterbiComputation.MAX,
                     rng: Optional[Union[int, np.random.Generator]] = None):
        """
        Best path over all sampled parameter sets.

        Candidate paths are Viterbi paths and/or sampled paths of every
        parameter set; they are scored by their own path score or, for
        the *_GAMMA variants, by the parameter-free gamma score of the
        path counts.
        """
        rng = np.random.default_rng(rng)
        seq, start, end = self._check_sequence(seq, start, end)
        best = {'path': [], 'score': -np.inf}

        def consider(path, score):
            if computation.gamma:
                score = self._gamma_score(path, seq, start, end)
            if score > best['score']:
                best['path'], best['score'] = path, score

        def candidates():
            E = self._emission_matrix(seq, start, end)
            if computation.uses_sampling:
                bwd = self._backward(seq, start, E, ScoreKind.LIKELIHOOD)
                if bwd[0][0] > -np.inf:
                    path = self._walk_sampling(seq, start, E, bwd, rng)
                    consider(path, self._walk_path(path, seq, start, end))
            if computation.uses_max:
                bwd = self._backward(seq, start, E, ScoreKind.VITERBI)
                if bwd[0][0] > -np.inf:
                    consider(self._walk_viterbi(seq, start, E, bwd), float(bwd[0][0]))

        self._over_parameter_sets(candidates)
        if not best['path']:
            warnings.warn("Sequence has probability 0 under every sampled parameter set")
        return np.array(best['path'], dtype=np.int64), float(best['score'])

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d['burn_in'] = self._burn_in
        d['samples'] = [[p.tolist() for p in chain] for chain in self._samples]
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'SamplingHigherOrderHMM':
        model = super().from_dict(d)
        model._burn_in = int(d.get('burn_in', 0))
        model._samples = [[np.asarray(p, dtype=float) for p in chain]
                          for chain in d.get('samples', [])]
        return model
