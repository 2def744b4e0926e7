"""
Data-parallel training coordinator.

The data set is split into contiguous index ranges, one per worker.
Worker 0 is the model itself, the others are private duplicates. Every
iteration is submitted to a thread pool and the coordinator waits for
all workers (the barrier) before joining statistics into worker 0,
updating parameters once and broadcasting them back.
"""

import threading
from concurrent.futures import ALL_COMPLETED, ThreadPoolExecutor, wait
from typing import Callable, List, Optional, Sequence

import numpy as np
from tqdm import tqdm

from hohmm.core.errors import TrainingError
from hohmm.core.hmm import TrainingMonitor
from hohmm.training.parameters import Timer, TrainingParameters, ViterbiParameters


class TrainingCoordinator:
    """
    Runs per-sequence work on worker threads with a barrier per iteration.

    Args:
        model: Model to train (becomes worker 0)
        data: Encoded sequences
        weights: Weight per sequence
        n_threads: Number of workers (capped at the number of sequences)
        seed: Seed for the per-worker random generators (path sampling)
    """

    def __init__(self, model, data: Sequence[np.ndarray], weights: np.ndarray,
                 n_threads: int = 1, seed: Optional[int] = None):
        self.model = model
        self.data = list(data)
        self.weights = np.asarray(weights, dtype=float)

        n = len(self.data)
        n_threads = max(1, min(n_threads, n))
        self.workers = [model] + [model.duplicate() for _ in range(n_threads - 1)]
        self.partitions = [range(i * n // n_threads, (i + 1) * n // n_threads)
                           for i in range(n_threads)]
        self.rngs = [np.random.default_rng(s)
                     for s in np.random.SeedSequence(seed).spawn(n_threads)]

        self._abort = threading.Event()
        self._executor = ThreadPoolExecutor(max_workers=n_threads) if n_threads > 1 else None

    @property
    def n_workers(self) -> int:
        return len(self.workers)

    @property
    def aborted(self) -> bool:
        """Whether a worker failed during the current iteration."""
        return self._abort.is_set()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()
        return False

    def shutdown(self):
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    # ------------------------------------------------------------------
    # Barrier primitive
    # ------------------------------------------------------------------

    def _guarded(self, fn: Callable, index: int):
        try:
            return fn(index, self.workers[index], self.partitions[index])
        except Exception:
            self._abort.set()
            raise

    def map_workers(self, fn: Callable) -> List:
        """
        Run fn(index, worker, partition) on every worker and wait for all.

        If any worker fails the others stop at their next sequence, all of
        them are joined, and one TrainingError is raised.
        """
        self._abort.clear()
        if self._executor is None:
            try:
                return [self._guarded(fn, 0)]
            except Exception as e:
                raise TrainingError(f"Training worker 0 failed: {e}") from e

        futures = [self._executor.submit(self._guarded, fn, i) for i in range(self.n_workers)]
        wait(futures, return_when=ALL_COMPLETED)
        errors = [(i, f.exception()) for i, f in enumerate(futures) if f.exception() is not None]
        if errors:
            i, first = errors[0]
            raise TrainingError(
                f"{len(errors)} of {self.n_workers} training workers failed; "
                f"worker {i}: {first}"
            ) from first
        return [f.result() for f in futures]

    # ------------------------------------------------------------------
    # Iteration steps
    # ------------------------------------------------------------------

    def one_iteration(self, kind: str) -> float:
        """
        Reset statistics and process every sequence once.

        Args:
            kind: 'baum_welch', 'viterbi' or 'gibbs'

        Returns:
            Sum of the weighted per-sequence scores
        """
        if kind not in ('baum_welch', 'viterbi', 'gibbs'):
            raise ValueError(f"Unknown iteration kind {kind!r}")

        def work(index, worker, partition):
            worker.reset_statistics()
            score = 0.0
            for n in partition:
                if self.aborted:
                    break
                seq, w = self.data[n], self.weights[n]
                if kind == 'baum_welch':
                    score += worker.baum_welch_step(seq, w)
                elif kind == 'viterbi':
                    score += worker.viterbi_step(seq, w)
                else:
                    score += worker.gibbs_step(seq, self.rngs[index], w)
            return score

        return float(sum(self.map_workers(work)))

    def join(self):
        """Sum every worker's statistics into worker 0."""
        if self.n_workers > 1:
            self.model.join_statistics(self.workers[1:])

    def broadcast(self):
        """Copy worker 0's parameters to every other worker."""
        for worker in self.workers[1:]:
            worker.copy_parameters_from(self.model)

    def estimate(self):
        self.join()
        self.model.estimate_from_statistics()
        self.broadcast()

    def draw(self, rng: np.random.Generator):
        self.join()
        self.model.draw_parameters_from_statistics(rng)
        self.broadcast()

    # ------------------------------------------------------------------
    # EM training
    # ------------------------------------------------------------------

    def train(self, params: TrainingParameters) -> float:
        """
        EM training with random restarts; the best start is kept.

        Returns:
            Objective (log prior + weighted log-likelihood) of the best start
        """
        kind = 'viterbi' if isinstance(params, ViterbiParameters) else 'baum_welch'
        model = self.model
        rng = np.random.default_rng(params.seed)
        monitor = TrainingMonitor()
        model.monitor_ = monitor
        initial = model.get_parameters()
        best_params = None

        starts = tqdm(range(params.n_starts), desc="Training starts",
                      disable=not params.verbose)
        try:
            for start in starts:
                if params.skip_init:
                    model.set_parameters(initial)
                else:
                    model.initialize_randomly(rng)
                self.broadcast()

                monitor.new_start()
                score = self._run_em(kind, params, monitor, desc=f"Start {start + 1} EM")

                if best_params is None or score > monitor.best_score:
                    monitor.best_score = score
                    monitor.best_start = start
                    best_params = model.get_parameters()
                starts.set_postfix({'best_logprob': f'{monitor.best_score:.2e}'})
        finally:
            # A failed start leaves the best earlier start, or the initial parameters
            model.set_parameters(initial if best_params is None else best_params)
            self.broadcast()
        return monitor.best_score

    def _run_em(self, kind: str, params, monitor: TrainingMonitor, desc: str) -> float:
        timer = Timer()
        old_value = -np.inf
        iteration = 0
        pbar = tqdm(desc=desc, leave=False, disable=not params.verbose)
        while True:
            new_value = self.model.log_prior() + self.one_iteration(kind)
            monitor.history.append(new_value)
            pbar.update(1)
            pbar.set_postfix({'logprob': f'{new_value:.2e}',
                              'delta': f'{new_value - old_value:.2e}'})

            if not params.termination.do_next_iteration(iteration, old_value, new_value,
                                                        timer.elapsed()):
                break
            self.estimate()
            old_value = new_value
            iteration += 1
        pbar.close()
        return new_value
