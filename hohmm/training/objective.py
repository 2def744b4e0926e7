"""
Numerical training: the log posterior as a scipy.optimize objective.

The objective is log prior + sum_n w_n * score_n, where score_n is the
log-likelihood, the Viterbi score or their discriminative variants.
Per-sequence scores and gradients are computed by the coordinator's
workers; value and gradient for the same point are cached so scipy's
separate fun/jac calls cost one pass over the data.
"""

import warnings
from typing import Optional, Sequence

import numpy as np
from scipy.optimize import minimize
from tqdm import tqdm

from hohmm.core.errors import HMMError, WrongLengthError
from hohmm.core.hmm import ScoreKind, TrainingMonitor
from hohmm.training.parameters import NumericalParameters, OptimizationObjective

# Starting value of log-parameters whose probability is 0
LOG_PARAMETER_FLOOR = -30.0


class LogPosteriorObjective:
    """
    Log posterior of the training data as a function of the parameters.

    Args:
        coordinator: TrainingCoordinator holding the data and workers
        objective: Which score to sum
        labels: One label sequence per training sequence (discriminative
            objectives only)
    """

    def __init__(self, coordinator, objective: OptimizationObjective = OptimizationObjective.LIKELIHOOD,
                 labels: Optional[Sequence[Sequence[int]]] = None):
        self.coordinator = coordinator
        self.model = coordinator.model
        self.objective = objective
        self.kind = ScoreKind.VITERBI if objective.viterbi else ScoreKind.LIKELIHOOD

        self.labels = None
        if objective.discriminative:
            if labels is None:
                raise ValueError(f"{objective.name} training needs a label sequence per sequence")
            self.labels = [np.asarray(lab, dtype=np.int64) for lab in labels]
            if len(self.labels) != len(coordinator.data):
                raise WrongLengthError(
                    f"{len(self.labels)} label sequences for {len(coordinator.data)} sequences"
                )

        self.n_evaluations = 0
        self._x = None
        self._value = None
        self._gradient = None

    @property
    def dimension(self) -> int:
        return self.model.number_of_parameters

    def _compute(self, x: np.ndarray):
        x = np.asarray(x, dtype=float)
        if self._x is not None and np.array_equal(x, self._x):
            return

        self.model.set_parameters(x)
        self.coordinator.broadcast()
        coordinator = self.coordinator

        def work(index, worker, partition):
            value = 0.0
            grad = np.zeros(self.dimension)
            for n in partition:
                if coordinator.aborted:
                    break
                w = coordinator.weights[n]
                if w == 0:
                    continue
                labels = None if self.labels is None else self.labels[n]
                s, g = worker.log_score_and_gradient(coordinator.data[n], kind=self.kind,
                                                     labels=labels)
                value += w * s
                grad += w * g
            return value, grad

        results = coordinator.map_workers(work)
        self._value = float(sum(r[0] for r in results) + self.model.log_prior())
        self._gradient = sum(r[1] for r in results) + self.model.log_prior_gradient()
        self._x = x.copy()
        self.n_evaluations += 1

    def evaluate(self, x: np.ndarray) -> float:
        self._compute(x)
        return self._value

    def evaluate_gradient(self, x: np.ndarray) -> np.ndarray:
        self._compute(x)
        return self._gradient.copy()


def finite_start(x: np.ndarray, floor: float = LOG_PARAMETER_FLOOR) -> np.ndarray:
    """Replace -inf log-parameters (probability 0) by floor."""
    x = np.asarray(x, dtype=float).copy()
    x[np.isneginf(x)] = floor
    return x


def optimize(objective: LogPosteriorObjective, params: NumericalParameters) -> float:
    """
    Maximise the objective from n_starts starting points; keep the best.

    Starts whose optimum is not finite are discarded with a warning. If
    no start succeeds the parameters in place before training are kept.

    Returns:
        Best objective value (-inf if every start failed)
    """
    model = objective.model
    rng = np.random.default_rng(params.seed)
    monitor = TrainingMonitor()
    model.monitor_ = monitor
    initial = model.get_parameters()
    best_x = None

    starts = tqdm(range(params.n_starts), desc="Optimization starts",
                  disable=not params.verbose)
    try:
        for start in starts:
            if params.skip_init:
                x0 = initial
            else:
                model.initialize_randomly(rng)
                x0 = model.get_parameters()
            x0 = finite_start(x0)

            monitor.new_start()
            monitor.history.append(objective.evaluate(x0))

            def record(xk, *args):
                monitor.history.append(objective.evaluate(xk))

            result = minimize(
                lambda x: -objective.evaluate(x),
                x0,
                jac=lambda x: -objective.evaluate_gradient(x),
                method=params.method,
                tol=params.tolerance,
                options={'maxiter': params.max_iterations},
                callback=record,
            )
            if not result.success:
                warnings.warn(f"Optimizer stopped early on start {start + 1}: {result.message}")

            if not np.all(np.isfinite(result.x)):
                warnings.warn(f"Start {start + 1} produced non-finite parameters; discarded")
                continue
            value = objective.evaluate(result.x)
            if not np.isfinite(value):
                warnings.warn(f"Start {start + 1} ended with objective {value}; discarded")
                continue
            if best_x is None or value > monitor.best_score:
                monitor.best_score = value
                monitor.best_start = start
                best_x = np.asarray(result.x, dtype=float).copy()
            starts.set_postfix({'best_logprob': f'{monitor.best_score:.2e}'})
    except HMMError:
        model.set_parameters(initial if best_x is None else best_x)
        objective.coordinator.broadcast()
        raise

    if best_x is None:
        warnings.warn("No optimization start succeeded; parameters are unchanged")
        best_x = initial
    model.set_parameters(best_x)
    objective.coordinator.broadcast()
    return monitor.best_score
