"""
Training parameter sets and termination conditions.

Parameter sets are plain dataclasses; the model class decides which of
them it accepts (see HigherOrderHMM.train and subclasses).
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import numpy as np


# =============================================================================
# Termination conditions
# =============================================================================

class TerminationCondition:
    """Decides after each outer iteration whether training goes on."""

    def do_next_iteration(self, iteration: int, old_value: float, new_value: float,
                          elapsed: float) -> bool:
        raise NotImplementedError


class IterationCondition(TerminationCondition):
    """Stop after a fixed number of iterations."""

    def __init__(self, max_iterations: int):
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be positive, got {max_iterations}")
        self.max_iterations = max_iterations

    def do_next_iteration(self, iteration, old_value, new_value, elapsed):
        return iteration + 1 < self.max_iterations

    def __repr__(self):
        return f"IterationCondition({self.max_iterations})"


class SmallDifferenceCondition(TerminationCondition):
    """Stop once the objective improves by less than epsilon."""

    def __init__(self, epsilon: float = 1e-4):
        if epsilon < 0:
            raise ValueError(f"epsilon must be non-negative, got {epsilon}")
        self.epsilon = epsilon

    def do_next_iteration(self, iteration, old_value, new_value, elapsed):
        if not np.isfinite(old_value):
            return True
        return new_value - old_value >= self.epsilon

    def __repr__(self):
        return f"SmallDifferenceCondition({self.epsilon})"


class TimeCondition(TerminationCondition):
    """Stop once the elapsed time (seconds) exceeds a limit."""

    def __init__(self, seconds: float):
        self.seconds = seconds

    def do_next_iteration(self, iteration, old_value, new_value, elapsed):
        return elapsed < self.seconds

    def __repr__(self):
        return f"TimeCondition({self.seconds})"


class CombinedCondition(TerminationCondition):
    """
    Combination of conditions.

    By default training stops as soon as any condition says stop; with
    require_all=True it continues while any condition says continue.
    """

    def __init__(self, *conditions: TerminationCondition, require_all: bool = False):
        if not conditions:
            raise ValueError("CombinedCondition needs at least one condition")
        self.conditions = conditions
        self.require_all = require_all

    def do_next_iteration(self, iteration, old_value, new_value, elapsed):
        votes = [c.do_next_iteration(iteration, old_value, new_value, elapsed)
                 for c in self.conditions]
        return any(votes) if self.require_all else all(votes)

    def __repr__(self):
        return f"CombinedCondition({', '.join(map(repr, self.conditions))})"


def default_termination() -> TerminationCondition:
    return CombinedCondition(IterationCondition(1000), SmallDifferenceCondition(1e-4))


class Timer:
    """Elapsed wall time since construction."""
    def __init__(self):
        self._start = time.perf_counter()

    def elapsed(self) -> float:
        return time.perf_counter() - self._start


# =============================================================================
# Parameter sets
# =============================================================================

@dataclass
class TrainingParameters:
    """Options common to every training algorithm."""
    n_starts: int = 1
    n_threads: int = 1
    seed: Optional[int] = None
    skip_init: bool = False
    verbose: bool = False

    def __post_init__(self):
        if self.n_starts < 1:
            raise ValueError(f"n_starts must be positive, got {self.n_starts}")
        if self.n_threads < 1:
            raise ValueError(f"n_threads must be positive, got {self.n_threads}")


@dataclass
class BaumWelchParameters(TrainingParameters):
    """Soft EM: expected counts from forward-backward."""
    termination: TerminationCondition = field(default_factory=default_termination)


@dataclass
class ViterbiParameters(TrainingParameters):
    """Hard EM: counts from the Viterbi path."""
    termination: TerminationCondition = field(default_factory=default_termination)


class OptimizationObjective(Enum):
    """Objective maximised by numerical training."""
    LIKELIHOOD = 'likelihood'
    VITERBI = 'viterbi'
    DISCRIMINATIVE_LIKELIHOOD = 'discriminative_likelihood'
    DISCRIMINATIVE_VITERBI = 'discriminative_viterbi'

    @property
    def discriminative(self) -> bool:
        return self in (OptimizationObjective.DISCRIMINATIVE_LIKELIHOOD,
                        OptimizationObjective.DISCRIMINATIVE_VITERBI)

    @property
    def viterbi(self) -> bool:
        return self in (OptimizationObjective.VITERBI,
                        OptimizationObjective.DISCRIMINATIVE_VITERBI)


@dataclass
class NumericalParameters(TrainingParameters):
    """Gradient-based optimisation of the log posterior with scipy.optimize."""
    objective: OptimizationObjective = OptimizationObjective.LIKELIHOOD
    method: str = 'L-BFGS-B'
    max_iterations: int = 200
    tolerance: float = 1e-6


@dataclass
class SamplingParameters(TrainingParameters):
    """
    Gibbs sampling of parameter sets.

    n_starts independent chains run until burn_in_test declares them
    stationary (at most max_burn_in rounds), then stationary_steps more
    parameter sets are drawn per chain.
    """
    burn_in_test: Optional[object] = None
    stationary_steps: int = 100
    max_burn_in: int = 500

    def __post_init__(self):
        super().__post_init__()
        if self.stationary_steps < 1:
            raise ValueError(f"stationary_steps must be positive, got {self.stationary_steps}")
        if self.max_burn_in < 1:
            raise ValueError(f"max_burn_in must be positive, got {self.max_burn_in}")
