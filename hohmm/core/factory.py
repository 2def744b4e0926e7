"""
Construction helpers for common HMM topologies.

The hyper-parameters follow one equivalent sample size (ess): the start
distribution receives ess, and each full-order context receives its
share of the ess expected over the remaining positions of a sequence of
expected_sequence_length symbols.
"""

import itertools
from typing import Optional, Sequence, Type

import numpy as np

from hohmm.core.alphabet import DiscreteAlphabet
from hohmm.core.emissions import DiscreteEmission
from hohmm.core.errors import ModelConfigurationError
from hohmm.core.hmm import HigherOrderHMM
from hohmm.core.states import State
from hohmm.core.transitions import HigherOrderTransition, TransitionElement


def _self_biased_hyper(n: int, last: int, ess: float, self_transition_part: float) -> np.ndarray:
    """ess split between the context's last state (self) and all others."""
    if n == 1:
        return np.array([ess])
    hyper = np.full(n, ess * (1 - self_transition_part) / (n - 1))
    hyper[last] = ess * self_transition_part
    return hyper


def _check_parts(ess: float, *parts: float):
    if ess < 0:
        raise ModelConfigurationError(f"ess must be non-negative, got {ess}")
    if any(p < 0 for p in parts) or sum(parts) > 1:
        raise ModelConfigurationError(f"Transition parts must be non-negative and sum to at most 1: {parts}")


def create_ergodic_hmm(emissions: Sequence[DiscreteEmission], order: int = 1, ess: float = 0.0,
                       self_transition_part: float = 0.5, expected_sequence_length: float = 100,
                       model_class: Type[HigherOrderHMM] = HigherOrderHMM,
                       name: Optional[str] = None) -> HigherOrderHMM:
    """
    Fully connected HMM of the given order over emitting states.

    Args:
        emissions: One emission per state (state i uses emissions[i])
        order: Markov order (0 gives a mixture of i.i.d. states)
        ess: Equivalent sample size of the transition prior
        self_transition_part: Share of a context's ess on staying in its last state
        expected_sequence_length: Sequence length the prior is calibrated for
        model_class: HigherOrderHMM or one of its subclasses
        name: Optional model name

    Returns:
        Model with len(emissions) states
    """
    if order < 0:
        raise ModelConfigurationError(f"order must be non-negative, got {order}")
    if any(e is None for e in emissions):
        raise ModelConfigurationError("An ergodic HMM cannot contain silent states")
    _check_parts(ess, self_transition_part)

    n = len(emissions)
    states = list(range(n))
    elements = [TransitionElement((), states, np.full(n, ess / n))]

    e = ess / n
    for o in range(1, order):
        for context in itertools.product(states, repeat=o):
            elements.append(TransitionElement(
                context, states, _self_biased_hyper(n, context[-1], e, self_transition_part)))
        e /= n

    if order > 0:
        per_context = ess * max(expected_sequence_length - order, 0) / n ** order
        for context in itertools.product(states, repeat=order):
            elements.append(TransitionElement(
                context, states, _self_biased_hyper(n, context[-1], per_context,
                                                    self_transition_part)))

    transition = HigherOrderTransition([False] * n, elements)
    model_states = [State(em, name=str(i)) for i, em in enumerate(emissions)]
    return model_class(model_states, transition, name=name)


def create_pseudo_ergodic_hmm(alphabet: DiscreteAlphabet, n_states: int, ess: float = 0.0,
                              self_transition_part: float = 0.5,
                              final_transition_part: float = 0.05,
                              model_class: Type[HigherOrderHMM] = HigherOrderHMM,
                              name: Optional[str] = None) -> HigherOrderHMM:
    """
    First-order clique of n_states emitting states plus a silent final state F.

    Every emitting state can move to every other one, to itself and to
    F; F has no outgoing transitions, so paths must end there.
    """
    if n_states < 1:
        raise ModelConfigurationError(f"n_states must be positive, got {n_states}")
    _check_parts(ess, self_transition_part, final_transition_part)

    emitting = list(range(n_states))
    final = n_states
    children = emitting + [final]

    elements = [TransitionElement((), emitting, np.full(n_states, ess / n_states))]
    other = (1 - self_transition_part - final_transition_part) * ess / max(n_states - 1, 1)
    for i in emitting:
        hyper = np.full(n_states + 1, other)
        hyper[i] = self_transition_part * ess
        hyper[final] = final_transition_part * ess
        elements.append(TransitionElement((i,), children, hyper))

    transition = HigherOrderTransition([False] * n_states + [True], elements)
    states = [State(DiscreteEmission(alphabet, ess / n_states), name=str(i)) for i in emitting]
    states.append(State(None, name='F'))
    return model_class(states, transition, name=name)


def create_discrete_ergodic_hmm(alphabet: DiscreteAlphabet, n_states: int, order: int = 1,
                                ess: float = 0.0, self_transition_part: float = 0.5,
                                expected_sequence_length: float = 100,
                                model_class: Type[HigherOrderHMM] = HigherOrderHMM,
                                name: Optional[str] = None) -> HigherOrderHMM:
    """Ergodic HMM whose states each own a DiscreteEmission over alphabet."""
    if n_states < 1:
        raise ModelConfigurationError(f"n_states must be positive, got {n_states}")
    emissions = [DiscreteEmission(alphabet, ess / n_states) for _ in range(n_states)]
    return create_ergodic_hmm(emissions, order, ess, self_transition_part,
                              expected_sequence_length, model_class, name)
