"""
Shared pytest fixtures for hohmm tests.
"""
import pytest
import numpy as np

from hohmm.core.alphabet import BINARY, DNA
from hohmm.core.differentiable import DifferentiableHigherOrderHMM
from hohmm.core.emissions import DiscreteEmission
from hohmm.core.hmm import HigherOrderHMM
from hohmm.core.sampling import SamplingHigherOrderHMM
from hohmm.core.states import State
from hohmm.core.transitions import HigherOrderTransition, TransitionElement


def two_state_emissions(ess=0.0):
    """State 0 prefers '0', state 1 prefers '1'."""
    return [
        DiscreteEmission(BINARY, ess, probabilities=np.array([0.8, 0.2])),
        DiscreteEmission(BINARY, ess, probabilities=np.array([0.3, 0.7])),
    ]


def first_order_model(model_class=HigherOrderHMM, ess=0.0, **kwargs):
    """Order-1, 2-state, 2-symbol model."""
    e0, e1 = two_state_emissions(ess)
    hyper = np.full(2, ess / 2)
    transition = HigherOrderTransition([False, False], [
        TransitionElement((), [0, 1], hyper, [0.6, 0.4]),
        TransitionElement((0,), [0, 1], hyper, [0.9, 0.1]),
        TransitionElement((1,), [0, 1], hyper, [0.2, 0.8]),
    ])
    return model_class([State(e0, name='low'), State(e1, name='high')], transition, **kwargs)


@pytest.fixture
def binary():
    return BINARY


@pytest.fixture
def dna():
    return DNA


@pytest.fixture
def order0_model():
    """Order-0, 2-state model with uniform parameters."""
    e = DiscreteEmission(BINARY)
    transition = HigherOrderTransition([False, False], [
        TransitionElement((), [0, 1]),
    ])
    return HigherOrderHMM([State(e), State(e)], transition)


@pytest.fixture
def order1_model():
    return first_order_model()


@pytest.fixture
def differentiable_model():
    return first_order_model(DifferentiableHigherOrderHMM, ess=2.0)


@pytest.fixture
def sampling_model():
    return first_order_model(SamplingHigherOrderHMM, ess=2.0)


@pytest.fixture
def order2_model():
    """Order-2, 2-state model with distinct parameters per context."""
    e0, e1 = two_state_emissions()
    elements = [
        TransitionElement((), [0, 1], probabilities=[0.5, 0.5]),
        TransitionElement((0,), [0, 1], probabilities=[0.7, 0.3]),
        TransitionElement((1,), [0, 1], probabilities=[0.4, 0.6]),
        TransitionElement((0, 0), [0, 1], probabilities=[0.9, 0.1]),
        TransitionElement((0, 1), [0, 1], probabilities=[0.5, 0.5]),
        TransitionElement((1, 0), [0, 1], probabilities=[0.3, 0.7]),
        TransitionElement((1, 1), [0, 1], probabilities=[0.1, 0.9]),
    ]
    transition = HigherOrderTransition([False, False], elements)
    return HigherOrderHMM([State(e0), State(e1)], transition)


@pytest.fixture
def silent_model():
    """
    Order-1 model with a silent state S (index 2) between 0 and {0, 1}.

    0 -> 0 with 0.7, 0 -> S with 0.3, S -> 0 / 1 with 0.5 each.
    """
    e0, e1 = two_state_emissions()
    transition = HigherOrderTransition([False, False, True], [
        TransitionElement((), [0, 1], probabilities=[0.6, 0.4]),
        TransitionElement((0,), [0, 2], probabilities=[0.7, 0.3]),
        TransitionElement((2,), [0, 1], probabilities=[0.5, 0.5]),
        TransitionElement((1,), [1], probabilities=[1.0]),
    ])
    return HigherOrderHMM([State(e0), State(e1), State(None, name='S')], transition)


@pytest.fixture
def precomposed_model():
    """silent_model with S folded into the transitions of state 0."""
    e0, e1 = two_state_emissions()
    transition = HigherOrderTransition([False, False], [
        TransitionElement((), [0, 1], probabilities=[0.6, 0.4]),
        TransitionElement((0,), [0, 1], probabilities=[0.85, 0.15]),
        TransitionElement((1,), [1], probabilities=[1.0]),
    ])
    return HigherOrderHMM([State(e0), State(e1)], transition)


@pytest.fixture
def training_sequences():
    """Sequences with long runs of 0s and 1s."""
    rng = np.random.default_rng(7)
    sequences = []
    for _ in range(12):
        runs = []
        for _ in range(4):
            symbol = rng.integers(2)
            length = rng.integers(3, 9)
            noise = rng.random(length) < 0.1
            runs.append(np.where(noise, 1 - symbol, symbol))
        sequences.append(np.concatenate(runs).astype(np.int64))
    return sequences


@pytest.fixture
def make_model():
    """Factory for fresh order-1 models (see first_order_model)."""
    return first_order_model
