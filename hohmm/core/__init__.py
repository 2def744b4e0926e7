"""Core HMM model, DP engine, parameters and I/O."""

from hohmm.core.alphabet import DiscreteAlphabet
from hohmm.core.emissions import DiscreteEmission
from hohmm.core.hmm import HigherOrderHMM, ScoreKind, TrainingMonitor
from hohmm.core.states import State
from hohmm.core.transitions import HigherOrderTransition, TransitionElement
