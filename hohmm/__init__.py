"""
hohmm - higher-order hidden Markov models with silent states for
discrete sequence data: exact DP, EM, gradient and Gibbs training.
"""

__version__ = "0.1.0"

from hohmm.core.alphabet import BINARY, DNA, DiscreteAlphabet
from hohmm.core.differentiable import DifferentiableHigherOrderHMM
from hohmm.core.emissions import DiscreteEmission
from hohmm.core.errors import (
    ComputationError,
    HMMError,
    InvalidPathError,
    ModelConfigurationError,
    NotTrainedError,
    TrainingError,
    UnsupportedTrainingModeError,
    WrongAlphabetError,
    WrongLengthError,
)
from hohmm.core.factory import create_discrete_ergodic_hmm, create_ergodic_hmm, create_pseudo_ergodic_hmm
from hohmm.core.hmm import HigherOrderHMM, ScoreKind
from hohmm.core.model_io import load_model, load_model_with_metadata, save_model
from hohmm.core.sampling import SamplingHigherOrderHMM, VarianceRatioBurnInTest, ViterbiComputation
from hohmm.core.states import State
from hohmm.core.transitions import HigherOrderTransition, TransitionElement
from hohmm.training.parameters import (
    BaumWelchParameters,
    NumericalParameters,
    OptimizationObjective,
    SamplingParameters,
    ViterbiParameters,
)
