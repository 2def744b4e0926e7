"""Training parameter sets, the parallel EM coordinator and numerical optimisation."""

from hohmm.training.parameters import (
    BaumWelchParameters,
    CombinedCondition,
    IterationCondition,
    NumericalParameters,
    OptimizationObjective,
    SamplingParameters,
    SmallDifferenceCondition,
    TerminationCondition,
    TimeCondition,
    TrainingParameters,
    ViterbiParameters,
)
from hohmm.training.parallel import TrainingCoordinator
