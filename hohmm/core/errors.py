"""
Exception hierarchy for hohmm.

Every error raised by the library derives from HMMError, so callers can
catch library failures without masking programming errors elsewhere.
"""

import functools

import numpy as np


class HMMError(Exception):
    """Base class of all hohmm errors."""


class ModelConfigurationError(HMMError, ValueError):
    """The states, transition elements or hyper-parameters are inconsistent."""


class InvalidPathError(HMMError, ValueError):
    """A state path cannot be generated by the model."""


class WrongLengthError(HMMError, ValueError):
    """A sequence window or label array has an unusable length."""


class WrongAlphabetError(HMMError, ValueError):
    """A sequence contains symbols outside the model alphabet."""


class NotTrainedError(HMMError, RuntimeError):
    """Inference was requested before parameters or samples exist."""


class UnsupportedTrainingModeError(HMMError, TypeError):
    """The training parameter set is not supported by this model class."""


class ComputationError(HMMError, RuntimeError):
    """A score computation failed inside the dynamic programming."""


class TrainingError(HMMError, RuntimeError):
    """A training worker failed; no parameter update was applied."""


def wrap_computation_errors(method):
    """
    Decorate a public score method so it returns a number or raises an HMMError.

    HMMError subclasses pass through unchanged; anything else raised inside
    the recursion is re-raised once as ComputationError. A NaN result is
    reported the same way (negative infinity is a legal score).
    """
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            result = method(self, *args, **kwargs)
        except HMMError:
            raise
        except Exception as e:
            raise ComputationError(
                f"{type(self).__name__}.{method.__name__} failed: {e}"
            ) from e

        for value in (result if isinstance(result, tuple) else (result,)):
            if _has_nan(value):
                raise ComputationError(
                    f"{type(self).__name__}.{method.__name__} produced NaN"
                )
        return result
    return wrapper


def _has_nan(value) -> bool:
    if isinstance(value, (float, np.floating)):
        return bool(np.isnan(value))
    if isinstance(value, np.ndarray) and value.dtype.kind == 'f':
        return bool(np.isnan(value).any())
    return False
