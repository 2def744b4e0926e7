"""
hohmm model I/O module

Models are saved as JSON: human-readable and portable. The file holds
the model's to_dict() under 'model' plus free-form metadata (training
settings, alphabet name, ...) under 'metadata'.
"""

import json
import os
import warnings
from typing import Any, Dict, Optional, Tuple

from hohmm.core.differentiable import DifferentiableHigherOrderHMM
from hohmm.core.hmm import HigherOrderHMM
from hohmm.core.sampling import SamplingHigherOrderHMM

FORMAT_VERSION = '1.0'

MODEL_TYPES = {
    cls.__name__: cls
    for cls in (HigherOrderHMM, DifferentiableHigherOrderHMM, SamplingHigherOrderHMM)
}


def model_from_dict(d: Dict[str, Any]) -> HigherOrderHMM:
    """Rebuild a model of the class named by d['model_type']."""
    model_type = d.get('model_type')
    if model_type not in MODEL_TYPES:
        raise ValueError(
            f"Unknown model type {model_type!r}; expected one of {sorted(MODEL_TYPES)}"
        )
    return MODEL_TYPES[model_type].from_dict(d)


# =============================================================================
# Saving
# =============================================================================

def save_model(model: HigherOrderHMM, filepath: str,
               metadata: Optional[Dict[str, Any]] = None) -> str:
    """
    Save model to file in JSON format.

    If the filepath does not end in .json, the extension is replaced with .json
    and a warning is issued.

    Args:
        model: Model to save
        filepath: Output path (.json recommended)
        metadata: JSON-serialisable extra information

    Returns:
        Path actually written
    """
    if not filepath.endswith('.json'):
        old_path = filepath
        base, _ = os.path.splitext(filepath)
        filepath = base + '.json'
        warnings.warn(
            f"Only JSON format is supported for saving. "
            f"Saving to '{filepath}' instead of '{old_path}'."
        )

    data = {
        'format_version': FORMAT_VERSION,
        'model': model.to_dict(),
        'metadata': metadata or {},
    }
    with open(filepath, 'w') as f:
        json.dump(data, f, indent=2)
    return filepath


# =============================================================================
# Loading
# =============================================================================

def _read(filepath: str) -> Dict[str, Any]:
    if not filepath.endswith('.json'):
        raise ValueError(f"Models are stored as JSON; cannot load '{filepath}'")
    with open(filepath, 'r') as f:
        data = json.load(f)
    if 'model' not in data:
        # bare to_dict() output
        data = {'model': data, 'metadata': {}}
    return data


def load_model(filepath: str) -> HigherOrderHMM:
    """
    Load a model from a JSON file written by save_model.

    Args:
        filepath: Path to model file

    Returns:
        Model of the saved class
    """
    return model_from_dict(_read(filepath)['model'])


def load_model_with_metadata(filepath: str) -> Tuple[HigherOrderHMM, Dict[str, Any]]:
    """
    Load model and its metadata.

    Returns:
        (model, metadata)
    """
    data = _read(filepath)
    return model_from_dict(data['model']), data.get('metadata', {})
