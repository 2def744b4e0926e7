"""Sequence decoding engine and segment statistics."""

from hohmm.inference.engine import (
    annotate_records,
    annotate_sequence,
    emitting_states,
    extract_segments,
)
from hohmm.inference.stats import SegmentStats

__all__ = [
    'annotate_records',
    'annotate_sequence',
    'emitting_states',
    'extract_segments',
    'SegmentStats',
]
