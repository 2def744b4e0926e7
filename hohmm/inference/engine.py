"""hohmm per-sequence decoding engine."""

from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from tqdm import tqdm

from hohmm.core.hmm import HigherOrderHMM
from hohmm.core.sequence_reader import SequenceRecord

SEGMENT_COLUMNS = ['name', 'start', 'end', 'state', 'state_name', 'score',
                   'viterbi_score', 'log_likelihood']


def emitting_states(model: HigherOrderHMM, path: Sequence[int]) -> np.ndarray:
    """State emitting each position: the path with silent states removed."""
    return np.array([s for s in path if not model.states[s].silent], dtype=np.int64)


def extract_segments(states: np.ndarray) -> Dict[str, np.ndarray]:
    """
    Runs of identical states.

    Args:
        states: State per position

    Returns:
        dict with 'starts', 'sizes' and 'states' (one entry per run)
    """
    states = np.asarray(states)
    if len(states) == 0:
        return {
            'starts': np.array([], dtype=np.int64),
            'sizes': np.array([], dtype=np.int64),
            'states': np.array([], dtype=np.int64),
        }

    # A run starts wherever the state differs from the previous position
    change = np.flatnonzero(np.diff(states)) + 1
    starts = np.concatenate([[0], change])
    ends = np.concatenate([change, [len(states)]])
    return {
        'starts': starts.astype(np.int64),
        'sizes': (ends - starts).astype(np.int64),
        'states': states[starts].astype(np.int64),
    }


def annotate_sequence(model: HigherOrderHMM, codes: np.ndarray,
                      with_posteriors: bool = False) -> dict:
    """
    Decode one sequence.

    Args:
        model: Trained model
        codes: Encoded sequence
        with_posteriors: If True, also compute state posteriors and a
            mean-posterior confidence per segment

    Returns:
        dict with:
            'path': Viterbi path (silent states included)
            'states': emitting state per position
            'viterbi_score': log score of the path
            'log_likelihood': log P(sequence)
            'segment_starts', 'segment_sizes', 'segment_states'
            'segment_scores': mean posterior of each segment's state (if with_posteriors)
            'posteriors': (L, n_states) posterior matrix (if with_posteriors)
    """
    result = {
        'path': np.array([], dtype=np.int64),
        'states': np.array([], dtype=np.int64),
        'viterbi_score': -np.inf,
        'log_likelihood': -np.inf,
        'segment_starts': np.array([], dtype=np.int64),
        'segment_sizes': np.array([], dtype=np.int64),
        'segment_states': np.array([], dtype=np.int64),
        'segment_scores': None,
        'posteriors': None,
    }

    if len(codes) == 0:
        return result

    path, score = model.viterbi_path(codes)
    if len(path) == 0:
        return result

    states = emitting_states(model, path)
    segments = extract_segments(states)
    result.update({
        'path': path,
        'states': states,
        'viterbi_score': score,
        'log_likelihood': model.log_prob(codes),
        'segment_starts': segments['starts'],
        'segment_sizes': segments['sizes'],
        'segment_states': segments['states'],
    })

    if with_posteriors:
        posteriors = model.state_posteriors(codes)
        confidence = posteriors[np.arange(len(states)), states]
        scores = np.zeros(len(segments['starts']))
        for i, (s, n) in enumerate(zip(segments['starts'], segments['sizes'])):
            scores[i] = np.mean(confidence[s:s + n])
        result['segment_scores'] = scores
        result['posteriors'] = posteriors

    return result


def _segment_rows(model: HigherOrderHMM, record: SequenceRecord, result: dict) -> List[dict]:
    rows = []
    scores = result['segment_scores']
    for i, (start, size, state) in enumerate(zip(result['segment_starts'],
                                                 result['segment_sizes'],
                                                 result['segment_states'])):
        rows.append({
            'name': record.name,
            'start': int(start),
            'end': int(start + size),
            'state': int(state),
            'state_name': model.states[state].name or str(state),
            'score': float(scores[i]) if scores is not None else np.nan,
            'viterbi_score': result['viterbi_score'],
            'log_likelihood': result['log_likelihood'],
        })
    return rows


def _posterior_rows(model: HigherOrderHMM, record: SequenceRecord, result: dict) -> List[dict]:
    posteriors = result['posteriors']
    if posteriors is None:
        return []
    emitting = [s for s in range(model.n_states) if not model.states[s].silent]
    names = [model.states[s].name or str(s) for s in emitting]
    rows = []
    for pos in range(posteriors.shape[0]):
        row = {'name': record.name, 'position': pos}
        row.update({f'p_{n}': float(posteriors[pos, s]) for n, s in zip(names, emitting)})
        rows.append(row)
    return rows


def annotate_records(model: HigherOrderHMM, records: Sequence[SequenceRecord],
                     n_threads: int = 1, with_posteriors: bool = False,
                     show_progress: bool = False, posteriors_out: Optional[list] = None
                     ) -> pd.DataFrame:
    """
    Decode many sequences into one segment table.

    Records are split into contiguous blocks, one per thread; each thread
    decodes with its own copy of the model.

    Args:
        model: Trained model
        records: Input sequences
        n_threads: Worker threads
        with_posteriors: Add per-segment confidence scores
        show_progress: Show a tqdm progress bar
        posteriors_out: If given, per-position posterior rows are appended to it

    Returns:
        DataFrame with one row per segment (columns SEGMENT_COLUMNS)
    """
    records = list(records)
    n_threads = max(1, min(n_threads, len(records)))
    blocks = [records[i * len(records) // n_threads:(i + 1) * len(records) // n_threads]
              for i in range(n_threads)]
    models = [model] + [model.duplicate() for _ in range(n_threads - 1)]
    pbar = tqdm(total=len(records), desc="Decoding", disable=not show_progress)

    def decode_block(index: int):
        worker = models[index]
        segments, posteriors = [], []
        for record in blocks[index]:
            codes = worker.alphabet.encode(record.sequence)
            result = annotate_sequence(worker, codes, with_posteriors)
            segments.extend(_segment_rows(worker, record, result))
            posteriors.extend(_posterior_rows(worker, record, result))
            pbar.update(1)
        return segments, posteriors

    if n_threads == 1:
        results = [decode_block(0)]
    else:
        with ThreadPoolExecutor(max_workers=n_threads) as executor:
            results = list(executor.map(decode_block, range(n_threads)))
    pbar.close()

    rows = [row for segments, _ in results for row in segments]
    if posteriors_out is not None:
        for _, posteriors in results:
            posteriors_out.extend(posteriors)
    return pd.DataFrame(rows, columns=SEGMENT_COLUMNS)
