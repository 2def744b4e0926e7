"""
Sequence input for training and decoding.

Supports:
- FASTA / FASTQ (optionally gzip-compressed), read with pysam.FastxFile
- plain text, one sequence per line, optionally followed by a tab and a
  weight; blank lines and lines starting with '#' are skipped
"""

import gzip
from dataclasses import dataclass
from typing import Iterator, List, Sequence, Tuple

import numpy as np
import pysam

from hohmm.core.alphabet import DiscreteAlphabet

FASTX_SUFFIXES = ('.fa', '.fasta', '.fna', '.fq', '.fastq')


@dataclass
class SequenceRecord:
    """One named input sequence with its training weight."""
    name: str
    sequence: str
    weight: float = 1.0

    @property
    def length(self) -> int:
        return len(self.sequence)


def is_fastx(path: str) -> bool:
    name = path[:-3] if path.endswith('.gz') else path
    return name.lower().endswith(FASTX_SUFFIXES)


def _read_fastx(path: str) -> Iterator[SequenceRecord]:
    with pysam.FastxFile(path) as fh:
        for entry in fh:
            yield SequenceRecord(name=entry.name, sequence=entry.sequence.upper())


def _read_lines(path: str) -> Iterator[SequenceRecord]:
    opener = gzip.open if path.endswith('.gz') else open
    with opener(path, 'rt') as f:
        n = 0
        for line in f:
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            fields = line.split('\t')
            weight = float(fields[1]) if len(fields) > 1 else 1.0
            yield SequenceRecord(name=f"seq{n}", sequence=fields[0].upper(), weight=weight)
            n += 1


def read_sequences(path: str, min_length: int = 0) -> Iterator[SequenceRecord]:
    """
    Yield the sequences of a FASTA/FASTQ or plain text file.

    Args:
        path: Input file (.gz allowed)
        min_length: Skip sequences shorter than this
    """
    records = _read_fastx(path) if is_fastx(path) else _read_lines(path)
    for record in records:
        if record.length >= min_length:
            yield record


def records_to_chunks(records: Iterator[SequenceRecord],
                      chunk_size: int = 1000) -> Iterator[List[SequenceRecord]]:
    """Group records into lists of at most chunk_size."""
    chunk = []
    for record in records:
        chunk.append(record)
        if len(chunk) >= chunk_size:
            yield chunk
            chunk = []

    if chunk:
        yield chunk


def encode_records(records: Sequence[SequenceRecord],
                   alphabet: DiscreteAlphabet) -> Tuple[List[np.ndarray], np.ndarray]:
    """
    Encode records for training.

    Returns:
        (code arrays, weights)
    """
    data = [alphabet.encode(r.sequence) for r in records]
    weights = np.array([r.weight for r in records], dtype=float)
    return data, weights
