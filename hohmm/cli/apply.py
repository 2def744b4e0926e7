#!/usr/bin/env python3
"""
hohmm-apply CLI entry point.
Decodes sequences with a trained model and writes the Viterbi segments
(and optionally per-position state posteriors) as TSV.
"""

import argparse
import os
import sys

import pandas as pd

from hohmm.cli.common import add_output_args, add_parallel_args, add_verbose_args, add_version_args, resolve_threads
from hohmm.core.errors import HMMError
from hohmm.core.model_io import load_model_with_metadata
from hohmm.core.sequence_reader import read_sequences
from hohmm.inference.engine import annotate_records
from hohmm.inference.stats import SegmentStats


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Decode sequences with a trained higher-order HMM',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Output:
  <name>_segments.tsv     one row per run of identical states
  <name>_posteriors.tsv   per-position state posteriors (--posteriors)
  <name>_stats.txt        segment summary (--stats)

Examples:
  hohmm-apply -i reads.fa -m output/best-model.json -o decoded/
  hohmm-apply -i reads.fa -m output/best-model.json -o decoded/ --scores -t 8
'''
    )
    add_version_args(parser)

    parser.add_argument('-i', '--input', required=True,
                        help='Sequences to decode (FASTA/FASTQ or one sequence per line)')
    parser.add_argument('-m', '--model', required=True,
                        help='Trained model (.json)')
    add_output_args(parser)
    parser.add_argument('--min-length', type=int, default=1,
                        help='Skip sequences shorter than this')
    parser.add_argument('--scores', action='store_true',
                        help='Add the mean state posterior of every segment')
    parser.add_argument('--posteriors', action='store_true',
                        help='Write per-position state posteriors')
    parser.add_argument('--stats', action='store_true',
                        help='Write segment summary statistics')
    add_parallel_args(parser)
    add_verbose_args(parser)

    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    n_threads = resolve_threads(args.threads)
    os.makedirs(args.outdir, exist_ok=True)

    print(f"Loading model from {args.model}")
    model, metadata = load_model_with_metadata(args.model)
    print(f"  {model}")
    if metadata:
        print(f"  Trained with: {metadata.get('algorithm', 'unknown')}")

    records = list(read_sequences(args.input, min_length=args.min_length))
    if not records:
        print(f"Error: no sequences of length >= {args.min_length} in {args.input}")
        sys.exit(1)

    dataset = os.path.basename(args.input).split('.')[0]
    print(f"\nProcessing: {args.input}")
    print(f"  Sequences: {len(records)}")
    print(f"  Threads: {n_threads}")
    print(f"  Output: {args.outdir}")

    posteriors = [] if args.posteriors else None
    try:
        segments = annotate_records(model, records, n_threads=n_threads,
                                    with_posteriors=args.scores or args.posteriors,
                                    show_progress=args.verbose,
                                    posteriors_out=posteriors)
    except HMMError as e:
        print(f"Error: {e}")
        sys.exit(1)

    segments_path = os.path.join(args.outdir, f"{dataset}_segments.tsv")
    segments.to_csv(segments_path, sep='\t', index=False)
    print(f"\nWrote {len(segments):,} segments to {segments_path}")

    if posteriors is not None:
        posteriors_path = os.path.join(args.outdir, f"{dataset}_posteriors.tsv")
        pd.DataFrame(posteriors).to_csv(posteriors_path, sep='\t', index=False)
        print(f"Wrote posteriors to {posteriors_path}")

    if args.stats:
        names = {s: st.name or str(s) for s, st in enumerate(model.states)}
        stats = SegmentStats(names)
        stats.add_table(segments, {r.name: r.length for r in records})
        stats_path = os.path.join(args.outdir, f"{dataset}_stats.txt")
        stats.write_summary(stats_path)
        print(f"Wrote statistics to {stats_path}")


if __name__ == '__main__':
    main()
