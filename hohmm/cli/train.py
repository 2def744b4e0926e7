#!/usr/bin/env python3
"""
hohmm-train CLI entry point.
Builds an ergodic or pseudo-ergodic HMM over a discrete alphabet and
trains it on sequences from a FASTA/FASTQ or plain text file.

Algorithms:
- baum-welch (default): soft EM
- viterbi: hard EM on the best path
- numerical: gradient-based optimisation of the log posterior
- gibbs: Bayesian training by Gibbs sampling of parameter sets
"""

import argparse
import os
import sys

import numpy as np
import pandas as pd

from hohmm.cli.common import (
    add_model_args, add_output_args, add_parallel_args, add_training_args,
    add_verbose_args, add_version_args, resolve_threads,
)
from hohmm.core.alphabet import DiscreteAlphabet
from hohmm.core.differentiable import DifferentiableHigherOrderHMM
from hohmm.core.errors import HMMError
from hohmm.core.factory import create_discrete_ergodic_hmm, create_pseudo_ergodic_hmm
from hohmm.core.hmm import HigherOrderHMM
from hohmm.core.model_io import save_model
from hohmm.core.sampling import SamplingHigherOrderHMM
from hohmm.core.sequence_reader import encode_records, read_sequences
from hohmm.training.parameters import (
    BaumWelchParameters, CombinedCondition, IterationCondition, NumericalParameters,
    OptimizationObjective, SamplingParameters, SmallDifferenceCondition, ViterbiParameters,
)

MODEL_CLASSES = {
    'baum-welch': HigherOrderHMM,
    'viterbi': HigherOrderHMM,
    'numerical': DifferentiableHigherOrderHMM,
    'gibbs': SamplingHigherOrderHMM,
}


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Train a higher-order HMM on discrete sequences',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    add_version_args(parser)

    parser.add_argument('-i', '--input', required=True,
                        help='Training sequences (FASTA/FASTQ or one sequence per line, .gz allowed)')
    add_output_args(parser)
    parser.add_argument('--min-length', type=int, default=1,
                        help='Skip sequences shorter than this')
    parser.add_argument('--max-sequences', type=int, default=None,
                        help='Randomly subsample at most this many sequences')

    add_model_args(parser)
    add_training_args(parser)
    add_parallel_args(parser)
    add_verbose_args(parser)

    return parser.parse_args(argv)


def build_model(args, alphabet: DiscreteAlphabet) -> HigherOrderHMM:
    model_class = MODEL_CLASSES[args.algorithm]
    if args.topology == 'pseudo-ergodic':
        return create_pseudo_ergodic_hmm(
            alphabet, args.states, ess=args.ess,
            self_transition_part=args.self_transition,
            final_transition_part=args.final_transition,
            model_class=model_class,
        )
    return create_discrete_ergodic_hmm(
        alphabet, args.states, order=args.order, ess=args.ess,
        self_transition_part=args.self_transition,
        expected_sequence_length=args.expected_length,
        model_class=model_class,
    )


def build_training_parameters(args, n_threads: int):
    common = dict(n_starts=args.starts, n_threads=n_threads, seed=args.seed,
                  verbose=args.verbose)
    if args.algorithm in ('baum-welch', 'viterbi'):
        termination = CombinedCondition(IterationCondition(args.max_iterations),
                                        SmallDifferenceCondition(args.epsilon))
        cls = BaumWelchParameters if args.algorithm == 'baum-welch' else ViterbiParameters
        return cls(termination=termination, **common)
    if args.algorithm == 'numerical':
        return NumericalParameters(objective=OptimizationObjective(args.objective),
                                   max_iterations=args.max_iterations, **common)
    return SamplingParameters(max_burn_in=args.max_burn_in,
                              stationary_steps=args.stationary_steps, **common)


def history_table(model: HigherOrderHMM) -> pd.DataFrame:
    """One row per (start, iteration) of the training monitor."""
    monitor = model.monitor_
    rows = []
    for start, history in enumerate(monitor.starts):
        for iteration, value in enumerate(history):
            rows.append({'start': start, 'iteration': iteration, 'objective': value,
                         'best_start': start == monitor.best_start})
    return pd.DataFrame(rows, columns=['start', 'iteration', 'objective', 'best_start'])


def main(argv=None):
    args = parse_args(argv)
    n_threads = resolve_threads(args.threads)
    os.makedirs(args.outdir, exist_ok=True)

    alphabet = DiscreteAlphabet.from_name(args.alphabet)
    print(f"Reading sequences from {args.input}")
    records = list(read_sequences(args.input, min_length=args.min_length))
    if args.max_sequences is not None and len(records) > args.max_sequences:
        rng = np.random.default_rng(args.seed)
        keep = np.sort(rng.choice(len(records), args.max_sequences, replace=False))
        records = [records[i] for i in keep]
    if not records:
        print(f"Error: no sequences of length >= {args.min_length} in {args.input}")
        sys.exit(1)
    print(f"  {len(records)} sequences, {sum(r.length for r in records):,} symbols")

    try:
        data, weights = encode_records(records, alphabet)
        model = build_model(args, alphabet)
    except HMMError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"Model: {model}")
    print(f"Training with {args.algorithm} ({args.starts} starts, {n_threads} threads)")
    model.train(data, weights, build_training_parameters(args, n_threads))

    model_path = save_model(model, os.path.join(args.outdir, 'best-model.json'), metadata={
        'alphabet': args.alphabet,
        'algorithm': args.algorithm,
        'topology': args.topology,
        'n_sequences': len(records),
        'seed': args.seed,
    })
    history = history_table(model)
    history_path = os.path.join(args.outdir, 'training-history.tsv')
    history.to_csv(history_path, sep='\t', index=False)

    monitor = model.monitor_
    print(f"\nBest start: {monitor.best_start + 1} (objective {monitor.best_score:.4f})")
    if isinstance(model, SamplingHigherOrderHMM):
        print(f"Burn-in: {model.burn_in} rounds, {model.n_samples} parameter sets kept")
    print(f"Model saved to {model_path}")
    print(f"Training history saved to {history_path}")


if __name__ == '__main__':
    main()
