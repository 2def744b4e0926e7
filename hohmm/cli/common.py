"""Shared argparse argument factories for hohmm CLI tools.

Each function adds a group of related arguments to an ArgumentParser.
Default values can be overridden per-script where needed.
"""

import argparse
import os

ALGORITHMS = ['baum-welch', 'viterbi', 'numerical', 'gibbs']


def add_model_args(parser: argparse.ArgumentParser,
                   n_states: int = 2,
                   order: int = 1) -> None:
    """Add model topology arguments (--states, --order, --topology, --alphabet, prior)."""
    parser.add_argument(
        '--states', '-n', type=int, default=n_states,
        help="Number of emitting states"
    )
    parser.add_argument(
        '--order', type=int, default=order,
        help="Markov order of the transition (ergodic topology only)"
    )
    parser.add_argument(
        '--topology', choices=['ergodic', 'pseudo-ergodic'], default='ergodic',
        help="ergodic: fully connected; pseudo-ergodic: first-order clique "
             "with a silent final state"
    )
    parser.add_argument(
        '--alphabet', default='dna',
        help="'dna', 'binary' or the symbols of the alphabet (e.g. 'ACGTN')"
    )
    parser.add_argument(
        '--ess', type=float, default=4.0,
        help="Equivalent sample size of the Dirichlet prior"
    )
    parser.add_argument(
        '--self-transition', type=float, default=0.5,
        help="Share of the prior on self transitions"
    )
    parser.add_argument(
        '--final-transition', type=float, default=0.05,
        help="Share of the prior on moving to the final state (pseudo-ergodic only)"
    )
    parser.add_argument(
        '--expected-length', type=float, default=100,
        help="Expected sequence length used to scale the transition prior"
    )


def add_training_args(parser: argparse.ArgumentParser,
                      starts: int = 5,
                      max_iterations: int = 200,
                      epsilon: float = 1e-4) -> None:
    """Add training arguments (--algorithm, --starts, --max-iterations, ...)."""
    parser.add_argument(
        '--algorithm', '-a', choices=ALGORITHMS, default='baum-welch',
        help="Training algorithm"
    )
    parser.add_argument(
        '--starts', type=int, default=starts,
        help="Random starts (Gibbs: independent chains)"
    )
    parser.add_argument(
        '--max-iterations', type=int, default=max_iterations,
        help="Maximum iterations per start"
    )
    parser.add_argument(
        '--epsilon', type=float, default=epsilon,
        help="Stop EM once the objective improves by less than this"
    )
    parser.add_argument(
        '--objective', choices=['likelihood', 'viterbi'], default='likelihood',
        help="Objective of numerical training"
    )
    parser.add_argument(
        '--max-burn-in', type=int, default=500,
        help="Maximum Gibbs burn-in rounds"
    )
    parser.add_argument(
        '--stationary-steps', type=int, default=100,
        help="Parameter sets drawn per chain after burn-in"
    )
    parser.add_argument(
        '--seed', '-s', type=int, default=42,
        help="Random seed"
    )


def add_parallel_args(parser: argparse.ArgumentParser,
                      default_threads: int = 1) -> None:
    """Add --threads argument."""
    parser.add_argument(
        '--threads', '-t', type=int, default=default_threads,
        help="Worker threads (0=auto)"
    )


def resolve_threads(n_threads: int) -> int:
    """Map 0 to the number of CPUs."""
    if n_threads == 0:
        return os.cpu_count() or 1
    return n_threads


def add_output_args(parser: argparse.ArgumentParser,
                    required: bool = True,
                    help_text: str = "Output directory") -> None:
    """Add -o/--outdir argument."""
    parser.add_argument(
        '-o', '--outdir', required=required,
        help=help_text
    )


def add_verbose_args(parser: argparse.ArgumentParser) -> None:
    """Add --verbose flag."""
    parser.add_argument(
        '-v', '--verbose', action='store_true',
        help="Verbose output"
    )


def add_version_args(parser: argparse.ArgumentParser) -> None:
    """Add --version flag."""
    from hohmm import __version__
    parser.add_argument(
        '--version', action='version',
        version=f'%(prog)s {__version__}'
    )
