#!/usr/bin/env python3
"""
Fit a neural network model to two columns of a CSV file.

The predictor column is the network input and the response column is the
target. After training the script writes:
1. The trained network as <name>.net (load it with Network.read_from_file)
2. The data and the model response as <name>_TrainedOutput.csv

Usage:
    python scripts/fit_csv.py data.csv --x-col speed --y-col distance
    python scripts/fit_csv.py data.csv --x-col 0 --y-col 1 --no-header \\
        --hidden-units 6 --hidden-activation tanh --iterations 5000
"""

import argparse
import logging
import os
import sys
from typing import List, Optional, Union

from modelfit.activation import ActivationConfig, ActivationKind
from modelfit.data_table import DataTable
from modelfit.fitting import STATUS_DIVERGED, FitSettings, fit_model, write_csv_output


def column_key(value: str) -> Union[int, str]:
    """A column given on the command line: an index if it is a number, else a name."""
    try:
        return int(value)
    except ValueError:
        return value


def build_parser() -> argparse.ArgumentParser:
    defaults = FitSettings()
    kinds = [kind.name.lower() for kind in ActivationKind]

    parser = argparse.ArgumentParser(
        description="Fit a neural network model to two columns of a CSV file."
    )
    parser.add_argument('csv_file', help="Comma-separated data file")
    parser.add_argument('--x-col', type=column_key, default=0,
                        help="Predictor column (name or index, default 0)")
    parser.add_argument('--y-col', type=column_key, default=1,
                        help="Response column (name or index, default 1)")
    parser.add_argument('--no-header', action='store_true',
                        help="The first row holds data, not column names")
    parser.add_argument('--hidden-units', type=int, default=defaults.num_hidden_units)
    parser.add_argument('--hidden-activation', choices=kinds,
                        default=defaults.hidden_activation.kind.name.lower())
    parser.add_argument('--output-activation', choices=kinds,
                        default=defaults.output_activation.kind.name.lower())
    parser.add_argument('--slope', type=float, default=1.0,
                        help="Slope of the hidden layer activation")
    parser.add_argument('--amplify', type=float, default=1.0,
                        help="Amplify of the hidden layer activation")
    parser.add_argument('--learning-constant', type=float,
                        default=defaults.learning_constant)
    parser.add_argument('--momentum', type=float, default=defaults.momentum)
    parser.add_argument('--min-error', type=float, default=defaults.min_net_error,
                        help="Stop once the network error falls below this")
    parser.add_argument('--iterations', type=int, default=defaults.num_iterations)
    parser.add_argument('--init-range', type=float, default=defaults.init_range)
    parser.add_argument('--scale-factor', type=float, default=defaults.scale_factor)
    parser.add_argument('--seed', type=int, default=None)
    parser.add_argument('--output-dir', default=None,
                        help="Directory for the output files (default: next to the CSV)")
    parser.add_argument('--verbose', '-v', action='store_true')
    return parser


def settings_from_args(args: argparse.Namespace) -> FitSettings:
    return FitSettings(
        num_hidden_units=args.hidden_units,
        hidden_activation=ActivationConfig(args.hidden_activation, args.slope, args.amplify),
        output_activation=ActivationConfig(args.output_activation),
        init_range=args.init_range,
        learning_constant=args.learning_constant,
        momentum=args.momentum,
        min_net_error=args.min_error,
        num_iterations=args.iterations,
        scale_factor=args.scale_factor
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Run the fit; returns the process exit code."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        table = DataTable.from_csv(args.csv_file, has_header=not args.no_header)
        x_values = table.get_numeric_col(args.x_col)
        y_values = table.get_numeric_col(args.y_col)
    except (OSError, KeyError, IndexError, ValueError) as e:
        print(f"❌ Error reading {args.csv_file}: {e}")
        return 1

    if table.num_rows == 0:
        print(f"❌ Error: {args.csv_file} holds no data rows")
        return 1

    settings = settings_from_args(args)
    print(f"📂 Loaded {table.num_rows} rows from {args.csv_file}")
    print(f"🏋️  Training {settings.num_hidden_units} "
          f"{settings.hidden_activation.kind.name.lower()} hidden units "
          f"for up to {settings.num_iterations} iterations...")

    try:
        result = fit_model(x_values, y_values, settings, seed=args.seed)
    except ValueError as e:
        print(f"❌ Error: {e}")
        return 1

    if result.network is None:
        print(f"❌ Training diverged at iteration {result.iterations}; "
              f"try a smaller learning constant")
        return 2

    if result.converged:
        print(f"✅ The solution converged after {result.iterations} iterations "
              f"(error {result.net_error:.5g})")
    elif result.status == STATUS_DIVERGED:
        print(f"⚠️  Training diverged at iteration {result.iterations}; the network "
              f"with the minimum error {result.min_error:.5g} will be used")
    else:
        print(f"⚠️  The solution has not converged; the network with the "
              f"minimum error {result.min_error:.5g} will be used")

    output_dir = args.output_dir or os.path.dirname(os.path.abspath(args.csv_file))
    os.makedirs(output_dir, exist_ok=True)
    stem = os.path.splitext(os.path.basename(args.csv_file))[0]
    net_path = os.path.join(output_dir, f"{stem}.net")
    csv_path = os.path.join(output_dir, f"{stem}_TrainedOutput.csv")

    result.network.write_to_file(net_path)
    write_csv_output(csv_path, result.network, x_values, y_values,
                     settings.scale_factor)

    print(f"\n📁 Files:")
    print(f"   - Network: {net_path}")
    print(f"   - Model output: {csv_path}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
