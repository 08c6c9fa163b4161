"""
Compare Regular, Unpooled and Hierarchical Regression Models

Simulates the grouped dataset, fits the three models by MCMC, checks
convergence and writes summary tables and figures.

Usage:
    python scripts/run_model_comparison.py [--quick-test] [--backend pymc]

Options:
    --quick-test    Short chains (2000 iterations, 500 burn-in, thin 2)
"""

import argparse
import sys
from datetime import datetime
from pathlib import Path

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import pandas as pd

from partialpool import (
    ComparisonPipeline,
    SamplerConfig,
    SimulationConfig,
    SimulationConfigurationError,
)
from partialpool.models.specification import complete_pooling_model, default_model_specs
from partialpool.plotting import (
    PlotStyle,
    plot_model_comparison,
    plot_slope_posteriors,
    plot_trace,
)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Compare independent, unpooled and hierarchical regression models"
    )
    parser.add_argument('--n-iter', type=int, default=10000,
                        help='Iterations per chain, burn-in included (default: 10000)')
    parser.add_argument('--n-burnin', type=int, default=2000,
                        help='Burn-in iterations discarded (default: 2000)')
    parser.add_argument('--n-thin', type=int, default=4,
                        help='Thinning factor (default: 4)')
    parser.add_argument('--chains', type=int, default=2,
                        help='Number of chains (default: 2)')
    parser.add_argument('--seed', type=int, default=28,
                        help='Seed for simulation and sampling (default: 28)')
    parser.add_argument('--backend', choices=['gibbs', 'pymc'], default='gibbs',
                        help='Sampler backend (default: gibbs)')
    parser.add_argument('--complete-pooling', action='store_true',
                        help='Also fit the complete pooling (shared slope) model')
    parser.add_argument('--quick-test', action='store_true',
                        help='Quick test mode (2000 iterations, 500 burn-in, thin 2)')
    parser.add_argument('--output-dir', type=Path, default=Path('results'),
                        help='Directory for tables and figures (default: results/)')
    return parser.parse_args(argv)


def main(argv=None):
    """Main execution function."""
    args = parse_args(argv)

    print(f"{'=' * 80}")
    print("MODEL COMPARISON: REGULAR vs UNPOOLED vs HIERARCHICAL")
    print(f"{'=' * 80}")
    print(f"Mode: {'QUICK TEST' if args.quick_test else 'FULL RUN'}")
    print(f"Start time: {pd.Timestamp.now().strftime('%Y-%m-%d %H:%M:%S')}\n")

    start_time = datetime.now()

    try:
        if args.quick_test:
            sampler_config = SamplerConfig.quick(
                n_chains=args.chains, random_seed=args.seed, backend=args.backend
            )
        else:
            sampler_config = SamplerConfig(
                n_iter=args.n_iter,
                n_burnin=args.n_burnin,
                n_thin=args.n_thin,
                n_chains=args.chains,
                random_seed=args.seed,
                backend=args.backend,
            )
        simulation_config = SimulationConfig(seed=args.seed)
    except ValueError as e:
        # SimulationConfigurationError is a ValueError
        print(f"✗ ERROR: invalid configuration: {e}")
        sys.exit(1)

    specs = default_model_specs()
    if args.complete_pooling:
        specs.append(complete_pooling_model())

    pipeline = ComparisonPipeline(
        simulation_config=simulation_config,
        sampler_config=sampler_config,
        verbose=True,
    )

    try:
        results = pipeline.run(specs)
    except SimulationConfigurationError as e:
        print(f"✗ ERROR: simulation failed: {e}")
        sys.exit(1)

    if not results.fits:
        print("✗ ERROR: no model could be fitted")
        for name, message in results.failures.items():
            print(f"  {name}: {message}")
        sys.exit(1)

    tables_dir = args.output_dir / "tables"
    figures_dir = args.output_dir / "figures"
    tables_dir.mkdir(parents=True, exist_ok=True)
    figures_dir.mkdir(parents=True, exist_ok=True)

    print(f"{'=' * 80}")
    print("Saving tables...")
    print(f"{'=' * 80}")

    results.dataset.to_frame().to_csv(tables_dir / "simulated_data.csv", index=False)

    summary = results.summary_table()
    summary.to_csv(tables_dir / "posterior_summary.csv", index=False)

    comparison = results.slope_comparison()
    comparison.to_csv(tables_dir / "slope_comparison.csv", index=False)

    results.diagnostics_table().to_csv(tables_dir / "convergence.csv", index=False)

    if 'hierarchical' in results.fits:
        shrinkage = results.shrinkage('hierarchical')
        shrinkage.to_csv(tables_dir / "shrinkage.csv", index=False)
        print("\nShrinkage toward population mean:")
        print(shrinkage.round(3).to_string(index=False))

    print(f"✓ Tables saved to {tables_dir}")

    print(f"\n{'=' * 80}")
    print("Creating figures...")
    print(f"{'=' * 80}")

    PlotStyle.apply()
    for name, fit in results.fits.items():
        fig = plot_trace(fit, filepath=figures_dir / f"trace_{name}.png")
        plt.close(fig)
        fig = plot_slope_posteriors(fit, results.dataset,
                                    filepath=figures_dir / f"slopes_{name}.png")
        plt.close(fig)

    fig = plot_model_comparison(results.fits, results.dataset,
                                filepath=figures_dir / "model_comparison.png")
    plt.close(fig)

    print(f"\n{'=' * 80}")
    print("MEAN ABSOLUTE SLOPE ERROR BY MODEL")
    print(f"{'=' * 80}")
    print(comparison.groupby('model', sort=False)['abs_error'].mean().round(4).to_string())

    elapsed = datetime.now() - start_time
    print(f"\n✓ Done in {elapsed.total_seconds():.1f} s")

    if results.unconverged:
        print(f"⚠ Not converged: {', '.join(results.unconverged)} "
              "(increase --n-iter / --n-burnin)")


if __name__ == "__main__":
    main()
