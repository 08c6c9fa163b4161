"""
partialpool Quickstart Example
==============================

This example demonstrates the complete partialpool workflow:
1. Simulate grouped regression data (8 groups, one outlier)
2. Fit regular, unpooled and hierarchical models by MCMC
3. Check convergence diagnostics
4. Compare group slope posteriors with the true slopes
"""

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from partialpool import ComparisonPipeline, SimulationConfig
from partialpool.plotting import PlotStyle, plot_model_comparison

print("=" * 70)
print("partialpool Quickstart Example")
print("=" * 70)

# ===== 1. Simulate Data =====
print("\n[Step 1] Simulating grouped data...")

pipeline = ComparisonPipeline(
    simulation_config=SimulationConfig(seed=28),
    quick_mode=True,   # Short chains; set False for 10000/2000/4
    verbose=False,
)
dataset = pipeline.simulate()
dataset.summary()


# ===== 2. Fit Models =====
print("\n" + "=" * 70)
print("[Step 2] Fitting regular, unpooled and hierarchical models")
print("=" * 70)

results = pipeline.run(dataset=dataset)


# ===== 3. Convergence =====
print("\n" + "=" * 70)
print("[Step 3] MCMC Convergence Diagnostics")
print("=" * 70 + "\n")

print(results.diagnostics_table().to_string(index=False))


# ===== 4. Compare Slopes =====
print("\n" + "=" * 70)
print("[Step 4] Posterior slopes vs truth")
print("=" * 70 + "\n")

comparison = results.slope_comparison()
print(comparison[['model', 'group', 'n_obs', 'true_slope', 'mean', 'ci_lower', 'ci_upper']]
      .round(3).to_string(index=False))

print("\nShrinkage in the hierarchical model:")
print(results.shrinkage().round(3).to_string(index=False))

PlotStyle.apply()
fig = plot_model_comparison(results.fits, dataset)
PlotStyle.save_figure(fig, "results/quickstart_slopes.png")
plt.close(fig)

print("\n" + "=" * 70)
print("✅ Quickstart Complete!")
print("=" * 70 + "\n")
