"""MH-SGLD on simple benchmark energies.

Runs one chain per initial step length on
1. a 1D quadratic U(x) = x²/2 (target N(0, 1)), started far out at x0 = 5
2. the 2D double well, started in the left well

and plots traces, adapted step lengths and the sampled densities.
"""

import logging
import os

import matplotlib.pyplot as plt
import numpy as np
import torch

from mhsgld.potentials import Harmonic, DoubleWell2D
from mhsgld.sampler import LipschitzMHSGLD
from mhsgld.plotting import (
    apply_style, plot_trace, plot_step_sizes, get_assets_dir, get_figsize,
    CHAIN_COLORS, COLORS, FIG_WIDTH_DOUBLE,
)

# Configuration
N_STEPS = 4000
STEP_SIZES = [1e-3, 1e-1, 1.0, 10.0]
BURN_IN = 500
SEED = 0


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    apply_style()
    torch.set_default_dtype(torch.float64)

    sampler = LipschitzMHSGLD(max_workers=len(STEP_SIZES))
    labels = [f"τ0={tau:g}" for tau in STEP_SIZES]

    harm = Harmonic(k=1.0)
    res_1d = sampler.run(harm.energy_and_grad, N_STEPS, 5.0, STEP_SIZES, seed=SEED)

    dw = DoubleWell2D(barrier_height=1.0, k_y=1.0)
    res_2d = sampler.run(dw.energy_and_grad, N_STEPS, [-1.0, 0.0], STEP_SIZES, thin=2, seed=SEED)

    for name, res in (("quadratic", res_1d), ("double well", res_2d)):
        for stats in res.chains:
            print(f"{name:12s} {labels[stats.index]:10s} acceptance={stats.acceptance_rate:6.2f}% "
                  f"final τ={stats.final_step_size:.3g} diverged={stats.diverged}")

    fig, axes = plt.subplots(2, 3, figsize=get_figsize(FIG_WIDTH_DOUBLE, 2, 3, aspect=0.8),
                             constrained_layout=True)

    ax = axes[0, 0]
    plot_trace(ax, res_1d.samples, labels=labels)
    ax.set_title("Quadratic: trace")
    ax.legend(loc="upper right")

    ax = axes[0, 1]
    plot_step_sizes(ax, res_1d.step_sizes, labels=labels)
    ax.set_title("Quadratic: step length")

    ax = axes[0, 2]
    grid = np.linspace(-4, 4, 200)
    for s in range(len(STEP_SIZES)):
        if res_1d.chains[s].diverged:
            continue
        x = res_1d.samples[0, BURN_IN:, s].numpy()
        ax.hist(x, bins=50, range=(-4, 4), density=True, histtype="step",
                color=CHAIN_COLORS[s], label=labels[s])
    ax.plot(grid, np.exp(-0.5 * grid**2) / np.sqrt(2 * np.pi), color=COLORS["target"],
            ls="--", label="N(0, 1)")
    ax.set_title("Quadratic: density")

    ax = axes[1, 0]
    plot_trace(ax, res_2d.samples, dim=0, labels=labels)
    ax.set_title("Double well: x trace")

    ax = axes[1, 1]
    plot_step_sizes(ax, res_2d.step_sizes, labels=labels)
    ax.set_title("Double well: step length")

    ax = axes[1, 2]
    xs = np.linspace(-2, 2, 100)
    ys = np.linspace(-2.5, 2.5, 100)
    X, Y = np.meshgrid(xs, ys)
    ax.contour(X, Y, (X**2 - 1)**2 + 0.5 * Y**2, levels=12, colors="gray", alpha=0.3, linewidths=0.5)
    best = int(torch.argmax(res_2d.acceptance))
    pts = res_2d.samples[:, BURN_IN // 2:, best].numpy()
    ax.scatter(pts[0], pts[1], s=2, alpha=0.3, color=CHAIN_COLORS[best], label=labels[best])
    ax.set_title("Double well: samples")
    ax.legend(loc="upper right")

    assets_dir = get_assets_dir()
    os.makedirs(assets_dir, exist_ok=True)
    save_path = os.path.join(assets_dir, "mhsgld_demo.png")
    plt.savefig(save_path, dpi=150, bbox_inches="tight")
    print(f"Saved demo plot to {save_path}")


if __name__ == "__main__":
    main()
