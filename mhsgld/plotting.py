"""Shared plotting helpers for the sampler demos.

Nord-inspired styling, trace plots of recorded states and step-length plots.
"""

import os

import matplotlib.pyplot as plt
import numpy as np
import torch


FIG_WIDTH_SINGLE = 3.25
FIG_WIDTH_DOUBLE = 6.75
GOLDEN_RATIO = (5**0.5 - 1) / 2

FONT_SIZE_TITLE = 10
FONT_SIZE_LABEL = 9
FONT_SIZE_TICK = 8
FONT_SIZE_LEGEND = 8

LW = 1.0

PLOT_STYLE = {
    "font.family": "monospace",
    "font.monospace": ["JetBrains Mono", "DejaVu Sans Mono", "Menlo", "Monaco"],
    "font.size": FONT_SIZE_LABEL,
    "axes.titlesize": FONT_SIZE_TITLE,
    "axes.labelsize": FONT_SIZE_LABEL,
    "xtick.labelsize": FONT_SIZE_TICK,
    "ytick.labelsize": FONT_SIZE_TICK,
    "legend.fontsize": FONT_SIZE_LEGEND,
    "axes.grid": True,
    "grid.alpha": 0.2,
    "grid.linewidth": 0.5,
    "axes.spines.top": False,
    "axes.spines.right": False,
    "legend.frameon": True,
    "legend.framealpha": 0.95,
    "legend.edgecolor": "0.9",
    "figure.facecolor": "#FAFBFC",
    "axes.facecolor": "#FFFFFF",
    "savefig.facecolor": "#FAFBFC",
    "lines.linewidth": LW,
}

# One color per chain, cycled
CHAIN_COLORS = ["#5E81AC", "#D08770", "#A3BE8C", "#B48EAD", "#88C0D0", "#BF616A"]

COLORS = {
    "target": "#4C566A",
    "diverged": "#BF616A",
    "fill": "#E5E9F0",
}


def apply_style():
    """Apply the shared plotting style to matplotlib."""
    plt.rcParams.update(PLOT_STYLE)


def get_figsize(width, nrows=1, ncols=1, aspect=None):
    """Figure size (width, height) for a grid of subplots of the given aspect."""
    if aspect is None:
        aspect = GOLDEN_RATIO
    return (width, width * (nrows / ncols) * aspect)


def get_assets_dir():
    """Get the assets directory path relative to this module."""
    return os.path.join(os.path.dirname(__file__), "..", "assets")


def _to_numpy(x):
    if isinstance(x, torch.Tensor):
        return x.detach().cpu().numpy()
    return np.asarray(x)


def plot_trace(ax, samples, dim=0, chains=None, labels=None):
    """Plot one state coordinate against step index for each chain.

    Args:
        ax: matplotlib axes
        samples: (d, n_steps, n_chains) sampler output
        dim: state coordinate to plot
        chains: chain indices to plot (default: all)
        labels: legend label per plotted chain
    """
    samples = _to_numpy(samples)
    if chains is None:
        chains = range(samples.shape[2])
    steps = np.arange(samples.shape[1])
    for i, s in enumerate(chains):
        label = labels[i] if labels is not None else f"chain {s}"
        ax.plot(steps, samples[dim, :, s], color=CHAIN_COLORS[s % len(CHAIN_COLORS)],
                alpha=0.8, label=label)
    ax.set_xlabel("step")
    ax.set_ylabel(f"x[{dim}]")
    return ax


def plot_step_sizes(ax, step_sizes, labels=None):
    """Plot the adapted step length of every chain on a log scale.

    Zero entries (steps after a divergence) are not drawn.
    """
    step_sizes = _to_numpy(step_sizes)
    steps = np.arange(step_sizes.shape[0])
    for s in range(step_sizes.shape[1]):
        tau = np.where(step_sizes[:, s] > 0, step_sizes[:, s], np.nan)
        label = labels[s] if labels is not None else f"chain {s}"
        ax.plot(steps, tau, color=CHAIN_COLORS[s % len(CHAIN_COLORS)], label=label)
    ax.set_yscale("log")
    ax.set_xlabel("step")
    ax.set_ylabel("step length τ")
    return ax
