"""Tests for plotting helpers."""

import matplotlib
matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pytest
import torch
from mhsgld.plotting import (
    apply_style, get_figsize, plot_trace, plot_step_sizes, FIG_WIDTH_SINGLE, GOLDEN_RATIO,
)
from mhsgld.sampler import LipschitzMHSGLD


def quadratic(x):
    return 0.5 * (x**2).sum(), x.clone()


@pytest.fixture
def result():
    return LipschitzMHSGLD().run(quadratic, 30, torch.tensor([1.0, -1.0]), [0.1, 0.5, 1.0], seed=0)


class TestPlotting:
    """Tests for trace and step-length plots."""

    def test_figsize(self):
        w, h = get_figsize(FIG_WIDTH_SINGLE, nrows=2, ncols=1)
        assert w == FIG_WIDTH_SINGLE
        assert np.isclose(h, 2 * FIG_WIDTH_SINGLE * GOLDEN_RATIO)

    def test_trace_one_line_per_chain(self, result):
        apply_style()
        fig, ax = plt.subplots()
        plot_trace(ax, result.samples, dim=1)
        assert len(ax.lines) == 3
        assert np.allclose(ax.lines[0].get_ydata(), result.samples[1, :, 0].numpy())
        plt.close(fig)

    def test_trace_selected_chains(self, result):
        fig, ax = plt.subplots()
        plot_trace(ax, result.samples, chains=[2], labels=["τ=1"])
        assert len(ax.lines) == 1
        assert ax.lines[0].get_label() == "τ=1"
        plt.close(fig)

    def test_step_sizes_hide_zero_fill(self):
        """Zero step lengths after a divergence are drawn as gaps."""
        taus = torch.tensor([[0.1, 0.2], [0.2, 0.0], [0.3, 0.0]], dtype=torch.float64)
        fig, ax = plt.subplots()
        plot_step_sizes(ax, taus)
        assert ax.get_yscale() == "log"
        assert np.isnan(ax.lines[1].get_ydata()[1:]).all()
        plt.close(fig)
