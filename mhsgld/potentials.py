"""Energy functions U(x) = -log p(x) used as sampler oracles.

All potentials are vectorized over leading batch dimensions. The sampler
expects an oracle x -> (U(x), ∇U(x)); `Potential.energy_and_grad` provides
one for every subclass via autograd.
"""

import torch
import torch.nn as nn
import torch.nn.functional as F

from .device import make_generator


class Potential(nn.Module):
    """Base class for potentials. Subclasses must implement energy()."""

    def energy(self, x: torch.Tensor) -> torch.Tensor:
        """Compute potential energy. Override in subclass."""
        raise NotImplementedError

    def energy_and_grad(self, x: torch.Tensor) -> tuple[torch.Tensor, torch.Tensor]:
        """Oracle form: returns (U(x), ∇U(x)), both detached.

        For a single state x of shape (d,) the energy is a 0-d tensor.
        """
        with torch.enable_grad():
            x = x.detach().requires_grad_(True)
            u = self.energy(x)
            grad = torch.autograd.grad(u.sum(), x)[0]
        return u.detach(), grad.detach()

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.energy(x)


class Harmonic(Potential):
    """Quadratic well: U(x) = 0.5 * Σᵢ kᵢ (xᵢ - cᵢ)².

    The target is Gaussian with mean `center` and variance 1/k per dimension.
    Input shape: (..., d). Output shape: (...,).

    Args:
        k: Stiffness, scalar or per-dimension tensor of shape (d,).
        center: Minimum position. Defaults to the origin.
    """

    def __init__(self, k: float | torch.Tensor = 1.0, center: torch.Tensor | None = None):
        super().__init__()
        self.k = nn.Parameter(torch.as_tensor(k, dtype=torch.get_default_dtype()).clone())
        if center is not None:
            self.center = nn.Parameter(torch.as_tensor(center).clone())
        else:
            self.center = None

    def energy(self, x: torch.Tensor) -> torch.Tensor:
        if self.center is not None:
            x = x - self.center
        return 0.5 * (self.k * x**2).sum(-1)


class DoubleWell(Potential):
    """1D double well: U(x) = a*(x² - 1)².

    Minima at x = ±1, barrier at x = 0 with height a.
    Input shape: (...,) or (..., 1). Output shape: (...,).
    """

    def __init__(self, barrier_height: float = 1.0):
        super().__init__()
        self.barrier_height = nn.Parameter(torch.tensor(barrier_height))

    def energy(self, x: torch.Tensor) -> torch.Tensor:
        if x.shape[-1:] == (1,):
            x = x.squeeze(-1)
        return self.barrier_height * (x**2 - 1)**2


class DoubleWell2D(Potential):
    """2D double well: U(x,y) = a*(x² - 1)² + 0.5*k_y*y².

    Two minima at (±1, 0) joined by a saddle at the origin.
    Input shape: (..., 2). Output shape: (...,).
    """

    def __init__(self, barrier_height: float = 1.0, k_y: float = 1.0):
        super().__init__()
        self.barrier_height = nn.Parameter(torch.tensor(barrier_height))
        self.k_y = nn.Parameter(torch.tensor(k_y))

    def energy(self, xy: torch.Tensor) -> torch.Tensor:
        x, y = xy[..., 0], xy[..., 1]
        return self.barrier_height * (x**2 - 1)**2 + 0.5 * self.k_y * y**2


class BayesianLogisticRegression(Potential):
    """Posterior energy of logistic regression weights with a Gaussian prior.

        U(w) = (n / b) Σ_{i ∈ B} BCE(xᵢ·w, yᵢ) + ||w||² / (2 s²)

    With `batch_size` set, each call draws a minibatch B of b rows without
    replacement, so the energy and gradient are unbiased stochastic estimates.
    One call to `energy_and_grad` uses a single minibatch for both.
    The minibatch generator is shared state: use one instance per thread.

    Args:
        features: (n, d) design matrix.
        labels: (n,) binary labels in {0, 1}.
        prior_scale: Standard deviation s of the Gaussian prior.
        batch_size: Minibatch size b, or None for the full data set.
        seed: Seed of the minibatch generator.
    """

    def __init__(self, features: torch.Tensor, labels: torch.Tensor,
                 prior_scale: float = 1.0, batch_size: int | None = None,
                 seed: int | None = None):
        super().__init__()
        if features.ndim != 2 or labels.shape != features.shape[:1]:
            raise ValueError(f"Expected features (n, d) and labels (n,), got "
                             f"{tuple(features.shape)} and {tuple(labels.shape)}")
        if batch_size is not None and batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.register_buffer("features", features)
        self.register_buffer("labels", labels.to(features.dtype))
        self.prior_scale = prior_scale
        self.batch_size = batch_size
        self.generator = make_generator(seed)

    @property
    def n_samples(self) -> int:
        return self.features.shape[0]

    def _minibatch(self) -> tuple[torch.Tensor, torch.Tensor, float]:
        n = self.n_samples
        if self.batch_size is None or self.batch_size >= n:
            return self.features, self.labels, 1.0
        idx = torch.randperm(n, generator=self.generator)[:self.batch_size]
        idx = idx.to(self.features.device)
        return self.features[idx], self.labels[idx], n / self.batch_size

    def energy(self, w: torch.Tensor) -> torch.Tensor:
        """w: (..., d) -> (...)"""
        features, labels, scale = self._minibatch()
        features = features.to(w.dtype)
        logits = torch.einsum("nd,...d->...n", features, w)
        nll = F.binary_cross_entropy_with_logits(
            logits, labels.to(w.dtype).expand_as(logits), reduction="none"
        ).sum(-1)
        prior = 0.5 * (w**2).sum(-1) / self.prior_scale**2
        return scale * nll + prior


def synthetic_logistic_data(n_samples: int, weights: torch.Tensor,
                            seed: int | None = None) -> tuple[torch.Tensor, torch.Tensor]:
    """Draw standard-normal features and Bernoulli labels from true `weights`."""
    gen = make_generator(seed)
    weights = torch.as_tensor(weights, dtype=torch.get_default_dtype())
    features = torch.randn(n_samples, weights.shape[0], generator=gen, dtype=weights.dtype)
    probs = torch.sigmoid(features @ weights)
    labels = torch.bernoulli(probs, generator=gen)
    return features, labels
