"""Metropolis-adjusted stochastic gradient Langevin dynamics (MH-SGLD).

Samples from p(x) ∝ exp(-U(x)) given only an oracle x -> (U(x), ∇U(x)),
where the gradient may come from a random minibatch.
Convention: states x have shape (d,), trajectory buffers have shape
(d, n_steps, n_chains), one chain per initial step length.

Pieces:
- langevin_proposal: gradient drift plus two Gaussian noise injections
- log_acceptance_ratio: asymmetric MH correction, computed in log space
- adapt_step_size: step length from a local Lipschitz estimate with bounded growth
- LipschitzMHSGLD: chain driver (sequential or thread-parallel over chains)
- thin_trajectory: stride-based subsampling of the step axis

References:
    Izzatullah et al. (2020), Langevin dynamics MCMC solutions for seismic inversion.
    Nemeth & Fearnhead (2019), Stochastic gradient Markov chain Monte Carlo.
"""

import logging
import math
import numbers
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, NamedTuple, Sequence

import torch

from .device import get_device, make_generator


logger = logging.getLogger(__name__)

Oracle = Callable[[torch.Tensor], tuple]  # x -> (energy, gradient)
ChainCallback = Callable[["ChainStats"], None]

DRIFT = 0.5
MINIBATCH_NOISE = 0.01


class ConfigurationError(ValueError):
    """Invalid sampler input, detected before any chain starts."""


class ChainState(NamedTuple):
    """State of one chain between two steps. Rebound each step, never mutated."""
    x: torch.Tensor
    energy: float
    grad: torch.Tensor
    tau: float
    theta: float = math.inf
    n_accepted: int = 0


class StepInfo(NamedTuple):
    """Outcome of a single transition."""
    accepted: bool
    diverged: bool
    log_alpha: float


@dataclass
class ChainStats:
    """Summary of one finished chain."""
    index: int
    initial_step_size: float
    n_steps: int
    n_accepted: int
    n_completed: int
    diverged: bool
    final_step_size: float
    elapsed: float = 0.0

    @property
    def acceptance_rate(self) -> float:
        """Accepted fraction of the configured chain length, in percent.

        The denominator is always ``n_steps``, also for chains that diverged early.
        """
        return 100.0 * self.n_accepted / self.n_steps


@dataclass
class SamplerResult:
    """Trajectories of all chains.

    Attributes:
        samples: (d, n_stored, n_chains) recorded states
        grads: (d, n_stored, n_chains) negated gradients at the recorded states
        acceptance: (n_chains,) acceptance rates in percent
        step_sizes: (n_stored, n_chains) step length after each step
        chains: per-chain statistics
    """
    samples: torch.Tensor
    grads: torch.Tensor
    acceptance: torch.Tensor
    step_sizes: torch.Tensor
    chains: list[ChainStats] = field(default_factory=list)


def evaluate(oracle: Oracle, x: torch.Tensor) -> tuple[float, torch.Tensor]:
    """Call the oracle and coerce its output to (float, tensor like x).

    The gradient of a non-finite energy is not trusted and is replaced by zeros.
    """
    energy, grad = oracle(x)
    energy = torch.as_tensor(energy).detach()
    if energy.numel() != 1:
        raise ValueError(f"Oracle must return a scalar energy, got shape {tuple(energy.shape)}")
    energy = energy.item()
    if not math.isfinite(energy):
        return energy, torch.zeros_like(x)
    grad = torch.as_tensor(grad).detach().to(device=x.device, dtype=x.dtype)
    if grad.numel() != x.numel():
        raise ValueError(f"Oracle gradient has {grad.numel()} entries, state has {x.numel()}")
    return energy, grad.reshape(x.shape)


def langevin_proposal(x: torch.Tensor, grad: torch.Tensor, tau: float,
                      generator: torch.Generator | None = None,
                      minibatch_noise: float = MINIBATCH_NOISE) -> torch.Tensor:
    """Draw x' = x - τ/2 ∇U + √σ² τ ξ₁ + √τ ξ₂ with ξ₁, ξ₂ ~ N(0, I).

    σ² is the fixed minibatch-noise floor; ξ₁ is drawn before ξ₂.
    """
    xi1 = torch.randn(x.shape, generator=generator, dtype=x.dtype, device=x.device)
    xi2 = torch.randn(x.shape, generator=generator, dtype=x.dtype, device=x.device)
    return (x - DRIFT * tau * grad
            + math.sqrt(minibatch_noise) * tau * xi1
            + math.sqrt(tau) * xi2)


def _as_float64(t: torch.Tensor) -> torch.Tensor:
    # MPS has no float64
    if t.device.type == "mps":
        t = t.cpu()
    return t.to(torch.float64)


def log_proposal_density(x_to: torch.Tensor, x_from: torch.Tensor,
                         grad_from: torch.Tensor, tau: float) -> float:
    """Unnormalized log N(x_to; x_from - τ/2 ∇U(x_from), τ I).

    Evaluated in float64 whatever the state dtype, so float32 chains only
    underflow where float64 chains do.
    """
    mean = _as_float64(x_from) - DRIFT * tau * _as_float64(grad_from)
    return -(0.5 / tau) * ((_as_float64(x_to) - mean)**2).sum().item()


def log_acceptance_ratio(x: torch.Tensor, energy: float, grad: torch.Tensor,
                         x_new: torch.Tensor, energy_new: float,
                         grad_new: torch.Tensor, tau: float) -> float:
    """log α = min(0, [-U(x') + log q(x|x')] - [-U(x) + log q(x'|x)]).

    A forward term p(x) q(x'|x) that underflows to zero gives log α = 0
    (accept), whatever the reverse term is. Any other NaN ratio gives -inf.
    """
    log_fwd = -energy + log_proposal_density(x_new, x, grad, tau)
    if log_fwd == -math.inf:
        return 0.0
    log_ratio = (-energy_new + log_proposal_density(x, x_new, grad_new, tau)) - log_fwd
    if math.isnan(log_ratio):
        return -math.inf
    return min(0.0, log_ratio)


def adapt_step_size(x_prev: torch.Tensor, grad_prev: torch.Tensor,
                    x_new: torch.Tensor, grad_new: torch.Tensor,
                    tau: float, theta: float) -> tuple[float, float]:
    """Update (τ, θ) after an accepted move.

    τ_new = min(½‖Δx‖/‖Δ∇U‖, √(1+θ) τ) and θ_new = τ_new / τ.
    A zero gradient difference falls back to the growth bound. If no finite
    positive step length results, (τ, θ) are returned unchanged.
    """
    growth_bound = math.sqrt(1.0 + theta) * tau
    grad_dist = (grad_new - grad_prev).norm().item()
    if grad_dist > 0.0:
        lipschitz = 0.5 * (x_new - x_prev).norm().item() / grad_dist
    else:
        lipschitz = growth_bound
    tau_new = min(lipschitz, growth_bound)
    if not (math.isfinite(tau_new) and tau_new > 0.0):
        return tau, theta
    return tau_new, tau_new / tau


def thin_trajectory(buffer: torch.Tensor, thin: int, axis: int = 1) -> torch.Tensor:
    """Keep every `thin`-th entry along `axis`, starting at 0. thin=0 is a no-op."""
    if thin == 0:
        return buffer
    index = [slice(None)] * buffer.ndim
    index[axis] = slice(None, None, thin)
    return buffer[tuple(index)].contiguous()


class LipschitzMHSGLD:
    """MH-SGLD with an adaptive Lipschitz step length.

    Each initial step length runs its own chain with its own generator. Within a
    chain every step proposes with `langevin_proposal`, corrects with the MH test
    and, on acceptance, re-estimates the step length with `adapt_step_size`.
    A non-finite proposal energy stops that chain only.

    Args:
        minibatch_noise: variance of the extra noise term scaled by τ
        reevaluate: re-evaluate the oracle at the current state every step
            (fresh minibatch for stochastic oracles); otherwise reuse the cached
            energy and gradient of the current state
        max_workers: number of threads running chains concurrently
        callback: called with the ChainStats of each finished chain
    """

    def __init__(self, minibatch_noise: float = MINIBATCH_NOISE, reevaluate: bool = True,
                 max_workers: int = 1, callback: ChainCallback | None = None):
        if minibatch_noise < 0:
            raise ConfigurationError(f"minibatch_noise must be non-negative, got {minibatch_noise}")
        if max_workers < 1:
            raise ConfigurationError(f"max_workers must be at least 1, got {max_workers}")
        self.minibatch_noise = minibatch_noise
        self.reevaluate = reevaluate
        self.max_workers = max_workers
        self.callback = callback

    def step(self, state: ChainState, oracle: Oracle,
             generator: torch.Generator | None = None) -> tuple[ChainState, StepInfo]:
        """Single MH-SGLD transition. Returns (new_state, info).

        On rejection or divergence the returned state holds the current x,
        with its re-evaluated energy and gradient when `reevaluate` is set.
        """
        if self.reevaluate:
            energy, grad = evaluate(oracle, state.x)
            if not math.isfinite(energy):
                return state, StepInfo(False, True, -math.inf)
            state = state._replace(energy=energy, grad=grad)

        x_new = langevin_proposal(state.x, state.grad, state.tau, generator, self.minibatch_noise)
        energy_new, grad_new = evaluate(oracle, x_new)
        if not math.isfinite(energy_new):
            return state, StepInfo(False, True, -math.inf)

        log_alpha = log_acceptance_ratio(state.x, state.energy, state.grad,
                                         x_new, energy_new, grad_new, state.tau)
        u = torch.rand((), generator=generator, dtype=state.x.dtype, device=state.x.device).item()
        if u >= math.exp(log_alpha):
            return state, StepInfo(False, False, log_alpha)

        tau, theta = adapt_step_size(state.x, state.grad, x_new, grad_new, state.tau, state.theta)
        new_state = ChainState(x_new, energy_new, grad_new, tau, theta, state.n_accepted + 1)
        return new_state, StepInfo(True, False, log_alpha)

    def run_chain(self, oracle: Oracle, state: ChainState, n_steps: int,
                  generator: torch.Generator, samples: torch.Tensor, grads: torch.Tensor,
                  step_sizes: torch.Tensor, index: int = 0) -> ChainStats:
        """Run one chain for `n_steps`, writing into its own buffer slices.

        Args:
            state: initial state (x0, its energy and gradient, initial τ)
            samples, grads: (d, n_steps) slices filled in place
            step_sizes: (n_steps,) slice filled in place

        On divergence the current slot of `samples` is zeroed and the chain stops;
        later slots keep their zero fill.
        """
        initial_step_size = state.tau
        n_completed = 0
        diverged = False
        logger.info("Chain %d: starting %d steps with step length %.4g", index, n_steps, state.tau)
        start = time.perf_counter()
        for k in range(n_steps):
            state, info = self.step(state, oracle, generator)
            if info.diverged:
                samples[:, k] = 0.0
                diverged = True
                logger.warning("Chain %d: non-finite energy at step %d (step length %.4g), "
                               "stopping chain", index, k, state.tau)
                break
            samples[:, k] = state.x
            grads[:, k] = -state.grad
            step_sizes[k] = state.tau
            n_completed += 1
            logger.debug("Chain %d step %d: energy=%.6g tau=%.4g accepted=%s",
                         index, k, state.energy, state.tau, info.accepted)
        elapsed = time.perf_counter() - start

        stats = ChainStats(index=index, initial_step_size=initial_step_size, n_steps=n_steps,
                           n_accepted=state.n_accepted, n_completed=n_completed,
                           diverged=diverged, final_step_size=state.tau, elapsed=elapsed)
        logger.info("Chain %d: acceptance rate %.2f%%, final step length %.4g (%.2fs)",
                    index, stats.acceptance_rate, stats.final_step_size, elapsed)
        return stats

    def run(self, oracle: Oracle, n_steps: int, x0, step_sizes, thin: int = 0,
            seed: int | Sequence[int] | None = None,
            device: torch.device | str | None = None) -> SamplerResult:
        """Run one independent chain per initial step length.

        Args:
            oracle: x -> (energy, gradient); non-finite energy signals divergence
            n_steps: number of proposals per chain
            x0: initial point, shape (d,), (d, 1) or (1, d)
            step_sizes: initial step lengths, one chain each
            thin: keep every `thin`-th step (0 keeps all)
            seed: None, a base seed (chain s uses seed + s), or one seed per chain
            device: device for the state and buffers, or "auto" for the best
                available one (default: x0's device)

        Returns:
            SamplerResult with buffers of shape (d, ceil(n_steps / thin), n_chains)
        """
        n_steps = _check_n_steps(n_steps)
        thin = _check_thin(thin)
        taus = _check_step_sizes(step_sizes)
        x0 = _as_state_vector(x0, device)
        seeds = _chain_seeds(seed, len(taus))

        try:
            energy0, grad0 = evaluate(oracle, x0)
        except ValueError as exc:
            raise ConfigurationError(f"Oracle rejected the initial point: {exc}") from exc
        if not math.isfinite(energy0):
            raise ConfigurationError(f"Energy at the initial point is not finite: {energy0}")

        d, n_chains = x0.numel(), len(taus)
        samples = torch.zeros(d, n_steps, n_chains, dtype=x0.dtype, device=x0.device)
        grads = torch.zeros_like(samples)
        tau_trace = torch.zeros(n_steps, n_chains, dtype=torch.float64)

        def run_one(s: int) -> ChainStats:
            generator = make_generator(seeds[s], x0.device)
            state = ChainState(x0, energy0, grad0, taus[s])
            stats = self.run_chain(oracle, state, n_steps, generator, samples[:, :, s],
                                   grads[:, :, s], tau_trace[:, s], index=s)
            if self.callback is not None:
                self.callback(stats)
            return stats

        if self.max_workers > 1 and n_chains > 1:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, n_chains)) as executor:
                chains = list(executor.map(run_one, range(n_chains)))
        else:
            chains = [run_one(s) for s in range(n_chains)]

        acceptance = torch.tensor([c.acceptance_rate for c in chains], dtype=torch.float64)
        return SamplerResult(
            samples=thin_trajectory(samples, thin, axis=1),
            grads=thin_trajectory(grads, thin, axis=1),
            acceptance=acceptance,
            step_sizes=thin_trajectory(tau_trace, thin, axis=0),
            chains=chains,
        )


def sample(oracle: Oracle, n_steps: int, x0, step_sizes, thin: int = 0,
           seed: int | Sequence[int] | None = None, device: torch.device | str | None = None,
           **options) -> tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
    """Functional form of `LipschitzMHSGLD.run`. Returns (X, G, acc).

    Extra keyword options go to the `LipschitzMHSGLD` constructor.
    """
    result = LipschitzMHSGLD(**options).run(oracle, n_steps, x0, step_sizes,
                                            thin=thin, seed=seed, device=device)
    return result.samples, result.grads, result.acceptance


def _check_n_steps(n_steps) -> int:
    if isinstance(n_steps, bool) or not isinstance(n_steps, numbers.Integral) or n_steps <= 0:
        raise ConfigurationError(f"n_steps must be a positive integer, got {n_steps!r}")
    return int(n_steps)


def _check_thin(thin) -> int:
    if thin is None:
        return 0
    if isinstance(thin, bool) or not isinstance(thin, numbers.Integral) or thin < 0:
        raise ConfigurationError(f"thin must be a non-negative integer, got {thin!r}")
    return int(thin)


def _check_step_sizes(step_sizes) -> list[float]:
    taus = torch.as_tensor(step_sizes, dtype=torch.float64).reshape(-1).tolist()
    if not taus:
        raise ConfigurationError("step_sizes must contain at least one step length")
    for tau in taus:
        if not (math.isfinite(tau) and tau > 0.0):
            raise ConfigurationError(f"Step lengths must be finite and positive, got {tau}")
    return taus


def _as_state_vector(x0, device: torch.device | str | None = None) -> torch.Tensor:
    """Flatten a scalar, (d,), (d, 1) or (1, d) input into a (d,) tensor."""
    x0 = torch.as_tensor(x0)
    if device is not None:
        x0 = x0.to(get_device(device))
    if not torch.is_floating_point(x0):
        x0 = x0.to(torch.get_default_dtype())
    if x0.numel() == 0:
        raise ConfigurationError("x0 must not be empty")
    if x0.ndim > 2 or (x0.ndim == 2 and 1 not in x0.shape):
        raise ConfigurationError(f"x0 must be a vector, got shape {tuple(x0.shape)}")
    return x0.detach().reshape(-1).clone()


def _chain_seeds(seed, n_chains: int) -> list[int | None]:
    if seed is None:
        return [None] * n_chains
    if isinstance(seed, numbers.Integral):
        return [int(seed) + s for s in range(n_chains)]
    seeds = [int(s) for s in seed]
    if len(seeds) != n_chains:
        raise ConfigurationError(f"Expected {n_chains} seeds, got {len(seeds)}")
    return seeds
