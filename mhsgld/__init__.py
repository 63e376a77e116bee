"""Metropolis-adjusted stochastic gradient Langevin sampling with adaptive step length."""

from .device import get_device, available_devices, make_generator
from .potentials import (
    Potential, Harmonic, DoubleWell, DoubleWell2D, BayesianLogisticRegression,
    synthetic_logistic_data,
)
from .sampler import (
    LipschitzMHSGLD, SamplerResult, ChainState, ChainStats, StepInfo, ConfigurationError,
    sample, langevin_proposal, log_proposal_density, log_acceptance_ratio,
    adapt_step_size, thin_trajectory,
)

__version__ = "0.1.0"
__all__ = [
    # Device
    "get_device", "available_devices", "make_generator",
    # Potentials
    "Potential", "Harmonic", "DoubleWell", "DoubleWell2D", "BayesianLogisticRegression",
    "synthetic_logistic_data",
    # Sampler
    "LipschitzMHSGLD", "SamplerResult", "ChainState", "ChainStats", "StepInfo",
    "ConfigurationError", "sample",
    "langevin_proposal", "log_proposal_density", "log_acceptance_ratio",
    "adapt_step_size", "thin_trajectory",
]
