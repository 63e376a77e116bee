"""Device and random-generator utilities for CPU/CUDA/MPS support."""

import torch


_BACKENDS = {
    "cuda": torch.cuda.is_available,
    "mps": torch.backends.mps.is_available,
}


def available_devices() -> list[str]:
    """Device types chains can run on: CPU, then backends in priority order."""
    return ["cpu"] + [name for name, is_available in _BACKENDS.items() if is_available()]


def get_device(preference: torch.device | str = "auto") -> torch.device:
    """Resolve the device for chain states and trajectory buffers.

    Args:
        preference: "auto" picks CUDA, then MPS, then CPU. Anything else is
            parsed by torch.device ("cpu", "cuda", "cuda:1", "mps", or a
            torch.device) and its backend must be available.

    Returns:
        torch.device
    """
    if isinstance(preference, str) and preference == "auto":
        for name in _BACKENDS:
            if _BACKENDS[name]():
                return torch.device(name)
        return torch.device("cpu")
    device = torch.device(preference)
    if device.type in _BACKENDS and not _BACKENDS[device.type]():
        raise RuntimeError(f"{device} requested but {device.type.upper()} is not available")
    return device


def make_generator(seed: int | None = None,
                   device: torch.device | str = "cpu") -> torch.Generator:
    """Create a generator owned by a single chain.

    A fixed seed makes the chain reproducible on its own, whatever other
    chains run next to it. With ``seed=None`` the generator is seeded
    non-deterministically.
    """
    gen = torch.Generator(device=torch.device(device))
    if seed is None:
        gen.seed()
    else:
        gen.manual_seed(int(seed))
    return gen
