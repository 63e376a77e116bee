"""Tests for device and generator utilities."""

import pytest
import torch
from mhsgld.device import get_device, available_devices, make_generator


class TestDevice:
    """Tests for device selection."""

    def test_cpu_always_available(self):
        assert "cpu" in available_devices()
        assert get_device("cpu") == torch.device("cpu")

    def test_auto_returns_available_device(self):
        assert get_device().type in available_devices()

    def test_unavailable_cuda_raises(self):
        if torch.cuda.is_available():
            pytest.skip("CUDA is available")
        with pytest.raises(RuntimeError):
            get_device("cuda")

    def test_device_objects_and_indices(self):
        """torch.device inputs pass through; indexed strings are parsed."""
        assert get_device(torch.device("cpu")) == torch.device("cpu")
        if not torch.cuda.is_available():
            with pytest.raises(RuntimeError):
                get_device("cuda:1")

    def test_auto_prefers_accelerator(self):
        """The "auto" preference returns the first accelerator listed, else CPU."""
        devices = available_devices()
        expected = devices[1] if len(devices) > 1 else "cpu"
        assert get_device("auto").type == expected


class TestGenerator:
    """Tests for per-chain generators."""

    @pytest.mark.parametrize("device", available_devices())
    def test_seeded_generators_reproducible(self, device):
        """Equal seeds give equal streams."""
        a = torch.randn(5, generator=make_generator(7, device), device=device)
        b = torch.randn(5, generator=make_generator(7, device), device=device)
        assert torch.equal(a, b)

    def test_different_seeds_differ(self):
        a = torch.randn(5, generator=make_generator(1))
        b = torch.randn(5, generator=make_generator(2))
        assert not torch.equal(a, b)

    def test_generators_do_not_share_state(self):
        """Drawing from one generator leaves another untouched."""
        g1, g2 = make_generator(3), make_generator(3)
        torch.randn(100, generator=g1)
        expected = torch.randn(5, generator=make_generator(3))
        assert torch.equal(torch.randn(5, generator=g2), expected)

    def test_unseeded_generator(self):
        assert torch.randn(3, generator=make_generator()).shape == (3,)
