"""Unit tests for execution device selection helpers."""

from __future__ import annotations

import pytest

from core.errors import ParamStoreConfigError
from engine.device_selection import resolve_execution_device


class _FakeCuda:
    def __init__(self, available: bool) -> None:
        self._available = available

    def is_available(self) -> bool:
        return self._available


class _FakeMpsBackend:
    def __init__(self, available: bool) -> None:
        self._available = available

    def is_available(self) -> bool:
        return self._available


class _FakeBackends:
    def __init__(self, mps_available: bool) -> None:
        self.mps = _FakeMpsBackend(mps_available)


class _FakeTorch:
    def __init__(self, cuda_available: bool, mps_available: bool) -> None:
        self.cuda = _FakeCuda(cuda_available)
        self.backends = _FakeBackends(mps_available)

    def device(self, value: str) -> str:
        return value


def test_auto_device_prefers_cuda() -> None:
    """Auto resolution should prefer CUDA when both CUDA and MPS are available."""
    device = resolve_execution_device(_FakeTorch(cuda_available=True, mps_available=True))

    assert device == "cuda"


def test_auto_device_uses_mps_when_cuda_is_unavailable() -> None:
    """Auto resolution should fall back to MPS before CPU."""
    device = resolve_execution_device(_FakeTorch(cuda_available=False, mps_available=True))

    assert device == "mps"


def test_auto_device_uses_cpu_without_accelerators() -> None:
    """Auto resolution should return CPU when CUDA and MPS are unavailable."""
    device = resolve_execution_device(_FakeTorch(cuda_available=False, mps_available=False))

    assert device == "cpu"


def test_explicit_device_index_is_passed_through() -> None:
    """Explicit CUDA indices should reach torch.device unchanged."""
    device = resolve_execution_device(
        _FakeTorch(cuda_available=True, mps_available=False), requested="CUDA:1"
    )

    assert device == "cuda:1"


def test_explicit_cpu_ignores_accelerators() -> None:
    """Requesting CPU should not query accelerators for the result."""
    device = resolve_execution_device(
        _FakeTorch(cuda_available=True, mps_available=True), requested="cpu"
    )

    assert device == "cpu"


def test_unavailable_cuda_request_raises() -> None:
    """Requesting CUDA on a host without it should fail with a config error."""
    with pytest.raises(ParamStoreConfigError):
        resolve_execution_device(
            _FakeTorch(cuda_available=False, mps_available=False), requested="cuda"
        )
