"""Accelerator-aware torch device selection helpers.

This module resolves a requested device spec against available hardware.
It keeps accelerator detection consistent for every store on one host.
"""

from __future__ import annotations

from typing import Any

from core.errors import ParamStoreConfigError


def resolve_execution_device(torch_module: Any, requested: str = "auto") -> Any:
    """Resolve a device spec such as auto, cpu, cuda:1 or mps to a torch device.

    Raises:
        ParamStoreConfigError: If an explicit accelerator is unavailable.
    """
    normalized = requested.strip().lower()
    if normalized == "auto":
        return _resolve_preferred_device(torch_module)
    device_type = normalized.partition(":")[0]
    if device_type == "cuda" and not is_cuda_available(torch_module):
        raise ParamStoreConfigError(
            f"Requested device '{requested}' but CUDA is not available. "
            "Use device 'auto' or 'cpu' on this host."
        )
    if device_type == "mps" and not is_mps_available(torch_module):
        raise ParamStoreConfigError(
            f"Requested device '{requested}' but MPS is not available. "
            "Use device 'auto' or 'cpu' on this host."
        )
    try:
        return torch_module.device(normalized)
    except (RuntimeError, ValueError) as error:
        raise ParamStoreConfigError(
            f"Invalid device spec '{requested}': {error}."
        ) from error


def is_cuda_available(torch_module: Any) -> bool:
    """Return True when torch reports a usable CUDA runtime."""
    cuda_module = getattr(torch_module, "cuda", None)
    return cuda_module is not None and bool(cuda_module.is_available())


def is_mps_available(torch_module: Any) -> bool:
    """Return True when torch reports MPS backend support and availability."""
    backends = getattr(torch_module, "backends", None)
    if backends is None:
        return False
    mps_backend = getattr(backends, "mps", None)
    if mps_backend is None:
        return False
    probe = getattr(mps_backend, "is_available", None)
    if not callable(probe):
        return False
    return bool(probe())


def _resolve_preferred_device(torch_module: Any) -> Any:
    if is_cuda_available(torch_module):
        return torch_module.device("cuda")
    if is_mps_available(torch_module):
        return torch_module.device("mps")
    return torch_module.device("cpu")
