"""Numeric tensor engine interface and its torch binding.

The variable store never touches tensor internals directly. It allocates,
copies, serializes, and releases buffers only through a TensorEngine,
which keeps the registry agnostic of the backing library.
"""

from __future__ import annotations

import math
from typing import Any, Protocol

from core.constants import DTYPE_ITEM_SIZES, SUPPORTED_DTYPES
from core.errors import (
    ParamStoreDependencyError,
    ParamStoreSerializationError,
    ParamStoreValidationError,
)
from core.types import Shape
from engine.device_selection import resolve_execution_device


class TensorEngine(Protocol):
    """Narrow tensor operations consumed by the variable store."""

    def resolve_device(self, requested: str) -> Any: ...

    def device_of(self, tensor: Any) -> Any: ...

    def allocate_zeros(self, shape: Shape, dtype: str, device: Any) -> Any: ...

    def allocate_ones(self, shape: Shape, dtype: str, device: Any) -> Any: ...

    def allocate_uniform(
        self, shape: Shape, dtype: str, device: Any, low: float, high: float
    ) -> Any: ...

    def allocate_kaiming_uniform(self, shape: Shape, dtype: str, device: Any) -> Any: ...

    def allocate_randn(
        self, shape: Shape, dtype: str, device: Any, mean: float, stdev: float
    ) -> Any: ...

    def from_tensor(self, source: Any, dtype: str, device: Any) -> Any: ...

    def copy_into(self, destination: Any, source: Any) -> None: ...

    def to_host_bytes(self, tensor: Any) -> bytes: ...

    def from_host_bytes(self, payload: bytes, shape: Shape, dtype: str, device: Any) -> Any: ...

    def release(self, tensor: Any) -> None: ...

    def shape(self, tensor: Any) -> Shape: ...

    def dtype_name(self, tensor: Any) -> str: ...

    def set_trainable(self, tensor: Any, trainable: bool) -> None: ...

    def is_trainable(self, tensor: Any) -> bool: ...


class TorchTensorEngine:
    """TensorEngine implementation backed by PyTorch.

    Random initializers draw from a private CPU generator so a seeded engine
    produces identical values on every device.
    """

    def __init__(self, torch_module: Any, random_seed: int | None = None) -> None:
        self._torch = torch_module
        self._generator = torch_module.Generator(device="cpu")
        if random_seed is None:
            self._generator.seed()
        else:
            self._generator.manual_seed(random_seed)
        self._dtypes = {name: getattr(torch_module, name) for name in SUPPORTED_DTYPES}
        self._dtype_names = {dtype: name for name, dtype in self._dtypes.items()}

    def resolve_device(self, requested: str) -> Any:
        return resolve_execution_device(self._torch, requested)

    def device_of(self, tensor: Any) -> Any:
        return tensor.device

    def allocate_zeros(self, shape: Shape, dtype: str, device: Any) -> Any:
        return self._torch.zeros(shape, dtype=self._dtype(dtype), device=device)

    def allocate_ones(self, shape: Shape, dtype: str, device: Any) -> Any:
        return self._torch.ones(shape, dtype=self._dtype(dtype), device=device)

    def allocate_uniform(
        self, shape: Shape, dtype: str, device: Any, low: float, high: float
    ) -> Any:
        host = self._torch.empty(shape, dtype=self._dtype(dtype))
        host.uniform_(low, high, generator=self._generator)
        return host.to(device)

    def allocate_kaiming_uniform(self, shape: Shape, dtype: str, device: Any) -> Any:
        bound = 1.0 / math.sqrt(kaiming_fan_in(shape))
        return self.allocate_uniform(shape, dtype, device, -bound, bound)

    def allocate_randn(
        self, shape: Shape, dtype: str, device: Any, mean: float, stdev: float
    ) -> Any:
        host = self._torch.empty(shape, dtype=self._dtype(dtype))
        host.normal_(mean, stdev, generator=self._generator)
        return host.to(device)

    def from_tensor(self, source: Any, dtype: str, device: Any) -> Any:
        return source.detach().to(device=device, dtype=self._dtype(dtype)).clone()

    def copy_into(self, destination: Any, source: Any) -> None:
        with self._torch.no_grad():
            destination.copy_(source)

    def to_host_bytes(self, tensor: Any) -> bytes:
        try:
            host = tensor.detach().to("cpu").contiguous().reshape(-1)
            return bytes(host.view(self._torch.uint8).numpy().tobytes())
        except (RuntimeError, TypeError, ValueError) as error:
            raise ParamStoreSerializationError(
                f"Failed to extract host bytes from tensor of shape {self.shape(tensor)}: "
                f"{error}."
            ) from error

    def from_host_bytes(self, payload: bytes, shape: Shape, dtype: str, device: Any) -> Any:
        expected_size = math.prod(shape) * DTYPE_ITEM_SIZES[dtype]
        if len(payload) != expected_size:
            raise ParamStoreSerializationError(
                f"Payload for {dtype} tensor of shape {shape} has {len(payload)} bytes; "
                f"expected {expected_size}."
            )
        try:
            raw = self._torch.frombuffer(bytearray(payload), dtype=self._torch.uint8)
            return raw.view(self._dtype(dtype)).reshape(shape).to(device)
        except (RuntimeError, TypeError, ValueError) as error:
            raise ParamStoreSerializationError(
                f"Failed to rebuild {dtype} tensor of shape {shape} from bytes: {error}."
            ) from error

    def release(self, tensor: Any) -> None:
        tensor.grad = None
        tensor.data = self._torch.empty(0, dtype=tensor.dtype, device=tensor.device)

    def shape(self, tensor: Any) -> Shape:
        return tuple(int(dim) for dim in tensor.shape)

    def dtype_name(self, tensor: Any) -> str:
        name = self._dtype_names.get(tensor.dtype)
        if name is None:
            raise ParamStoreValidationError(
                f"Unsupported tensor dtype {tensor.dtype}. "
                f"Supported dtypes are: {', '.join(SUPPORTED_DTYPES)}."
            )
        return name

    def set_trainable(self, tensor: Any, trainable: bool) -> None:
        tensor.requires_grad_(trainable)

    def is_trainable(self, tensor: Any) -> bool:
        return bool(tensor.requires_grad)

    def _dtype(self, dtype: str) -> Any:
        try:
            return self._dtypes[dtype]
        except KeyError as error:
            raise ParamStoreValidationError(
                f"Unsupported dtype '{dtype}'. Supported dtypes are: {', '.join(SUPPORTED_DTYPES)}."
            ) from error


def kaiming_fan_in(shape: Shape) -> int:
    """Return the fan-in used by Kaiming uniform initialization."""
    if len(shape) == 1:
        return shape[0]
    return math.prod(shape[1:])


def load_torch_engine(random_seed: int | None = None) -> TorchTensorEngine:
    """Import torch and return a TorchTensorEngine bound to it."""
    return TorchTensorEngine(_import_torch(), random_seed=random_seed)


def _import_torch() -> Any:
    """Import torch dependency used as the numeric tensor engine."""
    try:
        import torch
    except ImportError as error:
        raise ParamStoreDependencyError(
            "The variable store requires torch as its tensor engine, but it is not installed. "
            "Install torch to create variable stores."
        ) from error
    return torch
