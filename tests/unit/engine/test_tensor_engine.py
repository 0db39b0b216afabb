"""Unit tests for the torch tensor engine binding."""

from __future__ import annotations

import math

import pytest

from core.errors import ParamStoreSerializationError, ParamStoreValidationError
from engine.tensor_engine import TorchTensorEngine, kaiming_fan_in

torch = pytest.importorskip("torch")


@pytest.fixture
def engine() -> TorchTensorEngine:
    return TorchTensorEngine(torch, random_seed=7)


@pytest.mark.parametrize("dtype", ["float32", "float64", "bfloat16", "int16", "uint8", "bool"])
def test_host_bytes_rebuild_identical_tensor(engine: TorchTensorEngine, dtype: str) -> None:
    """Bytes extracted from a tensor should rebuild an equal tensor."""
    source = engine.allocate_ones((2, 3), dtype, torch.device("cpu"))

    payload = engine.to_host_bytes(source)
    rebuilt = engine.from_host_bytes(payload, (2, 3), dtype, torch.device("cpu"))

    assert torch.equal(rebuilt, source) and engine.dtype_name(rebuilt) == dtype


def test_host_bytes_are_little_endian_float32(engine: TorchTensorEngine) -> None:
    """float32 payloads should use the raw IEEE-754 element encoding."""
    tensor = torch.tensor([1.0, 2.0], dtype=torch.float32)

    assert engine.to_host_bytes(tensor) == b"\x00\x00\x80?\x00\x00\x00@"


def test_from_host_bytes_rejects_wrong_length(engine: TorchTensorEngine) -> None:
    """Payload length must equal element count times item size."""
    with pytest.raises(ParamStoreSerializationError):
        engine.from_host_bytes(b"\x00" * 7, (2,), "float32", torch.device("cpu"))


def test_seeded_engines_produce_identical_uniform_values() -> None:
    """Two engines with one seed should draw the same initial values."""
    first = TorchTensorEngine(torch, random_seed=11)
    second = TorchTensorEngine(torch, random_seed=11)

    left = first.allocate_uniform((5,), "float32", torch.device("cpu"), -1.0, 1.0)
    right = second.allocate_uniform((5,), "float32", torch.device("cpu"), -1.0, 1.0)

    assert torch.equal(left, right)


def test_kaiming_uniform_respects_fan_in_bound(engine: TorchTensorEngine) -> None:
    """Kaiming uniform values should lie within 1/sqrt(fan_in)."""
    tensor = engine.allocate_kaiming_uniform((8, 16), "float32", torch.device("cpu"))
    bound = 1.0 / math.sqrt(16)

    assert float(tensor.abs().max()) <= bound


def test_kaiming_fan_in_uses_trailing_dims() -> None:
    """Fan-in should multiply all but the first dimension."""
    assert kaiming_fan_in((4, 3, 5, 5)) == 75 and kaiming_fan_in((9,)) == 9


def test_copy_into_preserves_identity(engine: TorchTensorEngine) -> None:
    """In-place copies should keep the destination tensor object."""
    destination = engine.allocate_zeros((3,), "float32", torch.device("cpu"))
    engine.set_trainable(destination, True)
    pointer = destination.data_ptr()

    engine.copy_into(destination, torch.full((3,), 4.0))

    assert destination.data_ptr() == pointer and destination.tolist() == [4.0, 4.0, 4.0]


def test_release_drops_storage(engine: TorchTensorEngine) -> None:
    """Released tensors should no longer hold their elements."""
    tensor = engine.allocate_ones((64,), "float32", torch.device("cpu"))

    engine.release(tensor)

    assert tensor.numel() == 0


def test_dtype_name_rejects_unsupported_dtype(engine: TorchTensorEngine) -> None:
    """Tensors with dtypes outside the archive set should be rejected."""
    with pytest.raises(ParamStoreValidationError):
        engine.dtype_name(torch.zeros(2, dtype=torch.complex64))
