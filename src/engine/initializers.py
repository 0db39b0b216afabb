"""Variable initialization policies.

A VariableFactory bundles the requested shape, dtype, initializer, and
trainable flag. The store invokes it only when a name is created for the
first time.
"""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Any, Callable, Sequence

from core.constants import DEFAULT_DTYPE, SUPPORTED_DTYPES
from core.errors import ParamStoreValidationError
from core.types import Shape
from engine.tensor_engine import TensorEngine

Initializer = Callable[[TensorEngine, Shape, str, Any], Any]

_FLOATING_DTYPES = ("float64", "float32", "float16", "bfloat16")


@dataclass(frozen=True)
class VariableFactory:
    """Validated allocation request for one variable.

    Attributes:
        shape: Positive tensor dimensions.
        dtype: Engine dtype name.
        initializer: Callable receiving (engine, shape, dtype, device).
        trainable: Whether the variable tracks gradients.
    """

    shape: Shape
    dtype: str
    initializer: Initializer
    trainable: bool = True

    def __call__(self, engine: TensorEngine, device: Any) -> Any:
        tensor = self.initializer(engine, self.shape, self.dtype, device)
        engine.set_trainable(tensor, self.trainable)
        return tensor


def build_factory(
    shape: Sequence[int],
    initializer: Initializer,
    dtype: str = DEFAULT_DTYPE,
    trainable: bool = True,
    requires_floating: bool = False,
) -> VariableFactory:
    """Validate an allocation request and wrap it in a VariableFactory.

    Args:
        shape: Requested dimensions; every entry must be a positive int.
        initializer: Allocation policy.
        dtype: Engine dtype name.
        trainable: Whether the variable tracks gradients.
        requires_floating: Reject non-floating dtypes (random initializers).

    Returns:
        Frozen factory ready for VariableStore.get_or_create.

    Raises:
        ParamStoreValidationError: If shape, dtype or trainable flag is invalid.
    """
    validated_shape = validate_shape(shape)
    validate_dtype(dtype)
    if (trainable or requires_floating) and dtype not in _FLOATING_DTYPES:
        reason = "trainable variables" if trainable else "random initializers"
        raise ParamStoreValidationError(
            f"Dtype '{dtype}' is not supported for {reason}. "
            f"Use one of: {', '.join(_FLOATING_DTYPES)}."
        )
    return VariableFactory(
        shape=validated_shape,
        dtype=dtype,
        initializer=initializer,
        trainable=trainable,
    )


def validate_shape(shape: Sequence[int]) -> Shape:
    """Return shape as a tuple after checking every dimension is positive."""
    if isinstance(shape, (str, bytes)):
        raise ParamStoreValidationError(f"Invalid shape {shape!r}: expected integer sequence.")
    dims = tuple(shape)
    for dim in dims:
        if isinstance(dim, bool) or not isinstance(dim, int) or dim <= 0:
            raise ParamStoreValidationError(
                f"Invalid shape {list(dims)}: every dimension must be a positive integer."
            )
    return dims


def validate_dtype(dtype: str) -> None:
    if dtype not in SUPPORTED_DTYPES:
        raise ParamStoreValidationError(
            f"Unsupported dtype '{dtype}'. Supported dtypes are: {', '.join(SUPPORTED_DTYPES)}."
        )


def zeros() -> Initializer:
    """Fill with zeros."""
    return lambda engine, shape, dtype, device: engine.allocate_zeros(shape, dtype, device)


def ones() -> Initializer:
    """Fill with ones."""
    return lambda engine, shape, dtype, device: engine.allocate_ones(shape, dtype, device)


def uniform(low: float, high: float) -> Initializer:
    """Sample uniformly from [low, high)."""
    if not (math.isfinite(low) and math.isfinite(high)) or low >= high:
        raise ParamStoreValidationError(
            f"Invalid uniform bounds [{low}, {high}): expected finite low < high."
        )
    return lambda engine, shape, dtype, device: engine.allocate_uniform(
        shape, dtype, device, low, high
    )


def kaiming_uniform() -> Initializer:
    """Sample uniformly within +/- 1/sqrt(fan_in)."""
    return lambda engine, shape, dtype, device: engine.allocate_kaiming_uniform(
        shape, dtype, device
    )


def randn(mean: float = 0.0, stdev: float = 1.0) -> Initializer:
    """Sample from a normal distribution."""
    if not (math.isfinite(mean) and math.isfinite(stdev)) or stdev <= 0:
        raise ParamStoreValidationError(
            f"Invalid normal parameters mean={mean}, stdev={stdev}: "
            "expected finite values with stdev > 0."
        )
    return lambda engine, shape, dtype, device: engine.allocate_randn(
        shape, dtype, device, mean, stdev
    )


def copy_of(source: Any) -> Initializer:
    """Copy an existing tensor onto the store device."""
    return lambda engine, shape, dtype, device: engine.from_tensor(source, dtype, device)
