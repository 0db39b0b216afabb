"""Deferred get-or-create handles for one fully qualified name."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Sequence

from core.constants import DEFAULT_DTYPE
from engine import initializers
from engine.initializers import Initializer, build_factory
from store.handles import VariableHandle

if TYPE_CHECKING:
    from store.variable_store import VariableStore


@dataclass(frozen=True)
class Entry:
    """Identity pair of a store and a fully qualified name.

    Each or_* method builds a factory and delegates to
    VariableStore.get_or_create. The shape argument only matters on the
    first call for a name; later calls return the existing variable.
    """

    store: "VariableStore"
    name: str

    def or_zeros(self, shape: Sequence[int], dtype: str = DEFAULT_DTYPE) -> VariableHandle:
        return self._get_or_create(shape, initializers.zeros(), dtype)

    def or_ones(self, shape: Sequence[int], dtype: str = DEFAULT_DTYPE) -> VariableHandle:
        return self._get_or_create(shape, initializers.ones(), dtype)

    def or_zeros_no_train(
        self, shape: Sequence[int], dtype: str = DEFAULT_DTYPE
    ) -> VariableHandle:
        return self._get_or_create(shape, initializers.zeros(), dtype, trainable=False)

    def or_ones_no_train(
        self, shape: Sequence[int], dtype: str = DEFAULT_DTYPE
    ) -> VariableHandle:
        return self._get_or_create(shape, initializers.ones(), dtype, trainable=False)

    def or_uniform(
        self,
        shape: Sequence[int],
        low: float,
        high: float,
        dtype: str = DEFAULT_DTYPE,
    ) -> VariableHandle:
        return self._get_or_create(
            shape, initializers.uniform(low, high), dtype, requires_floating=True
        )

    def or_kaiming_uniform(
        self, shape: Sequence[int], dtype: str = DEFAULT_DTYPE
    ) -> VariableHandle:
        return self._get_or_create(
            shape, initializers.kaiming_uniform(), dtype, requires_floating=True
        )

    def or_randn(
        self,
        shape: Sequence[int],
        mean: float,
        stdev: float,
        dtype: str = DEFAULT_DTYPE,
    ) -> VariableHandle:
        return self._get_or_create(
            shape, initializers.randn(mean, stdev), dtype, requires_floating=True
        )

    def or_randn_standard(
        self, shape: Sequence[int], dtype: str = DEFAULT_DTYPE
    ) -> VariableHandle:
        return self.or_randn(shape, 0.0, 1.0, dtype)

    def or_var(
        self,
        shape: Sequence[int],
        initializer: Initializer,
        dtype: str = DEFAULT_DTYPE,
        trainable: bool = True,
    ) -> VariableHandle:
        """Create with a custom initializer receiving (engine, shape, dtype, device)."""
        return self._get_or_create(shape, initializer, dtype, trainable=trainable)

    def or_var_copy(self, source: Any, trainable: bool = True) -> VariableHandle:
        """Create as a copy of source moved to the store device.

        The copy keeps the source dtype. Non-floating sources must pass
        trainable=False.
        """
        engine = self.store.engine
        return self._get_or_create(
            engine.shape(source),
            initializers.copy_of(source),
            engine.dtype_name(source),
            trainable=trainable,
        )

    def _get_or_create(
        self,
        shape: Sequence[int],
        initializer: Initializer,
        dtype: str,
        trainable: bool = True,
        requires_floating: bool = False,
    ) -> VariableHandle:
        factory = build_factory(
            shape,
            initializer,
            dtype=dtype,
            trainable=trainable,
            requires_floating=requires_floating,
        )
        return self.store.get_or_create(self.name, factory)
