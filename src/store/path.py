"""Immutable hierarchical paths into a variable store.

A Path is a tuple of validated segments bound to one store. Descending
with sub never allocates; the creation shortcuts resolve to a single
get_or_create call on the owning store.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Sequence

from core.constants import DEFAULT_DTYPE, PATH_SEPARATOR
from engine.initializers import Initializer
from store.entry import Entry
from store.handles import VariableHandle
from store.naming import join_name, validate_segment

if TYPE_CHECKING:
    from store.variable_store import VariableStore


class Path:
    """Name prefix bound to a VariableStore."""

    __slots__ = ("_store", "_segments")

    def __init__(self, store: "VariableStore", segments: tuple[str, ...] = ()) -> None:
        self._store = store
        self._segments = segments

    @property
    def store(self) -> "VariableStore":
        return self._store

    @property
    def segments(self) -> tuple[str, ...]:
        return self._segments

    @property
    def device(self) -> Any:
        return self._store.device

    def sub(self, name: str) -> "Path":
        """Return a child path with name appended.

        Raises:
            ParamStoreValidationError: If name is empty or contains the separator.
        """
        return Path(self._store, (*self._segments, validate_segment(name)))

    def entry(self, name: str) -> Entry:
        """Return a deferred handle for name under this path; allocates nothing."""
        return Entry(self._store, self.full_name(name))

    def full_name(self, name: str) -> str:
        return join_name(self._segments, name)

    def get(self, name: str) -> VariableHandle | None:
        """Return the existing variable called name, or None."""
        return self._store.get(self.full_name(name))

    def add(self, name: str, tensor: Any, trainable: bool = True) -> VariableHandle:
        """Register a copy of an existing tensor on the store device.

        Integer and bool tensors cannot track gradients, so they need
        trainable=False; otherwise ParamStoreValidationError is raised.
        """
        return self.entry(name).or_var_copy(tensor, trainable=trainable)

    def zeros(self, name: str, shape: Sequence[int], dtype: str = DEFAULT_DTYPE) -> VariableHandle:
        return self.entry(name).or_zeros(shape, dtype)

    def ones(self, name: str, shape: Sequence[int], dtype: str = DEFAULT_DTYPE) -> VariableHandle:
        return self.entry(name).or_ones(shape, dtype)

    def zeros_no_train(
        self, name: str, shape: Sequence[int], dtype: str = DEFAULT_DTYPE
    ) -> VariableHandle:
        return self.entry(name).or_zeros_no_train(shape, dtype)

    def ones_no_train(
        self, name: str, shape: Sequence[int], dtype: str = DEFAULT_DTYPE
    ) -> VariableHandle:
        return self.entry(name).or_ones_no_train(shape, dtype)

    def uniform(
        self,
        name: str,
        shape: Sequence[int],
        low: float,
        high: float,
        dtype: str = DEFAULT_DTYPE,
    ) -> VariableHandle:
        return self.entry(name).or_uniform(shape, low, high, dtype)

    def kaiming_uniform(
        self, name: str, shape: Sequence[int], dtype: str = DEFAULT_DTYPE
    ) -> VariableHandle:
        return self.entry(name).or_kaiming_uniform(shape, dtype)

    def randn(
        self,
        name: str,
        shape: Sequence[int],
        mean: float,
        stdev: float,
        dtype: str = DEFAULT_DTYPE,
    ) -> VariableHandle:
        return self.entry(name).or_randn(shape, mean, stdev, dtype)

    def randn_standard(
        self, name: str, shape: Sequence[int], dtype: str = DEFAULT_DTYPE
    ) -> VariableHandle:
        return self.entry(name).or_randn_standard(shape, dtype)

    def var(
        self,
        name: str,
        shape: Sequence[int],
        initializer: Initializer,
        dtype: str = DEFAULT_DTYPE,
        trainable: bool = True,
    ) -> VariableHandle:
        return self.entry(name).or_var(shape, initializer, dtype, trainable)

    def var_copy(self, name: str, source: Any, trainable: bool = True) -> VariableHandle:
        return self.entry(name).or_var_copy(source, trainable)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Path):
            return NotImplemented
        return self._store is other._store and self._segments == other._segments

    def __hash__(self) -> int:
        return hash((id(self._store), self._segments))

    def __repr__(self) -> str:
        return f"Path({PATH_SEPARATOR.join(self._segments)!r})"
