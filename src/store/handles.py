"""Generation-tagged variable handles.

A handle names one arena slot in one store generation. Resolving it after
the store is destroyed raises instead of touching released storage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from core.types import Shape

if TYPE_CHECKING:
    from store.variable_store import VariableStore


@dataclass(frozen=True, eq=False)
class VariableHandle:
    """Reference to one registered variable.

    Attributes:
        store: Variable store that issued the handle.
        name: Fully qualified variable name.
        index: Arena slot index inside the owning store.
        generation: Store generation the handle was issued in.
    """

    store: "VariableStore" = field(repr=False)
    name: str
    index: int
    generation: int

    @property
    def tensor(self) -> Any:
        """Live engine tensor for this variable."""
        return self.store.resolve(self)

    @property
    def shape(self) -> Shape:
        return self.store.engine.shape(self.tensor)

    @property
    def dtype(self) -> str:
        return self.store.engine.dtype_name(self.tensor)

    @property
    def trainable(self) -> bool:
        return self.store.is_slot_trainable(self)

    def is_alive(self) -> bool:
        """Return whether the owning store generation is still current."""
        return not self.store.destroyed and self.store.generation == self.generation

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VariableHandle):
            return NotImplemented
        return (
            self.store is other.store
            and self.index == other.index
            and self.generation == other.generation
        )

    def __hash__(self) -> int:
        return hash((id(self.store), self.index, self.generation))
