"""Hierarchical variable store.

This module owns the name-to-tensor registry for one device. Every
mutation is serialized behind one store-wide lock, archives are written
atomically, and loads are validated in full before any tensor changes.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import threading
from typing import Any, Iterator

from core.config import ParamStoreConfig, resolve_archive_path
from core.constants import PATH_SEPARATOR
from core.errors import (
    ParamStoreShapeMismatchError,
    ParamStoreUseAfterDestroyError,
    ParamStoreValidationError,
)
from core.logging_config import configure_logging, get_logger
from core.types import ArchiveRecord, VariableSummary
from engine.initializers import VariableFactory, validate_dtype, validate_shape
from engine.tensor_engine import TensorEngine, load_torch_engine
from store.archive_io import read_archive, write_archive_atomic
from store.handles import VariableHandle
from store.path import Path as VariablePath

_LOGGER = get_logger(__name__)


@dataclass
class _Slot:
    name: str
    tensor: Any
    trainable: bool


class VariableStore:
    """Registry of named tensors sharing one device.

    A fully qualified name maps to exactly one tensor for the store's
    lifetime. Slots are kept in first-insertion order, which is also the
    archive record order. Callers receive VariableHandle objects tagged
    with the store generation; destroy retires the generation.
    """

    def __init__(
        self,
        engine: TensorEngine,
        device: Any,
        strict_shapes: bool = False,
        config: ParamStoreConfig | None = None,
    ) -> None:
        """Initialize an empty store.

        Args:
            engine: Tensor engine used for every allocation and copy.
            device: Engine device shared by all variables.
            strict_shapes: Reject re-requests of a name with a different shape
                instead of returning the existing variable.
            config: Runtime config; when set, bare archive file names passed to
                save and load resolve under its cache_dir.
        """
        self._engine = engine
        self._device = device
        self._strict_shapes = strict_shapes
        self._config = config
        self._lock = threading.Lock()
        self._slots: list[_Slot] = []
        self._index: dict[str, int] = {}
        self._generation = 0
        self._destroyed = False

    @property
    def engine(self) -> TensorEngine:
        return self._engine

    @property
    def device(self) -> Any:
        return self._device

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def __len__(self) -> int:
        with self._lock:
            return len(self._slots)

    def is_empty(self) -> bool:
        return len(self) == 0

    def root(self) -> VariablePath:
        """Return the empty-segment path bound to this store."""
        self._ensure_alive("root")
        return VariablePath(self)

    def get_or_create(self, full_name: str, factory: VariableFactory) -> VariableHandle:
        """Return the variable named full_name, allocating it on first request.

        On a repeat name the factory is ignored, including its shape. Under
        a creation race for one name exactly one factory runs and every
        caller receives the winner's handle.

        Raises:
            ParamStoreValidationError: If the name, shape, or dtype is illegal,
                or the factory returns a tensor of another shape or on another
                device.
            ParamStoreShapeMismatchError: If strict_shapes is set and the name
                already exists with a different shape.
            ParamStoreUseAfterDestroyError: If the store was destroyed.
        """
        _validate_full_name(full_name)
        validate_shape(factory.shape)
        validate_dtype(factory.dtype)
        with self._lock:
            self._ensure_alive("get_or_create")
            index = self._index.get(full_name)
            if index is not None:
                self._check_repeat_request(self._slots[index], factory)
                return self._handle(index)
            tensor = factory(self._engine, self._device)
            self._check_allocation(full_name, tensor, factory)
            handle = self._handle(self._append_slot(full_name, tensor, factory.trainable))
        _LOGGER.debug(
            "variable_created",
            name=full_name,
            shape=list(factory.shape),
            dtype=factory.dtype,
            trainable=factory.trainable,
        )
        return handle

    def get(self, full_name: str) -> VariableHandle | None:
        """Return the handle for full_name, or None when it does not exist."""
        with self._lock:
            self._ensure_alive("get")
            index = self._index.get(full_name)
            return None if index is None else self._handle(index)

    def resolve(self, handle: VariableHandle) -> Any:
        """Return the live tensor behind handle.

        Raises:
            ParamStoreUseAfterDestroyError: If the handle's generation is retired.
        """
        with self._lock:
            return self._slot_for(handle).tensor

    def is_slot_trainable(self, handle: VariableHandle) -> bool:
        with self._lock:
            return self._slot_for(handle).trainable

    def variables(self) -> dict[str, VariableHandle]:
        """Return handles for every variable in insertion order."""
        with self._lock:
            self._ensure_alive("variables")
            return {slot.name: self._handle(index) for index, slot in enumerate(self._slots)}

    def trainable_variables(self) -> list[VariableHandle]:
        """Return handles for trainable variables in insertion order."""
        with self._lock:
            self._ensure_alive("trainable_variables")
            return [
                self._handle(index) for index, slot in enumerate(self._slots) if slot.trainable
            ]

    def freeze(self) -> None:
        """Stop gradient tracking on every trainable variable."""
        self._set_gradient_tracking(False)

    def unfreeze(self) -> None:
        """Resume gradient tracking on every trainable variable."""
        self._set_gradient_tracking(True)

    def summary(self) -> "VariableSummaryView":
        """Return a lazy, restartable view describing each variable."""
        return VariableSummaryView(self)

    def save(self, archive_path: str | Path) -> None:
        """Persist every variable, in insertion order, to an archive file.

        The archive is written to a temporary sibling and renamed into
        place, so archive_path never exposes a partially written file.

        Raises:
            ParamStoreSerializationError: If tensor bytes cannot be extracted.
            ParamStoreIOError: If the filesystem write fails.
            ParamStoreUseAfterDestroyError: If the store was destroyed.
        """
        target = self._archive_target(archive_path)
        with self._lock:
            self._ensure_alive("save")
            records = [self._archive_record(slot) for slot in self._slots]
            write_archive_atomic(target, records)
        _LOGGER.info(
            "variable_store_saved",
            path=str(target),
            variable_count=len(records),
            payload_bytes=sum(len(record.payload) for record in records),
        )

    def load(self, archive_path: str | Path) -> None:
        """Overwrite matching variables in place from an archive file.

        Every archived record with a live name is validated before any
        tensor is modified. Records with no live counterpart are skipped.

        Raises:
            ParamStoreShapeMismatchError: If any live shape differs from its
                archived shape; no variable is modified.
            ParamStoreSerializationError: If the archive is malformed.
            ParamStoreIOError: If the archive cannot be read.
            ParamStoreUseAfterDestroyError: If the store was destroyed.
        """
        self._load_archive(self._archive_target(archive_path))

    def load_partial(self, archive_path: str | Path) -> tuple[str, ...]:
        """Load like load and return live names absent from the archive."""
        return self._load_archive(self._archive_target(archive_path))

    def copy_from(self, source: "VariableStore") -> None:
        """Copy variable contents by name from another store.

        Every variable in this store must exist in source with the same
        shape; otherwise nothing is copied.

        Raises:
            ParamStoreShapeMismatchError: If a name is missing or differently shaped.
            ParamStoreUseAfterDestroyError: If either store was destroyed.
        """
        if source is self:
            return
        snapshot = source._snapshot_for(self._device)
        with self._lock:
            self._ensure_alive("copy_from")
            conflicts = []
            for slot in self._slots:
                copied = snapshot.get(slot.name)
                if copied is None:
                    conflicts.append(f"'{slot.name}' missing in source store")
                elif self._engine.shape(copied) != self._engine.shape(slot.tensor):
                    conflicts.append(
                        f"'{slot.name}' has shape {list(self._engine.shape(copied))} in source, "
                        f"{list(self._engine.shape(slot.tensor))} here"
                    )
            if conflicts:
                raise ParamStoreShapeMismatchError(
                    f"Cannot copy variables: {'; '.join(conflicts)}. "
                    "Build both stores with the same path structure."
                )
            for slot in self._slots:
                self._engine.copy_into(slot.tensor, snapshot[slot.name])
            copied_count = len(self._slots)
        _LOGGER.info("variable_store_copied", variable_count=copied_count)

    def destroy(self) -> None:
        """Release every tensor, clear the registry, and retire the generation.

        Destroying an already destroyed store is a no-op.
        """
        with self._lock:
            if self._destroyed:
                return
            released = len(self._slots)
            for slot in self._slots:
                self._engine.release(slot.tensor)
            self._slots.clear()
            self._index.clear()
            self._generation += 1
            self._destroyed = True
        _LOGGER.info("variable_store_destroyed", released_count=released)

    def _load_archive(self, target: Path) -> tuple[str, ...]:
        records = read_archive(target)
        with self._lock:
            self._ensure_alive("load")
            staged = self._stage_records(records, target)
            for slot, tensor in staged:
                self._engine.copy_into(slot.tensor, tensor)
            archived_names = {record.name for record in records}
            missing = tuple(slot.name for slot in self._slots if slot.name not in archived_names)
        skipped = len(records) - len(staged)
        if skipped:
            _LOGGER.debug("variable_store_load_skipped", path=str(target), skipped_count=skipped)
        _LOGGER.info(
            "variable_store_loaded",
            path=str(target),
            loaded_count=len(staged),
            missing_count=len(missing),
        )
        return missing

    def _stage_records(
        self, records: list[ArchiveRecord], target: Path
    ) -> list[tuple[_Slot, Any]]:
        """Decode and validate every applicable record without mutating."""
        conflicts = []
        matched: list[tuple[_Slot, ArchiveRecord]] = []
        for record in records:
            index = self._index.get(record.name)
            if index is None:
                continue
            slot = self._slots[index]
            live_shape = self._engine.shape(slot.tensor)
            if live_shape != record.shape:
                conflicts.append(
                    f"'{record.name}' is {list(live_shape)} but archived as {list(record.shape)}"
                )
                continue
            matched.append((slot, record))
        if conflicts:
            raise ParamStoreShapeMismatchError(
                f"Cannot load variable store archive at {target}: {'; '.join(conflicts)}. "
                "No variables were modified."
            )
        return [
            (
                slot,
                self._engine.from_host_bytes(
                    record.payload, record.shape, record.dtype, self._device
                ),
            )
            for slot, record in matched
        ]

    def _snapshot_for(self, device: Any) -> dict[str, Any]:
        with self._lock:
            self._ensure_alive("copy_from")
            return {
                slot.name: self._engine.from_tensor(
                    slot.tensor, self._engine.dtype_name(slot.tensor), device
                )
                for slot in self._slots
            }

    def _set_gradient_tracking(self, enabled: bool) -> None:
        with self._lock:
            self._ensure_alive("unfreeze" if enabled else "freeze")
            for slot in self._slots:
                if slot.trainable:
                    self._engine.set_trainable(slot.tensor, enabled)

    def _archive_record(self, slot: _Slot) -> ArchiveRecord:
        return ArchiveRecord(
            name=slot.name,
            dtype=self._engine.dtype_name(slot.tensor),
            shape=self._engine.shape(slot.tensor),
            payload=self._engine.to_host_bytes(slot.tensor),
        )

    def _check_repeat_request(self, slot: _Slot, factory: VariableFactory) -> None:
        existing_shape = self._engine.shape(slot.tensor)
        if existing_shape == factory.shape:
            return
        if self._strict_shapes:
            raise ParamStoreShapeMismatchError(
                f"Variable '{slot.name}' already exists with shape {list(existing_shape)}; "
                f"requested {list(factory.shape)}. Use a distinct name for a new variable."
            )
        _LOGGER.warning(
            "variable_shape_ignored",
            name=slot.name,
            existing_shape=list(existing_shape),
            requested_shape=list(factory.shape),
        )

    def _archive_target(self, archive_path: str | Path) -> Path:
        if self._config is None:
            return Path(archive_path)
        return resolve_archive_path(archive_path, self._config)

    def _check_allocation(self, full_name: str, tensor: Any, factory: VariableFactory) -> None:
        allocated_device = self._engine.device_of(tensor)
        if not _same_device(allocated_device, self._device):
            raise ParamStoreValidationError(
                f"Initializer for '{full_name}' allocated on {allocated_device}; "
                f"this store holds every variable on {self._device}."
            )
        allocated_shape = self._engine.shape(tensor)
        if allocated_shape != factory.shape:
            raise ParamStoreValidationError(
                f"Initializer for '{full_name}' produced shape {list(allocated_shape)}; "
                f"expected {list(factory.shape)}."
            )

    def _append_slot(self, full_name: str, tensor: Any, trainable: bool) -> int:
        self._slots.append(_Slot(name=full_name, tensor=tensor, trainable=trainable))
        index = len(self._slots) - 1
        self._index[full_name] = index
        return index

    def _handle(self, index: int) -> VariableHandle:
        return VariableHandle(
            store=self,
            name=self._slots[index].name,
            index=index,
            generation=self._generation,
        )

    def _slot_for(self, handle: VariableHandle) -> _Slot:
        if handle.store is not self:
            raise ParamStoreValidationError(
                f"Handle for '{handle.name}' belongs to a different variable store."
            )
        if self._destroyed or handle.generation != self._generation:
            raise ParamStoreUseAfterDestroyError(
                f"Variable '{handle.name}' was released when its store was destroyed. "
                "Create a new store instead of reusing handles."
            )
        return self._slots[handle.index]

    def _ensure_alive(self, operation: str) -> None:
        if self._destroyed:
            raise ParamStoreUseAfterDestroyError(
                f"Cannot {operation} on a destroyed variable store. Create a new store."
            )


class VariableSummaryView:
    """Lazy description of a store's variables.

    Each iteration takes a fresh snapshot under the store lock, so the view
    can be iterated repeatedly and never mutates the registry.
    """

    def __init__(self, store: VariableStore) -> None:
        self._store = store

    def __iter__(self) -> Iterator[VariableSummary]:
        store = self._store
        engine = store.engine
        with store._lock:
            rows = [
                VariableSummary(
                    name=slot.name,
                    shape=engine.shape(slot.tensor),
                    dtype=engine.dtype_name(slot.tensor),
                    trainable=slot.trainable,
                )
                for slot in store._slots
            ]
        yield from rows


def new_variable_store(
    device: str | None = None,
    config: ParamStoreConfig | None = None,
    engine: TensorEngine | None = None,
) -> VariableStore:
    """Create an empty variable store bound to a resolved device.

    Args:
        device: Device spec; defaults to config.device.
        config: Runtime config; read from the environment when omitted.
        engine: Tensor engine; a seeded torch engine when omitted.

    Returns:
        Empty VariableStore.

    Raises:
        ParamStoreConfigError: If the device is invalid or unavailable.
        ParamStoreDependencyError: If torch is not installed.
    """
    resolved_config = config or ParamStoreConfig.from_env()
    configure_logging(resolved_config.log_level)
    resolved_engine = engine or load_torch_engine(resolved_config.random_seed)
    resolved_device = resolved_engine.resolve_device(device or resolved_config.device)
    return VariableStore(
        resolved_engine,
        resolved_device,
        strict_shapes=resolved_config.strict_shapes,
        config=resolved_config,
    )


def _validate_full_name(full_name: str) -> None:
    if not isinstance(full_name, str) or not full_name:
        raise ParamStoreValidationError(
            f"Invalid variable name {full_name!r}: expected a non-empty string."
        )
    if any(not segment for segment in full_name.split(PATH_SEPARATOR)):
        raise ParamStoreValidationError(
            f"Invalid variable name '{full_name}': empty path segment."
        )


def _same_device(actual: Any, expected: Any) -> bool:
    """Match devices, treating an index-less expected device as any index of its type."""
    if actual == expected:
        return True
    actual_type = getattr(actual, "type", str(actual).partition(":")[0])
    expected_type = getattr(expected, "type", str(expected).partition(":")[0])
    return actual_type == expected_type and getattr(expected, "index", None) is None
