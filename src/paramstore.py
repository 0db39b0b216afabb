"""Public SDK surface for paramstore.

This module provides a stable import path for library users.
It re-exports the store, its path types, config, and error classes.
"""

from __future__ import annotations

from core.config import ParamStoreConfig, resolve_archive_path
from core.errors import (
    ParamStoreConfigError,
    ParamStoreDependencyError,
    ParamStoreError,
    ParamStoreIOError,
    ParamStoreSerializationError,
    ParamStoreShapeMismatchError,
    ParamStoreUseAfterDestroyError,
    ParamStoreValidationError,
)
from core.types import ArchiveRecord, VariableSummary
from engine import initializers
from engine.initializers import VariableFactory, build_factory
from engine.tensor_engine import TensorEngine, TorchTensorEngine, load_torch_engine
from store.entry import Entry
from store.handles import VariableHandle
from store.path import Path
from store.variable_store import VariableStore, new_variable_store

__all__ = [
    "ArchiveRecord",
    "Entry",
    "ParamStoreConfig",
    "ParamStoreConfigError",
    "ParamStoreDependencyError",
    "ParamStoreError",
    "ParamStoreIOError",
    "ParamStoreSerializationError",
    "ParamStoreShapeMismatchError",
    "ParamStoreUseAfterDestroyError",
    "ParamStoreValidationError",
    "Path",
    "TensorEngine",
    "TorchTensorEngine",
    "VariableFactory",
    "VariableHandle",
    "VariableStore",
    "VariableSummary",
    "build_factory",
    "initializers",
    "load_torch_engine",
    "new_variable_store",
    "resolve_archive_path",
]
