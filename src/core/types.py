"""Shared typed models.

This module defines immutable data models used by the engine, store,
and archive layers to keep interfaces explicit and stable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

DTypeName = Literal[
    "float64",
    "float32",
    "float16",
    "bfloat16",
    "int64",
    "int32",
    "int16",
    "int8",
    "uint8",
    "bool",
]
Shape = tuple[int, ...]


@dataclass(frozen=True)
class VariableSummary:
    """Read-only description of one registered variable.

    Attributes:
        name: Fully qualified variable name.
        shape: Tensor dimensions.
        dtype: Engine dtype name.
        trainable: Whether the variable tracks gradients.
    """

    name: str
    shape: Shape
    dtype: str
    trainable: bool


@dataclass(frozen=True)
class ArchiveRecord:
    """One persisted variable inside a store archive.

    Attributes:
        name: Fully qualified variable name.
        dtype: Engine dtype name.
        shape: Positive tensor dimensions.
        payload: Raw little-endian element bytes.
    """

    name: str
    dtype: str
    shape: Shape
    payload: bytes
