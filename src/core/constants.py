"""Core constants used across paramstore modules.

This module centralizes naming, archive, and configuration constants.
Keeping values here avoids magic literals in registry logic.
"""

from __future__ import annotations

from pathlib import Path

PATH_SEPARATOR = "."
DEFAULT_DEVICE = "auto"
SUPPORTED_DEVICE_TYPES = ("auto", "cpu", "cuda", "mps")
DEFAULT_DTYPE = "float32"
DEFAULT_LOG_LEVEL = "INFO"
SUPPORTED_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
DEFAULT_CACHE_DIR = Path("~/.cache/paramstore")
DTYPE_ITEM_SIZES = {
    "float64": 8,
    "float32": 4,
    "float16": 2,
    "bfloat16": 2,
    "int64": 8,
    "int32": 4,
    "int16": 2,
    "int8": 1,
    "uint8": 1,
    "bool": 1,
}
SUPPORTED_DTYPES = tuple(DTYPE_ITEM_SIZES)
ARCHIVE_MAGIC = b"PSTARCH\x00"
ARCHIVE_FORMAT_VERSION = 1
ARCHIVE_TEMP_SUFFIX = ".tmp"
ENV_DEVICE = "PARAMSTORE_DEVICE"
ENV_RANDOM_SEED = "PARAMSTORE_RANDOM_SEED"
ENV_STRICT_SHAPES = "PARAMSTORE_STRICT_SHAPES"
ENV_CACHE_DIR = "PARAMSTORE_CACHE_DIR"
ENV_LOG_LEVEL = "PARAMSTORE_LOG_LEVEL"
