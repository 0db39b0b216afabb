"""Paramstore exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Each failure class maps to one kind of caller mistake or environment fault.
"""

from __future__ import annotations


class ParamStoreError(Exception):
    """Base exception for all paramstore failures."""


class ParamStoreConfigError(ParamStoreError):
    """Raised for invalid runtime configuration."""


class ParamStoreDependencyError(ParamStoreError):
    """Raised when an optional runtime dependency is missing."""


class ParamStoreValidationError(ParamStoreError):
    """Raised for illegal names, shapes, dtypes, or initializer arguments."""


class ParamStoreShapeMismatchError(ParamStoreError):
    """Raised when a stored variable shape conflicts with a requested one."""


class ParamStoreSerializationError(ParamStoreError):
    """Raised when tensor bytes cannot be extracted, rebuilt, or decoded."""


class ParamStoreIOError(ParamStoreError):
    """Raised for filesystem failures while reading or writing archives."""


class ParamStoreUseAfterDestroyError(ParamStoreError):
    """Raised when a destroyed store or one of its handles is used."""
