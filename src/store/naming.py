"""Hierarchical variable naming.

Segments are joined with PATH_SEPARATOR. Rejecting the separator inside a
segment keeps the join injective, so one full name identifies one slot.
"""

from __future__ import annotations

from typing import Iterable

from core.constants import PATH_SEPARATOR
from core.errors import ParamStoreValidationError


def validate_segment(name: str) -> str:
    """Return name unchanged if it is a legal path segment.

    Raises:
        ParamStoreValidationError: If name is empty, not a string, or contains
            the path separator.
    """
    if not isinstance(name, str) or not name:
        raise ParamStoreValidationError(
            f"Invalid variable path segment {name!r}: expected a non-empty string."
        )
    if PATH_SEPARATOR in name:
        raise ParamStoreValidationError(
            f"Invalid variable path segment '{name}': "
            f"segment names must not contain '{PATH_SEPARATOR}'. Use Path.sub for nesting."
        )
    return name


def join_name(segments: Iterable[str], name: str) -> str:
    """Build the fully qualified name for name under segments."""
    return PATH_SEPARATOR.join((*segments, validate_segment(name)))
