"""Runtime configuration model for paramstore.

This module owns all environment variable and YAML config parsing.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Mapping, cast

from core.constants import (
    DEFAULT_CACHE_DIR,
    DEFAULT_DEVICE,
    DEFAULT_LOG_LEVEL,
    ENV_CACHE_DIR,
    ENV_DEVICE,
    ENV_LOG_LEVEL,
    ENV_RANDOM_SEED,
    ENV_STRICT_SHAPES,
    SUPPORTED_DEVICE_TYPES,
    SUPPORTED_LOG_LEVELS,
)
from core.errors import ParamStoreConfigError, ParamStoreDependencyError, ParamStoreIOError

_CONFIG_KEYS = ("device", "random_seed", "strict_shapes", "cache_dir", "log_level")
_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off", "")


@dataclass(frozen=True)
class ParamStoreConfig:
    """Validated runtime configuration.

    Attributes:
        device: Requested device spec (auto, cpu, cuda, cuda:N, mps).
        random_seed: Optional seed for random initializers.
        strict_shapes: Reject differently-shaped re-requests of a name.
        cache_dir: Directory that bare archive file names resolve under.
        log_level: Minimum structured log level.
    """

    device: str = DEFAULT_DEVICE
    random_seed: int | None = None
    strict_shapes: bool = False
    cache_dir: Path = field(default_factory=lambda: DEFAULT_CACHE_DIR.expanduser())
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls) -> "ParamStoreConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            ParamStoreConfigError: If environment values are invalid.
        """
        raw_seed = os.getenv(ENV_RANDOM_SEED)
        return cls(
            device=_parse_device(os.getenv(ENV_DEVICE, DEFAULT_DEVICE), ENV_DEVICE),
            random_seed=_parse_random_seed(raw_seed, ENV_RANDOM_SEED) if raw_seed else None,
            strict_shapes=_parse_bool(os.getenv(ENV_STRICT_SHAPES, "false"), ENV_STRICT_SHAPES),
            cache_dir=Path(os.getenv(ENV_CACHE_DIR, str(DEFAULT_CACHE_DIR)))
            .expanduser()
            .resolve(),
            log_level=_parse_log_level(
                os.getenv(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL), ENV_LOG_LEVEL
            ),
        )

    @classmethod
    def from_yaml(cls, config_path: str) -> "ParamStoreConfig":
        """Build config from a YAML mapping on disk.

        Missing keys keep their defaults.

        Args:
            config_path: Path to YAML config file.

        Returns:
            A validated config object.

        Raises:
            ParamStoreDependencyError: If PyYAML is unavailable.
            ParamStoreConfigError: If the file is missing, malformed, or invalid.
        """
        payload = _load_yaml_mapping(config_path)
        unknown_keys = sorted(set(payload) - set(_CONFIG_KEYS))
        if unknown_keys:
            raise ParamStoreConfigError(
                f"Unsupported config keys in {config_path}: {', '.join(unknown_keys)}. "
                f"Allowed keys are: {', '.join(_CONFIG_KEYS)}."
            )
        defaults = cls()
        raw_seed = payload.get("random_seed")
        raw_cache_dir = payload.get("cache_dir")
        return cls(
            device=_parse_device(str(payload.get("device", defaults.device)), "device"),
            random_seed=None if raw_seed is None else _parse_random_seed(raw_seed, "random_seed"),
            strict_shapes=_parse_bool(payload.get("strict_shapes", False), "strict_shapes"),
            cache_dir=defaults.cache_dir
            if raw_cache_dir is None
            else Path(str(raw_cache_dir)).expanduser().resolve(),
            log_level=_parse_log_level(
                str(payload.get("log_level", defaults.log_level)), "log_level"
            ),
        )


def resolve_archive_path(archive_path: str | Path, config: ParamStoreConfig) -> Path:
    """Resolve an archive location, mapping bare file names under cache_dir.

    Args:
        archive_path: File name or path supplied by the caller.
        config: Runtime configuration.

    Returns:
        Absolute archive path.

    Raises:
        ParamStoreIOError: If the cache directory cannot be created.
    """
    candidate = Path(archive_path).expanduser()
    if candidate.is_absolute() or candidate.parent != Path("."):
        return candidate.resolve()
    try:
        config.cache_dir.mkdir(parents=True, exist_ok=True)
    except OSError as error:
        raise ParamStoreIOError(
            f"Failed to create cache directory {config.cache_dir}: {error}. "
            f"Set {ENV_CACHE_DIR} to a writable directory."
        ) from error
    return (config.cache_dir / candidate).resolve()


def _parse_device(raw_value: str, source: str) -> str:
    value = raw_value.strip().lower()
    device_type, _, index = value.partition(":")
    if device_type not in SUPPORTED_DEVICE_TYPES or (index and not index.isdigit()):
        raise ParamStoreConfigError(
            f"Invalid {source} value: expected one of {', '.join(SUPPORTED_DEVICE_TYPES)} "
            f"(optionally with ':<index>'), got '{raw_value}'."
        )
    if index and device_type == "auto":
        raise ParamStoreConfigError(
            f"Invalid {source} value: 'auto' does not take a device index, got '{raw_value}'."
        )
    return value


def _parse_log_level(raw_value: str, source: str) -> str:
    value = raw_value.strip().upper()
    if value not in SUPPORTED_LOG_LEVELS:
        raise ParamStoreConfigError(
            f"Invalid {source} value: expected one of {', '.join(SUPPORTED_LOG_LEVELS)}, "
            f"got '{raw_value}'."
        )
    return value


def _parse_random_seed(raw_value: object, source: str) -> int:
    """Parse a random seed value.

    Args:
        raw_value: Raw env string or YAML scalar.
        source: Variable or key name used in error messages.

    Returns:
        Parsed integer seed.

    Raises:
        ParamStoreConfigError: If value cannot be parsed into int.
    """
    if isinstance(raw_value, bool):
        raise ParamStoreConfigError(f"Invalid {source} value: expected integer, got boolean.")
    try:
        return int(cast(str, raw_value))
    except (TypeError, ValueError) as error:
        raise ParamStoreConfigError(
            f"Invalid {source} value: "
            f"expected integer, got '{raw_value}'. "
            f"Set {source} to a numeric value."
        ) from error


def _parse_bool(raw_value: object, source: str) -> bool:
    if isinstance(raw_value, bool):
        return raw_value
    normalized = str(raw_value).strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ParamStoreConfigError(
        f"Invalid {source} value: expected a boolean flag, got '{raw_value}'."
    )


def _load_yaml_mapping(config_path: str) -> Mapping[str, object]:
    try:
        import yaml  # type: ignore[import-untyped]
    except ImportError as error:  # pragma: no cover - dependency failure
        raise ParamStoreDependencyError(
            "YAML config support requires PyYAML. Install with 'pip install pyyaml'."
        ) from error
    config_file = Path(config_path).expanduser().resolve()
    if not config_file.exists():
        raise ParamStoreConfigError(
            f"Config file does not exist at {config_file}. Provide a valid YAML file path."
        )
    try:
        payload = cast(object, yaml.safe_load(config_file.read_text(encoding="utf-8")))
    except OSError as error:
        raise ParamStoreConfigError(
            f"Failed to read config at {config_file}: {error}. Check file permissions and retry."
        ) from error
    except yaml.YAMLError as error:
        raise ParamStoreConfigError(
            f"Failed to parse YAML config at {config_file}: {error}. Fix YAML syntax and retry."
        ) from error
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ParamStoreConfigError(
            f"Invalid config at {config_file}: expected a mapping at top level."
        )
    return cast(Mapping[str, object], payload)
