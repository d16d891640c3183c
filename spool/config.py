"""
spool.config
AUTHOR: carter-vin

Spool writer configuration

Options:
- base_folder_path: required, no default
- retain_hours: default 8, clamped to [0, 8760]; 0 disables purge
- file_size_limit: default 16 MiB, floor 1024 bytes
- deterministic: protobuf serializer option for span records

Environment (config_from_env):
- OTEL_SPOOL_DIR
- OTEL_SPOOL_RETAIN_HOURS
- OTEL_SPOOL_FILE_SIZE_LIMIT
- OTEL_SPOOL_DETERMINISTIC ("1"/"true"/"yes")
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from spool.errors import ConfigError

SPOOL_VERSION = "0.1.0"

MAX_RETAIN_HOURS = 24 * 365  # 1 year
DEFAULT_RETAIN_HOURS = 8
DEFAULT_FILE_SIZE_LIMIT = 16 * 1024 * 1024
MIN_FILE_SIZE_LIMIT = 1024

ENV_DIR = "OTEL_SPOOL_DIR"
ENV_RETAIN_HOURS = "OTEL_SPOOL_RETAIN_HOURS"
ENV_FILE_SIZE_LIMIT = "OTEL_SPOOL_FILE_SIZE_LIMIT"
ENV_DETERMINISTIC = "OTEL_SPOOL_DETERMINISTIC"


@dataclass(frozen=True)
class SpoolConfig:
    """
    Immutable writer configuration.

    Build with build_config() so clamping is applied.
    """

    base_folder_path: Path
    retain_hours: int = DEFAULT_RETAIN_HOURS
    file_size_limit: int = DEFAULT_FILE_SIZE_LIMIT
    deterministic: bool = False


def clamp_retain_hours(retain_hours: int) -> int:
    if retain_hours < 0:
        return 0
    if retain_hours > MAX_RETAIN_HOURS:
        return MAX_RETAIN_HOURS
    return retain_hours


def clamp_file_size_limit(file_size_limit: int) -> int:
    return max(MIN_FILE_SIZE_LIMIT, file_size_limit)


def build_config(
    base_folder_path: str | Path | None,
    *,
    retain_hours: int = DEFAULT_RETAIN_HOURS,
    file_size_limit: int = DEFAULT_FILE_SIZE_LIMIT,
    deterministic: bool = False,
) -> SpoolConfig:
    """
    Validate and clamp writer options

    Failure semantics:
    - raises ConfigError when base_folder_path is missing or empty
    """
    if base_folder_path is None or not str(base_folder_path).strip():
        raise ConfigError("base folder path is required")

    return SpoolConfig(
        base_folder_path=Path(base_folder_path),
        retain_hours=clamp_retain_hours(int(retain_hours)),
        file_size_limit=clamp_file_size_limit(int(file_size_limit)),
        deterministic=bool(deterministic),
    )


def _env_int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from e


def config_from_env(environ: Mapping[str, str] | None = None) -> SpoolConfig:
    """
    Build a SpoolConfig from OTEL_SPOOL_* environment variables
    """
    if environ is None:
        environ = os.environ

    deterministic = environ.get(ENV_DETERMINISTIC, "").strip().lower() in {"1", "true", "yes"}

    return build_config(
        environ.get(ENV_DIR),
        retain_hours=_env_int(environ, ENV_RETAIN_HOURS, DEFAULT_RETAIN_HOURS),
        file_size_limit=_env_int(environ, ENV_FILE_SIZE_LIMIT, DEFAULT_FILE_SIZE_LIMIT),
        deterministic=deterministic,
    )
