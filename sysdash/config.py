"""Runtime settings for sysdash.

There is no config file. Settings are layered:
CLI flags → SYSDASH_* environment variables → DEFAULT_SETTINGS.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, NoReturn

DEFAULT_SETTINGS: dict[str, Any] = {
    "refresh_interval": 3.0,
    "input_timeout": 3.0,
    "command_timeout": 5.0,
    "vendor_timeout": 3.0,
    "poll_interval": 0.1,
    "foreground": False,
    "log_file": None,
    "log_level": "WARNING",
}

ENV_PREFIX = "SYSDASH_"
_POSITIVE = ("refresh_interval", "input_timeout", "command_timeout", "vendor_timeout", "poll_interval")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
_TRUE = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    refresh_interval: float = 3.0
    input_timeout: float = 3.0
    command_timeout: float = 5.0
    vendor_timeout: float = 3.0
    poll_interval: float = 0.1
    foreground: bool = False
    log_file: Path | None = None
    log_level: str = "WARNING"


def _fail(message: str) -> NoReturn:
    print(f"sysdash: {message}", file=sys.stderr)
    raise SystemExit(1)


def _coerce(key: str, value: Any) -> Any:
    if key in _POSITIVE:
        try:
            number = float(value)
        except (TypeError, ValueError):
            _fail(f"{key} must be a number, got {value!r}")
        if number <= 0:
            _fail(f"{key} must be positive, got {value!r}")
        return number
    if key == "foreground":
        if isinstance(value, str):
            return value.strip().lower() in _TRUE
        return bool(value)
    if key == "log_file":
        return Path(value) if value else None
    if key == "log_level":
        level = str(value).upper()
        if level not in _LOG_LEVELS:
            _fail(f"log_level must be one of {', '.join(_LOG_LEVELS)}, got {value!r}")
        return level
    return value


def _from_env(environ: Mapping[str, str]) -> dict[str, Any]:
    found: dict[str, Any] = {}
    for key in DEFAULT_SETTINGS:
        raw = environ.get(ENV_PREFIX + key.upper())
        if raw is not None and raw != "":
            found[key] = raw
    return found


def load_settings(
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Build Settings from defaults, environment and CLI overrides.

    Args:
        overrides: Values from the command line; ``None`` entries are ignored.
        environ: Environment mapping (defaults to ``os.environ``).

    Raises:
        SystemExit: If any value is invalid.
    """
    merged = dict(DEFAULT_SETTINGS)
    merged.update(_from_env(os.environ if environ is None else environ))
    for key, value in (overrides or {}).items():
        if value is not None:
            merged[key] = value

    known = {f.name for f in fields(Settings)}
    return Settings(**{k: _coerce(k, v) for k, v in merged.items() if k in known})
