"""Configuration loaded from environment variables or a YAML file.

All settings have sensible defaults. Override via AUTOREFRESH_* env vars,
a YAML file (see load_yaml_config), or CLI flags, in increasing priority.

Example YAML:
    autorefresh:
      path: /_autorefresh
      refresh_rate: 500
      keepalive_interval: 2.0

    server:
      host: 127.0.0.1
      port: 8000
      root: ./site
      inject: true
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path

import yaml

from .errors import InvalidParametersError

logger = logging.getLogger(__name__)

DEFAULT_PATH = "/_autorefresh"
DEFAULT_REFRESH_RATE = 500
# Lower bound for refresh_rate, in milliseconds.
MIN_REFRESH_RATE = 100
# Seconds between endpoint keepalive pings.
KEEPALIVE_INTERVAL = 2.0

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def validate_refresh_rate(refresh_rate: int) -> None:
    """Raise InvalidParametersError unless *refresh_rate* is an int >= 100ms."""
    if not isinstance(refresh_rate, int) or isinstance(refresh_rate, bool):
        raise InvalidParametersError(f"refresh_rate must be an integer, got {refresh_rate!r}")
    if refresh_rate < MIN_REFRESH_RATE:
        raise InvalidParametersError(f"refresh_rate must be at least {MIN_REFRESH_RATE}ms")


@dataclass
class AutorefreshConfig:
    """Reloader and dev server configuration."""

    path: str = DEFAULT_PATH
    # Agent retry interval in milliseconds.
    refresh_rate: int = DEFAULT_REFRESH_RATE
    keepalive_interval: float = KEEPALIVE_INTERVAL

    # Dev server
    host: str = "127.0.0.1"
    port: int = 8000
    root: str = "."
    inject: bool = True

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> AutorefreshConfig:
        """Load configuration from AUTOREFRESH_* environment variables."""
        overrides = {
            k: v for k, v in os.environ.items() if k.startswith("AUTOREFRESH_")
        }
        if overrides:
            logger.info(
                "AutorefreshConfig.from_env: env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(overrides.items())),
            )
        else:
            logger.debug("AutorefreshConfig.from_env: no AUTOREFRESH_* env vars set, using defaults")

        return cls(
            path=os.getenv("AUTOREFRESH_PATH", cls.path),
            refresh_rate=int(os.getenv(
                "AUTOREFRESH_REFRESH_RATE", str(cls.refresh_rate)
            )),
            keepalive_interval=float(os.getenv(
                "AUTOREFRESH_KEEPALIVE_INTERVAL", str(cls.keepalive_interval)
            )),
            host=os.getenv("AUTOREFRESH_HOST", cls.host),
            port=int(os.getenv("AUTOREFRESH_PORT", str(cls.port))),
            root=os.getenv("AUTOREFRESH_ROOT", cls.root),
            inject=os.getenv("AUTOREFRESH_INJECT", "1").lower() in _TRUE,
            log_level=os.getenv("AUTOREFRESH_LOG_LEVEL", cls.log_level),
        )


def load_yaml_config(
    path: str | Path, base: AutorefreshConfig | None = None,
) -> AutorefreshConfig:
    """Load a YAML config file on top of *base* (env defaults if omitted).

    Reads the ``autorefresh`` and ``server`` sections; a top-level
    ``log_level`` is honoured too. Unknown keys are logged and ignored.
    Values are coerced to the field's type; values that cannot be, and
    sections that are not mappings, raise InvalidParametersError.
    """
    path = Path(path)
    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error("load_yaml_config: config file not found at %s", path.absolute())
        raise
    except yaml.YAMLError as exc:
        logger.error("load_yaml_config: YAML parse error in %s: %s", path, exc)
        raise

    if not isinstance(raw, dict):
        logger.error("load_yaml_config: %s must contain a mapping, got %s", path, type(raw).__name__)
        raise InvalidParametersError(f"{path.name} must contain a mapping")

    config = base if base is not None else AutorefreshConfig.from_env()
    types = {f.name: f.type for f in fields(AutorefreshConfig)}
    values: dict = {}
    for section in ("autorefresh", "server"):
        entries = raw.get(section) or {}
        if not isinstance(entries, dict):
            logger.error("load_yaml_config: section %s in %s is not a mapping", section, path)
            raise InvalidParametersError(f"section {section!r} must be a mapping")
        for key, value in entries.items():
            if key not in types:
                logger.warning("load_yaml_config: ignoring unknown key %s.%s", section, key)
                continue
            values[key] = value
    if "log_level" in raw:
        values["log_level"] = raw["log_level"]

    for key, value in values.items():
        setattr(config, key, _coerce(key, types[key], value))
    logger.info(
        "Loaded config %s: path=%s refresh_rate=%s keepalive=%s",
        path.name, config.path, config.refresh_rate, config.keepalive_interval,
    )
    return config


def _coerce(key: str, type_name: str, value):
    """Convert a YAML value to the dataclass field type named *type_name*."""
    # Field types are strings under postponed annotations.
    try:
        if type_name == "bool":
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            raise ValueError(f"not a boolean: {value!r}")
        if type_name == "int":
            if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
                raise ValueError(f"not an integer: {value!r}")
            return int(value)
        if type_name == "float":
            if isinstance(value, bool):
                raise ValueError(f"not a number: {value!r}")
            return float(value)
        if isinstance(value, (dict, list)):
            raise ValueError(f"not a string: {value!r}")
        return str(value)
    except (TypeError, ValueError) as exc:
        logger.error("load_yaml_config: invalid value for %s: %s", key, exc)
        raise InvalidParametersError(f"{key}: {exc}") from exc
