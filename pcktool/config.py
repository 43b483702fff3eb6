"""
pcktool config: optional TOML file with tool defaults and extra variants.

Location: ``$PCKTOOL_CONFIG`` if set, else ``~/.pcktool/config.toml``.

Example:
    copy_chunk_size = 4194304
    log_level = "DEBUG"
    report_file = "pck-report.txt"

    [variants]
    "german(de).pck" = 68
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from pcktool import CONFIG_DIR, CONFIG_ENV_VAR, COPY_CHUNK_SIZE, REPORT_FILE

log = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    "copy_chunk_size": COPY_CHUNK_SIZE,
    "log_level": "INFO",
    "report_file": REPORT_FILE,
    "variants": {},  # extra filename suffix -> opaque region size
}


def default_config_path() -> Path:
    env = os.environ.get(CONFIG_ENV_VAR, "")
    if env:
        return Path(env)
    return Path.home() / CONFIG_DIR / "config.toml"


def _validate(config: dict[str, Any]) -> dict[str, Any]:
    """Drop values of the wrong shape, keeping the defaults in their place."""
    chunk = config.get("copy_chunk_size")
    if not isinstance(chunk, int) or isinstance(chunk, bool) or chunk <= 0:
        log.warning("Ignoring invalid copy_chunk_size %r", chunk)
        config["copy_chunk_size"] = DEFAULT_CONFIG["copy_chunk_size"]

    level = config.get("log_level")
    if not isinstance(level, str) or not isinstance(logging.getLevelName(level.upper()), int):
        log.warning("Ignoring invalid log_level %r", level)
        config["log_level"] = DEFAULT_CONFIG["log_level"]

    if not isinstance(config.get("report_file"), str) or not config["report_file"]:
        config["report_file"] = DEFAULT_CONFIG["report_file"]

    variants = config.get("variants")
    clean: dict[str, int] = {}
    if isinstance(variants, dict):
        for suffix, size in variants.items():
            if isinstance(size, int) and not isinstance(size, bool) and size >= 0:
                clean[str(suffix).lower()] = size
            else:
                log.warning("Ignoring variant %r: opaque size must be a non-negative integer", suffix)
    config["variants"] = clean
    return config


def load_config(config_path: Path | None = None) -> dict[str, Any]:
    """Load tool config from a TOML file, falling back to defaults."""
    config = dict(DEFAULT_CONFIG)
    config["variants"] = {}

    path = config_path or default_config_path()
    if path.is_file():
        try:
            import tomllib
        except ImportError:
            try:
                import tomli as tomllib
            except ImportError:
                log.warning("tomllib/tomli not available, using default config")
                return config

        try:
            with open(path, "rb") as f:
                file_config = tomllib.load(f)
            config.update(file_config)
        except Exception as e:
            log.warning("Failed to load config from %s: %s", path, e)

    return _validate(config)
