"""
Low-level config file I/O for firmapdf.

Handles reading, writing, and validating the on-disk config.json that
holds persisted signing defaults.
"""

from __future__ import annotations

__all__ = [
    "CONFIG_DIR",
    "CONFIG_FILE",
    "ConfigDict",
    "load_config",
    "load_raw_config",
    "save_config",
]

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, TypedDict, cast

from ..constants import ENV_CONFIG_DIR, MAX_CONTENTS_CAPACITY, MIN_CONTENTS_CAPACITY

_logger = logging.getLogger(__name__)


def _default_config_dir() -> Path:
    override = os.environ.get(ENV_CONFIG_DIR, "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / ".firmapdf"


CONFIG_DIR = _default_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.json"

_STR_KEYS = ("reason", "location", "contact_info")


class ConfigDict(TypedDict, total=False):
    """Type definition for the config file structure."""

    reason: str
    location: str
    contact_info: str
    capacity: int


def load_raw_config() -> dict[str, object]:
    """Load raw config dict from disk, preserving all keys.

    Used for merge-and-save operations to preserve unknown keys
    (forward-compatibility with newer config versions).
    """
    try:
        data: Any = json.loads(CONFIG_FILE.read_text(encoding="utf-8"))
        if isinstance(data, dict):
            return cast("dict[str, object]", data)
        _logger.warning("Config file is not a JSON object, ignoring")
    except FileNotFoundError:
        pass
    except json.JSONDecodeError as e:
        _logger.warning("Config file corrupted, ignoring: %s", e)
    except OSError as e:
        _logger.warning("Cannot read config file: %s", e)
    return {}


def _validate_config_dict(data: dict[str, object]) -> ConfigDict:
    """Validate and return config dict, picking only known keys with correct types."""
    result: ConfigDict = {}
    for key, val in data.items():
        if key in _STR_KEYS:
            if isinstance(val, str):
                result[key] = val  # type: ignore[literal-required]  # dynamic key from known set
            else:
                _logger.warning("Config %s must be a string, ignoring %r", key, val)
        elif key == "capacity":
            if (
                isinstance(val, int)
                and not isinstance(val, bool)
                and MIN_CONTENTS_CAPACITY <= val <= MAX_CONTENTS_CAPACITY
                and val % 2 == 0
            ):
                result["capacity"] = val
            else:
                _logger.warning(
                    "Config capacity=%r must be an even integer in [%d, %d], ignoring",
                    val,
                    MIN_CONTENTS_CAPACITY,
                    MAX_CONTENTS_CAPACITY,
                )
        else:
            _logger.warning("Unknown config key %r, ignoring", key)
    return result


def load_config() -> ConfigDict:
    """Load config from disk, returning only known typed keys."""
    return _validate_config_dict(load_raw_config())


def save_config(config: dict[str, object]) -> None:
    """Save config to disk with restricted permissions (0600).

    Uses atomic write (temp file + rename) to prevent corruption
    if the process is interrupted mid-write.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True, mode=0o700)
    # Enforce directory permissions even if the directory already existed
    if os.name != "nt":
        try:
            CONFIG_DIR.chmod(0o700)
        except OSError:
            _logger.warning("Failed to set restrictive permissions on %s", CONFIG_DIR)
    content = json.dumps(config, indent=2, ensure_ascii=False) + "\n"
    fd, tmp_path = tempfile.mkstemp(dir=CONFIG_DIR, suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        fd = -1  # closed by the context manager
        if os.name != "nt":
            try:
                tmp.chmod(0o600)
            except OSError:
                _logger.warning("Failed to set restrictive permissions on %s", tmp)
        tmp.replace(CONFIG_FILE)  # atomic on POSIX
    except BaseException:
        if fd >= 0:
            os.close(fd)
        tmp.unlink(missing_ok=True)
        raise
