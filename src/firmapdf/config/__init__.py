"""
Configuration management.

Persisted signing defaults and their environment overrides. Import from
this package rather than from the submodules.
"""

from __future__ import annotations

from ._storage import CONFIG_DIR, CONFIG_FILE, load_config, save_config
from .config import (
    SigningDefaults,
    get_env_password,
    get_signing_defaults,
    reset_signing_defaults,
    save_signing_defaults,
)

__all__ = [
    "CONFIG_DIR",
    "CONFIG_FILE",
    "SigningDefaults",
    "get_env_password",
    "get_signing_defaults",
    "load_config",
    "reset_signing_defaults",
    "save_config",
    "save_signing_defaults",
]
