"""
Signing defaults for firmapdf.

Stores the default reason, location, contact info and placeholder
capacity in ~/.firmapdf/config.json (directory overridable with
``FIRMAPDF_CONFIG_DIR``).

Resolution priority: explicit argument > environment > config file >
built-in default.
"""

from __future__ import annotations

__all__ = [
    "SigningDefaults",
    "get_env_password",
    "get_signing_defaults",
    "reset_signing_defaults",
    "save_signing_defaults",
]

import logging
import os
from typing import TypedDict

from ..constants import (
    DEFAULT_LOCATION,
    DEFAULT_REASON,
    ENV_CONTACT,
    ENV_LOCATION,
    ENV_PASSWORD,
    ENV_REASON,
    MAX_CONTENTS_CAPACITY,
    MIN_CONTENTS_CAPACITY,
)
from ..errors import ConfigError
from ._storage import load_config, load_raw_config, save_config

_logger = logging.getLogger(__name__)


class SigningDefaults(TypedDict):
    reason: str
    location: str
    contact_info: str | None
    capacity: int | None  # None = derive from the certificate


def _env(name: str) -> str | None:
    value = os.environ.get(name, "").strip()
    return value or None


def get_signing_defaults(
    reason: str | None = None,
    location: str | None = None,
    contact_info: str | None = None,
    capacity: int | None = None,
) -> SigningDefaults:
    """
    Resolve the signing defaults.

    Each argument, when not None, wins over every other source.

    Returns:
        SigningDefaults with every key resolved.
    """
    config = load_config()
    return {
        "reason": (
            reason
            if reason is not None
            else _env(ENV_REASON) or config.get("reason") or DEFAULT_REASON
        ),
        "location": (
            location
            if location is not None
            else _env(ENV_LOCATION) or config.get("location") or DEFAULT_LOCATION
        ),
        "contact_info": (
            contact_info
            if contact_info is not None
            else _env(ENV_CONTACT) or config.get("contact_info")
        ),
        "capacity": capacity if capacity is not None else config.get("capacity"),
    }


def save_signing_defaults(
    reason: str | None = None,
    location: str | None = None,
    contact_info: str | None = None,
    capacity: int | None = None,
) -> None:
    """Merge the given defaults into the config file.

    Arguments left as None keep their saved value.

    Raises:
        ConfigError: If ``capacity`` is outside the accepted range.
    """
    if capacity is not None and (
        capacity % 2 or not MIN_CONTENTS_CAPACITY <= capacity <= MAX_CONTENTS_CAPACITY
    ):
        raise ConfigError(
            f"capacity must be an even number in [{MIN_CONTENTS_CAPACITY}, "
            f"{MAX_CONTENTS_CAPACITY}], got {capacity}"
        )
    config = load_raw_config()
    for key, value in (
        ("reason", reason),
        ("location", location),
        ("contact_info", contact_info),
        ("capacity", capacity),
    ):
        if value is not None:
            config[key] = value
    save_config(config)
    _logger.debug("Saved signing defaults: %s", sorted(config))


def reset_signing_defaults() -> None:
    """Remove every saved default."""
    save_config({})


def get_env_password() -> str | None:
    """Password for the key material from ``FIRMAPDF_PASSWORD``, if set."""
    # Not stripped: whitespace may be part of the password
    value = os.environ.get(ENV_PASSWORD)
    return value or None
