"""
Service configuration.

Configuration arrives as a flat mapping (usually a JSON file). Values may be
strings, so numbers are coerced and "yes"/"no" style flags are accepted for
booleans. Bad values fall back to the default with a warning.
"""

import json
import logging
import os
from dataclasses import dataclass

from .BLEReassembly import MAX_BUFFER_SIZE
from .display import DEFAULT_WRAP_WIDTH
from .text_store import DEFAULT_TEXT

logger = logging.getLogger(__name__)

DEVICE_NAME = "badge2-text"
SERVICE_UUID = "12345678-1234-5678-1234-56789abcdef0"
CHAR_UUID = "12345678-1234-5678-1234-56789abcdef1"


class ConfigError(Exception):
    pass


def _as_bool(value, default):
    if isinstance(value, str):
        return value.strip().lower() in ["yes", "true", "1", "on"]
    if value is None:
        return default
    return bool(value)


def _as_number(c, key, default, cast, minimum):
    raw = c.get(key, default)
    try:
        value = cast(raw)
    except (TypeError, ValueError):
        logger.warning(f"Invalid {key} '{raw}', using {default}")
        return default
    if value < minimum:
        logger.warning(f"{key} {value} below minimum {minimum}, using {default}")
        return default
    return value


@dataclass
class BadgeTextConfig:
    device_name: str = DEVICE_NAME
    service_uuid: str = SERVICE_UUID
    char_uuid: str = CHAR_UUID
    listen_timeout: float = 2.0
    max_buffer_size: int = MAX_BUFFER_SIZE
    store_path: str = "~/.badgetext/text.json"
    default_text: str = DEFAULT_TEXT
    qr_base_url: str = "https://badge2.local/update"
    wrap_width: int = DEFAULT_WRAP_WIDTH
    retry_delay: float = 1.0
    idle_disconnect_timeout: float = 30.0
    enable_pairing_agent: bool = False

    @classmethod
    def from_dict(cls, c):
        """
        Build a configuration from a mapping, ignoring unknown keys.

        Args:
            c: Mapping of option name to value

        Returns:
            BadgeTextConfig with defaults for anything missing or invalid
        """
        d = cls()
        return cls(
            device_name=str(c.get("device_name", d.device_name)),
            service_uuid=str(c.get("service_uuid", d.service_uuid)).lower(),
            char_uuid=str(c.get("char_uuid", d.char_uuid)).lower(),
            listen_timeout=_as_number(c, "listen_timeout", d.listen_timeout, float, 0.01),
            max_buffer_size=_as_number(c, "max_buffer_size", d.max_buffer_size, int, 1),
            store_path=os.path.expanduser(str(c.get("store_path", d.store_path))),
            default_text=str(c.get("default_text", d.default_text)),
            qr_base_url=str(c.get("qr_base_url", d.qr_base_url)),
            wrap_width=_as_number(c, "wrap_width", d.wrap_width, int, 1),
            retry_delay=_as_number(c, "retry_delay", d.retry_delay, float, 0.0),
            idle_disconnect_timeout=_as_number(
                c, "idle_disconnect_timeout", d.idle_disconnect_timeout, float, 0.0
            ),
            enable_pairing_agent=_as_bool(c.get("enable_pairing_agent"), d.enable_pairing_agent),
        )


def load_config(path=None) -> BadgeTextConfig:
    """
    Load configuration from a JSON file.

    A missing file (or no path) yields the defaults.

    Raises:
        ConfigError: if the file exists but is not a readable JSON object
    """
    if path is None or not os.path.exists(os.path.expanduser(str(path))):
        return BadgeTextConfig.from_dict({})

    try:
        with open(os.path.expanduser(str(path)), "r", encoding="utf-8") as f:
            c = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigError(f"cannot read config {path}: {e}") from e

    if not isinstance(c, dict):
        raise ConfigError(f"config {path} must contain a JSON object")

    return BadgeTextConfig.from_dict(c)
