"""Configuration loader for the DashStream API client

Each setting is looked up in this order:
1. ``DASHSTREAM_<NAME>`` environment variable
2. ``<NAME>`` environment variable
3. The same two names in the .env file (``DASHSTREAM_ENV_FILE``, default ``./.env``)
4. The hardcoded default

Values are parsed by the type of the default. Numeric settings may carry
bounds; an out-of-range value is rejected in favour of the default.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from dotenv import dotenv_values

logger = logging.getLogger(__name__)

ENV_PREFIX = "DASHSTREAM_"
ENV_FILE_VARIABLE = f"{ENV_PREFIX}ENV_FILE"

Number = Union[int, float]

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")


class ConfigLoader:
    """Resolves typed settings from the environment and a .env file"""

    def __init__(self, env_path: Optional[str] = None, prefix: str = ENV_PREFIX):
        """
        Args:
            env_path: Path to the .env file (default: ``DASHSTREAM_ENV_FILE`` or ``./.env``)
            prefix: Prefix of the namespaced variable checked before the bare name
        """
        self.prefix = prefix
        self.env_path = Path(env_path or os.getenv(ENV_FILE_VARIABLE) or ".env")
        self._file_values = self._read_env_file()

    def _read_env_file(self) -> Dict[str, str]:
        # Read into a private mapping; the process environment is left untouched
        if not self.env_path.exists():
            logger.debug(f".env file not found at {self.env_path}, using environment variables and defaults only")
            return {}
        values = {k: v for k, v in dotenv_values(self.env_path).items() if v is not None}
        logger.debug(f"Loaded {len(values)} settings from {self.env_path}")
        return values

    def _lookup(self, name: str) -> Optional[str]:
        for key in (f"{self.prefix}{name}", name):
            value = os.getenv(key)
            if value is not None:
                return value
        for key in (f"{self.prefix}{name}", name):
            if key in self._file_values:
                return self._file_values[key]
        return None

    def get(
        self,
        name: str,
        default: Any,
        minimum: Optional[Number] = None,
        maximum: Optional[Number] = None,
    ) -> Any:
        """Get a configuration value

        Args:
            name: Setting name, without the prefix
            default: Value used when the setting is unset or invalid; its
                type decides how the raw string is parsed
            minimum: Smallest accepted value for numeric settings
            maximum: Largest accepted value for numeric settings

        Returns:
            The parsed value, or ``default``
        """
        raw = self._lookup(name)
        if raw is None:
            if isinstance(default, str) and default.startswith("~/"):
                return str(Path(default).expanduser())
            return default

        if isinstance(default, bool):
            return self._parse_bool(name, raw, default)
        if isinstance(default, (int, float)):
            return self._parse_number(name, raw, default, minimum, maximum)
        if isinstance(default, str) and raw.startswith("~/"):
            return str(Path(raw).expanduser())
        return raw

    @staticmethod
    def _parse_bool(name: str, raw: str, default: bool) -> bool:
        lowered = raw.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        logger.warning(f"Failed to parse {name}={raw} as bool, using default: {default}")
        return default

    @staticmethod
    def _parse_number(
        name: str,
        raw: str,
        default: Number,
        minimum: Optional[Number],
        maximum: Optional[Number],
    ) -> Number:
        kind = int if isinstance(default, int) else float
        try:
            value = kind(raw)
        except ValueError:
            logger.warning(f"Failed to parse {name}={raw} as {kind.__name__}, using default: {default}")
            return default

        if minimum is not None and value < minimum:
            logger.warning(f"{name}={value} is below the minimum {minimum}, using default: {default}")
            return default
        if maximum is not None and value > maximum:
            logger.warning(f"{name}={value} is above the maximum {maximum}, using default: {default}")
            return default
        return value


_config_loader = None


def get_config_loader() -> ConfigLoader:
    """Get or create the global ConfigLoader instance"""
    global _config_loader
    if _config_loader is None:
        _config_loader = ConfigLoader()
    return _config_loader
