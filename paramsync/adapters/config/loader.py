"""
Configuration loader with priority: CLI > env > TOML > defaults
"""
import os
import tomllib
from pathlib import Path
from typing import Dict, Any, Optional, Callable

from ...core.constants import ENV_PREFIX
from ...core.exceptions import ConfigError

# key -> converter applied to env values and checked for TOML values
_KEY_TYPES: Dict[str, Callable[[str], Any]] = {
    "host": str,
    "user": str,
    "port": int,
    "password": str,
    "timeout": float,
    "config_path": str,
    "monitor_interval": float,
    "retries": int,
    "retry_delay": float,
    "command_timeout": float,
}


class ConfigLoader:
    """Configuration loader with priority support"""

    def __init__(self, env_prefix: str = ENV_PREFIX):
        self._env_prefix = env_prefix

    def load_toml(self, path: Path) -> Dict[str, Any]:
        """Load TOML configuration file"""
        path = Path(path).expanduser()
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        try:
            data = tomllib.loads(path.read_text(encoding='utf-8'))
        except (tomllib.TOMLDecodeError, UnicodeDecodeError) as e:
            raise ConfigError(f"Failed to parse TOML configuration: {e}") from e

        # settings may live at top level or under [paramsync]
        section = data.get("paramsync", data)
        return {k: self._convert(k, v) for k, v in section.items() if k in _KEY_TYPES}

    def load_env(self) -> Dict[str, Any]:
        """Load configuration from PARAMSYNC_* environment variables"""
        config = {}
        for key in _KEY_TYPES:
            value = os.getenv(f"{self._env_prefix}{key.upper()}")
            if value:
                config[key] = self._convert(key, value)
        return config

    def _convert(self, key: str, value: Any) -> Any:
        """Convert a raw value to the type expected for key"""
        converter = _KEY_TYPES[key]
        try:
            return converter(value)
        except (TypeError, ValueError):
            raise ConfigError(f"Invalid value for {key}: {value!r}") from None

    def merge_configs(self, *configs: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge multiple configurations with priority.
        Later configs override earlier ones.
        """
        result = {}

        for config in configs:
            result = self._deep_merge(result, config)

        return result

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries; None values never override"""
        result = base.copy()

        for key, value in override.items():
            if value is None:
                continue
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def load(
        self,
        toml_path: Optional[Path] = None,
        cli_overrides: Optional[Dict[str, Any]] = None,
        use_env: bool = True,
    ) -> Dict[str, Any]:
        """
        Load configuration with priority: CLI > env > TOML

        Args:
            toml_path: Path to TOML configuration file
            cli_overrides: CLI parameter overrides (None values ignored)
            use_env: Whether to load from environment variables

        Returns:
            Merged configuration dictionary

        Raises:
            ConfigError: Missing/unparseable TOML file or invalid value
        """
        configs = []

        if toml_path:
            configs.append(self.load_toml(toml_path))

        if use_env:
            env_config = self.load_env()
            if env_config:
                configs.append(env_config)

        if cli_overrides:
            configs.append(cli_overrides)

        return self.merge_configs(*configs)
