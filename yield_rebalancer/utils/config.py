"""Configuration management for Yield Rebalancer.

YAML configuration loading with dot-notation access, plus environment
overrides read through python-dotenv.
"""

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from yield_rebalancer.utils.exceptions import ConfigurationError

ROOT_DIR = Path(__file__).parent.parent.parent
DEFAULT_CONFIG_PATH = ROOT_DIR / "config" / "default.yaml"

# Environment variable -> (config key, converter)
ENV_OVERRIDES = {
    "MAX_FEE_PRICE": ("strategy.max_fee_price", float),
    "RISK_TOLERANCE": ("strategy.risk_tolerance", str),
    "REBALANCE_THRESHOLD": ("strategy.rebalance_threshold", float),
    "CONFIRMATION_TIMEOUT_MS": ("execution.confirmation_timeout_ms", int),
    "LOG_LEVEL": ("logging.level", str),
}


class Config:
    """Simple configuration loader and accessor.

    Example:
        >>> config = Config.from_file("config/default.yaml")
        >>> timeout = config.get("execution.confirmation_timeout_ms", 300000)
    """

    def __init__(self, config_dict: dict[str, Any]) -> None:
        self._config = config_dict

    @classmethod
    def from_file(cls, filepath: str | Path) -> "Config":
        """Load configuration from YAML file.

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If YAML parsing fails
        """
        path = Path(filepath)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {filepath}")

        with open(path, "r", encoding="utf-8") as f:
            config_dict = yaml.safe_load(f)

        return cls(config_dict or {})

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g. "strategy.max_fee_price")."""
        value = self._config

        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value using dot notation, creating sections as needed."""
        keys = key.split(".")
        section = self._config
        for k in keys[:-1]:
            if not isinstance(section.get(k), dict):
                section[k] = {}
            section = section[k]
        section[keys[-1]] = value

    def section(self, key: str) -> dict[str, Any]:
        """Get a nested section as a plain dict (empty if missing)."""
        value = self.get(key, {})
        if not isinstance(value, dict):
            raise ConfigurationError(f"Configuration key '{key}' is not a section")
        return dict(value)

    def __getitem__(self, key: str) -> Any:
        value = self.get(key)
        if value is None:
            raise KeyError(f"Configuration key not found: {key}")
        return value

    def to_dict(self) -> dict[str, Any]:
        return self._config.copy()


def load_config(filepath: Optional[str | Path] = None) -> Config:
    """Load the YAML configuration, defaulting to config/default.yaml."""
    return Config.from_file(filepath or DEFAULT_CONFIG_PATH)


def apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to a loaded config.

    Raises:
        ConfigurationError: If an override cannot be converted
    """
    for env_var, (key, convert) in ENV_OVERRIDES.items():
        raw = os.getenv(env_var)
        if raw is None or raw == "":
            continue
        try:
            config.set(key, convert(raw))
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid value for {env_var}: {raw!r} ({e})"
            ) from e
    return config


def load_rebalancer_config(
    config_file: Optional[str | Path] = None,
    env_file: Optional[str | Path] = None,
) -> Config:
    """Load YAML configuration and apply .env / environment overrides.

    The .env file is optional: it only carries policy overrides.

    Args:
        config_file: YAML file. Defaults to config/default.yaml.
        env_file: .env file. Defaults to <project root>/.env when present.

    Returns:
        Config with overrides applied

    Example:
        >>> config = load_rebalancer_config()
        >>> config.get("strategy.risk_tolerance")
        'moderate'
    """
    env_path = Path(env_file) if env_file else ROOT_DIR / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return apply_env_overrides(load_config(config_file))
