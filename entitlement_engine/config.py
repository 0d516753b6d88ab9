"""Configuration management - loads entitlement.yaml and environment variables."""

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from entitlement_engine.models import EngineConfig, MockBillingConfig, SubscriptionPlatform


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


# Environment variables that override values from the YAML file
ENV_OVERRIDES = {
    "REVENUECAT_MOBILE_API_KEY": "mobile_api_key",
    "REVENUECAT_WEB_API_KEY": "web_api_key",
    "ENTITLEMENT_PLATFORM": "platform",
}


class Config:
    """Application configuration loader and manager.

    Loads entitlement.yaml and provides validated access to:
    - Runtime platform and entitlement identifier
    - Billing SDK API keys
    - Persistence settings
    - Mock billing engine settings and catalog
    """

    def __init__(self, config_path: Optional[str] = None, raw_config: Optional[dict[str, Any]] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to entitlement.yaml. If not provided, uses ENTITLEMENT_CONFIG_PATH
                        env var or defaults to ./config/entitlement.yaml
            raw_config: Already-parsed configuration; skips reading a file
        """
        self._config_path = self._resolve_config_path(config_path)
        self._engine_config: Optional[EngineConfig] = None
        self._raw_config = raw_config
        self._load_config()

    @classmethod
    def from_dict(cls, raw_config: dict[str, Any]) -> "Config":
        """Build a configuration from a dictionary (tests, embedding)."""
        return cls(raw_config=raw_config)

    def _resolve_config_path(self, config_path: Optional[str]) -> Path:
        """Resolve configuration file path from argument, env var, or default."""
        if config_path:
            return Path(config_path)

        env_path = os.getenv("ENTITLEMENT_CONFIG_PATH")
        if env_path:
            return Path(env_path)

        return Path("config/entitlement.yaml")

    def _read_file(self) -> dict[str, Any]:
        if not self._config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {self._config_path}\n"
                f"Please create config/entitlement.yaml or set ENTITLEMENT_CONFIG_PATH environment variable"
            )
        try:
            with open(self._config_path, encoding="utf-8") as f:
                raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML configuration: {e}")

        if not raw_config:
            raise ConfigurationError(f"Configuration file is empty: {self._config_path}")
        return raw_config

    def _load_config(self) -> None:
        """Load, apply environment overrides and validate configuration."""
        raw_config = dict(self._raw_config) if self._raw_config is not None else self._read_file()

        for env_name, key in ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if value:
                raw_config[key] = value

        try:
            self._engine_config = EngineConfig(**raw_config)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}")

    @property
    def engine(self) -> EngineConfig:
        """Get validated engine configuration."""
        if self._engine_config is None:
            raise ConfigurationError("Configuration not loaded")
        return self._engine_config

    @property
    def config_path(self) -> Path:
        """Get path to configuration file."""
        return self._config_path

    @property
    def platform(self) -> SubscriptionPlatform:
        """Runtime platform (mobile-billing or web-billing)."""
        return self.engine.platform

    @property
    def entitlement_id(self) -> str:
        """Entitlement identifier that unlocks paid features."""
        return self.engine.entitlement_id

    @property
    def api_key(self) -> Optional[str]:
        """API key for the runtime platform's billing SDK."""
        if self.platform == SubscriptionPlatform.WEB:
            return self.engine.web_api_key
        return self.engine.mobile_api_key

    @property
    def use_mock(self) -> bool:
        """Whether the mock billing backend should serve this runtime.

        An explicit ``use_mock`` wins. Otherwise development builds without an
        API key for their platform fall back to the mock.
        """
        if self.engine.use_mock is not None:
            return self.engine.use_mock
        return self.engine.development and not self.api_key

    @property
    def mock_settings(self) -> MockBillingConfig:
        """Get mock billing engine settings."""
        return self.engine.mock

    @property
    def storage_key(self) -> str:
        """Key the persisted state is written under."""
        return self.engine.storage_key

    def reload(self) -> None:
        """Reload configuration from disk (or re-apply env overrides to the dict source)."""
        self._load_config()


# Global configuration instance
_config_instance: Optional[Config] = None


def get_config(config_path: Optional[str] = None) -> Config:
    """Get global configuration instance (singleton).

    Args:
        config_path: Optional path to configuration file (only used on first call)

    Returns:
        Config instance
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config(config_path)
    return _config_instance


def reload_config() -> None:
    """Reload global configuration from disk."""
    global _config_instance
    if _config_instance:
        _config_instance.reload()
    else:
        _config_instance = Config()


def reset_config() -> None:
    """Drop the global configuration instance (for testing)."""
    global _config_instance
    _config_instance = None
