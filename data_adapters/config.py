"""
Data Adapters - Configuration.

============================================================
CONFIGURABLE REGISTRY AND ADAPTERS
============================================================

Configuration can be loaded from:
- Default values
- Environment variables (a .env file is honoured)
- YAML config file

Environment variables:
- DATA_ADAPTERS_HEALTH_CHECK_INTERVAL    (seconds)
- DATA_ADAPTERS_AUTO_HEALTH_CHECK        (true/false)
- DATA_ADAPTERS_HEALTH_CHECK_TIMEOUT     (seconds)
- DATA_ADAPTERS_DEGRADED_AS_LAST_RESORT  (true/false)
- DATA_ADAPTERS_FALLBACK_CHAIN           (comma separated names)
- DATA_ADAPTERS_<NAME>_<FIELD>           per adapter, e.g.
  DATA_ADAPTERS_SEC_EDGAR_TOKENS_PER_SECOND=5
  DATA_ADAPTERS_OPENBB_ENABLED=true

============================================================
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv


logger = logging.getLogger(__name__)

ENV_PREFIX = "DATA_ADAPTERS_"
DEFAULT_ADAPTERS = ("yahoo-finance", "stooq", "sec-edgar", "openbb")

# Need external setup, so off unless enabled explicitly
OPTIONAL_ADAPTERS = ("openbb",)
_TRUE_VALUES = {"1", "true", "yes", "on"}


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE_VALUES


def _env_key(adapter_name: str, field_name: str) -> str:
    return f"{ENV_PREFIX}{adapter_name.upper().replace('-', '_')}_{field_name.upper()}"


# =============================================================
# PER-ADAPTER SETTINGS
# =============================================================


@dataclass
class AdapterSettings:
    """
    Settings for one adapter.

    None means "use the adapter's own default".
    """
    enabled: bool = True
    tokens_per_second: Optional[float] = None
    cache_ttl: Optional[float] = None
    timeout: Optional[float] = None
    base_url: Optional[str] = None
    api_key: Optional[str] = None

    def __post_init__(self) -> None:
        if self.tokens_per_second is not None and self.tokens_per_second <= 0:
            raise ValueError("tokens_per_second must be positive")
        if self.cache_ttl is not None and self.cache_ttl <= 0:
            raise ValueError("cache_ttl must be positive")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AdapterSettings":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown adapter settings: {sorted(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_env(cls, adapter_name: str, defaults: Optional["AdapterSettings"] = None) -> "AdapterSettings":
        """Overlay DATA_ADAPTERS_<NAME>_<FIELD> variables on defaults."""
        base = defaults or cls()
        values = base.to_dict(include_secrets=True)

        if os.getenv(_env_key(adapter_name, "enabled")):
            values["enabled"] = _parse_bool(os.getenv(_env_key(adapter_name, "enabled")))
        for name in ("tokens_per_second", "cache_ttl", "timeout"):
            raw = os.getenv(_env_key(adapter_name, name))
            if raw:
                values[name] = float(raw)
        for name in ("base_url", "api_key"):
            raw = os.getenv(_env_key(adapter_name, name))
            if raw:
                values[name] = raw

        return cls(**values)

    def to_dict(self, include_secrets: bool = False) -> dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        if not include_secrets and data["api_key"]:
            data["api_key"] = "***"
        return data


# =============================================================
# MAIN CONFIGURATION
# =============================================================


@dataclass
class RegistryConfig:
    """
    Main configuration for the adapter registry.

    Durations are in seconds.
    """
    health_check_interval: float = 60.0
    auto_health_check: bool = True
    health_check_timeout: float = 5.0
    degraded_as_last_resort: bool = False
    fallback_chain: list[str] = field(default_factory=list)
    adapters: dict[str, AdapterSettings] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.health_check_interval <= 0:
            raise ValueError("health_check_interval must be positive")
        if self.health_check_timeout <= 0:
            raise ValueError("health_check_timeout must be positive")
        if len(set(self.fallback_chain)) != len(self.fallback_chain):
            raise ValueError("fallback_chain must not contain duplicates")

    def adapter(self, name: str) -> AdapterSettings:
        """Settings for an adapter, defaulting when not configured."""
        return self.adapters.get(name, AdapterSettings())

    @classmethod
    def from_env(
        cls,
        adapter_names: tuple[str, ...] = DEFAULT_ADAPTERS,
        dotenv_path: Optional[Path] = None,
    ) -> "RegistryConfig":
        """Load configuration from environment variables."""
        load_dotenv(dotenv_path)
        config = cls()

        if os.getenv(f"{ENV_PREFIX}HEALTH_CHECK_INTERVAL"):
            config.health_check_interval = float(os.getenv(f"{ENV_PREFIX}HEALTH_CHECK_INTERVAL"))
        if os.getenv(f"{ENV_PREFIX}AUTO_HEALTH_CHECK"):
            config.auto_health_check = _parse_bool(os.getenv(f"{ENV_PREFIX}AUTO_HEALTH_CHECK"))
        if os.getenv(f"{ENV_PREFIX}HEALTH_CHECK_TIMEOUT"):
            config.health_check_timeout = float(os.getenv(f"{ENV_PREFIX}HEALTH_CHECK_TIMEOUT"))
        if os.getenv(f"{ENV_PREFIX}DEGRADED_AS_LAST_RESORT"):
            config.degraded_as_last_resort = _parse_bool(os.getenv(f"{ENV_PREFIX}DEGRADED_AS_LAST_RESORT"))
        if os.getenv(f"{ENV_PREFIX}FALLBACK_CHAIN"):
            config.fallback_chain = [
                name.strip()
                for name in os.getenv(f"{ENV_PREFIX}FALLBACK_CHAIN").split(",")
                if name.strip()
            ]

        for name in adapter_names:
            defaults = AdapterSettings(enabled=False) if name in OPTIONAL_ADAPTERS else None
            config.adapters[name] = AdapterSettings.from_env(name, defaults)

        # Re-run validation on the loaded values
        config.__post_init__()
        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "RegistryConfig":
        """
        Load configuration from a YAML file.

        Example:
            registry:
              health_check_interval: 30
              fallback_chain: [openbb, yahoo-finance, stooq]
            adapters:
              sec-edgar:
                tokens_per_second: 5
        """
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}

            registry = data.get("registry", {})
            adapters = {
                name: AdapterSettings.from_dict(settings or {})
                for name, settings in (data.get("adapters") or {}).items()
            }

            return cls(
                health_check_interval=float(registry.get("health_check_interval", 60.0)),
                auto_health_check=bool(registry.get("auto_health_check", True)),
                health_check_timeout=float(registry.get("health_check_timeout", 5.0)),
                degraded_as_last_resort=bool(registry.get("degraded_as_last_resort", False)),
                fallback_chain=list(registry.get("fallback_chain") or []),
                adapters=adapters,
            )

        except Exception as e:
            logger.warning(f"Failed to load YAML config from {path}: {e}")
            return cls()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (API keys masked)."""
        return {
            "health_check_interval": self.health_check_interval,
            "auto_health_check": self.auto_health_check,
            "health_check_timeout": self.health_check_timeout,
            "degraded_as_last_resort": self.degraded_as_last_resort,
            "fallback_chain": list(self.fallback_chain),
            "adapters": {name: s.to_dict() for name, s in self.adapters.items()},
        }


# =============================================================
# GLOBAL CONFIG SINGLETON
# =============================================================


_default_config: Optional[RegistryConfig] = None


def get_config() -> RegistryConfig:
    """Get the global registry configuration."""
    global _default_config
    if _default_config is None:
        _default_config = RegistryConfig.from_env()
    return _default_config


def set_config(config: RegistryConfig) -> None:
    """Set the global registry configuration."""
    global _default_config
    _default_config = config
