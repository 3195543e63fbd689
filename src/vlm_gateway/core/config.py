"""
Configuration loading for the VLM gateway.
"""

import os
import logging
from typing import Dict, Any, Optional
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)


@dataclass
class ProviderConfig:
    """Configuration for a single provider adapter."""
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    enabled: bool = True
    default_model: Optional[str] = None
    timeout: float = 60.0


@dataclass
class RetryConfig:
    """Retry policy applied by the gateway to buffered sends."""
    max_retries: int = 3
    backoff_ms: int = 1000
    backoff_multiplier: float = 2.0

    def delay_ms(self, attempt: int) -> float:
        """Backoff before the retry following ``attempt`` (0-based)."""
        return self.backoff_ms * (self.backoff_multiplier ** attempt)


@dataclass
class GatewayConfig:
    """Complete gateway configuration."""
    providers: Dict[str, ProviderConfig] = field(default_factory=dict)
    default_provider: str = "anthropic"
    debug: bool = False
    retry: RetryConfig = field(default_factory=RetryConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GatewayConfig":
        """Build configuration from a parsed mapping."""
        return _parse_config(data)

    def provider(self, provider_id: str) -> ProviderConfig:
        """Configuration for a provider, or defaults if absent."""
        return self.providers.get(provider_id) or ProviderConfig()


def load_config(config_path: Optional[str] = None) -> GatewayConfig:
    """
    Load gateway configuration from YAML file.

    Args:
        config_path: Path to config file. If None, uses default location.

    Returns:
        Loaded configuration
    """
    if config_path is None:
        # Try common locations
        paths = [
            Path("config/vlm-gateway/gateway.yaml"),
            Path("/etc/vlm-gateway/gateway.yaml"),
            Path.home() / ".config/vlm-gateway/gateway.yaml",
        ]
        for p in paths:
            if p.exists():
                config_path = str(p)
                break

    if config_path is None or not Path(config_path).exists():
        logger.warning("No gateway config file found, using defaults")
        return GatewayConfig()

    try:
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f)

        return _parse_config(data)

    except (OSError, yaml.YAMLError, TypeError, ValueError) as e:
        logger.error(f"Failed to load config from {config_path}: {e}")
        return GatewayConfig()


def _expand_env(value: Any) -> Optional[str]:
    """Expand a ``${VAR}`` reference to the environment value."""
    if value is None:
        return None
    value = str(value)
    if value.startswith("${") and value.endswith("}"):
        return os.environ.get(value[2:-1]) or None
    return value


def _section(value: Any, name: str) -> Dict[str, Any]:
    """A config section as a mapping; empty sections count as ``{}``."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"'{name}' must be a mapping, got {type(value).__name__}")
    return value


def _parse_config(data: Dict[str, Any]) -> GatewayConfig:
    """Parse configuration dictionary."""
    data = _section(data, "config")
    providers = {}

    for provider_id, p_data in _section(data.get("providers"), "providers").items():
        p_data = _section(p_data, f"providers.{provider_id}")
        providers[provider_id] = ProviderConfig(
            api_key=_expand_env(p_data.get("api_key")),
            base_url=_expand_env(p_data.get("base_url")),
            enabled=bool(p_data.get("enabled", True)),
            default_model=p_data.get("default_model"),
            timeout=float(p_data.get("timeout", 60.0)),
        )

    retry_data = _section(data.get("retry"), "retry")
    retry = RetryConfig(
        max_retries=int(retry_data.get("max_retries", 3)),
        backoff_ms=int(retry_data.get("backoff_ms", 1000)),
        backoff_multiplier=float(retry_data.get("backoff_multiplier", 2.0)),
    )

    return GatewayConfig(
        providers=providers,
        default_provider=data.get("default_provider", "anthropic"),
        debug=bool(data.get("debug", False)),
        retry=retry,
    )
