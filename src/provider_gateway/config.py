"""YAML configuration for the provider gateway.

Configuration Priority: Environment Variables > YAML > Defaults

Example YAML configuration (provider_gateway.yaml):

    gateway:
      default_provider: anthropic
      model_routing:
        "claude-*": anthropic
        "gemini-*": gemini
      providers:
        anthropic:
          default_model: claude-sonnet-4-5-20250929
          retry:
            max_retries: 3
            timeout_seconds: 50
          circuit_breaker:
            failure_threshold: 3
            reset_timeout_seconds: 30
      credentials:
        anthropic: ${ANTHROPIC_API_KEY}

API keys are not required here; gateways fall back to the provider's
environment variable on first use.
"""

import fnmatch
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

from .retry import RetryPolicy

load_dotenv()

KNOWN_PROVIDERS = ("anthropic", "gemini")

_TRUTHY = ("true", "1", "yes")


# =============================================================================
# Sub-configuration Models
# =============================================================================


class CircuitBreakerSettings(BaseModel):
    """Circuit breaker settings for one provider."""

    failure_threshold: int = Field(default=3, ge=1, le=100)
    failure_window_seconds: float = Field(default=60.0, gt=0.0)
    reset_timeout_seconds: float = Field(default=30.0, gt=0.0)


class RetrySettings(BaseModel):
    """Retry and timeout settings for one provider."""

    max_retries: int = Field(default=3, ge=0, le=10)
    timeout_seconds: float = Field(default=50.0, ge=1.0, le=600.0)

    def to_policy(self) -> RetryPolicy:
        """Build the RetryPolicy used by the retry executor."""
        return RetryPolicy(
            max_retries=self.max_retries,
            timeout_seconds=self.timeout_seconds,
        )


class ProviderSettings(BaseModel):
    """Configuration for a single provider."""

    enabled: bool = True
    base_url: Optional[str] = None
    default_model: Optional[str] = None
    retry: RetrySettings = Field(default_factory=RetrySettings)
    circuit_breaker: CircuitBreakerSettings = Field(default_factory=CircuitBreakerSettings)


class CredentialsConfig(BaseModel):
    """API credentials. Values usually come from ${VAR} substitution."""

    anthropic: Optional[str] = None
    gemini: Optional[str] = None


# =============================================================================
# Main Configuration
# =============================================================================


class GatewayConfig(BaseModel):
    """Configuration for all provider gateways."""

    default_provider: str = Field(default="anthropic")
    providers: Dict[str, ProviderSettings] = Field(default_factory=dict)
    model_routing: Dict[str, str] = Field(
        default_factory=lambda: {"claude-*": "anthropic", "gemini-*": "gemini"}
    )
    credentials: CredentialsConfig = Field(default_factory=CredentialsConfig)

    @field_validator("default_provider")
    @classmethod
    def validate_provider_name(cls, v: str) -> str:
        if v not in KNOWN_PROVIDERS:
            raise ValueError(f"invalid provider '{v}', must be one of {set(KNOWN_PROVIDERS)}")
        return v

    @model_validator(mode="after")
    def ensure_default_providers(self) -> "GatewayConfig":
        """Ensure every known provider has settings."""
        default_providers = {
            "anthropic": ProviderSettings(
                retry=RetrySettings(timeout_seconds=50.0),
            ),
            "gemini": ProviderSettings(
                retry=RetrySettings(timeout_seconds=30.0),
            ),
        }
        for name, settings in default_providers.items():
            if name not in self.providers:
                self.providers[name] = settings
        return self

    def provider(self, name: str) -> ProviderSettings:
        """Return settings for a provider (defaults if unknown)."""
        return self.providers.get(name) or ProviderSettings()

    def get_provider_for_model(self, model: str) -> str:
        """Get the provider to use for a model.

        Args:
            model: Model identifier (e.g., "claude-sonnet-4-5-20250929")

        Returns:
            Provider name
        """
        for pattern, provider in self.model_routing.items():
            if fnmatch.fnmatch(model, pattern):
                return provider
        return self.default_provider

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)

    def to_yaml(self) -> str:
        """Serialize configuration to YAML, omitting credentials."""
        config_dict = self.to_dict()
        config_dict.pop("credentials", None)
        return yaml.dump({"gateway": config_dict}, default_flow_style=False, sort_keys=False)


# =============================================================================
# Configuration Loading Functions
# =============================================================================


def _substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR_NAME} references with environment values."""
    if isinstance(value, str):
        pattern = r"\$\{([^}]+)\}"
        for var_name in re.findall(pattern, value):
            value = value.replace(f"${{{var_name}}}", os.getenv(var_name, ""))
        return value
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def load_config(config_path: Optional[Path] = None, strict: bool = False) -> GatewayConfig:
    """Load configuration from a YAML file.

    Args:
        config_path: Path to YAML configuration file. If None, uses defaults.
        strict: If True, raise ValueError on invalid configuration. If False,
                fall back to defaults.

    Returns:
        GatewayConfig object

    Raises:
        ValueError: If strict=True and configuration is invalid
    """
    if config_path is None or not config_path.exists():
        return GatewayConfig()

    try:
        with open(config_path, "r") as f:
            raw_config = yaml.safe_load(f)

        if raw_config is None:
            return GatewayConfig()

        raw_config = _substitute_env_vars(raw_config)
        return GatewayConfig(**(raw_config.get("gateway") or {}))

    except yaml.YAMLError as e:
        if strict:
            raise ValueError(f"Invalid YAML: {e}") from e
        return GatewayConfig()
    except (TypeError, ValueError, AttributeError) as e:
        if strict:
            raise ValueError(f"Configuration error: {e}") from e
        return GatewayConfig()


def _find_config_file() -> Optional[Path]:
    """Find configuration file in standard locations.

    Search order:
    1. PROVIDER_GATEWAY_CONFIG environment variable
    2. ./provider_gateway.yaml (current directory)
    3. ~/.config/provider-gateway/provider_gateway.yaml
    """
    env_path = os.getenv("PROVIDER_GATEWAY_CONFIG")
    if env_path:
        path = Path(env_path)
        if path.exists():
            return path

    cwd_path = Path.cwd() / "provider_gateway.yaml"
    if cwd_path.exists():
        return cwd_path

    home_path = Path.home() / ".config" / "provider-gateway" / "provider_gateway.yaml"
    if home_path.exists():
        return home_path

    return None


def _apply_env_overrides(config: GatewayConfig) -> GatewayConfig:
    """Apply environment variable overrides to configuration."""
    config_dict = config.model_dump()

    provider_env = os.getenv("PROVIDER_GATEWAY_DEFAULT_PROVIDER")
    if provider_env:
        config_dict["default_provider"] = provider_env

    for name in KNOWN_PROVIDERS:
        provider = config_dict.setdefault("providers", {}).setdefault(name, {})
        prefix = f"PROVIDER_GATEWAY_{name.upper()}"

        enabled_env = os.getenv(f"{prefix}_ENABLED")
        if enabled_env:
            provider["enabled"] = enabled_env.lower() in _TRUTHY

        model_env = os.getenv(f"{prefix}_MODEL")
        if model_env:
            provider["default_model"] = model_env

        retries_env = os.getenv(f"{prefix}_MAX_RETRIES") or os.getenv("PROVIDER_GATEWAY_MAX_RETRIES")
        if retries_env:
            provider.setdefault("retry", {})["max_retries"] = int(retries_env)

        timeout_env = os.getenv(f"{prefix}_TIMEOUT") or os.getenv("PROVIDER_GATEWAY_TIMEOUT")
        if timeout_env:
            provider.setdefault("retry", {})["timeout_seconds"] = float(timeout_env)

    return GatewayConfig(**config_dict)


def get_effective_config(config_path: Optional[Path] = None) -> GatewayConfig:
    """Get the effective configuration with all overrides applied.

    Args:
        config_path: Optional explicit path to configuration file.
                    If None, searches standard locations.
    """
    if config_path is None:
        config_path = _find_config_file()

    config = load_config(config_path)
    return _apply_env_overrides(config)


# Lazy-loaded global config instance
_global_config: Optional[GatewayConfig] = None


def get_config() -> GatewayConfig:
    """Get the cached global configuration instance.

    Use reload_config() to force a reload.
    """
    global _global_config
    if _global_config is None:
        _global_config = get_effective_config()
    return _global_config


def reload_config() -> GatewayConfig:
    """Reload the global configuration from disk and environment."""
    global _global_config
    _global_config = get_effective_config()
    return _global_config
