"""Provider Gateway - one canonical contract for interchangeable LLM backends.

This package provides chat, vision and tool-calling access to LLM providers
(Anthropic, Google Gemini) with:

- Provider-agnostic message, tool and result types
- Per-provider circuit breaker for fault tolerance
- Timeout, exponential backoff and Retry-After aware retries
- Translation to and from each provider's native wire format

Example usage:
    from provider_gateway import AnthropicGateway, CanonicalMessage

    gateway = AnthropicGateway()
    result = await gateway.chat(
        "claude-sonnet-4-5-20250929",
        [CanonicalMessage(role="user", content="Hello")],
    )
    print(result.text)
"""

from .types import (
    CanonicalMessage,
    ChatResult,
    ContentPart,
    ImageEditResult,
    ImageInput,
    TokenUsage,
    ToolCall,
    ToolDefinition,
)
from .errors import (
    GatewayError,
    ConfigError,
    RateLimitError,
    ServerError,
    GatewayTimeoutError,
    ClientError,
    CircuitOpenError,
)
from .circuit_breaker import CircuitBreaker, CircuitState
from .retry import RetryExecutor, RetryPolicy
from .base import BaseProviderGateway
from .anthropic import AnthropicGateway
from .gemini import GeminiGateway
from .router import GatewayRouter
from .config import GatewayConfig, get_config, load_config, reload_config

__version__ = "0.1.0"

__all__ = [
    # Types
    "CanonicalMessage",
    "ChatResult",
    "ContentPart",
    "ImageEditResult",
    "ImageInput",
    "TokenUsage",
    "ToolCall",
    "ToolDefinition",
    # Errors
    "GatewayError",
    "ConfigError",
    "RateLimitError",
    "ServerError",
    "GatewayTimeoutError",
    "ClientError",
    "CircuitOpenError",
    # Circuit Breaker / Retry
    "CircuitBreaker",
    "CircuitState",
    "RetryExecutor",
    "RetryPolicy",
    # Gateways
    "BaseProviderGateway",
    "AnthropicGateway",
    "GeminiGateway",
    "GatewayRouter",
    # Config
    "GatewayConfig",
    "get_config",
    "load_config",
    "reload_config",
]
