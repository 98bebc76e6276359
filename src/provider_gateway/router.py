"""Gateway router for multi-provider access.

The GatewayRouter resolves a model identifier to the gateway that serves
it, so callers can swap providers by changing the model name only:
- Model-based routing with config patterns ("claude-*" -> anthropic)
- Lazily created gateways, each owning its own circuit breaker
"""

import logging
from typing import Any, Dict, Optional, Sequence, Type

from .anthropic import AnthropicGateway
from .base import BaseProviderGateway
from .config import GatewayConfig, get_config
from .errors import ConfigError
from .gemini import GeminiGateway
from .types import CanonicalMessage, ChatResult, ToolDefinition

logger = logging.getLogger(__name__)

GATEWAY_CLASSES: Dict[str, Type[BaseProviderGateway]] = {
    "anthropic": AnthropicGateway,
    "gemini": GeminiGateway,
}


class GatewayRouter:
    """Routes canonical requests to provider gateways by model name.

    Example:
        router = GatewayRouter()
        result = await router.chat(
            "claude-sonnet-4-5-20250929",
            [CanonicalMessage(role="user", content="Hello")],
        )
    """

    def __init__(
        self,
        gateways: Optional[Dict[str, BaseProviderGateway]] = None,
        model_routing: Optional[Dict[str, str]] = None,
        default_provider: Optional[str] = None,
        config: Optional[GatewayConfig] = None,
    ):
        """Initialize the router.

        Args:
            gateways: Pre-built gateways keyed by provider id. Missing
                      providers are created on first use.
            model_routing: Model pattern to provider mapping. If None, from config.
            default_provider: Provider for unmatched models. If None, from config.
            config: Gateway configuration. If None, uses get_config().
        """
        self._config = config or get_config()
        self.gateways: Dict[str, BaseProviderGateway] = dict(gateways or {})

        overrides: Dict[str, Any] = {}
        if model_routing is not None:
            overrides["model_routing"] = model_routing
        if default_provider is not None:
            overrides["default_provider"] = default_provider
        if overrides:
            self._config = self._config.model_copy(update=overrides)

    def get_gateway(self, provider: str) -> BaseProviderGateway:
        """Get or create the gateway for a provider.

        Raises:
            ConfigError: If the provider is unknown or disabled.
        """
        if provider in self.gateways:
            return self.gateways[provider]

        gateway_cls = GATEWAY_CLASSES.get(provider)
        if gateway_cls is None:
            raise ConfigError(f"Unknown provider '{provider}'", provider=provider)
        if not self._config.provider(provider).enabled:
            raise ConfigError(f"Provider '{provider}' is disabled", provider=provider)

        logger.info("Creating gateway for provider %s", provider)
        gateway = gateway_cls(config=self._config)
        self.gateways[provider] = gateway
        return gateway

    def get_provider_for_model(self, model: str) -> str:
        """Resolve the provider for a model from the routing patterns."""
        return self._config.get_provider_for_model(model)

    def get_gateway_for_model(self, model: str) -> BaseProviderGateway:
        """Get the gateway that serves a model."""
        return self.get_gateway(self.get_provider_for_model(model))

    async def chat(
        self,
        model: str,
        messages: Sequence[CanonicalMessage],
        **options: Any,
    ) -> ChatResult:
        return await self.get_gateway_for_model(model).chat(model, messages, **options)

    async def vision_chat(
        self,
        model: str,
        prompt: str,
        image: str,
        mime_type: str,
        **options: Any,
    ) -> ChatResult:
        gateway = self.get_gateway_for_model(model)
        return await gateway.vision_chat(model, prompt, image, mime_type, **options)

    async def chat_with_tools(
        self,
        model: str,
        messages: Sequence[CanonicalMessage],
        tools: Sequence[ToolDefinition],
        **options: Any,
    ) -> ChatResult:
        gateway = self.get_gateway_for_model(model)
        return await gateway.chat_with_tools(model, messages, tools, **options)

    async def vision_chat_with_tools(
        self,
        model: str,
        prompt: str,
        image: str,
        mime_type: str,
        tools: Sequence[ToolDefinition],
        **options: Any,
    ) -> ChatResult:
        gateway = self.get_gateway_for_model(model)
        return await gateway.vision_chat_with_tools(model, prompt, image, mime_type, tools, **options)

    def get_stats(self) -> Dict[str, Dict[str, Any]]:
        """Return statistics for every gateway created so far."""
        return {provider: gateway.get_stats() for provider, gateway in self.gateways.items()}
