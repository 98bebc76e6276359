"""Base class shared by every provider gateway.

A gateway composes the format translator of one provider with its own
CircuitBreaker and RetryExecutor, and exposes the four canonical
operations: chat, vision_chat, chat_with_tools and vision_chat_with_tools.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .circuit_breaker import CircuitBreaker
from .config import GatewayConfig, get_config
from .errors import ConfigError
from .retry import RetryExecutor, RetryPolicy, SleepFn, ValidateFn
from .types import CanonicalMessage, ChatResult, ImageInput, ToolDefinition

logger = logging.getLogger(__name__)

DEFAULT_CHAT_MAX_TOKENS = 2048
DEFAULT_TOOLS_MAX_TOKENS = 3000
DEFAULT_TEMPERATURE = 0.0


class BaseProviderGateway(ABC):
    """Abstract provider gateway.

    Subclasses set the class attributes below and implement the four
    operations using their format translator and ``_post``.
    """

    provider_id: str = "base"
    api_key_env_var: str = ""
    default_model: str = ""
    api_url: str = ""

    def __init__(
        self,
        api_key: Optional[str] = None,
        config: Optional[GatewayConfig] = None,
        breaker: Optional[CircuitBreaker] = None,
        policy: Optional[RetryPolicy] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        """Initialize the gateway.

        Args:
            api_key: Provider API key. If None, resolved from config credentials
                     or the provider's environment variable on first use.
            config: Gateway configuration. If None, uses get_config().
            breaker: Circuit breaker to use. If None, one is built from config.
            policy: Retry policy. If None, built from config.
            base_url: Override of the provider endpoint.
            transport: httpx transport (used by tests to fake the provider).
            sleep: Awaitable sleep used for backoff.
        """
        config = config or get_config()
        settings = config.provider(self.provider_id)

        self._api_key = api_key or getattr(config.credentials, self.provider_id, None)
        self._base_url = base_url or settings.base_url or self.api_url
        self._model = settings.default_model or self.default_model
        self._transport = transport

        self.breaker = breaker or CircuitBreaker(
            failure_threshold=settings.circuit_breaker.failure_threshold,
            failure_window_seconds=settings.circuit_breaker.failure_window_seconds,
            reset_timeout_seconds=settings.circuit_breaker.reset_timeout_seconds,
            provider_id=self.provider_id,
        )
        self.executor = RetryExecutor(
            self.breaker,
            policy or settings.retry.to_policy(),
            sleep=sleep,
            provider=self.provider_id,
        )

    @property
    def model(self) -> str:
        """Default model used when an operation receives model=None."""
        return self._model

    def _get_api_key(self) -> str:
        """Resolve the API key.

        Raises:
            ConfigError: If no key is configured.
        """
        key = self._api_key or os.environ.get(self.api_key_env_var)
        if not key:
            raise ConfigError(f"{self.api_key_env_var} not configured", provider=self.provider_id)
        return key

    async def _post(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Dict[str, str],
        params: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        validate: Optional[ValidateFn] = None,
    ) -> Dict[str, Any]:
        """POST a payload through the retry executor and return the JSON body."""
        deadline = timeout if timeout is not None else self.executor.policy.timeout_seconds

        async def send() -> httpx.Response:
            async with httpx.AsyncClient(timeout=deadline, transport=self._transport) as client:
                return await client.post(url, headers=headers, params=params, json=payload)

        return await self.executor.execute(send, timeout=deadline, validate=validate)

    def get_stats(self) -> Dict[str, Any]:
        """Return gateway and circuit breaker statistics."""
        return {
            "provider_id": self.provider_id,
            "model": self._model,
            "max_retries": self.executor.policy.max_retries,
            "timeout_seconds": self.executor.policy.timeout_seconds,
            "circuit_breaker": self.breaker.get_stats(),
        }

    @staticmethod
    def _images(image: str, mime_type: str, additional_images: Optional[Sequence[ImageInput]]) -> List[ImageInput]:
        return [ImageInput(data=image, mime_type=mime_type), *(additional_images or [])]

    @abstractmethod
    async def chat(
        self,
        model: Optional[str],
        messages: Sequence[CanonicalMessage],
        *,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_CHAT_MAX_TOKENS,
    ) -> ChatResult:
        """Plain chat completion."""

    @abstractmethod
    async def vision_chat(
        self,
        model: Optional[str],
        prompt: str,
        image: str,
        mime_type: str,
        *,
        system_prompt: Optional[str] = None,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_CHAT_MAX_TOKENS,
        additional_images: Optional[Sequence[ImageInput]] = None,
    ) -> ChatResult:
        """Chat about one or more base64 images."""

    @abstractmethod
    async def chat_with_tools(
        self,
        model: Optional[str],
        messages: Sequence[CanonicalMessage],
        tools: Sequence[ToolDefinition],
        *,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_TOOLS_MAX_TOKENS,
        force_tool_name: Optional[str] = None,
    ) -> ChatResult:
        """Chat with tool declarations attached."""

    @abstractmethod
    async def vision_chat_with_tools(
        self,
        model: Optional[str],
        prompt: str,
        image: str,
        mime_type: str,
        tools: Sequence[ToolDefinition],
        *,
        system_prompt: Optional[str] = None,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_TOOLS_MAX_TOKENS,
        force_tool_name: Optional[str] = None,
        additional_images: Optional[Sequence[ImageInput]] = None,
        timeout_seconds: Optional[float] = None,
    ) -> ChatResult:
        """Vision chat with tool declarations attached."""
