"""Anthropic gateway.

Direct access to the Anthropic Messages API with a per-gateway circuit
breaker and retry policy.
"""

from typing import Any, Dict, Optional, Sequence

from .anthropic_format import (
    build_anthropic_payload,
    extract_finish_reason,
    extract_function_call,
    extract_text,
    extract_token_usage,
    resolve_tool_choice,
    to_anthropic_messages,
    to_anthropic_tools,
    vision_content,
)
from .base import (
    DEFAULT_CHAT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    DEFAULT_TOOLS_MAX_TOKENS,
    BaseProviderGateway,
)
from .types import CanonicalMessage, ChatResult, ImageInput, ToolDefinition

ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
ANTHROPIC_DEFAULT_MODEL = "claude-sonnet-4-5-20250929"


class AnthropicGateway(BaseProviderGateway):
    """Gateway for Anthropic Claude models.

    Example:
        gateway = AnthropicGateway()
        result = await gateway.chat(
            None,
            [CanonicalMessage(role="user", content="Hello")],
        )
        print(result.text, result.finish_reason, result.tokens)
    """

    provider_id = "anthropic"
    api_key_env_var = "ANTHROPIC_API_KEY"
    default_model = ANTHROPIC_DEFAULT_MODEL
    api_url = ANTHROPIC_API_URL

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self._get_api_key(),
            "anthropic-version": ANTHROPIC_VERSION,
        }

    async def _send(
        self,
        payload: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        headers = self._headers()
        return await self._post(self._base_url, payload, headers, timeout=timeout)

    @staticmethod
    def _result(data: Dict[str, Any], with_tools: bool = False) -> ChatResult:
        return ChatResult(
            text=extract_text(data),
            finish_reason=extract_finish_reason(data),
            tokens=extract_token_usage(data),
            function_call=extract_function_call(data) if with_tools else None,
        )

    async def chat(
        self,
        model: Optional[str],
        messages: Sequence[CanonicalMessage],
        *,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_CHAT_MAX_TOKENS,
    ) -> ChatResult:
        native, system = to_anthropic_messages(messages)
        payload = build_anthropic_payload(
            model=model or self._model,
            messages=native,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system,
        )
        return self._result(await self._send(payload))

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
        images = self._images(image, mime_type, additional_images)
        payload = build_anthropic_payload(
            model=model or self._model,
            messages=[{"role": "user", "content": vision_content(prompt, images)}],
            max_tokens=max_tokens,
            temperature=temperature,
            system=system_prompt,
        )
        return self._result(await self._send(payload))

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
        native, system = to_anthropic_messages(messages)
        payload = build_anthropic_payload(
            model=model or self._model,
            messages=native,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system,
            tools=to_anthropic_tools(tools),
            tool_choice=resolve_tool_choice(force_tool_name),
        )
        return self._result(await self._send(payload), with_tools=True)

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
        images = self._images(image, mime_type, additional_images)
        payload = build_anthropic_payload(
            model=model or self._model,
            messages=[{"role": "user", "content": vision_content(prompt, images)}],
            max_tokens=max_tokens,
            temperature=temperature,
            system=system_prompt,
            tools=to_anthropic_tools(tools),
            tool_choice=resolve_tool_choice(force_tool_name),
        )
        return self._result(await self._send(payload, timeout=timeout_seconds), with_tools=True)
