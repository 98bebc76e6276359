"""Google Gemini gateway.

Direct access to the Gemini generateContent API with a per-gateway circuit
breaker and retry policy, plus Gemini image editing.
"""

import logging
from typing import Any, Dict, Optional, Sequence

from .base import (
    DEFAULT_CHAT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    DEFAULT_TOOLS_MAX_TOKENS,
    BaseProviderGateway,
)
from .errors import ClientError
from .gemini_format import (
    build_gemini_payload,
    build_generation_config,
    extract_finish_reason,
    extract_function_call,
    extract_inline_image,
    extract_text,
    extract_token_usage,
    inline_image_part,
    resolve_tool_config,
    system_instruction,
    to_gemini_contents,
    to_gemini_tools,
    vision_parts,
)
from .types import (
    CanonicalMessage,
    ChatResult,
    ImageEditResult,
    ImageInput,
    ToolDefinition,
)

logger = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"
GEMINI_DEFAULT_MODEL = "gemini-2.0-flash"
GEMINI_IMAGE_EDIT_MODEL = "gemini-3-pro-image-preview"


class GeminiGateway(BaseProviderGateway):
    """Gateway for Google Gemini models."""

    provider_id = "gemini"
    api_key_env_var = "GOOGLE_AI_API_KEY"
    default_model = GEMINI_DEFAULT_MODEL
    api_url = GEMINI_API_BASE

    def _endpoint(self, model: str) -> str:
        return f"{self._base_url}/{model}:generateContent"

    async def _send(
        self,
        model: str,
        payload: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        params = {"key": self._get_api_key()}
        headers = {"Content-Type": "application/json"}
        return await self._post(
            self._endpoint(model),
            payload,
            headers,
            params=params,
            timeout=timeout,
            validate=self._raise_body_error,
        )

    def _raise_body_error(self, data: Dict[str, Any]) -> None:
        """Raise ClientError for an error object inside a 200 body."""
        error = data.get("error")
        if error:
            logger.error("Gemini API error in response body: %s", error)
            raise ClientError(
                error.get("message") or "Unknown Gemini error",
                status_code=error.get("code") or 500,
                provider=self.provider_id,
            )

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
        seed: Optional[int] = None,
    ) -> ChatResult:
        model = model or self._model
        contents, instruction = to_gemini_contents(messages)
        payload = build_gemini_payload(
            contents,
            build_generation_config(temperature, max_tokens, seed=seed),
            instruction=instruction,
        )
        return self._result(await self._send(model, payload))

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
        model = model or self._model
        images = self._images(image, mime_type, additional_images)
        payload = build_gemini_payload(
            [{"role": "user", "parts": vision_parts(prompt, images)}],
            build_generation_config(temperature, max_tokens),
            instruction=system_instruction(system_prompt) if system_prompt else None,
        )
        return self._result(await self._send(model, payload))

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
        model = model or self._model
        contents, instruction = to_gemini_contents(messages)
        payload = build_gemini_payload(
            contents,
            build_generation_config(temperature, max_tokens),
            instruction=instruction,
            tools=to_gemini_tools(tools),
            tool_config=resolve_tool_config(force_tool_name),
        )
        return self._result(await self._send(model, payload), with_tools=True)

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
        thinking_level: Optional[str] = None,
    ) -> ChatResult:
        model = model or self._model
        images = self._images(image, mime_type, additional_images)
        payload = build_gemini_payload(
            [{"role": "user", "parts": vision_parts(prompt, images)}],
            build_generation_config(temperature, max_tokens, thinking_level=thinking_level),
            instruction=system_instruction(system_prompt) if system_prompt else None,
            tools=to_gemini_tools(tools),
            tool_config=resolve_tool_config(force_tool_name),
        )
        data = await self._send(model, payload, timeout=timeout_seconds)
        return self._result(data, with_tools=True)

    async def edit_image(
        self,
        prompt: str,
        image: str,
        mime_type: str,
        *,
        temperature: float = 0.4,
        seed: Optional[int] = None,
        timeout_seconds: float = 60.0,
        model: str = GEMINI_IMAGE_EDIT_MODEL,
    ) -> ImageEditResult:
        """Edit an image with a text instruction.

        Args:
            prompt: Description of the edit.
            image: Base64-encoded input image (without data URL prefix).
            mime_type: Input image MIME type.
            temperature: Sampling temperature.
            seed: Optional generation seed.
            timeout_seconds: Per-attempt deadline.
            model: Image-capable Gemini model.

        Returns:
            ImageEditResult with the generated image as a data URL (or None).
        """
        generation_config = build_generation_config(temperature, seed=seed)
        generation_config["responseModalities"] = ["TEXT", "IMAGE"]
        payload = build_gemini_payload(
            [{"role": "user", "parts": [{"text": prompt}, inline_image_part(image, mime_type)]}],
            generation_config,
        )

        data = await self._send(model, payload, timeout=timeout_seconds)
        image_url, text = extract_inline_image(data)
        if image_url is None:
            logger.warning("No image in Gemini image edit response")
        return ImageEditResult(image_url=image_url, text=text, tokens=extract_token_usage(data))
