"""Anthropic Messages API format translation.

Pure functions converting canonical messages and tools to the Anthropic
native request schema, and pulling canonical text, tool calls and token
usage out of native responses.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from .types import (
    CanonicalMessage,
    ContentPart,
    ImageInput,
    TokenUsage,
    ToolCall,
    ToolDefinition,
    parse_data_url,
)

SYSTEM_SEPARATOR = "\n\n"


def image_block(data: str, mime_type: str) -> Dict[str, Any]:
    """Build a native base64 image block."""
    return {
        "type": "image",
        "source": {
            "type": "base64",
            "media_type": mime_type,
            "data": data,
        },
    }


def _convert_part(part: ContentPart) -> Optional[Dict[str, Any]]:
    if part.type == "text" and part.text:
        return {"type": "text", "text": part.text}
    if part.type == "image" and part.url:
        parsed = parse_data_url(part.url)
        if parsed is None:
            # Not a base64 data URL
            return None
        mime_type, data = parsed
        return image_block(data, mime_type)
    return None


def to_anthropic_messages(
    messages: Sequence[CanonicalMessage],
) -> Tuple[List[Dict[str, Any]], Optional[str]]:
    """Convert canonical messages to Anthropic format.

    System messages are hoisted into a single system string, joined with a
    blank line in input order. Image parts that are not valid data URLs are
    dropped, and a message left with no blocks is omitted.

    Args:
        messages: Canonical conversation.

    Returns:
        (native_messages, system) where system is None if no system message.
    """
    system_texts: List[str] = []
    native: List[Dict[str, Any]] = []

    for msg in messages:
        if msg.role == "system":
            system_texts.append(msg.text_content("\n"))
            continue

        if isinstance(msg.content, str):
            native.append({"role": msg.role, "content": msg.content})
            continue

        blocks = [block for block in (_convert_part(p) for p in msg.content) if block]
        if blocks:
            native.append({"role": msg.role, "content": blocks})

    system = SYSTEM_SEPARATOR.join(system_texts) if system_texts else None
    return native, system


def from_anthropic_messages(
    native_messages: Sequence[Dict[str, Any]],
    system: Optional[str] = None,
) -> List[CanonicalMessage]:
    """Rebuild canonical messages from an Anthropic request body.

    The hoisted system string, if any, becomes one leading system message.
    """
    messages: List[CanonicalMessage] = []
    if system:
        messages.append(CanonicalMessage(role="system", content=system))

    for msg in native_messages:
        content = msg.get("content")
        if isinstance(content, str):
            messages.append(CanonicalMessage(role=msg["role"], content=content))
            continue

        parts: List[ContentPart] = []
        for block in content or []:
            if block.get("type") == "text":
                parts.append(ContentPart.text_part(block.get("text", "")))
            elif block.get("type") == "image":
                source = block.get("source", {})
                parts.append(
                    ContentPart.from_base64(source.get("data", ""), source.get("media_type", ""))
                )
        messages.append(CanonicalMessage(role=msg["role"], content=parts))

    return messages


def to_anthropic_tools(tools: Sequence[ToolDefinition]) -> List[Dict[str, Any]]:
    """Convert canonical tool definitions to Anthropic tool declarations."""
    return [
        {
            "name": tool.name,
            "description": tool.description,
            "input_schema": tool.parameters_schema,
        }
        for tool in tools
    ]


def resolve_tool_choice(force_tool_name: Optional[str] = None) -> Dict[str, Any]:
    """Map a "force this tool" hint to Anthropic's tool_choice."""
    if force_tool_name:
        return {"type": "tool", "name": force_tool_name}
    return {"type": "auto"}


def vision_content(
    prompt: str,
    images: Sequence[ImageInput],
) -> List[Dict[str, Any]]:
    """Build a user content list with all images first and the prompt last."""
    blocks = [image_block(img.data, img.mime_type) for img in images]
    blocks.append({"type": "text", "text": prompt})
    return blocks


def build_anthropic_payload(
    model: str,
    messages: List[Dict[str, Any]],
    max_tokens: int,
    temperature: float,
    system: Optional[str] = None,
    tools: Optional[List[Dict[str, Any]]] = None,
    tool_choice: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Build an Anthropic Messages API request body.

    Args:
        model: Model name (e.g., "claude-sonnet-4-5-20250929")
        messages: Native messages
        max_tokens: Generation limit (required by Anthropic)
        temperature: Sampling temperature
        system: Hoisted system prompt
        tools: Native tool declarations
        tool_choice: Native tool choice

    Returns:
        Dict payload ready for the Anthropic API
    """
    payload: Dict[str, Any] = {
        "model": model,
        "messages": messages,
        "max_tokens": max_tokens,
        "temperature": temperature,
    }

    if system:
        payload["system"] = system

    if tools is not None:
        payload["tools"] = tools
        payload["tool_choice"] = tool_choice or {"type": "auto"}

    return payload


# =============================================================================
# Response extraction
# =============================================================================


def extract_text(response: Dict[str, Any]) -> Optional[str]:
    """Concatenate all text blocks in order, or None if there are none."""
    texts = [
        block["text"]
        for block in response.get("content") or []
        if block.get("type") == "text" and block.get("text")
    ]
    if not texts:
        return None
    return "".join(texts)


def extract_function_call(response: Dict[str, Any]) -> Optional[ToolCall]:
    """Return the first tool_use block as a ToolCall."""
    for block in response.get("content") or []:
        if block.get("type") != "tool_use":
            continue
        if block.get("name") and block.get("input") is not None:
            return ToolCall(name=block["name"], args=dict(block["input"]))
        return None
    return None


def extract_token_usage(response: Dict[str, Any]) -> Optional[TokenUsage]:
    """Map Anthropic usage counters; None when no usage block was sent."""
    usage = response.get("usage")
    if usage is None:
        return None
    return TokenUsage(
        prompt_tokens=usage.get("input_tokens") or 0,
        completion_tokens=usage.get("output_tokens") or 0,
    )


def extract_finish_reason(response: Dict[str, Any]) -> str:
    """Return the native stop_reason unchanged."""
    return response.get("stop_reason") or "UNKNOWN"
