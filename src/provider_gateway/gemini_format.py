"""Google Gemini generateContent format translation.

Pure functions converting canonical messages and tools to the Gemini
native request schema, and extracting canonical results from responses.
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

# JSON Schema keys rejected by Gemini function declarations
UNSUPPORTED_SCHEMA_FIELDS = frozenset({"additionalProperties", "nullable", "$schema"})


def inline_image_part(data: str, mime_type: str) -> Dict[str, Any]:
    """Build a native inline image part."""
    return {"inlineData": {"mimeType": mime_type, "data": data}}


def _convert_part(part: ContentPart) -> Optional[Dict[str, Any]]:
    if part.type == "text" and part.text:
        return {"text": part.text}
    if part.type == "image" and part.url:
        parsed = parse_data_url(part.url)
        if parsed is None:
            return None
        mime_type, data = parsed
        return inline_image_part(data, mime_type)
    return None


def system_instruction(text: str) -> Dict[str, Any]:
    return {"parts": [{"text": text}]}


def to_gemini_contents(
    messages: Sequence[CanonicalMessage],
) -> Tuple[List[Dict[str, Any]], Optional[Dict[str, Any]]]:
    """Convert canonical messages to Gemini contents.

    Roles map ``assistant`` to ``model``. System messages are hoisted into a
    single systemInstruction joined with a blank line in input order.

    Returns:
        (contents, system_instruction) where system_instruction may be None.
    """
    system_texts: List[str] = []
    contents: List[Dict[str, Any]] = []

    for msg in messages:
        if msg.role == "system":
            system_texts.append(msg.text_content("\n"))
            continue

        role = "model" if msg.role == "assistant" else "user"
        if isinstance(msg.content, str):
            parts = [{"text": msg.content}]
        else:
            parts = [part for part in (_convert_part(p) for p in msg.content) if part]

        if parts:
            contents.append({"role": role, "parts": parts})

    instruction = None
    if system_texts:
        instruction = system_instruction(SYSTEM_SEPARATOR.join(system_texts))
    return contents, instruction


def from_gemini_contents(
    contents: Sequence[Dict[str, Any]],
    instruction: Optional[Dict[str, Any]] = None,
) -> List[CanonicalMessage]:
    """Rebuild canonical messages from Gemini contents."""
    messages: List[CanonicalMessage] = []
    if instruction:
        text = "".join(p.get("text", "") for p in instruction.get("parts", []))
        messages.append(CanonicalMessage(role="system", content=text))

    for content in contents:
        role = "assistant" if content.get("role") == "model" else "user"
        parts: List[ContentPart] = []
        for part in content.get("parts", []):
            if "text" in part:
                parts.append(ContentPart.text_part(part["text"]))
            elif "inlineData" in part:
                inline = part["inlineData"]
                parts.append(ContentPart.from_base64(inline.get("data", ""), inline.get("mimeType", "")))
        messages.append(CanonicalMessage(role=role, content=parts))

    return messages


def clean_schema(schema: Any) -> Any:
    """Recursively strip JSON Schema fields Gemini does not accept."""
    if isinstance(schema, dict):
        return {
            key: clean_schema(value)
            for key, value in schema.items()
            if key not in UNSUPPORTED_SCHEMA_FIELDS
        }
    if isinstance(schema, list):
        return [clean_schema(item) for item in schema]
    return schema


def to_gemini_tools(tools: Sequence[ToolDefinition]) -> List[Dict[str, Any]]:
    """Convert canonical tool definitions to a Gemini tools list."""
    declarations = [
        {
            "name": tool.name,
            "description": tool.description,
            "parameters": clean_schema(tool.parameters_schema),
        }
        for tool in tools
    ]
    return [{"functionDeclarations": declarations}]


def resolve_tool_config(force_tool_name: Optional[str] = None) -> Dict[str, Any]:
    """Map a "force this tool" hint to Gemini's toolConfig."""
    if force_tool_name:
        return {
            "functionCallingConfig": {
                "mode": "ANY",
                "allowedFunctionNames": [force_tool_name],
            }
        }
    return {"functionCallingConfig": {"mode": "AUTO"}}


def vision_parts(prompt: str, images: Sequence[ImageInput]) -> List[Dict[str, Any]]:
    """Build user parts with all images first and the prompt last."""
    parts = [inline_image_part(img.data, img.mime_type) for img in images]
    parts.append({"text": prompt})
    return parts


def build_generation_config(
    temperature: float,
    max_tokens: Optional[int] = None,
    seed: Optional[int] = None,
    thinking_level: Optional[str] = None,
) -> Dict[str, Any]:
    config: Dict[str, Any] = {"temperature": temperature}
    if max_tokens is not None:
        config["maxOutputTokens"] = max_tokens
    if seed is not None:
        config["seed"] = seed
    if thinking_level:
        config["thinkingConfig"] = {"thinkingLevel": thinking_level}
    return config


def build_gemini_payload(
    contents: List[Dict[str, Any]],
    generation_config: Dict[str, Any],
    instruction: Optional[Dict[str, Any]] = None,
    tools: Optional[List[Dict[str, Any]]] = None,
    tool_config: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Build a Gemini generateContent request body."""
    payload: Dict[str, Any] = {
        "contents": contents,
        "generationConfig": generation_config,
    }
    if instruction:
        payload["systemInstruction"] = instruction
    if tools is not None:
        payload["tools"] = tools
        payload["toolConfig"] = tool_config or resolve_tool_config()
    return payload


# =============================================================================
# Response extraction
# =============================================================================


def _candidate_parts(response: Dict[str, Any]) -> List[Dict[str, Any]]:
    candidates = response.get("candidates") or []
    if not candidates:
        return []
    content = candidates[0].get("content") or {}
    return content.get("parts") or []


def extract_text(response: Dict[str, Any]) -> Optional[str]:
    texts = [part["text"] for part in _candidate_parts(response) if part.get("text")]
    if not texts:
        return None
    return "".join(texts)


def extract_function_call(response: Dict[str, Any]) -> Optional[ToolCall]:
    """Return the first functionCall part as a ToolCall."""
    for part in _candidate_parts(response):
        call = part.get("functionCall")
        if call:
            return ToolCall(name=call.get("name", ""), args=dict(call.get("args") or {}))
    return None


def extract_token_usage(response: Dict[str, Any]) -> Optional[TokenUsage]:
    usage = response.get("usageMetadata")
    if usage is None:
        return None
    return TokenUsage(
        prompt_tokens=usage.get("promptTokenCount") or 0,
        completion_tokens=usage.get("candidatesTokenCount") or 0,
    )


def extract_finish_reason(response: Dict[str, Any]) -> str:
    candidates = response.get("candidates") or []
    if candidates and candidates[0].get("finishReason"):
        return candidates[0]["finishReason"]
    return "UNKNOWN"


def extract_inline_image(response: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    """Return (image data URL, text) from an image-output response.

    The last inline image and the last text part win.
    """
    image_url: Optional[str] = None
    text: Optional[str] = None
    for part in _candidate_parts(response):
        inline = part.get("inlineData")
        if inline and inline.get("data"):
            mime_type = inline.get("mimeType") or "image/png"
            image_url = f"data:{mime_type};base64,{inline['data']}"
        if part.get("text"):
            text = part["text"]
    return image_url, text
