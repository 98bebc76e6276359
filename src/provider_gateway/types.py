"""Canonical types for the provider gateway.

This module defines the provider-agnostic message, tool and result types
that form the public contract of every gateway. Adapters translate these
to and from each provider's native wire format.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

# data:<mime>;base64,<payload>
DATA_URL_PATTERN = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)


def parse_data_url(url: str) -> Optional[Tuple[str, str]]:
    """Split a base64 data URL into its mime type and payload.

    Args:
        url: URL such as ``data:image/png;base64,iVBOR...``

    Returns:
        (mime_type, base64_data) tuple, or None if the URL does not parse.
    """
    if not url:
        return None
    match = DATA_URL_PATTERN.match(url)
    if match is None:
        return None
    return match.group(1), match.group(2)


class Role(str, Enum):
    """Message roles accepted by the canonical format."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ContentPart:
    """A single piece of message content.

    Either a text part (``type="text"``) or an image part
    (``type="image"``) whose ``url`` is a base64 data URL.
    """

    type: str  # "text" or "image"
    text: Optional[str] = None
    url: Optional[str] = None

    @classmethod
    def text_part(cls, text: str) -> "ContentPart":
        return cls(type="text", text=text)

    @classmethod
    def image_part(cls, url: str) -> "ContentPart":
        return cls(type="image", url=url)

    @classmethod
    def from_base64(cls, data: str, mime_type: str) -> "ContentPart":
        """Build an image part from raw base64 data."""
        return cls(type="image", url=f"data:{mime_type};base64,{data}")


MessageContent = Union[str, List[ContentPart]]


@dataclass(frozen=True)
class CanonicalMessage:
    """Provider-agnostic message format.

    ``content`` is either a plain string or an ordered list of
    ContentPart values. Ordering of messages is conversation order.
    """

    role: str  # "system", "user", "assistant"
    content: MessageContent

    def __post_init__(self) -> None:
        valid_roles = {r.value for r in Role}
        if self.role not in valid_roles:
            raise ValueError(f"invalid role '{self.role}', must be one of {valid_roles}")

    def text_content(self, separator: str = "\n") -> str:
        """Return the concatenated text of this message, ignoring images."""
        if isinstance(self.content, str):
            return self.content
        return separator.join(
            part.text for part in self.content if part.type == "text" and part.text
        )


@dataclass(frozen=True)
class ToolDefinition:
    """A tool the model may call, described by a JSON-Schema parameter shape."""

    name: str
    description: str
    parameters_schema: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolCall:
    """A structured tool call returned by the model."""

    name: str
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ImageInput:
    """Raw base64 image payload used by the vision operations."""

    data: str
    mime_type: str


@dataclass(frozen=True)
class TokenUsage:
    """Token usage reported by a provider.

    ``total_tokens`` is always ``prompt_tokens + completion_tokens``.
    """

    prompt_tokens: int
    completion_tokens: int

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass
class ChatResult:
    """Canonical result of any gateway operation.

    ``finish_reason`` is the provider's native stop reason, passed through
    unchanged. ``function_call`` is only populated by tool operations.
    """

    text: Optional[str]
    finish_reason: str
    tokens: Optional[TokenUsage] = None
    function_call: Optional[ToolCall] = None


@dataclass
class ImageEditResult:
    """Result of an image editing request."""

    image_url: Optional[str]
    text: Optional[str]
    tokens: Optional[TokenUsage] = None
