"""Shared test configuration and fixtures."""
from typing import Any, Callable, List, Sequence, Union

import httpx
import pytest

# =============================================================================
# Environment Reset
# =============================================================================


@pytest.fixture(autouse=True)
def reset_env(monkeypatch):
    """Clear provider environment variables and cached config before each test."""
    for var in (
        "ANTHROPIC_API_KEY",
        "GOOGLE_AI_API_KEY",
        "PROVIDER_GATEWAY_CONFIG",
        "PROVIDER_GATEWAY_DEFAULT_PROVIDER",
        "PROVIDER_GATEWAY_MAX_RETRIES",
        "PROVIDER_GATEWAY_TIMEOUT",
        "PROVIDER_GATEWAY_ANTHROPIC_MODEL",
        "PROVIDER_GATEWAY_GEMINI_ENABLED",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr("provider_gateway.config._global_config", None)


# =============================================================================
# Fake Provider
# =============================================================================

Outcome = Union[httpx.Response, Exception, Callable[[httpx.Request], Any]]


class FakeProvider:
    """Scripted httpx transport.

    Each request consumes the next outcome: a Response is returned, an
    exception is raised, and a callable is invoked with the request (and
    awaited if it returns a coroutine). The last outcome repeats.
    """

    def __init__(self, outcomes: Sequence[Outcome]):
        self.outcomes = list(outcomes)
        self.requests: List[httpx.Request] = []
        self.transport = httpx.MockTransport(self._handle)

    @property
    def attempts(self) -> int:
        return len(self.requests)

    async def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self.outcomes)) - 1
        outcome = self.outcomes[index]
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            result = outcome(request)
            if hasattr(result, "__await__"):
                result = await result
            return result
        # Responses cannot be re-read after being streamed; copy them
        return httpx.Response(
            outcome.status_code,
            headers=outcome.headers,
            content=outcome.content,
        )


@pytest.fixture
def fake_provider():
    """Factory fixture building a FakeProvider from outcomes."""
    return FakeProvider


@pytest.fixture
def sleeps():
    """List collecting the delays passed to the injected sleep function."""
    return []


@pytest.fixture
def fake_sleep(sleeps):
    """Awaitable sleep that records the delay instead of waiting."""

    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return _sleep


def anthropic_response(
    content: Sequence[dict] = ({"type": "text", "text": "Hello!"},),
    stop_reason: str = "end_turn",
    usage: Any = {"input_tokens": 10, "output_tokens": 5},
    status_code: int = 200,
) -> httpx.Response:
    body = {
        "id": "msg_01",
        "type": "message",
        "role": "assistant",
        "model": "claude-sonnet-4-5-20250929",
        "content": list(content),
        "stop_reason": stop_reason,
    }
    if usage is not None:
        body["usage"] = usage
    return httpx.Response(status_code, json=body)


def gemini_response(
    parts: Sequence[dict] = ({"text": "Hello!"},),
    finish_reason: str = "STOP",
    usage: Any = {"promptTokenCount": 10, "candidatesTokenCount": 5, "totalTokenCount": 15},
) -> httpx.Response:
    body = {
        "candidates": [
            {
                "content": {"role": "model", "parts": list(parts)},
                "finishReason": finish_reason,
            }
        ]
    }
    if usage is not None:
        body["usageMetadata"] = usage
    return httpx.Response(200, json=body)


# =============================================================================
# Custom Pytest Markers
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
