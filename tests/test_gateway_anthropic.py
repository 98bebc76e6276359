"""Tests for the Anthropic gateway against a fake provider transport."""

import asyncio
import json

import httpx
import pytest

from conftest import anthropic_response

WEATHER_TOOL_SCHEMA = {
    "type": "object",
    "properties": {"city": {"type": "string"}},
    "required": ["city"],
}


def _gateway(provider, sleep, api_key="sk-ant-test", **kwargs):
    from provider_gateway.anthropic import AnthropicGateway
    from provider_gateway.config import GatewayConfig

    return AnthropicGateway(
        api_key=api_key,
        config=GatewayConfig(),
        transport=provider.transport,
        sleep=sleep,
        **kwargs,
    )


def _body(request: httpx.Request) -> dict:
    return json.loads(request.content)


class TestAnthropicChat:
    """Test plain chat requests."""

    @pytest.mark.asyncio
    async def test_request_shape(self, fake_provider, fake_sleep):
        """Request should carry Anthropic auth headers and a hoisted system prompt."""
        from provider_gateway.types import CanonicalMessage

        provider = fake_provider([anthropic_response()])
        gateway = _gateway(provider, fake_sleep)

        await gateway.chat(
            "claude-haiku-4-5",
            [
                CanonicalMessage(role="system", content="Be brief."),
                CanonicalMessage(role="user", content="Hi"),
            ],
        )

        request = provider.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://api.anthropic.com/v1/messages"
        assert request.headers["x-api-key"] == "sk-ant-test"
        assert request.headers["anthropic-version"] == "2023-06-01"
        assert request.headers["content-type"] == "application/json"
        assert _body(request) == {
            "model": "claude-haiku-4-5",
            "messages": [{"role": "user", "content": "Hi"}],
            "max_tokens": 2048,
            "temperature": 0.0,
            "system": "Be brief.",
        }

    @pytest.mark.asyncio
    async def test_result_mapping(self, fake_provider, fake_sleep):
        from provider_gateway.types import CanonicalMessage, TokenUsage

        provider = fake_provider([
            anthropic_response(
                content=[{"type": "text", "text": "Hello!"}],
                stop_reason="max_tokens",
                usage={"input_tokens": 8, "output_tokens": 2},
            )
        ])
        gateway = _gateway(provider, fake_sleep)

        result = await gateway.chat(None, [CanonicalMessage(role="user", content="Hi")])

        assert result.text == "Hello!"
        assert result.finish_reason == "max_tokens"
        assert result.tokens == TokenUsage(8, 2)
        assert result.tokens.total_tokens == 10
        assert result.function_call is None

    @pytest.mark.asyncio
    async def test_default_model_used_when_none(self, fake_provider, fake_sleep):
        from provider_gateway.anthropic import ANTHROPIC_DEFAULT_MODEL
        from provider_gateway.types import CanonicalMessage

        provider = fake_provider([anthropic_response()])
        gateway = _gateway(provider, fake_sleep)

        await gateway.chat(None, [CanonicalMessage(role="user", content="Hi")])

        assert _body(provider.requests[0])["model"] == ANTHROPIC_DEFAULT_MODEL

    @pytest.mark.asyncio
    async def test_options_override_defaults(self, fake_provider, fake_sleep):
        from provider_gateway.types import CanonicalMessage

        provider = fake_provider([anthropic_response()])
        gateway = _gateway(provider, fake_sleep)

        await gateway.chat(None, [CanonicalMessage(role="user", content="Hi")], temperature=0.7, max_tokens=64)

        body = _body(provider.requests[0])
        assert body["temperature"] == 0.7
        assert body["max_tokens"] == 64

    @pytest.mark.asyncio
    async def test_missing_usage_gives_no_tokens(self, fake_provider, fake_sleep):
        from provider_gateway.types import CanonicalMessage

        provider = fake_provider([anthropic_response(usage=None)])
        gateway = _gateway(provider, fake_sleep)

        result = await gateway.chat(None, [CanonicalMessage(role="user", content="Hi")])

        assert result.tokens is None


class TestAnthropicConfigErrors:
    """Test key resolution."""

    @pytest.mark.asyncio
    async def test_missing_key_raises_before_network(self, fake_provider, fake_sleep):
        """No key configured should fail fast without touching the network."""
        from provider_gateway.errors import ConfigError
        from provider_gateway.types import CanonicalMessage

        provider = fake_provider([anthropic_response()])
        gateway = _gateway(provider, fake_sleep, api_key=None)

        with pytest.raises(ConfigError) as exc_info:
            await gateway.chat(None, [CanonicalMessage(role="user", content="Hi")])

        assert provider.attempts == 0
        assert exc_info.value.is_retryable is False
        assert "ANTHROPIC_API_KEY" in exc_info.value.message
        assert gateway.breaker.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_key_from_environment(self, fake_provider, fake_sleep, monkeypatch):
        from provider_gateway.types import CanonicalMessage

        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-from-env")
        provider = fake_provider([anthropic_response()])
        gateway = _gateway(provider, fake_sleep, api_key=None)

        await gateway.chat(None, [CanonicalMessage(role="user", content="Hi")])

        assert provider.requests[0].headers["x-api-key"] == "sk-from-env"

    @pytest.mark.asyncio
    async def test_key_from_config_credentials(self, fake_provider, fake_sleep):
        from provider_gateway.anthropic import AnthropicGateway
        from provider_gateway.config import CredentialsConfig, GatewayConfig
        from provider_gateway.types import CanonicalMessage

        provider = fake_provider([anthropic_response()])
        config = GatewayConfig(credentials=CredentialsConfig(anthropic="sk-from-config"))
        gateway = AnthropicGateway(config=config, transport=provider.transport, sleep=fake_sleep)

        await gateway.chat(None, [CanonicalMessage(role="user", content="Hi")])

        assert provider.requests[0].headers["x-api-key"] == "sk-from-config"


class TestAnthropicVision:
    """Test vision requests."""

    @pytest.mark.asyncio
    async def test_single_image(self, fake_provider, fake_sleep):
        provider = fake_provider([anthropic_response()])
        gateway = _gateway(provider, fake_sleep)

        await gateway.vision_chat(None, "What is this?", "AAAA", "image/png", system_prompt="You see.")

        body = _body(provider.requests[0])
        assert body["system"] == "You see."
        assert body["max_tokens"] == 2048
        assert body["messages"] == [{
            "role": "user",
            "content": [
                {"type": "image", "source": {"type": "base64", "media_type": "image/png", "data": "AAAA"}},
                {"type": "text", "text": "What is this?"},
            ],
        }]

    @pytest.mark.asyncio
    async def test_additional_images_before_prompt(self, fake_provider, fake_sleep):
        """All images come first, in order, then the prompt."""
        from provider_gateway.types import ImageInput

        provider = fake_provider([anthropic_response()])
        gateway = _gateway(provider, fake_sleep)

        await gateway.vision_chat(
            None,
            "Compare",
            "AAAA",
            "image/png",
            additional_images=[ImageInput("BBBB", "image/jpeg")],
        )

        content = _body(provider.requests[0])["messages"][0]["content"]
        assert [block["type"] for block in content] == ["image", "image", "text"]
        assert [block["source"]["data"] for block in content[:2]] == ["AAAA", "BBBB"]
        assert "system" not in _body(provider.requests[0])


class TestAnthropicTools:
    """Test tool calling requests."""

    @pytest.mark.asyncio
    async def test_forced_tool_call(self, fake_provider, fake_sleep):
        from provider_gateway.types import CanonicalMessage, ToolCall, ToolDefinition

        provider = fake_provider([
            anthropic_response(
                content=[
                    {"type": "text", "text": "Checking."},
                    {"type": "tool_use", "id": "toolu_1", "name": "get_weather", "input": {"city": "Oslo"}},
                ],
                stop_reason="tool_use",
            )
        ])
        gateway = _gateway(provider, fake_sleep)

        result = await gateway.chat_with_tools(
            None,
            [CanonicalMessage(role="user", content="Weather in Oslo?")],
            [ToolDefinition("get_weather", "Look up weather", WEATHER_TOOL_SCHEMA)],
            force_tool_name="get_weather",
        )

        body = _body(provider.requests[0])
        assert body["max_tokens"] == 3000
        assert body["tools"] == [
            {"name": "get_weather", "description": "Look up weather", "input_schema": WEATHER_TOOL_SCHEMA}
        ]
        assert body["tool_choice"] == {"type": "tool", "name": "get_weather"}
        assert result.function_call == ToolCall("get_weather", {"city": "Oslo"})
        assert result.text == "Checking."
        assert result.finish_reason == "tool_use"

    @pytest.mark.asyncio
    async def test_auto_tool_choice_and_no_call(self, fake_provider, fake_sleep):
        from provider_gateway.types import CanonicalMessage, ToolDefinition

        provider = fake_provider([anthropic_response()])
        gateway = _gateway(provider, fake_sleep)

        result = await gateway.chat_with_tools(
            None,
            [CanonicalMessage(role="user", content="Hi")],
            [ToolDefinition("noop", "Does nothing", {"type": "object"})],
        )

        assert _body(provider.requests[0])["tool_choice"] == {"type": "auto"}
        assert result.function_call is None

    @pytest.mark.asyncio
    async def test_vision_with_tools(self, fake_provider, fake_sleep):
        from provider_gateway.types import ToolDefinition

        provider = fake_provider([
            anthropic_response(
                content=[{"type": "tool_use", "id": "t", "name": "label", "input": {"tag": "cat"}}],
                stop_reason="tool_use",
            )
        ])
        gateway = _gateway(provider, fake_sleep)

        result = await gateway.vision_chat_with_tools(
            None,
            "Label it",
            "AAAA",
            "image/webp",
            [ToolDefinition("label", "Tag an image", {"type": "object"})],
            force_tool_name="label",
        )

        body = _body(provider.requests[0])
        assert body["messages"][0]["content"][0]["source"]["media_type"] == "image/webp"
        assert body["tool_choice"] == {"type": "tool", "name": "label"}
        assert result.function_call.args == {"tag": "cat"}
        assert result.text is None

    @pytest.mark.asyncio
    async def test_timeout_override(self, fake_provider, fake_sleep):
        from provider_gateway.errors import GatewayTimeoutError
        from provider_gateway.retry import RetryPolicy
        from provider_gateway.types import ToolDefinition

        async def slow(request):
            await asyncio.sleep(1)
            return anthropic_response()

        provider = fake_provider([slow])
        gateway = _gateway(provider, fake_sleep, policy=RetryPolicy(max_retries=0, timeout_seconds=50.0))

        with pytest.raises(GatewayTimeoutError):
            await gateway.vision_chat_with_tools(
                None,
                "Label it",
                "AAAA",
                "image/png",
                [ToolDefinition("label", "Tag", {"type": "object"})],
                timeout_seconds=0.05,
            )

        assert provider.attempts == 1


class TestAnthropicResilience:
    """Test retries and breaker behavior through the gateway."""

    @pytest.mark.asyncio
    async def test_retries_overloaded_then_succeeds(self, fake_provider, fake_sleep, sleeps):
        from provider_gateway.types import CanonicalMessage

        provider = fake_provider([httpx.Response(529), anthropic_response()])
        gateway = _gateway(provider, fake_sleep)

        result = await gateway.chat(None, [CanonicalMessage(role="user", content="Hi")])

        assert result.text == "Hello!"
        assert provider.attempts == 2
        assert sleeps == [2]

    @pytest.mark.asyncio
    async def test_client_error_message(self, fake_provider, fake_sleep):
        from provider_gateway.errors import ClientError
        from provider_gateway.types import CanonicalMessage

        provider = fake_provider([
            httpx.Response(
                400,
                json={"type": "error", "error": {"type": "invalid_request_error", "message": "bad request"}},
            )
        ])
        gateway = _gateway(provider, fake_sleep)

        with pytest.raises(ClientError) as exc_info:
            await gateway.chat(None, [CanonicalMessage(role="user", content="Hi")])

        assert exc_info.value.message == "bad request"
        assert exc_info.value.provider == "anthropic"
        assert provider.attempts == 1

    @pytest.mark.asyncio
    async def test_breaker_opens_and_blocks(self, fake_provider, fake_sleep):
        """Three failed calls open the breaker; the fourth never reaches the provider."""
        from provider_gateway.errors import CircuitOpenError, ServerError
        from provider_gateway.retry import RetryPolicy
        from provider_gateway.types import CanonicalMessage

        provider = fake_provider([httpx.Response(503)])
        gateway = _gateway(provider, fake_sleep, policy=RetryPolicy(max_retries=0))
        messages = [CanonicalMessage(role="user", content="Hi")]

        for _ in range(3):
            with pytest.raises(ServerError):
                await gateway.chat(None, messages)

        with pytest.raises(CircuitOpenError):
            await gateway.chat(None, messages)

        assert provider.attempts == 3

    def test_stats(self, fake_provider, fake_sleep):
        gateway = _gateway(fake_provider([anthropic_response()]), fake_sleep)

        stats = gateway.get_stats()

        assert stats["provider_id"] == "anthropic"
        assert stats["timeout_seconds"] == 50.0
        assert stats["circuit_breaker"]["state"] == "closed"
