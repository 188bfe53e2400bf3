"""Tests for the Anthropic client: token limits, truncation, requests and streaming."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

import anthropic
import httpx
import pytest
from anthropic.types import TextBlock as AnthropicTextBlock
from anthropic.types import ToolUseBlock as AnthropicToolUseBlock

from relay.clients.anthropic import AnthropicClient, AnthropicConfig, AnthropicMessage
from relay.models.llm import LLMToolDefinition, TextBlock, ToolResultBlock, ToolUseBlock


def make_client(config: AnthropicConfig | None = None) -> AnthropicClient:
    with patch.dict("os.environ", {"ANTHROPIC_API_KEY": "test-key"}):
        client = AnthropicClient(config=config)
    # Mock tokenizer for consistent testing
    client.tokenizer = Mock()
    client.rate_limiter = Mock(check_rate_limit=AsyncMock())
    return client


class TestClientSetup:
    """Tests for client construction."""

    def test_requires_api_key(self):
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
                AnthropicClient()

    def test_explicit_api_key(self):
        with patch.dict("os.environ", {}, clear=True):
            client = AnthropicClient(api_key="explicit")
        assert client.api_key == "explicit"


class TestTokenValidation:
    """Tests for message token validation."""

    @pytest.fixture
    def anthropic_client(self):
        """Create AnthropicClient for testing."""
        return make_client(AnthropicConfig(max_message_tokens=1000))

    def test_validate_message_tokens_within_limit(self, anthropic_client):
        """Test that messages within token limit pass validation."""
        anthropic_client.tokenizer.encode.return_value = ["token"] * 500

        # Should not raise exception
        anthropic_client.validate_message_tokens("Short message")

    def test_validate_message_tokens_exceeds_limit(self, anthropic_client):
        """Test that messages exceeding token limit raise ValueError."""
        anthropic_client.tokenizer.encode.return_value = ["token"] * 1500

        with pytest.raises(ValueError, match="Message exceeds token limit"):
            anthropic_client.validate_message_tokens("Very long message")

    def test_validate_message_tokens_fallback_without_tokenizer(self, anthropic_client):
        """Test token validation fallback when tokenizer is unavailable."""
        anthropic_client.tokenizer = None

        # Short message (under 4000 chars = ~1000 tokens) should pass
        anthropic_client.validate_message_tokens("a" * 3000)

        # Long message (over 4000 chars = ~1000 tokens) should fail
        with pytest.raises(ValueError, match="Message exceeds token limit"):
            anthropic_client.validate_message_tokens("a" * 5000)


class TestConversationTruncation:
    """Tests for conversation truncation functionality."""

    @pytest.fixture
    def anthropic_client(self):
        """Create AnthropicClient for testing."""
        return make_client(AnthropicConfig(max_conversation_tokens=10000, token_headroom=1000, max_message_tokens=1000))

    def test_truncate_conversation_within_limit(self, anthropic_client):
        """Test that conversations within limits are not truncated."""
        anthropic_client.tokenizer.encode.return_value = ["token"] * 100

        messages = [
            AnthropicMessage(role="user", content="Message 1"),
            AnthropicMessage(role="assistant", content="Response 1"),
            AnthropicMessage(role="user", content="Message 2"),
        ]

        result = anthropic_client.truncate_conversation(messages, "System prompt")

        assert result == messages

    def test_truncate_conversation_exceeds_limit(self, anthropic_client):
        """Test that conversations exceeding limits are truncated from beginning."""

        def mock_encode(text):
            if "System prompt" in text:
                return ["token"] * 500
            return ["token"] * 3000

        anthropic_client.tokenizer.encode.side_effect = mock_encode

        messages = [
            AnthropicMessage(role="user", content="Message 1"),
            AnthropicMessage(role="assistant", content="Response 1"),
            AnthropicMessage(role="user", content="Message 2"),
            AnthropicMessage(role="assistant", content="Response 2"),
            AnthropicMessage(role="user", content="Message 3"),
        ]

        result = anthropic_client.truncate_conversation(messages, "System prompt")

        assert len(result) < len(messages)
        assert result[0].role == "user"
        assert result[-1].content == "Message 3"

    def test_truncation_never_starts_with_tool_result(self, anthropic_client):
        """Test that a kept tool_result is never separated from its tool_use."""

        def mock_encode(text):
            if "System prompt" in text:
                return ["token"] * 500
            return ["token"] * 2500

        anthropic_client.tokenizer.encode.side_effect = mock_encode

        messages = [
            AnthropicMessage(role="user", content="Plan my trip"),
            AnthropicMessage(role="assistant", content=[ToolUseBlock(id="tu_1", name="todo_list", input={})]),
            AnthropicMessage(role="user", content=[ToolResultBlock(tool_use_id="tu_1", content="{}")]),
            AnthropicMessage(role="assistant", content=[TextBlock(text="Created")]),
            AnthropicMessage(role="user", content="Thanks"),
        ]

        result = anthropic_client.truncate_conversation(messages, "System prompt")

        assert result == [messages[-1]]

    def test_truncate_conversation_empty_messages(self, anthropic_client):
        """Test truncation with empty message list."""
        assert anthropic_client.truncate_conversation([], "System prompt") == []


class TestCreateMessage:
    """Tests for non-streaming requests."""

    @pytest.mark.asyncio
    async def test_create_message_converts_response(self):
        client = make_client()
        client.tokenizer = None
        response = SimpleNamespace(
            content=[
                AnthropicTextBlock(type="text", text="Deciding"),
                AnthropicToolUseBlock(type="tool_use", id="tu_1", name="record_next_speaker", input={"x": 1}),
            ],
            stop_reason="tool_use",
            usage=SimpleNamespace(input_tokens=10, output_tokens=5),
            model="claude-test",
        )
        client.client = Mock()
        client.client.messages.create = AsyncMock(return_value=response)
        tool = LLMToolDefinition(name="record_next_speaker", description="", input_schema={"type": "object"})

        result = await client.create_message(
            [AnthropicMessage(role="user", content="hi")],
            "System prompt",
            tools=[tool],
            tool_choice={"type": "tool", "name": "record_next_speaker"},
        )

        assert result.content == [TextBlock(text="Deciding"), ToolUseBlock(id="tu_1", name="record_next_speaker", input={"x": 1})]
        assert result.usage.total_tokens == 15
        params = client.client.messages.create.call_args.kwargs
        assert params["tool_choice"] == {"type": "tool", "name": "record_next_speaker"}
        assert params["tools"][0]["name"] == "record_next_speaker"
        assert params["messages"] == [{"role": "user", "content": "hi"}]
        client.rate_limiter.check_rate_limit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_server_errors_retried(self):
        """Test that 5xx responses are retried with backoff."""
        client = make_client(AnthropicConfig(retry_delay=0))
        error = anthropic.InternalServerError(
            message="overloaded",
            response=httpx.Response(500, request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")),
            body=None,
        )
        call = AsyncMock(side_effect=[error, "ok"])

        assert await client._request_with_retries(call) == "ok"
        assert call.await_count == 2

    @pytest.mark.asyncio
    async def test_client_errors_not_retried(self):
        client = make_client(AnthropicConfig(retry_delay=0))
        error = anthropic.BadRequestError(
            message="bad",
            response=httpx.Response(400, request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")),
            body=None,
        )
        call = AsyncMock(side_effect=error)

        with pytest.raises(anthropic.BadRequestError):
            await client._request_with_retries(call)
        assert call.await_count == 1


class FakeStream:
    """Stands in for the SDK's message stream context manager."""

    def __init__(self, events):
        self.events = events

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for event in self.events:
            yield event


class TestStreamMessage:
    """Tests for streaming requests."""

    @pytest.mark.asyncio
    async def test_stream_yields_sdk_events(self):
        client = make_client()
        client.tokenizer = None
        events = [SimpleNamespace(type="text", text="Hel"), SimpleNamespace(type="text", text="lo")]
        client.client = Mock()
        client.client.messages.stream = Mock(return_value=FakeStream(events))

        received = [event async for event in client.stream_message([AnthropicMessage(role="user", content="hi")], "sys")]

        assert received == events
        params = client.client.messages.stream.call_args.kwargs
        assert "tools" not in params
        assert params["system"] == "sys"
        assert params["model"] == client.config.model
