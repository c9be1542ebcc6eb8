"""Test configuration and fixtures."""

import asyncio
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from llm_provider_router.models import (
    CompletionRequest,
    CompletionResponse,
    Message,
    ProviderConfig,
    ProviderType,
    Role,
    Usage,
)
from llm_provider_router.tools import ToolDefinition, ToolResult


class FakeClock:
    """Manually advanced clock for breaker and rate limiter tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubProvider:
    """In-memory provider whose replies are scripted per call.

    Each entry of `outcomes` is used for one call: an exception instance is
    raised, a string becomes the reply content. Once the script runs out every
    call succeeds.
    """

    def __init__(
        self,
        provider_type: ProviderType,
        outcomes: list[Any] | None = None,
        delay: float = 0.0,
        healthy: bool = True,
    ):
        self.provider_type = provider_type
        self.provider_name = provider_type.value
        self.outcomes = list(outcomes or [])
        self.delay = delay
        self.healthy = healthy
        self.calls = 0
        self.closed = False

    @property
    def model(self) -> str:
        return f"{self.provider_name}-model"

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0) if self.outcomes else f"reply from {self.provider_name}"
        if isinstance(outcome, BaseException):
            raise outcome
        return CompletionResponse(
            content=outcome,
            model=self.model,
            provider=self.provider_type,
            usage=Usage.from_counts(10, 5),
            latency_ms=1,
        )

    async def health_check(self) -> bool:
        return self.healthy

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def make_provider():
    """Factory for scripted stub providers."""
    return StubProvider


@pytest.fixture
def mock_openai_response():
    """Mock OpenAI API response."""
    return {
        "id": "chatcmpl-123",
        "object": "chat.completion",
        "created": 1677652288,
        "model": "gpt-4o-mini",
        "choices": [
            {
                "index": 0,
                "message": {
                    "role": "assistant",
                    "content": "Hello! I'm doing well, thank you for asking.",
                },
                "finish_reason": "stop",
            }
        ],
        "usage": {
            "prompt_tokens": 10,
            "completion_tokens": 8,
            "total_tokens": 18,
        },
    }


@pytest.fixture
def mock_anthropic_response():
    """Mock Anthropic API response."""
    return {
        "id": "msg_123",
        "type": "message",
        "role": "assistant",
        "content": [
            {
                "type": "text",
                "text": "Hello! I'm doing well, thank you for asking.",
            }
        ],
        "model": "claude-sonnet-4-20250514",
        "stop_reason": "end_turn",
        "usage": {
            "input_tokens": 10,
            "output_tokens": 8,
        },
    }


@pytest.fixture
def mock_gemini_response():
    """Mock Gemini generateContent response."""
    return {
        "candidates": [
            {
                "content": {
                    "role": "model",
                    "parts": [{"text": "Hello! "}, {"text": "I'm doing well."}],
                },
                "finishReason": "STOP",
            }
        ],
        "usageMetadata": {
            "promptTokenCount": 12,
            "candidatesTokenCount": 6,
        },
        "modelVersion": "gemini-2.0-flash",
    }


@pytest.fixture
def sample_messages():
    """Sample messages for testing."""
    return [
        Message(role=Role.SYSTEM, content="You are a helpful assistant."),
        Message(role=Role.USER, content="Hello, how are you?"),
    ]


@pytest.fixture
def sample_request(sample_messages):
    """Sample completion request."""
    return CompletionRequest(messages=sample_messages, temperature=0.5, max_tokens=100)


@pytest.fixture
def openai_config():
    """OpenAI provider configuration."""
    return ProviderConfig(
        name=ProviderType.OPENAI,
        api_key="test-openai-key",
        model="gpt-4o-mini",
        timeout_ms=5000,
    )


@pytest.fixture
def anthropic_config():
    """Anthropic provider configuration."""
    return ProviderConfig(
        name=ProviderType.ANTHROPIC,
        api_key="test-anthropic-key",
        model="claude-sonnet-4-20250514",
    )


@pytest.fixture
def gemini_config():
    """Gemini provider configuration."""
    return ProviderConfig(
        name=ProviderType.GEMINI,
        api_key="test-gemini-key",
        model="gemini-2.0-flash",
    )


@pytest.fixture
def mock_httpx_client():
    """Mock httpx.AsyncClient used by every provider."""
    with patch("llm_provider_router.providers.base.AsyncClient") as mock_client:
        mock_instance = AsyncMock()
        mock_client.return_value = mock_instance
        yield mock_instance


@pytest.fixture
def make_tool():
    """Factory for tool definitions with a recording handler."""

    def factory(name: str = "search_products", handler=None, **overrides: Any) -> ToolDefinition:
        async def default_handler(args: dict[str, Any], ctx: Any) -> ToolResult:
            return ToolResult(success=True, data={"echo": args})

        fields: dict[str, Any] = {
            "name": name,
            "description": f"{name} tool",
            "input_schema": {
                "type": "object",
                "properties": {"query": {"type": "string"}},
                "required": ["query"],
            },
            "rate_limit_per_minute": 5,
            "handler": handler or default_handler,
        }
        fields.update(overrides)
        return ToolDefinition(**fields)

    return factory
