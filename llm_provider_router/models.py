"""Data models for LLM Provider Router."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Role(str, Enum):
    """Message role enumeration."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """A message in a chat conversation."""
    role: Role
    content: str

    model_config = ConfigDict(frozen=True)


class ProviderType(str, Enum):
    """Supported LLM provider types."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"


class RoutingStrategy(str, Enum):
    """How the router orders candidate providers for a request."""
    FIXED = "fixed"
    INTENT = "intent"
    SPLIT_TEST = "split-test"

    @classmethod
    def parse(cls, value: "str | RoutingStrategy") -> "RoutingStrategy":
        """Parse a strategy name, accepting the legacy ``config``/``ab_test`` names."""
        if isinstance(value, RoutingStrategy):
            return value
        aliases = {"config": cls.FIXED, "ab_test": cls.SPLIT_TEST, "split_test": cls.SPLIT_TEST}
        normalized = value.strip().lower()
        if normalized in aliases:
            return aliases[normalized]
        return cls(normalized)


class ProviderConfig(BaseModel):
    """Configuration for an LLM provider."""
    name: ProviderType
    api_key: str
    model: str
    max_tokens: int = Field(default=2048, ge=1)
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    timeout_ms: int = Field(default=30000, ge=1)
    base_url: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


class RoutingConfig(BaseModel):
    """Routing settings, loaded once and immutable for the process lifetime."""
    primary_provider: ProviderType
    secondary_provider: Optional[ProviderType] = None
    tertiary_provider: Optional[ProviderType] = None
    strategy: RoutingStrategy = RoutingStrategy.FIXED
    split_percent: int = Field(default=80, ge=0, le=100)
    intent_overrides: dict[str, ProviderType] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @field_validator("strategy", mode="before")
    @classmethod
    def _parse_strategy(cls, value: object) -> object:
        if isinstance(value, str):
            return RoutingStrategy.parse(value)
        return value

    @property
    def chain(self) -> list[ProviderType]:
        """Configured failover chain: primary, then secondary, then tertiary."""
        chain = [self.primary_provider]
        for provider in (self.secondary_provider, self.tertiary_provider):
            if provider is not None and provider not in chain:
                chain.append(provider)
        return chain


class RoutingContext(BaseModel):
    """Per-call routing information."""
    conversation_id: str
    channel: str = "web"
    intent: Optional[str] = None
    request_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class CompletionRequest(BaseModel):
    """Provider-independent completion request."""
    messages: list[Message]
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1024, ge=1)
    json_mode: bool = False

    model_config = ConfigDict(frozen=True)


class Usage(BaseModel):
    """Token usage information."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_counts(
        cls,
        prompt_tokens: int | None = None,
        completion_tokens: int | None = None,
        total_tokens: int | None = None,
    ) -> "Usage":
        """Build usage from whatever the backend reported, deriving the missing count."""
        if total_tokens is None:
            total_tokens = (prompt_tokens or 0) + (completion_tokens or 0)
        elif completion_tokens is None:
            completion_tokens = max(total_tokens - (prompt_tokens or 0), 0)
        elif prompt_tokens is None:
            prompt_tokens = max(total_tokens - completion_tokens, 0)
        return cls(
            prompt_tokens=prompt_tokens or 0,
            completion_tokens=completion_tokens or 0,
            total_tokens=total_tokens,
        )


class CompletionResponse(BaseModel):
    """Normalized response from whichever provider served the request."""
    content: str
    model: str
    provider: ProviderType
    usage: Usage
    latency_ms: int = Field(ge=0)
