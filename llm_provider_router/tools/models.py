"""Data models for tool definitions and invocations."""

from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field


class AuthLevel(str, Enum):
    """Credentials a tool needs before it may run."""
    NONE = "none"
    SERVICE = "service"
    TENANT = "tenant"


class Channel(str, Enum):
    """Inbound channel a conversation arrived on."""
    WHATSAPP = "whatsapp"
    BUSINESS_CHAT = "business_chat"
    WEB = "web"


class ToolContext(BaseModel):
    """Who is invoking a tool, and from where."""
    tenant_id: str = "default"
    channel: Channel = Channel.WEB
    conversation_id: str
    visitor_id: str = ""
    request_id: str = ""

    model_config = ConfigDict(frozen=True)


class ToolResult(BaseModel):
    """Uniform result envelope for every tool invocation."""
    success: bool
    data: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "ToolResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error)


ToolHandler = Callable[[dict[str, Any], ToolContext], Awaitable[Any]]


class ToolDefinition(BaseModel):
    """Immutable description of a registered tool."""
    name: str = Field(min_length=1)
    version: str = "1.0.0"
    description: str
    input_schema: dict[str, Any] = Field(default_factory=lambda: {"type": "object"})
    output_schema: dict[str, Any] = Field(default_factory=dict)
    auth_level: AuthLevel = AuthLevel.NONE
    rate_limit_per_minute: int = Field(default=10, ge=1)
    allowed_channels: list[Channel] = Field(default_factory=lambda: list(Channel))
    feature_flag_key: str = ""
    handler: ToolHandler
    retryable: bool = False
    retry_delay_seconds: float = Field(default=1.0, ge=0.0)

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


class ToolFailureContext(BaseModel):
    """Structured description of a failed tool call, for escalation."""
    tool_name: str
    error_type: str
    attempts: int
    last_error: str
    suggestion: str
