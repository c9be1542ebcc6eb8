"""Tool registry, policies and governed runtime."""

from .models import (
    AuthLevel,
    Channel,
    ToolContext,
    ToolDefinition,
    ToolFailureContext,
    ToolHandler,
    ToolResult,
)
from .policy import AllowAllPolicy, ChannelPolicy, TenantSettings, TenantToolPolicy, ToolPolicy
from .registry import ToolRegistry
from .runtime import DEFAULT_TOOL_TIMEOUT_SECONDS, ToolRuntime

__all__ = [
    "AuthLevel",
    "Channel",
    "ToolContext",
    "ToolDefinition",
    "ToolFailureContext",
    "ToolHandler",
    "ToolResult",
    "ToolPolicy",
    "AllowAllPolicy",
    "ChannelPolicy",
    "TenantSettings",
    "TenantToolPolicy",
    "ToolRegistry",
    "ToolRuntime",
    "DEFAULT_TOOL_TIMEOUT_SECONDS",
]
