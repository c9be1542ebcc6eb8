"""LLM Provider Router - multi-provider LLM routing with failover and governed tool execution."""

__version__ = "0.1.0"

from .models import (
    CompletionRequest,
    CompletionResponse,
    Message,
    ProviderConfig,
    ProviderType,
    Role,
    RoutingConfig,
    RoutingContext,
    RoutingStrategy,
    Usage,
)
from .router import LLMRouter
from .circuit_breaker import CircuitBreaker
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    LLMError,
    NoAvailableProviderError,
    ProviderError,
    RateLimitError,
    RequestCancelledError,
    ToolRegistrationError,
)
from .config import RouterConfig, create_router, create_tool_runtime
from .tools import ToolContext, ToolDefinition, ToolRegistry, ToolResult, ToolRuntime

__all__ = [
    "LLMRouter",
    "CircuitBreaker",
    "Message",
    "Role",
    "CompletionRequest",
    "CompletionResponse",
    "Usage",
    "ProviderConfig",
    "ProviderType",
    "RoutingConfig",
    "RoutingContext",
    "RoutingStrategy",
    "RouterConfig",
    "create_router",
    "create_tool_runtime",
    "ToolContext",
    "ToolDefinition",
    "ToolRegistry",
    "ToolResult",
    "ToolRuntime",
    "LLMError",
    "ProviderError",
    "RateLimitError",
    "AuthenticationError",
    "NoAvailableProviderError",
    "RequestCancelledError",
    "ConfigurationError",
    "ToolRegistrationError",
]
