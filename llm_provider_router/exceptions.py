"""Exceptions for LLM Provider Router."""

from typing import Any


class LLMError(Exception):
    """Base exception for LLM router errors."""
    def __init__(self, message: str, provider: str | None = None, status_code: int | None = None):
        self.message = message
        self.provider = provider
        self.status_code = status_code
        super().__init__(message)


class ProviderError(LLMError):
    """Raised when a backend call fails: transport, malformed reply or empty content."""
    def __init__(self, message: str, provider: str, error_type: str | None = None,
                 error_data: dict[str, Any] | None = None, status_code: int | None = None):
        self.error_type = error_type
        self.error_data = error_data
        super().__init__(f"Provider error for {provider}: {message}", provider, status_code)


class RateLimitError(ProviderError):
    """Raised when the backend rejects the call with a rate limit."""
    def __init__(self, message: str, provider: str, retry_after: int | None = None):
        self.retry_after = retry_after
        super().__init__(f"rate limit exceeded: {message}", provider, "rate_limit_error",
                         status_code=429)


class AuthenticationError(ProviderError):
    """Raised when authentication fails."""
    def __init__(self, message: str, provider: str, status_code: int = 401):
        super().__init__(f"authentication failed: {message}", provider, "authentication_error",
                         status_code=status_code)


class NoAvailableProviderError(LLMError):
    """Raised when every candidate provider failed or was circuit-open."""
    def __init__(self, message: str = "No available providers", last_error: Exception | None = None):
        self.last_error = last_error
        super().__init__(message)


class RequestCancelledError(LLMError):
    """Raised when the caller's cancellation signal fires during a request."""
    def __init__(self, message: str = "Request cancelled by caller", provider: str | None = None):
        super().__init__(message, provider)


class ConfigurationError(LLMError):
    """Raised when there's a configuration error."""
    def __init__(self, message: str):
        super().__init__(f"Configuration error: {message}")


class ToolRegistrationError(LLMError):
    """Raised when a tool definition cannot be registered."""
    def __init__(self, message: str, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Cannot register tool {tool_name!r}: {message}")
