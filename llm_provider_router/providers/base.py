"""Base provider interface."""

import json
import time
from abc import ABC, abstractmethod
from typing import Any

import httpx
from httpx import AsyncClient, Timeout

from ..exceptions import AuthenticationError, ProviderError, RateLimitError
from ..logging import get_logger
from ..models import (
    CompletionRequest,
    CompletionResponse,
    Message,
    ProviderConfig,
    ProviderType,
    Role,
    Usage,
)

# Inserted when a backend requires the conversation to open with a user turn
CONVERSATION_START = "(conversation start)"


def split_system_messages(messages: list[Message]) -> tuple[str, list[Message]]:
    """Pull every system message out of the sequence, joined by blank lines."""
    system_parts = []
    rest = []
    for msg in messages:
        if msg.role == Role.SYSTEM:
            system_parts.append(msg.content)
        else:
            rest.append(msg)
    return "\n\n".join(system_parts), rest


def merge_consecutive_roles(messages: list[Message]) -> list[Message]:
    """Merge runs of same-role messages, joining their content with a blank line."""
    merged: list[Message] = []
    for msg in messages:
        if merged and merged[-1].role == msg.role:
            merged[-1] = Message(role=msg.role, content=f"{merged[-1].content}\n\n{msg.content}")
        else:
            merged.append(msg)
    return merged


class BaseProvider(ABC):
    """Base class for LLM providers.

    Subclasses translate a generic CompletionRequest into their backend's wire
    format and the reply back into content, model and usage. Each call makes
    exactly one HTTP attempt; failover between backends is the router's job.
    """

    provider_type: ProviderType

    def __init__(self, config: ProviderConfig):
        self.config = config
        self.client = AsyncClient(
            timeout=Timeout(timeout=config.timeout_seconds),
            headers=self._get_headers(),
            base_url=config.base_url or self._get_default_base_url(),
        )
        self.logger = get_logger()
        self.provider_name = config.name.value

    @property
    def model(self) -> str:
        return self.config.model

    def _get_headers(self) -> dict[str, str]:
        """Get HTTP headers for the provider."""
        return {"content-type": "application/json"}

    @abstractmethod
    def _get_default_base_url(self) -> str:
        """Get the default base URL for the provider."""
        pass

    @abstractmethod
    def _get_endpoint(self) -> str:
        """Get the API endpoint for completions."""
        pass

    @abstractmethod
    def _build_payload(self, request: CompletionRequest) -> dict[str, Any]:
        """Translate a generic request into the provider's request body."""
        pass

    @abstractmethod
    def _parse_response(self, data: dict[str, Any]) -> tuple[str, str, Usage]:
        """Extract (content, model, usage) from the provider's response body."""
        pass

    @abstractmethod
    async def _ping(self) -> bool:
        """Cheapest live call the provider supports."""
        pass

    def _postprocess_content(self, content: str, request: CompletionRequest) -> str:
        return content

    def _handle_error(
        self,
        status_code: int,
        error_data: dict[str, Any],
        retry_after: int | None = None,
    ) -> None:
        """Handle provider-specific errors."""
        error = error_data.get("error", {})
        if isinstance(error, dict):
            error_message = error.get("message", "Unknown error")
            error_type = error.get("type") or error.get("status") or "unknown"
        else:
            error_message = str(error) or "Unknown error"
            error_type = "unknown"

        if status_code in (401, 403):
            raise AuthenticationError(error_message, self.provider_name, status_code)
        elif status_code == 429:
            raise RateLimitError(error_message, self.provider_name, retry_after)
        elif status_code >= 400:
            raise ProviderError(
                error_message, self.provider_name, error_type, error_data, status_code
            )
        else:
            raise ProviderError(
                f"unexpected HTTP status {status_code}: {error_message}",
                self.provider_name,
                "unexpected_status",
                error_data,
                status_code,
            )

    async def _send(self, method: str, endpoint: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        """Make a single HTTP call and return the decoded JSON body."""
        try:
            response = await self.client.request(method, endpoint, json=payload)
        except httpx.HTTPError as e:
            raise ProviderError(
                f"{type(e).__name__}: {e}", self.provider_name, "transport_error"
            ) from e

        if not response.is_success:
            try:
                error_data = response.json()
            except json.JSONDecodeError:
                error_data = {"error": {"message": response.text}}
            retry_after = response.headers.get("retry-after")
            self.logger.logger.warning(
                f"Provider {self.provider_name}: request failed, "
                f"status: {response.status_code}"
            )
            self._handle_error(
                response.status_code,
                error_data,
                int(retry_after) if retry_after and retry_after.isdigit() else None,
            )

        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise ProviderError(
                "malformed response body", self.provider_name, "malformed_response"
            ) from e
        if not isinstance(data, dict):
            raise ProviderError(
                "malformed response body", self.provider_name, "malformed_response"
            )
        return data

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Send a completion request and normalize the reply."""
        start_time = time.monotonic()
        payload = self._build_payload(request)

        self.logger.logger.debug(
            f"Provider {self.provider_name}: sending {len(request.messages)} messages "
            f"to {self.model}, json_mode={request.json_mode}"
        )

        data = await self._send("POST", self._get_endpoint(), payload)
        try:
            content, model, usage = self._parse_response(data)
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise ProviderError(
                f"malformed response: {e}", self.provider_name, "malformed_response"
            ) from e

        if not content:
            raise ProviderError("empty response", self.provider_name, "empty_response")

        return CompletionResponse(
            content=self._postprocess_content(content, request),
            model=model or self.model,
            provider=self.provider_type,
            usage=usage,
            latency_ms=int((time.monotonic() - start_time) * 1000),
        )

    async def health_check(self) -> bool:
        """Lightweight connectivity check. Never raises."""
        try:
            return await self._ping()
        except Exception as e:
            self.logger.logger.warning(
                f"Provider {self.provider_name}: health check failed: "
                f"{type(e).__name__}: {e}"
            )
            return False

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
