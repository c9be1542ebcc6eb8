"""OpenAI provider implementation."""

from typing import Any

from .base import BaseProvider
from ..models import CompletionRequest, ProviderType, Usage


class OpenAIProvider(BaseProvider):
    """OpenAI chat completions provider.

    Messages are sent as-is, system messages included. JSON mode uses the
    native ``response_format`` flag.
    """

    provider_type = ProviderType.OPENAI

    def _get_default_base_url(self) -> str:
        return "https://api.openai.com/v1"

    def _get_headers(self) -> dict[str, str]:
        headers = super()._get_headers()
        headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def _get_endpoint(self) -> str:
        return "/chat/completions"

    def _build_payload(self, request: CompletionRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": msg.role.value, "content": msg.content}
                for msg in request.messages
            ],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        if request.json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload

    def _parse_response(self, data: dict[str, Any]) -> tuple[str, str, Usage]:
        choices = data.get("choices") or []
        content = ""
        if choices:
            content = (choices[0].get("message") or {}).get("content") or ""

        usage_data = data.get("usage") or {}
        usage = Usage.from_counts(
            usage_data.get("prompt_tokens"),
            usage_data.get("completion_tokens"),
            usage_data.get("total_tokens"),
        )
        return content, data.get("model", self.model), usage

    async def _ping(self) -> bool:
        await self._send("GET", "/models")
        return True
