"""Google Gemini provider implementation."""

from typing import Any

from .base import (
    CONVERSATION_START,
    BaseProvider,
    merge_consecutive_roles,
    split_system_messages,
)
from ..models import CompletionRequest, ProviderType, Role, Usage


class GeminiProvider(BaseProvider):
    """Google Gemini generateContent provider.

    Differences from OpenAI:
    1. System messages become the separate ``systemInstruction``.
    2. The assistant role is called ``model`` and content is a list of parts.
    3. Consecutive same-role turns are merged and the conversation must open
       with a user turn.
    4. JSON mode sets ``responseMimeType`` to ``application/json``.
    """

    provider_type = ProviderType.GEMINI

    def _get_default_base_url(self) -> str:
        return "https://generativelanguage.googleapis.com"

    def _get_headers(self) -> dict[str, str]:
        headers = super()._get_headers()
        headers["x-goog-api-key"] = self.config.api_key
        return headers

    def _get_endpoint(self) -> str:
        return f"/v1beta/models/{self.model}:generateContent"

    def _build_contents(self, request: CompletionRequest) -> tuple[str, list[dict[str, Any]]]:
        """Return the system instruction and Gemini ``contents``."""
        system_instruction, rest = split_system_messages(request.messages)
        contents = [
            {
                "role": "model" if msg.role == Role.ASSISTANT else "user",
                "parts": [{"text": msg.content}],
            }
            for msg in merge_consecutive_roles(rest)
        ]
        if contents and contents[0]["role"] != "user":
            contents.insert(0, {"role": "user", "parts": [{"text": CONVERSATION_START}]})
        return system_instruction, contents

    def _build_payload(self, request: CompletionRequest) -> dict[str, Any]:
        system_instruction, contents = self._build_contents(request)

        generation_config: dict[str, Any] = {
            "temperature": request.temperature,
            "maxOutputTokens": request.max_tokens,
        }
        if request.json_mode:
            generation_config["responseMimeType"] = "application/json"

        payload: dict[str, Any] = {
            "contents": contents,
            "generationConfig": generation_config,
        }
        if system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        return payload

    def _parse_response(self, data: dict[str, Any]) -> tuple[str, str, Usage]:
        content = ""
        candidates = data.get("candidates") or []
        if candidates:
            parts = (candidates[0].get("content") or {}).get("parts") or []
            content = "".join(part.get("text", "") for part in parts)

        usage_data = data.get("usageMetadata") or {}
        usage = Usage.from_counts(
            usage_data.get("promptTokenCount"),
            usage_data.get("candidatesTokenCount"),
            usage_data.get("totalTokenCount"),
        )
        return content, data.get("modelVersion", self.model), usage

    async def _ping(self) -> bool:
        await self._send("GET", f"/v1beta/models/{self.model}")
        return True
