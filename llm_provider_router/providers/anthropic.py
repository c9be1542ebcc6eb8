"""Anthropic provider implementation."""

from typing import Any

from .base import (
    CONVERSATION_START,
    BaseProvider,
    merge_consecutive_roles,
    split_system_messages,
)
from ..models import CompletionRequest, Role, ProviderType, Usage

JSON_INSTRUCTION = (
    "CRITICAL: You must respond with valid JSON only. No markdown fences, no preamble, "
    "no explanation outside the JSON. Start your response with {"
)


class AnthropicProvider(BaseProvider):
    """Anthropic Messages API provider.

    Differences from OpenAI:
    1. System messages go in the separate ``system`` parameter.
    2. Turns must strictly alternate user/assistant, so consecutive same-role
       messages are merged and a leading assistant turn gets a synthetic user
       turn in front of it.
    3. There is no JSON flag. JSON mode adds an instruction to the system
       prompt and prefills the assistant turn with ``{``; the reply is then a
       continuation, so ``{`` is put back in front of it.
    """

    provider_type = ProviderType.ANTHROPIC

    def _get_default_base_url(self) -> str:
        return "https://api.anthropic.com"

    def _get_headers(self) -> dict[str, str]:
        """Get HTTP headers for Anthropic API."""
        headers = super()._get_headers()
        headers.update({
            "anthropic-version": "2023-06-01",
            "x-api-key": self.config.api_key,
        })
        return headers

    def _get_endpoint(self) -> str:
        return "/v1/messages"

    def _format_messages(self, request: CompletionRequest) -> tuple[str, list[dict[str, str]]]:
        """Return the system prompt and the alternating message list."""
        system_prompt, rest = split_system_messages(request.messages)
        formatted = [
            {"role": msg.role.value, "content": msg.content}
            for msg in merge_consecutive_roles(rest)
        ]
        if formatted and formatted[0]["role"] != Role.USER.value:
            formatted.insert(0, {"role": Role.USER.value, "content": CONVERSATION_START})
        return system_prompt, formatted

    def _build_payload(self, request: CompletionRequest) -> dict[str, Any]:
        system_prompt, messages = self._format_messages(request)

        if request.json_mode:
            system_prompt = f"{system_prompt}\n\n{JSON_INSTRUCTION}" if system_prompt else JSON_INSTRUCTION
            # Prefilling only keeps alternation valid after a user turn
            if messages and messages[-1]["role"] == Role.USER.value:
                messages.append({"role": Role.ASSISTANT.value, "content": "{"})

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }
        if system_prompt:
            payload["system"] = system_prompt
        return payload

    def _parse_response(self, data: dict[str, Any]) -> tuple[str, str, Usage]:
        content = ""
        for block in data.get("content") or []:
            if block.get("type") == "text":
                content = block.get("text", "")
                break

        usage_data = data.get("usage") or {}
        usage = Usage.from_counts(
            usage_data.get("input_tokens", 0),
            usage_data.get("output_tokens", 0),
        )
        return content, data.get("model", self.model), usage

    def _postprocess_content(self, content: str, request: CompletionRequest) -> str:
        if request.json_mode and not content.lstrip().startswith("{"):
            return "{" + content
        return content

    async def _ping(self) -> bool:
        data = await self._send(
            "POST",
            self._get_endpoint(),
            {
                "model": self.model,
                "max_tokens": 10,
                "messages": [{"role": Role.USER.value, "content": "ping"}],
            },
        )
        return bool(data.get("content"))
