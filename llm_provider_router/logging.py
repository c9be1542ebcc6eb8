"""Logging system for LLM Provider Router."""

import json
import logging
import logging.handlers
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4

from .models import CompletionResponse

# Argument keys whose values never reach the logs
SENSITIVE_KEYS = {
    "phone", "email", "address", "password", "token", "api_key", "card_number", "otp",
}


# Patterns masked inside any string value, applied in this order
VALUE_PATTERNS = (
    (re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"), "[EMAIL_REDACTED]"),
    (re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b"), "[CC_REDACTED]"),
    (re.compile(r"\b\d{3}-\d{2}-\d{4}\b"), "[SSN_REDACTED]"),
    (re.compile(r"\+?\d[\d\s\-().]{7,}\d"), "[PHONE_REDACTED]"),
)


def redact_text(text: str) -> str:
    """Mask emails, card numbers, SSNs and phone numbers in free text."""
    for pattern, replacement in VALUE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def _redact_value(value: Any) -> Any:
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, dict):
        return redact_args(value)
    if isinstance(value, (list, tuple)):
        return [_redact_value(item) for item in value]
    return value


def redact_args(args: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of tool arguments with sensitive keys and values masked."""
    redacted: dict[str, Any] = {}
    for key, value in args.items():
        if str(key).lower() in SENSITIVE_KEYS:
            redacted[key] = "[redacted]"
        else:
            redacted[key] = _redact_value(value)
    return redacted


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class RouterLogger:
    """Logger for routing attempts, failovers, circuit breakers and tool calls."""

    def __init__(self, log_dir: str | None = None, log_level: str = "INFO"):
        """Initialize the logger.

        Args:
            log_dir: Directory for structured JSONL logs; console only when None
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        """
        self.log_dir = Path(log_dir) if log_dir else None
        if self.log_dir is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)

        # Generate a unique session ID for this run
        self.session_id = str(uuid4())[:8]

        self.start_time = datetime.now(timezone.utc)
        self.datetime_str = self.start_time.strftime("%Y%m%d_%H%M%S")

        self._setup_logging(log_level)

    def _setup_logging(self, log_level: str) -> None:
        """Set up logging configuration."""
        self.logger = logging.getLogger("llm_provider_router")
        self.logger.setLevel(getattr(logging, log_level.upper()))
        self.logger.handlers.clear()

        detailed_formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

        console_handler = logging.StreamHandler()
        console_handler.setLevel(getattr(logging, log_level.upper()))
        console_handler.setFormatter(detailed_formatter)
        self.logger.addHandler(console_handler)

        # Separate logger for structured JSON lines
        self.json_logger = logging.getLogger(f"llm_provider_router.json.{self.session_id}")
        self.json_logger.setLevel(logging.DEBUG)
        self.json_logger.handlers.clear()
        self.json_logger.propagate = False

        if self.log_dir is None:
            self.json_logger.addHandler(logging.NullHandler())
            return

        json_formatter = logging.Formatter("%(message)s")

        log_file = self.log_dir / f"router_{self.datetime_str}_{self.session_id}.jsonl"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(json_formatter)
        self.json_logger.addHandler(file_handler)

        error_file = (
            self.log_dir / f"router_{self.datetime_str}_{self.session_id}_errors.jsonl"
        )
        error_handler = logging.FileHandler(error_file, encoding="utf-8")
        error_handler.setLevel(logging.WARNING)
        error_handler.setFormatter(json_formatter)
        self.json_logger.addHandler(error_handler)

        self.logger.info(f"Logging initialized. Session ID: {self.session_id}")
        self.logger.info(f"Log files: {log_file}, {error_file}")

    def _entry(self, entry_type: str, **fields: Any) -> str:
        return json.dumps(
            {
                "timestamp": _now(),
                "type": entry_type,
                "session_id": self.session_id,
                **fields,
            },
            default=str,
        )

    def log_attempt(
        self,
        request_id: str,
        provider_name: str,
        model: str,
        attempt: int,
        candidate_count: int,
        message_count: int,
        json_mode: bool,
    ) -> None:
        """Log a call about to be sent to one provider."""
        self.json_logger.debug(
            self._entry(
                "attempt",
                request_id=request_id,
                provider=provider_name,
                model=model,
                attempt=attempt,
                candidate_count=candidate_count,
                message_count=message_count,
                json_mode=json_mode,
            )
        )
        self.logger.debug(
            f"Request {request_id[:8]} to {provider_name}: "
            f"model={model}, attempt {attempt}/{candidate_count}, messages={message_count}"
        )

    def log_response(
        self,
        request_id: str,
        response: CompletionResponse,
    ) -> None:
        """Log a successful response."""
        provider_name = response.provider.value
        self.json_logger.debug(
            self._entry(
                "response",
                request_id=request_id,
                provider=provider_name,
                model=response.model,
                latency_ms=response.latency_ms,
                usage=response.usage.model_dump(),
                content_length=len(response.content),
            )
        )
        self.logger.info(
            f"Response {request_id[:8]} from {provider_name}: "
            f"duration={response.latency_ms}ms, "
            f"tokens={response.usage.total_tokens}"
        )

    def log_error(
        self,
        request_id: str,
        provider_name: str,
        error_type: str,
        error_message: str,
        status_code: int | None = None,
    ) -> None:
        """Log an error."""
        self.json_logger.error(
            self._entry(
                "error",
                request_id=request_id,
                provider=provider_name,
                error_type=error_type,
                error_message=error_message,
                status_code=status_code,
            )
        )

        error_msg = (
            f"Error {request_id[:8]} from {provider_name}: "
            f"{error_type}: {error_message}"
        )
        if status_code:
            error_msg += f" (status: {status_code})"

        self.logger.error(error_msg)

    def log_fallback(
        self,
        request_id: str,
        from_provider: str,
        to_provider: str,
        reason: str,
    ) -> None:
        """Log a successful failover to another provider."""
        self.json_logger.warning(
            self._entry(
                "fallback",
                request_id=request_id,
                from_provider=from_provider,
                to_provider=to_provider,
                reason=reason,
            )
        )
        self.logger.warning(
            f"Fallback {request_id[:8]}: {from_provider} -> {to_provider} - {reason}"
        )

    def log_circuit_skip(self, request_id: str, provider_name: str, open_until: float) -> None:
        """Log a provider skipped because its circuit breaker is open."""
        self.json_logger.debug(
            self._entry(
                "circuit_skip",
                request_id=request_id,
                provider=provider_name,
                open_until=open_until,
            )
        )
        self.logger.debug(f"Request {request_id[:8]}: circuit open for {provider_name}, skipping")

    def log_circuit_open(self, provider_name: str, failures: int, cooldown_seconds: float) -> None:
        """Log a circuit breaker opening."""
        self.json_logger.error(
            self._entry(
                "circuit_open",
                provider=provider_name,
                failures=failures,
                cooldown_seconds=cooldown_seconds,
            )
        )
        self.logger.error(
            f"Circuit breaker opened for {provider_name} after {failures} "
            f"consecutive failures ({cooldown_seconds:.0f}s cooldown)"
        )

    def log_tool_call(
        self,
        tool: str,
        version: str,
        args: dict[str, Any],
        success: bool,
        error: str | None,
        duration_ms: float,
        request_id: str,
        conversation_id: str,
        tenant_id: str,
    ) -> None:
        """Log a completed tool invocation. Result data is never logged."""
        self.json_logger.info(
            self._entry(
                "tool_call",
                tool=tool,
                version=version,
                args=redact_args(args),
                success=success,
                error=error,
                duration_ms=duration_ms,
                request_id=request_id,
                conversation_id=conversation_id,
                tenant_id=tenant_id,
            )
        )
        status = "ok" if success else f"failed: {error}"
        self.logger.info(
            f"Tool {tool}@{version} for conversation {conversation_id}: "
            f"{status} ({duration_ms:.0f}ms)"
        )

    def log_configuration(
        self,
        config_type: str,
        details: dict[str, Any],
    ) -> None:
        """Log configuration details."""
        self.json_logger.info(
            self._entry("configuration", config_type=config_type, details=details)
        )

        if config_type == "router_start":
            self.logger.info(
                f"Router started with {details.get('provider_count', 0)} providers, "
                f"strategy={details.get('strategy')}, chain={details.get('chain')}"
            )
        elif config_type == "tool_registered":
            self.logger.info(
                f"Tool registered: {details.get('name')}@{details.get('version')}"
            )


# Global logger instance
_logger: RouterLogger | None = None


def get_logger(
    log_dir: str | None = None,
    log_level: str = "INFO",
    force_new: bool = False,
) -> RouterLogger:
    """Get or create the global logger instance."""
    global _logger

    if _logger is None or force_new:
        _logger = RouterLogger(log_dir, log_level)

    return _logger


def setup_logging(
    log_dir: str | None = None,
    log_level: str = "INFO",
) -> RouterLogger:
    """Set up logging and return the logger instance."""
    return get_logger(log_dir, log_level, force_new=True)
