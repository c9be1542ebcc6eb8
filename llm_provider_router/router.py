"""Main LLM router with strategy-based ordering, failover and circuit breaking."""

import asyncio
import time
import types
import uuid
from typing import Any

from .cancellation import run_cancellable
from .circuit_breaker import CircuitBreaker
from .exceptions import (
    ConfigurationError,
    NoAvailableProviderError,
    ProviderError,
    RequestCancelledError,
)
from .logging import get_logger
from .models import (
    CompletionRequest,
    CompletionResponse,
    ProviderType,
    RoutingConfig,
    RoutingContext,
    RoutingStrategy,
)
from .providers import BaseProvider
from .stats import RouterStats, StatsCollector

CIRCUIT_BREAKER_THRESHOLD = 5
CIRCUIT_BREAKER_RESET_SECONDS = 60.0


def conversation_bucket(conversation_id: str) -> int:
    """Stable 0-99 bucket for a conversation id.

    32-bit signed polynomial rolling hash (h * 31 + c) over the UTF-16 code
    units of the id, absolute value, modulo 100.
    """
    encoded = conversation_id.encode("utf-16-le", errors="surrogatepass")
    h = 0
    for i in range(0, len(encoded), 2):
        code_unit = encoded[i] | (encoded[i + 1] << 8)
        h = ((h << 5) - h + code_unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h) % 100


class LLMRouter:
    """LLM router with per-request provider ordering and automatic failover.

    Supports three routing strategies:
    - fixed: always walk the configured chain (primary, secondary, tertiary)
    - intent: send mapped intents to a specific provider first
    - split-test: deterministic hash-based split between primary and secondary

    Each provider has a circuit breaker. Open providers are skipped without
    counting as an attempt.
    """

    def __init__(
        self,
        routing: RoutingConfig,
        providers: dict[ProviderType, BaseProvider],
        circuit_breaker: CircuitBreaker | None = None,
        stats_collector: StatsCollector | None = None,
    ):
        """
        Initialize the router.

        Args:
            routing: Routing configuration (chain, strategy, split, overrides)
            providers: Provider instances keyed by provider type
            circuit_breaker: Breaker table; defaults to 5 failures / 60s cooldown
            stats_collector: Collector for metrics and statistics

        Raises:
            ConfigurationError: If the primary provider is not configured
        """
        if not providers:
            raise ValueError("At least one provider must be configured")

        if routing.primary_provider not in providers:
            raise ConfigurationError(
                f'Primary provider "{routing.primary_provider.value}" not available. '
                f"Configured providers: {', '.join(p.value for p in providers)}"
            )

        self.routing = routing
        self._providers = dict(providers)
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=CIRCUIT_BREAKER_THRESHOLD,
            cooldown_seconds=CIRCUIT_BREAKER_RESET_SECONDS,
        )
        self.stats_collector = stats_collector or StatsCollector()
        self.logger = get_logger()

        self.logger.log_configuration(
            "router_start",
            {
                "provider_count": len(self._providers),
                "providers": [
                    {"name": p.value, "model": provider.model}
                    for p, provider in self._providers.items()
                ],
                "strategy": routing.strategy.value,
                "chain": [p.value for p in routing.chain],
                "split_percent": routing.split_percent,
                "intent_overrides": {
                    intent: p.value for intent, p in routing.intent_overrides.items()
                },
            },
        )

    async def __aenter__(self) -> "LLMRouter":
        """Async context manager entry."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        """Async context manager exit."""
        await self.close()

    @property
    def primary_provider_name(self) -> ProviderType:
        """Get the primary provider name."""
        return self.routing.primary_provider

    @property
    def providers(self) -> dict[ProviderType, BaseProvider]:
        return dict(self._providers)

    def resolve_order(self, context: RoutingContext) -> list[ProviderType]:
        """Determine the ordered list of providers to try for this request."""
        order: list[ProviderType] = []
        routing = self.routing

        if routing.strategy == RoutingStrategy.INTENT:
            if context.intent and context.intent in routing.intent_overrides:
                intent_provider = routing.intent_overrides[context.intent]
                if intent_provider in self._providers:
                    order.append(intent_provider)

        elif routing.strategy == RoutingStrategy.SPLIT_TEST:
            bucket = conversation_bucket(context.conversation_id)
            if bucket < routing.split_percent:
                order.append(routing.primary_provider)
                if routing.secondary_provider:
                    order.append(routing.secondary_provider)
            else:
                if routing.secondary_provider:
                    order.append(routing.secondary_provider)
                order.append(routing.primary_provider)

        # Always finish with the full failover chain
        for provider in routing.chain:
            if provider not in order:
                order.append(provider)

        return order

    async def complete(
        self,
        request: CompletionRequest,
        context: RoutingContext,
        cancel: asyncio.Event | None = None,
    ) -> CompletionResponse:
        """
        Route a completion request, failing over along the resolved order.

        Args:
            request: Provider-independent completion request
            context: Routing context used to order the candidates
            cancel: Optional event; setting it abandons the in-flight call

        Returns:
            Response from the first provider that succeeds

        Raises:
            NoAvailableProviderError: If every candidate failed or was circuit-open
            RequestCancelledError: If `cancel` was set before a provider answered
        """
        request_id = context.request_id or str(uuid.uuid4())
        start_time = time.monotonic()
        order = self.resolve_order(context)

        last_error: Exception | None = None
        last_failed: str | None = None
        attempt = 0

        for provider_type in order:
            provider = self._providers.get(provider_type)
            if provider is None:
                continue
            provider_name = provider_type.value

            if self.circuit_breaker.is_open(provider_name):
                self.logger.log_circuit_skip(
                    request_id,
                    provider_name,
                    self.circuit_breaker.get_state(provider_name).open_until,
                )
                self.stats_collector.record_circuit_skip(provider_name)
                continue

            attempt += 1
            self.logger.log_attempt(
                request_id=request_id,
                provider_name=provider_name,
                model=provider.model,
                attempt=attempt,
                candidate_count=len(order),
                message_count=len(request.messages),
                json_mode=request.json_mode,
            )
            self.stats_collector.record_request_start(provider_name)
            provider_start = time.monotonic()

            try:
                response = await run_cancellable(provider.complete(request), cancel)
            except RequestCancelledError:
                self.logger.logger.info(
                    f"Request {request_id[:8]} cancelled by caller while waiting on {provider_name}"
                )
                raise RequestCancelledError(provider=provider_name) from None
            except Exception as e:
                duration_ms = (time.monotonic() - provider_start) * 1000
                error_type = (
                    e.error_type or "provider_error"
                    if isinstance(e, ProviderError)
                    else "unexpected_error"
                )
                self.logger.log_error(
                    request_id=request_id,
                    provider_name=provider_name,
                    error_type=error_type,
                    error_message=str(e),
                    status_code=getattr(e, "status_code", None),
                )
                self.stats_collector.record_request_failure(
                    provider_name, provider.model, duration_ms, str(e)
                )
                if self.circuit_breaker.record_failure(provider_name):
                    self.logger.log_circuit_open(
                        provider_name,
                        self.circuit_breaker.get_state(provider_name).consecutive_failures,
                        self.circuit_breaker.cooldown_seconds,
                    )
                    self.stats_collector.record_circuit_open(provider_name)
                last_error = e
                last_failed = provider_name
                continue

            self.circuit_breaker.record_success(provider_name)
            self.stats_collector.record_request_success(
                provider_name,
                response.model,
                (time.monotonic() - provider_start) * 1000,
                input_tokens=response.usage.prompt_tokens,
                output_tokens=response.usage.completion_tokens,
            )
            self.logger.log_response(request_id, response)

            if last_failed is not None:
                self.stats_collector.record_failover(last_failed, provider_name)
                self.logger.log_fallback(
                    request_id=request_id,
                    from_provider=last_failed,
                    to_provider=provider_name,
                    reason="error",
                )

            return response

        total_duration = (time.monotonic() - start_time) * 1000
        if last_error is None:
            message = "All LLM providers failed. Every candidate circuit breaker is open"
        else:
            message = f"All LLM providers failed. Last error: {last_error}"

        self.logger.log_error(
            request_id=request_id,
            provider_name="all",
            error_type="no_available_provider",
            error_message=message,
        )
        self.logger.logger.error(
            f"Request {request_id[:8]} failed after {total_duration:.0f}ms "
            f"({attempt} attempts over {len(order)} candidates)"
        )
        raise NoAvailableProviderError(message, last_error) from last_error

    async def health_check(self) -> dict[str, dict[str, Any]]:
        """Health check across all configured providers."""
        results: dict[str, dict[str, Any]] = {}
        for provider_type, provider in self._providers.items():
            start = time.monotonic()
            healthy = await provider.health_check()
            results[provider_type.value] = {
                "status": "ok" if healthy else "error",
                "latency_ms": int((time.monotonic() - start) * 1000),
            }
        return results

    def is_fully_open(self) -> bool:
        """Check whether every configured provider's circuit breaker is open."""
        return self.circuit_breaker.all_open([p.value for p in self._providers])

    def get_breaker_states(self) -> dict[str, dict[str, Any]]:
        """Snapshot of every configured provider's circuit breaker."""
        states = {}
        for provider_type in self._providers:
            name = provider_type.value
            is_open = self.circuit_breaker.is_open(name)
            state = self.circuit_breaker.get_state(name)
            states[name] = {
                "state": "open" if is_open else "closed",
                "consecutive_failures": state.consecutive_failures,
                "cooldown_remaining_seconds": self.circuit_breaker.get_cooldown_remaining_seconds(name),
            }
        return states

    def get_stats(self) -> RouterStats:
        """Get the current statistics snapshot."""
        return self.stats_collector.get_stats()

    def get_available_providers(self) -> list[str]:
        """Get list of configured provider names."""
        return [p.value for p in self._providers]

    async def close(self):
        """Close all provider connections."""
        for provider in self._providers.values():
            await provider.close()
