"""Statistics and metrics collection for LLM Provider Router."""

import time
from collections import defaultdict

from pydantic import BaseModel, Field


class ProviderStats(BaseModel):
    """Statistics for a single provider."""

    # Attempt counts
    total_requests: int = Field(default=0, description="Attempts sent to the provider")
    successful_requests: int = Field(default=0, description="Successful attempts")
    failed_requests: int = Field(default=0, description="Failed attempts")
    skipped_requests: int = Field(default=0, description="Skipped while circuit open")
    circuit_openings: int = Field(default=0, description="Times the breaker opened")

    # Token usage
    total_input_tokens: int = Field(default=0, description="Total prompt tokens")
    total_output_tokens: int = Field(default=0, description="Total completion tokens")
    total_tokens: int = Field(default=0, description="Total tokens (input + output)")

    # Performance metrics
    total_latency_ms: float = Field(
        default=0.0, description="Total latency of successful attempts in milliseconds"
    )
    average_latency_ms: float = Field(
        default=0.0, description="Average latency of successful attempts in milliseconds"
    )

    # Last request info
    last_request_time: float | None = Field(
        default=None, description="Timestamp of last attempt"
    )
    last_success_time: float | None = Field(
        default=None, description="Timestamp of last successful attempt"
    )
    last_error: str | None = Field(default=None, description="Last error message")

    @property
    def success_rate(self) -> float:
        """Calculate success rate based on completed attempts."""
        completed = self.successful_requests + self.failed_requests
        if completed == 0:
            return 0.0
        return (self.successful_requests / completed) * 100

    @property
    def failure_rate(self) -> float:
        """Calculate failure rate based on completed attempts."""
        completed = self.successful_requests + self.failed_requests
        if completed == 0:
            return 0.0
        return (self.failed_requests / completed) * 100


class ToolStats(BaseModel):
    """Statistics for a single tool."""

    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    output_validation_failures: int = 0
    total_duration_ms: float = 0.0
    last_error: str | None = None

    @property
    def average_duration_ms(self) -> float:
        if self.total_calls == 0:
            return 0.0
        return self.total_duration_ms / self.total_calls


class RouterStats(BaseModel):
    """Overall router statistics."""

    start_time: float = Field(description="Router start timestamp")
    uptime_seconds: float = Field(default=0.0, description="Router uptime in seconds")

    providers: dict[str, ProviderStats] = Field(
        default_factory=dict, description="Per-provider statistics"
    )
    tools: dict[str, ToolStats] = Field(
        default_factory=dict, description="Per-tool statistics"
    )
    failovers: dict[str, int] = Field(
        default_factory=dict, description="Successful failovers keyed 'from->to'"
    )

    total_requests: int = Field(
        default=0, description="Total attempts across all providers"
    )
    total_input_tokens: int = Field(
        default=0, description="Total prompt tokens across all providers"
    )
    total_output_tokens: int = Field(
        default=0, description="Total completion tokens across all providers"
    )

    @property
    def most_used_provider(self) -> str | None:
        """Get the most used provider by attempt count."""
        if not self.providers:
            return None
        return max(self.providers.items(), key=lambda x: x[1].total_requests)[0]

    @property
    def fastest_provider(self) -> str | None:
        """Get the fastest provider by average latency."""
        providers_with_latency = {
            name: stats
            for name, stats in self.providers.items()
            if stats.average_latency_ms > 0
        }
        if not providers_with_latency:
            return None
        return min(
            providers_with_latency.items(), key=lambda x: x[1].average_latency_ms
        )[0]


def _labels(**labels: str) -> str:
    body = ",".join(f'{key}="{value}"' for key, value in labels.items())
    return "{" + body + "}"


class StatsCollector:
    """Statistics collector for the router and tool runtime.

    Besides per-provider totals it keeps the labelled series exported as
    metrics: attempt durations by provider/model/outcome, token counts by
    provider/model/token type, failovers by from/to provider and tool call
    durations by tool/status.
    """

    def __init__(self) -> None:
        self._stats = RouterStats(start_time=time.time())
        self._provider_stats: dict[str, ProviderStats] = defaultdict(ProviderStats)
        self._tool_stats: dict[str, ToolStats] = defaultdict(ToolStats)
        self._attempt_durations: dict[tuple[str, str, str], list[float]] = defaultdict(
            lambda: [0, 0.0]
        )
        self._token_usage: dict[tuple[str, str, str], int] = defaultdict(int)
        self._failovers: dict[tuple[str, str], int] = defaultdict(int)
        self._tool_durations: dict[tuple[str, str], list[float]] = defaultdict(
            lambda: [0, 0.0]
        )

    def get_stats(self) -> RouterStats:
        """Get current statistics snapshot."""
        self._stats.uptime_seconds = time.time() - self._stats.start_time
        self._stats.total_requests = sum(
            stats.total_requests for stats in self._provider_stats.values()
        )
        self._stats.total_input_tokens = sum(
            stats.total_input_tokens for stats in self._provider_stats.values()
        )
        self._stats.total_output_tokens = sum(
            stats.total_output_tokens for stats in self._provider_stats.values()
        )
        self._stats.providers = dict(self._provider_stats)
        self._stats.tools = dict(self._tool_stats)
        self._stats.failovers = {
            f"{src}->{dst}": count for (src, dst), count in self._failovers.items()
        }
        return self._stats

    def record_request_start(self, provider_name: str) -> float:
        """Record the start of an attempt."""
        stats = self._provider_stats[provider_name]
        stats.total_requests += 1
        stats.last_request_time = time.time()
        return time.time()

    def record_attempt(
        self, provider_name: str, model: str, outcome: str, duration_ms: float
    ) -> None:
        """Record the duration of one attempt tagged by provider, model and outcome."""
        series = self._attempt_durations[(provider_name, model, outcome)]
        series[0] += 1
        series[1] += duration_ms

    def record_request_success(
        self,
        provider_name: str,
        model: str,
        duration_ms: float,
        input_tokens: int = 0,
        output_tokens: int = 0,
    ) -> None:
        """Record a successful attempt and its token usage."""
        stats = self._provider_stats[provider_name]
        stats.successful_requests += 1
        stats.total_input_tokens += input_tokens
        stats.total_output_tokens += output_tokens
        stats.total_tokens += input_tokens + output_tokens
        stats.last_success_time = time.time()
        stats.last_error = None
        stats.total_latency_ms += duration_ms
        stats.average_latency_ms = stats.total_latency_ms / stats.successful_requests

        self._token_usage[(provider_name, model, "prompt")] += input_tokens
        self._token_usage[(provider_name, model, "completion")] += output_tokens
        self.record_attempt(provider_name, model, "success", duration_ms)

    def record_request_failure(
        self, provider_name: str, model: str, duration_ms: float, error_message: str
    ) -> None:
        """Record a failed attempt."""
        stats = self._provider_stats[provider_name]
        stats.failed_requests += 1
        stats.last_error = error_message
        self.record_attempt(provider_name, model, "error", duration_ms)

    def record_circuit_skip(self, provider_name: str) -> None:
        self._provider_stats[provider_name].skipped_requests += 1

    def record_circuit_open(self, provider_name: str) -> None:
        self._provider_stats[provider_name].circuit_openings += 1

    def record_failover(self, from_provider: str, to_provider: str) -> None:
        """Record a failover that ended in success."""
        self._failovers[(from_provider, to_provider)] += 1

    def record_tool_call(
        self, tool_name: str, success: bool, duration_ms: float, error: str | None = None
    ) -> None:
        """Record a finished tool invocation."""
        stats = self._tool_stats[tool_name]
        stats.total_calls += 1
        stats.total_duration_ms += duration_ms
        if success:
            stats.successful_calls += 1
        else:
            stats.failed_calls += 1
            stats.last_error = error
        series = self._tool_durations[(tool_name, "success" if success else "error")]
        series[0] += 1
        series[1] += duration_ms

    def record_tool_output_invalid(self, tool_name: str) -> None:
        self._tool_stats[tool_name].output_validation_failures += 1

    def render_prometheus(self, breaker_open: dict[str, bool] | None = None) -> str:
        """Render the collected metrics in the Prometheus text exposition format."""
        stats = self.get_stats()
        lines = [
            "# HELP llm_router_uptime_seconds Router uptime in seconds",
            "# TYPE llm_router_uptime_seconds gauge",
            f"llm_router_uptime_seconds {stats.uptime_seconds:.3f}",
            "# HELP llm_request_duration_ms Provider attempt duration in milliseconds",
            "# TYPE llm_request_duration_ms summary",
        ]
        for (provider, model, outcome), (count, total) in sorted(self._attempt_durations.items()):
            labels = _labels(provider=provider, model=model, status=outcome)
            lines.append(f"llm_request_duration_ms_count{labels} {count}")
            lines.append(f"llm_request_duration_ms_sum{labels} {total:.3f}")

        lines += [
            "# HELP llm_token_usage_total Tokens consumed by provider and token type",
            "# TYPE llm_token_usage_total counter",
        ]
        for (provider, model, token_type), count in sorted(self._token_usage.items()):
            labels = _labels(provider=provider, model=model, token_type=token_type)
            lines.append(f"llm_token_usage_total{labels} {count}")

        lines += [
            "# HELP llm_provider_failovers_total Successful failovers between providers",
            "# TYPE llm_provider_failovers_total counter",
        ]
        for (src, dst), count in sorted(self._failovers.items()):
            lines.append(
                f"llm_provider_failovers_total{_labels(from_provider=src, to_provider=dst)} {count}"
            )

        if breaker_open is not None:
            lines += [
                "# HELP llm_circuit_breaker_open Whether the provider circuit breaker is open",
                "# TYPE llm_circuit_breaker_open gauge",
            ]
            for provider, is_open in sorted(breaker_open.items()):
                lines.append(
                    f"llm_circuit_breaker_open{_labels(provider=provider)} {int(is_open)}"
                )

        lines += [
            "# HELP tool_call_duration_ms Tool call duration in milliseconds",
            "# TYPE tool_call_duration_ms summary",
        ]
        for (tool, status), (count, total) in sorted(self._tool_durations.items()):
            labels = _labels(tool=tool, status=status)
            lines.append(f"tool_call_duration_ms_count{labels} {count}")
            lines.append(f"tool_call_duration_ms_sum{labels} {total:.3f}")

        lines += [
            "# HELP tool_output_validation_failures_total Tool outputs not matching their schema",
            "# TYPE tool_output_validation_failures_total counter",
        ]
        for tool, tool_stats in sorted(stats.tools.items()):
            lines.append(
                f"tool_output_validation_failures_total{_labels(tool=tool)} "
                f"{tool_stats.output_validation_failures}"
            )

        return "\n".join(lines) + "\n"
