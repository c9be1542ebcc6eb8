"""Test governed tool execution."""

import asyncio
import json

import pytest

from llm_provider_router.logging import setup_logging
from llm_provider_router.rate_limiter import RateLimiter
from llm_provider_router.stats import StatsCollector
from llm_provider_router.tools import (
    Channel,
    TenantToolPolicy,
    ToolContext,
    ToolRegistry,
    ToolResult,
    ToolRuntime,
)


@pytest.fixture
def registry():
    return ToolRegistry()


@pytest.fixture
def stats():
    return StatsCollector()


@pytest.fixture
def runtime(registry, stats, fake_clock):
    return ToolRuntime(
        registry,
        timeout_seconds=0.2,
        rate_limiter=RateLimiter(clock=fake_clock),
        stats_collector=stats,
    )


@pytest.fixture
def context():
    return ToolContext(conversation_id="conv-1", request_id="req-1")


class RecordingHandler:
    """Handler that records calls and replays scripted outcomes."""

    def __init__(self, outcomes=None):
        self.outcomes = list(outcomes or [])
        self.calls = []

    async def __call__(self, args, ctx):
        self.calls.append(args)
        outcome = self.outcomes.pop(0) if self.outcomes else {"ok": True}
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.mark.asyncio
async def test_successful_call(runtime, registry, make_tool, context, stats):
    registry.register(make_tool())

    result = await runtime.execute("search_products", {"query": "boots"}, context)

    assert result == ToolResult(success=True, data={"echo": {"query": "boots"}})
    tool_stats = stats.get_stats().tools["search_products"]
    assert tool_stats.successful_calls == 1


@pytest.mark.asyncio
async def test_unknown_tool(runtime, context, stats):
    result = await runtime.execute("missing", {}, context)

    assert result.success is False
    assert result.error == "Unknown tool: missing"
    assert stats.get_stats().tools["missing"].failed_calls == 1


class TestPolicy:
    @pytest.mark.asyncio
    async def test_disabled_by_tenant_policy(self, registry, make_tool, context):
        handler = RecordingHandler()
        registry.register(make_tool("lookup_order", handler=handler))
        policy = TenantToolPolicy.from_dict(
            {"default": {"enabled_tools": [], "channel_policies": {"web": {"enabled_tools": []}}}}
        )
        runtime = ToolRuntime(registry, policy)

        result = await runtime.execute("lookup_order", {"query": "A1"}, context)

        assert result.success is False
        assert result.error == (
            'The "lookup_order" feature is not currently enabled. Please try a '
            "different approach or contact support for assistance."
        )
        assert handler.calls == []

    @pytest.mark.asyncio
    async def test_policy_consulted_on_every_call(self, registry, make_tool, context):
        class TogglePolicy:
            enabled = True

            def is_tool_enabled(self, tenant_id, tool_name, channel):
                return self.enabled

        policy = TogglePolicy()
        registry.register(make_tool())
        runtime = ToolRuntime(registry, policy)

        assert (await runtime.execute("search_products", {"query": "a"}, context)).success
        policy.enabled = False
        assert not (await runtime.execute("search_products", {"query": "a"}, context)).success

    @pytest.mark.asyncio
    async def test_failing_policy_disables_tool(self, registry, make_tool, context, stats):
        class BrokenPolicy:
            def is_tool_enabled(self, tenant_id, tool_name, channel):
                raise RuntimeError("config service down")

        handler = RecordingHandler()
        registry.register(make_tool(handler=handler))
        runtime = ToolRuntime(registry, BrokenPolicy(), stats_collector=stats)

        result = await runtime.execute("search_products", {"query": "a"}, context)

        assert result.success is False
        assert result.error.startswith('The "search_products" feature is not currently enabled.')
        assert handler.calls == []
        assert stats.get_stats().tools["search_products"].failed_calls == 1

    @pytest.mark.asyncio
    async def test_channel_not_allowed(self, runtime, registry, make_tool):
        handler = RecordingHandler()
        registry.register(make_tool(handler=handler, allowed_channels=[Channel.WEB]))
        context = ToolContext(conversation_id="c", channel=Channel.WHATSAPP)

        result = await runtime.execute("search_products", {"query": "a"}, context)

        assert result.error == "Tool not supported on this channel"
        assert handler.calls == []


class TestInputValidation:
    @pytest.mark.asyncio
    async def test_missing_required(self, runtime, registry, make_tool, context):
        handler = RecordingHandler()
        registry.register(make_tool(handler=handler))

        result = await runtime.execute("search_products", {}, context)

        assert result.success is False
        assert result.error.startswith("Invalid input:")
        assert "'query' is a required property" in result.error
        assert handler.calls == []

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, runtime, registry, make_tool, context):
        registry.register(make_tool())

        result = await runtime.execute("search_products", {"query": "a", "limit": 5}, context)

        assert result.success is False
        assert "Additional properties are not allowed" in result.error

    @pytest.mark.asyncio
    async def test_all_of_fields_accepted(self, runtime, registry, make_tool, context):
        registry.register(
            make_tool(
                input_schema={
                    "type": "object",
                    "properties": {"query": {"type": "string"}},
                    "required": ["query"],
                    "allOf": [{"properties": {"limit": {"type": "integer"}}}],
                }
            )
        )

        result = await runtime.execute("search_products", {"query": "a", "limit": 5}, context)

        assert result.success is True

    @pytest.mark.asyncio
    async def test_explicitly_open_schema(self, runtime, registry, make_tool, context):
        registry.register(
            make_tool(
                input_schema={
                    "type": "object",
                    "properties": {"query": {"type": "string"}},
                    "additionalProperties": True,
                }
            )
        )

        result = await runtime.execute("search_products", {"query": "a", "limit": 5}, context)

        assert result.success is True

    @pytest.mark.asyncio
    async def test_wrong_type(self, runtime, registry, make_tool, context):
        registry.register(make_tool())

        result = await runtime.execute("search_products", {"query": 42}, context)

        assert result.error.startswith("Invalid input: query 42 is not of type 'string'")


class TestRateLimit:
    @pytest.mark.asyncio
    async def test_limit_per_conversation(self, runtime, registry, make_tool, context):
        registry.register(make_tool(rate_limit_per_minute=5))

        results = [
            await runtime.execute("search_products", {"query": "a"}, context) for _ in range(6)
        ]

        assert [r.success for r in results] == [True] * 5 + [False]
        assert results[-1].error == "Tool rate limit exceeded. Try again shortly."

        other = ToolContext(conversation_id="conv-2")
        assert (await runtime.execute("search_products", {"query": "a"}, other)).success

    @pytest.mark.asyncio
    async def test_window_resets(self, runtime, registry, make_tool, context, fake_clock):
        registry.register(make_tool(rate_limit_per_minute=1))

        assert (await runtime.execute("search_products", {"query": "a"}, context)).success
        assert not (await runtime.execute("search_products", {"query": "a"}, context)).success
        fake_clock.advance(60)
        assert (await runtime.execute("search_products", {"query": "a"}, context)).success

    @pytest.mark.asyncio
    async def test_invalid_calls_do_not_consume_quota(self, runtime, registry, make_tool, context):
        registry.register(make_tool(rate_limit_per_minute=1))

        await runtime.execute("search_products", {}, context)

        assert (await runtime.execute("search_products", {"query": "a"}, context)).success


class TestExecution:
    @pytest.mark.asyncio
    async def test_timeout(self, runtime, registry, make_tool, context):
        never = asyncio.Event()

        async def hangs(args, ctx):
            await never.wait()

        registry.register(make_tool(handler=hangs))

        result = await runtime.execute("search_products", {"query": "a"}, context)

        assert result.success is False
        assert result.error == "Tool execution timed out"

    @pytest.mark.asyncio
    async def test_handler_exception(self, runtime, registry, make_tool, context, stats):
        registry.register(make_tool(handler=RecordingHandler([RuntimeError("db down")])))

        result = await runtime.execute("search_products", {"query": "a"}, context)

        assert result == ToolResult(success=False, error="Tool execution failed")
        assert stats.get_stats().tools["search_products"].last_error == "Tool execution failed"

    @pytest.mark.asyncio
    async def test_handler_raising_cancelled_error(self, runtime, registry, make_tool, context):
        handler = RecordingHandler([asyncio.CancelledError()])
        registry.register(make_tool(handler=handler))

        result = await runtime.execute("search_products", {"query": "a"}, context)

        assert result == ToolResult(success=False, error="Tool execution failed")
        assert len(handler.calls) == 1

    @pytest.mark.asyncio
    async def test_handler_raising_cancelled_error_is_retried(self, runtime, registry, make_tool, context):
        handler = RecordingHandler([asyncio.CancelledError(), {"status": "shipped"}])
        registry.register(make_tool(handler=handler, retryable=True, retry_delay_seconds=0))

        result = await runtime.execute("search_products", {"query": "a"}, context)

        assert result == ToolResult(success=True, data={"status": "shipped"})

    @pytest.mark.asyncio
    async def test_retryable_retries_once(self, runtime, registry, make_tool, context):
        handler = RecordingHandler([RuntimeError("flaky"), {"status": "shipped"}])
        registry.register(make_tool(handler=handler, retryable=True, retry_delay_seconds=0))

        result = await runtime.execute("search_products", {"query": "a"}, context)

        assert result == ToolResult(success=True, data={"status": "shipped"})
        assert len(handler.calls) == 2

    @pytest.mark.asyncio
    async def test_retryable_gives_up_after_second_failure(self, runtime, registry, make_tool, context):
        handler = RecordingHandler([RuntimeError("1"), RuntimeError("2"), {"status": "late"}])
        registry.register(make_tool(handler=handler, retryable=True, retry_delay_seconds=0))

        result = await runtime.execute("search_products", {"query": "a"}, context)

        assert result.success is False
        assert len(handler.calls) == 2

    @pytest.mark.asyncio
    async def test_not_retryable(self, runtime, registry, make_tool, context):
        handler = RecordingHandler([RuntimeError("flaky")])
        registry.register(make_tool(handler=handler))

        result = await runtime.execute("search_products", {"query": "a"}, context)

        assert result.success is False
        assert len(handler.calls) == 1

    @pytest.mark.asyncio
    async def test_handler_tool_result_is_returned(self, runtime, registry, make_tool, context):
        failure = ToolResult.fail("Order not found")
        handler = RecordingHandler([failure])
        registry.register(make_tool(handler=handler))

        result = await runtime.execute("search_products", {"query": "a"}, context)

        assert result == failure

    @pytest.mark.asyncio
    async def test_plain_value_is_wrapped(self, runtime, registry, make_tool, context):
        registry.register(make_tool(handler=RecordingHandler([["boots", "sandals"]])))

        result = await runtime.execute("search_products", {"query": "a"}, context)

        assert result == ToolResult(success=True, data=["boots", "sandals"])

    @pytest.mark.asyncio
    async def test_output_mismatch_is_counted_not_failed(self, runtime, registry, make_tool, context, stats):
        registry.register(
            make_tool(
                handler=RecordingHandler([{"count": "many"}]),
                output_schema={"type": "object", "properties": {"count": {"type": "integer"}}},
            )
        )

        result = await runtime.execute("search_products", {"query": "a"}, context)

        assert result.success is True
        assert stats.get_stats().tools["search_products"].output_validation_failures == 1

    @pytest.mark.asyncio
    async def test_cancelled(self, runtime, registry, make_tool, context):
        handler_started = asyncio.Event()
        never = asyncio.Event()

        async def hangs(args, ctx):
            handler_started.set()
            await never.wait()

        registry.register(make_tool(handler=hangs, retryable=True, retry_delay_seconds=0))
        cancel = asyncio.Event()

        async def cancel_when_started():
            await handler_started.wait()
            cancel.set()

        canceller = asyncio.create_task(cancel_when_started())
        result = await runtime.execute("search_products", {"query": "a"}, context, cancel=cancel)
        await canceller

        assert result == ToolResult(success=False, error="Tool execution cancelled")


def test_invalid_timeout(registry):
    with pytest.raises(ValueError):
        ToolRuntime(registry, timeout_seconds=0)


class TestFailureContext:
    @pytest.mark.parametrize(
        "error,expected",
        [
            ("Tool execution timed out", "timeout"),
            ("Upstream timeout", "timeout"),
            ("Invalid input: 'query' is a required property", "validation_error"),
            ("Schema validation failed", "validation_error"),
            ("Shop API returned 500", "api_error"),
            ("Tool execution failed", "unknown"),
        ],
    )
    def test_error_type(self, error, expected):
        ctx = ToolRuntime.build_failure_context("lookup_order", ToolResult.fail(error), attempts=2)
        assert ctx.error_type == expected
        assert ctx.attempts == 2
        assert ctx.last_error == error

    def test_suggestions(self):
        timeout = ToolRuntime.build_failure_context("t", ToolResult.fail("timed out"), 1)
        assert "try again" in timeout.suggestion
        other = ToolRuntime.build_failure_context("t", ToolResult.fail("boom"), 1)
        assert "team member" in other.suggestion

    def test_missing_error(self):
        ctx = ToolRuntime.build_failure_context("t", ToolResult(success=False), 1)
        assert ctx.last_error == "Unknown error"


@pytest.mark.asyncio
async def test_tool_call_log_redacts_arguments(tmp_path, make_tool):
    logger = setup_logging(str(tmp_path))
    try:
        registry = ToolRegistry()
        registry.register(
            make_tool(
                input_schema={
                    "type": "object",
                    "properties": {"email": {"type": "string"}, "query": {"type": "string"}},
                }
            )
        )
        runtime = ToolRuntime(registry)

        await runtime.execute(
            "search_products",
            {"email": "jo@example.com", "query": "boots"},
            ToolContext(conversation_id="conv-9", tenant_id="acme"),
        )
    finally:
        for handler in logger.json_logger.handlers:
            handler.close()
        setup_logging()

    log_file = next(p for p in tmp_path.glob("router_*.jsonl") if not p.name.endswith("_errors.jsonl"))
    entries = [json.loads(line) for line in log_file.read_text().splitlines()]
    tool_entries = [e for e in entries if e["type"] == "tool_call"]

    assert len(tool_entries) == 1
    entry = tool_entries[0]
    assert entry["args"] == {"email": "[redacted]", "query": "boots"}
    assert entry["conversation_id"] == "conv-9"
    assert entry["tenant_id"] == "acme"
    assert entry["success"] is True
    assert "jo@example.com" not in log_file.read_text()


@pytest.mark.asyncio
async def test_tool_call_log_masks_contact_details_in_values(tmp_path, make_tool):
    logger = setup_logging(str(tmp_path))
    try:
        registry = ToolRegistry()
        registry.register(
            make_tool(
                input_schema={
                    "type": "object",
                    "properties": {"query": {"type": "string"}, "contacts": {"type": "array"}},
                }
            )
        )
        runtime = ToolRuntime(registry)

        await runtime.execute(
            "search_products",
            {"query": "call me on +91 98765 43210 or a@b.com", "contacts": [{"email": "x@y.io"}]},
            ToolContext(conversation_id="conv-9"),
        )
    finally:
        for handler in logger.json_logger.handlers:
            handler.close()
        setup_logging()

    log_file = next(p for p in tmp_path.glob("router_*.jsonl") if not p.name.endswith("_errors.jsonl"))
    text = log_file.read_text()
    entry = next(e for e in map(json.loads, text.splitlines()) if e["type"] == "tool_call")

    assert entry["args"] == {
        "query": "call me on [PHONE_REDACTED] or [EMAIL_REDACTED]",
        "contacts": [{"email": "[redacted]"}],
    }
    assert "a@b.com" not in text
    assert "x@y.io" not in text
    assert "98765" not in text
