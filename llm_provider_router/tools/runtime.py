"""Governed execution of registered tools."""

import asyncio
import time
from typing import Any

from ..cancellation import run_cancellable
from ..exceptions import RequestCancelledError
from ..logging import get_logger
from ..rate_limiter import RateLimiter
from ..stats import StatsCollector
from .models import ToolContext, ToolDefinition, ToolFailureContext, ToolResult
from .policy import AllowAllPolicy, ToolPolicy
from .registry import ToolRegistry
from .schema import closed_schema, validation_errors

DEFAULT_TOOL_TIMEOUT_SECONDS = 15.0

RATE_LIMITED_MESSAGE = "Tool rate limit exceeded. Try again shortly."
TIMEOUT_MESSAGE = "Tool execution timed out"
FAILED_MESSAGE = "Tool execution failed"
CANCELLED_MESSAGE = "Tool execution cancelled"
CHANNEL_MESSAGE = "Tool not supported on this channel"


class ToolRuntime:
    """
    Execute tool calls on behalf of an agent.

    Checks run in order and the first failing one decides the result:
    1. the tool exists
    2. the tenant policy and the tool's own channel list allow it
    3. the arguments match the input schema
    4. the per-conversation rate limit has room
    5. the handler finishes before the deadline

    `execute` never raises; every outcome is a ToolResult.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        policy: ToolPolicy | None = None,
        timeout_seconds: float = DEFAULT_TOOL_TIMEOUT_SECONDS,
        rate_limiter: RateLimiter | None = None,
        stats_collector: StatsCollector | None = None,
    ):
        """
        Initialize the runtime.

        Args:
            registry: Tools available for execution
            policy: Tenant/channel enablement policy; defaults to allowing all
            timeout_seconds: Deadline for each handler attempt
            rate_limiter: Per (tool, conversation) limiter
            stats_collector: Collector for tool call metrics
        """
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self.registry = registry
        self.policy = policy or AllowAllPolicy()
        self.timeout_seconds = timeout_seconds
        self.rate_limiter = rate_limiter or RateLimiter()
        self.stats_collector = stats_collector or StatsCollector()
        self.logger = get_logger()

    async def execute(
        self,
        tool_name: str,
        args: dict[str, Any],
        context: ToolContext,
        cancel: asyncio.Event | None = None,
    ) -> ToolResult:
        """
        Execute a tool call with schema, policy, rate and deadline enforcement.

        Args:
            tool_name: Registered tool name
            args: Arguments supplied by the caller
            context: Tenant, channel and conversation of the call
            cancel: Optional event; setting it abandons the running handler

        Returns:
            The handler's result, or a failed ToolResult describing why it did not run
        """
        start_time = time.monotonic()

        tool = self.registry.get(tool_name)
        if tool is None:
            self.logger.logger.warning(f"Tool not found in registry: {tool_name}")
            return self._finish(tool_name, "", args, ToolResult.fail(f"Unknown tool: {tool_name}"),
                                start_time, context)

        result = self._check(tool, args, context)
        if result is None:
            result = await self._run_with_retry(tool, args, context, cancel)
            if result.success:
                self._check_output(tool, result)

        return self._finish(tool.name, tool.version, args, result, start_time, context)

    def _check(self, tool: ToolDefinition, args: dict[str, Any], context: ToolContext) -> ToolResult | None:
        """Run the pre-execution checks, returning a failure or None when all pass."""
        try:
            enabled = self.policy.is_tool_enabled(context.tenant_id, tool.name, context.channel)
        except Exception as e:
            # A policy that cannot answer denies the call
            self.logger.logger.error(
                f"Tool policy lookup for {tool.name} failed: {type(e).__name__}: {e}"
            )
            enabled = False

        if not enabled:
            self.logger.logger.warning(
                f"Tool {tool.name} not enabled for tenant {context.tenant_id} "
                f"on {context.channel.value}"
            )
            return ToolResult.fail(
                f'The "{tool.name}" feature is not currently enabled. Please try a '
                f"different approach or contact support for assistance."
            )

        if context.channel not in tool.allowed_channels:
            self.logger.logger.warning(
                f"Channel {context.channel.value} not in allowed channels of {tool.name}"
            )
            return ToolResult.fail(CHANNEL_MESSAGE)

        errors = validation_errors(closed_schema(tool.input_schema), args)
        if errors:
            self.logger.logger.warning(f"Tool {tool.name} input validation failed: {'; '.join(errors)}")
            return ToolResult.fail(f"Invalid input: {'; '.join(errors)}")

        if not self.rate_limiter.try_acquire(tool.name, context.conversation_id, tool.rate_limit_per_minute):
            self.logger.logger.warning(
                f"Tool {tool.name} rate limit ({tool.rate_limit_per_minute}/min) exceeded "
                f"for conversation {context.conversation_id}"
            )
            return ToolResult.fail(RATE_LIMITED_MESSAGE)

        return None

    async def _run_with_retry(
        self,
        tool: ToolDefinition,
        args: dict[str, Any],
        context: ToolContext,
        cancel: asyncio.Event | None,
    ) -> ToolResult:
        result = await self._try_execute(tool, args, context, cancel)
        if result.success or not tool.retryable or result.error == CANCELLED_MESSAGE:
            return result

        self.logger.logger.info(
            f"Tool {tool.name} failed, retrying once in {tool.retry_delay_seconds}s"
        )
        await asyncio.sleep(tool.retry_delay_seconds)
        return await self._try_execute(tool, args, context, cancel)

    async def _try_execute(
        self,
        tool: ToolDefinition,
        args: dict[str, Any],
        context: ToolContext,
        cancel: asyncio.Event | None,
    ) -> ToolResult:
        """Run the handler once under the deadline."""
        try:
            value = await run_cancellable(
                tool.handler(args, context), cancel, timeout=self.timeout_seconds
            )
        except RequestCancelledError:
            self.logger.logger.info(f"Tool {tool.name} cancelled by caller")
            return ToolResult.fail(CANCELLED_MESSAGE)
        except asyncio.TimeoutError:
            self.logger.logger.error(
                f"Tool {tool.name} timed out after {self.timeout_seconds}s"
            )
            return ToolResult.fail(TIMEOUT_MESSAGE)
        except Exception as e:
            self.logger.logger.error(f"Tool {tool.name} raised {type(e).__name__}: {e}")
            return ToolResult.fail(FAILED_MESSAGE)

        if isinstance(value, ToolResult):
            return value
        return ToolResult.ok(value)

    def _check_output(self, tool: ToolDefinition, result: ToolResult) -> None:
        """Log and count output schema mismatches without failing the call."""
        if not tool.output_schema or result.data is None:
            return
        errors = validation_errors(tool.output_schema, result.data)
        if errors:
            self.logger.logger.warning(
                f"Tool {tool.name} output validation failed: {'; '.join(errors)}"
            )
            self.stats_collector.record_tool_output_invalid(tool.name)

    def _finish(
        self,
        tool_name: str,
        version: str,
        args: dict[str, Any],
        result: ToolResult,
        start_time: float,
        context: ToolContext,
    ) -> ToolResult:
        duration_ms = (time.monotonic() - start_time) * 1000
        self.stats_collector.record_tool_call(tool_name, result.success, duration_ms, result.error)
        self.logger.log_tool_call(
            tool=tool_name,
            version=version,
            args=args,
            success=result.success,
            error=result.error,
            duration_ms=duration_ms,
            request_id=context.request_id,
            conversation_id=context.conversation_id,
            tenant_id=context.tenant_id,
        )
        return result

    @staticmethod
    def build_failure_context(tool_name: str, result: ToolResult, attempts: int) -> ToolFailureContext:
        """Describe a failed call so the agent can give an honest, helpful reply."""
        error = result.error or "Unknown error"
        lowered = error.lower()
        if "timeout" in lowered or "timed out" in lowered:
            error_type = "timeout"
        elif "validation" in lowered or "invalid input" in lowered:
            error_type = "validation_error"
        elif "api" in lowered:
            error_type = "api_error"
        else:
            error_type = "unknown"

        if error_type == "timeout":
            suggestion = "The service is slow right now. Please try again in a moment."
        else:
            suggestion = (
                "I was unable to retrieve this information. "
                "Let me connect you with a team member who can help."
            )

        return ToolFailureContext(
            tool_name=tool_name,
            error_type=error_type,
            attempts=attempts,
            last_error=error,
            suggestion=suggestion,
        )
