"""FastAPI server for LLM Provider Router."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from . import __version__
from .config import RouterConfig, create_router, create_tool_runtime, load_default_config
from .exceptions import (
    ConfigurationError,
    LLMError,
    NoAvailableProviderError,
)
from .fallback import DegradedReply, degraded_reply
from .logging import get_logger
from .models import CompletionRequest, CompletionResponse, RoutingContext
from .router import LLMRouter
from .stats import StatsCollector
from .tools import ToolContext, ToolRegistry, ToolResult


def _format_timestamp(timestamp: float | None) -> str | None:
    """Convert a Unix timestamp to an ISO datetime string in UTC."""
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


class CompletionBody(BaseModel):
    """Body of ``POST /v1/completions``."""
    request: CompletionRequest
    context: RoutingContext


class ToolCallBody(BaseModel):
    """Body of ``POST /v1/tools/{name}``."""
    args: dict[str, Any] = Field(default_factory=dict)
    context: ToolContext


class LLMAPIServer:
    """HTTP surface over the provider router and the tool runtime."""

    def __init__(
        self,
        config: RouterConfig | None = None,
        registry: ToolRegistry | None = None,
        router: LLMRouter | None = None,
    ):
        """
        Args:
            config: Router configuration; defaults to a config file, then the environment
            registry: Tools exposed under ``/v1/tools``
            router: Prebuilt router; built lazily from `config` when omitted
        """
        loaded_config = config or load_default_config() or RouterConfig.from_env()
        self.config: RouterConfig = loaded_config

        if router is None:
            errors = self.config.validate()
            if errors:
                raise ConfigurationError(f"Configuration errors: {', '.join(errors)}")

        self.logger = get_logger()
        self.router = router
        self.stats_collector = router.stats_collector if router else StatsCollector()
        self.registry = registry or ToolRegistry()
        self.tool_runtime = create_tool_runtime(self.config, self.registry, self.stats_collector)

        self.app = FastAPI(
            title="LLM Provider Router",
            description="Multi-provider LLM routing with failover, circuit breaking and governed tools",
            version=__version__,
            lifespan=self._lifespan,
        )
        self._setup_routes()
        self._setup_exception_handlers()

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI) -> AsyncIterator[None]:
        yield
        if self.router is not None:
            await self.router.close()

    def _get_router(self) -> LLMRouter:
        """Get or create the router."""
        if self.router is None:
            self.router = create_router(self.config, stats_collector=self.stats_collector)
        return self.router

    def _setup_routes(self) -> None:
        """Setup API routes."""

        @self.app.get("/")
        async def root() -> dict[str, Any]:
            return {
                "name": "LLM Provider Router",
                "version": __version__,
                "endpoints": {
                    "completions": "/v1/completions",
                    "tools": "/v1/tools",
                    "health": "/health",
                    "ready": "/ready",
                    "status": "/status",
                    "metrics": "/metrics",
                },
            }

        @self.app.get("/health")
        async def health() -> dict[str, Any]:
            """Liveness check; does not contact any provider."""
            return {
                "status": "healthy",
                "version": __version__,
                "providers": [p.name.value for p in self.config.providers if p.api_key],
            }

        @self.app.get("/ready")
        async def ready() -> JSONResponse:
            """Readiness check; pings every configured provider."""
            results = await self._get_router().health_check()
            all_ok = bool(results) and all(r["status"] == "ok" for r in results.values())
            return JSONResponse(
                status_code=200 if all_ok else 503,
                content={"status": "ready" if all_ok else "not_ready", "providers": results},
            )

        @self.app.get("/status")
        async def status() -> dict[str, Any]:
            """Routing configuration, circuit breaker states and statistics."""
            router = self._get_router()
            stats = self.stats_collector.get_stats()
            return {
                "routing": self.config.to_dict()["routing"],
                "providers": [
                    {
                        "name": p.name.value,
                        "model": p.model,
                        "base_url": p.base_url,
                        "timeout_ms": p.timeout_ms,
                    }
                    for p in self.config.providers
                    if p.api_key
                ],
                "circuit_breakers": router.get_breaker_states(),
                "fully_open": router.is_fully_open(),
                "statistics": {
                    "start_time": _format_timestamp(stats.start_time),
                    "uptime_seconds": stats.uptime_seconds,
                    "total_requests": stats.total_requests,
                    "total_input_tokens": stats.total_input_tokens,
                    "total_output_tokens": stats.total_output_tokens,
                    "most_used_provider": stats.most_used_provider,
                    "fastest_provider": stats.fastest_provider,
                    "failovers": stats.failovers,
                    "providers": {
                        name: {
                            "total_requests": p.total_requests,
                            "successful_requests": p.successful_requests,
                            "failed_requests": p.failed_requests,
                            "skipped_requests": p.skipped_requests,
                            "circuit_openings": p.circuit_openings,
                            "success_rate": round(p.success_rate, 2),
                            "average_latency_ms": round(p.average_latency_ms, 2),
                            "total_tokens": p.total_tokens,
                            "last_request_time": _format_timestamp(p.last_request_time),
                            "last_success_time": _format_timestamp(p.last_success_time),
                            "last_error": p.last_error,
                        }
                        for name, p in stats.providers.items()
                    },
                    "tools": {
                        name: {
                            "total_calls": t.total_calls,
                            "successful_calls": t.successful_calls,
                            "failed_calls": t.failed_calls,
                            "output_validation_failures": t.output_validation_failures,
                            "average_duration_ms": round(t.average_duration_ms, 2),
                            "last_error": t.last_error,
                        }
                        for name, t in stats.tools.items()
                    },
                },
            }

        @self.app.get("/metrics")
        async def metrics() -> PlainTextResponse:
            """Prometheus exposition of router and tool metrics."""
            breakers = self._get_router().get_breaker_states()
            return PlainTextResponse(
                self.stats_collector.render_prometheus(
                    {name: state["state"] == "open" for name, state in breakers.items()}
                ),
                media_type="text/plain; version=0.0.4",
            )

        @self.app.post("/v1/completions", response_model=None)
        async def completions(body: CompletionBody) -> CompletionResponse | DegradedReply:
            """Route a completion, answering with a handoff reply on total outage."""
            router = self._get_router()
            if router.is_fully_open():
                self.logger.logger.warning(
                    "All LLM providers circuit-broken; returning fallback reply"
                )
                return degraded_reply(body.context.intent, fully_open=True)
            try:
                return await router.complete(body.request, body.context)
            except NoAvailableProviderError as e:
                self.logger.logger.error(f"LLM request failed: {e}")
                return degraded_reply(body.context.intent)

        @self.app.get("/v1/tools")
        async def list_tools() -> dict[str, Any]:
            return {"tools": self.registry.to_function_specs()}

        @self.app.post("/v1/tools/{name}")
        async def execute_tool(name: str, body: ToolCallBody) -> ToolResult:
            if not self.registry.has(name):
                raise HTTPException(status_code=404, detail=f"Unknown tool: {name}")
            return await self.tool_runtime.execute(name, body.args, body.context)

    def _setup_exception_handlers(self) -> None:
        """Map router exceptions to HTTP responses."""

        @self.app.exception_handler(NoAvailableProviderError)
        async def no_available_provider_handler(
            request: Any, exc: NoAvailableProviderError
        ) -> JSONResponse:
            return JSONResponse(
                status_code=503,
                content={
                    "error": {
                        "message": str(exc),
                        "type": "no_available_provider",
                    }
                },
            )

        @self.app.exception_handler(ConfigurationError)
        async def configuration_error_handler(
            request: Any, exc: ConfigurationError
        ) -> JSONResponse:
            return JSONResponse(
                status_code=500,
                content={
                    "error": {
                        "message": str(exc),
                        "type": "configuration_error",
                    }
                },
            )

        @self.app.exception_handler(LLMError)
        async def llm_error_handler(request: Any, exc: LLMError) -> JSONResponse:
            return JSONResponse(
                status_code=502,
                content={
                    "error": {
                        "message": str(exc),
                        "type": "llm_error",
                        "provider": exc.provider,
                    }
                },
            )


def create_app(
    config: RouterConfig | None = None,
    registry: ToolRegistry | None = None,
    router: LLMRouter | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    server = LLMAPIServer(config, registry, router)
    return server.app
