"""JSON and environment based configuration for LLM Provider Router."""

import json
import os
from typing import Any, Mapping

from pydantic import BaseModel, Field

from .exceptions import ConfigurationError
from .models import ProviderConfig, ProviderType, RoutingConfig, RoutingStrategy
from .providers import build_providers
from .router import LLMRouter
from .stats import StatsCollector
from .tools.policy import AllowAllPolicy, TenantSettings, TenantToolPolicy, ToolPolicy
from .tools.registry import ToolRegistry
from .tools.runtime import DEFAULT_TOOL_TIMEOUT_SECONDS, ToolRuntime

DEFAULT_MODELS = {
    ProviderType.OPENAI: "gpt-5.2",
    ProviderType.ANTHROPIC: "claude-sonnet-4-20250514",
    ProviderType.GEMINI: "gemini-2.0-flash",
}


class ToolSettings(BaseModel):
    """Tool runtime settings."""
    timeout_seconds: float = Field(default=DEFAULT_TOOL_TIMEOUT_SECONDS, gt=0)
    tenants: dict[str, TenantSettings] = Field(default_factory=dict)


class LoggingSettings(BaseModel):
    """Where and how verbosely to log."""
    log_dir: str | None = None
    log_level: str = "INFO"


def _optional_provider(value: Any) -> ProviderType | None:
    if value is None or value == "":
        return None
    return ProviderType(value)


class RouterConfig:
    """Configuration for LLM Provider Router."""

    def __init__(
        self,
        providers: list[ProviderConfig] | None = None,
        routing: RoutingConfig | None = None,
        tools: ToolSettings | None = None,
        logging: LoggingSettings | None = None,
    ):
        self.providers = providers or []
        if routing is None:
            primary = self.providers[0].name if self.providers else ProviderType.OPENAI
            routing = RoutingConfig(primary_provider=primary)
        self.routing = routing
        self.tools = tools or ToolSettings()
        self.logging = logging or LoggingSettings()

    def get_provider(self, provider_type: ProviderType) -> ProviderConfig | None:
        for provider in self.providers:
            if provider.name == provider_type:
                return provider
        return None

    @staticmethod
    def _parse_provider_config(provider_type: ProviderType, config: dict[str, Any]) -> ProviderConfig:
        """Parse one provider section; ``api_key`` is required, the rest has defaults."""
        return ProviderConfig(
            name=provider_type,
            api_key=config["api_key"],
            model=config.get("model") or DEFAULT_MODELS[provider_type],
            max_tokens=config.get("max_tokens", 2048),
            temperature=config.get("temperature", 0.3),
            timeout_ms=config.get("timeout_ms", 30000),
            base_url=config.get("base_url"),
        )

    @staticmethod
    def _parse_routing(routing: dict[str, Any], providers: list[ProviderConfig]) -> RoutingConfig:
        default_primary = providers[0].name.value if providers else ProviderType.OPENAI.value
        return RoutingConfig(
            primary_provider=ProviderType(routing.get("primary_provider") or default_primary),
            secondary_provider=_optional_provider(routing.get("secondary_provider")),
            tertiary_provider=_optional_provider(routing.get("tertiary_provider")),
            strategy=routing.get("strategy", RoutingStrategy.FIXED.value),
            split_percent=routing.get("split_percent", 80),
            intent_overrides={
                intent: ProviderType(provider)
                for intent, provider in (routing.get("intent_overrides") or {}).items()
            },
        )

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "RouterConfig":
        """Create configuration from dictionary."""
        try:
            providers = [
                cls._parse_provider_config(ProviderType(name), provider_config)
                for name, provider_config in (config_dict.get("providers") or {}).items()
            ]
            routing = cls._parse_routing(config_dict.get("routing") or {}, providers)
            tools = ToolSettings.model_validate(config_dict.get("tools") or {})
            logging = LoggingSettings.model_validate(config_dict.get("logging") or {})
        except KeyError as e:
            raise ConfigurationError(f"Missing required field in configuration: {e}") from e
        except ValueError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e
        return cls(providers, routing, tools, logging)

    @classmethod
    def from_json_file(cls, filepath: str) -> "RouterConfig":
        """Load configuration from JSON file."""
        try:
            with open(filepath) as f:
                config_dict = json.load(f)
        except FileNotFoundError:
            raise ConfigurationError(
                f"Configuration file not found: {filepath}"
            ) from None
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in configuration file: {e}") from e
        return cls.from_dict(config_dict)

    @classmethod
    def from_json_string(cls, json_str: str) -> "RouterConfig":
        """Load configuration from JSON string."""
        try:
            config_dict = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON string: {e}") from e
        return cls.from_dict(config_dict)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "RouterConfig":
        """
        Load configuration from environment variables.

        Providers are configured only when their ``<PROVIDER>_API_KEY`` is set.
        """
        env = os.environ if environ is None else environ

        def number(key: str, default: Any, cast: type) -> Any:
            raw = env.get(key)
            if raw is None or raw == "":
                return default
            try:
                return cast(raw)
            except ValueError:
                raise ConfigurationError(f"{key} must be a number, got {raw!r}") from None

        providers_section: dict[str, Any] = {}
        for provider_type in ProviderType:
            prefix = provider_type.value.upper()
            api_key = env.get(f"{prefix}_API_KEY", "")
            if not api_key:
                continue
            providers_section[provider_type.value] = {
                "api_key": api_key,
                "model": env.get(f"{prefix}_MODEL") or DEFAULT_MODELS[provider_type],
                "max_tokens": number(f"{prefix}_MAX_TOKENS", 2048, int),
                "temperature": number(f"{prefix}_TEMPERATURE", 0.3, float),
                "timeout_ms": number(f"{prefix}_TIMEOUT_MS", 30000, int),
                "base_url": env.get(f"{prefix}_BASE_URL") or None,
            }

        intent_routing = env.get("LLM_INTENT_ROUTING", "")
        try:
            intent_overrides = json.loads(intent_routing) if intent_routing else {}
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"LLM_INTENT_ROUTING is not valid JSON: {e}") from e
        if not isinstance(intent_overrides, dict):
            raise ConfigurationError("LLM_INTENT_ROUTING must be a JSON object")

        return cls.from_dict(
            {
                "providers": providers_section,
                "routing": {
                    "primary_provider": env.get("LLM_PRIMARY_PROVIDER", "openai"),
                    "secondary_provider": env.get("LLM_SECONDARY_PROVIDER", ""),
                    "tertiary_provider": env.get("LLM_TERTIARY_PROVIDER", ""),
                    "strategy": env.get("LLM_ROUTING_STRATEGY", "fixed"),
                    "split_percent": number("LLM_AB_TEST_SPLIT", 80, int),
                    "intent_overrides": intent_overrides,
                },
                "tools": {
                    "timeout_seconds": number("TOOL_TIMEOUT_SECONDS", DEFAULT_TOOL_TIMEOUT_SECONDS, float),
                },
                "logging": {
                    "log_dir": env.get("LLM_ROUTER_LOG_DIR") or None,
                    "log_level": env.get("LLM_ROUTER_LOG_LEVEL", "INFO"),
                },
            }
        )

    @staticmethod
    def _provider_to_dict(provider: ProviderConfig) -> dict[str, Any]:
        """Convert a single ProviderConfig to dictionary."""
        return {
            "api_key": provider.api_key,
            "model": provider.model,
            "max_tokens": provider.max_tokens,
            "temperature": provider.temperature,
            "timeout_ms": provider.timeout_ms,
            "base_url": provider.base_url,
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        routing = self.routing
        return {
            "providers": {p.name.value: self._provider_to_dict(p) for p in self.providers},
            "routing": {
                "primary_provider": routing.primary_provider.value,
                "secondary_provider": routing.secondary_provider.value if routing.secondary_provider else None,
                "tertiary_provider": routing.tertiary_provider.value if routing.tertiary_provider else None,
                "strategy": routing.strategy.value,
                "split_percent": routing.split_percent,
                "intent_overrides": {k: v.value for k, v in routing.intent_overrides.items()},
            },
            "tools": self.tools.model_dump(mode="json"),
            "logging": self.logging.model_dump(mode="json"),
        }

    def to_json(self, indent: int = 2) -> str:
        """Convert configuration to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    def save_to_file(self, filepath: str, indent: int = 2) -> None:
        """Save configuration to JSON file."""
        with open(filepath, "w") as f:
            json.dump(self.to_dict(), f, indent=indent)

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors."""
        errors = []
        configured = {p.name for p in self.providers if p.api_key}

        if not self.providers:
            errors.append("No providers configured")
        for provider in self.providers:
            if not provider.api_key:
                errors.append(f"Provider {provider.name.value} has no API key")

        names = [p.name for p in self.providers]
        if len(names) != len(set(names)):
            errors.append("Duplicate provider entries found")

        if self.routing.primary_provider not in configured:
            errors.append(
                f"Primary provider {self.routing.primary_provider.value} is not configured"
            )
        for intent, provider in self.routing.intent_overrides.items():
            if provider not in configured:
                errors.append(
                    f"Intent override {intent!r} targets unconfigured provider {provider.value}"
                )
        return errors

    def is_valid(self) -> bool:
        """Check if configuration is valid."""
        return len(self.validate()) == 0


def load_default_config() -> RouterConfig | None:
    """Load configuration from default locations."""
    config_paths = [
        "llm_router_config.json",
        "config/llm_router_config.json",
        "~/.llm_router_config.json",
        "/etc/llm_router/config.json",
    ]

    for path in config_paths:
        expanded_path = os.path.expanduser(path)
        if os.path.exists(expanded_path):
            try:
                return RouterConfig.from_json_file(expanded_path)
            except ConfigurationError:
                continue

    return None


def create_example_config() -> RouterConfig:
    """Create example configuration."""
    return RouterConfig.from_dict(
        {
            "providers": {
                "openai": {
                    "api_key": "sk-your-openai-api-key-here",
                    "model": DEFAULT_MODELS[ProviderType.OPENAI],
                    "timeout_ms": 30000,
                },
                "anthropic": {
                    "api_key": "sk-ant-REDACTED",
                    "model": DEFAULT_MODELS[ProviderType.ANTHROPIC],
                    "timeout_ms": 30000,
                },
                "gemini": {
                    "api_key": "your-gemini-api-key-here",
                    "model": DEFAULT_MODELS[ProviderType.GEMINI],
                    "timeout_ms": 30000,
                },
            },
            "routing": {
                "primary_provider": "openai",
                "secondary_provider": "anthropic",
                "tertiary_provider": "gemini",
                "strategy": "fixed",
                "split_percent": 80,
                "intent_overrides": {"order_status": "anthropic"},
            },
            "tools": {
                "timeout_seconds": DEFAULT_TOOL_TIMEOUT_SECONDS,
                "tenants": {
                    "default": {
                        "enabled_tools": ["lookup_order", "handoff_to_human"],
                        "channel_policies": {
                            "web": {"enabled_tools": ["lookup_order", "handoff_to_human"]},
                            "whatsapp": {"enabled_tools": ["handoff_to_human"]},
                        },
                        "feature_flags": {"tool.lookup_order": True},
                    }
                },
            },
            "logging": {"log_dir": None, "log_level": "INFO"},
        }
    )


def create_router(config: RouterConfig, stats_collector: StatsCollector | None = None) -> LLMRouter:
    """Build the configured providers and a router over them."""
    providers = build_providers(config.providers)
    return LLMRouter(config.routing, providers, stats_collector=stats_collector)


def create_tool_policy(config: RouterConfig) -> ToolPolicy:
    """Tenant policy when tenants are configured, otherwise allow everything."""
    if config.tools.tenants:
        return TenantToolPolicy(config.tools.tenants)
    return AllowAllPolicy()


def create_tool_runtime(
    config: RouterConfig,
    registry: ToolRegistry,
    stats_collector: StatsCollector | None = None,
) -> ToolRuntime:
    """Build a tool runtime using the configured policy and deadline."""
    return ToolRuntime(
        registry,
        create_tool_policy(config),
        timeout_seconds=config.tools.timeout_seconds,
        stats_collector=stats_collector,
    )
