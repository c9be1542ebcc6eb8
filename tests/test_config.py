"""Test configuration loading."""

import json

import pytest

from llm_provider_router.config import (
    DEFAULT_MODELS,
    RouterConfig,
    create_example_config,
    create_router,
    create_tool_policy,
    create_tool_runtime,
)
from llm_provider_router.exceptions import ConfigurationError
from llm_provider_router.models import ProviderType, RoutingStrategy
from llm_provider_router.tools import AllowAllPolicy, Channel, TenantToolPolicy, ToolRegistry


@pytest.fixture
def config_dict():
    return {
        "providers": {
            "openai": {"api_key": "sk-openai", "model": "gpt-4o-mini", "timeout_ms": 10000},
            "anthropic": {"api_key": "sk-ant"},
        },
        "routing": {
            "primary_provider": "openai",
            "secondary_provider": "anthropic",
            "strategy": "intent",
            "intent_overrides": {"billing": "anthropic"},
        },
        "tools": {"timeout_seconds": 5},
    }


class TestFromDict:
    def test_parses_providers(self, config_dict):
        config = RouterConfig.from_dict(config_dict)

        openai = config.get_provider(ProviderType.OPENAI)
        assert openai.model == "gpt-4o-mini"
        assert openai.timeout_ms == 10000
        anthropic = config.get_provider(ProviderType.ANTHROPIC)
        assert anthropic.model == DEFAULT_MODELS[ProviderType.ANTHROPIC]
        assert anthropic.max_tokens == 2048
        assert config.get_provider(ProviderType.GEMINI) is None

    def test_parses_routing(self, config_dict):
        routing = RouterConfig.from_dict(config_dict).routing
        assert routing.primary_provider == ProviderType.OPENAI
        assert routing.secondary_provider == ProviderType.ANTHROPIC
        assert routing.tertiary_provider is None
        assert routing.strategy == RoutingStrategy.INTENT
        assert routing.split_percent == 80
        assert routing.intent_overrides == {"billing": ProviderType.ANTHROPIC}

    def test_routing_defaults_to_first_provider(self):
        config = RouterConfig.from_dict({"providers": {"gemini": {"api_key": "g"}}})
        assert config.routing.primary_provider == ProviderType.GEMINI
        assert config.routing.strategy == RoutingStrategy.FIXED

    def test_legacy_strategy_names(self, config_dict):
        config_dict["routing"]["strategy"] = "ab_test"
        assert RouterConfig.from_dict(config_dict).routing.strategy == RoutingStrategy.SPLIT_TEST
        config_dict["routing"]["strategy"] = "config"
        assert RouterConfig.from_dict(config_dict).routing.strategy == RoutingStrategy.FIXED

    def test_missing_api_key(self):
        with pytest.raises(ConfigurationError, match="api_key"):
            RouterConfig.from_dict({"providers": {"openai": {"model": "gpt-4o"}}})

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            RouterConfig.from_dict({"providers": {"mistral": {"api_key": "k"}}})

    def test_split_percent_out_of_range(self, config_dict):
        config_dict["routing"]["split_percent"] = 101
        with pytest.raises(ConfigurationError):
            RouterConfig.from_dict(config_dict)

    def test_non_positive_tool_timeout(self, config_dict):
        config_dict["tools"]["timeout_seconds"] = 0
        with pytest.raises(ConfigurationError):
            RouterConfig.from_dict(config_dict)


class TestJson:
    def test_round_trip_through_file(self, tmp_path, config_dict):
        path = tmp_path / "config.json"
        RouterConfig.from_dict(config_dict).save_to_file(str(path))

        loaded = RouterConfig.from_json_file(str(path))

        assert loaded.to_dict() == RouterConfig.from_dict(config_dict).to_dict()
        assert loaded.tools.timeout_seconds == 5

    def test_file_not_found(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            RouterConfig.from_json_file(str(tmp_path / "missing.json"))

    def test_invalid_json_file(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError, match="Invalid JSON"):
            RouterConfig.from_json_file(str(path))

    def test_from_json_string(self, config_dict):
        config = RouterConfig.from_json_string(json.dumps(config_dict))
        assert len(config.providers) == 2

    def test_invalid_json_string(self):
        with pytest.raises(ConfigurationError, match="Invalid JSON string"):
            RouterConfig.from_json_string("[")


class TestFromEnv:
    def test_reads_providers_and_routing(self):
        config = RouterConfig.from_env(
            {
                "OPENAI_API_KEY": "sk-openai",
                "OPENAI_MODEL": "gpt-4o",
                "OPENAI_TIMEOUT_MS": "15000",
                "GEMINI_API_KEY": "g-key",
                "GEMINI_TEMPERATURE": "0.7",
                "LLM_PRIMARY_PROVIDER": "gemini",
                "LLM_SECONDARY_PROVIDER": "openai",
                "LLM_ROUTING_STRATEGY": "split-test",
                "LLM_AB_TEST_SPLIT": "30",
                "TOOL_TIMEOUT_SECONDS": "2.5",
                "LLM_ROUTER_LOG_DIR": "/tmp/router-logs",
            }
        )

        assert [p.name for p in config.providers] == [ProviderType.OPENAI, ProviderType.GEMINI]
        openai = config.get_provider(ProviderType.OPENAI)
        assert openai.model == "gpt-4o"
        assert openai.timeout_ms == 15000
        gemini = config.get_provider(ProviderType.GEMINI)
        assert gemini.model == DEFAULT_MODELS[ProviderType.GEMINI]
        assert gemini.temperature == 0.7
        assert config.routing.primary_provider == ProviderType.GEMINI
        assert config.routing.secondary_provider == ProviderType.OPENAI
        assert config.routing.strategy == RoutingStrategy.SPLIT_TEST
        assert config.routing.split_percent == 30
        assert config.tools.timeout_seconds == 2.5
        assert config.logging.log_dir == "/tmp/router-logs"

    def test_defaults(self):
        config = RouterConfig.from_env({"OPENAI_API_KEY": "sk"})
        assert config.routing.primary_provider == ProviderType.OPENAI
        assert config.routing.secondary_provider is None
        assert config.routing.split_percent == 80
        assert config.tools.timeout_seconds == 15.0
        assert config.logging.log_dir is None
        assert config.is_valid()

    def test_no_keys_means_no_providers(self):
        config = RouterConfig.from_env({})
        assert config.providers == []
        assert "No providers configured" in config.validate()

    def test_intent_routing(self):
        config = RouterConfig.from_env(
            {
                "OPENAI_API_KEY": "sk",
                "ANTHROPIC_API_KEY": "ant",
                "LLM_ROUTING_STRATEGY": "intent",
                "LLM_INTENT_ROUTING": '{"returns": "anthropic"}',
            }
        )
        assert config.routing.intent_overrides == {"returns": ProviderType.ANTHROPIC}

    def test_invalid_intent_routing(self):
        with pytest.raises(ConfigurationError, match="LLM_INTENT_ROUTING"):
            RouterConfig.from_env({"LLM_INTENT_ROUTING": "not-json"})
        with pytest.raises(ConfigurationError, match="JSON object"):
            RouterConfig.from_env({"LLM_INTENT_ROUTING": "[1, 2]"})

    def test_non_numeric_value(self):
        with pytest.raises(ConfigurationError, match="LLM_AB_TEST_SPLIT must be a number"):
            RouterConfig.from_env({"LLM_AB_TEST_SPLIT": "half"})


class TestValidate:
    def test_valid(self, config_dict):
        config = RouterConfig.from_dict(config_dict)
        assert config.validate() == []
        assert config.is_valid()

    def test_missing_primary(self, config_dict):
        config_dict["routing"]["primary_provider"] = "gemini"
        errors = RouterConfig.from_dict(config_dict).validate()
        assert "Primary provider gemini is not configured" in errors

    def test_empty_api_key(self, config_dict):
        config_dict["providers"]["anthropic"]["api_key"] = ""
        errors = RouterConfig.from_dict(config_dict).validate()
        assert "Provider anthropic has no API key" in errors
        assert "Intent override 'billing' targets unconfigured provider anthropic" in errors


def test_example_config_is_valid():
    config = create_example_config()
    assert config.is_valid()
    assert [p.name for p in config.providers] == [
        ProviderType.OPENAI,
        ProviderType.ANTHROPIC,
        ProviderType.GEMINI,
    ]
    assert config.routing.chain == [ProviderType.OPENAI, ProviderType.ANTHROPIC, ProviderType.GEMINI]
    assert "default" in config.tools.tenants


@pytest.mark.asyncio
async def test_create_router(config_dict, mock_httpx_client):
    config = RouterConfig.from_dict(config_dict)
    async with create_router(config) as router:
        assert router.get_available_providers() == ["openai", "anthropic"]
        assert router.primary_provider_name == ProviderType.OPENAI


def test_create_tool_policy():
    assert isinstance(create_tool_policy(RouterConfig.from_env({"OPENAI_API_KEY": "k"})), AllowAllPolicy)

    policy = create_tool_policy(create_example_config())
    assert isinstance(policy, TenantToolPolicy)
    assert policy.is_tool_enabled("default", "lookup_order", Channel.WEB) is True
    assert policy.is_tool_enabled("default", "lookup_order", Channel.WHATSAPP) is False


def test_create_tool_runtime(config_dict):
    runtime = create_tool_runtime(RouterConfig.from_dict(config_dict), ToolRegistry())
    assert runtime.timeout_seconds == 5
    assert isinstance(runtime.policy, AllowAllPolicy)
