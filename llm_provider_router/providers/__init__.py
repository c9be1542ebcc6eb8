"""Provider implementations."""

from ..exceptions import ConfigurationError
from ..logging import get_logger
from ..models import ProviderConfig, ProviderType
from .anthropic import AnthropicProvider
from .base import BaseProvider
from .gemini import GeminiProvider
from .openai import OpenAIProvider


def create_provider(config: ProviderConfig) -> BaseProvider:
    """Create a provider instance based on configuration."""
    if config.name == ProviderType.OPENAI:
        return OpenAIProvider(config)
    elif config.name == ProviderType.ANTHROPIC:
        return AnthropicProvider(config)
    elif config.name == ProviderType.GEMINI:
        return GeminiProvider(config)
    else:
        raise ValueError(f"Unsupported provider type: {config.name}")


def build_providers(configs: list[ProviderConfig]) -> dict[ProviderType, BaseProvider]:
    """Create a provider for every config that carries an API key."""
    logger = get_logger()
    providers: dict[ProviderType, BaseProvider] = {}
    for config in configs:
        if not config.api_key:
            continue
        providers[config.name] = create_provider(config)
        logger.logger.info(f"{config.name.value} provider initialized (model {config.model})")

    if not providers:
        raise ConfigurationError(
            "No LLM providers configured. Set at least one of: "
            "OPENAI_API_KEY, ANTHROPIC_API_KEY, GEMINI_API_KEY"
        )
    return providers


__all__ = [
    "BaseProvider",
    "OpenAIProvider",
    "AnthropicProvider",
    "GeminiProvider",
    "create_provider",
    "build_providers",
]
