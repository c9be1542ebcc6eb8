"""CLI for LLM Provider Router."""

import asyncio
import sys
from pathlib import Path

import click
import uvicorn

from .config import RouterConfig, create_example_config, create_router, load_default_config
from .logging import setup_logging
from .models import RoutingContext
from .server import create_app

config_option = click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file (JSON); defaults to the standard locations, then the environment",
)


def _load_config(config: Path | None) -> RouterConfig:
    """Load from the given file, the default locations, or the environment."""
    if config:
        click.echo(f"Loading configuration from: {config}")
        return RouterConfig.from_json_file(str(config))
    router_config = load_default_config()
    if router_config is not None:
        click.echo("Loaded default configuration file")
        return router_config
    click.echo("No configuration file found, reading environment variables")
    return RouterConfig.from_env()


def _exit_on_errors(router_config: RouterConfig) -> None:
    errors = router_config.validate()
    if errors:
        click.echo("❌ Configuration errors:", err=True)
        for error in errors:
            click.echo(f"   - {error}", err=True)
        sys.exit(1)


def _mask(api_key: str) -> str:
    return f"{'*' * 8}{api_key[-4:] if len(api_key) > 4 else '****'}"


@click.group()
def cli() -> None:
    """LLM Provider Router - route completions across OpenAI, Anthropic and Gemini with failover."""
    pass


@cli.command()
@config_option
@click.option(
    "--host",
    "-h",
    default="127.0.0.1",
    show_default=True,
    help="Host to bind the server to",
)
@click.option(
    "--port",
    "-p",
    default=8000,
    show_default=True,
    type=int,
    help="Port to bind the server to",
)
@click.option(
    "--log-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for structured JSONL logs (overrides the config file)",
)
def serve(config: Path | None, host: str, port: int, log_dir: Path | None) -> None:
    """Start the LLM Provider Router server."""
    try:
        router_config = _load_config(config)
        _exit_on_errors(router_config)

        setup_logging(
            str(log_dir) if log_dir else router_config.logging.log_dir,
            router_config.logging.log_level,
        )
        app = create_app(router_config)
        routing = router_config.routing

        click.echo("=" * 60)
        click.echo("🚀 LLM Provider Router Server")
        click.echo("=" * 60)
        click.echo(f"📁 Config: {config or 'default'}")
        click.echo(f"🌐 Host: {host}")
        click.echo(f"🔌 Port: {port}")
        click.echo()
        click.echo("🤖 Providers:")
        for provider in router_config.providers:
            click.echo(f"  • {provider.name.value}: {provider.model} ({provider.base_url or 'default'})")
        click.echo()
        click.echo(f"🧭 Strategy: {routing.strategy.value}")
        click.echo(f"   Chain: {' -> '.join(p.value for p in routing.chain)}")
        click.echo()
        click.echo("🔗 Endpoints:")
        click.echo(f"  • Completions: http://{host}:{port}/v1/completions")
        click.echo(f"  • Tools: http://{host}:{port}/v1/tools")
        click.echo(f"  • Health: http://{host}:{port}/health")
        click.echo(f"  • Ready: http://{host}:{port}/ready")
        click.echo(f"  • Status: http://{host}:{port}/status")
        click.echo(f"  • Metrics: http://{host}:{port}/metrics")
        click.echo()
        click.echo("=" * 60)
        click.echo("Starting server... Press Ctrl+C to stop")
        click.echo("=" * 60)

        uvicorn.run(app, host=host, port=port)

    except Exception as e:
        click.echo(f"❌ Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default="llm_router_config.json",
    show_default=True,
    help="Output path for configuration file",
)
def init(output: Path) -> None:
    """Create a new configuration file with examples."""
    if output.exists():
        if not click.confirm(f"File {output} already exists. Overwrite?"):
            click.echo("Cancelled.")
            return

    try:
        create_example_config().save_to_file(str(output))

        click.echo(f"✅ Created configuration file: {output}")
        click.echo()
        click.echo("Next steps:")
        click.echo(f"  1. Edit {output} and add your API keys")
        click.echo("  2. Start server: llm-provider-router serve")
        click.echo(f"  3. Or: llm-provider-router serve --config {output}")

    except OSError as e:
        click.echo(f"❌ Error creating config file: {e}", err=True)
        sys.exit(1)


@cli.command()
@config_option
def check(config: Path | None) -> None:
    """Check configuration without contacting any provider."""
    try:
        click.echo("🔍 Checking configuration...")
        router_config = _load_config(config)
        _exit_on_errors(router_config)

        click.echo("✅ Configuration is valid")
        click.echo()

        click.echo("📋 Provider configuration:")
        for provider in router_config.providers:
            click.echo(f"  {provider.name.value}:")
            click.echo(f"       API Key: {_mask(provider.api_key)}")
            click.echo(f"       Model: {provider.model}")
            click.echo(f"       Base URL: {provider.base_url or 'default'}")
            click.echo(f"       Timeout: {provider.timeout_ms}ms")
            click.echo(f"       Max tokens: {provider.max_tokens}, temperature: {provider.temperature}")

        routing = router_config.routing
        click.echo()
        click.echo("🧭 Routing:")
        click.echo(f"  Strategy: {routing.strategy.value}")
        click.echo(f"  Chain: {' -> '.join(p.value for p in routing.chain)}")
        click.echo(f"  Split: {routing.split_percent}%")
        for intent, provider in routing.intent_overrides.items():
            click.echo(f"  Intent {intent} -> {provider.value}")

        click.echo()
        click.echo("✅ Configuration check passed!")

    except Exception as e:
        click.echo(f"❌ Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@config_option
def health(config: Path | None) -> None:
    """Ping every configured provider once."""

    async def run(router_config: RouterConfig) -> dict:
        async with create_router(router_config) as router:
            return await router.health_check()

    try:
        router_config = _load_config(config)
        _exit_on_errors(router_config)
        results = asyncio.run(run(router_config))
    except Exception as e:
        click.echo(f"❌ Error: {e}", err=True)
        sys.exit(1)

    for name, result in results.items():
        marker = "✅" if result["status"] == "ok" else "❌"
        click.echo(f"{marker} {name}: {result['status']} ({result['latency_ms']}ms)")

    if any(result["status"] != "ok" for result in results.values()):
        sys.exit(1)


@cli.command()
@config_option
@click.option("--conversation-id", required=True, help="Conversation id used for split-test bucketing")
@click.option("--intent", default=None, help="Detected intent used for intent routing")
def route(config: Path | None, conversation_id: str, intent: str | None) -> None:
    """Show the provider order a request would be tried in."""

    async def run(router_config: RouterConfig) -> list[str]:
        async with create_router(router_config) as router:
            context = RoutingContext(conversation_id=conversation_id, intent=intent)
            return [p.value for p in router.resolve_order(context)]

    try:
        router_config = _load_config(config)
        _exit_on_errors(router_config)
        order = asyncio.run(run(router_config))
    except Exception as e:
        click.echo(f"❌ Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Strategy: {router_config.routing.strategy.value}")
    for i, provider in enumerate(order, 1):
        click.echo(f"  {i}. {provider}")


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
