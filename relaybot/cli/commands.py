"""CLI commands for relaybot."""

import asyncio
import sys

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from relaybot import __logo__, __version__

app = typer.Typer(
    name="relaybot",
    help=f"{__logo__} relaybot - bot to live-agent handover gateway",
    no_args_is_help=True,
)

console = Console()

# Config keys whose values are masked in `config show`
SENSITIVE_KEYS = {"webhook_secret", "service_password"}


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} relaybot v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """relaybot - bot to live-agent handover gateway."""
    pass


# ============================================================================
# Gateway
# ============================================================================


@app.command()
def gateway(
    port: int = typer.Option(None, "--port", "-p", help="Gateway port (overrides config)"),
    impl: str = typer.Option(None, "--impl", help="Agent implementation: mock or live"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Start the relaybot gateway."""
    from relaybot.config.loader import load_config
    from relaybot.gateway import Gateway

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")

    config = load_config()
    if port is not None:
        config.gateway.port = port

    if not config.channel.webhook_url:
        console.print("[yellow]Warning: channel.webhookUrl is not set, replies to the bot will fail[/yellow]")

    try:
        gw = Gateway(config, impl=impl)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"{__logo__} Starting relaybot gateway on port {config.gateway.port}...")
    console.print(f"[green]✓[/green] Agent bridge: {gw.bridge.name}")
    console.print(
        f"[green]✓[/green] Poll interval: {config.agent.poll_interval_ms}ms ({config.agent.relay} relay)"
    )

    try:
        asyncio.run(gw.run_forever())
    except KeyboardInterrupt:
        console.print("\nShutting down...")


# ============================================================================
# Config
# ============================================================================

config_app = typer.Typer(help="Inspect and create the configuration file")
app.add_typer(config_app, name="config")


def _flatten(data: dict, prefix: str = "") -> list[tuple[str, object]]:
    rows: list[tuple[str, object]] = []
    for key, value in data.items():
        path = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict):
            rows.extend(_flatten(value, path))
        else:
            if key in SENSITIVE_KEYS and value:
                value = "********"
            rows.append((path, value))
    return rows


@config_app.command("show")
def config_show():
    """Show the effective configuration (secrets masked)."""
    from relaybot.config.loader import load_config

    config = load_config()

    table = Table(title="relaybot configuration")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for path, value in _flatten(config.model_dump()):
        table.add_row(path, "" if value is None else str(value))
    console.print(table)


@config_app.command("init")
def config_init(
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
):
    """Write a default configuration file."""
    from relaybot.config.loader import get_config_path, save_config
    from relaybot.config.schema import Config

    path = get_config_path()
    if path.exists() and not force:
        console.print(f"[yellow]Config already exists at {path}[/yellow] (use --force to overwrite)")
        raise typer.Exit(1)

    save_config(Config(), path)
    console.print(f"[green]✓[/green] Created config at {path}")


# ============================================================================
# Status
# ============================================================================


@app.command()
def status():
    """Show relaybot status."""
    from relaybot.config.loader import get_config_path, load_config

    config_path = get_config_path()
    config = load_config()

    console.print(f"{__logo__} relaybot Status\n")
    console.print(
        f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}"
    )
    console.print(f"Agent bridge: {config.agent.impl}")
    console.print(f"Relay: {config.agent.relay}")
    console.print(f"Listen: {config.gateway.host}:{config.gateway.port}")
    webhook = config.channel.webhook_url
    console.print(f"Bot webhook: {webhook if webhook else '[dim]not set[/dim]'}")


if __name__ == "__main__":
    app()
