"""CLI commands for codebridge."""

import asyncio
import sys
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from codebridge import __logo__, __version__

app = typer.Typer(
    name="codebridge",
    help=f"{__logo__} codebridge - chat with your coding agents",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} codebridge v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(None, "--version", "-v", callback=version_callback, is_eager=True),
):
    """codebridge - chat with your coding agents."""
    pass


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")


def _load(config_path: Path | None):
    from codebridge.config.loader import load_config

    return load_config(config_path)


# ============================================================================
# Onboard / Setup
# ============================================================================


@app.command()
def onboard():
    """Initialize codebridge configuration."""
    from codebridge.config.loader import get_config_path, load_config, save_config
    from codebridge.config.schema import Config

    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if typer.confirm("Overwrite?"):
            config = Config()
            save_config(config)
            console.print(f"[green]✓[/green] Config reset to defaults at {config_path}")
        else:
            config = load_config()
            save_config(config)
            console.print(f"[green]✓[/green] Config refreshed at {config_path} (existing values preserved)")
    else:
        save_config(Config())
        console.print(f"[green]✓[/green] Created config at {config_path}")

    console.print(f"\n{__logo__} codebridge is ready!")
    console.print("\nNext steps:")
    console.print(f"  1. Add your Telegram bot token to [cyan]{config_path}[/cyan]")
    console.print("     and set [cyan]channels.telegram.allowFrom[/cyan] to your user id")
    console.print("  2. Point [cyan]projects.root[/cyan] at the folder holding your projects")
    console.print("  3. Start the bridge: [cyan]codebridge run[/cyan]")


# ============================================================================
# Bridge
# ============================================================================


@app.command()
def run(
    config_path: Path = typer.Option(None, "--config", "-c", help="Path to config file"),
    verbose: bool = typer.Option(False, "--verbose", help="Verbose output"),
):
    """Start the bridge."""
    from codebridge.agent.loop import BridgeLoop
    from codebridge.agent.registry import SessionRegistry
    from codebridge.bus.queue import MessageBus
    from codebridge.channels.manager import ChannelManager
    from codebridge.notifier import Notifier
    from codebridge.output.processor import ContentProcessor
    from codebridge.projects import ProjectResolver
    from codebridge.providers.claude_sdk import ClaudeAgentBackend

    config = _load(config_path)

    if not config.channels.telegram.enabled or not config.channels.telegram.token:
        console.print("[red]Error: Telegram is not configured.[/red]")
        console.print("Set channels.telegram.enabled and channels.telegram.token in your config.")
        raise typer.Exit(1)

    _configure_logging(verbose)
    console.print(f"{__logo__} Starting codebridge...")

    bus = MessageBus()
    notifier = Notifier(bus, max_message_length=config.output.max_message_length)
    backend = ClaudeAgentBackend(
        model=config.agent.model,
        permission_mode=config.agent.permission_mode,
        max_turns=config.agent.max_turns,
    )
    registry = SessionRegistry(
        resolver=ProjectResolver(config.projects),
        notifier=notifier,
        backend=backend,
        agent_config=config.agent,
        processor=ContentProcessor(config.output.summarize_threshold),
    )
    bridge = BridgeLoop(bus, registry, notifier)
    channels = ChannelManager(config, bus)

    console.print(f"[green]✓[/green] Channels enabled: {', '.join(channels.enabled_channels)}")
    console.print(f"[green]✓[/green] Projects root: {config.projects.root_path}")

    async def run_bridge():
        try:
            await asyncio.gather(bridge.run(), channels.start_all())
        except KeyboardInterrupt:
            console.print("\nShutting down...")
        finally:
            logger.info(f"Final state: {registry.introspect()}")
            bridge.stop()
            await registry.shutdown()
            await channels.stop_all()

    asyncio.run(run_bridge())


# ============================================================================
# Projects
# ============================================================================


@app.command()
def projects(
    config_path: Path = typer.Option(None, "--config", "-c", help="Path to config file"),
):
    """List projects the bridge can open."""
    from codebridge.projects import ProjectResolver

    config = _load(config_path)
    resolver = ProjectResolver(config.projects)
    available = resolver.list_available()

    if not available:
        console.print(f"No projects found in {resolver.root}")
        return

    table = Table(title=f"Projects in {resolver.root}")
    table.add_column("Project", style="cyan")
    table.add_column("Directory")
    for project in available:
        table.add_row(project.title, project.description)
    console.print(table)


# ============================================================================
# Status
# ============================================================================


@app.command()
def status(
    config_path: Path = typer.Option(None, "--config", "-c", help="Path to config file"),
):
    """Show codebridge configuration status."""
    from codebridge.config.loader import get_config_path

    path = config_path or get_config_path()
    config = _load(config_path)

    console.print(f"{__logo__} codebridge Status\n")
    console.print(f"Config: {path} {'[green]✓[/green]' if path.exists() else '[red]✗[/red]'}")

    root = config.projects.root_path
    console.print(f"Projects root: {root} {'[green]✓[/green]' if root.is_dir() else '[red]✗[/red]'}")
    console.print(f"Model: {config.agent.model}")
    console.print(f"Permission mode: {config.agent.permission_mode}")
    console.print(f"Auto-approved tools: {', '.join(config.agent.allowed_tools) or 'none'}")

    telegram = config.channels.telegram
    if telegram.enabled and telegram.token:
        console.print("Telegram: [green]✓[/green]")
    elif telegram.enabled:
        console.print("Telegram: [yellow]enabled, no token[/yellow]")
    else:
        console.print("Telegram: [dim]disabled[/dim]")


if __name__ == "__main__":
    app()
