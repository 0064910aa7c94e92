"""
FeedFilter command line interface.

Usage:
    feedfilter serve [--port 5000] [--input-source URL]
    feedfilter refresh
    feedfilter check-config
"""

import asyncio
import sys

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config.settings import FeedFilterSettings, load_settings, set_settings
from .utils.exceptions import FeedFilterError, get_user_friendly_message
from .utils.logging import (
    BoundedLogFactory,
    configure_application_logging,
    get_logger_for_component,
)


console = Console()


def _load(ctx, **overrides) -> FeedFilterSettings:
    nested = {}
    for section_key, value in overrides.items():
        if value is None:
            continue
        section, key = section_key.split(".", 1)
        nested.setdefault(section, {})[key] = value

    if ctx.obj.get("debug"):
        nested["debug"] = True

    settings = load_settings(ctx.obj.get("config_path"), overrides=nested)
    set_settings(settings)
    return settings


def _configure_logging(settings: FeedFilterSettings) -> BoundedLogFactory:
    log_factory = BoundedLogFactory(
        settings.logger.log_directory,
        max_file_size_bytes=settings.logger.max_file_size_bytes,
        buffer_size=settings.logger.buffer_size,
    )
    configure_application_logging(
        log_level=settings.get_effective_log_level(),
        enable_console=settings.logging.console_logging,
        log_factory=log_factory,
    )
    return log_factory


@click.group()
@click.option("--config", "config_path", type=click.Path(), help="JSON configuration file")
@click.option("--debug", is_flag=True, help="Enable debug mode")
@click.pass_context
def cli(ctx, config_path, debug):
    """FeedFilter - RSS feed rewriting proxy."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--port", type=int, default=None, help="Port to listen on")
@click.option("--host", default=None, help="Interface to bind")
@click.option("--input-source", default=None, help="Upstream feed URL")
@click.pass_context
def serve(ctx, port, host, input_source):
    """Serve the filtered feed and keep it updated."""
    from .api.server import run_server

    try:
        settings = _load(
            ctx,
            **{
                "server.port": port,
                "server.host": host,
                "feed.input_source": input_source,
            },
        )
        settings.validate_configuration()
        _configure_logging(settings)
    except FeedFilterError as e:
        console.print(f"[bold red]❌ Configuration error: {escape(str(e))}[/bold red]")
        sys.exit(1)

    logger = get_logger_for_component("server")
    logger.info(f"Starting {settings.app_name} v{settings.version}")

    try:
        run_server(settings)
    except Exception as e:
        logger.error(f"Server stopped with error: {e}", exc_info=True)
        console.print(f"[bold red]❌ Server error: {escape(get_user_friendly_message(e))}[/bold red]")
        sys.exit(1)


@cli.command()
@click.option("--input-source", default=None, help="Upstream feed URL")
@click.pass_context
def refresh(ctx, input_source):
    """Run one feed cycle and print the rewritten feed."""
    from .processing.feed_monitor import FeedMonitor
    from .storage.feed_cache import FeedCache

    try:
        settings = _load(ctx, **{"feed.input_source": input_source})
        settings.validate_configuration()
        _configure_logging(settings)

        monitor = FeedMonitor(FeedCache(), settings=settings)
        text = asyncio.run(monitor.refresh())
    except Exception as e:
        console.print(f"[bold red]❌ Refresh failed: {escape(get_user_friendly_message(e))}[/bold red]")
        sys.exit(1)

    click.echo(text)


@cli.command("check-config")
@click.pass_context
def check_config(ctx):
    """Validate configuration and show the active rules."""
    console.print("[bold blue]🔍 Checking FeedFilter Configuration[/bold blue]")

    try:
        settings = _load(ctx)
    except FeedFilterError as e:
        console.print(f"[bold red]❌ Configuration error: {escape(str(e))}[/bold red]")
        sys.exit(1)

    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    feed = settings.feed
    table.add_row("Input source", feed.input_source or "[red]not set[/red]")
    table.add_row("Tags to remove", ", ".join(feed.tags_to_remove) or "-")
    table.add_row("Cleanup enabled", str(feed.cleanup_tags))
    for rule in feed.tag_split:
        targets = ", ".join(f"{k}={v}" for k, v in rule.new_tags.items())
        table.add_row(f"Split {rule.tag_name}", escape(f"{rule.split_pattern} -> {targets}"))
    for rule in feed.all_cleanup_rules():
        table.add_row(f"Cleanup {rule.tag_name}", escape(rule.cleanup_pattern))
    table.add_row("Log directory", settings.logger.log_directory)
    table.add_row(
        "Log limits",
        f"{settings.logger.max_file_size_bytes} bytes, trim {settings.logger.buffer_size} lines",
    )
    table.add_row(
        "Monitor",
        f"every {settings.monitor.poll_interval_seconds:g}s, "
        f"{settings.monitor.max_retries} attempts, "
        f"{settings.monitor.retry_delay_seconds:g}s delay",
    )
    table.add_row("Listen", f"{settings.server.host}:{settings.server.port}")
    console.print(table)

    try:
        settings.validate_configuration()
    except FeedFilterError as e:
        console.print(f"[bold red]❌ {escape(str(e))}[/bold red]")
        sys.exit(1)

    console.print("[bold green]✅ All configuration checks passed![/bold green]")


def main():
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 FeedFilter interrupted by user[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
