"""Typer-based operator CLI for HttpBroker."""

import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from HttpBroker.client import HttpClient
from HttpBroker.config import ConfigResolver
from HttpBroker.errors import ErrorCode, HttpBrokerError, error_code_range
from HttpBroker.logger import setup_logging
from HttpBroker.orchestrator import RequestOrchestrator
from HttpBroker.settings import BrokerSettings
from HttpBroker.stores import STORE_NAMES, open_store

console = Console()
app = typer.Typer(help="HttpBroker outbound HTTP requests")

# ============================================================================
# Setup
# ============================================================================


def _settings(config: Optional[Path], cache_dir: Optional[Path]) -> BrokerSettings:
    overrides = {}
    if config is not None:
        overrides["config_file"] = config
    if cache_dir is not None:
        overrides["cache_dir"] = cache_dir
    return BrokerSettings(**overrides)


def _parse_json_option(name: str, value: Optional[str]) -> object:
    if value is None:
        return None
    try:
        return json.loads(value)
    except ValueError as e:
        console.print(f"[red]✗ --{name} is not valid JSON: {e}[/red]")
        raise typer.Exit(code=2)


# ============================================================================
# Commands
# ============================================================================


@app.command()
def request(
    operation: str = typer.Argument(..., help="provider.service.endpoint.METHODorAlias"),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="YAML/JSON request config", envvar="HTTPBROKER_CONFIG_FILE"
    ),
    path: List[str] = typer.Option([], "--path", "-p", help="Path segment (repeatable)"),
    query: Optional[str] = typer.Option(None, "--query", "-q", help="Query parameters, JSON object"),
    body: Optional[str] = typer.Option(None, "--body", "-b", help="Request body, JSON"),
    options: Optional[str] = typer.Option(None, "--options", "-o", help="Option overrides, JSON object"),
    cache_dir: Optional[Path] = typer.Option(None, "--cache-dir", help="File-backed stores directory"),
    log_dir: Optional[Path] = typer.Option(None, "--log-dir", help="Write JSON log lines here"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose"),
) -> None:
    """Execute one operation and print its envelope as JSON."""
    setup_logging(level="DEBUG" if verbose else "WARNING", log_dir=log_dir)

    parts = operation.split(".")
    if len(parts) != 4:
        console.print(f"[red]✗ Operation[{operation}] must be provider.service.endpoint.method[/red]")
        raise typer.Exit(code=2)
    provider, service, endpoint, method = parts

    settings = _settings(config, cache_dir)
    if settings.config_file is None:
        console.print("[red]✗ No config file, use --config or HTTPBROKER_CONFIG_FILE[/red]")
        raise typer.Exit(code=2)

    arguments = {
        "path": path,
        "query": _parse_json_option("query", query),
        "body": _parse_json_option("body", body),
    }
    overrides = _parse_json_option("options", options)

    try:
        resolver = ConfigResolver.from_file(settings.config_file, settings=settings)
        client = HttpClient(
            provider,
            service,
            config=resolver,
            orchestrator=RequestOrchestrator.from_settings(settings),
        )
        envelope = client.request(endpoint, method, arguments, overrides)  # type: ignore[arg-type]
    except HttpBrokerError as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        raise typer.Exit(code=1)

    typer.echo(json.dumps(envelope.to_dict(public=True), indent=2, default=str))
    if not envelope.body.success:
        raise typer.Exit(code=1)


@app.command("error-codes")
def error_codes(
    offset: Optional[int] = typer.Option(None, "--offset", help="Override the configured offset"),
) -> None:
    """Print the error code catalog."""
    if offset is None:
        offset = BrokerSettings().error_code_offset
    first, last = error_code_range(offset=offset)

    table = Table(title=f"Error codes ({first}-{last})")
    table.add_column("Name", style="cyan")
    table.add_column("Base", justify="right")
    table.add_column("Reported", justify="right", style="green")
    for code in ErrorCode:
        if code is ErrorCode.NONE:
            continue
        table.add_row(code.slug, str(int(code)), str(code.reported(offset)))
    console.print(table)


@app.command("cache-delete")
def cache_delete(
    store: str = typer.Argument(..., help=f"One of {', '.join(STORE_NAMES)}"),
    key: str = typer.Argument(..., help="Cache key, e.g. provider.service.endpoint.GET"),
    cache_dir: Optional[Path] = typer.Option(
        None, "--cache-dir", help="File-backed stores directory", envvar="HTTPBROKER_CACHE_DIR"
    ),
) -> None:
    """Drop one entry from a file-backed store."""
    if cache_dir is None:
        console.print("[red]✗ No cache dir, use --cache-dir or HTTPBROKER_CACHE_DIR[/red]")
        raise typer.Exit(code=2)
    if store not in STORE_NAMES:
        console.print(f"[red]✗ Unknown store[{store}], expected one of {', '.join(STORE_NAMES)}[/red]")
        raise typer.Exit(code=2)

    deleted = open_store(store, cache_dir).delete(key)
    if deleted:
        console.print(Panel(f"[bold green]✓ Deleted[/bold green] {key}", title=store))
    else:
        console.print(f"[yellow]No entry {key} in {store}[/yellow]")
        logging.getLogger(__name__).info("Cache entry %s not found in %s", key, store)


if __name__ == "__main__":
    app()
