"""servstat CLI entry point."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from servstat.config.loader import load_config
from servstat.config.models import ServStatConfig

app = typer.Typer(
    name="servstat",
    help="servstat — upstream service status page",
    no_args_is_help=True,
)
console = Console()

STATE_STYLES = {"up": "green", "down": "red", "unknown": "yellow"}


def _load_or_exit(path: Path | None) -> ServStatConfig:
    try:
        return load_config(path)
    except FileNotFoundError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(1)
    except yaml.YAMLError as exc:
        console.print(f"[red]YAML parsing failed: {escape(str(exc))}[/red]")
        raise typer.Exit(1)
    except ValueError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(1)


@app.command()
def serve(
    config_path: Path | None = typer.Argument(None, help="Path to servstat.yaml"),
) -> None:
    """Bind the configured listeners and serve the status page."""
    from servstat.api.app import create_app
    from servstat.net.acceptor import build_acceptor
    from servstat.net.binder import BindError
    from servstat.net.server import make_server

    config = _load_or_exit(config_path)
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if config.source is not None:
        console.print(f"Using configuration {config.source}")

    try:
        acceptor = build_acceptor(
            config.listen_stack,
            config.listen_port,
            v4_host=config.listen_v4,
            v6_host=config.listen_v6,
            backlog=config.backlog,
        )
    except BindError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    addresses = ", ".join(f"http://{spec.display}" for spec in acceptor.listen_specs)
    console.print(f"[bold]servstat[/bold] listening on {addresses}")

    server = make_server(create_app(config), acceptor, log_level=config.log_level)
    try:
        server.run()
    finally:
        acceptor.close()


@app.command()
def status(
    config_path: Path | None = typer.Argument(None, help="Path to servstat.yaml"),
) -> None:
    """Probe every configured service once and print the report."""
    from servstat.registry.registry import ServiceRegistry

    config = _load_or_exit(config_path)
    registry = ServiceRegistry(config)
    report = registry.get_report_sync()

    table = Table(title=config.title)
    table.add_column("Service", style="bold")
    table.add_column("Status")
    table.add_column("Detail")
    table.add_column("Latency")

    for outcome in report:
        label = outcome.status_label
        style = STATE_STYLES.get(label, "red")
        latency = f"{outcome.latency_ms:.0f}ms" if outcome.latency_ms else "—"
        table.add_row(outcome.identifier, f"[{style}]{label}[/{style}]", outcome.detail or "", latency)

    console.print(table)
    if not report.all_up:
        raise typer.Exit(1)


config_app = typer.Typer(name="config", help="Configuration commands")
app.add_typer(config_app)


@config_app.command("validate")
def config_validate(
    path: Path | None = typer.Option(None, "--path", "-p", help="Path to servstat.yaml"),
) -> None:
    """Validate configuration file."""
    from urllib.parse import urlparse

    from servstat.registry.probes import parse_host_port, resolve_check

    try:
        config = load_config(path=path)
        console.print(f"[green]✓[/green] Read {config.source}")
        console.print("[green]✓[/green] YAML parses correctly")
        console.print("[green]✓[/green] Pydantic validation passes")
    except FileNotFoundError as exc:
        console.print(f"[red]✗ {escape(str(exc))}[/red]")
        raise typer.Exit(1)
    except yaml.YAMLError as exc:
        console.print(f"[red]✗ YAML parsing failed: {escape(str(exc))}[/red]")
        raise typer.Exit(1)
    except ValueError as exc:
        console.print("[green]✓[/green] YAML parses correctly")
        console.print(f"[red]✗ Pydantic validation failed: {escape(str(exc))}[/red]")
        raise typer.Exit(1)

    errors: list[str] = []
    warnings: list[str] = []
    seen: set[str] = set()
    for i, entry in enumerate(config.services):
        if entry.name in seen:
            warnings.append(f"Service {i}: duplicate name '{entry.name}'")
        seen.add(entry.name)

        kind = resolve_check(entry, config.default_check)
        if kind == "http":
            address = entry.address if "://" in entry.address else "http://" + entry.address
            parsed = urlparse(address)
            if not parsed.scheme or not parsed.netloc:
                errors.append(f"Service '{entry.name}': invalid URL '{entry.address}'")
        elif kind == "tcp":
            try:
                parse_host_port(entry.address)
            except ValueError as exc:
                errors.append(f"Service '{entry.name}': {exc}")

    if not errors:
        console.print(f"[green]✓[/green] {len(config.services)} service(s) have valid checks")
        for w in warnings:
            console.print(f"[yellow]! {w}[/yellow]")
        console.print("\n[green bold]Configuration is valid.[/green bold]")
    else:
        for err in errors:
            console.print(f"[red]✗ {err}[/red]")
        console.print(f"\n[red bold]{len(errors)} validation error(s) found.[/red bold]")
        raise typer.Exit(1)


@config_app.command("show")
def config_show(
    path: Path | None = typer.Option(None, "--path", "-p", help="Path to servstat.yaml"),
) -> None:
    """Print resolved configuration."""
    from servstat.net.acceptor import listen_specs_for
    from servstat.registry.probes import resolve_check

    config = _load_or_exit(path)

    console.print(f"[bold]{config.title}[/bold]")
    console.print(f"Source: {config.source}\n")

    console.print("[bold]Listen:[/bold]")
    console.print(f"  Stack: {config.listen_stack.value}")
    for spec in listen_specs_for(config.listen_stack, config.listen_port, config.listen_v4, config.listen_v6):
        console.print(f"  http://{spec.display}")
    console.print(f"  Probe timeout: {config.probe_timeout}s (deadline {config.aggregation_deadline}s)\n")

    console.print("[bold]Services:[/bold]")
    if not config.services:
        console.print("  none")
    for entry in config.services:
        console.print(f"  {entry.name}: {resolve_check(entry, config.default_check)} {entry.address}")


def main() -> None:
    app()
