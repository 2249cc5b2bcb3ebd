#!/usr/bin/env python3
"""signal-sidecar command-line interface.

Runs the sidecar, performs one-off health checks and validates
configuration files.
"""

import asyncio
import json
import sys

import click
import yaml
from rich.console import Console
from rich.table import Table

from signal_sidecar import __version__
from signal_sidecar.config import load_config
from signal_sidecar.core.sidecar import Sidecar
from signal_sidecar.errors import ConfigError
from signal_sidecar.logging_config import configure_logging

console = Console()


def _load_or_exit(config_path):
    try:
        return load_config(config_path)
    except ConfigError as e:
        console.print(f"[bold red]✗ Configuration error: {e}[/bold red]")
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name='signal-sidecar')
def cli():
    """signal-sidecar: load-balancer health signaling for signal nodes."""
    pass


@cli.command()
@click.option('--config', '-c', 'config_path', default=None, help='YAML configuration file')
def run(config_path):
    """Run the sidecar: poll loops, HTTP API and agent-check listener."""
    config = _load_or_exit(config_path)
    configure_logging(config.log_level)
    console.print(f"[bold green]Starting signal-sidecar "
                  f"(http :{config.http_port}, agent :{config.tcp_port})[/bold green]")
    try:
        asyncio.run(Sidecar(config).run_forever())
    except KeyboardInterrupt:
        console.print("[bold yellow]signal-sidecar stopped[/bold yellow]")


async def _check_once(config):
    sidecar = Sidecar(config)
    await sidecar.health_collector.collect(sidecar.state)
    return sidecar.state.report(config)


@cli.command()
@click.option('--config', '-c', 'config_path', default=None, help='YAML configuration file')
@click.option('--format', '-f', 'output_format', type=click.Choice(['table', 'json']), default='table')
def check(config_path, output_format):
    """Run one health cycle and print the reported health."""
    config = _load_or_exit(config_path)
    configure_logging(config.log_level)
    report = asyncio.run(_check_once(config))

    if output_format == 'json':
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        table = Table(title="Signal Node Health")
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="green")

        table.add_row("Healthy", "✓ yes" if report.healthy else "✗ no")
        table.add_row("Status", report.status)
        table.add_row("Weight", report.weight)
        table.add_row("Agent line", report.agent_line.strip())
        for key, value in report.services.items():
            table.add_row(key, str(value))
        for key, value in report.stats.items():
            table.add_row(key, str(value))

        console.print(table)

    sys.exit(0 if report.healthy else 1)


@cli.group()
def config():
    """Manage configuration."""
    pass


@config.command('validate')
@click.argument('config_file')
def validate_config(config_file):
    """Validate a configuration file."""
    console.print(f"[bold blue]Validating configuration: {config_file}[/bold blue]")
    _load_or_exit(config_file)
    console.print("[bold green]✓ Configuration is valid[/bold green]")


@config.command('show')
@click.option('--config', '-c', 'config_path', default=None, help='YAML configuration file')
def show_config(config_path):
    """Print the effective configuration as YAML."""
    cfg = _load_or_exit(config_path)
    click.echo(yaml.safe_dump(cfg.to_dict(), sort_keys=True))


if __name__ == '__main__':
    cli()
