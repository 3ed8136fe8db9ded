"""Run command: start the tunnel."""

from dataclasses import replace
from typing import Annotated

import typer

from atptunnel import app as tunnel_app
from atptunnel.cli.output import console, print_error
from atptunnel.config import DEFAULT_CONFIG_FILE, load_config
from atptunnel.exceptions import ConfigError
from atptunnel.models.endpoint import Endpoint
from atptunnel.models.enums import LogLevel


def run_tunnel(
    config_file: Annotated[
        str,
        typer.Option(
            "--config",
            "-c",
            help="Path to the tunnel YAML config",
            envvar="ATPTUNNEL_CONFIG",
        ),
    ] = DEFAULT_CONFIG_FILE,
    listen: Annotated[
        str | None,
        typer.Option(
            "--listen",
            "-l",
            help="Remote listen address HOST:PORT (overrides config)",
        ),
    ] = None,
    log_level: Annotated[
        LogLevel | None,
        typer.Option(
            "--log-level",
            help="Logging verbosity (overrides config)",
            envvar="ATPTUNNEL_LOG_LEVEL",
            case_sensitive=False,
        ),
    ] = None,
):
    """
    Start the tunnel.

    Opens the SSH session, binds the remote listener and relays every
    accepted connection to the database target. Runs until interrupted.
    """
    try:
        config = load_config(config_file)
        if listen:
            try:
                address = Endpoint.parse(listen, default_host=config.listen.host)
            except ValueError as e:
                raise ConfigError(str(e)) from e
            config = config.with_listen(address.host, address.port)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if log_level is not None:
        config = replace(config, log_level=log_level)

    console.print(
        f"[bold green]Tunnel[/bold green] "
        f"[cyan]{config.ssh.username}@{config.ssh.endpoint}[/cyan] "
        f"[dim]listen[/dim] [cyan]{config.listen.host}:{config.listen.port}[/cyan] "
        f"[dim]→[/dim] [yellow]{config.database.endpoint}[/yellow]"
    )
    console.print("[dim]Press Ctrl+C to stop.[/dim]")

    code = tunnel_app.run(config)
    if code:
        raise typer.Exit(code)
