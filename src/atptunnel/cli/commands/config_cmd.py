"""Config management commands."""

from typing import Annotated

import typer
from rich.table import Table

from atptunnel.cli.output import console, print_error, print_success
from atptunnel.config import DEFAULT_CONFIG_FILE, load_config
from atptunnel.exceptions import ConfigError

app = typer.Typer(help="Configuration commands")

ConfigOption = Annotated[
    str,
    typer.Option(
        "--config",
        "-c",
        help="Path to the tunnel YAML config",
        envvar="ATPTUNNEL_CONFIG",
    ),
]


@app.command("show")
def show_config(config_file: ConfigOption = DEFAULT_CONFIG_FILE):
    """Show the resolved configuration."""
    try:
        config = load_config(config_file)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1)

    table = Table(title=f"Configuration ({config_file})", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    # SSH settings
    table.add_row("ssh endpoint", str(config.ssh.endpoint))
    table.add_row("ssh username", config.ssh.username)
    table.add_row("ssh known_hosts", config.ssh.known_hosts or "(not checked)")

    # Target settings
    table.add_row("target endpoint", str(config.database.endpoint))
    table.add_row("wallet file", str(config.database.wallet_file))

    # Listener settings
    listen = config.listen
    table.add_row("listen address", f"{listen.host}:{listen.port}")
    table.add_row("target connect timeout", _seconds(listen.connect_timeout))
    table.add_row("ssh connect timeout", _seconds(listen.ssh_connect_timeout))
    table.add_row("keepalive interval", _seconds(listen.keepalive_interval))
    table.add_row("chunk size", str(listen.chunk_size))

    # Logging settings
    table.add_row("log level", config.log_level.value)
    table.add_row("log file", config.log_file or "(console only)")

    console.print(table)


@app.command("check")
def check_config(config_file: ConfigOption = DEFAULT_CONFIG_FILE):
    """Validate the configuration and check the wallet file is readable."""
    try:
        config = load_config(config_file)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1)

    wallet = config.database.wallet_file
    if not wallet.is_file():
        print_error(f"Wallet file not found: '{wallet}'")
        raise typer.Exit(1)

    print_success(f"Configuration '{config_file}' is valid.")


def _seconds(value: float | None) -> str:
    return "none" if value is None else f"{value:g}s"
