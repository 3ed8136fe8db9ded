"""Agent command: show the identities the SSH agent offers."""

import asyncio
from typing import Annotated

import typer
from rich.table import Table

from atptunnel.cli.output import console, print_error
from atptunnel.exceptions import AuthError
from atptunnel.tunnel.agent import agent_socket_path, authenticate


def list_identities(
    home: Annotated[
        str | None,
        typer.Option("--home", help="Home directory holding .ssh/agent.sock"),
    ] = None,
    socket: Annotated[
        str | None,
        typer.Option("--socket", "-s", help="Agent socket path (overrides --home)"),
    ] = None,
):
    """List identities available from the SSH agent."""
    try:
        path = socket or str(agent_socket_path(home))
        credential = asyncio.run(authenticate(home, socket_path=socket))
    except AuthError as e:
        print_error(str(e))
        raise typer.Exit(1)

    table = Table(title=f"SSH agent identities ({path})", show_header=True)
    table.add_column("#", justify="right")
    table.add_column("Algorithm", style="cyan")
    table.add_column("Fingerprint", style="green")
    table.add_column("Comment")

    for index, (algorithm, fingerprint, comment) in enumerate(
        credential.describe(), start=1
    ):
        table.add_row(str(index), algorithm, fingerprint, comment)

    console.print(table)
