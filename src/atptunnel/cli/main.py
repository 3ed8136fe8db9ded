"""
atptunnel CLI entry point.

Usage:
    atptunnel [OPTIONS] COMMAND [ARGS]...

Commands:
    run       Start the tunnel and relay connections
    agent     List identities offered by the SSH agent
    config    Configuration
"""

import typer

from atptunnel.cli.commands import agent, config_cmd, run

app = typer.Typer(
    name="atptunnel",
    help="SSH remote-forward tunnel for database connections",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command("run")(run.run_tunnel)
app.command("agent")(agent.list_identities)
app.add_typer(config_cmd.app, name="config", help="Configuration")


def main():
    app()


if __name__ == "__main__":
    main()
