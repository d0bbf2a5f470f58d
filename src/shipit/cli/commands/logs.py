"""CLI command for reading container logs of the current release."""

from __future__ import annotations

import click

from shipit.cli.common import handle_deployment_errors, load_context
from shipit.deploy.coordinator import StageCoordinator
from shipit.lib.logging_config import setup_logging


@click.command()
@click.option("--stage", "-s", required=True, help="Target stage")
@click.option("--service", default=None, help="Compose service (default: all)")
@click.option(
    "--lines",
    "-n",
    type=click.IntRange(min=1),
    default=100,
    show_default=True,
    help="Number of lines per container",
)
@click.option("--host", default=None, help="Host address (default: first host)")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose debug logging")
@click.pass_context
def logs(
    ctx: click.Context,
    stage: str,
    service: str | None,
    lines: int,
    host: str | None,
    verbose: bool,
) -> None:
    """Show recent container logs of the current release on one host."""
    setup_logging(verbose=verbose, quiet=not verbose)

    with handle_deployment_errors():
        context = load_context(ctx, stage)
        address, output = StageCoordinator(context).logs(
            service=service, lines=lines, host=host
        )
        click.secho(f"Host: {address}", bold=True, err=True)
        click.echo(output, nl=False)
