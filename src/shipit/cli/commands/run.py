"""CLI command for running a one-off command in the current release."""

from __future__ import annotations

import sys

import click

from shipit.cli.common import EXIT_DEPLOY_ERROR, handle_deployment_errors, load_context
from shipit.deploy.coordinator import StageCoordinator
from shipit.lib.logging_config import setup_logging


@click.command(
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False}
)
@click.option("--stage", "-s", required=True, help="Target stage")
@click.option("--host", default=None, help="Host address (default: first host)")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose debug logging")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_context
def run(
    ctx: click.Context,
    stage: str,
    host: str | None,
    verbose: bool,
    command: tuple[str, ...],
) -> None:
    """Run COMMAND in the web service of the current release.

    Example:

        shipit run -s production bin/rails db:migrate
    """
    setup_logging(verbose=verbose, quiet=not verbose)

    with handle_deployment_errors():
        context = load_context(ctx, stage)
        address, result = StageCoordinator(context).run_command(command, host=host)

        click.echo(result.stdout, nl=False)
        if result.stderr:
            click.echo(result.stderr, nl=False, err=True)
        if not result.ok:
            click.secho(
                f"Error: command exited with {result.exit_status} on {address}",
                fg="red",
                err=True,
            )
            sys.exit(EXIT_DEPLOY_ERROR)
