"""CLI command for rolling a stage back to an earlier release."""

from __future__ import annotations

import sys

import click

from shipit.cli.common import EXIT_DEPLOY_ERROR, handle_deployment_errors, load_context
from shipit.deploy.coordinator import StageCoordinator
from shipit.lib.logging_config import setup_logging


@click.command()
@click.option("--stage", "-s", required=True, help="Target stage")
@click.option(
    "--release",
    "release_id",
    default=None,
    help="Specific release to roll back to (e.g. 20250219-120000)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose debug logging")
@click.option("--quiet", "-q", is_flag=True, help="Suppress progress output")
@click.pass_context
def rollback(
    ctx: click.Context,
    stage: str,
    release_id: str | None,
    verbose: bool,
    quiet: bool,
) -> None:
    """Roll back every host of a stage.

    Without --release each host returns to the previous release named in
    its lock record.
    """
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        context = load_context(ctx, stage)
        result = StageCoordinator(context).rollback(release_id)

        for host_result in result.results:
            if host_result.ok:
                if not quiet:
                    click.secho(f"  ✓ {host_result.host}", fg="green", nl=False)
                    click.echo(f"  rolled back to {host_result.release_id}")
                continue
            click.secho(f"  ✗ {host_result.host}", fg="red", nl=False, err=True)
            click.echo(f"  {host_result.message}", err=True)
            click.echo(
                "      Manual intervention required; no automatic re-rollback "
                "was attempted.",
                err=True,
            )

        if not result.ok:
            sys.exit(EXIT_DEPLOY_ERROR)
