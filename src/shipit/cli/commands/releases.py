"""CLI command for listing releases on each host of a stage."""

from __future__ import annotations

import sys

import click

from shipit.cli.common import EXIT_DEPLOY_ERROR, handle_deployment_errors, load_context
from shipit.deploy.coordinator import StageCoordinator
from shipit.lib.logging_config import setup_logging


@click.command()
@click.option("--stage", "-s", required=True, help="Target stage")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose debug logging")
@click.pass_context
def releases(ctx: click.Context, stage: str, verbose: bool) -> None:
    """List releases on every host of a stage, newest first."""
    setup_logging(verbose=verbose, quiet=not verbose)

    with handle_deployment_errors():
        context = load_context(ctx, stage)
        listing = StageCoordinator(context).list_releases()

        failed = False
        for host in listing:
            click.secho(f"Host: {host.host}", bold=True)
            if host.error is not None:
                failed = True
                click.secho(f"  Error: {host.error}", fg="red")
                continue
            if not host.releases:
                click.secho("  No releases found", fg="yellow")
                continue
            for release in host.releases:
                if release.id == host.current:
                    click.echo(f"  {release.id} ← current")
                else:
                    click.echo(f"  {release.id}")

        if failed:
            sys.exit(EXIT_DEPLOY_ERROR)
