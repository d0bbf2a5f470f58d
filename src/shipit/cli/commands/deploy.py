"""CLI command for deploying a stage.

Implements 'shipit deploy', which runs the release protocol on every host
of a stage concurrently and reports a per-host summary.
"""

from __future__ import annotations

import sys

import click

from shipit.cli.common import EXIT_DEPLOY_ERROR, handle_deployment_errors, load_context
from shipit.deploy.context import DeployContext
from shipit.deploy.coordinator import StageCoordinator, StageResult
from shipit.lib.logging_config import setup_logging


@click.command()
@click.option("--stage", "-s", required=True, help="Target stage")
@click.option(
    "--dry-run",
    is_flag=True,
    help="Show what would be done without executing",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose debug logging",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Suppress progress output",
)
@click.pass_context
def deploy(
    ctx: click.Context, stage: str, dry_run: bool, verbose: bool, quiet: bool
) -> None:
    """Deploy the application to every host of a stage.

    Each host gets a new timestamped release. The previous release keeps
    serving until the new one passes its health check.

    Example:

        shipit deploy --stage production

        shipit deploy -s staging --dry-run
    """
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        context = load_context(ctx, stage)

        if not quiet:
            _display_plan(context)

        if dry_run:
            click.secho("[DRY RUN] No host was contacted", fg="yellow")
            sys.exit(0)

        result = StageCoordinator(context).deploy()
        _display_result(context, result, quiet)

        if not result.ok:
            sys.exit(EXIT_DEPLOY_ERROR)


def _display_plan(context: DeployContext) -> None:
    deploy_config = context.config.deploy
    click.echo()
    click.secho("Deploy Configuration:", bold=True)
    click.echo(f"  App:       {context.config.app.name}")
    click.echo(f"  Stage:     {context.stage_name}")
    click.echo(f"  Release:   {context.release_id}")
    click.echo(f"  Branch:    {context.config.app.branch}")
    click.echo(f"  Build:     {deploy_config.build.value}")
    click.echo(f"  Hosts:     {', '.join(h.address for h in context.stage.hosts)}")
    click.echo()


def _display_result(context: DeployContext, result: StageResult, quiet: bool) -> None:
    if quiet:
        for host_result in result.failed:
            click.echo(f"{host_result.host}: {host_result.message}", err=True)
        return

    click.echo()
    if result.ok:
        click.secho(
            f"Deploy complete! Release {context.release_id} is live.",
            fg="green",
            bold=True,
        )
    else:
        click.secho(
            f"Deploy failed on {len(result.failed)} of {len(result.results)} host(s)",
            fg="red",
            bold=True,
        )

    for host_result in result.results:
        if host_result.ok:
            click.secho(f"  ✓ {host_result.host}", fg="green", nl=False)
            click.echo(f"  {host_result.release_id} live")
            continue

        step = host_result.step.value if host_result.step else "unknown"
        click.secho(f"  ✗ {host_result.host}", fg="red", nl=False)
        click.echo(f"  failed at {step}: {host_result.message}")
        if host_result.step is None or host_result.step.before_cutover:
            click.echo("      Previous release remains active.")
        else:
            click.echo("      Failed after cutover; check the host before redeploying.")
    click.echo()
