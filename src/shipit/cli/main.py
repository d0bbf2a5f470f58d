"""shipit command-line entry point."""

from __future__ import annotations

import click

from shipit import __version__
from shipit.cli.commands.deploy import deploy
from shipit.cli.commands.logs import logs
from shipit.cli.commands.releases import releases
from shipit.cli.commands.rollback import rollback
from shipit.cli.commands.run import run
from shipit.config.loader import DEFAULT_CONFIG_FILE


@click.group()
@click.version_option(__version__, prog_name="shipit")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False),
    default=DEFAULT_CONFIG_FILE,
    show_default=True,
    help="Path to the shipit configuration file",
)
@click.pass_context
def main(ctx: click.Context, config_path: str) -> None:
    """Deploy Docker Compose applications to virtual machines over SSH.

    Example:

        shipit deploy --stage production

        shipit rollback --stage production --release 20250219-120000

        shipit run --stage production bin/rails db:migrate
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


main.add_command(deploy)
main.add_command(rollback)
main.add_command(releases)
main.add_command(logs)
main.add_command(run)


if __name__ == "__main__":  # pragma: no cover
    main()
