"""Helpers shared by the shipit CLI commands."""

from __future__ import annotations

import sys
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

import click

from shipit.config.loader import ConfigLoader
from shipit.deploy.context import DeployContext
from shipit.lib.errors import ConfigError, DeploymentError
from shipit.lib.logging_config import get_logger

logger = get_logger(__name__)

EXIT_CONFIG_ERROR = 2
EXIT_DEPLOY_ERROR = 3


@contextmanager
def handle_deployment_errors() -> Generator[None, None, None]:
    """Context manager for consistent error handling in CLI commands.

    Exit codes:
        2: Configuration error
        3: Deployment/execution error
    """
    try:
        yield
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        click.secho("Error: Configuration error", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(EXIT_CONFIG_ERROR)
    except DeploymentError as e:
        logger.error(f"Deployment error: {e}")
        click.secho(f"Error: {e.operation} failed", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(EXIT_DEPLOY_ERROR)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(EXIT_DEPLOY_ERROR)


def load_context(ctx: click.Context, stage: str) -> DeployContext:
    """Load the configuration named on the command line for a stage.

    Raises:
        ConfigError: If the file is invalid or the stage is unknown
    """
    config_path = Path(ctx.obj.get("config_path", "shipit.yaml"))
    config = ConfigLoader().load(config_path)
    project_root = config_path.resolve().parent
    return DeployContext.for_stage(config, stage, project_root)
