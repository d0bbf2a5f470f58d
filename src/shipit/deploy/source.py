"""Source sync: push the local checkout to the host and check it out."""

from __future__ import annotations

import os
import shlex
import subprocess  # nosec B404

from shipit.deploy.context import DeployContext
from shipit.lib.errors import DeploymentError
from shipit.lib.logging_config import get_logger
from shipit.remote.executor import RemoteExecutor

logger = get_logger(__name__)

UNKNOWN_SHA = "unknown"


def remote_repo_url(context: DeployContext, host: str) -> str:
    """SSH URL of the bare repository on a host.

    Example:
        ``ssh://deploy@10.0.0.5:2222/var/deploy/app/repo``
    """
    port = f":{context.stage.port}" if context.stage.port else ""
    return f"ssh://{context.stage.user}@{host}{port}{context.layout.repo_path}"


def git_ssh_command(context: DeployContext) -> str | None:
    """``GIT_SSH_COMMAND`` for identity file and jump host, if configured."""
    args = ["ssh"]
    if context.stage.identity_file:
        args += ["-i", context.stage.identity_file]
    if context.stage.proxy:
        args += ["-J", context.stage.proxy]
    return shlex.join(args) if len(args) > 1 else None


def push_source(context: DeployContext, host: str) -> None:
    """Force-push HEAD of the local checkout to the host's bare repository.

    Raises:
        DeploymentError: If git is missing or the push fails
    """
    branch = context.config.app.branch
    env = None
    ssh_command = git_ssh_command(context)
    if ssh_command:
        env = {**os.environ, "GIT_SSH_COMMAND": ssh_command}

    try:
        result = subprocess.run(  # noqa: S603  # nosec B603 B607
            [  # noqa: S607
                "git",
                "push",
                remote_repo_url(context, host),
                f"HEAD:refs/heads/{branch}",
                "--force",
            ],
            cwd=context.project_root,
            capture_output=True,
            text=True,
            env=env,
        )
    except FileNotFoundError as exc:
        raise DeploymentError(operation="sync", message="git is not installed") from exc

    if result.returncode != 0:
        raise DeploymentError(
            operation="sync",
            message=f"git push to {host} failed: {result.stderr.strip()}",
        )
    logger.debug(f"[{host}] Code pushed to {context.layout.repo_path}")


def checkout_release(executor: RemoteExecutor, context: DeployContext) -> None:
    """Materialize the release working tree from the bare repository."""
    executor.run(
        [
            "git",
            f"--work-tree={context.release_path}",
            f"--git-dir={context.layout.repo_path}",
            "checkout",
            "-f",
            context.config.app.branch,
        ]
    )


def remote_git_sha(executor: RemoteExecutor, context: DeployContext) -> str:
    """Commit of the deployed branch in the bare repository."""
    result = executor.run(
        [
            "git",
            f"--git-dir={context.layout.repo_path}",
            "rev-parse",
            context.config.app.branch,
        ],
        check=False,
    )
    sha = result.stdout.strip()
    if not result.ok or not sha:
        logger.warning(f"[{executor.host}] Could not resolve deployed git sha")
        return UNKNOWN_SHA
    return sha
