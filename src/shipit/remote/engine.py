"""Container engine capability interface and its Docker Compose implementation.

The orchestrators only talk to :class:`ContainerEngine`, so host-specific
differences stay out of the deploy protocol.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from shipit.lib.errors import DeploymentError, ImageBuildError, RemoteCommandError
from shipit.remote.executor import CommandResult, RemoteExecutor

# Values reported by ``docker inspect`` for .State.Health.Status
HEALTH_STATUSES = ("starting", "healthy", "unhealthy")


class ContainerEngine(ABC):
    """Operations on the containers of one release directory."""

    @abstractmethod
    def compose_up(self, release_dir: str) -> None:
        """Start the release's containers in detached mode."""

    @abstractmethod
    def compose_down(self, release_dir: str, remove_images: str | None = None) -> None:
        """Stop and remove the release's containers.

        Args:
            release_dir: Release directory holding the compose files
            remove_images: Passed as ``--rmi`` ("all" or "local") when set
        """

    @abstractmethod
    def compose_build(self, release_dir: str) -> None:
        """Build the release's images on the host.

        Raises:
            ImageBuildError: If the build exits nonzero.
        """

    @abstractmethod
    def container_id(self, release_dir: str, service: str) -> str:
        """Return the container id of a service in the release.

        Raises:
            DeploymentError: If the service has no running container.
        """

    @abstractmethod
    def inspect_health(self, container: str) -> str:
        """Return "starting", "healthy", "unhealthy" or "none"."""

    @abstractmethod
    def run_health_command(self, container: str, command: str) -> bool:
        """Run a custom check inside the container; True on exit code 0."""

    @abstractmethod
    def compose_logs(
        self, release_dir: str, service: str | None = None, lines: int = 100
    ) -> str:
        """Return the last ``lines`` log lines of the release's services."""

    @abstractmethod
    def compose_exec(
        self, release_dir: str, service: str, command: Sequence[str]
    ) -> CommandResult:
        """Run a one-off command in a running service; never raises on exit codes."""


class ComposeEngine(ContainerEngine):
    """ContainerEngine driving ``docker compose`` through a RemoteExecutor."""

    def __init__(self, executor: RemoteExecutor) -> None:
        self.executor = executor

    def compose_up(self, release_dir: str) -> None:
        self.executor.run(["docker", "compose", "up", "-d"], cwd=release_dir)

    def compose_down(self, release_dir: str, remove_images: str | None = None) -> None:
        args = ["docker", "compose", "down"]
        if remove_images:
            args += ["--rmi", remove_images]
        self.executor.run(args, cwd=release_dir)

    def compose_build(self, release_dir: str) -> None:
        try:
            self.executor.run(["docker", "compose", "build"], cwd=release_dir)
        except RemoteCommandError as e:
            raise ImageBuildError(
                f"Remote build failed on {self.executor.host}: {e.stderr.strip()}"
            ) from e

    def container_id(self, release_dir: str, service: str) -> str:
        result = self.executor.run(
            ["docker", "compose", "ps", "-q", service], cwd=release_dir
        )
        container = result.stdout.strip().splitlines()
        if not container:
            raise DeploymentError(
                operation="health_check",
                message=f"No running container for service '{service}'",
            )
        return container[0].strip()

    def inspect_health(self, container: str) -> str:
        result = self.executor.run(
            ["docker", "inspect", "--format", "{{.State.Health.Status}}", container],
            check=False,
        )
        status = result.stdout.strip()
        if not result.ok or status not in HEALTH_STATUSES:
            return "none"
        return status

    def run_health_command(self, container: str, command: str) -> bool:
        result = self.executor.run(
            ["docker", "exec", container, "sh", "-c", command], check=False
        )
        return result.ok

    def compose_logs(
        self, release_dir: str, service: str | None = None, lines: int = 100
    ) -> str:
        args = ["docker", "compose", "logs", "--no-color", f"--tail={lines}"]
        if service:
            args.append(service)
        result = self.executor.run(args, cwd=release_dir)
        return result.stdout

    def compose_exec(
        self, release_dir: str, service: str, command: Sequence[str]
    ) -> CommandResult:
        return self.executor.run(
            ["docker", "compose", "exec", "-T", service, *command],
            cwd=release_dir,
            check=False,
        )
