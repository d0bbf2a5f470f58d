"""Base interface for executing commands and managing files on a host."""

from __future__ import annotations

import shlex
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from types import TracebackType

from shipit.lib.errors import RemoteCommandError


@dataclass
class CommandResult:
    """Result of a command executed on a host."""

    command: str
    stdout: str
    stderr: str
    exit_status: int

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


def format_command(args: Sequence[str], cwd: str | None = None) -> str:
    """Render an argument list as a single quoted shell command line.

    Example:
        >>> format_command(["docker", "compose", "up", "-d"], cwd="/srv/my app")
        "cd '/srv/my app' && docker compose up -d"
    """
    command = shlex.join(args)
    if cwd:
        return f"cd {shlex.quote(cwd)} && {command}"
    return command


class RemoteExecutor(ABC):
    """Abstract base class for host executors.

    Commands are always passed as argument lists. Implementations quote
    them; callers never build shell strings.
    """

    host: str

    def __enter__(self) -> RemoteExecutor:
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def connect(self) -> None:  # noqa: B027
        """Open the underlying session, if any."""

    def close(self) -> None:  # noqa: B027
        """Close the underlying session, if any."""

    @abstractmethod
    def execute(self, args: Sequence[str], cwd: str | None = None) -> CommandResult:
        """Run a command and return its result regardless of exit status.

        Raises:
            TransportError: If the host cannot be reached.
        """

    def run(
        self, args: Sequence[str], cwd: str | None = None, check: bool = True
    ) -> CommandResult:
        """Run a command, raising on a nonzero exit when ``check`` is set.

        Raises:
            RemoteCommandError: If the command fails and ``check`` is True.
            TransportError: If the host cannot be reached.
        """
        result = self.execute(args, cwd=cwd)
        if check and not result.ok:
            raise RemoteCommandError(
                host=self.host,
                command=result.command,
                exit_status=result.exit_status,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result

    @abstractmethod
    def pipe(self, args: Sequence[str], chunks: Iterable[bytes]) -> CommandResult:
        """Stream bytes into the standard input of a command."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Return True if the path exists (symlinks are followed)."""

    @abstractmethod
    def make_dirs(self, path: str) -> None:
        """Create a directory and any missing parents."""

    @abstractmethod
    def list_dir(self, path: str) -> list[str]:
        """Return entry names of a directory, unordered."""

    @abstractmethod
    def read_file(self, path: str) -> str:
        """Return the text content of a file."""

    @abstractmethod
    def write_file(self, path: str, content: str, mode: int | None = None) -> None:
        """Write text to a file, replacing it if present."""

    @abstractmethod
    def transfer_file(
        self, local_path: str, remote_path: str, mode: int | None = None
    ) -> None:
        """Copy a local file to the host."""

    @abstractmethod
    def read_link(self, path: str) -> str | None:
        """Return the target of a symlink, or None if it is not a link."""

    @abstractmethod
    def rename(self, source: str, destination: str) -> None:
        """Atomically replace destination with source."""

    @abstractmethod
    def symlink(self, target: str, link: str) -> None:
        """Atomically point ``link`` at ``target``."""

    @abstractmethod
    def remove_tree(self, path: str) -> None:
        """Recursively delete a path."""
