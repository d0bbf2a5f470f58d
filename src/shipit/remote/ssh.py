"""SSH executor built on Paramiko.

Supports agent and key authentication, custom ports and a single jump host
tunnelled through a ``direct-tcpip`` channel. File operations use SFTP.
"""

from __future__ import annotations

import io
import socket
import stat
import time
from collections.abc import Callable, Generator, Iterable, Sequence
from contextlib import contextmanager
from dataclasses import dataclass

import paramiko

from shipit.lib.errors import TransportError
from shipit.lib.logging_config import get_logger
from shipit.remote.executor import CommandResult, RemoteExecutor, format_command

logger = get_logger(__name__)

DEFAULT_SSH_PORT = 22
RECV_BUFFER = 32768
POLL_INTERVAL = 0.05

# Errors that mean the session itself is unusable
TRANSPORT_ERRORS = (
    paramiko.SSHException,
    EOFError,
    ConnectionError,
    socket.timeout,
    socket.gaierror,
)


def drain_channel(
    channel: paramiko.Channel, poll_interval: float = POLL_INTERVAL
) -> tuple[bytes, bytes]:
    """Read stdout and stderr of a channel together until the command exits.

    Both streams are consumed as data arrives. Reading one to EOF before
    the other stalls the remote command once the unread stream fills the
    channel window.
    """
    stdout_chunks: list[bytes] = []
    stderr_chunks: list[bytes] = []
    while True:
        active = False
        while channel.recv_ready():
            stdout_chunks.append(channel.recv(RECV_BUFFER))
            active = True
        while channel.recv_stderr_ready():
            stderr_chunks.append(channel.recv_stderr(RECV_BUFFER))
            active = True
        if (
            channel.exit_status_ready()
            and not channel.recv_ready()
            and not channel.recv_stderr_ready()
        ):
            break
        if not active:
            time.sleep(poll_interval)
    return b"".join(stdout_chunks), b"".join(stderr_chunks)


@dataclass
class SSHTarget:
    """Connection parameters for one host."""

    host: str
    user: str = "deploy"
    port: int = DEFAULT_SSH_PORT
    identity_file: str | None = None
    proxy: str | None = None
    timeout: float = 20

    @property
    def proxy_target(self) -> SSHTarget | None:
        """Parse ``[user@]host[:port]`` of the jump host, if configured."""
        if not self.proxy:
            return None
        user = self.user
        address = self.proxy
        if "@" in address:
            user, address = address.split("@", 1)
        port = DEFAULT_SSH_PORT
        if ":" in address:
            address, port_text = address.rsplit(":", 1)
            port = int(port_text)
        return SSHTarget(
            host=address,
            user=user,
            port=port,
            identity_file=self.identity_file,
            timeout=self.timeout,
        )


class SSHExecutor(RemoteExecutor):
    """RemoteExecutor over a Paramiko SSH session."""

    def __init__(
        self,
        target: SSHTarget,
        *,
        client_factory: Callable[[], paramiko.SSHClient] | None = None,
    ) -> None:
        self.target = target
        self.host = target.host
        self._client_factory = client_factory or paramiko.SSHClient
        self._client: paramiko.SSHClient | None = None
        self._jump: paramiko.SSHClient | None = None
        self._sftp: paramiko.SFTPClient | None = None

    def _connect_kwargs(self, target: SSHTarget) -> dict[str, object]:
        kwargs: dict[str, object] = {
            "hostname": target.host,
            "port": target.port,
            "username": target.user,
            "timeout": target.timeout,
            "compress": True,
        }
        if target.identity_file:
            kwargs["key_filename"] = target.identity_file
        return kwargs

    def connect(self) -> None:
        if self._client:
            return

        jump_target = self.target.proxy_target
        if jump_target:
            logger.debug(
                f"Connecting to {self.target.user}@{self.host} "
                f"via {jump_target.user}@{jump_target.host}"
            )
        else:
            logger.debug(f"Connecting to {self.target.user}@{self.host}")

        client = self._client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            kwargs = self._connect_kwargs(self.target)
            if jump_target:
                self._jump = self._client_factory()
                self._jump.set_missing_host_key_policy(paramiko.AutoAddPolicy())
                self._jump.connect(**self._connect_kwargs(jump_target))
                jump_transport = self._jump.get_transport()
                if jump_transport is None:
                    raise paramiko.SSHException("jump host transport not available")
                kwargs["sock"] = jump_transport.open_channel(
                    "direct-tcpip",
                    (self.target.host, self.target.port),
                    ("127.0.0.1", 0),
                )
            client.connect(**kwargs)
        except (*TRANSPORT_ERRORS, OSError) as exc:
            client.close()
            if self._jump:
                self._jump.close()
                self._jump = None
            raise TransportError(self.host, f"SSH connection failed: {exc}") from exc
        self._client = client

    def close(self) -> None:
        if self._sftp:
            self._sftp.close()
            self._sftp = None
        if self._client:
            self._client.close()
            self._client = None
        if self._jump:
            self._jump.close()
            self._jump = None

    @contextmanager
    def _guard(self, action: str) -> Generator[None, None, None]:
        try:
            yield
        except TRANSPORT_ERRORS as exc:
            raise TransportError(self.host, f"{action} failed: {exc}") from exc

    def _session(self) -> paramiko.SSHClient:
        if not self._client:
            self.connect()
        assert self._client is not None
        return self._client

    def _sftp_client(self) -> paramiko.SFTPClient:
        if self._sftp is None:
            with self._guard("SFTP open"):
                self._sftp = self._session().open_sftp()
        return self._sftp

    def execute(self, args: Sequence[str], cwd: str | None = None) -> CommandResult:
        command = format_command(args, cwd)
        logger.debug(f"[{self.host}] exec: {command}")
        with self._guard(f"'{command}'"):
            _, stdout, _ = self._session().exec_command(command)
            out, err = drain_channel(stdout.channel)
            exit_status = stdout.channel.recv_exit_status()
        return CommandResult(
            command=command,
            stdout=out.decode("utf-8", errors="replace"),
            stderr=err.decode("utf-8", errors="replace"),
            exit_status=exit_status,
        )

    def pipe(self, args: Sequence[str], chunks: Iterable[bytes]) -> CommandResult:
        command = format_command(args)
        logger.debug(f"[{self.host}] pipe: {command}")
        with self._guard(f"'{command}'"):
            transport = self._session().get_transport()
            if transport is None:
                raise paramiko.SSHException("transport not available")
            channel = transport.open_session()
            try:
                channel.exec_command(command)
                for chunk in chunks:
                    channel.sendall(chunk)
                channel.shutdown_write()
                out, err = drain_channel(channel)
                exit_status = channel.recv_exit_status()
            finally:
                channel.close()
        return CommandResult(
            command=command,
            stdout=out.decode("utf-8", errors="replace"),
            stderr=err.decode("utf-8", errors="replace"),
            exit_status=exit_status,
        )

    def exists(self, path: str) -> bool:
        sftp = self._sftp_client()
        with self._guard(f"stat {path}"):
            try:
                sftp.stat(path)
            except FileNotFoundError:
                return False
        return True

    def make_dirs(self, path: str) -> None:
        self.run(["mkdir", "-p", path])

    def list_dir(self, path: str) -> list[str]:
        sftp = self._sftp_client()
        with self._guard(f"listdir {path}"):
            return sftp.listdir(path)

    def read_file(self, path: str) -> str:
        sftp = self._sftp_client()
        with self._guard(f"read {path}"):
            with sftp.open(path, "r") as handle:
                data: bytes = handle.read()
        return data.decode("utf-8")

    def write_file(self, path: str, content: str, mode: int | None = None) -> None:
        sftp = self._sftp_client()
        logger.debug(f"[{self.host}] write: {path}")
        with self._guard(f"write {path}"):
            sftp.putfo(io.BytesIO(content.encode("utf-8")), path)
            if mode is not None:
                sftp.chmod(path, mode)

    def transfer_file(
        self, local_path: str, remote_path: str, mode: int | None = None
    ) -> None:
        sftp = self._sftp_client()
        logger.debug(f"[{self.host}] put: {local_path} -> {remote_path}")
        with self._guard(f"put {remote_path}"):
            sftp.put(local_path, remote_path)
            if mode is not None:
                sftp.chmod(remote_path, mode)

    def read_link(self, path: str) -> str | None:
        sftp = self._sftp_client()
        with self._guard(f"readlink {path}"):
            try:
                attrs = sftp.lstat(path)
            except FileNotFoundError:
                return None
            if attrs.st_mode is None or not stat.S_ISLNK(attrs.st_mode):
                return None
            return sftp.readlink(path)

    def rename(self, source: str, destination: str) -> None:
        sftp = self._sftp_client()
        with self._guard(f"rename {source}"):
            sftp.posix_rename(source, destination)

    def symlink(self, target: str, link: str) -> None:
        sftp = self._sftp_client()
        tmp = f"{link}_tmp"
        with self._guard(f"symlink {link}"):
            try:
                sftp.remove(tmp)
            except FileNotFoundError:
                pass
            sftp.symlink(target, tmp)
            sftp.posix_rename(tmp, link)

    def remove_tree(self, path: str) -> None:
        self.run(["rm", "-rf", path])
