"""Pytest configuration and shared fixtures for shipit tests.

Remote hosts are simulated with :class:`LocalExecutor`, which maps remote
paths under a temporary directory, and :class:`FakeEngine`, which records
compose operations and replays scripted health statuses.
"""

from __future__ import annotations

import os
import shutil
from collections.abc import Callable, Iterable, Sequence
from pathlib import Path
from typing import Any

import pytest

from shipit.deploy.context import DeployContext, RemoteLayout
from shipit.deploy.health import HealthProber
from shipit.lib.errors import ImageBuildError, RemoteCommandError
from shipit.models.config import ShipitConfig
from shipit.models.release import LockRecord
from shipit.remote.engine import ContainerEngine
from shipit.remote.executor import CommandResult, RemoteExecutor, format_command

RELEASE_ID = "20250219-120000"


class LocalExecutor(RemoteExecutor):
    """RemoteExecutor whose filesystem lives under a local root directory.

    Commands are recorded, not run. Responses can be scripted per command
    fragment with :meth:`respond`.
    """

    def __init__(self, root: Path, host: str = "host-a") -> None:
        self.root = root
        self.host = host
        self.commands: list[str] = []
        self.piped: list[tuple[str, bytes]] = []
        self.modes: dict[str, int] = {}
        self._responses: list[tuple[str, CommandResult]] = []
        self.root.mkdir(parents=True, exist_ok=True)

    def local(self, path: str) -> Path:
        return self.root / path.lstrip("/")

    def respond(
        self, fragment: str, stdout: str = "", exit_status: int = 0, stderr: str = ""
    ) -> None:
        """Script the result of commands containing ``fragment``."""
        self._responses.insert(
            0, (fragment, CommandResult(fragment, stdout, stderr, exit_status))
        )

    def ran(self, fragment: str) -> bool:
        return any(fragment in command for command in self.commands)

    def execute(self, args: Sequence[str], cwd: str | None = None) -> CommandResult:
        command = format_command(args, cwd)
        self.commands.append(command)
        for fragment, result in self._responses:
            if fragment in command:
                return CommandResult(
                    command, result.stdout, result.stderr, result.exit_status
                )
        return CommandResult(command, "", "", 0)

    def pipe(self, args: Sequence[str], chunks: Iterable[bytes]) -> CommandResult:
        command = format_command(args)
        data = b"".join(chunks)
        self.piped.append((command, data))
        return self.execute(args)

    def exists(self, path: str) -> bool:
        return self.local(path).exists()

    def make_dirs(self, path: str) -> None:
        self.local(path).mkdir(parents=True, exist_ok=True)

    def list_dir(self, path: str) -> list[str]:
        return os.listdir(self.local(path))

    def read_file(self, path: str) -> str:
        return self.local(path).read_text(encoding="utf-8")

    def write_file(self, path: str, content: str, mode: int | None = None) -> None:
        self.local(path).write_text(content, encoding="utf-8")
        if mode is not None:
            self.modes[path] = mode

    def transfer_file(
        self, local_path: str, remote_path: str, mode: int | None = None
    ) -> None:
        shutil.copyfile(local_path, self.local(remote_path))
        if mode is not None:
            self.modes[remote_path] = mode

    def read_link(self, path: str) -> str | None:
        local = self.local(path)
        if not local.is_symlink():
            return None
        target = Path(os.readlink(local))
        return "/" + str(target.relative_to(self.root))

    def rename(self, source: str, destination: str) -> None:
        os.replace(self.local(source), self.local(destination))

    def symlink(self, target: str, link: str) -> None:
        tmp = self.local(f"{link}_tmp")
        if tmp.is_symlink() or tmp.exists():
            tmp.unlink()
        os.symlink(self.local(target), tmp)
        os.replace(tmp, self.local(link))

    def remove_tree(self, path: str) -> None:
        local = self.local(path)
        if local.is_symlink() or local.is_file():
            local.unlink()
        elif local.exists():
            shutil.rmtree(local)


class FakeEngine(ContainerEngine):
    """ContainerEngine recording compose calls against release directories.

    Attributes:
        events: ``(operation, release_dir)`` tuples in call order
        running: Release directories with running containers
        running_at_health: Snapshot of ``running`` at every health poll
    """

    def __init__(
        self,
        health: Sequence[str] = ("healthy",),
        command_results: Sequence[bool] = (True,),
    ) -> None:
        self.events: list[tuple[str, str]] = []
        self.running: set[str] = set()
        self.running_at_health: list[set[str]] = []
        self.removed_images: dict[str, str | None] = {}
        self.health = list(health)
        self.command_results = list(command_results)
        self.health_polls = 0
        self.fail_up: set[str] = set()
        self.fail_down: set[str] = set()
        self.fail_build = False

    def _fail(self, command: str) -> RemoteCommandError:
        return RemoteCommandError("fake", command, 1, stderr="boom")

    def compose_up(self, release_dir: str) -> None:
        self.events.append(("up", release_dir))
        if release_dir in self.fail_up:
            raise self._fail("docker compose up -d")
        self.running.add(release_dir)

    def compose_down(self, release_dir: str, remove_images: str | None = None) -> None:
        self.events.append(("down", release_dir))
        if release_dir in self.fail_down:
            raise self._fail("docker compose down")
        self.removed_images[release_dir] = remove_images
        self.running.discard(release_dir)

    def compose_build(self, release_dir: str) -> None:
        self.events.append(("build", release_dir))
        if self.fail_build:
            raise ImageBuildError("Remote build failed on fake: boom")

    def container_id(self, release_dir: str, service: str) -> str:
        return f"{service}-{os.path.basename(release_dir)}"

    def _next(self, values: list[Any]) -> Any:
        return values.pop(0) if len(values) > 1 else values[0]

    def inspect_health(self, container: str) -> str:
        self.health_polls += 1
        self.running_at_health.append(set(self.running))
        return self._next(self.health)

    def run_health_command(self, container: str, command: str) -> bool:
        self.health_polls += 1
        self.running_at_health.append(set(self.running))
        return self._next(self.command_results)

    def compose_logs(
        self, release_dir: str, service: str | None = None, lines: int = 100
    ) -> str:
        self.events.append(("logs", release_dir))
        return f"{service or 'all'} {lines} {os.path.basename(release_dir)}\n"

    def compose_exec(
        self, release_dir: str, service: str, command: Sequence[str]
    ) -> CommandResult:
        self.events.append(("exec", release_dir))
        text = " ".join(command)
        return CommandResult(text, f"{service}: {text}\n", "", 0)


class FakeClock:
    """Monotonic clock advanced only by its own ``sleep``."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def make_config(**deploy: Any) -> ShipitConfig:
    """Build a two-host configuration with optional deploy overrides."""
    return ShipitConfig.model_validate(
        {
            "app": {"name": "myapp", "repository": "git@github.com:acme/myapp.git"},
            "deploy": {
                "keep_releases": 3,
                "health_check": {"retries": 3, "interval": 1, "timeout": 10},
                **deploy,
            },
            "stages": {
                "production": {
                    "hosts": [{"address": "host-a"}, {"address": "host-b"}],
                    "env": {"RAILS_ENV": "production"},
                }
            },
        }
    )


def seed_release(
    executor: LocalExecutor,
    layout: RemoteLayout,
    release_id: str,
    *,
    current: bool = False,
) -> str:
    """Create a release directory on the fake host, optionally as current."""
    path = layout.release_path(release_id)
    executor.make_dirs(path)
    if current:
        executor.symlink(path, layout.current_path)
    return path


def write_lock(
    executor: LocalExecutor,
    layout: RemoteLayout,
    current: str,
    previous: str | None = None,
    git_sha: str = "abc1234",
    secrets_hash: str | None = None,
) -> LockRecord:
    """Write a lock record on the fake host."""
    record = LockRecord.create(current, previous, git_sha, secrets_hash)
    executor.make_dirs(layout.app_path)
    executor.write_file(layout.lock_path, record.model_dump_json())
    return record


@pytest.fixture
def config() -> ShipitConfig:
    """Remote-build configuration with two production hosts."""
    return make_config()


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """Local project checkout directory."""
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def context(config: ShipitConfig, project_root: Path) -> DeployContext:
    """Deploy context for the production stage with a fixed release id."""
    return DeployContext.for_stage(config, "production", project_root, RELEASE_ID)


@pytest.fixture
def executor(tmp_path: Path) -> LocalExecutor:
    """Fake host rooted under the test's temporary directory."""
    return LocalExecutor(tmp_path / "host-a", host="host-a")


@pytest.fixture
def engine() -> FakeEngine:
    """Container engine reporting healthy on the first poll."""
    return FakeEngine()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_prober(clock: FakeClock) -> Callable[[ContainerEngine], HealthProber]:
    """Factory for probers that never really sleep."""

    def factory(engine: ContainerEngine) -> HealthProber:
        return HealthProber(engine, sleep=clock.sleep, clock=clock)

    return factory


@pytest.fixture
def make_executor(tmp_path: Path) -> Callable[[str], LocalExecutor]:
    """Factory for fake hosts, each with its own root directory."""

    def factory(host: str) -> LocalExecutor:
        return LocalExecutor(tmp_path / host, host=host)

    return factory


@pytest.fixture
def config_factory() -> Callable[..., ShipitConfig]:
    return make_config


@pytest.fixture
def seed() -> Callable[..., str]:
    return seed_release


@pytest.fixture
def lock_writer() -> Callable[..., LockRecord]:
    return write_lock
