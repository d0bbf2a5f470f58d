"""Stage Coordinator: fans deploys and rollbacks out across a stage's hosts.

Every host runs in its own worker thread with its own executor. A failure on
one host is recorded in the stage result and never cancels the others.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TypeVar

from shipit.deploy.context import DeployContext
from shipit.deploy.health import HealthProber
from shipit.deploy.lock import LockStore
from shipit.deploy.orchestrator import DeployOrchestrator, DeployReport
from shipit.deploy.releases import ReleaseManager
from shipit.deploy.rollback import RollbackOrchestrator, RollbackReport
from shipit.deploy.source import push_source
from shipit.deploy.transfer import ImageTransferPipeline
from shipit.lib.errors import ConfigError, NoCurrentReleaseError, ShipitError
from shipit.lib.logging_config import get_logger
from shipit.models.release import DeployStep, Release
from shipit.remote.engine import ComposeEngine, ContainerEngine
from shipit.remote.executor import CommandResult, RemoteExecutor
from shipit.remote.ssh import SSHExecutor

logger = get_logger(__name__)

T = TypeVar("T")

ExecutorFactory = Callable[[str], RemoteExecutor]
EngineFactory = Callable[[RemoteExecutor], ContainerEngine]
ProberFactory = Callable[[ContainerEngine], HealthProber]


@dataclass
class HostResult:
    """Outcome of one operation on one host.

    Attributes:
        host: Host address
        ok: Whether the operation completed
        release_id: Release that is (or was meant to become) current
        step: Deploy step reached; ``DONE`` on success, the failing step otherwise
        error: Exception raised on failure
        report: Deploy or rollback report on success
    """

    host: str
    ok: bool
    release_id: str | None = None
    step: DeployStep | None = None
    error: BaseException | None = None
    report: DeployReport | RollbackReport | None = None

    @property
    def message(self) -> str:
        if self.error is None:
            return ""
        return getattr(self.error, "message", None) or str(self.error)


@dataclass
class StageResult:
    """Per-host results of a stage operation. Partial failure is allowed."""

    stage: str
    operation: str
    results: list[HostResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(result.ok for result in self.results)

    @property
    def succeeded(self) -> list[HostResult]:
        return [result for result in self.results if result.ok]

    @property
    def failed(self) -> list[HostResult]:
        return [result for result in self.results if not result.ok]

    def for_host(self, host: str) -> HostResult:
        for result in self.results:
            if result.host == host:
                return result
        raise KeyError(host)


@dataclass
class HostReleases:
    """Releases found on one host, newest first."""

    host: str
    releases: list[Release] = field(default_factory=list)
    current: str | None = None
    error: BaseException | None = None


class StageCoordinator:
    """Runs orchestrators concurrently, one per host of the stage."""

    def __init__(
        self,
        context: DeployContext,
        *,
        executor_factory: ExecutorFactory | None = None,
        engine_factory: EngineFactory = ComposeEngine,
        prober_factory: ProberFactory = HealthProber,
        pipeline: ImageTransferPipeline | None = None,
        push: Callable[[DeployContext, str], None] = push_source,
        max_workers: int | None = None,
    ) -> None:
        self.context = context
        self.executor_factory = executor_factory or self._ssh_executor
        self.engine_factory = engine_factory
        self.prober_factory = prober_factory
        self.pipeline = pipeline
        self.push = push
        self.max_workers = max_workers

    @property
    def hosts(self) -> list[str]:
        return [host.address for host in self.context.stage.hosts]

    def _ssh_executor(self, host: str) -> RemoteExecutor:
        return SSHExecutor(self.context.ssh_target(host))

    def _fan_out(self, task: Callable[[str], T]) -> list[T]:
        hosts = self.hosts
        workers = self.max_workers or len(hosts)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="shipit") as pool:
            return list(pool.map(task, hosts))

    def deploy(self) -> StageResult:
        """Deploy the context's release to every host of the stage."""
        result = StageResult(stage=self.context.stage_name, operation="deploy")
        logger.info(
            f"Deploying {self.context.config.app.name} to {self.context.stage_name} "
            f"(release {self.context.release_id}, hosts: {', '.join(self.hosts)})"
        )

        if self.context.is_local_build:
            if self.pipeline is None:
                self.pipeline = ImageTransferPipeline(self.context)
            try:
                self.pipeline.prepare()
            except ShipitError as exc:
                logger.error(f"Local build failed: {exc}")
                result.results = [
                    HostResult(
                        host=host,
                        ok=False,
                        release_id=self.context.release_id,
                        step=DeployStep.BUILD,
                        error=exc,
                    )
                    for host in self.hosts
                ]
                return result

        result.results = self._fan_out(self._deploy_host)
        return result

    def _deploy_host(self, host: str) -> HostResult:
        orchestrator: DeployOrchestrator | None = None
        try:
            with self.executor_factory(host) as executor:
                engine = self.engine_factory(executor)
                orchestrator = DeployOrchestrator(
                    self.context,
                    executor,
                    engine=engine,
                    prober=self.prober_factory(engine),
                    pipeline=self.pipeline,
                    push=self.push,
                )
                report = orchestrator.run()
        except Exception as exc:  # noqa: BLE001 - reported per host
            step = orchestrator.failed_step if orchestrator else DeployStep.INIT
            self._log_failure(host, "Deploy", exc)
            return HostResult(
                host=host,
                ok=False,
                release_id=self.context.release_id,
                step=step,
                error=exc,
            )
        return HostResult(
            host=host,
            ok=True,
            release_id=report.release_id,
            step=DeployStep.DONE,
            report=report,
        )

    def rollback(self, release_id: str | None = None) -> StageResult:
        """Roll every host back to ``release_id`` or its previous release."""
        logger.info(
            f"Rolling back {self.context.config.app.name} on {self.context.stage_name}"
        )

        def task(host: str) -> HostResult:
            try:
                with self.executor_factory(host) as executor:
                    engine = self.engine_factory(executor)
                    orchestrator = RollbackOrchestrator(
                        self.context.config,
                        executor,
                        engine=engine,
                        prober=self.prober_factory(engine),
                    )
                    report = orchestrator.run(release_id)
            except Exception as exc:  # noqa: BLE001 - reported per host
                self._log_failure(host, "Rollback", exc)
                return HostResult(host=host, ok=False, release_id=release_id, error=exc)
            return HostResult(
                host=host, ok=True, release_id=report.release_id, report=report
            )

        return StageResult(
            stage=self.context.stage_name,
            operation="rollback",
            results=self._fan_out(task),
        )

    def list_releases(self) -> list[HostReleases]:
        """Return the releases of every host, newest first."""

        def task(host: str) -> HostReleases:
            try:
                with self.executor_factory(host) as executor:
                    layout = self.context.layout
                    manager = ReleaseManager(
                        executor, self.engine_factory(executor), layout
                    )
                    releases = manager.list_releases()
                    lock = LockStore(executor, layout.lock_path).read_lenient()
                    current = manager.current_release() or (
                        lock.current_release if lock else None
                    )
            except Exception as exc:  # noqa: BLE001 - reported per host
                self._log_failure(host, "Listing releases", exc)
                return HostReleases(host=host, error=exc)
            return HostReleases(host=host, releases=releases, current=current)

        return self._fan_out(task)

    def _target_host(self, host: str | None) -> str:
        if host is None:
            return self.hosts[0]
        if host not in self.hosts:
            raise ConfigError(
                field="host",
                message=(
                    f"Host '{host}' is not part of stage '{self.context.stage_name}' "
                    f"(hosts: {', '.join(self.hosts)})"
                ),
            )
        return host

    def _on_current(self, host: str, action: Callable[[ContainerEngine, str], T]) -> T:
        with self.executor_factory(host) as executor:
            engine = self.engine_factory(executor)
            layout = self.context.layout
            current = ReleaseManager(executor, engine, layout).current_release()
            if current is None:
                raise NoCurrentReleaseError(host)
            return action(engine, layout.release_path(current))

    def logs(
        self, service: str | None = None, lines: int = 100, host: str | None = None
    ) -> tuple[str, str]:
        """Return recent container logs of the current release on one host.

        The stage's first host is used unless ``host`` names another one.

        Raises:
            ConfigError: If ``host`` is not part of the stage
            NoCurrentReleaseError: If the host has no current release
        """
        target = self._target_host(host)
        output = self._on_current(
            target, lambda engine, path: engine.compose_logs(path, service, lines)
        )
        return target, output

    def run_command(
        self, command: Sequence[str], host: str | None = None
    ) -> tuple[str, CommandResult]:
        """Run a one-off command in the web service of the current release."""
        target = self._target_host(host)
        service = self.context.web_service
        result = self._on_current(
            target, lambda engine, path: engine.compose_exec(path, service, command)
        )
        return target, result

    @staticmethod
    def _log_failure(host: str, operation: str, exc: BaseException) -> None:
        if isinstance(exc, ShipitError):
            logger.error(f"[{host}] {operation} failed: {exc}")
        else:
            logger.exception(f"[{host}] {operation} failed unexpectedly: {exc}")
