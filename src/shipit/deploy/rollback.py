"""Rollback Orchestrator: the per-host rollback protocol.

Unlike a deploy, a rollback stops the current release before the target is
verified. If the target then fails its health check nothing is restarted;
the operator has to intervene.
"""

from __future__ import annotations

from dataclasses import dataclass

from shipit.deploy.context import RemoteLayout
from shipit.deploy.health import HealthProber
from shipit.deploy.lock import LockStore
from shipit.deploy.releases import ReleaseManager
from shipit.deploy.source import UNKNOWN_SHA
from shipit.lib.errors import (
    DeploymentError,
    NoRollbackTargetError,
    RollbackHealthError,
)
from shipit.lib.logging_config import get_logger
from shipit.models.config import ShipitConfig
from shipit.models.release import HealthState, LockRecord, is_release_id
from shipit.remote.engine import ComposeEngine, ContainerEngine
from shipit.remote.executor import RemoteExecutor

logger = get_logger(__name__)

ROLLBACK_STEP_TOTAL = 5


@dataclass
class RollbackReport:
    """Summary of a successful rollback on one host."""

    host: str
    release_id: str
    previous_release: str | None


class RollbackOrchestrator:
    """Runs the rollback protocol against one host."""

    def __init__(
        self,
        config: ShipitConfig,
        executor: RemoteExecutor,
        *,
        engine: ContainerEngine | None = None,
        prober: HealthProber | None = None,
    ) -> None:
        self.config = config
        self.executor = executor
        self.host = executor.host
        self.engine = engine or ComposeEngine(executor)
        self.prober = prober or HealthProber(self.engine)
        self.layout = RemoteLayout(config.app_path)
        self.releases = ReleaseManager(executor, self.engine, self.layout)
        self.lock_store = LockStore(executor, self.layout.lock_path)
        self.health: HealthState | None = None

    def _step(self, number: int, message: str) -> None:
        logger.info(f"[{self.host}] [{number}/{ROLLBACK_STEP_TOTAL}] {message}")

    def resolve_target(self, release_id: str | None) -> tuple[str, LockRecord | None]:
        """Pick the rollback target and load the lock record.

        An explicit release id must match the release id format; the lock
        record is then read only for its metadata. Without one, the lock
        record's previous release is the target.

        Raises:
            NoRollbackTargetError: If no target is known or its directory is gone
            LockCorruptionError: If the target comes from a corrupt lock record
        """
        if release_id:
            if not is_release_id(release_id):
                raise NoRollbackTargetError(
                    f"Not a release id: {release_id!r} (expected YYYYMMDD-HHMMSS)"
                )
            target = release_id
            lock = self.lock_store.read_lenient()
        else:
            lock = self.lock_store.read()
            if lock is None:
                raise NoRollbackTargetError(
                    f"No lock record on {self.host}. Has a deploy been done?"
                )
            if not lock.previous_release:
                raise NoRollbackTargetError(
                    f"No previous release recorded on {self.host}"
                )
            target = lock.previous_release
            if not is_release_id(target):
                raise NoRollbackTargetError(
                    f"Lock record on {self.host} names an invalid previous "
                    f"release: {target!r}"
                )

        if not self.releases.release_exists(target):
            raise NoRollbackTargetError(
                f"Release directory not found on {self.host}: "
                f"{self.layout.release_path(target)}"
            )
        return target, lock

    def run(self, release_id: str | None = None) -> RollbackReport:
        """Roll the host back to ``release_id`` or the previous release.

        Raises:
            NoRollbackTargetError: If there is nothing to roll back to
            RollbackHealthError: If the target does not become healthy
        """
        target, lock = self.resolve_target(release_id)
        current = self.releases.current_release() or (
            lock.current_release if lock else None
        )
        if current == target:
            raise NoRollbackTargetError(f"Release {target} is already current")

        self._step(1, "Stopping current release")
        if current and self.releases.release_exists(current):
            try:
                self.releases.stop_release(current)
            except DeploymentError as exc:
                logger.warning(f"[{self.host}] Failed to stop release {current}: {exc}")

        self._step(2, f"Starting release {target}")
        target_path = self.layout.release_path(target)
        self.engine.compose_up(target_path)

        self._step(3, "Running health check")
        health_config = self.config.deploy.health_check
        container = self.engine.container_id(target_path, self.config.deploy.web_service)
        self.health = self.prober.probe(container, health_config)
        if self.health != HealthState.HEALTHY:
            raise RollbackHealthError(
                self.health.value,
                f"Release {target} on {self.host} is {self.health.value} after "
                "rollback; containers were left running, manual intervention required",
            )

        self._step(4, f"Pointing current at {target}")
        self.releases.promote(target)

        self._step(5, "Writing lock record")
        record = LockRecord.create(
            current=target,
            previous=current,
            git_sha=lock.git_sha if lock else UNKNOWN_SHA,
            secrets_hash=lock.secrets_hash if lock else None,
        )
        self.lock_store.write(record)

        logger.info(f"[{self.host}] Rolled back to {target}")
        return RollbackReport(host=self.host, release_id=target, previous_release=current)
