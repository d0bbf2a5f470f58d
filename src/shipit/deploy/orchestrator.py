"""Deploy Orchestrator: the per-host deploy protocol.

Steps run strictly in order. Any failure before cutover leaves the previous
release serving traffic, the ``current`` pointer unchanged and the lock
record untouched. The previous release is stopped only after the new one
has passed its health check, and the lock record is written last.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from shipit.deploy.compose import OVERRIDE_FILE, render_override
from shipit.deploy.context import DeployContext
from shipit.deploy.health import HealthProber
from shipit.deploy.lock import LockStore
from shipit.deploy.releases import ReleaseManager
from shipit.deploy.secrets import SecretsStore
from shipit.deploy.source import checkout_release, push_source, remote_git_sha
from shipit.deploy.transfer import ImageTransferPipeline
from shipit.lib.errors import DeploymentError, HealthCheckError
from shipit.lib.logging_config import get_logger
from shipit.models.release import (
    DEPLOY_STEP_TOTAL,
    DeployStep,
    HealthState,
    LockRecord,
)
from shipit.remote.engine import ComposeEngine, ContainerEngine
from shipit.remote.executor import RemoteExecutor

logger = get_logger(__name__)


@dataclass
class DeployReport:
    """Summary of a successful deploy on one host."""

    host: str
    release_id: str
    previous_release: str | None
    git_sha: str
    secrets_updated: bool = False
    pruned: list[str] = field(default_factory=list)


class DeployOrchestrator:
    """Runs the deploy protocol against one host.

    Attributes:
        step: Step currently executing, ``DONE`` or ``FAILED``
        failed_step: Step that raised, when the deploy failed
        health: Health state observed during verify
    """

    def __init__(
        self,
        context: DeployContext,
        executor: RemoteExecutor,
        *,
        engine: ContainerEngine | None = None,
        prober: HealthProber | None = None,
        secrets: SecretsStore | None = None,
        pipeline: ImageTransferPipeline | None = None,
        push: Callable[[DeployContext, str], None] = push_source,
    ) -> None:
        self.context = context
        self.executor = executor
        self.host = executor.host
        self.engine = engine or ComposeEngine(executor)
        self.prober = prober or HealthProber(self.engine)
        self.secrets = secrets or SecretsStore(
            context.project_root, context.stage_name, context.config.app.name
        )
        if context.is_local_build and pipeline is None:
            pipeline = ImageTransferPipeline(context)
        self.pipeline = pipeline
        self._push = push

        self.layout = context.layout
        self.releases = ReleaseManager(executor, self.engine, self.layout)
        self.lock_store = LockStore(executor, self.layout.lock_path)

        self.step = DeployStep.INIT
        self.failed_step: DeployStep | None = None
        self.health: HealthState | None = None

        self._prior_lock: LockRecord | None = None
        self._prior_current: str | None = None
        self._secrets_hash: str | None = None
        self._secrets_updated = False
        self._started = False

    @property
    def release_id(self) -> str:
        return self.context.release_id

    @property
    def release_path(self) -> str:
        return self.context.release_path

    def _enter(self, step: DeployStep, message: str) -> None:
        self.step = step
        logger.info(f"[{self.host}] [{step.number}/{DEPLOY_STEP_TOTAL}] {message}")

    def run(self) -> DeployReport:
        """Execute every step of the protocol.

        Returns:
            DeployReport describing the new release

        Raises:
            DeploymentError: From the failing step. ``failed_step`` names it.
        """
        try:
            self._prepare_images()
            self._init()
            self._sync()
            self._configure_routing()
            self._materialize_env()
            self._build()
            self._start()
            self._verify()
            self._cutover()
            self._promote()
            git_sha = self._persist()
            pruned = self._cleanup()
        except Exception:
            self.failed_step = self.step
            self.step = DeployStep.FAILED
            if self.failed_step.before_cutover:
                self._abort()
            raise

        self.step = DeployStep.DONE
        logger.info(f"[{self.host}] Release {self.release_id} is live")
        return DeployReport(
            host=self.host,
            release_id=self.release_id,
            previous_release=self._previous_for_record(),
            git_sha=git_sha,
            secrets_updated=self._secrets_updated,
            pruned=pruned,
        )

    def _prepare_images(self) -> None:
        """Build local images before the host is touched, unless already built."""
        if self.pipeline is None or self.pipeline.prepared:
            return
        self.step = DeployStep.BUILD
        logger.info(f"[{self.host}] Building images locally")
        self.pipeline.prepare()

    def _init(self) -> None:
        self._enter(DeployStep.INIT, f"Creating release directory {self.release_id}")
        self._prior_lock = self.lock_store.read_lenient()
        pointer = self.releases.current_release()
        recorded = self._prior_lock.current_release if self._prior_lock else None
        if pointer and recorded and pointer != recorded:
            logger.warning(
                f"[{self.host}] Lock record names {recorded} but current points at "
                f"{pointer}; the lock record will be rewritten from the pointer"
            )
        self._prior_current = pointer or recorded
        self.releases.create_release(self.release_id)

    def _sync(self) -> None:
        self._enter(DeployStep.SYNC, "Pushing and checking out code")
        self._push(self.context, self.host)
        checkout_release(self.executor, self.context)

    def _configure_routing(self) -> None:
        self._enter(DeployStep.CONFIGURE_ROUTING, f"Generating {OVERRIDE_FILE}")
        built = self.pipeline.image_services if self.pipeline else None
        content = render_override(self.context, built)
        self.executor.write_file(f"{self.release_path}/{OVERRIDE_FILE}", content)

    def _materialize_env(self) -> None:
        self._enter(DeployStep.MATERIALIZE_ENV, "Linking shared .env")
        self.executor.make_dirs(self.layout.shared_path)

        if self.secrets.configured:
            self._secrets_hash = self.secrets.current_hash()
            stored = self._prior_lock.secrets_hash if self._prior_lock else None
            if self._secrets_hash != stored:
                self.secrets.decrypt_to_env_file(self.executor, self.layout.shared_env)
                self._secrets_updated = True
            else:
                logger.info(f"[{self.host}] Secrets unchanged (skipped)")

        self.executor.symlink(self.layout.shared_env, f"{self.release_path}/.env")

    def _build(self) -> None:
        if self.pipeline is not None:
            self._enter(DeployStep.BUILD, "Transferring locally built images")
            self.pipeline.transfer(self.executor)
        else:
            self._enter(DeployStep.BUILD, "Building images on host")
            self.engine.compose_build(self.release_path)

    def _start(self) -> None:
        self._enter(DeployStep.START, "Starting new release")
        self._started = True
        self.engine.compose_up(self.release_path)

    def _verify(self) -> None:
        self._enter(DeployStep.VERIFY, "Running health check")
        config = self.context.config.deploy.health_check
        container = self.engine.container_id(self.release_path, self.context.web_service)
        self.health = self.prober.probe(container, config)
        if self.health != HealthState.HEALTHY:
            raise HealthCheckError(
                self.health.value,
                f"Release {self.release_id} on {self.host} is {self.health.value} "
                f"({config.port}{config.path}); previous release remains active",
            )
        logger.info(f"[{self.host}] Health check passed")

    def _cutover(self) -> None:
        self._enter(DeployStep.CUTOVER, "Stopping previous release")
        previous = self._previous_for_record()
        if previous is None:
            return
        try:
            self.releases.stop_release(previous)
        except DeploymentError as exc:
            logger.warning(f"[{self.host}] Failed to stop release {previous}: {exc}")

    def _promote(self) -> None:
        self._enter(DeployStep.PROMOTE, f"Pointing current at {self.release_id}")
        self.releases.promote(self.release_id)

    def _persist(self) -> str:
        self._enter(DeployStep.PERSIST, "Writing lock record")
        current = self.releases.current_release()
        if current != self.release_id:
            raise DeploymentError(
                operation="persist",
                message=(
                    f"current points at {current!r} after promoting "
                    f"{self.release_id}; lock record not written"
                ),
            )
        git_sha = remote_git_sha(self.executor, self.context)
        record = LockRecord.create(
            current=current,
            previous=self._previous_for_record(),
            git_sha=git_sha,
            secrets_hash=self._secrets_hash,
        )
        self.lock_store.write(record)
        return git_sha

    def _cleanup(self) -> list[str]:
        self._enter(DeployStep.CLEANUP, "Cleaning up old releases")
        remove_images = "all" if self.context.is_local_build else "local"
        try:
            report = self.releases.prune_releases(
                keep=self.context.config.deploy.keep_releases,
                protected=(self.release_id, self._previous_for_record()),
                remove_images=remove_images,
            )
        except DeploymentError as exc:
            logger.warning(f"[{self.host}] Cleanup skipped: {exc}")
            return []
        return report.removed

    def _previous_for_record(self) -> str | None:
        if self._prior_current == self.release_id:
            return None
        return self._prior_current

    def _abort(self) -> None:
        """Stop the new release after a failure before cutover."""
        if not self._started:
            failed = self.failed_step or DeployStep.INIT
            logger.error(
                f"[{self.host}] Deploy failed at {failed.value}; "
                "previous release untouched"
            )
            return
        logger.warning(f"[{self.host}] Stopping release {self.release_id}")
        try:
            self.engine.compose_down(self.release_path)
        except DeploymentError as exc:
            logger.warning(f"[{self.host}] Failed to stop new release: {exc}")
        logger.info(f"[{self.host}] New release stopped. Previous release still running.")
