"""Release Directory Manager.

Creates, lists and prunes timestamped release directories on a host and
maintains the ``current`` pointer.
"""

from __future__ import annotations

import posixpath
from collections.abc import Collection
from dataclasses import dataclass, field

from shipit.deploy.context import RemoteLayout
from shipit.lib.errors import DeploymentError, PruneError, ReleaseDirectoryError
from shipit.lib.logging_config import get_logger
from shipit.models.release import Release, is_release_id
from shipit.remote.engine import ContainerEngine
from shipit.remote.executor import RemoteExecutor

logger = get_logger(__name__)


@dataclass
class PruneReport:
    """Outcome of a pruning pass."""

    removed: list[str] = field(default_factory=list)
    failed: list[PruneError] = field(default_factory=list)


class ReleaseManager:
    """Release directories and the current pointer of one app on one host."""

    def __init__(
        self,
        executor: RemoteExecutor,
        engine: ContainerEngine,
        layout: RemoteLayout,
    ) -> None:
        self.executor = executor
        self.engine = engine
        self.layout = layout

    @property
    def host(self) -> str:
        return self.executor.host

    def create_release(self, release_id: str) -> str:
        """Create the directory of a new release and return its path.

        Raises:
            ReleaseDirectoryError: If the releases directory is not writable
        """
        path = self.layout.release_path(release_id)
        try:
            self.executor.make_dirs(path)
        except DeploymentError as exc:
            raise ReleaseDirectoryError(path, exc.message) from exc
        except OSError as exc:
            raise ReleaseDirectoryError(path, str(exc)) from exc
        return path

    def release_exists(self, release_id: str) -> bool:
        return self.executor.exists(self.layout.release_path(release_id))

    def list_releases(self) -> list[Release]:
        """Return the host's releases, newest first."""
        if not self.executor.exists(self.layout.releases_dir):
            return []
        names = [
            name
            for name in self.executor.list_dir(self.layout.releases_dir)
            if is_release_id(name)
        ]
        return [Release(id=name, host=self.host) for name in sorted(names, reverse=True)]

    def current_release(self) -> str | None:
        """Return the release id the current pointer resolves to, if any."""
        target = self.executor.read_link(self.layout.current_path)
        if target is None:
            return None
        release_id = posixpath.basename(target.rstrip("/"))
        if not is_release_id(release_id) or not self.release_exists(release_id):
            logger.warning(
                f"[{self.host}] current points at {target}, "
                "which is not an existing release"
            )
            return None
        return release_id

    def promote(self, release_id: str) -> None:
        """Atomically repoint ``current`` at a release."""
        self.executor.symlink(
            self.layout.release_path(release_id), self.layout.current_path
        )

    def stop_release(self, release_id: str, remove_images: str | None = None) -> None:
        """Stop the containers defined in a release directory."""
        self.engine.compose_down(
            self.layout.release_path(release_id), remove_images=remove_images
        )

    def prune_releases(
        self,
        keep: int,
        protected: Collection[str | None] = (),
        remove_images: str = "local",
    ) -> PruneReport:
        """Delete releases older than the newest ``keep``.

        Releases named in ``protected`` (the current and previous release)
        are never deleted. A failure to prune one release is logged and
        does not stop the others.
        """
        report = PruneReport()
        releases = self.list_releases()
        if len(releases) <= keep:
            logger.info(f"[{self.host}] Nothing to clean up")
            return report

        keep_ids = {release_id for release_id in protected if release_id}
        for release in releases[keep:]:
            if release.id in keep_ids:
                logger.debug(f"[{self.host}] Keeping protected release {release.id}")
                continue
            try:
                self._remove_release(release.id, remove_images)
            except (DeploymentError, OSError) as exc:
                error = PruneError(release.id, str(exc))
                logger.warning(f"[{self.host}] {error}")
                report.failed.append(error)
                continue
            report.removed.append(release.id)

        logger.info(f"[{self.host}] Removed {len(report.removed)} old release(s)")
        return report

    def _remove_release(self, release_id: str, remove_images: str) -> None:
        path = self.layout.release_path(release_id)
        try:
            self.stop_release(release_id, remove_images=remove_images)
        except DeploymentError as exc:
            # Containers may already be gone.
            logger.debug(f"[{self.host}] compose down in {path}: {exc}")
        self.executor.remove_tree(path)
