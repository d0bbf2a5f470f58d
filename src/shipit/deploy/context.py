"""Deploy context shared by every host of a stage deploy."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from shipit.models.config import ShipitConfig, StageConfig
from shipit.models.release import new_release_id
from shipit.remote.ssh import DEFAULT_SSH_PORT, SSHTarget

LOCK_FILE = "shipit.lock"


@dataclass
class RemoteLayout:
    """Paths of the application directory on a host."""

    app_path: str

    @property
    def releases_dir(self) -> str:
        return f"{self.app_path}/releases"

    @property
    def current_path(self) -> str:
        return f"{self.app_path}/current"

    @property
    def shared_path(self) -> str:
        return f"{self.app_path}/shared"

    @property
    def shared_env(self) -> str:
        return f"{self.shared_path}/.env"

    @property
    def repo_path(self) -> str:
        return f"{self.app_path}/repo"

    @property
    def lock_path(self) -> str:
        return f"{self.app_path}/{LOCK_FILE}"

    def release_path(self, release_id: str) -> str:
        return f"{self.releases_dir}/{release_id}"


@dataclass
class DeployContext:
    """Everything a per-host orchestrator needs to know about the deploy.

    Attributes:
        config: Loaded application configuration
        stage_name: Name of the stage being deployed
        stage: Stage configuration
        project_root: Local checkout the deploy is run from
        release_id: Release id allocated once for the whole stage
    """

    config: ShipitConfig
    stage_name: str
    stage: StageConfig
    project_root: Path
    release_id: str = field(default_factory=new_release_id)

    @classmethod
    def for_stage(
        cls,
        config: ShipitConfig,
        stage_name: str,
        project_root: Path,
        release_id: str | None = None,
    ) -> DeployContext:
        """Build a context for a configured stage."""
        stage = config.stage(stage_name)
        if release_id is None:
            return cls(config, stage_name, stage, project_root)
        return cls(config, stage_name, stage, project_root, release_id)

    @property
    def layout(self) -> RemoteLayout:
        return RemoteLayout(self.config.app_path)

    @property
    def release_path(self) -> str:
        return self.layout.release_path(self.release_id)

    @property
    def web_service(self) -> str:
        return self.config.deploy.web_service

    @property
    def is_local_build(self) -> bool:
        return self.config.is_local_build

    def image_name_for(self, service: str) -> str:
        """Tag used for a locally built service image in this release."""
        return f"{self.config.app.name}-{service}:{self.release_id}"

    def ssh_target(self, host: str) -> SSHTarget:
        """Connection parameters for a host of this stage."""
        return SSHTarget(
            host=host,
            user=self.stage.user,
            port=self.stage.port or DEFAULT_SSH_PORT,
            identity_file=self.stage.identity_file,
            proxy=self.stage.proxy,
        )
