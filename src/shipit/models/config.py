"""Pydantic models for shipit configuration.

This module defines the schema of ``shipit.yaml``: the application, the
deploy policy (retention, build mode, health check) and the stages with
their hosts.
"""

import re
from enum import Enum

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from shipit.lib.errors import ConfigError

APP_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


class BuildMode(str, Enum):
    """Where container images are built."""

    REMOTE = "remote"
    LOCAL = "local"


class HostOs(str, Enum):
    """Host operating systems supported by provisioning."""

    UBUNTU = "ubuntu"
    DEBIAN = "debian"
    NIXOS = "nixos"


class AppConfig(BaseModel):
    """Application identity and source.

    Attributes:
        name: Application name, used for remote paths and image names
        repository: Git repository URL of the application
        branch: Branch pushed to and checked out on the hosts
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., description="Application name")
    repository: str = Field(..., description="Git repository URL")
    branch: str = Field(default="main", description="Branch to deploy")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate the application name is usable in paths and image tags."""
        if not APP_NAME_PATTERN.match(v):
            raise ValueError(
                f"Invalid app name: {v!r}. "
                "Must contain only lowercase letters, numbers, '_' and '-'"
            )
        return v

    @field_validator("repository", "branch")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        """Reject empty strings."""
        if not v.strip():
            raise ValueError("cannot be empty")
        return v


class HealthCheckConfig(BaseModel):
    """Health check settings shared by deploy and rollback.

    Attributes:
        path: HTTP path probed inside the web container
        port: Container port the web service listens on
        timeout: Total time budget for the probe in seconds
        interval: Seconds between polls
        retries: Maximum number of polls
        cmd: Custom check command replacing the HTTP probe
    """

    model_config = ConfigDict(extra="forbid")

    path: str = Field(default="/health", description="HTTP health path")
    port: int = Field(default=8080, ge=1, le=65535, description="Container port")
    timeout: float = Field(default=60, gt=0, description="Probe budget in seconds")
    interval: float = Field(default=2, ge=0, description="Seconds between polls")
    retries: int = Field(default=15, ge=1, description="Maximum number of polls")
    cmd: str | None = Field(default=None, description="Custom health command")

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Health path must be absolute."""
        if not v.startswith("/"):
            raise ValueError(f"Health check path must start with '/': {v}")
        return v


class DeployConfig(BaseModel):
    """Deploy policy for the application."""

    model_config = ConfigDict(extra="forbid")

    deploy_to: str = Field(default="/var/deploy", description="Remote base path")
    keep_releases: int = Field(default=5, ge=1, description="Releases to keep")
    build: BuildMode = Field(default=BuildMode.REMOTE, description="Build mode")
    web_service: str = Field(default="web", description="Primary compose service")
    platform: str | None = Field(
        default=None, description="Target platform for local builds"
    )
    health_check: HealthCheckConfig = Field(default_factory=HealthCheckConfig)

    @field_validator("deploy_to")
    @classmethod
    def validate_deploy_to(cls, v: str) -> str:
        """Remote base path must be absolute."""
        if not v.startswith("/"):
            raise ValueError(f"deploy_to must be an absolute path: {v}")
        return v.rstrip("/") or "/"


class HostConfig(BaseModel):
    """A single deploy target."""

    model_config = ConfigDict(extra="forbid")

    address: str = Field(..., description="Hostname or IP address")

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        """Host address cannot be empty."""
        if not v.strip():
            raise ValueError("host address cannot be empty")
        return v.strip()


class TraefikConfig(BaseModel):
    """Routing settings rendered into the compose override."""

    model_config = ConfigDict(extra="forbid")

    domain: str = Field(..., description="Public domain routed to the web service")
    tls: bool = Field(default=False, description="Enable TLS via ACME")
    acme_email: str | None = Field(default=None, description="ACME account email")

    @model_validator(mode="after")
    def validate_tls(self) -> "TraefikConfig":
        """Validate domain and ACME email when TLS is enabled."""
        if not self.domain.strip():
            raise ValueError("traefik.domain cannot be empty")
        if self.tls and not self.acme_email:
            raise ValueError("acme_email is required when tls is enabled")
        return self


class StageConfig(BaseModel):
    """A named environment mapping to a fixed set of hosts."""

    model_config = ConfigDict(extra="forbid")

    user: str = Field(default="deploy", description="SSH user")
    port: int | None = Field(default=None, ge=1, le=65535, description="SSH port")
    proxy: str | None = Field(default=None, description="Jump host user@host:port")
    identity_file: str | None = Field(default=None, description="SSH private key")
    os: HostOs | None = Field(default=None, description="Host operating system")
    hosts: list[HostConfig] = Field(..., description="Deploy targets")
    env: dict[str, str] = Field(default_factory=dict, description="Extra env vars")
    traefik: TraefikConfig | None = Field(default=None, description="Routing")

    @model_validator(mode="after")
    def validate_hosts(self) -> "StageConfig":
        """A stage needs at least one host and no duplicates."""
        if not self.hosts:
            raise ValueError("stage has no hosts defined")
        addresses = [host.address for host in self.hosts]
        if len(set(addresses)) != len(addresses):
            raise ValueError(f"duplicate host addresses: {addresses}")
        return self


class ShipitConfig(BaseModel):
    """Top-level ``shipit.yaml`` model."""

    model_config = ConfigDict(extra="forbid")

    app: AppConfig
    deploy: DeployConfig = Field(default_factory=DeployConfig)
    stages: dict[str, StageConfig] = Field(default_factory=dict)

    @property
    def app_path(self) -> str:
        """Remote directory holding releases, shared files and the lock."""
        return f"{self.deploy.deploy_to.rstrip('/')}/{self.app.name}"

    @property
    def is_local_build(self) -> bool:
        """Whether images are built locally and transferred to hosts."""
        return self.deploy.build == BuildMode.LOCAL

    def stage(self, name: str) -> StageConfig:
        """Return a stage by name.

        Raises:
            ConfigError: If the stage is not configured
        """
        if name not in self.stages:
            available = ", ".join(sorted(self.stages)) or "none"
            raise ConfigError(
                field="stages",
                message=f"Stage '{name}' not found (available: {available})",
            )
        return self.stages[name]
