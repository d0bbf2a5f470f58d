"""Release, lock record and deploy state models."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

RELEASE_ID_FORMAT = "%Y%m%d-%H%M%S"
RELEASE_ID_PATTERN = re.compile(r"^\d{8}-\d{6}$")


def new_release_id(now: datetime | None = None) -> str:
    """Allocate a release id from the local wall clock.

    Example:
        >>> new_release_id(datetime(2025, 2, 19, 12, 0, 0))
        '20250219-120000'
    """
    return (now or datetime.now()).strftime(RELEASE_ID_FORMAT)


def is_release_id(name: str) -> bool:
    """Return True if a directory name looks like a release id."""
    return bool(RELEASE_ID_PATTERN.match(name))


@dataclass(frozen=True)
class Release:
    """A timestamped release directory on one host.

    Attributes:
        id: Release id (``YYYYMMDD-HHMMSS``)
        host: Address of the host the release lives on
        exists: Whether the directory is present on disk
    """

    id: str
    host: str
    exists: bool = True


class HealthState(str, Enum):
    """Outcome of a single health probe loop."""

    STARTING = "starting"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    TIMED_OUT = "timed-out"


class DeployStep(str, Enum):
    """Steps of the per-host deploy protocol, in order."""

    INIT = "init"
    SYNC = "sync"
    CONFIGURE_ROUTING = "configure_routing"
    MATERIALIZE_ENV = "materialize_env"
    BUILD = "build"
    START = "start"
    VERIFY = "verify"
    CUTOVER = "cutover"
    PROMOTE = "promote"
    PERSIST = "persist"
    CLEANUP = "cleanup"
    DONE = "done"
    FAILED = "failed"

    @property
    def number(self) -> int:
        """1-based position of the step in the protocol."""
        return list(DeployStep).index(self) + 1

    @property
    def before_cutover(self) -> bool:
        """Whether a failure at this step leaves the previous release serving."""
        return self.number < DeployStep.CUTOVER.number


DEPLOY_STEP_TOTAL = DeployStep.DONE.number


class LockRecord(BaseModel):
    """Per-host deploy state persisted as ``shipit.lock``."""

    model_config = ConfigDict(extra="forbid")

    current_release: str = Field(..., description="Release serving traffic")
    previous_release: str | None = Field(
        default=None, description="Release that served before the current one"
    )
    git_sha: str = Field(..., description="Commit deployed in the current release")
    secrets_hash: str | None = Field(
        default=None, description="SHA-256 of the encrypted secrets bundle"
    )
    deployed_at: datetime = Field(..., description="Time of the last write")

    @classmethod
    def create(
        cls,
        current: str,
        previous: str | None,
        git_sha: str,
        secrets_hash: str | None,
    ) -> LockRecord:
        """Build a record stamped with the current local time."""
        return cls(
            current_release=current,
            previous_release=previous,
            git_sha=git_sha,
            secrets_hash=secrets_hash,
            deployed_at=datetime.now().astimezone(),
        )
