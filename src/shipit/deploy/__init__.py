"""shipit release orchestration engine.

This package provides the per-host deploy and rollback protocols, the
release directory and lock record management they build on, and the stage
coordinator that runs them across hosts.
"""

from shipit.deploy.context import DeployContext, RemoteLayout
from shipit.deploy.coordinator import (
    HostReleases,
    HostResult,
    StageCoordinator,
    StageResult,
)
from shipit.deploy.orchestrator import DeployOrchestrator, DeployReport
from shipit.deploy.rollback import RollbackOrchestrator, RollbackReport

__all__ = [
    "DeployContext",
    "DeployOrchestrator",
    "DeployReport",
    "HostReleases",
    "HostResult",
    "RemoteLayout",
    "RollbackOrchestrator",
    "RollbackReport",
    "StageCoordinator",
    "StageResult",
]
