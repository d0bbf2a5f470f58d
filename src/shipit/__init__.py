"""shipit - push-button Docker Compose deploys to plain virtual machines.

shipit deploys one application to the hosts of a stage over SSH using
timestamped release directories:

- Zero-downtime cutover gated on the container health check
- Rollback to the previous (or any kept) release
- Per-host lock record describing the current and previous release
- Optional local image builds streamed to the hosts without a registry
"""

from shipit.lib.errors import ConfigError, DeploymentError, ShipitError

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ConfigError",
    "DeploymentError",
    "ShipitError",
]
