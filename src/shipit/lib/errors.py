"""Custom exception hierarchy for shipit configuration and deployments."""


class ShipitError(Exception):
    """Base exception for all shipit errors.

    All shipit-specific exceptions inherit from this class, enabling
    centralized exception handling in the CLI.
    """

    pass


class ConfigError(ShipitError):
    """Exception raised for configuration errors.

    Attributes:
        field: The configuration field that caused the error
        message: Human-readable error message describing the issue
    """

    def __init__(self, field: str, message: str) -> None:
        """Initialize ConfigError with field and message.

        Args:
            field: Configuration field name where error occurred
            message: Descriptive error message
        """
        self.field = field
        self.message = message
        super().__init__(f"Configuration error in '{field}': {message}")


class DeploymentError(ShipitError):
    """Exception raised when a deploy, rollback or listing operation fails.

    Attributes:
        operation: Name of the operation that failed (e.g. "build", "lock")
        message: Human-readable error message
    """

    def __init__(self, operation: str, message: str) -> None:
        """Initialize DeploymentError with operation and message.

        Args:
            operation: Operation that failed
            message: Descriptive error message
        """
        self.operation = operation
        self.message = message
        super().__init__(f"Deployment {operation} failed: {message}")


class TransportError(DeploymentError):
    """Remote shell unreachable or authentication failed for a host."""

    def __init__(self, host: str, message: str) -> None:
        """Create a transport error for a host."""
        self.host = host
        super().__init__(operation="transport", message=f"{host}: {message}")


class RemoteCommandError(DeploymentError):
    """A remote command exited with a nonzero status.

    Attributes:
        host: Host the command ran on
        command: The command line that was executed
        exit_status: Exit code reported by the remote shell
        stdout: Captured standard output
        stderr: Captured standard error
    """

    def __init__(
        self,
        host: str,
        command: str,
        exit_status: int,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        """Create an error describing a failed remote command."""
        self.host = host
        self.command = command
        self.exit_status = exit_status
        self.stdout = stdout
        self.stderr = stderr
        detail = stderr.strip() or stdout.strip() or "no output"
        super().__init__(
            operation="command",
            message=f"'{command}' exited with {exit_status} on {host}: {detail}",
        )


class ReleaseDirectoryError(DeploymentError):
    """The releases directory on a host could not be written."""

    def __init__(self, path: str, message: str) -> None:
        """Create an error for a release directory path."""
        self.path = path
        super().__init__(operation="release", message=f"{path}: {message}")


class ImageBuildError(DeploymentError):
    """A local or remote image build failed."""

    def __init__(self, message: str) -> None:
        """Create a build error."""
        super().__init__(operation="build", message=message)


class DockerNotAvailableError(ImageBuildError):
    """The local Docker daemon is not reachable for local builds."""

    def __init__(self, operation: str = "build") -> None:
        """Create an error explaining how to start Docker."""
        self.docker_operation = operation
        super().__init__(
            "Docker daemon is not available. "
            "Ensure Docker is installed and running: docker info"
        )


class HealthCheckError(DeploymentError):
    """The new release did not become healthy.

    Attributes:
        state: Terminal health state observed (unhealthy or timed-out)
    """

    def __init__(self, state: str, message: str) -> None:
        """Create a health check error for the observed state."""
        self.state = state
        super().__init__(operation="health_check", message=message)


class RollbackHealthError(HealthCheckError):
    """The rollback target did not become healthy; manual intervention needed."""

    pass


class LockCorruptionError(DeploymentError):
    """The lock record on a host is unreadable or malformed."""

    def __init__(self, path: str, message: str) -> None:
        """Create an error for a corrupt lock record."""
        self.path = path
        super().__init__(operation="lock", message=f"{path}: {message}")


class NoRollbackTargetError(DeploymentError):
    """No previous release is known, or its directory is gone."""

    def __init__(self, message: str) -> None:
        """Create an error for a missing rollback target."""
        super().__init__(operation="rollback", message=message)


class PruneError(DeploymentError):
    """Removing an old release failed. Logged, never fatal."""

    def __init__(self, release_id: str, message: str) -> None:
        """Create an error for a release that could not be pruned."""
        self.release_id = release_id
        super().__init__(operation="prune", message=f"{release_id}: {message}")


class SecretsError(DeploymentError):
    """Encrypted secrets could not be read or decrypted."""

    def __init__(self, message: str) -> None:
        """Create a secrets error."""
        super().__init__(operation="secrets", message=message)


class NoCurrentReleaseError(DeploymentError):
    """A host has no ``current`` release to operate on."""

    def __init__(self, host: str) -> None:
        """Create an error for a host that has never been deployed to."""
        self.host = host
        super().__init__(
            operation="current",
            message=f"No current release on {host}. Deploy first.",
        )
