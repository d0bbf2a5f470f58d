"""Remote host access: command execution, files and container engine."""

from shipit.remote.engine import ComposeEngine, ContainerEngine
from shipit.remote.executor import CommandResult, RemoteExecutor

__all__ = ["CommandResult", "ComposeEngine", "ContainerEngine", "RemoteExecutor"]
