"""Image Transfer Pipeline for local builds.

Services with build directives are discovered from the local compose
definition, built with the Docker SDK, and streamed to each host as one
``docker save`` archive piped into ``docker load``. No registry is involved.
"""

from __future__ import annotations

import json
import subprocess  # nosec B404
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import IO, Any

import docker
from docker.errors import BuildError, DockerException

from shipit.deploy.compose import ImageService
from shipit.deploy.context import DeployContext
from shipit.lib.errors import DockerNotAvailableError, ImageBuildError
from shipit.lib.logging_config import get_logger
from shipit.remote.executor import RemoteExecutor

logger = get_logger(__name__)

CHUNK_SIZE = 1024 * 1024


@dataclass
class BuildSpec:
    """Build directive of one compose service, as resolved by compose."""

    service: str
    image: str
    context: str
    dockerfile: str = "Dockerfile"
    args: dict[str, str] = field(default_factory=dict)
    target: str | None = None

    @classmethod
    def from_compose(cls, service: str, image: str, build: Any) -> BuildSpec:
        """Create a spec from the ``build`` entry of ``docker compose config``."""
        if isinstance(build, str):
            return cls(service=service, image=image, context=build)
        args = build.get("args") or {}
        return cls(
            service=service,
            image=image,
            context=build.get("context", "."),
            dockerfile=build.get("dockerfile") or "Dockerfile",
            args={key: str(value) for key, value in args.items() if value is not None},
            target=build.get("target"),
        )


@dataclass
class BuildResult:
    """Result of a local image build.

    Attributes:
        service: Compose service the image belongs to
        image_id: The SHA256 ID of the built image
        full_name: Full image reference (name:tag)
        log_lines: Build log output lines
    """

    service: str
    image_id: str
    full_name: str
    log_lines: list[str] = field(default_factory=list)


def discover_build_specs(context: DeployContext) -> list[BuildSpec]:
    """List services with build directives in the local compose definition.

    Raises:
        ImageBuildError: If ``docker compose config`` fails or has no services
    """
    try:
        result = subprocess.run(  # noqa: S603  # nosec B603 B607
            ["docker", "compose", "config", "--format", "json"],  # noqa: S607
            cwd=context.project_root,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError as exc:
        raise DockerNotAvailableError(operation="discover") from exc

    if result.returncode != 0:
        raise ImageBuildError(f"docker compose config failed: {result.stderr.strip()}")

    try:
        config = json.loads(result.stdout)
    except json.JSONDecodeError as exc:
        raise ImageBuildError(f"Failed to parse compose config JSON: {exc}") from exc

    services = config.get("services")
    if not isinstance(services, dict):
        raise ImageBuildError("No 'services' found in compose config")

    return [
        BuildSpec.from_compose(name, context.image_name_for(name), service["build"])
        for name, service in sorted(services.items())
        if isinstance(service, dict) and service.get("build")
    ]


class ImageBuilder:
    """Builds service images with the local Docker daemon."""

    def __init__(self) -> None:
        """Connect to the Docker daemon using the environment configuration.

        Raises:
            DockerNotAvailableError: If Docker daemon is not available
        """
        try:
            self.client = docker.from_env()  # type: ignore[attr-defined]
        except DockerException as e:
            raise DockerNotAvailableError(operation="init") from e

    def build(self, spec: BuildSpec, platform: str | None = None) -> BuildResult:
        """Build and tag the image of one service.

        Raises:
            ImageBuildError: If the build fails
        """
        build_kwargs: dict[str, Any] = {
            "path": spec.context,
            "dockerfile": spec.dockerfile,
            "tag": spec.image,
            "buildargs": spec.args,
            "rm": True,
        }
        if spec.target:
            build_kwargs["target"] = spec.target
        if platform:
            build_kwargs["platform"] = platform

        try:
            image, build_logs = self.client.images.build(**build_kwargs)
        except BuildError as e:
            raise ImageBuildError(
                f"Docker build of '{spec.service}' failed: {e.msg}"
            ) from e
        except DockerException as e:
            raise ImageBuildError(
                f"Docker error while building '{spec.service}': {e}"
            ) from e

        log_lines: list[str] = []
        for log_entry in build_logs:
            if isinstance(log_entry, dict):
                if "stream" in log_entry:
                    stream_val = log_entry["stream"]
                    if isinstance(stream_val, str):
                        log_lines.append(stream_val.rstrip("\n"))
                elif "error" in log_entry:
                    log_lines.append(f"ERROR: {log_entry['error']}")

        return BuildResult(
            service=spec.service,
            image_id=image.id or "",
            full_name=spec.image,
            log_lines=log_lines,
        )


def _read_chunks(stream: IO[bytes]) -> Iterator[bytes]:
    while chunk := stream.read(CHUNK_SIZE):
        yield chunk


class ImageTransferPipeline:
    """Builds images once per stage and streams them to each host."""

    def __init__(
        self,
        context: DeployContext,
        *,
        builder_factory: Callable[[], ImageBuilder] = ImageBuilder,
        discover: Callable[[DeployContext], list[BuildSpec]] = discover_build_specs,
    ) -> None:
        self.context = context
        self._builder_factory = builder_factory
        self._discover = discover
        self.results: list[BuildResult] = []
        self._prepared = False

    @property
    def prepared(self) -> bool:
        return self._prepared

    @property
    def image_services(self) -> list[ImageService]:
        """Services and tags that the compose override must reference."""
        return [
            ImageService(name=result.service, image=result.full_name)
            for result in self.results
        ]

    def prepare(self) -> list[ImageService]:
        """Discover and build all images locally, before any host is touched.

        Raises:
            ImageBuildError: If discovery or any build fails
        """
        if self._prepared:
            return self.image_services

        specs = self._discover(self.context)
        if not specs:
            logger.info("No services with build directives found")
            self._prepared = True
            return []

        builder = self._builder_factory()
        platform = self.context.config.deploy.platform
        for spec in specs:
            logger.info(f"Building {spec.service} as {spec.image}")
            result = builder.build(spec, platform=platform)
            for line in result.log_lines:
                if line.strip():
                    logger.debug(f"  {line}")
            self.results.append(result)

        self._prepared = True
        return self.image_services

    def transfer(self, executor: RemoteExecutor) -> None:
        """Stream every built image to the host in one archive.

        Raises:
            ImageBuildError: If saving or loading the archive fails
        """
        if not self._prepared:
            self.prepare()
        if not self.results:
            return

        images = [result.full_name for result in self.results]
        logger.info(f"[{executor.host}] Transferring {len(images)} image(s)")

        save = subprocess.Popen(  # noqa: S603  # nosec B603 B607
            ["docker", "save", *images],  # noqa: S607
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
        assert save.stdout is not None
        try:
            load = executor.pipe(["docker", "load"], _read_chunks(save.stdout))
        finally:
            save.stdout.close()
            save_stderr = save.stderr.read().decode() if save.stderr else ""
            save.wait()

        if save.returncode != 0:
            raise ImageBuildError(f"docker save failed: {save_stderr.strip()}")
        if not load.ok:
            raise ImageBuildError(
                f"Image transfer to {executor.host} failed: {load.stderr.strip()}"
            )
        logger.debug(f"[{executor.host}] {load.stdout.strip()}")
