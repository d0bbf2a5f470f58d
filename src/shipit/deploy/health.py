"""Health Prober.

Polls a container's health signal until it is healthy, unhealthy, or the
retry/time budget runs out.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from shipit.lib.logging_config import get_logger
from shipit.models.config import HealthCheckConfig
from shipit.models.release import HealthState
from shipit.remote.engine import ContainerEngine

logger = get_logger(__name__)


class HealthProber:
    """Runs the health poll loop against one container.

    The sleep and clock functions are injectable so callers (and tests)
    control timing.
    """

    def __init__(
        self,
        engine: ContainerEngine,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.engine = engine
        self._sleep = sleep
        self._clock = clock

    def observe(self, container: str, config: HealthCheckConfig) -> HealthState:
        """Take a single health observation.

        A custom command maps exit code 0 to healthy and anything else to
        unhealthy. Otherwise the engine's health status is used, with a
        missing status treated as still starting.
        """
        if config.cmd:
            if self.engine.run_health_command(container, config.cmd):
                return HealthState.HEALTHY
            return HealthState.UNHEALTHY

        status = self.engine.inspect_health(container)
        if status == "healthy":
            return HealthState.HEALTHY
        if status == "unhealthy":
            return HealthState.UNHEALTHY
        return HealthState.STARTING

    def probe(self, container: str, config: HealthCheckConfig) -> HealthState:
        """Poll until a terminal state or the budget is exhausted.

        Returns ``HEALTHY`` on the first healthy observation. An unhealthy
        report from the engine ends the probe at once. A failing custom
        command is retried at the same cadence and yields ``UNHEALTHY`` if it
        never succeeds. ``TIMED_OUT`` is returned when neither terminal state
        was seen within ``retries`` polls or ``timeout`` seconds.

        Args:
            container: Container id to inspect
            config: Poll cadence and optional custom command

        Returns:
            Terminal health state for this probe
        """
        deadline = self._clock() + config.timeout
        last = HealthState.STARTING

        for attempt in range(1, config.retries + 1):
            last = self.observe(container, config)
            logger.debug(
                f"Health check {container[:12]}: {last.value} "
                f"(attempt {attempt}/{config.retries})"
            )

            if last == HealthState.HEALTHY:
                return last
            if last == HealthState.UNHEALTHY and not config.cmd:
                return last

            if attempt == config.retries:
                break
            if self._clock() + config.interval > deadline:
                logger.debug(f"Health check budget of {config.timeout}s exhausted")
                break
            self._sleep(config.interval)

        if config.cmd and last == HealthState.UNHEALTHY:
            return HealthState.UNHEALTHY
        return HealthState.TIMED_OUT
