"""Tests for fanning stage operations out across hosts."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from shipit.deploy.context import DeployContext
from shipit.deploy.coordinator import StageCoordinator
from shipit.deploy.lock import LockStore
from shipit.deploy.transfer import ImageTransferPipeline
from shipit.lib.errors import (
    ConfigError,
    HealthCheckError,
    ImageBuildError,
    NoCurrentReleaseError,
)
from shipit.models.release import DeployStep

OLD = "20250218-090000"
OLDER = "20250217-090000"


class FakeStage:
    """Per-host fake executors and engines for a two-host stage."""

    def __init__(self, make_executor, engine_cls) -> None:
        self.executors = {host: make_executor(host) for host in ("host-a", "host-b")}
        self.engines = {host: engine_cls() for host in self.executors}

    def executor(self, host: str):
        return self.executors[host]

    def engine(self, executor):
        return self.engines[executor.host]


@pytest.fixture
def stage(make_executor, engine):
    return FakeStage(make_executor, type(engine))


@pytest.fixture
def coordinator(context, stage, make_prober):
    def factory(context: DeployContext = context, **kwargs) -> StageCoordinator:
        return StageCoordinator(
            context,
            executor_factory=stage.executor,
            engine_factory=stage.engine,
            prober_factory=make_prober,
            push=lambda ctx, host: None,
            **kwargs,
        )

    return factory


class TestStageDeploy:
    """Tests for StageCoordinator.deploy()."""

    def test_all_hosts_succeed(self, coordinator, context, stage) -> None:
        """Every host gets the same release id."""
        result = coordinator().deploy()

        assert result.ok
        assert [r.host for r in result.results] == ["host-a", "host-b"]
        for host, executor in stage.executors.items():
            lock = LockStore(executor, context.layout.lock_path).read()
            assert lock is not None
            assert lock.current_release == context.release_id
            assert result.for_host(host).step == DeployStep.DONE

    def test_partial_failure(self, coordinator, context, stage) -> None:
        """A failing host does not affect the other one."""
        stage.engines["host-a"].health = ["unhealthy"]

        result = coordinator().deploy()

        assert not result.ok
        failed = result.for_host("host-a")
        assert not failed.ok
        assert failed.step == DeployStep.VERIFY
        assert isinstance(failed.error, HealthCheckError)
        assert failed.message

        succeeded = result.for_host("host-b")
        assert succeeded.ok
        assert succeeded.release_id == context.release_id
        assert result.succeeded == [succeeded]
        assert result.failed == [failed]

        layout = context.layout
        assert not stage.executors["host-a"].exists(layout.lock_path)
        assert stage.executors["host-b"].exists(layout.lock_path)

    def test_unreachable_host(self, coordinator, context, stage) -> None:
        """An executor that cannot connect is reported at init."""
        executor = stage.executors["host-b"]
        executor.connect = MagicMock(side_effect=ConnectionError("refused"))

        result = coordinator().deploy()

        assert result.for_host("host-a").ok
        failed = result.for_host("host-b")
        assert failed.step == DeployStep.INIT
        assert "refused" in failed.message

    def test_local_build_failure_fails_every_host(
        self, coordinator, config_factory, project_root, stage
    ) -> None:
        """A failed local build touches no host."""
        context = DeployContext.for_stage(
            config_factory(build="local"), "production", project_root
        )
        pipeline = MagicMock(spec=ImageTransferPipeline)
        pipeline.prepare.side_effect = ImageBuildError("COPY failed")

        result = coordinator(context, pipeline=pipeline).deploy()

        assert not result.ok
        assert [r.step for r in result.results] == [DeployStep.BUILD] * 2
        for executor in stage.executors.values():
            assert executor.commands == []

    def test_local_build_prepared_once(
        self, coordinator, config_factory, project_root, stage
    ) -> None:
        """Images are built once and transferred to each host."""
        context = DeployContext.for_stage(
            config_factory(build="local"), "production", project_root
        )
        pipeline = MagicMock(spec=ImageTransferPipeline)
        pipeline.image_services = []

        result = coordinator(context, pipeline=pipeline).deploy()

        assert result.ok
        pipeline.prepare.assert_called_once()
        assert pipeline.transfer.call_count == 2


class TestStageRollback:
    """Tests for StageCoordinator.rollback()."""

    def test_rollback_each_host(
        self, coordinator, context, stage, seed, lock_writer
    ) -> None:
        """Each host returns to its own previous release."""
        layout = context.layout
        for executor in stage.executors.values():
            seed(executor, layout, OLDER)
            seed(executor, layout, OLD, current=True)
            lock_writer(executor, layout, current=OLD, previous=OLDER)
        stage.executors["host-b"].remove_tree(layout.release_path(OLDER))

        result = coordinator().rollback()

        assert result.operation == "rollback"
        assert result.for_host("host-a").ok
        assert result.for_host("host-a").release_id == OLDER
        assert not result.for_host("host-b").ok
        assert "not found" in result.for_host("host-b").message


class TestListReleases:
    """Tests for StageCoordinator.list_releases()."""

    def test_lists_each_host(self, coordinator, context, stage, seed) -> None:
        """Each host reports its releases and the current one."""
        layout = context.layout
        executor = stage.executors["host-a"]
        seed(executor, layout, OLDER)
        seed(executor, layout, OLD, current=True)

        listing = coordinator().list_releases()

        host_a, host_b = listing
        assert [r.id for r in host_a.releases] == [OLD, OLDER]
        assert host_a.current == OLD
        assert host_b.releases == []
        assert host_b.current is None
        assert host_b.error is None


class TestCurrentReleaseCommands:
    """Tests for logs and one-off commands against the current release."""

    def test_logs_from_first_host(self, coordinator, context, stage, seed) -> None:
        """Logs come from the first host's current release by default."""
        path = seed(stage.executors["host-a"], context.layout, OLD, current=True)

        host, output = coordinator().logs(service="web", lines=20)

        assert host == "host-a"
        assert output == f"web 20 {OLD}\n"
        assert stage.engines["host-a"].events == [("logs", path)]
        assert stage.engines["host-b"].events == []

    def test_run_command_on_named_host(
        self, coordinator, context, stage, seed
    ) -> None:
        """A one-off command runs in the web service of the chosen host."""
        path = seed(stage.executors["host-b"], context.layout, OLD, current=True)

        host, result = coordinator().run_command(["bin/rails", "db:migrate"], "host-b")

        assert host == "host-b"
        assert result.stdout == "web: bin/rails db:migrate\n"
        assert stage.engines["host-b"].events == [("exec", path)]

    def test_without_current_release(self, coordinator, stage) -> None:
        """A host that was never deployed to is reported."""
        with pytest.raises(NoCurrentReleaseError, match="Deploy first"):
            coordinator().logs()
        assert stage.engines["host-a"].events == []

    def test_unknown_host(self, coordinator) -> None:
        """Hosts outside the stage are refused."""
        with pytest.raises(ConfigError, match="not part of stage"):
            coordinator().run_command(["true"], "10.9.9.9")
