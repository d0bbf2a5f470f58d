"""Tests for configuration models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from shipit.models.config import (
    AppConfig,
    BuildMode,
    DeployConfig,
    HealthCheckConfig,
    ShipitConfig,
    StageConfig,
    TraefikConfig,
)


class TestAppConfig:
    """Tests for AppConfig."""

    @pytest.mark.parametrize("name", ["myapp", "my-app", "app_2", "0day"])
    def test_valid_names(self, name: str) -> None:
        """Lowercase names with dashes and underscores are accepted."""
        assert AppConfig(name=name, repository="repo").name == name

    @pytest.mark.parametrize("name", ["MyApp", "-app", "my app", "app/x", ""])
    def test_invalid_names(self, name: str) -> None:
        """Names unusable in paths or image tags are rejected."""
        with pytest.raises(ValidationError):
            AppConfig(name=name, repository="repo")


class TestDeployConfig:
    """Tests for DeployConfig defaults and validation."""

    def test_defaults(self) -> None:
        """Defaults describe a remote build with a 60s health budget."""
        config = DeployConfig()
        assert config.deploy_to == "/var/deploy"
        assert config.keep_releases == 5
        assert config.build == BuildMode.REMOTE
        assert config.web_service == "web"
        assert config.health_check == HealthCheckConfig()
        assert config.health_check.timeout == 60
        assert config.health_check.interval == 2

    def test_deploy_to_must_be_absolute(self) -> None:
        """A relative deploy_to is rejected."""
        with pytest.raises(ValidationError, match="absolute"):
            DeployConfig(deploy_to="srv/apps")

    def test_trailing_slash_stripped(self) -> None:
        """Trailing slashes do not leak into remote paths."""
        assert DeployConfig(deploy_to="/srv/apps/").deploy_to == "/srv/apps"

    def test_keep_releases_at_least_one(self) -> None:
        """Retention below one is rejected."""
        with pytest.raises(ValidationError):
            DeployConfig(keep_releases=0)


class TestStageConfig:
    """Tests for StageConfig."""

    def test_requires_hosts(self) -> None:
        """A stage without hosts is invalid."""
        with pytest.raises(ValidationError, match="no hosts"):
            StageConfig(hosts=[])

    def test_rejects_duplicate_hosts(self) -> None:
        """Duplicate addresses would race on the same host."""
        with pytest.raises(ValidationError, match="duplicate"):
            StageConfig.model_validate(
                {"hosts": [{"address": "a"}, {"address": "a"}]}
            )

    def test_tls_requires_acme_email(self) -> None:
        """TLS routing needs an ACME account."""
        with pytest.raises(ValidationError, match="acme_email"):
            TraefikConfig(domain="example.com", tls=True)


class TestShipitConfig:
    """Tests for the top-level model."""

    def test_app_path_and_build_mode(self) -> None:
        """app_path joins deploy_to and the app name."""
        config = ShipitConfig.model_validate(
            {
                "app": {"name": "myapp", "repository": "repo"},
                "deploy": {"deploy_to": "/srv", "build": "local"},
            }
        )
        assert config.app_path == "/srv/myapp"
        assert config.is_local_build is True
