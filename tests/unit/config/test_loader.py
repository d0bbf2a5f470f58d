"""Tests for loading shipit.yaml."""

from __future__ import annotations

from pathlib import Path

import pytest

from shipit.config.loader import ConfigLoader, substitute_env_vars
from shipit.lib.errors import ConfigError
from shipit.models.config import BuildMode

VALID_CONFIG = """
app:
  name: myapp
  repository: git@github.com:acme/myapp.git

deploy:
  keep_releases: 3
  build: local
  health_check:
    path: /up
    port: 3000

stages:
  production:
    user: ${DEPLOY_USER:-deploy}
    hosts:
      - address: 10.0.0.5
      - address: 10.0.0.6
    traefik:
      domain: myapp.example.com
"""


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "shipit.yaml"
    path.write_text(content, encoding="utf-8")
    return path


class TestSubstituteEnvVars:
    """Tests for ${VAR} substitution."""

    def test_substitutes_set_variable(self) -> None:
        """Set variables replace their reference."""
        assert substitute_env_vars("user: ${USER_NAME}", {"USER_NAME": "ops"}) == (
            "user: ops"
        )

    def test_uses_default_when_unset(self) -> None:
        """The default after ':-' applies to unset variables."""
        assert substitute_env_vars("port: ${SSH_PORT:-2222}", {}) == "port: 2222"

    def test_set_variable_wins_over_default(self) -> None:
        """A set variable takes precedence over its default."""
        assert substitute_env_vars("${A:-x}", {"A": "y"}) == "y"

    def test_unset_variable_without_default_raises(self) -> None:
        """An unset variable with no default is a configuration error."""
        with pytest.raises(ConfigError, match="MISSING"):
            substitute_env_vars("key: ${MISSING}", {})


class TestConfigLoader:
    """Tests for ConfigLoader.load()."""

    def test_load_valid_config(self, tmp_path: Path) -> None:
        """A valid file loads with defaults applied."""
        config = ConfigLoader(env={}).load(_write(tmp_path, VALID_CONFIG))

        assert config.app.name == "myapp"
        assert config.app.branch == "main"
        assert config.deploy.build == BuildMode.LOCAL
        assert config.deploy.health_check.path == "/up"
        assert config.deploy.health_check.retries == 15
        assert config.app_path == "/var/deploy/myapp"
        production = config.stage("production")
        assert production.user == "deploy"
        assert [h.address for h in production.hosts] == ["10.0.0.5", "10.0.0.6"]

    def test_load_substitutes_environment(self, tmp_path: Path) -> None:
        """Environment values are substituted before parsing."""
        config = ConfigLoader(env={"DEPLOY_USER": "ops"}).load(
            _write(tmp_path, VALID_CONFIG)
        )
        assert config.stage("production").user == "ops"

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        """A missing configuration file is a ConfigError."""
        with pytest.raises(ConfigError) as exc_info:
            ConfigLoader().load(tmp_path / "shipit.yaml")
        assert exc_info.value.field == "config_file"

    def test_invalid_yaml_raises(self, tmp_path: Path) -> None:
        """Malformed YAML is reported as a parse error."""
        with pytest.raises(ConfigError) as exc_info:
            ConfigLoader().load(_write(tmp_path, "app: [unclosed"))
        assert exc_info.value.field == "yaml_parse"

    def test_non_mapping_raises(self, tmp_path: Path) -> None:
        """A top-level list is rejected."""
        with pytest.raises(ConfigError, match="must be a mapping"):
            ConfigLoader().load(_write(tmp_path, "- one\n- two\n"))

    def test_schema_errors_are_flattened(self, tmp_path: Path) -> None:
        """Schema violations name the offending fields."""
        content = VALID_CONFIG.replace("keep_releases: 3", "keep_releases: 0")
        with pytest.raises(ConfigError) as exc_info:
            ConfigLoader(env={}).load(_write(tmp_path, content))
        assert exc_info.value.field == "schema"
        assert "deploy.keep_releases" in exc_info.value.message

    def test_unknown_keys_rejected(self, tmp_path: Path) -> None:
        """Unknown keys are not silently ignored."""
        content = VALID_CONFIG + "unexpected: true\n"
        with pytest.raises(ConfigError, match="unexpected"):
            ConfigLoader(env={}).load(_write(tmp_path, content))

    def test_unknown_stage_raises(self, tmp_path: Path) -> None:
        """Looking up an unconfigured stage lists the available ones."""
        config = ConfigLoader(env={}).load(_write(tmp_path, VALID_CONFIG))
        with pytest.raises(ConfigError, match="available: production"):
            config.stage("staging")
