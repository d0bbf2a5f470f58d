"""Fixtures for CLI tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

CONFIG = """
app:
  name: myapp
  repository: git@github.com:acme/myapp.git

stages:
  production:
    hosts:
      - address: 10.0.0.5
      - address: 10.0.0.6
"""


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI runner."""
    return CliRunner()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Create a temporary shipit.yaml with a two-host production stage."""
    path = tmp_path / "shipit.yaml"
    path.write_text(CONFIG, encoding="utf-8")
    return path
