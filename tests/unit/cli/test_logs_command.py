"""Unit tests for the shipit logs CLI command."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

from click.testing import CliRunner

from shipit.cli.main import main
from shipit.lib.errors import NoCurrentReleaseError


class TestLogsCommand:
    """Tests for `shipit logs`."""

    @patch("shipit.cli.commands.logs.setup_logging")
    @patch("shipit.cli.commands.logs.StageCoordinator")
    def test_prints_logs(
        self,
        mock_coordinator: MagicMock,
        mock_setup_logging: MagicMock,
        runner: CliRunner,
        config_file: Path,
    ) -> None:
        """Log output of the chosen service is printed as is."""
        mock_coordinator.return_value.logs.return_value = (
            "10.0.0.5",
            "web-1  | Listening on 0.0.0.0:3000\n",
        )

        result = runner.invoke(
            main,
            [
                "-c",
                str(config_file),
                "logs",
                "-s",
                "production",
                "--service",
                "web",
                "-n",
                "20",
            ],
        )

        assert result.exit_code == 0
        assert "Listening on 0.0.0.0:3000" in result.output
        mock_coordinator.return_value.logs.assert_called_once_with(
            service="web", lines=20, host=None
        )

    @patch("shipit.cli.commands.logs.setup_logging")
    @patch("shipit.cli.commands.logs.StageCoordinator")
    def test_no_current_release_exits_3(
        self,
        mock_coordinator: MagicMock,
        mock_setup_logging: MagicMock,
        runner: CliRunner,
        config_file: Path,
    ) -> None:
        """A host without a current release is a deployment error."""
        mock_coordinator.return_value.logs.side_effect = NoCurrentReleaseError(
            "10.0.0.5"
        )

        result = runner.invoke(
            main, ["-c", str(config_file), "logs", "-s", "production"]
        )

        assert result.exit_code == 3

    def test_lines_must_be_positive(
        self, runner: CliRunner, config_file: Path
    ) -> None:
        """--lines rejects zero."""
        result = runner.invoke(
            main, ["-c", str(config_file), "logs", "-s", "production", "-n", "0"]
        )
        assert result.exit_code == 2
