"""Tests for the hookparty CLI."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import yaml
from click.testing import CliRunner

from hookparty.cli import cli

pytestmark = pytest.mark.unit


@pytest.fixture
def config_file(temp_dir: Path) -> Path:
    path = temp_dir / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "logging": {"log_file": str(temp_dir / "hookparty.log")},
                "input_delivery": {
                    "drop_box_dir": str(temp_dir / "inputs"),
                    "wrapper_handle_path": str(temp_dir / "wrappers" / "{session_id}.json"),
                },
            }
        )
    )
    return path


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def invoke(runner: CliRunner, config_file: Path, *args: str, **kwargs):
    return runner.invoke(cli, ["--config", str(config_file), *args], **kwargs)


class TestSendAndPending:
    def test_send_then_pending(self, runner: CliRunner, config_file: Path, temp_dir: Path):
        result = invoke(runner, config_file, "send", "sess-1", "yes")

        assert result.exit_code == 0, result.output
        assert (temp_dir / "inputs" / "sess-1.input").read_text() == "yes"

        result = invoke(runner, config_file, "pending", "sess-1")
        assert result.exit_code == 0
        assert result.output == "yes\n"
        assert not (temp_dir / "inputs" / "sess-1.input").exists()

    def test_send_from_stdin(self, runner: CliRunner, config_file: Path, temp_dir: Path):
        result = invoke(runner, config_file, "send", "sess-1", "-", input="multi\nline\n")

        assert result.exit_code == 0
        assert (temp_dir / "inputs" / "sess-1.input").read_text() == "multi\nline"

    def test_send_failure_exits_1(self, runner: CliRunner, config_file: Path):
        result = invoke(runner, config_file, "send", "..", "x")
        assert result.exit_code == 1

    def test_pending_nothing_exits_1(self, runner: CliRunner, config_file: Path):
        result = invoke(runner, config_file, "pending", "sess-1")

        assert result.exit_code == 1
        assert result.output == ""

    def test_pending_check_does_not_consume(
        self, runner: CliRunner, config_file: Path, temp_dir: Path
    ):
        assert invoke(runner, config_file, "pending", "--check", "sess-1").exit_code == 1

        invoke(runner, config_file, "send", "sess-1", "hi")

        assert invoke(runner, config_file, "pending", "--check", "sess-1").exit_code == 0
        assert (temp_dir / "inputs" / "sess-1.input").exists()


class TestSweep:
    def test_sweep_reports_count(self, runner: CliRunner, config_file: Path):
        result = invoke(runner, config_file, "sweep")

        assert result.exit_code == 0
        assert "Removed 0 stale input file(s)" in result.output


class TestServe:
    def test_serve_runs_runner(self, runner: CliRunner, config_file: Path):
        with patch("hookparty.cli.daemon.PartyRunner") as mock_runner_cls:
            mock_runner = MagicMock()
            mock_runner_cls.return_value = mock_runner
            with patch("hookparty.cli.daemon.asyncio.run") as mock_run:
                result = invoke(runner, config_file, "serve", "--port", "40123")

        assert result.exit_code == 0, result.output
        assert "127.0.0.1:40123" in result.output
        config = mock_runner_cls.call_args.kwargs["config"]
        assert config.hook_server_port == 40123
        mock_run.assert_called_once_with(mock_runner.run.return_value)

    def test_serve_rejects_bad_port(self, runner: CliRunner, config_file: Path):
        result = invoke(runner, config_file, "serve", "--port", "80")
        assert result.exit_code == 2
