"""Unit tests for the csi-sanity CLI."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from csi_sanity.config import ENV_VARS
from csi_sanity.errors import ErrorKind, TransportFailure
from csi_sanity.main import cli
from tests.mocks import FakePlugin, FakePluginState


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for env in ENV_VARS.values():
        monkeypatch.delenv(env, raising=False)
    with patch("csi_sanity.config.get_config_path", return_value=tmp_path / "absent.yaml"):
        yield


@pytest.fixture
def runner():
    """Create CLI runner."""
    return CliRunner()


@pytest.fixture
def mount_args(tmp_path):
    return [
        "--target-path",
        str(tmp_path / "target"),
        "--staging-path",
        str(tmp_path / "staging"),
    ]


@pytest.fixture
def plugin_state():
    return FakePluginState()


@pytest.fixture
def dial(plugin_state):
    """Patch the gRPC dial to hand out the in-memory plugin."""
    plugin = FakePlugin(plugin_state)
    with patch("csi_sanity.commands.run.GrpcTransport.dial", return_value=plugin) as mock_dial:
        yield mock_dial


@pytest.mark.cli_unit
class TestVersionAndList:
    """Tests for csi-sanity version and list."""

    def test_version(self, runner):
        result = runner.invoke(cli, ["version"])

        assert result.exit_code == 0
        assert "csi-sanity version" in result.output

    def test_list(self, runner):
        result = runner.invoke(cli, ["list"])

        assert result.exit_code == 0
        assert "sanity-node-full" in result.output
        assert "node.stats.wrong-path" in result.output
        assert "node_volume_stats_supported" in result.output

    def test_list_filtered(self, runner):
        result = runner.invoke(cli, ["list", "-k", "node.unpublish.*"])

        assert result.exit_code == 0
        assert len(result.output.strip().splitlines()) == 2


@pytest.mark.cli_unit
class TestRunCommand:
    """Tests for csi-sanity run."""

    def test_run_passes(self, runner, dial, mount_args):
        result = runner.invoke(cli, ["run", "--endpoint", "/tmp/csi.sock", *mount_args])

        assert result.exit_code == 0, result.output
        assert "17 passed, 0 failed, 0 skipped" in result.output
        dial.assert_called_once_with("/tmp/csi.sock", "csi_pb2", 30.0)

    def test_run_json(self, runner, dial, mount_args):
        result = runner.invoke(
            cli, ["run", "--endpoint", "/tmp/csi.sock", "--json", "-k", "node.publish.*", *mount_args]
        )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["total"] == 3
        assert data["passed"] == 3
        assert {r["status"] for r in data["results"]} == {"passed"}

    def test_run_failure_exit_code(self, runner, dial, plugin_state, mount_args):
        plugin_state.failures["NodeGetInfo"] = ErrorKind.INTERNAL

        result = runner.invoke(
            cli, ["run", "--endpoint", "/tmp/csi.sock", "-k", "node.get-info", *mount_args]
        )

        assert result.exit_code == 1
        assert "0 passed, 1 failed, 0 skipped" in result.output

    def test_endpoint_from_env(self, runner, dial, mount_args, monkeypatch):
        monkeypatch.setenv("CSI_ENDPOINT", "localhost:10000")

        result = runner.invoke(cli, ["run", "-k", "node.get-info", *mount_args])

        assert result.exit_code == 0
        assert dial.call_args.args[0] == "localhost:10000"

    def test_missing_endpoint(self, runner, mount_args):
        result = runner.invoke(cli, ["run", *mount_args])

        assert result.exit_code == 2
        assert "No plugin endpoint configured" in result.output

    def test_connect_failure(self, runner, mount_args):
        with patch(
            "csi_sanity.commands.run.GrpcTransport.dial",
            side_effect=TransportFailure(call="connect", message="Cannot connect to plugin"),
        ):
            result = runner.invoke(cli, ["run", "--endpoint", "/tmp/csi.sock", *mount_args])

        assert result.exit_code == 2
        assert "Cannot connect to plugin" in result.output

    def test_missing_message_module(self, runner, mount_args):
        result = runner.invoke(
            cli,
            ["run", "--endpoint", "/tmp/csi.sock", "--proto-module", "no_such_csi_pb2", *mount_args],
        )

        assert result.exit_code == 2
        assert "no_such_csi_pb2" in result.output

    def test_bad_secrets_file(self, runner, tmp_path, mount_args):
        secrets = tmp_path / "secrets.yaml"
        secrets.write_text("BogusSecret:\n  a: b\n")

        result = runner.invoke(
            cli,
            ["run", "--endpoint", "/tmp/csi.sock", "--secrets-file", str(secrets), *mount_args],
        )

        assert result.exit_code == 2
        assert "BogusSecret" in result.output

    def test_client_closed_after_run(self, runner, dial, mount_args):
        runner.invoke(cli, ["run", "--endpoint", "/tmp/csi.sock", "-k", "node.get-info", *mount_args])

        assert dial.return_value.closed
