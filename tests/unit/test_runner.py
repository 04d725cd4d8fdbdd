"""Unit tests for ScenarioRunner and run_suite."""

from pathlib import Path
from unittest.mock import patch

import pytest
import structlog

from csi_sanity.errors import ErrorKind, ProtocolViolation, ScenarioSkipped
from csi_sanity.lifecycle import VolumeLifecycle
from csi_sanity.naming import IdentifierGenerator
from csi_sanity.runner import (
    HARNESS_ERROR,
    ScenarioRunner,
    ScenarioStatus,
    SuiteReport,
    run_suite,
    select_scenarios,
)
from csi_sanity.scenarios import SCENARIOS, Scenario
from csi_sanity.shared.paths import create_mount_target

pytestmark = [pytest.mark.harness_unit]


def make_scenario(name, body, requires=()):
    return Scenario(name=name, description=name, body=body, requires=tuple(requires))


def passing(ctx, flags):
    pass


def failing(ctx, flags):
    raise ProtocolViolation(call="NodeGetInfo", message="expected Ok, got Internal")


@pytest.fixture
def runner(client, sanity_config, names) -> ScenarioRunner:
    return ScenarioRunner(client, sanity_config, names)


# =============================================================================
# Single scenario
# =============================================================================


class TestRun:
    """Tests for ScenarioRunner.run."""

    def test_passing_scenario(self, runner):
        result = runner.run(make_scenario("ok", passing))

        assert result.status is ScenarioStatus.PASSED
        assert result.passed
        assert result.reason is None
        assert result.teardown_errors == ()
        assert result.duration_ms >= 0

    def test_failing_scenario(self, runner):
        result = runner.run(make_scenario("bad", failing))

        assert result.status is ScenarioStatus.FAILED
        assert result.category == "ProtocolViolation"
        assert result.reason == "NodeGetInfo: expected Ok, got Internal"
        assert result.failure["call"] == "NodeGetInfo"

    def test_unsupported_requirement_skips(self, runner, fake_state):
        fake_state.node_capabilities = []
        called = []

        result = runner.run(
            make_scenario("stage", lambda ctx, flags: called.append(1), ["node_stage_supported"])
        )

        assert result.status is ScenarioStatus.SKIPPED
        assert result.reason == "NodeStageVolume not supported"
        assert called == []

    def test_body_may_skip(self, runner):
        def body(ctx, flags):
            raise ScenarioSkipped("not applicable")

        result = runner.run(make_scenario("skip", body))

        assert result.status is ScenarioStatus.SKIPPED
        assert result.reason == "not applicable"

    def test_unexpected_exception_is_harness_error(self, runner):
        def body(ctx, flags):
            raise KeyError("oops")

        result = runner.run(make_scenario("crash", body))

        assert result.status is ScenarioStatus.FAILED
        assert result.category == HARNESS_ERROR
        assert "KeyError" in result.reason

    def test_probe_failure_fails_scenario(self, runner, fake_state):
        fake_state.failures["NodeGetCapabilities"] = ErrorKind.UNAVAILABLE

        result = runner.run(make_scenario("ok", passing))

        assert result.status is ScenarioStatus.FAILED
        assert result.category == "TransportFailure"

    def test_flags_probed_per_scenario(self, runner, fake_state):
        runner.run(make_scenario("a", passing))
        runner.run(make_scenario("b", passing))

        assert fake_state.methods.count("NodeGetCapabilities") == 2


# =============================================================================
# Teardown
# =============================================================================


class TestTeardown:
    """Tests for cleanup after the body."""

    def test_teardown_after_abort(self, runner, fake_state):
        def body(ctx, flags):
            VolumeLifecycle(ctx, flags).create()
            raise ProtocolViolation(call="NodePublishVolume", message="boom")

        result = runner.run(make_scenario("abort", body))

        assert result.status is ScenarioStatus.FAILED
        assert fake_state.volumes == {}
        assert fake_state.methods[-1] == "DeleteVolume"

    def test_teardown_errors_are_diagnostics(self, runner, fake_state):
        fake_state.failures["DeleteVolume"] = ErrorKind.INTERNAL

        def body(ctx, flags):
            VolumeLifecycle(ctx, flags).create()

        result = runner.run(make_scenario("leak", body))

        assert result.status is ScenarioStatus.PASSED
        assert [e.call for e in result.teardown_errors] == ["DeleteVolume"]

    def test_each_scenario_gets_fresh_tracker(self, runner):
        trackers = []

        def body(ctx, flags):
            trackers.append(ctx.tracker)

        runner.run(make_scenario("a", body))
        runner.run(make_scenario("b", body))

        assert trackers[0] is not trackers[1]

    def test_teardown_logs_under_scenario_context(self, runner, fake_plugin, monkeypatch):
        seen = []
        delete = fake_plugin._DeleteVolume

        def recording_delete(request):
            seen.append(structlog.contextvars.get_contextvars())
            return delete(request)

        monkeypatch.setattr(fake_plugin, "_DeleteVolume", recording_delete)

        def body(ctx, flags):
            VolumeLifecycle(ctx, flags).create()

        runner.run(make_scenario("leak", body))

        assert seen == [{"scenario": "leak", "run_suffix": "TESTRUN1"}]
        assert "scenario" not in structlog.contextvars.get_contextvars()


# =============================================================================
# Mount directories
# =============================================================================


class TestMountDirs:
    """Tests for mount directory preparation."""

    def test_dirs_exist_during_body_and_are_removed(self, runner, sanity_config):
        seen = {}

        def body(ctx, flags):
            seen["target"] = Path(ctx.target_path).is_dir()
            seen["staging"] = Path(ctx.staging_path).is_dir()

        runner.run(make_scenario("dirs", body))

        assert seen == {"target": True, "staging": True}
        assert not Path(sanity_config.target_path).exists()
        assert not Path(sanity_config.staging_path).exists()

    def test_staging_dir_only_when_staging(self, runner, fake_state, sanity_config):
        fake_state.node_capabilities = []
        seen = {}

        def body(ctx, flags):
            seen["staging"] = Path(ctx.staging_path).exists()

        runner.run(make_scenario("dirs", body))

        assert seen == {"staging": False}

    def test_existing_dirs_are_kept(self, runner, sanity_config):
        target = Path(sanity_config.target_path)
        target.mkdir(parents=True)

        runner.run(make_scenario("ok", passing))

        assert target.is_dir()

    def test_disabled(self, runner, sanity_config):
        sanity_config.create_mount_dirs = False
        seen = {}

        def body(ctx, flags):
            seen["target"] = Path(ctx.target_path).exists()

        runner.run(make_scenario("dirs", body))

        assert seen == {"target": False}

    def test_partial_creation_is_removed(self, runner, sanity_config):
        calls = []

        def create_then_fail(path):
            calls.append(path)
            if len(calls) == 2:
                raise PermissionError(f"cannot create {path}")
            return create_mount_target(path)

        with patch("csi_sanity.runner.create_mount_target", side_effect=create_then_fail):
            result = runner.run(make_scenario("dirs", passing))

        assert result.status is ScenarioStatus.FAILED
        assert result.category == HARNESS_ERROR
        assert len(calls) == 2
        assert not Path(sanity_config.target_path).exists()


# =============================================================================
# Suite
# =============================================================================


class TestRunSuite:
    """Tests for run_suite and SuiteReport."""

    def test_failure_does_not_stop_the_run(self, client, sanity_config):
        scenarios = [make_scenario("a", failing), make_scenario("b", passing)]

        report = run_suite(client, sanity_config, scenarios=scenarios)

        assert [r.status for r in report.results] == [ScenarioStatus.FAILED, ScenarioStatus.PASSED]
        assert report.failed == 1
        assert report.passed == 1
        assert not report.success

    def test_filters_and_progress(self, client, sanity_config):
        scenarios = [
            make_scenario("node.publish.x", passing),
            make_scenario("node.stage.x", passing),
        ]
        seen = []

        report = run_suite(
            client,
            sanity_config,
            filter_patterns=["node.publish.*"],
            on_progress=lambda result: seen.append(result.name),
            scenarios=scenarios,
        )

        assert seen == ["node.publish.x"]
        assert report.total == 1
        assert report.success

    def test_run_suffix_reported(self, client, sanity_config):
        report = run_suite(
            client, sanity_config, names=IdentifierGenerator(suffix="RUN42"), scenarios=[]
        )
        assert report.run_suffix == "RUN42"
        assert report.to_dict()["total"] == 0

    def test_report_counts(self):
        report = SuiteReport(results=[])
        assert report.success
        assert report.teardown_failures == 0


class TestSelectScenarios:
    """Tests for select_scenarios."""

    def test_no_patterns_selects_all(self):
        assert select_scenarios() == SCENARIOS

    def test_glob_patterns(self):
        names = [s.name for s in select_scenarios(["node.stats.*"])]
        assert names == [
            "node.stats.missing-volume-id",
            "node.stats.missing-volume-path",
            "node.stats.unknown-volume",
            "node.stats.wrong-path",
        ]

    def test_multiple_patterns(self):
        names = [s.name for s in select_scenarios(["sanity-node-full", "node.get-info"])]
        assert names == ["node.get-info", "sanity-node-full"]
