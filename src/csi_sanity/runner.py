"""Scenario execution.

ScenarioRunner runs one scenario against the plugin:
1. Build a fresh context and tracker
2. Probe capability flags
3. Skip if a required capability is not advertised
4. Prepare mount directories
5. Run the body
6. Tear down whatever is still live, regardless of how the body ended

run_suite runs every selected scenario and aggregates a SuiteReport. A
failure in one scenario never stops the others.
"""

import fnmatch
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from .capabilities import CapabilityFlags, CapabilityRegistry
from .client import PluginClient
from .config import SanityConfig
from .context import ScenarioContext
from .errors import ScenarioFailure, ScenarioSkipped, TeardownError
from .naming import IdentifierGenerator
from .scenarios import SCENARIOS, Scenario
from .shared.logging import get_logger, scenario_context
from .shared.paths import create_mount_target, remove_mount_target

logger = logging.getLogger(__name__)
results_log = get_logger("csi_sanity.results")

HARNESS_ERROR = "HarnessError"


class ScenarioStatus(Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ScenarioResult:
    """Outcome of one scenario."""

    name: str
    status: ScenarioStatus
    duration_ms: float = 0.0
    reason: Optional[str] = None
    category: Optional[str] = None
    failure: Optional[dict[str, Any]] = None
    teardown_errors: tuple[TeardownError, ...] = ()

    @property
    def passed(self) -> bool:
        return self.status is ScenarioStatus.PASSED

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict."""
        result: dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "duration_ms": round(self.duration_ms, 3),
        }
        if self.reason is not None:
            result["reason"] = self.reason
        if self.category is not None:
            result["category"] = self.category
        if self.failure is not None:
            result["failure"] = self.failure
        if self.teardown_errors:
            result["teardown_errors"] = [e.to_dict() for e in self.teardown_errors]
        return result


@dataclass(frozen=True)
class SuiteReport:
    """Aggregate results of a run."""

    results: list[ScenarioResult] = field(default_factory=list)
    run_suffix: str = ""
    duration_ms: float = 0.0

    def _count(self, status: ScenarioStatus) -> int:
        return sum(1 for r in self.results if r.status is status)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def passed(self) -> int:
        return self._count(ScenarioStatus.PASSED)

    @property
    def failed(self) -> int:
        return self._count(ScenarioStatus.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(ScenarioStatus.SKIPPED)

    @property
    def teardown_failures(self) -> int:
        return sum(len(r.teardown_errors) for r in self.results)

    @property
    def success(self) -> bool:
        """Whether no scenario failed."""
        return self.failed == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_suffix": self.run_suffix,
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "skipped": self.skipped,
            "teardown_failures": self.teardown_failures,
            "duration_ms": round(self.duration_ms, 3),
            "results": [r.to_dict() for r in self.results],
        }


class ScenarioRunner:
    """Run scenarios against one plugin connection."""

    def __init__(
        self,
        client: PluginClient,
        config: SanityConfig,
        names: Optional[IdentifierGenerator] = None,
    ):
        """Initialize ScenarioRunner.

        Args:
            client: Connected plugin client
            config: Run configuration (paths, secrets, parameters)
            names: Name generator shared by the run; one is created if omitted
        """
        self.client = client
        self.config = config
        self.names = names or IdentifierGenerator()

    def run(self, scenario: Scenario) -> ScenarioResult:
        """Run one scenario. Never raises for plugin misbehaviour."""
        with scenario_context(scenario.name, self.names.suffix):
            return self._run(scenario)

    def _run(self, scenario: Scenario) -> ScenarioResult:
        started = time.monotonic()
        ctx = ScenarioContext.create(self.client, self.config, self.names)
        created_dirs: list[Path] = []

        status = ScenarioStatus.PASSED
        reason: Optional[str] = None
        category: Optional[str] = None
        failure: Optional[dict[str, Any]] = None

        logger.info(f"Running scenario {scenario.name}")
        try:
            flags = CapabilityRegistry(self.client).probe()
            skip_reason = scenario.missing_requirement(flags)
            if skip_reason:
                raise ScenarioSkipped(skip_reason)
            self._prepare_mount_dirs(flags, created_dirs)
            scenario.body(ctx, flags)
        except ScenarioSkipped as e:
            status = ScenarioStatus.SKIPPED
            reason = e.reason
        except ScenarioFailure as e:
            status = ScenarioStatus.FAILED
            reason = str(e)
            category = e.category
            failure = e.to_dict()
        except Exception as e:
            logger.exception(f"Scenario {scenario.name} raised an unexpected error")
            status = ScenarioStatus.FAILED
            reason = f"{type(e).__name__}: {e}"
            category = HARNESS_ERROR
        finally:
            teardown_errors = ctx.tracker.teardown_all()
            for path in reversed(created_dirs):
                remove_mount_target(path)

        result = ScenarioResult(
            name=scenario.name,
            status=status,
            duration_ms=(time.monotonic() - started) * 1000,
            reason=reason,
            category=category,
            failure=failure,
            teardown_errors=tuple(teardown_errors),
        )
        results_log.info(
            "scenario finished",
            status=result.status.value,
            reason=result.reason,
            teardown_failures=len(result.teardown_errors),
        )
        return result

    def _prepare_mount_dirs(self, flags: CapabilityFlags, created: list[Path]) -> None:
        """Create the mount directories the scenario needs.

        Each directory made here is appended to ``created`` as soon as it
        exists, so a failure part way still leaves it for removal.
        Pre-existing directories are left alone.
        """
        if not self.config.create_mount_dirs:
            return

        paths = [Path(self.config.target_path)]
        if flags.node_stage_supported:
            paths.append(Path(self.config.staging_path))

        for path in paths:
            if not path.exists():
                create_mount_target(path)
                created.append(path)
            elif not path.is_dir():
                raise NotADirectoryError(f"Mount target is not a directory: {path}")


def select_scenarios(
    patterns: Iterable[str] = (), scenarios: Optional[list[Scenario]] = None
) -> list[Scenario]:
    """Scenarios whose name matches any glob pattern (all if no patterns)."""
    catalogue = SCENARIOS if scenarios is None else scenarios
    patterns = list(patterns)
    if not patterns:
        return list(catalogue)
    return [s for s in catalogue if any(fnmatch.fnmatch(s.name, p) for p in patterns)]


def run_suite(
    client: PluginClient,
    config: SanityConfig,
    filter_patterns: Iterable[str] = (),
    on_progress: Optional[Callable[[ScenarioResult], None]] = None,
    names: Optional[IdentifierGenerator] = None,
    scenarios: Optional[list[Scenario]] = None,
) -> SuiteReport:
    """Run the selected scenarios in registration order.

    Args:
        client: Connected plugin client
        config: Run configuration
        filter_patterns: Glob patterns on scenario names
        on_progress: Called with each result as it completes
        names: Name generator for the run
        scenarios: Catalogue to select from (defaults to all registered)

    Returns:
        SuiteReport with one result per selected scenario
    """
    runner = ScenarioRunner(client, config, names)
    started = time.monotonic()

    results: list[ScenarioResult] = []
    for selected in select_scenarios(filter_patterns, scenarios):
        result = runner.run(selected)
        results.append(result)
        if on_progress is not None:
            on_progress(result)

    return SuiteReport(
        results=results,
        run_suffix=runner.names.suffix,
        duration_ms=(time.monotonic() - started) * 1000,
    )
