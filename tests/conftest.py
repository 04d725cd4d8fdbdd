"""Shared test fixtures for csi-sanity tests.

This module provides fixtures for driving the harness without a real plugin:
- FakePlugin: in-memory CSI plugin implementing the Transport interface
- client: PluginClient bound to the fake plugin
- sanity_config: configuration pointing at per-test mount directories
- scenario_ctx: a ScenarioContext as the runner would build it
"""

from pathlib import Path

import pytest

from csi_sanity.capabilities import CapabilityFlags
from csi_sanity.client import PluginClient
from csi_sanity.config import SanityConfig
from csi_sanity.context import ScenarioContext
from csi_sanity.naming import IdentifierGenerator
from tests.mocks import FakePlugin, FakePluginState

# =============================================================================
# Fake plugin
# =============================================================================


@pytest.fixture
def fake_state() -> FakePluginState:
    """Fixture providing FakePlugin state for configuration."""
    return FakePluginState()


@pytest.fixture
def fake_plugin(fake_state: FakePluginState) -> FakePlugin:
    """Fixture providing a FakePlugin instance."""
    return FakePlugin(fake_state)


@pytest.fixture
def client(fake_plugin: FakePlugin) -> PluginClient:
    """Fixture providing a PluginClient talking to the fake plugin."""
    return PluginClient(fake_plugin)


# =============================================================================
# Harness configuration and context
# =============================================================================


@pytest.fixture
def mount_root(tmp_path: Path) -> Path:
    return tmp_path / "mounts"


@pytest.fixture
def sanity_config(mount_root: Path) -> SanityConfig:
    """Fixture providing a valid configuration with per-test mount paths."""
    return SanityConfig(
        endpoint="unix:///tmp/fake-csi.sock",
        staging_path=str(mount_root / "staging"),
        target_path=str(mount_root / "target"),
        secrets={"DeleteVolume": {"token": "delete-secret"}},
        test_volume_parameters={"tier": "gold"},
    )


@pytest.fixture
def names() -> IdentifierGenerator:
    return IdentifierGenerator(suffix="TESTRUN1")


@pytest.fixture
def scenario_ctx(
    client: PluginClient, sanity_config: SanityConfig, names: IdentifierGenerator
) -> ScenarioContext:
    """Fixture providing a fresh ScenarioContext."""
    return ScenarioContext.create(client, sanity_config, names)


@pytest.fixture
def all_flags() -> CapabilityFlags:
    return CapabilityFlags(
        controller_publish_supported=True,
        node_stage_supported=True,
        node_volume_stats_supported=True,
    )


@pytest.fixture
def no_flags() -> CapabilityFlags:
    return CapabilityFlags()
