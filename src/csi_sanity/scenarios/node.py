"""Node service scenarios.

Negative checks send requests that omit a required field and expect the
plugin to reject them with the documented status. The lifecycle scenarios
provision real volumes and leave cleanup of anything still live to the
scenario's tracker.
"""

from typing import TYPE_CHECKING

from ..assertions import expect_error, expect_success
from ..capabilities import CapabilityFlags, validate_node_capabilities
from ..client import single_node_writer_capability
from ..errors import ContractViolation, ErrorKind
from ..lifecycle import LifecycleState, VolumeLifecycle
from .registry import scenario

if TYPE_CHECKING:
    from ..context import ScenarioContext

# Placeholder id and path for requests that must never reach a real volume
PLACEHOLDER_VOLUME_ID = "id"
PLACEHOLDER_PATH = "some/path"

# Publish context sent with the stage requests that omit a required field
MOCK_DEVICE_CONTEXT = {"device": "/dev/mock"}

STAGE = ("node_stage_supported",)
STATS = ("node_volume_stats_supported",)


# -----------------------------------------------------------------------------
# Capabilities and node info
# -----------------------------------------------------------------------------


@scenario("node.get-capabilities")
def node_get_capabilities(ctx: "ScenarioContext", flags: CapabilityFlags) -> None:
    """Node advertises only known capability types."""
    validate_node_capabilities(ctx.client.node_get_capabilities())


@scenario("node.get-info")
def node_get_info(ctx: "ScenarioContext", flags: CapabilityFlags) -> None:
    """NodeGetInfo returns a node id and a sane volume limit."""
    outcome = expect_success(
        ctx.client.node_get_info(),
        non_empty=["node_id"],
        non_negative=["max_volumes_per_node"],
    )
    if flags.accessibility_constraint_supported and outcome.get("accessible_topology") is None:
        raise ContractViolation(
            call=outcome.method,
            message="accessible_topology missing although accessibility constraints are advertised",
            expected="accessible_topology",
            actual="None",
        )


# -----------------------------------------------------------------------------
# NodePublishVolume / NodeUnpublishVolume
# -----------------------------------------------------------------------------


@scenario("node.publish.missing-volume-id")
def publish_missing_volume_id(ctx: "ScenarioContext", flags: CapabilityFlags) -> None:
    """NodePublishVolume without a volume id is rejected."""
    outcome = ctx.client.node_publish_volume({"secrets": ctx.secrets_for("NodePublishVolume")})
    expect_error(outcome, ErrorKind.INVALID_ARGUMENT)


@scenario("node.publish.missing-target-path")
def publish_missing_target_path(ctx: "ScenarioContext", flags: CapabilityFlags) -> None:
    """NodePublishVolume without a target path is rejected."""
    outcome = ctx.client.node_publish_volume(
        {
            "volume_id": PLACEHOLDER_VOLUME_ID,
            "secrets": ctx.secrets_for("NodePublishVolume"),
        }
    )
    expect_error(outcome, ErrorKind.INVALID_ARGUMENT)


@scenario("node.publish.missing-volume-capability")
def publish_missing_volume_capability(ctx: "ScenarioContext", flags: CapabilityFlags) -> None:
    """NodePublishVolume without a volume capability is rejected."""
    outcome = ctx.client.node_publish_volume(
        {
            "volume_id": PLACEHOLDER_VOLUME_ID,
            "target_path": ctx.target_path,
            "secrets": ctx.secrets_for("NodePublishVolume"),
        }
    )
    expect_error(outcome, ErrorKind.INVALID_ARGUMENT)


@scenario("node.unpublish.missing-volume-id")
def unpublish_missing_volume_id(ctx: "ScenarioContext", flags: CapabilityFlags) -> None:
    """NodeUnpublishVolume without a volume id is rejected."""
    expect_error(ctx.client.node_unpublish_volume({}), ErrorKind.INVALID_ARGUMENT)


@scenario("node.unpublish.missing-target-path")
def unpublish_missing_target_path(ctx: "ScenarioContext", flags: CapabilityFlags) -> None:
    """NodeUnpublishVolume without a target path is rejected."""
    outcome = ctx.client.node_unpublish_volume({"volume_id": PLACEHOLDER_VOLUME_ID})
    expect_error(outcome, ErrorKind.INVALID_ARGUMENT)


# -----------------------------------------------------------------------------
# NodeStageVolume / NodeUnstageVolume
# -----------------------------------------------------------------------------


@scenario("node.stage.missing-volume-id", requires=STAGE)
def stage_missing_volume_id(ctx: "ScenarioContext", flags: CapabilityFlags) -> None:
    """NodeStageVolume without a volume id is rejected."""
    outcome = ctx.client.node_stage_volume(
        {
            "staging_target_path": ctx.staging_path,
            "volume_capability": single_node_writer_capability(),
            "publish_context": dict(MOCK_DEVICE_CONTEXT),
            "secrets": ctx.secrets_for("NodeStageVolume"),
        }
    )
    expect_error(outcome, ErrorKind.INVALID_ARGUMENT)


@scenario("node.stage.missing-staging-path", requires=STAGE)
def stage_missing_staging_path(ctx: "ScenarioContext", flags: CapabilityFlags) -> None:
    """NodeStageVolume without a staging path is rejected."""
    outcome = ctx.client.node_stage_volume(
        {
            "volume_id": PLACEHOLDER_VOLUME_ID,
            "volume_capability": single_node_writer_capability(),
            "publish_context": dict(MOCK_DEVICE_CONTEXT),
            "secrets": ctx.secrets_for("NodeStageVolume"),
        }
    )
    expect_error(outcome, ErrorKind.INVALID_ARGUMENT)


@scenario("node.stage.missing-volume-capability", requires=STAGE)
def stage_missing_volume_capability(ctx: "ScenarioContext", flags: CapabilityFlags) -> None:
    """NodeStageVolume on a real volume without a capability is rejected."""
    lifecycle = VolumeLifecycle(ctx, flags, name_prefix="sanity-node-stage-nocaps")
    handle = lifecycle.create()

    outcome = ctx.client.node_stage_volume(
        {
            "volume_id": handle.volume_id,
            "staging_target_path": ctx.staging_path,
            "publish_context": dict(MOCK_DEVICE_CONTEXT),
            "secrets": ctx.secrets_for("NodeStageVolume"),
        }
    )
    expect_error(outcome, ErrorKind.INVALID_ARGUMENT)

    lifecycle.delete()


@scenario("node.unstage.missing-volume-id", requires=STAGE)
def unstage_missing_volume_id(ctx: "ScenarioContext", flags: CapabilityFlags) -> None:
    """NodeUnstageVolume without a volume id is rejected."""
    outcome = ctx.client.node_unstage_volume({"staging_target_path": ctx.staging_path})
    expect_error(outcome, ErrorKind.INVALID_ARGUMENT)


@scenario("node.unstage.missing-staging-path", requires=STAGE)
def unstage_missing_staging_path(ctx: "ScenarioContext", flags: CapabilityFlags) -> None:
    """NodeUnstageVolume without a staging path is rejected."""
    outcome = ctx.client.node_unstage_volume({"volume_id": PLACEHOLDER_VOLUME_ID})
    expect_error(outcome, ErrorKind.INVALID_ARGUMENT)


# -----------------------------------------------------------------------------
# NodeGetVolumeStats
# -----------------------------------------------------------------------------


@scenario("node.stats.missing-volume-id", requires=STATS)
def stats_missing_volume_id(ctx: "ScenarioContext", flags: CapabilityFlags) -> None:
    """NodeGetVolumeStats without a volume id is rejected."""
    outcome = ctx.client.node_get_volume_stats({"volume_path": PLACEHOLDER_PATH})
    expect_error(outcome, ErrorKind.INVALID_ARGUMENT)


@scenario("node.stats.missing-volume-path", requires=STATS)
def stats_missing_volume_path(ctx: "ScenarioContext", flags: CapabilityFlags) -> None:
    """NodeGetVolumeStats without a volume path is rejected."""
    outcome = ctx.client.node_get_volume_stats({"volume_id": PLACEHOLDER_VOLUME_ID})
    expect_error(outcome, ErrorKind.INVALID_ARGUMENT)


@scenario("node.stats.unknown-volume", requires=STATS)
def stats_unknown_volume(ctx: "ScenarioContext", flags: CapabilityFlags) -> None:
    """NodeGetVolumeStats for a volume that does not exist is NotFound."""
    outcome = ctx.client.node_get_volume_stats(
        {"volume_id": PLACEHOLDER_VOLUME_ID, "volume_path": PLACEHOLDER_PATH}
    )
    expect_error(outcome, ErrorKind.NOT_FOUND)


@scenario("node.stats.wrong-path", requires=STATS)
def stats_wrong_path(ctx: "ScenarioContext", flags: CapabilityFlags) -> None:
    """NodeGetVolumeStats for a published volume at another path is NotFound."""
    lifecycle = VolumeLifecycle(ctx, flags, name_prefix="sanity-node-get-volume-stats")
    lifecycle.run_until(LifecycleState.PUBLISHED)

    outcome = ctx.client.node_get_volume_stats(
        {"volume_id": lifecycle.handle.volume_id, "volume_path": PLACEHOLDER_PATH}
    )
    expect_error(outcome, ErrorKind.NOT_FOUND)

    lifecycle.run_to_completion(skip_probes=True)


# -----------------------------------------------------------------------------
# End to end
# -----------------------------------------------------------------------------


@scenario("sanity-node-full")
def sanity_node_full(ctx: "ScenarioContext", flags: CapabilityFlags) -> None:
    """Full node lifecycle of a single-node-writer volume."""
    VolumeLifecycle(ctx, flags, name_prefix="sanity-node-full").run_to_completion()
