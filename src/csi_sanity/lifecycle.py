"""VolumeLifecycle - drives one volume through the node lifecycle.

Handles:
- Creation, optional controller publish, optional staging, publish
- Optional usage statistics at the mount target
- Unwinding in reverse: unpublish, unstage, controller unpublish, delete
- Registering every provisioned resource with the scenario's tracker

Capability-gated steps run only when their flag is set and are otherwise
skipped without any call or assertion.
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Optional

from .assertions import expect_success
from .capabilities import CapabilityFlags
from .client import RpcOutcome, single_node_writer_capability
from .errors import LifecycleOrderError
from .tracker import ResourceKind, TrackedResource

if TYPE_CHECKING:
    from .context import ScenarioContext

logger = logging.getLogger(__name__)

DEFAULT_NAME_PREFIX = "sanity-node"


class LifecycleState(Enum):
    """Lifecycle states in their required order."""

    UNPROVISIONED = "unprovisioned"
    CREATED = "created"
    CONTROLLER_PUBLISHED = "controller_published"
    STAGED = "staged"
    PUBLISHED = "published"
    STATS_QUERIED = "stats_queried"
    UNPUBLISHED = "unpublished"
    UNSTAGED = "unstaged"
    CONTROLLER_UNPUBLISHED = "controller_unpublished"
    DELETED = "deleted"


LIFECYCLE_ORDER = list(LifecycleState)

# State -> CapabilityFlags attribute that must be true for the step to run
GATED_STATES = {
    LifecycleState.CONTROLLER_PUBLISHED: "controller_publish_supported",
    LifecycleState.STAGED: "node_stage_supported",
    LifecycleState.STATS_QUERIED: "node_volume_stats_supported",
    LifecycleState.UNSTAGED: "node_stage_supported",
    LifecycleState.CONTROLLER_UNPUBLISHED: "controller_publish_supported",
}

# Read-only steps a scenario may pass over without breaking the order
PROBE_STATES = frozenset({LifecycleState.STATS_QUERIED})


def enabled_states(flags: CapabilityFlags) -> list[LifecycleState]:
    """States visited for the given capability flags, in order."""
    return [
        state
        for state in LIFECYCLE_ORDER
        if state not in GATED_STATES or getattr(flags, GATED_STATES[state])
    ]


@dataclass(frozen=True)
class VolumeHandle:
    """A volume returned by CreateVolume."""

    name: str
    volume_id: str
    volume_context: Mapping[str, str] = field(default_factory=dict)

    def context_dict(self) -> dict[str, str]:
        return dict(self.volume_context)


class VolumeLifecycle:
    """State machine for one volume within one scenario."""

    def __init__(
        self,
        ctx: "ScenarioContext",
        flags: CapabilityFlags,
        name_prefix: str = DEFAULT_NAME_PREFIX,
    ):
        """Initialize VolumeLifecycle.

        Args:
            ctx: Scenario context (client, paths, secrets, tracker)
            flags: Capability flags probed at scenario start
            name_prefix: Prefix for the generated volume name
        """
        self.ctx = ctx
        self.flags = flags
        self.name_prefix = name_prefix

        self._path = enabled_states(flags)
        self._state = LifecycleState.UNPROVISIONED
        self._handle: Optional[VolumeHandle] = None
        self._node_id: Optional[str] = None
        self._publish_context: dict[str, str] = {}
        self._resources: dict[ResourceKind, TrackedResource] = {}
        self._steps: dict[LifecycleState, Callable[[], Any]] = {
            LifecycleState.CREATED: self.create,
            LifecycleState.CONTROLLER_PUBLISHED: self.controller_publish,
            LifecycleState.STAGED: self.stage,
            LifecycleState.PUBLISHED: self.publish,
            LifecycleState.STATS_QUERIED: self.query_stats,
            LifecycleState.UNPUBLISHED: self.unpublish,
            LifecycleState.UNSTAGED: self.unstage,
            LifecycleState.CONTROLLER_UNPUBLISHED: self.controller_unpublish,
            LifecycleState.DELETED: self.delete,
        }

    @property
    def state(self) -> LifecycleState:
        """Current lifecycle state."""
        return self._state

    @property
    def path(self) -> list[LifecycleState]:
        """States this lifecycle visits, given its flags."""
        return list(self._path)

    @property
    def handle(self) -> VolumeHandle:
        """Handle of the created volume."""
        if self._handle is None:
            raise LifecycleOrderError("No volume has been created in this lifecycle")
        return self._handle

    @property
    def node_id(self) -> Optional[str]:
        """Node the volume was controller-published to."""
        return self._node_id

    @property
    def publish_context(self) -> dict[str, str]:
        """Publish context returned by ControllerPublishVolume."""
        return dict(self._publish_context)

    def next_state(self) -> Optional[LifecycleState]:
        """Next state on the enabled path, or None once deleted."""
        index = self._path.index(self._state)
        if index + 1 < len(self._path):
            return self._path[index + 1]
        return None

    def _enter(self, target: LifecycleState) -> None:
        """Check that ``target`` may be entered from the current state."""
        if target not in self._path:
            raise LifecycleOrderError(
                f"{target.value} is not enabled for this plugin (capability not advertised)"
            )
        for state in self._path[self._path.index(self._state) + 1 :]:
            if state is target:
                return
            if state not in PROBE_STATES:
                break
        raise LifecycleOrderError(f"Cannot enter {target.value} from {self._state.value}")

    def _track(self, kind: ResourceKind, **kwargs: Any) -> TrackedResource:
        resource = self.ctx.tracker.register(
            TrackedResource(kind=kind, external_id=self.handle.volume_id, **kwargs)
        )
        self._resources[kind] = resource
        return resource

    def _release(self, kind: ResourceKind) -> None:
        resource = self._resources.pop(kind, None)
        if resource is not None:
            self.ctx.tracker.unregister(resource)

    # -------------------------------------------------------------------------
    # Forward steps
    # -------------------------------------------------------------------------

    def create(self, name: Optional[str] = None) -> VolumeHandle:
        """Create a single-node-writer volume and register it."""
        self._enter(LifecycleState.CREATED)
        name = name or self.ctx.names.next(self.name_prefix)
        logger.info(f"Creating volume {name}")

        outcome = self.ctx.client.create_volume(
            {
                "name": name,
                "volume_capabilities": [single_node_writer_capability()],
                "secrets": self.ctx.secrets_for("CreateVolume"),
                "parameters": dict(self.ctx.volume_parameters),
            }
        )
        expect_success(outcome)

        volume = outcome.get("volume") or {}
        volume_id = volume.get("volume_id", "")
        if volume_id:
            # Tracked before the content checks so a malformed reply cannot leak
            self._handle = VolumeHandle(
                name=name,
                volume_id=volume_id,
                volume_context=MappingProxyType(dict(volume.get("volume_context", {}))),
            )
            self._track(ResourceKind.VOLUME)
        expect_success(outcome, non_empty=["volume", "volume.volume_id"])

        self._state = LifecycleState.CREATED
        return self.handle

    def _lookup_node_id(self) -> str:
        outcome = expect_success(self.ctx.client.node_get_info(), non_empty=["node_id"])
        return outcome.get("node_id")

    def controller_publish(self) -> RpcOutcome:
        """Attach the volume to the node reported by NodeGetInfo."""
        self._enter(LifecycleState.CONTROLLER_PUBLISHED)
        handle = self.handle
        node_id = self._lookup_node_id()
        logger.info(f"Controller publishing volume {handle.volume_id} to node {node_id}")

        outcome = expect_success(
            self.ctx.client.controller_publish_volume(
                {
                    "volume_id": handle.volume_id,
                    "node_id": node_id,
                    "volume_capability": single_node_writer_capability(),
                    "volume_context": handle.context_dict(),
                    "readonly": False,
                    "secrets": self.ctx.secrets_for("ControllerPublishVolume"),
                }
            )
        )
        self._node_id = node_id
        self._track(ResourceKind.ATTACHMENT, node_id=node_id)
        self._publish_context = dict(outcome.get("publish_context", {}))

        self._state = LifecycleState.CONTROLLER_PUBLISHED
        return outcome

    def stage(self) -> RpcOutcome:
        """Stage the volume at the configured staging path."""
        self._enter(LifecycleState.STAGED)
        handle = self.handle
        logger.info(f"Staging volume {handle.volume_id} at {self.ctx.staging_path}")

        outcome = expect_success(
            self.ctx.client.node_stage_volume(
                {
                    "volume_id": handle.volume_id,
                    "staging_target_path": self.ctx.staging_path,
                    "volume_capability": single_node_writer_capability(),
                    "volume_context": handle.context_dict(),
                    "publish_context": self.publish_context,
                    "secrets": self.ctx.secrets_for("NodeStageVolume"),
                }
            )
        )
        self._track(ResourceKind.STAGING, path=self.ctx.staging_path)

        self._state = LifecycleState.STAGED
        return outcome

    def publish(self) -> RpcOutcome:
        """Publish the volume at the configured target path."""
        self._enter(LifecycleState.PUBLISHED)
        handle = self.handle
        logger.info(f"Publishing volume {handle.volume_id} at {self.ctx.target_path}")

        request: dict[str, Any] = {
            "volume_id": handle.volume_id,
            "target_path": self.ctx.target_path,
            "volume_capability": single_node_writer_capability(),
            "volume_context": handle.context_dict(),
            "publish_context": self.publish_context,
            "secrets": self.ctx.secrets_for("NodePublishVolume"),
        }
        if self.flags.node_stage_supported:
            request["staging_target_path"] = self.ctx.staging_path

        outcome = expect_success(self.ctx.client.node_publish_volume(request))
        self._track(ResourceKind.PUBLICATION, path=self.ctx.target_path)

        self._state = LifecycleState.PUBLISHED
        return outcome

    def query_stats(self) -> RpcOutcome:
        """Query usage at the mount target; usage must be non-empty."""
        self._enter(LifecycleState.STATS_QUERIED)
        handle = self.handle
        logger.info(f"Querying volume stats for {handle.volume_id}")

        outcome = expect_success(
            self.ctx.client.node_get_volume_stats(
                {"volume_id": handle.volume_id, "volume_path": self.ctx.target_path}
            ),
            non_empty=["usage"],
        )

        self._state = LifecycleState.STATS_QUERIED
        return outcome

    # -------------------------------------------------------------------------
    # Unwind steps
    # -------------------------------------------------------------------------

    def unpublish(self) -> RpcOutcome:
        """Unpublish from the target path. A failure here is fatal."""
        self._enter(LifecycleState.UNPUBLISHED)
        handle = self.handle
        logger.info(f"Unpublishing volume {handle.volume_id}")

        outcome = expect_success(
            self.ctx.client.node_unpublish_volume(
                {"volume_id": handle.volume_id, "target_path": self.ctx.target_path}
            )
        )
        self._release(ResourceKind.PUBLICATION)

        self._state = LifecycleState.UNPUBLISHED
        return outcome

    def unstage(self) -> RpcOutcome:
        """Unstage from the staging path."""
        self._enter(LifecycleState.UNSTAGED)
        handle = self.handle
        logger.info(f"Unstaging volume {handle.volume_id}")

        outcome = expect_success(
            self.ctx.client.node_unstage_volume(
                {"volume_id": handle.volume_id, "staging_target_path": self.ctx.staging_path}
            )
        )
        self._release(ResourceKind.STAGING)

        self._state = LifecycleState.UNSTAGED
        return outcome

    def controller_unpublish(self) -> RpcOutcome:
        """Release the node attachment."""
        self._enter(LifecycleState.CONTROLLER_UNPUBLISHED)
        handle = self.handle
        logger.info(f"Controller unpublishing volume {handle.volume_id} from node {self._node_id}")

        outcome = expect_success(
            self.ctx.client.controller_unpublish_volume(
                {
                    "volume_id": handle.volume_id,
                    "node_id": self._node_id,
                    "secrets": self.ctx.secrets_for("ControllerUnpublishVolume"),
                }
            )
        )
        self._release(ResourceKind.ATTACHMENT)

        self._state = LifecycleState.CONTROLLER_UNPUBLISHED
        return outcome

    def delete(self) -> RpcOutcome:
        """Delete the volume.

        Allowed at the end of the unwind, or straight after creation when
        nothing was attached, staged or published.
        """
        if self._state is not LifecycleState.CREATED:
            self._enter(LifecycleState.DELETED)
        handle = self.handle
        logger.info(f"Deleting volume {handle.volume_id}")

        outcome = expect_success(
            self.ctx.client.delete_volume(
                {
                    "volume_id": handle.volume_id,
                    "secrets": self.ctx.secrets_for("DeleteVolume"),
                }
            )
        )
        self._release(ResourceKind.VOLUME)

        self._state = LifecycleState.DELETED
        return outcome

    # -------------------------------------------------------------------------
    # Driving
    # -------------------------------------------------------------------------

    def advance(self, skip_probes: bool = False) -> Optional[LifecycleState]:
        """Run the next enabled step.

        Args:
            skip_probes: Pass over read-only steps (stats) instead of running them

        Returns:
            The state entered, or None if the lifecycle is complete.
        """
        target = self.next_state()
        if target is not None and skip_probes and target in PROBE_STATES:
            remaining = self._path[self._path.index(target) + 1 :]
            target = remaining[0] if remaining else None
        if target is None:
            return None
        self._steps[target]()
        return self._state

    def run_until(self, target: LifecycleState, skip_probes: bool = False) -> LifecycleState:
        """Advance until ``target`` has been entered."""
        if target not in self._path:
            raise LifecycleOrderError(f"{target.value} is not enabled for this plugin")
        while self._state is not target:
            if self.advance(skip_probes=skip_probes) is None:
                raise LifecycleOrderError(f"Lifecycle finished before reaching {target.value}")
        return self._state

    def run_to_completion(self, skip_probes: bool = False) -> list[LifecycleState]:
        """Advance through every remaining enabled step.

        Returns:
            States entered, in order.
        """
        visited: list[LifecycleState] = []
        while (state := self.advance(skip_probes=skip_probes)) is not None:
            visited.append(state)
        return visited
