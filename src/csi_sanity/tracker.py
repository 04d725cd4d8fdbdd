"""Per-scenario tracking and teardown of provisioned resources.

Every resource a scenario provisions is registered here the moment the
plugin confirms it. At scenario end the tracker releases whatever the
scenario did not release itself, newest first, so mounts go before stages,
stages before attachments, and attachments before the volume.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from .client import PluginClient, RpcOutcome
from .errors import ErrorKind, TeardownError
from .shared.logging import get_logger

logger = get_logger(__name__)


class ResourceKind(Enum):
    """Kinds of plugin-side state a scenario can leave behind."""

    VOLUME = "volume"
    ATTACHMENT = "attachment"
    STAGING = "staging"
    PUBLICATION = "publication"


@dataclass(frozen=True)
class TrackedResource:
    """One provisioned resource."""

    kind: ResourceKind
    external_id: str
    node_id: str | None = None
    path: str | None = None

    def describe(self) -> str:
        parts = [f"{self.kind.value} {self.external_id}"]
        if self.node_id:
            parts.append(f"node={self.node_id}")
        if self.path:
            parts.append(f"path={self.path}")
        return " ".join(parts)


class ResourceTracker:
    """Ordered registry of live resources with best-effort teardown.

    Owned by exactly one scenario; no locking since there is one writer.
    """

    def __init__(
        self,
        client: PluginClient,
        secrets: dict[str, dict[str, str]] | None = None,
    ):
        """Initialize tracker.

        Args:
            client: Client used for removal calls
            secrets: Call name -> secret map, forwarded on removal calls
        """
        self.client = client
        self.secrets = secrets or {}
        self._resources: list[TrackedResource] = []
        self._released: set[TrackedResource] = set()

    @property
    def resources(self) -> list[TrackedResource]:
        """All registered resources in registration order."""
        return list(self._resources)

    @property
    def live(self) -> list[TrackedResource]:
        """Registered resources not yet released."""
        return [r for r in self._resources if r not in self._released]

    def register(self, resource: TrackedResource) -> TrackedResource:
        """Record a newly provisioned resource."""
        if resource in self._resources and resource not in self._released:
            return resource
        # A resource re-provisioned after release goes to the end of the order
        if resource in self._resources:
            self._resources.remove(resource)
            self._released.discard(resource)
        self._resources.append(resource)
        logger.debug("resource registered", resource=resource.describe())
        return resource

    def unregister(self, resource: TrackedResource) -> None:
        """Mark a resource the scenario released itself."""
        if resource in self._resources:
            self._released.add(resource)

    def is_live(self, resource: TrackedResource) -> bool:
        return resource in self._resources and resource not in self._released

    def remove(self, resource: TrackedResource) -> TeardownError | None:
        """Release one resource through the plugin.

        Idempotent: a resource that is unknown or already released is a no-op.
        The resource counts as released after one attempt, successful or not.

        Returns:
            TeardownError if the removal call failed, otherwise None.
        """
        if not self.is_live(resource):
            return None
        self._released.add(resource)

        call, action = self._removal_call(resource)
        try:
            outcome = action(resource)
        except Exception as e:
            error = TeardownError(
                resource=resource.describe(),
                call=call,
                kind=ErrorKind.UNKNOWN,
                message=f"{type(e).__name__}: {e}",
            )
            logger.warning("teardown failed", call=call, resource=error.resource, error=error.message)
            return error

        if outcome.ok:
            logger.debug("resource released", call=call, resource=resource.describe())
            return None

        error = TeardownError(
            resource=resource.describe(),
            call=call,
            kind=outcome.kind,
            message=outcome.message,
        )
        logger.warning(
            "teardown failed",
            call=call,
            resource=error.resource,
            kind=outcome.kind.label,
            error=outcome.message,
        )
        return error

    def teardown_all(self) -> list[TeardownError]:
        """Release every live resource, newest first.

        Never raises. A failed removal does not stop the remaining ones.

        Returns:
            Diagnostics for the removals that failed.
        """
        errors: list[TeardownError] = []
        for resource in reversed(self.live):
            error = self.remove(resource)
            if error is not None:
                errors.append(error)
        if errors:
            logger.warning("teardown left resources behind", failures=len(errors))
        return errors

    # -------------------------------------------------------------------------
    # Removal calls
    # -------------------------------------------------------------------------

    def _removal_call(
        self, resource: TrackedResource
    ) -> tuple[str, Callable[[TrackedResource], RpcOutcome]]:
        if resource.kind is ResourceKind.PUBLICATION:
            return "NodeUnpublishVolume", self._unpublish
        if resource.kind is ResourceKind.STAGING:
            return "NodeUnstageVolume", self._unstage
        if resource.kind is ResourceKind.ATTACHMENT:
            return "ControllerUnpublishVolume", self._controller_unpublish
        return "DeleteVolume", self._delete

    def _unpublish(self, resource: TrackedResource) -> RpcOutcome:
        return self.client.node_unpublish_volume(
            {"volume_id": resource.external_id, "target_path": resource.path}
        )

    def _unstage(self, resource: TrackedResource) -> RpcOutcome:
        return self.client.node_unstage_volume(
            {"volume_id": resource.external_id, "staging_target_path": resource.path}
        )

    def _controller_unpublish(self, resource: TrackedResource) -> RpcOutcome:
        return self.client.controller_unpublish_volume(
            {
                "volume_id": resource.external_id,
                "node_id": resource.node_id,
                "secrets": self.secrets.get("ControllerUnpublishVolume", {}),
            }
        )

    def _delete(self, resource: TrackedResource) -> RpcOutcome:
        return self.client.delete_volume(
            {
                "volume_id": resource.external_id,
                "secrets": self.secrets.get("DeleteVolume", {}),
            }
        )
