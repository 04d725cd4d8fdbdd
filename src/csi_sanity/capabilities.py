"""Capability negotiation with the plugin under test.

Queries the identity, controller and node capability endpoints once per
scenario and reduces them to an immutable set of feature flags.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any

from .assertions import expect_success
from .client import PluginClient, RpcOutcome
from .errors import ContractViolation

logger = logging.getLogger(__name__)

# Capability types as advertised in responses
PLUGIN_CONTROLLER_SERVICE = "CONTROLLER_SERVICE"
PLUGIN_VOLUME_ACCESSIBILITY_CONSTRAINTS = "VOLUME_ACCESSIBILITY_CONSTRAINTS"
CONTROLLER_PUBLISH_UNPUBLISH_VOLUME = "PUBLISH_UNPUBLISH_VOLUME"
NODE_STAGE_UNSTAGE_VOLUME = "STAGE_UNSTAGE_VOLUME"
NODE_GET_VOLUME_STATS = "GET_VOLUME_STATS"

# Unset enums are omitted from the JSON mapping of a response
UNKNOWN_TYPE = "UNKNOWN"

KNOWN_NODE_CAPABILITIES = frozenset({UNKNOWN_TYPE, NODE_STAGE_UNSTAGE_VOLUME, NODE_GET_VOLUME_STATS})


@dataclass(frozen=True)
class CapabilityFlags:
    """Feature flags gating the optional lifecycle steps."""

    controller_publish_supported: bool = False
    node_stage_supported: bool = False
    node_volume_stats_supported: bool = False
    accessibility_constraint_supported: bool = False

    def to_dict(self) -> dict[str, bool]:
        return asdict(self)


def advertised_types(outcome: RpcOutcome, descriptor: str) -> list[str]:
    """Extract capability types from a capability-list response.

    Args:
        outcome: Successful capability-list response
        descriptor: Field holding the capability descriptor ("rpc" or "service")

    Returns:
        Advertised type names, in response order

    Raises:
        ContractViolation: If an entry carries no descriptor.
    """
    types: list[str] = []
    for index, entry in enumerate(outcome.get("capabilities", [])):
        detail: Any = entry.get(descriptor) if isinstance(entry, dict) else None
        if detail is None:
            raise ContractViolation(
                call=outcome.method,
                message=f"capability #{index} has no '{descriptor}' descriptor",
                expected=descriptor,
                actual=repr(entry),
            )
        types.append(detail.get("type", UNKNOWN_TYPE))
    return types


def validate_node_capabilities(outcome: RpcOutcome) -> list[str]:
    """Check that every advertised node capability is a recognized type.

    Raises:
        ContractViolation: On a missing descriptor or an unrecognized type.
    """
    expect_success(outcome)
    types = advertised_types(outcome, "rpc")
    for cap_type in types:
        if cap_type not in KNOWN_NODE_CAPABILITIES:
            raise ContractViolation(
                call=outcome.method,
                message=f"Unknown capability: {cap_type}",
                expected=", ".join(sorted(KNOWN_NODE_CAPABILITIES)),
                actual=str(cap_type),
            )
    return types


class CapabilityRegistry:
    """Probe and hold the capability flags for one scenario."""

    def __init__(self, client: PluginClient):
        self.client = client
        self._flags: CapabilityFlags | None = None

    @property
    def flags(self) -> CapabilityFlags | None:
        """Flags from the first probe, or None before probing."""
        return self._flags

    def probe(self) -> CapabilityFlags:
        """Query capability endpoints and compute flags.

        Only the first call talks to the plugin; later calls return the same
        flags even if the plugin would now advertise something else.

        Returns:
            CapabilityFlags for the rest of the scenario.

        Raises:
            ScenarioFailure: If a capability call fails or is malformed.
        """
        if self._flags is not None:
            return self._flags

        plugin_types = advertised_types(
            expect_success(self.client.get_plugin_capabilities()), "service"
        )
        node_types = advertised_types(expect_success(self.client.node_get_capabilities()), "rpc")

        controller_types: list[str] = []
        if PLUGIN_CONTROLLER_SERVICE in plugin_types:
            controller_types = advertised_types(
                expect_success(self.client.controller_get_capabilities()), "rpc"
            )

        self._flags = CapabilityFlags(
            controller_publish_supported=CONTROLLER_PUBLISH_UNPUBLISH_VOLUME in controller_types,
            node_stage_supported=NODE_STAGE_UNSTAGE_VOLUME in node_types,
            node_volume_stats_supported=NODE_GET_VOLUME_STATS in node_types,
            accessibility_constraint_supported=PLUGIN_VOLUME_ACCESSIBILITY_CONSTRAINTS
            in plugin_types,
        )
        logger.debug(f"Capability flags: {self._flags.to_dict()}")
        return self._flags
