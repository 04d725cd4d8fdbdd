"""Scenario registration.

Scenarios are plain functions taking a ScenarioContext and the probed
CapabilityFlags. They are registered with the ``scenario`` decorator and
run in registration order.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from ..capabilities import CapabilityFlags

if TYPE_CHECKING:
    from ..context import ScenarioContext

ScenarioBody = Callable[["ScenarioContext", CapabilityFlags], None]

# Flag name -> capability named in the skip reason
REQUIREMENT_LABELS = {
    "controller_publish_supported": "ControllerPublishVolume",
    "node_stage_supported": "NodeStageVolume",
    "node_volume_stats_supported": "NodeGetVolumeStats",
    "accessibility_constraint_supported": "VolumeAccessibilityConstraints",
}


@dataclass(frozen=True)
class Scenario:
    """A registered scenario."""

    name: str
    description: str
    body: ScenarioBody
    requires: tuple[str, ...] = ()

    def missing_requirement(self, flags: CapabilityFlags) -> Optional[str]:
        """Skip reason if a required flag is false, else None."""
        for flag in self.requires:
            if not getattr(flags, flag):
                return f"{REQUIREMENT_LABELS.get(flag, flag)} not supported"
        return None


SCENARIOS: list[Scenario] = []


def scenario(
    name: str, description: str = "", requires: tuple[str, ...] = ()
) -> Callable[[ScenarioBody], ScenarioBody]:
    """Register a scenario function.

    Args:
        name: Stable scenario id, e.g. "node.publish.missing-volume-id"
        description: One-line summary shown by ``csi-sanity list``
        requires: CapabilityFlags attributes that must all be true
    """
    for flag in requires:
        if flag not in REQUIREMENT_LABELS:
            raise ValueError(f"Unknown capability flag: {flag}")

    def decorator(fn: ScenarioBody) -> ScenarioBody:
        if any(s.name == name for s in SCENARIOS):
            raise ValueError(f"Duplicate scenario name: {name}")
        summary = description
        if not summary and fn.__doc__:
            summary = fn.__doc__.strip().splitlines()[0]
        SCENARIOS.append(
            Scenario(
                name=name,
                description=summary,
                body=fn,
                requires=tuple(requires),
            )
        )
        return fn

    return decorator


def get_scenario(name: str) -> Scenario:
    """Look up a registered scenario by name."""
    for registered in SCENARIOS:
        if registered.name == name:
            return registered
    raise KeyError(name)
