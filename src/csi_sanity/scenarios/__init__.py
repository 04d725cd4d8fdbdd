"""Scenario catalogue.

Importing this package registers every scenario.
"""

from . import node  # noqa: F401
from .registry import SCENARIOS, Scenario, get_scenario, scenario

__all__ = [
    "SCENARIOS",
    "Scenario",
    "get_scenario",
    "scenario",
]
