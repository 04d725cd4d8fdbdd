"""Unique, traceable names for resources created by scenarios."""

import itertools
import secrets


def run_suffix() -> str:
    """Random suffix identifying one harness run (e.g. 1A2B3C4D)."""
    return secrets.token_hex(4).upper()


class IdentifierGenerator:
    """Generate names as <prefix>-<run suffix>-<counter>.

    The run suffix keeps repeated runs against a shared backend apart; the
    counter keeps names unique within a run. A leaked volume can be traced to
    the scenario that created it through its prefix.
    """

    def __init__(self, suffix: str | None = None):
        self.suffix = suffix or run_suffix()
        self._counter = itertools.count(1)

    def next(self, prefix: str) -> str:
        return f"{prefix}-{self.suffix}-{next(self._counter):04d}"
