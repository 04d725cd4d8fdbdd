"""Shared modules for csi-sanity.

- Logging configuration and per-scenario log context
- Mount directory and config file locations
"""

from .logging import configure_logging, get_logger, scenario_context
from .paths import (
    CONFIG_DIR,
    CONFIG_FILE,
    DEFAULT_STAGING_PATH,
    DEFAULT_TARGET_PATH,
    create_mount_target,
    remove_mount_target,
)

__all__ = [
    # Paths
    "CONFIG_DIR",
    "CONFIG_FILE",
    "DEFAULT_STAGING_PATH",
    "DEFAULT_TARGET_PATH",
    "create_mount_target",
    "remove_mount_target",
    # Logging
    "configure_logging",
    "get_logger",
    "scenario_context",
]
