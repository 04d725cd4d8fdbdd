"""Filesystem locations used by csi-sanity.

Default staging and target mount points, and creation/removal of the
directories the plugin mounts into.
"""

import os
from pathlib import Path

# Defaults for the node-side mount points
DEFAULT_TARGET_PATH = Path("/tmp/csi-mount")
DEFAULT_STAGING_PATH = Path("/tmp/csi-staging")

# Harness config file
CONFIG_DIR = Path.home() / ".csi-sanity"
CONFIG_FILE = CONFIG_DIR / "config.yaml"

MOUNT_DIR_MODE = 0o755


def create_mount_target(path: str | Path) -> Path:
    """Create a mount target directory if it does not exist.

    Args:
        path: Directory to create (parents included)

    Returns:
        The directory as a Path

    Raises:
        NotADirectoryError: If path exists and is not a directory.
    """
    target = Path(path)
    if target.exists() and not target.is_dir():
        raise NotADirectoryError(f"Mount target is not a directory: {target}")
    target.mkdir(mode=MOUNT_DIR_MODE, parents=True, exist_ok=True)
    return target


def remove_mount_target(path: str | Path) -> bool:
    """Remove an empty mount target directory.

    Returns:
        True if removed, False if missing or not empty
    """
    target = Path(path)
    if not target.is_dir():
        return False
    try:
        os.rmdir(target)
    except OSError:
        return False
    return True
