"""Candidate backup drives and their free space.

On Windows every mounted drive letter is listed (the backup trigger's
``drive`` is chosen from these).  Elsewhere only the filesystem root is
reported; when its usage cannot be read a zero-valued ``/`` entry is
returned so callers always have a target to offer.

Usage:
    from storefront_backup.backup.drives import list_drives

    for drive in list_drives():
        print(drive.name, drive.free_space_gb)
"""

import logging
import os
import shutil
import string
import sys

from storefront_backup.backup.models import DriveInfo
from storefront_backup.errors import BackupIOError

logger = logging.getLogger(__name__)

POSIX_ROOT = "/"


def _windows_drives() -> list[DriveInfo]:
    drives: list[DriveInfo] = []
    for letter in string.ascii_uppercase:
        root = f"{letter}:\\"
        if not os.path.exists(root):
            continue
        try:
            usage = shutil.disk_usage(root)
        except OSError as e:
            # Empty card readers and disconnected network drives
            logger.debug(f"Skipping drive {letter}: {e}")
            continue
        drives.append(DriveInfo.from_bytes(f"{letter}:", usage.total, usage.free))
    return drives


def list_drives(platform: str = sys.platform) -> list[DriveInfo]:
    """List drives a backup can be written to.

    Raises:
        BackupIOError: On Windows when no drive can be read.
    """
    if platform == "win32":
        drives = _windows_drives()
        if not drives:
            raise BackupIOError(
                "Failed to get drive information",
                details="No readable drive letters were found.",
            )
        return drives

    try:
        usage = shutil.disk_usage(POSIX_ROOT)
    except OSError as e:
        logger.warning(f"Could not read disk usage for {POSIX_ROOT}: {e}")
        return [DriveInfo(name=POSIX_ROOT)]
    return [DriveInfo.from_bytes(POSIX_ROOT, usage.total, usage.free, usage.used)]
