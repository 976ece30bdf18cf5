"""Turn script output into a canonical mounted path and check it is usable."""

from __future__ import annotations

import os

from dev_drive import constants
from dev_drive.exceptions import UnverifiedMountError
from dev_drive.permission_utils import READ_WRITE, can_access


def is_drive_letter(path: str) -> bool:
    """True for "E:" or "E:\\" -- a bare drive letter, not a directory mount."""
    return bool(constants.DRIVE_LETTER_RE.match(path))


def resolve_mounted_path(raw_stdout: str) -> str:
    """Trim script output; keep drive letters verbatim, absolutize anything else.

    Raises:
        UnverifiedMountError: The script printed nothing
    """
    text = raw_stdout.strip()
    if not text:
        raise UnverifiedMountError("", "command produced no mount path")
    if is_drive_letter(text):
        return text
    return os.path.abspath(text)


async def verify_mounted_path(path: str) -> str:
    """Check `path` exists and is readable and writable.

    Raises:
        UnverifiedMountError: Access check failed
    """
    if not await can_access(path, READ_WRITE):
        raise UnverifiedMountError(path, "path does not exist or is not readable and writable")
    return path


async def resolve_and_verify(raw_stdout: str) -> str:
    return await verify_mounted_path(resolve_mounted_path(raw_stdout))
