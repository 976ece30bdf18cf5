"""Choose between drive-letter and directory mounting."""

from __future__ import annotations

from pathlib import Path

import aiofiles.os

from dev_drive._logging import get_logger
from dev_drive.models import MountTarget, UseDriveLetter, UsePath
from dev_drive.permission_utils import EXISTS_WRITABLE, can_access

logger = get_logger(__name__)


async def select_mount_strategy(candidate: str | Path | None) -> MountTarget:
    """Mount at `candidate` when it is an existing writable directory, else use a drive letter.

    Falling back is never an error. A warning is logged only when a
    candidate was supplied, since "no mount path" is the normal way to ask
    for a drive letter.
    """
    if not candidate:
        return UseDriveLetter()

    path = Path(candidate)
    if not await aiofiles.os.path.isdir(path):
        reason = "does not exist or is not a directory"
    elif not await can_access(path, EXISTS_WRITABLE):
        reason = "is not writable"
    else:
        return UsePath(path)

    logger.warning(
        f"Mount path '{path}' {reason}, using Drive Letter instead.",
        extra={"mount_path": str(path)},
    )
    return UseDriveLetter()
