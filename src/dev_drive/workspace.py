"""Copy the job workspace onto the mounted Dev Drive."""

from __future__ import annotations

import asyncio
import os
import shutil
from pathlib import Path

from dev_drive._logging import get_logger
from dev_drive.exceptions import WorkspaceCopyError

logger = get_logger(__name__)


def copy_destination(workspace: Path, mounted_path: str) -> Path:
    """`<mounted path>/<workspace dir name>`, e.g. E:/my-repo.

    A bare drive letter ("E:") is treated as the volume root ("E:\\").
    """
    root = mounted_path if mounted_path.endswith(("\\", "/")) else mounted_path + os.sep
    return Path(os.path.abspath(os.path.join(root, workspace.name)))


def _is_within(child: Path, parent: Path) -> bool:
    try:
        child.relative_to(parent)
    except ValueError:
        return False
    return True


def _ignore_image(image_path: Path):
    image = Path(os.path.abspath(image_path))

    def ignore(directory: str, names: list[str]) -> set[str]:
        return {name for name in names if Path(os.path.abspath(os.path.join(directory, name))) == image}

    return ignore


async def copy_workspace(workspace: Path, mounted_path: str, image_path: Path) -> Path:
    """Copy `workspace` to the drive and return the destination.

    The image file is skipped when it lives inside the workspace; copying a
    mounted VHDX onto itself is never wanted.

    Raises:
        WorkspaceCopyError: Destination is inside the workspace, or the copy failed
    """
    copy_from = Path(os.path.abspath(workspace))
    copy_to = copy_destination(copy_from, mounted_path)

    if _is_within(copy_to, copy_from):
        raise WorkspaceCopyError(
            f"Cannot copy '{copy_from}' to a (sub)directory of itself, '{copy_to}'.",
            context={"source": str(copy_from), "destination": str(copy_to)},
        )

    if _is_within(Path(os.path.abspath(image_path)), copy_from):
        logger.warning(
            f"Your dev drive '{image_path}' is located inside the Github Workspace when workspace-copy "
            "is enabled! Your drive will be filtered out during copying."
        )

    logger.info(f"Copying workspace from '{copy_from}' to '{copy_to}'.")
    try:
        await asyncio.to_thread(
            shutil.copytree,
            copy_from,
            copy_to,
            ignore=_ignore_image(image_path),
            symlinks=True,
            dirs_exist_ok=True,
        )
    except OSError as e:
        raise WorkspaceCopyError(
            f"Failed to copy workspace to '{copy_to}': {e}",
            context={"source": str(copy_from), "destination": str(copy_to)},
        ) from e

    logger.info("Finished copying workspace.")
    return copy_to
