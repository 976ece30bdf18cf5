"""Export env vars and step state to the GitHub Actions runner.

Env vars go to the file named by GITHUB_ENV and state to GITHUB_STATE,
both as heredoc records so values may contain newlines:

    DEV_DRIVE<<ghadelimiter_3f0c...
    E:
    ghadelimiter_3f0c...

The runner hands saved state back to the post step as STATE_<name>.
Outside a runner the values are only set in-process.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import MutableMapping
from pathlib import Path

import aiofiles

from dev_drive import constants
from dev_drive._logging import get_logger
from dev_drive.exceptions import StateExportError
from dev_drive.models import AttachedDrive

logger = get_logger(__name__)


def format_file_command(name: str, value: str) -> str:
    """Build one heredoc record for a runner file command.

    Raises:
        StateExportError: Name or value contains the generated delimiter
    """
    delimiter = f"ghadelimiter_{uuid.uuid4()}"
    if delimiter in name or delimiter in value:
        raise StateExportError(
            f"Unexpected input: name or value should not contain the delimiter {delimiter}",
            context={"name": name},
        )
    return f"{name}<<{delimiter}\n{value}\n{delimiter}\n"


class RunnerState:
    """Reads and writes job env vars and step state.

    Args:
        environ: Environment to read file locations from and to update
            (defaults to os.environ)
    """

    def __init__(self, environ: MutableMapping[str, str] | None = None) -> None:
        self.environ = environ if environ is not None else os.environ

    async def _append(self, file_var: str, name: str, value: str) -> bool:
        file_path = self.environ.get(file_var)
        if not file_path:
            return False
        record = format_file_command(name, value)
        async with aiofiles.open(Path(file_path), "a", encoding="utf-8") as f:
            await f.write(record)
        return True

    async def export_variable(self, name: str, value: str) -> None:
        logger.debug(f"Exporting EnvVar {name}={value}")
        self.environ[name] = value
        if not await self._append(constants.GITHUB_ENV_FILE_VAR, name, value):
            logger.debug(f"{constants.GITHUB_ENV_FILE_VAR} not set, {name} only exported to this process")

    async def save_state(self, name: str, value: str) -> None:
        logger.debug(f"Saving State {name}={value}")
        if not await self._append(constants.GITHUB_STATE_FILE_VAR, name, value):
            # Keep it readable by get_state() within the same process
            self.environ[f"{constants.STATE_VAR_PREFIX}{name}"] = value

    def get_state(self, name: str) -> str:
        value = self.environ.get(f"{constants.STATE_VAR_PREFIX}{name}", "")
        logger.debug(f"Retrieved State {name}={value}")
        return value

    async def save_attached_drive(self, drive: AttachedDrive) -> None:
        """Publish the mounted path and image path for later steps and for cleanup."""
        mounted = drive.mounted_path
        image = str(drive.image_path)
        await self.export_variable(constants.EnvVariables.DEV_DRIVE, mounted)
        await self.save_state(constants.StateVariables.DEV_DRIVE, mounted)
        await self.export_variable(constants.EnvVariables.DEV_DRIVE_PATH, image)
        await self.save_state(constants.StateVariables.DEV_DRIVE_PATH, image)

    def load_attached_drive(self) -> AttachedDrive | None:
        """The drive saved by setup, or None when no image path was recorded."""
        image = self.get_state(constants.StateVariables.DEV_DRIVE_PATH)
        if not image:
            return None
        return AttachedDrive(image_path=Path(image), mounted_path=self.get_state(constants.StateVariables.DEV_DRIVE))
