"""Setup inputs for dev-drive.

SetupConfig carries the raw, user-facing options of the setup step. The
front end (actions.run_setup) normalizes them into a DiskSpec and a mount
path before anything touches the host.

Example:
    ```python
    from dev_drive import DiskManager, PowerShellExecutor, SetupConfig
    from dev_drive.actions import run_setup

    config = SetupConfig(drive_size="10GB", drive_path="D:/dev_drive.vhdx")
    await run_setup(config, manager=DiskManager(PowerShellExecutor()))
    ```
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dev_drive import constants
from dev_drive.models import FileSystemFormat, parse_size


class SetupConfig(BaseModel):
    """Options of the setup step.

    Attributes:
        drive_size: Image size, a byte count or a number with KB/MB/GB/TB. Default: 1GB.
        drive_format: Filesystem of the data partition. Default: ReFS.
        drive_path: Image path; relative paths resolve against the current drive root.
        drive_type: Fixed or Dynamic image. Validated by the front end so the
            error names the input.
        mount_path: Directory to mount at instead of a drive letter (NTFS/ReFS only).
        mount_if_exists: Mount drive_path when it already exists instead of creating it.
        workspace_copy: Copy the job workspace onto the drive afterwards.
        native_dev_drive: Format as a native Dev Drive where the OS supports it.
        trusted_dev_drive: Mark a native Dev Drive as trusted.
        env_mapping: `NAME, {{ DEV_DRIVE }}...` entries to export.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    drive_size: str = Field(default=constants.DEFAULT_DRIVE_SIZE, description="Image size (e.g. 1GB)")
    drive_format: FileSystemFormat = Field(default=FileSystemFormat(constants.DEFAULT_DRIVE_FORMAT))
    drive_path: str = Field(default=constants.DEFAULT_DRIVE_PATH, min_length=1)
    drive_type: str = Field(default=constants.DEFAULT_DRIVE_TYPE)
    mount_path: str = Field(default="", description="Mount directory (empty = drive letter)")
    mount_if_exists: bool = False
    workspace_copy: bool = False
    native_dev_drive: bool = True
    trusted_dev_drive: bool = False
    env_mapping: tuple[str, ...] = ()

    @field_validator("drive_size")
    @classmethod
    def _check_size(cls, value: str) -> str:
        parse_size(value)
        return value

    @field_validator("drive_format", mode="before")
    @classmethod
    def _parse_format(cls, value: FileSystemFormat | str) -> FileSystemFormat:
        if isinstance(value, FileSystemFormat):
            return value
        return FileSystemFormat.parse(value)
