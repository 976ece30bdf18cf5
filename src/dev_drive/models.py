"""Data models for dev-drive."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from enum import Enum, StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dev_drive import constants


class FileSystemFormat(StrEnum):
    """Filesystems accepted by Format-Volume."""

    NTFS = "NTFS"
    REFS = "ReFS"
    FAT32 = "FAT32"
    EXFAT = "exFAT"

    @classmethod
    def parse(cls, value: str) -> FileSystemFormat:
        """Case-insensitive lookup ("refs" -> ReFS)."""
        for member in cls:
            if member.value.lower() == value.strip().lower():
                return member
        allowed = ", ".join(m.value for m in cls)
        raise ValueError(f"Unknown drive format '{value}', expected one of {allowed}")


NATIVE_CAPABLE_FORMAT = FileSystemFormat.REFS
"""Only ReFS volumes can be formatted as native Dev Drives."""

MOUNT_PATH_DRIVE_FORMATS: frozenset[FileSystemFormat] = frozenset({FileSystemFormat.REFS, FileSystemFormat.NTFS})
"""Formats that support being mounted at a directory access path."""


class DiskKind(StrEnum):
    """VHDX allocation kind, rendered as a New-VHD switch."""

    FIXED = "Fixed"
    DYNAMIC = "Dynamic"


_SIZE_RE = re.compile(r"^\s*(\d+)\s*([KMGTP]B)?\s*$", re.IGNORECASE)


def parse_size(value: int | str) -> int:
    """Convert "1GB"/"512MB"/"1048576" to a byte count.

    Uses binary multipliers, matching how PowerShell reads `-SizeBytes 1GB`.

    Raises:
        ValueError: Value is not a positive integer with an optional suffix
    """
    if isinstance(value, int):
        size = value
    else:
        match = _SIZE_RE.match(value)
        if not match:
            raise ValueError(f"Invalid drive size '{value}', expected a byte count or a number with KB/MB/GB/TB/PB")
        number, suffix = match.groups()
        size = int(number) * (constants.SIZE_SUFFIX_MULTIPLIERS[suffix.upper()] if suffix else 1)
    if size <= 0:
        raise ValueError(f"Drive size must be positive, got {value!r}")
    return size


class DiskSpec(BaseModel):
    """A validated description of the disk image to create."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    size_bytes: int = Field(gt=0, description="Maximum size of the virtual disk in bytes")
    filesystem_format: FileSystemFormat = Field(description="Filesystem to format the partition with")
    image_path: Path = Field(description="Absolute path of the .vhdx image")
    disk_kind: DiskKind = Field(default=DiskKind.DYNAMIC, description="Fixed or dynamically expanding image")

    @field_validator("size_bytes", mode="before")
    @classmethod
    def _parse_size(cls, value: int | str) -> int:
        return parse_size(value)

    @field_validator("filesystem_format", mode="before")
    @classmethod
    def _parse_format(cls, value: FileSystemFormat | str) -> FileSystemFormat:
        if isinstance(value, FileSystemFormat):
            return value
        return FileSystemFormat.parse(value)

    @field_validator("image_path")
    @classmethod
    def _check_image_path(cls, value: Path) -> Path:
        if not value.is_absolute():
            raise ValueError(f"Image path '{value}' must be absolute")
        if value.suffix.lower() != constants.VHDX_EXTENSION:
            raise ValueError(f"Image path '{value}' must end with {constants.VHDX_EXTENSION}")
        return value


@dataclass(frozen=True)
class UseDriveLetter:
    """Let Windows assign a drive letter to the partition."""


@dataclass(frozen=True)
class UsePath:
    """Mount the partition at an existing, writable directory."""

    path: Path


MountTarget = UseDriveLetter | UsePath


class TrustPolicy(BaseModel):
    """Whether to format as a native Dev Drive and mark it trusted.

    Trust is only honored for a native ReFS Dev Drive on a host that supports
    it. Every other combination silently downgrades to a plain volume.
    """

    model_config = ConfigDict(frozen=True)

    native_mode_requested: bool = True
    trust_requested: bool = False
    os_supports_native_mode: bool = False

    def use_native_format(self, fmt: FileSystemFormat) -> bool:
        return self.native_mode_requested and self.os_supports_native_mode and fmt == NATIVE_CAPABLE_FORMAT

    def mark_as_trusted(self, fmt: FileSystemFormat) -> bool:
        return self.trust_requested and self.use_native_format(fmt)


class CommandResult(BaseModel):
    """Outcome of one PowerShell invocation. Streams are already trimmed."""

    exit_code: int = Field(description="Process exit code (0=success)")
    stdout: str = Field(default="", description="Accumulated standard output")
    stderr: str = Field(default="", description="Accumulated standard error")

    @property
    def ok(self) -> bool:
        """Success means a zero exit code and nothing written to stderr."""
        return self.exit_code == 0 and not self.stderr


class DriveState(Enum):
    """Lifecycle of the one disk managed per invocation."""

    UNATTACHED = "unattached"
    ATTACHED = "attached"
    DETACHED = "detached"


VALID_STATE_TRANSITIONS: dict[DriveState, set[DriveState]] = {
    DriveState.UNATTACHED: {DriveState.ATTACHED},
    DriveState.ATTACHED: {DriveState.DETACHED},
    DriveState.DETACHED: set(),
}


class AttachedDrive(BaseModel):
    """The two facts that survive from setup to cleanup."""

    model_config = ConfigDict(frozen=True)

    image_path: Path
    mounted_path: str


class DriveContext(BaseModel):
    """Host facts consumed by DiskManager, collected once by the front end."""

    model_config = ConfigDict(frozen=True)

    os_version: tuple[int, ...] | None = None
    workspace: Path | None = None
    github_actions: bool = False

    @classmethod
    def from_environment(cls) -> DriveContext:
        # Deferred: system_probes imports models
        from dev_drive.platform_utils import get_os_version  # noqa: PLC0415
        from dev_drive.system_probes import parse_os_version  # noqa: PLC0415

        try:
            os_version = parse_os_version(get_os_version())
        except ValueError:
            os_version = None
        workspace = os.environ.get(constants.GITHUB_WORKSPACE_VAR)
        return cls(
            os_version=os_version,
            workspace=Path(workspace) if workspace else None,
            github_actions=os.environ.get(constants.GITHUB_ACTIONS_VAR) == "true",
        )
