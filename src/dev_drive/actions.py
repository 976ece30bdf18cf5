"""Setup and cleanup steps.

run_setup validates and normalizes the inputs, decides between mounting an
existing image and creating a new one, drives DiskManager, and publishes
the result to the job. run_cleanup reads that result back and dismounts.

Validation happens before the first PowerShell call, including the check
that a workspace to copy exists, so a bad input never leaves a drive
attached behind a failed step.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import aiofiles.os
from pydantic import ValidationError

from dev_drive import constants
from dev_drive._logging import get_logger
from dev_drive.config import SetupConfig
from dev_drive.disk_manager import DiskManager, DismountReport
from dev_drive.env_mapping import process_env_mapping
from dev_drive.exceptions import InputValidationError
from dev_drive.models import MOUNT_PATH_DRIVE_FORMATS, AttachedDrive, DiskKind, DiskSpec, FileSystemFormat
from dev_drive.permission_utils import EXISTS_READABLE, can_access
from dev_drive.platform_utils import HostOS, detect_host_os
from dev_drive.runner_state import RunnerState
from dev_drive.workspace import copy_workspace

logger = get_logger(__name__)

_WINDOWS_ONLY = "This action can only run on Windows."


@dataclass
class SetupResult:
    """Outcome of the setup step."""

    drive: AttachedDrive
    created: bool
    workspace: Path | None = None
    env_mapping: dict[str, str] = field(default_factory=dict)


def normalize_drive_path(drive_path: str) -> Path:
    """Absolute image path; relative input resolves against the current drive root.

    Raises:
        InputValidationError: Suffix is not .vhdx
    """
    path = Path(drive_path)
    if not path.is_absolute():
        path = Path(Path.cwd().anchor) / path
    path = Path(os.path.abspath(path))
    if path.suffix.lower() != constants.VHDX_EXTENSION:
        raise InputValidationError(
            f"Make sure drive-path ends with {constants.VHDX_EXTENSION}",
            context={"drive_path": drive_path},
        )
    return path


def normalize_mount_path(mount_path: str, drive_format: FileSystemFormat) -> Path | None:
    """Absolute mount directory, or None to use a drive letter.

    Formats other than NTFS/ReFS can't be mounted at a directory; they fall
    back to a drive letter with a warning.
    """
    if not mount_path:
        return None
    if drive_format not in MOUNT_PATH_DRIVE_FORMATS:
        allowed = " or ".join(sorted(f.value for f in MOUNT_PATH_DRIVE_FORMATS))
        logger.warning(
            f"drive-format={drive_format.value} must be either {allowed} when mount-path is specified. "
            "Using Drive Letter instead."
        )
        return None
    return Path(os.path.abspath(mount_path))


def validate_drive_type(drive_type: str) -> DiskKind:
    """Raises InputValidationError unless drive_type is Fixed or Dynamic."""
    try:
        return DiskKind(drive_type)
    except ValueError:
        allowed = " or ".join(k.value for k in DiskKind)
        raise InputValidationError(
            f"Make sure drive-type is either {allowed}",
            context={"drive_type": drive_type},
        ) from None


async def ensure_mount_directory(path: Path) -> None:
    try:
        await aiofiles.os.makedirs(path, exist_ok=True)
    except OSError as e:
        raise InputValidationError(
            f"Failed to create specified mount path '{path}' due to {e}.",
            context={"mount_path": str(path)},
        ) from e


async def image_exists(image_path: Path) -> bool:
    return await can_access(image_path, EXISTS_READABLE)


async def run_setup(
    config: SetupConfig,
    *,
    manager: DiskManager,
    state: RunnerState | None = None,
) -> SetupResult | None:
    """Create or mount the Dev Drive and publish its paths.

    Returns:
        SetupResult, or None on hosts other than Windows (nothing to do)

    Raises:
        InputValidationError: Inputs are invalid (before any disk operation)
        DevDriveError: Any failure of the disk lifecycle or workspace copy
    """
    if detect_host_os() != HostOS.WINDOWS:
        logger.info(_WINDOWS_ONLY)
        return None

    state = state or RunnerState()
    context = manager.context

    image_path = normalize_drive_path(config.drive_path)
    disk_kind = validate_drive_type(config.drive_type)
    mount_path = normalize_mount_path(config.mount_path, config.drive_format)

    if config.workspace_copy and context.workspace is None:
        raise InputValidationError(
            "Github Workspace does not exist!",
            context={"variable": constants.GITHUB_WORKSPACE_VAR},
        )

    try:
        spec = DiskSpec(
            size_bytes=config.drive_size,
            filesystem_format=config.drive_format,
            image_path=image_path,
            disk_kind=disk_kind,
        )
    except ValidationError as e:
        raise InputValidationError(str(e), context={"drive_path": str(image_path)}) from e

    if mount_path is not None:
        await ensure_mount_directory(mount_path)

    mount_existing = config.mount_if_exists
    if mount_existing and not await image_exists(image_path):
        logger.debug(f"'{image_path}' is missing or unreadable")
        logger.warning("Dev Drive did not exist, will create instead.")
        mount_existing = False

    if mount_existing:
        logger.info("Mounting Dev Drive.")
        mounted_path = await manager.mount(image_path, mount_path)
        logger.info("Successfully mounted Dev Drive.")
    else:
        logger.info("Creating Dev Drive.")
        trust = manager.trust_policy(
            native_mode_requested=config.native_dev_drive,
            trust_requested=config.trusted_dev_drive,
        )
        mounted_path = await manager.create(spec, mount_path, trust)
        logger.info("Successfully created Dev Drive.")

    drive = AttachedDrive(image_path=image_path, mounted_path=mounted_path)
    await state.save_attached_drive(drive)
    result = SetupResult(drive=drive, created=not mount_existing)

    values = {
        constants.EnvVariables.DEV_DRIVE.value: mounted_path,
        constants.EnvVariables.DEV_DRIVE_PATH.value: str(image_path),
    }

    if config.workspace_copy and context.workspace is not None:
        result.workspace = await copy_workspace(context.workspace, mounted_path, image_path)
        await state.export_variable(constants.EnvVariables.DEV_DRIVE_WORKSPACE, str(result.workspace))
        values[constants.EnvVariables.DEV_DRIVE_WORKSPACE.value] = str(result.workspace)

    if config.env_mapping:
        result.env_mapping = await process_env_mapping(config.env_mapping, values, state)

    return result


async def run_cleanup(
    *,
    manager: DiskManager,
    state: RunnerState | None = None,
    drive: AttachedDrive | None = None,
) -> DismountReport | None:
    """Dismount the drive recorded by setup (or the one given).

    Returns:
        DismountReport, or None when there was nothing to remove

    Raises:
        CapabilityMissingError: Dismount cmdlets are not available
    """
    if detect_host_os() != HostOS.WINDOWS:
        logger.info(_WINDOWS_ONLY)
        return None

    logger.info("Attempting to remove Dev Drive.")
    state = state or RunnerState()
    drive = drive or state.load_attached_drive()
    if drive is None:
        logger.warning("No Dev Drive was recorded by the setup step, nothing to remove.")
        return None

    report = await manager.dismount(drive.image_path, drive.mounted_path)
    logger.info(f"Removal finished with exit code {report.exit_code}.")
    return report
