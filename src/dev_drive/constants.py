"""Constants for dev-drive commands, inputs and runner integration."""

import re
from enum import StrEnum
from typing import Final

# ============================================================================
# PowerShell
# ============================================================================

POWERSHELL_BIN: Final[str] = "pwsh.exe"
"""PowerShell 7 executable. Windows PowerShell 5 lacks reliable exit codes under -Command."""

POWERSHELL_ARGS: Final[tuple[str, ...]] = ("-NoProfile", "-NonInteractive", "-Command")
"""Arguments preceding the script text on every invocation."""

DEV_DRIVE_VARIABLE: Final[str] = "$DevDrive"
"""Script variable holding the partition/volume between statements."""


class Cmdlets(StrEnum):
    """Cmdlets whose presence is probed before they are used."""

    NEW_VHD = "New-VHD"
    MOUNT_VHD = "Mount-VHD"
    DISMOUNT_VHD = "Dismount-VHD"
    GET_VHD = "Get-VHD"


# ============================================================================
# Disk
# ============================================================================

VHDX_EXTENSION: Final[str] = ".vhdx"
"""Required suffix of the disk image path."""

NATIVE_DEV_DRIVE_WIN_VERSION: Final[str] = "10.0.22621"
"""First Windows build (22H2) where `Format-Volume -DevDrive` exists."""

DRIVE_LETTER_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z]:\\?$")
"""A mounted path of just a letter and a colon is a drive letter, not a directory."""

SIZE_SUFFIX_MULTIPLIERS: Final[dict[str, int]] = {
    "KB": 1024,
    "MB": 1024**2,
    "GB": 1024**3,
    "TB": 1024**4,
    "PB": 1024**5,
}
"""PowerShell numeric literal multipliers (binary, as in `1GB`)."""

# ============================================================================
# Setup defaults
# ============================================================================

DEFAULT_DRIVE_SIZE: Final[str] = "1GB"
DEFAULT_DRIVE_FORMAT: Final[str] = "ReFS"
DEFAULT_DRIVE_PATH: Final[str] = "dev_drive.vhdx"
DEFAULT_DRIVE_TYPE: Final[str] = "Dynamic"

# ============================================================================
# Runner integration
# ============================================================================


class EnvVariables(StrEnum):
    """Variables exported to later job steps."""

    DEV_DRIVE = "DEV_DRIVE"
    DEV_DRIVE_WORKSPACE = "DEV_DRIVE_WORKSPACE"
    DEV_DRIVE_PATH = "DEV_DRIVE_PATH"


class StateVariables(StrEnum):
    """Values carried from the setup step to the cleanup step."""

    DEV_DRIVE = EnvVariables.DEV_DRIVE.value
    DEV_DRIVE_PATH = EnvVariables.DEV_DRIVE_PATH.value


GITHUB_WORKSPACE_VAR: Final[str] = "GITHUB_WORKSPACE"
GITHUB_ENV_FILE_VAR: Final[str] = "GITHUB_ENV"
GITHUB_STATE_FILE_VAR: Final[str] = "GITHUB_STATE"
GITHUB_ACTIONS_VAR: Final[str] = "GITHUB_ACTIONS"
STATE_VAR_PREFIX: Final[str] = "STATE_"
INPUT_VAR_PREFIX: Final[str] = "INPUT_"
