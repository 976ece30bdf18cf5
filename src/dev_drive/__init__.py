"""dev-drive: Windows Dev Drive lifecycle for CI jobs.

Creates a VHDX-backed volume (optionally a native, trusted ReFS Dev Drive),
mounts it at a drive letter or a directory, and removes it again at the end
of the job. Every host operation is one PowerShell invocation built from a
typed pipeline, so success is judged from exit codes and captured output.

Quick Start:
    ```python
    from pathlib import Path

    from dev_drive import DiskManager, DiskSpec, DriveContext, PowerShellExecutor

    manager = DiskManager(PowerShellExecutor(), DriveContext.from_environment())
    spec = DiskSpec(size_bytes="10GB", filesystem_format="ReFS", image_path=Path("D:/dev.vhdx"))
    trust = manager.trust_policy(native_mode_requested=True, trust_requested=True)

    mounted = await manager.create(spec, mount_path=None, trust=trust)  # "E:"
    ...
    await manager.dismount(spec.image_path, mounted)
    ```

Requirements:
    - Windows with the Hyper-V PowerShell module
    - PowerShell 7 (pwsh.exe)
    - Windows 11 22H2 / build 22621+ for native Dev Drives
"""

from dev_drive.config import SetupConfig
from dev_drive.disk_manager import DiskManager, DismountReport
from dev_drive.exceptions import (
    CapabilityMissingError,
    CommandTimeoutError,
    DevDriveDependencyError,
    DevDriveError,
    InputValidationError,
    InvalidStateTransitionError,
    PartialTeardownWarning,
    PermanentError,
    PipelineExecutionError,
    StateExportError,
    UnverifiedMountError,
    WorkspaceCopyError,
)
from dev_drive.models import (
    AttachedDrive,
    CommandResult,
    DiskKind,
    DiskSpec,
    DriveContext,
    DriveState,
    FileSystemFormat,
    MountTarget,
    TrustPolicy,
    UseDriveLetter,
    UsePath,
)
from dev_drive.powershell import CommandExecutor, PowerShellExecutor
from dev_drive.settings import Settings

__version__ = "0.4.0"

__all__ = [
    "AttachedDrive",
    "CapabilityMissingError",
    "CommandExecutor",
    "CommandResult",
    "CommandTimeoutError",
    "DevDriveDependencyError",
    "DevDriveError",
    "DiskKind",
    "DiskManager",
    "DiskSpec",
    "DismountReport",
    "DriveContext",
    "DriveState",
    "FileSystemFormat",
    "InputValidationError",
    "InvalidStateTransitionError",
    "MountTarget",
    "PartialTeardownWarning",
    "PermanentError",
    "PipelineExecutionError",
    "PowerShellExecutor",
    "Settings",
    "SetupConfig",
    "StateExportError",
    "TrustPolicy",
    "UnverifiedMountError",
    "UseDriveLetter",
    "UsePath",
    "WorkspaceCopyError",
    "__version__",
]
