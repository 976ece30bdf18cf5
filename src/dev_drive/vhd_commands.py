"""PowerShell pipelines for the VHD lifecycle.

Pure functions: each returns a Pipeline and never touches the host, so the
exact cmdlets and parameters of every operation can be checked in tests.

References:
- Hyper-V cmdlets: https://learn.microsoft.com/en-us/powershell/module/hyper-v/
- Dev Drive filters and trust:
  https://learn.microsoft.com/en-us/windows/dev-drive/#how-do-i-configure-additional-filters-on-dev-drive
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from dev_drive.constants import DEV_DRIVE_VARIABLE, Cmdlets
from dev_drive.models import DiskSpec, MountTarget, UseDriveLetter, UsePath
from dev_drive.pipeline import SWITCH, Pipeline, PipelineBuilder, Raw, Stage, words

if TYPE_CHECKING:
    from pathlib import Path

# Reserved/system partitions have no volume and must never be returned as the mount
_HAS_VOLUME_FILTER = Stage("Where-Object", args=(Raw("{ ($_ | Get-Volume) -ne $Null }"),))
_EMIT_DRIVE_LETTER = Stage("Write-Output", args=(Raw(f"({DEV_DRIVE_VARIABLE}.DriveLetter + ':')"),))
_OUT_NULL = Stage("Out-Null")


def command_exists(verb: str) -> Pipeline:
    """Look up exactly one cmdlet; a missing cmdlet makes pwsh exit non-zero."""
    stage = Stage(
        "Get-Command",
        params={"Name": verb, "CommandType": Raw("Cmdlet"), "ErrorAction": Raw("Stop")},
    )
    # -ErrorAction Stop on the cmdlet keeps the exit code inside -Command
    return PipelineBuilder(stop_on_error=False).statement(stage).build()


def format_volume(spec: DiskSpec, *, native: bool) -> Stage:
    if native:
        return Stage("Format-Volume", params={"DevDrive": SWITCH, "Confirm": False, "Force": SWITCH})
    return Stage(
        "Format-Volume",
        params={"FileSystem": spec.filesystem_format.value, "Confirm": False, "Force": SWITCH},
    )


def _add_access_path(builder: PipelineBuilder, path: Path) -> PipelineBuilder:
    return builder.statement(
        Stage("Add-PartitionAccessPath", params={"AccessPath": path}),
        _OUT_NULL,
        source=DEV_DRIVE_VARIABLE,
    ).statement(Stage("Write-Output", args=(path,)))


def create_disk(spec: DiskSpec, target: MountTarget, *, native_format: bool) -> Pipeline:
    """New-VHD → Mount-VHD → Initialize-Disk → New-Partition → Format-Volume → emit path."""
    with_letter = isinstance(target, UseDriveLetter)

    mount_params = {"PassThru": SWITCH} if with_letter else {"NoDriveLetter": SWITCH, "PassThru": SWITCH}
    partition_params = (
        {"AssignDriveLetter": SWITCH, "UseMaximumSize": SWITCH} if with_letter else {"UseMaximumSize": SWITCH}
    )

    builder = (
        PipelineBuilder()
        .statement(
            Stage(
                Cmdlets.NEW_VHD,
                params={"Path": spec.image_path, "SizeBytes": spec.size_bytes, spec.disk_kind.value: SWITCH},
            ),
            Stage(Cmdlets.MOUNT_VHD, params=mount_params),
            Stage("Initialize-Disk", params={"PassThru": SWITCH}),
            Stage("New-Partition", params=partition_params),
            assign_to=DEV_DRIVE_VARIABLE,
        )
        .statement(format_volume(spec, native=native_format), _OUT_NULL, source=DEV_DRIVE_VARIABLE)
    )

    if isinstance(target, UsePath):
        return _add_access_path(builder, target.path).build()
    return builder.statement(_EMIT_DRIVE_LETTER).build()


def mount_disk(image_path: Path, target: MountTarget) -> Pipeline:
    """Mount-VHD an existing image and emit the path of its data partition."""
    mount_params: dict = {"Path": image_path}
    if isinstance(target, UsePath):
        mount_params["NoDriveLetter"] = SWITCH
    mount_params["PassThru"] = SWITCH

    builder = PipelineBuilder().statement(
        Stage(Cmdlets.MOUNT_VHD, params=mount_params),
        Stage("Get-Disk"),
        Stage("Get-Partition"),
        _HAS_VOLUME_FILTER,
        assign_to=DEV_DRIVE_VARIABLE,
    )

    if isinstance(target, UsePath):
        return _add_access_path(builder, target.path).build()
    return (
        builder.statement(Stage("Get-Volume"), assign_to=DEV_DRIVE_VARIABLE, source=DEV_DRIVE_VARIABLE)
        .statement(_EMIT_DRIVE_LETTER)
        .build()
    )


def remove_access_path(image_path: Path, mounted_path: str) -> Pipeline:
    """Detach the directory access path of the image's data partition."""
    return (
        PipelineBuilder()
        .statement(
            Stage(Cmdlets.GET_VHD, params={"Path": image_path}),
            Stage("Get-Disk"),
            Stage("Get-Partition"),
            _HAS_VOLUME_FILTER,
            Stage("Remove-PartitionAccessPath", params={"AccessPath": mounted_path}),
        )
        .build()
    )


def dismount_disk(image_path: Path) -> Pipeline:
    stage = Stage(Cmdlets.DISMOUNT_VHD, params={"Path": image_path, "ErrorAction": Raw("Stop")})
    return PipelineBuilder(stop_on_error=False).statement(stage).build()


def disable_av_filter() -> Pipeline:
    """Allow Dev Drives to run without the antivirus filter attached."""
    return (
        PipelineBuilder()
        .statement(Stage("fsutil", args=words("devdrv", "enable", "/disallowAv")))
        .statement(Stage("fsutil", args=words("devdrv", "query")))
        .build()
    )


def mark_as_trusted(mounted_path: str) -> Pipeline:
    """Clear the allowed filter list of the volume and mark it trusted."""
    return (
        PipelineBuilder()
        .statement(Stage("fsutil", args=(*words("devdrv", "clearFiltersAllowed"), mounted_path)))
        .statement(Stage("fsutil", args=(*words("devdrv", "trust", "/f"), mounted_path)))
        .statement(Stage("fsutil", args=(*words("devdrv", "query"), mounted_path)))
        .build()
    )
