"""Command-line interface for dev-drive.

Usage:
    dev-drive setup --drive-size 10GB --drive-format ReFS
    dev-drive setup --drive-path D:/dev_drive.vhdx --mount-path C:/dev --workspace-copy
    dev-drive cleanup

Every setup option falls back to the runner's INPUT_<NAME> variable, so the
commands can back a composite action without extra glue.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import NoReturn

import click
from pydantic import ValidationError

from dev_drive import __version__
from dev_drive._logging import configure_logging
from dev_drive.actions import run_cleanup, run_setup
from dev_drive.config import SetupConfig
from dev_drive.disk_manager import DiskManager
from dev_drive.exceptions import (
    CapabilityMissingError,
    CommandTimeoutError,
    DevDriveDependencyError,
    DevDriveError,
    InputValidationError,
)
from dev_drive.models import AttachedDrive, DriveContext, DriveState, FileSystemFormat
from dev_drive.powershell import PowerShellExecutor
from dev_drive.runner_state import RunnerState
from dev_drive.settings import Settings

# Exit codes following Unix conventions
EXIT_SUCCESS = 0
EXIT_CLI_ERROR = 2
EXIT_TIMEOUT = 124  # Matches `timeout` command
EXIT_DEV_DRIVE_ERROR = 125


def _input(name: str) -> str:
    """Runner env var for an action input (`drive-size` -> `INPUT_DRIVE-SIZE`)."""
    return f"INPUT_{name.upper()}"


def format_error(title: str, message: str, suggestions: list[str] | None = None) -> str:
    """Format an error message following What → Why → Fix pattern."""
    lines = [
        click.style(f"Error: {title}", fg="red", bold=True),
        "",
        f"  {message}",
    ]

    if suggestions:
        lines.extend(["", "  Suggestions:"])
        lines.extend(f"    • {suggestion}" for suggestion in suggestions)

    return "\n".join(lines)


def report_error(exc: DevDriveError) -> int:
    """Print `exc` for humans and map it to an exit code."""
    if isinstance(exc, InputValidationError):
        click.echo(format_error("Invalid input", exc.message), err=True)
        return EXIT_CLI_ERROR

    if isinstance(exc, CommandTimeoutError):
        click.echo(
            format_error(
                "PowerShell timed out",
                exc.message,
                ["Raise DEV_DRIVE_COMMAND_TIMEOUT_SECONDS", "Use a Dynamic drive; Fixed drives are allocated up front"],
            ),
            err=True,
        )
        return EXIT_TIMEOUT

    if isinstance(exc, CapabilityMissingError):
        click.echo(
            format_error(
                "Hyper-V cmdlets not available",
                exc.message,
                [
                    "Enable the Hyper-V feature and its PowerShell module",
                    "Run on Windows Server 2022 / Windows 11 or later",
                ],
            ),
            err=True,
        )
        return EXIT_DEV_DRIVE_ERROR

    if isinstance(exc, DevDriveDependencyError):
        click.echo(
            format_error(
                "PowerShell not found",
                exc.message,
                ["Install PowerShell 7", "Point DEV_DRIVE_POWERSHELL_BIN at pwsh.exe"],
            ),
            err=True,
        )
        return EXIT_DEV_DRIVE_ERROR

    click.echo(format_error("Dev Drive error", exc.message), err=True)
    return EXIT_DEV_DRIVE_ERROR


def _build_manager(settings: Settings, context: DriveContext, state: DriveState = DriveState.UNATTACHED) -> DiskManager:
    return DiskManager(
        PowerShellExecutor.from_settings(settings),
        context,
        state=state,
        native_min_version=settings.native_dev_drive_min_version,
    )


def _configure(quiet: bool, verbose: bool, context: DriveContext) -> None:
    configure_logging(
        level=logging.DEBUG if verbose else None,
        quiet=quiet,
        github_actions=context.github_actions,
    )


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "-V", "--version", prog_name="dev-drive")
def main() -> None:
    """Create, mount and remove a Windows Dev Drive for CI jobs."""


@main.command()
@click.option("--drive-size", envvar=_input("drive-size"), default="1GB", show_default=True, help="Image size")
@click.option(
    "--drive-format",
    envvar=_input("drive-format"),
    type=click.Choice([f.value for f in FileSystemFormat], case_sensitive=False),
    default="ReFS",
    show_default=True,
    help="Filesystem of the drive",
)
@click.option("--drive-path", envvar=_input("drive-path"), default="dev_drive.vhdx", show_default=True)
@click.option("--drive-type", envvar=_input("drive-type"), default="Dynamic", show_default=True, help="Fixed or Dynamic")
@click.option("--mount-path", envvar=_input("mount-path"), default="", help="Mount directory instead of a drive letter")
@click.option("--mount-if-exists/--no-mount-if-exists", envvar=_input("mount-if-exists"), default=False)
@click.option("--workspace-copy/--no-workspace-copy", envvar=_input("workspace-copy"), default=False)
@click.option("--native-dev-drive/--no-native-dev-drive", envvar=_input("native-dev-drive"), default=True)
@click.option("--trusted-dev-drive/--no-trusted-dev-drive", envvar=_input("trusted-dev-drive"), default=False)
@click.option(
    "--env-mapping",
    envvar=_input("env-mapping"),
    default="",
    help="Newline separated 'NAME, {{ DEV_DRIVE }}/suffix' entries",
)
@click.option("-q", "--quiet", is_flag=True, help="Only print errors")
@click.option("-v", "--verbose", is_flag=True, help="Print every PowerShell command")
def setup(
    drive_size: str,
    drive_format: str,
    drive_path: str,
    drive_type: str,
    mount_path: str,
    mount_if_exists: bool,
    workspace_copy: bool,
    native_dev_drive: bool,
    trusted_dev_drive: bool,
    env_mapping: str,
    quiet: bool,
    verbose: bool,
) -> NoReturn:
    """Create (or mount) the Dev Drive and export DEV_DRIVE / DEV_DRIVE_PATH."""
    context = DriveContext.from_environment()
    _configure(quiet, verbose, context)

    try:
        config = SetupConfig(
            drive_size=drive_size,
            drive_format=drive_format,
            drive_path=drive_path,
            drive_type=drive_type,
            mount_path=mount_path,
            mount_if_exists=mount_if_exists,
            workspace_copy=workspace_copy,
            native_dev_drive=native_dev_drive,
            trusted_dev_drive=trusted_dev_drive,
            env_mapping=tuple(line.strip() for line in env_mapping.splitlines() if line.strip()),
        )
    except ValidationError as exc:
        raise click.UsageError(str(exc)) from exc

    manager = _build_manager(Settings(), context)
    try:
        result = asyncio.run(run_setup(config, manager=manager))
    except DevDriveError as exc:
        sys.exit(report_error(exc))

    if result is not None and not quiet:
        click.echo(result.drive.mounted_path)
    sys.exit(EXIT_SUCCESS)


@main.command()
@click.option("--drive-path", default=None, help="Image to dismount (default: saved by setup)")
@click.option("--mounted-path", default=None, help="Mounted path (default: saved by setup)")
@click.option("-q", "--quiet", is_flag=True, help="Only print errors")
@click.option("-v", "--verbose", is_flag=True, help="Print every PowerShell command")
def cleanup(drive_path: str | None, mounted_path: str | None, quiet: bool, verbose: bool) -> NoReturn:
    """Dismount the Dev Drive. Failing teardown phases only warn."""
    context = DriveContext.from_environment()
    _configure(quiet, verbose, context)

    state = RunnerState()
    drive = state.load_attached_drive()
    if drive_path:
        drive = AttachedDrive(
            image_path=Path(drive_path),
            mounted_path=mounted_path if mounted_path is not None else (drive.mounted_path if drive else ""),
        )
    elif drive is not None and mounted_path is not None:
        drive = drive.model_copy(update={"mounted_path": mounted_path})

    manager = _build_manager(Settings(), context, state=DriveState.ATTACHED)
    try:
        asyncio.run(run_cleanup(manager=manager, state=state, drive=drive))
    except DevDriveError as exc:
        sys.exit(report_error(exc))

    sys.exit(EXIT_SUCCESS)


if __name__ == "__main__":
    main()
