"""Create, mount and dismount the Dev Drive.

DiskManager owns the lifecycle of exactly one VHDX per invocation:

    UNATTACHED --create|mount--> ATTACHED(path) --dismount--> DETACHED

Create and mount are fail-fast: a missing cmdlet, a failing script or an
inaccessible result raises. Dismount is best-effort: each phase that exits
non-zero is logged as a PartialTeardownWarning and the next phase still runs,
so a half-removed volume never blocks the rest of the job.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from dev_drive import constants, vhd_commands
from dev_drive._logging import get_logger
from dev_drive.constants import Cmdlets
from dev_drive.exceptions import InvalidStateTransitionError, PartialTeardownWarning, PipelineExecutionError
from dev_drive.models import VALID_STATE_TRANSITIONS, DriveContext, DriveState, TrustPolicy
from dev_drive.mount_strategy import select_mount_strategy
from dev_drive.system_probes import require_command, supports_native_dev_drive
from dev_drive.verifier import is_drive_letter, resolve_and_verify

if TYPE_CHECKING:
    from pathlib import Path

    from dev_drive.models import DiskSpec
    from dev_drive.pipeline import Pipeline
    from dev_drive.powershell import CommandExecutor

logger = get_logger(__name__)

PHASE_REMOVE_ACCESS_PATH = "remove-access-path"
PHASE_DISMOUNT_DISK = "dismount-disk"


@dataclass
class DismountReport:
    """What teardown did. exit_code is the last phase's, for information only."""

    exit_code: int = 0
    phases: list[str] = field(default_factory=list)
    warnings: list[PartialTeardownWarning] = field(default_factory=list)


class DiskManager:
    """Run the VHD lifecycle through a CommandExecutor.

    Args:
        executor: Runs pipelines (PowerShellExecutor in production)
        context: Host facts gathered once by the front end
        state: Starting lifecycle state; cleanup starts from ATTACHED
        native_min_version: First OS build with native Dev Drive support
    """

    def __init__(
        self,
        executor: CommandExecutor,
        context: DriveContext | None = None,
        *,
        state: DriveState = DriveState.UNATTACHED,
        native_min_version: str = constants.NATIVE_DEV_DRIVE_WIN_VERSION,
    ) -> None:
        self.executor = executor
        self.context = context or DriveContext()
        self.native_min_version = native_min_version
        self._state = state
        self.mounted_path: str | None = None

    @property
    def state(self) -> DriveState:
        return self._state

    def _check_transition(self, new_state: DriveState) -> None:
        allowed = VALID_STATE_TRANSITIONS.get(self._state, set())
        if new_state not in allowed:
            raise InvalidStateTransitionError(
                f"Invalid state transition: {self._state.value} -> {new_state.value}",
                context={
                    "current_state": self._state.value,
                    "target_state": new_state.value,
                    "allowed_transitions": [s.value for s in allowed],
                },
            )

    def _transition(self, new_state: DriveState) -> None:
        self._check_transition(new_state)
        old_state = self._state
        self._state = new_state
        logger.debug(
            "Drive state transition",
            extra={"old_state": old_state.value, "new_state": new_state.value},
        )

    def trust_policy(self, *, native_mode_requested: bool, trust_requested: bool) -> TrustPolicy:
        """Combine the caller's requests with what this host supports."""
        supported = supports_native_dev_drive(self.context.os_version, self.native_min_version)
        logger.debug(f"Windows Version {self.context.os_version}. Native Dev Drive? {supported}")
        return TrustPolicy(
            native_mode_requested=native_mode_requested,
            trust_requested=trust_requested,
            os_supports_native_mode=supported,
        )

    async def create(self, spec: DiskSpec, mount_path: str | Path | None, trust: TrustPolicy) -> str:
        """Create, partition and format a new VHDX and return its mounted path.

        Raises:
            CapabilityMissingError: New-VHD is not available
            PipelineExecutionError: The create script wrote to stderr or exited non-zero
            UnverifiedMountError: The reported path is not accessible
        """
        self._check_transition(DriveState.ATTACHED)
        native_format = trust.use_native_format(spec.filesystem_format)
        mark_as_trusted = trust.mark_as_trusted(spec.filesystem_format)

        await require_command(self.executor, Cmdlets.NEW_VHD)

        target = await select_mount_strategy(mount_path)
        pipeline = vhd_commands.create_disk(spec, target, native_format=native_format)

        if mark_as_trusted:
            logger.info("Disabling AV filters for dev drives.")
            await self._run_best_effort(vhd_commands.disable_av_filter(), "Disabling AV filters")

        mounted_path = await self._run_mount_or_create(pipeline)

        if mark_as_trusted:
            logger.info(f"Marking dev drive at {mounted_path} as trusted.")
            await self._run_best_effort(vhd_commands.mark_as_trusted(mounted_path), "Marking dev drive as trusted")

        self._attach(mounted_path)
        return mounted_path

    async def mount(self, image_path: Path, mount_path: str | Path | None) -> str:
        """Attach an existing VHDX and return the path of its data volume.

        Raises:
            CapabilityMissingError: Mount-VHD is not available
            PipelineExecutionError: The mount script wrote to stderr or exited non-zero
            UnverifiedMountError: The reported path is not accessible
        """
        self._check_transition(DriveState.ATTACHED)
        await require_command(self.executor, Cmdlets.MOUNT_VHD)

        target = await select_mount_strategy(mount_path)
        mounted_path = await self._run_mount_or_create(vhd_commands.mount_disk(image_path, target))

        self._attach(mounted_path)
        return mounted_path

    async def dismount(self, image_path: Path, mounted_path: str) -> DismountReport:
        """Remove the directory access path (if any), then detach the VHDX.

        Phase failures never raise; they are logged and collected in the report.

        Raises:
            CapabilityMissingError: A cmdlet needed by a phase is not available
        """
        self._check_transition(DriveState.DETACHED)
        is_mounted_folder = bool(mounted_path) and not is_drive_letter(mounted_path)

        await require_command(self.executor, Cmdlets.DISMOUNT_VHD)
        if is_mounted_folder:
            await require_command(self.executor, Cmdlets.GET_VHD)
        elif not mounted_path:
            logger.warning("No mounted path recorded, skipping partition access path removal.")

        report = DismountReport()

        if is_mounted_folder:
            logger.info(f"Removing partition at '{mounted_path}'.")
            await self._run_phase(
                report, PHASE_REMOVE_ACCESS_PATH, mounted_path, vhd_commands.remove_access_path(image_path, mounted_path)
            )

        logger.info(f"Dismounting disk at '{image_path}'.")
        await self._run_phase(report, PHASE_DISMOUNT_DISK, str(image_path), vhd_commands.dismount_disk(image_path))

        self._transition(DriveState.DETACHED)
        self.mounted_path = None
        return report

    def _attach(self, mounted_path: str) -> None:
        self._transition(DriveState.ATTACHED)
        self.mounted_path = mounted_path

    async def _run_mount_or_create(self, pipeline: Pipeline) -> str:
        result = await self.executor.execute(pipeline)
        if not result.ok:
            logger.error(f"Failed to setup Dev Drive with exit code {result.exit_code}.")
            raise PipelineExecutionError(result.stderr, result.exit_code, context={"commands": pipeline.commands()})
        return await resolve_and_verify(result.stdout)

    async def _run_best_effort(self, pipeline: Pipeline, description: str) -> int:
        result = await self.executor.execute(pipeline)
        if result.exit_code != 0:
            logger.warning(
                f"{description} failed with exit code {result.exit_code}. {result.stderr}".rstrip(),
                extra={"exit_code": result.exit_code},
            )
        elif result.stdout:
            logger.info(result.stdout)
        return result.exit_code

    async def _run_phase(self, report: DismountReport, phase: str, target: str, pipeline: Pipeline) -> None:
        result = await self.executor.execute(pipeline)
        report.phases.append(phase)
        report.exit_code = result.exit_code
        if result.exit_code != 0:
            warning = PartialTeardownWarning(phase, result.exit_code, target)
            report.warnings.append(warning)
            logger.warning(str(warning), extra={"phase": phase, "exit_code": result.exit_code})
