"""Tests for the setup and cleanup steps."""

import logging
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from dev_drive.actions import normalize_drive_path, normalize_mount_path, run_cleanup, run_setup, validate_drive_type
from dev_drive.config import SetupConfig
from dev_drive.disk_manager import DiskManager
from dev_drive.exceptions import InputValidationError
from dev_drive.models import AttachedDrive, DiskKind, DriveContext, DriveState, FileSystemFormat
from dev_drive.platform_utils import HostOS
from dev_drive.runner_state import RunnerState
from tests.conftest import FakeExecutor, ok

# ============================================================================
# Input normalization
# ============================================================================


class TestNormalize:
    """Tests for the input normalizers."""

    def test_absolute_drive_path(self, image_path: Path) -> None:
        assert normalize_drive_path(str(image_path)) == image_path

    def test_relative_drive_path_uses_drive_root(self) -> None:
        assert normalize_drive_path("dev_drive.vhdx") == Path(Path.cwd().anchor) / "dev_drive.vhdx"

    def test_uppercase_extension(self, tmp_path: Path) -> None:
        assert normalize_drive_path(str(tmp_path / "D.VHDX")).name == "D.VHDX"

    @pytest.mark.parametrize("name", ["dev_drive.vhd", "dev_drive", "dev.vhdx.bak"])
    def test_wrong_extension(self, name: str) -> None:
        with pytest.raises(InputValidationError, match="ends with .vhdx"):
            normalize_drive_path(name)

    def test_drive_type(self) -> None:
        assert validate_drive_type("Fixed") is DiskKind.FIXED
        with pytest.raises(InputValidationError, match="Fixed or Dynamic"):
            validate_drive_type("fixed")

    def test_mount_path_empty(self) -> None:
        assert normalize_mount_path("", FileSystemFormat.REFS) is None

    def test_mount_path_absolutized(self, tmp_path: Path) -> None:
        assert normalize_mount_path(f"{tmp_path}/a/../mnt", FileSystemFormat.NTFS) == tmp_path / "mnt"

    @pytest.mark.parametrize("fmt", [FileSystemFormat.FAT32, FileSystemFormat.EXFAT])
    def test_mount_path_unsupported_format(
        self, tmp_path: Path, fmt: FileSystemFormat, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="dev_drive"):
            assert normalize_mount_path(str(tmp_path), fmt) is None
        assert "Using Drive Letter instead" in caplog.text


# ============================================================================
# Setup
# ============================================================================


@pytest.fixture
def environ() -> dict[str, str]:
    return {}


@pytest.fixture
def state(environ: dict[str, str]) -> RunnerState:
    return RunnerState(environ)


@pytest.fixture
def manager(executor: FakeExecutor, native_context: DriveContext) -> DiskManager:
    return DiskManager(executor, native_context)


class TestRunSetup:
    """Tests for run_setup()."""

    async def test_not_windows(self, manager: DiskManager, executor: FakeExecutor, state: RunnerState) -> None:
        with patch("dev_drive.actions.detect_host_os", return_value=HostOS.LINUX):
            assert await run_setup(SetupConfig(), manager=manager, state=state) is None
        assert not executor.calls

    async def test_create_with_drive_letter(
        self,
        windows_host: None,
        accessible_mounts: AsyncMock,
        manager: DiskManager,
        executor: FakeExecutor,
        state: RunnerState,
        environ: dict[str, str],
        image_path: Path,
    ) -> None:
        executor.respond("New-VHD", ok("E:"))
        config = SetupConfig(drive_path=str(image_path), drive_size="10GB", trusted_dev_drive=True)

        result = await run_setup(config, manager=manager, state=state)

        assert result is not None
        assert result.created
        assert result.drive == AttachedDrive(image_path=image_path, mounted_path="E:")
        assert environ["DEV_DRIVE"] == "E:"
        assert environ["DEV_DRIVE_PATH"] == str(image_path)
        assert environ["STATE_DEV_DRIVE_PATH"] == str(image_path)
        new_vhd = executor.last("New-VHD").find("New-VHD")
        assert new_vhd is not None and new_vhd.get("SizeBytes") == 10 * 1024**3
        assert executor.count("fsutil clearFiltersAllowed") == 1

    async def test_creates_mount_directory(
        self,
        windows_host: None,
        manager: DiskManager,
        executor: FakeExecutor,
        state: RunnerState,
        image_path: Path,
        tmp_path: Path,
    ) -> None:
        mount = tmp_path / "mnt" / "dev"
        executor.respond("New-VHD", ok(str(mount)))
        config = SetupConfig(drive_path=str(image_path), mount_path=str(mount))

        result = await run_setup(config, manager=manager, state=state)

        assert mount.is_dir()
        assert result is not None and result.drive.mounted_path == str(mount)
        assert executor.last("New-VHD").find("Add-PartitionAccessPath") is not None

    async def test_mount_if_exists(
        self,
        windows_host: None,
        accessible_mounts: AsyncMock,
        manager: DiskManager,
        executor: FakeExecutor,
        state: RunnerState,
        image_path: Path,
    ) -> None:
        image_path.parent.mkdir(parents=True)
        image_path.write_bytes(b"")
        executor.respond("Mount-VHD", ok("F:"))
        config = SetupConfig(drive_path=str(image_path), mount_if_exists=True)

        result = await run_setup(config, manager=manager, state=state)

        assert result is not None and not result.created
        assert executor.keys == ["probe:Mount-VHD", "Mount-VHD"]

    async def test_mount_if_exists_falls_back_to_create(
        self,
        windows_host: None,
        accessible_mounts: AsyncMock,
        manager: DiskManager,
        executor: FakeExecutor,
        state: RunnerState,
        image_path: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        executor.respond("New-VHD", ok("E:"))
        config = SetupConfig(drive_path=str(image_path), mount_if_exists=True)

        with caplog.at_level(logging.WARNING, logger="dev_drive"):
            result = await run_setup(config, manager=manager, state=state)

        assert result is not None and result.created
        assert "Dev Drive did not exist, will create instead." in caplog.text
        assert "Mount-VHD" not in executor.keys

    async def test_invalid_inputs_touch_nothing(
        self, windows_host: None, manager: DiskManager, executor: FakeExecutor, state: RunnerState
    ) -> None:
        with pytest.raises(InputValidationError):
            await run_setup(SetupConfig(drive_path="dev.vhd"), manager=manager, state=state)
        with pytest.raises(InputValidationError):
            await run_setup(SetupConfig(drive_type="Sparse"), manager=manager, state=state)
        assert not executor.calls

    async def test_workspace_copy_without_workspace(
        self, windows_host: None, manager: DiskManager, executor: FakeExecutor, state: RunnerState, image_path: Path
    ) -> None:
        config = SetupConfig(drive_path=str(image_path), workspace_copy=True)
        with pytest.raises(InputValidationError, match="Github Workspace does not exist!"):
            await run_setup(config, manager=manager, state=state)
        assert not executor.calls

    async def test_workspace_copy_and_env_mapping(
        self,
        windows_host: None,
        executor: FakeExecutor,
        state: RunnerState,
        environ: dict[str, str],
        image_path: Path,
        mount_dir: Path,
        tmp_path: Path,
    ) -> None:
        workspace = tmp_path / "repo"
        workspace.mkdir()
        (workspace / "file.txt").write_text("x")
        manager = DiskManager(executor, DriveContext(os_version=(10, 0, 22631), workspace=workspace))
        executor.respond("New-VHD", ok(str(mount_dir)))
        config = SetupConfig(
            drive_path=str(image_path),
            mount_path=str(mount_dir),
            workspace_copy=True,
            env_mapping=("CARGO_HOME, {{ DEV_DRIVE }}/.cargo", "SRC, {{ DEV_DRIVE_WORKSPACE }}/src"),
        )

        result = await run_setup(config, manager=manager, state=state)

        assert result is not None
        assert result.workspace == mount_dir / "repo"
        assert (mount_dir / "repo" / "file.txt").exists()
        assert environ["DEV_DRIVE_WORKSPACE"] == str(mount_dir / "repo")
        assert result.env_mapping == {
            "CARGO_HOME": f"{mount_dir}/.cargo",
            "SRC": f"{mount_dir / 'repo'}/src",
        }
        assert environ["CARGO_HOME"] == f"{mount_dir}/.cargo"

    async def test_env_mapping_without_workspace_value(
        self,
        windows_host: None,
        accessible_mounts: AsyncMock,
        manager: DiskManager,
        executor: FakeExecutor,
        state: RunnerState,
        image_path: Path,
    ) -> None:
        executor.respond("New-VHD", ok("E:"))
        config = SetupConfig(drive_path=str(image_path), env_mapping=("NPM, {{ DEV_DRIVE_WORKSPACE }}/.npm",))
        result = await run_setup(config, manager=manager, state=state)
        assert result is not None and result.env_mapping == {}


# ============================================================================
# Cleanup
# ============================================================================


class TestRunCleanup:
    """Tests for run_cleanup()."""

    @pytest.fixture
    def attached(self, executor: FakeExecutor, native_context: DriveContext) -> DiskManager:
        return DiskManager(executor, native_context, state=DriveState.ATTACHED)

    async def test_uses_saved_state(
        self, windows_host: None, attached: DiskManager, executor: FakeExecutor, image_path: Path
    ) -> None:
        state = RunnerState({"STATE_DEV_DRIVE": "E:", "STATE_DEV_DRIVE_PATH": str(image_path)})
        report = await run_cleanup(manager=attached, state=state)

        assert report is not None and report.exit_code == 0
        assert executor.last("Dismount-VHD").find("Dismount-VHD").get("Path") == image_path  # type: ignore[union-attr]

    async def test_nothing_recorded(
        self, windows_host: None, attached: DiskManager, executor: FakeExecutor, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="dev_drive"):
            assert await run_cleanup(manager=attached, state=RunnerState({})) is None
        assert not executor.calls
        assert "nothing to remove" in caplog.text

    async def test_explicit_drive(
        self, windows_host: None, attached: DiskManager, executor: FakeExecutor, image_path: Path
    ) -> None:
        drive = AttachedDrive(image_path=image_path, mounted_path="C:\\mnt")
        await run_cleanup(manager=attached, state=RunnerState({}), drive=drive)
        assert executor.keys == ["probe:Dismount-VHD", "probe:Get-VHD", "Get-VHD", "Dismount-VHD"]

    async def test_failure_logged_not_raised(
        self,
        windows_host: None,
        attached: DiskManager,
        executor: FakeExecutor,
        image_path: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        executor.fail("Dismount-VHD", exit_code=3)
        drive = AttachedDrive(image_path=image_path, mounted_path="E:")
        with caplog.at_level(logging.INFO, logger="dev_drive"):
            report = await run_cleanup(manager=attached, state=RunnerState({}), drive=drive)
        assert report is not None and report.exit_code == 3
        assert "Removal finished with exit code 3." in caplog.text

    async def test_not_windows(self, attached: DiskManager, executor: FakeExecutor) -> None:
        with patch("dev_drive.actions.detect_host_os", return_value=HostOS.MACOS):
            assert await run_cleanup(manager=attached, state=RunnerState({})) is None
        assert not executor.calls
