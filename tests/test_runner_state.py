"""Tests for runner env/state export."""

import re
from pathlib import Path
from unittest.mock import patch

import pytest

from dev_drive.exceptions import StateExportError
from dev_drive.models import AttachedDrive
from dev_drive.runner_state import RunnerState, format_file_command

_RECORD_RE = re.compile(r"^(?P<name>[^<\n]+)<<(?P<delim>ghadelimiter_[0-9a-f-]+)\n(?P<value>.*)\n(?P=delim)\n", re.DOTALL)


def _records(text: str) -> dict[str, str]:
    values = {}
    while text:
        match = _RECORD_RE.match(text)
        assert match, f"not a heredoc record: {text!r}"
        values[match["name"]] = match["value"]
        text = text[match.end() :]
    return values


class TestFormatFileCommand:
    """Tests for format_file_command()."""

    def test_heredoc(self) -> None:
        record = format_file_command("DEV_DRIVE", "E:")
        assert _records(record) == {"DEV_DRIVE": "E:"}

    def test_multiline_value(self) -> None:
        assert _records(format_file_command("X", "a\nb")) == {"X": "a\nb"}

    def test_delimiter_collision(self) -> None:
        with (
            patch("dev_drive.runner_state.uuid.uuid4", return_value="fixed"),
            pytest.raises(StateExportError, match="delimiter"),
        ):
            format_file_command("X", "ghadelimiter_fixed")


class TestRunnerState:
    """Tests for RunnerState."""

    @pytest.fixture
    def files(self, tmp_path: Path) -> dict[str, Path]:
        return {"GITHUB_ENV": tmp_path / "env", "GITHUB_STATE": tmp_path / "state"}

    async def test_export_variable_writes_env_file(self, files: dict[str, Path]) -> None:
        environ = {k: str(v) for k, v in files.items()}
        state = RunnerState(environ)
        await state.export_variable("DEV_DRIVE", "E:")

        assert environ["DEV_DRIVE"] == "E:"
        assert _records(files["GITHUB_ENV"].read_text(encoding="utf-8")) == {"DEV_DRIVE": "E:"}

    async def test_export_without_runner(self) -> None:
        environ: dict[str, str] = {}
        await RunnerState(environ).export_variable("DEV_DRIVE", "E:")
        assert environ == {"DEV_DRIVE": "E:"}

    async def test_save_state_writes_state_file(self, files: dict[str, Path]) -> None:
        environ = {k: str(v) for k, v in files.items()}
        await RunnerState(environ).save_state("DEV_DRIVE_PATH", "D:\\dev.vhdx")
        assert _records(files["GITHUB_STATE"].read_text(encoding="utf-8")) == {"DEV_DRIVE_PATH": "D:\\dev.vhdx"}
        assert "STATE_DEV_DRIVE_PATH" not in environ

    async def test_state_round_trip_in_process(self) -> None:
        state = RunnerState({})
        await state.save_state("DEV_DRIVE", "E:")
        assert state.get_state("DEV_DRIVE") == "E:"
        assert state.get_state("MISSING") == ""

    async def test_attached_drive_round_trip(self, tmp_path: Path) -> None:
        environ: dict[str, str] = {}
        state = RunnerState(environ)
        drive = AttachedDrive(image_path=tmp_path / "dev.vhdx", mounted_path="E:")
        await state.save_attached_drive(drive)

        assert environ["DEV_DRIVE"] == "E:"
        assert environ["DEV_DRIVE_PATH"] == str(tmp_path / "dev.vhdx")
        assert state.load_attached_drive() == drive

    async def test_attached_drive_published_to_runner(self, files: dict[str, Path], tmp_path: Path) -> None:
        environ = {k: str(v) for k, v in files.items()}
        drive = AttachedDrive(image_path=tmp_path / "dev.vhdx", mounted_path="E:")
        await RunnerState(environ).save_attached_drive(drive)

        expected = {"DEV_DRIVE": "E:", "DEV_DRIVE_PATH": str(tmp_path / "dev.vhdx")}
        assert _records(files["GITHUB_ENV"].read_text(encoding="utf-8")) == expected
        assert _records(files["GITHUB_STATE"].read_text(encoding="utf-8")) == expected

    def test_post_step_reads_state_vars(self) -> None:
        """The runner hands saved state back as STATE_<name>."""
        state = RunnerState({"STATE_DEV_DRIVE": "C:\\mnt", "STATE_DEV_DRIVE_PATH": "D:\\dev.vhdx"})
        drive = state.load_attached_drive()
        assert drive is not None
        assert drive.mounted_path == "C:\\mnt"
        assert drive.image_path == Path("D:\\dev.vhdx")

    def test_nothing_saved(self) -> None:
        assert RunnerState({}).load_attached_drive() is None
