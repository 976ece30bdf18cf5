"""Shared pytest fixtures for dev-drive tests.

No test launches PowerShell except the ones guarded by skip_unless_pwsh.
Everything else runs against FakeExecutor, which records each Pipeline and
answers with scripted CommandResults.
"""

import shutil
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from dev_drive.models import CommandResult, DriveContext
from dev_drive.pipeline import Pipeline, Raw
from dev_drive.platform_utils import HostOS

# ============================================================================
# Fake executor
# ============================================================================


def pipeline_key(pipeline: Pipeline) -> str:
    """Short name for the operation a pipeline performs.

    "probe:New-VHD" for cmdlet lookups, "fsutil <verb>" for Dev Drive
    configuration, otherwise the first command of the script.
    """
    first = pipeline.stages[0]
    if first.command == "Get-Command":
        return f"probe:{first.get('Name')}"
    if first.command == "fsutil":
        verb = first.args[1]
        return f"fsutil {verb.text if isinstance(verb, Raw) else verb}"
    return str(first.command)


class FakeExecutor:
    """CommandExecutor double with call recording.

    Unscripted pipelines succeed with empty output.
    """

    def __init__(self) -> None:
        self.calls: list[Pipeline] = []
        self._results: dict[str, list[CommandResult]] = {}

    def respond(self, key: str, *results: CommandResult) -> "FakeExecutor":
        """Queue results for `key`; the last one repeats once the queue drains."""
        self._results[key] = list(results)
        return self

    def fail(self, key: str, exit_code: int = 1, stderr: str = "") -> "FakeExecutor":
        return self.respond(key, CommandResult(exit_code=exit_code, stderr=stderr))

    async def execute(self, pipeline: Pipeline) -> CommandResult:
        self.calls.append(pipeline)
        queued = self._results.get(pipeline_key(pipeline))
        if not queued:
            return CommandResult(exit_code=0)
        return queued.pop(0) if len(queued) > 1 else queued[0]

    @property
    def keys(self) -> list[str]:
        return [pipeline_key(p) for p in self.calls]

    def count(self, key: str) -> int:
        return self.keys.count(key)

    def last(self, key: str) -> Pipeline:
        return next(p for p in reversed(self.calls) if pipeline_key(p) == key)


def ok(stdout: str = "") -> CommandResult:
    return CommandResult(exit_code=0, stdout=stdout)


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


# ============================================================================
# Host fixtures
# ============================================================================


@pytest.fixture
def native_context() -> DriveContext:
    """Windows 11 22H2: native Dev Drives supported."""
    return DriveContext(os_version=(10, 0, 22631))


@pytest.fixture
def legacy_context() -> DriveContext:
    """Windows Server 2022: no native Dev Drives."""
    return DriveContext(os_version=(10, 0, 20348))


@pytest.fixture
def accessible_mounts() -> Iterator[AsyncMock]:
    """Make every mounted path pass the read/write check (drive letters don't exist here)."""
    with patch("dev_drive.verifier.can_access", AsyncMock(return_value=True)) as mock:
        yield mock


@pytest.fixture
def windows_host() -> Iterator[None]:
    with patch("dev_drive.actions.detect_host_os", return_value=HostOS.WINDOWS):
        yield


@pytest.fixture
def image_path(tmp_path: Path) -> Path:
    return tmp_path / "images" / "dev_drive.vhdx"


@pytest.fixture
def mount_dir(tmp_path: Path) -> Path:
    path = tmp_path / "mnt"
    path.mkdir()
    return path


# ============================================================================
# Shared Skip Markers
# ============================================================================

skip_unless_pwsh = pytest.mark.skipif(
    shutil.which("pwsh") is None and shutil.which("pwsh.exe") is None,
    reason="This test requires PowerShell 7 (pwsh) on PATH",
)
