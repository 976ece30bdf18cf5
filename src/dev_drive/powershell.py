"""PowerShell command executor.

Runs one Pipeline per pwsh process and captures stdout/stderr as whole
strings. A non-zero exit code is data, not an error: callers inspect the
returned CommandResult and decide. The executor only raises when pwsh
cannot be launched or the optional timeout elapses.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, Protocol

from dev_drive import constants
from dev_drive._logging import get_logger
from dev_drive.exceptions import CommandTimeoutError, DevDriveDependencyError
from dev_drive.models import CommandResult

if TYPE_CHECKING:
    from dev_drive.pipeline import Pipeline
    from dev_drive.settings import Settings

logger = get_logger(__name__)


class CommandExecutor(Protocol):
    """Anything that can run a Pipeline and report its outcome."""

    async def execute(self, pipeline: Pipeline) -> CommandResult: ...


class PowerShellExecutor:
    """Execute pipelines with `pwsh -NoProfile -NonInteractive -Command`.

    The script is wrapped in a dot-sourced script block so that, together
    with `$ErrorActionPreference = 'Stop'`, the first failing stage aborts
    the rest and pwsh exits non-zero.

    Args:
        powershell_bin: Executable to launch
        timeout_seconds: Upper bound for one whole invocation (None = unbounded)
    """

    def __init__(
        self,
        powershell_bin: str = constants.POWERSHELL_BIN,
        timeout_seconds: float | None = None,
    ) -> None:
        self.powershell_bin = powershell_bin
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> PowerShellExecutor:
        return cls(powershell_bin=settings.powershell_bin, timeout_seconds=settings.command_timeout_seconds)

    def build_args(self, pipeline: Pipeline) -> list[str]:
        return [self.powershell_bin, *constants.POWERSHELL_ARGS, f". {{ {pipeline.render()} }}"]

    async def execute(self, pipeline: Pipeline) -> CommandResult:
        args = self.build_args(pipeline)
        logger.debug(f"Executing the following command:\n{pipeline.render()}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise DevDriveDependencyError(
                f"Failed to launch {self.powershell_bin}: {e}",
                context={"powershell_bin": self.powershell_bin},
            ) from e

        try:
            async with asyncio.timeout(self.timeout_seconds):
                stdout, stderr = await proc.communicate()
        except TimeoutError as e:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            raise CommandTimeoutError(
                f"PowerShell command did not finish within {self.timeout_seconds}s",
                context={"timeout_seconds": self.timeout_seconds, "commands": pipeline.commands()},
            ) from e

        # Trim because captured streams end with newlines
        result = CommandResult(
            exit_code=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout.decode(errors="replace").strip(),
            stderr=stderr.decode(errors="replace").strip(),
        )
        logger.debug(f"Command finished with exit code {result.exit_code}.")
        logger.debug(f"Command stdout:\n{result.stdout}")
        logger.debug(f"Command stderr:\n{result.stderr}")
        return result
