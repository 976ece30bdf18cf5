"""Host capability probes.

Two kinds of probe:
- Cmdlet presence: one `Get-Command` round-trip per check, never cached,
  because the Hyper-V module can be installed between setup and cleanup.
- Native Dev Drive support: a pure predicate over the parsed OS version,
  testable without PowerShell.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from dev_drive import constants, vhd_commands
from dev_drive._logging import get_logger
from dev_drive.exceptions import CapabilityMissingError

if TYPE_CHECKING:
    from dev_drive.powershell import CommandExecutor

logger = get_logger(__name__)

_VERSION_PART_RE = re.compile(r"^(\d+)")


async def probe_command(executor: CommandExecutor, verb: str) -> int:
    """Return the exit code of looking up `verb` (0 means present)."""
    result = await executor.execute(vhd_commands.command_exists(verb))
    logger.debug(
        f"Probed {verb}: exit code {result.exit_code}",
        extra={"verb": verb, "exit_code": result.exit_code},
    )
    return result.exit_code


async def require_command(executor: CommandExecutor, verb: str) -> None:
    """Fail fast with CapabilityMissingError when `verb` is not available.

    Raises:
        CapabilityMissingError: Lookup exited non-zero
    """
    exit_code = await probe_command(executor, verb)
    if exit_code != 0:
        raise CapabilityMissingError(verb, exit_code)


def parse_os_version(version: str) -> tuple[int, ...]:
    """Parse "10.0.22621" (or "10.0.22621.1992") into an int tuple.

    Trailing non-digits in a component are ignored ("22621-rc" -> 22621).

    Raises:
        ValueError: Empty string or a component without leading digits
    """
    if not version or not version.strip():
        raise ValueError("Empty OS version")
    parts: list[int] = []
    for component in version.strip().split("."):
        match = _VERSION_PART_RE.match(component)
        if not match:
            raise ValueError(f"Unparseable OS version '{version}'")
        parts.append(int(match.group(1)))
    return tuple(parts)


def supports_native_dev_drive(
    os_version: tuple[int, ...] | None,
    minimum: tuple[int, ...] | str = constants.NATIVE_DEV_DRIVE_WIN_VERSION,
) -> bool:
    """True when the OS build can format native Dev Drives (`Format-Volume -DevDrive`).

    Missing components compare as zero, so (10, 0, 22621) == (10, 0, 22621, 0).
    An unknown version is treated as unsupported.
    """
    if os_version is None:
        return False
    if isinstance(minimum, str):
        minimum = parse_os_version(minimum)
    width = max(len(os_version), len(minimum))
    padded = os_version + (0,) * (width - len(os_version))
    floor = minimum + (0,) * (width - len(minimum))
    return padded >= floor
