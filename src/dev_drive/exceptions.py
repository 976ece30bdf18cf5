"""Exception hierarchy for dev-drive.

All exceptions inherit from DevDriveError base class.

Hierarchy:
    DevDriveError (base)
    ├── PermanentError (non-retryable marker base)
    │   ├── CapabilityMissingError     ← PowerShell cmdlet not available
    │   ├── PipelineExecutionError     ← create/mount script failed
    │   ├── UnverifiedMountError       ← mounted path not accessible
    │   └── InvalidStateTransitionError
    ├── DevDriveDependencyError        ← pwsh.exe cannot be launched
    ├── CommandTimeoutError            ← whole-command timeout elapsed
    ├── InputValidationError           ← bad setup inputs (caller bug)
    ├── WorkspaceCopyError
    └── StateExportError

PartialTeardownWarning is not an exception that is ever raised: dismount
logs it and hands it back in its report so teardown always continues.
"""

from __future__ import annotations

from typing import Any


class DevDriveError(Exception):
    """Base exception for all dev-drive errors with structured context.

    Attributes:
        message: Human-readable error message
        context: Dictionary of structured error context for logging/debugging
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class PermanentError(DevDriveError):
    """Base for errors that won't succeed on retry.

    Missing host features, failing disk scripts and inaccessible mounts all
    need operator action rather than another attempt.
    """


class CapabilityMissingError(PermanentError):
    """A required disk-management cmdlet is not available on the host.

    Raised before any script that depends on the cmdlet is built, so a
    disabled Hyper-V feature surfaces as itself instead of as a confusing
    parse failure further down.

    Attributes:
        verb: Name of the missing cmdlet (e.g. "New-VHD")
    """

    def __init__(self, verb: str, exit_code: int | None = None):
        super().__init__(
            f"Failed to detect {verb} command. Hyper-V may not be enabled or you're running an unsupported Windows version.",
            context={"verb": verb, "exit_code": exit_code},
        )
        self.verb = verb


class PipelineExecutionError(PermanentError):
    """A create or mount script reported failure.

    Any non-empty stderr or a non-zero exit code counts as failure; the
    captured stderr is surfaced verbatim as the message.

    Attributes:
        stderr: Captured standard error of the script
        exit_code: Exit code of the PowerShell process
    """

    def __init__(self, stderr: str, exit_code: int, context: dict[str, Any] | None = None):
        ctx = {**(context or {}), "exit_code": exit_code}
        super().__init__(stderr or f"PowerShell exited with code {exit_code}", ctx)
        self.stderr = stderr
        self.exit_code = exit_code


class UnverifiedMountError(PermanentError):
    """The path reported by a successful script is not readable and writable."""

    def __init__(self, path: str, reason: str = ""):
        message = f"Mounted path '{path}' is not accessible"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, context={"path": path})
        self.path = path


class InvalidStateTransitionError(PermanentError):
    """Disk lifecycle operation requested from a state that does not allow it."""


class DevDriveDependencyError(DevDriveError):
    """Required executable missing.

    Raised when the PowerShell binary cannot be launched at all. This is the
    only failure the command executor raises on its own.
    """


class CommandTimeoutError(DevDriveError):
    """A PowerShell invocation exceeded the configured timeout and was killed."""


class InputValidationError(DevDriveError):
    """Setup inputs are invalid (wrong extension, unknown drive type, ...).

    These errors mean the caller passed invalid input. Nothing has been
    created on the host when they are raised.
    """


class WorkspaceCopyError(DevDriveError):
    """Copying the job workspace onto the drive failed or is not allowed."""


class StateExportError(DevDriveError):
    """A value could not be exported to the job runner."""


class PartialTeardownWarning(UserWarning):
    """A dismount phase exited non-zero; teardown carried on regardless.

    Attributes:
        phase: "remove-access-path" or "dismount-disk"
        exit_code: Exit code reported by the phase
        target: Path the phase operated on
    """

    def __init__(self, phase: str, exit_code: int, target: str):
        super().__init__(f"{phase} of '{target}' failed with exit code {exit_code}.")
        self.phase = phase
        self.exit_code = exit_code
        self.target = target
