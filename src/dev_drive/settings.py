"""Runtime configuration from environment variables."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from dev_drive import constants


class Settings(BaseSettings):
    """Runtime configuration from environment variables.

    All settings can be overridden via environment variables with DEV_DRIVE_ prefix.
    Example: DEV_DRIVE_COMMAND_TIMEOUT_SECONDS=600
    """

    model_config = SettingsConfigDict(
        env_prefix="DEV_DRIVE_",
        extra="ignore",
    )

    # PowerShell
    powershell_bin: str = constants.POWERSHELL_BIN
    command_timeout_seconds: float | None = Field(default=None, gt=0)
    """Kill a PowerShell invocation after this long. None waits forever."""

    # Feature gates
    native_dev_drive_min_version: str = constants.NATIVE_DEV_DRIVE_WIN_VERSION
