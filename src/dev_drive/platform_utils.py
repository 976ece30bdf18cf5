"""Host OS detection.

Uses psutil's built-in OS detection constants for platform identification.
"""

import platform
from enum import Enum, auto
from functools import cache

import psutil


class HostOS(Enum):
    """Host operating systems dev-drive distinguishes."""

    WINDOWS = auto()
    """Windows (the only platform with Hyper-V VHD cmdlets)."""

    LINUX = auto()
    MACOS = auto()
    UNKNOWN = auto()


@cache
def detect_host_os() -> HostOS:
    """Detect current host operating system using psutil constants."""
    if psutil.WINDOWS:
        return HostOS.WINDOWS
    if psutil.LINUX:
        return HostOS.LINUX
    if psutil.MACOS:
        return HostOS.MACOS
    return HostOS.UNKNOWN


def get_os_version() -> str:
    """Kernel version string, "10.0.22621" on Windows 11 22H2."""
    return platform.version()
