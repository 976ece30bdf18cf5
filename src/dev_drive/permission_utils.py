"""Filesystem access checks that don't block the event loop."""

import asyncio
import os
from pathlib import Path

READ_WRITE = os.F_OK | os.R_OK | os.W_OK
EXISTS_WRITABLE = os.F_OK | os.W_OK
EXISTS_READABLE = os.F_OK | os.R_OK


async def can_access(path: str | Path, mode: int) -> bool:
    """os.access() in a worker thread (network shares and fresh volumes can stall)."""
    return await asyncio.to_thread(os.access, path, mode)
