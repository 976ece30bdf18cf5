"""Centralized logging for dev-drive.

Library logging conventions (Python docs, PEP 282):
- Attach NullHandler to library root logger
- Never add other handlers -- that's the application's job
- Support DEV_DRIVE_LOG_LEVEL env var for level control
- Provide configure_logging() for CLI entry points

CLI output format:
    WARNING [2026-02-25 10:02:54] dev_drive.disk_manager - message

GitHub Actions output format (workflow commands, rendered as annotations):
    ::warning::message

Non-blocking logging:
    Uses QueueHandler + QueueListener (stdlib) to decouple log emission
    from stderr I/O.  A bounded FIFO queue absorbs bursts; a daemon
    thread drains records to click.echo(err=True).

References:
- https://docs.python.org/3/howto/logging.html#configuring-logging-for-a-library
- https://docs.github.com/en/actions/reference/workflow-commands-for-github-actions
"""

import contextlib
import logging
import logging.handlers
import os
import queue

import click

LIBRARY_LOGGER_NAME: str = "dev_drive"

logging.getLogger(LIBRARY_LOGGER_NAME).addHandler(logging.NullHandler())

# Honor DEV_DRIVE_LOG_LEVEL env var (e.g. "DEBUG", "WARNING", "ERROR")
_env_level = os.environ.get("DEV_DRIVE_LOG_LEVEL", "").strip().upper()
_env_level_value = logging.getLevelNamesMapping().get(_env_level)
if _env_level_value:  # excludes NOTSET (0) and missing keys (None)
    logging.getLogger(LIBRARY_LOGGER_NAME).setLevel(_env_level_value)

_FMT = "%(levelname)s [%(asctime)s] %(name)s - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

_QUEUE_CAPACITY = 1024


class WorkflowCommandFormatter(logging.Formatter):
    """Render records as GitHub Actions workflow commands.

    DEBUG becomes ``::debug::`` (only shown when step debugging is on),
    WARNING and ERROR become annotations, INFO is printed as-is.
    Newlines and ``%`` are escaped per the workflow command encoding.
    """

    _COMMANDS = {
        logging.DEBUG: "debug",
        logging.WARNING: "warning",
        logging.ERROR: "error",
        logging.CRITICAL: "error",
    }

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        command = self._COMMANDS.get(record.levelno)
        if command is None:
            return message
        escaped = message.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")
        return f"::{command}::{escaped}"


class _ClickHandler(logging.Handler):
    """Target handler: writes to stderr via click.echo.

    Runs on the QueueListener's daemon thread, never on the caller's
    thread/coroutine.  Plain records are dimmed; workflow commands are
    written unstyled so the runner can parse them.
    """

    def __init__(self, formatter: logging.Formatter) -> None:
        super().__init__()
        self.formatter = formatter

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            if isinstance(self.formatter, WorkflowCommandFormatter):
                click.echo(msg, err=True)
            else:
                click.echo(click.style(msg, dim=True), err=True)
        except BlockingIOError:
            pass  # Stderr buffer full -- silently drop
        except Exception:  # noqa: BLE001
            self.handleError(record)


class _NonBlockingHandler(logging.handlers.QueueHandler):
    """Queue-backed handler that never blocks the caller.

    Records are enqueued via put_nowait() into a bounded FIFO.  A
    QueueListener daemon thread drains them to _ClickHandler.  When
    the queue is full, records are silently dropped (backpressure).
    """

    def __init__(self, formatter: logging.Formatter) -> None:
        q: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=_QUEUE_CAPACITY)
        super().__init__(q)
        self._listener = logging.handlers.QueueListener(q, _ClickHandler(formatter), respect_handler_level=False)
        self._listener.start()

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        """Skip serialization -- same-process queue, no pickle needed."""
        return record

    def enqueue(self, record: logging.LogRecord) -> None:
        with contextlib.suppress(queue.Full):
            self.queue.put_nowait(record)

    def close(self) -> None:
        self._listener.stop()
        super().close()


def get_logger(name: str) -> logging.Logger:
    """Get a logger for the given module name.

    All dev_drive modules should use this instead of logging.getLogger()
    directly for consistent logger hierarchy.
    """
    return logging.getLogger(name)


def configure_logging(
    *,
    level: int | str | None = None,
    quiet: bool = False,
    github_actions: bool = False,
) -> None:
    """Configure library logging for CLI entry points.

    Adds a _NonBlockingHandler if none exists (idempotent), then sets the
    log level.

    Args:
        level: Log level (e.g. logging.DEBUG, "WARNING"). Overrides env var.
        quiet: If True, set level to ERROR (suppress WARNING/INFO).
               Takes precedence over level.
        github_actions: Emit workflow commands instead of plain lines.
    """
    lib_logger = logging.getLogger(LIBRARY_LOGGER_NAME)

    if not any(isinstance(h, _NonBlockingHandler) for h in lib_logger.handlers):
        formatter = (
            WorkflowCommandFormatter(fmt="%(message)s")
            if github_actions
            else logging.Formatter(fmt=_FMT, datefmt=_DATEFMT)
        )
        lib_logger.addHandler(_NonBlockingHandler(formatter))

    if quiet:
        lib_logger.setLevel(logging.ERROR)
    elif level is not None:
        lib_logger.setLevel(level)
    elif lib_logger.level == logging.NOTSET:
        lib_logger.setLevel(logging.INFO)
