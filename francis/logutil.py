"""Logging helpers: fatal errors, a per-context logger and shutdown signals."""

from __future__ import annotations

import contextvars
import logging
import os
import signal
import threading
from types import FrameType

_context_logger: contextvars.ContextVar[logging.Logger] = contextvars.ContextVar(
    "francis_logger"
)
_signal_lock = threading.Lock()
_signal_installed = threading.Event()


def fatal_error(logger: logging.Logger, message: str, err: BaseException) -> None:
    """Log ``message`` at error level with the error attached, then exit with status 1."""
    if logger.isEnabledFor(logging.ERROR):
        logger.error(message, extra={"error": str(err)}, stacklevel=2)
    raise SystemExit(1)


def set_context_logger(logger: logging.Logger) -> contextvars.Token[logging.Logger]:
    """Attach a logger to the current context; return a token to undo it."""
    return _context_logger.set(logger)


def get_context_logger() -> logging.Logger:
    """Return the logger attached to the current context, or the root logger."""
    return _context_logger.get(logging.getLogger())


def install_signal_handler(logger: logging.Logger) -> threading.Event:
    """Return an event that is set on the first SIGINT or SIGTERM.

    A second signal terminates the process at once. May be installed only
    once per process, from the main thread.
    """
    with _signal_lock:
        if _signal_installed.is_set():
            raise RuntimeError("signal handler is already installed")
        _signal_installed.set()

    shutdown = threading.Event()

    def handler(signum: int, frame: FrameType | None) -> None:
        if not shutdown.is_set():
            logger.info("Received interrupt signal. Shutting down…")
            shutdown.set()
            return
        logger.warning(
            "Received a second interrupt signal. Forcing an immediate shutdown."
        )
        os._exit(1)

    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)
    return shutdown