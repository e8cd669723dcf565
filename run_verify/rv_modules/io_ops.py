"""I/O boundary module -- event loop, clock, environment and stderr.

This is the single mock point for the test suite. Engine modules
never touch asyncio's loop accessors, os.environ or sys.stderr
directly; they call io_ops functions.
"""
from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Coroutine

LOGGER_NAME = "run-verify"

logger = logging.getLogger(LOGGER_NAME)

# Tasks started by spawn(); the loop only keeps weak references.
_BACKGROUND_TASKS: set[asyncio.Future[Any]] = set()


def setup_debug_logging() -> logging.Logger:
    """Attach a stderr debug handler to the run-verify logger."""
    logger.setLevel(logging.DEBUG)

    # Don't add handlers if already configured
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.DEBUG)
    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    return logger


def read_env(name: str) -> str | None:
    """Read an environment variable. Returns None when unset or blank."""
    value = os.environ.get(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def running_loop() -> asyncio.AbstractEventLoop | None:
    """Return the loop running in this thread, or None outside a loop."""
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def call_later(
    delay_ms: float,
    callback: Callable[..., object],
    *args: object,
) -> asyncio.TimerHandle:
    """Schedule callback on the running loop after delay_ms milliseconds."""
    loop = asyncio.get_running_loop()
    return loop.call_later(delay_ms / 1000.0, callback, *args)


def run_to_completion(coro: Coroutine[Any, Any, Any]) -> Any:  # noqa: ANN401
    """Drive a coroutine on a fresh event loop and return its result."""
    return asyncio.run(coro)


def spawn(awaitable: Awaitable[Any]) -> asyncio.Future[Any]:
    """Schedule an awaitable as a task on the running loop.

    The task is referenced until it finishes so it cannot be
    garbage collected mid-run.
    """
    task = asyncio.ensure_future(awaitable)
    _BACKGROUND_TASKS.add(task)
    task.add_done_callback(_BACKGROUND_TASKS.discard)
    return task
