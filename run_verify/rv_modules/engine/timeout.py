"""Timeout supervisor -- wall-clock bound on a run's forward progress."""
from __future__ import annotations

import asyncio
import inspect
from typing import TYPE_CHECKING

from run_verify.rv_modules import io_ops
from run_verify.rv_modules.errors import RunTimeoutError

if TYPE_CHECKING:
    from collections.abc import Callable

    from run_verify.rv_modules.engine.types import Step


class TimeoutSupervisor:
    """Holds at most one live timer for a run.

    arm() replaces whatever bound was live; disarm() is called after
    every successful step, so a directive covers the steps up to the
    next successful advance. On expiry on_expire gets the error.
    """

    def __init__(self, on_expire: Callable[[BaseException], None]) -> None:
        self._on_expire = on_expire
        self._handle: asyncio.TimerHandle | None = None

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def arm(self, directive: Step, index: int) -> None:
        self.disarm()
        timeout_ms = directive.flags.timeout_ms
        assert timeout_ms is not None  # noqa: S101
        io_ops.logger.debug("timeout armed: %dms at param %d", timeout_ms, index)
        self._handle = io_ops.call_later(
            timeout_ms, self._expire, directive, index,
        )

    def disarm(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _expire(self, directive: Step, index: int) -> None:
        self._handle = None
        timeout_ms = directive.flags.timeout_ms or 0
        io_ops.logger.debug("timeout expired after %dms", timeout_ms)
        error: BaseException = RunTimeoutError(
            f"run_verify check function timeout after {timeout_ms}ms",
            timeout_ms=timeout_ms,
            step_index=index,
        )
        if directive.fn is not None:
            try:
                returned = directive.fn()
            except Exception as exc:  # noqa: BLE001
                error = exc
            else:
                if inspect.isawaitable(returned):
                    io_ops.spawn(returned)
        self._on_expire(error)
