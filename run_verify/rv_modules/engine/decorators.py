"""Step decorators -- pure data composition (Tier 2).

Decorators produce Step values (Tier 1 types). They do NOT execute
anything; the executor reads the flags at run time. Each shortcut is
wrap_check(fn) plus a single builder call.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

from run_verify.rv_modules.engine.types import Step, StepFlags
from run_verify.rv_modules.errors import UsageError

if TYPE_CHECKING:
    from collections.abc import Callable


def wrap_check(fn: Callable[..., object] | Step) -> Step:
    """Start a builder chain for fn. An existing Step is returned as is."""
    if isinstance(fn, Step):
        return fn
    return Step(fn)


def expect_error(fn: Callable[..., object] | Step) -> Step:
    return wrap_check(fn).expect_error()


def expect_error_has(fn: Callable[..., object] | Step, message: str) -> Step:
    return wrap_check(fn).expect_error_has(message)


def expect_error_to_be(fn: Callable[..., object] | Step, message: str) -> Step:
    return wrap_check(fn).expect_error_to_be(message)


def with_callback(fn: Callable[..., object] | Step) -> Step:
    return wrap_check(fn).with_callback()


def on_fail_verify(fn: Callable[..., object] | Step) -> Step:
    return wrap_check(fn).on_fail_verify()


def run_finally(fn: Callable[..., object]) -> Step:
    """Mark fn to run once at the end of the run, whatever the outcome.

    Position in the argument list does not matter. If fn returns an
    awaitable it is awaited together with the other finally hooks.
    """
    return Step(fn, StepFlags(is_finally=True))


def run_timeout(
    timeout_ms: int,
    on_timeout: Callable[[], object] | None = None,
) -> Step:
    """Bound the time the run may take to complete the next step.

    A newer directive replaces an older one, and every successful
    step disarms the bound. on_timeout, if given, is called at expiry.
    """
    if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, int) or timeout_ms <= 0:
        msg = f"run_timeout expects a positive number of milliseconds, got {timeout_ms!r}"
        raise UsageError(msg, context={"timeout_ms": repr(timeout_ms)})
    return Step(on_timeout, StepFlags(timeout_ms=timeout_ms))
