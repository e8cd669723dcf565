"""Public step types (Tier 1).

Authors describe checks with these types; the executor (Tier 2)
decides how each one is invoked. A Step never mutates: every
builder call returns a new Step around the same callable.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable


class StepKind(enum.Enum):
    """How a check function is invoked.

    ZERO_ARG: fn(); a returned awaitable is awaited.
    RESULT_ARG: fn(prior_result); a returned awaitable is awaited.
    CALLBACK_ARG: fn(next); the step finishes when next(err, result) is called.
    RESULT_AND_CALLBACK: fn(prior_result, next).
    """

    ZERO_ARG = "zero_arg"
    RESULT_ARG = "result_arg"
    CALLBACK_ARG = "callback_arg"
    RESULT_AND_CALLBACK = "result_and_callback"

    @property
    def takes_callback(self) -> bool:
        return self in (StepKind.CALLBACK_ARG, StepKind.RESULT_AND_CALLBACK)

    @property
    def takes_result(self) -> bool:
        return self in (StepKind.RESULT_ARG, StepKind.RESULT_AND_CALLBACK)


class ExpectMode(enum.Enum):
    NONE = "none"
    ANY = "any"
    HAS = "has"
    TO_BE = "to_be"


@dataclass(frozen=True)
class ExpectError:
    """Error expectation attached to a step."""

    mode: ExpectMode = ExpectMode.NONE
    message: str = ""

    @property
    def active(self) -> bool:
        return self.mode is not ExpectMode.NONE


@dataclass(frozen=True)
class StepFlags:
    """Capability flags carried by a Step."""

    expect: ExpectError = field(default_factory=ExpectError)
    forced_callback: bool = False
    is_finally: bool = False
    is_failure_hook: bool = False
    timeout_ms: int | None = None
    kind: StepKind | None = None


@dataclass(frozen=True)
class Step:
    """A check function plus the flags that change how it runs.

    fn is None only for timeout directives without an expiry hook.
    Builder methods chain and compose freely::

        wrap_check(fn).with_callback().expect_error_has("refused")
    """

    fn: Callable[..., object] | None
    flags: StepFlags = field(default_factory=StepFlags)

    def _with_flags(self, **changes: object) -> Step:
        return replace(self, flags=replace(self.flags, **changes))

    def expect_error(self) -> Step:
        """Step must fail; its error becomes the next step's result."""
        return self._with_flags(expect=ExpectError(ExpectMode.ANY))

    def expect_error_has(self, message: str) -> Step:
        """Step must fail with an error whose message contains message."""
        return self._with_flags(expect=ExpectError(ExpectMode.HAS, message))

    def expect_error_to_be(self, message: str) -> Step:
        """Step must fail with an error whose message equals message."""
        return self._with_flags(expect=ExpectError(ExpectMode.TO_BE, message))

    def with_callback(self) -> Step:
        """Hand the step a continuation even if its parameter name says otherwise.

        For a one-parameter function the prior result is NOT passed;
        the single argument is the continuation. Use
        with_kind(StepKind.RESULT_AND_CALLBACK) to receive both.
        """
        return self._with_flags(forced_callback=True)

    def on_fail_verify(self) -> Step:
        """Run only when the step before it fails, as fn(error, partial_result)."""
        return self._with_flags(is_failure_hook=True)

    def with_kind(self, kind: StepKind) -> Step:
        """Pin the invocation protocol, bypassing signature inspection."""
        return self._with_flags(kind=kind)

    @property
    def is_timeout(self) -> bool:
        return self.flags.timeout_ms is not None
