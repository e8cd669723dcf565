"""Step classifier -- resolve how each check function is invoked.

This is a best-effort heuristic over the callable's signature, so
authors can write steps in whichever shape suits the thing under
test without configuring every step:

- async def with a parameter: always RESULT_ARG.
- two or more required positional parameters: RESULT_AND_CALLBACK.
- no parameters: ZERO_ARG, even with with_callback().
- with_callback(): CALLBACK_ARG (the prior result is not passed).
- one parameter: CALLBACK_ARG if its name starts with a configured
  prefix (next, cb, callback, done), otherwise RESULT_ARG.

When the guess is wrong, Step.with_kind() pins the protocol.
"""
from __future__ import annotations

import inspect
from typing import TYPE_CHECKING

from returns.result import Failure, Result, Success

from run_verify.rv_modules.engine.types import Step, StepKind
from run_verify.rv_modules.errors import ClassificationError, NotCallableError

if TYPE_CHECKING:
    from collections.abc import Callable

_POSITIONAL = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
)


def required_positional(fn: Callable[..., object]) -> list[inspect.Parameter]:
    """Return the positional parameters of fn that have no default.

    Raises ValueError or TypeError when no signature is available.
    """
    params = inspect.signature(fn).parameters.values()
    return [
        p for p in params
        if p.kind in _POSITIONAL and p.default is inspect.Parameter.empty
    ]


def _is_async(fn: Callable[..., object]) -> bool:
    if inspect.iscoroutinefunction(fn):
        return True
    # callable objects with an async __call__
    call = getattr(fn, "__call__", None)
    return call is not None and inspect.iscoroutinefunction(call)


def classify_step(
    step: Step,
    index: int,
    prefixes: tuple[str, ...],
) -> Result[StepKind, ClassificationError | NotCallableError]:
    """Resolve the invocation protocol for the step at ordinal index.

    Returns Success(kind) or Failure with an error naming the ordinal.
    """
    fn = step.fn
    if not callable(fn):
        return Failure(
            NotCallableError(
                f"run_verify param {index} is not a function:"
                f" type {type(fn).__name__}",
                step_index=index,
                context={"type": type(fn).__name__},
            ),
        )

    if step.flags.kind is not None:
        return Success(step.flags.kind)

    try:
        params = required_positional(fn)
    except (TypeError, ValueError) as exc:
        return Failure(
            ClassificationError(
                f"run_verify param {index} unable to determine parameters",
                step_index=index,
                context={"reason": str(exc)},
            ),
        )

    if _is_async(fn):
        return Success(StepKind.RESULT_ARG if params else StepKind.ZERO_ARG)
    if len(params) > 1:
        return Success(StepKind.RESULT_AND_CALLBACK)
    if not params:
        return Success(StepKind.ZERO_ARG)
    if step.flags.forced_callback:
        return Success(StepKind.CALLBACK_ARG)

    if params[0].name.lower().startswith(prefixes):
        return Success(StepKind.CALLBACK_ARG)
    return Success(StepKind.RESULT_ARG)
