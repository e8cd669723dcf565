"""Entry points -- callback-style and awaitable runs (Tier 1).

run_verify(step1, ..., stepN, done)
    Calls each step in series, then done(error) or done(error, result)
    exactly once. Inside a running event loop the run is scheduled as
    a task and run_verify returns at once; with no loop running it
    drives the run to completion before returning.

await async_verify(step1, ..., stepN)
    Returns the final result or raises the run's error.

A step can take 0, 1 or 2 parameters:

- 0: return a value, or an awaitable whose value is used.
- 1: either the prior result (returning as above), or a continuation
  next(error=None, result=None) when the parameter name starts with
  next, cb, callback or done.
- 2: (result, next).

async def steps always get the prior result and never a continuation.
"""
from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any

from returns.result import Failure

from run_verify.rv_modules import io_ops
from run_verify.rv_modules.engine.executor import execute, is_finally
from run_verify.rv_modules.errors import ConfigurationError

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Callable, Coroutine, Sequence

    from returns.result import Result


def _wants_result(done: Callable[..., object]) -> bool:
    """True when done declares room for (error, result)."""
    try:
        params = inspect.signature(done).parameters.values()
    except (TypeError, ValueError):
        return False
    positional = 0
    for param in params:
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            return True
        if param.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            positional += 1
    return positional > 1


def _split_done(
    args: Sequence[object],
    min_checks: int,
) -> tuple[list[object], Callable[..., object]]:
    checks = [a for a in args if not is_finally(a)]
    if len(checks) < min_checks:
        msg = "run_verify - must pass done function"
        raise ConfigurationError(msg, context={"entries": len(checks)})
    done_position = max(i for i, a in enumerate(args) if not is_finally(a))
    done = args[done_position]
    if not callable(done):
        msg = f"run_verify done handler is not a function: type {type(done).__name__}"
        raise ConfigurationError(msg)
    entries = [a for i, a in enumerate(args) if i != done_position]
    return entries, done


async def _run_and_notify(
    entries: Sequence[object],
    done: Callable[..., object],
    seed: object,
) -> None:
    outcome = await execute(entries, seed=seed)
    if isinstance(outcome, Failure):
        error, result = outcome.failure(), None
    else:
        error, result = None, outcome.unwrap()
    returned = done(error, result) if _wants_result(done) else done(error)
    if inspect.isawaitable(returned):
        await returned


def _report_failure(task: asyncio.Future[object]) -> None:
    """Surface an exception raised by a spawned run's done handler."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is None:
        return
    io_ops.logger.error("run_verify done handler raised %r", exc)
    task.get_loop().call_exception_handler(
        {
            "message": "run_verify done handler raised",
            "exception": exc,
            "future": task,
        },
    )


def _start(entries: Sequence[object], done: Callable[..., object], seed: object) -> None:
    coro = _run_and_notify(entries, done, seed)
    if io_ops.running_loop() is None:
        io_ops.run_to_completion(coro)
    else:
        io_ops.spawn(coro).add_done_callback(_report_failure)


def run_verify(*args: object) -> None:
    """Run check steps in series and report to the trailing done handler.

    Raises ConfigurationError (synchronously) when no done handler or
    no check step is given; every other failure goes to done.
    """
    entries, done = _split_done(args, min_checks=2)
    _start(entries, done, None)


async def async_verify(*steps: object) -> Any:  # noqa: ANN401
    """Run check steps in series; return the result or raise the error."""
    outcome = await execute(steps)
    return _unwrap(outcome)


def _unwrap(outcome: Result[Any, BaseException]) -> Any:  # noqa: ANN401
    if isinstance(outcome, Failure):
        raise outcome.failure()
    return outcome.unwrap()


def wrap_verify(*args: object) -> Callable[[object], None]:
    """Return fn(x) that starts run_verify with x as the first result."""
    entries, done = _split_done(args, min_checks=1)

    def start(seed: object) -> None:
        _start(entries, done, seed)

    return start


def wrap_async_verify(
    *steps: object,
) -> Callable[[object], Coroutine[Any, Any, Any]]:
    """Return fn(x) giving an awaitable async_verify run seeded with x."""

    async def start(seed: object) -> Any:  # noqa: ANN401
        return _unwrap(await execute(steps, seed=seed))

    return start
