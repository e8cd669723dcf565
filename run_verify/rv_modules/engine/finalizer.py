"""Finalizer -- run every finally hook once at the end of a run."""
from __future__ import annotations

import asyncio
import inspect
from typing import TYPE_CHECKING

from returns.result import Failure, Result, Success

from run_verify.rv_modules import io_ops
from run_verify.rv_modules.errors import NotCallableError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Sequence

    from run_verify.rv_modules.engine.types import Step


async def run_finalizers(hooks: Sequence[Step]) -> Result[None, BaseException]:
    """Start every hook in declaration order, then await them as a group.

    A hook that raises does not stop the others from starting.
    Returns Failure with the first failing hook's error (declaration
    order), or Success(None).
    """
    if not hooks:
        return Success(None)
    io_ops.logger.debug("running %d finally hooks", len(hooks))

    errors: dict[int, BaseException] = {}
    awaiting: list[tuple[int, Awaitable[object]]] = []
    for position, hook in enumerate(hooks):
        if not callable(hook.fn):
            errors[position] = NotCallableError(
                "run_verify finally hook is not a function:"
                f" type {type(hook.fn).__name__}",
                context={"position": position},
            )
            continue
        try:
            returned = hook.fn()
        except Exception as exc:  # noqa: BLE001
            errors[position] = exc
            continue
        if inspect.isawaitable(returned):
            awaiting.append((position, returned))

    if awaiting:
        settled = await asyncio.gather(
            *(aw for _, aw in awaiting), return_exceptions=True,
        )
        for (position, _), outcome in zip(awaiting, settled):
            if isinstance(outcome, Exception):
                errors[position] = outcome
            elif isinstance(outcome, BaseException):
                raise outcome

    if errors:
        return Failure(errors[min(errors)])
    return Success(None)
