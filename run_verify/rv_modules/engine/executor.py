"""Engine executor -- drive one run from entry call to completion.

Tier 2: builds the run plan, classifies each step once, and turns
sync values, awaitables and continuation callbacks into one stream
of Result values. Entry points (Tier 1) only see the final Result.

Run order: main steps in declaration order, then wait for registered
Defers, then the failure hook (if the main path failed), then the
finally hooks. A failure latched from outside a step (run timeout,
unclaimed Defer rejection) cancels the step in flight.
"""
from __future__ import annotations

import asyncio
import enum
import inspect
import itertools
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError
from returns.result import Failure, Result, Success

from run_verify.rv_modules import io_ops
from run_verify.rv_modules.engine.classifier import classify_step
from run_verify.rv_modules.engine.defer import Defer, DeferSet, DeferWait
from run_verify.rv_modules.engine.finalizer import run_finalizers
from run_verify.rv_modules.engine.timeout import TimeoutSupervisor
from run_verify.rv_modules.engine.types import ExpectMode, Step, StepKind
from run_verify.rv_modules.errors import (
    CompletionError,
    ConfigurationError,
    ExpectationError,
    NotCallableError,
    VerifyError,
)
from run_verify.rv_modules.types import get_settings

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable, Sequence

    from run_verify.rv_modules.types import VerifySettings

    Outcome = Result[Any, BaseException]

_run_ids = itertools.count(1)


class Role(enum.Enum):
    CHECK = "check"
    WAIT = "wait"
    TIMEOUT = "timeout"
    DEFER = "defer"
    FAILURE_HOOK = "failure_hook"


@dataclass(frozen=True)
class PlannedStep:
    """A step entry with its ordinal, role and resolved kind."""

    index: int
    role: Role
    step: Step | None = None
    kind: Result[StepKind, VerifyError] = field(
        default_factory=lambda: Success(StepKind.ZERO_ARG),
    )
    defer: Defer | None = None


def is_finally(entry: object) -> bool:
    return isinstance(entry, Step) and entry.flags.is_finally


def build_plan(
    entries: Iterable[object],
    prefixes: tuple[str, ...],
) -> tuple[list[PlannedStep], list[Step]]:
    """Split entries into the main plan and the finally hooks.

    Ordinals count every non-finally entry, including Defers and
    timeout directives.
    """
    plan: list[PlannedStep] = []
    hooks: list[Step] = []
    for entry in entries:
        if is_finally(entry):
            hooks.append(entry)  # type: ignore[arg-type]
            continue
        index = len(plan)
        if isinstance(entry, Defer):
            plan.append(PlannedStep(index, Role.DEFER, defer=entry))
            continue
        step = entry if isinstance(entry, Step) else Step(entry)  # type: ignore[arg-type]
        if isinstance(step.fn, DeferWait):
            plan.append(PlannedStep(index, Role.WAIT, step=step))
        elif step.is_timeout:
            plan.append(PlannedStep(index, Role.TIMEOUT, step=step))
        elif step.flags.is_failure_hook:
            plan.append(PlannedStep(index, Role.FAILURE_HOOK, step=step))
        else:
            plan.append(
                PlannedStep(
                    index,
                    Role.CHECK,
                    step=step,
                    kind=classify_step(step, index, prefixes),
                ),
            )
    return plan, hooks


class Continuation:
    """The next(error=None, result=None) callable given to callback steps.

    Safe to call from any thread. Only the first call settles the
    step; later calls are logged and ignored.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        future: asyncio.Future[Outcome],
        index: int,
    ) -> None:
        self._loop = loop
        self._future = future
        self._index = index

    def __call__(self, error: object = None, result: object = None) -> None:
        if self._loop.is_closed():
            io_ops.logger.warning(
                "continuation of check function %d called after its loop closed",
                self._index,
            )
            return
        self._loop.call_soon_threadsafe(self._settle, error, result)

    def _settle(self, error: object, result: object) -> None:
        if self._future.cancelled():
            return
        if self._future.done():
            io_ops.logger.warning(
                "continuation of check function %d called more than once",
                self._index,
            )
            return
        # falsy non-exception errors (False, 0, "") mean success
        if error is None or (not isinstance(error, BaseException) and not error):
            self._future.set_result(Success(result))
            return
        if not isinstance(error, BaseException):
            error = VerifyError(str(error), step_index=self._index, context={"value": error})
        self._future.set_result(Failure(error))

    def settle_from_task(self, task: asyncio.Future[object]) -> None:
        """Fail the step if an awaitable it returned raised first."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None and not self._future.done():
            self._settle(exc, None)


class RunContext:
    """Mutable state owned by one run and nothing else."""

    def __init__(
        self,
        plan: Sequence[PlannedStep],
        hooks: Sequence[Step],
        settings: VerifySettings,
        seed: object = None,
    ) -> None:
        self.run_id = next(_run_ids)
        self.plan = plan
        self.hooks = hooks
        self.settings = settings
        self.result: object = seed
        self.index = 0
        self.failure: BaseException | None = None
        self.completed = False
        loop = io_ops.running_loop()
        assert loop is not None  # noqa: S101
        self.loop = loop
        self._abort: asyncio.Future[BaseException] = loop.create_future()
        self.timeout = TimeoutSupervisor(self.fail)
        self.defers = DeferSet(self.fail)

    def fail(self, error: BaseException) -> None:
        """Latch the terminal failure. The first failure wins."""
        if self.failure is not None:
            return
        io_ops.logger.debug("run %d failed: %r", self.run_id, error)
        self.failure = error
        if not self._abort.done():
            self._abort.set_result(error)

    def replace_failure(self, error: BaseException) -> None:
        io_ops.logger.debug(
            "run %d failure replaced: %r -> %r", self.run_id, self.failure, error,
        )
        self.failure = error

    async def race(self, work: Awaitable[Outcome]) -> Outcome:
        """Await work unless the run fails first; then cancel it."""
        task = asyncio.ensure_future(work)
        done, _ = await asyncio.wait(
            {task, self._abort}, return_when=asyncio.FIRST_COMPLETED,
        )
        if task in done:
            return task.result()
        task.cancel()
        assert self.failure is not None  # noqa: S101
        return Failure(self.failure)

    def finish(self) -> Outcome:
        if self.completed:
            msg = f"run {self.run_id} completed twice"
            raise CompletionError(msg)
        self.completed = True
        if self.failure is not None:
            return Failure(self.failure)
        return Success(self.result)


async def _invoke_with_callback(
    ctx: RunContext,
    fn: Callable[..., object],
    args: tuple[object, ...],
    index: int,
) -> Outcome:
    future: asyncio.Future[Outcome] = ctx.loop.create_future()
    continuation = Continuation(ctx.loop, future, index)
    try:
        returned = fn(*args, continuation)
    except Exception as exc:  # noqa: BLE001
        return Failure(exc)
    if inspect.isawaitable(returned):
        io_ops.spawn(returned).add_done_callback(continuation.settle_from_task)
    return await future


async def invoke_step(ctx: RunContext, planned: PlannedStep) -> Outcome:
    """Call one check function and settle it into a Result."""
    assert planned.step is not None  # noqa: S101
    if planned.role is Role.WAIT:
        marker = planned.step.fn
        assert isinstance(marker, DeferWait)  # noqa: S101
        try:
            value = await ctx.defers.wait(
                marker, ctx.settings.default_wait_timeout_ms,
            )
        except Exception as exc:  # noqa: BLE001
            return Failure(exc)
        return Success(value)

    kind = planned.kind.unwrap()
    fn = planned.step.fn
    assert fn is not None  # noqa: S101
    args = (ctx.result,) if kind.takes_result else ()
    io_ops.logger.debug(
        "run %d: check function %d as %s", ctx.run_id, planned.index, kind.value,
    )
    if kind.takes_callback:
        return await _invoke_with_callback(ctx, fn, args, planned.index)
    try:
        returned = fn(*args)
        if inspect.isawaitable(returned):
            returned = await returned
    except Exception as exc:  # noqa: BLE001
        return Failure(exc)
    return Success(returned)


def apply_expectation(outcome: Outcome, planned: PlannedStep) -> Outcome:
    """Invert the outcome of an expect-error step.

    The step's error becomes the result for the next step. A success,
    or an error with the wrong message, becomes an ExpectationError.
    """
    expect = planned.step.flags.expect if planned.step else None
    if expect is None or not expect.active:
        return outcome
    if isinstance(outcome, Success):
        return Failure(
            ExpectationError(
                "run_verify expecting error from check function number"
                f" {planned.index}",
                step_index=planned.index,
            ),
        )
    error = outcome.failure()
    message = str(error)
    if expect.mode is ExpectMode.HAS and expect.message not in message:
        return Failure(
            ExpectationError(
                f"run_verify expecting error with message has '{expect.message}'",
                step_index=planned.index,
                context={"actual": message},
            ),
        )
    if expect.mode is ExpectMode.TO_BE and message != expect.message:
        return Failure(
            ExpectationError(
                f"run_verify expecting error with message to be '{expect.message}'",
                step_index=planned.index,
                context={"actual": message},
            ),
        )
    return Success(error)


async def _run_main_path(ctx: RunContext) -> None:
    plan = ctx.plan
    while ctx.index < len(plan) and ctx.failure is None:
        planned = plan[ctx.index]
        ctx.index += 1
        if planned.role is Role.TIMEOUT:
            assert planned.step is not None  # noqa: S101
            ctx.timeout.arm(planned.step, planned.index)
            continue
        if planned.role is Role.DEFER:
            assert planned.defer is not None  # noqa: S101
            ctx.defers.register(planned.defer, bare=True)
            continue
        if planned.role is Role.FAILURE_HOOK:
            continue
        if isinstance(planned.kind, Failure):
            ctx.fail(planned.kind.failure())
            return

        outcome = await ctx.race(invoke_step(ctx, planned))
        if ctx.failure is not None:
            return
        outcome = apply_expectation(outcome, planned)
        if isinstance(outcome, Failure):
            ctx.fail(outcome.failure())
            return
        ctx.timeout.disarm()
        ctx.result = outcome.unwrap()

    if ctx.failure is None and len(ctx.defers):
        outcome = await ctx.race(ctx.defers.wait_all())
        if isinstance(outcome, Failure):
            ctx.fail(outcome.failure())
        else:
            ctx.result = ctx.defers.compose(ctx.result)


async def _invoke_failure_hook(ctx: RunContext) -> None:
    if ctx.failure is None or ctx.index >= len(ctx.plan):
        return
    planned = ctx.plan[ctx.index]
    if planned.role is not Role.FAILURE_HOOK or planned.step is None:
        return
    fn = planned.step.fn
    if not callable(fn):
        ctx.replace_failure(
            NotCallableError(
                f"run_verify param {planned.index} is not a function:"
                f" type {type(fn).__name__}",
                step_index=planned.index,
            ),
        )
        return
    io_ops.logger.debug("run %d: failure hook %d", ctx.run_id, planned.index)
    try:
        returned = fn(ctx.failure, ctx.result)
        if inspect.isawaitable(returned):
            await returned
    except Exception as exc:  # noqa: BLE001
        ctx.replace_failure(exc)


async def execute(entries: Iterable[object], *, seed: object = None) -> Outcome:
    """Run entries to completion and return the run's Result.

    Never raises for run failures; they come back as Failure. Invalid
    RUN_VERIFY_* settings fail the run before any step starts.
    """
    try:
        settings = get_settings()
    except ValidationError as exc:
        io_ops.logger.debug("settings rejected: %s", exc)
        return Failure(
            ConfigurationError(
                f"run_verify settings are invalid: {exc.error_count()}"
                " validation error(s)",
                context={"errors": [e["msg"] for e in exc.errors()]},
            ),
        )
    if settings.debug:
        io_ops.setup_debug_logging()
    plan, hooks = build_plan(entries, settings.callback_param_prefixes)
    ctx = RunContext(plan, hooks, settings, seed)
    io_ops.logger.debug(
        "run %d: %d steps, %d finally hooks", ctx.run_id, len(plan), len(hooks),
    )
    try:
        await _run_main_path(ctx)
    finally:
        ctx.timeout.disarm()
        ctx.defers.close()

    await _invoke_failure_hook(ctx)

    finalized = await run_finalizers(ctx.hooks)
    if isinstance(finalized, Failure):
        ctx.replace_failure(finalized.failure())

    outcome = ctx.finish()
    io_ops.logger.debug("run %d complete: %r", ctx.run_id, outcome)
    return outcome
