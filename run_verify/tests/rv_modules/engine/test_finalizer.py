"""Tests for finally hooks."""
from __future__ import annotations

import asyncio

import pytest
from returns.result import Failure, Success

from run_verify.rv_modules.engine.decorators import run_finally
from run_verify.rv_modules.engine.entry import async_verify
from run_verify.rv_modules.engine.finalizer import run_finalizers
from run_verify.rv_modules.errors import NotCallableError


class TestRunFinalizers:
    """Tests for run_finalizers."""

    def test_no_hooks(self) -> None:
        assert asyncio.run(run_finalizers([])) == Success(None)

    def test_all_hooks_start_in_order(self) -> None:
        """Every hook is called before any awaitable is awaited."""
        order: list[str] = []

        async def slow() -> None:
            order.append("slow start")
            await asyncio.sleep(0.01)
            order.append("slow end")

        hooks = [
            run_finally(slow),
            run_finally(lambda: order.append("sync")),
        ]
        assert asyncio.run(run_finalizers(hooks)) == Success(None)
        assert order == ["sync", "slow start", "slow end"]

    def test_sync_error_does_not_stop_others(self) -> None:
        ran: list[str] = []

        def broken() -> None:
            msg = "first"
            raise RuntimeError(msg)

        outcome = asyncio.run(
            run_finalizers([run_finally(broken), run_finally(lambda: ran.append("second"))]),
        )
        assert isinstance(outcome, Failure)
        assert str(outcome.failure()) == "first"
        assert ran == ["second"]

    def test_first_error_in_declaration_order(self) -> None:
        """The earliest failing hook wins, not the earliest to fail."""

        async def late_fail() -> None:
            await asyncio.sleep(0.01)
            msg = "declared first"
            raise RuntimeError(msg)

        def quick_fail() -> None:
            msg = "declared second"
            raise RuntimeError(msg)

        outcome = asyncio.run(
            run_finalizers([run_finally(late_fail), run_finally(quick_fail)]),
        )
        assert isinstance(outcome, Failure)
        assert str(outcome.failure()) == "declared first"

    def test_not_callable_hook(self) -> None:
        outcome = asyncio.run(run_finalizers([run_finally(42)]))  # type: ignore[arg-type]
        assert isinstance(outcome, Failure)
        assert isinstance(outcome.failure(), NotCallableError)


class TestFinallyInRuns:
    """Finally hooks inside a run."""

    def test_runs_after_success(self) -> None:
        order: list[str] = []
        result = asyncio.run(
            async_verify(
                run_finally(lambda: order.append("finally")),
                lambda: order.append("step") or "result",
            ),
        )
        assert result == "result"
        assert order == ["step", "finally"]

    def test_runs_after_failure(self) -> None:
        order: list[str] = []

        def broken() -> None:
            msg = "step failed"
            raise RuntimeError(msg)

        with pytest.raises(RuntimeError, match="step failed"):
            asyncio.run(
                async_verify(broken, run_finally(lambda: order.append("finally"))),
            )
        assert order == ["finally"]

    def test_finally_error_supersedes_success(self) -> None:
        def broken() -> None:
            msg = "cleanup failed"
            raise RuntimeError(msg)

        with pytest.raises(RuntimeError, match="cleanup failed"):
            asyncio.run(async_verify(lambda: "ok", run_finally(broken)))

    def test_finally_error_supersedes_failure(self) -> None:
        def step() -> None:
            msg = "step failed"
            raise RuntimeError(msg)

        def cleanup() -> None:
            msg = "cleanup failed"
            raise ValueError(msg)

        with pytest.raises(ValueError, match="cleanup failed"):
            asyncio.run(async_verify(step, run_finally(cleanup)))

    def test_finally_does_not_count_as_ordinal(self) -> None:
        """Ordinals in messages skip finally hooks."""
        with pytest.raises(NotCallableError, match="param 1 is not a function"):
            asyncio.run(
                async_verify(run_finally(lambda: None), lambda: 1, "not callable"),
            )
