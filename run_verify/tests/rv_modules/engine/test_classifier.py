"""Tests for the step classifier."""
from __future__ import annotations

import functools

import pytest
from returns.result import Failure, Success

from run_verify.rv_modules.engine import classifier
from run_verify.rv_modules.engine.classifier import (
    classify_step,
    required_positional,
)
from run_verify.rv_modules.engine.types import Step, StepKind
from run_verify.rv_modules.errors import ClassificationError, NotCallableError
from run_verify.rv_modules.types import DEFAULT_CALLBACK_PREFIXES


def _kind(fn: object, *, prefixes: tuple[str, ...] = DEFAULT_CALLBACK_PREFIXES) -> StepKind:
    step = fn if isinstance(fn, Step) else Step(fn)  # type: ignore[arg-type]
    result = classify_step(step, 0, prefixes)
    assert isinstance(result, Success)
    return result.unwrap()


class TestRequiredPositional:
    """Tests for required_positional."""

    def test_counts_only_required(self) -> None:
        """Defaults, *args and keyword-only params are ignored."""

        def fn(a, b=1, *rest, c, **kw):  # noqa: ANN001, ANN002, ANN003, ANN202
            return a

        assert [p.name for p in required_positional(fn)] == ["a"]

    def test_bound_method_excludes_self(self) -> None:
        class Checker:
            def check(self, result: object) -> object:
                return result

        assert [p.name for p in required_positional(Checker().check)] == ["result"]


class TestClassifyStep:
    """Tests for classify_step."""

    def test_zero_params(self) -> None:
        assert _kind(lambda: 1) is StepKind.ZERO_ARG

    def test_one_param_result(self) -> None:
        assert _kind(lambda data: data) is StepKind.RESULT_ARG

    @pytest.mark.parametrize("name", ["next", "cb", "callback", "done", "Done2", "next_step"])
    def test_one_param_callback_names(self, name: str) -> None:
        """Conventional continuation names select CALLBACK_ARG."""
        fn = eval(f"lambda {name}: None")  # noqa: S307
        assert _kind(fn) is StepKind.CALLBACK_ARG

    def test_two_params(self) -> None:
        assert _kind(lambda result, nxt: None) is StepKind.RESULT_AND_CALLBACK

    def test_async_with_param_is_result(self) -> None:
        """async def never gets a continuation, whatever the name."""

        async def check(next):  # noqa: A002, ANN001, ANN202
            return next

        assert _kind(check) is StepKind.RESULT_ARG

    def test_async_many_params_is_result(self) -> None:
        async def check(a, b, c):  # noqa: ANN001, ANN202
            return a

        assert _kind(check) is StepKind.RESULT_ARG

    def test_async_zero_params(self) -> None:
        async def check():  # noqa: ANN202
            return 1

        assert _kind(check) is StepKind.ZERO_ARG

    def test_async_callable_object(self) -> None:
        class Check:
            async def __call__(self, done: object) -> object:
                return done

        assert _kind(Check()) is StepKind.RESULT_ARG

    def test_forced_callback_overrides_name(self) -> None:
        """with_callback() on a result-named param gives CALLBACK_ARG."""
        assert _kind(Step(lambda x: None).with_callback()) is StepKind.CALLBACK_ARG

    def test_forced_callback_on_zero_params(self) -> None:
        """A function with no parameters is still called with none."""
        assert _kind(Step(lambda: 5).with_callback()) is StepKind.ZERO_ARG

    def test_forced_callback_on_two_params(self) -> None:
        step = Step(lambda r, x: None).with_callback()
        assert _kind(step) is StepKind.RESULT_AND_CALLBACK

    def test_explicit_kind_wins(self) -> None:
        step = Step(lambda next: None).with_kind(StepKind.RESULT_ARG)
        assert _kind(step) is StepKind.RESULT_ARG

    def test_custom_prefixes(self) -> None:
        """Configured prefixes replace the defaults."""
        assert _kind(lambda resume: None, prefixes=("resume",)) is StepKind.CALLBACK_ARG
        assert _kind(lambda next: None, prefixes=("resume",)) is StepKind.RESULT_ARG

    def test_partial(self) -> None:
        """functools.partial reports its remaining parameters."""

        def fn(a, cb):  # noqa: ANN001, ANN202
            return a

        assert _kind(functools.partial(fn, 1)) is StepKind.CALLBACK_ARG

    def test_not_callable(self) -> None:
        """Non-callables fail with the ordinal and type."""
        result = classify_step(Step("woohoo"), 3, DEFAULT_CALLBACK_PREFIXES)  # type: ignore[arg-type]
        assert isinstance(result, Failure)
        error = result.failure()
        assert isinstance(error, NotCallableError)
        assert str(error) == "run_verify param 3 is not a function: type str"
        assert error.step_index == 3

    def test_no_signature(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A callable without a signature is a classification error."""

        def fail(_: object) -> None:
            msg = "no signature found"
            raise ValueError(msg)

        monkeypatch.setattr(classifier, "required_positional", fail)
        result = classify_step(Step(lambda: None), 4, DEFAULT_CALLBACK_PREFIXES)
        assert isinstance(result, Failure)
        error = result.failure()
        assert isinstance(error, ClassificationError)
        assert "param 4" in str(error)
