"""Engine package -- step sequencing with ROP error handling."""
from run_verify.rv_modules.engine.decorators import (
    expect_error,
    expect_error_has,
    expect_error_to_be,
    on_fail_verify,
    run_finally,
    run_timeout,
    with_callback,
    wrap_check,
)
from run_verify.rv_modules.engine.defer import Defer, DeferWait, create_defer
from run_verify.rv_modules.engine.entry import (
    async_verify,
    run_verify,
    wrap_async_verify,
    wrap_verify,
)
from run_verify.rv_modules.engine.types import Step, StepKind

__all__ = [
    "Defer",
    "DeferWait",
    "Step",
    "StepKind",
    "async_verify",
    "create_defer",
    "expect_error",
    "expect_error_has",
    "expect_error_to_be",
    "on_fail_verify",
    "run_finally",
    "run_timeout",
    "run_verify",
    "with_callback",
    "wrap_async_verify",
    "wrap_check",
    "wrap_verify",
]
