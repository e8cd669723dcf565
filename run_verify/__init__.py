"""run_verify -- run check functions in series for test verification.

Steps may be synchronous, return awaitables, or take a continuation
callback; results thread from one step to the next and the run ends
in exactly one completion.
"""
from run_verify.rv_modules.engine import (
    Defer,
    DeferWait,
    Step,
    StepKind,
    async_verify,
    create_defer,
    expect_error,
    expect_error_has,
    expect_error_to_be,
    on_fail_verify,
    run_finally,
    run_timeout,
    run_verify,
    with_callback,
    wrap_async_verify,
    wrap_check,
    wrap_verify,
)
from run_verify.rv_modules.errors import (
    ClassificationError,
    CompletionError,
    ConfigurationError,
    DeferTimeoutError,
    ExpectationError,
    NotCallableError,
    RunTimeoutError,
    UsageError,
    VerifyError,
)
from run_verify.rv_modules.types import (
    VerifySettings,
    configure,
    get_settings,
    reset_settings,
)

__all__ = [
    "ClassificationError",
    "CompletionError",
    "ConfigurationError",
    "Defer",
    "DeferTimeoutError",
    "DeferWait",
    "ExpectationError",
    "NotCallableError",
    "RunTimeoutError",
    "Step",
    "StepKind",
    "UsageError",
    "VerifyError",
    "VerifySettings",
    "async_verify",
    "configure",
    "create_defer",
    "expect_error",
    "expect_error_has",
    "expect_error_to_be",
    "get_settings",
    "on_fail_verify",
    "reset_settings",
    "run_finally",
    "run_timeout",
    "run_verify",
    "with_callback",
    "wrap_async_verify",
    "wrap_check",
    "wrap_verify",
]
