"""Error types for the run_verify step sequencer.

Every failure a run can report is one of these (or the user's own
exception, passed through unchanged). All of them reach the caller
through the completion channel, never as an uncaught raise. The one
exception is CompletionError, which marks a defect in the engine.
"""
from __future__ import annotations

from typing import ClassVar


class VerifyError(Exception):
    """Structured error for run failures raised by the engine itself."""

    error_type: ClassVar[str] = "VerifyError"

    def __init__(
        self,
        message: str,
        *,
        step_index: int | None = None,
        context: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.step_index = step_index
        self.context: dict[str, object] = dict(context or {})

    def to_dict(self) -> dict[str, object]:
        """Return plain dict suitable for JSON serialization.

        Non-serializable context values are converted to string representations.
        """

        def make_safe(obj: object) -> object:
            if isinstance(obj, (str, int, float, bool, type(None))):
                return obj
            if isinstance(obj, (list, tuple)):
                return [make_safe(x) for x in obj]
            if isinstance(obj, dict):
                return {str(k): make_safe(v) for k, v in obj.items()}
            return str(obj)

        return {
            "error_type": self.error_type,
            "message": self.message,
            "step_index": self.step_index,
            "context": make_safe(self.context),
        }

    def __repr__(self) -> str:
        max_len = 500
        base = f"{type(self).__name__}({self.message!r}"
        if self.step_index is not None:
            base += f", step_index={self.step_index}"
        if self.context:
            ctx_str = str(self.context)
            if len(ctx_str) > max_len:
                ctx_str = ctx_str[: max_len - 3] + "..."
            base += f", context={ctx_str}"
        return base + ")"


class ConfigurationError(VerifyError):
    """Entry point called without a done handler or enough steps."""

    error_type = "ConfigurationError"


class NotCallableError(VerifyError):
    """A step entry is not callable."""

    error_type = "NotCallableError"


class ClassificationError(VerifyError):
    """The invocation protocol of a step could not be determined."""

    error_type = "ClassificationError"


class ExpectationError(VerifyError):
    """An expect-error step did not fail, or failed with the wrong message."""

    error_type = "ExpectationError"


class DeferTimeoutError(VerifyError):
    """A Defer did not settle in time.

    origin is "defer" for the bound given to create_defer() and
    "wait" for the bound given to a single wait().
    """

    error_type = "DeferTimeoutError"

    def __init__(
        self,
        message: str,
        *,
        origin: str,
        timeout_ms: int,
        context: dict[str, object] | None = None,
    ) -> None:
        super().__init__(
            message,
            context={**(context or {}), "origin": origin, "timeout_ms": timeout_ms},
        )
        self.origin = origin
        self.timeout_ms = timeout_ms


class RunTimeoutError(VerifyError):
    """A run_timeout() bound expired before the run made progress."""

    error_type = "RunTimeoutError"

    def __init__(
        self,
        message: str,
        *,
        timeout_ms: int,
        step_index: int | None = None,
    ) -> None:
        super().__init__(
            message, step_index=step_index, context={"timeout_ms": timeout_ms},
        )
        self.timeout_ms = timeout_ms


class UsageError(VerifyError):
    """A Defer or decorator was used in a way the engine does not allow."""

    error_type = "UsageError"


class CompletionError(AssertionError):
    """A run tried to complete twice. Always a bug in the engine."""
