"""Tests for VerifyError and the error taxonomy."""
import json

import pytest

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


def test_verify_error_construction() -> None:
    """Test VerifyError stores all fields correctly."""
    error = VerifyError("boom", step_index=2, context={"key": "value"})
    assert error.message == "boom"
    assert error.step_index == 2
    assert error.context == {"key": "value"}


def test_verify_error_str_is_plain_message() -> None:
    """str() gives the bare message so message checks behave."""
    assert str(VerifyError("foo failed")) == "foo failed"


def test_verify_error_default_context() -> None:
    """Test VerifyError defaults context to empty dict."""
    error = VerifyError("msg")
    assert error.context == {}
    assert error.step_index is None


def test_verify_error_to_dict_includes_all_fields() -> None:
    """to_dict carries type, message, ordinal and context."""
    error = ExpectationError("expecting error", step_index=0, context={"actual": "x"})
    assert error.to_dict() == {
        "error_type": "ExpectationError",
        "message": "expecting error",
        "step_index": 0,
        "context": {"actual": "x"},
    }


def test_verify_error_to_dict_non_serializable_context() -> None:
    """Non-serializable context values become strings."""
    error = VerifyError("msg", context={"obj": object(), "items": (1, {2})})
    result = error.to_dict()
    json.dumps(result)
    assert isinstance(result["context"]["obj"], str)  # type: ignore[index]
    assert result["context"]["items"][0] == 1  # type: ignore[index]


def test_verify_error_repr_truncates_long_context() -> None:
    """repr stays bounded for large contexts."""
    error = VerifyError("msg", context={"data": "x" * 1000})
    text = repr(error)
    assert text.startswith("VerifyError('msg'")
    assert "..." in text
    assert len(text) < 600


@pytest.mark.parametrize(
    ("cls", "error_type"),
    [
        (ConfigurationError, "ConfigurationError"),
        (NotCallableError, "NotCallableError"),
        (ClassificationError, "ClassificationError"),
        (ExpectationError, "ExpectationError"),
        (UsageError, "UsageError"),
    ],
)
def test_error_subclasses(cls: type[VerifyError], error_type: str) -> None:
    """Each subclass is a VerifyError with its own error_type."""
    error = cls("msg")
    assert isinstance(error, VerifyError)
    assert error.error_type == error_type


def test_defer_timeout_error_origin() -> None:
    """DeferTimeoutError records origin and bound in context."""
    error = DeferTimeoutError("defer wait timeout after 5ms", origin="wait", timeout_ms=5)
    assert error.origin == "wait"
    assert error.timeout_ms == 5
    assert error.context == {"origin": "wait", "timeout_ms": 5}


def test_run_timeout_error_fields() -> None:
    """RunTimeoutError names the bound."""
    error = RunTimeoutError("timeout after 50ms", timeout_ms=50, step_index=1)
    assert error.timeout_ms == 50
    assert error.step_index == 1
    assert error.to_dict()["context"] == {"timeout_ms": 50}


def test_completion_error_is_assertion() -> None:
    """Double completion is a defect, not a VerifyError."""
    assert issubclass(CompletionError, AssertionError)
    assert not issubclass(CompletionError, VerifyError)
