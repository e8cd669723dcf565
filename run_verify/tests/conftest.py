"""Shared test fixtures for the run_verify test suite."""
from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterator

import pytest

from run_verify.rv_modules.types import reset_settings


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Every test starts from default settings with no RUN_VERIFY_* env."""
    for name in (
        "RUN_VERIFY_CALLBACK_PREFIXES",
        "RUN_VERIFY_WAIT_TIMEOUT_MS",
        "RUN_VERIFY_DEBUG",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def foo_event() -> Callable[[int, Callable[..., object]], None]:
    """Return fn(delay_ms, cb) that later calls cb(None, "foo")."""

    def fire(delay_ms: int, cb: Callable[..., object]) -> None:
        asyncio.get_running_loop().call_later(delay_ms / 1000, cb, None, "foo")

    return fire


@pytest.fixture
def foo_error_event() -> Callable[[int, Callable[..., object]], None]:
    """Return fn(delay_ms, cb) that later calls cb(RuntimeError("foo failed"))."""

    def fire(delay_ms: int, cb: Callable[..., object]) -> None:
        asyncio.get_running_loop().call_later(
            delay_ms / 1000, cb, RuntimeError("foo failed"),
        )

    return fire

