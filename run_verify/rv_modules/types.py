"""Shared type definitions and settings for run_verify."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, field_validator

from run_verify.rv_modules import io_ops

DEFAULT_CALLBACK_PREFIXES: tuple[str, ...] = ("next", "cb", "callback", "done")

ENV_CALLBACK_PREFIXES = "RUN_VERIFY_CALLBACK_PREFIXES"
ENV_WAIT_TIMEOUT_MS = "RUN_VERIFY_WAIT_TIMEOUT_MS"
ENV_DEBUG = "RUN_VERIFY_DEBUG"

_TRUTHY = frozenset({"1", "true", "yes", "on"})


class VerifySettings(BaseModel):
    """Engine settings, snapshotted by each run when it starts.

    callback_param_prefixes drives the one-parameter heuristic: a step
    whose sole parameter name starts with one of these (case-insensitive)
    is handed a continuation instead of the prior result.
    """

    model_config = ConfigDict(frozen=True)

    callback_param_prefixes: tuple[str, ...] = DEFAULT_CALLBACK_PREFIXES
    default_wait_timeout_ms: int | None = None
    debug: bool = False

    @field_validator("callback_param_prefixes", mode="before")
    @classmethod
    def _split_prefixes(cls, value: object) -> object:
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, (list, tuple)):
            prefixes = tuple(
                str(p).strip().lower() for p in value if str(p).strip()
            )
            if not prefixes:
                msg = "callback_param_prefixes must name at least one prefix"
                raise ValueError(msg)
            return prefixes
        return value

    @field_validator("default_wait_timeout_ms")
    @classmethod
    def _positive_timeout(cls, value: int | None) -> int | None:
        if value is not None and value <= 0:
            msg = f"default_wait_timeout_ms must be positive, got {value}"
            raise ValueError(msg)
        return value


def load_settings() -> VerifySettings:
    """Build settings from RUN_VERIFY_* environment variables."""
    overrides: dict[str, object] = {}
    prefixes = io_ops.read_env(ENV_CALLBACK_PREFIXES)
    if prefixes is not None:
        overrides["callback_param_prefixes"] = prefixes
    wait_timeout = io_ops.read_env(ENV_WAIT_TIMEOUT_MS)
    if wait_timeout is not None:
        overrides["default_wait_timeout_ms"] = wait_timeout
    debug = io_ops.read_env(ENV_DEBUG)
    if debug is not None:
        overrides["debug"] = debug.lower() in _TRUTHY
    return VerifySettings(**overrides)


_active: VerifySettings | None = None


def get_settings() -> VerifySettings:
    """Return the active settings, loading them from the environment once."""
    global _active  # noqa: PLW0603
    if _active is None:
        _active = load_settings()
    return _active


def configure(**overrides: object) -> VerifySettings:
    """Replace the active settings with overrides applied on top."""
    global _active  # noqa: PLW0603
    _active = VerifySettings(**{**get_settings().model_dump(), **overrides})
    return _active


def reset_settings() -> None:
    """Forget configured settings; the next get_settings() reloads."""
    global _active  # noqa: PLW0603
    _active = None
