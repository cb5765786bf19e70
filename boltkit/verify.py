"""Optional runtime verification and assertion helpers."""

from __future__ import annotations

import os
from enum import Enum
from typing import Callable

ENV_VERIFY = "BOLTKIT_VERIFY"


class VerificationType(str, Enum):
    """Levels of runtime verification selectable through the environment."""

    ALL = "all"
    ASSERT = "assert"


class AssertionFailure(AssertionError):
    """Raised when an internal consistency assertion does not hold."""


def _env_verify() -> str:
    return os.environ.get(ENV_VERIFY, "").lower()


def _value_of(verification: VerificationType | str) -> str:
    if isinstance(verification, VerificationType):
        return verification.value
    return str(verification)


class _Restore:
    """Callable that puts back a previous environment setting.

    It can also be used as a context manager, restoring on exit.
    """

    def __init__(self, previous: str) -> None:
        self._previous = previous

    def __call__(self) -> None:
        os.environ[ENV_VERIFY] = self._previous

    def __enter__(self) -> "_Restore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self()


def is_verification_enabled(verification: VerificationType | str) -> bool:
    """Return True if the given verification level is switched on."""
    env = _env_verify()
    return env == VerificationType.ALL.value or env == _value_of(verification).lower()


def enable_verifications(verification: VerificationType | str) -> _Restore:
    """Switch on a verification level; return a callable restoring the old setting."""
    previous = _env_verify()
    os.environ[ENV_VERIFY] = _value_of(verification)
    return _Restore(previous)


def enable_all_verifications() -> _Restore:
    """Switch on every verification; return a callable restoring the old setting."""
    return enable_verifications(VerificationType.ALL)


def disable_verifications() -> _Restore:
    """Switch off verification; return a callable restoring the old setting."""
    previous = _env_verify()
    os.environ.pop(ENV_VERIFY, None)
    return _Restore(previous)


def verify(check: Callable[[], object]) -> None:
    """Run ``check`` only when assertion verification is enabled."""
    if is_verification_enabled(VerificationType.ASSERT):
        check()


def check(condition: bool, msg: str, *args: object) -> None:
    """Raise AssertionFailure with a formatted message unless ``condition`` holds."""
    if not condition:
        text = msg % args if args else msg
        raise AssertionFailure("assertion failed: " + text)