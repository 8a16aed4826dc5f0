# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Error taxonomy for riffbox.

Every failure that crosses the execution boundary is a SandboxError with one
of four kinds, so callers match on ``error.kind`` instead of catching a zoo of
exception types.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    """Classification of a failed execution attempt.

    not_ready: no runtime handle is available
    invalid_source: the static gate rejected the script, nothing ran
    runtime_failure: the script raised while running
    timeout: the deadline passed first, the script may still be running
    """

    NOT_READY = "not_ready"
    INVALID_SOURCE = "invalid_source"
    RUNTIME_FAILURE = "runtime_failure"
    TIMEOUT = "timeout"


class SandboxError(Exception):
    """A classified execution failure.

    Raised by capability code or by the runtime context, and carried as data
    inside ExecutionOutcome. Attributes are read-only once constructed.
    """

    def __init__(self, kind: ErrorKind, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self._kind = kind
        self._message = message
        self._cause = cause

    @property
    def kind(self) -> ErrorKind:
        return self._kind

    @property
    def message(self) -> str:
        return self._message

    @property
    def cause(self) -> Optional[BaseException]:
        return self._cause

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view used by event logging and JSON rendering."""
        data: Dict[str, Any] = {"kind": self._kind.value, "message": self._message}
        if self._cause is not None:
            data["cause"] = f"{type(self._cause).__name__}: {self._cause}"
        return data

    def __repr__(self) -> str:
        return f"SandboxError({self._kind.value!r}, {self._message!r})"


class ConfigError(Exception):
    """Raised when a configuration file is malformed."""

    pass


def classify_exception(exc: BaseException) -> SandboxError:
    """Normalize anything raised during execution into a SandboxError.

    Already-typed sandbox errors pass through unchanged.
    """
    if isinstance(exc, SandboxError):
        return exc
    message = str(exc) or type(exc).__name__
    return SandboxError(ErrorKind.RUNTIME_FAILURE, message, cause=exc)
