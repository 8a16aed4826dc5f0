# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Validation and execution result schemas.

Follows the run-record pattern:
- source → classify → ValidationVerdict
- source + ExecutionOptions → execute → ExecutionOutcome
Outcomes are the only transport out of the executor; nothing is raised.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

from riffbox.errors import SandboxError


class Severity(Enum):
    """Finding severity. Only BLOCKING findings reject a script."""

    BLOCKING = "blocking"
    ADVISORY = "advisory"


@dataclass(frozen=True)
class Finding:
    """A single classifier finding."""
    severity: Severity
    message: str
    line: Optional[int] = None  # 1-based


@dataclass(frozen=True)
class ValidationVerdict:
    """Result of classifying a script.

    Build with from_findings() so is_acceptable always agrees with the
    findings.
    """
    is_acceptable: bool
    findings: Tuple[Finding, ...] = ()

    @classmethod
    def from_findings(cls, findings: Iterable[Finding]) -> "ValidationVerdict":
        findings = tuple(findings)
        blocked = any(f.severity is Severity.BLOCKING for f in findings)
        return cls(is_acceptable=not blocked, findings=findings)

    @property
    def blocking(self) -> Tuple[Finding, ...]:
        return tuple(f for f in self.findings if f.severity is Severity.BLOCKING)

    @property
    def advisories(self) -> Tuple[Finding, ...]:
        return tuple(f for f in self.findings if f.severity is Severity.ADVISORY)


@dataclass(frozen=True)
class ExecutionOptions:
    """Per-call execution options."""
    timeout_ms: int = 5000
    validate: bool = True
    track: bool = True  # register extracted declarations on success


@dataclass(frozen=True)
class ExecutionOutcome:
    """Result of one execution attempt.

    Exactly one of return_value / failure is meaningful: return_value when
    succeeded, failure otherwise.
    """
    succeeded: bool
    elapsed_ms: int
    return_value: Any = None
    failure: Optional[SandboxError] = None
    correlation_id: Optional[str] = field(default=None, compare=False)

    @classmethod
    def success(
        cls, value: Any, elapsed_ms: int, correlation_id: Optional[str] = None
    ) -> "ExecutionOutcome":
        return cls(
            succeeded=True,
            elapsed_ms=max(0, elapsed_ms),
            return_value=value,
            correlation_id=correlation_id,
        )

    @classmethod
    def failed(
        cls, error: SandboxError, elapsed_ms: int, correlation_id: Optional[str] = None
    ) -> "ExecutionOutcome":
        return cls(
            succeeded=False,
            elapsed_ms=max(0, elapsed_ms),
            failure=error,
            correlation_id=correlation_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "succeeded": self.succeeded,
            "elapsed_ms": self.elapsed_ms,
        }
        if self.correlation_id:
            data["correlation_id"] = self.correlation_id
        if self.succeeded:
            data["return_value"] = repr(self.return_value)
        elif self.failure is not None:
            data["failure"] = self.failure.to_dict()
        return data
