# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""riffbox record schemas."""

from riffbox.schemas.composition import (
    CompositionSnapshot,
    Instrument,
    Sequence,
)
from riffbox.schemas.outcome import (
    ExecutionOptions,
    ExecutionOutcome,
    Finding,
    Severity,
    ValidationVerdict,
)

__all__ = [
    "Severity",
    "Finding",
    "ValidationVerdict",
    "ExecutionOptions",
    "ExecutionOutcome",
    "Instrument",
    "Sequence",
    "CompositionSnapshot",
]
