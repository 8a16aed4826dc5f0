# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""riffbox - a trust boundary for model-generated live-coding scripts."""

__version__ = "0.1.0"

from riffbox.context import ContextState, RuntimeContext
from riffbox.errors import ErrorKind, SandboxError
from riffbox.registry import CompositionRegistry, RegistryEvent
from riffbox.sandbox import SandboxExecutor, classify, is_safe
from riffbox.schemas import ExecutionOptions, ExecutionOutcome

__all__ = [
    "__version__",
    "ContextState",
    "RuntimeContext",
    "ErrorKind",
    "SandboxError",
    "CompositionRegistry",
    "RegistryEvent",
    "SandboxExecutor",
    "classify",
    "is_safe",
    "ExecutionOptions",
    "ExecutionOutcome",
]
