"""Sandboxed execution of untrusted audio scripts.

Scripts are gated by a pattern classifier, evaluated against a minimal
capability surface, and raced against a deadline. What they declare is
tracked in the composition registry.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

from riffbox.sandbox.capabilities import (
    EFFECT_CONSTRUCTORS,
    INSTRUMENT_CONSTRUCTORS,
    NAMESPACE_BINDING,
    build_capabilities,
    build_globals,
)
from riffbox.sandbox.classifier import classify, is_safe
from riffbox.sandbox.executor import SandboxExecutor, render_outcomes
from riffbox.sandbox.extraction import (
    SequenceDeclaration,
    extract_instrument_declarations,
    extract_sequence_declarations,
)

__all__ = [
    "classify",
    "is_safe",
    "build_capabilities",
    "build_globals",
    "INSTRUMENT_CONSTRUCTORS",
    "EFFECT_CONSTRUCTORS",
    "NAMESPACE_BINDING",
    "SandboxExecutor",
    "render_outcomes",
    "SequenceDeclaration",
    "extract_instrument_declarations",
    "extract_sequence_declarations",
]
