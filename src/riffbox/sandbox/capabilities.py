"""Capability surface exposed to executed scripts.

The surface is a fixed table of constructor names bound to the live runtime
handle, plus one namespace proxy. It is rebuilt for every execution and
holds no state of its own.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import builtins
import logging
from typing import Any, Dict

from RestrictedPython.Guards import safe_builtins

from riffbox.sandbox.policy import guard_bindings

logger = logging.getLogger(__name__)

INSTRUMENT_CONSTRUCTORS = (
    "Synth",
    "FM",
    "Monosynth",
    "Pluck",
    "Kick",
    "Snare",
    "Hat",
    "Clap",
    "Cowbell",
    "Drums",
    "EDrums",
)

EFFECT_CONSTRUCTORS = (
    "Delay",
    "Reverb",
    "BitCrusher",
    "Distortion",
    "Flanger",
    "Vibrato",
    "Tremolo",
    "Wavefolder",
)

NAMESPACE_BINDING = "Audio"

# Pure builtins added on top of RestrictedPython's safe_builtins.
EXTRA_BUILTIN_NAMES = (
    "abs",
    "all",
    "any",
    "bool",
    "dict",
    "divmod",
    "enumerate",
    "float",
    "int",
    "isinstance",
    "len",
    "list",
    "max",
    "min",
    "pow",
    "range",
    "reversed",
    "round",
    "set",
    "sorted",
    "str",
    "sum",
    "tuple",
    "zip",
    "ArithmeticError",
    "Exception",
    "IndexError",
    "KeyError",
    "TypeError",
    "ValueError",
    "ZeroDivisionError",
)

SAFE_BUILTINS: Dict[str, Any] = dict(safe_builtins)
SAFE_BUILTINS.update((name, getattr(builtins, name)) for name in EXTRA_BUILTIN_NAMES)


class CapabilityNamespace:
    """Read/write proxy over the public attributes of a runtime handle.

    Private and dunder names are refused, so the proxy cannot be used to walk
    back to the handle's class or module.
    """

    __slots__ = ("_handle",)

    def __init__(self, handle: Any):
        object.__setattr__(self, "_handle", handle)

    def __getattribute__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(f"'{NAMESPACE_BINDING}' has no attribute '{name}'")
        return getattr(object.__getattribute__(self, "_handle"), name)

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_"):
            raise AttributeError(f"cannot set '{name}' on '{NAMESPACE_BINDING}'")
        setattr(object.__getattribute__(self, "_handle"), name, value)

    def __repr__(self) -> str:
        return f"<{NAMESPACE_BINDING} namespace>"


def build_capabilities(handle: Any) -> Dict[str, Any]:
    """Build the capability table for one execution.

    Args:
        handle: Live runtime handle exposing the named constructors.

    Returns:
        Mapping of binding name to constructor callable, plus the namespace
        proxy under NAMESPACE_BINDING.
    """
    table: Dict[str, Any] = {}
    for name in INSTRUMENT_CONSTRUCTORS + EFFECT_CONSTRUCTORS:
        constructor = getattr(handle, name, None)
        if not callable(constructor):
            logger.debug(f"Runtime handle has no constructor {name}; not exposed")
            continue
        table[name] = constructor
    table[NAMESPACE_BINDING] = CapabilityNamespace(handle)
    return table


def build_globals(handle: Any) -> Dict[str, Any]:
    """Build the full globals dict a script is evaluated against.

    __builtins__ is always set so the interpreter does not inject the real
    builtins module. The guard bindings are what restricted code calls for
    attribute, item and iteration access.
    """
    scope = build_capabilities(handle)
    scope.update(guard_bindings())
    scope["__builtins__"] = dict(SAFE_BUILTINS)
    return scope
