# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Recording runtime - an inert runtime handle for dry runs.

Implements every capability constructor, but nodes only record what a
script did to them: property assignments, method calls and sequences.
Nothing makes sound.
"""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

from riffbox.sandbox.capabilities import EFFECT_CONSTRUCTORS, INSTRUMENT_CONSTRUCTORS


class RecordedProperty:
    """A property or method path on a recorded node, e.g. ``note`` or ``fx.add``."""

    def __init__(self, node: "RecordedNode", path: str):
        self._node = node
        self._path = path

    def __getattr__(self, name: str) -> "RecordedProperty":
        if name.startswith("_"):
            raise AttributeError(name)
        return RecordedProperty(self._node, f"{self._path}.{name}")

    def __call__(self, *args: Any, **kwargs: Any) -> "RecordedNode":
        self._node.calls.append((self._path, args, kwargs))
        return self._node

    @property
    def value(self) -> Any:
        return self._node.properties.get(self._path)

    @value.setter
    def value(self, new_value: Any) -> None:
        self._node.properties[self._path] = new_value

    def seq(self, values: Any, timings: Any = None, seq_id: Optional[int] = None) -> "RecordedNode":
        self._node.sequences.append((self._path, values, timings))
        return self._node

    def tidal(self, pattern: str, tidal_id: Optional[int] = None) -> "RecordedNode":
        self._node.sequences.append((self._path, pattern, None))
        return self._node

    def __repr__(self) -> str:
        return f"<{self._node.kind}.{self._path}>"


class RecordedNode:
    """An instrument or effect created by a script."""

    __slots__ = ("kind", "args", "properties", "calls", "sequences")

    def __init__(self, kind: str, args: Tuple[Any, ...], kwargs: Dict[str, Any]):
        object.__setattr__(self, "kind", kind)
        object.__setattr__(self, "args", args)
        object.__setattr__(self, "properties", dict(kwargs))
        object.__setattr__(self, "calls", [])
        object.__setattr__(self, "sequences", [])

    def __getattr__(self, name: str) -> RecordedProperty:
        if name.startswith("_"):
            raise AttributeError(name)
        return RecordedProperty(self, name)

    def __setattr__(self, name: str, value: Any) -> None:
        if name in RecordedNode.__slots__:
            object.__setattr__(self, name, value)
        else:
            self.properties[name] = value

    def __repr__(self) -> str:
        return f"<{self.kind}>"


class RecordingRuntime:
    """Runtime handle whose constructors build RecordedNodes."""

    def __init__(self, bpm: float = 120.0):
        self.bpm = bpm
        self.nodes: List[RecordedNode] = []
        self.clear_count = 0

    def _construct(self, kind: str, args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> RecordedNode:
        node = RecordedNode(kind, args, kwargs)
        self.nodes.append(node)
        return node

    def clear(self) -> None:
        """Stop all sound."""
        self.clear_count += 1

    async def wait(self, beats: float = 1) -> None:
        """Yield to the event loop for a number of beats at the current tempo."""
        await asyncio.sleep(beats * 60.0 / self.bpm)

    def __repr__(self) -> str:
        return f"RecordingRuntime(bpm={self.bpm}, nodes={len(self.nodes)})"


def _constructor(kind: str):
    def construct(self: RecordingRuntime, *args: Any, **kwargs: Any) -> RecordedNode:
        return self._construct(kind, args, kwargs)

    construct.__name__ = kind
    construct.__qualname__ = f"RecordingRuntime.{kind}"
    return construct


for _kind in INSTRUMENT_CONSTRUCTORS + EFFECT_CONSTRUCTORS:
    setattr(RecordingRuntime, _kind, _constructor(_kind))
