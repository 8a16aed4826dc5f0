# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Composition registry entities and snapshots."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Tuple


@dataclass(frozen=True)
class Instrument:
    """A tracked instrument.

    runtime_ref points at the live runtime object. It is never copied and
    does not take part in equality.
    """
    id: str
    name: str  # binding name chosen by the script author
    kind: str  # constructor name, e.g. "Synth"
    created_at: float  # time.monotonic()
    runtime_ref: Any = field(default=None, compare=False, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "kind": self.kind}


@dataclass(frozen=True)
class Sequence:
    """A running sequence driving one property or method of an instrument."""
    id: str
    instrument_id: str
    target: str  # e.g. "note", "cutoff"
    values: Tuple[Any, ...] = ()
    timings: Tuple[float, ...] = ()  # durations in beats
    is_playing: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "instrument_id": self.instrument_id,
            "target": self.target,
            "values": list(self.values),
            "timings": list(self.timings),
            "is_playing": self.is_playing,
        }


@dataclass(frozen=True)
class CompositionSnapshot:
    """Point-in-time view of the registry. Never mutated after creation."""
    tempo_bpm: float
    instruments: Tuple[Instrument, ...]
    sequences: Tuple[Sequence, ...]
    taken_at: datetime

    @property
    def is_playing(self) -> bool:
        return any(seq.is_playing for seq in self.sequences)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tempo_bpm": self.tempo_bpm,
            "is_playing": self.is_playing,
            "taken_at": self.taken_at.isoformat(),
            "instruments": [i.to_dict() for i in self.instruments],
            "sequences": [s.to_dict() for s in self.sequences],
        }
