# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Composition registry - the record of what is currently live.

Tracks instruments and the sequences driving them, owns the composition
tempo, and notifies subscribers on every state transition. One registry is
owned per RuntimeContext; there is no module-level instance.

All operations are synchronous and run on the event-loop thread, so no
locking is done. Callers must not assume atomicity across an await.
"""

import logging
import time
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from riffbox.schemas import CompositionSnapshot, Instrument, Sequence


DEFAULT_TEMPO_BPM = 120.0


class RegistryEvent(Enum):
    """State transitions published to registry subscribers."""

    RESET = "reset"
    INSTRUMENT_ADDED = "instrument_added"
    INSTRUMENT_REMOVED = "instrument_removed"
    SEQUENCE_ADDED = "sequence_added"
    SEQUENCE_REMOVED = "sequence_removed"
    TEMPO_CHANGED = "tempo_changed"
    STOPPED = "stopped"


Listener = Callable[[RegistryEvent], None]


def _utcnow() -> datetime:
    """Return current UTC time."""
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


def notify_listeners(
    listeners: Iterable[Callable[[Any], None]], value: Any, logger: logging.Logger
) -> None:
    """Call every listener; a failing listener is logged and skipped."""
    for listener in list(listeners):
        try:
            listener(value)
        except Exception as e:
            logger.warning(f"Listener {listener!r} failed on {value}: {e}")


class CompositionRegistry:
    """Mutable store of active instruments and sequences."""

    def __init__(self, default_tempo: float = DEFAULT_TEMPO_BPM):
        if default_tempo <= 0:
            raise ValueError(f"default tempo must be positive, got: {default_tempo}")
        self.default_tempo = float(default_tempo)
        self.logger = logging.getLogger(__name__)
        self._tempo = self.default_tempo
        self._instruments: Dict[str, Instrument] = {}
        self._sequences: Dict[str, Sequence] = {}
        self._listeners: List[Listener] = []
        self._handle: Any = None

    # -------------------------------------------------------------------------
    # Runtime handle
    # -------------------------------------------------------------------------

    def attach(self, handle: Any) -> None:
        """Attach the runtime handle whose tempo this registry drives."""
        self._handle = handle
        if handle is not None:
            handle.bpm = self._tempo

    def detach(self) -> None:
        self._handle = None

    @property
    def handle(self) -> Any:
        return self._handle

    # -------------------------------------------------------------------------
    # Instruments
    # -------------------------------------------------------------------------

    def register_instrument(self, name: str, kind: str, runtime_ref: Any = None) -> Instrument:
        """Track a new instrument.

        Args:
            name: Binding name from the script.
            kind: Constructor name.
            runtime_ref: Live runtime object, referenced not copied.

        Returns:
            The stored Instrument with a fresh id.
        """
        instrument = Instrument(
            id=_new_id(),
            name=name,
            kind=kind,
            created_at=time.monotonic(),
            runtime_ref=runtime_ref,
        )
        self._instruments[instrument.id] = instrument
        self.logger.debug(f"Registered instrument {name} ({kind}) as {instrument.id}")
        self._emit(RegistryEvent.INSTRUMENT_ADDED)
        return instrument

    def unregister_instrument(self, instrument_id: str) -> None:
        """Remove an instrument and all of its sequences.

        Missing ids are ignored; this is called from best-effort cleanup.
        """
        removed = self._instruments.pop(instrument_id, None)
        orphaned = [s.id for s in self._sequences.values() if s.instrument_id == instrument_id]
        for seq_id in orphaned:
            del self._sequences[seq_id]
        if removed is not None or orphaned:
            self.logger.debug(
                f"Unregistered instrument {instrument_id} and {len(orphaned)} sequence(s)"
            )
            self._emit(RegistryEvent.INSTRUMENT_REMOVED)

    def get_instrument(self, instrument_id: str) -> Optional[Instrument]:
        return self._instruments.get(instrument_id)

    def find_instrument(self, name: str) -> Optional[Instrument]:
        """Return the most recently registered instrument bound to name."""
        for instrument in reversed(list(self._instruments.values())):
            if instrument.name == name:
                return instrument
        return None

    def instruments(self) -> Tuple[Instrument, ...]:
        return tuple(self._instruments.values())

    # -------------------------------------------------------------------------
    # Sequences
    # -------------------------------------------------------------------------

    def register_sequence(
        self,
        instrument_id: str,
        target: str,
        values: Iterable[Any] = (),
        timings: Iterable[float] = (),
    ) -> Sequence:
        """Track a new sequence.

        The instrument id is not checked; callers registering from source
        scans resolve it first.
        """
        sequence = Sequence(
            id=_new_id(),
            instrument_id=instrument_id,
            target=target,
            values=tuple(values),
            timings=tuple(timings),
            is_playing=True,
        )
        self._sequences[sequence.id] = sequence
        self._emit(RegistryEvent.SEQUENCE_ADDED)
        return sequence

    def unregister_sequence(self, sequence_id: str) -> None:
        if self._sequences.pop(sequence_id, None) is not None:
            self._emit(RegistryEvent.SEQUENCE_REMOVED)

    def sequences(self) -> Tuple[Sequence, ...]:
        return tuple(self._sequences.values())

    # -------------------------------------------------------------------------
    # Tempo
    # -------------------------------------------------------------------------

    def get_tempo(self) -> float:
        return self._tempo

    def set_tempo(self, bpm: float) -> None:
        """Set the composition tempo and push it to the attached runtime.

        Raises:
            ValueError: If bpm is not positive.
        """
        if isinstance(bpm, bool) or not isinstance(bpm, (int, float)) or bpm <= 0:
            raise ValueError(f"tempo must be a positive number, got: {bpm!r}")
        self._tempo = float(bpm)
        if self._handle is not None:
            self._handle.bpm = self._tempo
        self._emit(RegistryEvent.TEMPO_CHANGED)

    # -------------------------------------------------------------------------
    # Whole-registry operations
    # -------------------------------------------------------------------------

    def snapshot(self) -> CompositionSnapshot:
        """Capture tempo and both collections as an immutable snapshot."""
        return CompositionSnapshot(
            tempo_bpm=self._tempo,
            instruments=self.instruments(),
            sequences=self.sequences(),
            taken_at=_utcnow(),
        )

    def stop_all(self) -> None:
        """Silence the runtime and mark every sequence as stopped.

        Nothing is removed from the registry.
        """
        self._sequences = {
            seq_id: replace(seq, is_playing=False)
            for seq_id, seq in self._sequences.items()
        }
        try:
            if self._handle is not None:
                self._handle.clear()
        finally:
            self._emit(RegistryEvent.STOPPED)

    def reset(self) -> None:
        """Clear both collections and restore the default tempo, then notify."""
        # Swap in fresh containers so no observer sees a half-cleared state.
        self._instruments, self._sequences = {}, {}
        self._tempo = self.default_tempo
        try:
            if self._handle is not None:
                self._handle.clear()
                self._handle.bpm = self._tempo
        finally:
            self.logger.info("Registry reset")
            self._emit(RegistryEvent.RESET)

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener for state transitions.

        Returns:
            A function that removes the listener. Calling it twice is safe.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: RegistryEvent) -> None:
        notify_listeners(self._listeners, event, self.logger)
