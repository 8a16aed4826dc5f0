"""Tests for the composition registry."""

from dataclasses import FrozenInstanceError
from unittest.mock import MagicMock

import pytest

from riffbox.recording import RecordingRuntime
from riffbox.registry import DEFAULT_TEMPO_BPM, CompositionRegistry, RegistryEvent


@pytest.fixture
def registry():
    return CompositionRegistry()


@pytest.fixture
def events(registry):
    """Collect every event the registry publishes."""
    seen = []
    registry.subscribe(seen.append)
    return seen


class TestInstruments:
    """Tests for instrument registration."""

    def test_register_assigns_unique_ids(self, registry):
        a = registry.register_instrument("lead", "Synth")
        b = registry.register_instrument("lead", "Synth")

        assert a.id != b.id
        assert registry.get_instrument(a.id) == a
        assert registry.instruments() == (a, b)

    def test_register_keeps_runtime_ref(self, registry):
        ref = object()

        instrument = registry.register_instrument("kick", "Kick", ref)

        assert instrument.runtime_ref is ref

    def test_find_instrument_returns_latest(self, registry):
        registry.register_instrument("lead", "Synth")
        latest = registry.register_instrument("lead", "FM")

        assert registry.find_instrument("lead") == latest
        assert registry.find_instrument("bass") is None

    def test_unregister_cascades_to_sequences(self, registry):
        """Removing an instrument removes every sequence that targets it."""
        lead = registry.register_instrument("lead", "Synth")
        kick = registry.register_instrument("kick", "Kick")
        registry.register_sequence(lead.id, "note", [60, 62], [0.5])
        registry.register_sequence(lead.id, "cutoff", [0.2], [1])
        kept = registry.register_sequence(kick.id, "trigger", [1], [1])

        registry.unregister_instrument(lead.id)

        assert registry.get_instrument(lead.id) is None
        assert registry.sequences() == (kept,)

    def test_unregister_missing_id_is_silent(self, registry, events):
        registry.unregister_instrument("nope")

        assert events == []

    def test_events_for_instruments(self, registry, events):
        lead = registry.register_instrument("lead", "Synth")
        registry.unregister_instrument(lead.id)

        assert events == [RegistryEvent.INSTRUMENT_ADDED, RegistryEvent.INSTRUMENT_REMOVED]


class TestSequences:
    """Tests for sequence registration."""

    def test_register_sequence_stores_tuples(self, registry):
        lead = registry.register_instrument("lead", "Synth")

        sequence = registry.register_sequence(lead.id, "note", [60, 62], [0.25, 0.5])

        assert sequence.values == (60, 62)
        assert sequence.timings == (0.25, 0.5)
        assert sequence.is_playing is True

    def test_unregister_sequence(self, registry, events):
        lead = registry.register_instrument("lead", "Synth")
        sequence = registry.register_sequence(lead.id, "note")

        registry.unregister_sequence(sequence.id)
        registry.unregister_sequence(sequence.id)

        assert registry.sequences() == ()
        assert events.count(RegistryEvent.SEQUENCE_REMOVED) == 1


class TestTempo:
    """Tests for tempo handling."""

    def test_default_tempo(self, registry):
        assert registry.get_tempo() == DEFAULT_TEMPO_BPM == 120.0

    def test_set_tempo(self, registry, events):
        registry.set_tempo(90)

        assert registry.get_tempo() == 90.0
        assert events == [RegistryEvent.TEMPO_CHANGED]

    @pytest.mark.parametrize("bpm", [0, -10, True, "fast", None])
    def test_set_tempo_rejects_invalid(self, registry, bpm):
        with pytest.raises(ValueError):
            registry.set_tempo(bpm)

        assert registry.get_tempo() == 120.0

    def test_set_tempo_pushes_to_runtime(self, registry):
        runtime = RecordingRuntime(bpm=60)
        registry.attach(runtime)

        assert runtime.bpm == 120.0

        registry.set_tempo(140)

        assert runtime.bpm == 140.0

    def test_detached_registry_does_not_push(self, registry):
        runtime = RecordingRuntime()
        registry.attach(runtime)
        registry.detach()

        registry.set_tempo(80)

        assert runtime.bpm == 120.0
        assert registry.handle is None

    def test_invalid_default_tempo(self):
        with pytest.raises(ValueError):
            CompositionRegistry(default_tempo=0)


class TestReset:
    """Tests for reset and stop_all."""

    def test_reset_clears_everything(self, registry, events):
        """After reset: no instruments, no sequences, default tempo."""
        runtime = RecordingRuntime()
        registry.attach(runtime)
        lead = registry.register_instrument("lead", "Synth")
        registry.register_sequence(lead.id, "note", [60], [1])
        registry.set_tempo(200)
        events.clear()

        registry.reset()

        assert registry.instruments() == ()
        assert registry.sequences() == ()
        assert registry.get_tempo() == 120.0
        assert runtime.bpm == 120.0
        assert runtime.clear_count == 1
        assert events == [RegistryEvent.RESET]

    def test_reset_restores_custom_default(self):
        registry = CompositionRegistry(default_tempo=96)
        registry.set_tempo(150)

        registry.reset()

        assert registry.get_tempo() == 96.0

    def test_stop_all_marks_sequences_stopped(self, registry, events):
        runtime = RecordingRuntime()
        registry.attach(runtime)
        lead = registry.register_instrument("lead", "Synth")
        registry.register_sequence(lead.id, "note", [60], [1])

        registry.stop_all()

        assert registry.snapshot().is_playing is False
        assert len(registry.instruments()) == 1
        assert runtime.clear_count == 1
        assert events[-1] is RegistryEvent.STOPPED

    def test_reset_takes_effect_when_runtime_clear_fails(self, registry, events):
        """A runtime that raises on clear() still leaves the registry reset."""
        runtime = MagicMock()
        runtime.clear.side_effect = RuntimeError("engine gone")
        registry.attach(runtime)
        lead = registry.register_instrument("lead", "Synth")
        registry.register_sequence(lead.id, "note", [60], [1])
        registry.set_tempo(200)
        events.clear()

        with pytest.raises(RuntimeError, match="engine gone"):
            registry.reset()

        assert registry.instruments() == ()
        assert registry.sequences() == ()
        assert registry.get_tempo() == 120.0
        assert events == [RegistryEvent.RESET]

    def test_stop_all_takes_effect_when_runtime_clear_fails(self, registry, events):
        runtime = MagicMock()
        runtime.clear.side_effect = RuntimeError("engine gone")
        registry.attach(runtime)
        lead = registry.register_instrument("lead", "Synth")
        registry.register_sequence(lead.id, "note", [60], [1])
        events.clear()

        with pytest.raises(RuntimeError):
            registry.stop_all()

        assert registry.snapshot().is_playing is False
        assert events == [RegistryEvent.STOPPED]


class TestSnapshot:
    """Tests for snapshots."""

    def test_snapshot_is_detached_from_later_changes(self, registry):
        lead = registry.register_instrument("lead", "Synth")
        snapshot = registry.snapshot()

        registry.register_sequence(lead.id, "note", [60], [1])
        registry.set_tempo(70)

        assert snapshot.sequences == ()
        assert snapshot.tempo_bpm == 120.0
        assert snapshot.is_playing is False

    def test_snapshot_entries_are_frozen(self, registry):
        registry.register_instrument("lead", "Synth")
        instrument = registry.snapshot().instruments[0]

        with pytest.raises(FrozenInstanceError):
            instrument.name = "other"

    def test_snapshot_to_dict(self, registry):
        lead = registry.register_instrument("lead", "Synth")
        registry.register_sequence(lead.id, "note", [60], [0.5])

        data = registry.snapshot().to_dict()

        assert data["tempo_bpm"] == 120.0
        assert data["instruments"][0]["name"] == "lead"
        assert data["sequences"][0]["values"] == [60]


class TestSubscriptions:
    """Tests for listener management."""

    def test_unsubscribe_stops_notifications(self, registry):
        listener = MagicMock()
        unsubscribe = registry.subscribe(listener)

        registry.set_tempo(100)
        unsubscribe()
        unsubscribe()
        registry.set_tempo(110)

        listener.assert_called_once_with(RegistryEvent.TEMPO_CHANGED)

    def test_failing_listener_does_not_block_others(self, registry):
        """A raising listener is isolated; later listeners still run."""
        registry.subscribe(MagicMock(side_effect=RuntimeError("boom")))
        listener = MagicMock()
        registry.subscribe(listener)

        registry.reset()

        listener.assert_called_once_with(RegistryEvent.RESET)
