"""Tests for the recording runtime."""

import asyncio

import pytest

from riffbox.recording import RecordedNode, RecordingRuntime
from riffbox.sandbox.capabilities import EFFECT_CONSTRUCTORS, INSTRUMENT_CONSTRUCTORS


class TestRecordingRuntime:
    """Tests for RecordingRuntime constructors."""

    @pytest.mark.parametrize("kind", INSTRUMENT_CONSTRUCTORS + EFFECT_CONSTRUCTORS)
    def test_every_constructor_is_available(self, kind):
        runtime = RecordingRuntime()

        node = getattr(runtime, kind)()

        assert isinstance(node, RecordedNode)
        assert node.kind == kind
        assert runtime.nodes == [node]

    def test_constructor_records_arguments(self):
        runtime = RecordingRuntime()

        node = runtime.Synth("bass", attack=0.1)

        assert node.args == ("bass",)
        assert node.properties == {"attack": 0.1}

    def test_clear_is_counted(self):
        runtime = RecordingRuntime()

        runtime.clear()
        runtime.clear()

        assert runtime.clear_count == 2

    def test_wait_scales_with_tempo(self):
        runtime = RecordingRuntime(bpm=6000)

        asyncio.run(runtime.wait(1))


class TestRecordedNode:
    """Tests for what a node records."""

    def test_method_calls_are_recorded(self):
        node = RecordingRuntime().Synth()

        result = node.note(60, velocity=0.5)

        assert result is node
        assert node.calls == [("note", (60,), {"velocity": 0.5})]

    def test_nested_calls_use_dotted_path(self):
        node = RecordingRuntime().Synth()

        node.fx.add("reverb")

        assert node.calls == [("fx.add", ("reverb",), {})]

    def test_property_assignment(self):
        node = RecordingRuntime().Synth()

        node.gain = 0.5
        node.cutoff.value = 0.8

        assert node.properties == {"gain": 0.5, "cutoff": 0.8}
        assert node.cutoff.value == 0.8

    def test_sequences_are_recorded(self):
        node = RecordingRuntime().Kick()

        node.trigger.seq([1, 0.5], [0.25])
        node.note.tidal("0 1 2")

        assert node.sequences == [
            ("trigger", [1, 0.5], [0.25]),
            ("note", "0 1 2", None),
        ]

    def test_private_names_are_not_recorded(self):
        node = RecordingRuntime().Synth()

        with pytest.raises(AttributeError):
            node._secret
        with pytest.raises(AttributeError):
            node.note._path_of_something
