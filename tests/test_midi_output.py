import asyncio
import typing

import mido
import pytest

import conftest
import livemirror.midi_output
import livemirror.pattern


def _hap (value: typing.Any, clip: float = 1.0) -> livemirror.pattern.Hap:

	span = livemirror.pattern.TimeSpan(0, 1)
	return livemirror.pattern.Hap(whole=span, part=span, value=value, clip=clip)


@pytest.mark.parametrize("value, expected", [
	(60, 60),
	(61.6, 62),
	("c4", 60),
	("a4", 69),
	("C4", 60),
	("c#4", 61),
	("cs4", 61),
	("eb3", 51),
	("c", 48),
	("bd", 36),
	("sn", 38),
	("hh", 42),
	("oh", 46),
])
def test_note_to_midi (value: typing.Any, expected: int) -> None:

	"""Numbers, note names and drum names map to MIDI notes."""

	assert livemirror.midi_output.note_to_midi(value) == expected


@pytest.mark.parametrize("value", [128, -1, True, None, "xyz", "h4", "c20", [60]])
def test_note_to_midi_rejects (value: typing.Any) -> None:

	"""Out-of-range or unknown values have no note."""

	assert livemirror.midi_output.note_to_midi(value) is None


def test_select_output_device_defaults_to_first (patch_midi: None) -> None:

	"""Without a name the available device is opened."""

	name, midi_out = livemirror.midi_output.select_output_device()

	assert name == "Dummy MIDI"
	assert midi_out is conftest.current_fake_output()


def test_select_output_device_unknown_name (patch_midi: None) -> None:

	"""An unknown device name opens nothing."""

	assert livemirror.midi_output.select_output_device("Nope") == (None, None)


def test_invalid_channel () -> None:

	"""Channels outside 0-15 are rejected."""

	with pytest.raises(ValueError):
		livemirror.midi_output.MidiTrigger(channel=16, midi_out=conftest.FakeMidiOut())


def test_trigger_without_loop_sends_immediately () -> None:

	"""Outside an event loop the note is sent at once."""

	fake = conftest.FakeMidiOut()
	trigger = livemirror.midi_output.MidiTrigger(channel=9, midi_out=fake)

	trigger(_hap("bd"), 0.0, 0.5, 1.0)

	assert [message.type for message in fake.sent] == ["note_on", "note_off"]
	assert all(message.note == 36 and message.channel == 9 for message in fake.sent)
	assert trigger.active_notes == set()


def test_unknown_value_sends_nothing () -> None:

	"""Values without a note are skipped."""

	fake = conftest.FakeMidiOut()
	trigger = livemirror.midi_output.MidiTrigger(midi_out=fake)

	trigger(_hap("~~~"), 0.0, 0.5, 1.0)

	assert fake.sent == []


@pytest.mark.asyncio
async def test_trigger_schedules_note_on_and_off () -> None:

	"""The note starts at the deadline and ends after the clipped duration."""

	fake = conftest.FakeMidiOut()
	trigger = livemirror.midi_output.MidiTrigger(midi_out=fake, velocity=90)

	trigger(_hap("c4", clip=0.5), 0.01, 0.08, 1.0)

	assert fake.sent == []

	await asyncio.sleep(0.03)

	assert fake.sent == [mido.Message("note_on", channel=0, note=60, velocity=90)]
	assert trigger.active_notes == {60}

	await asyncio.sleep(0.05)

	assert fake.sent[-1] == mido.Message("note_off", channel=0, note=60, velocity=0)
	assert trigger.active_notes == set()


def test_close_silences_and_closes (patch_midi: None) -> None:

	"""Closing sends note off for sounding notes and closes the port."""

	trigger = livemirror.midi_output.MidiTrigger()
	fake = conftest.current_fake_output()

	assert fake is not None

	trigger._send("note_on", 40)
	trigger.close()

	assert fake.sent[-1].type == "note_off"
	assert fake.sent[-1].note == 40
	assert fake.closed
	assert trigger.midi_out is None

	trigger(_hap("bd"), 0.0, 0.5, 1.0)
	assert len(fake.sent) == 2
