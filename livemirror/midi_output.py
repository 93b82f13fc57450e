import asyncio
import logging
import re
import typing

import mido

import livemirror.pattern


logger = logging.getLogger(__name__)


NOTE_NAME_TO_PC: typing.Dict[str, int] = {
	"c": 0, "d": 2, "e": 4, "f": 5, "g": 7, "a": 9, "b": 11,
}

# General MIDI percussion for the usual drum abbreviations.
DRUM_NOTES: typing.Dict[str, int] = {
	"bd": 36,
	"rim": 37,
	"sn": 38,
	"sd": 38,
	"cp": 39,
	"lt": 41,
	"hh": 42,
	"mt": 45,
	"oh": 46,
	"ht": 48,
	"cr": 49,
	"rd": 51,
}

DEFAULT_OCTAVE = 3

_NOTE_RE = re.compile(r"^([a-gA-G])([#sb]*)(-?\d+)?$")


def note_to_midi (value: typing.Any) -> typing.Optional[int]:

	"""
	Convert an event value to a MIDI note number.

	Accepts numbers (0-127), note names with optional accidentals and octave
	(``"c4"``, ``"f#3"``, ``"eb"``, where C4 is 60) and drum abbreviations
	(``"bd"``, ``"sn"``, ``"hh"``...).  Returns None for anything else.
	"""

	if isinstance(value, bool):
		return None

	if isinstance(value, (int, float)):
		note = int(round(value))
		return note if 0 <= note <= 127 else None

	if not isinstance(value, str):
		return None

	name = value.lower()

	if name in DRUM_NOTES:
		return DRUM_NOTES[name]

	match = _NOTE_RE.match(name)

	if match is None:
		return None

	letter, accidentals, octave = match.groups()
	pc = NOTE_NAME_TO_PC[letter.lower()]
	pc += accidentals.count("#") + accidentals.count("s") - accidentals.count("b")

	note = (int(octave) if octave is not None else DEFAULT_OCTAVE) * 12 + 12 + pc

	return note if 0 <= note <= 127 else None


def select_output_device (device_name: typing.Optional[str] = None) -> typing.Tuple[typing.Optional[str], typing.Optional[typing.Any]]:

	"""
	Select and open a MIDI output device.

	If ``device_name`` is provided, that device is opened.  Otherwise the only
	available device is used; with several available the first is chosen and
	the others are listed in the log.

	Returns:
		A tuple of (device_name, midi_out_object) or (None, None) on failure.
	"""

	try:
		outputs = mido.get_output_names()
		logger.info(f"Available MIDI outputs: {outputs}")

		if not outputs:
			logger.error("No MIDI output devices found.")
			return None, None

		if device_name is not None:

			if device_name not in outputs:
				logger.error(
					f"MIDI output device '{device_name}' not found. "
					f"Available devices: {outputs}"
				)
				return None, None

			selected_name = device_name

		else:
			selected_name = outputs[0]

			if len(outputs) > 1:
				logger.warning(f"Several MIDI outputs found, using '{selected_name}'. Set midi.device_name to choose another.")

		midi_out = mido.open_output(selected_name)
		logger.info(f"Opened MIDI output: {selected_name}")

		return selected_name, midi_out

	except Exception as e:
		logger.error(f"Failed to open MIDI output: {e}")
		return None, None


class MidiTrigger:

	"""
	Scheduler trigger sink that plays event values as MIDI notes.

	Pass an instance as the engine's ``on_trigger``.  Each onset schedules a
	note on at its deadline and the matching note off after its duration, on
	the running event loop.
	"""

	def __init__ (
		self,
		device_name: typing.Optional[str] = None,
		channel: int = 0,
		velocity: int = 100,
		midi_out: typing.Optional[typing.Any] = None
	) -> None:

		"""
		Parameters:
			device_name: Output to open (auto-selected when None).
			channel: MIDI channel, 0-15.
			velocity: Note on velocity.
			midi_out: An already open port; skips device selection.
		"""

		if not 0 <= channel <= 15:
			raise ValueError("MIDI channel must be between 0 and 15")

		self.channel = channel
		self.velocity = velocity

		if midi_out is not None:
			self.device_name = device_name
			self.midi_out = midi_out
		else:
			self.device_name, self.midi_out = select_output_device(device_name)

		self.active_notes: typing.Set[int] = set()

	def __call__ (self, hap: livemirror.pattern.Hap, deadline: float, duration: float, cps: float) -> None:

		note = note_to_midi(hap.value)

		if note is None:
			logger.debug(f"No MIDI note for value {hap.value!r}")
			return

		if self.midi_out is None:
			return

		# Only the clipped part of the event sounds.
		length = duration * hap.clip

		try:
			loop = asyncio.get_running_loop()
		except RuntimeError:
			self._send("note_on", note)
			self._send("note_off", note)
			return

		loop.call_later(max(deadline, 0.0), self._send, "note_on", note)
		loop.call_later(max(deadline, 0.0) + length, self._send, "note_off", note)

	def _send (self, message_type: str, note: int) -> None:

		"""
		Send a note message to the output port.
		"""

		if self.midi_out is None:
			return

		try:
			velocity = self.velocity if message_type == "note_on" else 0
			self.midi_out.send(mido.Message(message_type, channel=self.channel, note=note, velocity=velocity))

			if message_type == "note_on":
				self.active_notes.add(note)
			else:
				self.active_notes.discard(note)

		except Exception as e:
			logger.error(f"Failed to send MIDI message: {e}")

	def panic (self) -> None:

		"""Send note off for every note still sounding."""

		for note in list(self.active_notes):
			self._send("note_off", note)

	def close (self) -> None:

		"""Silence hanging notes and close the port."""

		self.panic()

		if self.midi_out is not None:
			self.midi_out.close()
			self.midi_out = None
