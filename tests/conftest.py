import typing

import mido
import pytest

import livemirror.coordination
import livemirror.settings


class FakeMidiOut:

	"""MIDI output stub that records what was sent."""

	def __init__ (self) -> None:

		self.sent: typing.List[mido.Message] = []
		self.closed = False

	def send (self, message: mido.Message) -> None:

		"""Record an outgoing MIDI message."""

		self.sent.append(message)

	def close (self) -> None:

		"""Mark the fake device closed."""

		self.closed = True


# Module-level reference so tests can inspect the most recently opened FakeMidiOut.
_current_fake_output: typing.Optional[FakeMidiOut] = None


def _fake_get_output_names () -> list[str]:

	"""Return a fixed list of MIDI output names for tests."""

	return ["Dummy MIDI"]


def _fake_open_output (name: str) -> FakeMidiOut:

	"""Return a fake MIDI output regardless of the name."""

	global _current_fake_output
	fake = FakeMidiOut()
	_current_fake_output = fake
	return fake


def current_fake_output () -> typing.Optional[FakeMidiOut]:
	return _current_fake_output


@pytest.fixture
def patch_midi (monkeypatch: pytest.MonkeyPatch) -> None:

	"""Patch mido to use a fake MIDI output for all tests that need it."""

	monkeypatch.setattr(mido, "get_output_names", _fake_get_output_names)
	monkeypatch.setattr(mido, "open_output", _fake_open_output)


@pytest.fixture
def storage () -> livemirror.settings.MemoryStorage:

	"""Empty in-memory settings storage."""

	return livemirror.settings.MemoryStorage()


@pytest.fixture
def store (storage: livemirror.settings.MemoryStorage) -> livemirror.settings.SettingsStore:

	"""A settings store isolated from the process-wide default."""

	return livemirror.settings.SettingsStore(storage)


@pytest.fixture
def channel () -> livemirror.coordination.NotificationChannel:

	"""A notification channel isolated from the process-wide default."""

	return livemirror.coordination.NotificationChannel()
