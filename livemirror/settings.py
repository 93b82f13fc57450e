"""Persisted, process-wide editor settings.

The store keeps one snapshot for the whole process.  Sessions copy it when
they are constructed and again only when they call ``update_settings``; other
live sessions keep their copy.

Persistence goes through a small key/value storage object holding the
snapshot as JSON text::

	store = SettingsStore(FileStorage("~/.config/livemirror/settings.json"))
	store.update({"font_size": 24})
"""

import json
import logging
import os
import typing

import livemirror.behaviors


logger = logging.getLogger(__name__)


SETTINGS_KEY = "livemirror-settings"

SettingValue = typing.Union[bool, str, int, float]

DEFAULT_SETTINGS: typing.Dict[str, SettingValue] = {
	"keybindings": livemirror.behaviors.DEFAULT_KEYMAP,
	"is_line_numbers_displayed": True,
	"is_active_line_highlighted": False,
	"is_auto_completion_enabled": False,
	"is_pattern_highlighting_enabled": True,
	"is_flash_enabled": True,
	"is_tooltip_enabled": False,
	"is_line_wrapping_enabled": False,
	"theme": livemirror.behaviors.DEFAULT_THEME,
	"font_family": "monospace",
	"font_size": 18,
}


class Storage (typing.Protocol):

	"""Key/value text storage used to persist settings."""

	def get (self, key: str) -> typing.Optional[str]:
		...

	def set (self, key: str, value: str) -> None:
		...


class MemoryStorage:

	"""Storage kept in a dictionary; lost when the process exits."""

	def __init__ (self, initial: typing.Optional[typing.Dict[str, str]] = None) -> None:

		self._values: typing.Dict[str, str] = dict(initial or {})

	def get (self, key: str) -> typing.Optional[str]:
		return self._values.get(key)

	def set (self, key: str, value: str) -> None:
		self._values[key] = value


class FileStorage:

	"""
	Storage backed by a JSON file holding every key as a string value.
	"""

	def __init__ (self, path: str) -> None:

		"""Remember the path; the file is created on the first write."""

		self.path = os.path.expanduser(path)

	def _read_all (self) -> typing.Dict[str, str]:

		if not os.path.exists(self.path):
			return {}

		try:
			with open(self.path, "r", encoding="utf-8") as f:
				data = json.load(f)
		except (OSError, ValueError) as exc:
			logger.warning(f"Could not read settings file {self.path}: {exc}")
			return {}

		if not isinstance(data, dict):
			logger.warning(f"Settings file {self.path} does not hold an object, ignoring it")
			return {}

		return data

	def get (self, key: str) -> typing.Optional[str]:
		return self._read_all().get(key)

	def set (self, key: str, value: str) -> None:

		data = self._read_all()
		data[key] = value

		directory = os.path.dirname(self.path)

		if directory:
			os.makedirs(directory, exist_ok=True)

		with open(self.path, "w", encoding="utf-8") as f:
			json.dump(data, f, indent=2)


class SettingsStore:

	"""
	The shared settings snapshot with read-on-init and write-on-change semantics.

	Reads storage once at construction (``reload()`` reads again).  Every write
	merges into the current snapshot and persists the whole snapshot; the last
	writer wins.
	"""

	def __init__ (
		self,
		storage: typing.Optional[Storage] = None,
		key: str = SETTINGS_KEY,
		defaults: typing.Optional[typing.Mapping[str, SettingValue]] = None
	) -> None:

		"""Attach to a storage backend and load the persisted snapshot."""

		self._storage: Storage = storage if storage is not None else MemoryStorage()
		self._key = key
		self._defaults: typing.Dict[str, SettingValue] = dict(defaults if defaults is not None else DEFAULT_SETTINGS)
		self._snapshot: typing.Dict[str, SettingValue] = {}

		self.reload()

	@property
	def defaults (self) -> typing.Dict[str, SettingValue]:
		return dict(self._defaults)

	def reload (self) -> None:

		"""Re-read the persisted snapshot and merge it over the defaults."""

		snapshot = dict(self._defaults)
		raw = self._storage.get(self._key)

		if raw is not None:

			try:
				persisted = json.loads(raw)
			except ValueError as exc:
				logger.warning(f"Persisted settings are not valid JSON, using defaults: {exc}")
				persisted = {}

			if not isinstance(persisted, dict):
				logger.warning("Persisted settings are not an object, using defaults")
				persisted = {}

			for name, value in persisted.items():

				if name not in self._defaults:
					logger.debug(f"Dropping persisted setting {name!r} (no longer known)")
					continue

				snapshot[name] = livemirror.behaviors.coerce_value(value)

		self._snapshot = snapshot

	def get (self) -> typing.Dict[str, SettingValue]:

		"""Return a copy of the current snapshot."""

		return dict(self._snapshot)

	def set (self, snapshot: typing.Mapping[str, typing.Any]) -> typing.Dict[str, SettingValue]:

		"""Replace the snapshot (defaults fill missing keys) and persist it."""

		self._snapshot = dict(self._defaults)
		return self.update(snapshot)

	def update (self, partial: typing.Mapping[str, typing.Any]) -> typing.Dict[str, SettingValue]:

		"""
		Merge the known keys of ``partial`` into the snapshot and persist it.

		Unknown keys are logged and ignored.  Returns a copy of the merged snapshot.
		"""

		for name, value in partial.items():

			if name not in self._defaults:
				logger.warning(f"Ignoring unknown setting {name!r}")
				continue

			self._snapshot[name] = livemirror.behaviors.coerce_value(value)

		self._persist()

		return self.get()

	def _persist (self) -> None:

		self._storage.set(self._key, json.dumps(self._snapshot))


DEFAULT_STORE = SettingsStore()
