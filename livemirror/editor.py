"""In-memory text-editing engine used behind the text surface.

The surface only relies on a narrow contract - per-feature configuration
slots that can be swapped one at a time, an update listener carrying the full
text and a changed flag, a keymap layer with precedence, and a full-buffer
replace - so any engine offering those can stand in for this one.

Configuration is expressed as *fragments*: an ``Extension``, a ``Keymap``, an
``UpdateListener``, a ``CompartmentSlot``, or a (possibly nested, possibly
empty) tuple of those.  A ``Compartment`` wraps a fragment so it can later be
replaced on its own::

	wrapping = Compartment()
	view = EditorView("a b", extensions=[wrapping.of(Extension("line_wrapping"))])
	view.dispatch(effects=[wrapping.reconfigure(())])
"""

import dataclasses
import logging
import typing


logger = logging.getLogger(__name__)


PREC_LOWEST = 0
PREC_DEFAULT = 2
PREC_HIGHEST = 4

_MODIFIER_ORDER = ("Alt", "Ctrl", "Meta", "Shift")


@dataclasses.dataclass (frozen=True)
class Extension:

	"""
	A named unit of editor behavior with optional options.
	"""

	kind: str
	options: typing.Mapping[str, typing.Any] = dataclasses.field(default_factory=dict)


@dataclasses.dataclass (frozen=True)
class KeyBinding:

	"""
	A key combination and the command it runs.

	``run`` receives the view and returns True when it handled the key.
	"""

	key: str
	run: typing.Callable[["EditorView"], bool]


@dataclasses.dataclass (frozen=True)
class Keymap:

	"""A group of key bindings installed at one precedence level."""

	bindings: typing.Tuple[KeyBinding, ...]
	precedence: int = PREC_DEFAULT


@dataclasses.dataclass (frozen=True)
class UpdateListener:

	"""Callback invoked synchronously after every dispatched transaction."""

	callback: typing.Callable[["ViewUpdate"], None]


class Compartment:

	"""
	A slot holding one fragment that can be reconfigured on its own.
	"""

	def of (self, fragment: typing.Any) -> "CompartmentSlot":

		"""Wrap an initial fragment for installation in a view."""

		return CompartmentSlot(compartment=self, fragment=fragment)

	def reconfigure (self, fragment: typing.Any) -> "ReconfigureEffect":

		"""Build the effect that replaces this compartment's fragment."""

		return ReconfigureEffect(compartment=self, fragment=fragment)


@dataclasses.dataclass (frozen=True)
class CompartmentSlot:

	compartment: Compartment
	fragment: typing.Any


@dataclasses.dataclass (frozen=True)
class ReconfigureEffect:

	compartment: Compartment
	fragment: typing.Any


@dataclasses.dataclass (frozen=True)
class DecorationEffect:

	"""Replaces one named decoration set with a new tuple of entries."""

	name: str
	entries: typing.Tuple[typing.Any, ...]


@dataclasses.dataclass (frozen=True)
class ChangeSpec:

	"""Replace the text between ``start`` and ``end`` with ``insert``."""

	start: int
	end: int
	insert: str = ""


@dataclasses.dataclass (frozen=True)
class ViewUpdate:

	"""
	Describes one dispatched transaction to update listeners.
	"""

	view: "EditorView"
	text: str
	doc_changed: bool
	effects: typing.Tuple[typing.Any, ...] = ()


@dataclasses.dataclass (frozen=True)
class HistoryEntry:

	before_text: str
	after_text: str
	selection_before: int
	selection_after: int


class History:

	"""Linear undo/redo timeline of text states."""

	def __init__ (self) -> None:

		self._entries: typing.List[HistoryEntry] = []
		self._index: int = -1

	def push (self, entry: HistoryEntry) -> None:

		"""Record an entry, discarding anything that was undone."""

		if self._index < len(self._entries) - 1:
			self._entries = self._entries[: self._index + 1]

		self._entries.append(entry)
		self._index = len(self._entries) - 1

	def can_undo (self) -> bool:
		return self._index >= 0

	def can_redo (self) -> bool:
		return self._index < len(self._entries) - 1

	def undo (self) -> typing.Optional[HistoryEntry]:

		if not self.can_undo():
			return None

		entry = self._entries[self._index]
		self._index -= 1
		return entry

	def redo (self) -> typing.Optional[HistoryEntry]:

		if not self.can_redo():
			return None

		self._index += 1
		return self._entries[self._index]

	def __len__ (self) -> int:
		return len(self._entries)


def keymap (bindings: typing.Iterable[KeyBinding], precedence: int = PREC_DEFAULT) -> Keymap:

	"""Build a keymap fragment from a sequence of bindings."""

	return Keymap(bindings=tuple(bindings), precedence=precedence)


def highest (fragment: Keymap) -> Keymap:

	"""Return a copy of a keymap that runs before every other keymap."""

	return dataclasses.replace(fragment, precedence=PREC_HIGHEST)


def normalize_key (key: str) -> str:

	"""
	Canonicalise a key name such as ``"Mod-Shift-z"`` to ``"Ctrl-Shift-z"``.

	``Mod`` maps to ``Ctrl``; modifiers are sorted so equivalent spellings
	compare equal.
	"""

	parts = key.split("-")

	# A trailing empty part means the key itself is "-".
	if len(parts) > 1 and parts[-1] == "":
		parts = parts[:-2] + ["-"]

	name = parts[-1]
	modifiers = {"Ctrl" if part == "Mod" else part for part in parts[:-1]}

	unknown = modifiers.difference(_MODIFIER_ORDER)

	if unknown:
		raise ValueError(f"Unknown key modifier(s) in {key!r}: {sorted(unknown)}")

	ordered = [modifier for modifier in _MODIFIER_ORDER if modifier in modifiers]

	return "-".join(ordered + [name])


def flatten (fragment: typing.Any) -> typing.List[typing.Any]:

	"""
	Expand nested tuples/lists and compartment slots into a flat list of leaves.
	"""

	if fragment is None:
		return []

	if isinstance(fragment, CompartmentSlot):
		return flatten(fragment.fragment)

	if isinstance(fragment, (list, tuple)):
		leaves: typing.List[typing.Any] = []
		for item in fragment:
			leaves.extend(flatten(item))
		return leaves

	return [fragment]


class EditorView:

	"""
	A text buffer with swappable configuration slots.

	Extensions passed at construction are installed in order.  Compartment
	slots among them keep their position; reconfiguring a compartment swaps
	only its fragment, leaving text, selection, history and the other slots
	untouched.
	"""

	def __init__ (self, doc: str = "", extensions: typing.Iterable[typing.Any] = ()) -> None:

		"""Create the view with an initial document and extension list."""

		self._doc = doc
		self._selection = len(doc)
		self._history = History()

		# Top-level entries in installation order; compartment slots are
		# stored by reference so their fragment can be swapped in place.
		self._entries: typing.List[typing.Any] = []
		self._compartments: typing.Dict[Compartment, typing.Any] = {}

		for entry in extensions:

			if isinstance(entry, CompartmentSlot):

				if entry.compartment in self._compartments:
					raise ValueError("A compartment can only be installed once")

				self._compartments[entry.compartment] = entry.fragment

			self._entries.append(entry)

		self.decorations: typing.Dict[str, typing.Tuple[typing.Any, ...]] = {}
		self.style: typing.Dict[str, str] = {}

	@property
	def doc (self) -> str:
		"""The current document text."""
		return self._doc

	@property
	def selection (self) -> int:
		"""The cursor position."""
		return self._selection

	@property
	def history (self) -> History:
		return self._history

	def compartment_fragment (self, compartment: Compartment) -> typing.Any:

		"""Return the fragment currently held by a compartment."""

		if compartment not in self._compartments:
			raise KeyError("Compartment is not installed in this view")

		return self._compartments[compartment]

	def extensions (self) -> typing.List[typing.Any]:

		"""Return every installed leaf, resolving compartments to their current fragment."""

		leaves: typing.List[typing.Any] = []

		for entry in self._entries:

			if isinstance(entry, CompartmentSlot):
				leaves.extend(flatten(self._compartments[entry.compartment]))
			else:
				leaves.extend(flatten(entry))

		return leaves

	def has_extension (self, kind: str) -> bool:

		"""Return True when an ``Extension`` of the given kind is installed."""

		return any(isinstance(leaf, Extension) and leaf.kind == kind for leaf in self.extensions())

	def find_extension (self, kind: str) -> typing.Optional[Extension]:

		"""Return the last installed ``Extension`` of the given kind, if any."""

		found: typing.Optional[Extension] = None

		for leaf in self.extensions():
			if isinstance(leaf, Extension) and leaf.kind == kind:
				found = leaf

		return found

	def dispatch (
		self,
		changes: typing.Optional[ChangeSpec] = None,
		effects: typing.Iterable[typing.Any] = (),
		selection: typing.Optional[int] = None,
		add_to_history: bool = True
	) -> ViewUpdate:

		"""
		Apply a transaction: a text change, effects, and/or a new selection.

		Reconfiguration effects are applied before listeners run, so a listener
		observing this update already sees the new configuration.
		"""

		effects = tuple(effects)

		for effect in effects:

			if isinstance(effect, ReconfigureEffect):

				if effect.compartment not in self._compartments:
					raise KeyError("Cannot reconfigure a compartment that is not installed")

				self._compartments[effect.compartment] = effect.fragment

			elif isinstance(effect, DecorationEffect):
				self.decorations[effect.name] = effect.entries

		doc_changed = False

		if changes is not None:

			if not 0 <= changes.start <= changes.end <= len(self._doc):
				raise ValueError(f"Change range {changes.start}..{changes.end} is outside the document")

			before_text = self._doc
			before_selection = self._selection
			after_text = self._doc[:changes.start] + changes.insert + self._doc[changes.end:]
			doc_changed = after_text != before_text

			self._doc = after_text
			self._selection = self._map_position(self._selection, changes)

			if selection is not None:
				self._selection = max(0, min(selection, len(self._doc)))

			if doc_changed and add_to_history and self.has_extension("history"):
				self._history.push(HistoryEntry(
					before_text = before_text,
					after_text = after_text,
					selection_before = before_selection,
					selection_after = self._selection
				))

		if selection is not None:
			self._selection = max(0, min(selection, len(self._doc)))

		update = ViewUpdate(view=self, text=self._doc, doc_changed=doc_changed, effects=effects)

		for leaf in self.extensions():
			if isinstance(leaf, UpdateListener):
				leaf.callback(update)

		return update

	def insert_text (self, text: str) -> ViewUpdate:

		"""Insert text at the cursor, as typing would."""

		position = self._selection

		return self.dispatch(changes=ChangeSpec(position, position, text), selection=position + len(text))

	def handle_key (self, key: str) -> bool:

		"""
		Run the first binding for ``key`` that reports it handled the key.

		Keymaps are consulted from highest to lowest precedence; within one
		precedence level, in installation order.
		"""

		normalized = normalize_key(key)
		keymaps = [leaf for leaf in self.extensions() if isinstance(leaf, Keymap)]

		for active in sorted(keymaps, key=lambda k: -k.precedence):
			for binding in active.bindings:
				if normalize_key(binding.key) == normalized and binding.run(self):
					return True

		return False

	def undo (self) -> bool:

		"""Revert the most recent recorded change."""

		entry = self._history.undo()

		if entry is None:
			return False

		self.dispatch(
			changes = ChangeSpec(0, len(self._doc), entry.before_text),
			selection = entry.selection_before,
			add_to_history = False
		)

		return True

	def redo (self) -> bool:

		"""Re-apply the most recently undone change."""

		entry = self._history.redo()

		if entry is None:
			return False

		self.dispatch(
			changes = ChangeSpec(0, len(self._doc), entry.after_text),
			selection = entry.selection_after,
			add_to_history = False
		)

		return True

	@staticmethod
	def _map_position (position: int, change: ChangeSpec) -> int:

		"""Map a position through a change."""

		if position <= change.start:
			return position

		if position >= change.end:
			return position + len(change.insert) - (change.end - change.start)

		return change.start + len(change.insert)


# ---------------------------------------------------------------------------
# Editing commands referenced by keymaps
# ---------------------------------------------------------------------------

def _line_bounds (view: EditorView) -> typing.Tuple[int, int]:

	doc = view.doc
	start = doc.rfind("\n", 0, view.selection) + 1
	end = doc.find("\n", view.selection)

	return start, len(doc) if end == -1 else end


def insert_newline (view: EditorView) -> bool:
	view.insert_text("\n")
	return True


def insert_blank_line (view: EditorView) -> bool:

	"""Insert an empty line below the current one without splitting it."""

	_, end = _line_bounds(view)
	view.dispatch(changes=ChangeSpec(end, end, "\n"), selection=end + 1)
	return True


def insert_line_above (view: EditorView) -> bool:

	start, _ = _line_bounds(view)
	view.dispatch(changes=ChangeSpec(start, start, "\n"), selection=start)
	return True


def cursor_line_start (view: EditorView) -> bool:
	start, _ = _line_bounds(view)
	view.dispatch(selection=start)
	return True


def cursor_line_end (view: EditorView) -> bool:
	_, end = _line_bounds(view)
	view.dispatch(selection=end)
	return True


def select_all (view: EditorView) -> bool:
	view.dispatch(selection=len(view.doc))
	return True


def undo (view: EditorView) -> bool:
	return view.undo()


def redo (view: EditorView) -> bool:
	return view.redo()


COMMANDS: typing.Dict[str, typing.Callable[[EditorView], bool]] = {
	"insert_newline": insert_newline,
	"insert_blank_line": insert_blank_line,
	"insert_line_above": insert_line_above,
	"cursor_line_start": cursor_line_start,
	"cursor_line_end": cursor_line_end,
	"select_all": select_all,
	"undo": undo,
	"redo": redo,
}
