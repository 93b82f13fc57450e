import asyncio
import logging
import typing

import livemirror.behaviors
import livemirror.editor
import livemirror.pattern


logger = logging.getLogger(__name__)


EVALUATE_KEYS = ("Ctrl-Enter", "Alt-Enter")
STOP_KEYS = ("Ctrl-.", "Alt-.")

MINI_LOCATIONS = "mini_locations"
HIGHLIGHTS = "highlights"
WIDGETS = "widgets"
FLASH = "flash"

DEFAULT_FLASH_MS = 200


class TextSurface:

	"""
	Wraps an ``EditorView`` with one compartment per behavior.

	Each registry behavior gets its own compartment, initialised from the
	settings snapshot, so reconfiguring one behavior never rebuilds the others
	or disturbs text, selection or undo history.  Evaluate and stop keys are
	bound at the highest precedence.
	"""

	def __init__ (
		self,
		initial_text: str = "",
		on_text_changed: typing.Optional[typing.Callable[[str], None]] = None,
		on_evaluate: typing.Optional[typing.Callable[[], None]] = None,
		on_stop: typing.Optional[typing.Callable[[], None]] = None,
		settings: typing.Optional[typing.Mapping[str, typing.Any]] = None,
		registry: typing.Optional[livemirror.behaviors.BehaviorRegistry] = None,
		session: typing.Any = None
	) -> None:

		"""Build the editor view and install every behavior slot."""

		self.on_text_changed = on_text_changed
		self.on_evaluate = on_evaluate
		self.on_stop = on_stop
		self.registry = registry if registry is not None else livemirror.behaviors.DEFAULT_REGISTRY

		settings = settings or {}

		self.compartments: typing.Dict[str, livemirror.editor.Compartment] = {
			name: livemirror.editor.Compartment() for name in self.registry.names
		}

		slots = [
			compartment.of(self.registry.instantiate(name, settings.get(name), session))
			for name, compartment in self.compartments.items()
		]

		self.view = livemirror.editor.EditorView(
			initial_text,
			extensions = [
				*slots,
				livemirror.editor.Extension("language", {"name": "python"}),
				livemirror.editor.Extension("widgets"),
				livemirror.editor.Extension("close_brackets"),
				livemirror.editor.Extension("syntax_highlighting"),
				livemirror.editor.Extension("history"),
				livemirror.editor.UpdateListener(self._on_update),
				livemirror.editor.Extension("draw_selection", {"cursor_blink_rate": 0}),
				livemirror.editor.highest(livemirror.editor.keymap(
					[livemirror.editor.KeyBinding(key, self._run_evaluate) for key in EVALUATE_KEYS] +
					[livemirror.editor.KeyBinding(key, self._run_stop) for key in STOP_KEYS]
				)),
			]
		)

		self.active_theme: typing.Optional[str] = None
		self.activate_theme(settings.get("theme", livemirror.behaviors.DEFAULT_THEME))

	@property
	def text (self) -> str:
		"""Current buffer contents."""
		return self.view.doc

	def _on_update (self, update: livemirror.editor.ViewUpdate) -> None:

		if update.doc_changed and self.on_text_changed is not None:
			self.on_text_changed(update.text)

	def _run_evaluate (self, view: livemirror.editor.EditorView) -> bool:

		if self.on_evaluate is not None:
			self.on_evaluate()

		return True

	def _run_stop (self, view: livemirror.editor.EditorView) -> bool:

		if self.on_stop is not None:
			self.on_stop()

		return True

	def handle_key (self, key: str) -> bool:

		"""Deliver a key press; returns True when a binding handled it."""

		return self.view.handle_key(key)

	def reconfigure (self, name: str, fragment: typing.Any) -> None:

		"""Swap the fragment of exactly one behavior slot."""

		if name not in self.compartments:
			logger.warning(f"No compartment for extension {name!r}")
			return

		self.view.dispatch(effects=[self.compartments[name].reconfigure(fragment)])

	def fragment (self, name: str) -> typing.Any:

		"""The fragment currently installed for a behavior."""

		return self.view.compartment_fragment(self.compartments[name])

	def replace_all_text (self, text: str) -> None:

		"""Replace the whole buffer in one transaction."""

		self.view.dispatch(changes=livemirror.editor.ChangeSpec(0, len(self.view.doc), text))

	def activate_theme (self, name: typing.Any) -> None:

		"""Apply a theme's palette to the view style."""

		resolved = livemirror.behaviors.resolve_theme(name)
		palette = livemirror.behaviors.THEMES[resolved]

		self.view.style["background_color"] = palette["background"]
		self.view.style["color"] = palette["foreground"]
		self.active_theme = resolved

	def set_font_size (self, size: typing.Union[int, float, str]) -> None:
		self.view.style["font_size"] = f"{size}px"

	def set_font_family (self, family: str) -> None:
		self.view.style["font_family"] = family

	# ------------------------------------------------------------------
	# Flash
	# ------------------------------------------------------------------

	@property
	def flashing (self) -> bool:
		return bool(self.view.decorations.get(FLASH))

	def flash (self, ms: int = DEFAULT_FLASH_MS) -> None:

		"""
		Briefly mark the whole buffer to acknowledge an evaluation.

		Does nothing unless the flash behavior is installed.  The mark is cleared
		after ``ms`` milliseconds on the running event loop, or immediately when
		no loop is running.
		"""

		if not self.view.has_extension("flash"):
			return

		self._set_decorations(FLASH, ((0, len(self.view.doc)),))

		try:
			loop = asyncio.get_running_loop()
		except RuntimeError:
			self._set_decorations(FLASH, ())
			return

		loop.call_later(ms / 1000, self._set_decorations, FLASH, ())

	# ------------------------------------------------------------------
	# Source locations and highlighting
	# ------------------------------------------------------------------

	@property
	def mini_locations (self) -> typing.Tuple[livemirror.pattern.Location, ...]:
		return typing.cast(typing.Tuple[livemirror.pattern.Location, ...], self.view.decorations.get(MINI_LOCATIONS, ()))

	@property
	def highlighted (self) -> typing.Tuple[livemirror.pattern.Location, ...]:
		return typing.cast(typing.Tuple[livemirror.pattern.Location, ...], self.view.decorations.get(HIGHLIGHTS, ()))

	def update_mini_locations (self, locations: typing.Iterable[livemirror.pattern.Location]) -> None:

		"""Replace the source-location map and drop every current highlight."""

		self.view.dispatch(effects=[
			livemirror.editor.DecorationEffect(MINI_LOCATIONS, tuple(locations)),
			livemirror.editor.DecorationEffect(HIGHLIGHTS, ()),
		])

	def highlight_mini_locations (self, time: float, haps: typing.Iterable[livemirror.pattern.Hap]) -> typing.Tuple[livemirror.pattern.Location, ...]:

		"""
		Highlight the code ranges of events active at ``time``.

		Only ranges in the current source-location map are marked; everything
		else is cleared.  Does nothing unless pattern highlighting is installed.
		"""

		if not self.view.has_extension("pattern_highlighting"):
			return ()

		known = set(self.mini_locations)
		active: typing.List[livemirror.pattern.Location] = []

		for hap in haps:

			if not hap.is_active(time):
				continue

			for location in hap.locations:
				if location in known and location not in active:
					active.append(location)

		ranges = tuple(sorted(active, key=lambda location: (location.start, location.end)))

		if ranges != self.highlighted:
			self._set_decorations(HIGHLIGHTS, ranges)

		return ranges

	def update_widgets (self, widgets: typing.Iterable[typing.Any]) -> None:

		self._set_decorations(WIDGETS, tuple(widgets))

	@property
	def widgets (self) -> typing.Tuple[typing.Any, ...]:
		return self.view.decorations.get(WIDGETS, ())

	def _set_decorations (self, name: str, entries: typing.Tuple[typing.Any, ...]) -> None:

		self.view.dispatch(effects=[livemirror.editor.DecorationEffect(name, entries)])
