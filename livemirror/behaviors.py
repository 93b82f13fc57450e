"""Named, swappable units of editor behavior.

Each entry of :data:`BEHAVIORS` maps a setting name to a factory taking the
setting's value (and the owning session) and returning an editor fragment.
Factories are pure: the same value always yields an equal fragment, so a slot
only ever reflects the most recent value written to it.

Setting values pass through :func:`coerce_value` before reaching a factory.
Settings round-trip through text persistence, where ``True`` can come back as
the string ``"true"``.
"""

import logging
import types
import typing

import livemirror.editor


logger = logging.getLogger(__name__)


BehaviorFactory = typing.Callable[[typing.Any, typing.Any], typing.Any]

_BOOLEAN_STRINGS = {"true": True, "false": False}

DEFAULT_THEME = "midnight"
DEFAULT_KEYMAP = "codemirror"


def coerce_value (value: typing.Any) -> typing.Any:

	"""
	Map the literal strings ``"true"`` and ``"false"`` to booleans.

	Every other value is returned unchanged.
	"""

	if isinstance(value, str):
		return _BOOLEAN_STRINGS.get(value, value)

	return value


def _toggle (*extensions: livemirror.editor.Extension) -> BehaviorFactory:

	"""Build a factory that installs the given extensions when the value is truthy."""

	def factory (on: typing.Any, session: typing.Any = None) -> typing.Tuple[livemirror.editor.Extension, ...]:
		return tuple(extensions) if on else ()

	return factory


# ---------------------------------------------------------------------------
# Themes
# ---------------------------------------------------------------------------

THEMES: typing.Dict[str, typing.Dict[str, str]] = {
	"midnight": {
		"background": "#222222",
		"foreground": "#ffffff",
		"selection": "#ffffff20",
		"line_highlight": "#00000050",
		"pattern_highlight": "#ffffff",
	},
	"algoboy": {
		"background": "#9bbc0f",
		"foreground": "#0f380f",
		"selection": "#8bac0f",
		"line_highlight": "#8bac0f",
		"pattern_highlight": "#306230",
	},
	"blackscreen": {
		"background": "#000000",
		"foreground": "#ffffff",
		"selection": "#ffffff30",
		"line_highlight": "#ffffff10",
		"pattern_highlight": "#ffffff",
	},
	"whitescreen": {
		"background": "#ffffff",
		"foreground": "#000000",
		"selection": "#00000020",
		"line_highlight": "#00000010",
		"pattern_highlight": "#000000",
	},
	"teletext": {
		"background": "#000000",
		"foreground": "#ffff00",
		"selection": "#0000ff",
		"line_highlight": "#00000050",
		"pattern_highlight": "#ff00ff",
	},
}


def resolve_theme (name: typing.Any) -> str:

	"""Return a known theme name, falling back to the default theme."""

	if name in THEMES:
		return typing.cast(str, name)

	logger.warning(f"Theme {name!r} is not known, using {DEFAULT_THEME!r}")
	return DEFAULT_THEME


def theme (name: typing.Any, session: typing.Any = None) -> livemirror.editor.Extension:

	"""Theme fragment carrying the palette of the named theme."""

	resolved = resolve_theme(name)

	return livemirror.editor.Extension("theme", {"name": resolved, **THEMES[resolved]})


# ---------------------------------------------------------------------------
# Keymaps
# ---------------------------------------------------------------------------

def _bindings (table: typing.Dict[str, str]) -> typing.Tuple[livemirror.editor.KeyBinding, ...]:

	return tuple(
		livemirror.editor.KeyBinding(key, livemirror.editor.COMMANDS[command])
		for key, command in table.items()
	)


_BASE_KEYS = {
	"Enter": "insert_newline",
	"Ctrl-z": "undo",
	"Ctrl-Shift-z": "redo",
	"Ctrl-y": "redo",
	"Ctrl-a": "select_all",
}

KEYMAPS: typing.Dict[str, typing.Dict[str, str]] = {
	"codemirror": {
		**_BASE_KEYS,
		"Mod-Enter": "insert_blank_line",
		"Home": "cursor_line_start",
		"End": "cursor_line_end",
	},
	"vscode": {
		**_BASE_KEYS,
		"Ctrl-Enter": "insert_blank_line",
		"Ctrl-Shift-Enter": "insert_line_above",
		"Home": "cursor_line_start",
		"End": "cursor_line_end",
	},
	"emacs": {
		"Enter": "insert_newline",
		"Ctrl-a": "cursor_line_start",
		"Ctrl-e": "cursor_line_end",
		"Ctrl-/": "undo",
		"Alt-Enter": "insert_blank_line",
	},
	"vim": {
		"Enter": "insert_newline",
		"Ctrl-r": "redo",
		"Ctrl-z": "undo",
	},
}


def keybindings (name: typing.Any, session: typing.Any = None) -> typing.Tuple[typing.Any, ...]:

	"""Editing keymap fragment for the chosen keybinding style."""

	if name not in KEYMAPS:
		logger.warning(f"Keybindings {name!r} are not known, using {DEFAULT_KEYMAP!r}")
		name = DEFAULT_KEYMAP

	mode = livemirror.editor.Extension("keybindings", {"name": name})

	return (mode, livemirror.editor.keymap(_bindings(KEYMAPS[name])))


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

BEHAVIORS: typing.Dict[str, BehaviorFactory] = {
	"is_line_wrapping_enabled": _toggle(livemirror.editor.Extension("line_wrapping")),
	"is_line_numbers_displayed": _toggle(livemirror.editor.Extension("line_numbers")),
	"theme": theme,
	"is_auto_completion_enabled": _toggle(livemirror.editor.Extension("autocompletion")),
	"is_tooltip_enabled": _toggle(livemirror.editor.Extension("tooltip")),
	"is_pattern_highlighting_enabled": _toggle(livemirror.editor.Extension("pattern_highlighting")),
	"is_active_line_highlighted": _toggle(
		livemirror.editor.Extension("active_line"),
		livemirror.editor.Extension("active_line_gutter")
	),
	"is_flash_enabled": _toggle(livemirror.editor.Extension("flash")),
	"keybindings": keybindings,
}


class BehaviorRegistry:

	"""
	Fixed table of behavior factories, read-only after construction.
	"""

	def __init__ (self, factories: typing.Mapping[str, BehaviorFactory]) -> None:

		"""Copy the factory table so later changes to the source have no effect."""

		self._factories: typing.Mapping[str, BehaviorFactory] = types.MappingProxyType(dict(factories))

	@property
	def names (self) -> typing.Tuple[str, ...]:
		"""Registered behavior names, in registration order."""
		return tuple(self._factories)

	def __contains__ (self, name: object) -> bool:
		return name in self._factories

	def instantiate (self, name: str, value: typing.Any, session: typing.Any = None) -> typing.Optional[typing.Any]:

		"""
		Build the fragment for ``name`` from ``value``.

		Returns ``None`` (after logging a warning) when no behavior is registered
		under ``name``.
		"""

		factory = self._factories.get(name)

		if factory is None:
			logger.warning(f"Extension {name!r} is not known")
			return None

		return factory(coerce_value(value), session)


DEFAULT_REGISTRY = BehaviorRegistry(BEHAVIORS)
