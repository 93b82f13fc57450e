import logging

import pytest

import livemirror.behaviors
import livemirror.editor


def test_coerce_value_maps_boolean_strings () -> None:

	"""Only the exact strings "true" and "false" become booleans."""

	assert livemirror.behaviors.coerce_value("true") is True
	assert livemirror.behaviors.coerce_value("false") is False
	assert livemirror.behaviors.coerce_value("True") == "True"
	assert livemirror.behaviors.coerce_value(1) == 1
	assert livemirror.behaviors.coerce_value("vim") == "vim"


def test_registry_lists_every_behavior () -> None:

	"""The default registry covers every editor behavior."""

	names = set(livemirror.behaviors.DEFAULT_REGISTRY.names)

	assert names == {
		"is_line_wrapping_enabled",
		"is_line_numbers_displayed",
		"theme",
		"is_auto_completion_enabled",
		"is_tooltip_enabled",
		"is_pattern_highlighting_enabled",
		"is_active_line_highlighted",
		"is_flash_enabled",
		"keybindings",
	}


def test_toggle_behavior_enabled_and_disabled () -> None:

	"""A toggle behavior yields its extension when on and nothing when off."""

	registry = livemirror.behaviors.DEFAULT_REGISTRY

	on = registry.instantiate("is_line_wrapping_enabled", True)
	off = registry.instantiate("is_line_wrapping_enabled", False)

	assert on == (livemirror.editor.Extension("line_wrapping"),)
	assert off == ()


def test_string_booleans_are_coerced_on_instantiate () -> None:

	"""The string "false" disables a behavior instead of counting as truthy."""

	registry = livemirror.behaviors.DEFAULT_REGISTRY

	assert registry.instantiate("is_line_numbers_displayed", "false") == ()
	assert registry.instantiate("is_line_numbers_displayed", "true") == (livemirror.editor.Extension("line_numbers"),)


def test_active_line_installs_two_extensions () -> None:

	"""Active line highlighting covers both the line and its gutter."""

	fragment = livemirror.behaviors.DEFAULT_REGISTRY.instantiate("is_active_line_highlighted", True)

	assert [extension.kind for extension in fragment] == ["active_line", "active_line_gutter"]


def test_unknown_behavior_warns_and_returns_none (caplog: pytest.LogCaptureFixture) -> None:

	"""Unknown behavior names are a logged no-op."""

	with caplog.at_level(logging.WARNING, logger="livemirror.behaviors"):
		result = livemirror.behaviors.DEFAULT_REGISTRY.instantiate("is_sparkle_enabled", True)

	assert result is None
	assert "is_sparkle_enabled" in caplog.text


def test_registry_is_immutable_after_construction () -> None:

	"""Changing the source table later does not change the registry."""

	factories = {"is_flash_enabled": livemirror.behaviors.BEHAVIORS["is_flash_enabled"]}
	registry = livemirror.behaviors.BehaviorRegistry(factories)

	factories["extra"] = livemirror.behaviors.BEHAVIORS["is_tooltip_enabled"]

	assert "extra" not in registry
	assert registry.names == ("is_flash_enabled",)


def test_theme_fragment_carries_palette () -> None:

	"""The theme fragment names the theme and carries its colors."""

	fragment = livemirror.behaviors.theme("teletext")

	assert fragment.kind == "theme"
	assert fragment.options["name"] == "teletext"
	assert fragment.options["foreground"] == livemirror.behaviors.THEMES["teletext"]["foreground"]


def test_unknown_theme_falls_back (caplog: pytest.LogCaptureFixture) -> None:

	"""An unknown theme logs a warning and uses the default."""

	with caplog.at_level(logging.WARNING, logger="livemirror.behaviors"):
		fragment = livemirror.behaviors.theme("neon")

	assert fragment.options["name"] == livemirror.behaviors.DEFAULT_THEME
	assert "neon" in caplog.text


def test_keybindings_fragment () -> None:

	"""Keybindings yield a mode marker plus a default-precedence keymap."""

	mode, keymap = livemirror.behaviors.keybindings("vim")

	assert mode == livemirror.editor.Extension("keybindings", {"name": "vim"})
	assert keymap.precedence == livemirror.editor.PREC_DEFAULT
	assert any(binding.key == "Ctrl-r" for binding in keymap.bindings)


def test_unknown_keybindings_fall_back (caplog: pytest.LogCaptureFixture) -> None:

	"""Unknown keymap styles fall back to the default style."""

	with caplog.at_level(logging.WARNING, logger="livemirror.behaviors"):
		mode, _ = livemirror.behaviors.keybindings("nano")

	assert mode.options["name"] == livemirror.behaviors.DEFAULT_KEYMAP
	assert "nano" in caplog.text
