import asyncio
import os
import typing

import pytest

import conftest
import livemirror.__main__
import livemirror.settings


def test_load_config_missing_file (tmp_path: typing.Any) -> None:

	"""A missing config file gives an empty configuration."""

	assert livemirror.__main__.load_config(str(tmp_path / "missing.yaml")) == {}


def test_load_config_reads_yaml (tmp_path: typing.Any) -> None:

	"""Sections are read from YAML; an empty file is an empty configuration."""

	path = tmp_path / "config.yaml"
	path.write_text("session:\n  cps: 1.5\n  draw_time: [-1, 1]\n")

	assert livemirror.__main__.load_config(str(path)) == {"session": {"cps": 1.5, "draw_time": [-1, 1]}}

	path.write_text("")

	assert livemirror.__main__.load_config(str(path)) == {}


def test_parse_args () -> None:

	"""The code file is required; config and settings are optional."""

	args = livemirror.__main__.parse_args(["song.py", "--settings", "s.json"])

	assert args.code_file == "song.py"
	assert args.config == "config.yaml"
	assert args.settings == "s.json"


def test_build_session_from_config (tmp_path: typing.Any, patch_midi: None) -> None:

	"""The session, display and MIDI sink follow the configuration sections."""

	code_path = tmp_path / "song.py"
	code_path.write_text('seq("bd sn")\n')
	settings_path = tmp_path / "settings.json"

	config = {
		"session": {"cps": 1.0, "draw_time": [-1, 1]},
		"display": {"enabled": True, "show_code": True},
		"midi": {"channel": 9},
	}

	session, display, trigger = livemirror.__main__.build_session(str(code_path), config, str(settings_path))

	try:
		assert session.code == 'seq("bd sn")\n'
		assert session.draw_time == (-1.0, 1.0)
		assert session.engine.scheduler.cps == 1.0
		assert display is not None
		assert display.update == session.on_draw
		assert trigger is not None
		assert trigger.channel == 9
		assert trigger.midi_out is conftest.current_fake_output()

		session.update_settings({"font_size": 22})

		assert os.path.exists(settings_path)
		assert livemirror.settings.SettingsStore(livemirror.settings.FileStorage(str(settings_path))).get()["font_size"] == 22

	finally:
		session.clear()


def test_build_session_minimal (tmp_path: typing.Any) -> None:

	"""Without display or MIDI sections neither is built."""

	code_path = tmp_path / "song.py"
	code_path.write_text('seq("a")')

	session, display, trigger = livemirror.__main__.build_session(str(code_path), {})

	try:
		assert display is None
		assert trigger is None
		assert session.on_draw is None
	finally:
		session.clear()


@pytest.mark.asyncio
async def test_watch_file_re_evaluates (tmp_path: typing.Any) -> None:

	"""Saving the file replaces the session code and evaluates it."""

	code_path = tmp_path / "song.py"
	code_path.write_text('seq("a")')

	session, _, _ = livemirror.__main__.build_session(str(code_path), {"session": {"interval": 0.01}})
	watcher = asyncio.ensure_future(livemirror.__main__.watch_file(session, str(code_path), poll_interval=0.01))

	try:
		await asyncio.sleep(0.02)
		code_path.write_text('seq("b c")')
		os.utime(code_path, (1, 1))
		await asyncio.sleep(0.05)

		assert session.code == 'seq("b c")'
		assert session.started
	finally:
		watcher.cancel()
		session.clear()
