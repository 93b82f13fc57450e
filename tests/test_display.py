import io
import logging

import pytest

import livemirror.display
import livemirror.pattern


def _hap (begin: float, end: float, value: str, *locations: livemirror.pattern.Location) -> livemirror.pattern.Hap:

	span = livemirror.pattern.TimeSpan(begin, end)
	return livemirror.pattern.Hap(whole=span, part=span, value=value, locations=locations)


def test_mark_ranges () -> None:

	"""Ranges are wrapped in the given markers, in code order."""

	code = "bd sn hh"
	locations = [livemirror.pattern.Location(6, 8), livemirror.pattern.Location(0, 2)]

	assert livemirror.display.mark_ranges(code, locations, "[", "]") == "[bd] sn [hh]"


def test_mark_ranges_skips_bad_ranges () -> None:

	"""Overlapping, empty and out-of-range locations are ignored."""

	code = "bd sn"
	locations = [
		livemirror.pattern.Location(0, 2),
		livemirror.pattern.Location(1, 3),
		livemirror.pattern.Location(4, 4),
		livemirror.pattern.Location(3, 50),
	]

	assert livemirror.display.mark_ranges(code, locations, "[", "]") == "[bd] sn"


def test_format_status () -> None:

	"""The status line shows the cycle, event count and sounding values."""

	haps = [_hap(0, 0.5, "bd"), _hap(0.5, 1, "sn")]

	status = livemirror.display.Display.format_status(haps, 0.25, haps[:1])

	assert status == "Cycle: 0.25  Events: 2  Active: bd"
	assert "Active" not in livemirror.display.Display.format_status(haps, 0.25, [])


def test_show_code_requires_source () -> None:

	"""Rendering code needs somewhere to read it from."""

	with pytest.raises(ValueError):
		livemirror.display.Display(show_code=True)


def test_update_inactive_writes_nothing () -> None:

	"""Frames arriving before start() are ignored."""

	stream = io.StringIO()
	display = livemirror.display.Display(stream=stream)

	display.update([_hap(0, 1, "bd")], 0.5, [])

	assert stream.getvalue() == ""


def test_update_draws_status_and_code () -> None:

	"""An active display draws highlighted code above the status line."""

	stream = io.StringIO()
	location = livemirror.pattern.Location(0, 2)
	display = livemirror.display.Display(code_source=lambda: "bd sn", show_code=True, stream=stream)

	display.start()

	try:
		hap = _hap(0, 0.5, "bd", location)
		display.update([hap], 0.1, [hap])
	finally:
		display.stop()

	output = stream.getvalue()

	assert "\033[7mbd\033[0m sn" in output
	assert "Cycle: 0.10  Events: 1  Active: bd" in output


def test_start_and_stop_restore_handlers () -> None:

	"""The display swaps the root handlers while active and restores them after."""

	root = logging.getLogger()
	original = list(root.handlers)
	display = livemirror.display.Display(stream=io.StringIO())

	display.start()

	assert display.active
	assert len(root.handlers) == 1
	assert isinstance(root.handlers[0], livemirror.display.DisplayLogHandler)

	display.stop()

	assert not display.active
	assert root.handlers == original


def test_log_messages_scroll_above_view () -> None:

	"""Log output is written to the display stream while it is active."""

	stream = io.StringIO()
	display = livemirror.display.Display(stream=stream)

	display.start()

	try:
		hap = _hap(0, 1, "bd")
		display.update([hap], 0.5, [hap])
		logging.getLogger("livemirror.test").warning("hello from the log")
	finally:
		display.stop()

	assert "hello from the log" in stream.getvalue()
