"""Live terminal view for a playing session.

Provides a persistent status line showing the cycle position, the number of
visible events and the values sounding right now.  Optionally renders the
code above the status line with the ranges of active events shown in reverse
video, which is the terminal equivalent of editor highlighting.

Log messages scroll above the view without disruption.

Use it as the session's draw callback:

```python
display = Display(code_source=lambda: session.code, show_code=True)
session = Session(initial_code=code, on_draw=display.update)
display.start()
```

The status line looks like::

	Cycle: 12.38  Events: 4  Active: bd hh
"""

import logging
import sys
import typing

import livemirror.pattern


_REVERSE = "\033[7m"
_RESET = "\033[0m"


def mark_ranges (code: str, locations: typing.Iterable[livemirror.pattern.Location], start: str = _REVERSE, end: str = _RESET) -> str:

	"""Wrap every location range of ``code`` in ``start``/``end`` markers.

	Overlapping or out-of-range locations are skipped.
	"""

	marked: typing.List[str] = []
	position = 0

	for location in sorted(locations, key=lambda item: (item.start, item.end)):

		if location.start < position or location.end > len(code) or location.start >= location.end:
			continue

		marked.append(code[position:location.start])
		marked.append(start + code[location.start:location.end] + end)
		position = location.end

	marked.append(code[position:])

	return "".join(marked)


class DisplayLogHandler (logging.Handler):

	"""Logging handler that clears and redraws the view around log output.

	Installed by ``Display.start()`` and removed by ``Display.stop()``.
	"""

	def __init__ (self, display: "Display") -> None:

		super().__init__()
		self._display = display

	def emit (self, record: logging.LogRecord) -> None:

		"""Clear the view, write the log message, then redraw."""

		try:
			self._display.clear_line()

			msg = self.format(record)
			self._display.stream.write(msg + "\n")
			self._display.stream.flush()

			self._display.draw()

		except Exception:
			self.handleError(record)


class Display:

	"""Live-updating terminal view of a session's draw frames.

	``update`` has the draw callback signature, so the display can be passed
	to a session directly as ``on_draw``.
	"""

	def __init__ (
		self,
		code_source: typing.Optional[typing.Callable[[], str]] = None,
		show_code: bool = False,
		stream: typing.Optional[typing.TextIO] = None
	) -> None:

		"""
		Parameters:
			code_source: Returns the current code text (required for ``show_code``).
			show_code: Render the code with active ranges above the status line.
			stream: Where to draw; stderr by default.
		"""

		if show_code and code_source is None:
			raise ValueError("show_code requires a code_source")

		self._code_source = code_source
		self._show_code = show_code
		self.stream: typing.TextIO = stream if stream is not None else sys.stderr

		self._active: bool = False
		self._handler: typing.Optional[DisplayLogHandler] = None
		self._saved_handlers: typing.List[logging.Handler] = []
		self._last_line: str = ""
		self._code_lines: typing.List[str] = []
		self._drawn_line_count: int = 0

	@property
	def active (self) -> bool:
		return self._active

	def start (self) -> None:

		"""Install the log handler and activate the view.

		Existing root logger handlers are saved and replaced with a
		``DisplayLogHandler``; ``stop()`` restores them.
		"""

		if self._active:
			return

		self._active = True

		root_logger = logging.getLogger()
		self._saved_handlers = list(root_logger.handlers)
		self._handler = DisplayLogHandler(self)

		if self._saved_handlers and self._saved_handlers[0].formatter:
			self._handler.setFormatter(self._saved_handlers[0].formatter)
		else:
			self._handler.setFormatter(logging.Formatter("%(levelname)s:%(name)s:%(message)s"))

		root_logger.handlers.clear()
		root_logger.addHandler(self._handler)

	def stop (self) -> None:

		"""Clear the view and restore the original log handlers."""

		if not self._active:
			return

		self.clear_line()
		self._active = False

		root_logger = logging.getLogger()
		root_logger.handlers.clear()

		for handler in self._saved_handlers:
			root_logger.addHandler(handler)

		self._saved_handlers = []
		self._handler = None

	def update (
		self,
		haps: typing.List[livemirror.pattern.Hap],
		time: float,
		current: typing.List[livemirror.pattern.Hap],
		painters: typing.Optional[typing.List[livemirror.pattern.Painter]] = None
	) -> None:

		"""Rebuild and redraw the view for one draw frame."""

		if not self._active:
			return

		self._last_line = self.format_status(haps, time, current)

		if self._show_code and self._code_source is not None:
			locations = [location for hap in current for location in hap.locations]
			self._code_lines = mark_ranges(self._code_source(), locations).split("\n")

		self.draw()

	@staticmethod
	def format_status (haps: typing.List[livemirror.pattern.Hap], time: float, current: typing.List[livemirror.pattern.Hap]) -> str:

		"""Build the status string for one frame."""

		parts = [f"Cycle: {time:.2f}", f"Events: {len(haps)}"]

		if current:
			parts.append("Active: " + " ".join(str(hap.value) for hap in current))

		return "  ".join(parts)

	def draw (self) -> None:

		"""Write the current view to the terminal."""

		if not self._active or not self._last_line:
			return

		total = len(self._code_lines) + 1

		# The cursor sits on the status line, so move up to the first line.
		if self._drawn_line_count > 1:
			self.stream.write(f"\033[{self._drawn_line_count - 1}A")

		for line in self._code_lines:
			self.stream.write(f"\r\033[K{line}\n")

		self.stream.write(f"\r\033[K{self._last_line}")
		self.stream.flush()

		self._drawn_line_count = total

	def clear_line (self) -> None:

		"""Erase the whole view from the terminal."""

		if not self._active:
			return

		if self._drawn_line_count > 1:
			self.stream.write(f"\033[{self._drawn_line_count - 1}A")

			for _ in range(self._drawn_line_count):
				self.stream.write("\r\033[K\n")

			self.stream.write(f"\033[{self._drawn_line_count}A")
		else:
			self.stream.write("\r\033[K")

		self.stream.flush()
		self._drawn_line_count = 0
