import logging
import typing

import livemirror.pattern


logger = logging.getLogger(__name__)


# Seconds of cycle time queried past the look-ahead edge.
_QUERY_MARGIN = 0.1

DrawCallback = typing.Callable[[typing.List[livemirror.pattern.Hap], float, "Drawer"], None]


class PreviewError (Exception):

	"""A best-effort first-frame preview could not be rendered."""


class _PatternSource (typing.Protocol):

	pattern: typing.Optional[livemirror.pattern.Pattern]

	def now (self) -> float:
		...

	def add_tick_listener (self, listener: typing.Callable[[float], None]) -> None:
		...

	def remove_tick_listener (self, listener: typing.Callable[[float], None]) -> None:
		...


def validate_draw_time (draw_time: typing.Sequence[float]) -> typing.Tuple[float, float]:

	"""Check a ``(lookbehind, lookahead)`` pair and return it as a tuple."""

	if len(draw_time) != 2:
		raise ValueError("draw_time must be a (lookbehind, lookahead) pair")

	lookbehind, lookahead = float(draw_time[0]), float(draw_time[1])

	if lookahead < 0:
		raise ValueError("draw_time lookahead cannot be negative")

	return lookbehind, lookahead


class Drawer:

	"""
	Samples the scheduler's pattern once per clock tick and reports visible events.

	``draw_time`` is ``(lookbehind, lookahead)`` in cycles.  The visible set
	spans from ``lookbehind`` before the current time to ``lookahead`` after
	it; with ``(0, 0)`` only events sounding right now are kept, which is all
	highlighting needs.
	"""

	def __init__ (self, on_draw: DrawCallback, draw_time: typing.Sequence[float] = (0, 0)) -> None:

		self.on_draw = on_draw
		self.draw_time = validate_draw_time(draw_time)
		self.visible_haps: typing.List[livemirror.pattern.Hap] = []
		self.last_frame: typing.Optional[float] = None
		self.scheduler: typing.Optional[_PatternSource] = None
		self.running: bool = False

	def set_draw_time (self, draw_time: typing.Sequence[float]) -> None:
		self.draw_time = validate_draw_time(draw_time)

	def start (self, scheduler: _PatternSource) -> None:

		"""Begin drawing on every tick of ``scheduler``."""

		if self.running:
			self.stop()

		self.scheduler = scheduler
		self.invalidate()
		scheduler.add_tick_listener(self._frame)
		self.running = True

	def stop (self) -> None:

		"""Stop drawing.  Visible events are kept until ``cleanup()``."""

		if self.scheduler is not None:
			self.scheduler.remove_tick_listener(self._frame)

		self.running = False
		self.last_frame = None

	def cleanup (self) -> None:

		"""Release transient draw state."""

		self.visible_haps = []
		self.last_frame = None

	def invalidate (self, scheduler: typing.Optional[_PatternSource] = None, t: typing.Optional[float] = None) -> None:

		"""
		Replace every future event with a fresh query of the current pattern.

		Call after the pattern changed so upcoming events reflect the new code.
		"""

		if scheduler is not None:
			self.scheduler = scheduler

		if self.scheduler is None or self.scheduler.pattern is None:
			return

		if t is None:
			t = self.scheduler.now()

		self.visible_haps = self._future_window(self.scheduler.pattern, t, self.visible_haps)

	def render_preview (self, pattern: livemirror.pattern.Pattern, t: float) -> typing.List[livemirror.pattern.Hap]:

		"""Return the events visible at ``t`` for a pattern that is not playing."""

		return self._future_window(pattern, t, [])

	def _future_window (
		self,
		pattern: livemirror.pattern.Pattern,
		t: float,
		current: typing.List[livemirror.pattern.Hap]
	) -> typing.List[livemirror.pattern.Hap]:

		lookahead = self.draw_time[1]
		begin, end = max(t, 0.0), t + lookahead + _QUERY_MARGIN

		past = [hap for hap in current if hap.whole is not None and hap.whole.begin < t]

		return past + pattern.query_arc(begin, end)

	def _frame (self, _: float = 0.0) -> None:

		"""Advance the visible window to the scheduler's current time and draw."""

		if self.scheduler is None or self.scheduler.pattern is None:
			return

		try:

			lookbehind = abs(self.draw_time[0])
			lookahead = self.draw_time[1]
			phase = self.scheduler.now() + lookahead

			# The first frame only records where drawing starts.
			if self.last_frame is None:
				self.last_frame = phase
				return

			haps = self.scheduler.pattern.query_arc(max(self.last_frame, phase - _QUERY_MARGIN), phase)
			self.last_frame = phase

			self.visible_haps = [
				hap for hap in self.visible_haps
				if hap.end_clipped >= phase - lookbehind - lookahead
			] + [hap for hap in haps if hap.has_onset()]

			self.on_draw(self.visible_haps, phase - lookahead, self)

		except Exception:
			logger.exception("Draw frame failed")
