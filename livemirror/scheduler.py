import asyncio
import logging
import time
import typing

import livemirror.pattern


logger = logging.getLogger(__name__)


TriggerCallback = typing.Callable[[livemirror.pattern.Hap, float, float, float], typing.Any]
TickListener = typing.Callable[[float], None]


class Scheduler:

	"""
	The playback clock that queries the current pattern and triggers its events.

	Time is measured in cycles.  While started, an asyncio task wakes every
	``interval`` seconds, queries the pattern over the span that has come into
	range since the previous tick, hands each event onset to ``on_trigger``
	together with its deadline in seconds, and then notifies tick listeners
	(the draw cadence follows the clock, not the wall clock).
	"""

	def __init__ (
		self,
		on_trigger: typing.Optional[TriggerCallback] = None,
		on_toggle: typing.Optional[typing.Callable[[bool], None]] = None,
		on_error: typing.Optional[typing.Callable[[Exception], None]] = None,
		cps: float = 0.5,
		interval: float = 0.05
	) -> None:

		"""Initialize a stopped clock.

		Parameters:
			on_trigger: Called as ``on_trigger(hap, deadline, duration, cps)``
				for every event onset; ``deadline`` and ``duration`` are seconds.
			on_toggle: Called with True when playback starts, False when it stops.
			on_error: Called with any exception raised while querying or
				triggering; the clock keeps running.
			cps: Cycles per second.
			interval: Seconds between ticks.
		"""

		if interval <= 0:
			raise ValueError("Scheduler interval must be positive")

		self.on_trigger = on_trigger
		self.on_toggle = on_toggle
		self.on_error = on_error
		self.interval = interval

		self.pattern: typing.Optional[livemirror.pattern.Pattern] = None
		self.started: bool = False
		self.task: typing.Optional[asyncio.Task] = None

		self.cps: float = 0.0
		self._origin_time = 0.0
		self._origin_phase = 0.0
		self._last_end = 0.0
		self._tick_listeners: typing.List[TickListener] = []

		self.set_cps(cps)

	def set_cps (self, cps: float) -> None:

		"""Change the tempo without jumping the current cycle position."""

		if cps <= 0:
			raise ValueError("cps must be positive")

		if self.started:
			self._origin_phase = self.now()
			self._origin_time = time.perf_counter()

		self.cps = cps
		logger.info(f"cps set to {self.cps:.3f}")

	def now (self) -> float:

		"""Current position in cycles (0 while stopped)."""

		if not self.started:
			return self._origin_phase

		return self._origin_phase + (time.perf_counter() - self._origin_time) * self.cps

	def set_pattern (self, pattern: livemirror.pattern.Pattern, autostart: bool = False) -> None:

		"""Swap the playing pattern; optionally start the clock."""

		self.pattern = pattern

		if autostart and not self.started:
			self.start()

	def add_tick_listener (self, listener: TickListener) -> None:
		self._tick_listeners.append(listener)

	def remove_tick_listener (self, listener: TickListener) -> None:

		"""Unregister a tick listener; unknown listeners are ignored."""

		if listener in self._tick_listeners:
			self._tick_listeners.remove(listener)

	def start (self) -> None:

		"""Start the clock task on the running event loop."""

		if self.started:
			return

		if self.pattern is None:
			raise RuntimeError("Scheduler cannot start without a pattern")

		self._origin_time = time.perf_counter()
		self._origin_phase = 0.0
		self._last_end = 0.0
		self.started = True
		self.task = asyncio.get_running_loop().create_task(self._run_loop())

		logger.info("Scheduler started")
		self._notify_toggle(True)

	def stop (self) -> None:

		"""Stop the clock and rewind to cycle 0.  Does not wait for the task."""

		if not self.started:
			return

		self.started = False

		if self.task is not None and not self.task.done():
			self.task.cancel()

		self.task = None
		self._origin_phase = 0.0
		self._last_end = 0.0

		logger.info("Scheduler stopped")
		self._notify_toggle(False)

	def _notify_toggle (self, started: bool) -> None:

		if self.on_toggle is not None:
			self.on_toggle(started)

	async def _run_loop (self) -> None:

		"""Tick until stopped, sleeping between ticks to hold the interval."""

		next_tick_time = time.perf_counter()

		while self.started:

			self._tick()

			next_tick_time += self.interval
			sleep_time = next_tick_time - time.perf_counter()

			if sleep_time > 0:
				await asyncio.sleep(sleep_time)
			else:
				# Running late; yield so input handling is not starved.
				await asyncio.sleep(0)

	def _tick (self) -> None:

		"""Query the span that came into range and trigger onsets, then notify listeners."""

		phase = self.now()
		begin = self._last_end
		end = phase + self.interval * self.cps
		self._last_end = end

		if self.pattern is not None and end > begin:

			try:
				haps = self.pattern.query_arc(begin, end)
			except Exception as exc:
				logger.exception("Pattern query failed")
				self._report(exc)
				haps = []

			for hap in haps:

				if not hap.has_onset() or self.on_trigger is None:
					continue

				deadline = (hap.whole.begin - phase) / self.cps  # type: ignore[union-attr]
				duration = hap.duration / self.cps

				try:
					self.on_trigger(hap, deadline, duration, self.cps)
				except Exception as exc:
					logger.exception(f"Trigger failed for {hap.value!r}")
					self._report(exc)

		for listener in list(self._tick_listeners):
			listener(phase)

	def _report (self, exc: Exception) -> None:

		if self.on_error is not None:
			self.on_error(exc)
