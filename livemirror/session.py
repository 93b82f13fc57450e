import asyncio
import inspect
import logging
import secrets
import typing

import livemirror.behaviors
import livemirror.coordination
import livemirror.draw
import livemirror.lifecycle
import livemirror.pattern
import livemirror.repl
import livemirror.settings
import livemirror.surface


logger = logging.getLogger(__name__)


# Called as on_draw(haps, time, current_frame, painters).
DrawHandler = typing.Callable[
	[typing.List[livemirror.pattern.Hap], float, typing.List[livemirror.pattern.Hap], typing.List[livemirror.pattern.Painter]],
	typing.Any
]

# Sampled just before zero so events starting at zero are not drawn as active.
FIRST_FRAME_TIME = -0.001


def s4 () -> str:

	"""A short random hex id."""

	return secrets.token_hex(2)


def _log_preview_error (error: livemirror.draw.PreviewError) -> None:
	logger.warning(f"First frame could not be painted: {error}")


class Session:

	"""
	One live-coding editor bound to a pattern engine.

	A session owns its text surface, draw synchronizer, lifecycle controller
	and painter list.  The settings store and behavior registry are shared
	between sessions.  Starting playback in one session stops every other
	session on the same notification channel.

	Example:
		```python
		session = Session(initial_code='seq("bd ~ sn ~")')
		await session.evaluate()
		...
		await session.stop()
		session.clear()
		```
	"""

	def __init__ (
		self,
		initial_code: str = "",
		session_id: typing.Optional[str] = None,
		on_draw: typing.Optional[DrawHandler] = None,
		draw_time: typing.Sequence[float] = (0, 0),
		autodraw: bool = False,
		prebake: livemirror.lifecycle.Prebake = None,
		settings_store: typing.Optional[livemirror.settings.SettingsStore] = None,
		registry: typing.Optional[livemirror.behaviors.BehaviorRegistry] = None,
		channel: typing.Optional[livemirror.coordination.NotificationChannel] = None,
		on_error: typing.Optional[typing.Callable[[livemirror.repl.EvaluationError], None]] = None,
		on_preview_error: typing.Optional[typing.Callable[[livemirror.draw.PreviewError], None]] = None,
		before_eval: typing.Optional[typing.Callable[[], typing.Any]] = None,
		after_eval: typing.Optional[typing.Callable[[livemirror.repl.EvalResult], None]] = None,
		on_toggle: typing.Optional[typing.Callable[[bool], None]] = None,
		engine_factory: typing.Callable[..., livemirror.lifecycle.PatternEngine] = livemirror.repl.Repl,
		**engine_options: typing.Any
	) -> None:

		"""
		Build the session and everything it owns.

		Parameters:
			initial_code: Starting buffer text.
			session_id: Identifier used in start notifications (random when omitted).
			on_draw: Visual callback, called on every draw frame.
			draw_time: ``(lookbehind, lookahead)`` in cycles, used while painters
				are registered.
			autodraw: Render a preview frame before playback starts.
			prebake: Pending initialization awaited before the first evaluation.
			settings_store: Shared settings store (the process default if omitted).
			registry: Behavior registry (the default table if omitted).
			channel: Notification channel shared with sibling sessions.
			on_error: Receives evaluation errors.
			on_preview_error: Receives first-frame preview failures (logged by default).
			before_eval: User hook run before each evaluation (may be async).
			after_eval: User hook run after each successful evaluation.
			on_toggle: User hook run when playback starts or stops.
			engine_factory: Builds the pattern engine.
			engine_options: Passed through to ``engine_factory``.
		"""

		self.id = session_id or s4()
		self.on_draw = on_draw
		self.draw_time = livemirror.draw.validate_draw_time(draw_time)
		self.autodraw = autodraw
		self.on_error = on_error
		self.on_preview_error = on_preview_error if on_preview_error is not None else _log_preview_error
		self.user_before_eval = before_eval
		self.user_after_eval = after_eval
		self.user_on_toggle = on_toggle

		self.store = settings_store if settings_store is not None else livemirror.settings.DEFAULT_STORE
		self.registry = registry if registry is not None else livemirror.behaviors.DEFAULT_REGISTRY
		self._settings = self.store.get()

		self.painters: typing.List[livemirror.pattern.Painter] = []
		self.mini_locations: typing.List[livemirror.pattern.Location] = []
		self.widgets: typing.List[livemirror.repl.Widget] = []
		self._tasks: typing.Set[asyncio.Task] = set()

		self.drawer = livemirror.draw.Drawer(self._on_frame, self.draw_time)

		self.controller = livemirror.lifecycle.EvaluationController(
			initial_code = initial_code,
			prebake = prebake,
			engine_factory = engine_factory,
			before_eval = self._before_eval,
			after_eval = self._after_eval,
			on_toggle = self._on_toggle,
			on_eval_error = self._on_eval_error,
			on_evaluate = self.flash,
			painters = self.painters,
			**engine_options
		)

		self.surface = livemirror.surface.TextSurface(
			initial_text = initial_code,
			on_text_changed = self.controller.set_code,
			on_evaluate = lambda: self._schedule(self.evaluate()),
			on_stop = lambda: self._schedule(self.stop()),
			settings = self._settings,
			registry = self.registry,
			session = self
		)

		self.set_font_size(self._settings["font_size"])
		self.set_font_family(self._settings["font_family"])

		self.coordinator = livemirror.coordination.SessionCoordinator(self.id, self.controller.stop, channel)
		self.coordinator.attach()

		if self.autodraw and self.on_draw is not None:
			try:
				asyncio.get_running_loop()
				self._schedule(self.draw_first_frame())
			except RuntimeError:
				logger.debug("No running event loop, first frame left to draw_first_frame()")

		logger.info(f"Session {self.id} created")

	# ------------------------------------------------------------------
	# State
	# ------------------------------------------------------------------

	@property
	def code (self) -> str:
		return self.controller.code

	@property
	def state (self) -> livemirror.lifecycle.LifecycleState:
		return self.controller.state

	@property
	def started (self) -> bool:
		return self.controller.started

	@property
	def engine (self) -> livemirror.lifecycle.PatternEngine:
		return self.controller.engine

	@property
	def settings (self) -> typing.Dict[str, typing.Any]:

		"""A copy of this session's settings snapshot."""

		return dict(self._settings)

	# ------------------------------------------------------------------
	# Lifecycle
	# ------------------------------------------------------------------

	async def evaluate (self) -> typing.Optional[livemirror.repl.EvalResult]:

		"""Flash, then evaluate the current code and start or update playback."""

		return await self.controller.evaluate()

	async def stop (self) -> None:

		"""Signal the clock to stop; the stop completes on the toggle notification."""

		self.controller.stop()

	async def toggle (self) -> None:
		await self.controller.toggle()

	def handle_key (self, key: str) -> bool:

		"""Deliver a key press to the text surface."""

		return self.surface.handle_key(key)

	def set_code (self, code: str) -> None:

		"""Replace the whole buffer; ``code`` reads back exactly afterwards."""

		self.surface.replace_all_text(code)

	def clear (self) -> None:

		"""Tear down: stop listening for sibling sessions and stop playback."""

		self.coordinator.detach()
		self.controller.stop()

		for task in list(self._tasks):
			task.cancel()

		logger.info(f"Session {self.id} cleared")

	def _schedule (self, coroutine: typing.Coroutine[typing.Any, typing.Any, typing.Any]) -> None:

		"""Run ``coroutine`` as a task on the running loop, keeping a reference until it finishes."""

		try:
			loop = asyncio.get_running_loop()
		except RuntimeError:
			coroutine.close()
			logger.warning("No running event loop, command ignored")
			return

		task = loop.create_task(coroutine)
		self._tasks.add(task)
		task.add_done_callback(self._tasks.discard)

	# ------------------------------------------------------------------
	# Engine hooks
	# ------------------------------------------------------------------

	async def _before_eval (self) -> None:

		self.drawer.cleanup()
		# Cleared in place: the engine registers into this same list.
		self.painters.clear()

		if self.user_before_eval is not None:
			outcome = self.user_before_eval()
			if inspect.isawaitable(outcome):
				await outcome

	def _after_eval (self, result: livemirror.repl.EvalResult) -> None:

		self.mini_locations = list(result.meta.mini_locations)
		self.widgets = list(result.meta.widgets)

		self.surface.update_widgets(self.widgets)
		self.surface.update_mini_locations(self.mini_locations)

		if self.user_after_eval is not None:
			self.user_after_eval(result)

		self.adjust_draw_time()
		self.drawer.invalidate(self.engine.scheduler)

	def _on_eval_error (self, error: livemirror.repl.EvaluationError) -> None:

		if self.on_error is not None:
			self.on_error(error)

	def _on_toggle (self, started: bool) -> None:

		if self.user_on_toggle is not None:
			self.user_on_toggle(started)

		if started:
			self.adjust_draw_time()
			self.drawer.start(self.engine.scheduler)
			self.coordinator.announce()

		else:
			self.drawer.stop()
			self.surface.update_mini_locations([])
			self.drawer.cleanup()

	# ------------------------------------------------------------------
	# Drawing
	# ------------------------------------------------------------------

	def adjust_draw_time (self) -> None:

		"""Use the configured window while painters exist, zero width otherwise."""

		self.drawer.set_draw_time(self.draw_time if self.painters else (0, 0))

	def _on_frame (self, haps: typing.List[livemirror.pattern.Hap], time: float, drawer: livemirror.draw.Drawer) -> None:

		current_frame = [hap for hap in haps if hap.is_active(time)]
		self.highlight(current_frame, time)

		if self.on_draw is not None:
			self.on_draw(haps, time, current_frame, self.painters)

	def highlight (self, haps: typing.Iterable[livemirror.pattern.Hap], time: float) -> None:
		self.surface.highlight_mini_locations(time, haps)

	def flash (self, ms: int = livemirror.surface.DEFAULT_FLASH_MS) -> None:
		self.surface.flash(ms)

	async def draw_first_frame (self) -> None:

		"""
		Render one frame of the current code without starting playback.

		The code is evaluated detached from the scheduler into a throwaway
		painter list.  Failures go to ``on_preview_error`` only.
		"""

		if self.on_draw is None:
			return

		try:
			await self.controller.wait_for_prebake()

			preview_painters: typing.List[livemirror.pattern.Painter] = []
			result = self.engine.evaluate_detached(self.code, preview_painters)
			visible = self.drawer.render_preview(result.pattern, FIRST_FRAME_TIME)

			self.on_draw(visible, FIRST_FRAME_TIME, [], preview_painters)

		except Exception as exc:
			self.on_preview_error(livemirror.draw.PreviewError(str(exc)))

	# ------------------------------------------------------------------
	# Settings and appearance
	# ------------------------------------------------------------------

	def reconfigure_extension (self, key: str, value: typing.Any) -> None:

		"""
		Rebuild one behavior from ``value`` and swap it into the surface.

		The registry coerces ``value``, so raw strings such as ``"true"`` are accepted.
		"""

		if key not in self.registry:
			logger.warning(f"Extension {key!r} is not known")
			return

		self.surface.reconfigure(key, self.registry.instantiate(key, value, self))

		if key == "theme":
			self.surface.activate_theme(value)

	def set_line_wrapping_enabled (self, enabled: typing.Any) -> None:
		self.reconfigure_extension("is_line_wrapping_enabled", enabled)

	def set_line_numbers_displayed (self, enabled: typing.Any) -> None:
		self.reconfigure_extension("is_line_numbers_displayed", enabled)

	def set_theme (self, theme: str) -> None:
		self.reconfigure_extension("theme", theme)

	def set_autocompletion_enabled (self, enabled: typing.Any) -> None:
		self.reconfigure_extension("is_auto_completion_enabled", enabled)

	def set_font_size (self, size: typing.Union[int, float, str]) -> None:
		self.surface.set_font_size(size)

	def set_font_family (self, family: str) -> None:
		self.surface.set_font_family(family)

	def update_settings (self, partial: typing.Mapping[str, typing.Any]) -> typing.Dict[str, typing.Any]:

		"""
		Merge ``partial`` into the shared store and apply the result here.

		Keys not in ``partial`` keep their stored values.  Other existing
		sessions are not touched; sessions created later start from the
		merged snapshot.
		"""

		self._settings = self.store.update(partial)

		self.set_font_size(self._settings["font_size"])
		self.set_font_family(self._settings["font_family"])

		for name in self.registry.names:
			if name in self._settings:
				self.reconfigure_extension(name, self._settings[name])

		return self.settings

	def change_setting (self, key: str, value: typing.Any) -> None:

		"""Apply one setting to this session only, without persisting it."""

		value = livemirror.behaviors.coerce_value(value)

		if key in self.registry:
			self.reconfigure_extension(key, value)
		elif key == "font_family":
			self.set_font_family(value)
		elif key == "font_size":
			self.set_font_size(value)
		else:
			logger.warning(f"Ignoring unknown setting {key!r}")
			return

		self._settings[key] = value
