import asyncio
import enum
import inspect
import logging
import typing

import livemirror.pattern
import livemirror.repl


logger = logging.getLogger(__name__)


Prebake = typing.Union[typing.Awaitable[typing.Any], typing.Callable[[], typing.Any], None]


async def _run_prebake (prebake: Prebake) -> None:

	"""Call a prebake callable (sync or async) or await a prebake handle."""

	outcome = prebake() if callable(prebake) else prebake

	if inspect.isawaitable(outcome):
		await outcome


class LifecycleState (enum.Enum):

	"""
	Where a session is between evaluation and playback.

	STOPPED is the resting state after playback ends and counts as idle: the
	next ``evaluate()`` leaves it exactly as it leaves IDLE.
	"""

	IDLE = "idle"
	EVALUATING = "evaluating"
	PLAYING = "playing"
	STOPPED = "stopped"


class PatternEngine (typing.Protocol):

	"""What the controller needs from an evaluation engine."""

	scheduler: typing.Any

	async def evaluate (
		self,
		code: str,
		autostart: bool = True,
		painters: typing.Optional[typing.List[livemirror.pattern.Painter]] = None
	) -> typing.Optional[livemirror.repl.EvalResult]:
		...

	def evaluate_detached (
		self,
		code: str,
		painters: typing.Optional[typing.List[livemirror.pattern.Painter]] = None
	) -> livemirror.repl.EvalResult:
		...

	def set_code (self, code: str) -> None:
		...

	def start (self) -> None:
		...

	def stop (self) -> None:
		...


class EvaluationController:

	"""
	Owns the code buffer and drives the pattern engine through its lifecycle.

	The engine is constructed here with the controller's own hook wrappers so
	that state is tracked before the caller's hooks run.  ``prebake`` is a
	pending-initialization handle (an awaitable, or a callable returning one)
	that every evaluation waits for until it has resolved.
	"""

	def __init__ (
		self,
		initial_code: str = "",
		prebake: Prebake = None,
		engine_factory: typing.Callable[..., PatternEngine] = livemirror.repl.Repl,
		before_eval: typing.Optional[typing.Callable[[], typing.Any]] = None,
		after_eval: typing.Optional[typing.Callable[[livemirror.repl.EvalResult], None]] = None,
		on_toggle: typing.Optional[typing.Callable[[bool], None]] = None,
		on_eval_error: typing.Optional[typing.Callable[[livemirror.repl.EvaluationError], None]] = None,
		on_evaluate: typing.Optional[typing.Callable[[], None]] = None,
		painters: typing.Optional[typing.List[livemirror.pattern.Painter]] = None,
		**engine_options: typing.Any
	) -> None:

		"""
		Parameters:
			initial_code: Text the buffer starts with.
			prebake: Pending initialization awaited before evaluating.
			engine_factory: Builds the engine; receives the hook wrappers plus
				``engine_options``.
			before_eval: Called by the engine before the code runs (may be async).
			after_eval: Called with the ``EvalResult`` after a successful evaluation.
			on_toggle: Called with True/False when playback starts/stops.
			on_eval_error: Called with the ``EvaluationError`` of a failed evaluation.
			on_evaluate: Called synchronously as each evaluation begins
				(the visual acknowledgement).
			painters: The painter table evaluations register into.
		"""

		self._code = initial_code
		self._prebake = prebake
		self._prebake_task: typing.Optional[asyncio.Future] = None

		self.before_eval = before_eval
		self.after_eval = after_eval
		self.on_toggle = on_toggle
		self.on_eval_error = on_eval_error
		self.on_evaluate = on_evaluate
		self.painters = painters if painters is not None else []

		self._state = LifecycleState.IDLE

		self._engine = engine_factory(
			on_toggle = self._handle_toggle,
			before_eval = self._handle_before_eval,
			after_eval = self._handle_after_eval,
			on_eval_error = self._handle_eval_error,
			**engine_options
		)

		# Initialization overlaps with editing when a loop is already running.
		try:
			asyncio.get_running_loop()
		except RuntimeError:
			logger.debug("No running event loop, prebake starts with the first evaluation")
		else:
			self._start_prebake()

	@property
	def engine (self) -> PatternEngine:
		return self._engine

	@property
	def state (self) -> LifecycleState:
		return self._state

	@property
	def started (self) -> bool:

		"""True while the engine clock is running."""

		return bool(self._engine.scheduler.started)

	@property
	def code (self) -> str:
		return self._code

	def set_code (self, code: str) -> None:

		"""Replace the buffer and let the engine know about the new text."""

		self._code = code
		self._engine.set_code(code)

	async def evaluate (self) -> typing.Optional[livemirror.repl.EvalResult]:

		"""
		Evaluate the current buffer.

		Returns the engine's result, or None when evaluation failed; failures
		are reported through ``on_eval_error`` and never raised.
		"""

		self._state = LifecycleState.EVALUATING

		if self.on_evaluate is not None:
			self.on_evaluate()

		try:
			await self.wait_for_prebake()
		except Exception as exc:
			logger.exception("Prebake failed")
			self._handle_eval_error(livemirror.repl.EvaluationError(f"prebake failed: {exc}"))
			self._settle()
			return None

		try:
			return await self._engine.evaluate(self._code, painters=self.painters)
		finally:
			self._settle()

	def _settle (self) -> None:

		"""Leave EVALUATING: PLAYING when a pattern is running, IDLE otherwise."""

		self._state = LifecycleState.PLAYING if self.started else LifecycleState.IDLE

	def stop (self) -> None:

		"""
		Ask the engine clock to halt.

		Completion is reported by the engine's toggle notification, which moves
		the state to STOPPED.
		"""

		self._engine.stop()

	async def toggle (self) -> None:

		"""Stop when playing, evaluate otherwise."""

		if self.started:
			self.stop()
		else:
			await self.evaluate()

	async def wait_for_prebake (self) -> None:

		"""Wait until the pending initialization has resolved (raising if it failed)."""

		if self._prebake_task is None:
			self._start_prebake()

		if self._prebake_task is None:
			return

		if not self._prebake_task.done():
			logger.info("Waiting for prebake to finish")
			await asyncio.shield(self._prebake_task)

		# A failed prebake fails every evaluation.
		self._prebake_task.result()

	def _start_prebake (self) -> None:

		"""Call the prebake (once) and keep its pending result as a task on the running loop."""

		if self._prebake is None or self._prebake_task is not None:
			return

		self._prebake_task = asyncio.ensure_future(_run_prebake(self._prebake))
		self._prebake_task.add_done_callback(self._prebake_done)

	@staticmethod
	def _prebake_done (task: asyncio.Future) -> None:

		if not task.cancelled() and task.exception() is not None:
			logger.warning(f"Prebake failed: {task.exception()}")

	async def _handle_before_eval (self) -> None:

		if self.before_eval is not None:
			outcome = self.before_eval()
			if inspect.isawaitable(outcome):
				await outcome

	def _handle_after_eval (self, result: livemirror.repl.EvalResult) -> None:

		if self.after_eval is not None:
			self.after_eval(result)

	def _handle_eval_error (self, error: livemirror.repl.EvaluationError) -> None:

		if self.on_eval_error is not None:
			self.on_eval_error(error)

	def _handle_toggle (self, started: bool) -> None:

		if started:
			self._state = LifecycleState.PLAYING
		else:
			self._state = LifecycleState.STOPPED
			logger.info("Playback stopped")

		if self.on_toggle is not None:
			self.on_toggle(started)
