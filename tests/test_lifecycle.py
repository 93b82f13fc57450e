import asyncio
import typing

import pytest

import livemirror.lifecycle
import livemirror.repl


def _controller (code: str = 'seq("a b")', **kwargs: typing.Any) -> livemirror.lifecycle.EvaluationController:

	kwargs.setdefault("interval", 0.01)
	return livemirror.lifecycle.EvaluationController(initial_code=code, **kwargs)


def test_set_code_reaches_engine () -> None:

	"""The buffer and the engine both hold the latest text."""

	controller = _controller("")
	controller.set_code('seq("x")')

	assert controller.code == 'seq("x")'
	assert controller.engine.code == 'seq("x")'
	assert controller.state == livemirror.lifecycle.LifecycleState.IDLE


@pytest.mark.asyncio
async def test_evaluate_plays_and_stop_stops () -> None:

	"""Evaluate moves to PLAYING, stop to STOPPED via the toggle notification."""

	toggles: typing.List[bool] = []
	controller = _controller(on_toggle=toggles.append)

	result = await controller.evaluate()

	assert result is not None
	assert controller.state == livemirror.lifecycle.LifecycleState.PLAYING
	assert controller.started

	controller.stop()

	assert controller.state == livemirror.lifecycle.LifecycleState.STOPPED
	assert toggles == [True, False]


@pytest.mark.asyncio
async def test_evaluation_error_returns_to_idle () -> None:

	"""A failed first evaluation reports the error and ends IDLE."""

	errors: typing.List[livemirror.repl.EvaluationError] = []
	after: typing.List[livemirror.repl.EvalResult] = []
	controller = _controller("seq(", on_eval_error=errors.append, after_eval=after.append)

	result = await controller.evaluate()

	assert result is None
	assert len(errors) == 1
	assert after == []
	assert controller.state == livemirror.lifecycle.LifecycleState.IDLE
	assert not controller.started


@pytest.mark.asyncio
async def test_evaluation_error_while_playing_keeps_playing () -> None:

	"""A failed re-evaluation leaves the previous pattern playing."""

	controller = _controller()
	await controller.evaluate()

	controller.set_code("oops(")
	await controller.evaluate()

	assert controller.state == livemirror.lifecycle.LifecycleState.PLAYING
	assert controller.started

	controller.stop()


@pytest.mark.asyncio
async def test_prebake_awaited_once () -> None:

	"""The pending initialization is started once and awaited before evaluating."""

	calls: typing.List[str] = []

	async def prebake () -> None:
		calls.append("prebake")
		await asyncio.sleep(0)

	controller = _controller(prebake=prebake, before_eval=lambda: calls.append("before"))

	await controller.evaluate()
	await controller.evaluate()
	controller.stop()

	assert calls == ["prebake", "before", "before"]


@pytest.mark.asyncio
async def test_prebake_failure_is_an_evaluation_error () -> None:

	"""A failed prebake is reported like any evaluation error."""

	async def prebake () -> None:
		raise RuntimeError("samples missing")

	errors: typing.List[livemirror.repl.EvaluationError] = []
	controller = _controller(prebake=prebake, on_eval_error=errors.append)

	assert await controller.evaluate() is None
	assert "samples missing" in str(errors[0])
	assert controller.state == livemirror.lifecycle.LifecycleState.IDLE


@pytest.mark.asyncio
async def test_on_evaluate_runs_first () -> None:

	"""The acknowledgement hook runs before any evaluation work."""

	calls: typing.List[str] = []
	controller = _controller(on_evaluate=lambda: calls.append("flash"), before_eval=lambda: calls.append("before"))

	await controller.evaluate()
	controller.stop()

	assert calls == ["flash", "before"]


@pytest.mark.asyncio
async def test_toggle () -> None:

	"""toggle() evaluates when stopped and stops when playing."""

	controller = _controller()

	await controller.toggle()
	assert controller.started

	await controller.toggle()
	assert not controller.started
	assert controller.state == livemirror.lifecycle.LifecycleState.STOPPED


@pytest.mark.asyncio
async def test_stop_during_prebake_does_not_preempt () -> None:

	"""A stop while waiting for prebake does not cancel the evaluation."""

	gate = asyncio.Event()

	async def prebake () -> None:
		await gate.wait()

	controller = _controller(prebake=prebake)

	pending = asyncio.ensure_future(controller.evaluate())
	await asyncio.sleep(0)

	assert controller.state == livemirror.lifecycle.LifecycleState.EVALUATING

	controller.stop()
	gate.set()
	await pending

	assert controller.started
	assert controller.state == livemirror.lifecycle.LifecycleState.PLAYING

	controller.stop()


@pytest.mark.asyncio
async def test_painters_are_the_shared_table () -> None:

	"""Evaluations register painters into the controller's table."""

	painters: typing.List[typing.Any] = []
	controller = _controller('seq("a").on_paint(print)', painters=painters)

	await controller.evaluate()
	controller.stop()

	assert painters == [print]


def test_custom_engine_factory () -> None:

	"""Any engine can be plugged in; it receives the hook wrappers."""

	received: typing.Dict[str, typing.Any] = {}

	class Engine:

		def __init__ (self, **kwargs: typing.Any) -> None:
			received.update(kwargs)
			self.scheduler = type("Clock", (), {"started": False})()

		def set_code (self, code: str) -> None:
			received["code"] = code

	controller = livemirror.lifecycle.EvaluationController(engine_factory=Engine, cps=1.5)
	controller.set_code("x")

	assert {"on_toggle", "before_eval", "after_eval", "on_eval_error", "cps"} <= set(received)
	assert received["code"] == "x"
	assert not controller.started


@pytest.mark.asyncio
async def test_failing_before_eval_is_an_evaluation_error () -> None:

	"""A raising before_eval hook is reported and the state settles."""

	def before_eval () -> None:
		raise RuntimeError("boom")

	errors: typing.List[livemirror.repl.EvaluationError] = []
	controller = _controller(before_eval=before_eval, on_eval_error=errors.append)

	assert await controller.evaluate() is None
	assert len(errors) == 1
	assert "boom" in str(errors[0])
	assert isinstance(errors[0].__cause__, RuntimeError)
	assert controller.state == livemirror.lifecycle.LifecycleState.IDLE
	assert not controller.started


@pytest.mark.asyncio
async def test_failing_after_eval_is_an_evaluation_error () -> None:

	"""A raising after_eval hook is reported; the new pattern keeps playing."""

	def after_eval (result: livemirror.repl.EvalResult) -> None:
		raise RuntimeError("boom")

	errors: typing.List[livemirror.repl.EvaluationError] = []
	controller = _controller(after_eval=after_eval, on_eval_error=errors.append)

	assert await controller.evaluate() is None
	assert len(errors) == 1
	assert controller.state == livemirror.lifecycle.LifecycleState.PLAYING

	controller.stop()


@pytest.mark.asyncio
async def test_failing_on_toggle_is_an_evaluation_error () -> None:

	"""A toggle hook raising on start is reported instead of escaping evaluate()."""

	def on_toggle (started: bool) -> None:
		if started:
			raise RuntimeError("boom")

	errors: typing.List[livemirror.repl.EvaluationError] = []
	controller = _controller(on_toggle=on_toggle, on_eval_error=errors.append)

	assert await controller.evaluate() is None
	assert len(errors) == 1
	assert controller.state != livemirror.lifecycle.LifecycleState.EVALUATING

	controller.stop()


@pytest.mark.asyncio
async def test_prebake_starts_on_construction () -> None:

	"""Built inside a running loop, initialization begins before any evaluation."""

	calls: typing.List[str] = []

	async def prebake () -> None:
		calls.append("prebake")

	controller = _controller(prebake=prebake)
	await asyncio.sleep(0.01)

	assert calls == ["prebake"]

	await controller.evaluate()
	controller.stop()

	assert calls == ["prebake"]


def test_prebake_starts_with_first_evaluation_without_loop () -> None:

	"""Built outside a loop, initialization is deferred to the first evaluation."""

	calls: typing.List[str] = []

	async def prebake () -> None:
		calls.append("prebake")

	controller = _controller(prebake=prebake)

	assert calls == []

	async def play () -> None:
		await controller.evaluate()
		controller.stop()

	asyncio.run(play())

	assert calls == ["prebake"]


@pytest.mark.asyncio
async def test_synchronous_prebake_failure_is_reported () -> None:

	"""A prebake callable raising immediately fails evaluation, not construction."""

	def prebake () -> None:
		raise RuntimeError("no samples")

	errors: typing.List[livemirror.repl.EvaluationError] = []
	controller = _controller(prebake=prebake, on_eval_error=errors.append)

	assert await controller.evaluate() is None
	assert "no samples" in str(errors[0])
	assert controller.state == livemirror.lifecycle.LifecycleState.IDLE


@pytest.mark.asyncio
async def test_stopped_rests_until_next_evaluation () -> None:

	"""STOPPED holds after playback ends and evaluating again plays as from IDLE."""

	controller = _controller()

	await controller.evaluate()
	controller.stop()

	assert controller.state == livemirror.lifecycle.LifecycleState.STOPPED

	await controller.evaluate()

	assert controller.state == livemirror.lifecycle.LifecycleState.PLAYING

	controller.stop()
