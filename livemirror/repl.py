"""Reference pattern engine: evaluates Python source into a playing pattern.

Code is ordinary Python evaluated in a small namespace.  Mini-notation strings
passed to ``seq()`` become cyclic patterns and the value of the final
expression is what plays::

	kick = seq("bd ~ bd ~")
	stack(kick, seq("[hh hh] hh").fast(2)).clip(0.5)

Before running, the source is transpiled: every ``seq("...")`` literal gets the
code offset of its first character injected, so each event can point back to
the characters that produced it, and the token ranges of all literals form the
evaluation's source-location map.  ``slider(value, low, high)`` calls are
collected as interactive widgets in the same way.

Security note: evaluation runs arbitrary Python in the host process.  This is
intentional for live coding; blocking builtins (``input``, ``breakpoint``, ...)
are replaced with functions that raise instead.
"""

import ast
import builtins
import dataclasses
import inspect
import logging
import re
import typing

import livemirror.mini_notation
import livemirror.pattern
import livemirror.scheduler


logger = logging.getLogger(__name__)


_RESULT_NAME = "__result__"
_LITERAL_PREFIX_RE = re.compile(r"([rRuU]*)('''|\"\"\"|'|\")")


class EvaluationError (Exception):

	"""Evaluated code failed to parse, failed to run, or did not produce a pattern."""


@dataclasses.dataclass
class Widget:

	"""
	An interactive control declared by evaluated code.
	"""

	kind: str
	value: float
	low: float
	high: float
	step: typing.Optional[float] = None
	start: typing.Optional[int] = None
	end: typing.Optional[int] = None


@dataclasses.dataclass
class EvalMeta:

	mini_locations: typing.List[livemirror.pattern.Location] = dataclasses.field(default_factory=list)
	widgets: typing.List[Widget] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class EvalResult:

	"""
	The outcome of one successful evaluation.
	"""

	code: str
	pattern: livemirror.pattern.Pattern
	meta: EvalMeta
	painters: typing.List[livemirror.pattern.Painter]


class _SourceIndex:

	"""Converts AST positions (1-based lines, UTF-8 byte columns) to string offsets."""

	def __init__ (self, code: str) -> None:

		self._lines = code.split("\n")
		self._line_starts: typing.List[int] = []

		offset = 0

		for line in self._lines:
			self._line_starts.append(offset)
			offset += len(line) + 1

	def offset (self, lineno: int, col_offset: int) -> int:

		line = self._lines[lineno - 1]
		column = len(line.encode("utf-8")[:col_offset].decode("utf-8", errors="ignore"))

		return self._line_starts[lineno - 1] + column


class _Transpiler (ast.NodeTransformer):

	"""
	Injects source offsets into ``seq`` and ``slider`` calls and collects the
	source-location map.
	"""

	def __init__ (self, code: str) -> None:

		self._code = code
		self._index = _SourceIndex(code)
		self.mini_locations: typing.List[livemirror.pattern.Location] = []

	def visit_Call (self, node: ast.Call) -> ast.AST:

		self.generic_visit(node)

		if not isinstance(node.func, ast.Name) or not node.args:
			return node

		if node.func.id == "seq":

			literal = node.args[0]

			if isinstance(literal, ast.Constant) and isinstance(literal.value, str):

				offset = self._literal_offset(literal)

				if offset is not None:
					node.keywords.append(ast.keyword(arg="_offset", value=ast.Constant(offset)))

					for token in livemirror.mini_notation.symbol_tokens(literal.value):
						self.mini_locations.append(livemirror.pattern.Location(offset + token.start, offset + token.end, token.text))

		elif node.func.id == "slider":

			first = node.args[0]

			if first.end_lineno is not None and first.end_col_offset is not None:
				start = self._index.offset(first.lineno, first.col_offset)
				end = self._index.offset(first.end_lineno, first.end_col_offset)
				node.keywords.append(ast.keyword(arg="_start", value=ast.Constant(start)))
				node.keywords.append(ast.keyword(arg="_end", value=ast.Constant(end)))

		return node

	def _literal_offset (self, literal: ast.Constant) -> typing.Optional[int]:

		"""Offset of the first content character of a plain string literal, if it can be mapped."""

		if literal.end_lineno is None or literal.end_col_offset is None:
			return None

		start = self._index.offset(literal.lineno, literal.col_offset)
		end = self._index.offset(literal.end_lineno, literal.end_col_offset)
		match = _LITERAL_PREFIX_RE.match(self._code, start, end)

		if match is None:
			return None

		content_start = match.end()
		content_end = end - len(match.group(2))

		# Escapes or implicit concatenation make offsets ambiguous.
		if self._code[content_start:content_end] != literal.value:
			logger.debug(f"Cannot map locations for literal at offset {start}")
			return None

		return content_start


def transpile (code: str) -> typing.Tuple[ast.Module, typing.List[livemirror.pattern.Location]]:

	"""
	Parse ``code`` and return the rewritten module plus its source-location map.

	The final expression statement is turned into an assignment so its value
	can be read back after execution.
	"""

	tree = ast.parse(code, "<livemirror>", "exec")
	transpiler = _Transpiler(code)
	tree = transpiler.visit(tree)

	if tree.body and isinstance(tree.body[-1], ast.Expr):
		last = tree.body[-1]
		assign = ast.Assign(
			targets = [ast.Name(id=_RESULT_NAME, ctx=ast.Store())],
			value = last.value
		)
		tree.body[-1] = ast.copy_location(assign, last)

	ast.fix_missing_locations(tree)

	return tree, transpiler.mini_locations


def _blocked (name: str) -> typing.Callable:

	"""Return a function that raises RuntimeError when called."""

	def _raise (*args: typing.Any, **kwargs: typing.Any) -> None:
		raise RuntimeError(f"{name}() is not available in evaluated code, it would block playback.")

	_raise.__name__ = name
	_raise.__qualname__ = name

	return _raise


def _safe_builtins () -> typing.Dict[str, typing.Any]:

	safe = {name: getattr(builtins, name) for name in dir(builtins)}

	for name in ("help", "input", "breakpoint", "exit", "quit"):
		safe[name] = _blocked(name)

	return safe


def build_namespace (painters: typing.List[livemirror.pattern.Painter], widgets: typing.List[Widget]) -> typing.Dict[str, typing.Any]:

	"""
	Build the globals for one evaluation.

	``painters`` and ``widgets`` are the tables this evaluation registers into;
	nothing is attached to shared types.
	"""

	def seq (notation: str, _offset: typing.Optional[int] = None) -> livemirror.pattern.Pattern:
		return livemirror.pattern.seq(notation, offset=_offset, painters=painters)

	def silence () -> livemirror.pattern.Pattern:
		return livemirror.pattern.silence(painters)

	def slider (
		value: float,
		low: float = 0.0,
		high: float = 1.0,
		step: typing.Optional[float] = None,
		_start: typing.Optional[int] = None,
		_end: typing.Optional[int] = None
	) -> float:
		widgets.append(Widget(kind="slider", value=value, low=low, high=high, step=step, start=_start, end=_end))
		return value

	return {
		"__builtins__": _safe_builtins(),
		"seq": seq,
		"stack": livemirror.pattern.stack,
		"silence": silence,
		"slider": slider,
	}


def run_code (code: str, painters: typing.Optional[typing.List[livemirror.pattern.Painter]] = None) -> EvalResult:

	"""
	Transpile and execute ``code``, returning the pattern it produced.

	Raises:
		EvaluationError: For empty code, syntax errors, errors raised while
			running, or a final value that is not a pattern.
	"""

	if not code.strip():
		raise EvaluationError("no code to evaluate")

	painter_table = painters if painters is not None else []
	widgets: typing.List[Widget] = []

	try:
		tree, mini_locations = transpile(code)
	except SyntaxError as exc:
		raise EvaluationError(f"syntax error on line {exc.lineno}: {exc.msg}") from exc

	namespace = build_namespace(painter_table, widgets)

	try:
		exec(compile(tree, "<livemirror>", "exec"), namespace)
	except SystemExit as exc:
		raise EvaluationError("SystemExit is not allowed in evaluated code") from exc
	except livemirror.mini_notation.MiniNotationError as exc:
		raise EvaluationError(f"mini-notation error: {exc}") from exc
	except Exception as exc:
		raise EvaluationError(f"{type(exc).__name__}: {exc}") from exc

	result = namespace.get(_RESULT_NAME)

	if not isinstance(result, livemirror.pattern.Pattern):
		raise EvaluationError("code must end with a pattern expression")

	return EvalResult(
		code = code,
		pattern = result,
		meta = EvalMeta(mini_locations=mini_locations, widgets=widgets),
		painters = painter_table
	)


class Repl:

	"""
	Evaluates code and drives a ``Scheduler`` with the result.

	Lifecycle hooks are invoked by the engine itself:

	- ``before_eval()`` (may be async) before the code runs,
	- ``after_eval(result)`` after a successful evaluation updated playback,
	- ``on_eval_error(error)`` when evaluation failed,
	- ``on_toggle(started)`` whenever the clock starts or stops.
	"""

	def __init__ (
		self,
		on_toggle: typing.Optional[typing.Callable[[bool], None]] = None,
		before_eval: typing.Optional[typing.Callable[[], typing.Any]] = None,
		after_eval: typing.Optional[typing.Callable[[EvalResult], None]] = None,
		on_eval_error: typing.Optional[typing.Callable[[EvaluationError], None]] = None,
		on_trigger: typing.Optional[livemirror.scheduler.TriggerCallback] = None,
		on_scheduler_error: typing.Optional[typing.Callable[[Exception], None]] = None,
		cps: float = 0.5,
		interval: float = 0.05
	) -> None:

		self.before_eval = before_eval
		self.after_eval = after_eval
		self.on_eval_error = on_eval_error

		self.scheduler = livemirror.scheduler.Scheduler(
			on_trigger = on_trigger,
			on_toggle = on_toggle,
			on_error = on_scheduler_error,
			cps = cps,
			interval = interval
		)

		self.code: str = ""
		self.active_code: typing.Optional[str] = None
		self.pending: bool = False
		self.eval_error: typing.Optional[EvaluationError] = None
		self.mini_locations: typing.List[livemirror.pattern.Location] = []
		self.widgets: typing.List[Widget] = []

	def set_code (self, code: str) -> None:

		"""Record the latest editor text without evaluating it."""

		self.code = code

	async def evaluate (
		self,
		code: str,
		autostart: bool = True,
		painters: typing.Optional[typing.List[livemirror.pattern.Painter]] = None
	) -> typing.Optional[EvalResult]:

		"""
		Evaluate ``code`` and hand the resulting pattern to the scheduler.

		Returns the result, or None when evaluation failed (the error is passed
		to ``on_eval_error`` and the previous pattern, if any, keeps playing).
		"""

		self.code = code
		self.pending = True

		try:

			if self.before_eval is not None:
				outcome = self.before_eval()
				if inspect.isawaitable(outcome):
					await outcome

			result = run_code(code, painters)

			self.scheduler.set_pattern(result.pattern, autostart)

			self.active_code = code
			self.mini_locations = result.meta.mini_locations
			self.widgets = result.meta.widgets
			self.eval_error = None
			self.pending = False

			logger.info("[eval] code updated")

			if self.after_eval is not None:
				self.after_eval(result)

			return result

		except EvaluationError as exc:
			self._fail(exc)
			return None

		# Hooks and the scheduler run caller code; their failures end this attempt only.
		except Exception as exc:
			error = EvaluationError(f"{type(exc).__name__}: {exc}")
			error.__cause__ = exc
			self._fail(error)
			return None

	def evaluate_detached (
		self,
		code: str,
		painters: typing.Optional[typing.List[livemirror.pattern.Painter]] = None
	) -> EvalResult:

		"""
		Evaluate without hooks and without touching the scheduler.

		Raises ``EvaluationError`` on failure.
		"""

		return run_code(code, painters)

	def start (self) -> None:
		self.scheduler.start()

	def stop (self) -> None:
		self.scheduler.stop()

	def _fail (self, error: EvaluationError) -> None:

		self.eval_error = error
		self.pending = False

		logger.error(f"[eval] error: {error}")

		if self.on_eval_error is not None:
			self.on_eval_error(error)
