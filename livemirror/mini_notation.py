import dataclasses
import re
import typing


_TOKEN_RE = re.compile(r"\[|\]|[^\s\[\]]+")

_RESTS = ("~", ".")
_SUSTAIN = "_"


@dataclasses.dataclass
class Token:

	"""
	A word or bracket and its character range within the notation string.
	"""

	text: str
	start: int
	end: int


@dataclasses.dataclass
class ParsedEvent:

	"""
	Represents a single event parsed from mini-notation.
	"""

	time: float
	duration: float
	symbol: str
	start: int = 0
	end: int = 0


class MiniNotationError(Exception):
	pass


TokenTree = typing.List[typing.Union[Token, list]]


def parse (notation: str, total_duration: float = 1.0) -> typing.List[ParsedEvent]:

	"""
	Parse a mini-notation string into a list of timed events.

	Events are distributed evenly across ``total_duration`` (one cycle by
	default).  Each event keeps the character range of the word that produced
	it, so callers can map events back to the source text.

	**Syntax:**
	- `x y z`: Items separated by spaces are distributed across the total duration.
	- `[a b]`: Groups items into a single subdivided step.
	- `~` or `.`: A rest.
	- `_`: Extends the previous note (sustain).

	Parameters:
		notation: The string to parse.
		total_duration: The duration to distribute the events over.

	Returns:
		A list of `ParsedEvent` objects with calculated times, durations and
		character ranges.

	Example:
		```python
		# "bd" at 0.0 (chars 0-2), "sd" at 0.5 and 0.75
		parse("bd [sd sd]")
		```
	"""

	if total_duration <= 0:
		raise ValueError("total_duration must be positive")

	tree = _group(tokenize(notation))

	events = _parse_recursive(tree, 0.0, total_duration)

	return _post_process_sustains(events)


def tokenize (text: str) -> typing.List[Token]:

	"""
	Split notation into positioned tokens.
	"""

	return [Token(match.group(0), match.start(), match.end()) for match in _TOKEN_RE.finditer(text)]


def symbol_tokens (text: str) -> typing.List[Token]:

	"""
	Return the tokens that can produce events: everything except brackets,
	rests and sustains.
	"""

	return [
		token for token in tokenize(text)
		if token.text not in ("[", "]", _SUSTAIN) and token.text not in _RESTS
	]


def _group (tokens: typing.List[Token]) -> TokenTree:

	"""
	Convert a flat token list into nested lists.
	"a [b c]" -> [a, [b, c]]
	"""

	stack: typing.List[list] = [[]]

	for token in tokens:

		if token.text == "[":
			new_group: typing.List[typing.Any] = []
			stack[-1].append(new_group)
			stack.append(new_group)

		elif token.text == "]":
			if len(stack) <= 1:
				raise MiniNotationError(f"Unexpected closing bracket at {token.start}")
			stack.pop()

		else:
			stack[-1].append(token)

	if len(stack) > 1:
		raise MiniNotationError("Missing closing bracket")

	return stack[0]


def _parse_recursive (tokens: TokenTree, start_time: float, duration: float) -> typing.List[ParsedEvent]:

	"""
	Recursively distribute tokens over the given duration.
	"""

	events: typing.List[ParsedEvent] = []
	step_duration = duration / len(tokens) if tokens else 0

	for i, token in enumerate(tokens):

		current_time = start_time + (i * step_duration)

		if isinstance(token, list):
			events.extend(_parse_recursive(token, current_time, step_duration))

		elif token.text not in _RESTS:
			events.append(ParsedEvent(current_time, step_duration, token.text, token.start, token.end))

	return events


def _post_process_sustains (events: typing.List[ParsedEvent]) -> typing.List[ParsedEvent]:

	"""
	Merge `_` events into the previous event's duration.
	"""

	processed: typing.List[ParsedEvent] = []
	last_event = None

	for event in events:

		if event.symbol == _SUSTAIN:
			if last_event:
				last_event.duration += event.duration

		else:
			processed.append(event)
			last_event = event

	return processed
