import dataclasses
import logging
import math
import typing

import livemirror.mini_notation


logger = logging.getLogger(__name__)


Painter = typing.Callable[..., typing.Any]


@dataclasses.dataclass (frozen=True)
class TimeSpan:

	"""
	A half-open interval of cycle time.
	"""

	begin: float
	end: float

	def scaled (self, factor: float) -> "TimeSpan":
		return TimeSpan(self.begin * factor, self.end * factor)


@dataclasses.dataclass (frozen=True)
class Location:

	"""
	A character range in evaluated code, and the token it covers.
	"""

	start: int
	end: int
	token: str = dataclasses.field(default="", compare=False)


@dataclasses.dataclass (frozen=True)
class Hap:

	"""
	An immutable timed event.

	``whole`` is the event's full validity window, ``part`` the fragment of it
	that falls inside the queried span.  ``clip`` shortens the audible end of
	the event relative to its whole.
	"""

	whole: typing.Optional[TimeSpan]
	part: TimeSpan
	value: typing.Any
	locations: typing.Tuple[Location, ...] = ()
	clip: float = 1.0

	@property
	def duration (self) -> float:
		span = self.whole if self.whole is not None else self.part
		return span.end - span.begin

	@property
	def end_clipped (self) -> float:

		"""The end of the event after applying ``clip``."""

		span = self.whole if self.whole is not None else self.part
		return span.begin + self.duration * self.clip

	def has_onset (self) -> bool:

		"""True when this fragment contains the start of the whole event."""

		return self.whole is not None and self.whole.begin == self.part.begin

	def is_active (self, time: float) -> bool:

		"""True when ``time`` falls between the event's start and clipped end."""

		return self.whole is not None and self.whole.begin <= time <= self.end_clipped


def _parse_value (symbol: str) -> typing.Any:

	"""Convert numeric symbols to numbers, leaving everything else as text."""

	for convert in (int, float):
		try:
			return convert(symbol)
		except ValueError:
			pass

	return symbol


def _cycles (span: TimeSpan) -> typing.Iterable[int]:

	first = math.floor(span.begin)

	if span.end <= span.begin:
		return range(first, first + 1)

	return range(first, math.ceil(span.end))


class Pattern:

	"""
	A cyclic sequence of events, queried by time span.

	Patterns built during one evaluation share that evaluation's painter table,
	so ``on_paint`` registrations stay with the session that evaluated them.
	"""

	def __init__ (self, query: typing.Callable[[TimeSpan], typing.List[Hap]], painters: typing.Optional[typing.List[Painter]] = None) -> None:

		self._query = query
		self.painters = painters

	def query_arc (self, begin: float, end: float) -> typing.List[Hap]:

		"""Return every event overlapping ``[begin, end)``."""

		return self._query(TimeSpan(begin, end))

	def fast (self, factor: float) -> "Pattern":

		"""Speed the pattern up so it repeats ``factor`` times per cycle."""

		if factor <= 0:
			raise ValueError("fast() factor must be positive")

		def query (span: TimeSpan) -> typing.List[Hap]:

			haps = self._query(span.scaled(factor))

			return [
				dataclasses.replace(
					hap,
					whole = hap.whole.scaled(1 / factor) if hap.whole is not None else None,
					part = hap.part.scaled(1 / factor)
				)
				for hap in haps
			]

		return Pattern(query, self.painters)

	def slow (self, factor: float) -> "Pattern":

		"""Slow the pattern down so one repetition spans ``factor`` cycles."""

		if factor <= 0:
			raise ValueError("slow() factor must be positive")

		return self.fast(1 / factor)

	def clip (self, amount: float) -> "Pattern":

		"""Shorten (or lengthen) each event's clipped end by ``amount``."""

		if amount < 0:
			raise ValueError("clip() amount cannot be negative")

		def query (span: TimeSpan) -> typing.List[Hap]:
			return [dataclasses.replace(hap, clip=amount) for hap in self._query(span)]

		return Pattern(query, self.painters)

	def on_paint (self, painter: Painter) -> "Pattern":

		"""Register a visual callback with the evaluation that built this pattern."""

		if self.painters is None:
			logger.warning("on_paint() ignored: pattern was not created during an evaluation")
			return self

		self.painters.append(painter)
		return self


def silence (painters: typing.Optional[typing.List[Painter]] = None) -> Pattern:

	"""A pattern with no events."""

	return Pattern(lambda span: [], painters)


def seq (notation: str, offset: typing.Optional[int] = None, painters: typing.Optional[typing.List[Painter]] = None) -> Pattern:

	"""
	Build a one-cycle pattern from mini-notation.

	When ``offset`` is given (the position of the notation's first character in
	the evaluated code), each event carries the code location of its token.
	"""

	events = livemirror.mini_notation.parse(notation)

	def query (span: TimeSpan) -> typing.List[Hap]:

		haps: typing.List[Hap] = []
		zero_width = span.end <= span.begin

		for cycle in _cycles(span):

			for event in events:

				whole = TimeSpan(cycle + event.time, cycle + event.time + event.duration)

				if zero_width:
					if not whole.begin <= span.begin < whole.end:
						continue
					part = TimeSpan(span.begin, span.begin)

				else:
					if whole.begin >= span.end or whole.end <= span.begin:
						continue
					part = TimeSpan(max(whole.begin, span.begin), min(whole.end, span.end))

				locations: typing.Tuple[Location, ...] = ()

				if offset is not None:
					locations = (Location(offset + event.start, offset + event.end, event.symbol),)

				haps.append(Hap(whole=whole, part=part, value=_parse_value(event.symbol), locations=locations))

		return haps

	return Pattern(query, painters)


def stack (*patterns: Pattern) -> Pattern:

	"""Play several patterns at the same time."""

	def query (span: TimeSpan) -> typing.List[Hap]:

		haps: typing.List[Hap] = []

		for pattern in patterns:
			haps.extend(pattern._query(span))

		return haps

	painters = next((p.painters for p in patterns if p.painters is not None), None)

	return Pattern(query, painters)
