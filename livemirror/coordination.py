import dataclasses
import logging
import typing


logger = logging.getLogger(__name__)


CallbackType = typing.Callable[[typing.Any], typing.Any]

START_EVENT = "start-repl"


@dataclasses.dataclass (frozen=True)
class StartNotification:

	"""Published when a session starts playback."""

	session_id: str


class NotificationChannel:

	"""
	A synchronous publish/subscribe channel keyed by event name.

	Subscribers are called in registration order.  A subscriber that raises is
	logged and does not prevent delivery to the others.
	"""

	def __init__ (self) -> None:

		self._listeners: typing.Dict[str, typing.List[CallbackType]] = {}

	def subscribe (self, event_name: str, callback: CallbackType) -> None:

		"""
		Register a callback for an event name.
		"""

		if event_name not in self._listeners:
			self._listeners[event_name] = []

		self._listeners[event_name].append(callback)

	def unsubscribe (self, event_name: str, callback: CallbackType) -> None:

		"""
		Unregister a previously registered callback.

		Raises ``ValueError`` if the callback is not registered for the event.
		"""

		if event_name not in self._listeners or callback not in self._listeners[event_name]:
			raise ValueError(f"Callback not registered for event {event_name!r}")

		self._listeners[event_name].remove(callback)

	def publish (self, event_name: str, payload: typing.Any) -> None:

		"""
		Deliver ``payload`` to every subscriber of ``event_name``.
		"""

		# Copy so subscribers may unsubscribe while being notified.
		for callback in list(self._listeners.get(event_name, ())):

			try:
				callback(payload)
			except Exception:
				logger.exception(f"Subscriber failed for event {event_name!r}")

	def subscriber_count (self, event_name: str) -> int:
		return len(self._listeners.get(event_name, ()))


DEFAULT_CHANNEL = NotificationChannel()


class SessionCoordinator:

	"""
	Keeps at most one session per channel playing.

	When a session starts it announces itself; every other attached session on
	the same channel receives the notification and stops.
	"""

	def __init__ (
		self,
		session_id: str,
		stop: typing.Callable[[], typing.Any],
		channel: typing.Optional[NotificationChannel] = None
	) -> None:

		self.session_id = session_id
		self.stop = stop
		self.channel = channel if channel is not None else DEFAULT_CHANNEL
		self.attached: bool = False

	def attach (self) -> None:

		"""Start listening for other sessions.  Attaching twice has no effect."""

		if self.attached:
			return

		self.channel.subscribe(START_EVENT, self._on_start)
		self.attached = True

	def detach (self) -> None:

		"""Stop listening.  Safe to call more than once."""

		if not self.attached:
			return

		self.channel.unsubscribe(START_EVENT, self._on_start)
		self.attached = False

	def announce (self) -> None:

		"""Tell every other session on the channel that this one started."""

		self.channel.publish(START_EVENT, StartNotification(self.session_id))

	def _on_start (self, notification: StartNotification) -> None:

		if notification.session_id == self.session_id:
			return

		logger.info(f"Session {self.session_id} stopping: {notification.session_id} started")
		self.stop()
