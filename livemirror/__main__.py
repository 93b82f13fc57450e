import argparse
import asyncio
import logging
import os
import signal
import typing

import yaml

import livemirror.display
import livemirror.midi_output
import livemirror.session
import livemirror.settings


logger = logging.getLogger(__name__)


DEFAULT_POLL_INTERVAL = 0.25


def load_config (config_path: str = 'config.yaml') -> dict:

	"""
	Load configuration from a YAML file.
	"""

	if not os.path.exists(config_path):
		logger.warning(f"Config file {config_path} not found. Using defaults.")
		return {}

	with open(config_path, 'r') as f:
		return yaml.safe_load(f) or {}


def read_code (path: str) -> str:

	with open(path, 'r', encoding='utf-8') as f:
		return f.read()


def build_session (
	code_path: str,
	config: typing.Dict[str, typing.Any],
	settings_path: typing.Optional[str] = None
) -> typing.Tuple[livemirror.session.Session, typing.Optional[livemirror.display.Display], typing.Optional[livemirror.midi_output.MidiTrigger]]:

	"""
	Build a session for ``code_path`` from the configuration sections.

	Returns the session plus the terminal display and MIDI sink, each None
	when not configured.
	"""

	session_config = config.get('session', {}) or {}
	display_config = config.get('display', {}) or {}
	midi_config = config.get('midi')

	settings_path = settings_path or (config.get('settings', {}) or {}).get('path')
	store = livemirror.settings.SettingsStore(livemirror.settings.FileStorage(settings_path)) if settings_path else None

	trigger = None

	if midi_config is not None:
		trigger = livemirror.midi_output.MidiTrigger(
			device_name = midi_config.get('device_name'),
			channel = midi_config.get('channel', 0)
		)

	holder: typing.Dict[str, livemirror.session.Session] = {}
	display = None

	if display_config.get('enabled', False):
		display = livemirror.display.Display(
			code_source = lambda: holder['session'].code,
			show_code = display_config.get('show_code', False)
		)

	session = livemirror.session.Session(
		initial_code = read_code(code_path),
		on_draw = display.update if display is not None else None,
		draw_time = session_config.get('draw_time', (0, 0)),
		autodraw = session_config.get('autodraw', False),
		settings_store = store,
		on_trigger = trigger,
		cps = session_config.get('cps', 0.5),
		interval = session_config.get('interval', 0.05)
	)

	holder['session'] = session

	return session, display, trigger


async def watch_file (session: livemirror.session.Session, path: str, poll_interval: float = DEFAULT_POLL_INTERVAL) -> None:

	"""
	Re-evaluate the session whenever the file's modification time changes.
	"""

	last_mtime = os.stat(path).st_mtime

	while True:

		await asyncio.sleep(poll_interval)

		try:
			mtime = os.stat(path).st_mtime
		except OSError as e:
			logger.warning(f"Cannot read {path}: {e}")
			continue

		if mtime == last_mtime:
			continue

		last_mtime = mtime
		logger.info(f"{path} changed, re-evaluating")

		session.set_code(read_code(path))
		await session.evaluate()


async def run_until_stopped (session: livemirror.session.Session, code_path: str, poll_interval: float = DEFAULT_POLL_INTERVAL) -> None:

	"""
	Evaluate the session, then follow the file until a stop signal is received.
	"""

	logger.info(f"Watching {code_path}. Press Ctrl+C to stop.")

	if session.autodraw:
		await session.draw_first_frame()

	await session.evaluate()

	stop_event = asyncio.Event()
	loop = asyncio.get_running_loop()

	def _request_stop () -> None:

		"""
		Signal handler to request a clean shutdown.
		"""

		stop_event.set()

	for sig in (signal.SIGINT, signal.SIGTERM):
		loop.add_signal_handler(sig, _request_stop)

	watcher = asyncio.create_task(watch_file(session, code_path, poll_interval))

	await asyncio.wait(
		[asyncio.create_task(stop_event.wait()), watcher],
		return_when = asyncio.FIRST_COMPLETED
	)

	watcher.cancel()
	await session.stop()
	session.clear()


def parse_args (argv: typing.Optional[typing.List[str]] = None) -> argparse.Namespace:

	parser = argparse.ArgumentParser(prog='livemirror', description='Play a pattern file and re-evaluate it on every save.')
	parser.add_argument('code_file', help='Python pattern code to play')
	parser.add_argument('--config', default='config.yaml', help='YAML configuration file (default: config.yaml)')
	parser.add_argument('--settings', default=None, help='JSON file holding editor settings')

	return parser.parse_args(argv)


def main (argv: typing.Optional[typing.List[str]] = None) -> None:

	"""
	Main entry point for the livemirror command.
	"""

	logging.basicConfig(level=logging.INFO)

	args = parse_args(argv)
	config = load_config(args.config)

	session, display, trigger = build_session(args.code_file, config, args.settings)
	poll_interval = (config.get('session', {}) or {}).get('poll_interval', DEFAULT_POLL_INTERVAL)

	if display is not None:
		display.start()

	try:
		asyncio.run(run_until_stopped(session, args.code_file, poll_interval))
	finally:
		if display is not None:
			display.stop()
		if trigger is not None:
			trigger.close()


if __name__ == "__main__":
	main()
