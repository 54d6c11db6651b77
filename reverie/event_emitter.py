import asyncio
import inspect
import logging
import typing


logger = logging.getLogger(__name__)


CallbackType = typing.Callable[..., typing.Any]


class EventEmitter:

	"""
	Named events with sync and async listeners.

	A listener that raises is logged and skipped; the remaining listeners
	still run and the caller never sees the exception.  Engine events:
	``"start"``, ``"stop"``, ``"song_form"``, ``"request"``, ``"parameter"``
	and ``"scale"``.
	"""

	def __init__ (self) -> None:

		self._listeners: typing.Dict[str, typing.List[CallbackType]] = {}
		self._pending: typing.Set[asyncio.Task] = set()


	def on (self, event_name: str, callback: CallbackType) -> None:

		"""
		Register a callback for an event name.
		"""

		self._listeners.setdefault(event_name, []).append(callback)

	def once (self, event_name: str, callback: CallbackType) -> None:

		"""
		Register a sync callback that is removed after it first fires.
		"""

		def _wrapper (*args: typing.Any, **kwargs: typing.Any) -> None:
			self.off(event_name, _wrapper)
			callback(*args, **kwargs)

		self.on(event_name, _wrapper)

	def off (self, event_name: str, callback: CallbackType) -> None:

		"""
		Unregister a previously registered callback.

		Raises ``ValueError`` if the callback is not registered for the event.
		"""

		if callback not in self._listeners.get(event_name, []):
			raise ValueError(f"Callback not registered for event {event_name!r}")

		self._listeners[event_name].remove(callback)

	def has_listeners (self, event_name: str) -> bool:

		return bool(self._listeners.get(event_name))


	def emit_sync (self, event_name: str, *args: typing.Any, **kwargs: typing.Any) -> None:

		"""
		Emit an event and call sync listeners immediately.

		Async listeners are scheduled as tasks when an event loop is running
		and skipped (with a warning) otherwise.
		"""

		for callback in list(self._listeners.get(event_name, [])):

			if inspect.iscoroutinefunction(callback):
				try:
					loop = asyncio.get_running_loop()
				except RuntimeError:
					logger.warning(f"No running event loop for async {event_name!r} listener {callback!r}")
					continue
				task = loop.create_task(self._run_async(event_name, callback, *args, **kwargs))
				self._pending.add(task)
				task.add_done_callback(self._pending.discard)
				continue

			try:
				callback(*args, **kwargs)
			except Exception:
				logger.exception(f"Listener for {event_name!r} failed")


	async def emit_async (self, event_name: str, *args: typing.Any, **kwargs: typing.Any) -> None:

		"""
		Emit an event and await async listeners.
		"""

		tasks: typing.List[typing.Awaitable[typing.Any]] = []

		for callback in list(self._listeners.get(event_name, [])):

			if inspect.iscoroutinefunction(callback):
				tasks.append(self._run_async(event_name, callback, *args, **kwargs))
				continue

			try:
				callback(*args, **kwargs)
			except Exception:
				logger.exception(f"Listener for {event_name!r} failed")

		if tasks:
			await asyncio.gather(*tasks)

	async def _run_async (self, event_name: str, callback: CallbackType, *args: typing.Any, **kwargs: typing.Any) -> None:

		try:
			await callback(*args, **kwargs)
		except Exception:
			logger.exception(f"Async listener for {event_name!r} failed")
