"""OSC integration: a synthesis sink for external renderers, and remote control.

:class:`OscSink` forwards every request as an OSC message, for renderers such
as a SuperCollider patch listening on UDP (default 127.0.0.1:57120).

Sent Messages
─────────────
- ``/tone <pitch> <waveform> <duration> <volume>``
- ``/chord <duration> <pitch> <pitch> ...``
- ``/texture <kind> <duration> <volume> <key> <value> ...``
- ``/param <name> <value>``
- ``/release``

:class:`OscControl` listens for incoming control messages and applies them to
an engine while it plays.

Receive Handlers
────────────────
- ``/param/<name> <value>``: Set an engine parameter
- ``/scale <name>``: Switch scale
"""

import asyncio
import logging
import typing

import pythonosc.dispatcher
import pythonosc.osc_server
import pythonosc.udp_client

import reverie.synthesis

if typing.TYPE_CHECKING:
	from reverie.engine import Engine


logger = logging.getLogger(__name__)


class OscSink:

	"""Render synthesis requests by sending them to an OSC listener."""

	def __init__ (self, host: str = "127.0.0.1", port: int = 57120) -> None:

		self.host = host
		self.port = port
		self._client: typing.Optional[pythonosc.udp_client.SimpleUDPClient] = None

	async def open (self) -> None:

		try:
			self._client = pythonosc.udp_client.SimpleUDPClient(self.host, self.port)
		except Exception as e:
			raise reverie.synthesis.SinkUnavailableError(f"Cannot open OSC client for {self.host}:{self.port}: {e}") from e

		logger.info(f"OSC sink sending to {self.host}:{self.port}")

	def send (self, address: str, *args: typing.Any) -> None:

		"""Send an OSC message."""

		if self._client:
			try:
				self._client.send_message(address, list(args))
			except Exception as e:
				logger.warning(f"OSC send error: {e}")

	def play_tone (self, pitch: float, waveform: str, duration: float, volume: float, envelope: typing.Optional[typing.Dict[str, float]] = None) -> None:

		self.send("/tone", float(pitch), waveform, float(duration), float(volume))

	def play_chord (self, pitches: typing.Sequence[float], duration: float) -> None:

		self.send("/chord", float(duration), *[float(p) for p in pitches])

	def play_texture (self, kind: str, params: typing.Dict[str, typing.Any], duration: float, volume: float) -> None:

		flattened: typing.List[typing.Any] = []

		for key in sorted(params):
			flattened.extend([key, float(params[key])])

		self.send("/texture", kind, float(duration), float(volume), *flattened)

	def apply_parameter (self, name: str, value: typing.Any) -> None:

		self.send("/param", name, float(value))

	def release_all (self) -> None:

		self.send("/release")

	def close (self) -> None:

		self._client = None


class OscControl:

	"""Async OSC server that applies remote control messages to an engine."""

	def __init__ (self, engine: "Engine", receive_port: int = 9000) -> None:

		self._engine = engine
		self._receive_port = receive_port
		self._transport: typing.Optional[asyncio.BaseTransport] = None
		self._dispatcher = pythonosc.dispatcher.Dispatcher()

		self._dispatcher.map("/param/*", self._handle_param)
		self._dispatcher.map("/scale", self._handle_scale)

	async def start (self) -> None:

		"""Start listening."""

		server = pythonosc.osc_server.AsyncIOOSCUDPServer(
			("0.0.0.0", self._receive_port),
			self._dispatcher,
			asyncio.get_running_loop()  # type: ignore[arg-type]
		)

		transport, _ = await server.create_serve_endpoint()
		self._transport = transport

		logger.info(f"OSC control listening on :{self._receive_port}")

	async def stop (self) -> None:

		if self._transport:
			self._transport.close()
			self._transport = None
			logger.info("OSC control stopped")

	def _handle_param (self, address: str, *args: typing.Any) -> None:
		# address is like /param/tempo
		if not args:
			return
		parts = address.split("/")
		if len(parts) >= 3:
			self._engine.set_parameter(parts[2], args[0])

	def _handle_scale (self, address: str, *args: typing.Any) -> None:
		if not args:
			return
		self._engine.set_scale(str(args[0]))
