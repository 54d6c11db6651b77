"""The engine: lifecycle, live controls and wiring.

Typical use::

	engine = reverie.Engine(sink=reverie.midi_sink.MidiSink())
	engine.set_parameter("tempo", 90)
	engine.play()                    # blocks until Ctrl+C

Or from async code::

	await engine.initialize()
	await engine.start()
	...
	await engine.stop()

With ``realtime=False`` no wall-clock loop is started and time moves only
through :meth:`Engine.advance`, which is how tests and offline runs drive it.
"""

import asyncio
import logging
import random
import signal
import typing

import reverie.constants
import reverie.display
import reverie.event_emitter
import reverie.form_state
import reverie.layers
import reverie.osc_sink
import reverie.parameters
import reverie.scales
import reverie.scheduler
import reverie.synthesis
import reverie.telemetry


logger = logging.getLogger(__name__)


# Parameters that also change something inside the sink.
SINK_PARAMETERS: typing.Tuple[str, ...] = ("volume", "reverb")


async def run_until_stopped (engine: "Engine") -> None:

	"""
	Play until SIGINT or SIGTERM arrives, then stop the engine.
	"""

	logger.info("Playing. Press Ctrl+C to stop.")

	await engine.start()

	stop_event = asyncio.Event()
	loop = asyncio.get_running_loop()

	def _request_stop () -> None:

		"""
		Signal handler to request a clean shutdown.
		"""

		stop_event.set()

	for sig in (signal.SIGINT, signal.SIGTERM):
		loop.add_signal_handler(sig, _request_stop)

	waiters: typing.List[asyncio.Future] = [asyncio.ensure_future(stop_event.wait())]

	if engine.task is not None:
		waiters.append(engine.task)

	await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)

	await engine.stop()


class Engine:

	"""
	An infinite ambient composition: five layers over one synthesis sink.

	The engine owns the scheduler, the shared scale generator and the live
	parameters.  It is cheap to construct; nothing touches the sink until
	:meth:`initialize`.
	"""

	def __init__ (
		self,
		sink: typing.Optional[reverie.synthesis.SynthesisSink] = None,
		telemetry: typing.Optional[reverie.synthesis.TelemetrySink] = None,
		parameters: typing.Optional[reverie.parameters.EngineParameters] = None,
		scale: str = "pentatonic",
		seed: typing.Optional[int] = None,
		realtime: bool = True,
		base_frequency: float = reverie.constants.BASE_FREQUENCY
	) -> None:

		"""
		Configure the engine.

		Parameters:
			sink: Where sound requests go (default: an in-memory ``RecordingSink``).
			telemetry: Waveform source for visualisers (default: a
				``WaveformMonitor`` fed by the scheduler).
			parameters: Initial parameter values.
			scale: Starting scale name; unknown names fall back to pentatonic.
			seed: Master seed for repeatable output, or ``None``.
			realtime: Run the wall-clock loop on ``start()``.
			base_frequency: Tuning reference for scale degree 0.
		"""

		self.scheduler: typing.Optional[reverie.scheduler.Scheduler] = None
		self.sink: reverie.synthesis.SynthesisSink = sink if sink is not None else reverie.synthesis.RecordingSink(clock=lambda: self.now)
		self.parameters = parameters if parameters is not None else reverie.parameters.EngineParameters()
		self.realtime = realtime
		self.events = reverie.event_emitter.EventEmitter()

		if scale not in reverie.scales.SCALES:
			logger.warning(f"Unknown scale {scale!r} - using pentatonic")
			scale = "pentatonic"

		self.scales = reverie.scales.ScaleGenerator(base_frequency, scale=scale)

		self.telemetry: reverie.synthesis.TelemetrySink = telemetry if telemetry is not None else reverie.telemetry.WaveformMonitor(
			clock = lambda: self.now
		)

		self._seed: typing.Optional[int] = seed
		self.layers: typing.List[reverie.scheduler.LayerLike] = []
		self.task: typing.Optional[asyncio.Task] = None

		self.display_enabled = False
		self._display: typing.Optional[reverie.display.Display] = None
		self._osc_control: typing.Optional[reverie.osc_sink.OscControl] = None

		self._initialized = False
		self._playing = False

	@property
	def is_playing (self) -> bool:

		return self._playing

	@property
	def is_initialized (self) -> bool:

		return self._initialized

	@property
	def song_form (self) -> typing.Optional[reverie.form_state.SongFormSnapshot]:

		"""The latest song-form snapshot published by the melody, or None."""

		return self.scheduler.song_form if self.scheduler is not None else None

	@property
	def now (self) -> float:

		"""Seconds of composition time since the last start."""

		return self.scheduler.now if self.scheduler is not None else 0.0

	def seed (self, value: typing.Optional[int]) -> None:

		"""
		Set the master seed; takes effect on the next ``start()``.

		Every layer and the scale generator get their own stream derived from
		it, so the same seed and the same parameters give the same requests.
		"""

		self._seed = value

	def on_event (self, event_name: str, callback: typing.Callable[..., typing.Any]) -> None:

		"""
		Register a listener for an engine event.

		Events: ``"start"``, ``"stop"``, ``"song_form"`` (snapshot),
		``"request"`` (time, request), ``"parameter"`` (name, value) and
		``"scale"`` (name).
		"""

		self.events.on(event_name, callback)


	async def initialize (self) -> None:

		"""
		Open the sink once.

		Raises:
			SinkUnavailableError: The sink could not be opened; the engine
				stays uninitialized and ``start()`` will refuse to run.
		"""

		if self._initialized:
			return

		try:
			await self.sink.open()

		except reverie.synthesis.SinkUnavailableError:
			logger.error("Synthesis sink unavailable - composition cannot begin")
			raise

		except Exception as e:
			logger.error(f"Synthesis sink failed to open: {e}")
			raise reverie.synthesis.SinkUnavailableError(str(e)) from e

		self._initialized = True
		logger.info(f"Engine initialized with {type(self.sink).__name__}")

	async def start (self) -> None:

		"""
		Begin the composition: arm all five layers at time zero.

		Calling ``start()`` while playing does nothing.

		Raises:
			SinkUnavailableError: ``initialize()`` has not succeeded.
		"""

		if self._playing:
			return

		if not self._initialized:
			raise reverie.synthesis.SinkUnavailableError("Engine not initialized - call initialize() first")

		master = random.Random(self._seed)
		self.scales.rng = random.Random(master.randint(0, 2 ** 63))

		self.scheduler = reverie.scheduler.Scheduler(
			sink = self.sink,
			parameters = self.parameters,
			scales = self.scales,
			events = self.events
		)

		if isinstance(self.telemetry, reverie.synthesis.AudioSink):
			self.scheduler.taps.append(self.telemetry)

		for name in SINK_PARAMETERS:
			self._apply_to_sink(name, self.parameters.get(name))

		self.layers = reverie.layers.default_layers(self.scales, master)

		for layer in self.layers:
			self.scheduler.arm(layer)

		self._playing = True

		logger.info(
			f"Engine started: {self.parameters.tempo} BPM, scale {self.scales.current_scale}"
			+ (f", seed {self._seed}" if self._seed is not None else "")
		)

		self.events.emit_sync("start")

		if self.realtime:
			self.task = asyncio.create_task(self.scheduler.run())

	async def stop (self) -> None:

		"""
		Stop the composition and silence everything still sounding.

		After ``stop()`` returns no further requests reach the sink.  Calling
		it when not playing does nothing.
		"""

		if not self._playing:
			return

		self._playing = False

		if self.scheduler is not None:
			self.scheduler.cancel()

		if self.task is not None:

			self.task.cancel()

			try:
				await self.task
			except asyncio.CancelledError:
				pass

			self.task = None

		try:
			self.sink.release_all()
		except Exception as e:
			# Sounds that already ended or a sink that has gone away are fine here.
			logger.warning(f"Releasing sounding events failed: {e}")

		logger.info("Engine stopped")

		self.events.emit_sync("stop")

	def advance (self, seconds: float) -> None:

		"""
		Move composition time forward without waiting (``realtime=False``).
		"""

		if not self._playing or self.scheduler is None:
			return

		self.scheduler.advance(seconds)


	def _apply_to_sink (self, name: str, value: typing.Any) -> None:

		try:
			self.sink.apply_parameter(name, value)
		except Exception as e:
			logger.warning(f"Sink rejected parameter {name}={value!r}: {e}")

	def set_parameter (self, name: str, value: typing.Any) -> None:

		"""
		Change a parameter while playing.

		Layers see the new value from their next tick; ``volume`` and
		``reverb`` are also passed straight to the sink.  Unknown names are
		stored but have no effect.
		"""

		canonical = reverie.parameters.PARAMETER_ALIASES.get(name, name)

		if not self.parameters.set(canonical, value):
			logger.warning(f"Unknown parameter {name!r} stored with no effect on the music")
			return

		if canonical in SINK_PARAMETERS:
			self._apply_to_sink(canonical, value)

		self.events.emit_sync("parameter", canonical, value)

	def set_scale (self, name: str) -> None:

		"""
		Switch scale; unknown names are ignored and the current scale is kept.

		Pitches already queued keep their old scale; everything computed after
		the change uses the new one.
		"""

		if self.scales.set_scale(name):
			self.events.emit_sync("scale", name)

	def get_waveform_snapshot (self) -> typing.Optional[bytes]:

		"""
		A time-domain snapshot of the output (1024 unsigned bytes, 128 = silence).

		Returns None before ``initialize()``.
		"""

		if not self._initialized:
			return None

		return self.telemetry.waveform_snapshot()


	def display (self, enabled: bool = True) -> None:

		"""Show a live status line while ``play()`` runs."""

		self.display_enabled = enabled

	def osc_control (self, receive_port: int = 9000) -> None:

		"""Accept ``/param/<name>`` and ``/scale`` OSC messages while ``play()`` runs."""

		self._osc_control = reverie.osc_sink.OscControl(self, receive_port=receive_port)

	def play (self) -> None:

		"""
		Initialize, play until interrupted (Ctrl+C), then stop.

		This call blocks.
		"""

		try:
			asyncio.run(self._run())

		except KeyboardInterrupt:
			pass

	async def _run (self) -> None:

		await self.initialize()

		if self.display_enabled:
			self._display = reverie.display.Display(self)
			self._display.start()
			self.events.on("song_form", self._display.update)

		if self._osc_control is not None:
			await self._osc_control.start()

		try:
			await run_until_stopped(self)

		finally:

			if self._osc_control is not None:
				await self._osc_control.stop()

			if self._display is not None:
				self.events.off("song_form", self._display.update)
				self._display.stop()
				self._display = None

			self.sink.close()
			self._initialized = False
