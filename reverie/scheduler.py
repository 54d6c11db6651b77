import asyncio
import dataclasses
import heapq
import itertools
import logging
import math
import time
import typing

import reverie.constants
import reverie.event_emitter
import reverie.form_state
import reverie.parameters
import reverie.scales
import reverie.synthesis


logger = logging.getLogger(__name__)


# Fire times are compared at this many decimal places so that a phrase whose
# durations sum to 7.999999999 s and a chord span of 8.0 s land on the same tick.
TIME_PRECISION = 6


@dataclasses.dataclass
class LayerContext:

	"""
	Everything a layer may read during one tick.

	Attributes:
		now: Scheduler time (seconds since start) of this tick.
		parameters: Live engine parameters (read only).
		scales: The shared scale generator (read only).
		song_form: The latest published song-form snapshot, or ``None`` before
			the melody has ticked.
	"""

	now: float
	parameters: reverie.parameters.EngineParameters
	scales: reverie.scales.ScaleGenerator
	song_form: typing.Optional[reverie.form_state.SongFormSnapshot] = None


@dataclasses.dataclass
class LayerResult:

	"""
	What a layer decided on one tick.

	Attributes:
		next_delay: Seconds until the layer should tick again.
		requests: ``(offset, request)`` pairs, offsets relative to the tick.
		snapshot: A new song-form snapshot to publish (melody only).
	"""

	next_delay: float
	requests: typing.List[typing.Tuple[float, reverie.synthesis.SynthesisRequest]] = dataclasses.field(default_factory=list)
	snapshot: typing.Optional[reverie.form_state.SongFormSnapshot] = None


@typing.runtime_checkable
class LayerLike (typing.Protocol):

	"""
	Protocol for layer objects that can be scheduled.
	"""

	name: str
	priority: int

	def tick (self, context: LayerContext) -> LayerResult:

		"""
		Compute the next batch of requests and the delay before the next tick.
		"""

		...


class CancellationToken:

	"""A single stop flag, checked before every emission and every re-arm."""

	def __init__ (self) -> None:

		self._cancelled = False

	def cancel (self) -> None:

		self._cancelled = True

	@property
	def cancelled (self) -> bool:

		return self._cancelled


@dataclasses.dataclass(order=True)
class PendingRequest:

	"""
	A synthesis request waiting for its start time.
	"""

	time: float
	counter: int
	request: reverie.synthesis.SynthesisRequest = dataclasses.field(compare=False)


@dataclasses.dataclass
class ScheduledLayer:

	"""
	Tracks a layer and its scheduling metadata.
	"""

	layer: LayerLike
	next_fire: float
	cycles: int = 0
	failures: int = 0


class Scheduler:

	"""
	A discrete-event scheduler for self-rescheduling layers.

	Time is virtual: ``advance()`` and ``advance_to()`` process everything due
	up to a target time without waiting, which makes the whole cascade
	deterministic under test.  ``run()`` drives the same machinery from the
	wall clock for live playback.

	Two heap queues are kept: layer fires ``(time, priority, counter, layer)``
	and pending requests ``(time, counter, request)``.  At any instant, due
	layers tick first (the melody has the lowest priority value, so it
	publishes its song-form snapshot before harmony or bass read it) and then
	due requests are dispatched to the sink.
	"""

	def __init__ (
		self,
		sink: reverie.synthesis.SynthesisSink,
		parameters: reverie.parameters.EngineParameters,
		scales: reverie.scales.ScaleGenerator,
		token: typing.Optional[CancellationToken] = None,
		events: typing.Optional[reverie.event_emitter.EventEmitter] = None
	) -> None:

		self.sink = sink
		self.parameters = parameters
		self.scales = scales
		self.token = token or CancellationToken()
		self.events = events or reverie.event_emitter.EventEmitter()

		self.now: float = 0.0
		self.song_form: typing.Optional[reverie.form_state.SongFormSnapshot] = None
		self.taps: typing.List[reverie.synthesis.AudioSink] = []
		self.dispatched: int = 0

		self.layer_queue: typing.List[typing.Tuple[float, int, int, ScheduledLayer]] = []
		self._layer_counter = itertools.count()
		self.request_queue: typing.List[PendingRequest] = []
		self._request_counter = itertools.count()


	def arm (self, layer: LayerLike, delay: float = 0.0) -> ScheduledLayer:

		"""
		Schedule a layer's first tick ``delay`` seconds from now.
		"""

		if delay < 0:
			raise ValueError("Arm delay cannot be negative")

		scheduled = ScheduledLayer(layer=layer, next_fire=self.now + delay)
		self._push_layer(scheduled)

		logger.debug(f"Armed layer '{layer.name}' at {scheduled.next_fire:.3f}s")

		return scheduled

	def _push_layer (self, scheduled: ScheduledLayer) -> None:

		key = round(scheduled.next_fire, TIME_PRECISION)
		priority = getattr(scheduled.layer, "priority", 10)
		heapq.heappush(self.layer_queue, (key, priority, next(self._layer_counter), scheduled))

	def _push_request (self, at: float, request: reverie.synthesis.SynthesisRequest) -> None:

		heapq.heappush(self.request_queue, PendingRequest(time=round(at, TIME_PRECISION), counter=next(self._request_counter), request=request))

	def cancel (self) -> None:

		"""
		Stop the cascade: nothing further is emitted or re-armed.
		"""

		self.token.cancel()
		self.layer_queue = []
		self.request_queue = []

	@property
	def pending_layers (self) -> typing.List[str]:

		"""Names of the layers currently waiting to tick."""

		return [entry[3].layer.name for entry in sorted(self.layer_queue)]

	def next_due (self) -> typing.Optional[float]:

		"""Return the time of the next layer tick or request, or None when idle."""

		candidates: typing.List[float] = []

		if self.layer_queue:
			candidates.append(self.layer_queue[0][3].next_fire)

		if self.request_queue:
			candidates.append(self.request_queue[0].time)

		return min(candidates) if candidates else None


	def advance (self, seconds: float) -> None:

		"""
		Advance virtual time by ``seconds``, processing everything that falls due.
		"""

		self.advance_to(self.now + seconds)

	def advance_to (self, target: float) -> None:

		"""
		Advance virtual time to ``target``, processing everything that falls due.
		"""

		while not self.token.cancelled:

			due = self.next_due()

			if due is None or round(due, TIME_PRECISION) > round(target, TIME_PRECISION):
				break

			self.now = max(self.now, due)
			self._fire_due_layers()
			self._dispatch_due_requests()

		if not self.token.cancelled:
			self.now = max(self.now, target)


	def _fire_due_layers (self) -> None:

		"""Tick every layer due at the current time, in priority order."""

		now_key = round(self.now, TIME_PRECISION)

		while self.layer_queue and self.layer_queue[0][0] <= now_key:

			if self.token.cancelled:
				return

			_, _, _, scheduled = heapq.heappop(self.layer_queue)
			self._fire(scheduled)

	def _fire (self, scheduled: ScheduledLayer) -> None:

		"""Run one layer tick, queue its requests, and re-arm it."""

		layer = scheduled.layer

		context = LayerContext(
			now = self.now,
			parameters = self.parameters,
			scales = self.scales,
			song_form = self.song_form
		)

		try:
			result = layer.tick(context)

		except Exception:
			scheduled.failures += 1
			logger.exception(f"Error in layer '{layer.name}' (cycle {scheduled.cycles}) - layer will be silent this cycle")
			self._rearm(scheduled, reverie.constants.LAYER_FAILURE_RETRY_SECONDS)
			return

		scheduled.cycles += 1

		if result.snapshot is not None:
			self.song_form = result.snapshot
			self.events.emit_sync("song_form", result.snapshot)

		for offset, request in result.requests:
			self._push_request(self.now + max(0.0, offset), request)

		self._rearm(scheduled, result.next_delay)

	def _rearm (self, scheduled: ScheduledLayer, delay: float) -> None:

		if self.token.cancelled:
			return

		if not isinstance(delay, (int, float)) or not math.isfinite(delay) or delay <= 0:
			logger.warning(
				f"Layer '{scheduled.layer.name}' asked for a re-arm delay of {delay!r} - "
				f"retrying in {reverie.constants.LAYER_FAILURE_RETRY_SECONDS}s"
			)
			delay = reverie.constants.LAYER_FAILURE_RETRY_SECONDS

		elif delay < reverie.constants.MIN_REARM_SECONDS:
			# Extreme tempos shrink beat-based delays below the time resolution.
			logger.debug(f"Layer '{scheduled.layer.name}' re-arm delay {delay!r} raised to {reverie.constants.MIN_REARM_SECONDS}s")
			delay = reverie.constants.MIN_REARM_SECONDS

		scheduled.next_fire = self.now + delay
		self._push_layer(scheduled)

	def _dispatch_due_requests (self) -> None:

		"""Send every request whose start time has arrived to the sink."""

		now_key = round(self.now, TIME_PRECISION)

		while self.request_queue and self.request_queue[0].time <= now_key:

			if self.token.cancelled:
				return

			pending = heapq.heappop(self.request_queue)
			request = pending.request

			try:
				reverie.synthesis.dispatch(self.sink, request)

			except Exception:
				logger.exception(f"Synthesis request from '{request.layer}' failed - skipped")
				continue

			self.dispatched += 1

			for tap in self.taps:
				try:
					tap.accept_input((self.now, request))
				except Exception:
					logger.exception(f"Telemetry tap {type(tap).__name__} rejected a request from '{request.layer}'")

			if self.events.has_listeners("request"):
				self.events.emit_sync("request", self.now, request)


	async def run (self) -> None:

		"""
		Drive the scheduler from the wall clock until cancelled.
		"""

		origin = time.perf_counter() - self.now

		while not self.token.cancelled:

			self.advance_to(time.perf_counter() - origin)

			if self.token.cancelled:
				break

			due = self.next_due()
			wait = reverie.constants.IDLE_POLL_SECONDS

			if due is not None:
				wait = min(wait, max(0.0, due - (time.perf_counter() - origin)))

			await asyncio.sleep(wait)

		logger.debug("Scheduler loop finished")
