import asyncio
import random
import typing

import pytest

import reverie.constants
import reverie.layers
import reverie.parameters
import reverie.scales
import reverie.scheduler
import reverie.synthesis

import conftest


class StubLayer:

	"""A layer that plays one tone per tick and re-arms after a fixed delay."""

	def __init__ (self, name: str, delay: float, priority: int = 10, offset: float = 0.0) -> None:

		self.name = name
		self.priority = priority
		self.delay = delay
		self.offset = offset
		self.ticks: typing.List[float] = []
		self.seen_versions: typing.List[typing.Optional[int]] = []

	def tick (self, context: reverie.scheduler.LayerContext) -> reverie.scheduler.LayerResult:

		self.ticks.append(context.now)
		self.seen_versions.append(context.song_form.version if context.song_form else None)

		return reverie.scheduler.LayerResult(
			next_delay = self.delay,
			requests = [(self.offset, reverie.synthesis.tone(440.0, 0.1, 0.1, layer=self.name))]
		)


class SnapshotLayer (StubLayer):

	"""Publishes a new song-form snapshot on every tick."""

	def __init__ (self, delay: float) -> None:

		super().__init__("melody", delay, priority=0)
		self.version = 0

	def tick (self, context: reverie.scheduler.LayerContext) -> reverie.scheduler.LayerResult:

		result = super().tick(context)
		self.version += 1
		result.snapshot = conftest.make_snapshot(version=self.version, started_at=context.now)
		return result


class BrokenLayer (StubLayer):

	def tick (self, context: reverie.scheduler.LayerContext) -> reverie.scheduler.LayerResult:

		self.ticks.append(context.now)
		raise RuntimeError("layer failure")


class BrokenSink (reverie.synthesis.RecordingSink):

	def play_tone (self, *args: typing.Any, **kwargs: typing.Any) -> None:

		raise RuntimeError("sink failure")


def _scheduler (sink: typing.Optional[reverie.synthesis.SynthesisSink] = None) -> reverie.scheduler.Scheduler:

	return reverie.scheduler.Scheduler(
		sink = sink if sink is not None else reverie.synthesis.RecordingSink(),
		parameters = reverie.parameters.EngineParameters(),
		scales = reverie.scales.ScaleGenerator()
	)


def test_layer_rearms_itself () -> None:

	scheduler = _scheduler()
	layer = StubLayer("ambience", delay=1.0)

	scheduler.arm(layer)
	scheduler.advance(3.0)

	assert layer.ticks == [0.0, 1.0, 2.0, 3.0]
	assert scheduler.now == 3.0
	assert scheduler.dispatched == 4


def test_arm_with_delay () -> None:

	scheduler = _scheduler()
	layer = StubLayer("wind", delay=2.0)

	scheduler.arm(layer, delay=1.5)
	scheduler.advance(1.0)

	assert layer.ticks == []

	scheduler.advance(1.0)

	assert layer.ticks == [1.5]


def test_arm_rejects_negative_delay () -> None:

	with pytest.raises(ValueError):
		_scheduler().arm(StubLayer("bass", delay=1.0), delay=-1)


def test_requests_wait_for_their_offset () -> None:

	sink = reverie.synthesis.RecordingSink()
	scheduler = _scheduler(sink)

	scheduler.arm(StubLayer("melody", delay=10.0, offset=0.75))
	scheduler.advance(0.5)

	assert list(sink.calls) == []

	scheduler.advance(0.25)

	assert sink.names() == ["tone"]


def test_priority_orders_simultaneous_ticks () -> None:

	"""A priority-0 layer armed last still ticks first, so others see its snapshot."""

	scheduler = _scheduler()
	follower = StubLayer("harmony", delay=2.0)
	leader = SnapshotLayer(delay=2.0)

	scheduler.arm(follower)
	scheduler.arm(leader)
	scheduler.advance(4.0)

	assert follower.seen_versions == [1, 2, 3]
	assert scheduler.song_form is not None
	assert scheduler.song_form.version == 3


def test_float_drift_does_not_split_ticks () -> None:

	"""Fire times that differ only by float error are treated as simultaneous."""

	scheduler = _scheduler()
	follower = StubLayer("harmony", delay=0.3)
	leader = SnapshotLayer(delay=0.1 + 0.2)

	scheduler.arm(follower)
	scheduler.arm(leader)
	scheduler.advance(3.0)

	assert follower.seen_versions == [leader_version for leader_version in range(1, len(follower.ticks) + 1)]


def test_song_form_event () -> None:

	scheduler = _scheduler()
	received: list = []

	scheduler.events.on("song_form", received.append)
	scheduler.arm(SnapshotLayer(delay=1.0))
	scheduler.advance(1.0)

	assert [s.version for s in received] == [1, 2]


def test_failing_layer_does_not_stop_others (caplog: pytest.LogCaptureFixture) -> None:

	scheduler = _scheduler()
	broken = BrokenLayer("bass", delay=1.0)
	healthy = StubLayer("ambience", delay=1.0)

	broken_entry = scheduler.arm(broken)
	scheduler.arm(healthy)
	scheduler.advance(3.0)

	assert healthy.ticks == [0.0, 1.0, 2.0, 3.0]
	retry = reverie.constants.LAYER_FAILURE_RETRY_SECONDS
	assert broken.ticks == [pytest.approx(i * retry) for i in range(len(broken.ticks))]
	assert broken_entry.failures == len(broken.ticks)
	assert "layer failure" in caplog.text


@pytest.mark.parametrize("delay", [0, -2.0, float("nan"), float("inf")])
def test_invalid_delay_is_replaced (delay: float) -> None:

	scheduler = _scheduler()
	layer = StubLayer("wind", delay=delay)

	scheduler.arm(layer)
	scheduler.advance(reverie.constants.LAYER_FAILURE_RETRY_SECONDS * 2)

	assert len(layer.ticks) == 3


def test_sink_errors_are_absorbed (caplog: pytest.LogCaptureFixture) -> None:

	scheduler = _scheduler(BrokenSink())
	layer = StubLayer("melody", delay=1.0)

	scheduler.arm(layer)
	scheduler.advance(2.0)

	assert layer.ticks == [0.0, 1.0, 2.0]
	assert scheduler.dispatched == 0
	assert "sink failure" in caplog.text


def test_cancel_stops_all_emission () -> None:

	"""After cancel, advancing past many would-be re-arms emits nothing."""

	sink = reverie.synthesis.RecordingSink()
	scheduler = _scheduler(sink)
	layers = [StubLayer("a", delay=0.5, offset=0.25), StubLayer("b", delay=0.7)]

	for layer in layers:
		scheduler.arm(layer)

	scheduler.advance(2.0)
	emitted = len(sink.calls)

	scheduler.cancel()
	scheduler.advance(60.0)

	assert len(sink.calls) == emitted
	assert scheduler.pending_layers == []
	assert scheduler.next_due() is None
	assert scheduler.token.cancelled is True


def test_taps_and_request_events_see_dispatches () -> None:

	scheduler = _scheduler()
	tapped: list = []
	events: list = []

	class Tap:

		def accept_input (self, source: typing.Any) -> None:
			tapped.append(source)

		def route_to (self, destination: typing.Any) -> None:
			pass

	scheduler.taps.append(Tap())
	scheduler.events.on("request", lambda now, request: events.append((now, request.layer)))
	scheduler.arm(StubLayer("ambience", delay=1.0))
	scheduler.advance(1.0)

	assert [now for now, _ in tapped] == [0.0, 1.0]
	assert events == [(0.0, "ambience"), (1.0, "ambience")]


def test_next_due () -> None:

	scheduler = _scheduler()

	assert scheduler.next_due() is None

	scheduler.arm(StubLayer("wind", delay=5.0), delay=2.0)

	assert scheduler.next_due() == 2.0
	assert scheduler.pending_layers == ["wind"]


def test_tiny_delay_is_raised_to_minimum () -> None:

	"""A delay below the time resolution must not re-fire the layer at the same instant forever."""

	scheduler = _scheduler()
	layer = StubLayer("wind", delay=1e-9)

	scheduler.arm(layer)
	scheduler.advance(1.0)

	assert 100 <= len(layer.ticks) <= 101
	assert layer.ticks[1] == pytest.approx(reverie.constants.MIN_REARM_SECONDS)


def test_extreme_tempo_keeps_running () -> None:

	scheduler = _scheduler()
	scheduler.parameters.set("tempo", 1e10)
	scheduler.arm(reverie.layers.WindLayer(random.Random(3)))
	scheduler.arm(reverie.layers.BassLayer(random.Random(4)))

	scheduler.advance(1.0)

	assert scheduler.now == pytest.approx(1.0)
	assert len(scheduler.pending_layers) == 2


def test_failing_tap_does_not_stop_dispatch (caplog: pytest.LogCaptureFixture) -> None:

	sink = reverie.synthesis.RecordingSink()
	scheduler = _scheduler(sink)

	class BrokenTap:

		def accept_input (self, source: typing.Any) -> None:
			raise RuntimeError("tap failure")

		def route_to (self, destination: typing.Any) -> None:
			pass

	scheduler.taps.append(BrokenTap())
	layer = StubLayer("ambience", delay=1.0)
	scheduler.arm(layer)
	scheduler.advance(3.0)

	assert layer.ticks == [0.0, 1.0, 2.0, 3.0]
	assert scheduler.dispatched == 4
	assert sink.names() == ["tone"] * 4
	assert "tap failure" in caplog.text


@pytest.mark.asyncio
async def test_run_drives_from_wall_clock () -> None:

	sink = reverie.synthesis.RecordingSink()
	scheduler = _scheduler(sink)
	scheduler.arm(StubLayer("ambience", delay=0.01))

	task = asyncio.create_task(scheduler.run())
	await asyncio.sleep(0.1)

	scheduler.cancel()
	await asyncio.wait_for(task, timeout=1.0)

	assert len(sink.calls) >= 2
