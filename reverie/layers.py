"""The five generative layers.

Each layer is an independent, self-rescheduling process: on every tick it
returns the requests it wants played (with offsets from the tick) and how
long to wait before ticking again.  Layers never sleep or touch timers
themselves - the :class:`~reverie.scheduler.Scheduler` owns time.

- :class:`MelodyLayer` drives the song form and plays one phrase per tick.
- :class:`HarmonyLayer` follows the melody's progression, one chord per degree.
- :class:`AmbienceLayer` lays overlapping soft tones, independent of the form.
- :class:`BassLayer` plays long filtered textures on the sounding chord root.
- :class:`WindLayer` plays occasional swept-noise textures.
"""

import logging
import random
import typing

import reverie.constants
import reverie.form_state
import reverie.phrase
import reverie.scales
import reverie.scheduler
import reverie.synthesis


logger = logging.getLogger(__name__)


def _uniform (rng: random.Random, low: float, high: float) -> float:

	"""Uniform value in the half-open interval ``[low, high)``."""

	return low + rng.random() * (high - low)


class MelodyLayer:

	"""
	Plays the song form, one phrase per tick.

	The tick advances the :class:`~reverie.form_state.SongForm` first, then
	emits one tone per note at its offset within the phrase and re-arms after
	the phrase's total duration, so consecutive phrases abut with no gaps.
	"""

	name = "melody"
	priority = 0

	def __init__ (self, scales: reverie.scales.ScaleGenerator, rng: typing.Optional[random.Random] = None) -> None:

		self.rng = rng or random.Random()
		self.form = reverie.form_state.SongForm(
			generator = reverie.phrase.PhraseGenerator(scales, self.rng),
			rng = self.rng
		)

	def tick (self, context: reverie.scheduler.LayerContext) -> reverie.scheduler.LayerResult:

		parameters = context.parameters
		section = self.form.advance(context.now, parameters.tempo, parameters.complexity)
		phrase = section.phrase

		requests = [
			(
				offset,
				reverie.synthesis.tone(
					pitch = event.frequency,
					duration = event.duration,
					volume = reverie.constants.MELODY_VOLUME * event.intensity,
					waveform = self.rng.choice(reverie.constants.MELODY_WAVEFORMS),
					layer = self.name
				)
			)
			for offset, event in zip(phrase.offsets(), phrase.events)
		]

		return reverie.scheduler.LayerResult(
			next_delay = phrase.total_duration,
			requests = requests,
			snapshot = section.snapshot
		)


class HarmonyLayer:

	"""
	Plays the melody's progression as chords, one per degree.

	Until the melody has published a progression the layer polls once a
	second.  It re-arms at the end of the melody's current phrase so both
	layers start each phrase on the same tick, and lays its chords on the
	snapshot's chord grid rather than the current tempo.
	"""

	name = "harmony"
	priority = 10

	def __init__ (self) -> None:

		self._last_version: typing.Optional[int] = None

	def tick (self, context: reverie.scheduler.LayerContext) -> reverie.scheduler.LayerResult:

		snapshot = context.song_form

		if snapshot is None:
			return reverie.scheduler.LayerResult(next_delay=reverie.constants.HARMONY_POLL_SECONDS)

		progression = snapshot.sounding_progression
		phrase_end = snapshot.started_at + snapshot.chord_duration * len(progression)
		remaining = phrase_end - context.now

		if snapshot.version == self._last_version:
			# Already played this phrase; wait for the melody's next one.
			return reverie.scheduler.LayerResult(
				next_delay = remaining if remaining > 0 else reverie.constants.HARMONY_POLL_SECONDS
			)

		self._last_version = snapshot.version

		parameters = context.parameters

		# Chords follow the phrase's own grid, which keeps the tempo it was written at.
		chord_duration = snapshot.chord_duration
		requests: typing.List[typing.Tuple[float, reverie.synthesis.SynthesisRequest]] = []

		for index, degree in enumerate(progression):

			start = snapshot.started_at + index * chord_duration
			end = start + chord_duration

			if round(end, reverie.scheduler.TIME_PRECISION) <= round(context.now, reverie.scheduler.TIME_PRECISION):
				continue

			pitches = context.scales.chord_tones(degree, reverie.constants.HARMONY_OCTAVES)

			if parameters.harmony >= reverie.constants.HARMONY_DOUBLING_LEVEL:
				pitches.append(context.scales.root_frequency(degree, reverie.constants.HARMONY_OCTAVES[1] + 1))

			# Joining mid-phrase plays only what is left of the current chord.
			begin = max(start, context.now)

			requests.append((
				begin - context.now,
				reverie.synthesis.chord(
					pitches,
					duration = end - begin,
					volume = reverie.constants.CHORD_VOLUME / len(pitches),
					layer = self.name
				)
			))

		return reverie.scheduler.LayerResult(
			next_delay = remaining if remaining > 0 else reverie.constants.HARMONY_POLL_SECONDS,
			requests = requests
		)


class AmbienceLayer:

	"""
	A soft sustained tone every cycle, re-armed at 70% of its length.

	Consecutive tones overlap, which reads as a continuous low drone.
	"""

	name = "ambience"
	priority = 10

	def __init__ (self, rng: typing.Optional[random.Random] = None) -> None:

		self.rng = rng or random.Random()

	def tick (self, context: reverie.scheduler.LayerContext) -> reverie.scheduler.LayerResult:

		duration = _uniform(self.rng, *reverie.constants.AMBIENCE_DURATION_RANGE)
		pitch = context.scales.random_frequency(reverie.constants.AMBIENCE_OCTAVES)

		request = reverie.synthesis.tone(
			pitch = pitch,
			duration = duration,
			volume = reverie.constants.AMBIENCE_VOLUME,
			waveform = "sine",
			layer = self.name
		)

		return reverie.scheduler.LayerResult(
			next_delay = duration * reverie.constants.AMBIENCE_OVERLAP,
			requests = [(0.0, request)]
		)


class BassLayer:

	"""
	Long filtered bass textures on the root of the sounding chord.

	Each cycle plays (85%) or rests for 4-8 beats (15%).  When it plays, the
	texture is either a swirling filtered tone or, 30% of the time, a deep
	sub-tone paired with a quieter swirl.  With no progression yet the cycle
	is treated as a rest.
	"""

	name = "bass"
	priority = 10

	def __init__ (self, rng: typing.Optional[random.Random] = None) -> None:

		self.rng = rng or random.Random()

	def _rest (self, context: reverie.scheduler.LayerContext) -> reverie.scheduler.LayerResult:

		beats = _uniform(self.rng, *reverie.constants.BASS_REST_BEATS)
		return reverie.scheduler.LayerResult(next_delay=context.parameters.beats(beats))

	def _swirl_params (self, root: float) -> typing.Dict[str, float]:

		return {
			"filter_start": root * 2,
			"filter_end": root * _uniform(self.rng, 4.0, 8.0),
			"lfo_rate": _uniform(self.rng, 0.05, 0.2),
			"q": _uniform(self.rng, 2.0, 6.0),
		}

	def tick (self, context: reverie.scheduler.LayerContext) -> reverie.scheduler.LayerResult:

		if self.rng.random() >= reverie.constants.BASS_PRESENCE_PROBABILITY:
			return self._rest(context)

		snapshot = context.song_form

		if snapshot is None:
			logger.debug("Bass: no progression yet - resting")
			return self._rest(context)

		degree = snapshot.active_degree(context.now)
		root = context.scales.root_frequency(degree, reverie.constants.BASS_OCTAVE)
		duration = context.parameters.beats(self.rng.choice(reverie.constants.BASS_DURATION_BEATS))

		if self.rng.random() < reverie.constants.SUB_BASS_PROBABILITY:
			requests = [
				(0.0, reverie.synthesis.texture("subBass", root / 2, duration, reverie.constants.SUB_BASS_VOLUME, {"cutoff": root * 2}, layer=self.name)),
				(0.0, reverie.synthesis.texture("swirlBass", root, duration, reverie.constants.SUB_SWIRL_VOLUME, self._swirl_params(root), layer=self.name)),
			]
		else:
			requests = [
				(0.0, reverie.synthesis.texture("swirlBass", root, duration, reverie.constants.SWIRL_BASS_VOLUME, self._swirl_params(root), layer=self.name)),
			]

		return reverie.scheduler.LayerResult(next_delay=duration, requests=requests)


class WindLayer:

	"""
	Occasional swept-noise textures, independent of harmony.

	35% of cycles play a 12- or 24-beat sweep and re-arm after it; the rest
	wait between 8 and 24 beats.
	"""

	name = "wind"
	priority = 10

	def __init__ (self, rng: typing.Optional[random.Random] = None) -> None:

		self.rng = rng or random.Random()

	def tick (self, context: reverie.scheduler.LayerContext) -> reverie.scheduler.LayerResult:

		parameters = context.parameters

		if self.rng.random() >= reverie.constants.WIND_PRESENCE_PROBABILITY:
			beats = _uniform(self.rng, *reverie.constants.WIND_REST_BEATS)
			return reverie.scheduler.LayerResult(next_delay=parameters.beats(beats))

		duration = parameters.beats(self.rng.choice(reverie.constants.WIND_DURATION_BEATS))
		sweep_start = _uniform(self.rng, 200.0, 800.0)

		params = {
			"sweep_start": sweep_start,
			"sweep_end": _uniform(self.rng, 1500.0, 4000.0),
			"q": _uniform(self.rng, 0.5, 2.0),
		}

		request = reverie.synthesis.texture("windSwirl", sweep_start, duration, reverie.constants.WIND_VOLUME, params, layer=self.name)

		return reverie.scheduler.LayerResult(next_delay=duration, requests=[(0.0, request)])


def default_layers (scales: reverie.scales.ScaleGenerator, rng: typing.Optional[random.Random] = None) -> typing.List[reverie.scheduler.LayerLike]:

	"""
	Create the five layers in arm order, melody first.

	Each layer gets its own random stream derived from ``rng`` so a seeded
	engine is repeatable layer by layer.
	"""

	master = rng or random.Random()

	def _child () -> random.Random:
		return random.Random(master.randint(0, 2 ** 63))

	return [
		MelodyLayer(scales, _child()),
		HarmonyLayer(),
		AmbienceLayer(_child()),
		BassLayer(_child()),
		WindLayer(_child()),
	]
