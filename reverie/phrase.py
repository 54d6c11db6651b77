"""Melodic phrase generation and variation.

A phrase covers exactly one four-chord progression.  Its *shape* is fixed by
the form (beats per chord, strong and weak beats) while its *pitch content*
is stochastic:

- Strong beats (the first note of an even-indexed beat within a chord) land
  on chord tones and are accented.
- Weak beats may also use passing tones.
- Motion is mostly stepwise: 60% of the time the next note is restricted to
  candidates within about three semitones of the previous one.  The other
  40% of the time any candidate may be chosen, which keeps contours from
  becoming too smooth.

``vary_phrase()`` derives a new phrase from an existing one by nudging timing
and dynamics only, so repeated sections stay recognisable.
"""

import dataclasses
import math
import random
import typing

import reverie.constants
import reverie.progressions
import reverie.scales


@dataclasses.dataclass(frozen=True)
class NoteEvent:

	"""One melody note: pitch in Hz, duration in seconds, and an intensity multiplier."""

	frequency: float
	duration: float
	intensity: float


@dataclasses.dataclass(frozen=True)
class MelodicPhrase:

	"""An immutable, ordered sequence of note events."""

	events: typing.Tuple[NoteEvent, ...]

	def __len__ (self) -> int:

		return len(self.events)

	def __iter__ (self) -> typing.Iterator[NoteEvent]:

		return iter(self.events)

	@property
	def total_duration (self) -> float:

		"""Sum of all note durations in seconds."""

		return sum(event.duration for event in self.events)

	def offsets (self) -> typing.List[float]:

		"""Return each note's start time relative to the start of the phrase."""

		offsets: typing.List[float] = []
		position = 0.0

		for event in self.events:
			offsets.append(position)
			position += event.duration

		return offsets


def notes_per_beat_limit (complexity: float) -> int:

	"""Return the most notes a single beat may be divided into at a complexity level."""

	return max(1, math.ceil(complexity / 4))


class PhraseGenerator:

	"""Builds melodic phrases over chord progressions using the current scale."""

	def __init__ (
		self,
		scales: reverie.scales.ScaleGenerator,
		rng: typing.Optional[random.Random] = None,
		octave_range: reverie.scales.OctaveRange = reverie.constants.MELODY_OCTAVES
	) -> None:

		self.scales = scales
		self.rng = rng or random.Random()
		self.octave_range = octave_range

	def generate (
		self,
		progression: reverie.progressions.ChordProgression,
		tempo: float,
		complexity: float
	) -> MelodicPhrase:

		"""
		Generate a phrase covering every chord of a progression.

		Parameters:
			progression: The chords to write over.
			tempo: Beats per minute; each beat lasts ``60 / tempo`` seconds.
			complexity: Controls how finely beats may be subdivided.

		Returns:
			A phrase whose durations sum to
			``BEATS_PER_CHORD * len(progression) * 60 / tempo``.
		"""

		beat_duration = 60.0 / tempo
		limit = notes_per_beat_limit(complexity)
		events: typing.List[NoteEvent] = []
		previous: typing.Optional[float] = None

		for degree in progression:

			chord_pool = self.scales.chord_tone_pool(degree, self.octave_range)
			weak_pool = chord_pool + self.scales.passing_tones(degree, self.octave_range)

			for beat in range(reverie.constants.BEATS_PER_CHORD):

				notes_in_beat = self.rng.randint(1, limit)
				duration = beat_duration / notes_in_beat

				for sub_beat in range(notes_in_beat):

					strong = beat % 2 == 0 and sub_beat == 0
					frequency = self._choose(chord_pool if strong else weak_pool, previous)

					if strong:
						intensity = reverie.constants.STRONG_BEAT_INTENSITY
					else:
						low, high = reverie.constants.WEAK_INTENSITY_RANGE
						intensity = low + self.rng.random() * (high - low)

					events.append(NoteEvent(frequency=frequency, duration=duration, intensity=intensity))
					previous = frequency

		return MelodicPhrase(events=tuple(events))

	def _choose (self, candidates: typing.List[float], previous: typing.Optional[float]) -> float:

		"""Pick the next pitch, preferring steps from the previous note most of the time."""

		if not candidates:
			candidates = self.scales.scale_frequencies()

		pool = candidates

		if previous is not None and self.rng.random() < reverie.constants.STEPWISE_PROBABILITY:
			near = [
				f for f in candidates
				if reverie.scales.octave_distance(f, previous) < reverie.constants.STEP_LOG2_LIMIT
			]
			if near:
				pool = near

		return self.rng.choice(pool)


def vary_phrase (phrase: MelodicPhrase, rng: random.Random) -> MelodicPhrase:

	"""
	Return a new phrase with gently varied timing and dynamics.

	Every fourth event is an anchor and is kept verbatim 70% of the time.
	Any other event (including anchors that were not kept) has a 40% chance
	of having its duration scaled by 0.85-1.15 and its intensity by 0.9-1.1.
	Pitches are never changed and the original phrase is not modified.
	"""

	varied: typing.List[NoteEvent] = []

	for index, event in enumerate(phrase.events):

		if index % reverie.constants.ANCHOR_INTERVAL == 0 and rng.random() < reverie.constants.ANCHOR_KEEP_PROBABILITY:
			varied.append(event)
			continue

		if rng.random() < reverie.constants.VARIATION_PROBABILITY:
			duration_scale = rng.uniform(*reverie.constants.DURATION_VARIATION)
			intensity_scale = rng.uniform(*reverie.constants.INTENSITY_VARIATION)
			event = dataclasses.replace(
				event,
				duration = event.duration * duration_scale,
				intensity = event.intensity * intensity_scale
			)

		varied.append(event)

	return MelodicPhrase(events=tuple(varied))
