"""Scale and chord theory.

Maps scale degrees and octaves to frequencies in equal temperament.  The
selected scale is the only state: every pitch is recomputed from
``(scale, degree, octave)`` and never stored.

Module-level constants:
- `SCALES`: Maps scale names to semitone offsets (0-11) from the base note.

Module-level helpers:
- `register_scale(name, offsets)`: Add a custom scale to ``SCALES``.
"""

import logging
import math
import random
import typing

import reverie.constants


logger = logging.getLogger(__name__)


SCALES: typing.Dict[str, typing.List[int]] = {
	"pentatonic": [0, 2, 4, 7, 9],
	"major": [0, 2, 4, 5, 7, 9, 11],
	"minor": [0, 2, 3, 5, 7, 8, 10],
	"dorian": [0, 2, 3, 5, 7, 9, 10],
	"phrygian": [0, 1, 3, 5, 7, 8, 10],
	"chromatic": [0, 1, 2, 3, 4, 5, 6, 7, 8, 9, 10, 11],
}

# Root, third and fifth, as scale-index offsets from the chord root.
TRIAD_STEPS: typing.Tuple[int, int, int] = (0, 2, 4)

OctaveRange = typing.Tuple[int, int]


def register_scale (name: str, offsets: typing.Sequence[int]) -> None:

	"""Register a custom scale so it can be selected by name.

	Parameters:
		name: Scale name used with ``ScaleGenerator.set_scale()``.
		offsets: Semitone offsets from the base note, each 0-11.

	Raises:
		ValueError: If the offsets are empty or out of range.

	Example:
		```python
		register_scale("hirajoshi", [0, 2, 3, 7, 8])
		engine.set_scale("hirajoshi")
		```
	"""

	if not offsets:
		raise ValueError("A scale needs at least one offset")

	for offset in offsets:
		if not isinstance(offset, int) or offset < 0 or offset > 11:
			raise ValueError(f"Scale offsets must be integers 0-11, got {offset!r}")

	SCALES[name] = sorted(set(offsets))


def octave_distance (a: float, b: float) -> float:

	"""Return the distance between two frequencies in octaves (log2 ratio)."""

	return abs(math.log2(a / b))


class ScaleGenerator:

	"""Frequencies, chord tones and passing tones for the selected scale."""

	def __init__ (
		self,
		base_frequency: float = reverie.constants.BASE_FREQUENCY,
		scale: str = "pentatonic",
		rng: typing.Optional[random.Random] = None
	) -> None:

		"""
		Initialize with a tuning reference and a starting scale.

		Parameters:
			base_frequency: Frequency of semitone 0 (default C4, 261.63 Hz).
			scale: Name of the starting scale; must be a key of ``SCALES``.
			rng: Optional seeded ``random.Random`` for deterministic octave choices.
		"""

		if scale not in SCALES:
			raise ValueError(f"Unknown scale: {scale}")

		self.base_frequency = base_frequency
		self.current_scale = scale
		self.rng = rng or random.Random()

	@property
	def offsets (self) -> typing.List[int]:

		"""Semitone offsets of the current scale."""

		return SCALES[self.current_scale]

	def set_scale (self, name: str) -> bool:

		"""Select a scale by name, returning False (and keeping the current one) if unknown."""

		if name not in SCALES:
			logger.warning(f"Unknown scale {name!r} ignored - keeping {self.current_scale!r}")
			return False

		self.current_scale = name
		logger.info(f"Scale: {name}")
		return True

	def frequency_of (self, semitone: float) -> float:

		"""Equal temperament: ``base * 2 ** (semitone / 12)``."""

		return self.base_frequency * 2 ** (semitone / reverie.constants.SEMITONES_PER_OCTAVE)

	def _chord_indices (self, degree: int) -> typing.List[int]:

		"""Scale indices of the triad built on a degree, wrapped into the scale length."""

		size = len(self.offsets)
		return [(degree + step) % size for step in TRIAD_STEPS]

	def _octaves (self, octave_range: OctaveRange) -> range:

		low, high = octave_range
		return range(low, high + 1)

	def chord_tones (self, degree: int, octave_range: OctaveRange) -> typing.List[float]:

		"""Return root, third and fifth of a degree, each voiced at a random octave in range."""

		offsets = self.offsets
		low, high = octave_range

		return [
			self.frequency_of(offsets[index] + reverie.constants.SEMITONES_PER_OCTAVE * self.rng.randint(low, high))
			for index in self._chord_indices(degree)
		]

	def chord_tone_pool (self, degree: int, octave_range: OctaveRange) -> typing.List[float]:

		"""Return the triad of a degree at every octave in range, lowest first."""

		offsets = self.offsets
		indices = sorted(set(self._chord_indices(degree)))

		return [
			self.frequency_of(offsets[index] + reverie.constants.SEMITONES_PER_OCTAVE * octave)
			for octave in self._octaves(octave_range)
			for index in indices
		]

	def passing_tones (self, degree: int, octave_range: OctaveRange) -> typing.List[float]:

		"""
		Return the scale tones outside the triad of a degree, at every octave in range.

		A scale with three tones or fewer has no passing tones; the full scale
		tone set is returned instead so callers always get candidates.
		"""

		offsets = self.offsets
		chord_indices = set(self._chord_indices(degree))
		indices = [i for i in range(len(offsets)) if i not in chord_indices]

		if not indices:
			indices = list(range(len(offsets)))

		return [
			self.frequency_of(offsets[index] + reverie.constants.SEMITONES_PER_OCTAVE * octave)
			for octave in self._octaves(octave_range)
			for index in indices
		]

	def random_frequency (self, octave_range: OctaveRange) -> float:

		"""Return a uniformly chosen scale step at a uniformly chosen octave in range."""

		offsets = self.offsets
		low, high = octave_range
		octave = self.rng.randint(low, high)
		note = offsets[self.rng.randrange(len(offsets))]

		return self.frequency_of(note + reverie.constants.SEMITONES_PER_OCTAVE * octave)

	def root_frequency (self, degree: int, octave: int = 0) -> float:

		"""Return the root of the chord built on a degree, in the given octave."""

		offsets = self.offsets
		return self.frequency_of(offsets[degree % len(offsets)] + reverie.constants.SEMITONES_PER_OCTAVE * octave)

	def scale_frequencies (self, octaves: int = 3) -> typing.List[float]:

		"""Return every scale tone over a number of octaves, starting at the base note."""

		return [
			self.frequency_of(note + reverie.constants.SEMITONES_PER_OCTAVE * octave)
			for octave in range(octaves)
			for note in self.offsets
		]

	def chord_frequencies (self, root_octave: int = 1) -> typing.List[float]:

		"""Return the tonic triad in a fixed octave (empty for scales with fewer than three tones)."""

		offsets = self.offsets

		if len(offsets) < 3:
			return []

		return [
			self.frequency_of(offsets[index] + reverie.constants.SEMITONES_PER_OCTAVE * root_octave)
			for index in self._chord_indices(0)
		]
