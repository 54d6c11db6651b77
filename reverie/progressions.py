"""Four-chord progressions drawn from a fixed catalogue.

A progression is a sequence of scale degrees (0-6).  Degrees are resolved
against whatever scale is selected when the chords are voiced, so the same
progression works in any mode.
"""

import dataclasses
import random
import typing

import reverie.constants


PROGRESSION_CATALOGUE: typing.Dict[str, typing.Tuple[int, int, int, int]] = {
	"plagal_cadence": (0, 3, 4, 0),
	"axis": (0, 4, 5, 3),
	"axis_minor": (5, 3, 0, 4),
	"doo_wop": (0, 5, 3, 4),
	"turnaround": (1, 4, 0, 5),
}

ROMAN_NUMERALS: typing.List[str] = ["I", "II", "III", "IV", "V", "VI", "VII"]


@dataclasses.dataclass(frozen=True)
class ChordProgression:

	"""
	An immutable sequence of four scale degrees.

	Attributes:
		degrees: Scale-degree indices, one per chord.
		name: Catalogue entry this progression came from.  Perturbed
			progressions carry a ``"'"`` suffix (e.g. ``"axis'"``).
	"""

	degrees: typing.Tuple[int, ...]
	name: str = ""

	def __len__ (self) -> int:

		return len(self.degrees)

	def __iter__ (self) -> typing.Iterator[int]:

		return iter(self.degrees)

	def degree_at (self, index: int) -> int:

		"""Return the degree of the chord at a position, wrapping past the end."""

		return self.degrees[index % len(self.degrees)]

	def perturb (self, rng: random.Random) -> "ChordProgression":

		"""Return a copy with one randomly chosen degree raised by one (mod 7)."""

		position = rng.randrange(len(self.degrees))
		degrees = list(self.degrees)
		degrees[position] = (degrees[position] + 1) % reverie.constants.DEGREES_PER_OCTAVE

		return ChordProgression(degrees=tuple(degrees), name=f"{self.name}'")

	def roman (self) -> str:

		"""Return the progression in roman-numeral form, e.g. ``"I-IV-V-I"``."""

		return "-".join(ROMAN_NUMERALS[d % reverie.constants.DEGREES_PER_OCTAVE] for d in self.degrees)


def choose_progression (rng: random.Random) -> ChordProgression:

	"""Pick a catalogue progression uniformly at random."""

	name = rng.choice(sorted(PROGRESSION_CATALOGUE))
	return ChordProgression(degrees=PROGRESSION_CATALOGUE[name], name=name)
