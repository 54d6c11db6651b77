"""Song-form tracking: chord progression, AABA section cursor and phrase selection.

Defines :class:`SongFormSnapshot` (immutable, versioned view published after
every melody tick), :class:`SectionTick` (what one tick decided) and
:class:`SongForm` (the state machine itself).

Only the melody layer owns a :class:`SongForm`.  Harmony and bass read the
latest snapshot and never see the tracker mid-transition.

Each progression lasts one AABA cycle:

	index  section  phrase
	0      A        phraseA, verbatim
	1      A        phraseA, freshly varied
	2      B        phraseB (from the perturbed progression), verbatim
	3      A        phraseA, verbatim (the return)

After index 3 the tracker drops back to "no progression" and the next tick
generates a new one.
"""

import dataclasses
import logging
import random
import typing

import reverie.phrase
import reverie.progressions


logger = logging.getLogger(__name__)


SECTION_PATTERN: typing.Tuple[str, ...] = ("A", "A", "B", "A")


@dataclasses.dataclass(frozen=True)
class SongFormSnapshot:

	"""
	What the melody is playing right now, as seen by the other layers.

	Attributes:
		version: Increments on every melody tick.
		progression: The cycle's original progression (used by A sections).
		b_progression: The perturbed progression used by the B section.
		section: Section letter, ``"A"`` or ``"B"``.
		section_index: Position within the AABA cycle (0-3).
		started_at: Scheduler time at which the current phrase began.
		chord_duration: Seconds each chord lasts in the current phrase.
	"""

	version: int
	progression: reverie.progressions.ChordProgression
	b_progression: reverie.progressions.ChordProgression
	section: str
	section_index: int
	started_at: float
	chord_duration: float

	@property
	def sounding_progression (self) -> reverie.progressions.ChordProgression:

		"""The progression under the current phrase."""

		return self.b_progression if self.section == "B" else self.progression

	def active_degree (self, now: float) -> int:

		"""Return the degree of the chord sounding at scheduler time ``now``."""

		if self.chord_duration <= 0:
			return self.sounding_progression.degree_at(0)

		elapsed = max(0.0, now - self.started_at)
		return self.sounding_progression.degree_at(int(elapsed // self.chord_duration))


@dataclasses.dataclass(frozen=True)
class SectionTick:

	"""The outcome of one melody tick."""

	section: str
	section_index: int
	phrase: reverie.phrase.MelodicPhrase
	regenerated: bool
	snapshot: SongFormSnapshot


class SongForm:

	"""Track the AABA cycle and decide which phrase plays next."""

	def __init__ (
		self,
		generator: reverie.phrase.PhraseGenerator,
		rng: typing.Optional[random.Random] = None
	) -> None:

		"""
		Start in the no-progression state.

		Parameters:
			generator: Builds phrases for new progressions.
			rng: Optional seeded ``random.Random`` for progression choice and variation.
		"""

		self.generator = generator
		self.rng = rng or random.Random()

		self.progression: typing.Optional[reverie.progressions.ChordProgression] = None
		self.b_progression: typing.Optional[reverie.progressions.ChordProgression] = None
		self.phrase_a: typing.Optional[reverie.phrase.MelodicPhrase] = None
		self.phrase_b: typing.Optional[reverie.phrase.MelodicPhrase] = None
		self.section_index: int = 0

		self._version: int = 0

	@property
	def has_progression (self) -> bool:

		"""False in the no-progression state (before the first tick and after each full cycle)."""

		return self.progression is not None

	def _regenerate (self, tempo: float, complexity: float) -> None:

		"""Choose a new progression, derive the B progression, and write both phrases."""

		self.progression = reverie.progressions.choose_progression(self.rng)
		self.b_progression = self.progression.perturb(self.rng)
		self.phrase_a = self.generator.generate(self.progression, tempo, complexity)
		self.phrase_b = self.generator.generate(self.b_progression, tempo, complexity)
		self.section_index = 0

		logger.info(
			f"Progression: {self.progression.name} {self.progression.roman()} "
			f"(B: {self.b_progression.roman()})"
		)

	def _select (self, section: str, index: int) -> reverie.phrase.MelodicPhrase:

		"""Return the phrase for a position in the cycle."""

		assert self.phrase_a is not None and self.phrase_b is not None, "Phrases must exist while in a section"

		if section == "B":
			return self.phrase_b

		if index == 1:
			return reverie.phrase.vary_phrase(self.phrase_a, self.rng)

		return self.phrase_a

	def advance (self, now: float, tempo: float, complexity: float) -> SectionTick:

		"""
		Run one tick of the form: regenerate if needed, pick a phrase, move the cursor.

		Parameters:
			now: Scheduler time at which the chosen phrase starts.
			tempo: Tempo used if a new progression must be written.
			complexity: Complexity used if a new progression must be written.
		"""

		regenerated = False

		if self.progression is None:
			self._regenerate(tempo, complexity)
			regenerated = True

		assert self.progression is not None and self.b_progression is not None

		index = self.section_index
		section = SECTION_PATTERN[index % len(SECTION_PATTERN)]
		phrase = self._select(section, index)

		self._version += 1
		chord_count = max(1, len(self.progression))

		snapshot = SongFormSnapshot(
			version = self._version,
			progression = self.progression,
			b_progression = self.b_progression,
			section = section,
			section_index = index,
			started_at = now,
			chord_duration = phrase.total_duration / chord_count
		)

		logger.debug(f"Form: {section} {index + 1}/{len(SECTION_PATTERN)}")

		self.section_index += 1

		if self.section_index % len(SECTION_PATTERN) == 0:
			self.progression = None
			self.b_progression = None
			self.phrase_a = None
			self.phrase_b = None

		return SectionTick(
			section = section,
			section_index = index,
			phrase = phrase,
			regenerated = regenerated,
			snapshot = snapshot
		)
