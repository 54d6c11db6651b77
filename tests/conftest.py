import random
import typing

import mido
import pytest

import reverie.form_state
import reverie.parameters
import reverie.progressions
import reverie.scales
import reverie.scheduler
import reverie.synthesis


class FakeMidiOut:

	"""MIDI output stub that keeps every message it is sent."""

	def __init__ (self) -> None:

		self.messages: typing.List[mido.Message] = []
		self.closed = False

	def send (self, message: mido.Message) -> None:

		"""Store an outgoing MIDI message."""

		self.messages.append(message)

	def close (self) -> None:

		self.closed = True


# Module-level reference so tests can inspect the most recently opened port.
_current_fake_output: typing.Optional[FakeMidiOut] = None


def _fake_get_output_names () -> list[str]:

	"""Return a fixed list of MIDI output names for tests."""

	return ["Dummy MIDI"]


def _fake_open_output (name: str) -> FakeMidiOut:

	"""Return a fake MIDI output regardless of the name."""

	global _current_fake_output
	fake = FakeMidiOut()
	_current_fake_output = fake
	return fake


def current_fake_output () -> FakeMidiOut:

	"""The port opened by the last ``mido.open_output`` call under ``patch_midi``."""

	assert _current_fake_output is not None, "No fake MIDI output has been opened"
	return _current_fake_output


@pytest.fixture
def patch_midi (monkeypatch: pytest.MonkeyPatch) -> None:

	"""Patch mido to use a fake MIDI output for all tests that need it."""

	monkeypatch.setattr(mido, "get_output_names", _fake_get_output_names)
	monkeypatch.setattr(mido, "open_output", _fake_open_output)


@pytest.fixture
def recording_sink () -> reverie.synthesis.RecordingSink:

	"""A fresh in-memory sink."""

	return reverie.synthesis.RecordingSink()


@pytest.fixture
def scales () -> reverie.scales.ScaleGenerator:

	"""A pentatonic scale generator with a fixed seed."""

	return reverie.scales.ScaleGenerator(scale="pentatonic", rng=random.Random(1))


@pytest.fixture
def parameters () -> reverie.parameters.EngineParameters:

	"""Default engine parameters (120 BPM, so one beat is 0.5 s)."""

	return reverie.parameters.EngineParameters()


def make_snapshot (
	degrees: typing.Tuple[int, ...] = (0, 3, 4, 0),
	section: str = "A",
	section_index: int = 0,
	started_at: float = 0.0,
	chord_duration: float = 2.0,
	version: int = 1
) -> reverie.form_state.SongFormSnapshot:

	"""Build a song-form snapshot without running the melody."""

	progression = reverie.progressions.ChordProgression(degrees=degrees, name="test")
	b_progression = reverie.progressions.ChordProgression(degrees=tuple((d + 1) % 7 for d in degrees), name="test'")

	return reverie.form_state.SongFormSnapshot(
		version = version,
		progression = progression,
		b_progression = b_progression,
		section = section,
		section_index = section_index,
		started_at = started_at,
		chord_duration = chord_duration
	)


def make_context (
	scales: reverie.scales.ScaleGenerator,
	parameters: reverie.parameters.EngineParameters,
	now: float = 0.0,
	song_form: typing.Optional[reverie.form_state.SongFormSnapshot] = None
) -> reverie.scheduler.LayerContext:

	"""Build a layer context for calling ``tick()`` directly."""

	return reverie.scheduler.LayerContext(now=now, parameters=parameters, scales=scales, song_form=song_form)
