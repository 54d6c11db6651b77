"""Externally settable engine parameters.

Layers read these on every tick; a change only affects events computed after
it.  Values are stored as given - there is no clamping - so a slider may push
the engine somewhere unusual but never stops it.
"""

import dataclasses
import logging
import typing


logger = logging.getLogger(__name__)


PARAMETER_NAMES: typing.Tuple[str, ...] = ("complexity", "tempo", "harmony", "reverb", "volume")

PARAMETER_ALIASES: typing.Dict[str, str] = {
	"reverbMix": "reverb",
	"reverb_mix": "reverb",
	"bpm": "tempo",
}


@dataclasses.dataclass
class EngineParameters:

	"""
	Live control values shared by every layer.

	Attributes:
		complexity: How finely melody beats may be subdivided (1-10 typical).
		tempo: Beats per minute.
		harmony: Chord richness; at ``HARMONY_DOUBLING_LEVEL`` and above the
			chord root is doubled an octave up.
		reverb: Wet/dry reverb mix (0.0-1.0), forwarded to the sink.
		volume: Master volume (0.0-1.0), forwarded to the sink.
		extra: Values set under names the engine does not recognise.
	"""

	complexity: float = 5
	tempo: float = 120
	harmony: float = 4
	reverb: float = 0.3
	volume: float = 0.7
	extra: typing.Dict[str, typing.Any] = dataclasses.field(default_factory=dict)

	@property
	def beat_duration (self) -> float:

		"""Seconds per beat at the current tempo."""

		return 60.0 / self.tempo

	def beats (self, count: float) -> float:

		"""Convert a number of beats to seconds at the current tempo."""

		return count * self.beat_duration

	def set (self, name: str, value: typing.Any) -> bool:

		"""
		Set a parameter by name.

		Unknown names are kept in ``extra`` rather than rejected, so a bad
		external input never raises.  Returns True if the name was recognised.
		"""

		name = PARAMETER_ALIASES.get(name, name)

		if name not in PARAMETER_NAMES:
			self.extra[name] = value
			logger.debug(f"Unrecognised parameter {name!r} stored as extra")
			return False

		setattr(self, name, value)
		logger.debug(f"Parameter {name} = {value}")
		return True

	def get (self, name: str, default: typing.Any = None) -> typing.Any:

		"""Return a parameter (or extra value) by name."""

		name = PARAMETER_ALIASES.get(name, name)

		if name in PARAMETER_NAMES:
			return getattr(self, name)

		return self.extra.get(name, default)

	def as_dict (self) -> typing.Dict[str, typing.Any]:

		"""Return the known parameters as a plain dict."""

		return {name: getattr(self, name) for name in PARAMETER_NAMES}

	@classmethod
	def from_mapping (cls, values: typing.Optional[typing.Mapping[str, typing.Any]]) -> "EngineParameters":

		"""Build parameters from a mapping such as a config file section."""

		parameters = cls()

		for name, value in (values or {}).items():
			parameters.set(name, value)

		return parameters
