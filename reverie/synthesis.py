"""The boundary between the composition core and whatever renders sound.

The core never touches oscillators or filters.  It builds
:class:`SynthesisRequest` objects and hands them to a sink through
:func:`dispatch`.  Sinks are fire-and-forget: they own the lifetime of every
sound they start and release it when its duration has elapsed.

Protocols:
- :class:`SynthesisSink`: plays tones, chords and textures.
- :class:`AudioSink`: a signal-chain stage that accepts input and routes onward
  (reverb buses and similar).
- :class:`TelemetrySink`: supplies a waveform snapshot for visualisers.

:class:`RecordingSink` is an in-memory implementation used for headless runs
and tests.
"""

import collections
import dataclasses
import logging
import time
import typing


logger = logging.getLogger(__name__)


TEXTURE_KINDS: typing.Tuple[str, ...] = ("swirlBass", "subBass", "windSwirl")

# Calls a RecordingSink remembers before dropping the oldest.
CALL_HISTORY = 4096


class SinkUnavailableError (RuntimeError):

	"""Raised when the synthesis sink cannot be opened, so the composition cannot begin."""


@dataclasses.dataclass(frozen=True)
class SynthesisRequest:

	"""
	An abstract "play this" instruction.

	Attributes:
		kind: ``"tone"``, ``"chord"`` or ``"texture"``.
		pitches: Frequencies in Hz (one for a tone, several for a chord; the
			centre pitch for a texture).
		duration: Seconds the sound should last.
		volume: Linear gain, 0.0-1.0.
		waveform: Oscillator hint for tones (``"sine"``, ``"triangle"``, ...).
		texture: Texture kind for textures (one of ``TEXTURE_KINDS``).
		params: Extra filter/texture settings (sweep range, Q, ...).
		layer: Name of the layer that produced the request.
	"""

	kind: str
	pitches: typing.Tuple[float, ...]
	duration: float
	volume: float
	waveform: str = "sine"
	texture: typing.Optional[str] = None
	params: typing.Dict[str, typing.Any] = dataclasses.field(default_factory=dict, compare=False)
	layer: str = ""

	@property
	def pitch (self) -> float:

		"""The first (or only) pitch."""

		return self.pitches[0]


def tone (pitch: float, duration: float, volume: float, waveform: str = "sine", layer: str = "", envelope: typing.Optional[typing.Dict[str, float]] = None) -> SynthesisRequest:

	"""Build a single-tone request."""

	params = {"envelope": envelope} if envelope else {}
	return SynthesisRequest(kind="tone", pitches=(pitch,), duration=duration, volume=volume, waveform=waveform, params=params, layer=layer)


def chord (pitches: typing.Sequence[float], duration: float, volume: float = 0.0, layer: str = "") -> SynthesisRequest:

	"""Build a chord request."""

	return SynthesisRequest(kind="chord", pitches=tuple(pitches), duration=duration, volume=volume, layer=layer)


def texture (kind: str, pitch: float, duration: float, volume: float, params: typing.Optional[typing.Dict[str, typing.Any]] = None, layer: str = "") -> SynthesisRequest:

	"""Build a texture request."""

	if kind not in TEXTURE_KINDS:
		raise ValueError(f"Unknown texture kind: {kind}")

	return SynthesisRequest(kind="texture", pitches=(pitch,), duration=duration, volume=volume, texture=kind, params=dict(params or {}), layer=layer)


@typing.runtime_checkable
class SynthesisSink (typing.Protocol):

	"""
	Protocol for objects that render synthesis requests into sound.
	"""

	async def open (self) -> None:

		"""
		One-time setup.  Raise ``SinkUnavailableError`` if the device cannot be used.
		"""

		...

	def play_tone (self, pitch: float, waveform: str, duration: float, volume: float, envelope: typing.Optional[typing.Dict[str, float]] = None) -> None:

		...

	def play_chord (self, pitches: typing.Sequence[float], duration: float) -> None:

		...

	def play_texture (self, kind: str, params: typing.Dict[str, typing.Any], duration: float, volume: float) -> None:

		...

	def apply_parameter (self, name: str, value: typing.Any) -> None:

		"""
		React to a master-level parameter change (``volume``, ``reverb``).
		"""

		...

	def release_all (self) -> None:

		"""
		Stop every sound immediately, even if its natural fade has not elapsed.
		"""

		...

	def close (self) -> None:

		...


@typing.runtime_checkable
class AudioSink (typing.Protocol):

	"""
	Protocol for a signal-chain stage such as a reverb bus.
	"""

	def accept_input (self, source: typing.Any) -> None:

		...

	def route_to (self, destination: typing.Any) -> None:

		...


@typing.runtime_checkable
class TelemetrySink (typing.Protocol):

	"""
	Protocol for objects that expose a live waveform.
	"""

	def waveform_snapshot (self) -> typing.Optional[bytes]:

		...


def dispatch (sink: SynthesisSink, request: SynthesisRequest) -> None:

	"""Route a request to the matching sink call."""

	if request.kind == "tone":
		sink.play_tone(request.pitch, request.waveform, request.duration, request.volume, request.params.get("envelope"))

	elif request.kind == "chord":
		sink.play_chord(list(request.pitches), request.duration)

	elif request.kind == "texture":
		params = dict(request.params)
		params.setdefault("pitch", request.pitch)
		sink.play_texture(request.texture or "", params, request.duration, request.volume)

	else:
		raise ValueError(f"Unknown request kind: {request.kind}")


class RecordingSink:

	"""
	A sink that renders nothing and remembers recent calls.

	Useful for headless runs (``sink: {type: null}``) and for tests, which can
	inspect ``calls`` to see exactly what the engine asked for.  Only the
	latest ``history`` calls are kept, and ``sounding`` drops entries whose
	duration has elapsed on ``clock`` (wall-clock seconds by default).
	"""

	def __init__ (self, clock: typing.Optional[typing.Callable[[], float]] = None, history: int = CALL_HISTORY) -> None:

		self.clock = clock or time.monotonic
		self.calls: typing.Deque[typing.Tuple[str, typing.Dict[str, typing.Any]]] = collections.deque(maxlen=history)
		self.parameters: typing.Dict[str, typing.Any] = {}
		self._sounding: typing.List[typing.Tuple[float, typing.Dict[str, typing.Any]]] = []
		self.opened = False
		self.released = 0

	async def open (self) -> None:

		self.opened = True

	@property
	def sounding (self) -> typing.List[typing.Dict[str, typing.Any]]:

		"""Calls whose sound has not ended yet."""

		self._prune()
		return [kwargs for _, kwargs in self._sounding]

	def _prune (self) -> None:

		now = self.clock()
		self._sounding = [(end, kwargs) for end, kwargs in self._sounding if end > now]

	def _record (self, name: str, **kwargs: typing.Any) -> None:

		self.calls.append((name, kwargs))
		self._prune()
		self._sounding.append((self.clock() + kwargs["duration"], kwargs))

	def play_tone (self, pitch: float, waveform: str, duration: float, volume: float, envelope: typing.Optional[typing.Dict[str, float]] = None) -> None:

		self._record("tone", pitch=pitch, waveform=waveform, duration=duration, volume=volume, envelope=envelope)

	def play_chord (self, pitches: typing.Sequence[float], duration: float) -> None:

		self._record("chord", pitches=list(pitches), duration=duration)

	def play_texture (self, kind: str, params: typing.Dict[str, typing.Any], duration: float, volume: float) -> None:

		self._record("texture", kind=kind, params=params, duration=duration, volume=volume)

	def apply_parameter (self, name: str, value: typing.Any) -> None:

		self.parameters[name] = value

	def release_all (self) -> None:

		# Releasing nothing is fine: the sounds may have ended on their own.
		self.released += len(self.sounding)
		self._sounding = []

	def close (self) -> None:

		self.opened = False

	def names (self) -> typing.List[str]:

		"""Return the call names in order, e.g. ``["tone", "chord", ...]``."""

		return [name for name, _ in self.calls]
