"""Waveform telemetry for visualisers.

:class:`WaveformMonitor` sits on the signal chain as an analyser stage: the
scheduler feeds it every dispatched request, and it renders a short
time-domain window of whatever is sounding when asked.  The byte layout
matches a browser analyser's ``getByteTimeDomainData`` - unsigned bytes,
128 is silence.
"""

import logging
import math
import typing

import reverie.synthesis


logger = logging.getLogger(__name__)


SNAPSHOT_SIZE = 1024
SAMPLE_RATE = 44100
SILENCE = 128


def _oscillator (waveform: str, phase: float) -> float:

	"""One sample of a unit waveform at ``phase`` cycles (0-1 wraps)."""

	phase = phase % 1.0

	if waveform == "triangle":
		return 4.0 * abs(phase - 0.5) - 1.0

	if waveform == "sawtooth":
		return 2.0 * phase - 1.0

	if waveform == "square":
		return 1.0 if phase < 0.5 else -1.0

	return math.sin(2.0 * math.pi * phase)


class WaveformMonitor:

	"""
	Track sounding requests and render waveform snapshots.

	Inputs arrive as ``(start_time, request)`` pairs through
	:meth:`accept_input`; anything routed onward with :meth:`route_to` receives
	the same pairs.  The monitor's notion of "now" is the latest start time it
	has seen unless a ``clock`` callable is given.
	"""

	def __init__ (self, clock: typing.Optional[typing.Callable[[], float]] = None, size: int = SNAPSHOT_SIZE) -> None:

		self.clock = clock
		self.size = size
		self.now: float = 0.0
		self._sounding: typing.List[typing.Tuple[float, reverie.synthesis.SynthesisRequest]] = []
		self._destinations: typing.List[reverie.synthesis.AudioSink] = []

	def accept_input (self, source: typing.Tuple[float, reverie.synthesis.SynthesisRequest]) -> None:

		start, request = source
		self.now = max(self.now, start)
		self._sounding = [(s, r) for s, r in self._sounding if s + r.duration > self.now]
		self._sounding.append((start, request))

		for destination in self._destinations:
			destination.accept_input(source)

	def route_to (self, destination: reverie.synthesis.AudioSink) -> None:

		self._destinations.append(destination)

	def _current_time (self) -> float:

		return self.clock() if self.clock is not None else self.now

	def sounding (self, now: typing.Optional[float] = None) -> typing.List[reverie.synthesis.SynthesisRequest]:

		"""Return the requests still sounding at ``now``, dropping expired ones."""

		now = self._current_time() if now is None else now
		self._sounding = [(start, request) for start, request in self._sounding if start + request.duration > now]

		return [request for start, request in self._sounding if start <= now]

	def waveform_snapshot (self, now: typing.Optional[float] = None) -> bytes:

		"""
		Render ``size`` samples of the current mix as unsigned bytes.

		Each sounding pitch contributes its oscillator scaled by the request
		volume (chords split their volume across pitches).  The sum is clipped
		to [-1, 1] and mapped to 0-255.
		"""

		now = self._current_time() if now is None else now
		partials: typing.List[typing.Tuple[float, float, str]] = []

		for request in self.sounding(now):

			volume = request.volume if request.volume > 0 else 0.15
			share = volume / len(request.pitches)
			waveform = request.waveform if request.kind == "tone" else "sine"

			for pitch in request.pitches:
				partials.append((pitch, share, waveform))

		if not partials:
			return bytes([SILENCE]) * self.size

		samples = bytearray(self.size)

		for index in range(self.size):

			t = now + index / SAMPLE_RATE
			value = sum(gain * _oscillator(waveform, pitch * t) for pitch, gain, waveform in partials)
			value = max(-1.0, min(1.0, value))
			samples[index] = max(0, min(255, SILENCE + int(round(value * 127))))

		return bytes(samples)
