"""A synthesis sink that plays through a MIDI output port.

Frequencies are rounded to the nearest MIDI note.  Every sound is a
note_on followed by a note_off scheduled on the running event loop after the
request's duration, so the sink owns each note's lifetime.  Each request
kind has its own channel so a synth can give every layer its own patch:

=========  =======
channel    source
=========  =======
0          sine melody / ambience tones
1          triangle melody tones
2          sawtooth melody tones
3          harmony chords
4          swirling bass textures
5          sub-bass textures
6          wind textures
=========  =======
"""

import asyncio
import itertools
import logging
import math
import typing

import mido

import reverie.synthesis


logger = logging.getLogger(__name__)


TONE_CHANNELS: typing.Dict[str, int] = {"sine": 0, "triangle": 1, "sawtooth": 2}
CHORD_CHANNEL = 3
TEXTURE_CHANNELS: typing.Dict[str, int] = {"swirlBass": 4, "subBass": 5, "windSwirl": 6}

CC_VOLUME = 7
CC_REVERB = 91
CC_ALL_SOUND_OFF = 120
CC_ALL_NOTES_OFF = 123

CHORD_VELOCITY = 64

# Layer volumes top out around 0.25, so this maps the loudest to full velocity.
VELOCITY_SCALE = 127 / 0.25


def frequency_to_note (frequency: float) -> int:

	"""
	Convert a frequency in Hz to the nearest MIDI note number (A4 = 440 Hz = 69).
	"""

	if frequency <= 0:
		raise ValueError(f"Frequency must be positive, got {frequency}")

	note = int(round(69 + 12 * math.log2(frequency / 440.0)))

	return max(0, min(127, note))


def volume_to_velocity (volume: float) -> int:

	"""Map a request volume onto a MIDI velocity (1-127)."""

	return max(1, min(127, int(round(volume * VELOCITY_SCALE))))


def _unit_to_cc (value: float) -> int:

	return max(0, min(127, int(round(float(value) * 127))))


def select_output_device (device_name: typing.Optional[str] = None) -> typing.Tuple[typing.Optional[str], typing.Optional[typing.Any]]:

	"""
	Select and open a MIDI output device.

	With ``device_name`` given, only that device is accepted.  Otherwise the
	only available device is used, or the user is asked to pick when there
	are several.

	Returns:
		A tuple of (device_name, port) or (None, None) on failure.
	"""

	try:
		outputs = mido.get_output_names()
		logger.info(f"Available MIDI outputs: {outputs}")

		if not outputs:
			logger.error("No MIDI output devices found.")
			return None, None

		if device_name is not None:

			if device_name not in outputs:
				logger.error(f"MIDI output device '{device_name}' not found. Available devices: {outputs}")
				return None, None

			port = mido.open_output(device_name)
			logger.info(f"Opened MIDI output: {device_name}")
			return device_name, port

		if len(outputs) == 1:
			port = mido.open_output(outputs[0])
			logger.info(f"One MIDI output found - using '{outputs[0]}'")
			return outputs[0], port

		print("\nAvailable MIDI output devices:\n")
		for i, name in enumerate(outputs, 1):
			print(f"  {i}. {name}")
		print()

		while True:
			try:
				choice = int(input(f"Select a device (1-{len(outputs)}): "))
				if 1 <= choice <= len(outputs):
					break
			except ValueError:
				pass
			print(f"Enter a number between 1 and {len(outputs)}.")

		selected = outputs[choice - 1]
		port = mido.open_output(selected)
		logger.info(f"Opened MIDI output: {selected}")

		print(f"\nTip: set `sink: {{type: midi, device: \"{selected}\"}}` in your config to skip this prompt.\n")

		return selected, port

	except EOFError:
		logger.error("No MIDI output device chosen (no interactive input available).")
		return None, None

	except Exception as e:
		logger.error(f"Failed to open MIDI output: {e}")
		return None, None


class MidiSink:

	"""
	Render synthesis requests as MIDI notes on an output port.
	"""

	def __init__ (self, device_name: typing.Optional[str] = None) -> None:

		self.device_name = device_name
		self.midi_out: typing.Optional[typing.Any] = None

		# (channel, note) -> number of overlapping soundings still held.
		self.active_notes: typing.Dict[typing.Tuple[int, int], int] = {}
		self._timers: typing.Dict[int, asyncio.TimerHandle] = {}
		self._timer_ids = itertools.count()

	async def open (self) -> None:

		device_name, midi_out = select_output_device(self.device_name)

		if midi_out is None:
			raise reverie.synthesis.SinkUnavailableError("No MIDI output device could be opened")

		self.device_name = device_name
		self.midi_out = midi_out

	def _send (self, message: mido.Message) -> None:

		if self.midi_out is None:
			return

		try:
			self.midi_out.send(message)
		except Exception:
			logger.exception("MIDI send failed (device may be disconnected)")

	def _note_on (self, channel: int, frequency: float, velocity: int, duration: float) -> None:

		note = frequency_to_note(frequency)
		key = (channel, note)

		self._send(mido.Message('note_on', channel=channel, note=note, velocity=velocity))
		self.active_notes[key] = self.active_notes.get(key, 0) + 1

		try:
			loop = asyncio.get_running_loop()
		except RuntimeError:
			# No loop (offline rendering): the note is held until release_all().
			return

		timer_id = next(self._timer_ids)
		self._timers[timer_id] = loop.call_later(max(0.0, duration), self._expire, timer_id, channel, note)

	def _expire (self, timer_id: int, channel: int, note: int) -> None:

		self._timers.pop(timer_id, None)
		self._note_off(channel, note)

	def _note_off (self, channel: int, note: int) -> None:

		key = (channel, note)
		held = self.active_notes.get(key, 0)

		if held <= 0:
			return

		if held == 1:
			del self.active_notes[key]
			self._send(mido.Message('note_off', channel=channel, note=note, velocity=0))
		else:
			self.active_notes[key] = held - 1

	def play_tone (self, pitch: float, waveform: str, duration: float, volume: float, envelope: typing.Optional[typing.Dict[str, float]] = None) -> None:

		self._note_on(TONE_CHANNELS.get(waveform, 0), pitch, volume_to_velocity(volume), duration)

	def play_chord (self, pitches: typing.Sequence[float], duration: float) -> None:

		for pitch in pitches:
			self._note_on(CHORD_CHANNEL, pitch, CHORD_VELOCITY, duration)

	def play_texture (self, kind: str, params: typing.Dict[str, typing.Any], duration: float, volume: float) -> None:

		channel = TEXTURE_CHANNELS.get(kind)

		if channel is None:
			logger.warning(f"No MIDI channel for texture '{kind}' - skipped")
			return

		self._note_on(channel, float(params["pitch"]), volume_to_velocity(volume), duration)

	def apply_parameter (self, name: str, value: typing.Any) -> None:

		if name == "volume":
			control = CC_VOLUME
		elif name == "reverb":
			control = CC_REVERB
		else:
			return

		for channel in range(16):
			self._send(mido.Message('control_change', channel=channel, control=control, value=_unit_to_cc(value)))

	def release_all (self) -> None:

		"""
		Silence everything now: cancel pending note_offs, send them directly,
		then All Notes Off / All Sound Off on every channel.
		"""

		for timer in self._timers.values():
			timer.cancel()

		self._timers = {}

		notes = list(self.active_notes)
		self.active_notes = {}

		if self.midi_out is None:
			return

		try:
			for channel, note in notes:
				self.midi_out.send(mido.Message('note_off', channel=channel, note=note, velocity=0))

			for channel in range(16):
				self.midi_out.send(mido.Message('control_change', channel=channel, control=CC_ALL_NOTES_OFF, value=0))
				self.midi_out.send(mido.Message('control_change', channel=channel, control=CC_ALL_SOUND_OFF, value=0))

		except Exception:
			# Already-stopped or disconnected ports are fine during shutdown.
			logger.warning("MIDI release failed (device may be disconnected)")

	def close (self) -> None:

		if self.midi_out is not None:
			self.midi_out.close()
			self.midi_out = None
