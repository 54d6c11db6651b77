import asyncio

import mido
import pytest

import reverie.midi_sink
import reverie.synthesis

import conftest


def test_frequency_to_note () -> None:

	assert reverie.midi_sink.frequency_to_note(440.0) == 69
	assert reverie.midi_sink.frequency_to_note(261.63) == 60
	assert reverie.midi_sink.frequency_to_note(130.8) == 48
	assert reverie.midi_sink.frequency_to_note(1e-3) == 0
	assert reverie.midi_sink.frequency_to_note(1e6) == 127


def test_frequency_to_note_rejects_non_positive () -> None:

	with pytest.raises(ValueError):
		reverie.midi_sink.frequency_to_note(0.0)


def test_volume_to_velocity () -> None:

	assert reverie.midi_sink.volume_to_velocity(0.25) == 127
	assert reverie.midi_sink.volume_to_velocity(0.0) == 1
	assert 1 < reverie.midi_sink.volume_to_velocity(0.05) < 64


@pytest.mark.asyncio
async def test_open_selects_only_device (patch_midi: None) -> None:

	sink = reverie.midi_sink.MidiSink()
	await sink.open()

	assert sink.device_name == "Dummy MIDI"
	assert sink.midi_out is conftest.current_fake_output()


@pytest.mark.asyncio
async def test_open_unknown_device_is_unavailable (patch_midi: None) -> None:

	sink = reverie.midi_sink.MidiSink(device_name="Nope")

	with pytest.raises(reverie.synthesis.SinkUnavailableError):
		await sink.open()


@pytest.mark.asyncio
async def test_open_without_devices_is_unavailable (monkeypatch: pytest.MonkeyPatch) -> None:

	monkeypatch.setattr(mido, "get_output_names", lambda: [])

	with pytest.raises(reverie.synthesis.SinkUnavailableError):
		await reverie.midi_sink.MidiSink().open()


@pytest.mark.asyncio
async def test_tone_plays_then_releases_itself (patch_midi: None) -> None:

	sink = reverie.midi_sink.MidiSink()
	await sink.open()
	port = conftest.current_fake_output()

	sink.play_tone(440.0, "triangle", 0.02, 0.2)

	assert [(m.type, m.channel, m.note) for m in port.messages] == [("note_on", 1, 69)]
	assert sink.active_notes == {(1, 69): 1}

	await asyncio.sleep(0.05)

	assert port.messages[-1].type == "note_off"
	assert sink.active_notes == {}


@pytest.mark.asyncio
async def test_overlapping_notes_release_once (patch_midi: None) -> None:

	"""A repeated note is only turned off when its last sounding ends."""

	sink = reverie.midi_sink.MidiSink()
	await sink.open()
	port = conftest.current_fake_output()

	sink.play_tone(440.0, "sine", 0.01, 0.1)
	sink.play_tone(440.0, "sine", 0.05, 0.1)

	await asyncio.sleep(0.03)

	assert [m.type for m in port.messages] == ["note_on", "note_on"]

	await asyncio.sleep(0.05)

	assert [m.type for m in port.messages] == ["note_on", "note_on", "note_off"]


@pytest.mark.asyncio
async def test_chord_and_texture_channels (patch_midi: None) -> None:

	sink = reverie.midi_sink.MidiSink()
	await sink.open()
	port = conftest.current_fake_output()

	sink.play_chord([261.63, 329.63, 392.0], 1.0)
	sink.play_texture("subBass", {"pitch": 65.4}, 1.0, 0.2)
	sink.play_texture("unknown", {"pitch": 65.4}, 1.0, 0.2)

	channels = [m.channel for m in port.messages]

	assert channels == [reverie.midi_sink.CHORD_CHANNEL] * 3 + [reverie.midi_sink.TEXTURE_CHANNELS["subBass"]]

	sink.release_all()


@pytest.mark.asyncio
async def test_apply_parameter_sends_controllers (patch_midi: None) -> None:

	sink = reverie.midi_sink.MidiSink()
	await sink.open()
	port = conftest.current_fake_output()

	sink.apply_parameter("volume", 1.0)
	sink.apply_parameter("reverb", 0.5)
	sink.apply_parameter("tempo", 80)

	volume = [m for m in port.messages if m.control == reverie.midi_sink.CC_VOLUME]
	reverb = [m for m in port.messages if m.control == reverie.midi_sink.CC_REVERB]

	assert len(volume) == 16 and all(m.value == 127 for m in volume)
	assert len(reverb) == 16 and all(m.value == 64 for m in reverb)
	assert len(port.messages) == 32


@pytest.mark.asyncio
async def test_release_all_silences_everything (patch_midi: None) -> None:

	sink = reverie.midi_sink.MidiSink()
	await sink.open()
	port = conftest.current_fake_output()

	sink.play_tone(440.0, "sine", 10.0, 0.2)
	sink.release_all()

	note_offs = [m for m in port.messages if m.type == "note_off"]
	all_off = [m for m in port.messages if m.type == "control_change" and m.control == reverie.midi_sink.CC_ALL_NOTES_OFF]

	assert [(m.channel, m.note) for m in note_offs] == [(0, 69)]
	assert len(all_off) == 16
	assert sink.active_notes == {}

	# A second release (nothing sounding) is harmless.
	sink.release_all()


@pytest.mark.asyncio
async def test_release_all_tolerates_a_dead_port (patch_midi: None) -> None:

	sink = reverie.midi_sink.MidiSink()
	await sink.open()

	def broken_send (message: mido.Message) -> None:
		raise OSError("port gone")

	sink.play_tone(440.0, "sine", 10.0, 0.2)
	sink.midi_out.send = broken_send  # type: ignore[union-attr]

	sink.release_all()

	assert sink.active_notes == {}


def test_notes_are_held_without_a_loop (patch_midi: None) -> None:

	"""Outside an event loop there is no timer, so notes wait for release_all()."""

	sink = reverie.midi_sink.MidiSink()
	asyncio.run(sink.open())
	port = conftest.current_fake_output()

	sink.play_tone(440.0, "sine", 0.01, 0.2)

	assert sink.active_notes == {(0, 69): 1}

	sink.release_all()
	sink.close()

	assert port.closed is True
