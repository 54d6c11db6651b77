import pathlib

import pytest

import reverie.__main__
import reverie.config
import reverie.midi_sink
import reverie.osc_sink
import reverie.synthesis


def test_load_config_missing_file (tmp_path: pathlib.Path, caplog: pytest.LogCaptureFixture) -> None:

	assert reverie.config.load_config(str(tmp_path / "missing.yaml")) == {}
	assert "not found" in caplog.text


def test_load_config_empty_and_non_mapping (tmp_path: pathlib.Path) -> None:

	empty = tmp_path / "empty.yaml"
	empty.write_text("")

	listing = tmp_path / "list.yaml"
	listing.write_text("- a\n- b\n")

	assert reverie.config.load_config(str(empty)) == {}
	assert reverie.config.load_config(str(listing)) == {}


def test_load_and_build (tmp_path: pathlib.Path) -> None:

	path = tmp_path / "reverie.yaml"
	path.write_text(
		"scale: dorian\n"
		"seed: 7\n"
		"parameters:\n"
		"  tempo: 72\n"
		"  reverbMix: 0.6\n"
		"  shimmer: 2\n"
		"sink:\n"
		"  type: osc\n"
		"  port: 57121\n"
		"display: true\n"
		"osc_control:\n"
		"  port: 9100\n"
	)

	engine = reverie.config.build_engine(reverie.config.load_config(str(path)))

	assert engine.scales.current_scale == "dorian"
	assert engine.parameters.tempo == 72
	assert engine.parameters.reverb == 0.6
	assert engine.parameters.extra == {"shimmer": 2}
	assert engine._seed == 7
	assert engine.display_enabled is True
	assert engine._osc_control is not None

	assert isinstance(engine.sink, reverie.osc_sink.OscSink)
	assert engine.sink.port == 57121


def test_build_defaults () -> None:

	engine = reverie.config.build_engine({})

	assert isinstance(engine.sink, reverie.synthesis.RecordingSink)
	assert engine.scales.current_scale == "pentatonic"
	assert engine.display_enabled is False


@pytest.mark.parametrize("options, expected", [
	(None, reverie.synthesis.RecordingSink),
	("null", reverie.synthesis.RecordingSink),
	({"type": None}, reverie.synthesis.RecordingSink),
	("midi", reverie.midi_sink.MidiSink),
	({"type": "osc"}, reverie.osc_sink.OscSink),
	({"type": "speakers"}, reverie.synthesis.RecordingSink),
])
def test_build_sink (options: object, expected: type) -> None:

	assert isinstance(reverie.config.build_sink(options), expected)


def test_midi_device_option () -> None:

	sink = reverie.config.build_sink({"type": "midi", "device": "IAC Bus 1"})

	assert isinstance(sink, reverie.midi_sink.MidiSink)
	assert sink.device_name == "IAC Bus 1"


def test_bad_values_are_ignored (caplog: pytest.LogCaptureFixture) -> None:

	engine = reverie.config.build_engine({"seed": "abc", "parameters": [1, 2], "scale": "nonexistent"})

	assert engine._seed is None
	assert engine.parameters.tempo == 120
	assert engine.scales.current_scale == "pentatonic"
	assert "seed" in caplog.text


def test_cli_arguments () -> None:

	args = reverie.__main__.parse_args(["--seed", "3", "--sink", "osc", "--scale", "minor", "--display", "--log-level", "debug"])

	assert args.seed == 3
	assert args.sink == "osc"
	assert args.scale == "minor"
	assert args.display is True
	assert args.log_level == "debug"
	assert args.config == "reverie.yaml"
