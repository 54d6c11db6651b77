"""YAML configuration.

Example ``reverie.yaml``::

	scale: dorian
	seed: 7
	parameters:
	  tempo: 72
	  complexity: 6
	  reverb: 0.5
	sink:
	  type: midi            # midi | osc | null
	  device: "IAC Driver Bus 1"
	display: true
	osc_control:
	  port: 9000

Every key is optional.  Values that cannot be used are logged and skipped.
"""

import logging
import os
import typing

import yaml

import reverie.engine
import reverie.midi_sink
import reverie.osc_sink
import reverie.parameters
import reverie.synthesis


logger = logging.getLogger(__name__)


SINK_TYPES: typing.Tuple[str, ...] = ("midi", "osc", "null")


def load_config (config_path: str = "reverie.yaml") -> typing.Dict[str, typing.Any]:

	"""
	Load configuration from a YAML file.

	A missing or empty file gives an empty configuration.
	"""

	if not os.path.exists(config_path):
		logger.warning(f"Config file {config_path} not found. Using defaults.")
		return {}

	with open(config_path, "r") as f:
		config = yaml.safe_load(f)

	if config is None:
		return {}

	if not isinstance(config, dict):
		logger.warning(f"Config file {config_path} is not a mapping. Using defaults.")
		return {}

	return config


def build_sink (options: typing.Any) -> reverie.synthesis.SynthesisSink:

	"""
	Create the synthesis sink described by a ``sink`` section.

	Accepts a mapping with a ``type`` key or just the type name.
	"""

	if isinstance(options, str):
		options = {"type": options}

	if not isinstance(options, dict):
		options = {}

	# YAML reads a bare ``null`` as None.
	sink_type = options.get("type") or "null"

	if sink_type == "midi":
		return reverie.midi_sink.MidiSink(device_name=options.get("device"))

	if sink_type == "osc":
		return reverie.osc_sink.OscSink(
			host = options.get("host", "127.0.0.1"),
			port = int(options.get("port", 57120))
		)

	if sink_type != "null":
		logger.warning(f"Unknown sink type {sink_type!r} - expected one of {SINK_TYPES}; using null")

	return reverie.synthesis.RecordingSink()


def build_engine (config: typing.Optional[typing.Dict[str, typing.Any]] = None) -> reverie.engine.Engine:

	"""
	Create an engine from a configuration mapping (as returned by ``load_config``).
	"""

	config = config or {}

	parameters = config.get("parameters") or {}

	if not isinstance(parameters, dict):
		logger.warning("Config 'parameters' must be a mapping - ignored")
		parameters = {}

	seed = config.get("seed")

	if seed is not None and not isinstance(seed, int):
		logger.warning(f"Config 'seed' must be an integer, got {seed!r} - ignored")
		seed = None

	engine = reverie.engine.Engine(
		sink = build_sink(config.get("sink")),
		parameters = reverie.parameters.EngineParameters.from_mapping(parameters),
		scale = str(config.get("scale", "pentatonic")),
		seed = seed
	)

	if config.get("display"):
		engine.display()

	osc_control = config.get("osc_control")

	if osc_control:
		port = osc_control.get("port", 9000) if isinstance(osc_control, dict) else 9000
		engine.osc_control(receive_port=int(port))

	return engine
