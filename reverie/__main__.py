import argparse
import logging
import typing

import reverie.config
import reverie.synthesis


logger = logging.getLogger(__name__)


def parse_args (argv: typing.Optional[typing.List[str]] = None) -> argparse.Namespace:

	parser = argparse.ArgumentParser(prog="reverie", description="Play an endless generative ambient composition.")

	parser.add_argument("--config", default="reverie.yaml", help="YAML configuration file (default: reverie.yaml)")
	parser.add_argument("--seed", type=int, default=None, help="master seed for repeatable output")
	parser.add_argument("--sink", choices=reverie.config.SINK_TYPES, default=None, help="where to send sound (overrides the config)")
	parser.add_argument("--scale", default=None, help="starting scale (overrides the config)")
	parser.add_argument("--display", action="store_true", help="show a live status line")
	parser.add_argument("--log-level", default="INFO", help="logging level (default: INFO)")

	return parser.parse_args(argv)


def main (argv: typing.Optional[typing.List[str]] = None) -> None:

	"""
	Main entry point for the reverie application.
	"""

	args = parse_args(argv)

	logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

	logger.info("Reverie starting...")

	config = reverie.config.load_config(args.config)

	if args.seed is not None:
		config["seed"] = args.seed

	if args.sink is not None:
		config["sink"] = {"type": args.sink}

	if args.scale is not None:
		config["scale"] = args.scale

	if args.display:
		config["display"] = True

	engine = reverie.config.build_engine(config)

	try:
		engine.play()
	except reverie.synthesis.SinkUnavailableError as e:
		logger.error(f"Cannot play: {e}")
		raise SystemExit(1)


if __name__ == "__main__":
	main()
