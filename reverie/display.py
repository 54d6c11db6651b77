"""Live terminal status line.

Shows tempo, scale, the AABA section and the chord currently under the
melody, redrawn whenever the melody publishes a new phrase.  Log messages
scroll above the status line without disruption.

Enable it before ``play()``::

	engine.display()
	engine.play()

The status line looks like::

	72 BPM  Scale: dorian  [B 3/4]  Prog: axis  Chord: IV  Complexity: 5
"""

import logging
import sys
import typing

import reverie.form_state
import reverie.progressions

if typing.TYPE_CHECKING:
	from reverie.engine import Engine


class DisplayLogHandler (logging.Handler):

	"""Logging handler that clears and redraws the status line around log output.

	Installed by ``Display.start()`` and removed by ``Display.stop()``.
	"""

	def __init__ (self, display: "Display") -> None:

		super().__init__()
		self._display = display

	def emit (self, record: logging.LogRecord) -> None:

		"""Clear the status line, write the log message, then redraw."""

		try:
			self._display.clear_line()

			msg = self.format(record)
			sys.stderr.write(msg + "\n")
			sys.stderr.flush()

			self._display.draw()

		except Exception:
			self.handleError(record)


class Display:

	"""A persistent status line on stderr showing the engine's state."""

	def __init__ (self, engine: "Engine") -> None:

		self._engine = engine
		self._active: bool = False
		self._handler: typing.Optional[DisplayLogHandler] = None
		self._saved_handlers: typing.List[logging.Handler] = []
		self._last_line: str = ""

	@property
	def active (self) -> bool:

		return self._active

	def start (self) -> None:

		"""Swap the root logger's handlers for a ``DisplayLogHandler``.

		The original handlers are restored by ``stop()``.
		"""

		if self._active:
			return

		self._active = True

		root_logger = logging.getLogger()
		self._saved_handlers = list(root_logger.handlers)
		self._handler = DisplayLogHandler(self)

		if self._saved_handlers and self._saved_handlers[0].formatter:
			self._handler.setFormatter(self._saved_handlers[0].formatter)
		else:
			self._handler.setFormatter(logging.Formatter("%(levelname)s:%(name)s:%(message)s"))

		root_logger.handlers.clear()
		root_logger.addHandler(self._handler)

	def stop (self) -> None:

		"""Clear the status line and restore original log handlers."""

		if not self._active:
			return

		self.clear_line()
		self._active = False

		root_logger = logging.getLogger()
		root_logger.handlers.clear()

		for handler in self._saved_handlers:
			root_logger.addHandler(handler)

		self._saved_handlers = []
		self._handler = None

	def update (self, snapshot: typing.Optional[reverie.form_state.SongFormSnapshot] = None) -> None:

		"""Rebuild and redraw; called on ``"song_form"`` events."""

		if not self._active:
			return

		self._last_line = self.format_status(snapshot)
		self.draw()

	def draw (self) -> None:

		"""Write the status line (no trailing newline, so it can be overwritten)."""

		if not self._active or not self._last_line:
			return

		sys.stderr.write(f"\r\033[K{self._last_line}")
		sys.stderr.flush()

	def clear_line (self) -> None:

		if not self._active:
			return

		sys.stderr.write("\r\033[K")
		sys.stderr.flush()

	def format_status (self, snapshot: typing.Optional[reverie.form_state.SongFormSnapshot] = None) -> str:

		"""Build the status string from the engine's current state."""

		engine = self._engine
		snapshot = snapshot if snapshot is not None else engine.song_form

		parts: typing.List[str] = [
			f"{engine.parameters.tempo:g} BPM",
			f"Scale: {engine.scales.current_scale}",
		]

		if snapshot is None:
			parts.append("[waiting]")
		else:
			progression = snapshot.sounding_progression
			degree = snapshot.active_degree(engine.now)
			parts.append(f"[{snapshot.section} {snapshot.section_index + 1}/{len(reverie.form_state.SECTION_PATTERN)}]")
			parts.append(f"Prog: {progression.name}")
			parts.append(f"Chord: {reverie.progressions.ROMAN_NUMERALS[degree % len(reverie.progressions.ROMAN_NUMERALS)]}")

		parts.append(f"Complexity: {engine.parameters.complexity:g}")

		return "  ".join(parts)
