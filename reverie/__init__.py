"""
Reverie - an endless generative ambient composer for Python.

Reverie never plays the same piece twice.  Five independent layers -
melody, harmony, ambience, bass and wind - each decide what to play next
and when to wake up again, all reading one shared song form so the music
stays coherent while it wanders.

How it is put together:

- **Song form.** The melody walks an AABA cycle over a chord progression
  drawn from a small catalogue.  The second A is a light variation of the
  first, the B section plays over a nudged copy of the progression, and
  every fourth phrase a new progression is written.
- **Voice-leading melody.** Strong beats land on chord tones, weak beats may
  pass through neighbouring scale tones, and small steps are preferred
  over leaps.  ``complexity`` controls how finely beats are subdivided.
- **Layered accompaniment.** Harmony follows the melody chord for chord;
  bass textures sit on the sounding root; ambience and wind drift on their
  own timers.
- **Any sound source.** The core only emits abstract requests (tone, chord,
  texture).  A MIDI sink (``mido``) and an OSC sink (``python-osc``) are
  included; anything implementing ``SynthesisSink`` works.
- **Live controls.** ``set_parameter()`` for tempo, complexity, harmony,
  reverb and volume, and ``set_scale()`` for six built-in scales plus
  ``register_scale()`` for your own.  Deterministic seeding makes a run
  repeatable.

Minimal example:

    ```python
    import reverie
    import reverie.midi_sink

    engine = reverie.Engine(sink=reverie.midi_sink.MidiSink(), scale="dorian")
    engine.set_parameter("tempo", 72)
    engine.play()
    ```

Package-level exports: ``Engine``, ``EngineParameters``, ``ScaleGenerator``,
``register_scale``.
"""

import reverie.engine
import reverie.parameters
import reverie.scales


Engine = reverie.engine.Engine
EngineParameters = reverie.parameters.EngineParameters
ScaleGenerator = reverie.scales.ScaleGenerator
register_scale = reverie.scales.register_scale
