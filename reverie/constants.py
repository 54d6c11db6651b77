"""Tuning and timing constants.

The probability values below are empirically tuned "feel" parameters.  They
shape how busy and how smooth the music is, and have no deeper derivation:

- `STEPWISE_PROBABILITY = 0.6`: how often the melody moves by step.
- `BASS_PRESENCE_PROBABILITY = 0.85`: how often the bass plays a cycle.
- `WIND_PRESENCE_PROBABILITY = 0.35`: how often the wind texture plays.

Durations given in beats are converted to seconds at tick time using the
current tempo, so tempo changes affect only events computed afterwards.
"""

# Tuning

BASE_FREQUENCY = 261.63
SEMITONES_PER_OCTAVE = 12

# Form

BEATS_PER_CHORD = 4
CHORDS_PER_PROGRESSION = 4
DEGREES_PER_OCTAVE = 7

# Phrase generation

STEPWISE_PROBABILITY = 0.6
STEP_LOG2_LIMIT = 0.25
STRONG_BEAT_INTENSITY = 1.2
WEAK_INTENSITY_RANGE = (0.7, 1.0)

# Phrase variation

ANCHOR_INTERVAL = 4
ANCHOR_KEEP_PROBABILITY = 0.7
VARIATION_PROBABILITY = 0.4
DURATION_VARIATION = (0.85, 1.15)
INTENSITY_VARIATION = (0.9, 1.1)

# Octave ranges (inclusive, relative to BASE_FREQUENCY)

MELODY_OCTAVES = (1, 2)
HARMONY_OCTAVES = (0, 1)
AMBIENCE_OCTAVES = (0, 2)
BASS_OCTAVE = -1

# Layer volumes

MELODY_VOLUME = 0.2
CHORD_VOLUME = 0.15
AMBIENCE_VOLUME = 0.05
SWIRL_BASS_VOLUME = 0.18
SUB_BASS_VOLUME = 0.22
SUB_SWIRL_VOLUME = 0.08
WIND_VOLUME = 0.06

MELODY_WAVEFORMS = ("sine", "triangle", "sawtooth")

# Layer cadence

HARMONY_POLL_SECONDS = 1.0
HARMONY_DOUBLING_LEVEL = 6

AMBIENCE_DURATION_RANGE = (3.0, 5.0)
AMBIENCE_OVERLAP = 0.7

BASS_PRESENCE_PROBABILITY = 0.85
SUB_BASS_PROBABILITY = 0.3
BASS_DURATION_BEATS = (16, 32)
BASS_REST_BEATS = (4, 8)

WIND_PRESENCE_PROBABILITY = 0.35
WIND_DURATION_BEATS = (12, 24)
WIND_REST_BEATS = (8, 24)

# Scheduling

LAYER_FAILURE_RETRY_SECONDS = 1.0
IDLE_POLL_SECONDS = 0.25
MIN_REARM_SECONDS = 0.01
