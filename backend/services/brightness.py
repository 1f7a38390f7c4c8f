"""Per-beat brightness computation.

Two modes:
  - section:  the beat's peak loudness relative to the loudness of the
              section it falls in, scaled by the track's loudness span.
  - previous: the beat's peak loudness as a percentage of the previous
              beat's, holding the last value for beats too close together
              for the light to finish its transition.

Both return a value in [0, 100]; scaling by the configured maximum
brightness is left to the caller.
"""

import math

from services.analysis import find_section_index

SECTION_MODE = "section"
PREVIOUS_MODE = "previous"
VALID_MODES = (SECTION_MODE, PREVIOUS_MODE)

FULL_BRIGHTNESS = 100


def _clamp(value, low, high):
    return max(low, min(high, value))


def section_brightness(analysis, beat_index, loudness):
    """Brightness from the beat's loudness against its section's loudness.

    Louder beats (less negative dB) give a smaller ratio and therefore a
    higher brightness.  A zero section loudness yields full brightness.
    """
    if not analysis.sections:
        return FULL_BRIGHTNESS
    segment = analysis.segments[beat_index]
    section_idx = find_section_index(analysis.sections, segment.start)
    section_loudness = analysis.sections[section_idx].loudness
    if section_loudness == 0:
        return FULL_BRIGHTNESS

    raw = (segment.loudness_max / section_loudness) * (loudness.span / 100)
    return 100 - _clamp(raw * 100, 0, 100)


def previous_beat_brightness(analysis, beat_index, last_brightness, transition_ms):
    """Brightness from the loudness ratio between this beat and the last.

    Args:
        analysis: Loaded Analysis.
        beat_index: Index of the current segment.
        last_brightness: Brightness of the last emitted update, returned
            unchanged when the beats are closer than half a transition.
        transition_ms: Light fade time in milliseconds.
    """
    if beat_index == 0:
        return FULL_BRIGHTNESS

    prev = analysis.segments[beat_index - 1]
    cur = analysis.segments[beat_index]

    if cur.start - prev.start < transition_ms / 2000:
        return last_brightness

    if prev.loudness_max == 0:
        return FULL_BRIGHTNESS

    brightness = math.floor(abs((cur.loudness_max / prev.loudness_max) * 100))
    return _clamp(brightness, 0, 100)


def compute_brightness(mode, analysis, beat_index, loudness, last_brightness, transition_ms):
    """Dispatch to the configured brightness mode."""
    if mode == PREVIOUS_MODE:
        return previous_beat_brightness(analysis, beat_index, last_brightness, transition_ms)
    return section_brightness(analysis, beat_index, loudness)


def scale_brightness(brightness, max_brightness):
    """Scale a 0-100 brightness by the configured maximum percentage."""
    return brightness * max_brightness / 100
