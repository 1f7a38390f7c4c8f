import itertools

import pytest

from services.analysis import Analysis, LoudnessRange, Section, Segment, loudness_range
from services.brightness import (
    PREVIOUS_MODE,
    SECTION_MODE,
    compute_brightness,
    previous_beat_brightness,
    scale_brightness,
    section_brightness,
)


def _analysis(segments, sections=((0, 100, -10.0),)):
    return Analysis(
        segments=tuple(Segment(s, d, l) for s, d, l in segments),
        sections=tuple(Section(s, d, l) for s, d, l in sections),
    )


def test_section_brightness_formula():
    analysis = _analysis([(0, 1, -10.0)], sections=[(0, 100, -20.0)])
    rng = LoudnessRange(loudest=-5.0, quietest=-25.0)
    # (-10 / -20) * (20 / 100) = 0.1 -> 100 - 10
    assert section_brightness(analysis, 0, rng) == pytest.approx(90.0)


def test_section_brightness_louder_beat_is_brighter():
    analysis = _analysis([(0, 1, -2.0), (1, 1, -30.0)], sections=[(0, 100, -10.0)])
    rng = loudness_range(analysis.segments)
    loud = section_brightness(analysis, 0, rng)
    quiet = section_brightness(analysis, 1, rng)
    assert loud > quiet


def test_section_brightness_uses_containing_section():
    analysis = _analysis(
        [(1, 1, -10.0), (12, 1, -10.0)],
        sections=[(0, 10, -10.0), (10, 10, -40.0)],
    )
    rng = LoudnessRange(loudest=0.0, quietest=-50.0)
    # first: 1.0 * 0.5 -> 50; second: 0.25 * 0.5 -> 12.5
    assert section_brightness(analysis, 0, rng) == pytest.approx(50.0)
    assert section_brightness(analysis, 1, rng) == pytest.approx(87.5)


def test_section_brightness_zero_range_is_full():
    analysis = _analysis([(0, 1, -7.0), (1, 1, -7.0)])
    rng = loudness_range(analysis.segments)
    assert rng.span == 0
    assert section_brightness(analysis, 1, rng) == 100


def test_section_brightness_zero_section_loudness_is_full():
    analysis = _analysis([(0, 1, -7.0)], sections=[(0, 10, 0.0)])
    assert section_brightness(analysis, 0, LoudnessRange(-1.0, -20.0)) == 100


@pytest.mark.parametrize("seg_loudness, section_loudness, loudest, quietest",
                         list(itertools.product((-60.0, -5.0, 0.0, 3.0),
                                                (-30.0, -1.0, 2.0),
                                                (-1.0, 4.0),
                                                (-80.0, -1.0))))
def test_section_brightness_always_in_range(seg_loudness, section_loudness, loudest, quietest):
    analysis = _analysis([(0, 1, seg_loudness)], sections=[(0, 10, section_loudness)])
    value = section_brightness(analysis, 0, LoudnessRange(loudest, quietest))
    assert 0 <= value <= 100


@pytest.mark.parametrize("loudness", [-60.0, -0.5, 0.0, 12.0])
def test_previous_mode_first_beat_is_full(loudness):
    analysis = _analysis([(0, 1, loudness), (1, 1, -3.0)])
    assert previous_beat_brightness(analysis, 0, 17, 150) == 100


def test_previous_mode_ratio_of_loudness():
    analysis = _analysis([(0, 1, -10.0), (1, 1, -5.0), (2, 1, -30.0)])
    assert previous_beat_brightness(analysis, 1, 0, 150) == 50
    # -30 / -5 = 600% -> clamped
    assert previous_beat_brightness(analysis, 2, 0, 150) == 100


def test_previous_mode_floors_ratio():
    analysis = _analysis([(0, 1, -3.0), (1, 1, -2.0)])
    assert previous_beat_brightness(analysis, 1, 0, 150) == 66


def test_previous_mode_holds_brightness_for_close_beats():
    # 0.05s apart is less than half of a 150ms transition
    analysis = _analysis([(0, 0.05, -10.0), (0.05, 1, -5.0)])
    assert previous_beat_brightness(analysis, 1, 42, 150) == 42


def test_previous_mode_zero_previous_loudness_is_full():
    analysis = _analysis([(0, 1, 0.0), (1, 1, -5.0)])
    assert previous_beat_brightness(analysis, 1, 0, 150) == 100


@pytest.mark.parametrize("prev, cur", list(itertools.product((-40.0, -1.0, 0.5, 6.0),
                                                            (-40.0, -1.0, 0.0, 6.0))))
def test_previous_mode_always_in_range(prev, cur):
    analysis = _analysis([(0, 1, prev), (1, 1, cur)])
    assert 0 <= previous_beat_brightness(analysis, 1, 0, 150) <= 100


def test_compute_brightness_dispatches_on_mode():
    analysis = _analysis([(0, 1, -10.0), (1, 1, -5.0)])
    rng = loudness_range(analysis.segments)
    assert compute_brightness(PREVIOUS_MODE, analysis, 1, rng, 0, 150) == 50
    assert compute_brightness(SECTION_MODE, analysis, 1, rng, 0, 150) == \
        section_brightness(analysis, 1, rng)


def test_scale_brightness():
    assert scale_brightness(80, 50) == 40
    assert scale_brightness(100, 100) == 100
