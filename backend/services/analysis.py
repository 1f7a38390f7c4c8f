"""Track analysis model: segments, sections and loudness statistics.

Parses the Spotify audio-analysis payload into immutable segment/section
sequences and provides the range lookups the beat scheduler and drift
corrector rely on.
"""

import json
import logging
import os
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_ANALYSIS_DIR = os.path.join(os.path.dirname(__file__), "..", "analysis")


@dataclass(frozen=True)
class Segment:
    start: float
    duration: float
    loudness_max: float

    @property
    def end(self):
        return self.start + self.duration


@dataclass(frozen=True)
class Section:
    start: float
    duration: float
    loudness: float

    @property
    def end(self):
        return self.start + self.duration


@dataclass(frozen=True)
class LoudnessRange:
    loudest: float
    quietest: float

    @property
    def span(self):
        return self.loudest - self.quietest


@dataclass(frozen=True)
class Analysis:
    segments: tuple
    sections: tuple

    @classmethod
    def from_spotify(cls, payload):
        """Build an Analysis from a raw /audio-analysis response.

        Returns None when the payload carries no segments, which callers
        treat as "no track playing yet".
        """
        if not payload or not payload.get("segments"):
            return None
        segments = tuple(
            Segment(
                start=float(s["start"]),
                duration=float(s["duration"]),
                loudness_max=float(s["loudness_max"]),
            )
            for s in payload["segments"]
        )
        sections = tuple(
            Section(
                start=float(s["start"]),
                duration=float(s["duration"]),
                loudness=float(s["loudness"]),
            )
            for s in payload.get("sections", [])
        )
        return cls(segments=segments, sections=sections)

    def __len__(self):
        return len(self.segments)


def _in_range(value, start, end):
    # Half-open [start, end); a reversed range is swapped first
    if end < start:
        start, end = end, start
    return start <= value < end


def loudness_range(segments):
    """Single scan over segments for the loudest and quietest loudness_max.

    Returns None for an empty sequence; scheduling must not start then.
    """
    if not segments:
        return None
    loudest = segments[0].loudness_max
    quietest = segments[0].loudness_max
    for seg in segments[1:]:
        if seg.loudness_max > loudest:
            loudest = seg.loudness_max
        if seg.loudness_max < quietest:
            quietest = seg.loudness_max
    return LoudnessRange(loudest=loudest, quietest=quietest)


def find_section_index(sections, position):
    """Index of the section containing position, or 0 if none does."""
    for i, section in enumerate(sections):
        if _in_range(position, section.start, section.end):
            return i
    return 0


def find_segment_index(segments, progress):
    """Index of the segment containing progress, or None if none does.

    The whole list is scanned and the last match wins, so overlapping
    segments resolve to the later one.
    """
    found = None
    for i, seg in enumerate(segments):
        if _in_range(progress, seg.start, seg.end):
            found = i
    return found


def _safe_filename(title):
    cleaned = re.sub(r"[\\/:*?\"<>|]+", "_", title).strip()
    return cleaned or "untitled"


def write_analysis(payload, title, directory=DEFAULT_ANALYSIS_DIR):
    """Write the raw analysis payload to <directory>/<title>.json.

    Inspection side channel only; failures are logged, never raised.
    Returns the written path, or None on failure.
    """
    path = os.path.join(directory, _safe_filename(title) + ".json")
    try:
        os.makedirs(directory, exist_ok=True)
        with open(path, "w") as f:
            json.dump(payload, f)
    except OSError as exc:
        logger.warning("Failed to write analysis to %s: %s", path, exc)
        return None
    logger.info("Wrote analysis for '%s' to %s", title, path)
    return path
