"""Beat sync configuration, read from the environment (.env via python-dotenv)."""

import os
from dataclasses import dataclass, field, fields, replace as dc_replace

from services import brightness, colour
from services.analysis import DEFAULT_ANALYSIS_DIR

# Numeric aliases for the legacy -b / -c command-line flags
BRIGHTNESS_MODE_ALIASES = {"1": brightness.SECTION_MODE, "2": brightness.PREVIOUS_MODE}
COLOUR_MODE_ALIASES = {
    "1": colour.WHEEL_MODE,
    "2": colour.ALBUM_MODE,
    "3": colour.HUE_DRIFT_MODE,
    "4": colour.PASSTHROUGH_MODE,
}
TRUE_VALUES = ("1", "true", "yes", "on")


def parse_light_names(value):
    """'Desk, Floor' -> frozenset({'desk', 'floor'}); accepts str or iterable."""
    if not value:
        return frozenset()
    if isinstance(value, str):
        value = value.split(",")
    try:
        names = list(value)
    except TypeError:
        names = None
    if names is None or not all(isinstance(n, str) for n in names):
        raise ValueError(f"light_names must be a string or a list of names, got {value!r}")
    return frozenset(n.strip().lower() for n in names if n.strip())


def _parse_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUE_VALUES


def _percent(name, value):
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number, got {value!r}")
    if not 0 <= value <= 100:
        raise ValueError(f"{name} must be between 0 and 100, got {value}")
    return value


def _positive_int(name, value):
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class Config:
    brightness_mode: str = brightness.SECTION_MODE
    colour_mode: str = colour.HUE_DRIFT_MODE
    max_brightness: float = 100
    light_names: frozenset = field(default_factory=frozenset)
    beat_threshold: float = 40
    min_saturation: float = 0
    poll_interval_ms: int = 2000
    transition_ms: int = 150
    write_analysis: bool = False
    analysis_dir: str = DEFAULT_ANALYSIS_DIR

    def __post_init__(self):
        # Normalise in place; frozen dataclasses need object.__setattr__
        mode = str(self.brightness_mode).strip().lower()
        mode = BRIGHTNESS_MODE_ALIASES.get(mode, mode)
        if mode not in brightness.VALID_MODES:
            raise ValueError(f"Invalid brightness mode '{self.brightness_mode}'. "
                             f"Must be one of {brightness.VALID_MODES}")
        object.__setattr__(self, "brightness_mode", mode)

        mode = str(self.colour_mode).strip().lower().replace("-", "_")
        mode = COLOUR_MODE_ALIASES.get(mode, mode)
        if mode not in colour.VALID_MODES:
            raise ValueError(f"Invalid colour mode '{self.colour_mode}'. "
                             f"Must be one of {colour.VALID_MODES}")
        object.__setattr__(self, "colour_mode", mode)

        object.__setattr__(self, "max_brightness", _percent("max_brightness", self.max_brightness))
        object.__setattr__(self, "beat_threshold", _percent("beat_threshold", self.beat_threshold))
        object.__setattr__(self, "min_saturation", _percent("min_saturation", self.min_saturation))
        object.__setattr__(self, "poll_interval_ms",
                           _positive_int("poll_interval_ms", self.poll_interval_ms))
        object.__setattr__(self, "transition_ms", _positive_int("transition_ms", self.transition_ms))
        object.__setattr__(self, "light_names", parse_light_names(self.light_names))
        object.__setattr__(self, "write_analysis", _parse_bool(self.write_analysis))

    @classmethod
    def from_env(cls, environ=None):
        env = os.environ if environ is None else environ
        defaults = cls.__dataclass_fields__
        return cls(
            brightness_mode=env.get("BEATSYNC_BRIGHTNESS_MODE", defaults["brightness_mode"].default),
            colour_mode=env.get("BEATSYNC_COLOUR_MODE", defaults["colour_mode"].default),
            max_brightness=env.get("BEATSYNC_MAX_BRIGHTNESS", defaults["max_brightness"].default),
            light_names=env.get("BEATSYNC_LIGHTS", ""),
            beat_threshold=env.get("BEATSYNC_THRESHOLD", defaults["beat_threshold"].default),
            min_saturation=env.get("BEATSYNC_MIN_SATURATION", defaults["min_saturation"].default),
            poll_interval_ms=env.get("BEATSYNC_POLL_MS", defaults["poll_interval_ms"].default),
            transition_ms=env.get("BEATSYNC_TRANSITION_MS", defaults["transition_ms"].default),
            write_analysis=env.get("BEATSYNC_WRITE_ANALYSIS", False),
            analysis_dir=env.get("BEATSYNC_ANALYSIS_DIR", DEFAULT_ANALYSIS_DIR),
        )

    def replace(self, **overrides):
        """New validated Config with overrides applied; unknown keys raise ValueError."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown config option(s): {', '.join(sorted(unknown))}")
        return dc_replace(self, **overrides)

    def to_dict(self):
        d = {f.name: getattr(self, f.name) for f in fields(self)}
        d["light_names"] = sorted(self.light_names)
        return d
