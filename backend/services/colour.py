"""Colour selection for emitted beats.

Modes:
  - wheel:       step around the colour wheel on every emitted beat.
  - album:       jump between colours taken from the album artwork.
  - hue_drift:   keep each light's current hue, jitter saturation around the
                 saturation the lights had when the show started.
  - passthrough: keep each light's current colour, change brightness only.
"""

import logging
import random
import threading

logger = logging.getLogger(__name__)

WHEEL_MODE = "wheel"
ALBUM_MODE = "album"
HUE_DRIFT_MODE = "hue_drift"
PASSTHROUGH_MODE = "passthrough"
VALID_MODES = (WHEEL_MODE, ALBUM_MODE, HUE_DRIFT_MODE, PASSTHROUGH_MODE)

WHEEL_STEP = 50  # degrees per emitted beat
WHEEL_KELVIN = 9000
SATURATION_SPREAD = 50


class ColourSelector:
    """Holds the running colour state for one track and applies it to lights.

    Usage:
        selector = ColourSelector("wheel", min_saturation=0, transition_ms=150)
        selector.apply(80, registry)
    """

    def __init__(self, mode, min_saturation=0, transition_ms=150, rng=None):
        if mode not in VALID_MODES:
            raise ValueError(f"Invalid colour mode '{mode}'. Must be one of {VALID_MODES}")
        self.mode = mode
        self.min_saturation = min_saturation
        self.transition_ms = transition_ms
        self._rng = rng or random.Random()
        # Per-light dispatch threads touch the saturation state
        self._lock = threading.Lock()

        self._palette = []
        self._index = 0
        self._hue = 0
        self._initial_saturation = None
        self._target_saturation = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def reset(self):
        """Forget running hue and saturation state (track change)."""
        with self._lock:
            self._hue = 0
            self._initial_saturation = None
            self._target_saturation = None

    @property
    def palette(self):
        return list(self._palette)

    @property
    def index(self):
        return self._index

    @property
    def initial_saturation(self):
        return self._initial_saturation

    @property
    def target_saturation(self):
        return self._target_saturation

    def set_palette(self, palette):
        """Replace the album palette and reseed the current colour index.

        Args:
            palette: Sequence of (hue 0-360, saturation 0-100) pairs.
        """
        self._palette = [tuple(p) for p in palette]
        self._index = self._random_index()
        logger.info("Album palette updated: %d colour(s)", len(self._palette))

    def _random_index(self):
        """Random palette index different from the current one."""
        if len(self._palette) < 2:
            return 0
        idx = self._rng.randint(0, len(self._palette) - 1)
        while idx == self._index:
            idx = self._rng.randint(0, len(self._palette) - 1)
        return idx

    def _next_saturation(self):
        """Pick a new target saturation around the baseline, distinct from the last."""
        with self._lock:
            if self._initial_saturation is None:
                return
            initial = self._initial_saturation
            prev = self._target_saturation
            sat = prev
            while sat == prev:
                sat = self._rng.randint(int(round(initial)) - SATURATION_SPREAD,
                                        int(round(initial)) + SATURATION_SPREAD)
                sat = max(initial / 2, min(100, sat))
            self._target_saturation = sat

    def floor_saturation(self, saturation):
        """Lift a saturation toward the configured minimum."""
        return (1 - self.min_saturation / 100) * saturation + self.min_saturation

    # ------------------------------------------------------------------
    # Emission
    # ------------------------------------------------------------------

    def apply(self, brightness, registry):
        """Compute the next colour and dispatch it to every selected light.

        Returns the (hue, saturation) pair sent to all lights for the wheel
        and album modes; None for the per-light modes.
        """
        if self.mode == WHEEL_MODE:
            self._hue += WHEEL_STEP
            hue, sat, kelvin = self._hue % 360, 100, WHEEL_KELVIN
            registry.dispatch(
                lambda light: light.set_color(hue, sat, brightness, kelvin, self.transition_ms)
            )
            return (hue, sat)

        if self.mode == ALBUM_MODE:
            if not self._palette:
                logger.debug("Album mode without a palette; skipping beat")
                return None
            self._index = self._random_index()
            hue, sat = self._palette[self._index]
            registry.dispatch(
                lambda light: light.set_color(hue, sat, brightness, WHEEL_KELVIN, self.transition_ms)
            )
            return (hue, sat)

        if self.mode == HUE_DRIFT_MODE:
            self._next_saturation()
            registry.dispatch(lambda light: self._drift_light(light, brightness))
            return None

        registry.dispatch(lambda light: self._passthrough_light(light, brightness))
        return None

    def _drift_light(self, light, brightness):
        state = light.get_state()
        if state is None:
            logger.debug("No state from %s; skipping this beat", light.name)
            return
        with self._lock:
            if self._initial_saturation is None and state.saturation:
                self._initial_saturation = state.saturation
                self._target_saturation = state.saturation
            target = self._target_saturation
        if target is None:
            target = state.saturation
        light.set_color(state.hue, self.floor_saturation(target), brightness,
                        state.kelvin, self.transition_ms)

    def _passthrough_light(self, light, brightness):
        state = light.get_state()
        if state is None:
            logger.debug("No state from %s; skipping this beat", light.name)
            return
        light.set_color(state.hue, state.saturation, brightness, state.kelvin, self.transition_ms)
