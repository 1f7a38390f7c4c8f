"""Debounce gate deciding whether a beat's brightness change is emitted."""


class TriggerPolicy:
    """Hysteresis on brightness: small ripples are swallowed, big jumps emit.

    The threshold is expressed as a percentage of the configured maximum
    brightness, so lowering the maximum lowers the absolute threshold too.
    """

    def __init__(self, beat_threshold, max_brightness):
        self.beat_threshold = beat_threshold
        self.max_brightness = max_brightness
        self.last_brightness = 0

    @property
    def threshold(self):
        return self.beat_threshold * self.max_brightness / 100

    def should_emit(self, brightness):
        """Return True and record brightness if it differs enough from the last emitted value."""
        diff = abs(brightness - self.last_brightness)
        if diff >= self.threshold:
            self.last_brightness = brightness
            return True
        return False

    def reset(self):
        self.last_brightness = 0
