"""Beat scheduler: walks a track's segments on a chain of one-shot timers.

Each firing evaluates one beat (brightness -> trigger gate -> colour ->
dispatch), advances the beat index and arms the next timer.  The drift
corrector realigns the chain through resync(), which is the only way the
poller touches scheduler state.

States:
    idle      no analysis loaded
    running   timer armed, not paused
    paused    no timer armed, waiting for a resync with is_playing=True
    finished  every segment has been evaluated
"""

import logging
import threading

from services.analysis import loudness_range
from services.brightness import compute_brightness, scale_brightness
from services.trigger import TriggerPolicy

logger = logging.getLogger(__name__)

IDLE = "idle"
RUNNING = "running"
PAUSED = "paused"
FINISHED = "finished"


def start_timer(delay, callback):
    """Default timer factory: a daemon threading.Timer, already started."""
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class BeatScheduler:
    """Owns the beat index, the pause flag and the single active timer.

    Args:
        config: Config for the run.
        colour: ColourSelector applied on emitted beats.
        registry: LightRegistry the colour selector dispatches to.
        timer_factory: callable(delay_seconds, callback) returning an object
            with cancel(); defaults to a daemon threading.Timer.
        on_beat: optional callable(beat_index, brightness, emitted) invoked
            after every evaluated beat.
    """

    def __init__(self, config, colour, registry, timer_factory=start_timer, on_beat=None):
        self.config = config
        self.colour = colour
        self.registry = registry
        self._timer_factory = timer_factory
        self._on_beat = on_beat

        # Guards everything below; re-entrant so resync can process inline
        self._lock = threading.RLock()
        self._timer = None
        self._generation = 0

        self.analysis = None
        self.loudness = None
        self.beat_index = 0
        self.paused = False
        self.trigger = TriggerPolicy(config.beat_threshold, config.max_brightness)
        self.beats_evaluated = 0
        self.beats_emitted = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self):
        with self._lock:
            if self.analysis is None:
                return IDLE
            if self.beat_index >= len(self.analysis.segments):
                return FINISHED
            if self.paused:
                return PAUSED
            return RUNNING

    def load_analysis(self, analysis):
        """Start a new track at beat 0 and evaluate it immediately.

        Returns False (and stays idle) if the analysis has no segments.
        """
        with self._lock:
            self._cancel_timer()
            self.registry.cancel_pending()
            loudness = loudness_range(analysis.segments) if analysis else None
            if loudness is None:
                logger.info("Analysis has no segments; scheduler stays idle")
                self.analysis = None
                return False

            self.analysis = analysis
            self.loudness = loudness
            self.beat_index = 0
            self.paused = False
            self.beats_evaluated = 0
            self.beats_emitted = 0
            self.trigger.reset()
            self.colour.reset()
            logger.info(
                "Loaded analysis: %d segments, %d sections, loudness %.1f..%.1f dB",
                len(analysis.segments), len(analysis.sections),
                loudness.quietest, loudness.loudest,
            )
            self._process_beat()
            return True

    def resync(self, beat_index, is_playing):
        """Realign to observed playback.

        Cancels the armed timer, applies the pause flag and, if beat_index
        is not None, jumps to it.  When playing, the beat at the (new) index
        is evaluated straight away.
        """
        with self._lock:
            if self.analysis is None:
                return
            self._cancel_timer()
            was_paused = self.paused
            self.paused = not is_playing
            if beat_index is not None:
                self.beat_index = max(0, min(len(self.analysis.segments), beat_index))

            if self.paused:
                if not was_paused:
                    logger.info("Playback paused at beat %d", self.beat_index)
                return
            if was_paused:
                logger.info("Playback resumed at beat %d", self.beat_index)
            self._process_beat()

    def stop(self):
        """Cancel the timer and any queued light commands, then drop the analysis."""
        with self._lock:
            self._cancel_timer()
            self.registry.cancel_pending()
            self.analysis = None
            self.loudness = None
            self.beat_index = 0
            self.paused = False

    def get_status(self):
        with self._lock:
            return {
                "state": self.state,
                "beat_index": self.beat_index,
                "beats": len(self.analysis.segments) if self.analysis else 0,
                "paused": self.paused,
                "last_brightness": self.trigger.last_brightness,
                "beats_evaluated": self.beats_evaluated,
                "beats_emitted": self.beats_emitted,
            }

    # ------------------------------------------------------------------
    # Timer chain
    # ------------------------------------------------------------------

    def _cancel_timer(self):
        # Bumping the generation also disarms a callback already waiting on the lock
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _arm_timer(self, delay):
        self._cancel_timer()
        generation = self._generation
        self._timer = self._timer_factory(delay, lambda: self._on_timer(generation))

    def _on_timer(self, generation):
        with self._lock:
            if generation != self._generation or self.paused:
                return
            self._timer = None
            try:
                self._process_beat()
            except Exception:
                logger.exception("Beat %d failed", self.beat_index)

    def _process_beat(self):
        """Evaluate the beat at beat_index, advance, and arm the next timer.

        Caller holds the lock.
        """
        analysis = self.analysis
        segments = analysis.segments
        if self.beat_index >= len(segments):
            return

        index = self.beat_index
        brightness = compute_brightness(
            self.config.brightness_mode, analysis, index, self.loudness,
            self.trigger.last_brightness, self.config.transition_ms,
        )
        brightness = scale_brightness(brightness, self.config.max_brightness)

        emitted = self.trigger.should_emit(brightness)
        if emitted:
            self.beats_emitted += 1
            try:
                self.colour.apply(brightness, self.registry)
            except Exception:
                logger.exception("Colour dispatch failed on beat %d", index)
        self.beats_evaluated += 1
        logger.debug("Beat %d: brightness=%.1f emitted=%s", index, brightness, emitted)

        if self._on_beat:
            self._on_beat(index, brightness, emitted)

        self.beat_index += 1
        if self.beat_index < len(segments):
            # Wait for the next beat's own duration before evaluating it
            self._arm_timer(segments[self.beat_index].duration)
        else:
            logger.info("Reached the end of the track after %d beats", len(segments))
