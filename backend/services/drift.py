"""Periodic playback poller that keeps the beat scheduler on the real clock."""

import logging
import threading

from services.analysis import find_segment_index

logger = logging.getLogger(__name__)


class DriftCorrector:
    """Polls playback position every poll_interval_ms and resyncs the scheduler.

    Poll failures are logged and retried on the next tick with no backoff.

    Args:
        source: object with get_playback_snapshot() -> PlaybackSnapshot | None.
        scheduler: BeatScheduler to resync.
        poll_interval_ms: Time between polls.
        on_snapshot: optional callable(snapshot) run before each resync; the
            engine uses it to load a new track's analysis.
    """

    def __init__(self, source, scheduler, poll_interval_ms=2000, on_snapshot=None):
        self._source = source
        self._scheduler = scheduler
        self.poll_interval_ms = poll_interval_ms
        self._on_snapshot = on_snapshot
        self._stop_event = threading.Event()
        self._thread = None
        self.last_snapshot = None

    @property
    def is_running(self):
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="drift-corrector", daemon=True)
        self._thread.start()
        logger.info("Drift corrector polling every %d ms", self.poll_interval_ms)

    def stop(self, timeout=None):
        self._stop_event.set()
        thread = self._thread
        self._thread = None
        if thread and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self):
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Playback poll failed")
            self._stop_event.wait(self.poll_interval_ms / 1000)

    def tick(self):
        """Poll once and resync.  Returns the resolved beat index, or None."""
        snapshot = self._source.get_playback_snapshot()
        if snapshot is None:
            logger.warning("Couldn't get current playback position; retrying in %d ms",
                           self.poll_interval_ms)
            return None
        self.last_snapshot = snapshot

        if self._on_snapshot:
            self._on_snapshot(snapshot)
        if self._stop_event.is_set():
            return None

        analysis = self._scheduler.analysis
        if analysis is None:
            logger.debug("No analysis loaded yet; waiting")
            return None

        index = locate_beat(analysis, snapshot.progress_seconds)
        if index is None:
            logger.debug("Progress %.2fs outside every segment; keeping beat %d",
                         snapshot.progress_seconds, self._scheduler.beat_index)
        self._scheduler.resync(index, snapshot.is_playing)
        return index


def locate_beat(analysis, progress_seconds):
    """Beat index for a playback position (last match wins), or None."""
    return find_segment_index(analysis.segments, progress_seconds)
