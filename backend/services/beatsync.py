"""Beat sync engine: drives Govee lights from Spotify's track analysis.

Ties the pieces together for one listening session:
  - DriftCorrector polls Spotify for the playback position,
  - a track change fetches the new audio analysis (and album palette),
  - BeatScheduler walks the analysis segments on its own timer chain,
  - every poll realigns the scheduler to the observed position.

Usage:
    engine = BeatSyncEngine(spotify_service, govee_lan_service)
    engine.start(Config.from_env())
    ...
    engine.stop()
"""

import logging
import threading

from config import Config
from services import colour as colour_modes
from services.analysis import Analysis, write_analysis
from services.colour import ColourSelector
from services.drift import DriftCorrector
from services.lights import LightRegistry
from services.palette import fetch_palette
from services.scheduler import BeatScheduler, IDLE, start_timer

logger = logging.getLogger(__name__)

STOP_JOIN_TIMEOUT = 2.0  # seconds to wait for the poll thread on stop


class BeatSyncEngine:
    def __init__(self, spotify, govee_lan, config=None, timer_factory=start_timer,
                 palette_fetcher=fetch_palette, registry=None):
        self._spotify = spotify
        self._registry = registry or LightRegistry(govee_lan)
        self.config = config or Config()
        self._timer_factory = timer_factory
        self._palette_fetcher = palette_fetcher
        self._lock = threading.RLock()
        self._running = False

        self._colour = None
        self._scheduler = None
        self._drift = None

        # Current track
        self._track_id = None
        self._track_title = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def is_active(self):
        return self._running

    @property
    def scheduler(self):
        return self._scheduler

    @property
    def colour(self):
        return self._colour

    @property
    def drift(self):
        return self._drift

    def start(self, config=None):
        """Select lights and start polling; beats begin once a track is seen."""
        if self._running:
            self.stop()
        with self._lock:
            if config is not None:
                self.config = config
            cfg = self.config

            self._registry.select(cfg.light_names)
            self._registry.open()
            self._registry.power_on()

            self._colour = ColourSelector(cfg.colour_mode, cfg.min_saturation, cfg.transition_ms)
            self._scheduler = BeatScheduler(cfg, self._colour, self._registry,
                                            timer_factory=self._timer_factory)
            self._drift = DriftCorrector(self._spotify, self._scheduler, cfg.poll_interval_ms,
                                         on_snapshot=self._on_snapshot)
            self._track_id = None
            self._track_title = None
            self._running = True
            self._drift.start()

        logger.info("Beat sync started: brightness=%s colour=%s lights=%d",
                    cfg.brightness_mode, cfg.colour_mode, len(self._registry))

    def stop(self):
        """Stop polling, cancel the beat timer and return lights to warm white."""
        with self._lock:
            was_running = self._running
            self._running = False
            drift, scheduler = self._drift, self._scheduler

        # Outside the lock: the poll thread may be waiting on it in load_track
        if drift:
            drift.stop(timeout=STOP_JOIN_TIMEOUT)
        if scheduler:
            scheduler.stop()

        with self._lock:
            self._track_id = None
            self._track_title = None

        if was_running:
            try:
                self._registry.reset()
            except Exception:
                logger.exception("Failed to reset lights")
            self._registry.close()
            logger.info("Beat sync stopped")

    def set_config(self, config):
        """Apply a new Config, restarting the session if one is running."""
        with self._lock:
            running = self._running
            self.config = config
        if running:
            self.start(config)

    def set_album_palette(self, palette):
        """Replace the album colours; also reseeds the current colour index."""
        with self._lock:
            if self._colour is not None:
                self._colour.set_palette(palette)

    def get_status(self):
        with self._lock:
            snapshot = self._drift.last_snapshot if self._drift else None
            status = {
                "active": self._running,
                "config": self.config.to_dict(),
                "track_id": self._track_id,
                "track_title": self._track_title,
                "lights": [light.name for light in self._registry.lights],
                "scheduler": self._scheduler.get_status() if self._scheduler else {"state": IDLE},
                "progress_seconds": snapshot.progress_seconds if snapshot else None,
                "is_playing": snapshot.is_playing if snapshot else None,
            }
            if self._colour is not None and self._colour.mode == colour_modes.ALBUM_MODE:
                status["palette"] = self._colour.palette
            return status

    # ------------------------------------------------------------------
    # Track lifecycle
    # ------------------------------------------------------------------

    def _on_snapshot(self, snapshot):
        if not self._running or snapshot.track_id == self._track_id:
            return
        self.load_track(snapshot.track_id, snapshot.title, snapshot.art_url)

    def load_track(self, track_id, title=None, art_url=None):
        """Fetch a track's analysis and restart the scheduler on it.

        Returns True once the scheduler is running on the new track.  If the
        analysis is missing the engine keeps polling and retries on the next
        tick.  The fetches run without the engine lock held.
        """
        with self._lock:
            if not self._running:
                return False
            config, colour, scheduler = self.config, self._colour, self._scheduler
            scheduler.stop()
            self._track_id = None
            self._track_title = title
        logger.info("Track changed: %s (%s)", title or "unknown", track_id)

        payload = self._spotify.get_audio_analysis(track_id)
        analysis = Analysis.from_spotify(payload)
        if analysis is None:
            logger.info("No usable analysis for %s yet; waiting", track_id)
            return False

        if config.write_analysis:
            write_analysis(payload, title or track_id, config.analysis_dir)

        palette = None
        if config.colour_mode == colour_modes.ALBUM_MODE:
            palette = self._palette_fetcher(art_url)

        with self._lock:
            if not self._running or self._scheduler is not scheduler:
                logger.info("Session ended while loading %s; discarding analysis", track_id)
                return False
            if palette is not None:
                colour.set_palette(palette)
            self._track_id = track_id
            return scheduler.load_analysis(analysis)
