"""Named light handles and the registry that dispatches beat updates to them.

Lights speak hue/saturation/brightness/kelvin (HSBK) to the rest of the
engine; conversion to the Govee RGB wire format happens here.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

logger = logging.getLogger(__name__)

RESET_KELVIN = 2700
RESET_BRIGHTNESS = 50


@dataclass(frozen=True)
class LightState:
    hue: float  # 0-360
    saturation: float  # 0-100
    kelvin: int


@dataclass(frozen=True)
class LightColor:
    hue: float
    saturation: float
    brightness: float
    kelvin: int


def hsv_to_rgb(h, s, v):
    """Convert HSV to RGB.

    Args:
        h: Hue, 0.0-1.0 (wraps around).
        s: Saturation, 0.0-1.0.
        v: Value, 0.0-1.0.

    Returns:
        Tuple of (r, g, b) with values 0-255.
    """
    h = h % 1.0
    if s == 0.0:
        val = int(v * 255)
        return (val, val, val)

    i = int(h * 6.0)
    f = (h * 6.0) - i
    p = v * (1.0 - s)
    q = v * (1.0 - s * f)
    t = v * (1.0 - s * (1.0 - f))

    i = i % 6
    if i == 0:
        r, g, b = v, t, p
    elif i == 1:
        r, g, b = q, v, p
    elif i == 2:
        r, g, b = p, v, t
    elif i == 3:
        r, g, b = p, q, v
    elif i == 4:
        r, g, b = t, p, v
    else:
        r, g, b = v, p, q

    return (int(round(r * 255)), int(round(g * 255)), int(round(b * 255)))


def rgb_to_hue_sat(r, g, b):
    """Convert 0-255 RGB to (hue 0-360, saturation 0-100)."""
    r, g, b = r / 255.0, g / 255.0, b / 255.0
    hi = max(r, g, b)
    lo = min(r, g, b)
    delta = hi - lo
    if hi == 0 or delta == 0:
        return (0.0, 0.0)

    if hi == r:
        hue = ((g - b) / delta) % 6
    elif hi == g:
        hue = (b - r) / delta + 2
    else:
        hue = (r - g) / delta + 4
    return ((hue * 60.0) % 360.0, delta / hi * 100.0)


class Light:
    """A single Govee light reachable over the LAN."""

    def __init__(self, lan, device_id, ip, sku=""):
        self._lan = lan
        self.device_id = device_id
        self.ip = ip
        self.sku = sku

    @property
    def name(self):
        return self.device_id

    def matches(self, names):
        """True if names is empty or contains this light's id or SKU (case-insensitive)."""
        if not names:
            return True
        return self.device_id.lower() in names or (self.sku or "").lower() in names

    def set_color(self, hue, saturation, brightness, kelvin, transition_ms=0):
        """Send an HSBK colour.

        Govee LAN has no fade parameter, so transition_ms is not transmitted.
        Zero saturation with a kelvin value selects white colour temperature.
        """
        if saturation <= 0 and kelvin:
            self._lan.set_color_temp(self.ip, kelvin)
        else:
            r, g, b = hsv_to_rgb(hue / 360.0, max(0.0, min(100.0, saturation)) / 100.0, 1.0)
            self._lan.set_rgb(self.ip, r, g, b)
        self._lan.set_brightness(self.ip, brightness)

    def get_state(self):
        """Current hue/saturation/kelvin, or None if the light didn't answer."""
        data = self._lan.get_status(self.ip)
        if not data or "color" not in data:
            return None
        c = data["color"]
        hue, saturation = rgb_to_hue_sat(c.get("r", 0), c.get("g", 0), c.get("b", 0))
        return LightState(hue=hue, saturation=saturation, kelvin=data.get("colorTemInKelvin", 0))

    def __repr__(self):
        return f"Light({self.device_id!r}, {self.ip!r})"


class LightRegistry:
    """The filtered set of lights a sync session drives.

    Dispatch is fire-and-forget: each light has its own single-worker queue,
    so its commands run in beat order and never block the scheduler.  Only
    the newest queued command for a light runs; older ones it overtook are
    dropped.  cancel_pending() discards everything still queued, e.g. on a
    track change.
    """

    def __init__(self, lan):
        self._lan = lan
        self._lights = []
        self._executors = {}
        self._lock = threading.Lock()
        self._epoch = 0
        self._latest = {}

    @property
    def lights(self):
        return list(self._lights)

    def __len__(self):
        return len(self._lights)

    def select(self, names=(), force_scan=False):
        """Discover lights and keep the ones matching names (empty = all)."""
        wanted = {n.lower() for n in names}
        selected = []
        for device in self._lan.discover_devices(force=force_scan):
            light = Light(self._lan, device["device_id"], device["ip"], device.get("sku", ""))
            logger.info("Light %s found at %s", light.name, light.ip)
            if light.matches(wanted):
                selected.append(light)
                logger.info("Light %s connected", light.name)
        self._lights = selected
        if wanted and not selected:
            logger.warning("None of the requested lights were found: %s", ", ".join(sorted(wanted)))
        return self.lights

    def set_lights(self, lights):
        self._lights = list(lights)

    def open(self):
        with self._lock:
            for light in self._lights:
                if light.device_id not in self._executors:
                    self._executors[light.device_id] = ThreadPoolExecutor(
                        max_workers=1, thread_name_prefix=f"light-{light.device_id}"
                    )

    def dispatch(self, action):
        """Queue action(light) on every selected light without waiting."""
        self.open()
        with self._lock:
            epoch = self._epoch
            for light in self._lights:
                seq = self._latest.get(light.device_id, 0) + 1
                self._latest[light.device_id] = seq
                self._executors[light.device_id].submit(self._run, action, light, epoch, seq)

    def cancel_pending(self):
        """Drop every queued command that has not started yet."""
        with self._lock:
            self._epoch += 1

    def _run(self, action, light, epoch, seq):
        with self._lock:
            if epoch != self._epoch or seq != self._latest.get(light.device_id):
                return
        try:
            action(light)
        except Exception:
            logger.exception("Light update failed for %s", light.name)

    def power_on(self):
        for light in self._lights:
            self._lan.turn(light.ip, True)

    def reset(self):
        """Restore warm white so the next track starts from a neutral state."""
        for light in self._lights:
            self._lan.set_color_temp(light.ip, RESET_KELVIN)
            self._lan.set_brightness(light.ip, RESET_BRIGHTNESS)

    def close(self, wait=False):
        """Shut the per-light queues down; without wait, queued commands are dropped."""
        with self._lock:
            executors = list(self._executors.values())
            self._executors = {}
            if not wait:
                self._epoch += 1
        for executor in executors:
            executor.shutdown(wait=wait, cancel_futures=not wait)
