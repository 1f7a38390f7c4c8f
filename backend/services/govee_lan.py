"""Govee LAN UDP transport used to drive beat-synced lights.

Beat updates go straight to each device as a JSON datagram on port 4003,
with no cloud round trip or rate limit.  Devices are found by multicasting
a scan request to 239.255.255.250:4001; they answer on port 4002.
"""

import json
import logging
import socket
import struct
import threading
import time

logger = logging.getLogger(__name__)

MULTICAST_ADDR = "239.255.255.250"
SCAN_PORT = 4001
LISTEN_PORT = 4002
CONTROL_PORT = 4003
SCAN_TIMEOUT = 3  # seconds to wait for discovery responses
DEVICE_CACHE_TTL = 300  # 5 minutes
STATUS_TIMEOUT = 1  # seconds to wait for devStatus response
MIN_KELVIN = 2000
MAX_KELVIN = 9000


def _encode(cmd, data):
    return json.dumps({"msg": {"cmd": cmd, "data": data}}).encode("utf-8")


class GoveeLanService:
    """Discovers Govee lights and sends them colour commands over UDP.

    The device cache is guarded by a lock since discovery may run from a
    request thread while the beat scheduler is dispatching.  Every control
    call is a fire-and-forget datagram; only get_status waits for a reply.
    """

    def __init__(self):
        self._device_cache = {}  # device_id -> {device_id, ip, sku}
        self._cache_time = 0.0
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def discover_devices(self, force=False):
        """Return [{device_id, ip, sku}, ...] for devices on the LAN.

        Results are cached for DEVICE_CACHE_TTL seconds unless force=True.
        """
        with self._lock:
            age = time.monotonic() - self._cache_time
            if self._device_cache and not force and age < DEVICE_CACHE_TTL:
                return list(self._device_cache.values())

        # Scan without the lock; it blocks for SCAN_TIMEOUT seconds
        found = self._run_scan()
        with self._lock:
            self._device_cache = {device["device_id"]: device for device in found}
            self._cache_time = time.monotonic()
            return list(self._device_cache.values())

    def _run_scan(self):
        """Multicast one scan request and gather replies until SCAN_TIMEOUT."""
        try:
            listener = self._open_listener()
        except OSError as exc:
            logger.error("Can't listen for scan replies on port %d: %s", LISTEN_PORT, exc)
            return []

        devices = []
        with listener:
            try:
                self._send_scan()
                for device in self._collect_replies(listener):
                    devices.append(device)
            except OSError as exc:
                logger.error("Govee LAN scan failed: %s", exc)

        logger.info("Govee LAN scan complete: found %d device(s)", len(devices))
        return devices

    @staticmethod
    def _open_listener():
        # Joined before the request goes out so early replies aren't lost
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(("", LISTEN_PORT))
            group = socket.inet_aton(MULTICAST_ADDR) + struct.pack("=I", socket.INADDR_ANY)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, group)
        except OSError:
            sock.close()
            raise
        return sock

    @staticmethod
    def _send_scan():
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP) as sock:
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, 1)
            sock.sendto(_encode("scan", {"account_topic": "reserve"}), (MULTICAST_ADDR, SCAN_PORT))

    def _collect_replies(self, sock):
        """Yield each distinct device that answers before the scan deadline."""
        deadline = time.monotonic() + SCAN_TIMEOUT
        seen = set()
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            sock.settimeout(remaining)
            try:
                data, _addr = sock.recvfrom(4096)
            except socket.timeout:
                return
            device = self.parse_scan_response(data)
            if device is None or device["device_id"] in seen:
                continue
            seen.add(device["device_id"])
            logger.debug("Govee device %s answered from %s", device["device_id"], device["ip"])
            yield device

    @staticmethod
    def parse_scan_response(data):
        """Scan reply datagram -> {device_id, ip, sku}, or None."""
        try:
            reply = json.loads(data.decode("utf-8")).get("msg", {})
            if reply.get("cmd") != "scan":
                return None
            info = reply.get("data", {})
            ip, device_id = info.get("ip"), info.get("device")
        except (json.JSONDecodeError, UnicodeDecodeError, AttributeError) as exc:
            logger.warning("Ignoring malformed scan reply: %s", exc)
            return None
        if not ip or not device_id:
            return None
        return {"device_id": device_id, "ip": ip, "sku": info.get("sku", "")}

    # ------------------------------------------------------------------
    # Control (fire-and-forget UDP)
    # ------------------------------------------------------------------

    @staticmethod
    def _send(ip, cmd, data):
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP) as sock:
            try:
                sock.sendto(_encode(cmd, data), (ip, CONTROL_PORT))
            except OSError as exc:
                logger.warning("Failed to send %s to %s: %s", cmd, ip, exc)

    def turn(self, ip, on):
        self._send(ip, "turn", {"value": 1 if on else 0})

    def set_brightness(self, ip, value):
        """Set brightness, clamped to 1-100 (0 is rejected by the firmware)."""
        self._send(ip, "brightness", {"value": max(1, min(100, int(round(value))))})

    def set_rgb(self, ip, r, g, b):
        r, g, b = (max(0, min(255, int(c))) for c in (r, g, b))
        self._send(ip, "colorwc", {
            "color": {"r": r, "g": g, "b": b},
            "colorTemInKelvin": 0,
        })

    def set_color_temp(self, ip, kelvin):
        kelvin = max(MIN_KELVIN, min(MAX_KELVIN, int(kelvin)))
        self._send(ip, "colorwc", {
            "color": {"r": 0, "g": 0, "b": 0},
            "colorTemInKelvin": kelvin,
        })

    # ------------------------------------------------------------------
    # Status query (request-response over UDP)
    # ------------------------------------------------------------------

    def get_status(self, ip):
        """Query devStatus; returns the reply's data dict or None on timeout/error.

        Blocks for up to STATUS_TIMEOUT seconds.
        """
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.settimeout(STATUS_TIMEOUT)
            sock.sendto(_encode("devStatus", {}), (ip, CONTROL_PORT))
            data, _addr = sock.recvfrom(4096)
            return json.loads(data.decode("utf-8")).get("msg", {}).get("data")
        except socket.timeout:
            logger.debug("Status query to %s timed out", ip)
            return None
        except (OSError, json.JSONDecodeError, UnicodeDecodeError, AttributeError) as exc:
            logger.warning("Status query to %s failed: %s", ip, exc)
            return None
        finally:
            sock.close()
