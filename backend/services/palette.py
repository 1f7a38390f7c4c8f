"""Album-art colour palette extraction for the album colour mode.

The artwork is quantised with Pillow and each palette colour is converted
to a (hue 0-360, saturation 0-100) pair.  Near-grey colours are dropped
since they read as plain white on a light.
"""

import io
import logging

import numpy as np
import requests
from PIL import Image

logger = logging.getLogger(__name__)

PALETTE_SIZE = 5
THUMBNAIL_SIZE = (64, 64)
MIN_SATURATION = 15  # percent; below this a colour counts as grey
FALLBACK_PALETTE = [(0, 100), (200, 100)]
FETCH_TIMEOUT = 5  # seconds


def extract_palette(image_bytes, count=PALETTE_SIZE):
    """Return [(hue, saturation), ...] ordered by how much of the image each covers.

    Always returns at least two entries so album mode can alternate.
    """
    try:
        img = Image.open(io.BytesIO(image_bytes)).convert("RGB")
    except (OSError, ValueError) as exc:
        logger.warning("Could not decode album art: %s", exc)
        return list(FALLBACK_PALETTE)

    img.thumbnail(THUMBNAIL_SIZE)
    quantized = img.quantize(colors=count)
    raw = quantized.getpalette()[: count * 3]
    rgb = np.array(raw, dtype=np.float64).reshape(-1, 3) / 255.0

    # Pixel share of each palette entry, for ordering
    counts = np.bincount(np.asarray(quantized).ravel(), minlength=len(rgb))[: len(rgb)]

    hi = rgb.max(axis=1)
    lo = rgb.min(axis=1)
    delta = hi - lo
    saturation = np.where(hi > 0, delta / np.where(hi > 0, hi, 1), 0.0) * 100

    r, g, b = rgb[:, 0], rgb[:, 1], rgb[:, 2]
    safe_delta = np.where(delta > 0, delta, 1)
    hue = np.select(
        [delta == 0, hi == r, hi == g],
        [0.0, ((g - b) / safe_delta) % 6, (b - r) / safe_delta + 2],
        default=(r - g) / safe_delta + 4,
    )
    hue = (hue * 60.0) % 360.0

    palette = []
    for idx in np.argsort(-counts, kind="stable"):
        if counts[idx] == 0 or saturation[idx] < MIN_SATURATION:
            continue
        entry = (int(round(hue[idx])) % 360, int(round(saturation[idx])))
        if entry not in palette:
            palette.append(entry)

    if len(palette) < 2:
        logger.info("Album art has fewer than two usable colours; using fallback palette")
        palette.extend(p for p in FALLBACK_PALETTE if p not in palette)
    return palette


def fetch_palette(url, count=PALETTE_SIZE):
    """Download album art and extract its palette; fallback palette on failure."""
    if not url:
        return list(FALLBACK_PALETTE)
    try:
        resp = requests.get(url, timeout=FETCH_TIMEOUT)
        resp.raise_for_status()
    except requests.exceptions.RequestException as exc:
        logger.warning("Failed to fetch album art %s: %s", url, exc)
        return list(FALLBACK_PALETTE)
    return extract_palette(resp.content, count)
