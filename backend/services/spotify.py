import os
import json
import logging
from dataclasses import dataclass
from urllib.parse import urlencode

import requests

logger = logging.getLogger(__name__)

AUTH_URL = "https://accounts.spotify.com/authorize"
TOKEN_URL = "https://accounts.spotify.com/api/token"
API_BASE = "https://api.spotify.com/v1"
TOKEN_FILE = os.path.join(os.path.dirname(__file__), "..", "spotify_tokens.json")
SCOPES = "user-read-playback-state user-read-currently-playing"
REQUEST_TIMEOUT = 10  # seconds


@dataclass(frozen=True)
class PlaybackSnapshot:
    """Point-in-time playback position; stale by the time it is acted on."""
    progress_seconds: float
    is_playing: bool
    track_id: str = None
    title: str = None
    art_url: str = None


class SpotifyService:
    def __init__(self, token_file=TOKEN_FILE):
        self.client_id = os.environ.get("SPOTIFY_CLIENT_ID", "")
        self.client_secret = os.environ.get("SPOTIFY_CLIENT_SECRET", "")
        self._token_file = token_file
        self._tokens = self._load_tokens()

    def _load_tokens(self):
        try:
            with open(self._token_file) as f:
                return json.load(f)
        except (FileNotFoundError, json.JSONDecodeError):
            return {}

    def _save_tokens(self, tokens):
        self._tokens = tokens
        with open(self._token_file, "w") as f:
            json.dump(tokens, f)

    @property
    def is_authenticated(self):
        return bool(self._tokens.get("access_token"))

    def get_auth_url(self, redirect_uri):
        params = urlencode({
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": redirect_uri,
            "scope": SCOPES,
        })
        return f"{AUTH_URL}?{params}"

    def exchange_code(self, code, redirect_uri):
        resp = requests.post(TOKEN_URL, data={
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": redirect_uri,
        }, timeout=REQUEST_TIMEOUT)
        resp.raise_for_status()
        self._save_tokens(resp.json())

    def _refresh_token(self):
        refresh = self._tokens.get("refresh_token")
        if not refresh:
            raise RuntimeError("No refresh token -- re-authorize via /api/spotify/auth/url")
        resp = requests.post(TOKEN_URL, data={
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": refresh,
            "grant_type": "refresh_token",
        }, timeout=REQUEST_TIMEOUT)
        resp.raise_for_status()
        new_tokens = resp.json()
        # Spotify omits refresh_token when it is unchanged
        new_tokens.setdefault("refresh_token", refresh)
        self._save_tokens(new_tokens)

    def _request(self, method, path, **kwargs):
        """Make an authenticated Spotify API request, refreshing token on 401."""
        url = f"{API_BASE}{path}"
        headers = {"Authorization": f"Bearer {self._tokens.get('access_token', '')}"}
        kwargs.setdefault("timeout", REQUEST_TIMEOUT)
        resp = requests.request(method, url, headers=headers, **kwargs)
        if resp.status_code == 401:
            self._refresh_token()
            headers["Authorization"] = f"Bearer {self._tokens['access_token']}"
            resp = requests.request(method, url, headers=headers, **kwargs)
        resp.raise_for_status()
        # 204 No Content: nothing is playing
        if resp.status_code == 204:
            return None
        return resp.json()

    def get_current_track(self):
        """GET /me/player/currently-playing, return normalized dict or None."""
        try:
            data = self._request("GET", "/me/player/currently-playing")
        except requests.exceptions.RequestException as exc:
            logger.warning("Spotify currently-playing request failed: %s", exc)
            return None
        if not data:
            return None
        item = data.get("item")
        if not item:
            return None
        images = item.get("album", {}).get("images") or []
        return {
            "title": item["name"],
            "artist": ", ".join(a["name"] for a in item.get("artists", [])),
            "album": item.get("album", {}).get("name"),
            "art_url": images[0]["url"] if images else None,
            "progress_ms": data.get("progress_ms"),
            "duration_ms": item.get("duration_ms"),
            "is_playing": bool(data.get("is_playing")),
            "track_id": item["id"],
        }

    def get_playback_snapshot(self):
        """Current position as a PlaybackSnapshot, or None when unusable.

        A missing or zero progress_ms counts as unusable.
        """
        track = self.get_current_track()
        if track is None or not track["progress_ms"]:
            return None
        return PlaybackSnapshot(
            progress_seconds=track["progress_ms"] / 1000,
            is_playing=track["is_playing"],
            track_id=track["track_id"],
            title=track["title"],
            art_url=track["art_url"],
        )

    def get_audio_analysis(self, track_id):
        """GET /audio-analysis/{id}, return the raw payload or None."""
        try:
            return self._request("GET", f"/audio-analysis/{track_id}")
        except requests.exceptions.RequestException as exc:
            logger.warning("Audio analysis request for %s failed: %s", track_id, exc)
            return None
