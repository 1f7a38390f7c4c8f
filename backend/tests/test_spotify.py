import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from services.spotify import PlaybackSnapshot, SpotifyService


def _response(status=200, payload=None):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = payload
    if status >= 400:
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status} error")
    return resp


CURRENTLY_PLAYING = {
    "progress_ms": 61500,
    "is_playing": True,
    "item": {
        "id": "track123",
        "name": "Midnight City",
        "duration_ms": 243000,
        "artists": [{"name": "M83"}],
        "album": {"name": "Hurry Up, We're Dreaming",
                  "images": [{"url": "https://i.scdn.co/image/abc"}]},
    },
}


@pytest.fixture
def spotify(tmp_path):
    token_file = tmp_path / "tokens.json"
    token_file.write_text(json.dumps({"access_token": "tok", "refresh_token": "ref"}))
    return SpotifyService(token_file=str(token_file))


def test_is_authenticated_reads_token_file(spotify, tmp_path):
    assert spotify.is_authenticated
    assert not SpotifyService(token_file=str(tmp_path / "missing.json")).is_authenticated


def test_playback_snapshot(spotify):
    with patch("services.spotify.requests.request", return_value=_response(200, CURRENTLY_PLAYING)):
        snapshot = spotify.get_playback_snapshot()
    assert snapshot == PlaybackSnapshot(
        progress_seconds=61.5, is_playing=True, track_id="track123",
        title="Midnight City", art_url="https://i.scdn.co/image/abc",
    )


def test_zero_progress_is_not_usable(spotify):
    payload = dict(CURRENTLY_PLAYING, progress_ms=0)
    with patch("services.spotify.requests.request", return_value=_response(200, payload)):
        assert spotify.get_playback_snapshot() is None


def test_nothing_playing_is_none(spotify):
    with patch("services.spotify.requests.request", return_value=_response(204)):
        assert spotify.get_current_track() is None
        assert spotify.get_playback_snapshot() is None


def test_http_error_is_none(spotify):
    with patch("services.spotify.requests.request", return_value=_response(503)):
        assert spotify.get_playback_snapshot() is None


def test_connection_error_is_none(spotify):
    with patch("services.spotify.requests.request",
               side_effect=requests.exceptions.ConnectionError("offline")):
        assert spotify.get_playback_snapshot() is None


def test_expired_token_is_refreshed(spotify):
    responses = [_response(401), _response(200, CURRENTLY_PLAYING)]
    with patch("services.spotify.requests.request", side_effect=responses) as request, \
            patch("services.spotify.requests.post",
                  return_value=_response(200, {"access_token": "fresh"})):
        track = spotify.get_current_track()
    assert track["track_id"] == "track123"
    assert request.call_args[1]["headers"]["Authorization"] == "Bearer fresh"


def test_audio_analysis(spotify):
    payload = {"segments": [], "sections": []}
    with patch("services.spotify.requests.request", return_value=_response(200, payload)) as request:
        assert spotify.get_audio_analysis("track123") == payload
    assert request.call_args[0][1].endswith("/audio-analysis/track123")


def test_audio_analysis_failure_is_none(spotify):
    with patch("services.spotify.requests.request", return_value=_response(404)):
        assert spotify.get_audio_analysis("track123") is None
