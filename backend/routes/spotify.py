import os

from flask import Blueprint, jsonify, request
from services.spotify import SpotifyService

spotify_bp = Blueprint("spotify", __name__)
spotify = SpotifyService()

OAUTH_REDIRECT_URI = os.environ.get(
    "SPOTIFY_REDIRECT_URI", "http://localhost:5000/api/spotify/auth/callback"
)


@spotify_bp.get("/api/spotify/auth/url")
def auth_url():
    return jsonify({"url": spotify.get_auth_url(OAUTH_REDIRECT_URI)})


@spotify_bp.get("/api/spotify/auth/callback")
def auth_callback():
    code = request.args.get("code")
    if not code:
        return jsonify({"error": "Missing authorization code"}), 400
    try:
        spotify.exchange_code(code, OAUTH_REDIRECT_URI)
        return "<h1>Spotify authorized successfully!</h1><p>You can close this tab.</p>"
    except Exception as e:
        return jsonify({"error": str(e)}), 502


@spotify_bp.post("/api/spotify/auth/exchange")
def auth_exchange():
    """Manual code exchange -- paste the code from the redirect URL."""
    data = request.get_json(silent=True)
    code = data.get("code") if data else None
    if not code:
        return jsonify({"error": "code is required"}), 400
    try:
        spotify.exchange_code(code, OAUTH_REDIRECT_URI)
        return jsonify({"authenticated": True})
    except Exception as e:
        return jsonify({"error": str(e)}), 502


@spotify_bp.get("/api/spotify/auth/status")
def auth_status():
    return jsonify({"authenticated": spotify.is_authenticated})


@spotify_bp.get("/api/spotify/now-playing")
def now_playing():
    if not spotify.is_authenticated:
        return jsonify({"error": "Not authorized"}), 401
    track = spotify.get_current_track()
    if track is None:
        return jsonify({"nothing_playing": True})
    return jsonify(track)
