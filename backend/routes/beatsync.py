from flask import Blueprint, jsonify, request
from config import Config
from services.beatsync import BeatSyncEngine
from services.govee_lan import GoveeLanService
from routes.spotify import spotify

beatsync_bp = Blueprint("beatsync", __name__)
govee_lan = GoveeLanService()
engine = BeatSyncEngine(spotify, govee_lan, Config.from_env())


def _config_from_request():
    """Current config with the request's JSON overrides applied."""
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object of config options")
    return engine.config.replace(**data)


@beatsync_bp.get("/api/beatsync/status")
def beatsync_status():
    return jsonify(engine.get_status())


@beatsync_bp.post("/api/beatsync/start")
def beatsync_start():
    if not spotify.is_authenticated:
        return jsonify({"error": "Not authorized"}), 401
    try:
        config = _config_from_request()
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    try:
        engine.start(config)
        return jsonify(engine.get_status())
    except Exception as e:
        return jsonify({"error": str(e)}), 502


@beatsync_bp.post("/api/beatsync/stop")
def beatsync_stop():
    engine.stop()
    return "", 204


@beatsync_bp.post("/api/beatsync/config")
def beatsync_config():
    try:
        config = _config_from_request()
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    engine.set_config(config)
    return jsonify(engine.get_status())
