import logging
import os
from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(name)s %(levelname)s: %(message)s",
)

from flask import Flask, jsonify
from flask_cors import CORS

app = Flask(__name__)
CORS(app)

# Register blueprints
from routes.spotify import spotify_bp
from routes.beatsync import beatsync_bp, engine

app.register_blueprint(spotify_bp)
app.register_blueprint(beatsync_bp)


@app.get("/api/health")
def health():
    return jsonify({"status": "ok", "beatsync_active": engine.is_active})


if __name__ == "__main__":
    if os.environ.get("BEATSYNC_AUTOSTART", "").lower() in ("1", "true", "yes"):
        engine.start()

    is_dev = os.environ.get("BEATSYNC_ENV") == "dev"
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)), debug=is_dev)
