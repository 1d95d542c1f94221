"""Flask backend for Sora's narrative endpoint."""

import logging

from flask import Flask, current_app, jsonify, request

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    format="[%(asctime)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    level=logging.INFO,
)
log = logging.getLogger("narrative")

from config import get_config, tts_available
from narrative_engine import classify_era
from narrative_service import run_cycle
from progression_state import ProgressionStore

# ---------------------------------------------------------------------------
# Flask App
# ---------------------------------------------------------------------------
app = Flask(__name__)
app.config["PROGRESSION_STORE"] = ProgressionStore()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@app.after_request
def _add_cors_headers(resp):
    for name, value in CORS_HEADERS.items():
        resp.headers[name] = value
    return resp


def _store() -> ProgressionStore:
    return current_app.config["PROGRESSION_STORE"]


def _request_param(name: str) -> str | None:
    """Query string first, then a JSON body on POST."""
    value = request.args.get(name)
    if value is not None:
        return value
    if request.method == "POST":
        body = request.get_json(silent=True)
        if isinstance(body, dict) and body.get(name) is not None:
            return str(body[name]).lower() if isinstance(body[name], bool) else str(body[name])
    return None


def _want_audio(raw: str | None, default: bool) -> bool:
    if raw is None:
        return default
    if default:
        return raw != "false"
    return raw == "true"


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.route("/api/narrative", methods=["GET", "POST", "OPTIONS"])
def api_narrative():
    """Generate the next story beat for the requested (or default) token."""
    if request.method == "OPTIONS":
        return "", 200

    cfg = get_config()
    token = (_request_param("token") or cfg["token_address"] or "").strip()
    want_audio = _want_audio(_request_param("audio"), cfg["audio_default"])

    log.info("api_narrative: token=%s audio=%s", token[:12] or "-", want_audio)
    result = run_cycle(_store(), token, want_audio, cfg)
    return jsonify(result)


@app.route("/api/status")
def api_status():
    """Where the story is right now."""
    state = _store().snapshot()
    return jsonify({
        **state.to_dict(),
        "era": classify_era(state.last_market_cap),
        "audioAvailable": tts_available(get_config()),
    })


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=get_config()["port"], threaded=True)
