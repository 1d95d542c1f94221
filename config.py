"""Environment-provided configuration for the narrative endpoint."""

import json
import logging
import os

log = logging.getLogger("narrative")

DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"
DEFAULT_PORT = 5051

_config_cache: dict | None = None


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        log.warning("config: %s=%r is not a number, using %s", name, raw, default)
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw not in ("false", "0", "no", "off")


def _load_tts_credentials(raw: str) -> dict:
    """Parse the service-account JSON blob. Malformed blobs count as empty."""
    if not raw.strip():
        return {}
    try:
        creds = json.loads(raw)
    except json.JSONDecodeError as e:
        log.warning("config: GOOGLE_TTS_CREDENTIALS is not valid JSON — %s", e)
        return {}
    if not isinstance(creds, dict):
        log.warning("config: GOOGLE_TTS_CREDENTIALS is not a JSON object")
        return {}
    return creds


def _load_gemini_cfg() -> dict:
    # "k1,k2" → [{"key": "k1", "tier": "free"}, ...]
    keys = [k.strip() for k in os.environ.get("GEMINI_API_KEY", "").split(",") if k.strip()]
    return {
        "api_keys": [{"key": k, "tier": "free"} for k in keys],
        "model": os.environ.get("GEMINI_MODEL", "") or DEFAULT_GEMINI_MODEL,
        "timeout": _env_float("GEMINI_TIMEOUT", 30.0),
    }


def get_config(refresh: bool = False) -> dict:
    """Return the process configuration, read from the environment once."""
    global _config_cache
    if _config_cache is not None and not refresh:
        return _config_cache

    _config_cache = {
        "gemini": _load_gemini_cfg(),
        "tts": {
            "credentials": _load_tts_credentials(os.environ.get("GOOGLE_TTS_CREDENTIALS", "")),
            "timeout": _env_float("TTS_TIMEOUT", 30.0),
        },
        "price_feed": {
            "timeout": _env_float("PRICE_FEED_TIMEOUT", 10.0),
        },
        "token_address": os.environ.get("TOKEN_ADDRESS", "").strip(),
        "audio_default": _env_bool("NARRATIVE_AUDIO_DEFAULT", True),
        "port": int(_env_float("PORT", DEFAULT_PORT)),
    }
    log.info(
        "config: loaded — model=%s gemini_keys=%d tts=%s token=%s audio_default=%s",
        _config_cache["gemini"]["model"],
        len(_config_cache["gemini"]["api_keys"]),
        "yes" if tts_available(_config_cache) else "no",
        "set" if _config_cache["token_address"] else "unset",
        _config_cache["audio_default"],
    )
    return _config_cache


def tts_available(cfg: dict) -> bool:
    """TTS is usable only when the credential blob carries a private key."""
    return bool(cfg.get("tts", {}).get("credentials", {}).get("private_key"))
