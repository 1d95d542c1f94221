"""Gemini API key pool with rate-limit cooldown tracking.

Cooldown only orders keys: a cooling key is tried after the fresh ones, and
when every key is cooling the whole pool is tried anyway.
"""

import logging
import threading
import time

log = logging.getLogger("narrative")

_lock = threading.Lock()
_cooldowns: dict[str, float] = {}  # api_key -> cooldown_expires_at

COOLDOWN_SECONDS = 60


def key_suffix(api_key: str) -> str:
    return f"...{api_key[-6:]}"


def _tier_order(k: dict) -> int:
    return 0 if k.get("tier", "free") == "free" else 1


def load_keys(gemini_cfg: dict) -> list[dict]:
    """Return the configured {"key", "tier"} entries, blank keys dropped."""
    return [k for k in gemini_cfg.get("api_keys", []) if k.get("key")]


def get_available_keys(gemini_cfg: dict) -> list[dict]:
    """Return keys not in cooldown, free tier first."""
    keys = load_keys(gemini_cfg)
    now = time.time()
    with _lock:
        available = [k for k in keys if _cooldowns.get(k["key"], 0) <= now]
    available.sort(key=_tier_order)
    return available


def get_keys_to_try(gemini_cfg: dict) -> list[dict]:
    """Keys for one request: the fresh ones, or the whole pool if all are cooling."""
    available = get_available_keys(gemini_cfg)
    if available:
        return available
    return sorted(load_keys(gemini_cfg), key=_tier_order)


def mark_rate_limited(api_key: str, cooldown: int = COOLDOWN_SECONDS):
    """Put a key on cooldown for `cooldown` seconds."""
    with _lock:
        _cooldowns[api_key] = time.time() + cooldown
    log.info("    gemini_key_mgr: key %s cooling down for %ds", key_suffix(api_key), cooldown)


def clear_cooldowns():
    with _lock:
        _cooldowns.clear()
