"""Bridge to the Google Gemini API for story-beat generation."""

import json
import logging
import ssl
import time
import urllib.error
import urllib.request

from gemini_key_manager import get_keys_to_try, key_suffix, load_keys, mark_rate_limited

log = logging.getLogger("narrative")

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"
DEFAULT_MODEL = "gemini-2.0-flash"
GEMINI_TIMEOUT = 30  # seconds

# Build SSL context using certifi certificates (fixes macOS SSL issues)
try:
    import certifi
    _ssl_ctx = ssl.create_default_context(cafile=certifi.where())
except ImportError:
    _ssl_ctx = ssl.create_default_context()


class GeminiError(Exception):
    """Gemini could not produce a usable response."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_request_body(system_prompt: str, prompt: str,
                       temperature: float = 0.9, max_tokens: int = 256) -> dict:
    body: dict = {
        "contents": [{"role": "user", "parts": [{"text": prompt}]}],
        "generationConfig": {
            "temperature": temperature,
            "maxOutputTokens": max_tokens,
        },
    }
    if system_prompt:
        body["system_instruction"] = {"parts": [{"text": system_prompt}]}
    return body


def _extract_text(response_data: dict) -> str:
    """Extract text from a generateContent response; raise if blocked."""
    candidates = response_data.get("candidates", [])
    if not candidates:
        block_reason = response_data.get("promptFeedback", {}).get("blockReason", "")
        if block_reason:
            raise GeminiError(f"prompt blocked ({block_reason})")
        return ""

    candidate = candidates[0]
    if candidate.get("finishReason", "") == "SAFETY":
        raise GeminiError("response blocked by safety filter")

    parts = candidate.get("content", {}).get("parts", [])
    return "".join(p.get("text", "") for p in parts)


def _usage_summary(response_data: dict) -> str:
    """Token counts from usageMetadata as "prompt/output/total", or "n/a"."""
    meta = response_data.get("usageMetadata") or {}
    if not meta:
        return "n/a"
    return "%s/%s/%s" % (
        meta.get("promptTokenCount", "?"),
        meta.get("candidatesTokenCount", "?"),
        meta.get("totalTokenCount", "?"),
    )


# ---------------------------------------------------------------------------
# Key fallback wrapper
# ---------------------------------------------------------------------------

def _is_key_error(http_code: int, body_text: str) -> bool:
    """Check if an HTTP error indicates a bad/expired/limited key (try next)."""
    if http_code == 429:
        return True
    if http_code == 400 and "api key" in body_text.lower():
        return True
    if http_code in (401, 403):
        return True
    return False


def _with_key_fallback(gemini_cfg: dict, fn):
    """Try fn(api_key) with each key; on key errors move on to the next.

    A failing key is put on cooldown only when the pool has another key to
    prefer, so a single-key pool is retried on every request.
    fn should raise urllib.error.HTTPError on failure or return the result.
    """
    keys = get_keys_to_try(gemini_cfg)
    if not keys:
        raise GeminiError("no Gemini API key configured")
    pool_size = len(load_keys(gemini_cfg))

    last_err = None
    for key_info in keys:
        api_key = key_info["key"]
        try:
            return fn(api_key)
        except urllib.error.HTTPError as e:
            body_text = e.read().decode("utf-8", errors="replace")[:300]
            if _is_key_error(e.code, body_text):
                if pool_size > 1:
                    mark_rate_limited(api_key)
                last_err = f"key {key_suffix(api_key)} failed (HTTP {e.code})"
                log.info("    gemini_bridge: HTTP %d on key %s, trying next — %s",
                         e.code, key_suffix(api_key), body_text[:100])
                continue
            raise GeminiError(f"Gemini API HTTP {e.code}: {body_text}") from e
        except (urllib.error.URLError, OSError, json.JSONDecodeError) as e:
            raise GeminiError(f"Gemini API error: {e}") from e

    raise GeminiError(f"all Gemini API keys failed: {last_err}")


# ---------------------------------------------------------------------------
# One-shot generation
# ---------------------------------------------------------------------------

def generate_text(prompt: str, system_prompt: str, gemini_cfg: dict) -> str:
    """Single-turn generateContent call. Returns the stripped response text.

    Raises GeminiError when no key works, the API errors, or the reply is empty.
    """
    model = gemini_cfg.get("model") or DEFAULT_MODEL
    timeout = gemini_cfg.get("timeout") or GEMINI_TIMEOUT
    payload = json.dumps(_make_request_body(system_prompt, prompt)).encode("utf-8")

    log.info("    gemini_bridge: calling API model=%s prompt_len=%d", model, len(prompt))
    t0 = time.time()

    def _do(api_key):
        url = f"{GEMINI_API_BASE}/{model}:generateContent?key={api_key}"
        req = urllib.request.Request(
            url, data=payload,
            headers={"Content-Type": "application/json"},
        )
        with urllib.request.urlopen(req, timeout=timeout, context=_ssl_ctx) as resp:
            return json.loads(resp.read().decode("utf-8"))

    result = _with_key_fallback(gemini_cfg, _do)
    text = _extract_text(result).strip()
    log.info("    gemini_bridge: OK in %.1fs response_len=%d tokens=%s",
             time.time() - t0, len(text), _usage_summary(result))
    if not text:
        raise GeminiError("Gemini returned an empty response")
    return text
