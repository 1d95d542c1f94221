"""One narrative cycle: price → era/momentum → Gemini beat → commit → speech."""

import logging
import time

import gemini_bridge
import price_feed
import speech
from config import tts_available
from narrative_engine import (
    ERA_ASH,
    MOMENTUM_STABLE,
    SYSTEM_PROMPT,
    build_prompt,
    classify_era,
    classify_momentum,
    clean_narrative,
)
from progression_state import ProgressionStore

log = logging.getLogger("narrative")

PLACEHOLDER_TOKEN = "YOUR_TOKEN_ADDRESS_HERE"
AWAITING_NARRATIVE = "The story awaits... Connect your token to begin."
FALLBACK_NARRATIVE = "The ink runs dry... Please try again."


def _envelope(narrative: str, era: str, market_cap: float, momentum: str,
              beat_count: int, audio: str | None) -> dict:
    return {
        "narrative": narrative,
        "era": era,
        "marketCap": market_cap,
        "momentum": momentum,
        "beatCount": beat_count,
        "audio": audio,
    }


def awaiting_response() -> dict:
    return _envelope(AWAITING_NARRATIVE, ERA_ASH, 0, MOMENTUM_STABLE, 0, None)


def fallback_response(beat_count: int) -> dict:
    return _envelope(FALLBACK_NARRATIVE, ERA_ASH, 0, MOMENTUM_STABLE, beat_count, None)


# ---------------------------------------------------------------------------
# Default collaborators
# ---------------------------------------------------------------------------

def _default_fetch(token: str, cfg: dict) -> float:
    return price_feed.fetch_market_cap(token, timeout=cfg["price_feed"]["timeout"])


def _default_generate(prompt: str, cfg: dict) -> str:
    return gemini_bridge.generate_text(prompt, SYSTEM_PROMPT, cfg["gemini"])


def _default_synthesize(text: str, cfg: dict) -> str:
    return speech.synthesize_base64(text, cfg["tts"])


def _maybe_synthesize(text: str, want_audio: bool, cfg: dict, synthesize) -> str | None:
    if not want_audio:
        return None
    if not tts_available(cfg):
        log.info("  narrative: audio requested but TTS credentials not configured")
        return None
    try:
        return synthesize(text, cfg)
    except Exception as e:
        log.warning("  narrative: TTS failed — %s", e)
        return None


# ---------------------------------------------------------------------------
# Cycle
# ---------------------------------------------------------------------------

def run_cycle(
    store: ProgressionStore,
    token: str | None,
    want_audio: bool,
    cfg: dict,
    *,
    fetch_market_cap=_default_fetch,
    generate=_default_generate,
    synthesize=_default_synthesize,
) -> dict:
    """Produce the next story beat for `token` and return the response envelope.

    Never raises: failures before the beat exists return the fallback envelope
    with the store untouched; a speech failure only drops the audio.
    """
    if not token or token == PLACEHOLDER_TOKEN:
        log.info("  narrative: no token configured, awaiting connection")
        return awaiting_response()

    t0 = time.time()
    try:
        with store.cycle() as cycle:
            state = cycle.state
            market_cap = fetch_market_cap(token, cfg)
            momentum = classify_momentum(state.last_market_cap, market_cap)
            era = classify_era(market_cap)

            prompt = build_prompt(era, market_cap, momentum, state.last_beat)
            narrative = clean_narrative(generate(prompt, cfg))
            if not narrative:
                raise gemini_bridge.GeminiError("narrative empty after cleanup")

            new_state = cycle.commit(market_cap, narrative)
    except Exception:
        log.exception("  narrative: cycle failed for token=%s", token[:12])
        return fallback_response(store.snapshot().beat_count)

    # speech never touches state, so it runs after the lock is released
    audio = _maybe_synthesize(narrative, want_audio, cfg, synthesize)

    log.info("  narrative: beat #%d era=%s momentum=%s audio=%s in %.1fs",
             new_state.beat_count, era, momentum, "yes" if audio else "no", time.time() - t0)
    return _envelope(narrative, era, market_cap, momentum, new_state.beat_count, audio)
