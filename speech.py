"""Google Cloud Text-to-Speech for story beats."""

import base64
import logging
import threading
import time

from google.cloud import texttospeech

log = logging.getLogger("narrative")

LANGUAGE_CODE = "en-GB"
VOICE_NAME = "en-GB-Neural2-D"
SPEAKING_RATE = 0.9
PITCH = -2.0
TTS_TIMEOUT = 30  # seconds

_client_lock = threading.Lock()
_client = None
_client_key: str | None = None


class SpeechError(Exception):
    """Speech synthesis failed."""


def _get_client(credentials: dict):
    """Build (once per credential set) a client from service-account info."""
    global _client, _client_key
    key = f"{credentials.get('client_email', '')}:{credentials.get('private_key_id', '')}"
    with _client_lock:
        if _client is None or _client_key != key:
            _client = texttospeech.TextToSpeechClient.from_service_account_info(credentials)
            _client_key = key
            log.info("    speech: TTS client ready for %s", credentials.get("client_email", "?"))
        return _client


def reset_client():
    global _client, _client_key
    with _client_lock:
        _client = None
        _client_key = None


def synthesize(text: str, tts_cfg: dict) -> bytes:
    """Return MP3 bytes for `text`. Raises SpeechError on any failure."""
    credentials = tts_cfg.get("credentials") or {}
    if not credentials.get("private_key"):
        raise SpeechError("TTS credentials missing private_key")

    t0 = time.time()
    try:
        client = _get_client(credentials)
        response = client.synthesize_speech(
            input=texttospeech.SynthesisInput(text=text),
            voice=texttospeech.VoiceSelectionParams(
                language_code=LANGUAGE_CODE,
                name=VOICE_NAME,
                ssml_gender=texttospeech.SsmlVoiceGender.MALE,
            ),
            audio_config=texttospeech.AudioConfig(
                audio_encoding=texttospeech.AudioEncoding.MP3,
                speaking_rate=SPEAKING_RATE,
                pitch=PITCH,
            ),
            timeout=tts_cfg.get("timeout") or TTS_TIMEOUT,
        )
    except Exception as e:
        raise SpeechError(str(e)) from e

    audio = response.audio_content
    if not audio:
        raise SpeechError("TTS returned empty audio")
    log.info("    speech: OK in %.1fs bytes=%d", time.time() - t0, len(audio))
    return audio


def synthesize_base64(text: str, tts_cfg: dict) -> str:
    return base64.b64encode(synthesize(text, tts_cfg)).decode("ascii")
