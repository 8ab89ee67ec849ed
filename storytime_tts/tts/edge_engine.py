"""Edge TTS engine - free online neural TTS via Microsoft Edge."""

import asyncio
import logging
import re
from threading import Thread
from typing import Optional

from storytime_tts.audio.audio_utils import transcode_to_wav
from storytime_tts.models import Emotion, Tone, VoiceConfig
from storytime_tts.tts import register_engine
from storytime_tts.tts.base import SpeechEngine

logger = logging.getLogger(__name__)

# Default voices per language
DEFAULT_VOICES = {
    "en": "en-US-AnaNeural",
    "it": "it-IT-IsabellaNeural",
    "es": "es-ES-ElviraNeural",
    "fr": "fr-FR-DeniseNeural",
    "de": "de-DE-KatjaNeural",
}

# Edge voices have no emotion control; approximate it with pitch
EMOTION_PITCH = {
    Emotion.CALM: "-2Hz",
    Emotion.HAPPY: "+6Hz",
    Emotion.SAD: "-6Hz",
    Emotion.SHY: "-3Hz",
    Emotion.GENTLE: "+0Hz",
    Emotion.EXCITED: "+10Hz",
}

TONE_VOLUME = {
    Tone.SOFT: "-15%",
    Tone.WARM: "+0%",
    Tone.FRIENDLY: "+5%",
}

# Max characters per TTS request to avoid Edge TTS limits
MAX_CHUNK_CHARS = 3000


def _run_async(coro):
    """Run an async coroutine safely, even if an event loop is already running.

    When called from a sync context (e.g. CLI), uses asyncio.run().
    When called from within an existing event loop (e.g. FastAPI/uvicorn),
    runs the coroutine in a fresh event loop on a separate thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    result = None
    exception = None

    def _target():
        nonlocal result, exception
        try:
            result = asyncio.run(coro)
        except Exception as e:
            exception = e

    t = Thread(target=_target)
    t.start()
    t.join()

    if exception:
        raise exception
    return result


@register_engine("edge")
class EdgeTTSEngine(SpeechEngine):
    """Speech engine using Microsoft Edge's free online neural voices."""

    def initialize(self) -> None:
        import edge_tts  # noqa: F401

    def generate_speech(self, text: str, config: VoiceConfig) -> bytes:
        mp3 = _run_async(self._synthesize_async(text, config))
        if not mp3:
            raise RuntimeError("Edge TTS returned no audio")
        return transcode_to_wav(mp3, suffix=".mp3")

    async def _synthesize_async(self, text: str, config: VoiceConfig) -> bytes:
        import edge_tts

        voice = config.voice or DEFAULT_VOICES.get(config.language, DEFAULT_VOICES["en"])
        rate = self._speed_to_rate(config.speed_multiplier)
        pitch = EMOTION_PITCH[config.emotion]
        volume = TONE_VOLUME[config.tone]

        # MP3 frames from consecutive requests concatenate into one stream
        audio = bytearray()
        for chunk in self._split_text(text):
            communicate = edge_tts.Communicate(
                chunk, voice, rate=rate, pitch=pitch, volume=volume,
            )
            async for message in communicate.stream():
                if message["type"] == "audio":
                    audio.extend(message["data"])
        return bytes(audio)

    def list_voices(self, language: Optional[str] = None) -> list[dict]:
        return _run_async(self._list_voices_async(language))

    async def _list_voices_async(self, language: Optional[str] = None) -> list[dict]:
        import edge_tts

        voices = await edge_tts.list_voices()
        result = []
        for v in voices:
            locale = v.get("Locale", "")
            if language and not locale.lower().startswith(language.lower()):
                continue
            result.append({
                "name": v["ShortName"],
                "language": locale,
                "gender": v.get("Gender", ""),
            })
        return result

    @property
    def name(self) -> str:
        return "Edge TTS"

    @staticmethod
    def _speed_to_rate(speed: float) -> str:
        """Convert speed multiplier (e.g. 1.2) to Edge TTS rate string (e.g. '+20%')."""
        percent = round((speed - 1.0) * 100)
        if percent >= 0:
            return f"+{percent}%"
        return f"{percent}%"

    @staticmethod
    def _split_text(text: str) -> list[str]:
        """Split text into chunks at sentence boundaries, respecting MAX_CHUNK_CHARS."""
        if len(text) <= MAX_CHUNK_CHARS:
            return [text]

        sentences = re.split(r"(?<=[.!?…])\s+", text)

        chunks = []
        current_chunk = ""

        for sentence in sentences:
            if len(current_chunk) + len(sentence) + 1 > MAX_CHUNK_CHARS and current_chunk:
                chunks.append(current_chunk.strip())
                current_chunk = sentence
            else:
                current_chunk = f"{current_chunk} {sentence}" if current_chunk else sentence

        if current_chunk.strip():
            chunks.append(current_chunk.strip())

        return chunks if chunks else [text]
