"""Kokoro TTS engine - open source, offline neural TTS."""

import io
import logging
import threading
from typing import Optional

from storytime_tts.models import Tone, VoiceConfig
from storytime_tts.tts import register_engine
from storytime_tts.tts.base import SpeechEngine

logger = logging.getLogger(__name__)

# Kokoro's native sample rate
SAMPLE_RATE = 24000

# Kokoro language code prefixes
LANGUAGE_CODES = {
    "en": "a",  # American English
    "it": "i",
    "es": "e",
    "fr": "f",
    "ja": "j",
    "zh": "z",
}

# Default voice per language and tone (Kokoro naming convention)
DEFAULT_VOICES = {
    "en": {Tone.SOFT: "af_nicole", Tone.WARM: "af_heart", Tone.FRIENDLY: "af_bella"},
    "it": {Tone.SOFT: "if_sara", Tone.WARM: "if_sara", Tone.FRIENDLY: "im_nicola"},
    "es": {Tone.SOFT: "ef_dora", Tone.WARM: "ef_dora", Tone.FRIENDLY: "em_alex"},
    "fr": {Tone.SOFT: "ff_siwis", Tone.WARM: "ff_siwis", Tone.FRIENDLY: "ff_siwis"},
}

# Known voices for listing
KNOWN_VOICES = {
    "en": [
        {"name": "af_heart", "language": "en", "gender": "Female"},
        {"name": "af_bella", "language": "en", "gender": "Female"},
        {"name": "af_nicole", "language": "en", "gender": "Female"},
        {"name": "am_adam", "language": "en", "gender": "Male"},
        {"name": "am_puck", "language": "en", "gender": "Male"},
    ],
    "it": [
        {"name": "if_sara", "language": "it", "gender": "Female"},
        {"name": "im_nicola", "language": "it", "gender": "Male"},
    ],
}


@register_engine("kokoro")
class KokoroTTSEngine(SpeechEngine):
    """Speech engine using Kokoro - lightweight open source neural TTS."""

    def __init__(self):
        self._pipeline = None
        self._lang_code: str | None = None
        self._lock = threading.Lock()

    def initialize(self) -> None:
        try:
            import kokoro  # noqa: F401
            import soundfile  # noqa: F401
        except ImportError:
            raise RuntimeError(
                "kokoro is not installed. Install with:\n"
                "  pip install 'storytime-tts[kokoro]'"
            )
        logger.info(
            "Kokoro TTS ready. On first use the model (~350 MB) "
            "is downloaded automatically from HuggingFace."
        )

    def generate_speech(self, text: str, config: VoiceConfig) -> bytes:
        import numpy as np
        import soundfile as sf
        from kokoro import KPipeline

        lang_code = LANGUAGE_CODES.get(config.language, "a")

        voice = config.voice or self._default_voice(config)

        # One pipeline per engine, shared by generation and preview threads
        with self._lock:
            if self._pipeline is None or self._lang_code != lang_code:
                logger.info("Loading Kokoro model (language: %s)...", lang_code)
                self._pipeline = KPipeline(lang_code=lang_code)
                self._lang_code = lang_code

            audio_segments = []
            for _graphemes, _phonemes, audio in self._pipeline(
                text, voice=voice, speed=config.speed_multiplier,
            ):
                if audio is not None:
                    audio_segments.append(audio)

        if not audio_segments:
            raise RuntimeError(f"Kokoro produced no audio for the text (length: {len(text)})")

        buffer = io.BytesIO()
        sf.write(buffer, np.concatenate(audio_segments), SAMPLE_RATE, format="WAV", subtype="PCM_16")
        return buffer.getvalue()

    @staticmethod
    def _default_voice(config: VoiceConfig) -> str:
        voices = DEFAULT_VOICES.get(config.language, DEFAULT_VOICES["en"])
        return voices[config.tone]

    def list_voices(self, language: Optional[str] = None) -> list[dict]:
        if language and language in KNOWN_VOICES:
            return KNOWN_VOICES[language]
        if language:
            return []
        all_voices = []
        for voices in KNOWN_VOICES.values():
            all_voices.extend(voices)
        return all_voices

    @property
    def name(self) -> str:
        return "Kokoro TTS"
