"""Gemini TTS engine - expressive narration driven by a style prompt."""

import logging
import os
import threading
from typing import Optional

from storytime_tts.audio.audio_utils import pcm_to_wav
from storytime_tts.models import VoiceConfig
from storytime_tts.tts import register_engine
from storytime_tts.tts.base import SpeechEngine

logger = logging.getLogger(__name__)

MODEL = "gemini-2.5-flash-preview-tts"

# Gemini returns 16-bit mono PCM at 24kHz
SAMPLE_RATE = 24000

DEFAULT_VOICE = "Puck"

KNOWN_VOICES = [
    {"name": "Puck", "language": "multi", "gender": "Male", "style": "Upbeat"},
    {"name": "Charon", "language": "multi", "gender": "Male", "style": "Informative"},
    {"name": "Fenrir", "language": "multi", "gender": "Male", "style": "Excitable"},
    {"name": "Orus", "language": "multi", "gender": "Male", "style": "Firm"},
    {"name": "Kore", "language": "multi", "gender": "Female", "style": "Firm"},
    {"name": "Aoede", "language": "multi", "gender": "Female", "style": "Breezy"},
    {"name": "Leda", "language": "multi", "gender": "Female", "style": "Youthful"},
    {"name": "Zephyr", "language": "multi", "gender": "Female", "style": "Bright"},
]


@register_engine("gemini")
class GeminiTTSEngine(SpeechEngine):
    """Speech engine using Gemini's native text-to-speech models.

    Reads the API key from ``GEMINI_API_KEY`` (or ``GOOGLE_API_KEY``).
    """

    def __init__(self):
        self._client = None
        self._lock = threading.Lock()

    def initialize(self) -> None:
        try:
            from google import genai  # noqa: F401
        except ImportError:
            raise RuntimeError(
                "google-genai is not installed. Install with:\n"
                "  pip install 'storytime-tts[gemini]'"
            )
        if not self._api_key():
            raise RuntimeError("Set GEMINI_API_KEY to use the Gemini engine")

    @staticmethod
    def _api_key() -> Optional[str]:
        return os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")

    def _get_client(self):
        with self._lock:
            if self._client is None:
                from google import genai

                self._client = genai.Client(api_key=self._api_key())
            return self._client

    def generate_speech(self, text: str, config: VoiceConfig) -> bytes:
        from google.genai import types

        voice = config.voice or DEFAULT_VOICE
        response = self._get_client().models.generate_content(
            model=MODEL,
            contents=f"{config.style_prompt()}: {text}",
            config=types.GenerateContentConfig(
                response_modalities=["AUDIO"],
                speech_config=types.SpeechConfig(
                    voice_config=types.VoiceConfig(
                        prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice),
                    ),
                ),
            ),
        )

        pcm = self._extract_audio(response)
        if not pcm:
            raise RuntimeError("No audio data received from Gemini")
        return pcm_to_wav(pcm, sample_rate=SAMPLE_RATE)

    @staticmethod
    def _extract_audio(response) -> Optional[bytes]:
        for candidate in response.candidates or []:
            content = candidate.content
            if content is None:
                continue
            for part in content.parts or []:
                if part.inline_data is not None and part.inline_data.data:
                    return part.inline_data.data
        return None

    def list_voices(self, language: Optional[str] = None) -> list[dict]:
        return list(KNOWN_VOICES)

    @property
    def name(self) -> str:
        return "Gemini TTS"
