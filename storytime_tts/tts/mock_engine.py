"""Mock engine - deterministic tones for offline runs and tests."""

import logging
from typing import Optional

import numpy as np

from storytime_tts.audio.audio_utils import pcm_to_wav
from storytime_tts.models import Emotion, VoiceConfig
from storytime_tts.tts import register_engine
from storytime_tts.tts.base import SpeechEngine

logger = logging.getLogger(__name__)

SAMPLE_RATE = 16000

# Seconds of tone per character of text at normal speed
SECONDS_PER_CHAR = 0.01

TONE_HZ = {
    Emotion.CALM: 220.0,
    Emotion.HAPPY: 330.0,
    Emotion.SAD: 196.0,
    Emotion.SHY: 247.0,
    Emotion.GENTLE: 262.0,
    Emotion.EXCITED: 392.0,
}


@register_engine("mock")
class MockSpeechEngine(SpeechEngine):
    """Renders a sine tone whose length follows the text and speed."""

    def initialize(self) -> None:
        logger.debug("Mock engine ready")

    def generate_speech(self, text: str, config: VoiceConfig) -> bytes:
        seconds = max(0.2, len(text) * SECONDS_PER_CHAR / config.speed_multiplier)
        t = np.arange(int(seconds * SAMPLE_RATE)) / SAMPLE_RATE
        tone = 0.3 * np.sin(2 * np.pi * TONE_HZ[config.emotion] * t)
        pcm = (tone * 32767).astype("<i2").tobytes()
        return pcm_to_wav(pcm, sample_rate=SAMPLE_RATE)

    def list_voices(self, language: Optional[str] = None) -> list[dict]:
        return [{"name": "tone", "language": language or "any", "gender": ""}]

    @property
    def name(self) -> str:
        return "Mock TTS"
