"""Abstract base class for speech engines."""

from abc import ABC, abstractmethod
from typing import Optional

from storytime_tts.models import VoiceConfig


class SpeechEngine(ABC):
    """Abstract base class that all speech engines must implement."""

    @abstractmethod
    def initialize(self) -> None:
        """Initialize the engine (load models, check credentials).

        Raises:
            RuntimeError: If the engine cannot be used (missing deps, etc.).
        """
        ...

    @abstractmethod
    def generate_speech(self, text: str, config: VoiceConfig) -> bytes:
        """Synthesize text and return the clip as WAV bytes.

        Args:
            text: Plain text to narrate.
            config: Emotion, tone and speed of the narration.

        Raises:
            RuntimeError: If synthesis fails.
        """
        ...

    @abstractmethod
    def list_voices(self, language: Optional[str] = None) -> list[dict]:
        """Return available voices, optionally filtered by language.

        Each dict contains at least 'name' and 'language' keys.
        """
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable engine name."""
        ...
