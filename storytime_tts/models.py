"""Data models for the storytime-tts pipeline."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class _Choice(str, Enum):
    """String enum that parses its values case-insensitively."""

    @classmethod
    def parse(cls, value: str):
        for member in cls:
            if member.value.lower() == value.strip().lower():
                return member
        choices = ", ".join(m.value for m in cls)
        raise ValueError(f"Invalid {cls.__name__.lower()} '{value}'. Choose from: {choices}")

    @classmethod
    def values(cls) -> list[str]:
        return [m.value for m in cls]


class Emotion(_Choice):
    CALM = "Calm"
    HAPPY = "Happy"
    SAD = "Sad"
    SHY = "Shy"
    GENTLE = "Gentle"
    EXCITED = "Excited"


class Tone(_Choice):
    SOFT = "Soft"
    WARM = "Warm"
    FRIENDLY = "Friendly"


class Speed(_Choice):
    SLOW = "Slow"
    NORMAL = "Normal"
    FAST = "Fast"


SPEED_MULTIPLIERS = {
    Speed.SLOW: 0.8,
    Speed.NORMAL: 1.0,
    Speed.FAST: 1.2,
}

_PACE_WORDS = {
    Speed.SLOW: "a slow, unhurried",
    Speed.NORMAL: "a normal",
    Speed.FAST: "a lively, quick",
}


@dataclass(frozen=True)
class Page:
    """A single page of a story, numbered by its position in the file."""
    id: int
    content: str


@dataclass(frozen=True)
class VoiceConfig:
    """Voice profile shared by every synthesis call of a run."""
    emotion: Emotion = Emotion.GENTLE
    tone: Tone = Tone.WARM
    speed: Speed = Speed.NORMAL
    voice: str = ""
    language: str = "en"

    @classmethod
    def from_strings(
        cls,
        emotion: str = "Gentle",
        tone: str = "Warm",
        speed: str = "Normal",
        voice: str = "",
        language: str = "en",
    ) -> "VoiceConfig":
        return cls(
            emotion=Emotion.parse(emotion),
            tone=Tone.parse(tone),
            speed=Speed.parse(speed),
            voice=voice,
            language=language,
        )

    @property
    def speed_multiplier(self) -> float:
        return SPEED_MULTIPLIERS[self.speed]

    def style_prompt(self) -> str:
        """Narration instruction for engines that accept a style prompt."""
        return (
            f"Read this children's story aloud in a {self.emotion.value.lower()}, "
            f"{self.tone.value.lower()} voice at {_PACE_WORDS[self.speed]} pace"
        )


@dataclass(frozen=True)
class GeneratedAudio:
    """A synthesized page clip and the handle used to play it back."""
    page_id: int
    audio: bytes = field(repr=False)
    access_url: str
    filename: str

    @staticmethod
    def filename_for(page_id: int) -> str:
        return f"Page_{page_id}.wav"


@dataclass(frozen=True)
class ProgressUpdate:
    """Emitted after every completed page of a run."""
    current: int
    total: int
    page_id: int
    results: tuple[GeneratedAudio, ...] = ()


@dataclass
class PipelineState:
    """Transient state of one generation session.

    ``results`` is filled in by ``GenerationPipeline.snapshot``.
    """
    pages: list[Page] = field(default_factory=list)
    config: VoiceConfig = field(default_factory=VoiceConfig)
    results: list[GeneratedAudio] = field(default_factory=list)
    progress_current: int = 0
    progress_total: int = 0
    is_running: bool = False
    last_error: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return (
            len(self.pages) > 0
            and len(self.results) == len(self.pages)
            and not self.is_running
        )
