"""Voice preview - narrates a short sample without touching the pipeline."""

import io
import logging
from typing import Callable, Optional, Sequence

from storytime_tts.errors import PreviewError
from storytime_tts.models import Page, VoiceConfig
from storytime_tts.tts.base import SpeechEngine

logger = logging.getLogger(__name__)

# Previews only narrate the opening of the text to keep them quick.
PREVIEW_CHARS = 100

Player = Callable[[bytes], None]


def play_audio(audio: bytes, blocking: bool = False) -> None:
    """Play WAV bytes on the default output device.

    Returns immediately unless ``blocking`` is set.
    """
    import sounddevice as sd
    import soundfile as sf

    data, samplerate = sf.read(io.BytesIO(audio), dtype="float32")
    sd.play(data, samplerate, blocking=blocking)


def preview(
    text: str,
    config: VoiceConfig,
    engine: SpeechEngine,
    play: Optional[Player] = None,
) -> bytes:
    """Synthesize and play the first ``PREVIEW_CHARS`` characters of the trimmed ``text``.

    Returns the preview audio, or ``b""`` when there is nothing to say.

    Raises:
        PreviewError: If synthesis or playback fails.
    """
    sample = text.strip()[:PREVIEW_CHARS]
    if not sample:
        return b""

    player = play or play_audio
    try:
        audio = engine.generate_speech(sample, config)
        player(audio)
    except Exception as e:
        logger.error("Preview failed: %s", e)
        raise PreviewError(str(e)) from e

    logger.debug("Preview played (%d bytes)", len(audio))
    return audio


def preview_pages(
    pages: Sequence[Page],
    config: VoiceConfig,
    engine: SpeechEngine,
    play: Optional[Player] = None,
) -> bytes:
    """Preview the voice on the first page of a story."""
    if not pages:
        return b""
    return preview(pages[0].content, config, engine, play)
