"""Piper TTS engine - fast, local neural TTS with auto-download of voice models."""

import io
import logging
import threading
import urllib.request
import wave
from pathlib import Path
from typing import Optional

from storytime_tts.models import VoiceConfig
from storytime_tts.tts import register_engine
from storytime_tts.tts.base import SpeechEngine

logger = logging.getLogger(__name__)

DEFAULT_MODELS_DIR = Path.home() / ".storytime-tts" / "piper-models"

# HuggingFace base URL for Piper voice models
HF_BASE = "https://huggingface.co/rhasspy/piper-voices/resolve/main"

# Voice catalog: voice_name → (hf_subpath, language, gender)
VOICE_CATALOG = {
    "en_US-amy-medium": ("en/en_US/amy/medium", "en", "Female"),
    "en_US-lessac-medium": ("en/en_US/lessac/medium", "en", "Male"),
    "en_GB-alba-medium": ("en/en_GB/alba/medium", "en", "Female"),
    "it_IT-paola-medium": ("it/it_IT/paola/medium", "it", "Female"),
    "es_ES-davefx-medium": ("es/es_ES/davefx/medium", "es", "Male"),
    "fr_FR-siwis-medium": ("fr/fr_FR/siwis/medium", "fr", "Female"),
    "de_DE-thorsten-medium": ("de/de_DE/thorsten/medium", "de", "Male"),
}

DEFAULT_VOICES = {
    "en": "en_US-amy-medium",
    "it": "it_IT-paola-medium",
    "es": "es_ES-davefx-medium",
    "fr": "fr_FR-siwis-medium",
    "de": "de_DE-thorsten-medium",
}


def _download_file(url: str, dest: Path) -> None:
    """Download a file to ``dest`` without leaving partial downloads behind."""
    logger.info("Download: %s", url)
    dest.parent.mkdir(parents=True, exist_ok=True)

    tmp = dest.with_suffix(dest.suffix + ".tmp")
    try:
        urllib.request.urlretrieve(url, str(tmp))
        tmp.rename(dest)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise


def _ensure_model(voice_name: str, models_dir: Path) -> Path:
    """Ensure the voice model is downloaded, return path to .onnx file."""
    model_file = models_dir / f"{voice_name}.onnx"
    config_file = models_dir / f"{voice_name}.onnx.json"

    if model_file.exists() and config_file.exists():
        return model_file

    if voice_name not in VOICE_CATALOG:
        available = ", ".join(VOICE_CATALOG.keys())
        raise ValueError(
            f"Unknown Piper voice: '{voice_name}'\n"
            f"Available voices: {available}"
        )

    hf_subpath, _lang, _gender = VOICE_CATALOG[voice_name]
    logger.info("Downloading Piper model '%s'...", voice_name)

    if not model_file.exists():
        _download_file(f"{HF_BASE}/{hf_subpath}/{voice_name}.onnx", model_file)
    if not config_file.exists():
        _download_file(f"{HF_BASE}/{hf_subpath}/{voice_name}.onnx.json", config_file)

    logger.info("Piper model '%s' ready.", voice_name)
    return model_file


@register_engine("piper")
class PiperTTSEngine(SpeechEngine):
    """Speech engine using Piper - fast local neural text to speech.

    Voice models are downloaded automatically on first use from HuggingFace.
    """

    def __init__(self):
        self._voice = None
        self._voice_name: str | None = None
        self.model_path: str | None = None
        self._lock = threading.Lock()

    def initialize(self) -> None:
        try:
            from piper import PiperVoice  # noqa: F401
        except ImportError:
            raise RuntimeError(
                "piper-tts is not installed. Install with:\n"
                "  pip install 'storytime-tts[piper]'"
            )

    def _load_voice(self, voice_name: str) -> None:
        """Load the Piper voice model, downloading if needed."""
        from piper import PiperVoice

        if self.model_path:
            model_file = Path(self.model_path)
            if not model_file.exists():
                raise RuntimeError(f"Piper model not found: {model_file}")
        else:
            model_file = _ensure_model(voice_name, DEFAULT_MODELS_DIR)

        config_file = model_file.with_suffix(".onnx.json")

        logger.info("Loading Piper model: %s", model_file.name)
        self._voice = PiperVoice.load(str(model_file), str(config_file))
        self._voice_name = voice_name

    def generate_speech(self, text: str, config: VoiceConfig) -> bytes:
        from piper import SynthesisConfig

        voice_name = config.voice or DEFAULT_VOICES.get(config.language, DEFAULT_VOICES["en"])
        # length_scale is duration, the inverse of speed
        syn_config = SynthesisConfig(length_scale=1.0 / config.speed_multiplier)

        buffer = io.BytesIO()
        with self._lock:
            if self._voice is None or self._voice_name != voice_name:
                self._load_voice(voice_name)
            with wave.open(buffer, "wb") as wav_file:
                self._voice.synthesize_wav(text, wav_file, syn_config=syn_config)
        return buffer.getvalue()

    def list_voices(self, language: Optional[str] = None) -> list[dict]:
        voices = []
        for name, (_, lang, gender) in VOICE_CATALOG.items():
            if language and lang != language:
                continue
            voices.append({"name": name, "language": lang, "gender": gender})
        return voices

    @property
    def name(self) -> str:
        return "Piper TTS"
