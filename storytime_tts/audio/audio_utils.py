"""Audio utility functions - WAV wrapping, transcoding and ffmpeg paths."""

import io
import subprocess
import tempfile
import wave
from pathlib import Path

import static_ffmpeg


def get_ffmpeg_paths() -> tuple[str, str]:
    """Return (ffmpeg_path, ffprobe_path) using the bundled static-ffmpeg binaries.

    Downloads binaries on first use if not already present.
    """
    ffmpeg_path, ffprobe_path = static_ffmpeg.run.get_or_fetch_platform_executables_else_raise()
    return ffmpeg_path, ffprobe_path


def get_ffmpeg() -> str:
    """Return the path to the ffmpeg executable."""
    ffmpeg, _ = get_ffmpeg_paths()
    return ffmpeg


def check_ffmpeg() -> None:
    """Verify that ffmpeg is available (downloads if needed)."""
    try:
        get_ffmpeg_paths()
    except Exception as e:
        raise RuntimeError(
            f"Unable to obtain ffmpeg: {e}\n"
            f"Try reinstalling: pip install --force-reinstall static-ffmpeg"
        ) from e


def transcode_to_wav(data: bytes, suffix: str = ".mp3", sample_rate: int = 24000) -> bytes:
    """Convert encoded audio (e.g. MP3) to 16-bit mono WAV using ffmpeg."""
    with tempfile.TemporaryDirectory(prefix="stt_wav_") as tmp:
        src = Path(tmp) / f"input{suffix}"
        dest = Path(tmp) / "output.wav"
        src.write_bytes(data)

        result = subprocess.run(
            [
                get_ffmpeg(), "-y", "-hide_banner", "-loglevel", "error",
                "-i", str(src),
                "-ac", "1", "-ar", str(sample_rate),
                "-c:a", "pcm_s16le",
                str(dest),
            ],
            capture_output=True,
        )
        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise RuntimeError(f"ffmpeg failed to convert audio to WAV: {stderr}")
        return dest.read_bytes()


def pcm_to_wav(pcm: bytes, sample_rate: int = 24000, channels: int = 1, sample_width: int = 2) -> bytes:
    """Wrap raw little-endian PCM samples in a WAV container."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(channels)
        wav_file.setsampwidth(sample_width)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(pcm)
    return buffer.getvalue()


def wav_duration_ms(data: bytes) -> int:
    """Return the duration of WAV bytes in milliseconds."""
    with wave.open(io.BytesIO(data), "rb") as wav_file:
        frames = wav_file.getnframes()
        rate = wav_file.getframerate()
    return int(frames * 1000 / rate) if rate else 0
