"""storytime-tts - turn page-marked stories into per-page narration clips."""

__version__ = "0.1.0"
