"""Web interface for storytime-tts."""
