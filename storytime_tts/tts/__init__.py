"""Speech engine registry and factory."""

from storytime_tts.tts.base import SpeechEngine

ENGINE_REGISTRY: dict[str, type[SpeechEngine]] = {}


def register_engine(name: str):
    """Decorator to register a speech engine class."""
    def decorator(cls):
        ENGINE_REGISTRY[name] = cls
        return cls
    return decorator


def get_engine(name: str) -> SpeechEngine:
    """Instantiate a speech engine by name."""
    if name not in ENGINE_REGISTRY:
        available = ", ".join(ENGINE_REGISTRY.keys()) or "(none)"
        raise ValueError(f"Unknown engine '{name}'. Available: {available}")
    return ENGINE_REGISTRY[name]()


def list_engines() -> list[str]:
    """Return names of all registered engines."""
    return list(ENGINE_REGISTRY.keys())


def import_engines() -> None:
    """Import all engine modules to trigger registration."""
    import storytime_tts.tts.mock_engine  # noqa: F401
    import storytime_tts.tts.gemini_engine  # noqa: F401
    import storytime_tts.tts.edge_engine  # noqa: F401
    import storytime_tts.tts.kokoro_engine  # noqa: F401
    import storytime_tts.tts.piper_engine  # noqa: F401
