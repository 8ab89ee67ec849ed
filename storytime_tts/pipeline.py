"""Generation pipeline - narrates story pages one at a time."""

import logging
import threading
from typing import Callable, Iterable, Optional

from storytime_tts.errors import (
    GENERATION_ERROR_MESSAGE,
    AlreadyRunningError,
    DuplicatePageError,
    SynthesisError,
)
from storytime_tts.models import (
    GeneratedAudio,
    Page,
    PipelineState,
    ProgressUpdate,
    VoiceConfig,
)
from storytime_tts.store import PlaybackHandles, ResultStore
from storytime_tts.tts.base import SpeechEngine

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressUpdate], None]


class GenerationPipeline:
    """Owns the session state and drives sequential per-page synthesis.

    Only one run may be active at a time. Pages are synthesized in
    ascending id order and each clip is stored, counted and reported to
    ``on_progress`` before the next page starts. The first failing page
    aborts the run, leaving the clips of the pages before it in place.
    """

    def __init__(self, engine: SpeechEngine, handles: Optional[PlaybackHandles] = None):
        self.engine = engine
        self.handles = handles if handles is not None else PlaybackHandles()
        self.store = ResultStore(self.handles)
        # Results live in the store; only snapshot() copies them into a state
        self._state = PipelineState()
        self._lock = threading.Lock()

    # --- State transitions ---

    def load(self, pages: Iterable[Page]) -> None:
        """Replace the current pages, dropping any previous results."""
        pages = list(pages)
        with self._lock:
            self._ensure_idle()
            self._clear_locked()
            self._state.pages = pages
        logger.info("Loaded %d pages", len(pages))

    def reset(self) -> None:
        """Wipe pages, results, progress and the last error."""
        with self._lock:
            self._ensure_idle()
            self._clear_locked()
        logger.info("Session reset")

    def configure(self, config: VoiceConfig) -> None:
        with self._lock:
            self._ensure_idle()
            self._state.config = config

    def clear_error(self) -> None:
        with self._lock:
            self._state.last_error = None

    def close(self) -> None:
        """Release every playback handle. Safe to call more than once."""
        with self._lock:
            self.store.clear()
            self.handles.release_all()

    # --- Reads ---

    def snapshot(self) -> PipelineState:
        """Return a consistent copy of the state for progress readers."""
        with self._lock:
            return PipelineState(
                pages=list(self._state.pages),
                config=self._state.config,
                results=list(self.store.results),
                progress_current=self._state.progress_current,
                progress_total=self._state.progress_total,
                is_running=self._state.is_running,
                last_error=self._state.last_error,
            )

    @property
    def pages(self) -> list[Page]:
        with self._lock:
            return list(self._state.pages)

    @property
    def config(self) -> VoiceConfig:
        with self._lock:
            return self._state.config

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._state.is_running

    @property
    def is_complete(self) -> bool:
        with self._lock:
            return self.store.is_complete(len(self._state.pages), self._state.is_running)

    # --- Generation ---

    def run(self, on_progress: Optional[ProgressCallback] = None) -> list[GeneratedAudio]:
        """Generate the loaded pages with the configured voice."""
        with self._lock:
            pages = list(self._state.pages)
            config = self._state.config
        return self.run_all(pages, config, on_progress)

    def run_all(
        self,
        pages: Iterable[Page],
        config: VoiceConfig,
        on_progress: Optional[ProgressCallback] = None,
    ) -> list[GeneratedAudio]:
        """Synthesize every page in order.

        Args:
            pages: Pages to narrate, in ascending id order.
            config: Voice profile used for every page of the run.
            on_progress: Called once per completed page with the counters
                and the results produced so far.

        Returns:
            One clip per page, in page order.

        Raises:
            AlreadyRunningError: If another run is active.
            SynthesisError: If the engine fails on a page.
            DuplicatePageError: If a page produces a second clip.

        Exceptions raised by ``on_progress`` stop the run the same way and
        propagate unchanged.
        """
        pages = list(pages)
        if not pages:
            logger.info("No pages to generate")
            return []

        with self._lock:
            self._ensure_idle()
            self.store.clear()
            self._state.pages = pages
            self._state.config = config
            self._state.progress_current = 0
            self._state.progress_total = len(pages)
            self._state.last_error = None
            self._state.is_running = True

        logger.info(
            "Generating %d pages (%s, %s, %s) with %s",
            len(pages), config.emotion.value, config.tone.value, config.speed.value,
            self.engine.name,
        )

        try:
            for page in pages:
                try:
                    update = self._generate_page(page, config, len(pages))
                except DuplicatePageError as e:
                    logger.exception("Page %d produced a second clip", page.id)
                    self._abort(str(e))
                    raise
                except Exception as e:
                    detail = str(e) or GENERATION_ERROR_MESSAGE
                    logger.error("Synthesis failed on page %d: %s", page.id, detail)
                    self._abort(detail)
                    raise SynthesisError(page.id, detail) from e

                if on_progress:
                    try:
                        on_progress(update)
                    except Exception as e:
                        logger.exception("Progress observer failed on page %d", page.id)
                        self._abort(str(e) or GENERATION_ERROR_MESSAGE)
                        raise
        finally:
            with self._lock:
                self._state.is_running = False

        logger.info("All %d pages generated", len(pages))
        return list(self.store.results)

    def _generate_page(self, page: Page, config: VoiceConfig, total: int) -> ProgressUpdate:
        logger.info("Synthesizing page %d/%d", page.id, total)
        audio = self.engine.generate_speech(page.content, config)
        if not audio:
            raise RuntimeError(f"{self.engine.name} returned no audio for page {page.id}")

        with self._lock:
            if self.store.get(page.id) is not None:
                raise DuplicatePageError(page.id)
            url = self.handles.acquire(page.id, audio)
            self.store.add(GeneratedAudio(
                page_id=page.id,
                audio=audio,
                access_url=url,
                filename=GeneratedAudio.filename_for(page.id),
            ))
            self._state.progress_current += 1
            return ProgressUpdate(
                current=self._state.progress_current,
                total=self._state.progress_total,
                page_id=page.id,
                results=self.store.results,
            )

    # --- Helpers ---

    def _ensure_idle(self) -> None:
        if self._state.is_running:
            raise AlreadyRunningError()

    def _clear_locked(self) -> None:
        self.store.clear()
        self._state.pages = []
        self._state.progress_current = 0
        self._state.progress_total = 0
        self._state.last_error = None

    def _abort(self, message: str) -> None:
        with self._lock:
            self._state.last_error = message
            self._state.is_running = False
