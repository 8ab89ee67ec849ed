"""Completed page clips and the temporary playback files backing them."""

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from storytime_tts.errors import DuplicatePageError
from storytime_tts.models import GeneratedAudio

logger = logging.getLogger(__name__)


class PlaybackHandles:
    """Tracks one playable file per clip inside a session temp directory.

    ``root`` is owned by the handles and removed by ``release_all``; a temp
    directory is created on first use when none is given.
    """

    def __init__(self, root: Optional[Path] = None):
        self._root = root
        self._paths: dict[str, Path] = {}

    def acquire(self, page_id: int, audio: bytes) -> str:
        if self._root is None:
            self._root = Path(tempfile.mkdtemp(prefix="stt_"))
        self._root.mkdir(parents=True, exist_ok=True)

        path = self._root / GeneratedAudio.filename_for(page_id)
        path.write_bytes(audio)
        url = path.resolve().as_uri()
        self._paths[url] = path
        return url

    def path_for(self, url: str) -> Optional[Path]:
        return self._paths.get(url)

    def release(self, url: str) -> None:
        path = self._paths.pop(url, None)
        if path is not None:
            path.unlink(missing_ok=True)

    def release_all(self) -> None:
        count = len(self._paths)
        for url in list(self._paths):
            self.release(url)
        logger.debug("Released %d playback handles", count)
        if self._root is not None:
            shutil.rmtree(self._root, ignore_errors=True)

    def __len__(self) -> int:
        return len(self._paths)

    def __enter__(self) -> "PlaybackHandles":
        return self

    def __exit__(self, *exc) -> None:
        self.release_all()


class ResultStore:
    """Append-only collection of generated clips, kept in page order."""

    def __init__(self, handles: Optional[PlaybackHandles] = None):
        self._results: list[GeneratedAudio] = []
        self._handles = handles

    def add(self, audio: GeneratedAudio) -> None:
        if any(r.page_id == audio.page_id for r in self._results):
            raise DuplicatePageError(audio.page_id)
        self._results.append(audio)

    def clear(self) -> None:
        if self._handles is not None:
            for result in self._results:
                self._handles.release(result.access_url)
        self._results = []

    def count(self) -> int:
        return len(self._results)

    def is_complete(self, total_pages: int, is_running: bool = False) -> bool:
        return total_pages > 0 and len(self._results) == total_pages and not is_running

    def get(self, page_id: int) -> Optional[GeneratedAudio]:
        for result in self._results:
            if result.page_id == page_id:
                return result
        return None

    @property
    def results(self) -> tuple[GeneratedAudio, ...]:
        return tuple(self._results)
