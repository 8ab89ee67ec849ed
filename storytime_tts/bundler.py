"""Export bundler - packs generated page clips into one ZIP archive."""

import io
import logging
import zipfile
from pathlib import Path
from typing import Callable, Iterable

from storytime_tts.errors import BundleError
from storytime_tts.models import GeneratedAudio

logger = logging.getLogger(__name__)

ARCHIVE_NAME = "Story_Audio_Pack.zip"

SaveTrigger = Callable[[bytes, str], None]


def bundle(results: Iterable[GeneratedAudio]) -> bytes:
    """Build a compressed archive with one ``Page_<id>.wav`` entry per clip.

    Partial result sets are accepted and produce a partial archive.
    """
    buffer = io.BytesIO()
    count = 0
    try:
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for result in results:
                archive.writestr(result.filename, result.audio)
                count += 1
    except (zipfile.LargeZipFile, ValueError, OSError) as e:
        raise BundleError(f"Failed to build the audio archive: {e}") from e

    logger.info("Bundled %d clips (%d bytes)", count, buffer.tell())
    return buffer.getvalue()


def save_to_directory(directory: str | Path) -> SaveTrigger:
    """Return a save trigger that writes files into ``directory``.

    Files are written to a temporary name first and renamed into place,
    so a failed save never leaves a partial file behind.
    """
    target_dir = Path(directory)

    def save(data: bytes, filename: str) -> None:
        target_dir.mkdir(parents=True, exist_ok=True)
        dest = target_dir / filename
        tmp = dest.with_suffix(dest.suffix + ".tmp")
        try:
            tmp.write_bytes(data)
            tmp.replace(dest)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise
        logger.info("Saved %s", dest)

    return save


def export(results: Iterable[GeneratedAudio], save: SaveTrigger) -> str:
    """Bundle the clips and hand the archive to ``save``.

    Returns:
        The archive filename passed to ``save``.
    """
    archive = bundle(results)
    try:
        save(archive, ARCHIVE_NAME)
    except Exception as e:
        raise BundleError(f"Failed to save {ARCHIVE_NAME}: {e}") from e
    return ARCHIVE_NAME
