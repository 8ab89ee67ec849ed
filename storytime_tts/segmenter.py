"""Story file reader - splits page-marked text into ordered pages."""

import codecs
import logging
import re
from pathlib import Path

from storytime_tts.errors import ReadError
from storytime_tts.models import Page

logger = logging.getLogger(__name__)

# "Page 3", "PAGE 12", "page\n4" ... the marker itself is dropped.
PAGE_MARKER = re.compile(r"Page\s+\d+", re.IGNORECASE)


def segment(raw_text: str) -> list[Page]:
    """Split raw story text into pages.

    Ids follow split order (1..n), not the numbers written in the markers,
    so skipped or repeated markers still produce contiguous ids.
    """
    fragments = PAGE_MARKER.split(raw_text)
    pages = []
    for fragment in fragments:
        content = fragment.strip()
        if not content:
            continue
        pages.append(Page(id=len(pages) + 1, content=content))

    logger.debug("Segmented %d characters into %d pages", len(raw_text), len(pages))
    return pages


def decode_story(data: bytes) -> str:
    """Decode uploaded story bytes as UTF-8 text."""
    if data.startswith(codecs.BOM_UTF8):
        data = data[len(codecs.BOM_UTF8):]
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ReadError(str(e)) from e
    if "\x00" in text:
        raise ReadError("binary content")
    return text


def read_story(path: str | Path) -> str:
    """Read a story file from disk."""
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise ReadError(str(e)) from e
    return decode_story(data)


def load_story(path: str | Path) -> list[Page]:
    """Read and segment a story file."""
    pages = segment(read_story(path))
    logger.info("Loaded '%s': %d pages", path, len(pages))
    return pages
