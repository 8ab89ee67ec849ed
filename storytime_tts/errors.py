"""Domain exceptions raised by the generation pipeline and its collaborators."""

from __future__ import annotations

READ_ERROR_MESSAGE = "Failed to read the file. Please ensure it is a valid text file."
GENERATION_ERROR_MESSAGE = "An error occurred during audio generation."
PREVIEW_ERROR_MESSAGE = "Failed to preview audio."


class StoryTimeError(RuntimeError):
    """Base class for every error surfaced to the user."""


class ReadError(StoryTimeError):
    """Raised when a story file cannot be read or decoded as text."""

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(READ_ERROR_MESSAGE)
        self.detail = detail


class SynthesisError(StoryTimeError):
    """Raised when the speech engine fails on a page, aborting the run."""

    def __init__(self, page_id: int, detail: str) -> None:
        super().__init__(detail)
        self.page_id = page_id
        self.detail = detail


class DuplicatePageError(StoryTimeError):
    """Raised when a page is added to the result store twice."""

    def __init__(self, page_id: int) -> None:
        super().__init__(f"Audio for page {page_id} was already generated")
        self.page_id = page_id


class BundleError(StoryTimeError):
    """Raised when the audio archive cannot be built or saved."""


class AlreadyRunningError(StoryTimeError):
    """Raised when a run is requested while another one is in progress."""

    def __init__(self) -> None:
        super().__init__("A generation run is already in progress")


class PreviewError(StoryTimeError):
    """Raised when a voice preview cannot be synthesized or played."""

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(PREVIEW_ERROR_MESSAGE)
        self.detail = detail
