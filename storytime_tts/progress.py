"""Progress reporting for the generation pipeline."""

from tqdm import tqdm

from storytime_tts.models import ProgressUpdate


class ProgressReporter:
    """Wraps tqdm for page-level progress reporting."""

    def __init__(self, total_pages: int):
        self._bar = tqdm(
            total=total_pages,
            desc="Narrating",
            unit="page",
            bar_format="{l_bar}{bar}| {n_fmt}/{total_fmt} pages [{elapsed}<{remaining}]",
        )

    def update(self, update: ProgressUpdate) -> None:
        """Advance the bar to the page that just completed."""
        self._bar.set_postfix_str(f"Page {update.page_id}", refresh=False)
        self._bar.update(update.current - self._bar.n)

    def close(self) -> None:
        self._bar.close()
