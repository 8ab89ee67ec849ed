"""Tests for the generation pipeline."""

import threading
from unittest.mock import MagicMock

import pytest

from storytime_tts.errors import AlreadyRunningError, DuplicatePageError, SynthesisError
from storytime_tts.models import Emotion, Page, Speed, Tone, VoiceConfig
from storytime_tts.pipeline import GenerationPipeline
from storytime_tts.store import PlaybackHandles


def _pages(n: int) -> list[Page]:
    return [Page(id=i, content=f"Page text {i}") for i in range(1, n + 1)]


def _engine(fail_on: str | None = None, message: str = "quota exceeded"):
    engine = MagicMock()
    engine.name = "Fake TTS"

    def generate(text, config):
        if text == fail_on:
            raise RuntimeError(message)
        return f"RIFF-{text}".encode()

    engine.generate_speech.side_effect = generate
    return engine


@pytest.fixture
def config():
    return VoiceConfig(emotion=Emotion.HAPPY, tone=Tone.SOFT, speed=Speed.FAST)


class TestRunAll:
    def test_generates_one_clip_per_page_in_order(self, tmp_path, config):
        pipeline = GenerationPipeline(_engine(), PlaybackHandles(tmp_path / "clips"))
        pages = _pages(3)

        results = pipeline.run_all(pages, config)

        assert [r.page_id for r in results] == [p.id for p in pages]
        assert [r.filename for r in results] == ["Page_1.wav", "Page_2.wav", "Page_3.wav"]
        assert results[0].audio == b"RIFF-Page text 1"

    def test_same_config_for_every_page(self, tmp_path, config):
        engine = _engine()
        pipeline = GenerationPipeline(engine, PlaybackHandles(tmp_path))

        pipeline.run_all(_pages(3), config)

        calls = engine.generate_speech.call_args_list
        assert [c.args[0] for c in calls] == ["Page text 1", "Page text 2", "Page text 3"]
        assert all(c.args[1] is config for c in calls)

    def test_completed_state(self, tmp_path, config):
        pipeline = GenerationPipeline(_engine(), PlaybackHandles(tmp_path))

        pipeline.run_all(_pages(2), config)
        state = pipeline.snapshot()

        assert state.progress_current == 2
        assert state.progress_total == 2
        assert state.is_running is False
        assert state.last_error is None
        assert state.is_complete
        assert pipeline.is_complete

    def test_progress_reported_after_every_page(self, tmp_path, config):
        pipeline = GenerationPipeline(_engine(), PlaybackHandles(tmp_path))
        updates = []
        seen_states = []

        def on_progress(update):
            updates.append(update)
            seen_states.append(pipeline.snapshot())

        pipeline.run_all(_pages(3), config, on_progress=on_progress)

        assert [u.current for u in updates] == [1, 2, 3]
        assert all(u.total == 3 for u in updates)
        assert [u.page_id for u in updates] == [1, 2, 3]
        assert [len(u.results) for u in updates] == [1, 2, 3]
        # partial results are visible while the run is still going
        assert all(s.is_running for s in seen_states)
        assert [len(s.results) for s in seen_states] == [1, 2, 3]
        assert not seen_states[-1].is_complete

    def test_progress_is_monotonic_and_bounded(self, tmp_path, config):
        pipeline = GenerationPipeline(_engine(), PlaybackHandles(tmp_path))
        currents = []

        pipeline.run_all(
            _pages(5), config,
            on_progress=lambda u: currents.append((u.current, u.total)),
        )

        values = [c for c, _ in currents]
        assert values == sorted(values)
        assert all(c <= t for c, t in currents)

    def test_empty_pages_is_noop(self, tmp_path, config):
        engine = _engine()
        pipeline = GenerationPipeline(engine, PlaybackHandles(tmp_path))
        pipeline.load(_pages(2))
        before = pipeline.snapshot()

        assert pipeline.run_all([], config) == []

        engine.generate_speech.assert_not_called()
        assert pipeline.snapshot() == before

    def test_failure_keeps_prefix_and_records_error(self, tmp_path, config):
        engine = _engine(fail_on="Page text 2")
        pipeline = GenerationPipeline(engine, PlaybackHandles(tmp_path))

        with pytest.raises(SynthesisError) as exc_info:
            pipeline.run_all(_pages(3), config)

        assert exc_info.value.page_id == 2
        state = pipeline.snapshot()
        assert [r.page_id for r in state.results] == [1]
        assert state.is_running is False
        assert state.last_error == "quota exceeded"
        assert not state.is_complete
        # page 3 is never attempted
        assert engine.generate_speech.call_count == 2

    def test_failure_without_message_uses_generic_error(self, tmp_path, config):
        pipeline = GenerationPipeline(_engine(fail_on="Page text 1", message=""), PlaybackHandles(tmp_path))

        with pytest.raises(SynthesisError):
            pipeline.run_all(_pages(1), config)

        assert pipeline.snapshot().last_error == "An error occurred during audio generation."

    def test_empty_audio_is_a_failure(self, tmp_path, config):
        engine = MagicMock()
        engine.name = "Silent"
        engine.generate_speech.return_value = b""
        pipeline = GenerationPipeline(engine, PlaybackHandles(tmp_path))

        with pytest.raises(SynthesisError):
            pipeline.run_all(_pages(2), config)

        assert pipeline.snapshot().results == []

    def test_rerun_after_failure_starts_fresh(self, tmp_path, config):
        engine = _engine(fail_on="Page text 2")
        pipeline = GenerationPipeline(engine, PlaybackHandles(tmp_path))
        with pytest.raises(SynthesisError):
            pipeline.run_all(_pages(2), config)

        engine.generate_speech.side_effect = lambda text, cfg: b"ok"
        results = pipeline.run_all(_pages(2), config)

        assert [r.page_id for r in results] == [1, 2]
        assert pipeline.snapshot().last_error is None

    def test_duplicate_page_ids_abort_the_run(self, tmp_path, config):
        pipeline = GenerationPipeline(_engine(), PlaybackHandles(tmp_path))
        pages = [Page(id=1, content="a"), Page(id=1, content="b")]

        with pytest.raises(DuplicatePageError):
            pipeline.run_all(pages, config)

        state = pipeline.snapshot()
        assert len(state.results) == 1
        assert state.is_running is False
        assert state.last_error

    def test_failing_progress_observer_records_error(self, tmp_path, config):
        pipeline = GenerationPipeline(_engine(), PlaybackHandles(tmp_path))

        def on_progress(update):
            raise ValueError("display closed")

        with pytest.raises(ValueError, match="display closed"):
            pipeline.run_all(_pages(3), config, on_progress)

        state = pipeline.snapshot()
        assert len(state.results) == 1
        assert state.is_running is False
        assert state.last_error == "display closed"
        assert not state.is_complete

    def test_second_run_while_running_is_rejected(self, tmp_path, config):
        started = threading.Event()
        release = threading.Event()
        engine = MagicMock()
        engine.name = "Slow"

        def generate(text, cfg):
            started.set()
            release.wait(5)
            return b"audio"

        engine.generate_speech.side_effect = generate
        pipeline = GenerationPipeline(engine, PlaybackHandles(tmp_path))

        worker = threading.Thread(target=pipeline.run_all, args=(_pages(1), config))
        worker.start()
        try:
            assert started.wait(5)
            with pytest.raises(AlreadyRunningError):
                pipeline.run_all(_pages(2), config)
            with pytest.raises(AlreadyRunningError):
                pipeline.reset()
            with pytest.raises(AlreadyRunningError):
                pipeline.load(_pages(3))
            assert pipeline.snapshot().progress_total == 1
            assert pipeline.is_running is True
            assert pipeline.config is config
        finally:
            release.set()
            worker.join(5)

        assert pipeline.is_complete


class TestSessionState:
    def test_run_uses_loaded_pages_and_config(self, tmp_path, config):
        engine = _engine()
        pipeline = GenerationPipeline(engine, PlaybackHandles(tmp_path))
        pipeline.load(_pages(2))
        pipeline.configure(config)

        results = pipeline.run()

        assert len(results) == 2
        assert engine.generate_speech.call_args.args[1] == config

    def test_load_clears_previous_results_and_handles(self, tmp_path, config):
        handles = PlaybackHandles(tmp_path / "clips")
        pipeline = GenerationPipeline(_engine(), handles)
        pipeline.run_all(_pages(2), config)
        assert len(handles) == 2

        pipeline.load(_pages(4))
        state = pipeline.snapshot()

        assert len(state.pages) == 4
        assert state.results == []
        assert state.progress_current == 0
        assert state.progress_total == 0
        assert len(handles) == 0
        assert list((tmp_path / "clips").glob("*.wav")) == []

    def test_reset_wipes_everything(self, tmp_path):
        pipeline = GenerationPipeline(_engine(fail_on="Page text 2"), PlaybackHandles(tmp_path))
        pipeline.load(_pages(2))
        with pytest.raises(SynthesisError):
            pipeline.run()

        pipeline.reset()
        state = pipeline.snapshot()

        assert state.pages == []
        assert state.results == []
        assert state.last_error is None
        assert not state.is_complete

    def test_close_releases_playback_files(self, tmp_path, config):
        root = tmp_path / "session"
        pipeline = GenerationPipeline(_engine(), PlaybackHandles(root))
        pipeline.run_all(_pages(2), config)
        assert root.exists()

        pipeline.close()

        assert not root.exists()

    def test_snapshot_carries_store_results(self, tmp_path, config):
        pipeline = GenerationPipeline(_engine(), PlaybackHandles(tmp_path))
        pipeline.run_all(_pages(2), config)

        state = pipeline.snapshot()

        assert [r.page_id for r in state.results] == [1, 2]
        assert state.results == list(pipeline.store.results)
        assert state.is_complete
