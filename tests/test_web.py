"""Tests for the FastAPI web interface."""

import asyncio
import io
import threading
import zipfile
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from storytime_tts.web.app import create_app

STORY = b"Page 1\nOnce upon a time.\nPage 2\nThe end."


@pytest.fixture(autouse=True)
def _reset_sse_exit_event():
    # sse-starlette keeps a class-level exit event bound to the first event loop
    from sse_starlette.sse import AppStatus

    AppStatus.should_exit_event = None


@pytest.fixture
def app(tmp_path):
    return create_app(data_dir=str(tmp_path / "data"), default_engine="mock")


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def _upload(client, content=STORY, filename="story.txt"):
    return client.post("/api/upload", files={"file": (filename, content, "text/plain")})


def _generate(client, app, session_id):
    resp = client.post(f"/api/sessions/{session_id}/generate")
    assert resp.status_code == 202
    app.state.sessions.get(session_id).join(10)
    return client.get(f"/api/sessions/{session_id}").json()


class TestUpload:
    def test_upload_segments_story(self, client):
        resp = _upload(client)

        assert resp.status_code == 201
        data = resp.json()
        assert data["pages"] == [
            {"id": 1, "content": "Once upon a time."},
            {"id": 2, "content": "The end."},
        ]
        assert data["results"] == []
        assert data["is_complete"] is False

    def test_rejects_non_text_file(self, client):
        resp = _upload(client, filename="story.pdf")

        assert resp.status_code == 400

    def test_rejects_undecodable_file(self, client):
        resp = _upload(client, content=b"\xff\xfe\xfa\x00")

        assert resp.status_code == 400
        assert resp.json()["detail"] == (
            "Failed to read the file. Please ensure it is a valid text file."
        )

    def test_unknown_session(self, client):
        assert client.get("/api/sessions/nope").status_code == 404


class TestGeneration:
    def test_generate_and_download(self, client, app):
        session_id = _upload(client).json()["session_id"]

        state = _generate(client, app, session_id)

        assert state["is_complete"] is True
        assert state["progress_current"] == 2
        assert [r["filename"] for r in state["results"]] == ["Page_1.wav", "Page_2.wav"]

        clip = client.get(state["results"][0]["url"])
        assert clip.status_code == 200
        assert clip.headers["content-type"] == "audio/wav"
        assert clip.content[:4] == b"RIFF"

        pack = client.get(f"/api/sessions/{session_id}/download")
        assert pack.status_code == 200
        assert 'filename="Story_Audio_Pack.zip"' in pack.headers["content-disposition"]
        assert zipfile.ZipFile(io.BytesIO(pack.content)).namelist() == ["Page_1.wav", "Page_2.wav"]

    def test_progress_stream_reports_done(self, client, app):
        session_id = _upload(client).json()["session_id"]
        _generate(client, app, session_id)

        resp = client.get(f"/api/sessions/{session_id}/progress")

        assert "event: done" in resp.text

    def test_failure_is_reported(self, client, app):
        session_id = _upload(client, content=b"Page 1 a\nPage 2 b\nPage 3 c").json()["session_id"]

        calls = []

        def flaky(text, config):
            calls.append(text)
            if text == "b":
                raise RuntimeError("voice service unavailable")
            return b"RIFF0000"

        with patch("storytime_tts.tts.mock_engine.MockSpeechEngine.generate_speech", side_effect=flaky):
            state = _generate(client, app, session_id)

        assert [r["page_id"] for r in state["results"]] == [1]
        assert state["is_running"] is False
        assert state["error"] == "voice service unavailable"
        assert calls == ["a", "b"]

        resp = client.get(f"/api/sessions/{session_id}/progress")
        assert "event: error" in resp.text

        dismissed = client.delete(f"/api/sessions/{session_id}/error").json()
        assert dismissed["error"] is None

    def test_busy_session_rejects_changes(self, client, app):
        session_id = _upload(client).json()["session_id"]
        started = threading.Event()
        release = threading.Event()

        def slow(text, config):
            started.set()
            release.wait(10)
            return b"RIFF0000"

        with patch("storytime_tts.tts.mock_engine.MockSpeechEngine.generate_speech", side_effect=slow):
            assert client.post(f"/api/sessions/{session_id}/generate").status_code == 202
            try:
                assert started.wait(10)

                assert client.post(f"/api/sessions/{session_id}/generate").status_code == 409
                assert client.post(f"/api/sessions/{session_id}/reset").status_code == 409
                assert client.put(
                    f"/api/sessions/{session_id}/config", json={"emotion": "Sad"},
                ).status_code == 409
                assert client.post(
                    f"/api/sessions/{session_id}/upload",
                    files={"file": ("other.txt", b"Page 1 Only one.", "text/plain")},
                ).status_code == 409
                assert client.delete(f"/api/sessions/{session_id}").status_code == 409

                state = client.get(f"/api/sessions/{session_id}").json()
                assert state["is_running"] is True
                assert state["filename"] == "story.txt"
                assert len(state["pages"]) == 2
                assert state["config"]["emotion"] == "Gentle"
            finally:
                release.set()
                app.state.sessions.get(session_id).join(10)

        state = client.get(f"/api/sessions/{session_id}").json()
        assert state["is_complete"] is True
        assert len(state["results"]) == 2

    def test_engine_initialized_off_the_event_loop(self, client, app):
        session_id = _upload(client).json()["session_id"]
        callers = []

        def initialize():
            try:
                asyncio.get_running_loop()
                callers.append("event loop")
            except RuntimeError:
                callers.append("worker thread")

        with patch("storytime_tts.tts.mock_engine.MockSpeechEngine.initialize", side_effect=initialize):
            _generate(client, app, session_id)
            client.post(f"/api/sessions/{session_id}/preview")

        assert callers == ["worker thread", "worker thread"]

    def test_generate_without_pages_is_noop(self, client):
        session_id = _upload(client, content=b"  \n ").json()["session_id"]

        resp = client.post(f"/api/sessions/{session_id}/generate")

        assert resp.status_code == 202
        assert resp.json()["status"] == "idle"

    def test_download_before_generation(self, client):
        session_id = _upload(client).json()["session_id"]

        assert client.get(f"/api/sessions/{session_id}/download").status_code == 404


class TestConfigAndReset:
    def test_update_config(self, client):
        session_id = _upload(client).json()["session_id"]

        resp = client.put(
            f"/api/sessions/{session_id}/config",
            json={"emotion": "excited", "tone": "Friendly", "speed": "Fast"},
        )

        assert resp.status_code == 200
        assert resp.json()["config"]["emotion"] == "Excited"
        assert resp.json()["config"]["speed"] == "Fast"

    def test_invalid_config_rejected(self, client):
        session_id = _upload(client).json()["session_id"]

        resp = client.put(f"/api/sessions/{session_id}/config", json={"tone": "Loud"})

        assert resp.status_code == 400

    def test_unknown_engine_rejected(self, client):
        session_id = _upload(client).json()["session_id"]

        resp = client.put(f"/api/sessions/{session_id}/config", json={"engine": "nope"})

        assert resp.status_code == 400

    def test_reset_clears_results(self, client, app):
        session_id = _upload(client).json()["session_id"]
        _generate(client, app, session_id)

        state = client.post(f"/api/sessions/{session_id}/reset").json()

        assert state["pages"] == []
        assert state["results"] == []
        assert client.get(f"/api/sessions/{session_id}/audio/1").status_code == 404

    def test_replace_story(self, client, app):
        session_id = _upload(client).json()["session_id"]
        _generate(client, app, session_id)

        resp = client.post(
            f"/api/sessions/{session_id}/upload",
            files={"file": ("other.txt", b"Page 1 Only one.", "text/plain")},
        )

        data = resp.json()
        assert data["filename"] == "other.txt"
        assert data["pages"] == [{"id": 1, "content": "Only one."}]
        assert data["results"] == []

    def test_delete_session(self, client, tmp_path):
        session_id = _upload(client).json()["session_id"]

        assert client.delete(f"/api/sessions/{session_id}").status_code == 204
        assert client.get(f"/api/sessions/{session_id}").status_code == 404


class TestPreview:
    def test_preview_returns_audio(self, client):
        session_id = _upload(client).json()["session_id"]

        resp = client.post(f"/api/sessions/{session_id}/preview")

        assert resp.status_code == 200
        assert resp.content[:4] == b"RIFF"

    def test_preview_failure(self, client):
        session_id = _upload(client).json()["session_id"]

        with patch(
            "storytime_tts.tts.mock_engine.MockSpeechEngine.generate_speech",
            side_effect=RuntimeError("boom"),
        ):
            resp = client.post(f"/api/sessions/{session_id}/preview")

        assert resp.status_code == 502
        assert resp.json()["detail"] == "Failed to preview audio."

    def test_preview_trims_leading_whitespace(self, client):
        session_id = _upload(client).json()["session_id"]

        resp = client.post(
            f"/api/sessions/{session_id}/preview", json={"text": " " * 100 + "Hello there"},
        )

        assert resp.status_code == 200
        assert resp.content[:4] == b"RIFF"

    def test_preview_of_empty_session(self, client):
        session_id = _upload(client, content=b"").json()["session_id"]

        assert client.post(f"/api/sessions/{session_id}/preview").status_code == 400
