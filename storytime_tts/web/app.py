"""FastAPI web interface for storytime-tts."""

import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, UploadFile
from fastapi.responses import FileResponse, Response
from pydantic import BaseModel
from sse_starlette.sse import EventSourceResponse

from storytime_tts.errors import (
    PREVIEW_ERROR_MESSAGE,
    AlreadyRunningError,
    BundleError,
    PreviewError,
    ReadError,
    StoryTimeError,
)
from storytime_tts.store import PlaybackHandles
from storytime_tts.web.sessions import Session, SessionManager

logger = logging.getLogger(__name__)


# --- Pydantic models ---

class VoiceConfigRequest(BaseModel):
    engine: Optional[str] = None
    emotion: str = "Gentle"
    tone: str = "Warm"
    speed: str = "Normal"
    voice: str = ""
    language: str = "en"


class PreviewRequest(BaseModel):
    text: Optional[str] = None


# --- Serialization ---

def _state_payload(session: Session) -> dict:
    state = session.pipeline.snapshot()
    return {
        "session_id": session.session_id,
        "filename": session.filename,
        "engine": session.engine_name,
        "config": {
            "emotion": state.config.emotion.value,
            "tone": state.config.tone.value,
            "speed": state.config.speed.value,
            "voice": state.config.voice,
            "language": state.config.language,
        },
        "pages": [{"id": p.id, "content": p.content} for p in state.pages],
        "results": [
            {
                "page_id": r.page_id,
                "filename": r.filename,
                "url": f"/api/sessions/{session.session_id}/audio/{r.page_id}",
            }
            for r in state.results
        ],
        "progress_current": state.progress_current,
        "progress_total": state.progress_total,
        "is_running": state.is_running or session.is_busy,
        "is_complete": state.is_complete and not session.is_busy,
        "error": state.last_error,
    }


# --- App factory ---

def create_app(data_dir: str = "./data", default_engine: str = "edge") -> FastAPI:
    data_path = Path(data_dir).resolve()
    data_path.mkdir(parents=True, exist_ok=True)

    sessions = SessionManager()

    from storytime_tts.tts import get_engine, import_engines, list_engines

    import_engines()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        sessions.close_all()

    app = FastAPI(title="storytime-tts", version="0.1.0", lifespan=lifespan)
    app.state.sessions = sessions

    def _get_session(session_id: str) -> Session:
        session = sessions.get(session_id)
        if not session:
            raise HTTPException(404, detail="Session not found")
        return session

    def _make_engine(name: str):
        try:
            return get_engine(name)
        except ValueError as e:
            raise HTTPException(400, detail=str(e))

    async def _read_pages(file: UploadFile):
        from storytime_tts.segmenter import decode_story, segment

        if not file.filename or not file.filename.lower().endswith(".txt"):
            raise HTTPException(400, detail="The story must be a .txt file")
        content = await file.read()
        try:
            return segment(decode_story(content))
        except ReadError as e:
            logger.info("Rejected upload '%s': %s", file.filename, e.detail)
            raise HTTPException(400, detail=str(e))

    # --- Routes ---

    @app.get("/api/engines")
    async def list_engines_route():
        return {"engines": list_engines(), "default": default_engine}

    @app.get("/api/voices")
    async def list_voices_route(engine: str, language: str = "en"):
        try:
            eng = get_engine(engine)
            await asyncio.to_thread(eng.initialize)
            voices = await asyncio.to_thread(eng.list_voices, language)
            return {"voices": voices}
        except (ValueError, RuntimeError) as e:
            raise HTTPException(400, detail=str(e))

    @app.post("/api/upload", status_code=201)
    async def upload_story(file: UploadFile):
        from storytime_tts.pipeline import GenerationPipeline

        pages = await _read_pages(file)

        session_id = uuid.uuid4().hex[:12]
        pipeline = GenerationPipeline(
            _make_engine(default_engine),
            handles=PlaybackHandles(data_path / session_id),
        )
        pipeline.load(pages)
        session = sessions.add(Session(session_id, pipeline, file.filename, default_engine))
        logger.info("Session %s: '%s' with %d pages", session_id, file.filename, len(pages))

        return _state_payload(session)

    @app.post("/api/sessions/{session_id}/upload")
    async def replace_story(session_id: str, file: UploadFile):
        session = _get_session(session_id)
        pages = await _read_pages(file)
        if session.is_busy:
            raise HTTPException(409, detail="Generation in progress")
        try:
            session.pipeline.load(pages)
        except AlreadyRunningError as e:
            raise HTTPException(409, detail=str(e))
        session.filename = file.filename
        return _state_payload(session)

    @app.get("/api/sessions/{session_id}")
    async def get_session(session_id: str):
        return _state_payload(_get_session(session_id))

    @app.put("/api/sessions/{session_id}/config")
    async def update_config(session_id: str, req: VoiceConfigRequest):
        from storytime_tts.models import VoiceConfig

        session = _get_session(session_id)
        if session.is_busy:
            raise HTTPException(409, detail="Generation in progress")

        try:
            config = VoiceConfig.from_strings(
                emotion=req.emotion,
                tone=req.tone,
                speed=req.speed,
                voice=req.voice,
                language=req.language,
            )
        except ValueError as e:
            raise HTTPException(400, detail=str(e))

        if req.engine and req.engine != session.engine_name:
            session.pipeline.engine = _make_engine(req.engine)
            session.engine_name = req.engine

        try:
            session.pipeline.configure(config)
        except AlreadyRunningError as e:
            raise HTTPException(409, detail=str(e))
        return _state_payload(session)

    @app.post("/api/sessions/{session_id}/generate", status_code=202)
    async def start_generation(session_id: str):
        session = _get_session(session_id)
        pipeline = session.pipeline

        if not pipeline.pages:
            return {"session_id": session_id, "status": "idle"}

        if session.is_busy:
            raise HTTPException(409, detail="Generation already in progress")

        # Engines import their models here, off the event loop
        try:
            await asyncio.to_thread(pipeline.engine.initialize)
        except (ImportError, RuntimeError) as e:
            raise HTTPException(400, detail=str(e))

        def run_generation():
            try:
                pipeline.run()
            except StoryTimeError as e:
                logger.warning("Generation stopped for session %s: %s", session_id, e)
            except Exception:
                logger.exception("Generation failed for session %s", session_id)

        if not session.start(run_generation):
            raise HTTPException(409, detail="Generation already in progress")

        return {"session_id": session_id, "status": "generating"}

    @app.get("/api/sessions/{session_id}/progress")
    async def progress_stream(session_id: str):
        _get_session(session_id)

        async def event_generator():
            last_count = -1
            while True:
                session = sessions.get(session_id)
                if not session:
                    break

                payload = _state_payload(session)
                count = len(payload["results"])
                running = payload["is_running"]

                if count != last_count or not running:
                    last_count = count
                    yield {
                        "event": "progress",
                        "data": json.dumps({
                            "current": payload["progress_current"],
                            "total": payload["progress_total"],
                            "results": payload["results"],
                        }),
                    }

                if not running:
                    if payload["is_complete"]:
                        yield {"event": "done", "data": json.dumps({"status": "done"})}
                    elif payload["error"]:
                        yield {
                            "event": "error",
                            "data": json.dumps({"status": "error", "error": payload["error"]}),
                        }
                    else:
                        yield {"event": "idle", "data": json.dumps({"status": "idle"})}
                    break

                await asyncio.sleep(0.5)

        return EventSourceResponse(event_generator())

    @app.get("/api/sessions/{session_id}/audio/{page_id}")
    async def get_clip(session_id: str, page_id: int, download: bool = False):
        session = _get_session(session_id)
        result = session.pipeline.store.get(page_id)
        path = session.pipeline.handles.path_for(result.access_url) if result else None
        if path is None or not path.exists():
            raise HTTPException(404, detail="Clip not ready")

        return FileResponse(
            str(path),
            media_type="audio/wav",
            filename=result.filename if download else None,
        )

    @app.post("/api/sessions/{session_id}/preview")
    async def preview_voice(session_id: str, req: Optional[PreviewRequest] = None):
        from storytime_tts.preview import preview

        session = _get_session(session_id)
        pipeline = session.pipeline
        pages = pipeline.pages
        text = req.text if req and req.text else (pages[0].content if pages else "")
        if not text.strip():
            raise HTTPException(400, detail="Nothing to preview")

        # The browser plays the returned clip
        try:
            await asyncio.to_thread(pipeline.engine.initialize)
            audio = await asyncio.to_thread(
                preview, text, pipeline.config, pipeline.engine, lambda _audio: None,
            )
        except PreviewError as e:
            raise HTTPException(502, detail=str(e))
        except (ImportError, RuntimeError) as e:
            logger.error("Preview engine unavailable: %s", e)
            raise HTTPException(502, detail=PREVIEW_ERROR_MESSAGE)

        return Response(content=audio, media_type="audio/wav")

    @app.get("/api/sessions/{session_id}/download")
    async def download_pack(session_id: str):
        from storytime_tts.bundler import export

        session = _get_session(session_id)
        state = session.pipeline.snapshot()
        if not state.results:
            raise HTTPException(404, detail="No clips ready")

        saved = {}

        def save(data: bytes, filename: str) -> None:
            saved["data"] = data
            saved["filename"] = filename

        try:
            export(state.results, save)
        except BundleError as e:
            logger.error("Export failed for session %s: %s", session_id, e)
            raise HTTPException(500, detail=str(e))

        return Response(
            content=saved["data"],
            media_type="application/zip",
            headers={"Content-Disposition": f'attachment; filename="{saved["filename"]}"'},
        )

    @app.delete("/api/sessions/{session_id}/error")
    async def dismiss_error(session_id: str):
        session = _get_session(session_id)
        session.pipeline.clear_error()
        return _state_payload(session)

    @app.post("/api/sessions/{session_id}/reset")
    async def reset_session(session_id: str):
        session = _get_session(session_id)
        if session.is_busy:
            raise HTTPException(409, detail="Generation in progress")
        try:
            session.pipeline.reset()
        except AlreadyRunningError as e:
            raise HTTPException(409, detail=str(e))
        return _state_payload(session)

    @app.delete("/api/sessions/{session_id}", status_code=204)
    async def delete_session(session_id: str):
        session = _get_session(session_id)
        if session.is_busy:
            raise HTTPException(409, detail="Generation in progress")
        sessions.remove(session_id)
        return Response(status_code=204)

    return app


# --- CLI entry point ---

def main():
    """Run the storytime-tts web server."""
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="storytime-tts web interface")
    parser.add_argument("--host", default="127.0.0.1", help="Host (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    parser.add_argument("--data-dir", default="./data", help="Directory for session audio")
    parser.add_argument("--engine", default="edge", help="Default speech engine (default: edge)")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    app = create_app(data_dir=args.data_dir, default_engine=args.engine)
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
