"""FastAPI application exposing the session API and the single-page UI."""

import logging
import time
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path

import uvicorn
from fastapi import FastAPI, File, Request, Response, UploadFile
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse

from . import __version__
from .config import get_settings
from .exceptions import FluxoScribeError, InvalidTransitionError, PreviewNotFoundError
from .session import AppStatus, SessionRegistry
from .transcribe_service import TranscribeService

logger = logging.getLogger(__name__)

INDEX_HTML = Path(__file__).parent / "index.html"

registry = SessionRegistry(ttl_seconds=get_settings().session_ttl_seconds)
transcribe_service = TranscribeService()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    # Release every preview still held by an open page
    registry.close_all()


app = FastAPI(title="FluxoScribe", version=__version__, lifespan=lifespan)


@app.exception_handler(FluxoScribeError)
async def fluxoscribe_error_handler(_request: Request, exc: FluxoScribeError) -> JSONResponse:
    """Convert domain errors into a JSON error envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code, "timestamp": exc.timestamp},
    )


@app.exception_handler(Exception)
async def generic_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler, keeps stack traces away from clients."""
    logger.exception("Unhandled error: %s", exc)
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "code": "INTERNAL_ERROR",
            "timestamp": datetime.now(UTC).isoformat(),
        },
    )


@app.get("/")
async def get_index() -> HTMLResponse:
    """Serve the index.html single-page UI."""
    return HTMLResponse(INDEX_HTML.read_text(encoding="utf-8"))


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "version": __version__}


@app.post("/api/sessions", status_code=201)
async def create_session() -> dict:
    """Open a session for a freshly loaded page."""
    return registry.create().snapshot()


@app.get("/api/sessions/{session_id}")
async def get_session(session_id: str) -> dict:
    return registry.get(session_id).snapshot()


@app.delete("/api/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str) -> Response:
    """Tear the session down and release its preview."""
    registry.close(session_id)
    return Response(status_code=204)


@app.post("/api/sessions/{session_id}/file")
async def upload_file(session_id: str, file: UploadFile = File(...)) -> dict:
    """Validate the uploaded media and keep it encoded in memory."""
    session = registry.get(session_id)
    try:
        await session.select_file(file.filename or "", file.content_type, file.read)
    finally:
        await file.close()
    return session.snapshot()


@app.post("/api/sessions/{session_id}/transcribe")
async def transcribe(session_id: str) -> dict:
    """Run the transcription; remote failures come back in the error overlay."""
    session = registry.get(session_id)
    await session.transcribe(transcribe_service)
    return session.snapshot()


@app.post("/api/sessions/{session_id}/reset")
async def reset_session(session_id: str) -> dict:
    session = registry.get(session_id)
    session.reset()
    return session.snapshot()


@app.get("/api/sessions/{session_id}/media/{token}")
async def get_media(session_id: str, token: str) -> Response:
    """Stream the uploaded file back for the audio/video player."""
    preview = registry.get(session_id).previews.get(token)
    if preview is None:
        raise PreviewNotFoundError(token)
    return Response(content=preview.data, media_type=preview.mime_type)


@app.get("/api/sessions/{session_id}/transcript")
async def download_transcript(session_id: str) -> PlainTextResponse:
    """Return the transcript as a downloadable text file."""
    session = registry.get(session_id)
    if session.status is not AppStatus.COMPLETED:
        raise InvalidTransitionError("download a transcript", session.status.value)
    filename = f"transcricao_{int(time.time() * 1000)}.txt"
    return PlainTextResponse(
        session.transcription,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def run() -> None:
    """Start the server with the configured host, port and log level."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=settings.app_host, port=settings.app_port)


if __name__ == "__main__":
    run()
