import pytest
from unittest.mock import AsyncMock, patch

from httpx import AsyncClient, ASGITransport
from starlette.testclient import TestClient
from fluxoscribe.exceptions import PayloadTooLargeError
from fluxoscribe.main import app
from fluxoscribe.transcribe_service import TranscriptionResponse


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _client():
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def _new_session(client) -> str:
    response = await client.post("/api/sessions")
    assert response.status_code == 201
    return response.json()["session_id"]


async def _upload(client, sid, name="talk.mp3", data=b"fake-audio-bytes", mime="audio/mpeg"):
    return await client.post(f"/api/sessions/{sid}/file", files={"file": (name, data, mime)})


# ---------------------------------------------------------------------------
# GET / and /health
# ---------------------------------------------------------------------------

class TestGetIndex:
    @pytest.mark.asyncio
    async def test_returns_html(self):
        async with _client() as client:
            response = await client.get("/")

        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "FluxoScribe" in response.text

    @pytest.mark.asyncio
    async def test_page_survives_back_forward_cache(self):
        async with _client() as client:
            response = await client.get("/")

        # No DELETE when the page is only frozen, and a fresh session after a 404
        assert "if (event.persisted) return;" in response.text
        assert "if (res.status === 404) return startSession();" in response.text

    @pytest.mark.asyncio
    async def test_health(self):
        async with _client() as client:
            response = await client.get("/health")
        assert response.json()["status"] == "ok"


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

class TestSessions:
    @pytest.mark.asyncio
    async def test_new_session_is_idle(self, registry):
        async with _client() as client:
            response = await client.post("/api/sessions")

        body = response.json()
        assert body["status"] == "IDLE"
        assert body["file"] is None
        assert body["error"] == {"has_error": False, "message": ""}

    @pytest.mark.asyncio
    async def test_unknown_session_is_404(self, registry):
        async with _client() as client:
            response = await client.get("/api/sessions/missing")

        assert response.status_code == 404
        assert response.json()["code"] == "SESSION_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_abandoned_session_expires(self, registry):
        clock = [1000.0]
        registry.clock = lambda: clock[0]
        registry.ttl_seconds = 60

        async with _client() as client:
            sid = await _new_session(client)
            preview_url = (await _upload(client, sid)).json()["file"]["preview_url"]
            previews = registry.get(sid).previews

            clock[0] += 61
            await client.post("/api/sessions")
            state = await client.get(f"/api/sessions/{sid}")
            media = await client.get(preview_url)

        assert sid not in registry.sessions
        assert len(previews) == 0
        assert state.status_code == 404
        assert media.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_releases_preview(self, registry):
        async with _client() as client:
            sid = await _new_session(client)
            preview_url = (await _upload(client, sid)).json()["file"]["preview_url"]
            previews = registry.get(sid).previews

            response = await client.delete(f"/api/sessions/{sid}")

        assert response.status_code == 204
        assert sid not in registry.sessions
        assert len(previews) == 0
        assert preview_url.startswith(f"/api/sessions/{sid}/media/")


# ---------------------------------------------------------------------------
# POST /api/sessions/{id}/file
# ---------------------------------------------------------------------------

class TestUploadFile:
    @pytest.mark.asyncio
    async def test_upload_makes_session_ready(self, registry):
        async with _client() as client:
            sid = await _new_session(client)
            response = await _upload(client, sid, name="clip.mp4", mime="video/mp4")

        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "READY_TO_TRANSCRIBE"
        assert body["file"]["filename"] == "clip.mp4"
        assert body["file"]["kind"] == "video"
        assert body["file"]["size"] == len(b"fake-audio-bytes")

    @pytest.mark.asyncio
    async def test_wrong_type_is_rejected(self, registry):
        async with _client() as client:
            sid = await _new_session(client)
            response = await _upload(client, sid, name="notes.txt", mime="text/plain")
            state = (await client.get(f"/api/sessions/{sid}")).json()

        assert response.status_code == 415
        assert response.json()["detail"] == "Por favor, selecione apenas arquivos de áudio ou vídeo."
        assert state["status"] == "IDLE"
        assert state["error"]["has_error"] is False

    @pytest.mark.asyncio
    async def test_preview_serves_uploaded_bytes(self, registry):
        async with _client() as client:
            sid = await _new_session(client)
            preview_url = (await _upload(client, sid)).json()["file"]["preview_url"]
            response = await client.get(preview_url)

        assert response.status_code == 200
        assert response.content == b"fake-audio-bytes"
        assert response.headers["content-type"] == "audio/mpeg"


# ---------------------------------------------------------------------------
# POST /api/sessions/{id}/transcribe
# ---------------------------------------------------------------------------

class TestTranscribe:
    @pytest.mark.asyncio
    async def test_completes_with_transcript(self, registry):
        mock = AsyncMock(return_value=TranscriptionResponse(text="test transcript"))
        with patch("fluxoscribe.main.transcribe_service.transcribe_media", mock):
            async with _client() as client:
                sid = await _new_session(client)
                await _upload(client, sid)
                response = await client.post(f"/api/sessions/{sid}/transcribe")

        body = response.json()
        assert body["status"] == "COMPLETED"
        assert body["transcription"] == "test transcript"
        mock.assert_awaited_once()
        assert mock.await_args.args[1] == "audio/mpeg"

    @pytest.mark.asyncio
    async def test_remote_failure_keeps_file(self, registry):
        mock = AsyncMock(side_effect=PayloadTooLargeError())
        with patch("fluxoscribe.main.transcribe_service.transcribe_media", mock):
            async with _client() as client:
                sid = await _new_session(client)
                await _upload(client, sid)
                response = await client.post(f"/api/sessions/{sid}/transcribe")

        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "READY_TO_TRANSCRIBE"
        assert body["file"]["filename"] == "talk.mp3"
        assert body["error"] == {
            "has_error": True,
            "message": "O arquivo é muito grande para ser processado diretamente.",
        }

    @pytest.mark.asyncio
    async def test_transcribe_without_file_is_409(self, registry):
        async with _client() as client:
            sid = await _new_session(client)
            response = await client.post(f"/api/sessions/{sid}/transcribe")

        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_TRANSITION"


# ---------------------------------------------------------------------------
# Reset and download
# ---------------------------------------------------------------------------

class TestResetAndDownload:
    @pytest.mark.asyncio
    async def test_reset_returns_to_idle_and_revokes_preview(self, registry):
        async with _client() as client:
            sid = await _new_session(client)
            preview_url = (await _upload(client, sid)).json()["file"]["preview_url"]
            response = await client.post(f"/api/sessions/{sid}/reset")
            media = await client.get(preview_url)

        assert response.json()["status"] == "IDLE"
        assert response.json()["file"] is None
        assert media.status_code == 404
        assert media.json()["code"] == "PREVIEW_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_download_transcript(self, registry):
        mock = AsyncMock(return_value=TranscriptionResponse(text="# Olá"))
        with patch("fluxoscribe.main.transcribe_service.transcribe_media", mock):
            async with _client() as client:
                sid = await _new_session(client)
                await _upload(client, sid)
                await client.post(f"/api/sessions/{sid}/transcribe")
                response = await client.get(f"/api/sessions/{sid}/transcript")

        assert response.status_code == 200
        assert response.text == "# Olá"
        disposition = response.headers["content-disposition"]
        assert disposition.startswith('attachment; filename="transcricao_')
        assert disposition.endswith('.txt"')

    @pytest.mark.asyncio
    async def test_download_before_completion_is_409(self, registry):
        async with _client() as client:
            sid = await _new_session(client)
            response = await client.get(f"/api/sessions/{sid}/transcript")

        assert response.status_code == 409


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------

class TestLifespan:
    def test_shutdown_closes_open_sessions(self, registry):
        with TestClient(app) as client:
            sid = client.post("/api/sessions").json()["session_id"]
            client.post(
                f"/api/sessions/{sid}/file",
                files={"file": ("talk.mp3", b"fake-audio-bytes", "audio/mpeg")},
            )
            previews = registry.get(sid).previews
            assert len(previews) == 1

        assert registry.sessions == {}
        assert len(previews) == 0
