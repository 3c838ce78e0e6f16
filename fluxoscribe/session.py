"""Upload/transcription state machine for one browser tab, and the in-memory
registries that back it."""

import base64
import logging
import secrets
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .exceptions import (
    ConfigurationError,
    FileProcessingError,
    InvalidTransitionError,
    PayloadTooLargeError,
    SessionNotFoundError,
    UnsupportedMediaTypeError,
)
from .transcribe_service import TranscribeService

logger = logging.getLogger(__name__)

ACCEPTED_MIME_PREFIXES = ("audio/", "video/")

FILE_PROCESSING_MESSAGE = "Falha ao processar o arquivo. Tente novamente."
CONFIGURATION_MESSAGE = "Erro de configuração: Chave da API inválida ou ausente."
PAYLOAD_TOO_LARGE_MESSAGE = "O arquivo é muito grande para ser processado diretamente."
GENERIC_TRANSCRIPTION_MESSAGE = "Ocorreu um erro durante a transcrição."


class AppStatus(str, Enum):
    IDLE = "IDLE"
    PROCESSING_FILE = "PROCESSING_FILE"
    READY_TO_TRANSCRIBE = "READY_TO_TRANSCRIBE"
    TRANSCRIBING = "TRANSCRIBING"
    COMPLETED = "COMPLETED"


@dataclass
class FileData:
    filename: str
    size: int
    mime_type: str
    base64: str
    preview_url: str

    @property
    def kind(self) -> str:
        return "video" if self.mime_type.startswith("video/") else "audio"


@dataclass
class ErrorState:
    has_error: bool = False
    message: str = ""


def is_accepted_media(mime_type: str | None) -> bool:
    """True for MIME types under the audio/ or video/ prefixes."""
    return bool(mime_type) and mime_type.startswith(ACCEPTED_MIME_PREFIXES)


@dataclass
class Preview:
    data: bytes
    mime_type: str


class PreviewStore:
    """Holds uploaded bytes behind revocable URLs, like browser object URLs."""

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url.rstrip("/")
        self._previews: dict[str, Preview] = {}

    def create(self, data: bytes, mime_type: str) -> str:
        token = secrets.token_urlsafe(16)
        self._previews[token] = Preview(data, mime_type)
        return f"{self.base_url}/{token}"

    def get(self, token: str) -> Preview | None:
        return self._previews.get(token)

    def revoke(self, url: str) -> None:
        token = url.rsplit("/", 1)[-1]
        self._previews.pop(token, None)

    def __len__(self) -> int:
        return len(self._previews)


def error_message_for(exc: Exception) -> str:
    """Map a remote failure to the single message shown to the user."""
    if isinstance(exc, ConfigurationError):
        return CONFIGURATION_MESSAGE
    if isinstance(exc, PayloadTooLargeError):
        return PAYLOAD_TOO_LARGE_MESSAGE
    return GENERIC_TRANSCRIPTION_MESSAGE


class TranscriptionSession:
    """Tracks one upload through encode, transcription and display.

    Error is an overlay on the current status rather than a status of its
    own: a failed transcription goes back to READY_TO_TRANSCRIBE with the
    file kept so the user can retry.
    """

    def __init__(
        self,
        session_id: str,
        previews: PreviewStore,
        on_change: Callable[[AppStatus], None] | None = None,
    ) -> None:
        self.session_id = session_id
        self.previews = previews
        self.on_change = on_change
        self.status = AppStatus.IDLE
        self.file: FileData | None = None
        self.transcription = ""
        self.error = ErrorState()

    def _set_status(self, status: AppStatus) -> None:
        logger.debug("Session %s: %s -> %s", self.session_id, self.status.value, status.value)
        self.status = status
        if self.on_change:
            self.on_change(status)

    def _release_file(self) -> None:
        if self.file is not None:
            self.previews.revoke(self.file.preview_url)
            self.file = None

    async def select_file(
        self, filename: str, mime_type: str | None, read: Callable[[], Awaitable[bytes]]
    ) -> None:
        """Validate, read and encode a newly selected file.

        A file outside audio/ and video/ is rejected before anything changes.
        A read or encode failure drops back to IDLE with an error message.
        """
        if not is_accepted_media(mime_type):
            logger.info("Session %s rejected %s (%s)", self.session_id, filename, mime_type)
            raise UnsupportedMediaTypeError(mime_type or "")
        if self.status in (AppStatus.PROCESSING_FILE, AppStatus.TRANSCRIBING):
            raise InvalidTransitionError("select a file", self.status.value)

        self._release_file()
        self.transcription = ""
        self.error = ErrorState()
        self._set_status(AppStatus.PROCESSING_FILE)

        try:
            data = await read()
            encoded = base64.b64encode(data).decode("ascii")
        except Exception as exc:
            logger.exception("Session %s failed to process %s", self.session_id, filename)
            self.error = ErrorState(True, FILE_PROCESSING_MESSAGE)
            self._set_status(AppStatus.IDLE)
            raise FileProcessingError(FILE_PROCESSING_MESSAGE) from exc
        else:
            self.file = FileData(
                filename=filename,
                size=len(data),
                mime_type=mime_type,
                base64=encoded,
                preview_url=self.previews.create(data, mime_type),
            )
            logger.info("Session %s ready: %s (%d bytes)", self.session_id, filename, len(data))
            self._set_status(AppStatus.READY_TO_TRANSCRIBE)
        finally:
            # Upload cancelled before it was read
            if self.status is AppStatus.PROCESSING_FILE:
                self._set_status(AppStatus.IDLE)

    async def transcribe(self, service: TranscribeService) -> None:
        """Send the current file to the model and store its transcript."""
        if self.status is not AppStatus.READY_TO_TRANSCRIBE or self.file is None:
            raise InvalidTransitionError("transcribe", self.status.value)

        self.error = ErrorState()
        self._set_status(AppStatus.TRANSCRIBING)
        try:
            response = await service.transcribe_media(self.file.base64, self.file.mime_type)
        except Exception as exc:
            logger.warning("Session %s transcription failed: %s", self.session_id, exc)
            self.error = ErrorState(True, error_message_for(exc))
            self._set_status(AppStatus.READY_TO_TRANSCRIBE)
        else:
            self.transcription = response.text
            self._set_status(AppStatus.COMPLETED)
        finally:
            # Cancelled mid-call: keep the file so the user can retry
            if self.status is AppStatus.TRANSCRIBING:
                logger.warning("Session %s transcription cancelled", self.session_id)
                self._set_status(AppStatus.READY_TO_TRANSCRIBE)

    def reset(self) -> None:
        """Discard file, transcript and error and return to IDLE."""
        if self.status is AppStatus.TRANSCRIBING:
            raise InvalidTransitionError("reset", self.status.value)
        self._release_file()
        self.transcription = ""
        self.error = ErrorState()
        self._set_status(AppStatus.IDLE)

    def close(self) -> None:
        self._release_file()

    def snapshot(self) -> dict[str, Any]:
        file_info = None
        if self.file is not None:
            file_info = {
                "filename": self.file.filename,
                "size": self.file.size,
                "mime_type": self.file.mime_type,
                "kind": self.file.kind,
                "preview_url": self.file.preview_url,
            }
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "file": file_info,
            "transcription": self.transcription,
            "error": {"has_error": self.error.has_error, "message": self.error.message},
        }


@dataclass
class SessionRegistry:
    """In-memory sessions, one per open page.

    Pages that never send their DELETE (crash, lost request) are evicted once
    idle for ``ttl_seconds``. Sessions in TRANSCRIBING are never evicted.
    """

    ttl_seconds: float = 3600.0
    clock: Callable[[], float] = time.monotonic
    sessions: dict[str, TranscriptionSession] = field(default_factory=dict)
    last_active: dict[str, float] = field(default_factory=dict)

    def create(self) -> TranscriptionSession:
        self.evict_expired()
        session_id = secrets.token_urlsafe(12)
        previews = PreviewStore(f"/api/sessions/{session_id}/media")
        session = TranscriptionSession(session_id, previews)
        self.sessions[session_id] = session
        self.last_active[session_id] = self.clock()
        logger.info("Session %s created", session_id)
        return session

    def get(self, session_id: str) -> TranscriptionSession:
        self.evict_expired()
        try:
            session = self.sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(session_id) from None
        self.last_active[session_id] = self.clock()
        return session

    def close(self, session_id: str) -> None:
        session = self.get(session_id)
        self._drop(session)
        logger.info("Session %s closed", session_id)

    def close_all(self) -> None:
        for session in list(self.sessions.values()):
            self._drop(session)

    def evict_expired(self) -> list[str]:
        """Close sessions idle for longer than the TTL; return their ids."""
        deadline = self.clock() - self.ttl_seconds
        expired = [
            session
            for session_id, session in self.sessions.items()
            if self.last_active[session_id] < deadline
            and session.status is not AppStatus.TRANSCRIBING
        ]
        for session in expired:
            self._drop(session)
            logger.info("Session %s expired", session.session_id)
        return [session.session_id for session in expired]

    def _drop(self, session: TranscriptionSession) -> None:
        session.close()
        del self.sessions[session.session_id]
        del self.last_active[session.session_id]
