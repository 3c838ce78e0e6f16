"""
FluxoScribe exception hierarchy.

Every application error inherits from FluxoScribeError so the API layer can
turn it into one JSON envelope.
"""

from datetime import UTC, datetime


class FluxoScribeError(Exception):
    """Base exception for all FluxoScribe errors."""

    def __init__(
        self,
        detail: str = "An unexpected error occurred",
        code: str = "FLUXOSCRIBE_ERROR",
        status_code: int = 500,
    ) -> None:
        self.detail = detail
        self.code = code
        self.status_code = status_code
        self.timestamp = datetime.now(UTC).isoformat()
        super().__init__(detail)


# --- Local errors ---


class UnsupportedMediaTypeError(FluxoScribeError):
    """Raised when the selected file is neither audio nor video."""

    def __init__(self, mime_type: str) -> None:
        self.mime_type = mime_type
        super().__init__(
            detail="Por favor, selecione apenas arquivos de áudio ou vídeo.",
            code="UNSUPPORTED_MEDIA_TYPE",
            status_code=415,
        )


class FileProcessingError(FluxoScribeError):
    """Raised when an uploaded file cannot be read or encoded."""

    def __init__(self, detail: str = "Falha ao processar o arquivo. Tente novamente.") -> None:
        super().__init__(detail=detail, code="FILE_PROCESSING_ERROR", status_code=422)


class InvalidTransitionError(FluxoScribeError):
    """Raised when an action is not allowed in the current session status."""

    def __init__(self, action: str, status: str) -> None:
        super().__init__(
            detail=f"Cannot {action} while session is {status}",
            code="INVALID_TRANSITION",
            status_code=409,
        )


class SessionNotFoundError(FluxoScribeError):
    """Raised when a session id does not exist."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            detail=f"Session not found: {session_id}",
            code="SESSION_NOT_FOUND",
            status_code=404,
        )


class PreviewNotFoundError(FluxoScribeError):
    """Raised when a preview URL was never created or has been released."""

    def __init__(self, token: str) -> None:
        super().__init__(
            detail=f"Preview not found: {token}",
            code="PREVIEW_NOT_FOUND",
            status_code=404,
        )


# --- Remote errors ---


class TranscriptionError(FluxoScribeError):
    """Base for failures of the remote transcription call."""


class ConfigurationError(TranscriptionError):
    """Raised when the API key is missing or rejected."""

    def __init__(self, detail: str = "API key missing or invalid") -> None:
        super().__init__(detail=detail, code="CONFIGURATION_ERROR", status_code=500)


class PayloadTooLargeError(TranscriptionError):
    """Raised when the endpoint refuses the inline payload as too large."""

    def __init__(self, detail: str = "Payload too large") -> None:
        super().__init__(detail=detail, code="PAYLOAD_TOO_LARGE", status_code=413)


class EmptyResponseError(TranscriptionError):
    """Raised when the model returns no text."""

    def __init__(self, detail: str = "Empty response") -> None:
        super().__init__(detail=detail, code="EMPTY_RESPONSE", status_code=502)


class RemoteTranscriptionError(TranscriptionError):
    """Raised for any other transport failure."""

    def __init__(self, detail: str = "Transcription failed") -> None:
        super().__init__(detail=detail, code="TRANSCRIPTION_ERROR", status_code=502)
