"""This package contains classes to manage the Gemini transcription request"""

import base64
import logging
from dataclasses import dataclass

from google import genai
from google.genai import errors, types

from .config import Settings, get_settings
from .exceptions import (
    ConfigurationError,
    EmptyResponseError,
    PayloadTooLargeError,
    RemoteTranscriptionError,
)

logger = logging.getLogger(__name__)

TRANSCRIPTION_PROMPT = """Por favor, transcreva o seguinte arquivo de áudio/vídeo.
Diretrizes:
1. Identifique os interlocutores se possível (ex: Interlocutor 1, Interlocutor 2).
2. Formate a saída em Markdown limpo e legível.
3. Se houver ruído ou partes inaudíveis, marque como [inaudível].
4. Responda APENAS com a transcrição, sem introduções ou conclusões."""


@dataclass(frozen=True)
class TranscriptionResponse:
    """Text returned by the model for one transcription request."""

    text: str


class TranscribeService:
    """Sends one media file to Gemini and returns the transcript."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def build_contents(self, base64_data: str, mime_type: str) -> types.Content:
        """Fixed instruction followed by the file as inline data."""
        return types.Content(
            role="user",
            parts=[
                types.Part(text=TRANSCRIPTION_PROMPT),
                types.Part(
                    inline_data=types.Blob(
                        mime_type=mime_type, data=base64.b64decode(base64_data)
                    )
                ),
            ],
        )

    async def transcribe_media(self, base64_data: str, mime_type: str) -> TranscriptionResponse:
        """Transcribe base64 encoded media of the given MIME type.

        Raises ConfigurationError when no API key is set, PayloadTooLargeError
        on HTTP 413, EmptyResponseError when the model returns no text and
        RemoteTranscriptionError for any other transport failure.
        """
        api_key = self.settings.api_key
        if not api_key:
            raise ConfigurationError("Chave de API não encontrada (API_KEY).")

        client = genai.Client(api_key=api_key)
        model = self.settings.gemini_model
        logger.info(
            "Sending %s payload (%d base64 chars) to %s", mime_type, len(base64_data), model
        )

        try:
            response = await client.aio.models.generate_content(
                model=model, contents=self.build_contents(base64_data, mime_type)
            )
        except errors.APIError as exc:
            logger.error("Gemini transcription error: %s", exc)
            if exc.code == 413:
                raise PayloadTooLargeError(str(exc)) from exc
            if "API_KEY" in str(exc):
                raise ConfigurationError(str(exc)) from exc
            raise RemoteTranscriptionError(str(exc)) from exc
        finally:
            # Both connection pools are opened when the client is built
            await client.aio.aclose()
            client.close()

        text = response.text
        if not text:
            logger.error("Gemini returned an empty response for %s", mime_type)
            raise EmptyResponseError("A resposta da API estava vazia.")

        logger.info("Received transcript of %d chars", len(text))
        return TranscriptionResponse(text=text)
