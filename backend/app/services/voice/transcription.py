"""
Ses → metin adaptörü.

Whisper API'ye httpx ile doğrudan gidilir (openai paketine bağımlılık yok).
Her türlü hata TranscriptionError olarak yükselir; pipeline bunu failed olarak loglar.
"""
from __future__ import annotations

import base64
import binascii
from typing import Optional, Union

import httpx

from ...core.config import settings
from ...core.logging_config import get_logger
from .exceptions import TranscriptionError

logger = get_logger(__name__)

AudioSource = Union[bytes, str]


def decode_audio_base64(payload: str) -> bytes:
    """data:audio/webm;base64,... ön ekiyle gelse de base64 sesi çözer."""
    if "," in payload and payload.lstrip().startswith("data:"):
        payload = payload.split(",", 1)[1]
    try:
        audio = base64.b64decode(payload.strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise TranscriptionError(f"Invalid base64 audio: {exc}") from exc
    if not audio:
        raise TranscriptionError("Audio payload is empty")
    return audio


class TranscriptionProvider:
    name = "unknown"

    async def transcribe(self, source: AudioSource, language: str) -> str:
        raise NotImplementedError


class WhisperProvider(TranscriptionProvider):
    """OpenAI Whisper transkripsiyon servisi. source bytes ise doğrudan, str ise URL'den indirilip gönderilir."""

    name = "whisper"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "whisper-1",
        api_url: str = "https://api.openai.com/v1/audio/transcriptions",
        timeout: float = 30.0,
        max_audio_bytes: int = 25 * 1024 * 1024,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model or "whisper-1"
        self.api_url = api_url
        self.timeout = timeout
        self.max_audio_bytes = max_audio_bytes
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def _download(self, client: httpx.AsyncClient, url: str) -> bytes:
        try:
            response = await client.get(url, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise TranscriptionError(f"Audio download failed: {exc}") from exc
        return response.content

    async def transcribe(self, source: AudioSource, language: str) -> str:
        if not self.api_key:
            raise TranscriptionError("OPENAI_API_KEY is not configured")

        async with self._client() as client:
            audio = await self._download(client, source) if isinstance(source, str) else source

            if not audio:
                raise TranscriptionError("Audio payload is empty")
            if len(audio) > self.max_audio_bytes:
                raise TranscriptionError(
                    f"Audio is too large ({len(audio)} bytes, limit {self.max_audio_bytes})"
                )

            try:
                response = await client.post(
                    self.api_url,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    data={"model": self.model, "language": language},
                    files={"file": ("audio.webm", audio, "audio/webm")},
                )
            except httpx.HTTPError as exc:
                raise TranscriptionError(f"Whisper request failed: {exc}") from exc

        if response.status_code != 200:
            error_body = response.text[:500]
            logger.error("whisper.api_error", status_code=response.status_code, body=error_body)
            raise TranscriptionError(f"Whisper API error {response.status_code}: {error_body}")

        try:
            text = response.json().get("text")
        except ValueError as exc:
            raise TranscriptionError("Whisper returned a non-JSON response") from exc

        if text is None:
            raise TranscriptionError("Whisper response has no text")

        logger.info("whisper.transcribed", language=language, audio_bytes=len(audio), chars=len(text))
        return text


def get_transcription_provider() -> TranscriptionProvider:
    return WhisperProvider(
        api_key=settings.OPENAI_API_KEY,
        model=settings.WHISPER_MODEL,
        api_url=settings.WHISPER_API_URL,
        timeout=settings.STT_TIMEOUT_SECONDS,
        max_audio_bytes=settings.VOICE_MAX_AUDIO_MB * 1024 * 1024,
    )
