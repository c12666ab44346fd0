"""ElevenLabs speech-to-text and text-to-speech."""

import logging
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import httpx

from .config import STT_MODEL, TTS_MODEL, VOICE_ID
from .errors import SpeechError

logger = logging.getLogger(__name__)

ELEVENLABS_API_URL = "https://api.elevenlabs.io/v1"


@contextmanager
def temporary_audio(suffix: str, data: bytes | None = None) -> Iterator[Path]:
    """Yield a temporary file path, removed when the block exits.

    Args:
        suffix: File extension, e.g. ".ogg" or ".mp3".
        data: Optional bytes written to the file before yielding.
    """
    fd, name = tempfile.mkstemp(prefix="dumka-", suffix=suffix)
    path = Path(name)
    try:
        with os.fdopen(fd, "wb") as f:
            if data is not None:
                f.write(data)
        yield path
    finally:
        path.unlink(missing_ok=True)


class ElevenLabsClient:
    """Thin async client for the two ElevenLabs endpoints we use."""

    def __init__(
        self,
        api_key: str,
        voice_id: str = VOICE_ID,
        tts_model: str = TTS_MODEL,
        stt_model: str = STT_MODEL,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self.voice_id = voice_id
        self.tts_model = tts_model
        self.stt_model = stt_model
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=ELEVENLABS_API_URL,
            headers={"xi-api-key": self._api_key},
            timeout=self._timeout,
            transport=self._transport,
        )

    async def transcribe(self, audio: bytes, filename: str = "audio.ogg") -> str:
        """Recognize speech in an audio clip.

        Raises:
            SpeechError: On transport errors, non-200 responses or a
                malformed body.
        """
        try:
            async with self._client() as client:
                response = await client.post(
                    "/speech-to-text",
                    files={"file": (filename, audio)},
                    data={"model_id": self.stt_model},
                )
        except httpx.HTTPError as e:
            raise SpeechError(f"Request failed: {e}") from e

        if response.status_code != 200:
            raise SpeechError(f"API error (status {response.status_code}): {response.text}")

        try:
            text = response.json()["text"]
        except (ValueError, KeyError, TypeError) as e:
            raise SpeechError(f"Malformed transcription response: {e}") from e

        return str(text).strip()

    async def synthesize(self, text: str) -> bytes:
        """Render text as MP3 audio.

        Raises:
            SpeechError: On transport errors or non-200 responses.
        """
        try:
            async with self._client() as client:
                response = await client.post(
                    f"/text-to-speech/{self.voice_id}",
                    json={"text": text, "model_id": self.tts_model},
                )
        except httpx.HTTPError as e:
            raise SpeechError(f"Request failed: {e}") from e

        if response.status_code != 200:
            raise SpeechError(f"API error (status {response.status_code}): {response.text}")

        if not response.content:
            raise SpeechError("API returned empty audio")

        logger.info("Synthesized %d bytes of audio", len(response.content))
        return response.content
