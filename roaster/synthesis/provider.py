"""ElevenLabs text-to-speech client.

Thin wrapper over the ElevenLabs HTTP API using ``httpx``.  Every failure
(missing key, network error, timeout, non-2xx status, empty body) is
raised as :class:`~roaster.errors.ProviderError`.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Optional

import httpx

from roaster.errors import ProviderError

logger = logging.getLogger(__name__)

ELEVENLABS_API_BASE = "https://api.elevenlabs.io/v1"
DEFAULT_MODEL_ID = "eleven_monolingual_v1"

_NOT_CONFIGURED_MSG = "Text-to-speech not configured. Set ELEVENLABS_API_KEY."


@dataclass
class ProviderVoice:
    """A voice offered by the provider."""

    voice_id: str
    name: str
    category: str = ""


class ElevenLabsProvider:
    """Synchronous ElevenLabs client.

    Parameters
    ----------
    api_key : str | None
        Falls back to the ``ELEVENLABS_API_KEY`` environment variable.
    timeout : float
        Seconds allowed for one request, connect and read included.
    transport : httpx.BaseTransport | None
        Injected transport, used by tests.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_id: str = DEFAULT_MODEL_ID,
        timeout: float = 30.0,
        base_url: str = ELEVENLABS_API_BASE,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.api_key = api_key or os.environ.get("ELEVENLABS_API_KEY", "")
        self.model_id = model_id
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"xi-api-key": self.api_key},
            transport=self._transport,
        )

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if not self.configured:
            raise ProviderError(_NOT_CONFIGURED_MSG)
        try:
            with self._client() as client:
                resp = client.request(method, url, **kwargs)
                resp.raise_for_status()
                return resp
        except httpx.TimeoutException as exc:
            logger.warning("ElevenLabs request timed out after %.1fs: %s", self.timeout, url)
            raise ProviderError("Text-to-speech request timed out.") from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.warning("ElevenLabs API error %s for %s", status, url)
            if status in (401, 403):
                raise ProviderError("Text-to-speech credentials were rejected.") from exc
            if status == 429:
                raise ProviderError("Text-to-speech quota exceeded.") from exc
            raise ProviderError(f"Text-to-speech API error: {status}") from exc
        except httpx.RequestError as exc:
            logger.warning("Failed to reach ElevenLabs: %s", exc)
            raise ProviderError(f"Failed to reach text-to-speech API: {exc}") from exc

    # -- synthesis -----------------------------------------------------------

    def synthesize(self, text: str, voice_id: str) -> bytes:
        """Return MP3 audio for *text* spoken by *voice_id*."""
        logger.info("Generating TTS with voice %s for text: %.50s...", voice_id, text)
        start = time.monotonic()
        resp = self._request(
            "POST",
            f"/text-to-speech/{voice_id}",
            headers={"Accept": "audio/mpeg"},
            json={
                "text": text,
                "model_id": self.model_id,
                "voice_settings": {"stability": 0.5, "similarity_boost": 0.5},
            },
        )
        audio = resp.content
        if not audio:
            raise ProviderError("Text-to-speech API returned no audio.")
        logger.debug(
            "TTS returned %d bytes in %dms", len(audio), int((time.monotonic() - start) * 1000)
        )
        return audio

    # -- voices --------------------------------------------------------------

    def list_voices(self) -> list[ProviderVoice]:
        """Return every voice available to the account."""
        resp = self._request("GET", "/voices")
        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderError("Text-to-speech API returned malformed voice data.") from exc
        voices = data.get("voices", []) if isinstance(data, dict) else None
        if not isinstance(voices, list) or not all(isinstance(v, dict) for v in voices):
            raise ProviderError("Text-to-speech API returned malformed voice data.")
        return [
            ProviderVoice(
                voice_id=v.get("voice_id", ""),
                name=v.get("name", ""),
                category=v.get("category", "") or "",
            )
            for v in voices
        ]

    def probe(self) -> int:
        """Check connectivity; returns the number of voices found."""
        return len(self.list_voices())
