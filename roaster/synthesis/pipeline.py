"""Text to OGG/Opus voice note.

The pipeline resolves the voice, calls the text-to-speech provider, writes
the MP3 into a private temporary directory, transcodes it, and reads the
result back into memory.  The directory and everything in it is removed
before :meth:`SynthesisPipeline.synthesize` returns or raises.
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import Mapping, Optional, Protocol

from roaster.errors import SynthesisFailed, TranscodeError
from roaster.models import VoiceMode
from roaster.synthesis.voices import DEFAULT_VOICE_ID, resolve_voice

logger = logging.getLogger(__name__)


class SpeechProvider(Protocol):
    def synthesize(self, text: str, voice_id: str) -> bytes: ...


class Transcoder(Protocol):
    def transcode(self, src: Path, dst: Path) -> None: ...


class SynthesisPipeline:
    """Provider plus transcoder with scoped intermediate files."""

    def __init__(
        self,
        provider: SpeechProvider,
        transcoder: Transcoder,
        voice_map: Optional[Mapping[VoiceMode, str]] = None,
        default_voice_id: str = DEFAULT_VOICE_ID,
        temp_root: Optional[str | Path] = None,
    ) -> None:
        self._provider = provider
        self._transcoder = transcoder
        self._voice_map = voice_map
        self._default_voice_id = default_voice_id
        self._temp_root = str(temp_root) if temp_root else None

    def voice_for(self, mode: VoiceMode | str | None) -> str:
        return resolve_voice(mode, self._voice_map, self._default_voice_id)

    def synthesize(self, text: str, voice_mode: VoiceMode | str | None) -> bytes:
        """Return the OGG/Opus payload for *text*.

        Raises :class:`~roaster.errors.ProviderError` or
        :class:`~roaster.errors.TranscodeError`; both are
        :class:`~roaster.errors.SynthesisFailed`.
        """
        voice_id = self.voice_for(voice_mode)
        with tempfile.TemporaryDirectory(prefix="roast_", dir=self._temp_root) as workdir:
            mp3_path = Path(workdir) / "roast.mp3"
            ogg_path = Path(workdir) / "roast.ogg"

            audio = self._provider.synthesize(text, voice_id)
            try:
                mp3_path.write_bytes(audio)
            except OSError as exc:
                raise SynthesisFailed() from exc

            self._transcoder.transcode(mp3_path, ogg_path)
            try:
                payload = ogg_path.read_bytes()
            except OSError as exc:
                raise TranscodeError("Audio conversion produced no output.") from exc

        logger.debug("Synthesized %d bytes of OGG audio with voice %s", len(payload), voice_id)
        return payload
