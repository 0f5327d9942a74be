"""Voice-mode to provider voice resolution."""

from __future__ import annotations

from typing import Mapping, Optional

from roaster.models import VoiceMode

# ElevenLabs premade voices
DEFAULT_VOICE_MAP: dict[VoiceMode, str] = {
    VoiceMode.silly: "21m00Tcm4TlvDq8ikWAM",  # Rachel, high-pitched and playful
    VoiceMode.robot: "pNInz6obpgDQGcFmaJgB",  # Adam, flat and robotic
    VoiceMode.deep: "TxGEqnHWrfWFTfGW9XjX",  # Josh, deep masculine
    VoiceMode.sultry: "EXAVITQu4vr4xnSDxMaL",  # Bella, smooth feminine
}

DEFAULT_VOICE_ID = "pNInz6obpgDQGcFmaJgB"  # Adam


def resolve_voice(
    mode: VoiceMode | str | None,
    voice_map: Optional[Mapping[VoiceMode, str]] = None,
    default_voice_id: str = DEFAULT_VOICE_ID,
) -> str:
    """Return the provider voice id for *mode*.

    Total over its input: a mode that is unknown, absent from the map, or
    mapped to an empty id resolves to *default_voice_id*.
    """
    mapping = DEFAULT_VOICE_MAP if voice_map is None else voice_map
    try:
        key = VoiceMode(mode) if mode is not None else None
    except ValueError:
        key = None
    if key is None:
        return default_voice_id
    return mapping.get(key) or default_voice_id
