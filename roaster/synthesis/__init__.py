"""Speech synthesis: text to a deliverable OGG/Opus voice note.

Provides voice-mode resolution, the ElevenLabs text-to-speech client,
the ffmpeg transcoder, and the pipeline that ties them together with
scoped temporary files.
"""

from roaster.synthesis.pipeline import SynthesisPipeline
from roaster.synthesis.provider import ElevenLabsProvider, ProviderVoice
from roaster.synthesis.transcoder import FfmpegTranscoder
from roaster.synthesis.voices import DEFAULT_VOICE_ID, DEFAULT_VOICE_MAP, resolve_voice

__all__ = [
    "SynthesisPipeline",
    "ElevenLabsProvider",
    "ProviderVoice",
    "FfmpegTranscoder",
    "DEFAULT_VOICE_ID",
    "DEFAULT_VOICE_MAP",
    "resolve_voice",
]
