"""Tests for voice resolution, the TTS client, ffmpeg transcoding and the pipeline."""

import json
import os
import stat

import httpx
import pytest

from conftest import FakeProvider, FakeTranscoder
from roaster.errors import ProviderError, SynthesisFailed, TranscodeError
from roaster.models import VoiceMode
from roaster.synthesis import (
    DEFAULT_VOICE_ID,
    DEFAULT_VOICE_MAP,
    ElevenLabsProvider,
    FfmpegTranscoder,
    SynthesisPipeline,
    resolve_voice,
)


# ---------------------------------------------------------------------------
# Voice resolution
# ---------------------------------------------------------------------------


def test_every_mode_has_a_voice():
    for mode in VoiceMode:
        assert resolve_voice(mode) == DEFAULT_VOICE_MAP[mode]


def test_string_modes_resolve():
    assert resolve_voice("deep") == "TxGEqnHWrfWFTfGW9XjX"


@pytest.mark.parametrize("mode", [None, "", "whisper"])
def test_unknown_mode_uses_default_voice(mode):
    assert resolve_voice(mode) == DEFAULT_VOICE_ID


def test_unmapped_mode_uses_given_default():
    assert resolve_voice(VoiceMode.robot, {VoiceMode.silly: "s"}, "fallback") == "fallback"
    assert resolve_voice(VoiceMode.silly, {VoiceMode.silly: ""}, "fallback") == "fallback"


# ---------------------------------------------------------------------------
# ElevenLabs provider
# ---------------------------------------------------------------------------


def _provider(handler, api_key="key") -> ElevenLabsProvider:
    return ElevenLabsProvider(api_key=api_key, transport=httpx.MockTransport(handler))


def test_synthesize_posts_text_and_returns_audio():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers["xi-api-key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=b"ID3audio")

    audio = _provider(handler).synthesize("You are mild.", "voice123")

    assert audio == b"ID3audio"
    assert seen["url"].endswith("/text-to-speech/voice123")
    assert seen["key"] == "key"
    assert seen["body"]["text"] == "You are mild."
    assert seen["body"]["model_id"] == "eleven_monolingual_v1"


def test_missing_api_key_is_provider_error(monkeypatch):
    monkeypatch.delenv("ELEVENLABS_API_KEY", raising=False)
    provider = ElevenLabsProvider(api_key="")
    assert not provider.configured
    with pytest.raises(ProviderError) as info:
        provider.synthesize("hi", "v")
    assert "ELEVENLABS_API_KEY" in info.value.message


@pytest.mark.parametrize(
    "status, fragment",
    [(401, "rejected"), (429, "quota"), (500, "500")],
)
def test_error_statuses_are_provider_errors(status, fragment):
    provider = _provider(lambda request: httpx.Response(status))
    with pytest.raises(ProviderError) as info:
        provider.synthesize("hi", "v")
    assert fragment in info.value.message


def test_timeout_is_provider_error():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(ProviderError) as info:
        _provider(handler).synthesize("hi", "v")
    assert "timed out" in info.value.message


def test_connection_error_is_provider_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ProviderError):
        _provider(handler).synthesize("hi", "v")


def test_empty_audio_is_provider_error():
    with pytest.raises(ProviderError):
        _provider(lambda request: httpx.Response(200, content=b"")).synthesize("hi", "v")


def test_list_voices_and_probe():
    payload = {
        "voices": [
            {"voice_id": "a", "name": "Adam", "category": "premade"},
            {"voice_id": "b", "name": "Bella", "category": None},
        ]
    }
    provider = _provider(lambda request: httpx.Response(200, json=payload))

    voices = provider.list_voices()
    assert [(v.voice_id, v.name, v.category) for v in voices] == [
        ("a", "Adam", "premade"),
        ("b", "Bella", ""),
    ]
    assert provider.probe() == 2


@pytest.mark.parametrize(
    "payload",
    [
        ["a", "b"],
        {"voices": "none"},
        {"voices": [{"voice_id": "a"}, "b"]},
    ],
)
def test_malformed_voice_list_is_provider_error(payload):
    provider = _provider(lambda request: httpx.Response(200, json=payload))
    with pytest.raises(ProviderError) as info:
        provider.list_voices()
    assert "malformed" in info.value.message


def test_provider_errors_are_synthesis_failures():
    assert issubclass(ProviderError, SynthesisFailed)
    assert issubclass(TranscodeError, SynthesisFailed)
    assert ProviderError("x").code == "synthesis_failed"


# ---------------------------------------------------------------------------
# ffmpeg transcoder
# ---------------------------------------------------------------------------


def _script(path, body: str) -> str:
    path.write_text("#!/bin/sh\n" + body + "\n")
    path.chmod(path.stat().st_mode | stat.S_IEXEC)
    return str(path)


def test_command_targets_opus_in_ogg(tmp_path):
    cmd = FfmpegTranscoder("ffmpeg").command(tmp_path / "in.mp3", tmp_path / "out.ogg")
    assert cmd[0] == "ffmpeg"
    assert cmd[cmd.index("-c:a") + 1] == "libopus"
    assert cmd[cmd.index("-f") + 1] == "ogg"
    assert cmd[-1] == str(tmp_path / "out.ogg")


def test_binary_from_environment(monkeypatch):
    monkeypatch.setenv("FFMPEG_BIN", "/opt/ffmpeg/bin/ffmpeg")
    assert FfmpegTranscoder().ffmpeg_bin == "/opt/ffmpeg/bin/ffmpeg"


def test_missing_binary_is_transcode_error(tmp_path):
    t = FfmpegTranscoder(str(tmp_path / "no-such-ffmpeg"))
    with pytest.raises(TranscodeError) as info:
        t.transcode(tmp_path / "in.mp3", tmp_path / "out.ogg")
    assert info.value.message == "Audio converter is not installed."


def test_nonzero_exit_is_transcode_error(tmp_path):
    t = FfmpegTranscoder(_script(tmp_path / "ffmpeg", "echo bad input >&2; exit 1"))
    with pytest.raises(TranscodeError) as info:
        t.transcode(tmp_path / "in.mp3", tmp_path / "out.ogg")
    assert info.value.message == "Audio conversion failed."


def test_no_output_is_transcode_error(tmp_path):
    t = FfmpegTranscoder(_script(tmp_path / "ffmpeg", "exit 0"))
    with pytest.raises(TranscodeError):
        t.transcode(tmp_path / "in.mp3", tmp_path / "out.ogg")


def test_slow_binary_times_out(tmp_path):
    t = FfmpegTranscoder(_script(tmp_path / "ffmpeg", "exec sleep 5"), timeout=0.2)
    with pytest.raises(TranscodeError) as info:
        t.transcode(tmp_path / "in.mp3", tmp_path / "out.ogg")
    assert "timed out" in info.value.message


def test_successful_run_writes_output(tmp_path):
    # The last argument is the destination path.
    body = 'for last; do :; done; printf OggS > "$last"'
    t = FfmpegTranscoder(_script(tmp_path / "ffmpeg", body))
    dst = tmp_path / "out.ogg"
    t.transcode(tmp_path / "in.mp3", dst)
    assert dst.read_bytes() == b"OggS"


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


def _pipeline(tmp_path, provider=None, transcoder=None, **kwargs):
    return SynthesisPipeline(
        provider or FakeProvider(),
        transcoder or FakeTranscoder(),
        temp_root=tmp_path,
        **kwargs,
    )


def test_pipeline_returns_transcoded_payload_and_cleans_up(tmp_path):
    transcoder = FakeTranscoder()
    payload = _pipeline(tmp_path, transcoder=transcoder).synthesize("hello", VoiceMode.robot)

    assert payload == b"OggSID3hello"
    src, dst = transcoder.calls[0]
    assert src.name == "roast.mp3" and dst.name == "roast.ogg"
    assert not src.parent.exists()
    assert os.listdir(tmp_path) == []


def test_pipeline_resolves_voice_from_map(tmp_path):
    provider = FakeProvider()
    pipeline = _pipeline(
        tmp_path,
        provider=provider,
        voice_map={VoiceMode.silly: "custom"},
        default_voice_id="fallback",
    )
    pipeline.synthesize("a", "silly")
    pipeline.synthesize("b", "deep")
    assert [vid for _, vid in provider.calls] == ["custom", "fallback"]


def test_pipeline_cleans_up_when_provider_fails(tmp_path):
    with pytest.raises(ProviderError):
        _pipeline(tmp_path, provider=FakeProvider(fail=True)).synthesize("x", "silly")
    assert os.listdir(tmp_path) == []


def test_pipeline_cleans_up_when_transcoder_fails(tmp_path):
    transcoder = FakeTranscoder(fail_with=TranscodeError("Audio conversion failed."))
    with pytest.raises(TranscodeError):
        _pipeline(tmp_path, transcoder=transcoder).synthesize("x", "silly")
    assert os.listdir(tmp_path) == []
