"""
Shared fixtures for the roaster test suite.

Collaborators that would touch the network or ffmpeg are replaced by the
small fakes below; everything else runs for real against temporary
directories.
"""

from pathlib import Path

import pytest

from roaster.content.source import ContentSource
from roaster.delivery.base import StaticAdminResolver
from roaster.errors import ProviderError
from roaster.models import DeliveryReceipt
from roaster.orchestrator import RoastOrchestrator
from roaster.security.audit_log import AuditLogger
from roaster.store.document_store import MemoryDocumentStore
from roaster.store.state_store import StateStore
from roaster.synthesis.pipeline import SynthesisPipeline
from roaster.synthesis.provider import ProviderVoice

T0 = 1_700_000_000_000  # epoch ms


class FakeClock:
    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


class RecordingChoice:
    """Deterministic draw: always the first candidate."""

    def __init__(self):
        self.calls = 0

    def __call__(self, lines):
        self.calls += 1
        return lines[0]


class FakeProvider:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[tuple[str, str]] = []

    def synthesize(self, text: str, voice_id: str) -> bytes:
        self.calls.append((text, voice_id))
        if self.fail:
            raise ProviderError("Text-to-speech API error: 500")
        return b"ID3" + text.encode("utf-8")

    def list_voices(self):
        return [ProviderVoice(voice_id="v1", name="Adam", category="premade")]


class FakeTranscoder:
    def __init__(self, fail_with: Exception | None = None):
        self.fail_with = fail_with
        self.calls: list[tuple[Path, Path]] = []

    def transcode(self, src: Path, dst: Path) -> None:
        self.calls.append((src, dst))
        if self.fail_with is not None:
            raise self.fail_with
        dst.write_bytes(b"OggS" + src.read_bytes())


class FakeDeliverer:
    def __init__(self, delivered: bool = True, raises: Exception | None = None):
        self.delivered = delivered
        self.raises = raises
        self.sent: list[tuple[bytes, object]] = []

    def deliver(self, payload, request):
        self.sent.append((payload, request))
        if self.raises is not None:
            raise self.raises
        if not self.delivered:
            return DeliveryReceipt(delivered=False, detail="chat unreachable")
        return DeliveryReceipt(delivered=True, message_id=f"m{len(self.sent)}")


def write_corpus(directory: Path, tame=("You are mild.",), spicy=("You are hot.",), nuclear=("You are toast.",)):
    directory.mkdir(parents=True, exist_ok=True)
    for tier, lines in (("tame", tame), ("spicy", spicy), ("nuclear", nuclear)):
        (directory / f"roasts_{tier}.txt").write_text("\n".join(lines) + "\n", encoding="utf-8")
    return directory


class Harness:
    """An orchestrator wired to in-memory fakes, with handles on each one."""

    def __init__(self, tmp_path: Path, corpus: Path | None = None, documents=None):
        self.clock = FakeClock()
        self.choice = RecordingChoice()
        self.provider = FakeProvider()
        self.transcoder = FakeTranscoder()
        self.deliverer = FakeDeliverer()
        self.documents = documents or MemoryDocumentStore()
        self.store = StateStore(self.documents)
        self.content = ContentSource(corpus or write_corpus(tmp_path / "corpus"), choice=self.choice)
        self.audit = AuditLogger(tmp_path / "audit")
        self.pipeline = SynthesisPipeline(self.provider, self.transcoder, temp_root=self._temp_root(tmp_path))
        self.orchestrator = RoastOrchestrator(
            self.store,
            self.content,
            self.pipeline,
            self.deliverer,
            clock=self.clock,
            audit=self.audit,
        )

    @staticmethod
    def _temp_root(tmp_path: Path) -> Path:
        root = tmp_path / "scratch"
        root.mkdir(exist_ok=True)
        return root

    def consent(self, *user_ids: str) -> None:
        for uid in user_ids:
            self.store.set_consent(uid, True)


@pytest.fixture
def harness(tmp_path):
    return Harness(tmp_path)


@pytest.fixture
def admins():
    return StaticAdminResolver({"g1": ["admin"]})
