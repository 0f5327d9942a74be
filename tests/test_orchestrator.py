"""Tests for the roast workflow state machine."""

from contextlib import contextmanager

import pytest

from conftest import T0, Harness, write_corpus
from roaster.errors import PersistenceAlarm, StorageError, TranscodeError
from roaster.models import RoastCommand, Tier, WorkflowState
from roaster.store.document_store import JsonDocumentStore, MemoryDocumentStore

HAPPY_TRAIL = [
    WorkflowState.received,
    WorkflowState.validated,
    WorkflowState.consent_checked,
    WorkflowState.policy_checked,
    WorkflowState.rate_checked,
    WorkflowState.content_selected,
    WorkflowState.filter_checked,
    WorkflowState.synthesized,
    WorkflowState.delivered,
    WorkflowState.logged,
]


def _command(tier=None, mode=None, issuer="I", target="T", group="G", reply_to="100"):
    return RoastCommand(
        group_id=group,
        issuer_id=issuer,
        target_id=target,
        reply_to_message_id=reply_to,
        tier=tier,
        voice_mode=mode,
    )


def _assert_untouched(h: Harness, issuer="I"):
    snap = h.store.snapshot()
    assert snap.get_last_roast_time(issuer) == 0
    assert snap.events() == []


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


def test_successful_roast_reaches_logged(harness):
    harness.consent("T")
    outcome = harness.orchestrator.run(_command(tier="tame", mode="silly"))

    assert outcome.succeeded
    assert outcome.state == WorkflowState.logged
    assert outcome.trail == HAPPY_TRAIL
    assert outcome.line == "You are mild."
    assert outcome.receipt.message_id == "m1"

    snap = harness.store.snapshot()
    assert snap.get_last_roast_time("I") == T0
    events = snap.events()
    assert len(events) == 1
    assert events[0].to_dict() == {
        "timestamp": T0,
        "targetUserId": "T",
        "issuerUserId": "I",
        "tier": "tame",
        "groupId": "G",
    }


def test_payload_is_transcoded_audio_and_delivered_as_reply(harness):
    harness.consent("T")
    harness.orchestrator.run(_command(reply_to="555"))

    payload, request = harness.deliverer.sent[0]
    assert payload.startswith(b"OggS")
    assert request.reply_to_message_id == "555"
    assert request.target_id == "T"


def test_tier_defaults_to_tame(harness):
    harness.consent("T")
    outcome = harness.orchestrator.run(_command())
    assert outcome.event.tier == Tier.tame


def test_voice_mode_defaults_to_silly_regardless_of_group_setting(harness):
    harness.consent("T")
    harness.store.set_default_voice_mode("G", "deep")
    harness.orchestrator.run(_command())
    _, voice_id = harness.provider.calls[0]
    assert voice_id == "21m00Tcm4TlvDq8ikWAM"


def test_explicit_voice_mode_overrides_group_default(harness):
    harness.consent("T")
    harness.store.set_default_voice_mode("G", "deep")
    harness.orchestrator.run(_command(mode="sultry"))
    _, voice_id = harness.provider.calls[0]
    assert voice_id == "EXAVITQu4vr4xnSDxMaL"


def test_success_is_audited(harness):
    harness.consent("T")
    harness.orchestrator.run(_command())
    entries = harness.audit.get_events(action="roast.logged")
    assert len(entries) == 1
    assert entries[0].actor == "I"
    assert entries[0].group_id == "G"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def test_missing_reply_target_is_invalid(harness):
    outcome = harness.orchestrator.run(_command(target=None, reply_to=None))
    assert outcome.state == WorkflowState.aborted
    assert outcome.reason == "invalid_argument"
    assert "reply to someone's message" in outcome.message
    assert outcome.trail == [WorkflowState.received, WorkflowState.aborted]


def test_unknown_tier_is_invalid(harness):
    harness.consent("T")
    outcome = harness.orchestrator.run(_command(tier="medium"))
    assert outcome.reason == "invalid_argument"
    assert "tame, spicy, or nuclear" in outcome.message


def test_unknown_voice_mode_is_invalid(harness):
    harness.consent("T")
    outcome = harness.orchestrator.run(_command(mode="whisper"))
    assert outcome.reason == "invalid_argument"
    assert harness.provider.calls == []


# ---------------------------------------------------------------------------
# Gates
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("tier", ["tame", "spicy", "nuclear"])
@pytest.mark.parametrize("mode", ["silly", "robot", "deep", "sultry"])
def test_non_consenting_target_always_denied(harness, tier, mode):
    harness.store.set_nuclear_ok("G", True)
    outcome = harness.orchestrator.run(_command(tier=tier, mode=mode))
    assert outcome.reason == "consent_denied"
    assert harness.choice.calls == 0
    _assert_untouched(harness)


def test_opted_out_target_is_denied(harness):
    harness.store.set_consent("T", True)
    harness.store.set_consent("T", False)
    outcome = harness.orchestrator.run(_command())
    assert outcome.reason == "consent_denied"


def test_nuclear_disabled_aborts_before_content_draw(harness):
    harness.consent("T")
    outcome = harness.orchestrator.run(_command(tier="nuclear"))

    assert outcome.reason == "tier_disabled"
    assert harness.choice.calls == 0
    assert harness.provider.calls == []
    _assert_untouched(harness)


def test_nuclear_allowed_when_group_enables_it(harness):
    harness.consent("T")
    harness.store.set_nuclear_ok("G", True)
    outcome = harness.orchestrator.run(_command(tier="nuclear"))
    assert outcome.succeeded
    assert outcome.event.tier == Tier.nuclear


def test_second_roast_within_a_minute_is_rate_limited(harness):
    harness.consent("T")
    assert harness.orchestrator.run(_command()).succeeded

    harness.clock.advance(60)
    outcome = harness.orchestrator.run(_command())

    assert outcome.reason == "rate_limited"
    assert outcome.remaining_minutes == 4
    assert "4 minutes" in outcome.message
    assert len(harness.store.snapshot().events()) == 1


def test_remaining_minutes_rounds_up(harness):
    harness.consent("T")
    harness.orchestrator.run(_command())
    harness.clock.advance(299)
    outcome = harness.orchestrator.run(_command())
    assert outcome.remaining_minutes == 1


def test_rate_limit_expires_after_window(harness):
    harness.consent("T")
    harness.orchestrator.run(_command())
    harness.clock.advance(300)
    outcome = harness.orchestrator.run(_command())
    assert outcome.succeeded
    assert harness.store.get_last_roast_time("I") == T0 + 300_000


def test_rate_limit_is_per_issuer(harness):
    harness.consent("T")
    harness.orchestrator.run(_command(issuer="I"))
    outcome = harness.orchestrator.run(_command(issuer="J"))
    assert outcome.succeeded


def test_future_cooldown_caps_remaining_at_window(harness):
    harness.consent("T")
    harness.store.record_cooldown("I", T0 + 3_600_000)
    outcome = harness.orchestrator.run(_command())
    assert outcome.reason == "rate_limited"
    assert outcome.remaining_minutes == 5


def test_safe_mode_blocks_profane_line_before_synthesis(tmp_path):
    corpus = write_corpus(tmp_path / "corpus", tame=("Well damn, look at you.",))
    h = Harness(tmp_path, corpus=corpus)
    h.consent("T")
    h.store.set_safe_mode("G", True)

    outcome = h.orchestrator.run(_command())

    assert outcome.reason == "profanity_blocked"
    assert h.provider.calls == []
    assert h.deliverer.sent == []
    _assert_untouched(h)


def test_safe_mode_off_lets_profane_line_through(tmp_path):
    corpus = write_corpus(tmp_path / "corpus", tame=("Well damn, look at you.",))
    h = Harness(tmp_path, corpus=corpus)
    h.consent("T")
    outcome = h.orchestrator.run(_command())
    assert outcome.succeeded


def test_empty_corpus_aborts_content_unavailable(tmp_path):
    corpus = write_corpus(tmp_path / "corpus", tame=("", "   "))
    h = Harness(tmp_path, corpus=corpus)
    h.consent("T")
    outcome = h.orchestrator.run(_command())
    assert outcome.reason == "content_unavailable"
    assert h.provider.calls == []


def test_undecodable_corpus_aborts_content_unavailable(tmp_path):
    corpus = write_corpus(tmp_path / "corpus")
    (corpus / "roasts_tame.txt").write_bytes(b"You are \xff\xfe mild\n")
    h = Harness(tmp_path, corpus=corpus)
    h.consent("T")

    outcome = h.orchestrator.run(_command(tier="tame"))

    assert outcome.reason == "content_unavailable"
    assert h.provider.calls == []
    _assert_untouched(h)


# ---------------------------------------------------------------------------
# Failures after the gates
# ---------------------------------------------------------------------------


def test_failed_synthesis_does_not_start_cooldown(harness):
    harness.consent("T")
    harness.provider.fail = True

    outcome = harness.orchestrator.run(_command())

    assert outcome.reason == "synthesis_failed"
    assert "error generating your roast" in outcome.message
    assert harness.deliverer.sent == []
    _assert_untouched(harness)


def test_failed_transcode_does_not_start_cooldown(harness):
    harness.consent("T")
    harness.transcoder.fail_with = TranscodeError("Audio conversion failed.")
    outcome = harness.orchestrator.run(_command())
    assert outcome.reason == "synthesis_failed"
    _assert_untouched(harness)


def test_unconfirmed_delivery_does_not_start_cooldown(harness):
    harness.consent("T")
    harness.deliverer.delivered = False

    outcome = harness.orchestrator.run(_command())

    assert outcome.reason == "delivery_failed"
    assert outcome.trail[-2] == WorkflowState.synthesized
    _assert_untouched(harness)

    # The failed attempt must not block an immediate retry.
    harness.deliverer.delivered = True
    assert harness.orchestrator.run(_command()).succeeded


def test_delivery_exception_is_delivery_failed(harness):
    harness.consent("T")
    harness.deliverer.raises = ConnectionError("socket closed")
    outcome = harness.orchestrator.run(_command())
    assert outcome.reason == "delivery_failed"
    _assert_untouched(harness)


def test_abort_is_audited_with_reason(harness):
    harness.orchestrator.run(_command())
    entries = harness.audit.get_events(action="roast.aborted")
    assert len(entries) == 1
    assert entries[0].details["reason"] == "consent_denied"
    assert entries[0].success is False


# ---------------------------------------------------------------------------
# Storage failures
# ---------------------------------------------------------------------------


class _FailingWrites(MemoryDocumentStore):
    @contextmanager
    def transaction(self):
        raise StorageError()
        yield  # pragma: no cover


class _FailingReads(MemoryDocumentStore):
    def read(self):
        raise StorageError()


def test_unreadable_store_aborts_before_gates(tmp_path):
    h = Harness(tmp_path, documents=_FailingReads())
    outcome = h.orchestrator.run(_command())
    assert outcome.reason == "storage_error"
    assert outcome.message == "Database error occurred."
    assert h.choice.calls == 0


@pytest.mark.parametrize(
    "doc",
    [
        {"users": {"T": True}},
        {"users": {"T": {"allowRoasts": True}}, "cooldowns": {"I": {"lastRoastTime": "soon"}}},
        {"users": {"T": {"allowRoasts": True}}, "roastLog": [{"timestamp": 1, "tier": "extreme"}]},
    ],
)
def test_malformed_document_aborts_as_storage_error(tmp_path, doc):
    h = Harness(tmp_path, documents=MemoryDocumentStore(doc))
    outcome = h.orchestrator.run(_command())
    assert outcome.state == WorkflowState.aborted
    assert outcome.reason == "storage_error"
    assert outcome.trail == [WorkflowState.received, WorkflowState.aborted]
    assert h.choice.calls == 0


def test_undecodable_database_file_aborts_as_storage_error(tmp_path):
    path = tmp_path / "db.json"
    path.write_bytes(b'{"users": {"T": {"allowRoasts": true}}, "\xff": 1}')
    h = Harness(tmp_path, documents=JsonDocumentStore(path))
    outcome = h.orchestrator.run(_command())
    assert outcome.reason == "storage_error"
    assert h.provider.calls == []


def test_write_failure_after_delivery_raises_alarm(tmp_path):
    documents = _FailingWrites({"users": {"T": {"allowRoasts": True}}})
    h = Harness(tmp_path, documents=documents)

    with pytest.raises(PersistenceAlarm) as info:
        h.orchestrator.run(_command())

    assert len(h.deliverer.sent) == 1
    assert info.value.event.target_user_id == "T"
    assert info.value.receipt.delivered
    alarms = h.audit.get_events(action="roast.alarm")
    assert len(alarms) == 1
    assert alarms[0].success is False
