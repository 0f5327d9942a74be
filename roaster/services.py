"""Wires settings into a ready-to-use set of collaborators."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from roaster.admin import AdminService
from roaster.content.source import Choice, ContentSource
from roaster.config import Settings
from roaster.delivery.base import AdminResolver, Deliverer, StaticAdminResolver, UnconfiguredDeliverer
from roaster.delivery.gateway import GatewayClient
from roaster.orchestrator import Clock, RoastOrchestrator
from roaster.security.audit_log import AuditLogger
from roaster.store.document_store import DocumentStore, JsonDocumentStore
from roaster.store.state_store import StateStore
from roaster.synthesis.pipeline import SpeechProvider, SynthesisPipeline, Transcoder
from roaster.synthesis.provider import ElevenLabsProvider
from roaster.synthesis.transcoder import FfmpegTranscoder


@dataclass
class RoasterServices:
    settings: Settings
    store: StateStore
    content: ContentSource
    provider: SpeechProvider
    pipeline: SynthesisPipeline
    audit: AuditLogger
    admin: AdminService
    orchestrator: RoastOrchestrator


def build_services(
    settings: Settings,
    *,
    documents: Optional[DocumentStore] = None,
    deliverer: Optional[Deliverer] = None,
    admins: Optional[AdminResolver] = None,
    provider: Optional[SpeechProvider] = None,
    transcoder: Optional[Transcoder] = None,
    choice: Optional[Choice] = None,
    clock: Optional[Clock] = None,
) -> RoasterServices:
    """Build every collaborator from *settings*; keyword arguments override.

    Without an explicit deliverer or admin resolver the chat gateway is
    used when ``gateway_url`` is configured; otherwise admins come from
    the ``admins`` mapping in settings and every delivery fails.
    """
    store = StateStore(documents or JsonDocumentStore(settings.db_path), settings.log_retention)
    content = ContentSource(settings.corpus_dir or None, choice=choice)
    audit = AuditLogger(settings.audit_dir)

    if provider is None:
        provider = ElevenLabsProvider(
            api_key=settings.elevenlabs_api_key,
            model_id=settings.elevenlabs_model_id,
            timeout=settings.tts_timeout,
        )
    pipeline = SynthesisPipeline(
        provider,
        transcoder or FfmpegTranscoder(settings.ffmpeg_bin, timeout=settings.transcode_timeout),
        voice_map=settings.resolved_voice_map(),
        default_voice_id=settings.default_voice_id,
    )

    gateway = GatewayClient(settings.gateway_url, settings.gateway_secret) if settings.gateway_url else None
    if admins is None:
        admins = gateway or StaticAdminResolver(settings.admins)
    if deliverer is None:
        deliverer = gateway or UnconfiguredDeliverer()

    admin = AdminService(
        store,
        admins,
        voices=provider if hasattr(provider, "list_voices") else None,
        audit=audit,
    )
    orchestrator = RoastOrchestrator(
        store,
        content,
        pipeline,
        deliverer,
        rate_limit_seconds=settings.rate_limit_seconds,
        clock=clock,
        audit=audit,
    )
    return RoasterServices(
        settings=settings,
        store=store,
        content=content,
        provider=provider,
        pipeline=pipeline,
        audit=audit,
        admin=admin,
        orchestrator=orchestrator,
    )
