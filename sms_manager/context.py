from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from sqlalchemy.orm import Session

from sms_manager.core.time_provider import TimeProvider, default_time_provider
from sms_manager.db import SessionLocal
from sms_manager.providers.registry import ProviderRegistry, default_registry
from sms_manager.services.config_file import SmsConfigDocument, load_document
from sms_manager.services.integrations_service import IntegrationsService
from sms_manager.services.providers_service import ProvidersService
from sms_manager.services.record_resolver import RecordResolver
from sms_manager.services.retention_service import RetentionService
from sms_manager.services.sender_ids_service import SenderIdsService
from sms_manager.services.settings_service import SettingsService
from sms_manager.services.sms_service import SmsService


@dataclass
class SmsContext:
    session_factory: Callable[[], Session]
    document: SmsConfigDocument
    settings: SettingsService
    registry: ProviderRegistry
    resolver: RecordResolver
    integrations: IntegrationsService
    providers: ProvidersService
    sender_ids: SenderIdsService
    retention: RetentionService
    sms: SmsService


_ctx: SmsContext | None = None


def build_context(
    session_factory: Callable[[], Session] = SessionLocal,
    document: SmsConfigDocument | None = None,
    registry: ProviderRegistry | None = None,
    integrations: IntegrationsService | None = None,
    time_provider: TimeProvider = default_time_provider,
) -> SmsContext:
    document = document if document is not None else load_document()
    registry = registry or default_registry()
    integrations = integrations or IntegrationsService()
    settings_service = SettingsService(session_factory, document)
    resolver = RecordResolver(session_factory, document, settings_service)
    retention = RetentionService(session_factory, settings_service, time_provider)
    return SmsContext(
        session_factory=session_factory,
        document=document,
        settings=settings_service,
        registry=registry,
        resolver=resolver,
        integrations=integrations,
        providers=ProvidersService(session_factory, resolver, registry, integrations),
        sender_ids=SenderIdsService(session_factory, resolver, integrations),
        retention=retention,
        sms=SmsService(session_factory, resolver, registry, settings_service, retention, time_provider),
    )


def set_context(ctx: SmsContext | None) -> None:
    global _ctx
    _ctx = ctx


def get_context() -> SmsContext:
    if _ctx is None:
        set_context(build_context())
    return _ctx
