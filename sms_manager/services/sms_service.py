from __future__ import annotations

import logging
import time
from typing import Callable

from sqlalchemy.orm import Session

from sms_manager.core import encoding
from sms_manager.core.errors import (
    ProviderDisabled,
    ProviderNotConfigured,
    SenderDisabled,
    SenderNotConfigured,
    SmsManagerError,
    UnknownProviderType,
)
from sms_manager.core.time_provider import TimeProvider, default_time_provider
from sms_manager.metrics import record_send_outcome, timed_service
from sms_manager.models import LogStatus, SmsLog
from sms_manager.providers.base import ProviderSendResult
from sms_manager.providers.registry import ProviderRegistry
from sms_manager.schemas import SendDetails
from sms_manager.services.analytics_service import increment_bucket, increments_for
from sms_manager.services.record_resolver import ProviderRecord, RecordKind, RecordResolver, SenderIdRecord
from sms_manager.services.retention_service import RetentionService, RetentionTable
from sms_manager.services.settings_service import EffectiveSettings, SettingsService


logger = logging.getLogger(__name__)

Reference = int | str | None


class SmsService:
    """Outbound dispatch: resolve, validate, log pending, send, then record the outcome.

    Every expected failure comes back as an unsuccessful result. Exceptions
    raised by a provider implementation are converted into a failed log
    entry and never escape.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        resolver: RecordResolver,
        registry: ProviderRegistry,
        settings_service: SettingsService,
        retention: RetentionService,
        time_provider: TimeProvider = default_time_provider,
    ) -> None:
        self.session_factory = session_factory
        self.resolver = resolver
        self.registry = registry
        self.settings_service = settings_service
        self.retention = retention
        self.time_provider = time_provider

    def send(
        self,
        to: str,
        message: str,
        language: str = 'en',
        provider: Reference = None,
        sender: Reference = None,
        source_plugin: str | None = None,
        source_reference_id: str | None = None,
    ) -> bool:
        return self.send_with_details(
            to,
            message,
            language=language,
            provider=provider,
            sender=sender,
            source_plugin=source_plugin,
            source_reference_id=source_reference_id,
        ).success

    def send_by_handle(
        self,
        to: str,
        message: str,
        sender_handle: str,
        language: str = 'en',
        source_plugin: str | None = None,
    ) -> bool:
        resolved = self.resolver.find_by_handle(RecordKind.SENDER_ID, sender_handle)
        if resolved is None:
            logger.error('sms_sender_not_found handle=%s', sender_handle)
            record_send_outcome('rejected')
            return False
        if not resolved.record.provider_handle:
            error = ProviderNotConfigured(resolved.record.provider_handle)
            logger.error('sms_send_rejected code=%s error=%s sender_ref=%s', error.code, error.message, sender_handle)
            record_send_outcome('rejected')
            return False
        return self.send(
            to,
            message,
            language=language,
            provider=resolved.record.provider_handle,
            sender=resolved.handle,
            source_plugin=source_plugin,
        )

    def _resolve_provider(self, reference: Reference) -> ProviderRecord:
        if reference is None or reference == '':
            resolved = self.resolver.get_default(RecordKind.PROVIDER)
        else:
            resolved = self.resolver.resolve(RecordKind.PROVIDER, reference)
        if resolved is None:
            raise ProviderNotConfigured(reference)
        return resolved.record

    def _resolve_sender(self, reference: Reference, provider: ProviderRecord) -> SenderIdRecord:
        if reference is None or reference == '':
            resolved = self.resolver.get_default(RecordKind.SENDER_ID, provider_handle=provider.handle)
        else:
            resolved = self.resolver.resolve(RecordKind.SENDER_ID, reference)
        if resolved is None:
            raise SenderNotConfigured(reference)
        if resolved.record.provider_handle != provider.handle:
            logger.warning(
                'sms_sender_provider_mismatch sender=%s sender_provider=%s provider=%s',
                resolved.handle,
                resolved.record.provider_handle,
                provider.handle,
            )
        return resolved.record

    @timed_service('sms_send')
    def send_with_details(
        self,
        to: str,
        message: str,
        language: str = 'en',
        provider: Reference = None,
        sender: Reference = None,
        source_plugin: str | None = None,
        source_reference_id: str | None = None,
    ) -> SendDetails:
        started = time.perf_counter()

        def elapsed_ms() -> int:
            return int(round((time.perf_counter() - started) * 1000))

        details = SendDetails(success=False, recipient=to)
        try:
            provider_record = self._resolve_provider(provider)
            details.provider_name = provider_record.name
            if not provider_record.enabled:
                raise ProviderDisabled(provider_record.handle)

            sender_record = self._resolve_sender(sender, provider_record)
            details.sender_id_name = sender_record.name
            details.sender_id_value = sender_record.sender_value
            if not sender_record.enabled:
                raise SenderDisabled(sender_record.handle)
        except SmsManagerError as exc:
            logger.error(
                'sms_send_rejected code=%s error=%s provider_ref=%s sender_ref=%s',
                exc.code,
                exc.message,
                provider,
                sender,
            )
            record_send_outcome('rejected')
            details.error = exc.message
            details.error_code = exc.code
            details.execution_time_ms = elapsed_ms()
            return details

        current = self.settings_service.get()
        log_id = None
        if current.enable_logs:
            log_id = self._create_pending_log(
                provider_record,
                sender_record,
                to=to,
                message=message,
                language=language,
                source_plugin=source_plugin,
                source_reference_id=source_reference_id,
            )
            if current.auto_trim_logs:
                self._auto_trim(RetentionTable.LOGS, current.logs_limit)
        details.log_id = log_id

        implementation = self.registry.create(provider_record.type)
        if implementation is None:
            error = UnknownProviderType(provider_record.type)
            logger.error('sms_unknown_provider_type type=%s provider=%s', provider_record.type, provider_record.handle)
            self._finish_log(log_id, LogStatus.FAILED, error=error.message)
            record_send_outcome('rejected', provider_record.handle)
            details.error = error.message
            details.error_code = error.code
            details.execution_time_ms = elapsed_ms()
            return details

        provider_settings = dict(provider_record.settings)
        provider_settings['isDev'] = sender_record.is_development
        try:
            result = implementation.send(to, message, sender_record.sender_value, language, provider_settings)
        except Exception as exc:
            logger.exception('sms_provider_raised provider=%s type=%s', provider_record.handle, provider_record.type)
            result = ProviderSendResult.failure(str(exc) or exc.__class__.__name__, error_code='provider_error')
        details.execution_time_ms = elapsed_ms()

        if result.success:
            self._finish_log(log_id, LogStatus.SENT, message_id=result.message_id, response=result.response)
            logger.info(
                'sms_sent to=%s provider=%s sender=%s message_id=%s',
                to,
                provider_record.handle,
                sender_record.handle,
                result.message_id,
            )
            record_send_outcome('sent', provider_record.handle)
        else:
            self._finish_log(
                log_id,
                LogStatus.FAILED,
                error=result.error,
                message_id=result.message_id,
                response=result.response,
            )
            logger.error(
                'sms_send_failed to=%s provider=%s sender=%s error=%s',
                to,
                provider_record.handle,
                sender_record.handle,
                result.error,
            )
            record_send_outcome('failed', provider_record.handle)

        if current.enable_analytics:
            self._record_analytics(
                current,
                provider_record,
                sender_record,
                message=message,
                language=language,
                success=result.success,
                source_plugin=source_plugin,
            )

        details.success = result.success
        details.message_id = result.message_id
        details.response = result.response
        details.error = None if result.success else result.error
        details.error_code = None if result.success else result.error_code
        return details

    def _create_pending_log(
        self,
        provider: ProviderRecord,
        sender: SenderIdRecord,
        *,
        to: str,
        message: str,
        language: str,
        source_plugin: str | None,
        source_reference_id: str | None,
    ) -> int:
        now = self.time_provider.utcnow()
        db = self.session_factory()
        try:
            row = SmsLog(
                provider_handle=provider.handle,
                sender_handle=sender.handle,
                recipient=to,
                message=message,
                language=language,
                message_length=len(message),
                status=LogStatus.PENDING.value,
                source_plugin=source_plugin,
                source_reference_id=None if source_reference_id is None else str(source_reference_id),
                created_at=now,
                updated_at=now,
            )
            db.add(row)
            db.commit()
            return row.id
        finally:
            db.close()

    def _finish_log(
        self,
        log_id: int | None,
        status: LogStatus,
        *,
        error: str | None = None,
        message_id: str | None = None,
        response: str | None = None,
    ) -> None:
        if log_id is None:
            return
        db = self.session_factory()
        try:
            row = db.query(SmsLog).filter(SmsLog.id == log_id).first()
            if row is None:
                logger.warning('sms_log_missing log_id=%s status=%s', log_id, status.value)
                return
            row.status = status.value
            row.error_message = error
            row.provider_message_id = message_id
            row.provider_response = response
            row.updated_at = self.time_provider.utcnow()
            db.commit()
        except Exception:
            db.rollback()
            logger.exception('sms_log_update_failed log_id=%s status=%s', log_id, status.value)
        finally:
            db.close()

    def _record_analytics(
        self,
        current: EffectiveSettings,
        provider: ProviderRecord,
        sender: SenderIdRecord,
        *,
        message: str,
        language: str,
        success: bool,
        source_plugin: str | None,
    ) -> None:
        db = self.session_factory()
        try:
            increment_bucket(
                db,
                day=self.time_provider.today(),
                provider_handle=provider.handle,
                sender_handle=sender.handle,
                source_plugin=source_plugin,
                increments=increments_for(
                    success=success,
                    language=language,
                    characters=len(message),
                    segments=encoding.segment_count(message, language),
                ),
                now=self.time_provider.utcnow(),
            )
            db.commit()
        except Exception:
            db.rollback()
            logger.exception('sms_analytics_update_failed provider=%s sender=%s', provider.handle, sender.handle)
            return
        finally:
            db.close()

        if current.auto_trim_analytics:
            self._auto_trim(RetentionTable.ANALYTICS, current.analytics_limit)

    def _auto_trim(self, table: RetentionTable, limit: int) -> None:
        try:
            self.retention.trim_to_limit(table, limit)
        except Exception:
            logger.exception('sms_auto_trim_failed table=%s limit=%s', table.value, limit)
