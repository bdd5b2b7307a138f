from __future__ import annotations

import logging
from typing import Callable

from sqlalchemy.orm import Session

from sms_manager.core.errors import InUseCannotDelete, ReadOnlyConfigRecord, RecordNotFound, RecordValidationError
from sms_manager.models import SmsSenderId
from sms_manager.schemas import SenderIdSaveRequest
from sms_manager.services.integrations_service import IntegrationsService
from sms_manager.services.providers_service import NAME_MAX_LENGTH, default_usage, validate_handle
from sms_manager.services.record_resolver import (
    ConfigRecord,
    RecordKind,
    RecordResolver,
    SenderIdRecord,
    sender_from_row,
)


logger = logging.getLogger(__name__)

SENDER_VALUE_MAX_LENGTH = 64


class SenderIdsService:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        resolver: RecordResolver,
        integrations: IntegrationsService,
    ) -> None:
        self.session_factory = session_factory
        self.resolver = resolver
        self.integrations = integrations

    def _references(self, handle: str) -> list[str]:
        labels = []
        if self.resolver.get_default_handle(RecordKind.SENDER_ID) == handle:
            labels.append(default_usage('sender ID')['label'])
        return labels + [usage['label'] for usage in self.integrations.list_sender_usages(handle)]

    def _validate(self, payload: SenderIdSaveRequest, existing: SmsSenderId | None, db: Session) -> dict[str, str]:
        errors: dict[str, str] = {}
        handle = payload.handle.strip()
        validate_handle(handle, errors)
        if 'handle' not in errors:
            clash = db.query(SmsSenderId).filter(SmsSenderId.handle == handle).first()
            if clash is not None and (existing is None or clash.id != existing.id):
                errors['handle'] = 'This handle is already in use.'
        if existing is not None and 'handle' not in errors and handle != existing.handle:
            references = self._references(existing.handle)
            if references:
                errors['handle'] = f'Handle cannot change while referenced by: {", ".join(references)}.'

        if not payload.name.strip():
            errors['name'] = 'Name is required.'
        elif len(payload.name) > NAME_MAX_LENGTH:
            errors['name'] = f'Name must be at most {NAME_MAX_LENGTH} characters.'

        sender_value = payload.sender_value.strip()
        if not sender_value:
            errors['sender_value'] = 'Sender ID is required.'
        elif len(sender_value) > SENDER_VALUE_MAX_LENGTH:
            errors['sender_value'] = f'Sender ID must be at most {SENDER_VALUE_MAX_LENGTH} characters.'

        if not payload.provider_handle.strip():
            errors['provider_handle'] = 'Provider is required.'
        elif self.resolver.find_by_handle(RecordKind.PROVIDER, payload.provider_handle.strip()) is None:
            errors['provider_handle'] = f'Provider "{payload.provider_handle}" does not exist.'
        return errors

    def save_sender_id(self, payload: SenderIdSaveRequest, sender_id: int | None = None) -> SenderIdRecord:
        db = self.session_factory()
        try:
            existing = None
            if sender_id is not None:
                existing = db.query(SmsSenderId).filter(SmsSenderId.id == int(sender_id)).first()
                if existing is None:
                    raise RecordNotFound(RecordKind.SENDER_ID.value, sender_id)
            for handle in (payload.handle.strip(), existing.handle if existing else ''):
                if handle and self.resolver.is_config_handle(RecordKind.SENDER_ID, handle):
                    raise ReadOnlyConfigRecord(RecordKind.SENDER_ID.value, handle)

            errors = self._validate(payload, existing, db)
            if errors:
                logger.info('sms_sender_id_validation_failed handle=%s errors=%s', payload.handle, errors)
                raise RecordValidationError(errors)

            row = existing or SmsSenderId()
            row.handle = payload.handle.strip()
            row.name = payload.name.strip()
            row.provider_handle = payload.provider_handle.strip()
            row.sender_value = payload.sender_value.strip()
            row.enabled = payload.enabled
            row.is_development = payload.is_development
            row.description = payload.description
            row.sort_order = payload.sort_order
            if existing is None:
                db.add(row)
            db.commit()
            db.refresh(row)
            record = sender_from_row(row)
        finally:
            db.close()

        logger.info('sms_sender_id_saved handle=%s id=%s is_new=%s', record.handle, record.id, sender_id is None)
        return record

    def delete_sender_id(self, reference: int | str) -> None:
        resolved = self.resolver.resolve(RecordKind.SENDER_ID, reference)
        if resolved is None:
            raise RecordNotFound(RecordKind.SENDER_ID.value, reference)
        if isinstance(resolved, ConfigRecord):
            raise ReadOnlyConfigRecord(RecordKind.SENDER_ID.value, resolved.handle)

        handle = resolved.handle
        if self.resolver.get_default_handle(RecordKind.SENDER_ID) == handle:
            raise InUseCannotDelete(handle, [default_usage('sender ID')])

        usages = self.integrations.list_sender_usages(handle)
        if usages:
            raise InUseCannotDelete(handle, usages)

        db = self.session_factory()
        try:
            db.query(SmsSenderId).filter(SmsSenderId.id == resolved.record.id).delete(synchronize_session=False)
            db.commit()
        finally:
            db.close()
        logger.info('sms_sender_id_deleted handle=%s id=%s', handle, resolved.record.id)
