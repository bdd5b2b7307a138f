from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable

from sqlalchemy.orm import Session

from sms_manager.core.errors import (
    InUseCannotDelete,
    ReadOnlyConfigRecord,
    RecordNotFound,
    RecordValidationError,
    UnknownProviderType,
)
from sms_manager.core.phone import unknown_country_codes
from sms_manager.models import SmsProvider
from sms_manager.providers.registry import ProviderRegistry
from sms_manager.schemas import ProviderSaveRequest
from sms_manager.services.integrations_service import IntegrationsService
from sms_manager.services.record_resolver import (
    ConfigRecord,
    ProviderRecord,
    RecordKind,
    RecordResolver,
    provider_from_row,
)


logger = logging.getLogger(__name__)

HANDLE_RE = re.compile(r'^[a-z0-9][a-z0-9_-]*$')
HANDLE_MAX_LENGTH = 64
NAME_MAX_LENGTH = 255
INTERNAL_PLUGIN = 'sms-manager'
INTERNAL_PLUGIN_NAME = 'SMS Manager'


def validate_handle(handle: str, errors: dict[str, str]) -> None:
    if not handle:
        errors['handle'] = 'Handle is required.'
    elif len(handle) > HANDLE_MAX_LENGTH:
        errors['handle'] = f'Handle must be at most {HANDLE_MAX_LENGTH} characters.'
    elif not HANDLE_RE.match(handle):
        errors['handle'] = 'Handle may only contain lowercase letters, digits, dashes and underscores.'


def default_usage(kind_label: str) -> dict[str, Any]:
    return {
        'plugin': INTERNAL_PLUGIN,
        'plugin_name': INTERNAL_PLUGIN_NAME,
        'label': f'Default {kind_label}',
        'edit_url': None,
    }


class ProvidersService:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        resolver: RecordResolver,
        registry: ProviderRegistry,
        integrations: IntegrationsService,
    ) -> None:
        self.session_factory = session_factory
        self.resolver = resolver
        self.registry = registry
        self.integrations = integrations

    def list_types(self) -> list[dict[str, str]]:
        return self.registry.list_types()

    def _usages(self, handle: str) -> list[dict[str, Any]]:
        usages = self.integrations.list_provider_usages(handle)
        for sender in self.resolver.find_senders_for_provider(handle):
            usages.append({
                'plugin': INTERNAL_PLUGIN,
                'plugin_name': INTERNAL_PLUGIN_NAME,
                'label': f'Sender ID: {sender.record.name}',
                'edit_url': None,
            })
        return usages

    def _references(self, handle: str) -> list[str]:
        """Labels of everything that joins on `handle`, the default setting first."""
        labels = []
        if self.resolver.get_default_handle(RecordKind.PROVIDER) == handle:
            labels.append(default_usage('provider')['label'])
        return labels + [usage['label'] for usage in self._usages(handle)]

    def _validate(self, payload: ProviderSaveRequest, existing: SmsProvider | None, db: Session) -> dict[str, str]:
        errors: dict[str, str] = {}
        handle = payload.handle.strip()
        validate_handle(handle, errors)
        if not payload.name.strip():
            errors['name'] = 'Name is required.'
        elif len(payload.name) > NAME_MAX_LENGTH:
            errors['name'] = f'Name must be at most {NAME_MAX_LENGTH} characters.'

        if 'handle' not in errors:
            clash = db.query(SmsProvider).filter(SmsProvider.handle == handle).first()
            if clash is not None and (existing is None or clash.id != existing.id):
                errors['handle'] = 'This handle is already in use.'
        if existing is not None and 'handle' not in errors and handle != existing.handle:
            references = self._references(existing.handle)
            if references:
                errors['handle'] = f'Handle cannot change while referenced by: {", ".join(references)}.'

        if not payload.type.strip():
            errors['type'] = 'Provider type is required.'
        else:
            implementation = self.registry.create(payload.type)
            if implementation is None:
                errors['type'] = UnknownProviderType(payload.type).message
            else:
                for key, message in implementation.validate_settings(payload.settings).items():
                    errors[f'settings.{key}'] = message

        countries = payload.settings.get('allowedCountries') or []
        if isinstance(countries, list):
            unknown = unknown_country_codes(countries)
            if unknown:
                errors['settings.allowedCountries'] = f'Unknown country codes: {", ".join(unknown)}'
        return errors

    def save_provider(self, payload: ProviderSaveRequest, provider_id: int | None = None) -> ProviderRecord:
        db = self.session_factory()
        try:
            existing = None
            if provider_id is not None:
                existing = db.query(SmsProvider).filter(SmsProvider.id == int(provider_id)).first()
                if existing is None:
                    raise RecordNotFound(RecordKind.PROVIDER.value, provider_id)
            for handle in (payload.handle.strip(), existing.handle if existing else ''):
                if handle and self.resolver.is_config_handle(RecordKind.PROVIDER, handle):
                    raise ReadOnlyConfigRecord(RecordKind.PROVIDER.value, handle)

            errors = self._validate(payload, existing, db)
            if errors:
                logger.info('sms_provider_validation_failed handle=%s errors=%s', payload.handle, errors)
                raise RecordValidationError(errors)

            row = existing or SmsProvider()
            row.handle = payload.handle.strip()
            row.name = payload.name.strip()
            row.type = payload.type.strip()
            row.enabled = payload.enabled
            row.description = payload.description
            row.sort_order = payload.sort_order
            row.settings_json = json.dumps(payload.settings or {}, separators=(',', ':'))
            if existing is None:
                db.add(row)
            db.commit()
            db.refresh(row)
            record = provider_from_row(row)
        finally:
            db.close()

        logger.info('sms_provider_saved handle=%s id=%s is_new=%s', record.handle, record.id, provider_id is None)
        return record

    def delete_provider(self, reference: int | str) -> None:
        resolved = self.resolver.resolve(RecordKind.PROVIDER, reference)
        if resolved is None:
            raise RecordNotFound(RecordKind.PROVIDER.value, reference)
        if isinstance(resolved, ConfigRecord):
            raise ReadOnlyConfigRecord(RecordKind.PROVIDER.value, resolved.handle)

        handle = resolved.handle
        if self.resolver.get_default_handle(RecordKind.PROVIDER) == handle:
            raise InUseCannotDelete(handle, [default_usage('provider')])

        usages = self._usages(handle)
        if usages:
            raise InUseCannotDelete(handle, usages)

        db = self.session_factory()
        try:
            db.query(SmsProvider).filter(SmsProvider.id == resolved.record.id).delete(synchronize_session=False)
            db.commit()
        finally:
            db.close()
        logger.info('sms_provider_deleted handle=%s id=%s', handle, resolved.record.id)

    def test_connection(self, handle: str) -> bool:
        resolved = self.resolver.find_by_handle(RecordKind.PROVIDER, handle)
        if resolved is None:
            raise RecordNotFound(RecordKind.PROVIDER.value, handle)
        implementation = self.registry.create(resolved.record.type)
        if implementation is None:
            raise UnknownProviderType(resolved.record.type)
        if not implementation.supports_connection_test:
            return True
        return bool(implementation.test_connection(dict(resolved.record.settings)))
