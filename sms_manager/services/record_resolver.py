from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import json
import logging
from typing import Any, Callable, Generic, TypeVar, Union

from sqlalchemy.orm import Session

from sms_manager.core.errors import ReadOnlyConfigRecord, RecordNotFound, RecordValidationError
from sms_manager.models import SmsProvider, SmsSenderId
from sms_manager.services.config_file import ProviderConfigEntry, SenderIdConfigEntry, SmsConfigDocument
from sms_manager.services.settings_service import SettingsService


logger = logging.getLogger(__name__)


class RecordKind(str, Enum):
    PROVIDER = 'provider'
    SENDER_ID = 'sender_id'


_DEFAULT_SETTING = {
    RecordKind.PROVIDER: 'default_provider_handle',
    RecordKind.SENDER_ID: 'default_sender_id_handle',
}


@dataclass(frozen=True)
class ProviderRecord:
    handle: str
    name: str
    type: str
    enabled: bool = True
    settings: dict[str, Any] = field(default_factory=dict)
    id: int | None = None
    sort_order: int = 0
    description: str = ''


@dataclass(frozen=True)
class SenderIdRecord:
    handle: str
    name: str
    provider_handle: str
    sender_value: str
    enabled: bool = True
    is_development: bool = False
    id: int | None = None
    sort_order: int = 0
    description: str = ''


T = TypeVar('T', ProviderRecord, SenderIdRecord)


@dataclass(frozen=True)
class ConfigRecord(Generic[T]):
    record: T
    origin = 'config'

    @property
    def handle(self) -> str:
        return self.record.handle

    @property
    def editable(self) -> bool:
        return False


@dataclass(frozen=True)
class StoreRecord(Generic[T]):
    record: T
    origin = 'store'

    @property
    def handle(self) -> str:
        return self.record.handle

    @property
    def editable(self) -> bool:
        return True


Resolved = Union[ConfigRecord[T], StoreRecord[T]]


def provider_from_config(handle: str, entry: ProviderConfigEntry) -> ProviderRecord:
    return ProviderRecord(
        handle=handle,
        name=entry.name or handle,
        type=entry.type,
        enabled=entry.enabled,
        settings=dict(entry.settings),
        sort_order=entry.sort_order,
        description=entry.description,
    )


def sender_from_config(handle: str, entry: SenderIdConfigEntry) -> SenderIdRecord:
    return SenderIdRecord(
        handle=handle,
        name=entry.name or handle,
        provider_handle=entry.provider,
        sender_value=entry.sender_id,
        enabled=entry.enabled,
        is_development=entry.is_development,
        sort_order=entry.sort_order,
        description=entry.description,
    )


def provider_from_row(row: SmsProvider) -> ProviderRecord:
    try:
        blob = json.loads(row.settings_json or '{}')
    except json.JSONDecodeError:
        logger.warning('sms_provider_settings_unreadable handle=%s', row.handle)
        blob = {}
    return ProviderRecord(
        handle=row.handle,
        name=row.name,
        type=row.type,
        enabled=bool(row.enabled),
        settings=blob if isinstance(blob, dict) else {},
        id=row.id,
        sort_order=int(row.sort_order or 0),
        description=row.description or '',
    )


def sender_from_row(row: SmsSenderId) -> SenderIdRecord:
    return SenderIdRecord(
        handle=row.handle,
        name=row.name,
        provider_handle=row.provider_handle,
        sender_value=row.sender_value,
        enabled=bool(row.enabled),
        is_development=bool(row.is_development),
        id=row.id,
        sort_order=int(row.sort_order or 0),
        description=row.description or '',
    )


class RecordResolver:
    """Provider and sender identity lookups across the static document and the store.

    Handles are the join key. A handle defined in the document shadows a
    store row with the same handle. Enumeration lists document records
    first, then store records, each ordered by name.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        document: SmsConfigDocument,
        settings_service: SettingsService,
    ) -> None:
        self.session_factory = session_factory
        self.document = document
        self.settings_service = settings_service

    def _config_records(self, kind: RecordKind) -> list[ConfigRecord]:
        if kind is RecordKind.PROVIDER:
            records = [provider_from_config(h, e) for h, e in self.document.providers.items()]
        else:
            records = [sender_from_config(h, e) for h, e in self.document.sender_ids.items()]
        return [ConfigRecord(r) for r in sorted(records, key=lambda r: (r.name.lower(), r.handle))]

    def _model(self, kind: RecordKind):
        return SmsProvider if kind is RecordKind.PROVIDER else SmsSenderId

    def _from_row(self, kind: RecordKind, row) -> ProviderRecord | SenderIdRecord:
        return provider_from_row(row) if kind is RecordKind.PROVIDER else sender_from_row(row)

    def is_config_handle(self, kind: RecordKind, handle: str) -> bool:
        if kind is RecordKind.PROVIDER:
            return self.document.has_provider(handle)
        return self.document.has_sender_id(handle)

    def find_by_handle(self, kind: RecordKind, handle: str | None) -> Resolved | None:
        if not handle:
            return None
        if kind is RecordKind.PROVIDER and self.document.has_provider(handle):
            return ConfigRecord(provider_from_config(handle, self.document.providers[handle]))
        if kind is RecordKind.SENDER_ID and self.document.has_sender_id(handle):
            return ConfigRecord(sender_from_config(handle, self.document.sender_ids[handle]))

        model = self._model(kind)
        db = self.session_factory()
        try:
            row = db.query(model).filter(model.handle == handle).first()
            return StoreRecord(self._from_row(kind, row)) if row is not None else None
        finally:
            db.close()

    def find_by_id(self, kind: RecordKind, record_id: int) -> Resolved | None:
        model = self._model(kind)
        db = self.session_factory()
        try:
            row = db.query(model).filter(model.id == int(record_id)).first()
            if row is None:
                return None
            handle = row.handle
            record = self._from_row(kind, row)
        finally:
            db.close()
        if self.is_config_handle(kind, handle):
            return self.find_by_handle(kind, handle)
        return StoreRecord(record)

    def resolve(self, kind: RecordKind, reference: int | str | None) -> Resolved | None:
        if reference is None or reference == '':
            return None
        if isinstance(reference, int) and not isinstance(reference, bool):
            return self.find_by_id(kind, reference)
        return self.find_by_handle(kind, str(reference))

    def find_all(self, kind: RecordKind) -> list[Resolved]:
        config_records = self._config_records(kind)
        model = self._model(kind)
        db = self.session_factory()
        try:
            rows = db.query(model).order_by(model.name.asc(), model.handle.asc()).all()
            store_records = [
                StoreRecord(self._from_row(kind, row)) for row in rows if not self.is_config_handle(kind, row.handle)
            ]
        finally:
            db.close()
        return [*config_records, *store_records]

    def find_all_enabled(self, kind: RecordKind) -> list[Resolved]:
        return [item for item in self.find_all(kind) if item.record.enabled]

    def find_senders_for_provider(self, provider_handle: str, enabled_only: bool = False) -> list[Resolved]:
        source = self.find_all_enabled(RecordKind.SENDER_ID) if enabled_only else self.find_all(RecordKind.SENDER_ID)
        return [item for item in source if item.record.provider_handle == provider_handle]

    def get_default_handle(self, kind: RecordKind) -> str | None:
        return getattr(self.settings_service.get(), _DEFAULT_SETTING[kind])

    def is_default_from_config(self, kind: RecordKind) -> bool:
        return self.settings_service.is_overridden(_DEFAULT_SETTING[kind])

    def get_default(self, kind: RecordKind, provider_handle: str | None = None) -> Resolved | None:
        """Explicit default when it still resolves to an enabled, in-scope record, else the first such record."""

        def in_scope(item: Resolved) -> bool:
            if kind is RecordKind.SENDER_ID and provider_handle:
                return item.record.provider_handle == provider_handle
            return True

        explicit = self.find_by_handle(kind, self.get_default_handle(kind))
        if explicit is not None and explicit.record.enabled and in_scope(explicit):
            return explicit
        for item in self.find_all_enabled(kind):
            if in_scope(item):
                return item
        return None

    def set_default(self, kind: RecordKind, handle: str | None) -> None:
        setting_name = _DEFAULT_SETTING[kind]
        if self.is_default_from_config(kind):
            raise ReadOnlyConfigRecord('setting', setting_name)
        if handle:
            resolved = self.find_by_handle(kind, handle)
            if resolved is None:
                raise RecordNotFound(kind.value, handle)
            if not resolved.record.enabled:
                raise RecordValidationError({setting_name: f'"{handle}" is disabled'})
        self.settings_service.save({setting_name: handle or None})
        logger.info('sms_default_changed kind=%s handle=%s', kind.value, handle)
