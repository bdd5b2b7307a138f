from __future__ import annotations

import logging
from typing import Any, Callable, Literal

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.orm import Session

from sms_manager.config import settings as app_settings
from sms_manager.core.errors import ReadOnlyConfigRecord, RecordValidationError
from sms_manager.models import SmsSettings
from sms_manager.services.config_file import SmsConfigDocument


logger = logging.getLogger(__name__)

LOG_LEVELS = ('debug', 'info', 'warning', 'error')
DEV_ENVIRONMENTS = ('dev', 'development', 'local')

_HANDLE_FIELDS = ('default_provider_handle', 'default_sender_id_handle')


class EffectiveSettings(BaseModel):
    plugin_name: str = 'SMS Manager'
    default_provider_handle: str | None = Field(default=None, max_length=64)
    default_sender_id_handle: str | None = Field(default=None, max_length=64)
    enable_analytics: bool = True
    analytics_limit: int = Field(default=1000, ge=1)
    analytics_retention: int = Field(default=30, ge=0)
    auto_trim_analytics: bool = True
    enable_logs: bool = True
    logs_limit: int = Field(default=10000, ge=1)
    logs_retention: int = Field(default=30, ge=0)
    auto_trim_logs: bool = True
    items_per_page: int = Field(default=100, ge=10, le=500)
    refresh_interval_secs: int = Field(default=30, ge=5)
    log_level: Literal['debug', 'info', 'warning', 'error'] = 'error'


SETTING_NAMES = tuple(EffectiveSettings.model_fields)


def _validation_errors(exc: ValidationError) -> dict[str, str]:
    errors: dict[str, str] = {}
    for item in exc.errors():
        field = '.'.join(str(part) for part in item.get('loc', ())) or '__root__'
        errors.setdefault(field, item.get('msg', 'Invalid value'))
    return errors


def is_dev_environment(environment: str | None = None) -> bool:
    return str(environment or app_settings.app_env).strip().lower() in DEV_ENVIRONMENTS


class SettingsService:
    """Plugin settings: one stored row with the static document layered on top.

    A key present in the document's active tier wins over the stored value
    and cannot be written through `save`.
    """

    def __init__(self, session_factory: Callable[[], Session], document: SmsConfigDocument) -> None:
        self.session_factory = session_factory
        self.document = document

    def is_overridden(self, name: str) -> bool:
        return name in self.document.settings

    def overridden_fields(self) -> list[str]:
        return [name for name in SETTING_NAMES if self.is_overridden(name)]

    def _row_values(self, row: SmsSettings | None) -> dict[str, Any]:
        if row is None:
            return {}
        values = {name: getattr(row, name) for name in SETTING_NAMES}
        for name in _HANDLE_FIELDS:
            values[name] = values[name] or None
        return {k: v for k, v in values.items() if v is not None or k in _HANDLE_FIELDS}

    def _load_row(self, db: Session) -> SmsSettings | None:
        return db.query(SmsSettings).order_by(SmsSettings.id.asc()).first()

    def get(self) -> EffectiveSettings:
        db = self.session_factory()
        try:
            values = self._row_values(self._load_row(db))
        finally:
            db.close()

        unknown = [k for k in self.document.settings if k not in SETTING_NAMES]
        if unknown:
            logger.debug('sms_config_unknown_settings keys=%s', unknown)
        values.update({k: v for k, v in self.document.settings.items() if k in SETTING_NAMES})

        try:
            effective = EffectiveSettings.model_validate(values)
        except ValidationError as exc:
            raise RecordValidationError(_validation_errors(exc)) from exc

        if effective.log_level == 'debug' and not is_dev_environment():
            logger.warning('sms_log_level_downgraded from=debug to=info env=%s', app_settings.app_env)
            effective = effective.model_copy(update={'log_level': 'info'})
        return effective

    def save(self, changes: dict[str, Any]) -> EffectiveSettings:
        unknown = [k for k in changes if k not in SETTING_NAMES]
        if unknown:
            raise RecordValidationError({k: 'Unknown setting' for k in unknown})
        for name in changes:
            if self.is_overridden(name):
                raise ReadOnlyConfigRecord('setting', name)

        db = self.session_factory()
        try:
            row = self._load_row(db)
            values = self._row_values(row)
            values.update(changes)
            try:
                validated = EffectiveSettings.model_validate(values)
            except ValidationError as exc:
                raise RecordValidationError(_validation_errors(exc)) from exc

            if row is None:
                row = SmsSettings()
                db.add(row)
            for name in SETTING_NAMES:
                value = getattr(validated, name)
                if name in _HANDLE_FIELDS:
                    value = value or ''
                setattr(row, name, value)
            db.commit()
        finally:
            db.close()

        logger.info('sms_settings_saved fields=%s', sorted(changes))
        return self.get()

    def apply_log_level(self) -> str:
        level = self.get().log_level
        logging.getLogger('sms_manager').setLevel(level.upper())
        return level
