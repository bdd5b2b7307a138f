from __future__ import annotations

from typing import Any


class SmsManagerError(Exception):
    """Base for every expected, recoverable outcome of the SMS core."""

    code = 'sms_error'

    def __init__(self, message: str = '') -> None:
        super().__init__(message or self.code)
        self.message = message or self.code

    def as_dict(self) -> dict[str, Any]:
        return {'code': self.code, 'detail': self.message}


class ProviderNotConfigured(SmsManagerError):
    code = 'provider_not_configured'

    def __init__(self, reference: Any = None) -> None:
        super().__init__('No provider configured')
        self.reference = reference


class ProviderDisabled(SmsManagerError):
    code = 'provider_disabled'

    def __init__(self, handle: str) -> None:
        super().__init__('Provider is disabled')
        self.handle = handle


class SenderNotConfigured(SmsManagerError):
    code = 'sender_not_configured'

    def __init__(self, reference: Any = None) -> None:
        super().__init__('No sender ID configured')
        self.reference = reference


class SenderDisabled(SmsManagerError):
    code = 'sender_disabled'

    def __init__(self, handle: str) -> None:
        super().__init__('Sender ID is disabled')
        self.handle = handle


class UnknownProviderType(SmsManagerError):
    code = 'unknown_provider_type'

    def __init__(self, type_handle: str) -> None:
        super().__init__(f'Unknown provider type: {type_handle}')
        self.type_handle = type_handle


class PhoneValidationFailed(SmsManagerError):
    code = 'phone_validation_failed'

    def __init__(self, number: str, allowed_countries: list[str], message: str) -> None:
        super().__init__(message)
        self.number = number
        self.allowed_countries = list(allowed_countries)

    def as_dict(self) -> dict[str, Any]:
        return {
            **super().as_dict(),
            'number': self.number,
            'allowed_countries': self.allowed_countries,
        }


class ReadOnlyConfigRecord(SmsManagerError):
    code = 'read_only_config_record'

    def __init__(self, kind: str, handle: str) -> None:
        super().__init__(f'{kind} "{handle}" is defined in the configuration file and is read-only')
        self.kind = kind
        self.handle = handle


class InUseCannotDelete(SmsManagerError):
    code = 'in_use_cannot_delete'

    def __init__(self, handle: str, usages: list[dict[str, Any]]) -> None:
        labels = ', '.join(f"{u.get('plugin_name') or u.get('plugin')}: {u.get('label')}" for u in usages)
        super().__init__(f'Cannot delete "{handle}". It is in use by: {labels}')
        self.handle = handle
        self.usages = list(usages)

    def as_dict(self) -> dict[str, Any]:
        return {**super().as_dict(), 'usages': self.usages}


class RecordNotFound(SmsManagerError):
    code = 'record_not_found'

    def __init__(self, kind: str, reference: Any) -> None:
        super().__init__(f'{kind} not found: {reference}')
        self.kind = kind
        self.reference = reference


class RecordValidationError(SmsManagerError):
    code = 'validation_failed'

    def __init__(self, errors: dict[str, str]) -> None:
        super().__init__('Validation failed')
        self.errors = dict(errors)

    def as_dict(self) -> dict[str, Any]:
        return {**super().as_dict(), 'errors': self.errors}
