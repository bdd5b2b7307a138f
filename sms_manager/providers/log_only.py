from __future__ import annotations

from typing import Any
import uuid

from sms_manager.core.errors import PhoneValidationFailed
from sms_manager.providers.base import BaseProvider, ProviderSendResult


class LogOnlyProvider(BaseProvider):
    """Writes the message to the application log instead of a gateway. Meant for development."""

    handle = 'log-only'
    display_name = 'Log only'
    description = 'Records outgoing messages in the application log without contacting a gateway.'
    supports_connection_test = True

    def send(
        self,
        to: str,
        message: str,
        sender_value: str,
        language: str,
        settings: dict[str, Any],
    ) -> ProviderSendResult:
        phone_result = self.normalize_and_validate_phone(to, settings.get('allowedCountries') or [])
        if not phone_result.valid:
            return ProviderSendResult.failure(
                phone_result.error or 'Invalid phone number',
                error_code=PhoneValidationFailed.code,
            )

        message_id = uuid.uuid4().hex[:12]
        body = self.sanitize_message(message)
        self.logger.info(
            'log_only_message to=%s sender=%s language=%s message_id=%s',
            phone_result.number,
            sender_value,
            language,
            message_id,
            extra={'sms_body': body},
        )
        return ProviderSendResult(success=True, message_id=message_id, response=f'OK,smsid:{message_id}')
