from __future__ import annotations

import re
from typing import Any
from urllib.parse import quote_plus

import httpx

from sms_manager.config import resolve_env, settings as app_settings
from sms_manager.core import encoding
from sms_manager.core.errors import PhoneValidationFailed
from sms_manager.providers.base import BaseProvider, ProviderSendResult


DEFAULT_API_ENDPOINT = 'https://api.mpp-sms.com/api/send.aspx'

_MESSAGE_ID_RE = re.compile(r'smsid:([^,]+)')


class MppSmsProvider(BaseProvider):
    handle = 'mpp-sms'
    display_name = 'MPP-SMS'
    description = 'Kuwait SMS provider with support for Arabic and English messages.'
    supports_connection_test = False

    def validate_settings(self, settings: dict[str, Any]) -> dict[str, str]:
        errors: dict[str, str] = {}
        if not settings.get('apiKey'):
            errors['apiKey'] = 'API Key is required.'
        countries = settings.get('allowedCountries') or []
        if not isinstance(countries, list):
            errors['allowedCountries'] = 'Allowed countries must be a list of country codes.'
        return errors

    def send(
        self,
        to: str,
        message: str,
        sender_value: str,
        language: str,
        settings: dict[str, Any],
    ) -> ProviderSendResult:
        allowed_countries = settings.get('allowedCountries') or []

        phone_result = self.normalize_and_validate_phone(to, allowed_countries)
        number = phone_result.number
        if not phone_result.valid:
            self.logger.error(
                'mpp_invalid_phone to=%s normalized=%s error=%s',
                to,
                number,
                phone_result.error,
                extra={'allowed_countries': allowed_countries},
            )
            return ProviderSendResult.failure(
                phone_result.error or 'Invalid phone number',
                error_code=PhoneValidationFailed.code,
            )
        if phone_result.fixed:
            self.logger.info('mpp_phone_corrected original=%s corrected=%s', to, number)

        is_dev = bool(settings.get('isDev'))
        dev_api_key = resolve_env(settings.get('devApiKey') or '')
        main_api_key = resolve_env(settings.get('apiKey') or '')
        using_dev_key = is_dev and bool(dev_api_key)
        api_key = dev_api_key if using_dev_key else main_api_key
        if using_dev_key:
            self.logger.info('mpp_using_dev_api_key')
        if not api_key:
            self.logger.error('mpp_api_key_missing')
            return ProviderSendResult.failure('API key not configured')

        message = self.sanitize_message(message)

        custom_endpoint = resolve_env(settings.get('apiUrl') or '')
        if custom_endpoint:
            endpoint_error = self.validate_api_endpoint(custom_endpoint, settings.get('allowedHosts') or [])
            if endpoint_error:
                self.logger.error('mpp_endpoint_rejected url=%s error=%s', custom_endpoint, endpoint_error)
                return ProviderSendResult.failure(endpoint_error)
        endpoint = custom_endpoint or DEFAULT_API_ENDPOINT

        # The body is already encoded; assembling the query by hand keeps it from being encoded twice.
        url = endpoint + '?' + '&'.join([
            'apikey=' + quote_plus(api_key),
            'language=' + str(encoding.language_code(language)),
            'sender=' + quote_plus(sender_value),
            'mobile=' + number,
            'message=' + encoding.encode(message, language),
        ])

        try:
            response = httpx.get(
                url,
                timeout=app_settings.http_timeout_seconds,
                follow_redirects=self.redirect_policy(),
            )
            content = response.text
        except Exception as exc:
            self.logger.error('mpp_request_failed to=%s error=%s', number, exc)
            return ProviderSendResult.failure(str(exc))

        success = 'OK' in content
        match = _MESSAGE_ID_RE.search(content)
        message_id = match.group(1) if match else None

        if success:
            self.logger.info(
                'mpp_message_sent to=%s language=%s message_id=%s',
                number,
                language,
                message_id,
            )
        else:
            self.logger.error('mpp_message_failed to=%s language=%s response=%s', number, language, content)

        return ProviderSendResult(
            success=success,
            message_id=message_id,
            response=content,
            error=None if success else content,
        )
