from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
import ipaddress
import logging
import socket
from typing import Any
from urllib.parse import urlsplit

from sms_manager.config import settings as app_settings
from sms_manager.core import encoding, phone


@dataclass(frozen=True)
class ProviderSendResult:
    success: bool
    message_id: str | None = None
    response: str | None = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def failure(cls, error: str, response: str | None = None, error_code: str | None = None) -> 'ProviderSendResult':
        return cls(success=False, error=error, response=response, error_code=error_code)


class BaseProvider(ABC):
    handle: str
    display_name: str
    description: str = ''
    supports_connection_test: bool = False

    def __init__(self) -> None:
        self.logger = logging.getLogger(f'sms_manager.providers.{self.handle}')

    @abstractmethod
    def send(
        self,
        to: str,
        message: str,
        sender_value: str,
        language: str,
        settings: dict[str, Any],
    ) -> ProviderSendResult:
        raise NotImplementedError

    def validate_settings(self, settings: dict[str, Any]) -> dict[str, str]:
        return {}

    def test_connection(self, settings: dict[str, Any]) -> bool:
        return True

    def normalize_and_validate_phone(self, number: str, allowed_countries: list[str] | None) -> phone.PhoneResult:
        return phone.normalize_and_validate(number, allowed_countries)

    def sanitize_message(self, message: str) -> str:
        return encoding.sanitize(message)

    def redirect_policy(self) -> bool:
        return bool(app_settings.security_allow_redirects)

    def validate_api_endpoint(self, url: str, provider_allowed_hosts: list[str] | None = None) -> str | None:
        """Return an error string when `url` breaks the outbound security policy, else None."""
        parsed = urlsplit(url or '')
        if not parsed.scheme or not parsed.hostname:
            return 'API URL must include scheme and host.'

        scheme = parsed.scheme.lower()
        if app_settings.security_require_https and scheme != 'https':
            return 'API URL must use HTTPS.'

        host = parsed.hostname.lower()
        try:
            port = parsed.port or (443 if scheme == 'https' else 80)
        except ValueError:
            return 'API URL port is not allowed.'
        if port not in app_settings.security_allowed_ports:
            return 'API URL port is not allowed.'

        allowed_hosts = list(app_settings.security_allowed_api_hosts) + list(provider_allowed_hosts or [])
        if allowed_hosts and not _host_matches_allowed(host, allowed_hosts):
            return 'API URL host is not allowed.'

        if app_settings.security_block_private_networks and _host_resolves_to_private_ip(host):
            return 'API URL host resolves to a private network address.'
        return None


def _host_matches_allowed(host: str, allowed_hosts: list[str]) -> bool:
    for allowed in allowed_hosts:
        allowed = str(allowed).strip().lower()
        if not allowed:
            continue
        if allowed.startswith('*.'):
            if host.endswith(allowed[1:]):
                return True
        elif host == allowed:
            return True
    return False


def _host_resolves_to_private_ip(host: str) -> bool:
    try:
        ips = [ipaddress.ip_address(host)]
    except ValueError:
        try:
            infos = socket.getaddrinfo(host, None)
        except OSError:
            infos = []
        ips = []
        for info in infos:
            try:
                ips.append(ipaddress.ip_address(info[4][0].split('%', 1)[0]))
            except ValueError:
                continue

    # Unresolvable hosts are treated as private.
    if not ips:
        return True
    return any(not ip.is_global or ip.is_multicast for ip in ips)
