from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Callable, Protocol, runtime_checkable


logger = logging.getLogger(__name__)


@runtime_checkable
class Integration(Protocol):
    """Implemented by subsystems that reference providers or sender identities.

    Each method returns `[{"label": ..., "edit_url": ...}]`, one entry per usage.
    """

    def provider_usages(self, provider_handle: str) -> list[dict[str, Any]]: ...

    def sender_id_usages(self, sender_handle: str) -> list[dict[str, Any]]: ...


IntegrationFactory = Callable[[], Integration]


@dataclass
class RegisterIntegrationsEvent:
    integrations: dict[str, dict[str, Any]] = field(default_factory=dict)

    def register(self, handle: str, name: str, integration: Integration | IntegrationFactory) -> None:
        self.integrations[handle] = {'handle': handle, 'name': name, 'integration': integration}


RegisterIntegrationsHandler = Callable[[RegisterIntegrationsEvent], None]


class IntegrationsService:
    def __init__(self) -> None:
        self._handlers: list[RegisterIntegrationsHandler] = []
        self._registered: dict[str, dict[str, Any]] | None = None
        self._instances: dict[str, Integration] = {}

    def on_register_integrations(self, handler: RegisterIntegrationsHandler) -> None:
        self._handlers.append(handler)
        self.reset()

    def register(self, handle: str, name: str, integration: Integration | IntegrationFactory) -> None:
        self.on_register_integrations(lambda event: event.register(handle, name, integration))

    def reset(self) -> None:
        self._registered = None
        self._instances.clear()

    def registered_integrations(self) -> dict[str, dict[str, Any]]:
        if self._registered is not None:
            return self._registered
        event = RegisterIntegrationsEvent()
        for handler in self._handlers:
            try:
                handler(event)
            except Exception:
                logger.exception('sms_integration_registration_failed handler=%r', handler)
        self._registered = event.integrations
        return self._registered

    def get_integration(self, handle: str) -> Integration | None:
        if handle in self._instances:
            return self._instances[handle]
        entry = self.registered_integrations().get(handle)
        if entry is None:
            return None

        candidate = entry['integration']
        if isinstance(candidate, type) or (callable(candidate) and not isinstance(candidate, Integration)):
            try:
                candidate = candidate()
            except Exception:
                logger.exception('sms_integration_init_failed handle=%s', handle)
                return None
        if not isinstance(candidate, Integration):
            logger.warning('sms_integration_invalid handle=%s type=%s', handle, type(candidate).__name__)
            return None

        self._instances[handle] = candidate
        return candidate

    def _collect(self, method: str, reference: str) -> list[dict[str, Any]]:
        usages: list[dict[str, Any]] = []
        for handle, entry in self.registered_integrations().items():
            instance = self.get_integration(handle)
            if instance is None:
                continue
            try:
                found = getattr(instance, method)(reference) or []
            except Exception:
                logger.exception('sms_integration_usage_lookup_failed handle=%s method=%s', handle, method)
                continue
            for usage in found:
                usages.append({
                    'plugin': handle,
                    'plugin_name': entry['name'],
                    'label': usage.get('label', ''),
                    'edit_url': usage.get('edit_url'),
                })
        return usages

    def list_provider_usages(self, provider_handle: str) -> list[dict[str, Any]]:
        return self._collect('provider_usages', provider_handle)

    def list_sender_usages(self, sender_handle: str) -> list[dict[str, Any]]:
        return self._collect('sender_id_usages', sender_handle)

    def is_provider_in_use(self, provider_handle: str) -> bool:
        return bool(self.list_provider_usages(provider_handle))

    def is_sender_in_use(self, sender_handle: str) -> bool:
        return bool(self.list_sender_usages(sender_handle))
