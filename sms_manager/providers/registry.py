from __future__ import annotations

import logging
from typing import Callable

from sms_manager.providers.base import BaseProvider
from sms_manager.providers.log_only import LogOnlyProvider
from sms_manager.providers.mpp_sms import MppSmsProvider


logger = logging.getLogger(__name__)

ProviderFactory = Callable[[], BaseProvider]
RegistrationHook = Callable[['ProviderRegistry'], None]


class ProviderRegistry:
    """Maps provider type handles to factories. `create` returns a fresh instance per call."""

    def __init__(self) -> None:
        self._factories: dict[str, ProviderFactory] = {}
        self._classes: dict[str, type[BaseProvider]] = {}
        self._hooks: list[RegistrationHook] = []
        self._hooks_ran = False

    def register(self, handle: str, factory: ProviderFactory) -> None:
        if not handle:
            raise ValueError('Provider type handle is required')
        if handle in self._factories:
            logger.info('provider_type_replaced handle=%s', handle)
        self._factories[handle] = factory

    def register_provider_class(self, cls: type[BaseProvider]) -> None:
        if not (isinstance(cls, type) and issubclass(cls, BaseProvider)):
            raise TypeError('Provider class must subclass BaseProvider')
        self.register(cls.handle, cls)
        self._classes[cls.handle] = cls

    def on_register(self, hook: RegistrationHook) -> None:
        """Queue a callback that registers extra provider types on first lookup."""
        self._hooks.append(hook)
        if self._hooks_ran:
            self._run_hook(hook)

    def create(self, handle: str) -> BaseProvider | None:
        self._ensure_hooks()
        factory = self._factories.get(handle)
        if factory is None:
            return None
        return factory()

    def has(self, handle: str) -> bool:
        self._ensure_hooks()
        return handle in self._factories

    def list_types(self) -> list[dict[str, str]]:
        self._ensure_hooks()
        rows = []
        for handle in self._factories:
            cls = self._classes.get(handle)
            if cls is not None:
                rows.append({'handle': handle, 'display_name': cls.display_name, 'description': cls.description})
                continue
            instance = self._factories[handle]()
            rows.append({
                'handle': handle,
                'display_name': getattr(instance, 'display_name', handle),
                'description': getattr(instance, 'description', ''),
            })
        return rows

    def _ensure_hooks(self) -> None:
        if self._hooks_ran:
            return
        self._hooks_ran = True
        for hook in list(self._hooks):
            self._run_hook(hook)

    def _run_hook(self, hook: RegistrationHook) -> None:
        try:
            hook(self)
        except Exception:
            logger.exception('provider_registration_hook_failed hook=%r', hook)


def default_registry() -> ProviderRegistry:
    registry = ProviderRegistry()
    registry.register_provider_class(MppSmsProvider)
    registry.register_provider_class(LogOnlyProvider)
    return registry
