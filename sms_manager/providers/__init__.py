from sms_manager.providers.base import BaseProvider, ProviderSendResult
from sms_manager.providers.log_only import LogOnlyProvider
from sms_manager.providers.mpp_sms import MppSmsProvider
from sms_manager.providers.registry import ProviderRegistry, default_registry

__all__ = [
    'BaseProvider',
    'LogOnlyProvider',
    'MppSmsProvider',
    'ProviderRegistry',
    'ProviderSendResult',
    'default_registry',
]
