from __future__ import annotations

import json
import logging
from pathlib import Path
import re
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from sms_manager.config import resolve_env, settings


logger = logging.getLogger(__name__)

ALL_ENVIRONMENTS = '*'
_RECORD_SECTIONS = ('providers', 'senderIds')
_CAMEL_BOUNDARY_RE = re.compile(r'(?<!^)(?=[A-Z])')

SENSITIVE_SETTING_KEYS = ('apiKey', 'devApiKey', 'apiSecret', 'password', 'token')


class ProviderConfigEntry(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    name: str = ''
    type: str = ''
    enabled: bool = True
    description: str = ''
    sort_order: int = Field(default=0, validation_alias=AliasChoices('sortOrder', 'sort_order'))
    settings: dict[str, Any] = Field(default_factory=dict)


class SenderIdConfigEntry(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    name: str = ''
    provider: str = ''
    sender_id: str = Field(default='', validation_alias=AliasChoices('senderId', 'sender_id'))
    description: str = ''
    enabled: bool = True
    is_development: bool = Field(
        default=False,
        validation_alias=AliasChoices('isDev', 'isTest', 'is_development'),
    )
    sort_order: int = Field(default=0, validation_alias=AliasChoices('sortOrder', 'sort_order'))


class SmsConfigDocument(BaseModel):
    """The active tier of the static configuration file.

    `settings` holds plugin setting overrides keyed by their snake_case name.
    `providers` and `sender_ids` keep the file's insertion order.
    """

    environment: str = ALL_ENVIRONMENTS
    settings: dict[str, Any] = Field(default_factory=dict)
    providers: dict[str, ProviderConfigEntry] = Field(default_factory=dict)
    sender_ids: dict[str, SenderIdConfigEntry] = Field(default_factory=dict)

    def has_provider(self, handle: str) -> bool:
        return handle in self.providers

    def has_sender_id(self, handle: str) -> bool:
        return handle in self.sender_ids


def camel_to_snake(key: str) -> str:
    return _CAMEL_BOUNDARY_RE.sub('_', key).lower()


def merge_tiers(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_tiers(merged[key], value)
        else:
            merged[key] = value
    return merged


def active_tier(raw: dict[str, Any], environment: str) -> dict[str, Any]:
    # Without a '*' key the whole file is one tier shared by every environment.
    if ALL_ENVIRONMENTS not in raw:
        return dict(raw)
    tier = raw.get(ALL_ENVIRONMENTS) or {}
    env_tier = raw.get(environment) or {}
    return merge_tiers(tier, env_tier)


def build_document(raw: dict[str, Any], environment: str) -> SmsConfigDocument:
    tier = active_tier(raw, environment)
    overrides = {
        camel_to_snake(key): resolve_env(value)
        for key, value in tier.items()
        if key not in _RECORD_SECTIONS and key != 'security'
    }
    return SmsConfigDocument(
        environment=environment,
        settings=overrides,
        providers=tier.get('providers') or {},
        sender_ids=tier.get('senderIds') or {},
    )


def load_document(path: str | None = None, environment: str | None = None) -> SmsConfigDocument:
    config_path = Path(path or settings.sms_config_file)
    env = environment or settings.app_env
    if not config_path.exists():
        logger.info('sms_config_file_missing path=%s', config_path)
        return SmsConfigDocument(environment=env)
    try:
        raw = json.loads(config_path.read_text(encoding='utf-8') or '{}')
    except json.JSONDecodeError:
        logger.exception('sms_config_file_invalid path=%s', config_path)
        raise
    if not isinstance(raw, dict):
        raise ValueError(f'{config_path} must contain a JSON object')
    document = build_document(raw, env)
    logger.info(
        'sms_config_file_loaded path=%s env=%s providers=%s sender_ids=%s overrides=%s',
        config_path,
        env,
        len(document.providers),
        len(document.sender_ids),
        sorted(document.settings),
    )
    return document


def mask_sensitive(values: dict[str, Any], sensitive_keys: tuple[str, ...] = SENSITIVE_SETTING_KEYS) -> dict[str, Any]:
    masked: dict[str, Any] = {}
    for key, value in values.items():
        if isinstance(value, dict):
            masked[key] = mask_sensitive(value, sensitive_keys)
        elif key in sensitive_keys and value:
            masked[key] = '********'
        else:
            masked[key] = value
    return masked
