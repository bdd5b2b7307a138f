from typing import Any

from pydantic import BaseModel, Field


class SendRequest(BaseModel):
    to: str
    message: str
    language: str = 'en'
    provider: int | str | None = None
    sender: int | str | None = None
    source_plugin: str | None = None
    source_reference_id: str | None = None


class SendByHandleRequest(BaseModel):
    to: str
    message: str
    sender_handle: str
    language: str = 'en'
    source_plugin: str | None = None


class SendResponse(BaseModel):
    success: bool


class SendDetails(BaseModel):
    success: bool
    message_id: str | None = None
    response: str | None = None
    error: str | None = None
    error_code: str | None = None
    log_id: int | None = None
    execution_time_ms: int = 0
    provider_name: str | None = None
    sender_id_name: str | None = None
    sender_id_value: str | None = None
    recipient: str = ''


class ProviderSaveRequest(BaseModel):
    handle: str = ''
    name: str = ''
    type: str = ''
    enabled: bool = True
    description: str = ''
    sort_order: int = 0
    settings: dict[str, Any] = Field(default_factory=dict)


class SenderIdSaveRequest(BaseModel):
    handle: str = ''
    name: str = ''
    provider_handle: str = ''
    sender_value: str = ''
    enabled: bool = True
    is_development: bool = False
    description: str = ''
    sort_order: int = 0


class ProviderOut(BaseModel):
    handle: str
    name: str
    type: str
    enabled: bool
    origin: str
    editable: bool
    is_default: bool = False
    sort_order: int = 0
    description: str = ''
    settings: dict[str, Any] = Field(default_factory=dict)


class SenderIdOut(BaseModel):
    handle: str
    name: str
    provider_handle: str
    sender_value: str
    enabled: bool
    is_development: bool
    origin: str
    editable: bool
    is_default: bool = False
    sort_order: int = 0
    description: str = ''


class MaintenanceResult(BaseModel):
    deleted: int
