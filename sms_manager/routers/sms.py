from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from sms_manager.context import SmsContext, get_context
from sms_manager.core.errors import (
    InUseCannotDelete,
    ReadOnlyConfigRecord,
    RecordNotFound,
    RecordValidationError,
    SmsManagerError,
)
from sms_manager.route_logging import EndpointNameRoute
from sms_manager.schemas import (
    MaintenanceResult,
    ProviderOut,
    ProviderSaveRequest,
    SendByHandleRequest,
    SendDetails,
    SendRequest,
    SendResponse,
    SenderIdOut,
    SenderIdSaveRequest,
)
from sms_manager.services.config_file import mask_sensitive
from sms_manager.services.record_resolver import RecordKind
from sms_manager.services.retention_service import RetentionTable


router = APIRouter(prefix="/api/sms", tags=["SMS"], route_class=EndpointNameRoute)


def _context() -> SmsContext:
    return get_context()


_STATUS_BY_ERROR = (
    (RecordNotFound, 404),
    (ReadOnlyConfigRecord, 409),
    (InUseCannotDelete, 409),
    (RecordValidationError, 422),
)


def _http_error(exc: SmsManagerError) -> HTTPException:
    status_code = next((code for kind, code in _STATUS_BY_ERROR if isinstance(exc, kind)), 400)
    return HTTPException(status_code=status_code, detail=exc.as_dict())


def _default_handle(ctx: SmsContext, kind: RecordKind) -> str | None:
    default = ctx.resolver.get_default(kind)
    return default.handle if default else None


def _provider_out(item, default_handle: str | None) -> ProviderOut:
    record = item.record
    return ProviderOut(
        handle=record.handle,
        name=record.name,
        type=record.type,
        enabled=record.enabled,
        origin=item.origin,
        editable=item.editable,
        is_default=record.handle == default_handle,
        sort_order=record.sort_order,
        description=record.description,
        settings=mask_sensitive(dict(record.settings)),
    )


def _sender_out(item, default_handle: str | None) -> SenderIdOut:
    record = item.record
    return SenderIdOut(
        handle=record.handle,
        name=record.name,
        provider_handle=record.provider_handle,
        sender_value=record.sender_value,
        enabled=record.enabled,
        is_development=record.is_development,
        origin=item.origin,
        editable=item.editable,
        is_default=record.handle == default_handle,
        sort_order=record.sort_order,
        description=record.description,
    )


@router.post("/send", response_model=SendResponse)
def send_sms(payload: SendRequest, ctx: SmsContext = Depends(_context)):
    ok = ctx.sms.send(
        payload.to,
        payload.message,
        language=payload.language,
        provider=payload.provider,
        sender=payload.sender,
        source_plugin=payload.source_plugin,
        source_reference_id=payload.source_reference_id,
    )
    return SendResponse(success=ok)


@router.post("/send-details", response_model=SendDetails)
def send_sms_with_details(payload: SendRequest, ctx: SmsContext = Depends(_context)):
    return ctx.sms.send_with_details(
        payload.to,
        payload.message,
        language=payload.language,
        provider=payload.provider,
        sender=payload.sender,
        source_plugin=payload.source_plugin,
        source_reference_id=payload.source_reference_id,
    )


@router.post("/send-by-handle", response_model=SendResponse)
def send_sms_by_handle(payload: SendByHandleRequest, ctx: SmsContext = Depends(_context)):
    ok = ctx.sms.send_by_handle(
        payload.to,
        payload.message,
        payload.sender_handle,
        language=payload.language,
        source_plugin=payload.source_plugin,
    )
    return SendResponse(success=ok)


@router.get("/provider-types")
def list_provider_types(ctx: SmsContext = Depends(_context)):
    return {"rows": ctx.providers.list_types()}


@router.get("/providers")
def list_providers(enabled_only: bool = False, ctx: SmsContext = Depends(_context)):
    if enabled_only:
        items = ctx.resolver.find_all_enabled(RecordKind.PROVIDER)
    else:
        items = ctx.resolver.find_all(RecordKind.PROVIDER)
    default_handle = _default_handle(ctx, RecordKind.PROVIDER)
    return {
        "rows": [_provider_out(item, default_handle) for item in items],
        "default_from_config": ctx.resolver.is_default_from_config(RecordKind.PROVIDER),
    }


@router.post("/providers", response_model=ProviderOut)
def create_provider(payload: ProviderSaveRequest, ctx: SmsContext = Depends(_context)):
    try:
        record = ctx.providers.save_provider(payload)
    except SmsManagerError as exc:
        raise _http_error(exc) from exc
    item = ctx.resolver.find_by_handle(RecordKind.PROVIDER, record.handle)
    return _provider_out(item, _default_handle(ctx, RecordKind.PROVIDER))


@router.put("/providers/{provider_id}", response_model=ProviderOut)
def update_provider(provider_id: int, payload: ProviderSaveRequest, ctx: SmsContext = Depends(_context)):
    try:
        record = ctx.providers.save_provider(payload, provider_id=provider_id)
    except SmsManagerError as exc:
        raise _http_error(exc) from exc
    item = ctx.resolver.find_by_handle(RecordKind.PROVIDER, record.handle)
    return _provider_out(item, _default_handle(ctx, RecordKind.PROVIDER))


@router.delete("/providers/{handle}")
def delete_provider(handle: str, ctx: SmsContext = Depends(_context)):
    try:
        ctx.providers.delete_provider(handle)
    except SmsManagerError as exc:
        raise _http_error(exc) from exc
    return {"ok": True}


@router.post("/providers/{handle}/test-connection")
def test_provider_connection(handle: str, ctx: SmsContext = Depends(_context)):
    try:
        return {"ok": ctx.providers.test_connection(handle)}
    except SmsManagerError as exc:
        raise _http_error(exc) from exc


@router.get("/sender-ids")
def list_sender_ids(provider: str | None = None, ctx: SmsContext = Depends(_context)):
    if provider:
        items = ctx.resolver.find_senders_for_provider(provider)
    else:
        items = ctx.resolver.find_all(RecordKind.SENDER_ID)
    default_handle = _default_handle(ctx, RecordKind.SENDER_ID)
    return {
        "rows": [_sender_out(item, default_handle) for item in items],
        "default_from_config": ctx.resolver.is_default_from_config(RecordKind.SENDER_ID),
    }


@router.post("/sender-ids", response_model=SenderIdOut)
def create_sender_id(payload: SenderIdSaveRequest, ctx: SmsContext = Depends(_context)):
    try:
        record = ctx.sender_ids.save_sender_id(payload)
    except SmsManagerError as exc:
        raise _http_error(exc) from exc
    item = ctx.resolver.find_by_handle(RecordKind.SENDER_ID, record.handle)
    return _sender_out(item, _default_handle(ctx, RecordKind.SENDER_ID))


@router.put("/sender-ids/{sender_id}", response_model=SenderIdOut)
def update_sender_id(sender_id: int, payload: SenderIdSaveRequest, ctx: SmsContext = Depends(_context)):
    try:
        record = ctx.sender_ids.save_sender_id(payload, sender_id=sender_id)
    except SmsManagerError as exc:
        raise _http_error(exc) from exc
    item = ctx.resolver.find_by_handle(RecordKind.SENDER_ID, record.handle)
    return _sender_out(item, _default_handle(ctx, RecordKind.SENDER_ID))


@router.delete("/sender-ids/{handle}")
def delete_sender_id(handle: str, ctx: SmsContext = Depends(_context)):
    try:
        ctx.sender_ids.delete_sender_id(handle)
    except SmsManagerError as exc:
        raise _http_error(exc) from exc
    return {"ok": True}


@router.put("/defaults/{kind}")
def set_default(kind: RecordKind, payload: dict[str, Any], ctx: SmsContext = Depends(_context)):
    try:
        ctx.resolver.set_default(kind, payload.get("handle"))
    except SmsManagerError as exc:
        raise _http_error(exc) from exc
    return {"handle": _default_handle(ctx, kind)}


@router.get("/settings")
def get_settings(ctx: SmsContext = Depends(_context)):
    try:
        current = ctx.settings.get()
    except SmsManagerError as exc:
        raise _http_error(exc) from exc
    return {"settings": current.model_dump(), "overridden": ctx.settings.overridden_fields()}


@router.patch("/settings")
def update_settings(changes: dict[str, Any], ctx: SmsContext = Depends(_context)):
    if not changes:
        raise HTTPException(status_code=400, detail="No settings supplied")
    try:
        current = ctx.settings.save(changes)
    except SmsManagerError as exc:
        raise _http_error(exc) from exc
    ctx.settings.apply_log_level()
    return {"settings": current.model_dump(), "overridden": ctx.settings.overridden_fields()}


@router.post("/maintenance/clear-logs", response_model=MaintenanceResult)
def clear_logs(ctx: SmsContext = Depends(_context)):
    return MaintenanceResult(deleted=ctx.retention.clear_all(RetentionTable.LOGS))


@router.post("/maintenance/clear-analytics", response_model=MaintenanceResult)
def clear_analytics(ctx: SmsContext = Depends(_context)):
    return MaintenanceResult(deleted=ctx.retention.clear_all(RetentionTable.ANALYTICS))
