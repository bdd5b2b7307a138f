from __future__ import annotations

from datetime import timedelta
from enum import Enum
import logging
from typing import Callable

from sqlalchemy import func
from sqlalchemy.orm import Session

from sms_manager.core.time_provider import TimeProvider, default_time_provider
from sms_manager.models import SmsAnalytics, SmsLog
from sms_manager.services.settings_service import SettingsService


logger = logging.getLogger(__name__)


class RetentionTable(str, Enum):
    LOGS = 'logs'
    ANALYTICS = 'analytics'


def _model(table: RetentionTable):
    return SmsLog if table is RetentionTable.LOGS else SmsAnalytics


def _age_column(table: RetentionTable):
    return SmsLog.created_at if table is RetentionTable.LOGS else SmsAnalytics.day


class RetentionService:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        settings_service: SettingsService,
        time_provider: TimeProvider = default_time_provider,
    ) -> None:
        self.session_factory = session_factory
        self.settings_service = settings_service
        self.time_provider = time_provider

    def count(self, table: RetentionTable) -> int:
        model = _model(table)
        db = self.session_factory()
        try:
            return int(db.query(func.count(model.id)).scalar() or 0)
        finally:
            db.close()

    def delete_older_than(self, table: RetentionTable, days: int) -> int:
        if int(days) <= 0:
            return 0
        if table is RetentionTable.LOGS:
            cutoff = self.time_provider.utcnow() - timedelta(days=int(days))
        else:
            cutoff = self.time_provider.today() - timedelta(days=int(days))

        model = _model(table)
        db = self.session_factory()
        try:
            deleted = db.query(model).filter(_age_column(table) < cutoff).delete(synchronize_session=False)
            db.commit()
        finally:
            db.close()
        if deleted:
            logger.info('sms_%s_expired deleted=%s retention_days=%s', table.value, deleted, days)
        return int(deleted or 0)

    def trim_to_limit(self, table: RetentionTable, limit: int) -> int:
        """Delete the oldest rows until at most `limit` remain."""
        limit = max(0, int(limit))
        model = _model(table)
        db = self.session_factory()
        try:
            current = int(db.query(func.count(model.id)).scalar() or 0)
            if current <= limit:
                return 0
            oldest = (
                db.query(model.id)
                .order_by(_age_column(table).asc(), model.id.asc())
                .limit(current - limit)
                .all()
            )
            ids = [row_id for (row_id,) in oldest]
            if not ids:
                return 0
            deleted = db.query(model).filter(model.id.in_(ids)).delete(synchronize_session=False)
            db.commit()
        finally:
            db.close()
        logger.info('sms_%s_trimmed deleted=%s limit=%s', table.value, deleted, limit)
        return int(deleted or 0)

    def _cleanup(self, table: RetentionTable) -> dict[str, int]:
        current = self.settings_service.get()
        if table is RetentionTable.LOGS:
            retention, auto_trim, limit = current.logs_retention, current.auto_trim_logs, current.logs_limit
        else:
            retention, auto_trim, limit = (
                current.analytics_retention,
                current.auto_trim_analytics,
                current.analytics_limit,
            )
        if retention <= 0:
            return {'deleted': 0, 'trimmed': 0}

        deleted = self.delete_older_than(table, retention)
        trimmed = self.trim_to_limit(table, limit) if auto_trim else 0
        logger.info('sms_%s_cleanup_completed deleted=%s trimmed=%s', table.value, deleted, trimmed)
        return {'deleted': deleted, 'trimmed': trimmed}

    def cleanup_logs(self) -> dict[str, int]:
        return self._cleanup(RetentionTable.LOGS)

    def cleanup_analytics(self) -> dict[str, int]:
        return self._cleanup(RetentionTable.ANALYTICS)

    def clear_all(self, table: RetentionTable) -> int:
        model = _model(table)
        db = self.session_factory()
        try:
            deleted = db.query(model).delete(synchronize_session=False)
            db.commit()
        finally:
            db.close()
        logger.warning('sms_%s_cleared deleted=%s', table.value, deleted)
        return int(deleted or 0)

    def should_reschedule(self, table: RetentionTable) -> bool:
        current = self.settings_service.get()
        if table is RetentionTable.LOGS:
            return bool(current.enable_logs) and current.logs_retention > 0
        return bool(current.enable_analytics) and current.analytics_retention > 0
