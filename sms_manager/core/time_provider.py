from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from sms_manager.config import settings


APP_ZONEINFO = ZoneInfo(settings.app_timezone or 'UTC')


class TimeProvider:
    """Clock seam for log timestamps, analytics buckets and retention cutoffs."""

    def now(self) -> datetime:
        return datetime.now(APP_ZONEINFO)

    def utcnow(self) -> datetime:
        # Stored timestamps are naive UTC.
        return datetime.now(timezone.utc).replace(tzinfo=None)

    def today(self) -> date:
        return self.now().date()


default_time_provider = TimeProvider()
