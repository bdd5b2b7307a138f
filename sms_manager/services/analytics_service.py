from __future__ import annotations

from datetime import date, datetime
import logging

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from sms_manager.models import SmsAnalytics


logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    'sqlite': sqlite.insert,
    'postgresql': postgresql.insert,
}
_BUCKET_COLUMNS = ['date', 'provider_handle', 'sender_handle', 'source_plugin']

LANGUAGE_BUCKETS = {
    'en': 'english_count',
    'ar': 'arabic_count',
}
OTHER_LANGUAGE_BUCKET = 'other_count'


def language_bucket(language: str | None) -> str:
    return LANGUAGE_BUCKETS.get(str(language or '').strip().lower(), OTHER_LANGUAGE_BUCKET)


def increments_for(*, success: bool, language: str, characters: int, segments: int) -> dict[str, int]:
    increments = {
        'total_sent': 1 if success else 0,
        'total_failed': 0 if success else 1,
        'total_characters': max(0, int(characters)),
        'total_messages': max(0, int(segments)),
        'english_count': 0,
        'arabic_count': 0,
        'other_count': 0,
    }
    increments[language_bucket(language)] = 1
    return increments


def increment_bucket(
    db: Session,
    *,
    day: date,
    provider_handle: str,
    sender_handle: str,
    source_plugin: str | None,
    increments: dict[str, int],
    now: datetime,
) -> None:
    """Add `increments` to the day's bucket, creating it on first use.

    SQLite and PostgreSQL get a single INSERT .. ON CONFLICT DO UPDATE so
    concurrent writers never lose an increment. Other dialects lock the
    row before updating.
    """
    key = {
        'date': day,
        'provider_handle': provider_handle or '',
        'sender_handle': sender_handle or '',
        'source_plugin': source_plugin or '',
    }
    insert_fn = _UPSERT_DIALECTS.get(db.get_bind().dialect.name)
    if insert_fn is not None:
        table = SmsAnalytics.__table__
        values = {table.c[name]: value for name, value in key.items()}
        values.update({table.c[name]: amount for name, amount in increments.items()})
        values.update({
            table.c.total_delivered: 0,
            table.c.total_pending: 0,
            table.c.created_at: now,
            table.c.updated_at: now,
        })
        stmt = insert_fn(table).values(values)
        stmt = stmt.on_conflict_do_update(
            index_elements=_BUCKET_COLUMNS,
            set_={
                **{table.c[name]: table.c[name] + amount for name, amount in increments.items() if amount},
                table.c.updated_at: now,
            },
        )
        db.execute(stmt)
        return

    row = (
        db.query(SmsAnalytics)
        .filter(
            SmsAnalytics.day == key['date'],
            SmsAnalytics.provider_handle == key['provider_handle'],
            SmsAnalytics.sender_handle == key['sender_handle'],
            SmsAnalytics.source_plugin == key['source_plugin'],
        )
        .with_for_update()
        .first()
    )
    if row is None:
        row = SmsAnalytics(
            day=key['date'],
            provider_handle=key['provider_handle'],
            sender_handle=key['sender_handle'],
            source_plugin=key['source_plugin'],
            created_at=now,
        )
        for name in increments:
            setattr(row, name, 0)
        db.add(row)
    for name, amount in increments.items():
        setattr(row, name, int(getattr(row, name) or 0) + amount)
    row.updated_at = now
    db.flush()
