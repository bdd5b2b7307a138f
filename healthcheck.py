import sys

from alembic.config import Config
from alembic.script import ScriptDirectory
from alembic.runtime.migration import MigrationContext
from sqlalchemy import text

from sms_manager.config import settings
from sms_manager.context import build_context
from sms_manager.db import SessionLocal, engine
from sms_manager.models import SmsJobClaim, SmsLog
from sms_manager.scheduler import CLEANUP_JOB_IDS, scheduler, start_scheduler, stop_scheduler
from sms_manager.services.record_resolver import RecordKind


GREEN = '\033[32m'
RED = '\033[31m'
RESET = '\033[0m'


def run_check(name, fn):
    try:
        message = fn() or ''
        suffix = f' - {message}' if message else ''
        print(f'{GREEN}PASS{RESET} {name}{suffix}')
        return True
    except Exception as exc:
        print(f'{RED}FAIL{RESET} {name} - {exc}')
        return False


def check_db_connectivity_and_write():
    with engine.begin() as conn:
        conn.execute(text('SELECT 1'))
        conn.execute(text('CREATE TABLE IF NOT EXISTS _healthcheck_write (id INTEGER PRIMARY KEY, note TEXT)'))
        conn.execute(text("INSERT INTO _healthcheck_write (note) VALUES ('write-check')"))
        conn.execute(text("DELETE FROM _healthcheck_write WHERE note='write-check'"))
        conn.execute(text('DROP TABLE IF EXISTS _healthcheck_write'))
    return 'connect + write ok'


def check_alembic_head():
    cfg = Config('alembic.ini')
    script = ScriptDirectory.from_config(cfg)
    heads = set(script.get_heads())
    if not heads:
        raise RuntimeError('No alembic heads found in repository')

    with engine.connect() as conn:
        current = MigrationContext.configure(conn).get_current_revision()

    if current is None:
        raise RuntimeError('No migration version in DB (run alembic upgrade head)')
    if current not in heads:
        raise RuntimeError(f'DB revision {current} is not at head {sorted(heads)}')
    return f'current={current}'


def check_config_file_and_settings():
    ctx = build_context(SessionLocal)
    effective = ctx.settings.get()
    return (
        f'env={ctx.document.environment} overrides={sorted(ctx.document.settings)} '
        f'log_level={effective.log_level}'
    )


def check_default_records_resolve():
    ctx = build_context(SessionLocal)
    provider = ctx.resolver.get_default(RecordKind.PROVIDER)
    if provider is None:
        raise RuntimeError('No enabled provider available')
    sender = ctx.resolver.get_default(RecordKind.SENDER_ID, provider_handle=provider.handle)
    if sender is None:
        raise RuntimeError(f'No enabled sender ID for provider {provider.handle}')
    if not ctx.registry.has(provider.record.type):
        raise RuntimeError(f'Provider type {provider.record.type} is not registered')
    return f'provider={provider.handle} ({provider.origin}) sender={sender.handle} ({sender.origin})'


def check_scheduler_jobs_registered():
    if not settings.enable_scheduler:
        return 'scheduler disabled'
    ctx = build_context(SessionLocal)
    start_scheduler(ctx)
    try:
        registered = {job.id for job in scheduler.get_jobs()}
        expected = {
            job_id for table, job_id in CLEANUP_JOB_IDS.items() if ctx.retention.should_reschedule(table)
        }
        missing = sorted(expected - registered)
        if missing:
            raise RuntimeError(f'Missing scheduler jobs: {missing}')
        return f'jobs={sorted(registered)}'
    finally:
        stop_scheduler()


def check_log_tables_accessible():
    db = SessionLocal()
    try:
        _ = db.query(SmsLog).limit(1).all()
        _ = db.query(SmsJobClaim).limit(1).all()
        return 'query ok'
    finally:
        db.close()


def main():
    checks = [
        ('Database connectivity and write access', check_db_connectivity_and_write),
        ('Alembic migration status at head', check_alembic_head),
        ('Config file and settings loaded', check_config_file_and_settings),
        ('Default provider and sender ID resolve', check_default_records_resolve),
        ('Scheduler jobs registered', check_scheduler_jobs_registered),
        ('Log tables accessible', check_log_tables_accessible),
    ]

    all_ok = True
    for name, fn in checks:
        all_ok = run_check(name, fn) and all_ok

    if not all_ok:
        sys.exit(1)
    sys.exit(0)


if __name__ == '__main__':
    main()
