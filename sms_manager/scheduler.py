from datetime import datetime, timedelta, timezone
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.exc import IntegrityError

from sms_manager.config import settings
from sms_manager.context import SmsContext, get_context
from sms_manager.core.time_provider import default_time_provider
from sms_manager.metrics import flush_send_metrics, run_timed_job
from sms_manager.models import SmsJobClaim
from sms_manager.services.retention_service import RetentionTable


scheduler = BackgroundScheduler(timezone=settings.app_timezone)
logger = logging.getLogger(__name__)

CLEANUP_JOB_IDS = {
    RetentionTable.LOGS: 'sms_cleanup_logs',
    RetentionTable.ANALYTICS: 'sms_cleanup_analytics',
}
CLAIM_KEEP_DAYS = 14


def _interval_seconds() -> int:
    return max(1, int(settings.cleanup_interval_hours)) * 3600


def _claim_key(job_id: str, run_at_utc: datetime) -> str:
    # Runs falling in the same interval slot share a key, so only the first worker to run one wins.
    slot = int(run_at_utc.replace(tzinfo=timezone.utc).timestamp() // _interval_seconds())
    return f'{job_id}:{slot}'


def claim_run(ctx: SmsContext, job_id: str, run_at_utc: datetime) -> bool:
    db = ctx.session_factory()
    try:
        cutoff = run_at_utc - timedelta(days=CLAIM_KEEP_DAYS)
        db.query(SmsJobClaim).filter(SmsJobClaim.run_at < cutoff).delete(synchronize_session=False)
        db.add(SmsJobClaim(job_key=_claim_key(job_id, run_at_utc), job_name=job_id, run_at=run_at_utc))
        db.commit()
        return True
    except IntegrityError:
        db.rollback()
        logger.info('sms_cleanup_claim_taken job=%s run_at=%s', job_id, run_at_utc.isoformat())
        return False
    finally:
        db.close()


def schedule_cleanup(
    table: RetentionTable,
    delay_seconds: int,
    *,
    ctx: SmsContext | None = None,
    target: BackgroundScheduler | None = None,
    replace: bool = False,
) -> bool:
    """Queue one cleanup run `delay_seconds` from now in this process.

    Every worker keeps its own queued run; the slot claim taken when the run
    fires decides which worker actually cleans up.
    """
    ctx = ctx or get_context()
    target = target or scheduler
    job_id = CLEANUP_JOB_IDS[table]
    if not replace and target.get_job(job_id) is not None:
        logger.info('sms_cleanup_already_queued job=%s', job_id)
        return False

    run_at = default_time_provider.now() + timedelta(seconds=int(delay_seconds))
    target.add_job(
        run_cleanup_job,
        'date',
        run_date=run_at,
        args=[table],
        kwargs={'ctx': ctx, 'target': target},
        id=job_id,
        replace_existing=True,
    )
    logger.info('sms_cleanup_scheduled job=%s run_at=%s', job_id, run_at.isoformat())
    return True


def run_cleanup_job(
    table: RetentionTable,
    ctx: SmsContext | None = None,
    target: BackgroundScheduler | None = None,
    reschedule: bool = True,
) -> bool:
    """Run the cleanup for `table` unless another worker already ran this slot, then queue the next run."""
    ctx = ctx or get_context()
    job_id = CLEANUP_JOB_IDS[table]
    task = ctx.retention.cleanup_logs if table is RetentionTable.LOGS else ctx.retention.cleanup_analytics
    ran = False
    if claim_run(ctx, job_id, default_time_provider.utcnow()):
        ran = True
        try:
            run_timed_job(job_id, task)
        except Exception:
            logger.warning('sms_cleanup_failed_rescheduling job=%s', job_id)
    else:
        logger.info('sms_cleanup_skipped job=%s reason=slot_claimed', job_id)

    if reschedule and ctx.retention.should_reschedule(table):
        schedule_cleanup(table, _interval_seconds(), ctx=ctx, target=target, replace=True)
    return ran


def send_metrics_flush_job():
    run_timed_job('sms_send_metrics_flush', flush_send_metrics)


def start_scheduler(ctx: SmsContext | None = None):
    if not settings.enable_scheduler:
        logger.info('sms_scheduler_disabled')
        return
    ctx = ctx or get_context()
    for table in CLEANUP_JOB_IDS:
        if ctx.retention.should_reschedule(table):
            schedule_cleanup(table, settings.cleanup_initial_delay_seconds, ctx=ctx)
    scheduler.add_job(send_metrics_flush_job, 'interval', minutes=1, id='sms_send_metrics_flush', replace_existing=True)

    if not scheduler.running:
        scheduler.start()


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
