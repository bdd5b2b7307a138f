import logging

from sms_manager.context import build_context
from sms_manager.db import Base, SessionLocal, engine
from sms_manager.services.record_resolver import RecordKind


logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s %(message)s')
logger = logging.getLogger('bootstrap')


def main():
    Base.metadata.create_all(bind=engine)
    ctx = build_context(SessionLocal)
    effective = ctx.settings.save({})
    logger.info(
        'Bootstrap executed: env=%s providers=%s sender_ids=%s default_provider=%s default_sender=%s',
        ctx.document.environment,
        [item.handle for item in ctx.resolver.find_all(RecordKind.PROVIDER)],
        [item.handle for item in ctx.resolver.find_all(RecordKind.SENDER_ID)],
        effective.default_provider_handle,
        effective.default_sender_id_handle,
    )


if __name__ == '__main__':
    main()
