from pathlib import Path
import sys


# Ensure imports work when running this file directly: `python scripts/init_db.py`.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from sms_manager.context import build_context
from sms_manager.db import Base, SessionLocal, engine
from sms_manager.schemas import ProviderSaveRequest, SenderIdSaveRequest
from sms_manager.services.record_resolver import RecordKind


Base.metadata.create_all(bind=engine)

ctx = build_context(SessionLocal)
if not ctx.resolver.find_all(RecordKind.PROVIDER):
    ctx.providers.save_provider(ProviderSaveRequest(
        handle='local-log',
        name='Local log',
        type='log-only',
        settings={'allowedCountries': ['KW']},
    ))
    ctx.sender_ids.save_sender_id(SenderIdSaveRequest(
        handle='local-sender',
        name='Local sender',
        provider_handle='local-log',
        sender_value='LOCAL',
        is_development=True,
    ))
    ctx.resolver.set_default(RecordKind.PROVIDER, 'local-log')
    ctx.resolver.set_default(RecordKind.SENDER_ID, 'local-sender')

print('DB initialized with a local log-only provider.')
