from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from sms_manager.config import settings
from sms_manager.context import build_context, set_context
from sms_manager.db import Base, SessionLocal, engine
from sms_manager.metrics import flush_send_metrics
from sms_manager.route_logging import EndpointNameRoute
from sms_manager.routers import sms
from sms_manager.scheduler import start_scheduler, stop_scheduler
from sms_manager.services.config_file import load_document

logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s %(levelname)s %(name)s %(message)s',
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    Base.metadata.create_all(bind=engine)
    ctx = build_context(SessionLocal, load_document())
    set_context(ctx)
    ctx.settings.apply_log_level()
    start_scheduler(ctx)
    yield
    stop_scheduler()
    flush_send_metrics()
    set_context(None)


app = FastAPI(title=settings.app_name, version='0.1.0', lifespan=lifespan)
app.router.route_class = EndpointNameRoute
app.include_router(sms.router)


@app.get('/health')
def health():
    return {'status': 'ok'}
